"""Prospect scoring and next-action routing."""

from dataclasses import dataclass

from leadbot.storage.models import (
    FleetBucket,
    NextAction,
    Prospect,
    ProspectPotential,
    ProspectType,
)


@dataclass
class ScoreResult:
    prospect_type: ProspectType
    potential: ProspectPotential
    next_action: NextAction

    @property
    def wants_call(self) -> bool:
        return self.next_action in (NextAction.BOOK_CALL, NextAction.OFFER_CALL_OR_INFO)


ANONYMOUS_SCORE = ScoreResult(
    ProspectType.CURIOUS, ProspectPotential.LOW, NextAction.SEND_INFO
)


def score(is_decision_maker: bool, bucket: FleetBucket, anonymous: bool = False) -> ScoreResult:
    """Score a prospect from classified facts.

    Args:
        is_decision_maker: Whether the prospect controls the purchase
        bucket: Fleet size bucket
        anonymous: Prospect declined to give a name

    Returns:
        ScoreResult with type, potential and next action
    """
    if anonymous:
        return ANONYMOUS_SCORE

    sizable = bucket in (FleetBucket.MEDIUM, FleetBucket.LARGE)

    if is_decision_maker and sizable:
        return ScoreResult(ProspectType.HIGH_VALUE, ProspectPotential.HIGH, NextAction.BOOK_CALL)
    if is_decision_maker and bucket == FleetBucket.SMALL:
        return ScoreResult(
            ProspectType.HIGH_VALUE, ProspectPotential.MEDIUM, NextAction.OFFER_CALL_OR_INFO
        )
    if not is_decision_maker and sizable:
        return ScoreResult(ProspectType.INFLUENCER, ProspectPotential.MEDIUM, NextAction.SEND_INFO)
    return ScoreResult(ProspectType.CURIOUS, ProspectPotential.LOW, NextAction.SEND_INFO)


def score_prospect(prospect: Prospect) -> ScoreResult:
    return score(prospect.is_decision_maker, prospect.fleet_bucket, prospect.anonymous)
