"""Qualification phase: fleet size, current solution, timeline and role."""

import dataclasses
import logging
from typing import Any, Dict

from leadbot.analysis.classifier import (
    classify_current_solution,
    classify_fleet_size,
    classify_timeline,
)
from leadbot.analysis.scoring import score_prospect
from leadbot.flows.base import FlowContext, FlowResult
from leadbot.storage.models import (
    ConversationState,
    FleetBucket,
    Prospect,
    ProspectPotential,
    QualificationStep,
)

logger = logging.getLogger(__name__)

FIRST_STEP = QualificationStep.FLEET_SIZE

QUESTIONS = {
    QualificationStep.FLEET_SIZE: "¿Cuántas unidades tiene actualmente la flota de tu empresa?",
    QualificationStep.CURRENT_SOLUTION: (
        "¿Actualmente utilizan algún sistema para monitorear la fatiga o "
        "somnolencia de sus conductores?"
    ),
    QualificationStep.DECISION_TIMELINE: (
        "¿En qué plazo les gustaría implementar una solución de monitoreo de fatiga?"
    ),
    QualificationStep.ROLE_CONFIRMATION: "Por último, ¿cuál es tu cargo dentro de la empresa?",
}

FLEET_ACKS = {
    FleetBucket.LARGE: "¡Una flota grande! La seguridad de tantos conductores es clave. ",
    FleetBucket.MEDIUM: "Perfecto, una flota mediana. ",
    FleetBucket.SMALL: "Entendido, gracias. ",
    FleetBucket.UNKNOWN: "Gracias. ",
}

INTEREST_QUESTION = (
    "¿Te gustaría agendar una breve llamada con {vendor} para ver cómo LogiFit "
    "se adapta a tu operación, o prefieres que te enviemos más información?"
)
SEND_INFO_REPLY = (
    "¡Gracias por tus respuestas! LogiFit ayuda a flotas como la tuya a prevenir "
    "accidentes por fatiga con cámaras de monitoreo, smart bands para conductores "
    "y un centro de control con alertas en tiempo real. "
    "¿Tienes alguna pregunta sobre la solución?"
)


async def handle(ctx: FlowContext, prospect: Prospect, text: str) -> FlowResult:
    """Record the answer to the current step and ask the next question."""
    step = prospect.qualification_step
    answers = dict(prospect.answers)
    if step in QUESTIONS:
        answers[QUESTIONS[step]] = text.strip()
    changes: Dict[str, Any] = {"answers": answers}
    ack = "Gracias. "

    if step == QualificationStep.FLEET_SIZE:
        fleet = classify_fleet_size(text)
        changes.update({"fleet_size_raw": fleet.raw, "fleet_bucket": fleet.bucket})
        ack = FLEET_ACKS[fleet.bucket]
        next_step = QualificationStep.CURRENT_SOLUTION

    elif step == QualificationStep.CURRENT_SOLUTION:
        solution = classify_current_solution(text)
        changes.update(
            {
                "has_current_solution": solution.has_solution,
                "competitor": solution.competitor,
            }
        )
        if solution.competitor:
            ack = f"Conocemos {solution.competitor}, gracias por contarnos. "
        next_step = QualificationStep.DECISION_TIMELINE

    elif step == QualificationStep.DECISION_TIMELINE:
        timeline = classify_timeline(text)
        changes.update({"timeline": timeline.timeline, "urgency": timeline.urgency})
        next_step = (
            QualificationStep.COMPLETE
            if prospect.anonymous
            else QualificationStep.ROLE_CONFIRMATION
        )

    elif step == QualificationStep.ROLE_CONFIRMATION:
        role = await ctx.classifier.classify_role(text)
        changes.update(
            {
                "role": role.role,
                "is_decision_maker": role.is_decision_maker,
                "interest_areas": role.areas,
            }
        )
        next_step = QualificationStep.COMPLETE

    else:
        next_step = QualificationStep.COMPLETE

    changes["qualification_step"] = next_step

    if next_step != QualificationStep.COMPLETE:
        return FlowResult(
            reply=ack + QUESTIONS[next_step],
            next_state=ConversationState.QUALIFICATION,
            changes=changes,
        )

    return await _complete(ctx, dataclasses.replace(prospect, **changes), changes)


async def _complete(
    ctx: FlowContext, prospect: Prospect, changes: Dict[str, Any]
) -> FlowResult:
    """Score the prospect and route to interest validation or general inquiry."""
    result = score_prospect(prospect)
    interest = await ctx.classifier.classify_interest(prospect.answers)
    high_interest = interest.high_interest or result.potential == ProspectPotential.HIGH

    changes.update(
        {
            "prospect_type": result.prospect_type,
            "prospect_potential": result.potential,
            "next_action": result.next_action,
            "interest_score": interest.interest_score,
            "interest_reasoning": interest.reasoning,
            "high_interest": high_interest,
        }
    )

    notify = high_interest and not prospect.high_interest_notified
    if notify:
        changes["high_interest_notified"] = True

    logger.info(
        f"Qualified {prospect.phone_number}: {result.prospect_type.value} / "
        f"{result.potential.value} -> {result.next_action.value} "
        f"(interest {interest.interest_score}/10)"
    )

    if result.wants_call:
        return FlowResult(
            reply="¡Muchas gracias por la información! "
            + INTEREST_QUESTION.format(vendor=ctx.vendor_name),
            next_state=ConversationState.INTEREST_VALIDATION,
            changes=changes,
            notify_high_interest=notify,
        )

    return FlowResult(
        reply=SEND_INFO_REPLY,
        next_state=ConversationState.GENERAL_INQUIRY,
        changes=changes,
        notify_high_interest=notify,
    )
