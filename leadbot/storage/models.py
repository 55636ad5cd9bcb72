"""Data models for the WhatsApp lead qualifier."""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationState(Enum):
    """Conversation phases, persisted by value."""

    INITIAL = "initial"
    GREETING = "greeting"
    QUALIFICATION = "qualification"
    INTEREST_VALIDATION = "interest_validation"
    APPOINTMENT_SCHEDULING = "appointment_scheduling"
    CLOSING = "closing"
    CLOSED = "closed"
    GENERAL_INQUIRY = "general_inquiry"
    OPERATOR_TAKEOVER = "operator_takeover"

    @classmethod
    def parse(cls, value: Any) -> "ConversationState":
        """Parse a persisted value; anything unknown collapses to INITIAL."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for state in cls:
                if state.value == normalized:
                    return state
        return cls.INITIAL


class QualificationStep(Enum):
    """Qualification interview steps, in order."""

    FLEET_SIZE = "fleet_size"
    CURRENT_SOLUTION = "current_solution"
    DECISION_TIMELINE = "decision_timeline"
    ROLE_CONFIRMATION = "role_confirmation"
    COMPLETE = "complete"


class FleetBucket(Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    UNKNOWN = "unknown"


class Timeline(Enum):
    IMMEDIATE = "immediate"
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"
    UNKNOWN = "unknown"


class Urgency(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProspectType(Enum):
    HIGH_VALUE = "HIGH_VALUE"
    INFLUENCER = "INFLUENCER"
    CURIOUS = "CURIOUS"


class ProspectPotential(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class NextAction(Enum):
    BOOK_CALL = "BOOK_CALL"
    OFFER_CALL_OR_INFO = "OFFER_CALL_OR_INFO"
    SEND_INFO = "SEND_INFO"
    NURTURE = "NURTURE"
    CLOSE = "CLOSE"


@dataclass
class OperatorTakeover:
    """Record of a human operator holding the conversation."""

    taken_at: datetime
    previous_state: ConversationState


@dataclass
class AppointmentDetails:
    """Calendar event booked for a prospect."""

    date: str  # DD/MM/YYYY
    time: str  # HH:MM
    iso: str
    meet_link: Optional[str]
    calendar_event_id: str


@dataclass
class Prospect:
    """Prospect conversing with the bot, keyed by normalized phone number."""

    phone_number: str

    # Identity
    country_code: Optional[str] = None
    timezone: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    last_interaction: Optional[datetime] = None

    # Marketing provenance
    source: str = "WhatsApp"
    campaign_name: str = "Orgánico"

    # Profile
    name: Optional[str] = None
    company: Optional[str] = None
    role: Optional[str] = None
    is_decision_maker: bool = False
    interest_areas: List[str] = field(default_factory=list)
    anonymous: bool = False
    emails: List[str] = field(default_factory=list)

    # Qualification facts
    fleet_size_raw: Optional[str] = None
    fleet_bucket: FleetBucket = FleetBucket.UNKNOWN
    has_current_solution: Optional[bool] = None
    competitor: Optional[str] = None
    timeline: Timeline = Timeline.UNKNOWN
    urgency: Optional[Urgency] = None

    # Scoring
    interest_score: Optional[int] = None
    high_interest: bool = False
    interest_reasoning: Optional[str] = None
    prospect_type: Optional[ProspectType] = None
    prospect_potential: Optional[ProspectPotential] = None
    next_action: Optional[NextAction] = None

    # Conversation control
    conversation_state: ConversationState = ConversationState.INITIAL
    qualification_step: QualificationStep = QualificationStep.FLEET_SIZE
    answers: Dict[str, str] = field(default_factory=dict)
    high_interest_notified: bool = False
    operator_takeover: Optional[OperatorTakeover] = None
    closed_by_operator: bool = False
    greeting_attempts: int = 0
    awaiting_company: bool = False
    appointment_offered: bool = False
    offered_slots: List[Dict[str, str]] = field(default_factory=list)
    closures: int = 0

    # Outcome
    appointment: Optional[AppointmentDetails] = None
    export_id: Optional[str] = None
    crm_id: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or "Desconocido"

    @property
    def jid(self) -> str:
        return f"{self.phone_number}@s.whatsapp.net"

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe document."""
        doc: Dict[str, Any] = {}
        for f in fields(self):
            doc[f.name] = _to_json(getattr(self, f.name))
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Prospect":
        """Rebuild a prospect from a stored document.

        Unknown keys are ignored and malformed enum values fall back to
        their defaults, so old documents keep loading.
        """
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in doc.items() if k in known}

        prospect = cls(phone_number=str(data.pop("phone_number")))

        for key, value in data.items():
            if value is None:
                setattr(prospect, key, None)
                continue
            if key in ("created_at", "last_interaction"):
                value = _parse_datetime(value)
            elif key == "conversation_state":
                value = ConversationState.parse(value)
            elif key == "qualification_step":
                value = _parse_enum(QualificationStep, value, QualificationStep.FLEET_SIZE)
            elif key == "fleet_bucket":
                value = _parse_enum(FleetBucket, value, FleetBucket.UNKNOWN)
            elif key == "timeline":
                value = _parse_enum(Timeline, value, Timeline.UNKNOWN)
            elif key == "urgency":
                value = _parse_enum(Urgency, value, None)
            elif key == "prospect_type":
                value = _parse_enum(ProspectType, value, None)
            elif key == "prospect_potential":
                value = _parse_enum(ProspectPotential, value, None)
            elif key == "next_action":
                value = _parse_enum(NextAction, value, None)
            elif key == "operator_takeover":
                value = OperatorTakeover(
                    taken_at=_parse_datetime(value.get("taken_at")),
                    previous_state=ConversationState.parse(
                        value.get("previous_state")
                    ),
                )
            elif key == "appointment":
                value = AppointmentDetails(**value)
            setattr(prospect, key, value)

        # A takeover record without the takeover state is stale
        if (
            prospect.operator_takeover is not None
            and prospect.conversation_state != ConversationState.OPERATOR_TAKEOVER
        ):
            prospect.operator_takeover = None

        return prospect


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds")
    if isinstance(value, (OperatorTakeover, AppointmentDetails)):
        return {f.name: _to_json(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _to_json(v) for k, v in value.items()}
    return value


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_enum(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default
