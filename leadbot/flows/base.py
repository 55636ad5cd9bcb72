"""Shared types for the conversation flow modules."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from leadbot.analysis.classifier import Classifier
from leadbot.storage.models import AppointmentDetails, ConversationState, Prospect


class Calendar(Protocol):
    async def list_available(self) -> List[Dict[str, str]]:
        ...

    async def create_event(
        self, prospect: Prospect, slot: Dict[str, str]
    ) -> AppointmentDetails:
        ...


@dataclass
class FlowContext:
    """Collaborators and persona settings handed to every flow."""

    classifier: Classifier
    calendar: Optional[Calendar] = None
    bot_name: str = "LogiBot"
    vendor_name: str = "Roberto"
    calendar_timezone: str = "America/Lima"


@dataclass
class FlowResult:
    """What a flow decided: reply text, next phase and prospect changes."""

    reply: str
    next_state: ConversationState
    changes: Dict[str, Any] = field(default_factory=dict)
    notify_high_interest: bool = False
