"""Appointment scheduling: slot menu, selection and calendar event creation."""

import logging
import re
from typing import Dict, List, Optional

from leadbot.detection.text import first_integer, fold
from leadbot.errors import CalendarUnavailableError
from leadbot.flows.base import FlowContext, FlowResult
from leadbot.storage.models import ConversationState, Prospect

logger = logging.getLogger(__name__)

MAX_SLOTS = 5

CALENDAR_FALLBACK_REPLY = (
    "En este momento no puedo consultar la agenda. ¿Podrías sugerirme un día y "
    "horario que te acomode? Un asesor confirmará la cita contigo a la brevedad."
)
PREFERRED_TIME_KEY = "Horario sugerido por el prospecto"

ORDINALS = {
    "primer": 1, "primero": 1, "primera": 1,
    "segundo": 2, "segunda": 2,
    "tercer": 3, "tercero": 3, "tercera": 3,
    "cuarto": 4, "cuarta": 4,
    "quinto": 5, "quinta": 5,
}


def render_menu(slots: List[Dict[str, str]], timezone_label: str) -> str:
    lines = [f"{i}. {slot['date']} a las {slot['time']}" for i, slot in enumerate(slots, 1)]
    return (
        f"Estos son los próximos horarios disponibles (hora de {timezone_label}):\n"
        + "\n".join(lines)
        + "\n\nResponde con el número de la opción que prefieras."
    )


def parse_selection(text: str, count: int) -> Optional[int]:
    """Menu option chosen in the reply (1-based), or None."""
    folded = fold(text)
    number = first_integer(re.sub(r"\d{1,2}:\d{2}", "", folded))
    if number is not None and 1 <= number <= count:
        return number
    for word, value in ORDINALS.items():
        if re.search(rf"\b{word}\b", folded) and value <= count:
            return value
    return None


def _select_by_time(text: str, slots: List[Dict[str, str]]) -> Optional[int]:
    match = re.search(r"\b(\d{1,2}):(\d{2})\b", text)
    if not match:
        return None
    wanted = f"{int(match.group(1)):02d}:{match.group(2)}"
    for i, slot in enumerate(slots, 1):
        if slot["time"] == wanted:
            return i
    return None


def _timezone_label(ctx: FlowContext) -> str:
    return ctx.calendar_timezone.split("/")[-1].replace("_", " ")


async def offer_slots(ctx: FlowContext, prospect: Prospect, prefix: str = "") -> FlowResult:
    """Enter APPOINTMENT_SCHEDULING showing the slot menu, or the fallback."""
    try:
        if ctx.calendar is None:
            raise CalendarUnavailableError("Calendar not configured")
        slots = (await ctx.calendar.list_available())[:MAX_SLOTS]
    except CalendarUnavailableError as e:
        logger.warning(f"Cannot list slots for {prospect.phone_number}: {e}")
        slots = []

    if not slots:
        return FlowResult(
            reply=prefix + CALENDAR_FALLBACK_REPLY,
            next_state=ConversationState.APPOINTMENT_SCHEDULING,
            changes={"offered_slots": []},
        )

    return FlowResult(
        reply=prefix + render_menu(slots, _timezone_label(ctx)),
        next_state=ConversationState.APPOINTMENT_SCHEDULING,
        changes={"offered_slots": slots},
    )


async def handle(ctx: FlowContext, prospect: Prospect, text: str) -> FlowResult:
    """Book the chosen slot and move to CLOSING."""
    slots = prospect.offered_slots

    if not slots:
        result = await offer_slots(ctx, prospect)
        if not result.changes["offered_slots"]:
            answers = dict(prospect.answers)
            answers[PREFERRED_TIME_KEY] = text.strip()
            result.changes["answers"] = answers
        return result

    selection = parse_selection(text, len(slots)) or _select_by_time(text, slots)
    if selection is None:
        return FlowResult(
            reply="No logré identificar el horario. " + render_menu(slots, _timezone_label(ctx)),
            next_state=ConversationState.APPOINTMENT_SCHEDULING,
        )

    slot = slots[selection - 1]
    try:
        if ctx.calendar is None:
            raise CalendarUnavailableError("Calendar not configured")
        details = await ctx.calendar.create_event(prospect, slot)
    except CalendarUnavailableError as e:
        logger.error(f"Event creation failed for {prospect.phone_number}: {e}")
        return FlowResult(
            reply=CALENDAR_FALLBACK_REPLY,
            next_state=ConversationState.APPOINTMENT_SCHEDULING,
            changes={"offered_slots": []},
        )

    logger.info(
        f"Appointment booked for {prospect.phone_number}: {details.date} {details.time} "
        f"(event {details.calendar_event_id})"
    )

    meet_line = f"\nEnlace de la reunión: {details.meet_link}" if details.meet_link else ""
    reply = (
        f"¡Listo, {prospect.display_name}! Tu llamada con {ctx.vendor_name} quedó "
        f"agendada para el {details.date} a las {details.time} "
        f"(hora de {_timezone_label(ctx)}).{meet_line}\n\n"
        "¿Tienes alguna otra consulta o damos por finalizada la conversación?"
    )
    return FlowResult(
        reply=reply,
        next_state=ConversationState.CLOSING,
        changes={"appointment": details, "offered_slots": []},
    )
