"""General inquiry: free-form Q&A with a one-time appointment offer."""

import logging
from typing import Any, Dict

from leadbot.flows import appointment
from leadbot.flows.base import FlowContext, FlowResult
from leadbot.storage.models import ConversationState, Prospect

logger = logging.getLogger(__name__)

ACCEPT_QUESTION = (
    "A prospect was offered a call with a sales advisor. Answer \"CITA\" if their "
    'reply accepts the call, "INFO" otherwise (including new questions).'
)
APPOINTMENT_OFFER = (
    "Por cierto, {name}, ¿te gustaría agendar una llamada con {vendor} para ver "
    "la solución a detalle con los datos de tu flota?"
)


def _context(prospect: Prospect) -> Dict[str, Any]:
    return {
        "name": prospect.name,
        "company": prospect.company,
        "role": prospect.role,
        "fleet size": prospect.fleet_size_raw,
        "current solution": prospect.competitor
        or ("yes" if prospect.has_current_solution else None),
        "source": prospect.source,
    }


async def handle(ctx: FlowContext, prospect: Prospect, text: str) -> FlowResult:
    """Answer the prospect and re-score interest after every question."""
    if prospect.appointment_offered and prospect.appointment is None:
        choice = await ctx.classifier.reduce_choice(
            ACCEPT_QUESTION, text, ("CITA", "INFO"), default="INFO"
        )
        if choice == "CITA":
            logger.info(f"{prospect.phone_number} accepted the appointment offer")
            return await appointment.offer_slots(ctx, prospect, prefix="¡Genial! ")

    answer = await ctx.classifier.answer_inquiry(_context(prospect), text)

    answers = dict(prospect.answers)
    answers[f"Consulta {sum(1 for k in answers if k.startswith('Consulta '))+1}"] = text.strip()
    interest = await ctx.classifier.classify_interest(answers)

    changes: Dict[str, Any] = {
        "answers": answers,
        "interest_score": interest.interest_score,
        "interest_reasoning": interest.reasoning,
        "high_interest": prospect.high_interest or interest.high_interest,
    }

    notify = interest.high_interest and not prospect.high_interest_notified
    if notify:
        changes["high_interest_notified"] = True

    reply = answer
    if (
        interest.should_offer_appointment
        and not prospect.appointment_offered
        and prospect.appointment is None
    ):
        reply = answer + "\n\n" + APPOINTMENT_OFFER.format(
            name=prospect.display_name, vendor=ctx.vendor_name
        )
        changes["appointment_offered"] = True

    return FlowResult(
        reply=reply,
        next_state=ConversationState.GENERAL_INQUIRY,
        changes=changes,
        notify_high_interest=notify,
    )
