"""Closing phase and operator-initiated forced closing."""

import logging

from leadbot.flows.base import FlowContext, FlowResult
from leadbot.storage.models import ConversationState, Prospect

logger = logging.getLogger(__name__)

CHOICE_QUESTION = (
    "After booking a call, a prospect was asked if they have another question. "
    'Answer "CONSULTA" if they have a question or want to keep talking, '
    '"FINALIZAR" if they seem satisfied and ready to end the conversation.'
)


async def handle(ctx: FlowContext, prospect: Prospect, text: str) -> FlowResult:
    choice = await ctx.classifier.reduce_choice(
        CHOICE_QUESTION, text, ("CONSULTA", "FINALIZAR"), default="CONSULTA"
    )
    logger.info(f"Closing reply from {prospect.phone_number}: {choice}")

    if choice == "FINALIZAR":
        if prospect.appointment:
            reply = (
                f"¡Perfecto, {prospect.display_name}! Ha sido un placer atenderte. "
                f"{ctx.vendor_name} te espera el {prospect.appointment.date} a las "
                f"{prospect.appointment.time}. ¡Que tengas un excelente día! 👋"
            )
        else:
            reply = (
                f"¡Gracias por contactarnos, {prospect.display_name}! Ha sido un placer "
                "atenderte. ¡Que tengas un excelente día! 👋"
            )
        return FlowResult(reply=reply, next_state=ConversationState.CLOSED)

    if "?" in text:
        reply = await ctx.classifier.answer_inquiry(
            {"name": prospect.name, "company": prospect.company}, text
        )
    else:
        reply = (
            f"Claro, {prospect.display_name}. Estoy aquí para responder cualquier "
            "pregunta adicional que tengas. ¿En qué más puedo ayudarte?"
        )

    # A booked call keeps the conversation in CLOSING until it is finished
    if prospect.appointment:
        return FlowResult(reply=reply, next_state=ConversationState.CLOSING)
    return FlowResult(reply=reply, next_state=ConversationState.GENERAL_INQUIRY)


def force_close(ctx: FlowContext, prospect: Prospect) -> FlowResult:
    """Close a conversation on an operator's request."""
    name = prospect.name or "estimado cliente"
    return FlowResult(
        reply=(
            f"Gracias por tu interés, {name}. Un asesor humano continuará la "
            "conversación contigo en breve."
        ),
        next_state=ConversationState.CLOSED,
        changes={"closed_by_operator": True, "operator_takeover": None},
    )
