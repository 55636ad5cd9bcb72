"""Interest validation: does the prospect want a call (CITA) or information (INFO)?"""

import logging

from leadbot.flows import appointment
from leadbot.flows.base import FlowContext, FlowResult
from leadbot.storage.models import ConversationState, Prospect

logger = logging.getLogger(__name__)

CHOICE_QUESTION = (
    "A sales prospect was asked whether they want to book a call with an advisor "
    'or receive information. Answer "CITA" if they want the call, "INFO" if they '
    "prefer information or are undecided."
)

INFO_REPLY = (
    "¡Claro! LogiFit combina cámaras que detectan microsueños y distracciones, "
    "smart bands que miden la calidad del descanso de tus conductores y un centro "
    "de control con alertas en tiempo real. Cuéntame, ¿qué te gustaría saber en detalle?"
)


async def handle(ctx: FlowContext, prospect: Prospect, text: str) -> FlowResult:
    choice = await ctx.classifier.reduce_choice(
        CHOICE_QUESTION, text, ("CITA", "INFO"), default="INFO"
    )
    logger.info(f"Interest validation for {prospect.phone_number}: {choice}")

    if choice == "CITA":
        return await appointment.offer_slots(ctx, prospect, prefix="¡Excelente! ")

    return FlowResult(reply=INFO_REPLY, next_state=ConversationState.GENERAL_INQUIRY)
