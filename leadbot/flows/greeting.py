"""Greeting phase: welcome and identification of name and company."""

import logging
from typing import Any, Dict

from leadbot.detection.text import fold
from leadbot.flows import qualification
from leadbot.flows.base import FlowContext, FlowResult
from leadbot.storage.models import ConversationState, Prospect

logger = logging.getLogger(__name__)

MAX_GREETING_ATTEMPTS = 2

WELCOME = (
    "¡Hola! 👋 Soy {vendor}, tu asesor comercial en LogiFit. {source_line}"
    "¿Me ayudas compartiendo tu nombre y el de tu empresa, por favor? 🚚"
)
WELCOME_BACK = (
    "¡Hola de nuevo, {name}! 👋 Soy {vendor} de LogiFit, qué gusto saludarte otra vez. "
    "Cuéntame, ¿en qué puedo ayudarte hoy?"
)
ASK_COMPANY = "Gracias, {name}. ¿En qué empresa trabajas o eres independiente?"
ASK_NAME = "Gracias. Me gustaría entender mejor las necesidades de {company}. ¿Me podrías confirmar tu nombre?"
ASK_AGAIN = (
    "Disculpa, para poder ayudarte mejor necesito tu nombre y el de tu empresa. "
    "¿Me los podrías compartir, por favor?"
)
ANONYMOUS_ACK = "Entendido, no hay problema. "
REFUSAL_WORDS = ("no", "prefiero no", "no quiero", "ninguna", "no importa")


async def handle_initial(ctx: FlowContext, prospect: Prospect, text: str) -> FlowResult:
    """Welcome a new (or reopened) prospect and move to GREETING."""
    if prospect.name and prospect.company:
        reply = WELCOME_BACK.format(name=prospect.name, vendor=ctx.vendor_name)
    else:
        source_line = ""
        if prospect.source and prospect.source != "WhatsApp":
            source_line = f"Gracias por escribirnos desde {prospect.source}. "
        reply = WELCOME.format(vendor=ctx.vendor_name, source_line=source_line)

    return FlowResult(
        reply=reply,
        next_state=ConversationState.GREETING,
        changes={"greeting_attempts": 0, "awaiting_company": False},
    )


async def handle(ctx: FlowContext, prospect: Prospect, text: str) -> FlowResult:
    """Capture name and company; once settled, start qualification.

    A prospect who refuses to give a name continues anonymously.
    """
    if prospect.awaiting_company:
        return _start_qualification(
            {"company": _company_from_reply(text), "awaiting_company": False},
        )

    # Only a returning prospect reaches GREETING with both already known
    if prospect.name and prospect.company:
        return await _resume_returning(ctx, prospect, text)

    analysis = await ctx.classifier.classify_identity(text)

    if analysis.declined:
        logger.info(f"Prospect {prospect.phone_number} declined to give a name")
        return _start_qualification(
            {"anonymous": True, "name": None, "awaiting_company": False},
            prefix=ANONYMOUS_ACK,
        )

    name = analysis.name or prospect.name
    company = analysis.company or prospect.company
    if company is None and analysis.is_independent:
        company = "Independiente"

    changes: Dict[str, Any] = {}
    if name:
        changes.update({"name": name, "anonymous": False})
    if company:
        changes["company"] = company

    if name and company:
        logger.info(f"Identified {name} from {company}")
        return _start_qualification(changes, prefix=f"¡Mucho gusto, {name}! ")

    if name:
        changes["awaiting_company"] = True
        return FlowResult(
            reply=ASK_COMPANY.format(name=name),
            next_state=ConversationState.GREETING,
            changes=changes,
        )

    attempts = prospect.greeting_attempts + 1
    changes["greeting_attempts"] = attempts
    if attempts >= MAX_GREETING_ATTEMPTS:
        logger.info(
            f"No name from {prospect.phone_number} after {attempts} attempts, continuing anonymously"
        )
        changes["anonymous"] = True
        return _start_qualification(changes, prefix=ANONYMOUS_ACK)

    reply = ASK_NAME.format(company=company) if company else ASK_AGAIN
    return FlowResult(reply=reply, next_state=ConversationState.GREETING, changes=changes)


async def _resume_returning(ctx: FlowContext, prospect: Prospect, text: str) -> FlowResult:
    """Answer what a returning prospect asked, then qualify again."""
    prefix = f"Perfecto, {prospect.name}. "
    if "?" in text:
        answer = await ctx.classifier.answer_inquiry(
            {"name": prospect.name, "company": prospect.company}, text
        )
        prefix = f"{answer}\n\n"
    logger.info(f"Returning prospect {prospect.phone_number} resumes qualification")
    return _start_qualification({}, prefix=prefix)


def _company_from_reply(text: str):
    cleaned = text.strip(" .!¡")
    folded = fold(cleaned)
    if "independiente" in folded:
        return "Independiente"
    if not cleaned or folded in REFUSAL_WORDS:
        return None
    return cleaned


def _start_qualification(
    changes: Dict[str, Any], prefix: str = ""
) -> FlowResult:
    changes = dict(changes)
    changes["qualification_step"] = qualification.FIRST_STEP
    return FlowResult(
        reply=prefix + qualification.QUESTIONS[qualification.FIRST_STEP],
        next_state=ConversationState.QUALIFICATION,
        changes=changes,
    )
