"""Classification of prospect answers: Claude first, keyword heuristics as fallback."""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from leadbot.analysis.llm_client import LLMClient, parse_json_reply
from leadbot.analysis.prompts import (
    CLASSIFIER_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_choice_prompt,
    build_identity_prompt,
    build_inquiry_prompt,
    build_interest_prompt,
    build_role_prompt,
)
from leadbot.detection.text import first_integer, fold
from leadbot.errors import LLMUnavailableError
from leadbot.storage.models import FleetBucket, Timeline, Urgency

logger = logging.getLogger(__name__)

INTEREST_AREAS = (
    "transporte",
    "logistica",
    "seguridad",
    "operaciones",
    "direccion",
    "estrategia",
    "mantenimiento",
    "recursos_humanos",
)

COMPETITORS = {
    "guardvant": "Guardvant",
    "caterpillar": "Caterpillar",
    "hexagon": "Hexagon",
    "seeing machines": "Seeing Machines",
    "mobileye": "Mobileye",
    "nauto": "Nauto",
}

TIMELINE_URGENCY = {
    Timeline.IMMEDIATE: Urgency.HIGH,
    Timeline.SHORT: Urgency.MEDIUM,
    Timeline.MEDIUM: Urgency.MEDIUM,
    Timeline.LONG: Urgency.LOW,
    Timeline.UNKNOWN: Urgency.MEDIUM,
}

INQUIRY_FALLBACK_REPLY = (
    "Gracias por tu pregunta. Un asesor de LogiFit revisará tu consulta y te "
    "responderá a la brevedad. ¿Hay algo más en lo que pueda ayudarte?"
)


@dataclass
class RoleInfo:
    role: str
    is_decision_maker: bool
    areas: List[str] = field(default_factory=list)


@dataclass
class FleetInfo:
    raw: str
    bucket: FleetBucket


@dataclass
class SolutionInfo:
    has_solution: bool
    competitor: Optional[str] = None


@dataclass
class TimelineInfo:
    timeline: Timeline
    urgency: Urgency


@dataclass
class InterestResult:
    high_interest: bool = False
    interest_score: int = 5
    should_offer_appointment: bool = False
    reasoning: str = "fallback"


@dataclass
class IdentityAnalysis:
    name: Optional[str] = None
    company: Optional[str] = None
    is_independent: bool = False
    declined: bool = False


# Keyword matching. A trailing "*" marks a stem; keywords starting with
# punctuation match anywhere; everything else matches whole words only.


def keyword_hits(text: str, keywords: Sequence[str]) -> int:
    """Count keywords present in already folded text."""
    hits = 0
    for kw in keywords:
        if not kw[0].isalnum():
            found = kw in text
        elif kw.endswith("*"):
            found = re.search(rf"(?<!\w){re.escape(kw[:-1])}", text) is not None
        else:
            found = re.search(rf"(?<!\w){re.escape(kw)}(?!\w)", text) is not None
        if found:
            hits += 1
    return hits


# Role


TRANSPORT_ROLES = (
    "gerente de transporte", "jefe de transporte", "director de transporte",
    "encargado de transporte", "responsable de transporte", "gerente de flota",
    "jefe de flota", "gerente de operaciones de transporte",
)
SECURITY_ROLES = (
    "director de seguridad", "jefe de seguridad", "gerente de seguridad",
    "responsable de seguridad", "encargado de seguridad", "jefe de sst",
    "prevencion de riesgos",
)
LOGISTICS_ROLES = (
    "gerente de logistica", "director de logistica", "jefe de logistica",
    "encargado de logistica", "responsable de logistica", "coordinador de logistica",
    "asistente de logistica", "asistente del area de logistica",
)
EXECUTIVE_ROLES = (
    "gerente general", "director general", "ceo", "presidente", "vicepresidente",
    "dueno", "propietario", "socio", "fundador", "director ejecutivo",
)
STAFF_ROLES = (
    "coordinador de flota", "supervisor*", "analista*", "asistente*", "conductor*",
    "chofer*", "operador*", "despachador*",
)
DECISION_PHRASES = (
    "yo decido", "tomo las decisiones", "soy quien decide", "autorizo",
    "tengo la ultima palabra", "apruebo", "mi decision", "decido yo",
)
SENIORITY_WORDS = ("gerente", "director", "directora", "jefe", "jefa", "jefatura")


def heuristic_role(text: str) -> RoleInfo:
    """Keyword classification of a role description."""
    folded = fold(text)
    assistant = keyword_hits(folded, ("asistente*", "auxiliar*", "practicante*")) > 0

    if keyword_hits(folded, TRANSPORT_ROLES):
        return RoleInfo("Gerente de Transporte", not assistant, ["transporte", "logistica"])
    if keyword_hits(folded, SECURITY_ROLES):
        return RoleInfo("Director de Seguridad", not assistant, ["seguridad", "operaciones"])
    if keyword_hits(folded, LOGISTICS_ROLES):
        return RoleInfo("Coordinador de Logística", not assistant, ["logistica", "operaciones"])
    if keyword_hits(folded, EXECUTIVE_ROLES):
        return RoleInfo("Director General", True, ["direccion", "estrategia"])
    if keyword_hits(folded, DECISION_PHRASES):
        return RoleInfo("Ejecutivo", True, ["direccion", "estrategia"])
    if keyword_hits(folded, STAFF_ROLES):
        return RoleInfo(_clean_role(text), False, ["transporte", "operaciones"])
    if keyword_hits(folded, SENIORITY_WORDS) and not assistant:
        return RoleInfo(_clean_role(text), True, _areas_in(folded))
    return RoleInfo("No especificado", False, [])


def _clean_role(text: str) -> str:
    role = re.sub(
        r"^(soy|trabajo como|mi cargo es|mi puesto es)\s+(el|la)?\s*",
        "",
        text.strip(),
        flags=re.IGNORECASE,
    )
    role = role.strip(" .,!")
    return role[:1].upper() + role[1:] if role else "No especificado"


def _areas_in(folded: str) -> List[str]:
    return [a for a in INTEREST_AREAS if a.replace("_", " ") in folded]


# Fleet size

LARGE_FLEET_WORDS = (
    "grande", "muchas", "muchos", "nacional", "internacional", "flota grande",
)
MEDIUM_FLEET_WORDS = ("mediana", "mediano", "regional", "varios", "varias")
SMALL_FLEET_WORDS = ("pequena", "pequeno", "pocas", "pocos", "local", "independiente")


def bucket_for_count(count: int) -> FleetBucket:
    if count <= 5:
        return FleetBucket.SMALL
    if count <= 20:
        return FleetBucket.MEDIUM
    return FleetBucket.LARGE


def classify_fleet_size(text: str) -> FleetInfo:
    """Fleet size from the first integer, else qualitative keywords."""
    raw = (text or "").strip()
    count = first_integer(raw)
    if count is not None:
        return FleetInfo(raw=raw, bucket=bucket_for_count(count))

    folded = fold(raw)
    if keyword_hits(folded, LARGE_FLEET_WORDS):
        return FleetInfo(raw=raw, bucket=FleetBucket.LARGE)
    if keyword_hits(folded, MEDIUM_FLEET_WORDS):
        return FleetInfo(raw=raw, bucket=FleetBucket.MEDIUM)
    if keyword_hits(folded, SMALL_FLEET_WORDS):
        return FleetInfo(raw=raw, bucket=FleetBucket.SMALL)
    return FleetInfo(raw=raw, bucket=FleetBucket.UNKNOWN)


# Current solution

NEGATIVE_SOLUTION = (
    "no usamos", "no tenemos", "no contamos", "no utilizamos", "ninguno",
    "ninguna", "nada", "todavia no", "aun no", "tampoco",
)
AFFIRMATIVE_SOLUTION = (
    "si", "tenemos", "usamos", "utilizamos", "contamos", "ya tenemos",
)


def classify_current_solution(text: str) -> SolutionInfo:
    """Whether the prospect already runs a fatigue / monitoring solution."""
    folded = fold(text)

    for key, name in COMPETITORS.items():
        if key in folded:
            return SolutionInfo(has_solution=True, competitor=name)

    if re.match(r"\s*no\b", folded) or keyword_hits(folded, NEGATIVE_SOLUTION):
        return SolutionInfo(has_solution=False)
    if keyword_hits(folded, AFFIRMATIVE_SOLUTION):
        return SolutionInfo(has_solution=True)
    return SolutionInfo(has_solution=False)


# Timeline

TIMELINE_KEYWORDS = (
    (Timeline.IMMEDIATE, (
        "inmediato", "inmediata", "inmediatamente", "urgente", "pronto", "ya",
        "esta semana", "este mes", "cuanto antes", "lo antes posible", "ahora",
    )),
    (Timeline.SHORT, (
        "proximo mes", "siguiente mes", "30 dias", "un mes", "1 mes",
        "pocas semanas",
    )),
    (Timeline.MEDIUM, (
        "trimestre", "3 meses", "tres meses", "90 dias", "6 meses", "seis meses",
        "semestre",
    )),
    (Timeline.LONG, (
        "ano", "anio", "largo plazo", "futuro", "despues", "mas adelante",
    )),
)


def classify_timeline(text: str) -> TimelineInfo:
    """Decision timeline bucket and the urgency it implies."""
    folded = fold(text)
    for timeline, keywords in TIMELINE_KEYWORDS:
        if keyword_hits(folded, keywords):
            return TimelineInfo(timeline, TIMELINE_URGENCY[timeline])
    return TimelineInfo(Timeline.UNKNOWN, TIMELINE_URGENCY[Timeline.UNKNOWN])


# Identity

DECLINE_PHRASES = (
    "no doy mi nombre", "no te doy mi nombre", "no quiero dar", "no quiero decir",
    "prefiero no", "anonimo", "anonima", "sin nombre", "no te voy a dar",
    "no voy a dar", "no es necesario", "no importa mi nombre", "no lo voy a decir",
)
NAME_STOPWORDS = {
    "hola", "buenas", "buenos", "dias", "tardes", "noches", "si", "no", "gracias",
    "ok", "vale", "claro", "me", "interesa", "quiero", "informacion", "info",
    "precio", "precios", "que", "como", "cuanto", "empresa", "soy", "el", "la",
    "de", "y", "en", "bien", "hey", "saludos", "listo", "perfecto",
}
NAME_CONNECTORS = {
    "de", "del", "y", "en", "trabajo", "el", "la", "los", "las", "gerente",
    "director", "jefe", "encargado", "desde", "con", "para", "aqui", "aca",
}
NAME_PATTERN = re.compile(
    r"(?:me llamo|mi nombre es|soy)\s+([A-Za-zÁÉÍÓÚÑÜáéíóúñü]+(?:\s+[A-Za-zÁÉÍÓÚÑÜáéíóúñü]+){0,3})",
    re.IGNORECASE,
)
COMPANY_PATTERN = re.compile(
    r"(?:de la empresa|la empresa|empresa|compa[ñn][ií]a|trabajo en|trabajo para|represento a|vengo de)\s+(.+)",
    re.IGNORECASE,
)
WORD_PATTERN = re.compile(r"^[A-Za-zÁÉÍÓÚÑÜáéíóúñü]+$")


def heuristic_identity(text: str) -> IdentityAnalysis:
    """Pattern extraction of name and company from a greeting reply."""
    stripped = (text or "").strip()
    folded = fold(stripped)
    result = IdentityAnalysis(is_independent="independiente" in folded)

    if keyword_hits(folded, DECLINE_PHRASES):
        result.declined = True
        return result

    name_match = NAME_PATTERN.search(stripped)
    if name_match:
        words = []
        for word in name_match.group(1).split():
            if fold(word) in NAME_CONNECTORS:
                break
            words.append(word)
        if words:
            result.name = " ".join(w.capitalize() for w in words)

    company_match = COMPANY_PATTERN.search(stripped)
    if company_match:
        result.company = _clean_company(company_match.group(1))
    elif name_match:
        # "soy Ana de Transportes Sur"
        rest = stripped[name_match.start(1):]
        after = re.search(r"\s(?:de|del|en)\s+(.+)", rest, re.IGNORECASE)
        if after and result.name:
            result.company = _clean_company(after.group(1))

    if result.name is None and result.company is None:
        result.name = _bare_name(stripped)

    return result


def _bare_name(text: str) -> Optional[str]:
    words = text.strip(" .!,").split()
    if not 1 <= len(words) <= 4:
        return None
    if not all(WORD_PATTERN.match(w) for w in words):
        return None
    if any(fold(w) in NAME_STOPWORDS for w in words):
        return None
    return " ".join(w.capitalize() for w in words)


def _clean_company(value: str) -> Optional[str]:
    company = re.split(r"[,.;!?\n]| y ", value, maxsplit=1)[0].strip()
    return company or None


def _clean_optional(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a", "desconocido"):
        return None
    return text


# Closed-choice reduction

CHOICE_KEYWORDS: Dict[str, Sequence[str]] = {
    "CITA": (
        "si", "cita", "agend*", "reun*", "llamada", "llamar*", "hablar",
        "claro", "dale", "ok", "perfecto", "me interesa", "demo*", "videollamada",
    ),
    "INFO": (
        "info*", "detalle*", "correo", "envia*", "manda*", "material", "folleto",
        "catalogo", "no", "despues", "luego", "por ahora",
    ),
    "CONSULTA": (
        "?", "pregunta*", "duda*", "consulta*", "cuanto", "como", "precio*",
        "costo*", "otra cosa", "quisiera saber", "una cosa",
    ),
    "FINALIZAR": (
        "gracias", "eso es todo", "nada mas", "listo", "adios", "chao",
        "hasta luego", "no", "ninguna", "perfecto", "ok", "genial",
    ),
}


def heuristic_choice(
    text: str, choices: Sequence[str], default: str
) -> str:
    """Pick the choice with the most keyword hits; ties go to the default."""
    folded = fold(text)
    scores = {c: keyword_hits(folded, CHOICE_KEYWORDS.get(c, ())) for c in choices}
    best = max(scores.values()) if scores else 0
    winners = [c for c, s in scores.items() if s == best]
    if best == 0 or len(winners) > 1:
        return default
    return winners[0]


class Classifier:
    """Classifies prospect replies, never raising to callers."""

    def __init__(self, llm: Optional[LLMClient]):
        """Initialize classifier.

        Args:
            llm: Claude client, None for heuristics only
        """
        self.llm = llm

    async def _ask(self, prompt: str, system: str = CLASSIFIER_SYSTEM_PROMPT) -> str:
        if self.llm is None:
            raise LLMUnavailableError("No LLM client")
        return await self.llm.complete(prompt, system=system)

    async def classify_role(self, text: str) -> RoleInfo:
        """Role, decision-maker flag and interest areas from a role answer."""
        try:
            data = parse_json_reply(await self._ask(build_role_prompt(text)))
            role = _clean_optional(data.get("role"))
            if role is None:
                raise ValueError("No role in reply")
            areas = [
                fold(str(a)).replace(" ", "_")
                for a in data.get("areas") or []
            ]
            return RoleInfo(
                role=role,
                is_decision_maker=data.get("is_decision_maker") is True,
                areas=[a for a in areas if a in INTEREST_AREAS],
            )
        except (LLMUnavailableError, ValueError, TypeError, AttributeError) as e:
            logger.info(f"Role classification falling back to keywords: {e}")
            return heuristic_role(text)

    async def classify_interest(self, answers: Mapping[str, str]) -> InterestResult:
        """Purchase interest from the accumulated answers.

        Returns the neutral default on any LLM or parse failure.
        """
        try:
            data = parse_json_reply(await self._ask(build_interest_prompt(dict(answers))))
            score = int(data["interest_score"])
            return InterestResult(
                high_interest=data.get("high_interest") is True,
                interest_score=min(10, max(1, score)),
                should_offer_appointment=data.get("should_offer_appointment") is True,
                reasoning=str(data.get("reasoning") or ""),
            )
        except (
            LLMUnavailableError,
            ValueError,
            TypeError,
            KeyError,
            AttributeError,
            OverflowError,
        ) as e:
            logger.warning(f"Interest classification failed, using neutral default: {e}")
            return InterestResult()

    async def classify_identity(self, text: str) -> IdentityAnalysis:
        """Name and company from a greeting reply."""
        try:
            data = parse_json_reply(await self._ask(build_identity_prompt(text)))
            result = IdentityAnalysis(
                name=_clean_optional(data.get("name")),
                company=_clean_optional(data.get("company")),
                is_independent=data.get("is_independent") is True,
                declined=data.get("declined") is True,
            )
            if result.name is None and result.company is None and not result.declined:
                # Claude found nothing; patterns may still catch a bare name
                return heuristic_identity(text)
            return result
        except (LLMUnavailableError, ValueError, TypeError, AttributeError) as e:
            logger.info(f"Identity extraction falling back to patterns: {e}")
            return heuristic_identity(text)

    async def reduce_choice(
        self,
        question: str,
        text: str,
        choices: Sequence[str],
        default: str,
    ) -> str:
        """Reduce a free-text reply to exactly one of `choices`.

        Args:
            question: What the prospect was asked, for the LLM
            text: Prospect's reply
            choices: Allowed upper-case tokens
            default: Returned when neither LLM nor keywords decide
        """
        try:
            reply = (await self._ask(build_choice_prompt(question, text, choices))).upper()
            found = [c for c in choices if re.search(rf"\b{re.escape(c)}\b", reply)]
            if len(found) == 1:
                return found[0]
            logger.info(f"Unusable choice reply '{reply[:50]}', using keywords")
        except (LLMUnavailableError, AttributeError) as e:
            logger.info(f"Choice reduction falling back to keywords: {e}")
        return heuristic_choice(text, choices, default)

    async def answer_inquiry(self, context: Dict[str, str], text: str) -> str:
        """Free-form answer to a prospect question, canned reply on failure."""
        try:
            answer = (
                await self._ask(build_inquiry_prompt(context, text), system=SYSTEM_PROMPT)
            ).strip()
            if answer:
                return answer
        except (LLMUnavailableError, AttributeError) as e:
            logger.warning(f"Inquiry answer unavailable: {e}")
        return INQUIRY_FALLBACK_REPLY
