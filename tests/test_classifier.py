import json

import pytest
from conftest import FakeLLM

from leadbot.analysis.classifier import (
    INQUIRY_FALLBACK_REPLY,
    Classifier,
    InterestResult,
    classify_current_solution,
    classify_fleet_size,
    classify_timeline,
    heuristic_choice,
    heuristic_identity,
    heuristic_role,
    keyword_hits,
)
from leadbot.analysis.llm_client import LLMClient, parse_json_reply
from leadbot.errors import LLMUnavailableError
from leadbot.storage.models import FleetBucket, Timeline, Urgency


@pytest.mark.parametrize(
    "text,bucket",
    [
        ("50 camiones", FleetBucket.LARGE),
        ("tenemos 1.200 unidades", FleetBucket.LARGE),
        ("unos 12", FleetBucket.MEDIUM),
        ("20", FleetBucket.MEDIUM),
        ("3 camiones", FleetBucket.SMALL),
        ("una flota grande", FleetBucket.LARGE),
        ("somos una empresa mediana", FleetBucket.MEDIUM),
        ("pocas unidades", FleetBucket.SMALL),
        ("no sé", FleetBucket.UNKNOWN),
    ],
)
def test_fleet_size_buckets(text, bucket):
    result = classify_fleet_size(text)
    assert result.bucket == bucket
    assert result.raw == text


@pytest.mark.parametrize(
    "text,has_solution,competitor",
    [
        ("No usamos nada", False, None),
        ("no", False, None),
        ("todavía no tenemos", False, None),
        ("sí, usamos Guardvant", True, "Guardvant"),
        ("tenemos cámaras de Mobileye", True, "Mobileye"),
        ("sí tenemos un sistema", True, None),
        ("mmm", False, None),
    ],
)
def test_current_solution(text, has_solution, competitor):
    result = classify_current_solution(text)
    assert result.has_solution is has_solution
    assert result.competitor == competitor


@pytest.mark.parametrize(
    "text,timeline,urgency",
    [
        ("este mes", Timeline.IMMEDIATE, Urgency.HIGH),
        ("lo antes posible", Timeline.IMMEDIATE, Urgency.HIGH),
        ("el próximo mes", Timeline.SHORT, Urgency.MEDIUM),
        ("en unos 3 meses", Timeline.MEDIUM, Urgency.MEDIUM),
        ("tal vez el próximo año", Timeline.LONG, Urgency.LOW),
        ("no sabría decirte", Timeline.UNKNOWN, Urgency.MEDIUM),
    ],
)
def test_timeline(text, timeline, urgency):
    result = classify_timeline(text)
    assert result.timeline == timeline
    assert result.urgency == urgency


def test_role_heuristics():
    transport = heuristic_role("Gerente de Transporte")
    assert transport.role == "Gerente de Transporte"
    assert transport.is_decision_maker is True
    assert "transporte" in transport.areas

    assert heuristic_role("soy el dueño").is_decision_maker is True
    assert heuristic_role("yo decido las compras").is_decision_maker is True
    assert heuristic_role("asistente de logística").is_decision_maker is False
    assert heuristic_role("conductor").is_decision_maker is False

    unknown = heuristic_role("trabajo ahí")
    assert unknown.role == "No especificado"
    assert unknown.is_decision_maker is False


def test_identity_heuristics():
    bare = heuristic_identity("Juan Pérez")
    assert bare.name == "Juan Pérez"
    assert bare.company is None

    full = heuristic_identity("Hola, soy María Torres de Transportes Andinos")
    assert full.name == "María Torres"
    assert full.company == "Transportes Andinos"

    both = heuristic_identity("Me llamo Luis y trabajo en Cargo Express")
    assert both.name == "Luis"
    assert both.company == "Cargo Express"

    assert heuristic_identity("no doy mi nombre").declined is True
    assert heuristic_identity("hola, quiero información").name is None
    assert heuristic_identity("soy independiente").is_independent is True


def test_keyword_hits_whole_words_and_stems():
    assert keyword_hits("si, agendemos", ("si", "agend*")) == 2
    assert keyword_hits("asi es", ("si",)) == 0
    assert keyword_hits("cuanto cuesta?", ("?",)) == 1


def test_heuristic_choice_defaults_on_tie_or_silence():
    assert heuristic_choice("sí, agendemos", ("CITA", "INFO"), "INFO") == "CITA"
    assert heuristic_choice("mándame información", ("CITA", "INFO"), "INFO") == "INFO"
    assert heuristic_choice("mmm", ("CITA", "INFO"), "INFO") == "INFO"
    assert heuristic_choice("gracias, eso es todo", ("CONSULTA", "FINALIZAR"), "CONSULTA") == "FINALIZAR"
    assert heuristic_choice("¿cuánto cuesta?", ("CONSULTA", "FINALIZAR"), "CONSULTA") == "CONSULTA"


def test_parse_json_reply_handles_fences_and_prose():
    assert parse_json_reply('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_reply('Claro: {"a": 2} listo') == {"a": 2}
    with pytest.raises(ValueError):
        parse_json_reply("no json here")


async def test_interest_garbage_returns_neutral_default():
    classifier = Classifier(FakeLLM(lambda prompt: "Parece muy interesado, ¡llámalo!"))

    result = await classifier.classify_interest({"Q": "A"})

    assert result == InterestResult(False, 5, False, "fallback")


async def test_interest_infinite_score_returns_neutral_default():
    # json.loads turns 1e999 into inf, which int() refuses
    reply = '{"high_interest": true, "interest_score": 1e999}'

    result = await Classifier(FakeLLM(lambda prompt: reply)).classify_interest({"Q": "A"})

    assert result == InterestResult(False, 5, False, "fallback")


async def test_non_text_llm_replies_fall_back():
    classifier = Classifier(FakeLLM(lambda prompt: 42))

    assert await classifier.reduce_choice(
        "q", "sí, agendemos", ("CITA", "INFO"), default="INFO"
    ) == "CITA"
    assert await classifier.answer_inquiry({}, "¿Cuánto cuesta?") == INQUIRY_FALLBACK_REPLY


async def test_complete_skips_non_text_blocks():
    class Block:
        def __init__(self, **attrs):
            self.__dict__.update(attrs)

    class Messages:
        def __init__(self, content):
            self.content = content

        async def create(self, **kwargs):
            return Block(content=self.content)

    llm = LLMClient(api_key="test-key")

    llm.client = Block(messages=Messages([Block(type="tool_use"), Block(text="CITA")]))
    assert await llm.complete("q") == "CITA"

    llm.client = Block(messages=Messages([Block(type="tool_use")]))
    with pytest.raises(LLMUnavailableError):
        await llm.complete("q")


async def test_interest_without_llm_returns_neutral_default():
    result = await Classifier(None).classify_interest({"Q": "A"})
    assert result.interest_score == 5
    assert result.high_interest is False


async def test_interest_score_is_clamped():
    reply = json.dumps(
        {"high_interest": True, "interest_score": 14, "should_offer_appointment": True}
    )
    result = await Classifier(FakeLLM(lambda prompt: reply)).classify_interest({"Q": "A"})

    assert result.interest_score == 10
    assert result.high_interest is True
    assert result.should_offer_appointment is True


async def test_role_uses_llm_json_and_filters_areas():
    reply = json.dumps(
        {"role": "Jefe de Flota", "is_decision_maker": True, "areas": ["Logística", "marketing"]}
    )
    result = await Classifier(FakeLLM(lambda prompt: reply)).classify_role("jefe de flota")

    assert result.role == "Jefe de Flota"
    assert result.is_decision_maker is True
    assert result.areas == ["logistica"]


async def test_role_falls_back_to_keywords_on_garbage():
    result = await Classifier(FakeLLM(lambda prompt: "el jefe")).classify_role(
        "Gerente General"
    )
    assert result.role == "Director General"
    assert result.is_decision_maker is True


async def test_identity_prefers_llm_and_falls_back_to_patterns():
    reply = '{"name": "Juan Pérez", "company": "Transportes X", "is_independent": false, "declined": false}'
    result = await Classifier(FakeLLM(lambda prompt: reply)).classify_identity("Juan de TX")
    assert (result.name, result.company) == ("Juan Pérez", "Transportes X")

    empty = '{"name": null, "company": null, "is_independent": false, "declined": false}'
    result = await Classifier(FakeLLM(lambda prompt: empty)).classify_identity("Juan Pérez")
    assert result.name == "Juan Pérez"


async def test_reduce_choice_needs_exactly_one_token():
    assert await Classifier(FakeLLM(lambda p: "cita")).reduce_choice(
        "q", "mmm", ("CITA", "INFO"), default="INFO"
    ) == "CITA"
    # Both tokens in the reply: keywords decide
    assert await Classifier(FakeLLM(lambda p: "CITA o INFO")).reduce_choice(
        "q", "mándame info", ("CITA", "INFO"), default="INFO"
    ) == "INFO"


async def test_answer_inquiry_falls_back_to_canned_reply():
    answer = await Classifier(None).answer_inquiry({"name": "Ana"}, "¿Cuánto cuesta?")
    assert answer == INQUIRY_FALLBACK_REPLY
