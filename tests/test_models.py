from datetime import datetime, timezone

from leadbot.storage.models import (
    AppointmentDetails,
    ConversationState,
    FleetBucket,
    OperatorTakeover,
    Prospect,
    QualificationStep,
    Timeline,
)


def test_state_parse_collapses_unknown_values():
    assert ConversationState.parse("closing") == ConversationState.CLOSING
    assert ConversationState.parse(" CLOSED ") == ConversationState.CLOSED
    assert ConversationState.parse("waiting_for_godot") == ConversationState.INITIAL
    assert ConversationState.parse(None) == ConversationState.INITIAL
    assert ConversationState.parse(ConversationState.GREETING) == ConversationState.GREETING


def test_document_round_trip_keeps_nested_records():
    taken_at = datetime(2026, 10, 18, 15, 0, tzinfo=timezone.utc)
    prospect = Prospect(
        phone_number="51987654321",
        name="Ana",
        fleet_bucket=FleetBucket.LARGE,
        timeline=Timeline.SHORT,
        conversation_state=ConversationState.OPERATOR_TAKEOVER,
        qualification_step=QualificationStep.ROLE_CONFIRMATION,
        operator_takeover=OperatorTakeover(taken_at, ConversationState.QUALIFICATION),
        appointment=AppointmentDetails(
            "19/10/2026", "10:00", "2026-10-19T10:00:00-05:00", None, "evt-1"
        ),
        answers={"¿Cuántas unidades?": "50"},
    )

    document = prospect.to_document()
    assert document["conversation_state"] == "operator_takeover"
    assert document["operator_takeover"]["previous_state"] == "qualification"

    restored = Prospect.from_document(document)
    assert restored == prospect


def test_from_document_tolerates_bad_values():
    restored = Prospect.from_document(
        {
            "phone_number": "51987654321",
            "conversation_state": "bogus",
            "fleet_bucket": "enormous",
            "created_at": "2026-10-18T10:00:00",
            "some_retired_field": 1,
        }
    )

    assert restored.conversation_state == ConversationState.INITIAL
    assert restored.fleet_bucket == FleetBucket.UNKNOWN
    assert restored.created_at.tzinfo is not None


def test_stale_takeover_record_is_dropped():
    document = Prospect(phone_number="51987654321").to_document()
    document["conversation_state"] = "qualification"
    document["operator_takeover"] = {
        "taken_at": "2026-10-18T10:00:00+00:00",
        "previous_state": "greeting",
    }

    assert Prospect.from_document(document).operator_takeover is None


def test_display_name_and_jid():
    prospect = Prospect(phone_number="51987654321")
    assert prospect.display_name == "Desconocido"
    assert prospect.jid == "51987654321@s.whatsapp.net"
