import json
from datetime import datetime, timezone

import httpx

from leadbot.delivery.crm_client import CRMClient, format_prospect_for_crm
from leadbot.delivery.make_webhook import MakeWebhookSink, post_to_webhook
from leadbot.delivery.sheets_writer import (
    ACTION_REGISTER,
    ACTION_UPDATE,
    format_prospect_for_sheets,
    prospect_status,
)
from leadbot.storage.models import AppointmentDetails, Prospect, ProspectType

SHEETS_URL = "https://hook.make.com/sheets"
ALERT_URL = "https://hook.make.com/alerts"
CRM_URL = "https://crm.logifit.pe/api/leads"


def make_prospect(**fields) -> Prospect:
    defaults = {
        "phone_number": "51987654321",
        "created_at": datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc),
        "name": "Ana",
        "company": "Transportes Sur",
        "fleet_size_raw": "50 camiones",
        "interest_score": 8,
        "prospect_type": ProspectType.HIGH_VALUE,
    }
    defaults.update(fields)
    return Prospect(**defaults)


class Recorder:
    """httpx handler that records requests and replies with a fixed response."""

    def __init__(self, status=200, body=None, error=None):
        self.status = status
        self.body = body
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.body is None:
            return httpx.Response(self.status, text="Accepted")
        return httpx.Response(self.status, json=self.body)

    @property
    def payloads(self):
        return [json.loads(r.content) for r in self.requests]


def sink_with(recorder, **kwargs) -> MakeWebhookSink:
    kwargs.setdefault("alert_url", ALERT_URL)
    return MakeWebhookSink(SHEETS_URL, transport=httpx.MockTransport(recorder), **kwargs)


def test_sheets_row_columns():
    prospect = make_prospect(
        appointment=AppointmentDetails(
            "19/10/2026", "10:00", "2026-10-19T10:00:00-05:00", None, "evt-1"
        )
    )
    now = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    row = format_prospect_for_sheets(prospect, ACTION_REGISTER, now=now)

    assert row["Date"] == "2026-10-18"
    assert row["Source"] == "WhatsApp"
    assert row["Nombre campaña"] == "Orgánico"
    assert row["Nombre Prospecto"] == "Ana"
    assert row["Telefono"] == "51987654321"
    assert row["Tamaño Flota"] == "50 camiones"
    assert row["Calificacion interes"] == 8
    assert (row["Cita (SI/NO)"], row["Fecha"], row["Hora"]) == ("SI", "19/10/2026", "10:00")
    assert row["Estatus"] == "Cita agendada"
    assert row["Timestamp"] == now.isoformat()
    assert row["Accion"] == ACTION_REGISTER


def test_sheets_row_for_anonymous_prospect():
    row = format_prospect_for_sheets(
        make_prospect(name=None, company=None, interest_score=None, prospect_type=None),
        ACTION_UPDATE,
    )

    assert row["Nombre Prospecto"] == "Desconocido"
    assert row["Empresa"] == ""
    assert row["Calificacion interes"] == ""
    assert row["Cita (SI/NO)"] == "NO"
    assert row["Estatus"] == "Sin calificar"


def test_status_priority():
    assert prospect_status(make_prospect(closed_by_operator=True)) == "Derivado a asesor"
    assert prospect_status(make_prospect(prospect_type=ProspectType.CURIOUS)) == "Curioso"


async def test_first_export_registers_and_keeps_returned_id():
    recorder = Recorder(body={"id": "row-42"})

    result = await sink_with(recorder).export(make_prospect())

    assert result.success is True
    assert result.export_id == "row-42"
    assert recorder.requests[0].url == SHEETS_URL
    assert recorder.payloads[0]["Accion"] == ACTION_REGISTER


async def test_export_without_id_in_reply_generates_one():
    result = await sink_with(Recorder()).export(make_prospect())

    assert result.success is True
    assert result.export_id.startswith("sheets-")


async def test_second_export_updates_the_same_row():
    recorder = Recorder(body={"id": "row-99"})

    result = await sink_with(recorder).export(make_prospect(export_id="row-42"))

    assert result.export_id == "row-42"
    assert recorder.payloads[0]["Accion"] == ACTION_UPDATE


async def test_export_server_error():
    result = await sink_with(Recorder(status=500)).export(make_prospect())

    assert result.success is False
    assert result.error == "HTTP 500"
    assert result.export_id is None


async def test_export_timeout():
    recorder = Recorder(error=httpx.ConnectTimeout("too slow"))

    result = await sink_with(recorder).export(make_prospect())

    assert result.success is False
    assert result.error == "timeout"


async def test_export_connection_error():
    recorder = Recorder(error=httpx.ConnectError("refused"))

    result = await sink_with(recorder).export(make_prospect())

    assert result.success is False


async def test_export_without_url_is_skipped():
    result = await MakeWebhookSink(None).export(make_prospect())

    assert result.success is False
    assert result.error == "webhook not configured"


async def test_high_interest_alert_payload():
    recorder = Recorder()

    assert await sink_with(recorder).notify_high_interest(make_prospect()) is True

    payload = recorder.payloads[0]
    assert recorder.requests[0].url == ALERT_URL
    assert payload["type"] == "high_interest"
    assert payload["phone"] == "51987654321"
    assert payload["prospect_type"] == "HIGH_VALUE"


async def test_alert_without_url_is_skipped():
    recorder = Recorder()

    assert await sink_with(recorder, alert_url=None).notify_high_interest(make_prospect()) is False
    assert recorder.requests == []


async def test_post_to_webhook_status_handling():
    ok = httpx.MockTransport(Recorder(status=202))
    bad = httpx.MockTransport(Recorder(status=404))

    assert await post_to_webhook(ALERT_URL, {"a": 1}, transport=ok) is True
    assert await post_to_webhook(ALERT_URL, {"a": 1}, transport=bad) is False
    assert await post_to_webhook(None, {"a": 1}) is False


def crm_with(recorder, api_key="crm-key") -> CRMClient:
    return CRMClient(CRM_URL + "/", api_key=api_key, transport=httpx.MockTransport(recorder))


def test_crm_lead_payload():
    prospect = make_prospect(
        emails=["ana@tsur.pe", "ventas@tsur.pe"],
        answers={"Tamaño de flota": "50 camiones"},
        appointment=AppointmentDetails(
            "19/10/2026", "10:00", "2026-10-19T10:00:00-05:00", "https://meet.google.com/x", "evt-1"
        ),
    )
    now = datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)

    lead = format_prospect_for_crm(prospect, now=now)

    assert lead["name"] == "Ana"
    assert lead["email"] == "ana@tsur.pe"
    assert lead["qualificationAnswers"] == {"Tamaño de flota": "50 camiones"}
    assert lead["prospectType"] == "HIGH_VALUE"
    assert (lead["appointmentDate"], lead["appointmentTime"]) == ("19/10/2026", "10:00")
    assert lead["appointmentLink"] == "https://meet.google.com/x"
    assert lead["source"] == "whatsapp_bot"
    assert lead["createdAt"] == "2026-10-18T10:00:00+00:00"

    anonymous = format_prospect_for_crm(make_prospect(name=None, emails=[]), now=now)
    assert anonymous["name"] == "Prospecto WhatsApp"
    assert anonymous["email"] is None
    assert anonymous["appointmentDate"] is None


async def test_crm_first_export_creates_lead():
    recorder = Recorder(status=201, body={"id": 7781})

    result = await crm_with(recorder).export(make_prospect())

    request = recorder.requests[0]
    assert result.success is True
    assert result.export_id == "7781"
    assert request.method == "POST"
    assert request.url == CRM_URL
    assert request.headers["Authorization"] == "Bearer crm-key"
    assert recorder.payloads[0]["phone"] == "51987654321"


async def test_crm_known_lead_is_updated_in_place():
    recorder = Recorder(status=204)

    result = await crm_with(recorder).export(make_prospect(crm_id="7781"))

    assert result.success is True
    assert result.export_id == "7781"
    assert recorder.requests[0].method == "PUT"
    assert recorder.requests[0].url == f"{CRM_URL}/7781"


async def test_crm_without_key_sends_no_authorization():
    recorder = Recorder(body={})

    result = await crm_with(recorder, api_key=None).export(make_prospect())

    assert result.success is True
    assert result.export_id is None
    assert "Authorization" not in recorder.requests[0].headers


async def test_crm_failures_are_reported():
    server_error = await crm_with(Recorder(status=500)).export(make_prospect())
    timeout = await crm_with(Recorder(error=httpx.ReadTimeout("too slow"))).export(make_prospect())
    refused = await crm_with(Recorder(error=httpx.ConnectError("refused"))).export(make_prospect())

    assert (server_error.success, server_error.error) == (False, "HTTP 500")
    assert (timeout.success, timeout.error) == (False, "timeout")
    assert refused.success is False
