from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from leadbot.analysis.classifier import Classifier
from leadbot.delivery.make_webhook import ExportResult
from leadbot.engine.dispatcher import ConversationEngine
from leadbot.engine.humanizer import Humanizer
from leadbot.errors import CalendarUnavailableError, LLMUnavailableError, TransportError
from leadbot.storage.database import Database
from leadbot.storage.models import AppointmentDetails
from leadbot.storage.store import ProspectStore
from leadbot.transport.messages import InboundMessage, MessageContent, MessageKind

PHONE = "51987654321"
JID = f"{PHONE}@s.whatsapp.net"

SLOTS = [
    {"date": "19/10/2026", "time": "10:00", "iso": "2026-10-19T10:00:00-05:00"},
    {"date": "19/10/2026", "time": "10:30", "iso": "2026-10-19T10:30:00-05:00"},
    {"date": "20/10/2026", "time": "09:00", "iso": "2026-10-20T09:00:00-05:00"},
]


class FakeLLM:
    """LLM double: a responder maps each prompt to a reply, None means offline."""

    def __init__(
        self,
        responder: Optional[Callable[[str], Optional[str]]] = None,
        transcript: Optional[str] = None,
    ):
        self.responder = responder or (lambda prompt: None)
        self.transcript = transcript
        self.prompts: List[str] = []

    async def complete(self, prompt, system=None, max_tokens=500):
        self.prompts.append(prompt)
        reply = self.responder(prompt)
        if reply is None:
            raise LLMUnavailableError("fake LLM offline")
        return reply

    async def transcribe(self, audio_bytes, lang="es"):
        if self.transcript is None:
            raise LLMUnavailableError("fake transcription offline")
        return self.transcript


class FakeCalendar:
    def __init__(self, slots=None, fail_list=False, fail_create=False):
        self.slots = SLOTS if slots is None else slots
        self.fail_list = fail_list
        self.fail_create = fail_create
        self.events = []

    async def list_available(self):
        if self.fail_list:
            raise CalendarUnavailableError("calendar down")
        return list(self.slots)

    async def create_event(self, prospect, slot):
        if self.fail_create:
            raise CalendarUnavailableError("calendar down")
        self.events.append((prospect.phone_number, slot))
        return AppointmentDetails(
            date=slot["date"],
            time=slot["time"],
            iso=slot["iso"],
            meet_link="https://meet.google.com/abc-defg-hij",
            calendar_event_id=f"evt-{len(self.events)}",
        )


class RecordingTransport:
    def __init__(self):
        self.sent = []
        self.presence = []
        self.read = []
        self.media = b"OggS fake audio"
        self.fail_send = False
        self.reconnects = 0

    async def send_message(self, jid, text):
        if self.fail_send:
            raise TransportError("bridge down")
        self.sent.append((jid, text))

    async def send_presence_update(self, jid, presence="composing"):
        self.presence.append((jid, presence))

    async def read_messages(self, keys):
        self.read.extend(keys)

    async def download_media(self, media_url):
        return self.media

    async def reconnect(self):
        self.reconnects += 1

    @property
    def texts(self) -> List[str]:
        return [text for _, text in self.sent]


class RecordingSink:
    def __init__(self, success: bool = True):
        self.success = success
        self.exports = []
        self.alerts = []

    async def export(self, prospect):
        self.exports.append(prospect)
        if not self.success:
            return ExportResult(success=False, error="HTTP 500")
        return ExportResult(
            success=True, export_id=prospect.export_id or f"sheets-{len(self.exports)}"
        )

    async def notify_high_interest(self, prospect):
        self.alerts.append(prospect)
        return True


class RecordingCRM:
    def __init__(self, success: bool = True):
        self.success = success
        self.exports = []

    async def export(self, prospect):
        self.exports.append(prospect)
        if not self.success:
            return ExportResult(success=False, error="timeout")
        return ExportResult(success=True, export_id=prospect.crm_id or "lead-1")


def text_message(text: str, phone: str = PHONE, from_me: bool = False) -> InboundMessage:
    return InboundMessage(
        remote_jid=f"{phone}@s.whatsapp.net",
        from_me=from_me,
        content=MessageContent(MessageKind.TEXT, text=text),
        message_id=f"MSG-{abs(hash((phone, text)))}",
    )


@pytest.fixture
def store():
    prospect_store = ProspectStore(Database(Path(":memory:")))
    prospect_store.open()
    yield prospect_store
    prospect_store.close()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def humanizer():
    return Humanizer(ms_per_char=0, min_ms=0, max_ms=0)


@pytest.fixture
def make_engine(store, transport, calendar, sink, llm, humanizer):
    """Build an engine from the default doubles, overriding any of them."""

    def _make(**overrides) -> ConversationEngine:
        fake_llm = overrides.pop("llm", llm)
        options: Dict = {
            "store": store,
            "classifier": Classifier(fake_llm),
            "transport": transport,
            "humanizer": humanizer,
            "sink": sink,
            "calendar": calendar,
            "llm": fake_llm,
            "vendor_name": "Roberto",
        }
        options.update(overrides)
        return ConversationEngine(**options)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()
