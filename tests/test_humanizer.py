import asyncio

import pytest

from leadbot.engine.humanizer import Humanizer
from leadbot.errors import TransportError


class EventTransport:
    """Records every transport call in one ordered list."""

    def __init__(self, fail_send=False, fail_presence=False):
        self.events = []
        self.fail_send = fail_send
        self.fail_presence = fail_presence

    async def send_presence_update(self, jid, presence="composing"):
        if self.fail_presence:
            raise TransportError("presence down")
        self.events.append(("presence", presence))

    async def send_message(self, jid, text):
        if self.fail_send:
            raise TransportError("send down")
        self.events.append(("send", text))

    async def read_messages(self, keys):
        self.events.append(("read", keys))


@pytest.mark.parametrize(
    "length,expected",
    [(0, 1.0), (2, 1.0), (50, 1.5), (100, 3.0), (500, 3.0)],
)
def test_delay_is_proportional_and_bounded(length, expected):
    assert Humanizer().delay_for("x" * length) == pytest.approx(expected)


async def test_deliver_order_presence_send_read():
    transport = EventTransport()
    keys = [{"id": "MSG-1", "remoteJid": "51987654321@s.whatsapp.net", "fromMe": False}]

    sent = await Humanizer(min_ms=0, max_ms=0).deliver(
        transport, "51987654321@s.whatsapp.net", "Hola", read_keys=keys
    )

    assert sent is True
    assert transport.events == [("presence", "composing"), ("send", "Hola"), ("read", keys)]


async def test_send_failure_returns_false_and_skips_read():
    transport = EventTransport(fail_send=True)

    sent = await Humanizer(min_ms=0, max_ms=0).deliver(
        transport, "jid", "Hola", read_keys=[{"id": "MSG-1"}]
    )

    assert sent is False
    assert transport.events == [("presence", "composing")]


async def test_presence_failure_still_sends():
    transport = EventTransport(fail_presence=True)

    assert await Humanizer(min_ms=0, max_ms=0).deliver(transport, "jid", "Hola") is True
    assert transport.events == [("send", "Hola")]


async def test_cancel_cuts_pending_delay_short():
    humanizer = Humanizer(min_ms=60000, max_ms=60000)
    transport = EventTransport()

    task = asyncio.create_task(humanizer.deliver(transport, "jid", "Hola"))
    await asyncio.sleep(0)
    humanizer.cancel()

    assert await asyncio.wait_for(task, timeout=1) is True
    assert ("send", "Hola") in transport.events


async def test_cancelled_humanizer_skips_future_delays():
    humanizer = Humanizer(min_ms=60000, max_ms=60000)
    humanizer.cancel()

    await asyncio.wait_for(humanizer.pause(60), timeout=1)
