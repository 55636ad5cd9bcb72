"""Human-like reply cadence: typing presence, bounded delay, read receipt."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from leadbot.errors import TransportError

logger = logging.getLogger(__name__)


class Humanizer:
    """Delays replies in proportion to their length before sending them."""

    def __init__(self, ms_per_char: int = 30, min_ms: int = 1000, max_ms: int = 3000):
        self.ms_per_char = ms_per_char
        self.min_ms = min_ms
        self.max_ms = max_ms
        self._cancelled = asyncio.Event()

    def delay_for(self, text: str) -> float:
        """Delay in seconds: min(max(len * ms_per_char, min_ms), max_ms)."""
        ms = min(max(len(text) * self.ms_per_char, self.min_ms), self.max_ms)
        return ms / 1000.0

    def cancel(self):
        """Skip current and future delays (used on shutdown)."""
        self._cancelled.set()

    async def pause(self, seconds: float):
        if seconds <= 0 or self._cancelled.is_set():
            return
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def deliver(
        self,
        transport,
        jid: str,
        text: str,
        read_keys: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        """Send a reply like a person would.

        Args:
            transport: Object with send_presence_update, send_message, read_messages
            jid: Chat id
            text: Reply text
            read_keys: Inbound message keys to mark as read after sending

        Returns:
            True if the message was sent
        """
        try:
            await transport.send_presence_update(jid, "composing")
        except TransportError as e:
            logger.warning(f"Presence update failed for {jid}: {e}")

        await self.pause(self.delay_for(text))

        try:
            await transport.send_message(jid, text)
        except TransportError as e:
            logger.error(f"Failed to send reply to {jid}: {e}")
            return False

        if read_keys:
            try:
                await transport.read_messages(read_keys)
            except TransportError as e:
                logger.warning(f"Read receipt failed for {jid}: {e}")

        return True
