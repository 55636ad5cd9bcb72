"""Conversation engine: per-phone state machine over the flow modules."""

import asyncio
import dataclasses
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from leadbot.analysis.classifier import Classifier
from leadbot.analysis.llm_client import LLMClient
from leadbot.detection.locale import CountryTable, normalize_phone
from leadbot.detection.marketing import detect_marketing_source
from leadbot.detection.text import extract_emails, truncate
from leadbot.engine import audit
from leadbot.engine.humanizer import Humanizer
from leadbot.engine.locks import KeyedLock
from leadbot.errors import LeadBotError
from leadbot.flows import appointment, closing, greeting, inquiry, interest, qualification
from leadbot.flows.base import Calendar, FlowContext, FlowResult
from leadbot.storage.models import (
    ConversationState,
    OperatorTakeover,
    Prospect,
    QualificationStep,
    utcnow,
)
from leadbot.storage.store import ProspectStore
from leadbot.transport.messages import InboundMessage, MessageKind

logger = logging.getLogger(__name__)

OPERATOR_COMMAND = "!operator"
BOT_COMMAND = "!bot"

APOLOGY_REPLY = (
    "Lo siento, estamos experimentando problemas técnicos. "
    "Por favor, intenta más tarde."
)
AUDIO_FALLBACK_REPLY = (
    "Disculpa, no pude escuchar tu nota de voz. "
    "¿Podrías escribirme tu mensaje, por favor?"
)

FlowHandler = Callable[[FlowContext, Prospect, str], Awaitable[FlowResult]]

FLOW_HANDLERS: Dict[ConversationState, FlowHandler] = {
    ConversationState.INITIAL: greeting.handle_initial,
    ConversationState.GREETING: greeting.handle,
    ConversationState.QUALIFICATION: qualification.handle,
    ConversationState.INTEREST_VALIDATION: interest.handle,
    ConversationState.APPOINTMENT_SCHEDULING: appointment.handle,
    ConversationState.CLOSING: closing.handle,
    ConversationState.GENERAL_INQUIRY: inquiry.handle,
}

# Session fields cleared when a closed conversation is reopened; profile is kept
REOPEN_RESET: Dict[str, Any] = {
    "conversation_state": ConversationState.INITIAL,
    "qualification_step": QualificationStep.FLEET_SIZE,
    "appointment": None,
    "offered_slots": [],
    "appointment_offered": False,
    "closed_by_operator": False,
    "greeting_attempts": 0,
    "awaiting_company": False,
}


class ConversationEngine:
    """Routes inbound messages through the conversation state machine.

    Messages for the same phone are processed one at a time, in arrival
    order. Messages for different phones run concurrently.
    """

    def __init__(
        self,
        store: ProspectStore,
        classifier: Classifier,
        transport,
        humanizer: Humanizer,
        sink,
        calendar: Optional[Calendar] = None,
        crm=None,
        country_table: Optional[CountryTable] = None,
        llm: Optional[LLMClient] = None,
        bot_name: str = "LogiBot",
        vendor_name: str = "Roberto",
        country_default: str = "51",
        calendar_timezone: str = "America/Lima",
        transcription_language: str = "es",
    ):
        """Initialize engine.

        Args:
            store: Prospect store
            classifier: Reply classifier
            transport: WhatsApp bridge (send_message, send_presence_update,
                read_messages, download_media)
            humanizer: Reply cadence shaper
            sink: Export sink (export, notify_high_interest)
            calendar: Calendar for appointments, None if not configured
            crm: CRM lead exporter (export), None if not configured
            country_table: Calling code to timezone table
            llm: LLM client used for voice note transcription
            bot_name: Bot persona name
            vendor_name: Sales advisor name used in replies
            country_default: Calling code for national numbers
            calendar_timezone: Business timezone for appointments
            transcription_language: Language hint for voice notes
        """
        self.store = store
        self.transport = transport
        self.humanizer = humanizer
        self.sink = sink
        self.crm = crm
        self.llm = llm
        self.country_default = country_default
        self.country_table = country_table or CountryTable({}, country_default)
        self.transcription_language = transcription_language
        self.ctx = FlowContext(
            classifier=classifier,
            calendar=calendar,
            bot_name=bot_name,
            vendor_name=vendor_name,
            calendar_timezone=calendar_timezone,
        )

        self.locks = KeyedLock()
        self._accepting = True
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def handle_inbound(self, message: InboundMessage) -> Optional[str]:
        """Process one inbound message.

        Args:
            message: Parsed bridge message

        Returns:
            Reply sent to the prospect, or None if nothing was sent
        """
        if not self._accepting:
            logger.warning(f"Shutting down, dropping message from {message.remote_jid}")
            return None
        if not message.is_direct_chat:
            logger.debug(f"Ignoring non-direct chat {message.remote_jid}")
            return None

        phone_number = normalize_phone(message.remote_jid, self.country_default)
        if not phone_number:
            logger.warning(f"Could not normalize chat id {message.remote_jid}")
            return None

        async with self._tracked():
            async with self.locks.hold(phone_number):
                try:
                    return await self._dispatch(phone_number, message)
                except Exception as e:
                    logger.error(
                        f"Unhandled error for {phone_number}: {e}", exc_info=True
                    )
                    await self.humanizer.deliver(
                        self.transport, message.remote_jid, APOLOGY_REPLY
                    )
                    return APOLOGY_REPLY

    async def take_over(self, phone_number: str) -> bool:
        """Hand a conversation to a human operator."""
        phone_number = normalize_phone(phone_number, self.country_default)
        async with self._tracked():
            async with self.locks.hold(phone_number):
                return self._take_over(phone_number)

    async def release(self, phone_number: str) -> bool:
        """Return a conversation from the operator to the bot."""
        phone_number = normalize_phone(phone_number, self.country_default)
        async with self._tracked():
            async with self.locks.hold(phone_number):
                return self._release(phone_number)

    async def force_close(self, phone_number: str) -> Optional[str]:
        """Close a conversation on an operator's request.

        Exports the prospect and sends the hand-off farewell.

        Returns:
            Farewell sent, or None if the conversation was already closed
        """
        phone_number = normalize_phone(phone_number, self.country_default)
        async with self._tracked():
            async with self.locks.hold(phone_number):
                prospect = self.store.get(phone_number)
                if prospect.conversation_state == ConversationState.CLOSED:
                    logger.info(f"{phone_number} is already closed")
                    return None
                result = closing.force_close(self.ctx, prospect)
                return await self._commit(prospect, prospect, {}, result, prospect.jid)

    async def shutdown(self, timeout: float = 30.0):
        """Stop accepting messages and wait for in-flight dispatches."""
        self._accepting = False
        self.humanizer.cancel()

        if self._in_flight:
            logger.info(f"Waiting for {self._in_flight} in-flight dispatches")
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Shutdown timed out with {self._in_flight} dispatches in flight"
            )

    @asynccontextmanager
    async def _tracked(self) -> AsyncIterator[None]:
        self._in_flight += 1
        self._idle.clear()
        try:
            yield
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def _dispatch(self, phone_number: str, message: InboundMessage) -> Optional[str]:
        content = message.content
        if content.kind == MessageKind.NONE:
            logger.debug(f"No usable content from {phone_number}")
            if not message.from_me:
                self._touch(phone_number)
            return None

        if content.kind == MessageKind.AUDIO:
            if message.from_me:
                return None
            text = await self._transcribe(phone_number, content.media_url)
            if not text:
                self.store.update(phone_number, {})
                await self.humanizer.deliver(
                    self.transport, message.remote_jid, AUDIO_FALLBACK_REPLY, [message.key]
                )
                return AUDIO_FALLBACK_REPLY
        else:
            text = (content.text or "").strip()
            if not text:
                if not message.from_me:
                    self._touch(phone_number)
                return None

        if message.from_me:
            command = text.strip().lower()
            if command == OPERATOR_COMMAND:
                changed = self._take_over(phone_number)
            elif command == BOT_COMMAND:
                changed = self._release(phone_number)
            else:
                return None
            # Acknowledged in the operator log only, the prospect sees nothing
            logger.info(
                f"Operator command {command} acknowledged for {phone_number} "
                f"({'applied' if changed else 'no change'})"
            )
            return None

        stored = self.store.get(phone_number)
        logger.info(
            f"Message from {phone_number} [{stored.conversation_state.value}]: "
            f"{truncate(text)}"
        )

        if text.strip().lower() in (OPERATOR_COMMAND, BOT_COMMAND):
            logger.warning(f"Ignoring supervisory command from prospect {phone_number}")
            self._touch(phone_number)
            return None

        if stored.conversation_state == ConversationState.OPERATOR_TAKEOVER:
            self.store.update(phone_number, {})
            logger.info(f"{phone_number} is with an operator, not replying")
            return None

        prospect = stored
        patch: Dict[str, Any] = {}

        if prospect.conversation_state == ConversationState.CLOSED:
            logger.info(f"Reopening closed conversation with {phone_number}")
            patch.update(REOPEN_RESET)
            prospect = dataclasses.replace(prospect, **REOPEN_RESET)

        if (
            prospect.conversation_state == ConversationState.INITIAL
            and prospect.last_interaction is None
        ):
            marketing = detect_marketing_source(text)
            country_code, timezone = self.country_table.detect(phone_number)
            patch.update(
                {
                    "source": marketing.source,
                    "campaign_name": marketing.campaign_name,
                    "country_code": country_code,
                    "timezone": timezone,
                }
            )
            logger.info(
                f"New prospect {phone_number}: source {marketing.source} / "
                f"{marketing.campaign_name}, country +{country_code} ({timezone})"
            )

        new_emails = [e for e in extract_emails(text) if e not in prospect.emails]
        if new_emails:
            patch["emails"] = prospect.emails + new_emails

        if patch:
            prospect = dataclasses.replace(prospect, **patch)

        handler = FLOW_HANDLERS[prospect.conversation_state]
        try:
            result = await handler(self.ctx, prospect, text)
        except Exception as e:
            logger.error(
                f"Flow {prospect.conversation_state.value} failed for "
                f"{phone_number}: {e}",
                exc_info=True,
            )
            self.store.update(phone_number, {})
            await self.humanizer.deliver(
                self.transport, message.remote_jid, APOLOGY_REPLY, [message.key]
            )
            return APOLOGY_REPLY

        return await self._commit(
            stored, prospect, patch, result, message.remote_jid, [message.key]
        )

    async def _transcribe(self, phone_number: str, media_url: Optional[str]) -> Optional[str]:
        """Transcribe a voice note; None when it cannot be done."""
        if self.llm is None or not media_url:
            logger.warning(f"Voice note from {phone_number} but no transcription available")
            return None

        try:
            audio = await self.transport.download_media(media_url)
            text = await self.llm.transcribe(audio, self.transcription_language)
        except LeadBotError as e:
            logger.warning(f"Could not transcribe voice note from {phone_number}: {e}")
            return None

        return text.strip() or None

    def _touch(self, phone_number: str):
        """Record activity on a message that gets no reply.

        Numbers never seen before are left alone so their first real
        message still goes through source detection.
        """
        if self.store.get(phone_number).last_interaction is not None:
            self.store.update(phone_number, {})

    def _take_over(self, phone_number: str) -> bool:
        prospect = self.store.get(phone_number)
        if prospect.conversation_state == ConversationState.OPERATOR_TAKEOVER:
            logger.info(f"{phone_number} is already with an operator")
            return False

        self.store.update(
            phone_number,
            {
                "conversation_state": ConversationState.OPERATOR_TAKEOVER,
                "operator_takeover": OperatorTakeover(
                    taken_at=utcnow(), previous_state=prospect.conversation_state
                ),
            },
        )
        logger.info(
            f"Operator took over {phone_number} "
            f"(was {prospect.conversation_state.value})"
        )
        return True

    def _release(self, phone_number: str) -> bool:
        prospect = self.store.get(phone_number)
        if prospect.conversation_state != ConversationState.OPERATOR_TAKEOVER:
            logger.info(f"{phone_number} is not with an operator, nothing to release")
            return False

        previous = (
            prospect.operator_takeover.previous_state
            if prospect.operator_takeover
            else ConversationState.INITIAL
        )
        self.store.update(
            phone_number,
            {"conversation_state": previous, "operator_takeover": None},
        )
        logger.info(f"Bot resumed {phone_number} in {previous.value}")
        return True

    async def _commit(
        self,
        stored: Prospect,
        prospect: Prospect,
        patch: Dict[str, Any],
        result: FlowResult,
        jid: str,
        read_keys: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[str]:
        """Persist a flow result, then notify, export and reply."""
        phone_number = prospect.phone_number
        patch.update(result.changes)
        patch["conversation_state"] = result.next_state

        entering_closed = (
            result.next_state == ConversationState.CLOSED
            and prospect.conversation_state != ConversationState.CLOSED
        )
        if entering_closed:
            patch["closures"] = prospect.closures + 1

        updated = self.store.update(phone_number, patch)
        audit.log_changes(phone_number, stored.to_document(), updated.to_document())

        if stored.conversation_state != updated.conversation_state:
            logger.info(
                f"{phone_number}: {stored.conversation_state.value} -> "
                f"{updated.conversation_state.value}"
            )

        if result.notify_high_interest:
            await self._notify_high_interest(updated)

        if entering_closed:
            await self._export(updated)

        if not result.reply:
            return None
        await self.humanizer.deliver(self.transport, jid, result.reply, read_keys)
        return result.reply

    async def _notify_high_interest(self, prospect: Prospect):
        logger.info("=" * 60)
        logger.info(
            f"HIGH INTEREST: {prospect.display_name} "
            f"({prospect.company or 'sin empresa'}) +{prospect.phone_number}"
        )
        logger.info(
            f"  Flota: {prospect.fleet_size_raw or '-'} | Cargo: {prospect.role or '-'} | "
            f"Interés: {prospect.interest_score}/10"
        )
        logger.info("=" * 60)
        await self.sink.notify_high_interest(prospect)

    async def _export(self, prospect: Prospect):
        """Export to Sheets and, when configured, the CRM.

        Each destination fails on its own; ids that changed are stored.
        """
        ids: Dict[str, Any] = {}
        destinations = [("Sheets", self.sink, "export_id")]
        if self.crm is not None:
            destinations.append(("CRM", self.crm, "crm_id"))

        for label, exporter, id_field in destinations:
            result = await exporter.export(prospect)
            if not result.success:
                logger.error(
                    f"{label} export failed for {prospect.phone_number} "
                    f"(closure {prospect.closures}): {result.error}"
                )
                continue
            if result.export_id and result.export_id != getattr(prospect, id_field):
                ids[id_field] = result.export_id

        if ids:
            self.store.update(prospect.phone_number, ids)
