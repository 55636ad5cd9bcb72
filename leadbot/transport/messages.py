"""Inbound WhatsApp message shapes and text extraction."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

AUDIO_TYPES = ("audio", "voice", "ptt")


class MessageKind(Enum):
    TEXT = "text"
    BUTTON = "button"
    LIST = "list"
    AUDIO = "audio"
    NONE = "none"


@dataclass
class MessageContent:
    """Tagged content of an inbound message."""

    kind: MessageKind
    text: Optional[str] = None
    media_url: Optional[str] = None
    mimetype: Optional[str] = None


@dataclass
class InboundMessage:
    remote_jid: str
    from_me: bool
    content: MessageContent
    message_id: Optional[str] = None
    push_name: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def key(self) -> Dict[str, Any]:
        """Message key as the bridge expects it for read receipts."""
        return {"remoteJid": self.remote_jid, "id": self.message_id, "fromMe": self.from_me}

    @property
    def is_direct_chat(self) -> bool:
        return self.remote_jid.endswith("@s.whatsapp.net") or "@" not in self.remote_jid


def extract_content(
    message_content: Optional[Dict[str, Any]],
    message_type: Optional[str] = None,
    media_url: Optional[str] = None,
) -> MessageContent:
    """Extract text or audio reference from a raw message; never raises.

    Args:
        message_content: Baileys-style message object
        message_type: Bridge-provided type hint ("audio", "ptt", ...)
        media_url: Bridge-provided download URL for media

    Returns:
        MessageContent, kind NONE when nothing usable is present
    """
    content = message_content if isinstance(message_content, dict) else {}

    # Ephemeral and view-once messages wrap the real message
    for wrapper in ("ephemeralMessage", "viewOnceMessage", "viewOnceMessageV2"):
        inner = content.get(wrapper)
        if isinstance(inner, dict) and isinstance(inner.get("message"), dict):
            content = inner["message"]

    if isinstance(content.get("conversation"), str) and content["conversation"].strip():
        return MessageContent(MessageKind.TEXT, text=content["conversation"])

    extended = content.get("extendedTextMessage")
    if isinstance(extended, dict) and isinstance(extended.get("text"), str):
        return MessageContent(MessageKind.TEXT, text=extended["text"])

    button = content.get("buttonsResponseMessage")
    if isinstance(button, dict) and button.get("selectedDisplayText"):
        return MessageContent(MessageKind.BUTTON, text=str(button["selectedDisplayText"]))

    list_reply = content.get("listResponseMessage")
    if isinstance(list_reply, dict) and list_reply.get("title"):
        return MessageContent(MessageKind.LIST, text=str(list_reply["title"]))

    audio = content.get("audioMessage")
    if isinstance(audio, dict) or (message_type or "").lower() in AUDIO_TYPES:
        audio = audio if isinstance(audio, dict) else {}
        url = media_url or audio.get("url")
        if url:
            return MessageContent(
                MessageKind.AUDIO, media_url=str(url), mimetype=audio.get("mimetype")
            )

    return MessageContent(MessageKind.NONE)


def parse_inbound(payload: Dict[str, Any]) -> Optional[InboundMessage]:
    """Build an InboundMessage from a bridge event.

    Accepts both the Baileys shape ({"key": {...}, "message": {...}}) and the
    flat shape ({"remoteJid", "fromMe", "messageContent"}). Returns None when
    the payload has no chat id.
    """
    key = payload.get("key") if isinstance(payload.get("key"), dict) else {}
    remote_jid = key.get("remoteJid") or payload.get("remoteJid")
    if not remote_jid:
        return None

    from_me = key.get("fromMe", payload.get("fromMe", False)) is True
    message_content = payload.get("messageContent", payload.get("message"))

    return InboundMessage(
        remote_jid=str(remote_jid),
        from_me=from_me,
        content=extract_content(
            message_content,
            message_type=payload.get("messageType") or payload.get("type"),
            media_url=payload.get("mediaUrl"),
        ),
        message_id=key.get("id") or payload.get("id"),
        push_name=payload.get("pushName"),
        raw=payload,
    )
