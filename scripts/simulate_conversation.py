"""Talk to the conversation engine from the console, no WhatsApp needed."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from leadbot.analysis.classifier import Classifier
from leadbot.analysis.llm_client import LLMClient
from leadbot.config import config
from leadbot.delivery.make_webhook import MakeWebhookSink
from leadbot.detection.locale import CountryTable
from leadbot.engine.dispatcher import ConversationEngine
from leadbot.engine.humanizer import Humanizer
from leadbot.errors import TransportError
from leadbot.storage.store import ProspectStore
from leadbot.transport.messages import InboundMessage, MessageContent, MessageKind

logging.basicConfig(
    level=logging.WARNING, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


class ConsoleTransport:
    """Prints outbound messages instead of sending them."""

    async def send_message(self, jid: str, text: str):
        print(f"\n🤖 {text}\n")

    async def send_presence_update(self, jid: str, presence: str = "composing"):
        print("   (escribiendo...)")

    async def read_messages(self, keys):
        pass

    async def download_media(self, media_url: str) -> bytes:
        raise TransportError("Voice notes are not supported in the console")


async def simulate(phone: str, use_llm: bool):
    llm = LLMClient(api_key=config.anthropic_api_key if use_llm else None)
    engine = ConversationEngine(
        store=ProspectStore(),
        classifier=Classifier(llm),
        transport=ConsoleTransport(),
        humanizer=Humanizer(min_ms=0, max_ms=0),
        sink=MakeWebhookSink(None),
        country_table=CountryTable.load(config.timezone_table_file, config.country_default),
        bot_name=config.bot_name,
        vendor_name=config.vendor_name,
    )

    print("=" * 60)
    print(f"Simulated chat with {phone} (Claude {'on' if llm.client else 'off'})")
    print("Type !operator / !bot as the operator with a leading '>', 'salir' to quit")
    print("=" * 60)

    jid = f"{phone}@s.whatsapp.net"
    while True:
        try:
            text = input("👤 ").strip()
        except EOFError:
            break
        if text.lower() in ("salir", "exit", "quit"):
            break
        if not text:
            continue

        from_me = text.startswith(">")
        if from_me:
            text = text[1:].strip()

        await engine.handle_inbound(
            InboundMessage(
                remote_jid=jid,
                from_me=from_me,
                content=MessageContent(MessageKind.TEXT, text=text),
            )
        )
        prospect = engine.store.get(phone)
        print(f"   [{prospect.conversation_state.value}]")

    await engine.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--phone", default="51987654321")
    parser.add_argument("--no-llm", action="store_true", help="Keyword heuristics only")
    args = parser.parse_args()

    asyncio.run(simulate(args.phone, use_llm=not args.no_llm))
