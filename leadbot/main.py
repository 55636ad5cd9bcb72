"""Entry point: wires the conversation engine to the webhook server."""

import asyncio
import logging
import sys
from datetime import datetime

import uvicorn

from leadbot.analysis.classifier import Classifier
from leadbot.analysis.llm_client import LLMClient
from leadbot.config import config
from leadbot.delivery.crm_client import CRMClient
from leadbot.delivery.make_webhook import MakeWebhookSink
from leadbot.detection.locale import CountryTable
from leadbot.engine.dispatcher import ConversationEngine
from leadbot.engine.humanizer import Humanizer
from leadbot.scheduling.google_calendar import GoogleCalendar
from leadbot.storage.database import Database
from leadbot.storage.store import ProspectStore
from leadbot.transport.bridge import BridgeTransport
from leadbot.transport.webhook import create_app

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_calendar():
    """Google Calendar client, or None when not configured or unusable."""
    if not config.calendar_credentials_file:
        return None
    try:
        return GoogleCalendar.from_service_account_file(
            config.calendar_credentials_file,
            calendar_id=config.calendar_id,
            timezone=config.calendar_timezone,
            timeout=config.calendar_timeout,
            organizer_email=config.vendor_email or None,
        )
    except (OSError, ValueError) as e:
        logger.warning(f"Calendar disabled, could not load credentials: {e}")
        return None


def build_crm():
    """CRM lead exporter, or None when CRM_API_URL is not set."""
    if not config.crm_api_url:
        return None
    return CRMClient(
        config.crm_api_url, api_key=config.crm_api_key, timeout=config.export_timeout
    )


async def run_bot() -> int:
    """Run the bot until shutdown.

    Returns:
        Process exit code: 0 on clean shutdown, 1 on startup failure
    """
    logger.info("=" * 60)
    logger.info("Starting WhatsApp Lead Qualifier")
    logger.info("=" * 60)

    try:
        config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    for mode in config.describe_degraded_modes():
        logger.warning(mode)

    start_time = datetime.now()

    # Initialize components
    store = ProspectStore(Database(config.database_path))
    store.open()

    llm = LLMClient(
        api_key=config.anthropic_api_key,
        model=config.anthropic_model,
        timeout=config.llm_timeout,
        openai_api_key=config.openai_api_key,
    )
    transport = BridgeTransport(
        config.bridge_url, token=config.bridge_token, timeout=config.bridge_timeout
    )
    engine = ConversationEngine(
        store=store,
        classifier=Classifier(llm),
        transport=transport,
        humanizer=Humanizer(
            ms_per_char=config.humanizer_ms_per_char,
            min_ms=config.humanizer_min_ms,
            max_ms=config.humanizer_max_ms,
        ),
        sink=MakeWebhookSink(
            config.export_webhook_url,
            alert_url=config.alert_webhook_url,
            timeout=config.export_timeout,
        ),
        calendar=build_calendar(),
        crm=build_crm(),
        country_table=CountryTable.load(
            config.timezone_table_file, country_default=config.country_default
        ),
        llm=llm,
        bot_name=config.bot_name,
        vendor_name=config.vendor_name,
        country_default=config.country_default,
        calendar_timezone=config.calendar_timezone,
        transcription_language=config.transcription_language,
    )

    server: uvicorn.Server

    def on_logged_out():
        server.should_exit = True

    app = create_app(engine, transport, on_logged_out, config.webhook_token)
    server = uvicorn.Server(
        uvicorn.Config(
            app, host=config.host, port=config.port, log_level=config.log_level.lower()
        )
    )

    logger.info(f"Listening for bridge events on {config.host}:{config.port}")
    try:
        await server.serve()
    finally:
        logger.info("Shutting down, waiting for in-flight conversations")
        await engine.shutdown()
        store.close()

    elapsed = (datetime.now() - start_time).total_seconds()
    logger.info("=" * 60)
    logger.info("WhatsApp Lead Qualifier stopped")
    logger.info(f"Uptime: {elapsed:.1f} seconds")
    logger.info("=" * 60)
    return 0


def main():
    sys.exit(asyncio.run(run_bot()))


if __name__ == "__main__":
    main()
