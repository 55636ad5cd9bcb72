"""Configuration loader and validator for the WhatsApp lead qualifier."""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


class Config:
    """Configuration container loaded from environment variables."""

    def __init__(self):
        """Load configuration from .env file and environment."""
        # Load .env file from project root
        load_dotenv()

        # Bot persona
        self.bot_name: str = os.getenv("BOT_NAME", "LogiBot")
        self.vendor_name: str = os.getenv("VENDOR_NAME", "Roberto")
        self.vendor_email: str = os.getenv("VENDOR_EMAIL", "")

        # WhatsApp bridge
        self.bridge_url: Optional[str] = os.getenv("WHATSAPP_BRIDGE_URL")
        self.bridge_token: Optional[str] = os.getenv("WHATSAPP_BRIDGE_TOKEN") or None
        self.bridge_timeout: float = float(os.getenv("BRIDGE_TIMEOUT_SECONDS", "15"))
        self.webhook_token: Optional[str] = os.getenv("WEBHOOK_TOKEN") or None

        # Anthropic API (optional, heuristics only without it)
        self.anthropic_api_key: Optional[str] = os.getenv("ANTHROPIC_API_KEY") or None
        self.anthropic_model: str = os.getenv(
            "ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929"
        )

        # OpenAI Whisper (optional, voice notes get a please-write reply without it)
        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY") or None
        self.transcription_language: str = os.getenv("TRANSCRIPTION_LANGUAGE", "es")

        # Google Calendar (optional)
        calendar_credentials = os.getenv("GOOGLE_CALENDAR_CREDENTIALS")
        self.calendar_credentials_file: Optional[Path] = (
            Path(calendar_credentials) if calendar_credentials else None
        )
        self.calendar_id: str = os.getenv("GOOGLE_CALENDAR_ID", "primary")
        self.calendar_timezone: str = os.getenv("CALENDAR_TIMEZONE", "America/Lima")

        # Make.com webhooks (optional)
        self.export_webhook_url: Optional[str] = (
            os.getenv("MAKE_SHEETS_WEBHOOK_URL") or None
        )
        self.alert_webhook_url: Optional[str] = (
            os.getenv("MAKE_ALERT_WEBHOOK_URL") or None
        )

        # CRM leads API (optional)
        self.crm_api_url: Optional[str] = os.getenv("CRM_API_URL") or None
        self.crm_api_key: Optional[str] = os.getenv("CRM_API_KEY") or None

        # Locale
        self.country_default: str = os.getenv("DEFAULT_COUNTRY_CODE", "51")
        self.timezone_table_file: Path = Path(
            os.getenv("TIMEZONE_TABLE_FILE", "data/country_timezones.json")
        )

        # Storage
        self.database_path: Path = Path(
            os.getenv("DATABASE_PATH", "data/leadbot.db")
        )

        # Server
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")

        # Timeouts (seconds)
        self.llm_timeout: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
        self.calendar_timeout: float = float(
            os.getenv("CALENDAR_TIMEOUT_SECONDS", "15")
        )
        self.export_timeout: float = float(os.getenv("EXPORT_TIMEOUT_SECONDS", "10"))

        # Humanizer bounds (milliseconds)
        self.humanizer_ms_per_char: int = int(
            os.getenv("HUMANIZER_MS_PER_CHAR", "30")
        )
        self.humanizer_min_ms: int = int(os.getenv("HUMANIZER_MIN_MS", "1000"))
        self.humanizer_max_ms: int = int(os.getenv("HUMANIZER_MAX_MS", "3000"))

        self.inactive_hours: int = int(os.getenv("INACTIVE_HOURS", "24"))

    def _require(self, key: str) -> str:
        """Get required environment variable or raise error."""
        value = os.getenv(key)
        if not value:
            raise ValueError(
                f"Required environment variable {key} is not set. "
                f"Copy .env.example to .env and configure."
            )
        return value

    def validate(self):
        """Validate configuration needed to run the bot.

        Raises:
            ValueError: If a required setting is missing
        """
        self.bridge_url = self._require("WHATSAPP_BRIDGE_URL")

        # Ensure database directory exists
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    def describe_degraded_modes(self) -> List[str]:
        """List the optional integrations that are switched off."""
        modes = []
        if not self.anthropic_api_key:
            modes.append("LLM disabled: keyword heuristics only")
        if not self.openai_api_key:
            modes.append("Transcription disabled: voice notes get a please-write reply")
        if not self.calendar_credentials_file:
            modes.append("Calendar disabled: prospects are asked for a preferred time")
        if not self.export_webhook_url:
            modes.append("Sheets export disabled: closed prospects are only logged")
        if not self.crm_api_url:
            modes.append("CRM export disabled: leads stay in Sheets only")
        return modes


# Global config instance
config = Config()
