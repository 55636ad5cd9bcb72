"""Exceptions raised by the external adapters."""


class LeadBotError(Exception):
    """Base class for lead qualifier errors."""


class LLMUnavailableError(LeadBotError):
    """LLM is not configured, timed out or failed."""


class CalendarUnavailableError(LeadBotError):
    """Calendar is not configured, timed out or rejected the request."""


class TransportError(LeadBotError):
    """WhatsApp bridge request failed."""
