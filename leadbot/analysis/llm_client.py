"""Claude completion and Whisper transcription client."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import anthropic
import openai

from leadbot.errors import LLMUnavailableError

logger = logging.getLogger(__name__)


class LLMClient:
    """Async wrapper over Claude (text) and Whisper (voice notes)."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "claude-sonnet-4-5-20250929",
        timeout: float = 30.0,
        openai_api_key: Optional[str] = None,
        transcription_model: str = "whisper-1",
    ):
        """Initialize clients.

        Args:
            api_key: Anthropic API key, None disables completions
            model: Claude model to use
            timeout: Seconds allowed per call
            openai_api_key: OpenAI API key, None disables transcription
            transcription_model: Whisper model name
        """
        self.client = anthropic.AsyncAnthropic(api_key=api_key) if api_key else None
        self.openai = openai.AsyncOpenAI(api_key=openai_api_key) if openai_api_key else None
        self.model = model
        self.timeout = timeout
        self.transcription_model = transcription_model

    async def complete(
        self, prompt: str, system: Optional[str] = None, max_tokens: int = 500
    ) -> str:
        """Get a text completion.

        Raises:
            LLMUnavailableError: Not configured, timed out or API error
        """
        if self.client is None:
            raise LLMUnavailableError("ANTHROPIC_API_KEY not configured")

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await asyncio.wait_for(
                self.client.messages.create(**kwargs), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise LLMUnavailableError(f"Claude timed out after {self.timeout}s") from e
        except anthropic.APIError as e:
            raise LLMUnavailableError(f"Claude API error: {e}") from e

        texts = [
            block.text
            for block in response.content or []
            if isinstance(getattr(block, "text", None), str)
        ]
        if not texts:
            raise LLMUnavailableError("Claude returned no text content")
        return "".join(texts)

    async def transcribe(self, audio_bytes: bytes, lang: str = "es") -> str:
        """Transcribe a voice note.

        Raises:
            LLMUnavailableError: Not configured, timed out or API error
        """
        if self.openai is None:
            raise LLMUnavailableError("OPENAI_API_KEY not configured")

        try:
            transcription = await asyncio.wait_for(
                self.openai.audio.transcriptions.create(
                    model=self.transcription_model,
                    file=("voice.ogg", audio_bytes),
                    language=lang,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMUnavailableError(f"Whisper timed out after {self.timeout}s") from e
        except openai.OpenAIError as e:
            raise LLMUnavailableError(f"Whisper API error: {e}") from e

        text = transcription.text.strip()
        logger.info(f"Transcribed voice note ({len(audio_bytes)} bytes): {text[:50]}")
        return text


def parse_json_reply(response_text: str) -> Dict[str, Any]:
    """Parse a JSON object from an LLM reply.

    Raises:
        ValueError: If no JSON object can be parsed
    """
    text = response_text.strip()

    # Strip markdown code fences if present
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1])

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ValueError(f"No JSON object in reply: {response_text[:200]}")
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in reply: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError("Reply JSON is not an object")
    return parsed
