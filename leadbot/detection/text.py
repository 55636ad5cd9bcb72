"""Small text helpers shared by classifier and flows."""

import re
import unicodedata
from typing import List, Optional

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
INTEGER_PATTERN = re.compile(r"\d+")


def extract_emails(text: str) -> List[str]:
    """Extract unique email addresses, lower-cased, in order of appearance."""
    seen: List[str] = []
    for match in EMAIL_PATTERN.findall(text or ""):
        email = match.lower().rstrip(".")
        if email not in seen:
            seen.append(email)
    return seen


def first_integer(text: str) -> Optional[int]:
    """First integer in the text, ignoring thousands separators."""
    cleaned = re.sub(r"(?<=\d)[.,](?=\d{3}\b)", "", text or "")
    match = INTEGER_PATTERN.search(cleaned)
    return int(match.group(0)) if match else None


def fold(text: str) -> str:
    """Lower-case and strip accents, for keyword matching."""
    normalized = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in normalized if not unicodedata.combining(c)).lower()


def truncate(text: str, limit: int = 50) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit] + "..."
