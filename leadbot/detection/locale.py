"""Phone normalization and country / timezone detection."""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

JID_SUFFIX = re.compile(r"@.*$")
DEVICE_SUFFIX = re.compile(r":\d+$")


def normalize_phone(raw: str, country_default: str = "51") -> str:
    """Normalize a phone number or JID to digits with country code.

    Args:
        raw: "51987654321@s.whatsapp.net", "+51 987 654 321", "987654321", ...
        country_default: Prefix for bare national numbers

    Returns:
        Digits only, e.g. "51987654321"; empty string if no digits
    """
    if not raw:
        return ""
    value = JID_SUFFIX.sub("", str(raw).strip())
    value = DEVICE_SUFFIX.sub("", value)
    digits = re.sub(r"\D", "", value)

    if digits.startswith("00"):
        digits = digits[2:]

    # National numbers (9-10 digits) carry no country code yet
    if 9 <= len(digits) <= 10 and not digits.startswith(country_default):
        digits = country_default + digits

    return digits


class CountryTable:
    """Country calling code to IANA timezone lookup, loaded from JSON."""

    def __init__(
        self,
        zones: Dict[str, str],
        country_default: str = "51",
        timezone_default: str = "America/Lima",
    ):
        self.zones = dict(zones)
        self.country_default = country_default
        self.timezone_default = zones.get(country_default, timezone_default)

    @classmethod
    def load(
        cls,
        path: Path,
        country_default: str = "51",
        timezone_default: str = "America/Lima",
    ) -> "CountryTable":
        """Load the table from a JSON object of code -> timezone.

        A missing or invalid file yields a table holding only the default.
        """
        try:
            with open(path, encoding="utf-8") as f:
                zones = json.load(f)
            logger.info(f"Loaded {len(zones)} country timezones from {path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Country timezone table unavailable ({e}), using default")
            zones = {country_default: timezone_default}
        return cls(zones, country_default, timezone_default)

    def detect(self, phone_number: str) -> Tuple[str, str]:
        """Detect (country_code, timezone) by longest calling-code prefix."""
        match: Optional[str] = None
        for code in self.zones:
            if phone_number.startswith(code) and (match is None or len(code) > len(match)):
                match = code
        if match is None:
            return self.country_default, self.timezone_default
        return match, self.zones[match]
