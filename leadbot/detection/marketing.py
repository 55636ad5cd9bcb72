"""Marketing source detection from a prospect's first message."""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import unquote

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "WhatsApp"
DEFAULT_CAMPAIGN = "Orgánico"


@dataclass
class MarketingInfo:
    source: str = DEFAULT_SOURCE
    campaign_name: str = DEFAULT_CAMPAIGN


# (keywords, source, campaign); first match wins
SOURCE_KEYWORDS: List[Tuple[Tuple[str, ...], str, str]] = [
    (("facebook", "fb.me", "anuncio de facebook"), "Facebook Ads", DEFAULT_CAMPAIGN),
    (("instagram", "ig.me"), "Instagram", "Campaña Instagram"),
    (("google", "búsqueda", "busqueda"), "Google Ads", "Campaña Google Search"),
    (("linkedin",), "LinkedIn", "Campaña LinkedIn"),
    (("tiktok",), "TikTok", "Campaña TikTok"),
    (("youtube", "video"), "YouTube", "Campaña YouTube"),
    (("correo", "email", "newsletter"), "Email Marketing", "Newsletter"),
    (("webinar", "seminario"), "Webinar", "Webinar Seguridad Vial"),
    (("feria", "evento", "stand"), "Feria Transporte", "Evento Presencial"),
    (("recomend", "referid"), "Referido", "Programa de Referidos"),
]

FACEBOOK_CAMPAIGNS: List[Tuple[Tuple[str, ...], str]] = [
    (("smart band", "xiaomi"), "Campaña Smart Band Xiaomi"),
    (("fatiga", "somnolencia"), "Campaña Fatiga Conductores"),
    (("oferta",), "Campaña Ofertas Facebook"),
]

URL_SOURCES: List[Tuple[Tuple[str, ...], str]] = [
    (("fb.me", "facebook.com"), "Facebook Ads"),
    (("ig.me", "instagram.com"), "Instagram"),
    (("linkedin.com",), "LinkedIn"),
    (("tiktok.com",), "TikTok"),
    (("youtube.com", "youtu.be"), "YouTube"),
]

URL_PATTERN = re.compile(r"https?://\S+", re.IGNORECASE)


def detect_marketing_source(message: Optional[str]) -> MarketingInfo:
    """Detect marketing source and campaign from a prospect's first message.

    Args:
        message: First inbound text

    Returns:
        MarketingInfo, WhatsApp / Orgánico when nothing matches
    """
    result = MarketingInfo()
    if not message:
        return result

    text = message.lower()

    for keywords, source, campaign in SOURCE_KEYWORDS:
        if any(k in text for k in keywords):
            result.source = source
            result.campaign_name = campaign
            break

    if result.source == "Facebook Ads":
        for keywords, campaign in FACEBOOK_CAMPAIGNS:
            if any(k in text for k in keywords):
                result.campaign_name = campaign
                break

    url_match = URL_PATTERN.search(message)
    if url_match:
        _apply_url(url_match.group(0), result)

    logger.info(f"Marketing source detected: {result.source} - {result.campaign_name}")
    return result


def _apply_url(url: str, result: MarketingInfo):
    utm_source = re.search(r"utm_source=([^&\s]+)", url)
    if utm_source:
        result.source = unquote(utm_source.group(1))

    utm_campaign = re.search(r"utm_campaign=([^&\s]+)", url)
    if utm_campaign:
        result.campaign_name = unquote(utm_campaign.group(1))

    lowered = url.lower()
    for hosts, source in URL_SOURCES:
        if any(h in lowered for h in hosts):
            result.source = source
            break
