from pathlib import Path

import pytest

from leadbot.detection.locale import CountryTable, normalize_phone
from leadbot.detection.marketing import detect_marketing_source
from leadbot.detection.text import extract_emails, first_integer, fold, truncate

TIMEZONE_TABLE = Path(__file__).parent.parent / "data" / "country_timezones.json"


@pytest.mark.parametrize(
    "message,source,campaign",
    [
        ("hola", "WhatsApp", "Orgánico"),
        ("", "WhatsApp", "Orgánico"),
        ("Vi su anuncio en Facebook", "Facebook Ads", "Orgánico"),
        ("Vi la oferta en facebook", "Facebook Ads", "Campaña Ofertas Facebook"),
        ("Facebook: lo de la smart band Xiaomi", "Facebook Ads", "Campaña Smart Band Xiaomi"),
        ("Los vi en Instagram", "Instagram", "Campaña Instagram"),
        ("Vi su video en YouTube", "YouTube", "Campaña YouTube"),
        ("Me recomendó un amigo", "Referido", "Programa de Referidos"),
        ("Los conocí en la feria", "Feria Transporte", "Evento Presencial"),
    ],
)
def test_marketing_keywords(message, source, campaign):
    info = detect_marketing_source(message)
    assert (info.source, info.campaign_name) == (source, campaign)


def test_marketing_utm_parameters_override_keywords():
    info = detect_marketing_source(
        "Hola! https://logifit.pe/demo?utm_source=newsletter_oct&utm_campaign=Fatiga%20Q4"
    )
    assert info.source == "newsletter_oct"
    assert info.campaign_name == "Fatiga Q4"


def test_marketing_url_host_wins():
    info = detect_marketing_source("mira https://www.linkedin.com/posts/logifit-123")
    assert info.source == "LinkedIn"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("51987654321@s.whatsapp.net", "51987654321"),
        ("51987654321:12@s.whatsapp.net", "51987654321"),
        ("+51 987 654 321", "51987654321"),
        ("987654321", "51987654321"),
        ("0051987654321", "51987654321"),
        ("5215512345678", "5215512345678"),
        ("", ""),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_phone_uses_configured_country():
    assert normalize_phone("3001234567", country_default="57") == "573001234567"


def test_country_table_longest_prefix():
    table = CountryTable.load(TIMEZONE_TABLE)

    assert table.detect("51987654321") == ("51", "America/Lima")
    assert table.detect("50312345678") == ("503", "America/El_Salvador")
    assert table.detect("573001234567") == ("57", "America/Bogota")
    assert table.detect("4915112345678") == ("51", "America/Lima")


def test_country_table_missing_file_uses_default(tmp_path):
    table = CountryTable.load(tmp_path / "missing.json", country_default="51")

    assert table.zones == {"51": "America/Lima"}
    assert table.detect("34612345678") == ("51", "America/Lima")


def test_country_table_invalid_json_uses_default(tmp_path):
    broken = tmp_path / "zones.json"
    broken.write_text("{not json", encoding="utf-8")

    assert CountryTable.load(broken).detect("57300") == ("51", "America/Lima")


def test_text_helpers():
    assert extract_emails("Escríbeme a Ana@TSur.pe o ana@tsur.pe.") == ["ana@tsur.pe"]
    assert extract_emails(None) == []
    assert first_integer("1,500 camiones") == 1500
    assert first_integer("sin números") is None
    assert fold("Logística ÑANDÚ") == "logistica nandu"
    assert truncate("a" * 60) == "a" * 50 + "..."
    assert truncate("corto") == "corto"
