"""Make.com webhook integration: Sheets export and high-interest alerts."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from leadbot.delivery.sheets_writer import (
    ACTION_REGISTER,
    ACTION_UPDATE,
    format_prospect_for_sheets,
)
from leadbot.storage.models import Prospect

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    success: bool
    export_id: Optional[str] = None
    error: Optional[str] = None


async def _post(
    url: str,
    data: Dict[str, Any],
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        return await client.post(
            url, json=data, headers={"Content-Type": "application/json"}
        )


async def post_to_webhook(
    url: Optional[str],
    data: Dict[str, Any],
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """Post data to Make.com webhook.

    Args:
        url: Webhook URL
        data: JSON payload
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests)

    Returns:
        True if successful, False otherwise
    """
    if not url:
        logger.warning("Webhook URL not configured, skipping")
        return False

    try:
        response = await _post(url, data, timeout, transport)
    except Exception as e:
        logger.error(f"Error posting to webhook: {e}")
        return False

    if response.status_code in (200, 201, 202):
        logger.info(f"Successfully posted to webhook: {url[:50]}...")
        return True

    logger.error(f"Webhook returned {response.status_code}: {response.text[:200]}")
    return False


def _export_id_from(response: httpx.Response) -> str:
    """Id returned by the scenario, or a generated one when it only says 'Accepted'."""
    try:
        body = response.json()
        if isinstance(body, dict) and body.get("id"):
            return str(body["id"])
    except ValueError:
        pass
    return f"sheets-{uuid.uuid4().hex[:12]}"


class MakeWebhookSink:
    """Exports closed prospects and posts alerts through Make.com webhooks."""

    def __init__(
        self,
        sheets_url: Optional[str],
        alert_url: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.sheets_url = sheets_url
        self.alert_url = alert_url
        self.timeout = timeout
        self.transport = transport

    async def export(self, prospect: Prospect) -> ExportResult:
        """Send a prospect row to Sheets; never raises.

        The first export registers the prospect, later ones update it.
        """
        action = ACTION_UPDATE if prospect.export_id else ACTION_REGISTER

        if not self.sheets_url:
            logger.warning(
                f"Sheets webhook not configured, prospect {prospect.phone_number} not exported"
            )
            return ExportResult(success=False, error="webhook not configured")

        row = format_prospect_for_sheets(prospect, action)
        try:
            response = await _post(self.sheets_url, row, self.timeout, self.transport)
        except httpx.TimeoutException:
            logger.error(f"Sheets export timed out for {prospect.phone_number}")
            return ExportResult(success=False, error="timeout")
        except httpx.HTTPError as e:
            logger.error(f"Sheets export failed for {prospect.phone_number}: {e}")
            return ExportResult(success=False, error=str(e))

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Sheets webhook returned {response.status_code}: {response.text[:200]}"
            )
            return ExportResult(success=False, error=f"HTTP {response.status_code}")

        export_id = prospect.export_id or _export_id_from(response)
        logger.info(f"Exported prospect {prospect.phone_number} to sheets ({action})")
        return ExportResult(success=True, export_id=export_id)

    async def notify_high_interest(self, prospect: Prospect) -> bool:
        """Post a high-interest alert for the sales team."""
        if not self.alert_url:
            return False

        payload = {
            "type": "high_interest",
            "phone": prospect.phone_number,
            "name": prospect.display_name,
            "company": prospect.company,
            "fleet_size": prospect.fleet_size_raw,
            "role": prospect.role,
            "interest_score": prospect.interest_score,
            "prospect_type": prospect.prospect_type.value if prospect.prospect_type else None,
            "source": prospect.source,
        }
        return await post_to_webhook(self.alert_url, payload, self.timeout, self.transport)
