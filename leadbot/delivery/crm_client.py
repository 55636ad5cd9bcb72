"""CRM REST integration: closed prospects are created, then updated, as leads."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from leadbot.delivery.make_webhook import ExportResult
from leadbot.storage.models import Prospect

logger = logging.getLogger(__name__)

CRM_SOURCE = "whatsapp_bot"


def format_prospect_for_crm(
    prospect: Prospect, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Format a prospect as a CRM lead.

    Args:
        prospect: Prospect to export
        now: Export time, defaults to the current time

    Returns:
        JSON-safe lead payload
    """
    now = now or datetime.now().astimezone()
    appointment = prospect.appointment

    return {
        "name": prospect.name or "Prospecto WhatsApp",
        "phone": prospect.phone_number,
        "email": prospect.emails[0] if prospect.emails else None,
        "company": prospect.company,
        "role": prospect.role,
        "fleetSize": prospect.fleet_size_raw,
        "qualificationAnswers": dict(prospect.answers),
        "interestScore": prospect.interest_score,
        "prospectType": prospect.prospect_type.value if prospect.prospect_type else None,
        "appointmentDate": appointment.date if appointment else None,
        "appointmentTime": appointment.time if appointment else None,
        "appointmentLink": appointment.meet_link if appointment else None,
        "source": CRM_SOURCE,
        "campaignType": prospect.campaign_name,
        "createdAt": now.isoformat(),
    }


class CRMClient:
    """Pushes closed prospects to a CRM leads endpoint.

    The first export POSTs a new lead and keeps the id the CRM returns.
    Later exports PUT to ``{api_url}/{crm_id}``.
    """

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            api_url: Leads collection URL
            api_key: Bearer token, None sends no Authorization header
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def export(self, prospect: Prospect) -> ExportResult:
        """Create or update the prospect's lead; never raises."""
        payload = format_prospect_for_crm(prospect)
        crm_id = prospect.crm_id

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                if crm_id:
                    response = await client.put(
                        f"{self.api_url}/{crm_id}", json=payload, headers=self._headers()
                    )
                else:
                    response = await client.post(
                        self.api_url, json=payload, headers=self._headers()
                    )
        except httpx.TimeoutException:
            logger.error(f"CRM export timed out for {prospect.phone_number}")
            return ExportResult(success=False, error="timeout")
        except httpx.HTTPError as e:
            logger.error(f"CRM export failed for {prospect.phone_number}: {e}")
            return ExportResult(success=False, error=str(e))

        if response.status_code not in (200, 201, 202, 204):
            logger.error(f"CRM returned {response.status_code}: {response.text[:200]}")
            return ExportResult(success=False, error=f"HTTP {response.status_code}")

        if crm_id:
            logger.info(f"Updated CRM lead {crm_id} for {prospect.phone_number}")
            return ExportResult(success=True, export_id=crm_id)

        crm_id = _lead_id_from(response)
        if crm_id is None:
            logger.warning(f"CRM accepted {prospect.phone_number} but returned no lead id")
        else:
            logger.info(f"Created CRM lead {crm_id} for {prospect.phone_number}")
        return ExportResult(success=True, export_id=crm_id)


def _lead_id_from(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("id"):
        return str(body["id"])
    return None
