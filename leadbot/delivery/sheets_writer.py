"""Google Sheets row formatting (rows are appended by a Make.com scenario)."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from leadbot.storage.models import Prospect, ProspectType

logger = logging.getLogger(__name__)

ACTION_REGISTER = "registro_prospecto"
ACTION_UPDATE = "actualizacion_prospecto"

STATUS_BY_TYPE = {
    ProspectType.HIGH_VALUE: "Alto valor",
    ProspectType.INFLUENCER: "Influenciador",
    ProspectType.CURIOUS: "Curioso",
}


def prospect_status(prospect: Prospect) -> str:
    if prospect.appointment:
        return "Cita agendada"
    if prospect.closed_by_operator:
        return "Derivado a asesor"
    if prospect.prospect_type:
        return STATUS_BY_TYPE[prospect.prospect_type]
    return "Sin calificar"


def format_prospect_for_sheets(
    prospect: Prospect, action: str, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Format a prospect as one Sheets row.

    Args:
        prospect: Prospect to export
        action: ACTION_REGISTER on first export, ACTION_UPDATE afterwards
        now: Export time, defaults to the current time

    Returns:
        Dict keyed by sheet column name
    """
    now = now or datetime.now().astimezone()
    appointment = prospect.appointment

    row = {
        "Date": prospect.created_at.strftime("%Y-%m-%d"),
        "Source": prospect.source or "WhatsApp",
        "Nombre campaña": prospect.campaign_name or "Orgánico",
        "Nombre Prospecto": prospect.display_name,
        "Empresa": prospect.company or "",
        "Telefono": prospect.phone_number,
        "Tamaño Flota": prospect.fleet_size_raw or "",
        "Calificacion interes": (
            prospect.interest_score if prospect.interest_score is not None else ""
        ),
        "Cita (SI/NO)": "SI" if appointment else "NO",
        "Fecha": appointment.date if appointment else "",
        "Hora": appointment.time if appointment else "",
        "Estatus": prospect_status(prospect),
        "Timestamp": now.isoformat(),
        "Accion": action,
    }

    logger.info(f"Formatted prospect {prospect.phone_number} for sheets ({action})")
    return row
