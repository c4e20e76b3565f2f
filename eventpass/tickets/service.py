from typing import Any, Dict, List
import logging

from fastapi import HTTPException

from eventpass.payments.backend_client import TicketingBackend
from eventpass.utils.qrcode_utils import qr_data_uri, ticket_qr_payload

logger = logging.getLogger(__name__)


async def get_order_tickets(backend: TicketingBackend, order_id: str) -> List[Dict[str, Any]]:
    """
    Billets d'une commande, chacun enrichi d'un QR code (data URI) quand il porte un jeton.
    - HTTPException(502) si le backend ne répond pas ou refuse la lecture.
    """
    if not (order_id or "").strip():
        raise HTTPException(status_code=400, detail="orderId manquant")
    res = await backend.tickets_by_order(order_id)
    if not res.ok:
        raise HTTPException(status_code=502, detail=res.message)

    tickets: List[Dict[str, Any]] = []
    for raw in res.value:
        payload = ticket_qr_payload(raw)
        tickets.append({**raw, "qr_code": qr_data_uri(payload) if payload else None})
    logger.info("tickets.service.get_order_tickets order_id=%s count=%s", order_id, len(tickets))
    return tickets
