from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header

from eventpass.payments.backend_client import TicketingBackend
from eventpass.purchases.service import PurchaseRegistry
from eventpass.purchases.views import bearer_token, get_registry
from eventpass.session.store import MemorySessionStore, TOKEN_KEY
from .service import get_order_tickets

router = APIRouter(prefix="/api/v1/tickets", tags=["Tickets API"])


@router.get("/orders/{order_id}")
async def order_tickets(
    order_id: str,
    registry: PurchaseRegistry = Depends(get_registry),
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """Billets d'une commande avec QR codes (data URI PNG)."""
    token = bearer_token(authorization)
    store = MemorySessionStore({TOKEN_KEY: token} if token else None)
    tickets = await get_order_tickets(TicketingBackend(registry.http_client, store), order_id)
    return {"order_id": order_id, "tickets": tickets}
