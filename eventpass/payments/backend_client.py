"""
Client du backend de billetterie (httpx, JSON).
- Chaque méthode retourne Ok(...) ou Err(kind, message); aucune exception réseau ne remonte.
- Les appels sont strictement séquentiels côté orchestrateur: pas d'état partagé ici.
"""
from typing import Any, Dict, List, Optional
import logging
import httpx

from eventpass.config import (
    API_BASE_URL,
    REGISTER_PATH,
    PAYMENT_STATUS_PATH,
    TICKET_EMAIL_PATH,
    TICKETS_BY_ORDER_PATH,
)
from eventpass.purchases.models import PurchaseOrder
from eventpass.session.store import SessionStore, TOKEN_KEY
from .models import (
    Err,
    ErrorKind,
    Ok,
    RegistrationReceipt,
    StatusUpdateReceipt,
    TicketEmailReceipt,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Une erreur est survenue, veuillez réessayer"
SESSION_EXPIRED_MESSAGE = "Session expirée, veuillez vous reconnecter"


def _body(res: httpx.Response) -> Dict[str, Any]:
    try:
        data = res.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _first_order_id(body: Dict[str, Any]) -> Optional[str]:
    data = body.get("data")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        order_id = data[0].get("orderId")
        return str(order_id) if order_id else None
    return None


def _short(secret: Optional[str]) -> str:
    return (secret or "")[:10]


class TicketingBackend:
    def __init__(self, client: httpx.AsyncClient, store: Optional[SessionStore] = None, base_url: Optional[str] = None) -> None:
        self.client = client
        self.store = store
        self.base_url = (base_url or API_BASE_URL).rstrip("/")

    async def _auth_headers(self) -> Dict[str, str]:
        token = await self.store.get(TOKEN_KEY) if self.store else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def register(self, order: PurchaseOrder):
        """
        POST inscription: crée les participants et, si payant, le PaymentIntent.
        - Succès: Ok(RegistrationReceipt(client_secret, order_id))
        - 401 (HTTP ou champ status): Err(SESSION_EXPIRED)
        - Refus métier: Err(BUSINESS, message backend)
        """
        try:
            res = await self.client.post(
                f"{self.base_url}{REGISTER_PATH}",
                json=order.to_payload(),
                headers=await self._auth_headers(),
            )
        except httpx.HTTPError as e:
            logger.exception("payments.backend.register failed event_id=%s", order.event_id)
            return Err(ErrorKind.TRANSPORT, str(e) or GENERIC_ERROR)

        body = _body(res)
        if body.get("isOk"):
            receipt = RegistrationReceipt(client_secret=body.get("clientSecret"), order_id=_first_order_id(body))
            logger.info(
                "payments.backend.register ok event_id=%s secret=%s order_id=%s",
                order.event_id, _short(receipt.client_secret), receipt.order_id,
            )
            return Ok(receipt)

        status = body.get("status") or res.status_code
        message = body.get("message") or ""
        logger.info("payments.backend.register rejected status=%s message=%s", status, message)
        if str(status) == "401" or res.status_code == 401:
            return Err(ErrorKind.SESSION_EXPIRED, message or SESSION_EXPIRED_MESSAGE)
        return Err(ErrorKind.BUSINESS, message or GENERIC_ERROR)

    async def update_payment_status(self, client_secret: str, status: str, is_paid: bool):
        """PATCH statut de paiement: Ok(StatusUpdateReceipt(order_id)) si isOk."""
        try:
            res = await self.client.patch(
                f"{self.base_url}{PAYMENT_STATUS_PATH}",
                json={"clientSecret": client_secret, "status": status, "isPaid": is_paid},
                headers=await self._auth_headers(),
            )
        except httpx.HTTPError as e:
            logger.exception("payments.backend.update_payment_status failed secret=%s", _short(client_secret))
            return Err(ErrorKind.TRANSPORT, str(e) or GENERIC_ERROR)

        body = _body(res)
        if res.is_success and body.get("isOk"):
            order_id = body.get("orderId")
            logger.info(
                "payments.backend.update_payment_status ok secret=%s is_paid=%s order_id=%s",
                _short(client_secret), is_paid, order_id,
            )
            return Ok(StatusUpdateReceipt(order_id=str(order_id) if order_id else None))
        logger.warning(
            "payments.backend.update_payment_status rejected secret=%s http=%s",
            _short(client_secret), res.status_code,
        )
        return Err(ErrorKind.REPORTING, body.get("message") or GENERIC_ERROR)

    async def send_ticket_email(self, order_id: str):
        """POST envoi des billets par email pour une commande."""
        try:
            res = await self.client.post(
                f"{self.base_url}{TICKET_EMAIL_PATH}",
                json={"orderId": order_id},
                headers=await self._auth_headers(),
            )
        except httpx.HTTPError as e:
            logger.exception("payments.backend.send_ticket_email failed order_id=%s", order_id)
            return Err(ErrorKind.TRANSPORT, str(e) or GENERIC_ERROR)

        body = _body(res)
        if body.get("isOk") or str(body.get("status")) == "200":
            return Ok(TicketEmailReceipt(delivered=True, message=body.get("message") or ""))
        logger.warning("payments.backend.send_ticket_email rejected order_id=%s http=%s", order_id, res.status_code)
        return Err(ErrorKind.BUSINESS, body.get("message") or "Erreur lors de l'envoi des billets")

    async def tickets_by_order(self, order_id: str):
        """POST lecture des billets d'une commande: Ok(list[dict])."""
        try:
            res = await self.client.post(
                f"{self.base_url}{TICKETS_BY_ORDER_PATH}",
                json={"orderId": order_id},
                headers=await self._auth_headers(),
            )
        except httpx.HTTPError as e:
            logger.exception("payments.backend.tickets_by_order failed order_id=%s", order_id)
            return Err(ErrorKind.TRANSPORT, str(e) or GENERIC_ERROR)

        if not res.is_success:
            return Err(ErrorKind.BUSINESS, _body(res).get("message") or GENERIC_ERROR)
        data = _body(res).get("data")
        tickets: List[Dict[str, Any]] = [t for t in data if isinstance(t, dict)] if isinstance(data, list) else []
        return Ok(tickets)
