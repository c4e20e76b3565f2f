"""
Aiguillage des retours de redirection (deep link) vers la tentative de paiement en attente.
"""
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import parse_qs, urlencode, urlparse
import logging

logger = logging.getLogger(__name__)

PURCHASE_PARAM = "purchase_id"

Handler = Callable[[str], Awaitable[bool]]


def build_return_url(base_url: str, purchase_id: str) -> str:
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}{urlencode({PURCHASE_PARAM: purchase_id})}"


def purchase_id_from_url(url: str) -> Optional[str]:
    return (parse_qs(urlparse(url).query).get(PURCHASE_PARAM) or [None])[0]


class RedirectHandlers:
    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}

    def register(self, purchase_id: str, handler: Handler) -> None:
        self._handlers[purchase_id] = handler

    def unregister(self, purchase_id: str) -> None:
        self._handlers.pop(purchase_id, None)

    def is_registered(self, purchase_id: str) -> bool:
        return purchase_id in self._handlers

    async def dispatch(self, url: str) -> bool:
        """Transmet l'URL au handler de l'achat concerné; False si personne n'attend."""
        purchase_id = purchase_id_from_url(url)
        handler = self._handlers.get(purchase_id) if purchase_id else None
        if handler is None:
            logger.info("payments.redirects.dispatch unhandled purchase_id=%s", purchase_id)
            return False
        handled = await handler(url)
        logger.info("payments.redirects.dispatch purchase_id=%s handled=%s", purchase_id, handled)
        return handled
