"""
Adaptateur du processeur de paiement (Stripe PaymentIntents).
- init_session: vérifie le PaymentIntent désigné par le client secret.
- present_session: confirme le paiement; si Stripe exige une authentification
  externe (3-D Secure), attend le retour via handle_redirect_callback.
- Toutes les méthodes retournent Ok/Err, aucune exception Stripe ne remonte.
"""
from typing import Any, Dict, Optional, Protocol
from urllib.parse import parse_qs, urlparse
import asyncio
import logging

import stripe
from starlette.concurrency import run_in_threadpool

from .models import Err, ErrorKind, Ok

logger = logging.getLogger(__name__)

# Statuts Stripe considérés comme un paiement abouti
PAID_STATUSES = {"succeeded", "processing"}
SHEET_CANCELED = "Paiement annulé"


class PaymentProcessor(Protocol):
    async def init_session(self, client_secret: str, display_name: str, return_url: str): ...

    async def present_session(self): ...

    async def handle_redirect_callback(self, url: str) -> bool: ...


def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - En absence de clé, les appels Stripe échoueront côté SDK (ex: No API key provided).
    """
    from eventpass.config import STRIPE_SECRET_KEY
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe


def intent_id_from_secret(client_secret: Optional[str]) -> Optional[str]:
    """'pi_123_secret_abc' -> 'pi_123' (None si le format est inattendu)."""
    if not client_secret or "_secret_" not in client_secret:
        return None
    intent_id = client_secret.split("_secret_", 1)[0]
    return intent_id if intent_id.startswith("pi_") else None


def _error_message(e: Exception) -> str:
    return getattr(e, "user_message", None) or str(e) or "Erreur du processeur de paiement"


class StripePaymentProcessor:
    """
    Une instance par achat; l'état (intent en cours, redirection attendue)
    est remis à zéro à chaque init_session.
    """

    def __init__(self, payment_method: Optional[str] = None) -> None:
        self.payment_method = payment_method
        self.client_secret: Optional[str] = None
        self.intent_id: Optional[str] = None
        self.display_name: str = ""
        self.return_url: str = ""
        self.next_action_url: Optional[str] = None
        self._redirect: Optional[asyncio.Future] = None

    async def init_session(self, client_secret: str, display_name: str, return_url: str):
        self.client_secret = None
        self.intent_id = None
        self.next_action_url = None
        self._redirect = None

        intent_id = intent_id_from_secret(client_secret)
        if not intent_id:
            return Err(ErrorKind.PROCESSOR, "Client secret invalide")
        try:
            require_stripe()
            intent = await run_in_threadpool(stripe.PaymentIntent.retrieve, intent_id)
        except stripe.StripeError as e:
            logger.exception("payments.processor.init_session failed intent_id=%s", intent_id)
            return Err(ErrorKind.PROCESSOR, _error_message(e))

        if intent.get("client_secret") and intent.get("client_secret") != client_secret:
            return Err(ErrorKind.PROCESSOR, "Client secret invalide")
        if intent.get("status") == "canceled":
            return Err(ErrorKind.PROCESSOR, "Paiement expiré, veuillez réessayer")

        self.client_secret = client_secret
        self.intent_id = intent_id
        self.display_name = display_name
        self.return_url = return_url
        logger.info("payments.processor.init_session ok intent_id=%s merchant=%s", intent_id, display_name)
        return Ok(intent_id)

    async def present_session(self):
        """
        Confirme le PaymentIntent avec le moyen de paiement fourni.
        - Pas de moyen de paiement: équivalent d'une fermeture de la feuille (CANCELED).
        - requires_action + redirect_to_url: attend handle_redirect_callback (ou cancel()).
        """
        if not self.intent_id:
            return Err(ErrorKind.PROCESSOR, "Session de paiement non initialisée")
        if not self.payment_method:
            return Err(ErrorKind.CANCELED, SHEET_CANCELED)
        try:
            require_stripe()
            intent = await run_in_threadpool(
                stripe.PaymentIntent.confirm,
                self.intent_id,
                payment_method=self.payment_method,
                return_url=self.return_url,
            )
        except stripe.CardError as e:
            logger.info("payments.processor.present_session declined intent_id=%s", self.intent_id)
            return Err(ErrorKind.DECLINED, _error_message(e))
        except stripe.StripeError as e:
            logger.exception("payments.processor.present_session failed intent_id=%s", self.intent_id)
            return Err(ErrorKind.PROCESSOR, _error_message(e))

        if intent.get("status") == "requires_action":
            redirect_url = ((intent.get("next_action") or {}).get("redirect_to_url") or {}).get("url")
            if not redirect_url:
                return Err(ErrorKind.PROCESSOR, "Authentification requise non supportée")
            self.next_action_url = redirect_url
            self._redirect = asyncio.get_running_loop().create_future()
            logger.info("payments.processor.present_session awaiting_redirect intent_id=%s", self.intent_id)
            completed = await self._redirect
            self.next_action_url = None
            if not completed:
                return Err(ErrorKind.CANCELED, SHEET_CANCELED)
            try:
                intent = await run_in_threadpool(stripe.PaymentIntent.retrieve, self.intent_id)
            except stripe.StripeError as e:
                logger.exception("payments.processor.present_session retrieve failed intent_id=%s", self.intent_id)
                return Err(ErrorKind.PROCESSOR, _error_message(e))

        return self._outcome(intent)

    async def handle_redirect_callback(self, url: str) -> bool:
        """
        Retour dans l'application après authentification externe.
        - Retourne True si l'URL concerne le PaymentIntent en attente (la feuille se résout).
        """
        if not self._redirect or self._redirect.done():
            return False
        params = parse_qs(urlparse(url).query)
        intent_id = (params.get("payment_intent") or [None])[0]
        secret = (params.get("payment_intent_client_secret") or [None])[0]
        if intent_id != self.intent_id and secret != self.client_secret:
            logger.warning("payments.processor.handle_redirect_callback ignored intent_id=%s", intent_id)
            return False
        self._redirect.set_result(True)
        return True

    def cancel(self) -> bool:
        """Fermeture de la feuille par l'utilisateur pendant une redirection en attente."""
        if self._redirect and not self._redirect.done():
            self._redirect.set_result(False)
            return True
        return False

    async def fetch_status(self, client_secret: str):
        """Statut Stripe d'un PaymentIntent (réconciliation): Ok('succeeded'|...)."""
        intent_id = intent_id_from_secret(client_secret)
        if not intent_id:
            return Err(ErrorKind.PROCESSOR, "Client secret invalide")
        try:
            require_stripe()
            intent = await run_in_threadpool(stripe.PaymentIntent.retrieve, intent_id)
        except stripe.StripeError as e:
            logger.exception("payments.processor.fetch_status failed intent_id=%s", intent_id)
            return Err(ErrorKind.PROCESSOR, _error_message(e))
        return Ok(intent.get("status") or "")

    @staticmethod
    def _outcome(intent: Dict[str, Any]):
        status = intent.get("status")
        if status in PAID_STATUSES:
            return Ok(status)
        if status == "requires_payment_method":
            last_error = intent.get("last_payment_error") or {}
            return Err(ErrorKind.DECLINED, last_error.get("message") or "Paiement refusé")
        if status == "canceled":
            return Err(ErrorKind.CANCELED, SHEET_CANCELED)
        return Err(ErrorKind.PROCESSOR, f"Statut de paiement inattendu: {status}")
