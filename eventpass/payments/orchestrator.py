"""
Orchestration d'une tentative de paiement.

NotStarted -> IntentCreated -> SheetPresented -> Confirmed
                                       \\-> Failed (relançable) | SessionExpired (reconnexion)

- Une seule tentative en vol par achat (drapeau busy).
- Inscription, mise à jour de statut et envoi des billets: strictement séquentiels.
- Chaque tentative repart de NotStarted avec un nouveau client secret; pas de relance automatique.
"""
from typing import Optional
import logging

from eventpass.config import (
    BACKEND_SESSION_EXPIRED_DELAY,
    MERCHANT_DEFAULT_NAME,
    SESSION_EXPIRED_REDIRECT_DELAY,
    STRIPE_RETURN_URL,
    SUCCESS_REDIRECT_DELAY,
)
from eventpass.errors import PaymentInProgressError
from eventpass.purchases.models import PurchaseOrder
from eventpass.utils.notices import AUTH, TICKETS, Navigator, NoticeBoard
from .models import Err, ErrorKind, PaymentSession, PaymentStatus
from .recovery import PendingPaymentLedger
from .redirects import RedirectHandlers, build_return_url

logger = logging.getLogger(__name__)

SESSION_EXPIRED_TITLE = "Session expirée, veuillez vous reconnecter"
PAYMENT_ERROR_TITLE = "Erreur de paiement"
REGISTRATION_ERROR_TITLE = "Erreur d'inscription"
INTENT_MISSING = "Impossible de créer le paiement"
REPORTING_FAILURE = (
    "Votre paiement a été reçu mais sa confirmation a échoué. "
    "Contactez le support avec la référence indiquée."
)


class PaymentOrchestrator:
    def __init__(
        self,
        *,
        access,
        backend,
        processor,
        notices: Optional[NoticeBoard] = None,
        navigator: Optional[Navigator] = None,
        ledger: Optional[PendingPaymentLedger] = None,
        redirects: Optional[RedirectHandlers] = None,
        purchase_id: Optional[str] = None,
        return_url: str = STRIPE_RETURN_URL,
    ) -> None:
        self.access = access
        self.backend = backend
        self.processor = processor
        self.notices = notices or NoticeBoard()
        self.navigator = navigator or Navigator()
        self.ledger = ledger
        self.redirects = redirects
        self.purchase_id = purchase_id
        self.return_url = build_return_url(return_url, purchase_id) if purchase_id else return_url
        self.session = PaymentSession()
        self.busy = False

    async def pay(self, order: PurchaseOrder, event_name: Optional[str] = None) -> PaymentSession:
        """
        Exécute une tentative complète pour `order`.
        - PaymentInProgressError si une tentative est déjà en cours (aucun effet).
        - Retourne la PaymentSession de cette tentative (état terminal).
        """
        if self.busy:
            logger.warning("payments.orchestrator.pay rejected busy purchase_id=%s", self.purchase_id)
            raise PaymentInProgressError()
        self.busy = True
        self.session = session = PaymentSession()
        if self.redirects and self.purchase_id:
            self.redirects.register(self.purchase_id, self.processor.handle_redirect_callback)
        try:
            await self._run(session, order, event_name)
        except Exception as e:
            logger.exception("payments.orchestrator.pay unexpected error attempt_id=%s", session.attempt_id)
            self._fail(session, PAYMENT_ERROR_TITLE, str(e))
        finally:
            if self.redirects and self.purchase_id:
                self.redirects.unregister(self.purchase_id)
            self.busy = False
        logger.info(
            "payments.orchestrator.pay done attempt_id=%s status=%s order_id=%s",
            session.attempt_id, session.status.value, session.order_id,
        )
        return session

    async def _run(self, session: PaymentSession, order: PurchaseOrder, event_name: Optional[str]) -> None:
        # 1. Garde: session utilisateur valide
        try:
            valid = await self.access.validate()
        except Exception:
            logger.exception("payments.orchestrator.access_check failed")
            self._fail(session, "Erreur de connexion", "Une erreur est survenue, veuillez réessayer")
            return
        if not valid:
            self._expire(session, SESSION_EXPIRED_REDIRECT_DELAY)
            return

        # 2. Inscription + création du PaymentIntent
        registered = await self.backend.register(order)
        if not registered.ok:
            if registered.kind is ErrorKind.SESSION_EXPIRED:
                self._expire(session, BACKEND_SESSION_EXPIRED_DELAY, registered.message)
            else:
                self._fail(session, REGISTRATION_ERROR_TITLE, registered.message)
            return
        receipt = registered.value

        if receipt.is_free and order.is_free:
            await self._complete_free(session, receipt.order_id)
            return
        if receipt.is_free:
            self._fail(session, INTENT_MISSING, "")
            return

        session.client_secret = receipt.client_secret
        session.order_id = receipt.order_id
        session.status = PaymentStatus.INTENT_CREATED
        if self.ledger:
            await self.ledger.record_intent(receipt.client_secret, receipt.order_id)

        # 3. Initialisation de la feuille de paiement
        display_name = (event_name or "").strip() or MERCHANT_DEFAULT_NAME
        initialized = await self._guard(self.processor.init_session(receipt.client_secret, display_name, self.return_url))
        if not initialized.ok:
            await self._report_failure(session, initialized.message)
            self._fail(session, "Initialisation du paiement impossible", initialized.message)
            return
        session.status = PaymentStatus.SHEET_PRESENTED

        # 4. Présentation: succès, annulation ou erreur du processeur
        presented = await self._guard(self.processor.present_session())
        if not presented.ok:
            await self._report_failure(session, presented.message)
            self._fail(session, PAYMENT_ERROR_TITLE, presented.message)
            return
        session.status = PaymentStatus.CONFIRMED
        self.notices.success("Paiement réussi !")
        await self._ledger_after_charge("mark_charged", receipt.client_secret)

        # 5. Accusé backend puis envoi des billets
        await self._after_payment(session)

    async def _after_payment(self, session: PaymentSession) -> None:
        updated = await self.backend.update_payment_status(session.client_secret, "success", True)
        if not updated.ok:
            self._unacknowledged(session, updated.message)
            return

        await self._ledger_after_charge("resolve", session.client_secret)
        session.order_id = updated.value.order_id or session.order_id
        if session.order_id:
            await self._send_tickets(session.order_id)
        self.navigator.navigate(TICKETS, SUCCESS_REDIRECT_DELAY)

    async def _complete_free(self, session: PaymentSession, order_id: Optional[str]) -> None:
        session.free = True
        session.order_id = order_id
        session.status = PaymentStatus.CONFIRMED
        self.notices.success("Inscription réussie !")
        if order_id:
            await self._send_tickets(order_id)
        self.navigator.navigate(TICKETS, SUCCESS_REDIRECT_DELAY)

    async def _send_tickets(self, order_id: str) -> None:
        sent = await self.backend.send_ticket_email(order_id)
        if sent.ok:
            self.notices.success(sent.value.message or "Billets envoyés par email")
        else:
            self.notices.error("Erreur lors de l'envoi des billets", sent.message)

    async def _report_failure(self, session: PaymentSession, message: str) -> None:
        """Statut 'non payé' côté backend, au mieux (un échec est seulement journalisé)."""
        reported = await self.backend.update_payment_status(session.client_secret, message or "failed", False)
        if not reported.ok:
            logger.warning("payments.orchestrator.report_failure unacknowledged attempt_id=%s", session.attempt_id)
        elif self.ledger:
            await self.ledger.resolve(session.client_secret)

    async def _guard(self, call):
        try:
            return await call
        except Exception as e:
            logger.exception("payments.orchestrator.processor_call failed")
            return Err(ErrorKind.PROCESSOR, str(e) or "Erreur du processeur de paiement")

    async def _ledger_after_charge(self, action: str, client_secret: str) -> None:
        """Paiement acquis: une erreur du registre de reprise est journalisée, jamais propagée."""
        if not self.ledger:
            return
        try:
            await getattr(self.ledger, action)(client_secret)
        except Exception:
            logger.exception("payments.orchestrator.ledger %s failed secret=%s", action, (client_secret or "")[:10])

    def _unacknowledged(self, session: PaymentSession, message: str) -> None:
        # Argent débité, enregistrement backend inconnu: on conserve la référence
        session.reconciliation_required = True
        session.error = message
        logger.error(
            "payments.orchestrator.unacknowledged attempt_id=%s order_id=%s",
            session.attempt_id, session.order_id,
        )
        self.notices.error(PAYMENT_ERROR_TITLE, REPORTING_FAILURE)

    def _fail(self, session: PaymentSession, title: str, message: str) -> None:
        if session.status is PaymentStatus.CONFIRMED:
            # Jamais de retour en arrière après un débit
            self._unacknowledged(session, message or title)
            return
        session.status = PaymentStatus.FAILED
        session.error = message or title
        self.notices.error(title, message)

    def _expire(self, session: PaymentSession, delay: float, message: str = "") -> None:
        session.status = PaymentStatus.SESSION_EXPIRED
        session.error = message or SESSION_EXPIRED_TITLE
        self.notices.error(SESSION_EXPIRED_TITLE, message if message != SESSION_EXPIRED_TITLE else "")
        self.navigator.navigate(AUTH, delay)
