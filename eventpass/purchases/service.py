"""
Cas d'usage 'purchases': conteneur d'état explicite par achat et registre des achats en cours.
"""
from typing import Any, Callable, Dict, Optional
from uuid import uuid4
import asyncio
import logging
import time

import httpx

from eventpass.config import PURCHASE_TTL_SECONDS
from eventpass.coupons.engine import CouponEngine
from eventpass.coupons.models import Coupon
from eventpass.errors import PaymentInProgressError, PurchaseLockedError, PurchaseNotFoundError
from eventpass.payments.backend_client import TicketingBackend
from eventpass.payments.models import PaymentSession, PaymentStatus
from eventpass.payments.orchestrator import PaymentOrchestrator
from eventpass.payments.processor import StripePaymentProcessor
from eventpass.payments.recovery import PendingPaymentLedger
from eventpass.payments.redirects import RedirectHandlers
from eventpass.registrations.builder import RegistrationBuilder
from eventpass.registrations.models import EventDetail
from eventpass.session.access import AccessValidator
from eventpass.session.store import MemorySessionStore, RedisSessionStore, SessionStore, seed_tokens
from eventpass.utils.money import from_cents
from eventpass.utils.notices import Navigator, NoticeBoard
from .models import PurchaseOrder

logger = logging.getLogger(__name__)


class PurchaseContext:
    """
    État d'un achat, injecté explicitement dans ses collaborateurs
    (pas d'état global partagé entre écrans/utilisateurs).
    """

    def __init__(
        self,
        *,
        purchase_id: str,
        event: EventDetail,
        store: SessionStore,
        user_id: Optional[str],
        builder: RegistrationBuilder,
        orchestrator: PaymentOrchestrator,
        processor: StripePaymentProcessor,
    ) -> None:
        self.id = purchase_id
        self.event = event
        self.store = store
        self.user_id = user_id
        self.builder = builder
        self.coupons: CouponEngine = builder.coupons
        self.orchestrator = orchestrator
        self.processor = processor
        self.notices: NoticeBoard = orchestrator.notices
        self.navigator: Navigator = orchestrator.navigator
        self.task: Optional[asyncio.Task] = None

    # --- Coupons ---

    def apply_coupon(self, coupon: Coupon) -> bool:
        if self.builder.locked:
            raise PurchaseLockedError()
        return self.coupons.apply(coupon, self.builder.subtotal_cents, len(self.builder))

    def remove_coupon(self) -> None:
        if self.builder.locked:
            raise PurchaseLockedError()
        self.coupons.remove()

    # --- Paiement ---

    @property
    def payment_in_progress(self) -> bool:
        return self.orchestrator.busy or (self.task is not None and not self.task.done())

    def build_order(self) -> PurchaseOrder:
        """Fige les participants et totaux courants (après validation complète)."""
        self.builder.validate()
        return PurchaseOrder(
            registrations=tuple(r.copy() for r in self.builder.registrations),
            applied_coupon=self.coupons.active,
            subtotal_cents=self.coupons.subtotal_cents,
            grand_total_cents=self.coupons.grand_total_cents,
            event_id=self.event.id,
            country_id=self.event.country_id,
            currency_code=self.event.currency_code,
            purchaser_id=self.user_id,
        )

    async def pay(self) -> PaymentSession:
        """Tentative complète (validation, verrouillage, orchestration)."""
        if self.payment_in_progress:
            raise PaymentInProgressError()
        return await self._pay(self._submit())

    def start_payment(self, payment_method: Optional[str] = None) -> asyncio.Task:
        """
        Lance la tentative en tâche de fond (la réponse HTTP peut revenir avant,
        par exemple pendant une authentification 3-D Secure).
        - Validation et verrouillage sont synchrones: une erreur remonte immédiatement.
        """
        if self.payment_in_progress:
            raise PaymentInProgressError()
        if payment_method:
            self.processor.payment_method = payment_method
        order = self._submit()
        self.task = asyncio.create_task(self._pay(order))
        return self.task

    def _submit(self) -> PurchaseOrder:
        order = self.build_order()
        self.builder.lock()
        return order

    async def _pay(self, order: PurchaseOrder) -> PaymentSession:
        try:
            session = await self.orchestrator.pay(order, self.event.name)
        except Exception:
            self.builder.unlock()
            raise
        if session.status is not PaymentStatus.CONFIRMED:
            # Relance possible après correction
            self.builder.unlock()
        return session

    def cancel_payment(self) -> bool:
        return self.processor.cancel()

    # --- Lecture ---

    def snapshot(self) -> Dict[str, Any]:
        regs = self.builder.registrations
        return {
            "id": self.id,
            "event": {"id": self.event.id, "name": self.event.name, "is_paid": self.event.is_paid, "currency": self.event.currency_code},
            "registrations": [r.to_dict() for r in regs] if regs is not None else None,
            "copy_first_to_all": self.builder.copy_first_to_all,
            "locked": self.builder.locked,
            "coupon": self.coupons.active.to_dict() if self.coupons.active else None,
            "subtotal": from_cents(self.coupons.subtotal_cents),
            "discount": from_cents(self.coupons.discount_cents),
            "grand_total": from_cents(self.coupons.grand_total_cents),
            "payment": self.orchestrator.session.to_dict(),
            "payment_in_progress": self.payment_in_progress,
            "next_action_url": self.processor.next_action_url,
            "notices": self.notices.drain(),
            "navigation": self.navigator.as_dict(),
        }


class PurchaseRegistry:
    """
    Achats en cours, par identifiant.
    - store_for(namespace) fournit le SessionStore d'un utilisateur (mémoire ou Redis).
    - Un achat inactif depuis plus de ttl_seconds est retiré (sauf tentative en vol);
      un store mémoire qui ne sert plus à aucun achat est libéré s'il n'a pas de paiement à reprendre.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        redis_client=None,
        redirects: Optional[RedirectHandlers] = None,
        processor_factory: Callable[[], Any] = StripePaymentProcessor,
        ttl_seconds: float = PURCHASE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http_client = http_client
        self.redis_client = redis_client
        self.redirects = redirects or RedirectHandlers()
        self.processor_factory = processor_factory
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._purchases: Dict[str, PurchaseContext] = {}
        self._namespaces: Dict[str, str] = {}
        self._last_seen: Dict[str, float] = {}
        self._memory_stores: Dict[str, MemorySessionStore] = {}

    def store_for(self, namespace: str) -> SessionStore:
        if self.redis_client is not None:
            return RedisSessionStore(self.redis_client, namespace)
        if namespace not in self._memory_stores:
            self._memory_stores[namespace] = MemorySessionStore()
        return self._memory_stores[namespace]

    async def create(
        self,
        event: EventDetail,
        *,
        token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        user_id: Optional[str] = None,
        display_name: Optional[str] = None,
        attendee_count: Any = None,
    ) -> PurchaseContext:
        self._evict_expired()
        purchase_id = uuid4().hex
        namespace = user_id or purchase_id
        store = self.store_for(namespace)
        await seed_tokens(store, token=token, refresh_token=refresh_token, user_id=user_id)

        builder = RegistrationBuilder(event, CouponEngine(), display_name=display_name)
        if attendee_count is not None:
            builder.set_attendee_count(attendee_count)

        processor = self.processor_factory()
        orchestrator = PaymentOrchestrator(
            access=AccessValidator(store, self.http_client),
            backend=TicketingBackend(self.http_client, store),
            processor=processor,
            notices=NoticeBoard(),
            navigator=Navigator(),
            ledger=PendingPaymentLedger(store),
            redirects=self.redirects,
            purchase_id=purchase_id,
        )
        ctx = PurchaseContext(
            purchase_id=purchase_id,
            event=event,
            store=store,
            user_id=user_id,
            builder=builder,
            orchestrator=orchestrator,
            processor=processor,
        )
        self._purchases[purchase_id] = ctx
        self._namespaces[purchase_id] = namespace
        self._last_seen[purchase_id] = self.clock()
        logger.info("purchases.service.create purchase_id=%s event_id=%s user_id=%s", purchase_id, event.id, user_id)
        return ctx

    def get(self, purchase_id: str) -> PurchaseContext:
        self._evict_expired()
        ctx = self._purchases.get(purchase_id)
        if ctx is None:
            raise PurchaseNotFoundError(purchase_id)
        self._last_seen[purchase_id] = self.clock()
        return ctx

    def discard(self, purchase_id: str) -> None:
        ctx = self._purchases.pop(purchase_id, None)
        self._last_seen.pop(purchase_id, None)
        namespace = self._namespaces.pop(purchase_id, None)
        if ctx and ctx.task and not ctx.task.done():
            ctx.cancel_payment()
        if namespace:
            self.release_store(namespace)

    def __len__(self) -> int:
        return len(self._purchases)

    def _evict_expired(self) -> None:
        deadline = self.clock() - self.ttl_seconds
        expired = [
            pid for pid, seen in self._last_seen.items()
            if seen < deadline and not self._purchases[pid].payment_in_progress
        ]
        for pid in expired:
            logger.info("purchases.service.evict purchase_id=%s", pid)
            self.discard(pid)

    def release_store(self, namespace: str) -> None:
        store = self._memory_stores.get(namespace)
        if store is None or store.has_hashes() or namespace in self._namespaces.values():
            return
        del self._memory_stores[namespace]

    async def shutdown(self) -> None:
        """Ferme les feuilles en attente et attend la fin des tentatives en vol."""
        tasks = []
        for ctx in self._purchases.values():
            if ctx.task and not ctx.task.done():
                ctx.cancel_payment()
                tasks.append(ctx.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
