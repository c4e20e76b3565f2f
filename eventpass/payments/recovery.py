"""
Reprise des paiements interrompus (redémarrage entre le débit et l'accusé backend).

Le registre est un hash du SessionStore sous la clé `pending_payments`,
un champ par client secret (les achats d'un même utilisateur n'écrasent pas leurs entrées):
    client_secret -> '{"state": "intent_created"|"charged", "order_id": ...}'
- intent_created: PaymentIntent créé, issue du paiement inconnue
- charged: paiement abouti côté processeur, accusé backend non obtenu
"""
from typing import Any, Dict, Optional
import json
import logging

from eventpass.session.store import SessionStore

logger = logging.getLogger(__name__)

LEDGER_KEY = "pending_payments"
INTENT_CREATED = "intent_created"
CHARGED = "charged"

# Statuts Stripe définitivement non payés
UNPAID_FINAL_STATUSES = {"canceled", "requires_payment_method"}


class PendingPaymentLedger:
    def __init__(self, store: SessionStore) -> None:
        self.store = store

    async def entries(self) -> Dict[str, Dict[str, Any]]:
        data = {}
        for client_secret, raw in (await self.store.hgetall(LEDGER_KEY)).items():
            entry = self._decode(client_secret, raw)
            if entry is not None:
                data[client_secret] = entry
        return data

    async def record_intent(self, client_secret: str, order_id: Optional[str] = None) -> None:
        await self._write(client_secret, {"state": INTENT_CREATED, "order_id": order_id})

    async def mark_charged(self, client_secret: str) -> None:
        raw = await self.store.hget(LEDGER_KEY, client_secret)
        entry = self._decode(client_secret, raw) if raw else None
        entry = entry or {"order_id": None}
        entry["state"] = CHARGED
        await self._write(client_secret, entry)

    async def resolve(self, client_secret: str) -> None:
        await self.store.hdel(LEDGER_KEY, client_secret)

    async def _write(self, client_secret: str, entry: Dict[str, Any]) -> None:
        await self.store.hset(LEDGER_KEY, client_secret, json.dumps(entry))

    @staticmethod
    def _decode(client_secret: str, raw: str) -> Optional[Dict[str, Any]]:
        try:
            entry = json.loads(raw)
        except ValueError:
            logger.warning("payments.recovery.entries corrupted entry secret=%s, skipped", client_secret[:10])
            return None
        return entry if isinstance(entry, dict) else None


async def reconcile(ledger: PendingPaymentLedger, backend, processor) -> Dict[str, int]:
    """
    Rejoue les accusés manquants.
    - charged: renvoie le succès au backend puis l'envoi des billets.
    - intent_created: interroge le processeur (fetch_status) et rapporte succès ou échec.
    - Les entrées encore indéterminées restent dans le registre.
    Retour: {"reported": n, "failed": n, "pending": n}
    """
    summary = {"reported": 0, "failed": 0, "pending": 0}
    for client_secret, entry in (await ledger.entries()).items():
        state = entry.get("state")
        if state == INTENT_CREATED:
            fetched = await processor.fetch_status(client_secret)
            if not fetched.ok:
                summary["pending"] += 1
                continue
            if fetched.value in UNPAID_FINAL_STATUSES:
                await backend.update_payment_status(client_secret, fetched.value, False)
                await ledger.resolve(client_secret)
                summary["failed"] += 1
                continue
            if fetched.value != "succeeded":
                summary["pending"] += 1
                continue
            await ledger.mark_charged(client_secret)

        update = await backend.update_payment_status(client_secret, "success", True)
        if not update.ok:
            summary["pending"] += 1
            continue
        order_id = update.value.order_id or entry.get("order_id")
        if order_id:
            await backend.send_ticket_email(order_id)
        await ledger.resolve(client_secret)
        summary["reported"] += 1
    logger.info("payments.recovery.reconcile summary=%s", summary)
    return summary
