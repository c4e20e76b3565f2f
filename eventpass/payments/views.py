# module eventpass.payments.views
import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from eventpass.purchases.service import PurchaseRegistry
from eventpass.purchases.views import bearer_token, get_registry
from eventpass.session.access import AccessValidator, SessionCheckError
from eventpass.session.store import TOKEN_KEY
from .backend_client import TicketingBackend
from .recovery import PendingPaymentLedger, reconcile

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


@router.get("/redirect")
async def payment_redirect(request: Request, registry: PurchaseRegistry = Depends(get_registry)) -> Dict[str, Any]:
    """
    Retour d'authentification externe (3-D Secure): URL de retour configurée dans Stripe.
    - Transmet l'URL complète au processeur de la tentative en attente (purchase_id en query)
    - {"handled": false} si aucune tentative n'attend ce retour
    """
    handled = await registry.redirects.dispatch(str(request.url))
    return {"handled": handled}


@router.post("/reconcile")
async def reconcile_payments(
    registry: PurchaseRegistry = Depends(get_registry),
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """
    Reprise des paiements interrompus de l'utilisateur (à appeler au lancement de l'app).
    - Authorization: Bearer <token> doit être le jeton enregistré pour X-User-Id,
      et toujours valide côté backend (sinon 401)
    - Rejoue les accusés de paiement manquants puis l'envoi des billets
    """
    if not x_user_id:
        raise HTTPException(status_code=400, detail="X-User-Id manquant")
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Jeton manquant")

    store = registry.store_for(x_user_id)
    stored = await store.get(TOKEN_KEY)
    if not stored or not secrets.compare_digest(stored.encode(), token.encode()):
        logger.warning("payments.views.reconcile token mismatch user_id=%s", x_user_id)
        registry.release_store(x_user_id)
        raise HTTPException(status_code=401, detail="Session invalide")
    try:
        valid = await AccessValidator(store, registry.http_client).validate()
    except SessionCheckError:
        raise HTTPException(status_code=502, detail="Vérification de session impossible")
    if not valid:
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous reconnecter")

    summary = await reconcile(
        PendingPaymentLedger(store),
        TicketingBackend(registry.http_client, store),
        registry.processor_factory(),
    )
    return {"status": "ok", **summary}
