# module eventpass.purchases.views
import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Header, Request, Response
from pydantic import BaseModel, Field, field_validator

from eventpass.config import PAY_INLINE_WAIT_SECONDS
from eventpass.coupons.models import Coupon
from eventpass.registrations.models import EventDetail, RatePlan
from eventpass.utils.money import to_cents
from eventpass.utils.rate_limit import optional_rate_limit
from .service import PurchaseContext, PurchaseRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/purchases", tags=["Purchases API"])


class RatePlanIn(BaseModel):
    id: str
    label: str
    unit_price: Decimal = Field(ge=0)


class EventIn(BaseModel):
    id: str
    name: str = ""
    is_paid: bool = True
    country_id: str
    currency_code: str = "usd"
    rate_plans: List[RatePlanIn] = []

    def to_domain(self) -> EventDetail:
        return EventDetail(
            id=self.id,
            name=self.name,
            is_paid=self.is_paid,
            country_id=self.country_id,
            currency_code=self.currency_code,
            rate_plans=[RatePlan(id=r.id, label=r.label, unit_price_cents=to_cents(r.unit_price)) for r in self.rate_plans],
        )


class CreatePurchaseRequest(BaseModel):
    event: EventIn
    attendee_count: Optional[Union[int, str]] = None
    display_name: Optional[str] = None


class AttendeeCountRequest(BaseModel):
    count: Union[int, str]


class UpdateRegistrationRequest(BaseModel):
    name: Optional[str] = None
    age: Optional[Union[int, str]] = None
    date_of_birth: Optional[date] = None
    ticket_type_id: Optional[str] = None


class CouponRequest(BaseModel):
    code: str = Field(min_length=1)
    discount_percent: float = Field(ge=0, le=100)
    max_discount_amount: Decimal = Field(ge=0)
    min_participants: int = Field(default=1, ge=0)

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Code coupon requis")
        return v

    def to_domain(self) -> Coupon:
        return Coupon(
            code=self.code,
            discount_percent=self.discount_percent,
            max_discount_cents=to_cents(self.max_discount_amount),
            min_participants=self.min_participants,
        )


class PayRequest(BaseModel):
    payment_method: Optional[str] = None


def get_registry(request: Request) -> PurchaseRegistry:
    return request.app.state.purchases


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


def _purchase(purchase_id: str, registry: PurchaseRegistry) -> PurchaseContext:
    return registry.get(purchase_id)


@router.post("", status_code=201)
async def create_purchase(
    body: CreatePurchaseRequest,
    registry: PurchaseRegistry = Depends(get_registry),
    authorization: Optional[str] = Header(default=None),
    x_refresh_token: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """
    Ouvre un achat pour un événement.
    - Jetons de session: Authorization: Bearer <token>, X-Refresh-Token, X-User-Id
    - attendee_count optionnel (1–10); invalide => 422 et aucun achat créé
    """
    ctx = await registry.create(
        body.event.to_domain(),
        token=bearer_token(authorization),
        refresh_token=x_refresh_token,
        user_id=x_user_id,
        display_name=body.display_name,
        attendee_count=body.attendee_count,
    )
    return ctx.snapshot()


@router.get("/{purchase_id}")
async def get_purchase(purchase_id: str, registry: PurchaseRegistry = Depends(get_registry)) -> Dict[str, Any]:
    return _purchase(purchase_id, registry).snapshot()


@router.delete("/{purchase_id}", status_code=204)
async def discard_purchase(purchase_id: str, registry: PurchaseRegistry = Depends(get_registry)) -> Response:
    _purchase(purchase_id, registry)
    registry.discard(purchase_id)
    return Response(status_code=204)


@router.put("/{purchase_id}/attendees")
async def set_attendee_count(purchase_id: str, body: AttendeeCountRequest, registry: PurchaseRegistry = Depends(get_registry)):
    ctx = _purchase(purchase_id, registry)
    ctx.builder.set_attendee_count(body.count)
    return ctx.snapshot()


@router.post("/{purchase_id}/registrations", status_code=201)
async def add_registration(purchase_id: str, registry: PurchaseRegistry = Depends(get_registry)):
    ctx = _purchase(purchase_id, registry)
    ctx.builder.add_registration()
    return ctx.snapshot()


@router.patch("/{purchase_id}/registrations/{index}")
async def update_registration(
    purchase_id: str,
    index: int,
    body: UpdateRegistrationRequest,
    registry: PurchaseRegistry = Depends(get_registry),
):
    """Mise à jour partielle: nom, âge, date de naissance (âge recalculé), type de billet."""
    ctx = _purchase(purchase_id, registry)
    # Tarif résolu avant toute écriture: un type inconnu laisse le participant intact
    rate = ctx.builder.resolve_rate(body.ticket_type_id) if body.ticket_type_id is not None else None
    ctx.builder.update_registration(index, name=body.name, age=body.age)
    if body.date_of_birth is not None:
        ctx.builder.set_date_of_birth(index, body.date_of_birth)
    if rate is not None:
        ctx.builder.set_ticket_type(index, rate)
    return ctx.snapshot()


@router.delete("/{purchase_id}/registrations/{index}")
async def remove_registration(purchase_id: str, index: int, registry: PurchaseRegistry = Depends(get_registry)):
    ctx = _purchase(purchase_id, registry)
    ctx.builder.remove_registration(index)
    return ctx.snapshot()


@router.post("/{purchase_id}/copy-first")
async def toggle_copy_first(purchase_id: str, registry: PurchaseRegistry = Depends(get_registry)):
    ctx = _purchase(purchase_id, registry)
    ctx.builder.toggle_copy_first_to_all()
    return ctx.snapshot()


@router.put("/{purchase_id}/coupon")
async def apply_coupon(purchase_id: str, body: CouponRequest, registry: PurchaseRegistry = Depends(get_registry)):
    """Non éligible (trop peu de participants): pas d'erreur, coupon_applied=false."""
    ctx = _purchase(purchase_id, registry)
    applied = ctx.apply_coupon(body.to_domain())
    return {**ctx.snapshot(), "coupon_applied": applied}


@router.delete("/{purchase_id}/coupon")
async def remove_coupon(purchase_id: str, registry: PurchaseRegistry = Depends(get_registry)):
    ctx = _purchase(purchase_id, registry)
    ctx.remove_coupon()
    return ctx.snapshot()


@router.post("/{purchase_id}/pay", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def pay(purchase_id: str, response: Response, body: Optional[PayRequest] = None, registry: PurchaseRegistry = Depends(get_registry)):
    """
    Lance le paiement de l'achat.
    - 409 si une tentative est déjà en cours, 422 si des participants sont incomplets
    - Attend la fin de la tentative au plus PAY_INLINE_WAIT_SECONDS; sinon 202 et
      l'état courant (ex: next_action_url pour une authentification 3-D Secure)
    """
    ctx = _purchase(purchase_id, registry)
    task = ctx.start_payment((body or PayRequest()).payment_method)
    await asyncio.wait({task}, timeout=PAY_INLINE_WAIT_SECONDS)
    if not task.done():
        response.status_code = 202
    return ctx.snapshot()


@router.post("/{purchase_id}/pay/cancel")
async def cancel_payment(purchase_id: str, registry: PurchaseRegistry = Depends(get_registry)):
    """Fermeture de la feuille de paiement pendant une redirection en attente."""
    ctx = _purchase(purchase_id, registry)
    canceled = ctx.cancel_payment()
    if canceled and ctx.task is not None:
        await asyncio.wait({ctx.task}, timeout=PAY_INLINE_WAIT_SECONDS)
    return {**ctx.snapshot(), "canceled": canceled}
