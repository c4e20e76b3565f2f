from dataclasses import dataclass
from typing import Optional, Tuple, Dict, Any, List

from eventpass.coupons.models import Coupon
from eventpass.registrations.models import Registration
from eventpass.utils.money import from_cents


@dataclass(frozen=True)
class PurchaseOrder:
    """
    Agrégat soumis au backend (immuable).
    Invariant: grand_total_cents <= subtotal_cents.
    """

    registrations: Tuple[Registration, ...]
    applied_coupon: Optional[Coupon]
    subtotal_cents: int
    grand_total_cents: int
    event_id: str
    country_id: str
    currency_code: str
    purchaser_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.grand_total_cents < 0 or self.grand_total_cents > self.subtotal_cents:
            raise ValueError("grand_total_cents must be within [0, subtotal_cents]")

    @property
    def is_free(self) -> bool:
        return self.grand_total_cents == 0

    def participants_payload(self) -> List[Dict[str, Any]]:
        return [
            {
                "byParticipant": self.purchaser_id,
                "name": reg.name,
                "dob": reg.date_of_birth.isoformat() if reg.date_of_birth else None,
                "age": reg.age,
                "eventName": self.event_id,
                "country": self.country_id,
                "ticketCategory": "Participant",
                "TicketType": reg.ticket_type.id if reg.ticket_type else None,
                "registrationCharge": from_cents(reg.charge_cents),
                "isActive": True,
            }
            for reg in self.registrations
        ]

    def to_payload(self) -> Dict[str, Any]:
        """Corps de POST inscription (montants: décimal + centimes)."""
        return {
            "couponCode": self.applied_coupon.code if self.applied_coupon else "",
            "byParticipant": self.purchaser_id,
            "eventId": self.event_id,
            "countryId": self.country_id,
            "participants": self.participants_payload(),
            "afterDiscountTotal": from_cents(self.grand_total_cents),
            "currency": self.currency_code,
            "amountInCents": self.grand_total_cents,
        }
