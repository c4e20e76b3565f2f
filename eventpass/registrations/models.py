from dataclasses import dataclass, field, replace
from datetime import date
from typing import List, Optional, Union, Dict, Any

from eventpass.utils.money import from_cents


@dataclass(frozen=True)
class RatePlan:
    """Entrée de grille tarifaire d'un événement (type de billet)."""

    id: str
    label: str
    unit_price_cents: int


@dataclass(frozen=True)
class EventDetail:
    id: str
    name: str
    is_paid: bool
    country_id: str
    currency_code: str
    rate_plans: List[RatePlan] = field(default_factory=list)

    def rate_plan(self, rate_id: str) -> Optional[RatePlan]:
        for rate in self.rate_plans:
            if rate.id == rate_id:
                return rate
        return None


@dataclass
class Registration:
    """
    Un participant de l'achat.
    Invariant: charge_cents == ticket_type.unit_price_cents si ticket_type, sinon 0.
    """

    name: str = ""
    age: Union[str, int] = ""
    date_of_birth: Optional[date] = None
    ticket_type: Optional[RatePlan] = None
    charge_cents: int = 0

    def set_ticket_type(self, rate: Optional[RatePlan]) -> None:
        self.ticket_type = rate
        self.charge_cents = rate.unit_price_cents if rate else 0

    def copy(self) -> "Registration":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "age": self.age,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "ticket_type": (
                {"id": self.ticket_type.id, "label": self.ticket_type.label, "unit_price": from_cents(self.ticket_type.unit_price_cents)}
                if self.ticket_type
                else None
            ),
            "charge": from_cents(self.charge_cents),
        }


def age_from_date_of_birth(dob: date, today: Optional[date] = None) -> int:
    """Âge en années révolues (anniversaire pas encore passé => une année de moins)."""
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age
