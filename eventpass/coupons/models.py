from dataclasses import dataclass
from typing import Dict, Any

from eventpass.utils.money import from_cents, percent_of


@dataclass(frozen=True)
class Coupon:
    code: str
    discount_percent: float
    max_discount_cents: int
    min_participants: int = 1

    def __post_init__(self) -> None:
        if not self.code:
            raise ValueError("Coupon code is required")
        if not 0 <= self.discount_percent <= 100:
            raise ValueError("discount_percent must be within [0, 100]")
        if self.max_discount_cents < 0:
            raise ValueError("max_discount_cents cannot be negative")

    def is_eligible(self, participant_count: int) -> bool:
        return participant_count >= self.min_participants

    def discount_for(self, subtotal_cents: int) -> int:
        """min(subtotal * pct / 100, plafond), en centimes."""
        return min(percent_of(subtotal_cents, self.discount_percent), self.max_discount_cents)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "discount_percent": self.discount_percent,
            "max_discount_amount": from_cents(self.max_discount_cents),
            "min_participants": self.min_participants,
        }
