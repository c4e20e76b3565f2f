"""
Calcul des remises coupon (logique pure, pas d'I/O).
"""
from typing import Optional
import logging

from .models import Coupon

logger = logging.getLogger(__name__)


class CouponEngine:
    """
    Maintient le coupon actif et les totaux dérivés (centimes).
    - Un seul coupon actif; en appliquer un nouveau remplace l'ancien.
    - grand_total = subtotal - remise, jamais négatif, jamais > subtotal.
    """

    def __init__(self) -> None:
        self.active: Optional[Coupon] = None
        self.subtotal_cents = 0
        self.discount_cents = 0
        self.grand_total_cents = 0
        self.participant_count = 0

    def apply(self, coupon: Coupon, subtotal_cents: int, participant_count: int) -> bool:
        """
        Active `coupon` si le nombre de participants l'autorise.
        - Non éligible: no-op silencieux (totaux et coupon actif inchangés), retourne False.
        """
        if not coupon.is_eligible(participant_count):
            logger.info(
                "coupons.engine.apply ineligible code=%s participants=%s min=%s",
                coupon.code, participant_count, coupon.min_participants,
            )
            return False
        self.active = coupon
        self.recompute(subtotal_cents, participant_count)
        logger.info("coupons.engine.apply code=%s discount_cents=%s", coupon.code, self.discount_cents)
        return True

    def remove(self) -> None:
        self.active = None
        self.discount_cents = 0
        self.grand_total_cents = self.subtotal_cents

    def recompute(self, subtotal_cents: int, participant_count: int) -> None:
        """
        À appeler après toute mutation des participants:
        - le sous-total d'abord,
        - puis ré-application du coupon s'il est encore éligible, sinon révocation.
        """
        self.subtotal_cents = max(0, int(subtotal_cents))
        self.participant_count = participant_count
        if self.active and not self.active.is_eligible(participant_count):
            logger.info("coupons.engine.recompute revoked code=%s participants=%s", self.active.code, participant_count)
            self.active = None
        if self.active:
            self.discount_cents = min(self.active.discount_for(self.subtotal_cents), self.subtotal_cents)
        else:
            self.discount_cents = 0
        self.grand_total_cents = max(0, self.subtotal_cents - self.discount_cents)
