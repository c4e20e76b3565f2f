"""
Constitution de la liste des participants d'un achat.
- Toute mutation recalcule le sous-total puis délègue au CouponEngine
  (ré-application ou révocation du coupon actif).
- Verrouillée dès que la commande est soumise au backend.
"""
from datetime import date
from typing import Any, Dict, List, Optional, Union
import logging

from eventpass.config import MAX_ATTENDEES
from eventpass.coupons.engine import CouponEngine
from eventpass.errors import (
    AttendeeCountError,
    PurchaseLockedError,
    RegistrationIndexError,
    RegistrationLimitError,
    RegistrationValidationError,
    TicketTypeError,
)
from .models import EventDetail, RatePlan, Registration, age_from_date_of_birth

logger = logging.getLogger(__name__)


def parse_attendee_count(value: Any, maximum: int = MAX_ATTENDEES) -> int:
    """
    Convertit la saisie utilisateur en nombre de participants.
    - Accepte un int ou une chaîne d'entier ("3", " 3 ").
    - AttendeeCountError si non numérique, booléen, décimal ou hors [1, maximum].
    """
    if isinstance(value, bool):
        raise AttendeeCountError(maximum)
    if isinstance(value, int):
        count = value
    else:
        text = str(value if value is not None else "").strip()
        if not text.isdigit():
            raise AttendeeCountError(maximum)
        count = int(text)
    if count < 1 or count > maximum:
        raise AttendeeCountError(maximum)
    return count


class RegistrationBuilder:
    def __init__(
        self,
        event: EventDetail,
        coupons: Optional[CouponEngine] = None,
        display_name: Optional[str] = None,
        maximum: int = MAX_ATTENDEES,
    ) -> None:
        self.event = event
        self.coupons = coupons or CouponEngine()
        self.display_name = (display_name or "").strip()
        self.maximum = maximum
        self.registrations: Optional[List[Registration]] = None
        self.copy_first_to_all = False
        self.locked = False

    # --- Lecture ---

    def __len__(self) -> int:
        return len(self.registrations or [])

    @property
    def subtotal_cents(self) -> int:
        return sum(r.charge_cents for r in self.registrations or [])

    # --- Mutations ---

    def set_attendee_count(self, value: Any) -> List[Registration]:
        """
        Initialise `n` participants vierges (1 <= n <= maximum).
        - Le premier est pré-rempli avec le nom de l'utilisateur connecté si connu.
        - En cas d'erreur, la liste existante reste inchangée (None si jamais initialisée).
        """
        self._ensure_unlocked()
        count = parse_attendee_count(value, self.maximum)
        regs = [Registration() for _ in range(count)]
        if self.display_name:
            regs[0].name = self.display_name
        self.registrations = regs
        self.copy_first_to_all = False
        self._recompute()
        logger.info("registrations.builder.set_attendee_count count=%s event_id=%s", count, self.event.id)
        return regs

    def add_registration(self) -> Registration:
        """Ajoute un participant (clone du #0 si "copier à tous" est actif et qu'il existe)."""
        self._ensure_unlocked()
        regs = self._require_registrations()
        if len(regs) >= self.maximum:
            raise RegistrationLimitError(self.maximum)
        new_reg = regs[0].copy() if self.copy_first_to_all and regs else Registration()
        regs.append(new_reg)
        self._recompute()
        return new_reg

    def remove_registration(self, index: int) -> Registration:
        """Supprime le participant `index`; le coupon peut être révoqué au recalcul."""
        self._ensure_unlocked()
        regs = self._require_registrations()
        self._check_index(index)
        removed = regs.pop(index)
        self._recompute()
        return removed

    def update_registration(self, index: int, *, name: Optional[str] = None, age: Optional[Union[str, int]] = None) -> Registration:
        self._ensure_unlocked()
        self._check_index(index)
        reg = self.registrations[index]
        if name is not None:
            reg.name = name
        if age is not None:
            reg.age = age
        return reg

    def set_date_of_birth(self, index: int, dob: date, today: Optional[date] = None) -> Registration:
        """Enregistre la date de naissance et en déduit l'âge."""
        self._ensure_unlocked()
        self._check_index(index)
        reg = self.registrations[index]
        reg.date_of_birth = dob
        reg.age = str(age_from_date_of_birth(dob, today))
        return reg

    def set_ticket_type(self, index: int, rate: Union[RatePlan, str]) -> Registration:
        """
        Affecte un type de billet (et donc la charge) au participant `index`.
        - `rate` peut être un RatePlan ou l'id d'une entrée de la grille de l'événement.
        - TicketTypeError pour un événement gratuit ou un tarif inconnu.
        """
        self._ensure_unlocked()
        self._check_index(index)
        self.registrations[index].set_ticket_type(self.resolve_rate(rate))
        self._recompute()
        return self.registrations[index]

    def resolve_rate(self, rate: Union[RatePlan, str]) -> RatePlan:
        """TicketTypeError pour un événement gratuit ou un id absent de la grille."""
        if not self.event.is_paid:
            raise TicketTypeError()
        if isinstance(rate, str):
            plan = self.event.rate_plan(rate)
            if plan is None:
                raise TicketTypeError("Type de billet inconnu")
            return plan
        return rate

    def toggle_copy_first_to_all(self) -> bool:
        """
        Bascule "copier le participant #0 à tous".
        - À l'activation (et s'il y a plus d'un participant), écrase [1..n) par une copie du #0.
        - Pas de synchronisation continue: les éditions suivantes du #0 ne sont recopiées
          qu'au prochain basculement ou ajout.
        """
        self._ensure_unlocked()
        regs = self._require_registrations()
        self.copy_first_to_all = not self.copy_first_to_all
        if self.copy_first_to_all and len(regs) > 1:
            first = regs[0]
            for i in range(1, len(regs)):
                regs[i] = first.copy()
            self._recompute()
        return self.copy_first_to_all

    # --- Validation ---

    def validation_errors(self) -> List[Dict[str, Any]]:
        errors: List[Dict[str, Any]] = []
        for i, reg in enumerate(self.registrations or []):
            if not str(reg.name or "").strip():
                errors.append({"index": i, "field": "name", "message": "Veuillez saisir le nom"})
            if not str(reg.age if reg.age is not None else "").strip():
                errors.append({"index": i, "field": "age", "message": "Veuillez renseigner l'âge"})
            if self.event.is_paid and reg.ticket_type is None:
                errors.append({"index": i, "field": "ticket_type", "message": "Veuillez choisir un type de billet"})
        return errors

    def validate(self) -> None:
        """Bloque la progression vers le paiement: tous les champs invalides d'un coup."""
        if not self.registrations:
            raise RegistrationValidationError([{"index": None, "field": "attendee_count", "message": "Aucun participant"}])
        errors = self.validation_errors()
        if errors:
            raise RegistrationValidationError(errors)

    # --- Verrou ---

    def lock(self) -> None:
        self.locked = True

    def unlock(self) -> None:
        self.locked = False

    # --- Interne ---

    def _recompute(self) -> None:
        self.coupons.recompute(self.subtotal_cents, len(self))

    def _require_registrations(self) -> List[Registration]:
        if self.registrations is None:
            raise RegistrationValidationError([{"index": None, "field": "attendee_count", "message": "Nombre de participants requis"}])
        return self.registrations

    def _check_index(self, index: int) -> None:
        regs = self._require_registrations()
        if not isinstance(index, int) or index < 0 or index >= len(regs):
            raise RegistrationIndexError(index if isinstance(index, int) else -1)

    def _ensure_unlocked(self) -> None:
        if self.locked:
            raise PurchaseLockedError()
