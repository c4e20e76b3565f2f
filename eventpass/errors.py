"""Erreurs métier du parcours d'achat (codes stables + message affichable)."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class ErrorCode(Enum):
    """Codes d'erreur métier."""

    INVALID_ATTENDEE_COUNT = "INVALID_ATTENDEE_COUNT"
    REGISTRATION_LIMIT = "REGISTRATION_LIMIT"
    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"
    INVALID_REGISTRATIONS = "INVALID_REGISTRATIONS"
    TICKET_TYPE_NOT_ALLOWED = "TICKET_TYPE_NOT_ALLOWED"
    PURCHASE_LOCKED = "PURCHASE_LOCKED"
    PAYMENT_IN_PROGRESS = "PAYMENT_IN_PROGRESS"
    PURCHASE_NOT_FOUND = "PURCHASE_NOT_FOUND"


@dataclass(frozen=True, eq=False)
class DomainError(Exception):
    """Erreur métier de base avec code et message sans donnée sensible."""

    code: ErrorCode
    message: str
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class AttendeeCountError(DomainError):
    """Nombre de participants non numérique ou hors de [1, max]."""

    def __init__(self, maximum: int) -> None:
        super().__init__(
            code=ErrorCode.INVALID_ATTENDEE_COUNT,
            message=f"Veuillez saisir un nombre valide (1–{maximum}).",
        )


class RegistrationLimitError(DomainError):
    def __init__(self, maximum: int) -> None:
        super().__init__(
            code=ErrorCode.REGISTRATION_LIMIT,
            message=f"Maximum {maximum} participants par achat",
        )


class RegistrationIndexError(DomainError):
    def __init__(self, index: int) -> None:
        super().__init__(
            code=ErrorCode.REGISTRATION_NOT_FOUND,
            message=f"Participant #{index + 1} introuvable",
        )


class RegistrationValidationError(DomainError):
    """Champs manquants: toutes les erreurs sont remontées en une fois."""

    def __init__(self, errors: List[Dict[str, Any]]) -> None:
        super().__init__(
            code=ErrorCode.INVALID_REGISTRATIONS,
            message="Veuillez compléter les informations des participants",
            errors=list(errors),
        )


class TicketTypeError(DomainError):
    def __init__(self, message: str = "Type de billet non disponible pour cet événement") -> None:
        super().__init__(code=ErrorCode.TICKET_TYPE_NOT_ALLOWED, message=message)


class PurchaseLockedError(DomainError):
    """La commande a été soumise: plus de modification des participants."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.PURCHASE_LOCKED,
            message="Commande déjà soumise, modification impossible",
        )


class PaymentInProgressError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_IN_PROGRESS,
            message="Un paiement est déjà en cours",
        )


class PurchaseNotFoundError(DomainError):
    def __init__(self, purchase_id: str) -> None:
        super().__init__(
            code=ErrorCode.PURCHASE_NOT_FOUND,
            message="Achat introuvable",
        )
        object.__setattr__(self, "purchase_id", purchase_id)
