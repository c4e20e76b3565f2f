"""
Types du paiement: résultats discriminés Ok/Err, état de la tentative, reçus backend.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union, Dict
from uuid import uuid4

T = TypeVar("T")


class ErrorKind(Enum):
    VALIDATION = "validation"
    SESSION_EXPIRED = "session_expired"
    BUSINESS = "business"
    TRANSPORT = "transport"
    PROCESSOR = "processor"
    CANCELED = "canceled"
    DECLINED = "declined"
    REPORTING = "reporting"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T = None
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str = ""
    ok: bool = field(default=False, init=False)


Result = Union[Ok[T], Err]


class PaymentStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    INTENT_CREATED = "IntentCreated"
    SHEET_PRESENTED = "SheetPresented"
    CONFIRMED = "Confirmed"
    FAILED = "Failed"
    SESSION_EXPIRED = "SessionExpired"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.CONFIRMED, PaymentStatus.FAILED, PaymentStatus.SESSION_EXPIRED)


@dataclass
class PaymentSession:
    """
    État éphémère d'une tentative de paiement (jamais persisté, jamais réutilisé).
    - reconciliation_required: argent débité mais accusé backend non obtenu
    """

    attempt_id: str = field(default_factory=lambda: uuid4().hex)
    client_secret: Optional[str] = None
    status: PaymentStatus = PaymentStatus.NOT_STARTED
    order_id: Optional[str] = None
    error: Optional[str] = None
    free: bool = False
    reconciliation_required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "status": self.status.value,
            "client_secret": self.client_secret,
            "order_id": self.order_id,
            "error": self.error,
            "free": self.free,
            "reconciliation_required": self.reconciliation_required,
        }


@dataclass(frozen=True)
class RegistrationReceipt:
    """Réponse positive de l'endpoint d'inscription."""

    client_secret: Optional[str]
    order_id: Optional[str] = None

    @property
    def is_free(self) -> bool:
        return not self.client_secret or self.client_secret == "Free"


@dataclass(frozen=True)
class StatusUpdateReceipt:
    order_id: Optional[str]


@dataclass(frozen=True)
class TicketEmailReceipt:
    delivered: bool
    message: str = ""
