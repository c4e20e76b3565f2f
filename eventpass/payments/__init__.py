"""
Module 'payments' (feature-first): point d'entrée public.
Réunit client backend, adaptateur Stripe, orchestrateur, redirections et reprise.
"""

from .models import Ok, Err, ErrorKind, PaymentSession, PaymentStatus
from .backend_client import TicketingBackend
from .processor import PaymentProcessor, StripePaymentProcessor, require_stripe, intent_id_from_secret
from .orchestrator import PaymentOrchestrator
from .redirects import RedirectHandlers, build_return_url
from .recovery import PendingPaymentLedger, reconcile

__all__ = [
    # models
    "Ok",
    "Err",
    "ErrorKind",
    "PaymentSession",
    "PaymentStatus",
    # collaborateurs
    "TicketingBackend",
    "PaymentProcessor",
    "StripePaymentProcessor",
    "require_stripe",
    "intent_id_from_secret",
    # orchestration
    "PaymentOrchestrator",
    "RedirectHandlers",
    "build_return_url",
    # reprise
    "PendingPaymentLedger",
    "reconcile",
]
