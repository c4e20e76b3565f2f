"""
Montants en centimes (entiers) pour éviter les dérives d'arrondi en virgule flottante.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")


def to_cents(amount: Any) -> int:
    """
    Convertit un montant décimal (str|int|float|Decimal) en centimes.
    - Arrondi au centime le plus proche (demi vers le haut).
    - ValueError si le montant n'est pas numérique ou est négatif.
    """
    try:
        value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValueError(f"Montant invalide: {amount!r}")
    if value < 0:
        raise ValueError("Le montant ne peut pas être négatif")
    return int(value * 100)


def from_cents(cents: int) -> float:
    """Centimes -> montant décimal à deux chiffres (pour les payloads JSON)."""
    return float((Decimal(cents) / 100).quantize(CENT))


def percent_of(cents: int, percent: Any) -> int:
    """Pourcentage d'un montant en centimes, arrondi demi vers le haut."""
    value = Decimal(cents) * Decimal(str(percent)) / Decimal(100)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))
