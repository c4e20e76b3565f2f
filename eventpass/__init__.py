"""
eventpass: service de parcours d'achat de billets (participants, coupons,
paiement Stripe, envoi des billets) pour le client mobile.
"""

__version__ = "0.1.0"
