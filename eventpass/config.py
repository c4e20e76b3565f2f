# eventpass.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service eventpass.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise l'URL du backend de billetterie et les chemins des endpoints consommés
- Expose les clés Stripe, l'URL de retour 3-D Secure et les délais de navigation
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _float_env(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name)) or default)
    except ValueError:
        return default

# Backend de billetterie (REST/JSON)
# - API_BASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
API_BASE_URL = _clean_env(os.getenv("API_BASE_URL") or "http://localhost:3000")
if API_BASE_URL and not API_BASE_URL.startswith("http"):
    API_BASE_URL = "https://" + API_BASE_URL
API_BASE_URL = API_BASE_URL.rstrip("/")

VERIFY_TOKEN_PATH = os.getenv("VERIFY_TOKEN_PATH", "/participants/verifyAndGenerateAccessToken")
REGISTER_PATH = os.getenv("REGISTER_PATH", "/auth/create/EventRegister")
PAYMENT_STATUS_PATH = os.getenv("PAYMENT_STATUS_PATH", "/auth/patch/PaymentStatus")
TICKET_EMAIL_PATH = os.getenv("TICKET_EMAIL_PATH", "/auth/send/sendEventTicketByOrderId")
TICKETS_BY_ORDER_PATH = os.getenv("TICKETS_BY_ORDER_PATH", "/auth/get/getTicketsByOrderId")

# Pas de timeout applicatif au-delà de celui du client HTTP
HTTP_TIMEOUT_SECONDS = _float_env("HTTP_TIMEOUT_SECONDS", 10.0)

# Stripe: clés publiques/privées et URL de retour après authentification externe
STRIPE_PUBLIC_KEY = _clean_env(os.getenv("STRIPE_PUBLIC_KEY") or "")
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000").rstrip("/")
STRIPE_RETURN_URL = _clean_env(os.getenv("STRIPE_RETURN_URL") or f"{BASE_URL}/api/v1/payments/redirect")
MERCHANT_DEFAULT_NAME = _clean_env(os.getenv("MERCHANT_DEFAULT_NAME") or "HiIndia")

# Parcours d'achat
MAX_ATTENDEES = int(os.getenv("MAX_ATTENDEES", "10"))

# Délais (secondes) appliqués par le client avant navigation
SESSION_EXPIRED_REDIRECT_DELAY = _float_env("SESSION_EXPIRED_REDIRECT_DELAY", 0.1)
BACKEND_SESSION_EXPIRED_DELAY = _float_env("BACKEND_SESSION_EXPIRED_DELAY", 2.0)
SUCCESS_REDIRECT_DELAY = _float_env("SUCCESS_REDIRECT_DELAY", 1.0)

# Attente maximale de la réponse HTTP de /pay avant de rendre la main (ex: 3-D Secure en cours)
PAY_INLINE_WAIT_SECONDS = _float_env("PAY_INLINE_WAIT_SECONDS", 15.0)

# Achat inactif au-delà de ce délai: retiré du registre (sauf tentative en vol)
PURCHASE_TTL_SECONDS = _float_env("PURCHASE_TTL_SECONDS", 3600.0)

# Stockage des jetons de session: vide => mémoire du processus
SESSION_STORE_REDIS_URL = _clean_env(os.getenv("SESSION_STORE_REDIS_URL") or "")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
