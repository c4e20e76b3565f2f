from fastapi import APIRouter, Request

from eventpass.config import API_BASE_URL, STRIPE_SECRET_KEY
from eventpass.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_root():
    return {"ok": True}


@router.get("/details")
def health_details(request: Request):
    return {
        "ok": True,
        "backend_url": API_BASE_URL,
        "stripe_configured": bool(STRIPE_SECRET_KEY),
        "rate_limit": rate_limit_health_info(request),
    }
