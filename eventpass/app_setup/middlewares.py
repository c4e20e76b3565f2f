import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from eventpass.config import CORS_ORIGINS

logger = logging.getLogger(__name__)


def register_basic_middlewares(app: FastAPI) -> None:
    """CORS pour le client mobile / web (origines via CORS_ORIGINS)."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials="*" not in CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def register_access_log_middleware(app: FastAPI) -> None:
    """Trace method/path/status/durée de chaque requête API."""
    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            logger.info(
                "http %s %s status=%s duration_ms=%.1f",
                request.method, request.url.path, response.status_code, (time.perf_counter() - start) * 1000,
            )
        return response
