"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Client httpx unique vers le backend de billetterie (timeout HTTP_TIMEOUT_SECONDS).
- Registre des achats (stockage des jetons en mémoire ou Redis via SESSION_STORE_REDIS_URL).
- Initialise FastAPILimiter (Redis) avec options de test (fakeredis).
- Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement le rate limiting (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: active un fallback local si l'init échoue
"""
import os
import logging
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from eventpass.config import HTTP_TIMEOUT_SECONDS, SESSION_STORE_REDIS_URL
from eventpass.purchases.service import PurchaseRegistry

try:
    from fakeredis.aioredis import FakeRedis  # tests only
except ImportError:
    FakeRedis = None

logger = logging.getLogger("uvicorn.error")


async def _init_rate_limiter(app: FastAPI) -> None:
    """
    Configure le rate limiting et gère les fallbacks.
    - En cas d'échec de Redis et sans fallback, le rate limiting est désactivé proprement.
    """
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            if not FakeRedis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            r = FakeRedis(decode_responses=True)
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
    except Exception as e:
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            app.state.rate_limit_enabled = True
            logger.warning(f"Rate limiting falling back to local in-memory due to init error: {e}")
        else:
            app.state.rate_limit_enabled = False
            logger.warning(f"Rate limiting disabled due to init error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    session_redis = (
        aioredis.from_url(SESSION_STORE_REDIS_URL, encoding="utf-8", decode_responses=True)
        if SESSION_STORE_REDIS_URL
        else None
    )
    app.state.purchases = PurchaseRegistry(http_client, redis_client=session_redis)
    logger.info("Session store backend: %s", "redis" if session_redis is not None else "memory")
    await _init_rate_limiter(app)
    try:
        yield
    finally:
        await app.state.purchases.shutdown()
        await http_client.aclose()
        if session_redis is not None:
            await session_redis.aclose()
