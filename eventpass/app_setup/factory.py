"""
Factory d'application pour les entrypoints (ex: eventpass.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_access_log_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers


def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base (CORS) et journal d'accès
      - gestionnaires d'exceptions (erreurs métier, HTTPException)
      - tous les routers (purchases, payments, tickets, health)
    Retour:
      FastAPI prêt à être utilisé par le serveur ASGI.
    """
    app = FastAPI(title="eventpass", lifespan=lifespan)
    register_basic_middlewares(app)
    register_access_log_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
