"""
Registre central des routers (API v1, health).
- API v1: purchases, payments, tickets
- Health: health_router
"""
from fastapi import FastAPI
from eventpass.purchases import views as purchases_views
from eventpass.payments import views as payments_views
from eventpass.tickets import views as tickets_views
from eventpass.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(purchases_views.router)
    app.include_router(payments_views.router)
    app.include_router(tickets_views.router)
    # Health & monitoring
    app.include_router(health_router)
