"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn/uvicorn-workers) importe `eventpass.asgi:app`.
- Toute la configuration FastAPI est centralisée dans eventpass.app_setup.factory.
"""

from eventpass.app import app
