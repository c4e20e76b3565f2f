"""
Validation de la session utilisateur auprès du backend de billetterie.
"""
from typing import Optional
import logging
import httpx

from eventpass.config import API_BASE_URL, VERIFY_TOKEN_PATH
from .store import SessionStore, TOKEN_KEY, REFRESH_TOKEN_KEY

logger = logging.getLogger(__name__)


class SessionCheckError(Exception):
    """Le backend n'a pas pu être joint pour vérifier la session."""


class AccessValidator:
    def __init__(self, store: SessionStore, client: httpx.AsyncClient, base_url: Optional[str] = None) -> None:
        self.store = store
        self.client = client
        self.base_url = (base_url or API_BASE_URL).rstrip("/")

    async def validate(self) -> bool:
        """
        Vérifie les jetons stockés, avec rafraîchissement silencieux.
        - Aucun jeton => False (pas d'appel réseau)
        - 201: jetons rafraîchis, réécrits dans le store => True
        - 200: jeton valide => True
        - autre statut => False
        - Erreur réseau => SessionCheckError
        """
        token = await self.store.get(TOKEN_KEY)
        if not token:
            logger.info("session.access.validate no_token")
            return False
        refresh_token = await self.store.get(REFRESH_TOKEN_KEY)

        try:
            res = await self.client.post(
                f"{self.base_url}{VERIFY_TOKEN_PATH}",
                json={"token": token, "refreshToken": refresh_token},
            )
        except httpx.HTTPError as e:
            logger.exception("session.access.validate failed")
            raise SessionCheckError(str(e)) from e

        if res.status_code == 201:
            body = _json_or_empty(res)
            new_token = body.get("token")
            new_refresh = body.get("refreshToken")
            if new_token:
                await self.store.set(TOKEN_KEY, new_token)
            if new_refresh:
                await self.store.set(REFRESH_TOKEN_KEY, new_refresh)
            logger.info("session.access.validate refreshed")
            return True
        if res.status_code == 200:
            return True
        logger.info("session.access.validate rejected status=%s", res.status_code)
        return False


def _json_or_empty(res: httpx.Response) -> dict:
    try:
        body = res.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
