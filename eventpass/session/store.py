"""
Stockage opaque des jetons de session (clé/valeur).
- Le cœur du paiement ne dépend que du protocole SessionStore {get, set, remove}.
- Champs de hash {hget, hset, hdel, hgetall}: une écriture par champ, sans relire la map entière.
- MemorySessionStore: un dict par achat (défaut, tests).
- RedisSessionStore: redis.asyncio, clés préfixées par un namespace (ex: user id).
"""
from typing import Dict, Optional, Protocol
import logging

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
REFRESH_TOKEN_KEY = "refresh_token"
USER_ID_KEY = "user_id"


class SessionStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def hget(self, key: str, field: str) -> Optional[str]: ...

    async def hset(self, key: str, field: str, value: str) -> None: ...

    async def hdel(self, key: str, field: str) -> None: ...

    async def hgetall(self, key: str) -> Dict[str, str]: ...


class MemorySessionStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = {k: v for k, v in (initial or {}).items() if v is not None}
        self._hashes: Dict[str, Dict[str, str]] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def hget(self, key: str, field: str) -> Optional[str]:
        return self._hashes.get(key, {}).get(field)

    async def hset(self, key: str, field: str, value: str) -> None:
        self._hashes.setdefault(key, {})[field] = value

    async def hdel(self, key: str, field: str) -> None:
        fields = self._hashes.get(key)
        if fields is not None:
            fields.pop(field, None)
            if not fields:
                del self._hashes[key]

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self._hashes.get(key, {}))

    def has_hashes(self) -> bool:
        return bool(self._hashes)


class RedisSessionStore:
    """
    Store adossé à Redis (asyncio).
    - namespace: isole les clés d'un utilisateur ("eventpass:<namespace>:<key>")
    - le client doit être créé avec decode_responses=True
    """

    def __init__(self, client, namespace: str) -> None:
        if not namespace:
            raise ValueError("namespace is required")
        self._client = client
        self._prefix = f"eventpass:{namespace}:"

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(self._prefix + key)

    async def set(self, key: str, value: str) -> None:
        await self._client.set(self._prefix + key, value)

    async def remove(self, key: str) -> None:
        await self._client.delete(self._prefix + key)

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self._client.hget(self._prefix + key, field)

    async def hset(self, key: str, field: str, value: str) -> None:
        await self._client.hset(self._prefix + key, field, value)

    async def hdel(self, key: str, field: str) -> None:
        await self._client.hdel(self._prefix + key, field)

    async def hgetall(self, key: str) -> Dict[str, str]:
        return await self._client.hgetall(self._prefix + key) or {}


async def seed_tokens(store: SessionStore, *, token: Optional[str], refresh_token: Optional[str], user_id: Optional[str]) -> None:
    """Enregistre les jetons fournis par le client (les valeurs vides sont ignorées)."""
    for key, value in ((TOKEN_KEY, token), (REFRESH_TOKEN_KEY, refresh_token), (USER_ID_KEY, user_id)):
        if value:
            await store.set(key, value)
