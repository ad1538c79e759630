import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from blog_backend.config import settings
from blog_backend.database import bounded
from blog_backend.errors import StorageError
from blog_backend.middleware import record_round_trip
from blog_backend.security import credential_key

logger = logging.getLogger(__name__)

SALT_FIELD = "salt"
HASH_FIELD = "hash"


class CredentialStore:
    """
    Salted password hashes kept in Redis, one hash per user.

    Layout: ``user:<username>`` -> ``{"salt": <hex>, "hash": <hex>}``.

    Unlike a cache, this store is authoritative: every failure (no
    connection, Redis error, timeout) is raised as ``StorageError`` so the
    caller can refuse the login or registration.
    """

    def __init__(self, client: redis.Redis | None = None) -> None:
        self._redis = client

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, url: str | None = None) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        try:
            await self._redis.ping()
            logger.info("Credential store connected: %s", url or settings.REDIS_URL)
        except RedisError as exc:  # pragma: no cover
            logger.warning("Credential store ping failed: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Round trips
    # ------------------------------------------------------------------

    async def _call(self, method: str, *args):
        if self._redis is None:
            raise StorageError("credential store is not connected")
        record_round_trip()
        try:
            return await bounded(getattr(self._redis, method)(*args))
        except RedisError as exc:
            raise StorageError(f"credential store {method} failed: {exc}") from exc

    async def exists(self, username: str) -> bool:
        return await self._call("type", credential_key(username)) == "hash"

    async def claim(self, username: str, salt: str) -> bool:
        """
        Atomically reserve *username* by writing its salt.

        Returns False when another registration already holds the key.
        Until ``set_hash`` runs the record has no hash and cannot log in.
        """
        return bool(await self._call("hsetnx", credential_key(username), SALT_FIELD, salt))

    async def set_hash(self, username: str, password_hash: str) -> None:
        await self._call("hset", credential_key(username), HASH_FIELD, password_hash)

    async def load(self, username: str) -> tuple[str, str] | None:
        """Return ``(salt, hash)`` for *username*, or None when unknown."""
        if not await self.exists(username):
            return None
        key = credential_key(username)
        password_hash = await self._call("hget", key, HASH_FIELD)
        salt = await self._call("hget", key, SALT_FIELD)
        if salt is None or password_hash is None:
            return None
        return salt, password_hash

    async def discard(self, username: str) -> None:
        """Remove the credential record (used to undo a half-finished signup)."""
        await self._call("delete", credential_key(username))


# Module-level instance wired into the HTTP layer; connected in the lifespan.
credential_store = CredentialStore()
