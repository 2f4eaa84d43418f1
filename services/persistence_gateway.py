"""
Persistence Gateway - best-effort key/value cache for auth records.

The native store (SQL database or Redis) is tried first; any failure falls
back to an in-process memory store. Nothing here raises on I/O failure:
persistence is a cache, never the source of truth for identity.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

import redis.asyncio as redis_asyncio
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import (
    STORAGE_KEY_DEVICE_ID,
    STORAGE_KEY_PENDING_REFERRER,
    STORAGE_KEY_SUBSCRIPTION,
    STORAGE_KEY_USER,
)
from crud.key_value import KeyValueRepository
from models.principal import Principal
from models.subscription import Subscription

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Narrow string store interface the gateway writes through"""

    name = "store"

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def remove_items(self, keys: List[str]) -> None:
        ...


class MemoryKeyValueStore(KeyValueStore):
    name = "memory"

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_items(self, keys: List[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class SqlKeyValueStore(KeyValueStore):
    """Native store backed by the key_value_records table"""

    name = "sql"

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_item(self, key: str) -> Optional[str]:
        async with self.session_factory() as session:
            return await KeyValueRepository(session).get_value(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self.session_factory() as session:
            await self._write(session, lambda repo: repo.set_value(key, value))

    async def remove_items(self, keys: List[str]) -> None:
        async with self.session_factory() as session:
            await self._write(session, lambda repo: repo.delete_keys(keys))

    @staticmethod
    async def _write(session: AsyncSession, operation) -> None:
        try:
            await operation(KeyValueRepository(session))
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class RedisKeyValueStore(KeyValueStore):
    """Native store backed by redis.asyncio"""

    name = "redis"

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisKeyValueStore":
        return cls(redis_asyncio.from_url(redis_url, decode_responses=True))

    async def get_item(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await self.client.set(key, value)

    async def remove_items(self, keys: List[str]) -> None:
        if keys:
            await self.client.delete(*keys)


class PersistenceGateway:
    """
    Get/set/remove string-serialized records with an in-memory fallback,
    plus typed helpers for the auth records.
    """

    def __init__(
        self,
        primary: Optional[KeyValueStore] = None,
        fallback: Optional[MemoryKeyValueStore] = None,
        key_prefix: str = "",
    ):
        self.primary = primary
        self.fallback = fallback or MemoryKeyValueStore()
        self.key_prefix = key_prefix
        # Keys whose primary delete failed; the primary copy is stale
        self._removed: Set[str] = set()

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    # ------------------------------------------------------------------
    # Raw string operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        full_key = self._key(key)
        # A fallback entry is newer than whatever the primary still holds
        pending = await self.fallback.get_item(full_key)
        if pending is not None or full_key in self._removed or self.primary is None:
            return pending
        try:
            return await self.primary.get_item(full_key)
        except Exception as e:
            logger.warning(f"⚠️ {self.primary.name} get failed for '{full_key}': {e}. Using memory fallback.")
            return None

    async def set(self, key: str, value: str) -> None:
        full_key = self._key(key)
        if self.primary is not None:
            try:
                await self.primary.set_item(full_key, value)
                await self.fallback.remove_items([full_key])
                self._removed.discard(full_key)
                return
            except Exception as e:
                logger.warning(f"⚠️ {self.primary.name} set failed for '{full_key}': {e}. Using memory fallback.")
        await self.fallback.set_item(full_key, value)

    async def remove(self, key: str) -> None:
        await self.multi_remove([key])

    async def multi_remove(self, keys: Iterable[str]) -> None:
        full_keys = [self._key(k) for k in keys]
        # Drop any value a previous fallback write left behind
        await self.fallback.remove_items(full_keys)
        if self.primary is not None:
            try:
                await self.primary.remove_items(full_keys)
            except Exception as e:
                logger.warning(f"⚠️ {self.primary.name} remove failed for {full_keys}: {e}")
                self._removed.update(full_keys)
            else:
                self._removed.difference_update(full_keys)

    # ------------------------------------------------------------------
    # Typed auth records
    # ------------------------------------------------------------------

    async def load_subscription(self) -> Optional[Subscription]:
        """Load the persisted subscription with its date fields rehydrated"""
        raw = await self._safe_get(STORAGE_KEY_SUBSCRIPTION)
        if raw is None:
            return None
        try:
            return Subscription.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding unreadable persisted subscription: {e}")
            return None

    async def load_principal(self) -> Optional[Principal]:
        raw = await self._safe_get(STORAGE_KEY_USER)
        if raw is None:
            return None
        try:
            return Principal.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding unreadable persisted user: {e}")
            return None

    async def save_subscription(self, subscription: Optional[Subscription]) -> None:
        await self._save_model(STORAGE_KEY_SUBSCRIPTION, subscription)

    async def save_auth_records(
        self,
        principal: Optional[Principal],
        subscription: Optional[Subscription],
    ) -> None:
        """Persist both records; a None record removes its key"""
        await self._save_model(STORAGE_KEY_USER, principal)
        await self._save_model(STORAGE_KEY_SUBSCRIPTION, subscription)

    async def clear_auth_records(self) -> None:
        await self._safe_remove([STORAGE_KEY_USER, STORAGE_KEY_SUBSCRIPTION])

    async def get_or_create_device_id(self) -> str:
        """Device correlation id, generated once and then reused"""
        device_id = await self._safe_get(STORAGE_KEY_DEVICE_ID)
        if device_id:
            return device_id
        device_id = f"device_{uuid.uuid4().hex}"
        await self._safe_set(STORAGE_KEY_DEVICE_ID, device_id)
        logger.info(f"Generated device correlation id {device_id}")
        return device_id

    async def set_pending_referrer(self, referrer_id: str) -> None:
        await self._safe_set(STORAGE_KEY_PENDING_REFERRER, json.dumps({"referrer_id": referrer_id}))

    async def get_pending_referrer(self) -> Optional[str]:
        raw = await self._safe_get(STORAGE_KEY_PENDING_REFERRER)
        if raw is None:
            return None
        try:
            return json.loads(raw).get("referrer_id")
        except (json.JSONDecodeError, AttributeError) as e:
            logger.error(f"Discarding unreadable pending referrer record: {e}")
            return None

    async def clear_pending_referrer(self) -> None:
        await self._safe_remove([STORAGE_KEY_PENDING_REFERRER])

    # ------------------------------------------------------------------
    # Helpers that never propagate I/O errors
    # ------------------------------------------------------------------

    async def _save_model(self, key: str, model) -> None:
        if model is None:
            await self._safe_remove([key])
        else:
            await self._safe_set(key, model.model_dump_json())

    async def _safe_get(self, key: str) -> Optional[str]:
        try:
            return await self.get(key)
        except Exception as e:
            logger.error(f"Failed to load persisted record '{key}': {e}", exc_info=True)
            return None

    async def _safe_set(self, key: str, value: str) -> None:
        try:
            await self.set(key, value)
        except Exception as e:
            logger.error(f"Failed to persist record '{key}': {e}", exc_info=True)

    async def _safe_remove(self, keys: List[str]) -> None:
        try:
            await self.multi_remove(keys)
        except Exception as e:
            logger.error(f"Failed to remove persisted records {keys}: {e}", exc_info=True)


def build_persistence_gateway(settings, session_factory: Optional[async_sessionmaker] = None) -> PersistenceGateway:
    """
    Pick the native store from configuration: Redis when REDIS_URL is set,
    otherwise the SQL database.
    """
    primary: Optional[KeyValueStore] = None
    if settings.redis_url:
        try:
            primary = RedisKeyValueStore.from_url(settings.redis_url)
            logger.info("✅ Redis configured as persistence store")
        except Exception as e:
            logger.warning(f"⚠️ Redis setup failed: {e}. Falling back to the database store.")
    if primary is None and session_factory is not None:
        primary = SqlKeyValueStore(session_factory)
    if primary is None:
        logger.info("ℹ️ No native store configured. Persistence will use memory only.")
    return PersistenceGateway(primary=primary, key_prefix=settings.storage_key_prefix)
