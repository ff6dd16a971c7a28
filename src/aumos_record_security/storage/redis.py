"""Redis-backed permission storage.

Key layout
----------
::

    objectql:permissions:<objectName>  ->  JSON(PermissionConfig)
    objectql:permissions:__index__     ->  set of all object names

No Redis driver is bundled.  Callers pass a factory returning any client
that satisfies :class:`RedisClient`, for example
``lambda url: redis.asyncio.from_url(url, decode_responses=True)``.
"""
from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Iterable, Protocol, Union

from pydantic import ValidationError

from aumos_record_security.errors import PermissionConfigError
from aumos_record_security.permissions.models import PermissionConfig
from aumos_record_security.storage.base import PermissionStorage, coerce_configs

logger = logging.getLogger(__name__)

KEY_PREFIX: str = "objectql:permissions:"
INDEX_KEY: str = f"{KEY_PREFIX}__index__"


class RedisClient(Protocol):
    """Subset of the ``redis.asyncio`` client used by the storage."""

    async def get(self, key: str) -> str | bytes | None: ...

    async def set(self, key: str, value: str) -> object: ...

    async def delete(self, *keys: str) -> object: ...

    async def sadd(self, key: str, *members: str) -> object: ...

    async def smembers(self, key: str) -> set[str] | set[bytes]: ...

    async def srem(self, key: str, *members: str) -> object: ...


RedisClientFactory = Callable[[str], Union[RedisClient, Awaitable[RedisClient]]]


def _text(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisPermissionStorage(PermissionStorage):
    """Stores one JSON document per object plus an index set.

    Parameters
    ----------
    redis_url:
        Connection URL handed to ``client_factory``.
    client_factory:
        Callable (sync or async) building the client on first use.
    initial_permissions:
        Configurations seeded when the index is empty, and on ``reload``.

    Raises
    ------
    PermissionConfigError
        If ``redis_url`` is empty.
    """

    def __init__(
        self,
        redis_url: str | None,
        client_factory: RedisClientFactory,
        initial_permissions: Iterable[PermissionConfig | dict[str, object]] | None = None,
    ) -> None:
        if not redis_url:
            raise PermissionConfigError("redis_url is required for Redis permission storage")
        self._redis_url = redis_url
        self._client_factory = client_factory
        self._initial_permissions = coerce_configs(initial_permissions)
        self._client: RedisClient | None = None

    async def _get_client(self) -> RedisClient:
        """Connect lazily and seed the index on first access."""
        if self._client is None:
            client = self._client_factory(self._redis_url)
            if inspect.isawaitable(client):
                client = await client
            self._client = client  # type: ignore[assignment]
            existing = await self._client.smembers(INDEX_KEY)  # type: ignore[union-attr]
            if not existing and self._initial_permissions:
                await self._seed(self._client)  # type: ignore[arg-type]
        return self._client  # type: ignore[return-value]

    async def _seed(self, client: RedisClient) -> None:
        for config in self._initial_permissions:
            await client.set(f"{KEY_PREFIX}{config.object}", config.model_dump_json())
            await client.sadd(INDEX_KEY, config.object)
        logger.info("Seeded %d permission configs into redis", len(self._initial_permissions))

    @staticmethod
    def _decode(object_name: str, raw: str | bytes) -> PermissionConfig | None:
        try:
            return PermissionConfig.model_validate_json(_text(raw))
        except ValidationError:
            logger.warning("Skipping corrupt permission config for %s in redis", object_name)
            return None

    async def load(self, object_name: str) -> PermissionConfig | None:
        client = await self._get_client()
        raw = await client.get(f"{KEY_PREFIX}{object_name}")
        if not raw:
            return None
        return self._decode(object_name, raw)

    async def load_all(self) -> dict[str, PermissionConfig]:
        client = await self._get_client()
        result: dict[str, PermissionConfig] = {}
        for member in await client.smembers(INDEX_KEY):
            name = _text(member)
            raw = await client.get(f"{KEY_PREFIX}{name}")
            if raw:
                config = self._decode(name, raw)
                if config is not None:
                    result[name] = config
        return result

    async def reload(self) -> None:
        """Clear every stored config and re-seed from the initial set."""
        client = await self._get_client()
        existing = [_text(m) for m in await client.smembers(INDEX_KEY)]
        if existing:
            await client.delete(*[f"{KEY_PREFIX}{name}" for name in existing])
            await client.srem(INDEX_KEY, *existing)
        await self._seed(client)

    async def save(self, config: PermissionConfig) -> None:
        client = await self._get_client()
        await client.set(f"{KEY_PREFIX}{config.object}", config.model_dump_json())
        await client.sadd(INDEX_KEY, config.object)

    async def remove(self, object_name: str) -> None:
        client = await self._get_client()
        await client.delete(f"{KEY_PREFIX}{object_name}")
        await client.srem(INDEX_KEY, object_name)
