"""Repository caching.

Provides:
- A tag-capable cache on top of an aiocache backend
- Cache key derivation from method, arguments and pending scopes
- TTL resolution, including the end-of-day sentinel
"""

import hashlib
import inspect
import json
from uuid import uuid4

import arrow
import typing as t
from aiocache.backends.memory import SimpleMemoryCache
from aiocache.serializers import PickleSerializer
from dataclasses import dataclass
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import InstanceState

from reposcope.logger import get_logger

logger = get_logger(__name__)

EXPIRES_END_OF_DAY = "eod"
SHARED_TAG = "repositories"

Producer = t.Callable[[], t.Any]


@dataclass
class CacheMetrics:
    """Cache performance metrics."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


def _memory_backend(namespace: str) -> SimpleMemoryCache:
    cache = SimpleMemoryCache(serializer=PickleSerializer(), namespace=namespace)
    cache.timeout = 0.0
    return cache


def _flatten(names: t.Iterable[t.Any]) -> list[str]:
    flat: list[str] = []
    for name in names:
        if isinstance(name, list | tuple | set):
            flat.extend(_flatten(name))
        else:
            flat.append(str(name))
    return flat


class TaggedCache:
    """Cache store whose entries can be invalidated by tag.

    Every tag owns a random token. An entry's physical key embeds the tokens
    of its tags, so rotating a token makes every entry stored under that tag
    unreachable; orphaned entries then expire through their TTL.
    """

    def __init__(
        self,
        backend: t.Any = None,
        *,
        namespace: str = "reposcope:",
    ) -> None:
        self.backend = backend if backend is not None else _memory_backend(namespace)
        self.metrics = CacheMetrics()

    def tags(self, *names: str | t.Iterable[str]) -> "TaggedCacheView":
        return TaggedCacheView(self, _flatten(names))

    @staticmethod
    def tag_key(name: str) -> str:
        return f"tag:{name}:key"

    async def tag_token(self, name: str) -> str:
        token = await self.backend.get(self.tag_key(name))
        if token is None:
            token = await self.reset_tag(name)
        return t.cast(str, token)

    async def reset_tag(self, name: str) -> str:
        token = uuid4().hex
        await self.backend.set(self.tag_key(name), token)
        return token


class TaggedCacheView:
    """Operations on the entries sharing one set of tags."""

    def __init__(self, store: TaggedCache, names: list[str]) -> None:
        self.store = store
        self.names = names

    async def namespace(self) -> str:
        tokens = [await self.store.tag_token(name) for name in self.names]
        return hashlib.md5("|".join(tokens).encode(), usedforsecurity=False).hexdigest()

    async def tagged_key(self, key: str) -> str:
        return f"{await self.namespace()}:{key}"

    async def get(self, key: str, default: t.Any = None) -> t.Any:
        stored = await self.store.backend.get(await self.tagged_key(key))
        if stored is None:
            return default
        return stored[0]

    async def has(self, key: str) -> bool:
        return await self.store.backend.get(await self.tagged_key(key)) is not None

    async def put(self, key: str, value: t.Any, minutes: int | None = None) -> None:
        # Wrapped so that None is a cacheable value
        ttl = minutes * 60 if minutes else None
        await self.store.backend.set(await self.tagged_key(key), (value,), ttl=ttl)
        self.store.metrics.writes += 1

    async def forget(self, key: str) -> bool:
        return bool(await self.store.backend.delete(await self.tagged_key(key)))

    async def remember(self, key: str, minutes: int | None, producer: Producer) -> t.Any:
        """Return the cached value for ``key``, producing and storing it on a miss.

        ``producer`` may be a plain callable or return an awaitable.
        """
        tagged_key = await self.tagged_key(key)
        stored = await self.store.backend.get(tagged_key)
        if stored is not None:
            self.store.metrics.hits += 1
            logger.debug(f"Cache hit: {key}")
            return stored[0]

        self.store.metrics.misses += 1
        logger.debug(f"Cache miss: {key}")
        value = producer()
        if inspect.isawaitable(value):
            value = await value

        ttl = minutes * 60 if minutes else None
        await self.store.backend.set(tagged_key, (value,), ttl=ttl)
        self.store.metrics.writes += 1
        return value

    async def flush(self) -> None:
        for name in self.names:
            await self.store.reset_tag(name)
        self.store.metrics.invalidations += 1
        logger.debug(f"Flushed cache tags: {', '.join(self.names)}")


def minutes_until_end_of_day(now: arrow.Arrow | None = None) -> int:
    now = now or arrow.now()
    remaining = (now.ceil("day") - now).total_seconds() / 60
    return max(round(remaining), 1)


def reduce_argument(value: t.Any) -> t.Any:
    """Make ``value`` stable for hashing.

    Persistent entities become ``"{type}|{primary key}"``; containers are
    reduced element by element.
    """
    if isinstance(value, dict):
        return {str(key): reduce_argument(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [reduce_argument(item) for item in value]

    state = sa_inspect(value, raiseerr=False)
    if isinstance(state, InstanceState):
        cls = type(value)
        identity = state.identity
        if identity is None:
            key: t.Any = None
        elif len(identity) == 1:
            key = identity[0]
        else:
            key = ",".join(str(part) for part in identity)
        return f"{cls.__module__}.{cls.__qualname__}|{key}"
    return value


class CacheKeyEngine:
    """Derives cache keys and TTLs and wraps producers for one repository.

    Args:
        cache: Shared tagged cache
        tag: The repository's type tag
        locale: Prefix that separates keys per locale
        default_minutes: TTL applied when no override is given
    """

    def __init__(
        self,
        cache: TaggedCache,
        tag: str,
        *,
        locale: str = "en",
        default_minutes: int | str = 60,
    ) -> None:
        self.cache = cache
        self.tag = tag
        self.locale = locale
        self.default_minutes = default_minutes

    @property
    def tags(self) -> list[str]:
        return [SHARED_TAG, self.tag]

    def make_key(
        self,
        method: str,
        args: t.Sequence[t.Any] | None = None,
        scope_state: t.Any = None,
        tag: str | None = None,
    ) -> str:
        """Build ``{locale}-{tag}@{method}-{digest}``.

        The digest covers the reduced arguments and the pending scope state, so
        equal calls made with equal queued scopes share a key.
        """
        payload = json.dumps(
            reduce_argument(list(args or [])), sort_keys=True, default=str
        ) + json.dumps(scope_state or [], sort_keys=True, default=str)
        digest = hashlib.md5(payload.encode(), usedforsecurity=False).hexdigest()
        return f"{self.locale}-{tag or self.tag}@{method}-{digest}"

    def resolve_ttl(self, ttl: int | str | None = None) -> int:
        """Minutes to keep an entry; a missing or zero override uses the default."""
        minutes = ttl or self.default_minutes
        if minutes == EXPIRES_END_OF_DAY:
            return minutes_until_end_of_day()
        return int(minutes)

    async def remember(
        self,
        key: str,
        producer: Producer,
        ttl: int | str | None = None,
    ) -> t.Any:
        return await self.cache.tags(self.tags).remember(
            key, self.resolve_ttl(ttl), producer
        )

    async def flush(self) -> None:
        await self.cache.tags(self.tag).flush()
