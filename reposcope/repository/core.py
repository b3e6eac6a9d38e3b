"""Repository base class.

A repository wraps one SQLModel table. Fluent calls (``search``,
``order_by``, ``limit``, named scopes) only enqueue scopes; every terminal
operation builds a fresh statement, applies the default ordering and the
queued scopes, executes it through the bound ``AsyncSession`` and empties the
queue.

Example:
    class PostRepository(Repository[Post]):
        model = Post
        searchable = {"query": "title", "author": "authors:name,id,author_id"}
        orderable = {"title": "title", "author": "authors:name,id,author_id"}
        default_order_by = {"title": "asc"}

    posts = await PostRepository(session).search({"query": "sql"}).order_by(
        "author", "desc"
    ).paginate(per_page=20)
"""

import inspect
from contextlib import suppress

import typing as t
from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import InstanceState
from sqlalchemy import inspect as sa_inspect
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from reposcope.context import RequestContext, get_current_request
from reposcope.depends import depends
from reposcope.logger import get_logger

from ._base import (
    EntityNotFoundError,
    Page,
    PaginationInfo,
    RepositoryConfigurationError,
    RepositoryError,
    RepositorySettings,
    UnsupportedOperationError,
)
from .cache import EXPIRES_END_OF_DAY, CacheKeyEngine, Producer, TaggedCache
from .columns import append_table_name
from .joins import JoinRegistry, resolve_column
from .messages import MessageBag
from .ordering import orderable_column, orderable_keys
from .scopes import (
    CallbackScope,
    NamedScope,
    Scope,
    ScopeEntry,
    ScopeQueue,
    get_scope_type,
)

logger = get_logger(__name__)


class Repository[ModelT: SQLModel]:
    """Base class for model repositories.

    Subclasses bind ``model`` and may configure ``searchable``,
    ``orderable`` and ``default_order_by``.
    """

    EXPIRES_END_OF_DAY: t.ClassVar[str] = EXPIRES_END_OF_DAY

    model: t.ClassVar[type[t.Any] | None] = None
    searchable: t.ClassVar[t.Mapping[t.Any, t.Any] | t.Sequence[str]] = {}
    orderable: t.ClassVar[t.Mapping[t.Any, t.Any] | t.Sequence[str]] = {}
    default_order_by: t.ClassVar[t.Mapping[str, str]] = {}
    search_operator: t.ClassVar[str] = "like"

    flush_cache_on_write: t.ClassVar[bool] = True
    cache_minutes: t.ClassVar[int | str | None] = None

    _named_scopes: t.ClassVar[dict[str, NamedScope]] = {}

    def __init_subclass__(cls, **kwargs: t.Any) -> None:
        super().__init_subclass__(**kwargs)
        scopes: dict[str, NamedScope] = {}
        for klass in reversed(cls.__mro__):
            for value in vars(klass).values():
                if isinstance(value, NamedScope):
                    scopes[value.name] = value
        cls._named_scopes = scopes

    def __init__(
        self,
        session: AsyncSession | None = None,
        *,
        cache: TaggedCache | None = None,
        settings: RepositorySettings | None = None,
        request: RequestContext | None = None,
    ) -> None:
        if self.model is None:
            msg = f"The model class must be set on {type(self).__name__}"
            raise RepositoryConfigurationError(msg, operation="make_model")

        self._session = session
        self.settings = settings or depends.get_sync(RepositorySettings)
        self.cache = cache or depends.get_sync(TaggedCache)
        self._request = request

        self.scopes = ScopeQueue()
        self.joins = JoinRegistry()
        self.query: Select[t.Any] | None = None
        self._global_scopes: dict[str, str | type[Scope]] = {}
        self._instance_scopes: dict[str, t.Callable[..., Select[t.Any]]] = {}
        self._message_bag: MessageBag | None = None
        self._skip_ordering_once = False

        self._searchable = self._as_mapping(type(self).searchable)
        self._orderable = self._as_mapping(type(self).orderable)
        self._order_by = dict(type(self).default_order_by)

        self.model_instance = self.make_model()
        self.cache_engine = CacheKeyEngine(
            self.cache,
            self.cache_tag,
            locale=self.settings.locale,
            default_minutes=self.cache_minutes or self.settings.cache_minutes,
        )
        self.boot()

    def boot(self) -> None:
        """Hook for subclasses, called at the end of construction."""

    def __getattr__(self, name: str) -> t.Any:
        if name.startswith("_"):
            raise AttributeError(name)

        scope_func = self.__dict__.get("_instance_scopes", {}).get(name)
        if scope_func is None:
            named = type(self)._named_scopes.get(name)
            if named is None:
                raise UnsupportedOperationError(type(self).__name__, name)
            return named.__get__(self, type(self))

        def enqueue(*args: t.Any, **kwargs: t.Any) -> t.Self:
            return self.add_scope_query(CallbackScope(scope_func, name, args, kwargs))

        return enqueue

    def register_named_scope(
        self,
        name: str,
        scope_func: t.Callable[..., Select[t.Any]],
    ) -> t.Self:
        """Add a named scope to this instance only.

        ``scope_func`` receives ``(repository, builder, *args, **kwargs)``.
        """
        self._instance_scopes[name] = scope_func
        return self

    # Model plumbing

    def make_model(self) -> ModelT:
        if self.model is None:
            msg = f"The model class must be set on {type(self).__name__}"
            raise RepositoryConfigurationError(msg, operation="make_model")
        self.model_instance = self.model()
        return self.model_instance

    def get_model(self) -> ModelT:
        return self.model_instance

    def get_new(self, **attributes: t.Any) -> ModelT:
        """Return a fresh entity; collected messages are discarded."""
        self._message_bag = None
        return t.cast(type[ModelT], self.model)(**attributes)

    @property
    def table(self) -> t.Any:
        return self.model.__table__  # type: ignore[union-attr]

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def primary_key(self) -> ColumnElement[t.Any]:
        columns = list(self.table.primary_key.columns)
        if not columns:
            msg = f"{self.table_name} has no primary key"
            raise RepositoryConfigurationError(msg, entity_type=self.entity_name)
        return columns[0]

    @property
    def entity_name(self) -> str:
        return getattr(self.model, "__name__", str(self.model))

    @property
    def cache_tag(self) -> str:
        cls = type(self)
        return f"{cls.__module__}.{cls.__qualname__}"

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            msg = f"No session bound to {type(self).__name__}"
            raise RepositoryConfigurationError(msg, entity_type=self.entity_name)
        return self._session

    @property
    def request(self) -> RequestContext | None:
        return self._request or get_current_request()

    def qualify_column(self, name: str) -> ColumnElement[t.Any]:
        """Resolve a bare, dotted or escaped column name against the statement."""
        return resolve_column(append_table_name(name, self.table_name), self.table, self.joins)

    # Searchable / orderable configuration

    @staticmethod
    def _as_mapping(values: t.Any) -> dict[t.Any, t.Any]:
        if isinstance(values, str):
            return {values: values}
        if isinstance(values, t.Mapping):
            return dict(values)
        return {value: value for value in values}

    def set_searchable(self, values: t.Any, safe: bool = False) -> t.Self:
        """Add searchable entries; with ``safe`` existing keys are kept."""
        for key, value in self._as_mapping(values).items():
            if safe and key in self._searchable:
                continue
            self._searchable[key] = value
        return self

    def get_searchable(self) -> dict[t.Any, t.Any]:
        return self._searchable

    def set_orderable(self, values: t.Any, safe: bool = False) -> t.Self:
        for key, value in self._as_mapping(values).items():
            if safe and key in self._orderable:
                continue
            self._orderable[key] = value
        return self

    def get_orderable(self) -> dict[t.Any, t.Any]:
        return self._orderable

    def get_orderable_keys(self) -> list[str]:
        return orderable_keys(self._orderable)

    def set_order_by(self, order_by: t.Mapping[str, str]) -> t.Self:
        self._order_by = dict(order_by)
        return self

    def get_order_by(self) -> dict[str, str]:
        return self._order_by

    # Scopes

    def add_global_scopes(self, scopes: t.Mapping[str, str | type[Scope]]) -> t.Self:
        for name, variant in scopes.items():
            self.add_global_scope(name, variant)
        return self

    def add_global_scope(self, name: str, variant: str | type[Scope]) -> t.Self:
        self._global_scopes[name] = variant
        return self

    def remove_global_scope(self, *names: str) -> t.Self:
        for name in names:
            self._global_scopes.pop(name, None)
        return self

    def resolve_scope(self, name: str) -> type[Scope] | None:
        """Scope type bound to a role, preferring this repository's override.

        An override naming an unknown type falls back to the settings.
        """
        for variant in (self._global_scopes.get(name), self.settings.scopes.get(name)):
            if variant is None:
                continue
            if isinstance(variant, type) and issubclass(variant, Scope):
                return variant
            with suppress(RepositoryConfigurationError):
                return get_scope_type(variant)
        return None

    def add_scope_query(self, scope: ScopeEntry, key: str | None = None) -> t.Self:
        self.scopes.enqueue(scope, key)
        return self

    def get_scope_query(self) -> list[ScopeEntry]:
        return list(self.scopes)

    def scope_reset(self) -> t.Self:
        """Drop pending scopes and any one-time ordering override."""
        self.scopes.clear()
        self.joins.reset()
        self._skip_ordering_once = False
        return self

    def search(self, queries: t.Mapping[str, t.Any] | str | None) -> t.Self:
        if isinstance(queries, str):
            queries = {"query": queries}
        if queries:
            scope_type = self.resolve_scope("search")
            if scope_type is not None:
                self.add_scope_query(scope_type(queries), "search")  # type: ignore[call-arg]
        return self

    def order_by(self, column: str, direction: str | None = None) -> t.Self:
        """Sort by an orderable key, replacing the default ordering once.

        Keys that are not orderable are ignored.
        """
        if column not in self.get_orderable_keys():
            return self

        scope_type = self.resolve_scope("order_by")
        if scope_type is not None:
            self._skip_ordering_once = True
            self.add_scope_query(
                scope_type(orderable_column(self._orderable, column), direction, key=column),  # type: ignore[call-arg]
                "order_by",
            )
        return self

    def limit(self, limit: t.Any) -> t.Self:
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            limit = 0
        if limit:
            self.add_scope_query(lambda builder: builder.limit(limit))
        return self

    # Building

    def new_query(self, skip_ordering: bool = False) -> Select[t.Any]:
        """Build a fresh statement with ordering and pending scopes applied.

        Only the first default ordering pair is used, and not at all when an
        explicit ``order_by`` is pending.
        """
        self.joins.reset()
        builder: Select[t.Any] = select(self.model)

        if not skip_ordering and not self._skip_ordering_once and self._order_by:
            scope_type = self.resolve_scope("order_by")
            column, direction = next(iter(self._order_by.items()))
            if scope_type is not None:
                builder = scope_type(  # type: ignore[call-arg]
                    orderable_column(self._orderable, column), direction, key=column
                ).apply(builder, self)
        self._skip_ordering_once = False

        self.query = self.scopes.flush(builder, self)
        return self.query

    def get_builder(self, skip_ordering: bool = False) -> Select[t.Any]:
        return self.new_query(skip_ordering)

    def to_sql(self) -> str:
        builder = self.new_query()
        bind = self._session.bind if self._session is not None else None
        dialect = bind.dialect if bind is not None else None
        return str(builder.compile(dialect=dialect))

    # Reads

    async def _fetch_all(self, builder: Select[t.Any]) -> list[ModelT]:
        result = await self.session.execute(builder)
        return list(result.scalars().all())

    async def _fetch_first(self, builder: Select[t.Any]) -> ModelT | None:
        result = await self.session.execute(builder.limit(1))
        return result.scalars().first()

    async def _count(self, builder: Select[t.Any]) -> int:
        statement = select(func.count()).select_from(builder.order_by(None).subquery())
        result = await self.session.execute(statement)
        return int(result.scalar_one())

    async def all(self) -> list[ModelT]:
        return await self._fetch_all(self.new_query())

    async def find(self, entity_id: t.Any) -> ModelT | None:
        builder = self.new_query().where(self.primary_key == entity_id)
        return await self._fetch_first(builder)

    async def find_or_fail(self, entity_id: t.Any) -> ModelT:
        """Find an entity by primary key.

        Raises:
            EntityNotFoundError: If no row matches
        """
        entity = await self.find(entity_id)
        if entity is None:
            raise EntityNotFoundError(self.entity_name, entity_id)
        return entity

    async def find_by(self, field: str, value: t.Any) -> ModelT | None:
        builder = self.new_query().where(self.qualify_column(field) == value)
        return await self._fetch_first(builder)

    async def find_all_by(self, field: str, value: t.Any) -> list[ModelT]:
        column = self.qualify_column(field)
        if isinstance(value, list | tuple | set):
            clause = column.in_(list(value))
        else:
            clause = column == value
        return await self._fetch_all(self.new_query().where(clause))

    def _where_clause(self, field: str, operator: str, value: t.Any) -> ColumnElement[bool]:
        column = self.qualify_column(field)
        match operator.strip().lower():
            case "=" | "==":
                return column == value
            case "!=" | "<>":
                return column != value
            case ">":
                return column > value
            case ">=":
                return column >= value
            case "<":
                return column < value
            case "<=":
                return column <= value
            case "like":
                return column.like(value)
            case "ilike":
                return column.ilike(value)
            case "in":
                return column.in_(list(value))
            case "not in":
                return column.not_in(list(value))
            case _:
                msg = f"Unsupported operator: {operator}"
                raise RepositoryError(
                    msg, entity_type=self.entity_name, operation="find_where"
                )

    @staticmethod
    def _is_condition(value: t.Any) -> bool:
        return (
            isinstance(value, list | tuple)
            and len(value) == 3
            and isinstance(value[0], str)
            and isinstance(value[1], str)
        )

    async def find_where(self, where: t.Mapping[str, t.Any]) -> list[ModelT]:
        """Find entities matching every condition.

        Values are compared for equality, sequences with ``IN``. A
        ``(field, operator, value)`` triple selects another operator.
        """
        clauses = []
        for field, value in where.items():
            if self._is_condition(value):
                clauses.append(self._where_clause(*value))
            elif isinstance(value, list | tuple | set):
                clauses.append(self._where_clause(field, "in", value))
            else:
                clauses.append(self._where_clause(field, "=", value))
        return await self._fetch_all(self.new_query().where(*clauses))

    async def first(self) -> ModelT | None:
        return await self._fetch_first(self.new_query())

    async def count(self) -> int:
        return await self._count(self.new_query())

    async def pluck(self, value: str, key: str | None = None) -> list[t.Any] | dict[t.Any, t.Any]:
        """Values of one column, or a mapping of ``key`` column to values."""
        builder = self.new_query()
        value_column = self.qualify_column(value)
        if key is None:
            result = await self.session.execute(builder.with_only_columns(value_column))
            return list(result.scalars().all())

        key_column = self.qualify_column(key)
        result = await self.session.execute(
            builder.with_only_columns(key_column, value_column)
        )
        return {row[0]: row[1] for row in result.all()}

    def _resolve_page(self, page: t.Any, page_name: str) -> int:
        if page is None and self.request is not None:
            page = self.request.get(page_name)
        try:
            return max(int(page or 1), 1)
        except (TypeError, ValueError):
            return 1

    async def paginate(
        self,
        per_page: int | None = None,
        page: int | None = None,
        page_name: str = "page",
    ) -> Page[ModelT]:
        """Return one page of results with a total count.

        ``per_page`` defaults to the configured page size and is clamped to
        the configured maximum.
        """
        per_page = int(per_page or 0) or self.settings.per_page
        per_page = min(per_page, self.settings.effective_max_per_page)
        page = self._resolve_page(page, page_name)

        builder = self.new_query()
        pagination = PaginationInfo(
            page=page,
            page_size=per_page,
            total_items=await self._count(builder),
            page_name=page_name,
        )
        items = await self._fetch_all(builder.limit(per_page).offset(pagination.offset))
        return Page(items=items, pagination=pagination)

    async def simple_paginate(
        self,
        per_page: int | None = None,
        page: int | None = None,
        page_name: str = "page",
    ) -> Page[ModelT]:
        """Return one page without counting; one extra row detects a next page."""
        per_page = int(per_page or 0) or self.settings.per_page
        page = self._resolve_page(page, page_name)

        pagination = PaginationInfo(page=page, page_size=per_page, page_name=page_name)
        builder = self.new_query()
        items = await self._fetch_all(builder.limit(per_page + 1).offset(pagination.offset))
        pagination.more_pages = len(items) > per_page
        return Page(items=items[:per_page], pagination=pagination)

    # Cached reads

    def skipped_cache(self) -> bool:
        if not self.settings.cache_enabled:
            return True
        request = self.request
        return request is not None and request.has(self.settings.cache_skip_param)

    def get_cache_key(
        self,
        method: str,
        args: t.Sequence[t.Any] | None = None,
        tag: str | None = None,
    ) -> str:
        return self.cache_engine.make_key(
            method, args, self.scopes.fingerprint(), tag or self.cache_tag
        )

    async def cache_callback(
        self,
        method: str,
        args: t.Sequence[t.Any],
        producer: Producer,
        ttl: int | str | None = None,
    ) -> t.Any:
        """Run ``producer`` behind the cache.

        The key is derived before ``producer`` consumes the pending scopes; on
        a hit the pending scopes are dropped as if they had been applied.
        """
        if self.skipped_cache():
            logger.debug(f"Cache bypassed: {self.cache_tag}@{method}")
            result = producer()
            if inspect.isawaitable(result):
                result = await result
            return result

        key = self.get_cache_key(method, args)
        try:
            return await self.cache_engine.remember(key, producer, ttl)
        finally:
            self.scope_reset()

    async def cached_all(self, ttl: int | str | None = None) -> list[ModelT]:
        return await self.cache_callback("all", [], self.all, ttl)

    async def cached_find(self, entity_id: t.Any, ttl: int | str | None = None) -> ModelT | None:
        return await self.cache_callback(
            "find", [entity_id], lambda: self.find(entity_id), ttl
        )

    async def cached_count(self, ttl: int | str | None = None) -> int:
        return await self.cache_callback("count", [], self.count, ttl)

    async def cached_paginate(
        self,
        per_page: int | None = None,
        page: int | None = None,
        page_name: str = "page",
        ttl: int | str | None = None,
    ) -> Page[ModelT]:
        page = self._resolve_page(page, page_name)
        return await self.cache_callback(
            "paginate",
            [per_page, page, page_name],
            lambda: self.paginate(per_page, page, page_name),
            ttl,
        )

    async def flush_cache(self) -> bool:
        """Invalidate every cached read of this repository type."""
        if not self.flush_cache_on_write or not self.settings.cache_enabled:
            return False
        await self.cache_engine.flush()
        return True

    # Writes

    async def _run_hook(self, hook: t.Callable[[ModelT], t.Any], entity: ModelT) -> bool:
        result = hook(entity)
        if inspect.isawaitable(result):
            result = await result
        return result is not False

    def saving(self, entity: ModelT) -> t.Any:
        """Return False to cancel a create or update."""
        return True

    def deleting(self, entity: ModelT) -> t.Any:
        """Return False to cancel a delete."""
        return True

    async def _handle_error(self, error: Exception, operation: str) -> t.NoReturn:
        logger.exception(f"{self.entity_name} {operation} failed")
        await self.session.rollback()
        msg = f"Repository operation failed: {error}"
        raise RepositoryError(
            msg,
            entity_type=self.entity_name,
            operation=operation,
        ) from error

    async def _save(self, entity: ModelT, operation: str) -> ModelT | bool:
        if not await self._run_hook(self.saving, entity):
            logger.warning(f"{self.entity_name} {operation} cancelled by saving hook")
            return False

        try:
            self.session.add(entity)
            await self.session.flush()
            await self.session.refresh(entity)
        except SQLAlchemyError as error:
            await self._handle_error(error, operation)

        await self.flush_cache()
        return entity

    async def create(self, **attributes: t.Any) -> ModelT | bool:
        """Create and persist a new entity.

        Returns:
            The entity, or False when the ``saving`` hook cancels the write

        Raises:
            RepositoryError: If the database rejects the write
        """
        return await self._save(self.get_new(**attributes), "create")

    async def update(self, entity: ModelT, **attributes: t.Any) -> ModelT | bool:
        for name, value in attributes.items():
            setattr(entity, name, value)
        return await self._save(entity, "update")

    def _is_entity(self, value: t.Any) -> bool:
        return isinstance(sa_inspect(value, raiseerr=False), InstanceState)

    async def delete(self, entity: t.Any) -> bool:
        """Delete an entity, or the entity with the given primary key.

        Returns False when nothing was found or the ``deleting`` hook cancels.
        """
        if not self._is_entity(entity):
            entity = await self.find(entity)
            if entity is None:
                return False

        if not await self._run_hook(self.deleting, entity):
            logger.warning(f"{self.entity_name} delete cancelled by deleting hook")
            return False

        try:
            await self.session.delete(entity)
            await self.session.flush()
        except SQLAlchemyError as error:
            await self._handle_error(error, "delete")

        await self.flush_cache()
        return True

    # Messages

    def get_message_bag(self) -> MessageBag:
        if self._message_bag is None:
            self._message_bag = MessageBag()
        return self._message_bag

    def add_message(self, message: str, key: str = "message") -> t.Self:
        self.get_message_bag().add(key, message)
        return self

    def has_message(self, key: str = "message") -> bool:
        return self.get_message_bag().has(key)

    def get_message(
        self,
        key: str | None = None,
        format: str | None = None,
        default: str = "",
    ) -> str:
        return self.get_message_bag().first(key, format) or default

    def add_error(self, message: str) -> t.Self:
        return self.add_message(message, "error")

    def has_errors(self) -> bool:
        return self.get_message_bag().has("error")

    def get_errors(self, format: str | None = None) -> list[str]:
        return self.get_message_bag().get("error", format)

    def get_error_message(self, default: str = "") -> str:
        return self.get_message("error") or default
