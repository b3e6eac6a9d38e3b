from ._base import (
    EntityNotFoundError,
    Page,
    PaginationInfo,
    RepositoryConfigurationError,
    RepositoryError,
    RepositorySettings,
    SortDirection,
    UnsupportedOperationError,
)
from .cache import (
    EXPIRES_END_OF_DAY,
    CacheKeyEngine,
    CacheMetrics,
    TaggedCache,
    TaggedCacheView,
)
from .columns import JoinSpec, append_table_name, parse_join_spec
from .core import Repository
from .joins import JoinRegistry
from .messages import MessageBag
from .ordering import OrderByScope
from .ranges import RangeExpression, RangeOperator, apply_range, parse_range
from .scopes import (
    CallbackScope,
    NamedScope,
    Scope,
    ScopeQueue,
    get_scope_type,
    named_scope,
    register_scope_type,
)
from .searching import SearchScope, create_search_clause

__all__ = [
    "EXPIRES_END_OF_DAY",
    "CacheKeyEngine",
    "CacheMetrics",
    "CallbackScope",
    "EntityNotFoundError",
    "JoinRegistry",
    "JoinSpec",
    "MessageBag",
    "NamedScope",
    "OrderByScope",
    "Page",
    "PaginationInfo",
    "RangeExpression",
    "RangeOperator",
    "Repository",
    "RepositoryConfigurationError",
    "RepositoryError",
    "RepositorySettings",
    "Scope",
    "ScopeQueue",
    "SearchScope",
    "SortDirection",
    "TaggedCache",
    "TaggedCacheView",
    "UnsupportedOperationError",
    "append_table_name",
    "apply_range",
    "create_search_clause",
    "get_scope_type",
    "named_scope",
    "parse_join_spec",
    "parse_range",
    "register_scope_type",
]
