"""Repository pattern for SQLModel with deferred scopes and tagged caching."""

import typing as t

from .context import (
    MappingRequestContext,
    RequestContext,
    StarletteRequestContext,
    get_current_request,
    reset_current_request,
    set_current_request,
)
from .depends import depends
from .logger import configure_logging, get_logger
from .repository import (
    Repository,
    RepositoryError,
    RepositorySettings,
    TaggedCache,
    named_scope,
)


def configure(
    settings: RepositorySettings | None = None,
    cache: TaggedCache | None = None,
) -> tuple[RepositorySettings, TaggedCache]:
    """Register the settings and cache shared by repositories.

    Repositories constructed without explicit collaborators use these.
    Missing arguments are replaced with fresh defaults.
    """
    settings = depends.set(RepositorySettings, settings or RepositorySettings())
    cache = depends.set(TaggedCache, cache or TaggedCache())
    return t.cast(RepositorySettings, settings), t.cast(TaggedCache, cache)


configure()

__all__ = [
    "MappingRequestContext",
    "Repository",
    "RepositoryError",
    "RepositorySettings",
    "RequestContext",
    "StarletteRequestContext",
    "TaggedCache",
    "configure",
    "configure_logging",
    "depends",
    "get_current_request",
    "get_logger",
    "named_scope",
    "reset_current_request",
    "set_current_request",
]
