"""Repository base types.

Provides the pieces shared by every part of the repository layer:
- Error hierarchy for repository operations
- Sort direction and pagination value objects
- Repository settings
"""

from enum import Enum

import typing as t
from dataclasses import dataclass, field
from pydantic import Field, model_validator
from pydantic_settings import SettingsConfigDict
from typing import Any, Generic, TypeVar

from reposcope.config import Settings

EntityType = TypeVar("EntityType")


class RepositoryError(Exception):
    """Base exception for repository operations."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(message)


class RepositoryConfigurationError(RepositoryError):
    """Raised when a repository subclass is missing required configuration."""


class EntityNotFoundError(RepositoryError):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            entity_type=entity_type,
            operation="find",
        )
        self.entity_id = entity_id


class UnsupportedOperationError(RepositoryError, AttributeError):
    """Raised when an unknown method is called on a repository."""

    def __init__(self, repository: str, method: str) -> None:
        super().__init__(
            f"Call to undefined method {repository}.{method}()",
            operation=method,
        )
        self.method = method


class SortDirection(Enum):
    """Sort direction enumeration."""

    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: "str | SortDirection | None") -> "SortDirection":
        """Anything other than a case-insensitive ``desc`` sorts ascending."""
        if isinstance(value, SortDirection):
            return value
        if isinstance(value, str) and value.strip().lower() == "desc":
            return cls.DESC
        return cls.ASC


@dataclass
class PaginationInfo:
    """Pagination information."""

    page: int = 1
    page_size: int = 50
    total_items: int | None = None
    total_pages: int | None = None
    page_name: str = "page"
    more_pages: bool | None = None

    def __post_init__(self) -> None:
        if self.total_items is not None and self.total_pages is None:
            self.total_pages = max(
                (self.total_items + self.page_size - 1) // self.page_size, 1
            )

    @property
    def offset(self) -> int:
        """Calculate offset for database queries."""
        return (self.page - 1) * self.page_size

    @property
    def has_next(self) -> bool:
        """Check if there's a next page."""
        if self.total_pages is not None:
            return self.page < self.total_pages
        return bool(self.more_pages)

    @property
    def has_previous(self) -> bool:
        """Check if there's a previous page."""
        return self.page > 1


@dataclass
class Page(Generic[EntityType]):
    """One page of results together with its pagination information."""

    items: list[EntityType] = field(default_factory=list)
    pagination: PaginationInfo = field(default_factory=PaginationInfo)

    def __iter__(self) -> t.Iterator[EntityType]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


class RepositorySettings(Settings):
    """Repository configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="REPOSITORIES_",
        yaml_file="settings/repositories.yaml",
    )

    # Pagination
    per_page: int = Field(default=50, ge=1)
    max_per_page: int = Field(default=100, ge=0, description="0 means 100")

    # Caching
    cache_enabled: bool = True
    cache_skip_param: str = "skipCache"
    cache_minutes: int = Field(default=60, ge=1, description="Default TTL in minutes")
    locale: str = "en"

    # Core scope roles mapped to registered scope variants
    scopes: dict[str, str] = Field(
        default_factory=lambda: {"search": "search", "order_by": "order_by"},
    )

    @property
    def effective_max_per_page(self) -> int:
        return self.max_per_page or 100

    @model_validator(mode="after")
    def validate_page_size(self) -> "RepositorySettings":
        if self.per_page > self.effective_max_per_page:
            msg = "per_page cannot exceed max_per_page"
            raise ValueError(msg)
        return self
