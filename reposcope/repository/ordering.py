"""Order-by scope."""

import typing as t
from sqlalchemy import Select

from ._base import SortDirection
from .columns import JoinSpec, is_join_spec, parse_join_spec
from .joins import join_spec
from .scopes import Scope, register_scope_type

if t.TYPE_CHECKING:
    from .core import Repository


def orderable_keys(orderable: t.Mapping[t.Any, t.Any] | t.Sequence[str]) -> list[str]:
    """Logical sort keys; unnamed entries are sortable under their own column."""
    if isinstance(orderable, str):
        return [orderable]
    if not isinstance(orderable, t.Mapping):
        return list(orderable)
    return [value if isinstance(key, int) else key for key, value in orderable.items()]


def orderable_column(orderable: t.Mapping[t.Any, t.Any] | t.Sequence[str], key: str) -> str:
    """Column (or join-spec) a logical sort key maps to."""
    if isinstance(orderable, t.Mapping):
        column = orderable.get(key)
        if isinstance(column, str):
            return column
    return key


@register_scope_type("order_by")
class OrderByScope(Scope):
    """Single ``ORDER BY`` on a column or a join-spec.

    A join-spec is left joined so rows without the relation are kept.
    A missing related key defaults to ``key``, the logical sort key.
    """

    name = "order_by"

    def __init__(
        self,
        column: str,
        direction: str | SortDirection | None = None,
        key: str | None = None,
    ) -> None:
        self.column = column
        self.direction = SortDirection.parse(direction)
        self.key = key or column

    def to_dict(self) -> dict[str, t.Any]:
        return {
            "scope": self.name,
            "column": self.column,
            "direction": self.direction.value,
        }

    def apply(self, builder: Select[t.Any], repository: "Repository[t.Any]") -> Select[t.Any]:
        name = self.column
        if is_join_spec(name):
            spec = t.cast(JoinSpec, parse_join_spec(name)).with_related_key(self.key)
            builder, alias = join_spec(
                builder, repository.joins, spec, repository.table, outer=True
            )
            if alias is None:
                return builder
            name = f"{alias}.{spec.column}"

        column = repository.qualify_column(name)
        if self.direction is SortDirection.DESC:
            return builder.order_by(column.desc())
        return builder.order_by(column.asc())
