"""Join bookkeeping for one query build.

Search and order-by scopes may both ask for the same relation; the registry
guarantees a table (or explicit alias) is joined at most once per build and
remembers the selectable each alias refers to so qualified column names can
be resolved back to real columns.
"""

import typing as t
from sqlalchemy import ColumnElement, FromClause, Select, Table, literal_column

from reposcope.logger import get_logger

from .columns import JoinSpec

logger = get_logger(__name__)

JoinFactory = t.Callable[[Select[t.Any], str], tuple[Select[t.Any], str | None]]


class JoinRegistry:
    """Aliases resolved during the current query build."""

    def __init__(self) -> None:
        self._aliases: dict[str, str] = {}
        self._selectables: dict[str, FromClause] = {}

    def reset(self) -> None:
        self._aliases.clear()
        self._selectables.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._aliases

    def __len__(self) -> int:
        return len(self._aliases)

    @property
    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    def add_join(
        self,
        builder: Select[t.Any],
        key: str,
        factory: JoinFactory,
    ) -> tuple[Select[t.Any], str | None]:
        """Join ``key`` once, reusing the alias of an earlier join.

        Args:
            builder: Statement being built
            key: Joining table name or explicit alias
            factory: Performs the join and returns ``(builder, alias)``

        Returns:
            The (possibly new) statement and the alias of the joined table,
            or ``None`` when the factory could not join anything
        """
        if key in self._aliases:
            return builder, self._aliases[key]

        builder, alias = factory(builder, key)
        if alias is not None:
            self._aliases[key] = alias
        return builder, alias

    def register(self, name: str, selectable: FromClause) -> None:
        self._selectables[name] = selectable

    def selectable(self, name: str) -> FromClause | None:
        return self._selectables.get(name)


def join_spec(
    builder: Select[t.Any],
    registry: JoinRegistry,
    spec: JoinSpec,
    base_table: Table,
    *,
    outer: bool = False,
) -> tuple[Select[t.Any], str | None]:
    """Join the table named by ``spec`` onto ``builder`` through ``registry``.

    Search joins are inner joins, order-by joins pass ``outer=True`` so rows
    without a related record are kept.
    """

    def factory(builder: Select[t.Any], key: str) -> tuple[Select[t.Any], str | None]:
        if not spec.is_valid:
            logger.warning(f"Ignoring malformed join-spec for table {spec.table!r}")
            return builder, None

        table = base_table.metadata.tables.get(spec.table)
        if table is None:
            logger.warning(f"Ignoring join to unknown table {spec.table!r}")
            return builder, None

        target: FromClause = table.alias(spec.alias) if spec.alias else table
        related_key = spec.related_key or ""
        if spec.foreign_key not in target.c or related_key not in base_table.c:
            logger.warning(
                f"Ignoring join {key!r}: {spec.table}.{spec.foreign_key} or "
                f"{base_table.name}.{related_key} does not exist"
            )
            return builder, None

        onclause = target.c[spec.foreign_key] == base_table.c[related_key]
        registry.register(key, target)
        return builder.join(target, onclause, isouter=outer), key

    return registry.add_join(builder, spec.target, factory)


def resolve_column(
    qualified: str,
    base_table: FromClause,
    registry: JoinRegistry,
) -> ColumnElement[t.Any]:
    """Turn a ``table.column`` name into a column of the statement.

    Names of the base table or of a joined alias resolve to real columns;
    anything else is rendered verbatim.
    """
    table_name, _, column_name = qualified.rpartition(".")
    selectable: FromClause | None = None
    if table_name == getattr(base_table, "name", None):
        selectable = base_table
    elif table_name:
        selectable = registry.selectable(table_name)

    if selectable is not None and column_name in selectable.c:
        return selectable.c[column_name]
    return literal_column(qualified)
