"""Column name qualification and join-spec parsing.

Searchable and orderable maps refer to columns either by bare name
(``title``), by an already qualified name (``authors.name``), by an escaped
name that must not be qualified (``_.score``), or through a join-spec::

    joining_table:column,foreign_key,related_key,alias

The join-spec asks for ``joining_table`` to be joined (optionally under
``alias``) on ``{alias}.{foreign_key} = {base_table}.{related_key}`` and then
refers to ``{alias}.{column}``.
"""

from dataclasses import dataclass

ESCAPE_PREFIX = "_."
JOIN_DELIMITER = ":"


def append_table_name(column: str, table: str) -> str:
    """Qualify ``column`` with ``table`` unless it is already qualified.

    Args:
        column: Bare, dotted or escaped column name
        table: Table name of the repository's model

    Returns:
        The qualified column name
    """
    if "." not in column:
        return f"{table}.{column}"
    if column.startswith(ESCAPE_PREFIX):
        return column[len(ESCAPE_PREFIX) :]
    return column


def is_join_spec(column: object) -> bool:
    return isinstance(column, str) and JOIN_DELIMITER in column


@dataclass(frozen=True)
class JoinSpec:
    """A parsed ``table:column,fk,rk,alias`` join-spec."""

    table: str
    column: str
    foreign_key: str | None = None
    related_key: str | None = None
    alias: str | None = None

    @property
    def target(self) -> str:
        """Name the joined table is referenced by in the query."""
        return self.alias or self.table

    @property
    def qualified_column(self) -> str:
        return f"{self.target}.{self.column}"

    @property
    def is_valid(self) -> bool:
        return bool(self.table and self.column and self.foreign_key)

    def with_related_key(self, default: str) -> "JoinSpec":
        """Fill in a missing related key."""
        if self.related_key:
            return self
        return JoinSpec(self.table, self.column, self.foreign_key, default, self.alias)


def parse_join_spec(spec: str) -> JoinSpec | None:
    """Parse a join-spec, returning ``None`` for plain column names."""
    if not is_join_spec(spec):
        return None

    table, _, options = spec.partition(JOIN_DELIMITER)
    column, _, rest = options.partition(",")
    parts = [part.strip() or None for part in rest.split(",")] if rest else []
    parts += [None] * (3 - len(parts))
    foreign_key, related_key, alias = parts[:3]

    return JoinSpec(
        table=table.strip(),
        column=column.strip(),
        foreign_key=foreign_key,
        related_key=related_key,
        alias=alias,
    )
