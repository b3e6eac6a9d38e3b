"""Search scope: request filters mapped onto searchable columns."""

import typing as t
from sqlalchemy import ColumnElement, Select, or_

from .columns import JoinSpec, is_join_spec, parse_join_spec
from .joins import join_spec
from .ranges import apply_range
from .scopes import Scope, register_scope_type

if t.TYPE_CHECKING:
    from .core import Repository

QUERY_PARAM = "query"

Searchable = t.Mapping[t.Any, str | t.Sequence[str]] | t.Sequence[str]


def is_blank(value: t.Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list | tuple | set | dict):
        return not value
    return False


def normalize_searchable(searchable: Searchable) -> dict[str, list[str]]:
    """Return ``{parameter: [column, ...]}``.

    Entries without a named parameter (list items or integer keys) are
    searched under their own column name.
    """
    if isinstance(searchable, str):
        return {searchable: [searchable]}
    if not isinstance(searchable, t.Mapping):
        return {column: [column] for column in searchable}

    normalized: dict[str, list[str]] = {}
    for key, columns in searchable.items():
        if isinstance(key, int):
            key = columns
        normalized[key] = [columns] if isinstance(columns, str) else list(columns)
    return normalized


def create_search_clause(
    param: str,
    column: ColumnElement[t.Any],
    value: t.Any,
    operator: str = "like",
) -> ColumnElement[bool]:
    """Build the predicate for one column.

    The free-text ``query`` parameter uses a ``%value%`` pattern, list values
    use ``IN`` and everything else is compared for equality.
    """
    if param == QUERY_PARAM:
        pattern = f"%{value}%"
        return column.ilike(pattern) if operator == "ilike" else column.like(pattern)
    if isinstance(value, list | tuple | set):
        return column.in_(list(value))
    return column == value


def ensure_model_columns(builder: Select[t.Any], model: type) -> Select[t.Any]:
    """Select only the model's own columns when anything else was added."""
    entities = [desc.get("entity") for desc in builder.column_descriptions]
    if entities != [model]:
        return builder.with_only_columns(model)  # type: ignore[arg-type]
    return builder


@register_scope_type("search")
class SearchScope(Scope):
    """Filter on the repository's searchable columns.

    Args:
        queries: ``{parameter: value}`` filters, or a bare string searched
            under the free-text ``query`` parameter
    """

    name = "search"

    def __init__(self, queries: t.Mapping[str, t.Any] | str | None) -> None:
        if isinstance(queries, str):
            queries = {QUERY_PARAM: queries}
        self.queries = {
            key: value for key, value in (queries or {}).items() if not is_blank(value)
        }

    def should_skip(self) -> bool:
        return not self.queries

    def to_dict(self) -> dict[str, t.Any]:
        return {"scope": self.name, "queries": dict(sorted(self.queries.items()))}

    def apply(self, builder: Select[t.Any], repository: "Repository[t.Any]") -> Select[t.Any]:
        searchable = normalize_searchable(repository.get_searchable())

        for param, value in self.queries.items():
            specs = searchable.get(param)
            if not specs:
                continue

            columns: list[ColumnElement[t.Any]] = []
            for spec in specs:
                builder, column = self._resolve(builder, repository, param, spec)
                if column is not None:
                    columns.append(column)
            if not columns:
                continue

            builder, handled = apply_range(builder, columns[0], value)
            if handled:
                continue

            clauses = [
                create_search_clause(param, column, value, repository.search_operator)
                for column in columns
            ]
            builder = builder.where(or_(*clauses) if len(clauses) > 1 else clauses[0])

        return ensure_model_columns(builder, repository.model)

    @staticmethod
    def _resolve(
        builder: Select[t.Any],
        repository: "Repository[t.Any]",
        param: str,
        spec: str,
    ) -> tuple[Select[t.Any], ColumnElement[t.Any] | None]:
        if not is_join_spec(spec):
            return builder, repository.qualify_column(spec)

        parsed = t.cast(JoinSpec, parse_join_spec(spec)).with_related_key(param)
        builder, alias = join_spec(
            builder, repository.joins, parsed, repository.table, outer=False
        )
        if alias is None:
            return builder, None
        return builder, repository.qualify_column(f"{alias}.{parsed.column}")
