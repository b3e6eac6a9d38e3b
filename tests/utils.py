"""Test utilities for reposcope tests."""

import typing as t

from sqlalchemy.dialects import sqlite


def render(statement: t.Any) -> str:
    """Compile a statement for SQLite with literal values inlined."""
    return str(
        statement.compile(
            dialect=sqlite.dialect(),
            compile_kwargs={"literal_binds": True},
        )
    )


def normalize(sql: str) -> str:
    return " ".join(sql.split())
