"""Tests for column qualification and join-spec parsing."""

import pytest

from reposcope.repository.columns import (
    JoinSpec,
    append_table_name,
    is_join_spec,
    parse_join_spec,
)


class TestAppendTableName:
    @pytest.mark.unit
    def test_bare_column_is_prefixed(self) -> None:
        assert append_table_name("title", "posts") == "posts.title"

    @pytest.mark.unit
    def test_qualified_column_is_unchanged(self) -> None:
        assert append_table_name("authors.name", "posts") == "authors.name"

    @pytest.mark.unit
    def test_escape_prefix_is_stripped(self) -> None:
        assert append_table_name("_.score", "posts") == "score"
        assert append_table_name("_.alias.name", "posts") == "alias.name"

    @pytest.mark.unit
    def test_joined_column_not_double_prefixed(self) -> None:
        spec = parse_join_spec("authors:name,id,author_id,writer")
        assert spec is not None
        assert append_table_name(spec.qualified_column, "posts") == "writer.name"


class TestParseJoinSpec:
    @pytest.mark.unit
    def test_plain_column_is_not_a_join(self) -> None:
        assert is_join_spec("title") is False
        assert parse_join_spec("title") is None

    @pytest.mark.unit
    def test_full_spec(self) -> None:
        spec = parse_join_spec("authors:name,id,author_id,writer")

        assert spec == JoinSpec(
            table="authors",
            column="name",
            foreign_key="id",
            related_key="author_id",
            alias="writer",
        )
        assert spec.target == "writer"
        assert spec.qualified_column == "writer.name"
        assert spec.is_valid

    @pytest.mark.unit
    def test_spec_without_alias_targets_table(self) -> None:
        spec = parse_join_spec("authors:name,id,author_id")

        assert spec is not None
        assert spec.alias is None
        assert spec.target == "authors"
        assert spec.qualified_column == "authors.name"

    @pytest.mark.unit
    def test_missing_related_key_is_filled(self) -> None:
        spec = parse_join_spec("authors:name,id")

        assert spec is not None
        assert spec.related_key is None
        assert spec.with_related_key("author_id").related_key == "author_id"

    @pytest.mark.unit
    def test_existing_related_key_is_kept(self) -> None:
        spec = parse_join_spec("authors:name,id,author_id")

        assert spec is not None
        assert spec.with_related_key("other") is spec

    @pytest.mark.unit
    def test_spec_without_foreign_key_is_invalid(self) -> None:
        spec = parse_join_spec("authors:name")

        assert spec is not None
        assert spec.foreign_key is None
        assert not spec.is_valid
