"""Tests for the scope queue and scope registry."""

import typing as t

import pytest
from sqlalchemy import Select
from sqlmodel import select

from reposcope.repository import (
    CallbackScope,
    OrderByScope,
    RepositoryConfigurationError,
    Scope,
    ScopeQueue,
    SearchScope,
    get_scope_type,
    register_scope_type,
)
from reposcope.repository.scopes import fingerprint_callable

from ..models import Post, PostRepository
from ..utils import render


class RecordingScope(Scope):
    name = "recording"

    def __init__(self, label: str, log: list[str], skip: bool = False) -> None:
        self.label = label
        self.log = log
        self.skip = skip

    def should_skip(self) -> bool:
        return self.skip

    def apply(self, builder: Select[t.Any], repository: t.Any) -> Select[t.Any]:
        self.log.append(self.label)
        return builder

    def to_dict(self) -> dict[str, t.Any]:
        return {"scope": self.name, "label": self.label}


class FailingScope(RecordingScope):
    def apply(self, builder: Select[t.Any], repository: t.Any) -> Select[t.Any]:
        raise RuntimeError("boom")


class TestScopeQueue:
    @pytest.mark.unit
    def test_entries_apply_in_registration_order(self, repository: PostRepository) -> None:
        log: list[str] = []
        queue = ScopeQueue()
        queue.enqueue(RecordingScope("first", log))
        queue.enqueue(lambda builder: log.append("closure") or builder)
        queue.enqueue(RecordingScope("last", log))

        queue.flush(select(Post), repository)

        assert log == ["first", "closure", "last"]
        assert len(queue) == 0

    @pytest.mark.unit
    def test_keyed_entry_replaces_in_place(self, repository: PostRepository) -> None:
        log: list[str] = []
        queue = ScopeQueue()
        queue.enqueue(RecordingScope("a", log), "order_by")
        queue.enqueue(RecordingScope("b", log))
        queue.enqueue(RecordingScope("c", log), "order_by")

        queue.flush(select(Post), repository)

        assert log == ["c", "b"]

    @pytest.mark.unit
    def test_unkeyed_entries_accumulate(self) -> None:
        queue = ScopeQueue()
        queue.enqueue(lambda builder: builder)
        queue.enqueue(lambda builder: builder)

        assert len(queue) == 2

    @pytest.mark.unit
    def test_skip_is_evaluated_at_apply_time(self, repository: PostRepository) -> None:
        log: list[str] = []
        scope = RecordingScope("late", log, skip=True)
        queue = ScopeQueue()
        queue.enqueue(scope)

        assert len(queue) == 1
        queue.flush(select(Post), repository)

        assert log == []

    @pytest.mark.unit
    def test_closure_result_replaces_builder(self, repository: PostRepository) -> None:
        queue = ScopeQueue()
        queue.enqueue(lambda builder: builder.limit(3))

        builder = queue.flush(select(Post), repository)

        assert "LIMIT 3" in render(builder)

    @pytest.mark.unit
    def test_queue_cleared_after_failure(self, repository: PostRepository) -> None:
        queue = ScopeQueue()
        queue.enqueue(FailingScope("bad", []))

        with pytest.raises(RuntimeError):
            queue.flush(select(Post), repository)

        assert len(queue) == 0

    @pytest.mark.unit
    def test_fingerprint(self) -> None:
        queue = ScopeQueue()
        queue.enqueue(RecordingScope("x", []), "key")

        assert queue.fingerprint() == [{"scope": "recording", "label": "x"}]


class TestFingerprintCallable:
    @pytest.mark.unit
    def test_closures_with_equal_values_match(self) -> None:
        def make(limit: int) -> t.Callable[[Select[t.Any]], Select[t.Any]]:
            return lambda builder: builder.limit(limit)

        assert fingerprint_callable(make(5)) == fingerprint_callable(make(5))
        assert fingerprint_callable(make(5)) != fingerprint_callable(make(6))

    @pytest.mark.unit
    def test_defaults_are_included(self) -> None:
        def scope(builder: Select[t.Any], size: int = 10) -> Select[t.Any]:
            return builder

        assert fingerprint_callable(scope)["defaults"] == ["10"]


class TestScopeRegistry:
    @pytest.mark.unit
    def test_builtin_types_registered(self) -> None:
        assert get_scope_type("search") is SearchScope
        assert get_scope_type("order_by") is OrderByScope
        assert get_scope_type("callback") is CallbackScope

    @pytest.mark.unit
    def test_register_as_decorator(self) -> None:
        @register_scope_type("recording_test")
        class Registered(RecordingScope):
            pass

        assert get_scope_type("recording_test") is Registered

    @pytest.mark.unit
    def test_unknown_type(self) -> None:
        with pytest.raises(RepositoryConfigurationError):
            get_scope_type("does-not-exist")


class TestCallbackScope:
    @pytest.mark.unit
    def test_apply_passes_repository_and_arguments(
        self, repository: PostRepository
    ) -> None:
        seen: list[t.Any] = []

        def scope(repo: t.Any, builder: Select[t.Any], size: int, *, offset: int = 0) -> Select[t.Any]:
            seen.append((repo, size, offset))
            return builder.limit(size).offset(offset)

        callback = CallbackScope(scope, "paged", (4,), {"offset": 8})
        builder = callback.apply(select(Post), repository)

        assert seen == [(repository, 4, 8)]
        assert "LIMIT 4 OFFSET 8" in render(builder)
        assert callback.to_dict() == {
            "scope": "callback",
            "name": "paged",
            "args": [4],
            "kwargs": {"offset": 8},
        }
