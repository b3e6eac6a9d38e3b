"""Deferred query scopes.

Fluent repository calls never touch a statement directly. They enqueue a
scope (or a plain callable) which is applied to a freshly built statement at
the start of the next terminal operation and then discarded.
"""

import itertools
from abc import ABC, abstractmethod
from functools import update_wrapper

import typing as t
from sqlalchemy import Select

from ._base import RepositoryConfigurationError

if t.TYPE_CHECKING:
    from .core import Repository

Builder = Select[t.Any]
ScopeCallable = t.Callable[[Builder], Builder]


class Scope(ABC):
    """A unit of deferred query mutation."""

    name: t.ClassVar[str] = "scope"

    def should_skip(self) -> bool:
        """Return True if applying this scope would be a no-op."""
        return False

    @abstractmethod
    def apply(self, builder: Builder, repository: "Repository[t.Any]") -> Builder:
        """Return ``builder`` with this scope applied."""

    @abstractmethod
    def to_dict(self) -> dict[str, t.Any]:
        """Return the state that distinguishes this scope in cache keys."""


ScopeEntry = Scope | ScopeCallable

_scope_types: dict[str, type[Scope]] = {}


def register_scope_type(
    name: str,
    scope_class: type[Scope] | None = None,
) -> t.Any:
    """Register a scope variant under ``name``.

    Usable directly or as a class decorator.
    """

    def decorator(cls: type[Scope]) -> type[Scope]:
        _scope_types[name] = cls
        return cls

    if scope_class is not None:
        return decorator(scope_class)
    return decorator


def get_scope_type(name: str) -> type[Scope]:
    try:
        return _scope_types[name]
    except KeyError:
        msg = f"No scope type registered under {name!r}"
        raise RepositoryConfigurationError(msg) from None


def _cell_repr(cell: t.Any) -> str:
    try:
        return repr(cell.cell_contents)
    except ValueError:
        return "<empty>"


def fingerprint_callable(func: t.Callable[..., t.Any]) -> dict[str, t.Any]:
    """Describe a callable by name and captured values.

    Two closures built from the same function with equal captured values
    fingerprint identically.
    """
    closure = getattr(func, "__closure__", None) or ()
    defaults = getattr(func, "__defaults__", None) or ()
    kwdefaults = getattr(func, "__kwdefaults__", None) or {}
    return {
        "callable": f"{getattr(func, '__module__', '')}."
        f"{getattr(func, '__qualname__', repr(func))}",
        "closure": [_cell_repr(cell) for cell in closure],
        "defaults": [repr(value) for value in defaults],
        "kwdefaults": {key: repr(value) for key, value in sorted(kwdefaults.items())},
    }


def fingerprint(entry: ScopeEntry) -> dict[str, t.Any]:
    if isinstance(entry, Scope):
        return entry.to_dict()
    return fingerprint_callable(entry)


class ScopeQueue:
    """Ordered pending scopes, keyed entries replace earlier ones in place."""

    def __init__(self) -> None:
        self._entries: dict[t.Hashable, ScopeEntry] = {}
        self._sequence = itertools.count()

    def enqueue(self, entry: ScopeEntry, key: str | None = None) -> None:
        if key is None:
            self._entries[("__anonymous__", next(self._sequence))] = entry
        else:
            self._entries[key] = entry

    def has(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> ScopeEntry | None:
        return self._entries.get(key)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> t.Iterator[ScopeEntry]:
        return iter(list(self._entries.values()))

    def fingerprint(self) -> list[dict[str, t.Any]]:
        return [fingerprint(entry) for entry in self]

    def flush(self, builder: Builder, repository: "Repository[t.Any]") -> Builder:
        """Apply every entry in registration order, then empty the queue.

        The queue is cleared even when an entry raises.
        """
        try:
            for entry in self:
                if isinstance(entry, Scope):
                    if entry.should_skip():
                        continue
                    builder = entry.apply(builder, repository)
                else:
                    builder = entry(builder)
        finally:
            self.clear()
        return builder


@register_scope_type("callback")
class CallbackScope(Scope):
    """Scope produced by calling a named scope method."""

    name = "callback"

    def __init__(
        self,
        func: t.Callable[..., Builder],
        scope_name: str | None = None,
        args: tuple[t.Any, ...] = (),
        kwargs: dict[str, t.Any] | None = None,
    ) -> None:
        self.func = func
        self.scope_name = scope_name or func.__name__
        self.args = args
        self.kwargs = kwargs or {}

    def apply(self, builder: Builder, repository: "Repository[t.Any]") -> Builder:
        return self.func(repository, builder, *self.args, **self.kwargs)

    def to_dict(self) -> dict[str, t.Any]:
        return {
            "scope": self.name,
            "name": self.scope_name,
            "args": list(self.args),
            "kwargs": dict(sorted(self.kwargs.items())),
        }


class NamedScope:
    """Descriptor turning a ``(self, builder, ...)`` function into a fluent method.

    Accessed through an instance, it returns a callable that enqueues a
    ``CallbackScope`` and returns the repository for chaining.
    """

    def __init__(self, func: t.Callable[..., Builder], name: str | None = None) -> None:
        self.func = func
        self.name = name or func.__name__
        update_wrapper(self, func)

    def __set_name__(self, owner: type, name: str) -> None:
        self.attribute = name

    def __get__(self, instance: t.Any, owner: type | None = None) -> t.Any:
        if instance is None:
            return self

        def enqueue(*args: t.Any, **kwargs: t.Any) -> t.Any:
            return instance.add_scope_query(
                CallbackScope(self.func, self.name, args, kwargs)
            )

        update_wrapper(enqueue, self.func)
        return enqueue


def named_scope(
    func: t.Callable[..., Builder] | None = None,
    *,
    name: str | None = None,
) -> t.Any:
    """Declare a named scope on a repository class.

    Example:
        class PostRepository(Repository[Post]):
            model = Post

            @named_scope
            def published(self, builder):
                return builder.where(Post.published.is_(True))

        await PostRepository(session).published().all()
    """
    if func is None:
        return lambda f: NamedScope(f, name)
    return NamedScope(func, name)
