"""Collected user-facing messages and errors."""

import typing as t

DEFAULT_FORMAT = ":message"


class MessageBag:
    """Messages grouped by key.

    Formats may use the ``:message`` and ``:key`` placeholders. A message is
    stored once per key.
    """

    def __init__(self, messages: t.Mapping[str, t.Iterable[str]] | None = None) -> None:
        self._messages: dict[str, list[str]] = {}
        for key, values in (messages or {}).items():
            for message in values:
                self.add(key, message)

    def add(self, key: str, message: str) -> "MessageBag":
        bucket = self._messages.setdefault(key, [])
        if message not in bucket:
            bucket.append(message)
        return self

    def has(self, key: str | None = None) -> bool:
        if key is None:
            return not self.is_empty()
        return bool(self._messages.get(key))

    def keys(self) -> list[str]:
        return list(self._messages)

    def get(self, key: str, format: str | None = None) -> list[str]:
        return self._transform(key, self._messages.get(key, []), format)

    def all(self, format: str | None = None) -> list[str]:
        return [
            message
            for key, messages in self._messages.items()
            for message in self._transform(key, messages, format)
        ]

    def first(self, key: str | None = None, format: str | None = None) -> str:
        messages = self.all(format) if key is None else self.get(key, format)
        return messages[0] if messages else ""

    def is_empty(self) -> bool:
        return not any(self._messages.values())

    def count(self) -> int:
        return sum(len(messages) for messages in self._messages.values())

    def __len__(self) -> int:
        return self.count()

    def __bool__(self) -> bool:
        return not self.is_empty()

    def to_dict(self) -> dict[str, list[str]]:
        return {key: list(messages) for key, messages in self._messages.items()}

    @staticmethod
    def _transform(key: str, messages: list[str], format: str | None) -> list[str]:
        format = format or DEFAULT_FORMAT
        return [
            format.replace(":message", message).replace(":key", key)
            for message in messages
        ]
