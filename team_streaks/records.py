"""Record value type and the RecordStore contract consumed by the engines.

A record is a typed bag of fields addressed by a string id. Stores hand out
copies tagged with a ``change_tag``; a conditional save succeeds only while
the stored tag still equals the tag the caller read.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

ChangeListener = Callable[[str, str], None]


@dataclass
class Record:
    """A remote record: type, id, schema-on-write fields and version tag."""

    record_type: str
    record_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    change_tag: str | None = None

    def get(self, key: str, default: Any = None) -> Any:
        value = self.fields.get(key)
        return default if value is None else value

    def __getitem__(self, key: str) -> Any:
        return self.fields.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        if value is None:
            self.fields.pop(key, None)
        else:
            self.fields[key] = value

    def copy(self) -> Record:
        return Record(
            record_type=self.record_type,
            record_id=self.record_id,
            fields=copy.deepcopy(self.fields),
            change_tag=self.change_tag,
        )


class RecordStore(Protocol):
    """Generic remote record database."""

    async def fetch(self, record_id: str) -> Record:
        """Return the record or raise NotFoundError."""
        ...

    async def query(
        self, record_type: str, field: str | None = None, value: Any = None,
    ) -> list[Record]:
        """All records of a type, or those whose *field* equals *value*."""
        ...

    async def save(self, record: Record, conditional: bool = False) -> Record:
        """Persist and return the stored copy. Conditional saves raise ConflictError."""
        ...

    async def delete(self, record_id: str) -> None:
        ...

    def subscribe(self, listener: ChangeListener) -> None:
        ...

    def unsubscribe(self, listener: ChangeListener) -> None:
        ...


class ChangeNotifier:
    """Push channel signalling ``(record_type, record_id)`` after writes."""

    def __init__(self, logger: logging.Logger) -> None:
        self._listeners: list[ChangeListener] = []
        self._logger = logger

    def subscribe(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, record_type: str, record_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(record_type, record_id)
            except Exception:
                self._logger.exception("Change listener failed for %s/%s", record_type, record_id)
