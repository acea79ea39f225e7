from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from .const import EntityKind
from .models import EntityRecord

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class SyncPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class Availability(str, Enum):
    """Whether the remote route for an entity kind is usable this session."""

    REMOTE_ACTIVE = "remote_active"
    LOCAL_ONLY = "local_only"


@dataclass(frozen=True, slots=True)
class CollectionSnapshot:
    """Immutable view handed to subscribers."""

    kind: EntityKind
    records: tuple[EntityRecord, ...] = ()
    loading: bool = False
    phase: SyncPhase = SyncPhase.UNINITIALIZED
    availability: Availability = Availability.REMOTE_ACTIVE

    @property
    def identifiers(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(record.identifier for record in self.records))

    def __len__(self) -> int:
        return len(self.records)


class StateContainer(Generic[T]):
    """Holds one value and calls subscribers whenever it changes."""

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._subscribers: list[Callable[[T], None]] = []

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        if value == self._value:
            return False
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                _LOGGER.exception("State subscriber %r failed", callback)
        return True

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
