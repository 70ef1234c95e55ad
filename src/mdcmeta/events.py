"""Explicit subscribe/dispose event sources."""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

T = TypeVar("T")


class Disposable(Protocol):
    def dispose(self) -> None: ...


class Subscription:
    """Handle returned by ``subscribe``. ``dispose()`` is idempotent."""

    def __init__(self, on_dispose: Callable[[], None]) -> None:
        self._on_dispose: Callable[[], None] | None = on_dispose

    @property
    def disposed(self) -> bool:
        return self._on_dispose is None

    def dispose(self) -> None:
        if self._on_dispose is not None:
            on_dispose, self._on_dispose = self._on_dispose, None
            on_dispose()


class Signal(Generic[T]):
    """Synchronous event source, e.g. "settings changed".

    Listeners run in subscription order on the emitting thread. Listener
    exceptions propagate to the emitter.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        self._listeners.append(listener)
        return Subscription(lambda: self._remove(listener))

    def emit(self, value: T) -> None:
        for listener in list(self._listeners):
            listener(value)

    def _remove(self, listener: Callable[[T], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
