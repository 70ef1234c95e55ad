"""Shared fixtures: sample catalogs and a controllable catalog loader."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
import structlog

from mdcmeta.config import MetadataSettings
from mdcmeta.models.catalog import ComponentDescriptor, PropDescriptor
from mdcmeta.source import LoadedCatalog

if TYPE_CHECKING:
    from mdcmeta.errors import MetadataError


class FakeLoader:
    """Stand-in for ``load_catalog`` that counts calls.

    Results are queued with ``succeed``/``fail``; when the queue is empty the
    last result is repeated. Set ``gate`` to hold fetches until released.
    """

    def __init__(self, components: tuple[ComponentDescriptor, ...] = ()) -> None:
        self.calls: list[MetadataSettings] = []
        self._results: list[LoadedCatalog | MetadataError] = []
        self._last: LoadedCatalog | MetadataError = LoadedCatalog("remote", ("u",), components)
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def succeed(self, *components: ComponentDescriptor, origin: str = "remote") -> None:
        self._results.append(LoadedCatalog(origin, ("u",), components))  # type: ignore[arg-type]

    def fail(self, error: MetadataError) -> None:
        self._results.append(error)

    def hold(self) -> asyncio.Event:
        self.started.clear()
        self.gate = asyncio.Event()
        return self.gate

    async def __call__(self, settings: MetadataSettings) -> LoadedCatalog:
        self.calls.append(settings)
        result = self._results.pop(0) if self._results else self._last
        self._last = result
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any configure_logging() call so later tests log to a live stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def callout() -> ComponentDescriptor:
    return ComponentDescriptor(
        name="callout",
        description="Highlighted note",
        props=(
            PropDescriptor(name="type", type="enum", values=("info", "warning"), default="info"),
            PropDescriptor(name="icon", type="string"),
        ),
    )


@pytest.fixture()
def alert() -> ComponentDescriptor:
    return ComponentDescriptor(
        name="alert",
        props=(PropDescriptor(name="dismissible", type="boolean", default=False),),
    )


@pytest.fixture()
def settings() -> MetadataSettings:
    return MetadataSettings(enabled=True, url="https://example.com/meta.json")


@pytest.fixture()
def loader(callout: ComponentDescriptor) -> FakeLoader:
    return FakeLoader((callout,))


@pytest.fixture()
def make_loader() -> type[FakeLoader]:
    return FakeLoader
