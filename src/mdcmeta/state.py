"""Application state container.

AppState is created once per editor session by ``open_app_state()`` and
handed to the host glue (completion provider registration, the refresh
command, configuration listeners). It owns the HTTP client, the metadata
cache and every subscription; leaving the context manager tears them down.
"""

from __future__ import annotations

import functools
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from mdcmeta.cache import MetadataCache
from mdcmeta.completion import CompletionEngine, CompletionProvider
from mdcmeta.config import MetadataSettings, Settings
from mdcmeta.events import Signal
from mdcmeta.logging_setup import configure_logging
from mdcmeta.refresh import RefreshCoordinator
from mdcmeta.source import build_http_client, load_catalog
from mdcmeta.watcher import WatchdogFileWatcher

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    import httpx

    from mdcmeta.blocks import BlockStructureParser
    from mdcmeta.events import Subscription
    from mdcmeta.source import CatalogLoader
    from mdcmeta.watcher import FileWatcher

log = structlog.get_logger()


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every host handler."""

    settings: Settings
    http_client: httpx.AsyncClient
    cache: MetadataCache
    completions: CompletionProvider
    coordinator: RefreshCoordinator
    settings_changes: Signal[MetadataSettings] = field(default_factory=Signal)
    subscriptions: list[Subscription] = field(default_factory=list)

    def update_settings(self, mdc: MetadataSettings) -> None:
        """Entry point for host configuration changes."""
        self.settings = self.settings.model_copy(update={"mdc": mdc})
        self.settings_changes.emit(mdc)


@asynccontextmanager
async def open_app_state(
    settings: Settings | None = None,
    *,
    loader: CatalogLoader | None = None,
    parser: BlockStructureParser | None = None,
    watcher: FileWatcher | None = None,
    notify_error: Callable[[str], None] | None = None,
    prefetch: bool = True,
) -> AsyncIterator[AppState]:
    """Wire the cache, completion provider and refresh coordinator.

    With ``prefetch`` and completions enabled, the catalog is fetched once
    before the state is handed out (a failure is reported through
    ``notify_error`` and does not abort startup).
    """
    settings = settings or Settings()
    configure_logging(settings.logging, debug=settings.mdc.debug)
    log.info("mdcmeta_starting", enabled=settings.mdc.enabled, origin=settings.mdc.preferred_origin)

    async with build_http_client(settings.mdc) as client:
        cache = MetadataCache(
            settings.mdc, loader or functools.partial(load_catalog, client=client)
        )
        settings_changes: Signal[MetadataSettings] = Signal()
        coordinator = RefreshCoordinator(
            cache,
            settings_changes,
            watcher=watcher if watcher is not None else WatchdogFileWatcher(),
            notify_error=notify_error,
        )
        state = AppState(
            settings=settings,
            http_client=client,
            cache=cache,
            completions=CompletionProvider(cache, CompletionEngine(parser)),
            coordinator=coordinator,
            settings_changes=settings_changes,
        )
        state.subscriptions.append(
            settings_changes.subscribe(
                lambda mdc: configure_logging(state.settings.logging, debug=mdc.debug)
            )
        )
        coordinator.start()
        try:
            if prefetch and settings.mdc.enabled:
                await coordinator.refresh()
            yield state
        finally:
            coordinator.close()
            for subscription in state.subscriptions:
                subscription.dispose()
            log.info("mdcmeta_stopped")
