"""Forced refresh and invalidation signals for the metadata cache.

The coordinator owns its subscriptions and tears them down in ``close()``.
It never touches cache state directly: origin changes go through
``reconfigure()`` + ``invalidate()``, local file saves through
``invalidate()`` alone (the refetch happens lazily on the next read, so a
burst of saves costs one fetch).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

    from mdcmeta.cache import MetadataCache, RefreshOutcome
    from mdcmeta.config import MetadataSettings
    from mdcmeta.events import Signal, Subscription
    from mdcmeta.watcher import FileWatcher

log = structlog.get_logger()


class RefreshCoordinator:
    def __init__(
        self,
        cache: MetadataCache,
        settings_changes: Signal[MetadataSettings],
        *,
        watcher: FileWatcher | None = None,
        notify_error: Callable[[str], None] | None = None,
    ) -> None:
        self._cache = cache
        self._settings_changes = settings_changes
        self._watcher = watcher
        self._notify_error = notify_error
        self._settings_subscription: Subscription | None = None
        self._file_subscription: Subscription | None = None

    @property
    def watching_files(self) -> bool:
        return self._file_subscription is not None

    def start(self) -> None:
        if self._settings_subscription is not None:
            return
        self._settings_subscription = self._settings_changes.subscribe(self._on_settings_changed)
        self._rewatch()

    def close(self) -> None:
        if self._settings_subscription is not None:
            self._settings_subscription.dispose()
            self._settings_subscription = None
        self._stop_watching()

    async def refresh(self) -> RefreshOutcome:
        """Force a refetch. Failures are logged and pushed to ``notify_error``."""
        log.info("metadata_refresh_requested", fingerprint=self._cache.fingerprint)
        outcome = await self._cache.refresh()
        if outcome.error is not None:
            message = f"MDC: Error fetching component metadata: {outcome.error.message}"
            log.error(
                "metadata_refresh_failed",
                code=outcome.error.code,
                error=outcome.error.message,
                kept_generation=outcome.snapshot.generation if outcome.snapshot else None,
            )
            if self._notify_error is not None:
                self._notify_error(message)
        else:
            snapshot = outcome.snapshot
            log.info(
                "metadata_refresh_complete",
                generation=snapshot.generation if snapshot else None,
                components=len(snapshot.components) if snapshot else 0,
            )
        return outcome

    # ------------------------------------------------------------------
    # Signal handlers
    # ------------------------------------------------------------------

    def _on_settings_changed(self, settings: MetadataSettings) -> None:
        was_enabled = self._cache.settings.enabled
        origin_changed = self._cache.reconfigure(settings)
        if origin_changed:
            self._cache.invalidate()
        if origin_changed or was_enabled != settings.enabled:
            self._rewatch()

    def _on_local_file_changed(self, path: str) -> None:
        log.debug("metadata_file_changed", path=path)
        self._cache.invalidate()

    # ------------------------------------------------------------------
    # File watching
    # ------------------------------------------------------------------

    def _rewatch(self) -> None:
        self._stop_watching()
        settings = self._cache.settings
        if self._watcher is None or not settings.enabled or not settings.local_file_pattern:
            return
        self._file_subscription = self._watcher.watch(
            settings.workspace_root, settings.local_file_pattern, self._on_local_file_changed
        )

    def _stop_watching(self) -> None:
        if self._file_subscription is not None:
            self._file_subscription.dispose()
            self._file_subscription = None
