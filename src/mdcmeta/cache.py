"""Single-flight component metadata cache.

The cache owns the only mutable state in the package: the published
snapshot, the in-flight fetch handle, the last recorded error and the stale
flag. Everything else reads it through ``get``/``peek`` and signals it
through ``invalidate``/``reconfigure``.

Refresh failures (``MetadataError``) never cross the MetadataCache class
boundary: the previous snapshot stays published, the error is recorded, and
the caller receives the previous snapshot. Forced refreshes get the error
back through ``refresh()`` so the coordinator can surface it; lazy refetches
only log it at debug level. Any other exception is a bug: it propagates to
the awaiting caller and is logged by the task, and no lazy refetch is
started for it until the cache is invalidated or reconfigured.

A fetch remembers the settings fingerprint it was started against. If the
origin was reconfigured while it ran, its result is discarded instead of
published.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from mdcmeta.errors import MetadataError
from mdcmeta.models.catalog import MetadataSnapshot

if TYPE_CHECKING:
    from mdcmeta.config import MetadataSettings
    from mdcmeta.source import CatalogLoader, LoadedCatalog

log = structlog.get_logger()


@dataclass(frozen=True)
class RefreshOutcome:
    """Snapshot visible after a fetch, plus the error of that fetch if it failed."""

    snapshot: MetadataSnapshot | None
    error: MetadataError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class _InflightFetch:
    fingerprint: str
    task: asyncio.Task[RefreshOutcome]


class MetadataCache:
    """Holds the latest valid catalog and coordinates fetches through the loader."""

    def __init__(self, settings: MetadataSettings, loader: CatalogLoader) -> None:
        self._settings = settings
        self._loader = loader
        self._snapshot: MetadataSnapshot | None = None
        self._inflight: _InflightFetch | None = None
        self._last_error: MetadataError | None = None
        self._fetch_crashed = False
        self._stale = False

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> MetadataSnapshot | None:
        return self._snapshot

    @property
    def settings(self) -> MetadataSettings:
        return self._settings

    @property
    def fingerprint(self) -> str:
        return self._settings.fingerprint

    @property
    def last_error(self) -> MetadataError | None:
        return self._last_error

    @property
    def is_stale(self) -> bool:
        return self._stale

    @property
    def fetch_in_flight(self) -> bool:
        return self._inflight is not None

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    async def get(self, force_refresh: bool = False) -> MetadataSnapshot | None:
        """Return the current snapshot, fetching first if needed.

        Without ``force_refresh`` a valid snapshot is returned with no I/O.
        Otherwise, or when the cache is empty or stale, the caller joins the
        in-flight fetch or starts one. Never raises ``MetadataError``.
        """
        outcome = await self._acquire(force=force_refresh)
        return outcome.snapshot

    async def refresh(self) -> RefreshOutcome:
        """``get(force_refresh=True)`` that also reports the fetch error."""
        return await self._acquire(force=True)

    def peek(self) -> MetadataSnapshot | None:
        """Return the published snapshot without suspending.

        If the cache is stale, or has never been filled and no failure is on
        record, the lazy refetch is started in the background.
        """
        if self._inflight is None and self._wants_lazy_refetch():
            self._start_fetch()
        return self._snapshot

    def invalidate(self) -> None:
        """Mark the snapshot stale. Repeated calls collapse into one refetch."""
        if not self._stale:
            log.debug(
                "metadata_invalidated",
                generation=self._snapshot.generation if self._snapshot else None,
            )
        self._stale = True

    def reconfigure(self, settings: MetadataSettings) -> bool:
        """Swap the settings. Returns True when the origin fingerprint changed."""
        previous = self._settings.fingerprint
        self._settings = settings
        changed = settings.fingerprint != previous
        if changed:
            self._last_error = None
            self._fetch_crashed = False
            log.info(
                "metadata_origin_changed",
                previous=previous,
                fingerprint=settings.fingerprint,
                origin=settings.preferred_origin,
            )
        return changed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _needs_fetch(self) -> bool:
        return self._snapshot is None or self._stale

    def _wants_lazy_refetch(self) -> bool:
        if self._stale:
            return True
        if self._last_error is not None or self._fetch_crashed:
            return False
        return self._snapshot is None

    async def _acquire(self, *, force: bool) -> RefreshOutcome:
        while True:
            inflight = self._inflight
            if inflight is not None:
                outcome = await asyncio.shield(inflight.task)
                if inflight.fingerprint == self.fingerprint:
                    return outcome
                # Started against a superseded origin; fetch again for the current one.
                force = True
                continue
            if not force and not self._needs_fetch():
                return RefreshOutcome(self._snapshot)
            return await asyncio.shield(self._start_fetch().task)

    def _start_fetch(self) -> _InflightFetch:
        settings = self._settings
        self._stale = False
        task = asyncio.create_task(self._run_fetch(settings), name="mdcmeta-metadata-fetch")
        task.add_done_callback(self._log_unexpected_failure)
        self._inflight = _InflightFetch(settings.fingerprint, task)
        return self._inflight

    async def _run_fetch(self, settings: MetadataSettings) -> RefreshOutcome:
        fingerprint = settings.fingerprint
        log.debug(
            "metadata_fetch_started",
            fingerprint=fingerprint,
            origin=settings.preferred_origin,
        )
        try:
            loaded = await self._loader(settings)
        except MetadataError as exc:
            return self._record_failure(exc, fingerprint)
        except Exception:
            # Still propagates. peek() holds off until the next invalidate or reconfigure.
            if fingerprint == self.fingerprint:
                self._fetch_crashed = True
            raise
        finally:
            self._inflight = None
        return self._publish(loaded, fingerprint)

    def _publish(self, loaded: LoadedCatalog, fingerprint: str) -> RefreshOutcome:
        if fingerprint != self.fingerprint:
            log.info(
                "metadata_fetch_discarded",
                fingerprint=fingerprint,
                current=self.fingerprint,
            )
            return RefreshOutcome(self._snapshot)

        generation = (self._snapshot.generation if self._snapshot else 0) + 1
        snapshot = MetadataSnapshot(
            components=loaded.components,
            generation=generation,
            fingerprint=fingerprint,
            origin=loaded.origin,
            locations=loaded.locations,
            fetched_at=datetime.now(UTC),
        )
        self._snapshot = snapshot
        self._last_error = None
        self._fetch_crashed = False
        log.debug(
            "metadata_published",
            generation=generation,
            origin=loaded.origin,
            components=len(loaded.components),
        )
        return RefreshOutcome(snapshot)

    def _record_failure(self, exc: MetadataError, fingerprint: str) -> RefreshOutcome:
        if fingerprint != self.fingerprint:
            log.debug("metadata_fetch_discarded", fingerprint=fingerprint, error=str(exc))
            return RefreshOutcome(self._snapshot)
        self._last_error = exc
        self._fetch_crashed = False
        log.debug(
            "metadata_fetch_failed",
            code=exc.code,
            error=exc.message,
            recoverable=exc.recoverable,
            kept_generation=self._snapshot.generation if self._snapshot else None,
        )
        return RefreshOutcome(self._snapshot, exc)

    @staticmethod
    def _log_unexpected_failure(task: asyncio.Task[RefreshOutcome]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("metadata_fetch_crashed", exc_info=exc)
