"""Unit tests for mdcmeta.cache."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from mdcmeta.cache import MetadataCache
from mdcmeta.errors import ErrorCode, FetchError, MetadataTimeoutError, ParseError

if TYPE_CHECKING:
    from mdcmeta.config import MetadataSettings
    from mdcmeta.models.catalog import ComponentDescriptor


# ---------------------------------------------------------------------------
# Single-flight
# ---------------------------------------------------------------------------


class TestSingleFlight:
    async def test_concurrent_gets_on_empty_cache_fetch_once(self, settings, loader) -> None:
        gate = loader.hold()
        cache = MetadataCache(settings, loader)

        waiters = [asyncio.create_task(cache.get()) for _ in range(10)]
        await loader.started.wait()
        gate.set()
        results = await asyncio.gather(*waiters)

        assert loader.call_count == 1
        assert results[0] is not None
        assert all(result is results[0] for result in results)
        assert results[0].generation == 1

    async def test_forced_refresh_joins_inflight_fetch(self, settings, loader) -> None:
        gate = loader.hold()
        cache = MetadataCache(settings, loader)

        lazy = asyncio.create_task(cache.get())
        await loader.started.wait()
        forced = asyncio.create_task(cache.get(force_refresh=True))
        await asyncio.sleep(0)
        gate.set()

        assert await lazy is await forced
        assert loader.call_count == 1

    async def test_valid_snapshot_returned_without_io(self, settings, loader) -> None:
        cache = MetadataCache(settings, loader)
        first = await cache.get()
        again = await cache.get()
        assert again is first
        assert loader.call_count == 1

    async def test_caller_cancellation_does_not_cancel_fetch(self, settings, loader) -> None:
        gate = loader.hold()
        cache = MetadataCache(settings, loader)

        waiter = asyncio.create_task(cache.get())
        await loader.started.wait()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        gate.set()
        snapshot = await cache.get()
        assert snapshot is not None
        assert snapshot.generation == 1
        assert loader.call_count == 1


# ---------------------------------------------------------------------------
# Publishing and generations
# ---------------------------------------------------------------------------


class TestPublishing:
    async def test_forced_refresh_bumps_generation(
        self, settings, loader, alert: ComponentDescriptor
    ) -> None:
        cache = MetadataCache(settings, loader)
        first = await cache.get()
        assert first is not None

        loader.succeed(alert)
        refreshed = await cache.get(force_refresh=True)

        assert refreshed is not None
        assert refreshed.generation > first.generation
        assert [c.name for c in refreshed.components] == ["alert"]
        assert await cache.get() is refreshed
        assert first.components[0].name == "callout"  # old snapshot untouched

    async def test_reader_during_fetch_sees_previous_snapshot(self, settings, loader) -> None:
        cache = MetadataCache(settings, loader)
        first = await cache.get()

        gate = loader.hold()
        pending = asyncio.create_task(cache.get(force_refresh=True))
        await loader.started.wait()

        assert cache.peek() is first
        assert cache.snapshot is first

        gate.set()
        second = await pending
        assert second is not None
        assert second.generation == 2
        assert cache.snapshot is second

    async def test_snapshot_records_origin(self, settings, loader) -> None:
        cache = MetadataCache(settings, loader)
        snapshot = await cache.get()
        assert snapshot is not None
        assert snapshot.origin == "remote"
        assert snapshot.fingerprint == settings.fingerprint
        assert snapshot.fetched_at.tzinfo is not None

    async def test_empty_catalog_is_a_valid_snapshot(self, settings, make_loader) -> None:
        loader = make_loader()
        cache = MetadataCache(settings, loader)
        snapshot = await cache.get()
        assert snapshot is not None
        assert snapshot.is_empty
        assert cache.peek() is snapshot
        assert loader.call_count == 1


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.parametrize(
        "error",
        [
            FetchError("HTTP 500 fetching https://example.com/meta.json"),
            ParseError("Invalid JSON"),
            MetadataTimeoutError("Timed out"),
        ],
    )
    async def test_failure_keeps_previous_snapshot(self, settings, loader, error) -> None:
        cache = MetadataCache(settings, loader)
        first = await cache.get()

        loader.fail(error)
        assert await cache.get(force_refresh=True) is first
        assert await cache.get() is first
        assert cache.last_error is error
        assert loader.call_count == 2

    async def test_refresh_reports_error(self, settings, loader) -> None:
        cache = MetadataCache(settings, loader)
        first = await cache.get()

        loader.fail(FetchError("unreachable"))
        outcome = await cache.refresh()

        assert not outcome.ok
        assert outcome.snapshot is first
        assert outcome.error is not None
        assert outcome.error.code == ErrorCode.FETCH_FAILED

    async def test_failure_on_empty_cache_returns_none(self, settings, loader) -> None:
        loader.fail(FetchError("unreachable"))
        cache = MetadataCache(settings, loader)
        assert await cache.get() is None
        assert cache.snapshot is None
        assert not cache.fetch_in_flight

    async def test_success_clears_last_error(self, settings, loader, callout) -> None:
        cache = MetadataCache(settings, loader)
        loader.fail(FetchError("unreachable"))
        loader.succeed(callout)

        await cache.get()
        assert cache.last_error is not None
        snapshot = await cache.get(force_refresh=True)
        assert snapshot is not None
        assert snapshot.generation == 1
        assert cache.last_error is None

    async def test_unexpected_error_propagates(self, settings, loader) -> None:
        loader.fail(RuntimeError("bug"))  # type: ignore[arg-type]
        cache = MetadataCache(settings, loader)
        with pytest.raises(RuntimeError, match="bug"):
            await cache.get()
        assert not cache.fetch_in_flight


# ---------------------------------------------------------------------------
# Invalidation
# ---------------------------------------------------------------------------


class TestInvalidate:
    async def test_invalidate_does_not_fetch_or_drop_snapshot(self, settings, loader) -> None:
        cache = MetadataCache(settings, loader)
        first = await cache.get()

        cache.invalidate()

        assert cache.is_stale
        assert cache.snapshot is first
        assert loader.call_count == 1

    async def test_repeated_invalidation_collapses_into_one_refetch(
        self, settings, loader
    ) -> None:
        cache = MetadataCache(settings, loader)
        await cache.get()

        cache.invalidate()
        cache.invalidate()
        cache.invalidate()
        refetched = await cache.get()
        again = await cache.get()

        assert loader.call_count == 2
        assert refetched is not None
        assert refetched.generation == 2
        assert again is refetched
        assert not cache.is_stale

    async def test_invalidate_during_fetch_keeps_cache_stale(self, settings, loader) -> None:
        gate = loader.hold()
        cache = MetadataCache(settings, loader)
        pending = asyncio.create_task(cache.get())
        await loader.started.wait()

        cache.invalidate()
        gate.set()
        await pending

        assert cache.is_stale
        await cache.get()
        assert loader.call_count == 2


# ---------------------------------------------------------------------------
# peek
# ---------------------------------------------------------------------------


class TestPeek:
    async def test_peek_on_empty_cache_starts_background_fetch(self, settings, loader) -> None:
        cache = MetadataCache(settings, loader)

        assert cache.peek() is None
        assert cache.fetch_in_flight

        snapshot = await cache.get()
        assert snapshot is not None
        assert loader.call_count == 1

    async def test_peek_after_invalidate_refetches_lazily(self, settings, loader) -> None:
        cache = MetadataCache(settings, loader)
        first = await cache.get()
        cache.invalidate()

        assert cache.peek() is first
        assert cache.fetch_in_flight
        second = await cache.get()
        assert second is not None
        assert second.generation == 2

    async def test_peek_does_not_retry_after_failure(self, settings, loader) -> None:
        loader.fail(FetchError("unreachable"))
        cache = MetadataCache(settings, loader)
        await cache.get()

        assert cache.peek() is None
        assert not cache.fetch_in_flight
        assert loader.call_count == 1

    async def test_peek_does_not_relaunch_crashed_fetch(self, settings, loader) -> None:
        loader.fail(RuntimeError("bug"))  # type: ignore[arg-type]
        cache = MetadataCache(settings, loader)

        assert cache.peek() is None
        with pytest.raises(RuntimeError, match="bug"):
            await cache.get()
        for _ in range(3):
            assert cache.peek() is None

        assert not cache.fetch_in_flight
        assert loader.call_count == 1
        assert cache.last_error is None

    async def test_crashed_fetch_retried_after_invalidate(self, settings, loader, callout) -> None:
        loader.fail(RuntimeError("bug"))  # type: ignore[arg-type]
        loader.succeed(callout)
        cache = MetadataCache(settings, loader)
        with pytest.raises(RuntimeError):
            await cache.get()

        cache.invalidate()

        assert cache.peek() is None
        assert cache.fetch_in_flight
        snapshot = await cache.get()
        assert snapshot is not None
        assert snapshot.generation == 1
        assert loader.call_count == 2


# ---------------------------------------------------------------------------
# Reconfiguration
# ---------------------------------------------------------------------------


class TestReconfigure:
    async def test_stale_origin_fetch_is_discarded(
        self, settings: MetadataSettings, loader, alert: ComponentDescriptor
    ) -> None:
        gate = loader.hold()
        cache = MetadataCache(settings, loader)
        pending = asyncio.create_task(cache.get())
        await loader.started.wait()

        moved = settings.model_copy(update={"url": "https://other.example.com/meta.json"})
        assert cache.reconfigure(moved)
        cache.invalidate()
        loader.succeed(alert)
        gate.set()

        snapshot = await pending
        assert snapshot is not None
        assert [c.name for c in snapshot.components] == ["alert"]
        assert snapshot.generation == 1
        assert snapshot.fingerprint == moved.fingerprint
        assert loader.call_count == 2
        assert loader.calls[1].url == "https://other.example.com/meta.json"

    async def test_stale_origin_failure_not_recorded(
        self, settings: MetadataSettings, loader
    ) -> None:
        gate = loader.hold()
        cache = MetadataCache(settings, loader)
        loader.fail(FetchError("old origin down"))
        pending = asyncio.create_task(cache.refresh())
        await loader.started.wait()

        cache.reconfigure(settings.model_copy(update={"url": None}))
        loader.succeed()
        gate.set()

        outcome = await pending
        assert outcome.ok
        assert cache.last_error is None

    async def test_same_fingerprint_is_not_a_change(self, settings, loader) -> None:
        cache = MetadataCache(settings, loader)
        assert not cache.reconfigure(settings.model_copy(update={"debug": True}))
        assert cache.settings.debug
