"""Integration test fixtures.

Provides a fully wired AppState (real loader, real httpx client under
respx) with a recording file watcher in place of watchdog.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from mdcmeta.config import MetadataSettings, Settings
from mdcmeta.events import Subscription
from mdcmeta.state import open_app_state

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from mdcmeta.state import AppState

META_URL = "https://docs.example.com/component-meta.json"

REMOTE_PAYLOAD = [
    {
        "name": "callout",
        "description": "Highlighted note",
        "props": [
            {"name": "type", "type": "enum", "values": ["info", "warning"], "default": "info"},
            {"name": "icon", "type": "string"},
        ],
    },
    {"name": "badge", "props": [{"name": "label", "type": "string", "required": True}]},
]


class RecordingWatcher:
    """File watcher that records requests and lets tests fire changes."""

    def __init__(self) -> None:
        self.watches: list[tuple[Path, str]] = []
        self._callbacks: list[Callable[[str], None]] = []

    def watch(self, root: Path, pattern: str, callback: Callable[[str], None]) -> Subscription:
        self.watches.append((root, pattern))
        self._callbacks.append(callback)
        return Subscription(lambda: self._callbacks.remove(callback))

    @property
    def active(self) -> int:
        return len(self._callbacks)

    def fire(self, path: str) -> None:
        for callback in list(self._callbacks):
            callback(path)


@pytest.fixture()
def watcher() -> RecordingWatcher:
    return RecordingWatcher()


@pytest.fixture()
def notifications() -> list[str]:
    return []


@pytest.fixture()
def meta_route():
    with respx.mock(assert_all_called=False) as respx_mock:
        yield respx_mock.get(META_URL).mock(return_value=httpx.Response(200, json=REMOTE_PAYLOAD))


@pytest.fixture()
async def app_state(
    meta_route, watcher: RecordingWatcher, notifications: list[str]
) -> AppState:
    """AppState with completions enabled against the mocked remote catalog."""
    settings = Settings(mdc=MetadataSettings(enabled=True, url=META_URL))
    async with open_app_state(
        settings, watcher=watcher, notify_error=notifications.append
    ) as state:
        yield state
