"""Component metadata source: resolve the configured origin and parse it.

Origin precedence is explicit and never merged:
  1. ``local_file_pattern``, if it resolves to at least one file
  2. ``url``
  3. nothing configured -> empty catalog (not an error)

``load_catalog`` is stateless: it performs I/O and parsing only, and the
caller decides what to keep.
"""

from __future__ import annotations

import asyncio
import glob
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import TypeAdapter

from mdcmeta import __version__
from mdcmeta.config import MetadataSettings
from mdcmeta.errors import ErrorCode, FetchError, MetadataTimeoutError, ParseError
from mdcmeta.models.payload import RawComponent

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mdcmeta.config import OriginKind
    from mdcmeta.models.catalog import ComponentDescriptor

log = structlog.get_logger()

_PAYLOAD_ADAPTER = TypeAdapter(list[RawComponent])


@dataclass(frozen=True)
class LoadedCatalog:
    """Components read from one origin, in declaration order."""

    origin: OriginKind
    locations: tuple[str, ...]
    components: tuple[ComponentDescriptor, ...]


CatalogLoader = Callable[[MetadataSettings], Awaitable[LoadedCatalog]]


def build_http_client(settings: MetadataSettings) -> httpx.AsyncClient:
    """Shared client for remote metadata. Closed by the owning AppState."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.fetch_timeout_seconds),
        follow_redirects=True,
        headers={"User-Agent": f"mdcmeta/{__version__}", "Accept": "application/json"},
    )


def resolve_local_files(settings: MetadataSettings) -> list[Path]:
    """Files matching the local pattern, sorted. Empty when no pattern is set."""
    pattern = settings.local_file_pattern
    if not pattern:
        return []
    root = settings.workspace_root.expanduser()
    matches = glob.glob(pattern, root_dir=root, recursive=True)
    files = {(root / match).resolve() for match in matches}
    return sorted(path for path in files if path.is_file())


def parse_catalog(text: str, *, location: str) -> tuple[ComponentDescriptor, ...]:
    """Parse a JSON payload into component descriptors.

    Raises ParseError on invalid JSON, schema violations, or duplicate names.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON in {location}: {exc}") from exc
    if not isinstance(data, list):
        raise ParseError(f"Expected a JSON array of components in {location}")
    try:
        raw_components = _PAYLOAD_ADAPTER.validate_python(data)
        components = tuple(raw.to_descriptor() for raw in raw_components)
    except ValueError as exc:  # includes pydantic.ValidationError
        raise ParseError(f"Invalid component metadata in {location}: {exc}") from exc
    ensure_unique_names(components, location=location)
    return components


def ensure_unique_names(components: Iterable[ComponentDescriptor], *, location: str) -> None:
    seen: set[str] = set()
    for component in components:
        if component.name in seen:
            raise ParseError(
                f"Duplicate component name {component.name!r} in {location}",
                code=ErrorCode.DUPLICATE_COMPONENT,
            )
        seen.add(component.name)


def _read_local_catalog(files: list[Path]) -> tuple[ComponentDescriptor, ...]:
    components: list[ComponentDescriptor] = []
    for path in files:
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"{path} is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise FetchError(
                f"Cannot read {path}: {exc}", code=ErrorCode.LOCAL_READ_FAILED
            ) from exc
        components.extend(parse_catalog(text, location=str(path)))
    ensure_unique_names(components, location="local metadata files")
    return tuple(components)


async def fetch_remote_catalog(
    client: httpx.AsyncClient, url: str
) -> tuple[ComponentDescriptor, ...]:
    """GET the metadata URL and parse the body."""
    try:
        response = await client.get(url)
    except httpx.TimeoutException as exc:
        raise MetadataTimeoutError(f"Timed out fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"Network error fetching {url}: {exc}") from exc
    if not response.is_success:
        raise FetchError(f"HTTP {response.status_code} fetching {url}")
    return parse_catalog(response.text, location=url)


async def load_catalog(settings: MetadataSettings, client: httpx.AsyncClient) -> LoadedCatalog:
    """Load the catalog from the configured origin, bounded by the fetch timeout."""
    try:
        async with asyncio.timeout(settings.fetch_timeout_seconds):
            return await _load(settings, client)
    except TimeoutError as exc:
        raise MetadataTimeoutError(
            f"Loading component metadata exceeded {settings.fetch_timeout_seconds}s"
        ) from exc


async def _load(settings: MetadataSettings, client: httpx.AsyncClient) -> LoadedCatalog:
    files = await asyncio.to_thread(resolve_local_files, settings)
    if files:
        log.debug("metadata_source_local", files=[str(f) for f in files])
        components = await asyncio.to_thread(_read_local_catalog, files)
        return LoadedCatalog("local", tuple(str(f) for f in files), components)

    if settings.local_file_pattern:
        log.debug("metadata_source_local_unmatched", pattern=settings.local_file_pattern)

    if settings.url:
        log.debug("metadata_source_remote", url=settings.url)
        components = await fetch_remote_catalog(client, settings.url)
        return LoadedCatalog("remote", (settings.url,), components)

    log.debug("metadata_source_unconfigured")
    return LoadedCatalog("none", (), ())
