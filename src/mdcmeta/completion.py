"""Component-name and component-prop completion.

``CompletionEngine`` handlers are pure functions of (snapshot, document,
position): they never fetch, never cache and never raise on a missing or
empty catalog. ``CompletionProvider`` is the host-facing entry point; it
reads the cache through ``peek()`` so a completion request never waits on
I/O.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING

import structlog

from mdcmeta.blocks import MarkerBlockParser
from mdcmeta.models.completion import CompletionCandidate

if TYPE_CHECKING:
    from mdcmeta.blocks import Block, BlockStructureParser, DocumentAccessor, Position
    from mdcmeta.cache import MetadataCache
    from mdcmeta.models.catalog import (
        ComponentDescriptor,
        DefaultValue,
        MetadataSnapshot,
        PropDescriptor,
    )

log = structlog.get_logger()

COMPONENT_TRIGGER_CHARACTERS = (":",)
PROP_TRIGGER_CHARACTERS = ("\n", " ")

_NAME_CONTEXT = re.compile(r"^\s*(?P<colons>:{2,})(?P<partial>[\w-]*)$")
_KEY_PREFIX = re.compile(r"^\s*[\w-]*$")
_YAML_KEY = re.compile(r"^\s*(?P<key>[A-Za-z_][\w-]*)\s*:")
_FRONTMATTER = "---"
_YAML_PLAIN = re.compile(r"^[\w./@-][\w ./@-]*$")


def _line_prefix(document: DocumentAccessor, position: Position) -> str:
    if not 0 <= position.line < document.line_count:
        return ""
    return document.get_line(position.line)[: position.character]


def _escape_snippet(text: str, *, choice: bool = False) -> str:
    text = text.replace("\\", "\\\\").replace("$", "\\$").replace("}", "\\}")
    if choice:
        text = text.replace(",", "\\,").replace("|", "\\|")
    return text


def _yaml_scalar(value: DefaultValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    text = str(value)
    if _YAML_PLAIN.match(text) and text not in ("true", "false", "null"):
        return text
    return json.dumps(text)


class CompletionEngine:
    """Read-only completion handlers over a metadata snapshot."""

    def __init__(self, parser: BlockStructureParser | None = None) -> None:
        self._parser = parser or MarkerBlockParser()

    # ------------------------------------------------------------------
    # Component names
    # ------------------------------------------------------------------

    def component_names(
        self,
        snapshot: MetadataSnapshot | None,
        document: DocumentAccessor,
        position: Position,
    ) -> list[CompletionCandidate]:
        """One candidate per component, in catalog order, after a ``::`` prefix."""
        if snapshot is None or snapshot.is_empty:
            return []
        match = _NAME_CONTEXT.match(_line_prefix(document, position))
        if match is None:
            return []
        colons = match.group("colons")
        return [
            self._component_candidate(component, colons, index)
            for index, component in enumerate(snapshot.components)
        ]

    @staticmethod
    def _component_candidate(
        component: ComponentDescriptor, colons: str, index: int
    ) -> CompletionCandidate:
        return CompletionCandidate(
            label=component.name,
            kind="component",
            detail=f"{len(component.props)} props" if component.props else None,
            documentation=component.description,
            insert_text=f"{component.name}\n$0\n{colons}",
            sort_text=f"{index:04d}",
        )

    # ------------------------------------------------------------------
    # Component props
    # ------------------------------------------------------------------

    def component_props(
        self,
        snapshot: MetadataSnapshot | None,
        document: DocumentAccessor,
        position: Position,
    ) -> list[CompletionCandidate]:
        """Props of the enclosing component not yet present in its prop region."""
        if snapshot is None or snapshot.is_empty:
            return []
        if not _KEY_PREFIX.match(_line_prefix(document, position)):
            return []
        block = self._parser.enclosing_block(document, position)
        if block is None:
            return []
        component = snapshot.component(block.tag)
        if component is None:
            return []

        region = self._prop_region(document, block)
        if position.line not in region:
            return []

        present = set(block.inline_props)
        for line in region:
            if line == position.line:
                continue
            key = _YAML_KEY.match(document.get_line(line))
            if key:
                present.add(key.group("key"))

        return [
            self._prop_candidate(prop, index)
            for index, prop in enumerate(component.props)
            if prop.name not in present
        ]

    def _prop_region(self, document: DocumentAccessor, block: Block) -> list[int]:
        """Lines where props of ``block`` are written.

        The frontmatter between ``---`` markers when the body starts with one,
        otherwise the whole body minus nested blocks.
        """
        end = block.end_line if block.end_line is not None else document.line_count
        nested = [
            b for b in self._parser.blocks(document) if block.start_line < b.start_line < end
        ]
        body = [
            line
            for line in range(block.start_line + 1, end)
            if not any(
                b.start_line <= line and (b.end_line is None or line <= b.end_line)
                for b in nested
            )
        ]

        first = next((line for line in body if document.get_line(line).strip()), None)
        if first is None or document.get_line(first).strip() != _FRONTMATTER:
            return body

        region: list[int] = []
        for line in body:
            if line <= first:
                continue
            if document.get_line(line).strip() == _FRONTMATTER:
                break
            region.append(line)
        return region

    @staticmethod
    def _prop_candidate(prop: PropDescriptor, index: int) -> CompletionCandidate:
        if prop.type == "enum" and prop.values:
            choices = list(prop.values)
            if isinstance(prop.default, str) and prop.default in choices:
                choices.remove(prop.default)
                choices.insert(0, prop.default)
            value = "${1|" + ",".join(_escape_snippet(c, choice=True) for c in choices) + "|}"
        elif prop.type == "boolean":
            value = "${1|false,true|}" if prop.default is False else "${1|true,false|}"
        elif prop.default is not None:
            value = "${1:" + _escape_snippet(_yaml_scalar(prop.default)) + "}"
        else:
            value = "$1"

        documentation = prop.description
        if prop.default is not None:
            default_line = f"Default: `{_yaml_scalar(prop.default)}`"
            documentation = f"{documentation}\n\n{default_line}" if documentation else default_line

        return CompletionCandidate(
            label=prop.name,
            kind="property",
            detail=f"{prop.type_hint} (required)" if prop.required else prop.type_hint,
            documentation=documentation,
            insert_text=f"{prop.name}: {value}",
            sort_text=f"{index:04d}",
        )


class CompletionProvider:
    """Entry point for the editor host's completion requests."""

    def __init__(self, cache: MetadataCache, engine: CompletionEngine | None = None) -> None:
        self._cache = cache
        self._engine = engine or CompletionEngine()

    def provide(
        self,
        document: DocumentAccessor,
        position: Position,
        trigger_character: str | None = None,
    ) -> list[CompletionCandidate]:
        if not self._cache.settings.enabled:
            return []
        snapshot = self._cache.peek()
        if snapshot is None:
            log.debug("completion_without_catalog", fetch_in_flight=self._cache.fetch_in_flight)
            return []

        if trigger_character in COMPONENT_TRIGGER_CHARACTERS:
            return self._engine.component_names(snapshot, document, position)
        if trigger_character in PROP_TRIGGER_CHARACTERS:
            return self._engine.component_props(snapshot, document, position)
        return self._engine.component_names(
            snapshot, document, position
        ) or self._engine.component_props(snapshot, document, position)
