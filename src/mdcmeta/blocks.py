"""Document access and MDC block structure.

The completion engine only depends on the two protocols defined here. Hosts
with a full block-structure parser plug it in through ``BlockStructureParser``;
``MarkerBlockParser`` is a lightweight line scanner that covers what
completions need (open/close pairs and the enclosing tag).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

_OPENER = re.compile(r"^\s*(?P<colons>:{2,})(?P<tag>[A-Za-z][\w-]*)(?P<rest>.*)$")
_CLOSER = re.compile(r"^\s*(?P<colons>:{2,})\s*$")
_FENCE = re.compile(r"^\s*(?P<fence>`{3,}|~{3,})")
_INLINE_PROPS = re.compile(r"\{(?P<body>[^}]*)\}")
_INLINE_KEY = re.compile(r"(?:^|\s)[:@]?(?P<key>[A-Za-z_][\w-]*)(?==|\s|$)")


@runtime_checkable
class DocumentAccessor(Protocol):
    """Line-addressable, read-only view of a document."""

    @property
    def line_count(self) -> int: ...

    def get_line(self, line: int) -> str: ...


@dataclass(frozen=True)
class Position:
    """Zero-based cursor position."""

    line: int
    character: int


@dataclass(frozen=True)
class TextDocument:
    """In-memory DocumentAccessor built from a string."""

    lines: tuple[str, ...]

    @classmethod
    def from_text(cls, text: str) -> TextDocument:
        return cls(tuple(line.rstrip("\r") for line in text.split("\n")))

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def get_line(self, line: int) -> str:
        return self.lines[line]


@dataclass(frozen=True)
class Block:
    """A component block. ``end_line`` is None while the block is unclosed."""

    tag: str
    colons: int
    start_line: int
    end_line: int | None = None
    inline_props: tuple[str, ...] = field(default=())

    def contains_line(self, line: int) -> bool:
        """True when ``line`` is in the block body (between opener and closer)."""
        if line <= self.start_line:
            return False
        return self.end_line is None or line < self.end_line


class BlockStructureParser(Protocol):
    def blocks(self, document: DocumentAccessor) -> list[Block]: ...

    def enclosing_block(
        self, document: DocumentAccessor, position: Position
    ) -> Block | None: ...


def inline_prop_names(opener_rest: str) -> tuple[str, ...]:
    """Attribute names inside the ``{...}`` of an opener line."""
    match = _INLINE_PROPS.search(opener_rest)
    if match is None:
        return ()
    body = re.sub(r"""(["']).*?\1""", '""', match.group("body"))
    return tuple(m.group("key") for m in _INLINE_KEY.finditer(body))


class MarkerBlockParser:
    """Matches ``::name`` openers with ``::`` closers of the same colon count.

    A closer also ends any deeper block left open above it. Lines inside
    fenced code are ignored.
    """

    def blocks(self, document: DocumentAccessor) -> list[Block]:
        found: list[Block] = []
        stack: list[int] = []  # indexes into found
        fence: str | None = None

        for number in range(document.line_count):
            text = document.get_line(number)

            fence_match = _FENCE.match(text)
            if fence_match:
                marker = fence_match.group("fence")
                if fence is None:
                    fence = marker[0] * 3
                elif marker.startswith(fence):
                    fence = None
                continue
            if fence is not None:
                continue

            closer = _CLOSER.match(text)
            if closer:
                colons = len(closer.group("colons"))
                for depth in range(len(stack) - 1, -1, -1):
                    if found[stack[depth]].colons == colons:
                        for index in stack[depth:]:
                            block = found[index]
                            found[index] = Block(
                                block.tag, block.colons, block.start_line, number,
                                block.inline_props,
                            )
                        del stack[depth:]
                        break
                continue

            opener = _OPENER.match(text)
            if opener:
                found.append(
                    Block(
                        tag=opener.group("tag"),
                        colons=len(opener.group("colons")),
                        start_line=number,
                        inline_props=inline_prop_names(opener.group("rest")),
                    )
                )
                stack.append(len(found) - 1)

        return found

    def enclosing_block(self, document: DocumentAccessor, position: Position) -> Block | None:
        enclosing: Block | None = None
        for block in self.blocks(document):
            if block.start_line >= position.line:
                break
            if block.contains_line(position.line):
                enclosing = block  # later openers are nested deeper
        return enclosing
