from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class CompletionCandidate(BaseModel):
    """Single completion item handed to the editor host."""

    model_config = ConfigDict(frozen=True)

    label: str
    kind: Literal["component", "property"]
    detail: str | None = None
    documentation: str | None = None
    insert_text: str  # Snippet syntax: $0, ${1:default}, ${1|a,b|}
    sort_text: str  # Zero-padded position, keeps catalog/declaration order
