from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

PropType = Literal["string", "number", "boolean", "enum", "unknown"]
PROP_TYPES: tuple[PropType, ...] = ("string", "number", "boolean", "enum", "unknown")

DefaultValue = bool | int | float | str | None

_COMPONENT_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


class PropDescriptor(BaseModel):
    """Single prop declared by a component."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    type: PropType = "unknown"
    default: DefaultValue = None
    required: bool = False
    description: str | None = None
    values: tuple[str, ...] = ()  # enum choices, declaration order

    @property
    def type_hint(self) -> str:
        if self.type == "enum" and self.values:
            return " | ".join(f"'{value}'" for value in self.values)
        return self.type


class ComponentDescriptor(BaseModel):
    """Single component in a catalog. Props keep their declaration order."""

    model_config = ConfigDict(frozen=True)

    name: str
    props: tuple[PropDescriptor, ...] = ()
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _COMPONENT_NAME.match(v):
            raise ValueError(f"Invalid component name: {v!r}")
        return v

    @field_validator("props")
    @classmethod
    def validate_unique_props(cls, v: tuple[PropDescriptor, ...]) -> tuple[PropDescriptor, ...]:
        seen: set[str] = set()
        for prop in v:
            if prop.name in seen:
                raise ValueError(f"Duplicate prop name: {prop.name!r}")
            seen.add(prop.name)
        return v

    def prop(self, name: str) -> PropDescriptor | None:
        return next((p for p in self.props if p.name == name), None)


class MetadataSnapshot(BaseModel):
    """Immutable catalog published by the metadata cache."""

    model_config = ConfigDict(frozen=True)

    components: tuple[ComponentDescriptor, ...] = ()
    generation: int = Field(ge=1)
    fingerprint: str
    origin: Literal["local", "remote", "none"] = "none"
    locations: tuple[str, ...] = ()  # files read, or the URL fetched
    fetched_at: datetime

    @field_validator("components")
    @classmethod
    def validate_unique_components(
        cls, v: tuple[ComponentDescriptor, ...]
    ) -> tuple[ComponentDescriptor, ...]:
        seen: set[str] = set()
        for component in v:
            if component.name in seen:
                raise ValueError(f"Duplicate component name: {component.name!r}")
            seen.add(component.name)
        return v

    @property
    def is_empty(self) -> bool:
        return not self.components

    def component(self, name: str) -> ComponentDescriptor | None:
        """Look a component up by tag name: exact match first, then case-insensitive."""
        for component in self.components:
            if component.name == name:
                return component
        folded = name.casefold()
        for component in self.components:
            if component.name.casefold() == folded:
                return component
        return None
