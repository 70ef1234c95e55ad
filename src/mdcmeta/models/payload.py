"""Wire schema for component metadata payloads.

Two entry shapes are accepted, and may be mixed in one array:

Flat::

    {"name": "callout", "description": "...",
     "props": [{"name": "type", "type": "enum", "values": ["info", "warning"]}]}

nuxt-component-meta::

    {"mdc_name": "callout",
     "component_meta": {"meta": {"props": [
         {"name": "type", "type": "'info' | 'warning' | undefined", "default": "'info'"}]}}}

Flat entries are strict about ``type`` (one of the five tags). nuxt entries
carry TypeScript type expressions, which are mapped leniently.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mdcmeta.models.catalog import (
    PROP_TYPES,
    ComponentDescriptor,
    DefaultValue,
    PropDescriptor,
    PropType,
)

_QUOTED = re.compile(r"""^(['"`])(.*)\1$""", re.DOTALL)
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_NULLISH = {"undefined", "null"}


class RawProp(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    type: str | None = None
    default: Any = None
    required: bool = False
    description: str | None = None
    values: list[str] | None = None


class RawComponent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    description: str | None = None
    props: list[RawProp] = []
    strict_types: bool = True

    @model_validator(mode="before")
    @classmethod
    def unwrap_component_meta(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "mdc_name" not in data:
            return data
        component_meta = data.get("component_meta") or {}
        if not isinstance(component_meta, dict):
            raise ValueError("component_meta must be an object")
        meta = component_meta.get("meta") or {}
        if not isinstance(meta, dict):
            raise ValueError("component_meta.meta must be an object")
        return {
            "name": data["mdc_name"],
            "description": data.get("description") or meta.get("description"),
            "props": meta.get("props") or [],
            "strict_types": False,
        }

    def to_descriptor(self) -> ComponentDescriptor:
        props = tuple(_to_prop(raw, strict=self.strict_types) for raw in self.props)
        return ComponentDescriptor(name=self.name, props=props, description=self.description)


def _to_prop(raw: RawProp, *, strict: bool) -> PropDescriptor:
    if strict:
        prop_type, values = _strict_type(raw)
        default = raw.default if _is_scalar(raw.default) else None
    else:
        prop_type, values = infer_type(raw.type)
        default = parse_js_default(raw.default)
    return PropDescriptor(
        name=raw.name,
        type=prop_type,
        default=default,
        required=raw.required,
        description=raw.description or None,
        values=values,
    )


def _strict_type(raw: RawProp) -> tuple[PropType, tuple[str, ...]]:
    values = tuple(raw.values or ())
    if raw.type is None:
        return ("enum" if values else "unknown"), values
    if raw.type not in PROP_TYPES:
        raise ValueError(f"Unrecognized type {raw.type!r} for prop {raw.name!r}")
    return raw.type, values  # type: ignore[return-value]


def infer_type(expression: str | None) -> tuple[PropType, tuple[str, ...]]:
    """Map a TypeScript type expression onto a prop type tag.

    ``"'info' | 'warning' | undefined"`` -> ``("enum", ("info", "warning"))``
    """
    if not expression:
        return "unknown", ()
    members = [m.strip() for m in expression.split("|")]
    members = [m for m in members if m and m not in _NULLISH]
    if not members:
        return "unknown", ()
    literals = [_QUOTED.match(m) for m in members]
    if all(literals):
        return "enum", tuple(match.group(2) for match in literals if match)
    if len(members) == 1 and members[0] in ("string", "number", "boolean"):
        return members[0], ()  # type: ignore[return-value]
    if set(members) == {"true", "false"}:
        return "boolean", ()
    return "unknown", ()


def parse_js_default(value: Any) -> DefaultValue:
    """Turn a default given as a JS expression string into a scalar."""
    if not isinstance(value, str):
        return value if _is_scalar(value) else None
    text = value.strip()
    match = _QUOTED.match(text)
    if match:
        return match.group(2)
    if text in ("true", "false"):
        return text == "true"
    if _NUMBER.match(text):
        return float(text) if "." in text else int(text)
    if text in _NULLISH or not text:
        return None
    return text


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, bool | int | float | str)
