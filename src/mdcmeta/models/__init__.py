from __future__ import annotations

from mdcmeta.models.catalog import (
    PROP_TYPES,
    ComponentDescriptor,
    MetadataSnapshot,
    PropDescriptor,
    PropType,
)
from mdcmeta.models.completion import CompletionCandidate
from mdcmeta.models.payload import RawComponent, RawProp

__all__ = [
    # catalog
    "PROP_TYPES",
    "PropType",
    "PropDescriptor",
    "ComponentDescriptor",
    "MetadataSnapshot",
    # payload
    "RawComponent",
    "RawProp",
    # completion
    "CompletionCandidate",
]
