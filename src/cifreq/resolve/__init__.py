"""Identifier resolution exports."""

from .allow_list import AllowList
from .identifier_resolver import (
    IdentifierMap,
    IdentifierResolver,
    ResolutionStats,
    ResolutionStrategy,
    build_direct_map,
    build_intermediate_map,
    build_stop_name_lookup,
    canonicalise,
    location_definitions,
    rewrite_identifiers,
)

__all__ = [
    "AllowList",
    "IdentifierMap",
    "IdentifierResolver",
    "ResolutionStats",
    "ResolutionStrategy",
    "build_direct_map",
    "build_intermediate_map",
    "build_stop_name_lookup",
    "canonicalise",
    "location_definitions",
    "rewrite_identifiers",
]
