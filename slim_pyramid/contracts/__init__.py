"""
Contracts Module

This module defines the immutable data types shared by the schema
registry, validator, selector and engine. All inter-layer communication
MUST use these contracts.

DESIGN PRINCIPLES:
==================
1. All contract types are immutable (frozen dataclasses)
2. All contracts include explicit error states
3. Wire field names are exact and case-sensitive
4. All timestamps use UTC and are never mutated
5. Hash-based identity ties all levels of one content item together
"""

from .base import (
    Error, ErrorCode, PayloadContractError, Result, SourceHash, TimeRange, Timestamp,
)
from .levels import (
    ALL_LEVELS, MAX_LEVEL, METADATA_KEY, MIN_LEVEL, PROTOCOL_VERSION,
    Capability, CodeSchema, ContentLength, ContentType, ContentUnit, Dimensions,
    EntityType, Importance, KeyPoint, LengthUnit, LevelRequest, ListSchema,
    MediaDescription, MediaItem, MediaType, OutlineEntry, Phase, Preference,
    SchemaDefinition, SchemaType, SlimEntity, SlimMetadata, StructuredData,
    TableSchema, UnitType, is_known_level,
)

__all__ = [
    "ALL_LEVELS", "MAX_LEVEL", "METADATA_KEY", "MIN_LEVEL", "PROTOCOL_VERSION",
    "Capability", "CodeSchema", "ContentLength", "ContentType", "ContentUnit",
    "Dimensions", "EntityType", "Error", "ErrorCode", "Importance", "KeyPoint",
    "LengthUnit", "LevelRequest", "ListSchema", "MediaDescription", "MediaItem",
    "MediaType", "OutlineEntry", "PayloadContractError", "Phase", "Preference",
    "Result", "SchemaDefinition", "SchemaType", "SlimEntity", "SlimMetadata",
    "SourceHash", "StructuredData", "TableSchema", "TimeRange", "Timestamp",
    "UnitType", "is_known_level",
]
