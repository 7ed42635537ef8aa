"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- All types are frozen dataclasses for immutability guarantee
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple, Union
from enum import Enum, auto
import hashlib


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No silent fallbacks - every error state is enumerated.
    """
    # Payload shape errors
    MALFORMED_PAYLOAD = auto()
    MISSING_METADATA = auto()
    INVALID_METADATA_FIELD = auto()
    MISSING_FIELD = auto()
    WRONG_FIELD_KIND = auto()

    # Level errors
    UNKNOWN_LEVEL = auto()
    LEVEL_NOT_AVAILABLE = auto()

    # Referential integrity (advisory)
    DANGLING_REFERENCE = auto()
    REFERENCE_CYCLE = auto()
    DUPLICATE_ID = auto()

    # Budget (advisory)
    BUDGET_EXCEEDED = auto()
    BUDGET_UNDERRUN = auto()

    # Publication errors
    EMPTY_FAMILY = auto()
    FAMILY_INCONSISTENT = auto()
    PAYLOAD_NONCONFORMING = auto()

    # Serving errors
    CONTENT_NOT_FOUND = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.

    Errors carry no timestamp: validating the same payload twice must
    produce equal errors.
    """
    code: ErrorCode
    message: str
    level: Optional[int] = None
    field_name: Optional[str] = None
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            level=self.level,
            field_name=self.field_name,
            context=self.context + ((key, value),)
        )

    def to_dict(self) -> dict:
        return {
            'code': self.code.name,
            'message': self.message,
            'level': self.level,
            'field': self.field_name,
            'context': dict(self.context),
        }


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)


class PayloadContractError(ValueError):
    """
    Raised by producer-side builders when an assembled payload would
    violate its level contract. Consumers never see this: validation
    of received payloads is a predicate, not a gate.
    """

    def __init__(self, message: str, errors: Tuple[Error, ...] = ()):
        super().__init__(message)
        self.errors = errors


# =============================================================================
# IDENTITY TYPES (Immutable, hash-verified)
# =============================================================================

@dataclass(frozen=True)
class SourceHash:
    """
    Content-addressed identifier of the source material.

    Stable across every level generated from the same content: it is the
    join key across levels and the first half of the cache key.
    """
    value: str

    def __post_init__(self):
        if not self.value or not isinstance(self.value, str):
            raise ValueError("SourceHash value must be a non-empty string")

    @staticmethod
    def compute(content: Union[str, bytes]) -> SourceHash:
        """Compute SHA-256 identity from raw source content."""
        if isinstance(content, str):
            content = content.encode('utf-8')
        return SourceHash(value=hashlib.sha256(content).hexdigest())


# =============================================================================
# TEMPORAL TYPES (Immutable, explicit semantics)
# =============================================================================

@dataclass(frozen=True)
class Timestamp:
    """
    Immutable timestamp with explicit semantics.
    All timestamps are UTC, never local time.
    """
    value: datetime

    def __post_init__(self):
        # Ensure UTC timezone
        if self.value.tzinfo is None:
            object.__setattr__(self, 'value', self.value.replace(tzinfo=timezone.utc))

    @staticmethod
    def now() -> Timestamp:
        return Timestamp(value=datetime.now(timezone.utc))

    @staticmethod
    def from_iso(iso_string: str) -> Timestamp:
        dt = datetime.fromisoformat(iso_string.replace('Z', '+00:00'))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return Timestamp(value=dt)

    def to_iso(self) -> str:
        return self.value.isoformat().replace('+00:00', 'Z')


@dataclass(frozen=True)
class TimeRange:
    """Immutable time range for audit queries."""
    start: Timestamp
    end: Timestamp

    def __post_init__(self):
        if self.start.value > self.end.value:
            raise ValueError("TimeRange start must be before or equal to end")

    def contains(self, timestamp: Timestamp) -> bool:
        return self.start.value <= timestamp.value <= self.end.value
