"""
Observability Contracts

Immutable records exchanged between the engine and the observability
layer. Collectors receive these records; they never receive payloads.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple
from enum import Enum

from .base import Timestamp


# =============================================================================
# OBSERVABILITY CONTRACTS
# =============================================================================

class AuditEventType(Enum):
    """Explicit audit event types."""
    VALIDATION = "validation"
    SELECTION = "selection"
    PUBLICATION = "publication"
    SERVING = "serving"
    ERROR = "error"
    SYSTEM = "system"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: Timestamp
    layer: str  # Which layer generated this
    action: str
    entity_id: Optional[str] = None  # Source hash the action concerned
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            'entry_id': self.entry_id,
            'event_type': self.event_type.value,
            'timestamp': self.timestamp.to_iso(),
            'layer': self.layer,
            'action': self.action,
            'entity_id': self.entity_id,
            'metadata': dict(self.metadata),
        }


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    timestamp: Timestamp
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
