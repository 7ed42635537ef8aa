"""
Observability & Audit Layer

RESPONSIBILITY: Audit trail and counters for publication and serving
ALLOWED INPUTS: AuditLogEntry records and metric points from the engine
OUTPUTS: Audit entries per layer, counter totals, audit reports

WHAT THIS LAYER MUST NOT DO:
============================
- Influence publication or selection
- Receive payloads (only source hashes, levels and outcomes)
- Drop or rewrite recorded entries
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from enum import Enum
import hashlib
import itertools
import threading

from ..contracts.base import Timestamp, TimeRange
from ..contracts.events import AuditLogEntry, AuditEventType, MetricPoint


# =============================================================================
# AUDIT COLLECTORS (One per layer)
# =============================================================================

class LogCollector:
    """
    Append-only audit trail for one layer (validation, selection, engine).
    """

    def __init__(self, layer_name: str):
        self._layer_name = layer_name
        self._entries: List[AuditLogEntry] = []
        self._lock = threading.Lock()

    def collect(self, entry: AuditLogEntry):
        with self._lock:
            self._entries.append(entry)

    def get_entries(
        self,
        time_range: Optional[TimeRange] = None,
        event_type: Optional[AuditEventType] = None,
        entity_id: Optional[str] = None
    ) -> List[AuditLogEntry]:
        """Entries in arrival order, filtered by time, type and source hash."""
        with self._lock:
            entries = list(self._entries)
        return [
            e for e in entries
            if (time_range is None or time_range.contains(e.timestamp))
            and (event_type is None or e.event_type is event_type)
            and (entity_id is None or e.entity_id == entity_id)
        ]

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        with self._lock:
            return len(self._entries)


# =============================================================================
# COUNTERS
# =============================================================================

class MetricType(Enum):
    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDefinition:
    """A named metric and the label keys its points carry."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


DEFAULT_METRICS: Tuple[MetricDefinition, ...] = (
    MetricDefinition("payloads_published_total", MetricType.COUNTER,
                     "Payloads accepted by publish"),
    MetricDefinition("publish_rejections_total", MetricType.COUNTER,
                     "Families rejected by publish", labels=("error_code",)),
    MetricDefinition("levels_served_total", MetricType.COUNTER,
                     "Payloads served, by level", labels=("level",)),
    MetricDefinition("level_fallbacks_total", MetricType.COUNTER,
                     "Selections decided by a fallback branch", labels=("basis",)),
)


class MetricsCollector:
    """
    Time series of metric points keyed by metric name.

    Points are never aggregated on write; totals are computed on read.
    """

    def __init__(self, definitions: Tuple[MetricDefinition, ...] = DEFAULT_METRICS):
        self._definitions: Dict[str, MetricDefinition] = {}
        self._points: Dict[str, List[MetricPoint]] = {}
        self._lock = threading.Lock()
        for definition in definitions:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        with self._lock:
            self._definitions[definition.name] = definition
            self._points.setdefault(definition.name, [])

    def definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def metric_names(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._points))

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=Timestamp.now(),
            labels=tuple(sorted((labels or {}).items())),
        )
        with self._lock:
            self._points.setdefault(metric_name, []).append(point)

    def get_metric(
        self,
        metric_name: str,
        time_range: Optional[TimeRange] = None
    ) -> List[MetricPoint]:
        with self._lock:
            points = list(self._points.get(metric_name, []))
        if time_range:
            points = [p for p in points if time_range.contains(p.timestamp)]
        return points

    def total(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Sum of a metric's points, optionally restricted to matching labels."""
        wanted = set((labels or {}).items())
        return sum(
            p.value for p in self.get_metric(metric_name)
            if wanted <= set(p.labels)
        )

    def breakdown(self, metric_name: str, label: str) -> Dict[str, float]:
        """Totals per value of one label, e.g. served counts per level."""
        totals: Dict[str, float] = {}
        for point in self.get_metric(metric_name):
            key = dict(point.labels).get(label)
            if key is not None:
                totals[key] = totals.get(key, 0) + point.value
        return dict(sorted(totals.items()))


# =============================================================================
# OBSERVABILITY ENGINE
# =============================================================================

@dataclass
class ObservabilityConfig:
    enable_metrics: bool = True
    layers: Tuple[str, ...] = ('validation', 'selection', 'engine')


class ObservabilityEngine:
    """
    Front door for the engine's audit trail and counters.

    BOUNDARY ENFORCEMENT:
    - Records what the engine reports, nothing more
    - Readers get copies; collectors stay append-only
    """

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()
        self._collectors: Dict[str, LogCollector] = {
            name: LogCollector(name) for name in self._config.layers
        }
        self._metrics = MetricsCollector() if self._config.enable_metrics else None
        self._sequence = itertools.count()

    def collect_audit(self, entry: AuditLogEntry):
        """Route an entry to its layer's collector; unknown layers are ignored."""
        collector = self._collectors.get(entry.layer)
        if collector:
            collector.collect(entry)

    def log_audit(
        self,
        action: str,
        event_type: AuditEventType = AuditEventType.SYSTEM,
        entity_id: Optional[str] = None,
        outcome: str = "success",
        details: str = "",
        layer: str = "engine"
    ) -> AuditLogEntry:
        """Build, record and return an audit entry."""
        now = Timestamp.now()
        digest = hashlib.sha256(
            f"{layer}|{action}|{entity_id}|{next(self._sequence)}".encode()
        ).hexdigest()[:16]
        entry = AuditLogEntry(
            entry_id=f"audit_{digest}",
            event_type=event_type,
            timestamp=now,
            layer=layer,
            action=action,
            entity_id=entity_id,
            metadata=(("outcome", outcome), ("details", details)),
        )
        self.collect_audit(entry)
        return entry

    def collect_metric(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        if self._metrics:
            self._metrics.record(metric_name, value, labels)

    def get_unified_log(
        self,
        time_range: Optional[TimeRange] = None,
        layers: Optional[List[str]] = None,
        entity_id: Optional[str] = None
    ) -> List[AuditLogEntry]:
        """Entries from all (or the given) layers, oldest first."""
        entries: List[AuditLogEntry] = []
        for name in layers or list(self._collectors):
            collector = self._collectors.get(name)
            if collector:
                entries.extend(collector.get_entries(time_range=time_range, entity_id=entity_id))
        entries.sort(key=lambda e: e.timestamp.value)
        return entries

    def get_layer_log(
        self,
        layer_name: str,
        time_range: Optional[TimeRange] = None
    ) -> List[AuditLogEntry]:
        collector = self._collectors.get(layer_name)
        if not collector:
            return []
        return collector.get_entries(time_range=time_range)

    def get_metrics(self) -> Optional[MetricsCollector]:
        return self._metrics

    def generate_audit_report(
        self,
        time_range: Optional[TimeRange] = None,
        entity_id: Optional[str] = None
    ) -> Dict:
        """
        Audit counts by layer and event type, plus serving counters.

        ``entity_id`` narrows the audit counts to one source hash; the
        counters are process-wide.
        """
        entries = self.get_unified_log(time_range=time_range, entity_id=entity_id)

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1

        report = {
            'total_entries': len(entries),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'time_range': {
                'start': entries[0].timestamp.to_iso() if entries else None,
                'end': entries[-1].timestamp.to_iso() if entries else None,
            },
            'generated_at': Timestamp.now().to_iso(),
        }
        if self._metrics:
            report['levels_served'] = self._metrics.breakdown("levels_served_total", "level")
            report['fallbacks'] = self._metrics.breakdown("level_fallbacks_total", "basis")
            report['rejections'] = self._metrics.breakdown("publish_rejections_total", "error_code")
        return report


__all__ = [
    "DEFAULT_METRICS", "LogCollector", "MetricDefinition", "MetricType", "MetricsCollector",
    "ObservabilityConfig", "ObservabilityEngine",
]
