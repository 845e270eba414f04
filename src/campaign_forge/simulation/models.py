"""
Data model for simulated campaigns.

Everything produced by a build is an immutable value once emitted; the
aggregate ``CampaignResult`` is assembled once per orchestrator run.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

import networkx as nx


class ScenarioType(str, Enum):
    """Campaign families registered in the scenario catalog."""

    APT = "apt"
    RANSOMWARE = "ransomware"
    INSIDER = "insider"
    SUPPLY_CHAIN = "supply_chain"


class Complexity(str, Enum):
    """Campaign and environment complexity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXPERT = "expert"


class TimePattern(str, Enum):
    """How stages are distributed inside the campaign duration."""

    UNIFORM = "uniform"
    BUSINESS_HOURS = "business_hours"
    ATTACK_SIMULATION = "attack_simulation"
    WEEKEND_HEAVY = "weekend_heavy"
    RANDOM = "random"


class EventType(str, Enum):
    LOG = "log"
    ALERT = "alert"


class DetectionState(str, Enum):
    """Per technique-within-stage detection state machine."""

    PENDING = "pending"
    DETECTED = "detected"
    MISSED = "missed"


class MissedReason(str, Enum):
    BELOW_DETECTION_THRESHOLD = "below_detection_threshold"
    NO_LOGS = "no_logs"
    ALERT_GENERATION_FAILED = "alert_generation_failed"


# Keys owned by the synthesizer; collaborators may not set them
RESERVED_FIELDS = frozenset({
    "@timestamp",
    "threat.technique.id",
    "campaign.correlation.id",
    "host.name",
})


def split_reserved_fields(
    fields: Mapping[str, Any],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a field bag into ``(reserved, enrichment)`` parts."""
    reserved = {k: v for k, v in fields.items() if k in RESERVED_FIELDS}
    enrichment = {k: v for k, v in fields.items() if k not in RESERVED_FIELDS}
    return reserved, enrichment


# =============================================================================
# Campaign and stages
# =============================================================================


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    @property
    def span_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


@dataclass(frozen=True)
class Campaign:
    """A concrete campaign instantiated from a template."""

    id: str
    name: str
    type: ScenarioType
    threat_actor: str
    objectives: tuple[str, ...]
    duration: TimeRange
    complexity: Complexity = Complexity.MEDIUM


@dataclass(frozen=True)
class Stage:
    """
    One phase of a campaign.

    ``start_time < end_time`` and ``start_time >= campaign.duration.start``
    always hold. Stages of the same campaign may overlap.
    """

    id: str
    name: str
    tactic: str
    techniques: tuple[str, ...]
    start_time: datetime
    end_time: datetime
    objectives: tuple[str, ...]
    correlation_key: str
    index: int = 0

    @property
    def narrative(self) -> str:
        goals = ", ".join(self.objectives) or "no stated objectives"
        return f"{self.name} ({self.tactic}): {goals}"


# =============================================================================
# Network topology
# =============================================================================


@dataclass(frozen=True)
class Asset:
    hostname: str
    ip_address: str
    zone: str
    role: str
    critical: bool = False


@dataclass(frozen=True)
class Subnet:
    name: str
    cidr: str
    security_zone: str
    trust_level: float
    assets: tuple[Asset, ...] = ()


@dataclass(frozen=True)
class TrustRelationship:
    source_zone: str
    target_zone: str
    trust_level: float
    crosses_boundary: bool


@dataclass(frozen=True)
class SecurityControl:
    name: str
    control_type: str
    zone: str
    strength: float  # 0.0 = no resistance, 1.0 = impassable


@dataclass(frozen=True)
class NetworkTopology:
    """Network skeleton generated once per campaign, read-only afterwards."""

    subnets: tuple[Subnet, ...]
    critical_assets: tuple[Asset, ...]
    trust_relationships: tuple[TrustRelationship, ...]
    security_controls: tuple[SecurityControl, ...]
    graph: nx.DiGraph = field(compare=False, repr=False)

    @property
    def assets(self) -> list[Asset]:
        return [asset for subnet in self.subnets for asset in subnet.assets]

    def subnet(self, zone: str) -> Subnet:
        for subnet in self.subnets:
            if subnet.security_zone == zone:
                return subnet
        raise KeyError(zone)


@dataclass(frozen=True)
class LateralMovementPath:
    source_asset: str
    target_asset: str
    techniques: tuple[str, ...]
    success_probability: float
    source_zone: str = ""
    target_zone: str = ""
    crosses_boundary: bool = False


# =============================================================================
# Events, detection and correlation
# =============================================================================


@dataclass(frozen=True)
class SynthesizedEvent:
    """A candidate log or alert event derived from exactly one stage."""

    id: str
    timestamp: datetime
    stage_id: str
    technique: str
    source_asset: str
    event_type: EventType
    correlation_id: str
    fields: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.fields, MappingProxyType):
            object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @property
    def dataset(self) -> str:
        return str(self.fields.get("data_stream.dataset", "generic.log"))

    def to_document(self) -> dict[str, Any]:
        """Flatten into an ECS-style document for persistence."""
        return {
            **self.fields,
            "@timestamp": self.timestamp.isoformat(),
            "event.id": self.id,
            "event.kind": "event" if self.event_type == EventType.LOG else "alert",
            "host.name": self.source_asset,
            "threat.technique.id": self.technique,
            "campaign.correlation.id": self.correlation_id,
            "campaign.stage.id": self.stage_id,
        }


@dataclass(frozen=True)
class DetectedAlert:
    """An alert produced for a detected technique-within-stage."""

    id: str
    timestamp: datetime
    stage_id: str
    technique: str
    rule_name: str
    severity: str
    correlation_id: str
    document: Mapping[str, Any]


@dataclass(frozen=True)
class MissedActivity:
    stage: str
    stage_id: str
    technique: str
    reason: MissedReason
    logs: int


@dataclass(frozen=True)
class DetectionOutcome:
    """Detection result for one technique within one stage."""

    stage_id: str
    technique: str
    state: DetectionState
    events: tuple[SynthesizedEvent, ...] = ()
    detection_delay_minutes: float | None = None
    alert: DetectedAlert | None = None
    reason: MissedReason | None = None

    @property
    def detected(self) -> bool:
        return self.state == DetectionState.DETECTED


@dataclass(frozen=True)
class StageLogs:
    stage_id: str
    stage_name: str
    techniques: tuple[str, ...]
    logs: tuple[SynthesizedEvent, ...]
    outcomes: tuple[DetectionOutcome, ...] = ()

    @property
    def detected(self) -> bool:
        return any(outcome.detected for outcome in self.outcomes)

    @property
    def detection_delay(self) -> float | None:
        delays = [
            o.detection_delay_minutes
            for o in self.outcomes
            if o.detected and o.detection_delay_minutes is not None
        ]
        return min(delays) if delays else None


@dataclass(frozen=True)
class CorrelationCluster:
    rule_id: str
    rule_name: str
    matched_event_ids: tuple[str, ...]
    confidence_score: float
    correlation_ids: tuple[str, ...] = ()
    first_seen: datetime | None = None
    last_seen: datetime | None = None


# =============================================================================
# Timeline and result
# =============================================================================


@dataclass(frozen=True)
class TimelineEntry:
    timestamp: datetime
    type: str  # stage_start | log | alert
    stage_id: str
    description: str
    reference_id: str


@dataclass(frozen=True)
class Timeline:
    start: datetime
    end: datetime
    entries: tuple[TimelineEntry, ...]


@dataclass(frozen=True)
class InvestigationStep:
    step: int
    action: str
    expected_findings: tuple[str, ...]
    query: str
    timeframe: str


@dataclass(frozen=True)
class FailureRecord:
    """A recoverable failure absorbed during a build."""

    component: str
    error_type: str
    message: str
    stage_id: str | None = None
    technique: str | None = None


@dataclass
class CampaignResult:
    """Aggregate root returned by the orchestrator for one build."""

    campaign: Campaign
    stages: list[Stage]
    topology: NetworkTopology
    lateral_movement_paths: list[LateralMovementPath] = field(default_factory=list)
    stage_logs: list[StageLogs] = field(default_factory=list)
    detected_alerts: list[DetectedAlert] = field(default_factory=list)
    missed_activities: list[MissedActivity] = field(default_factory=list)
    correlation_clusters: list[CorrelationCluster] = field(default_factory=list)
    timeline: Timeline | None = None
    investigation_guide: list[InvestigationStep] = field(default_factory=list)
    campaign_events: list[dict[str, Any]] = field(default_factory=list)
    failures: list[FailureRecord] = field(default_factory=list)
    namespace: str = "default"
    cancelled: bool = False

    @property
    def total_logs(self) -> int:
        return sum(len(stage.logs) for stage in self.stage_logs)

    def summary(self) -> dict[str, Any]:
        """Compact counts for display and logging."""
        return {
            "campaign_id": self.campaign.id,
            "campaign": self.campaign.name,
            "type": self.campaign.type.value,
            "threat_actor": self.campaign.threat_actor,
            "stages": len(self.stages),
            "logs": self.total_logs,
            "detected_alerts": len(self.detected_alerts),
            "missed_activities": len(self.missed_activities),
            "correlation_clusters": len(self.correlation_clusters),
            "lateral_movement_paths": len(self.lateral_movement_paths),
            "timeline_entries": len(self.timeline.entries) if self.timeline else 0,
            "failures": len(self.failures),
            "cancelled": self.cancelled,
        }
