"""
Correlation Engine.

Groups synthesized events into incident clusters using a registry of
technique-sequence rules. For each rule, matching events are sorted by
time and grouped with a greedy sliding window; groups that reach the
rule's minimum size become scored clusters.

Confidence is the clipped sum of three weighted terms:
- temporal: how tightly the group fits inside the rule window
- asset: share of the group on its most common source asset
- technique: share of the rule's techniques seen in the group
"""

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import Any

from campaign_forge.simulation.errors import CorrelationFailure, StepOutcome
from campaign_forge.simulation.mitre_attack import base_technique_id
from campaign_forge.simulation.models import CorrelationCluster, SynthesizedEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorrelationRule:
    """
    A technique-sequence correlation rule.

    ``techniques`` entries may be exact IDs (``T1021.002``) or parent IDs
    (``T1021``); a parent entry matches all of its sub-techniques.
    """

    id: str
    name: str
    techniques: tuple[str, ...]
    time_window: timedelta
    minimum_events: int = 2
    temporal_weight: float = 0.4
    asset_weight: float = 0.3
    technique_weight: float = 0.3
    description: str = ""
    predicate: Callable[[SynthesizedEvent], bool] | None = None

    def __post_init__(self) -> None:
        if self.time_window <= timedelta(0):
            raise ValueError(f"Rule {self.id}: time_window must be positive")
        if self.minimum_events < 1:
            raise ValueError(f"Rule {self.id}: minimum_events must be at least 1")
        if not self.techniques:
            raise ValueError(f"Rule {self.id}: at least one technique is required")

    def rule_entry_for(self, technique_id: str) -> str | None:
        """Return the rule entry a technique satisfies, if any."""
        if technique_id in self.techniques:
            return technique_id
        parent = base_technique_id(technique_id)
        if parent in self.techniques:
            return parent
        return None

    def matches(self, event: SynthesizedEvent) -> bool:
        if self.rule_entry_for(event.technique) is None:
            return False
        return self.predicate is None or self.predicate(event)


class CorrelationRuleRegistry:
    """Immutable, ordered set of correlation rules."""

    def __init__(self, rules: Iterable[CorrelationRule]) -> None:
        self._rules = tuple(rules)
        by_id: dict[str, CorrelationRule] = {}
        for rule in self._rules:
            if rule.id in by_id:
                raise ValueError(f"Duplicate correlation rule id: {rule.id}")
            by_id[rule.id] = rule
        self._by_id: Mapping[str, CorrelationRule] = MappingProxyType(by_id)

    @property
    def rules(self) -> tuple[CorrelationRule, ...]:
        return self._rules

    def get(self, rule_id: str) -> CorrelationRule | None:
        return self._by_id.get(rule_id)

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


DEFAULT_RULES: tuple[CorrelationRule, ...] = (
    CorrelationRule(
        id="lateral_movement_sequence",
        name="Lateral Movement Sequence",
        techniques=("T1021", "T1550", "T1570", "T1210", "T1078"),
        time_window=timedelta(hours=24),
        minimum_events=3,
        description="Remote service use and credential reuse across hosts",
    ),
    CorrelationRule(
        id="credential_theft_chain",
        name="Credential Theft Chain",
        techniques=("T1003", "T1558", "T1552", "T1550", "T1078"),
        time_window=timedelta(hours=24),
        minimum_events=3,
        temporal_weight=0.3,
        technique_weight=0.4,
        description="Credential dumping followed by use of the stolen material",
    ),
    CorrelationRule(
        id="ransomware_precursors",
        name="Ransomware Precursors",
        techniques=("T1490", "T1486", "T1562", "T1047", "T1570"),
        time_window=timedelta(hours=12),
        minimum_events=3,
        temporal_weight=0.5,
        asset_weight=0.2,
        description="Defense impairment and recovery inhibition before encryption",
    ),
    CorrelationRule(
        id="data_exfiltration_pipeline",
        name="Data Exfiltration Pipeline",
        techniques=("T1005", "T1039", "T1213", "T1074", "T1560", "T1041", "T1567", "T1052"),
        time_window=timedelta(hours=48),
        minimum_events=4,
        description="Collection, staging and transfer of data out of the network",
    ),
    CorrelationRule(
        id="initial_compromise",
        name="Initial Compromise",
        techniques=("T1566", "T1190", "T1133", "T1195", "T1204", "T1059"),
        time_window=timedelta(hours=12),
        minimum_events=2,
        description="Entry vector followed by first code execution",
    ),
    CorrelationRule(
        id="persistence_establishment",
        name="Persistence Establishment",
        techniques=("T1547", "T1053", "T1543"),
        time_window=timedelta(hours=24),
        minimum_events=2,
        description="Autostart, scheduled task or service creation",
    ),
    CorrelationRule(
        id="discovery_burst",
        name="Discovery Burst",
        techniques=("T1083", "T1057", "T1018", "T1082", "T1135"),
        time_window=timedelta(hours=6),
        minimum_events=5,
        temporal_weight=0.5,
        asset_weight=0.3,
        technique_weight=0.2,
        description="Many enumeration commands in a short period",
    ),
)


def default_rule_registry() -> CorrelationRuleRegistry:
    return CorrelationRuleRegistry(DEFAULT_RULES)


def _clip(value: float) -> float:
    return min(1.0, max(0.0, value))


class CorrelationEngine:
    """Evaluates every registered rule against an event set."""

    def __init__(self, registry: CorrelationRuleRegistry) -> None:
        self.registry = registry

    def correlate(
        self,
        events: Sequence[SynthesizedEvent],
    ) -> list[StepOutcome[list[CorrelationCluster]]]:
        """
        Run all rules. Returns one outcome per rule, in registry order.

        A rule that raises yields a failed outcome with no clusters; the
        remaining rules still run.
        """
        outcomes = []
        for rule in self.registry:
            try:
                clusters = self.evaluate_rule(rule, events)
            except Exception as e:
                logger.warning(f"Correlation rule {rule.id} failed: {e}")
                failure = CorrelationFailure(rule.id, f"{type(e).__name__}: {e}")
                failure.__cause__ = e
                outcomes.append(StepOutcome.failure(failure, []))
                continue
            outcomes.append(StepOutcome.success(clusters))

        found = sum(len(o.value) for o in outcomes)
        logger.debug(f"Correlated {len(events)} events into {found} clusters")
        return outcomes

    def evaluate_rule(
        self,
        rule: CorrelationRule,
        events: Sequence[SynthesizedEvent],
    ) -> list[CorrelationCluster]:
        candidates = sorted(
            (e for e in events if rule.matches(e)),
            key=lambda e: (e.timestamp, e.id),
        )

        clusters = []
        i = 0
        while i < len(candidates):
            anchor = candidates[i].timestamp
            j = i
            while j < len(candidates) and candidates[j].timestamp - anchor <= rule.time_window:
                j += 1
            group = candidates[i:j]
            if len(group) >= rule.minimum_events:
                clusters.append(self._cluster(rule, group))
            i = j
        return clusters

    def _cluster(
        self,
        rule: CorrelationRule,
        group: Sequence[SynthesizedEvent],
    ) -> CorrelationCluster:
        first_seen = group[0].timestamp
        last_seen = group[-1].timestamp
        return CorrelationCluster(
            rule_id=rule.id,
            rule_name=rule.name,
            matched_event_ids=tuple(e.id for e in group),
            confidence_score=self.confidence(rule, group),
            correlation_ids=tuple(sorted({e.correlation_id for e in group})),
            first_seen=first_seen,
            last_seen=last_seen,
        )

    @staticmethod
    def confidence(rule: CorrelationRule, group: Sequence[SynthesizedEvent]) -> float:
        if not group:
            return 0.0
        spread = (group[-1].timestamp - group[0].timestamp).total_seconds()
        temporal = 1.0 - spread / rule.time_window.total_seconds()

        _, top_count = Counter(e.source_asset for e in group).most_common(1)[0]
        asset = top_count / len(group)

        entries = {rule.rule_entry_for(e.technique) for e in group} - {None}
        technique = len(entries) / len(rule.techniques)

        score = (
            _clip(rule.temporal_weight * temporal)
            + _clip(rule.asset_weight * asset)
            + _clip(rule.technique_weight * technique)
        )
        return round(_clip(score), 4)


# =============================================================================
# Annotation
# =============================================================================


def cluster_fields(cluster: CorrelationCluster) -> dict[str, Any]:
    """Document fields recording which rule correlated an event."""
    return {
        "correlation.rule_id": cluster.rule_id,
        "correlation.rule_name": cluster.rule_name,
        "correlation.confidence": cluster.confidence_score,
    }


def _strongest(
    clusters: Iterable[CorrelationCluster],
    keys: Callable[[CorrelationCluster], Iterable[str]],
) -> dict[str, CorrelationCluster]:
    best: dict[str, CorrelationCluster] = {}
    for cluster in clusters:
        for key in keys(cluster):
            current = best.get(key)
            if current is None or cluster.confidence_score > current.confidence_score:
                best[key] = cluster
    return best


def strongest_cluster_by_event(
    clusters: Iterable[CorrelationCluster],
) -> dict[str, CorrelationCluster]:
    """Map each matched event id to its highest-confidence cluster."""
    return _strongest(clusters, lambda c: c.matched_event_ids)


def annotate_campaign_events(
    events: Sequence[Mapping[str, Any]],
    clusters: Sequence[CorrelationCluster],
) -> list[dict[str, Any]]:
    """
    Return copies of campaign events annotated with correlation results.

    An event is covered by a cluster when its ``campaign.correlation.id``
    is one of the cluster's correlation ids; the highest-confidence
    cluster wins.
    """
    by_correlation_id = _strongest(clusters, lambda c: c.correlation_ids)
    annotated = []
    for event in events:
        cluster = by_correlation_id.get(event.get("campaign.correlation.id"))
        if cluster is None:
            annotated.append(dict(event))
        else:
            annotated.append({**event, **cluster_fields(cluster)})
    return annotated
