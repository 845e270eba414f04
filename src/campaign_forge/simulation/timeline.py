"""
Timeline assembly and investigation guide generation.
"""

import logging
from collections.abc import Sequence
from datetime import datetime

from campaign_forge.simulation.models import (
    Campaign,
    CorrelationCluster,
    DetectedAlert,
    InvestigationStep,
    MissedActivity,
    ScenarioType,
    Stage,
    StageLogs,
    Timeline,
    TimelineEntry,
)

logger = logging.getLogger(__name__)


# Campaign-type hunting steps: (action, expected findings, technique query)
SCENARIO_STEPS: dict[ScenarioType, tuple[str, tuple[str, ...], str]] = {
    ScenarioType.APT: (
        "Hunt for lateral movement and persistence between internal hosts",
        (
            "Remote service logons between internal hosts",
            "Registry modifications for persistence",
            "Credential dumping from LSASS",
        ),
        "threat.technique.id:(T1021* OR T1550* OR T1547* OR T1003*)",
    ),
    ScenarioType.RANSOMWARE: (
        "Scope encryption activity and recovery inhibition",
        (
            "Shadow copy deletion commands",
            "Mass file modification on file servers",
            "Security tooling stopped or disabled",
        ),
        "threat.technique.id:(T1490 OR T1486 OR T1562*)",
    ),
    ScenarioType.INSIDER: (
        "Review data access by the suspected user",
        (
            "Bulk file access outside working hours",
            "Archives created in staging directories",
            "Transfers to personal cloud storage or removable media",
        ),
        "threat.technique.id:(T1005 OR T1039 OR T1074* OR T1052* OR T1567*)",
    ),
    ScenarioType.SUPPLY_CHAIN: (
        "Audit third-party package installs and build server egress",
        (
            "Unexpected package versions on build hosts",
            "New services created after package install",
            "Outbound beaconing from build servers",
        ),
        "threat.technique.id:(T1195* OR T1543* OR T1071*)",
    ),
}


def _timeframe(start: datetime, end: datetime) -> str:
    return f"{start.isoformat()} to {end.isoformat()}"


def _or_query(field: str, values: Sequence[str]) -> str:
    if not values:
        return f"{field}:*"
    joined = " OR ".join(f'"{v}"' for v in values)
    return f"{field}:({joined})"


class TimelineAssembler:
    """Merges stages, logs and alerts into a sorted timeline and guide."""

    def assemble(
        self,
        campaign: Campaign,
        stages: Sequence[Stage],
        stage_logs: Sequence[StageLogs],
        alerts: Sequence[DetectedAlert],
    ) -> Timeline:
        """
        Build the campaign timeline.

        Entries are sorted ascending by timestamp. Ties keep insertion
        order: stage markers, then logs, then alerts.
        """
        entries = [
            TimelineEntry(
                timestamp=stage.start_time,
                type="stage_start",
                stage_id=stage.id,
                description=f"Stage started: {stage.name} ({stage.tactic})",
                reference_id=stage.id,
            )
            for stage in stages
        ]
        for logs in stage_logs:
            for event in logs.logs:
                entries.append(TimelineEntry(
                    timestamp=event.timestamp,
                    type="log",
                    stage_id=event.stage_id,
                    description=f"{event.technique} {event.dataset} on {event.source_asset}",
                    reference_id=event.id,
                ))
        for alert in alerts:
            entries.append(TimelineEntry(
                timestamp=alert.timestamp,
                type="alert",
                stage_id=alert.stage_id,
                description=f"[{alert.severity}] {alert.rule_name}",
                reference_id=alert.id,
            ))

        entries.sort(key=lambda e: e.timestamp)

        start = campaign.duration.start
        end = campaign.duration.end
        if entries:
            start = min(start, entries[0].timestamp)
            end = max(end, entries[-1].timestamp)

        return Timeline(start=start, end=end, entries=tuple(entries))

    def investigation_guide(
        self,
        campaign: Campaign,
        alerts: Sequence[DetectedAlert],
        clusters: Sequence[CorrelationCluster],
        missed: Sequence[MissedActivity],
    ) -> list[InvestigationStep]:
        """Generate ordered investigation steps for an analyst."""
        campaign_frame = _timeframe(campaign.duration.start, campaign.duration.end)
        rule_names = list(dict.fromkeys(alert.rule_name for alert in alerts))
        correlation_ids = list(dict.fromkeys(alert.correlation_id for alert in alerts))

        if alerts:
            first = min(alert.timestamp for alert in alerts)
            last = max(alert.timestamp for alert in alerts)
            alert_frame = _timeframe(first, last)
        else:
            alert_frame = campaign_frame

        drafts: list[tuple[str, tuple[str, ...], str, str]] = [
            (
                "Review initial alerts",
                tuple(rule_names) or ("No alerts fired; begin from log review",),
                _or_query("kibana.alert.rule.name", rule_names),
                alert_frame,
            ),
            (
                "Investigate supporting logs",
                (
                    "Source logs linked to each alert by correlation id",
                    "Hosts and users involved in the alerted activity",
                ),
                _or_query("campaign.correlation.id", correlation_ids),
                campaign_frame,
            ),
        ]

        scenario_step = SCENARIO_STEPS.get(campaign.type)
        if scenario_step:
            action, findings, query = scenario_step
            drafts.append((action, findings, query, campaign_frame))

        if clusters:
            drafts.append((
                "Review correlated incident clusters",
                tuple(
                    f"{cluster.rule_name} (confidence {cluster.confidence_score:.2f})"
                    for cluster in clusters
                ),
                _or_query(
                    "campaign.correlation.id",
                    sorted({cid for cluster in clusters for cid in cluster.correlation_ids}),
                ),
                campaign_frame,
            ))

        if missed:
            gaps = dict.fromkeys(f"{m.technique} missed: {m.reason.value}" for m in missed)
            drafts.append((
                "Assess detection coverage gaps",
                tuple(gaps),
                _or_query("threat.technique.id", sorted({m.technique for m in missed})),
                campaign_frame,
            ))

        return [
            InvestigationStep(
                step=number,
                action=action,
                expected_findings=findings,
                query=query,
                timeframe=timeframe,
            )
            for number, (action, findings, query, timeframe) in enumerate(drafts, start=1)
        ]
