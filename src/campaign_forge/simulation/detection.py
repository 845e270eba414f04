"""
Detection Simulator.

Decides, per technique within a stage, whether the synthesized activity
would have raised an alert:

    PENDING -> roll(detection_rate) -> DETECTED | MISSED

Every roll, delay and alert id is drawn before any collaborator call is
made. Alert content is then requested concurrently; a failed or timed
out request turns the detection into a miss with reason
``alert_generation_failed``.
"""

import asyncio
import logging
import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from campaign_forge.config import SimulationDefaults
from campaign_forge.simulation.content import ContentFiller
from campaign_forge.simulation.errors import AlertGenerationFailure, StepOutcome
from campaign_forge.simulation.mitre_attack import base_technique_id, get_technique_by_id
from campaign_forge.simulation.models import (
    DetectedAlert,
    DetectionOutcome,
    DetectionState,
    MissedActivity,
    MissedReason,
    Stage,
    SynthesizedEvent,
    split_reserved_fields,
)
from campaign_forge.simulation.synthesizer import new_event_id

logger = logging.getLogger(__name__)


# Keyed by parent technique ID; anything missing is medium
SEVERITY_BY_TECHNIQUE: dict[str, str] = {
    # Critical
    "T1003": "critical",
    "T1486": "critical",
    "T1490": "critical",
    # High
    "T1566": "high",
    "T1190": "high",
    "T1195": "high",
    "T1059": "high",
    "T1547": "high",
    "T1053": "high",
    "T1543": "high",
    "T1068": "high",
    "T1562": "high",
    "T1558": "high",
    "T1550": "high",
    "T1552": "high",
    "T1021": "high",
    "T1210": "high",
    "T1570": "high",
    "T1041": "high",
    "T1567": "high",
    "T1052": "high",
    # Low
    "T1083": "low",
    "T1057": "low",
    "T1018": "low",
    "T1082": "low",
    "T1135": "low",
}
DEFAULT_SEVERITY = "medium"

# Checked in order against "<dataset> <category>"
CATEGORY_LABELS: tuple[tuple[str, str], ...] = (
    ("powershell", "Command Line"),
    ("cmd", "Command Line"),
    ("command", "Command Line"),
    ("process", "Process Activity"),
    ("security", "Authentication"),
    ("auth", "Authentication"),
    ("dns", "DNS"),
    ("proxy", "Web Proxy"),
    ("web", "Web Proxy"),
    ("firewall", "Network"),
    ("network", "Network"),
    ("flow", "Network"),
    ("registry", "Registry"),
    ("file", "File Activity"),
    ("email", "Email"),
    ("cloud", "Cloud"),
    ("audit", "Cloud"),
    ("package", "Package Management"),
    ("device", "Removable Media"),
    ("configuration", "System Configuration"),
    ("system", "System Configuration"),
)
DEFAULT_CATEGORY_LABEL = "Security Event"


def severity_for(technique_id: str) -> str:
    return SEVERITY_BY_TECHNIQUE.get(base_technique_id(technique_id), DEFAULT_SEVERITY)


def category_label(dataset: str, category: str = "") -> str:
    haystack = f"{dataset} {category}".lower()
    for keyword, label in CATEGORY_LABELS:
        if keyword in haystack:
            return label
    return DEFAULT_CATEGORY_LABEL


def generate_rule_name(event: SynthesizedEvent | Mapping[str, Any], technique_id: str) -> str:
    """
    Build an alert rule name such as ``Command Line: Suspicious PowerShell Execution``.

    The label comes from the event's dataset and category, the short name
    from the technique library (falling back to the technique ID).
    """
    fields = event.fields if isinstance(event, SynthesizedEvent) else event
    label = category_label(
        str(fields.get("data_stream.dataset", "")),
        str(fields.get("event.category", "")),
    )
    technique = get_technique_by_id(technique_id)
    short_name = technique.detection_name if technique else technique_id
    return f"{label}: {short_name}"


def missed_activity(stage: Stage, outcome: DetectionOutcome) -> MissedActivity:
    return MissedActivity(
        stage=stage.name,
        stage_id=stage.id,
        technique=outcome.technique,
        reason=outcome.reason or MissedReason.BELOW_DETECTION_THRESHOLD,
        logs=len(outcome.events),
    )


@dataclass(frozen=True)
class _PendingDetection:
    technique: str
    events: tuple[SynthesizedEvent, ...]
    delay_minutes: float
    alert_id: str


class DetectionSimulator:
    """
    Simulates SOC detection coverage for synthesized activity.

    Args:
        content_filler: Collaborator that provides alert enrichment
        rng: The build's random source
        detection_rate: Probability in [0, 1] that a technique is detected
        timeout: Deadline in seconds for one ``fill_alert_content`` call
        namespace: Space tag written into ``kibana.space_ids``
    """

    def __init__(
        self,
        content_filler: ContentFiller,
        rng: random.Random,
        detection_rate: float = 0.4,
        timeout: float = 10.0,
        namespace: str = "default",
    ) -> None:
        if not 0.0 <= detection_rate <= 1.0:
            raise ValueError(f"detection_rate must be within [0, 1], got {detection_rate}")
        self.content_filler = content_filler
        self.rng = rng
        self.detection_rate = detection_rate
        self.timeout = timeout
        self.namespace = namespace

    async def simulate_stage(
        self,
        stage: Stage,
        events_by_technique: Mapping[str, Sequence[SynthesizedEvent]],
    ) -> list[StepOutcome[DetectionOutcome]]:
        """
        Resolve detection for every technique of a stage.

        Outcomes come back in the stage's technique order. An outcome with
        an error is a detection that degraded to a miss.
        """
        resolved: dict[str, StepOutcome[DetectionOutcome]] = {}
        pending: list[_PendingDetection] = []
        low, high = SimulationDefaults.DETECTION_DELAY_MINUTES

        for technique in stage.techniques:
            events = tuple(events_by_technique.get(technique, ()))
            if not events:
                resolved[technique] = StepOutcome.success(
                    self._missed(stage, technique, events, MissedReason.NO_LOGS)
                )
                continue

            if self.rng.random() < self.detection_rate:
                pending.append(_PendingDetection(
                    technique=technique,
                    events=events,
                    delay_minutes=self.rng.uniform(low, high),
                    alert_id=new_event_id(self.rng),
                ))
            else:
                resolved[technique] = StepOutcome.success(
                    self._missed(stage, technique, events, MissedReason.BELOW_DETECTION_THRESHOLD)
                )

        alerts = await asyncio.gather(*(self._alert(stage, p) for p in pending))
        for detection, outcome in zip(pending, alerts):
            resolved[detection.technique] = outcome

        detected = sum(1 for o in resolved.values() if o.value.detected)
        logger.debug(
            f"Stage {stage.name}: {detected}/{len(stage.techniques)} techniques detected",
            extra={"stage_id": stage.id},
        )
        return [resolved[technique] for technique in stage.techniques]

    def _missed(
        self,
        stage: Stage,
        technique: str,
        events: tuple[SynthesizedEvent, ...],
        reason: MissedReason,
    ) -> DetectionOutcome:
        return DetectionOutcome(
            stage_id=stage.id,
            technique=technique,
            state=DetectionState.MISSED,
            events=events,
            reason=reason,
        )

    async def _alert(
        self,
        stage: Stage,
        detection: _PendingDetection,
    ) -> StepOutcome[DetectionOutcome]:
        try:
            content = await asyncio.wait_for(
                self.content_filler.fill_alert_content(stage, detection.events),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            error = AlertGenerationFailure(detection.technique, f"timed out after {self.timeout}s")
        except Exception as e:
            error = AlertGenerationFailure(detection.technique, f"{type(e).__name__}: {e}")
            error.__cause__ = e
        else:
            if isinstance(content, dict):
                return StepOutcome.success(self._detected(stage, detection, content))
            error = AlertGenerationFailure(detection.technique, "alert content is not a mapping")

        return StepOutcome.failure(
            error,
            self._missed(
                stage,
                detection.technique,
                detection.events,
                MissedReason.ALERT_GENERATION_FAILED,
            ),
        )

    def _detected(
        self,
        stage: Stage,
        detection: _PendingDetection,
        content: dict[str, Any],
    ) -> DetectionOutcome:
        source = detection.events[0]
        timestamp = source.timestamp + timedelta(minutes=detection.delay_minutes)
        rule_name = generate_rule_name(source, detection.technique)
        severity = severity_for(detection.technique)
        _, enrichment = split_reserved_fields(content)

        document = {
            **enrichment,
            "@timestamp": timestamp.isoformat(),
            "host.name": source.source_asset,
            "user.name": (
                enrichment.get("user.name") or source.fields.get("user.name") or "unknown"
            ),
            "kibana.alert.uuid": detection.alert_id,
            "kibana.alert.rule.name": rule_name,
            "kibana.alert.severity": severity,
            "kibana.alert.original_time": source.timestamp.isoformat(),
            "kibana.space_ids": [self.namespace],
            "threat.technique.id": detection.technique,
            "campaign.correlation.id": source.correlation_id,
            "campaign.stage.id": stage.id,
            "detection.delay_minutes": round(detection.delay_minutes, 2),
            "_source_log": source.to_document(),
        }

        alert = DetectedAlert(
            id=detection.alert_id,
            timestamp=timestamp,
            stage_id=stage.id,
            technique=detection.technique,
            rule_name=rule_name,
            severity=severity,
            correlation_id=source.correlation_id,
            document=document,
        )
        return DetectionOutcome(
            stage_id=stage.id,
            technique=detection.technique,
            state=DetectionState.DETECTED,
            events=detection.events,
            detection_delay_minutes=detection.delay_minutes,
            alert=alert,
        )
