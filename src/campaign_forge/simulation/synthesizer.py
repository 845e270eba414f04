"""
Event Synthesizer.

Turns stages into candidate log events. Synthesis runs in two phases:

1. Plan: target assets, event ids and timestamps are drawn from the
   build's random source in a fixed order.
2. Fill: the content collaborator is called concurrently for every
   technique of the stage, each call bounded by a timeout.

Because every random draw happens in the plan phase, the order in which
collaborator calls complete never changes the output.
"""

import asyncio
import logging
import random
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from faker import Faker

from campaign_forge.config import SimulationDefaults
from campaign_forge.simulation.content import ContentFiller, technique_data_source
from campaign_forge.simulation.errors import ContentFillFailure, StepOutcome
from campaign_forge.simulation.mitre_attack import dataset_for
from campaign_forge.simulation.models import (
    Asset,
    Campaign,
    EventType,
    NetworkTopology,
    Stage,
    SynthesizedEvent,
    split_reserved_fields,
)

logger = logging.getLogger(__name__)


# Zones a stage's activity lands in, by tactic
TACTIC_ZONES: dict[str, tuple[str, ...]] = {
    "reconnaissance": ("dmz",),
    "initial-access": ("dmz",),
    "execution": ("dmz", "internal"),
    "persistence": ("internal",),
    "privilege-escalation": ("internal",),
    "defense-evasion": ("internal",),
    "credential-access": ("internal", "critical"),
    "discovery": ("internal",),
    "lateral-movement": ("internal", "critical"),
    "collection": ("internal", "critical"),
    "command-and-control": ("internal",),
    "exfiltration": ("internal",),
    "impact": ("internal", "critical"),
}

CAMPAIGN_EVENTS_DATASET = "campaign.events"


def new_event_id(rng: random.Random) -> str:
    return str(uuid.UUID(int=rng.getrandbits(128), version=4))


def random_moment(rng: random.Random, start: datetime, end: datetime) -> datetime:
    span = max(0.0, (end - start).total_seconds())
    return start + timedelta(seconds=rng.uniform(0, span))


@dataclass(frozen=True)
class _TechniquePlan:
    technique: str
    target: Asset
    event_ids: tuple[str, ...]
    timestamps: tuple[datetime, ...]


class EventSynthesizer:
    """
    Synthesizes candidate log events for campaign stages.

    Args:
        content_filler: Collaborator that provides free-form event fields
        rng: The build's random source
        logs_per_stage: Events emitted per successfully filled technique
        timeout: Deadline in seconds for one ``fill_content`` call
        target_count: Upper bound on distinct target assets per zone set
    """

    def __init__(
        self,
        content_filler: ContentFiller,
        rng: random.Random,
        logs_per_stage: int = 8,
        timeout: float = 10.0,
        target_count: int | None = None,
    ) -> None:
        self.content_filler = content_filler
        self.rng = rng
        self.logs_per_stage = logs_per_stage
        self.timeout = timeout
        self.target_count = target_count

    def target_pool(self, topology: NetworkTopology, stage: Stage) -> list[Asset]:
        """Assets a stage's events may originate from."""
        zones = TACTIC_ZONES.get(stage.tactic, ("internal",))
        pool = [asset for asset in topology.assets if asset.zone in zones] or topology.assets
        if self.target_count:
            pool = pool[: self.target_count]
        return pool

    async def synthesize_stage(
        self,
        stage: Stage,
        topology: NetworkTopology,
    ) -> dict[str, StepOutcome[tuple[SynthesizedEvent, ...]]]:
        """
        Synthesize events for every technique of a stage.

        Returns a mapping of technique ID to outcome. A failed outcome
        carries no events and a ``ContentFillFailure``.
        """
        pool = self.target_pool(topology, stage)
        plans = [self._plan(stage, technique, pool) for technique in stage.techniques]

        outcomes = await asyncio.gather(*(self._fill(stage, plan) for plan in plans))
        result = dict(zip(stage.techniques, outcomes))

        total = sum(len(outcome.value) for outcome in outcomes)
        logger.debug(
            f"Stage {stage.name}: {total} events from {len(plans)} techniques",
            extra={"stage_id": stage.id},
        )
        return result

    def _plan(self, stage: Stage, technique: str, pool: Sequence[Asset]) -> _TechniquePlan:
        target = self.rng.choice(pool)
        event_ids = tuple(new_event_id(self.rng) for _ in range(self.logs_per_stage))
        timestamps = tuple(
            random_moment(self.rng, stage.start_time, stage.end_time)
            for _ in range(self.logs_per_stage)
        )
        return _TechniquePlan(technique, target, event_ids, timestamps)

    async def _fill(
        self,
        stage: Stage,
        plan: _TechniquePlan,
    ) -> StepOutcome[tuple[SynthesizedEvent, ...]]:
        try:
            content = await asyncio.wait_for(
                self.content_filler.fill_content(
                    plan.technique, stage.narrative, plan.target.hostname
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return StepOutcome.failure(
                ContentFillFailure(plan.technique, f"timed out after {self.timeout}s"), ()
            )
        except Exception as e:
            failure = ContentFillFailure(plan.technique, f"{type(e).__name__}: {e}")
            failure.__cause__ = e
            return StepOutcome.failure(failure, ())

        if not isinstance(content, dict) or not content:
            return StepOutcome.failure(ContentFillFailure(plan.technique, "empty content"), ())

        reserved, enrichment = split_reserved_fields(content)
        if reserved:
            logger.warning(
                f"Dropping reserved fields {sorted(reserved)} from content for {plan.technique}",
                extra={"stage_id": stage.id, "technique": plan.technique},
            )

        return StepOutcome.success(self._events(stage, plan, enrichment))

    def _events(
        self,
        stage: Stage,
        plan: _TechniquePlan,
        enrichment: dict[str, Any],
    ) -> tuple[SynthesizedEvent, ...]:
        data_source = technique_data_source(plan.technique)
        dataset, category = dataset_for(data_source) if data_source else ("generic.log", "host")

        events = []
        for sequence, (event_id, timestamp) in enumerate(zip(plan.event_ids, plan.timestamps)):
            fields = {
                "data_stream.dataset": dataset,
                "event.category": category,
                **enrichment,
                "event.sequence": sequence,
                "host.ip": plan.target.ip_address,
                "network.zone": plan.target.zone,
                "campaign.stage.name": stage.name,
                "threat.tactic.id": stage.tactic,
            }
            events.append(SynthesizedEvent(
                id=event_id,
                timestamp=timestamp,
                stage_id=stage.id,
                technique=plan.technique,
                source_asset=plan.target.hostname,
                event_type=EventType.LOG,
                correlation_id=stage.correlation_key,
                fields=fields,
            ))

        events.sort(key=lambda e: e.timestamp)
        return tuple(events)

    # -------------------------------------------------------------------------
    # Campaign-level events
    # -------------------------------------------------------------------------

    def build_campaign_events(
        self,
        campaign: Campaign,
        stages: Sequence[Stage],
        event_count: int,
        topology: NetworkTopology,
    ) -> list[dict[str, Any]]:
        """
        Build campaign-level annotated events, round-robin across stages.

        Each event carries a correlation score and the progression phase
        (initial, escalation, objectives) of the stage it belongs to. Hosts
        come from the stage's target pool and every stage has one acting
        user.
        """
        if not stages or event_count <= 0:
            return []

        fake = Faker()
        fake.seed_instance(self.rng.getrandbits(32))
        users = {stage.id: fake.user_name() for stage in stages}
        pools = {stage.id: self.target_pool(topology, stage) for stage in stages}

        low, high = SimulationDefaults.CAMPAIGN_CORRELATION_SCORE
        events = []
        for i in range(event_count):
            stage = stages[i % len(stages)]
            technique = self.rng.choice(stage.techniques) if stage.techniques else None
            pool = pools[stage.id]
            host = self.rng.choice(pool) if pool else None
            events.append({
                "@timestamp": random_moment(self.rng, stage.start_time, stage.end_time).isoformat(),
                "event.id": new_event_id(self.rng),
                "data_stream.dataset": CAMPAIGN_EVENTS_DATASET,
                "host.name": host.hostname if host else None,
                "host.ip": host.ip_address if host else None,
                "user.name": users[stage.id],
                "campaign.id": campaign.id,
                "campaign.name": campaign.name,
                "campaign.type": campaign.type.value,
                "campaign.correlation.id": stage.correlation_key,
                "campaign.correlation.score": round(self.rng.uniform(low, high), 3),
                "campaign.progression.phase": progression_phase(stage.index, len(stages)),
                "campaign.stage.id": stage.id,
                "campaign.stage.name": stage.name,
                "threat.group.name": campaign.threat_actor,
                "threat.tactic.id": stage.tactic,
                "threat.technique.id": technique,
            })
        return events


def progression_phase(index: int, total: int) -> str:
    """Map a stage position onto initial, escalation or objectives."""
    if total <= 0:
        return "initial"
    position = index / total
    if position < 1 / 3:
        return "initial"
    if position < 2 / 3:
        return "escalation"
    return "objectives"
