"""
Campaign Orchestrator.

Sequences a full build:

    build campaign -> topology -> lateral movement
        -> per stage: synthesize events -> simulate detection
        -> campaign events -> correlation -> timeline + investigation guide

Only ``UnknownScenarioError`` and an invalid time window abort a build.
Every other failure is recorded on the result as a ``FailureRecord`` and
the build continues with a degraded value. Cancellation is cooperative
and checked at stage boundaries.
"""

import asyncio
import logging
import random
import time

from pydantic import BaseModel, Field

from campaign_forge.config import Settings, settings as default_settings
from campaign_forge.logging_config import LogEventType, campaign_context
from campaign_forge.simulation.campaign_builder import Clock, CampaignBuilder, utc_now
from campaign_forge.simulation.content import ContentFiller, FakerContentFiller
from campaign_forge.simulation.correlation import (
    CorrelationEngine,
    CorrelationRuleRegistry,
    annotate_campaign_events,
    default_rule_registry,
)
from campaign_forge.simulation.detection import DetectionSimulator, missed_activity
from campaign_forge.simulation.errors import CampaignForgeError
from campaign_forge.simulation.lateral_movement import LateralMovementPlanner
from campaign_forge.simulation.models import (
    CampaignResult,
    Complexity,
    FailureRecord,
    StageLogs,
    TimePattern,
)
from campaign_forge.simulation.scenarios import ScenarioCatalog, default_catalog
from campaign_forge.simulation.synthesizer import EventSynthesizer
from campaign_forge.simulation.timeline import TimelineAssembler
from campaign_forge.simulation.topology import NetworkTopologyModel

logger = logging.getLogger(__name__)


class CampaignRequest(BaseModel):
    """Inputs for a single campaign build. Unset values fall back to Settings."""

    scenario_type: str = Field(
        default="apt",
        description="Campaign family: apt, ransomware, insider or supply_chain",
    )
    complexity: Complexity = Field(
        default=Complexity.MEDIUM,
        description="Technique selection and topology size",
    )
    detection_rate: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Probability that a technique within a stage is detected",
    )
    logs_per_stage: int | None = Field(
        default=None,
        ge=1,
        description="Events synthesized per stage technique",
    )
    event_count: int = Field(
        default=0,
        ge=0,
        description="Campaign-level correlation events to generate",
    )
    target_count: int | None = Field(
        default=None,
        ge=1,
        description="Upper bound on target assets used per stage",
    )
    namespace: str | None = Field(
        default=None,
        description="Namespace/space tag for output streams",
    )
    start: str | None = Field(
        default=None,
        description="Window start (ISO 8601 or relative such as 2d)",
    )
    end: str | None = Field(
        default=None,
        description="Window end (ISO 8601, relative or 'now')",
    )
    time_pattern: TimePattern | None = Field(
        default=None,
        description="How stages are spread over the campaign window",
    )
    seed: int | None = Field(
        default=None,
        description="Seed for reproducible builds",
    )


class CampaignOrchestrator:
    """
    Runs campaign builds end to end.

    Example:
        orchestrator = CampaignOrchestrator()
        result = await orchestrator.run(CampaignRequest(scenario_type="apt", seed=7))
    """

    def __init__(
        self,
        catalog: ScenarioCatalog | None = None,
        rules: CorrelationRuleRegistry | None = None,
        content_filler: ContentFiller | None = None,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.catalog = catalog or default_catalog()
        self.rules = rules or default_rule_registry()
        self.content_filler = content_filler
        self.settings = settings or default_settings
        self.clock = clock

    async def run(
        self,
        request: CampaignRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> CampaignResult:
        """
        Build one campaign.

        Raises:
            UnknownScenarioError: If the scenario type has no template
            InvalidTimeWindowError: If the requested window is empty or invalid
        """
        started = time.perf_counter()
        cfg = self.settings
        seed = request.seed if request.seed is not None else random.randrange(2**32)
        rng = random.Random(seed)
        filler = self.content_filler or FakerContentFiller(seed=seed)
        namespace = request.namespace or cfg.namespace
        pattern = request.time_pattern or TimePattern(cfg.default_time_pattern)

        time_window = None
        if request.start is not None or request.end is not None:
            time_window = (request.start or cfg.default_start, request.end or cfg.default_end)

        builder = CampaignBuilder(self.catalog, rng, self.clock)
        campaign, stages = builder.build(
            request.scenario_type,
            request.complexity,
            time_window=time_window,
            time_pattern=pattern,
        )

        with campaign_context(campaign.id):
            logger.info(
                f"Building {campaign.type.value} campaign '{campaign.name}' "
                f"({len(stages)} stages, namespace={namespace})",
                extra={"event_type": LogEventType.BUILD_START.value},
            )

            topology = NetworkTopologyModel().generate(request.complexity)
            logger.debug(
                f"Topology ready with {len(topology.assets)} assets",
                extra={"event_type": LogEventType.TOPOLOGY_GENERATED.value},
            )

            result = CampaignResult(
                campaign=campaign,
                stages=stages,
                topology=topology,
                namespace=namespace,
            )

            movement = LateralMovementPlanner().plan(
                topology, [t for stage in stages for t in stage.techniques]
            )
            result.lateral_movement_paths = movement.value
            if not movement.ok:
                self._record_failure(result, "lateral_movement", movement.error)
            logger.debug(
                f"Planned {len(movement.value)} lateral movement paths",
                extra={"event_type": LogEventType.MOVEMENT_PLANNED.value},
            )

            timeout = cfg.collaborator_timeout_seconds
            synthesizer = EventSynthesizer(
                filler,
                rng,
                logs_per_stage=request.logs_per_stage or cfg.logs_per_stage,
                timeout=timeout,
                target_count=request.target_count,
            )
            detector = DetectionSimulator(
                filler,
                rng,
                detection_rate=(
                    request.detection_rate
                    if request.detection_rate is not None
                    else cfg.detection_rate
                ),
                timeout=timeout,
                namespace=namespace,
            )

            completed = []
            for stage in stages:
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    logger.warning(
                        f"Build cancelled before stage '{stage.name}' "
                        f"({len(completed)}/{len(stages)} stages complete)",
                        extra={"event_type": LogEventType.BUILD_CANCELLED.value},
                    )
                    break

                synthesized = await synthesizer.synthesize_stage(stage, topology)
                for technique, outcome in synthesized.items():
                    if not outcome.ok:
                        self._record_failure(
                            result, "synthesizer", outcome.error, stage.id, technique
                        )

                events_by_technique = {t: o.value for t, o in synthesized.items()}
                logs = tuple(
                    sorted(
                        (e for events in events_by_technique.values() for e in events),
                        key=lambda e: e.timestamp,
                    )
                )
                logger.debug(
                    f"Synthesized {len(logs)} events for stage '{stage.name}'",
                    extra={
                        "event_type": LogEventType.STAGE_SYNTHESIZED.value,
                        "stage_id": stage.id,
                    },
                )

                detections = await detector.simulate_stage(stage, events_by_technique)
                outcomes = []
                for detection in detections:
                    outcome = detection.value
                    outcomes.append(outcome)
                    if not detection.ok:
                        self._record_failure(
                            result, "detection", detection.error, stage.id, outcome.technique
                        )
                    if outcome.alert is not None:
                        result.detected_alerts.append(outcome.alert)
                    else:
                        result.missed_activities.append(missed_activity(stage, outcome))

                result.stage_logs.append(StageLogs(
                    stage_id=stage.id,
                    stage_name=stage.name,
                    techniques=stage.techniques,
                    logs=logs,
                    outcomes=tuple(outcomes),
                ))
                completed.append(stage)
                logger.debug(
                    f"Detection for stage '{stage.name}': "
                    f"{sum(o.detected for o in outcomes)}/{len(outcomes)} detected",
                    extra={
                        "event_type": LogEventType.DETECTION_SIMULATED.value,
                        "stage_id": stage.id,
                    },
                )

            result.campaign_events = synthesizer.build_campaign_events(
                campaign, completed, request.event_count, topology
            )

            all_logs = [e for stage_logs in result.stage_logs for e in stage_logs.logs]
            for outcome in CorrelationEngine(self.rules).correlate(all_logs):
                result.correlation_clusters.extend(outcome.value)
                if not outcome.ok:
                    self._record_failure(result, "correlation", outcome.error)
            result.campaign_events = annotate_campaign_events(
                result.campaign_events, result.correlation_clusters
            )
            logger.debug(
                f"Found {len(result.correlation_clusters)} correlation clusters",
                extra={"event_type": LogEventType.CORRELATION_COMPLETE.value},
            )

            assembler = TimelineAssembler()
            result.timeline = assembler.assemble(
                campaign, completed, result.stage_logs, result.detected_alerts
            )
            result.investigation_guide = assembler.investigation_guide(
                campaign,
                result.detected_alerts,
                result.correlation_clusters,
                result.missed_activities,
            )
            logger.debug(
                f"Timeline has {len(result.timeline.entries)} entries",
                extra={"event_type": LogEventType.TIMELINE_ASSEMBLED.value},
            )

            duration_ms = (time.perf_counter() - started) * 1000
            logger.info(
                f"Campaign build {'cancelled' if result.cancelled else 'complete'}: "
                f"{result.total_logs} logs, {len(result.detected_alerts)} alerts, "
                f"{len(result.missed_activities)} missed, {len(result.failures)} failures",
                extra={
                    "event_type": LogEventType.BUILD_COMPLETE.value,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return result

    async def run_environments(
        self,
        request: CampaignRequest,
        count: int,
        cancel_event: asyncio.Event | None = None,
    ) -> list[CampaignResult]:
        """
        Run ``count`` independent builds concurrently.

        Build ``n`` (1-based) uses namespace ``<namespace>-<n>`` and a seed
        derived from the request seed, so the set is reproducible while
        each environment differs.
        """
        if count < 1:
            raise ValueError(f"count must be at least 1, got {count}")

        base_seed = request.seed if request.seed is not None else random.randrange(2**32)
        namespace = request.namespace or self.settings.namespace
        requests = [
            request.model_copy(update={
                "namespace": f"{namespace}-{n}",
                "seed": derive_seed(base_seed, n),
            })
            for n in range(1, count + 1)
        ]
        return list(await asyncio.gather(*(self.run(r, cancel_event) for r in requests)))

    def _record_failure(
        self,
        result: CampaignResult,
        component: str,
        error: CampaignForgeError | None,
        stage_id: str | None = None,
        technique: str | None = None,
    ) -> None:
        if error is None:
            return
        result.failures.append(FailureRecord(
            component=component,
            error_type=type(error).__name__,
            message=str(error),
            stage_id=stage_id,
            technique=technique,
        ))
        logger.warning(
            f"{component} degraded: {error}",
            extra={
                "event_type": LogEventType.STEP_FAILED.value,
                "stage_id": stage_id,
                "technique": technique,
            },
        )


def derive_seed(base_seed: int, index: int) -> int:
    """Derive an independent, reproducible seed for environment ``index``."""
    return random.Random(f"{base_seed}:{index}").getrandbits(32)
