"""
Attack campaign simulation.

Builds multi-stage synthetic attack campaigns, synthesizes the log events
they would leave behind, simulates which activity a SOC would detect and
correlates the result into incidents and an investigation timeline.

Reference frameworks:
- MITRE ATT&CK: https://attack.mitre.org/
- Elastic Common Schema: https://www.elastic.co/guide/en/ecs/current/
"""

from campaign_forge.simulation.campaign_builder import CampaignBuilder, parse_time_expression
from campaign_forge.simulation.content import ContentFiller, FakerContentFiller
from campaign_forge.simulation.correlation import (
    CorrelationEngine,
    CorrelationRule,
    CorrelationRuleRegistry,
    default_rule_registry,
)
from campaign_forge.simulation.detection import DetectionSimulator, generate_rule_name
from campaign_forge.simulation.errors import (
    AlertGenerationFailure,
    CampaignForgeError,
    ContentFillFailure,
    CorrelationFailure,
    InvalidTimeWindowError,
    StepOutcome,
    TopologyDegenerate,
    UnknownScenarioError,
)
from campaign_forge.simulation.lateral_movement import LateralMovementPlanner
from campaign_forge.simulation.models import (
    Campaign,
    CampaignResult,
    Complexity,
    ScenarioType,
    Stage,
    SynthesizedEvent,
    TimePattern,
)
from campaign_forge.simulation.orchestrator import CampaignOrchestrator, CampaignRequest
from campaign_forge.simulation.scenarios import ScenarioCatalog, default_catalog
from campaign_forge.simulation.synthesizer import EventSynthesizer
from campaign_forge.simulation.timeline import TimelineAssembler
from campaign_forge.simulation.topology import NetworkTopologyModel

__all__ = [
    # Orchestration
    "CampaignOrchestrator",
    "CampaignRequest",
    "CampaignResult",
    # Components
    "CampaignBuilder",
    "NetworkTopologyModel",
    "LateralMovementPlanner",
    "EventSynthesizer",
    "DetectionSimulator",
    "CorrelationEngine",
    "TimelineAssembler",
    # Catalogs and collaborators
    "ScenarioCatalog",
    "default_catalog",
    "CorrelationRule",
    "CorrelationRuleRegistry",
    "default_rule_registry",
    "ContentFiller",
    "FakerContentFiller",
    # Model
    "Campaign",
    "Stage",
    "SynthesizedEvent",
    "ScenarioType",
    "Complexity",
    "TimePattern",
    # Errors
    "CampaignForgeError",
    "UnknownScenarioError",
    "InvalidTimeWindowError",
    "ContentFillFailure",
    "AlertGenerationFailure",
    "CorrelationFailure",
    "TopologyDegenerate",
    "StepOutcome",
    # Helpers
    "generate_rule_name",
    "parse_time_expression",
]
