"""
Error taxonomy and step outcomes for the simulation pipeline.

Only ``UnknownScenarioError`` aborts a build. Every other failure is
returned inside a ``StepOutcome`` together with a degraded value, so the
caller always ends up with a complete result.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class CampaignForgeError(Exception):
    """Base class for simulation errors."""

    recoverable: bool = True


class UnknownScenarioError(CampaignForgeError):
    """No campaign template is registered for the requested scenario type."""

    recoverable = False

    def __init__(self, scenario_type: str) -> None:
        super().__init__(f"Unknown scenario type: {scenario_type}")
        self.scenario_type = scenario_type


class InvalidTimeWindowError(CampaignForgeError, ValueError):
    """An explicit time window is empty, inverted or unparseable."""

    recoverable = False


class ContentFillFailure(CampaignForgeError):
    """The content collaborator failed, timed out or returned nothing."""

    def __init__(self, technique: str, reason: str) -> None:
        super().__init__(f"Content fill failed for {technique}: {reason}")
        self.technique = technique
        self.reason = reason


class AlertGenerationFailure(CampaignForgeError):
    """The alert collaborator failed or timed out for a detected technique."""

    def __init__(self, technique: str, reason: str) -> None:
        super().__init__(f"Alert generation failed for {technique}: {reason}")
        self.technique = technique
        self.reason = reason


class CorrelationFailure(CampaignForgeError):
    """A correlation rule raised while evaluating the event set."""

    def __init__(self, rule_id: str, reason: str) -> None:
        super().__init__(f"Correlation rule {rule_id} failed: {reason}")
        self.rule_id = rule_id
        self.reason = reason


class TopologyDegenerate(CampaignForgeError):
    """No lateral movement path could be derived (empty technique set)."""


@dataclass(frozen=True)
class StepOutcome(Generic[T]):
    """
    Result of a fallible pipeline step.

    A failed outcome still carries a usable degraded ``value`` (usually an
    empty collection) alongside the ``error`` that caused the degradation.
    """

    value: T
    error: CampaignForgeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "StepOutcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CampaignForgeError, fallback: T) -> "StepOutcome[T]":
        return cls(value=fallback, error=error)
