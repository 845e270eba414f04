"""
Global pytest configuration and fixtures for Campaign Forge.

This module ensures deterministic test execution through:
1. Fixed random seeds for all random operations
2. A fixed clock for campaign windows
3. Stub content fillers for collaborator failure modes
"""

import asyncio
import os
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
from faker import Faker

# Set deterministic seeds BEFORE any other imports that might use random
RANDOM_SEED = 42
random.seed(RANDOM_SEED)
Faker.seed(RANDOM_SEED)

# Import application modules after seeding
from campaign_forge.config import Settings
from campaign_forge.simulation.content import FakerContentFiller
from campaign_forge.simulation.correlation import (
    CorrelationRule,
    CorrelationRuleRegistry,
    default_rule_registry,
)
from campaign_forge.simulation.models import EventType, Stage, SynthesizedEvent
from campaign_forge.simulation.orchestrator import CampaignOrchestrator
from campaign_forge.simulation.scenarios import default_catalog
from campaign_forge.simulation.topology import NetworkTopologyModel


FIXED_NOW = datetime(2025, 1, 30, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Stub Content Fillers
# =============================================================================


class FailingContentFiller:
    """Raises on every call."""

    def __init__(self, fail_alerts_only: bool = False) -> None:
        self.fail_alerts_only = fail_alerts_only
        self.delegate = FakerContentFiller(seed=RANDOM_SEED)

    async def fill_content(self, technique, narrative, target_asset):
        if self.fail_alerts_only:
            return await self.delegate.fill_content(technique, narrative, target_asset)
        raise RuntimeError("content backend unavailable")

    async def fill_alert_content(self, stage, events):
        raise RuntimeError("alert backend unavailable")


class EmptyContentFiller:
    """Returns empty content."""

    async def fill_content(self, technique, narrative, target_asset):
        return {}

    async def fill_alert_content(self, stage, events):
        return {}


class SlowContentFiller:
    """Sleeps past any reasonable collaborator deadline."""

    def __init__(self, delay: float = 5.0) -> None:
        self.delay = delay

    async def fill_content(self, technique, narrative, target_asset):
        await asyncio.sleep(self.delay)
        return {"message": "too late"}

    async def fill_alert_content(self, stage, events):
        await asyncio.sleep(self.delay)
        return {}


class ReservedKeyContentFiller:
    """Tries to overwrite synthesizer-owned fields."""

    async def fill_content(self, technique, narrative, target_asset) -> dict[str, Any]:
        return {
            "@timestamp": "1999-01-01T00:00:00+00:00",
            "host.name": "attacker-controlled",
            "threat.technique.id": "T0000",
            "campaign.correlation.id": "forged",
            "user.name": "mallory",
            "message": "enrichment kept",
        }

    async def fill_alert_content(self, stage, events):
        return {"host.name": "attacker-controlled", "kibana.alert.reason": "stub"}


class SelectiveContentFiller:
    """Fails content for the listed techniques, delegates the rest."""

    def __init__(self, failing: set[str]) -> None:
        self.failing = failing
        self.delegate = FakerContentFiller(seed=RANDOM_SEED)

    async def fill_content(self, technique, narrative, target_asset):
        if technique in self.failing:
            raise ValueError(f"no template for {technique}")
        return await self.delegate.fill_content(technique, narrative, target_asset)

    async def fill_alert_content(self, stage, events):
        return await self.delegate.fill_alert_content(stage, events)


# =============================================================================
# Session-Scoped Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def faker() -> Faker:
    """Seeded Faker instance for deterministic fake data."""
    fake = Faker()
    Faker.seed(RANDOM_SEED)
    return fake


@pytest.fixture(scope="session")
def catalog():
    return default_catalog()


@pytest.fixture(scope="session")
def rule_registry():
    return default_rule_registry()


# =============================================================================
# Function-Scoped Fixtures
# =============================================================================


@pytest.fixture
def frozen_time():
    """
    Fixture to freeze time at a known point.

    Usage:
        def test_something(frozen_time):
            with frozen_time("2025-01-30 12:00:00"):
                # Time is frozen here
                pass
    """
    from freezegun import freeze_time

    return freeze_time


@pytest.fixture
def fixed_datetime() -> datetime:
    """A fixed, timezone-aware datetime for deterministic time-based tests."""
    return FIXED_NOW


@pytest.fixture
def fixed_clock(fixed_datetime):
    return lambda: fixed_datetime


@pytest.fixture
def rng() -> random.Random:
    return random.Random(RANDOM_SEED)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Test-specific settings with an isolated output directory."""
    return Settings(
        detection_rate=0.4,
        logs_per_stage=4,
        collaborator_timeout_seconds=0.2,
        namespace="test",
        output_dir=tmp_path,
        log_format="json",
    )


@pytest.fixture
def content_filler() -> FakerContentFiller:
    return FakerContentFiller(seed=RANDOM_SEED)


@pytest.fixture
def topology():
    return NetworkTopologyModel().generate("medium")


# =============================================================================
# Factory Fixtures (Deterministic Test Data)
# =============================================================================


@pytest.fixture
def make_stage(fixed_datetime):
    """Factory for creating Stage objects."""
    counter = 0

    def _make(
        name: str = "Execution",
        tactic: str = "execution",
        techniques: tuple[str, ...] = ("T1059.001",),
        hours: float = 4,
        **kwargs,
    ) -> Stage:
        nonlocal counter
        counter += 1
        start = kwargs.pop("start_time", fixed_datetime - timedelta(hours=24))
        return Stage(
            id=kwargs.pop("id", f"stage-test-{counter:04d}"),
            name=name,
            tactic=tactic,
            techniques=techniques,
            start_time=start,
            end_time=kwargs.pop("end_time", start + timedelta(hours=hours)),
            objectives=kwargs.pop("objectives", ("test objective",)),
            correlation_key=kwargs.pop("correlation_key", f"campaign-test-stage-{counter:02d}"),
            index=kwargs.pop("index", counter - 1),
        )

    return _make


@pytest.fixture
def make_event(fixed_datetime):
    """Factory for creating SynthesizedEvent objects."""
    counter = 0

    def _make(
        technique: str = "T1059.001",
        minutes: float = 0,
        source_asset: str = "INTERNAL-WORKSTATION-01",
        correlation_id: str = "campaign-test-stage-00",
        **kwargs,
    ) -> SynthesizedEvent:
        nonlocal counter
        counter += 1
        return SynthesizedEvent(
            id=kwargs.pop("id", f"event-{counter:04d}"),
            timestamp=fixed_datetime + timedelta(minutes=minutes),
            stage_id=kwargs.pop("stage_id", "stage-test-0001"),
            technique=technique,
            source_asset=source_asset,
            event_type=kwargs.pop("event_type", EventType.LOG),
            correlation_id=correlation_id,
            fields=kwargs.pop("fields", {"data_stream.dataset": "endpoint.events.process"}),
        )

    return _make


@pytest.fixture
def make_orchestrator(test_settings, fixed_clock):
    """Factory for orchestrators with test settings and a fixed clock."""

    def _make(content_filler=None, **overrides) -> CampaignOrchestrator:
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        return CampaignOrchestrator(
            content_filler=content_filler,
            settings=settings,
            clock=fixed_clock,
        )

    return _make


@pytest.fixture
def catch_all_orchestrator(catalog, test_settings, fixed_clock):
    """Orchestrator with one rule that correlates every catalog technique."""
    techniques = sorted({t for template in catalog.list_templates() for t in template.techniques})
    rule = CorrelationRule(
        id="all_activity",
        name="All Activity",
        techniques=tuple(techniques),
        time_window=timedelta(days=365),
        minimum_events=1,
    )
    return CampaignOrchestrator(
        catalog=catalog,
        rules=CorrelationRuleRegistry([rule]),
        settings=test_settings,
        clock=fixed_clock,
    )


# =============================================================================
# BDD Step Fixtures
# =============================================================================


@pytest.fixture
def context():
    """
    Shared context dictionary for BDD scenarios.

    Allows steps to share state without global variables.
    """
    return {}


# =============================================================================
# Cleanup Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_random_seed():
    """Reset random seed before each test for determinism."""
    random.seed(RANDOM_SEED)
    Faker.seed(RANDOM_SEED)
    yield


@pytest.fixture(autouse=True)
def clean_environment():
    """Ensure clean environment variables for each test."""
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("CAMPAIGN_FORGE_"):
            del os.environ[key]

    yield

    os.environ.clear()
    os.environ.update(original_env)


# =============================================================================
# Markers Registration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast isolated unit tests")
    config.addinivalue_line("markers", "integration: Tests spanning several components")
    config.addinivalue_line("markers", "e2e: End-to-end workflow tests")
    config.addinivalue_line("markers", "slow: Tests taking >5 seconds")
    config.addinivalue_line("markers", "critical: Must pass for release")
    config.addinivalue_line("markers", "wip: Work in progress, may be skipped")
