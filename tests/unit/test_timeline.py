"""
Unit tests for timeline assembly and the investigation guide.
"""

from datetime import timedelta

import pytest

from campaign_forge.simulation.models import (
    Campaign,
    CorrelationCluster,
    DetectedAlert,
    MissedActivity,
    MissedReason,
    ScenarioType,
    StageLogs,
    TimeRange,
)
from campaign_forge.simulation.timeline import TimelineAssembler


@pytest.fixture
def campaign(fixed_datetime):
    return Campaign(
        id="campaign-test",
        name="Test Campaign",
        type=ScenarioType.APT,
        threat_actor="APT29",
        objectives=("test",),
        duration=TimeRange(fixed_datetime - timedelta(days=2), fixed_datetime),
    )


@pytest.fixture
def make_alert(fixed_datetime):
    def _make(minutes=0, rule_name="Command Line: Suspicious PowerShell Execution", **kwargs):
        return DetectedAlert(
            id=kwargs.get("id", f"alert-{minutes}"),
            timestamp=fixed_datetime + timedelta(minutes=minutes),
            stage_id=kwargs.get("stage_id", "stage-test-0001"),
            technique=kwargs.get("technique", "T1059.001"),
            rule_name=rule_name,
            severity="high",
            correlation_id=kwargs.get("correlation_id", "campaign-test-stage-00"),
            document={},
        )

    return _make


class TestTimelineAssembler:
    """Tests for TimelineAssembler.assemble."""

    @pytest.mark.unit
    def test_entries_sorted_by_timestamp(self, campaign, make_stage, make_event, make_alert, fixed_datetime):
        stage = make_stage(start_time=fixed_datetime - timedelta(hours=1))
        logs = StageLogs(
            stage_id=stage.id,
            stage_name=stage.name,
            techniques=stage.techniques,
            logs=(make_event(minutes=30), make_event(minutes=-30)),
        )

        timeline = TimelineAssembler().assemble(campaign, [stage], [logs], [make_alert(minutes=45)])

        timestamps = [e.timestamp for e in timeline.entries]
        assert timestamps == sorted(timestamps)
        assert [e.type for e in timeline.entries] == ["stage_start", "log", "log", "alert"]

    @pytest.mark.unit
    def test_ties_keep_stage_log_alert_order(self, campaign, make_stage, make_event, make_alert, fixed_datetime):
        stage = make_stage(start_time=fixed_datetime)
        logs = StageLogs(stage.id, stage.name, stage.techniques, (make_event(minutes=0),))

        timeline = TimelineAssembler().assemble(campaign, [stage], [logs], [make_alert(minutes=0)])

        assert [e.type for e in timeline.entries] == ["stage_start", "log", "alert"]

    @pytest.mark.unit
    def test_bounds_extend_to_cover_entries(self, campaign, make_alert, fixed_datetime):
        alert = make_alert(minutes=90)
        timeline = TimelineAssembler().assemble(campaign, [], [], [alert])

        assert timeline.start == campaign.duration.start
        assert timeline.end == alert.timestamp

    @pytest.mark.unit
    def test_empty_timeline_uses_campaign_bounds(self, campaign):
        timeline = TimelineAssembler().assemble(campaign, [], [], [])

        assert timeline.entries == ()
        assert timeline.start == campaign.duration.start
        assert timeline.end == campaign.duration.end


class TestInvestigationGuide:
    """Tests for TimelineAssembler.investigation_guide."""

    @pytest.mark.unit
    def test_base_steps(self, campaign, make_alert):
        alerts = [make_alert(minutes=0), make_alert(minutes=10)]
        guide = TimelineAssembler().investigation_guide(campaign, alerts, [], [])

        assert [step.step for step in guide] == [1, 2, 3]
        assert guide[0].action == "Review initial alerts"
        assert guide[0].expected_findings == ("Command Line: Suspicious PowerShell Execution",)
        assert guide[0].query == (
            'kibana.alert.rule.name:("Command Line: Suspicious PowerShell Execution")'
        )
        assert guide[1].action == "Investigate supporting logs"
        assert guide[1].query == 'campaign.correlation.id:("campaign-test-stage-00")'
        assert "Registry modifications for persistence" in guide[2].expected_findings

    @pytest.mark.unit
    def test_alert_timeframe(self, campaign, make_alert):
        first, last = make_alert(minutes=0), make_alert(minutes=10)
        guide = TimelineAssembler().investigation_guide(campaign, [last, first], [], [])

        assert guide[0].timeframe == (
            f"{first.timestamp.isoformat()} to {last.timestamp.isoformat()}"
        )

    @pytest.mark.unit
    def test_no_alerts(self, campaign):
        guide = TimelineAssembler().investigation_guide(campaign, [], [], [])

        assert guide[0].query == "kibana.alert.rule.name:*"
        assert guide[0].expected_findings == ("No alerts fired; begin from log review",)

    @pytest.mark.unit
    def test_clusters_and_gaps_add_steps(self, campaign, make_alert):
        cluster = CorrelationCluster(
            rule_id="discovery_burst",
            rule_name="Discovery Burst",
            matched_event_ids=("a", "b"),
            confidence_score=0.8123,
            correlation_ids=("campaign-test-stage-02",),
        )
        missed = MissedActivity(
            stage="Discovery",
            stage_id="stage-test-0002",
            technique="T1083",
            reason=MissedReason.BELOW_DETECTION_THRESHOLD,
            logs=4,
        )

        guide = TimelineAssembler().investigation_guide(
            campaign, [make_alert()], [cluster], [missed, missed]
        )

        assert [step.action for step in guide[3:]] == [
            "Review correlated incident clusters",
            "Assess detection coverage gaps",
        ]
        assert guide[3].expected_findings == ("Discovery Burst (confidence 0.81)",)
        assert guide[4].expected_findings == ("T1083 missed: below_detection_threshold",)
        assert guide[4].query == 'threat.technique.id:("T1083")'
        assert [step.step for step in guide] == [1, 2, 3, 4, 5]

    @pytest.mark.unit
    @pytest.mark.parametrize("scenario", list(ScenarioType))
    def test_every_scenario_has_a_hunting_step(self, campaign, scenario):
        from dataclasses import replace

        guide = TimelineAssembler().investigation_guide(replace(campaign, type=scenario), [], [], [])
        assert len(guide) == 3
        assert guide[2].query.startswith("threat.technique.id:")
