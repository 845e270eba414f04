"""
Unit tests for content filling and event synthesis.
"""

import random

import pytest

from campaign_forge.simulation.content import ContentFiller, FakerContentFiller
from campaign_forge.simulation.errors import ContentFillFailure
from campaign_forge.simulation.models import RESERVED_FIELDS, EventType, split_reserved_fields
from campaign_forge.simulation.synthesizer import EventSynthesizer, progression_phase
from tests.conftest import (
    EmptyContentFiller,
    FailingContentFiller,
    ReservedKeyContentFiller,
    SelectiveContentFiller,
    SlowContentFiller,
)


class TestFakerContentFiller:
    """Tests for the local Faker-backed collaborator."""

    @pytest.mark.unit
    def test_satisfies_protocol(self, content_filler):
        assert isinstance(content_filler, ContentFiller)

    @pytest.mark.unit
    async def test_fill_is_deterministic_per_arguments(self):
        first = await FakerContentFiller(seed=5).fill_content("T1059.001", "n", "DMZ-WEB-01")
        second = await FakerContentFiller(seed=5).fill_content("T1059.001", "n", "DMZ-WEB-01")
        assert first == second

    @pytest.mark.unit
    async def test_fields_follow_primary_data_source(self, content_filler):
        powershell = await content_filler.fill_content("T1059.001", "n", "HOST")
        assert powershell["data_stream.dataset"] == "windows.powershell_operational"
        assert "powershell.file.script_block_text" in powershell

        kerberos = await content_filler.fill_content("T1558.003", "n", "HOST")
        assert kerberos["winlog.event_id"] == 4769

        email = await content_filler.fill_content("T1566.001", "n", "HOST")
        assert email["event.category"] == "email"
        assert "@" in email["email.from.address"]

    @pytest.mark.unit
    async def test_unknown_technique_gets_generic_content(self, content_filler):
        fields = await content_filler.fill_content("T9999", "n", "HOST")
        assert fields["data_stream.dataset"] == "generic.log"

    @pytest.mark.unit
    async def test_never_sets_reserved_fields(self, content_filler):
        for technique in ("T1059.001", "T1003.001", "T1021.002", "T1041", "T1052.001"):
            fields = await content_filler.fill_content(technique, "n", "HOST")
            assert not RESERVED_FIELDS & fields.keys()


class TestReservedFields:
    """Tests for the reserved/enrichment field split."""

    @pytest.mark.unit
    def test_split(self):
        reserved, enrichment = split_reserved_fields({"host.name": "x", "user.name": "y"})
        assert reserved == {"host.name": "x"}
        assert enrichment == {"user.name": "y"}


class TestEventSynthesizer:
    """Tests for EventSynthesizer.synthesize_stage."""

    @pytest.mark.unit
    async def test_logs_per_stage_events_per_technique(self, make_stage, topology, content_filler):
        stage = make_stage(techniques=("T1059.001", "T1204.002"))
        synthesizer = EventSynthesizer(content_filler, random.Random(1), logs_per_stage=8)

        outcomes = await synthesizer.synthesize_stage(stage, topology)

        assert list(outcomes) == ["T1059.001", "T1204.002"]
        for technique, outcome in outcomes.items():
            assert outcome.ok
            assert len(outcome.value) == 8
            for event in outcome.value:
                assert event.technique == technique
                assert event.stage_id == stage.id
                assert event.correlation_id == stage.correlation_key
                assert event.event_type == EventType.LOG
                assert stage.start_time <= event.timestamp <= stage.end_time

    @pytest.mark.unit
    async def test_events_sorted_by_timestamp(self, make_stage, topology, content_filler):
        stage = make_stage()
        outcomes = await EventSynthesizer(content_filler, random.Random(3)).synthesize_stage(
            stage, topology
        )
        timestamps = [e.timestamp for e in outcomes["T1059.001"].value]
        assert timestamps == sorted(timestamps)

    @pytest.mark.unit
    async def test_targets_come_from_tactic_zones(self, make_stage, topology, content_filler):
        stage = make_stage(name="Initial Access", tactic="initial-access", techniques=("T1190",))
        outcomes = await EventSynthesizer(content_filler, random.Random(3)).synthesize_stage(
            stage, topology
        )
        dmz_hosts = {a.hostname for a in topology.subnet("dmz").assets}
        assert {e.source_asset for e in outcomes["T1190"].value} <= dmz_hosts

    @pytest.mark.unit
    def test_target_count_bounds_pool(self, make_stage, topology, content_filler):
        synthesizer = EventSynthesizer(content_filler, random.Random(3), target_count=2)
        pool = synthesizer.target_pool(topology, make_stage(tactic="discovery"))
        assert len(pool) == 2

    @pytest.mark.unit
    async def test_failing_collaborator_yields_failure_and_no_events(self, make_stage, topology):
        stage = make_stage(techniques=("T1059.001", "T1204.002"))
        synthesizer = EventSynthesizer(FailingContentFiller(), random.Random(1))

        outcomes = await synthesizer.synthesize_stage(stage, topology)

        for outcome in outcomes.values():
            assert not outcome.ok
            assert outcome.value == ()
            assert isinstance(outcome.error, ContentFillFailure)
            assert "content backend unavailable" in str(outcome.error)

    @pytest.mark.unit
    async def test_partial_failure_keeps_other_techniques(self, make_stage, topology):
        stage = make_stage(techniques=("T1059.001", "T1204.002"))
        synthesizer = EventSynthesizer(
            SelectiveContentFiller({"T1204.002"}), random.Random(1), logs_per_stage=3
        )

        outcomes = await synthesizer.synthesize_stage(stage, topology)

        assert outcomes["T1059.001"].ok
        assert len(outcomes["T1059.001"].value) == 3
        assert not outcomes["T1204.002"].ok
        assert outcomes["T1204.002"].error.technique == "T1204.002"

    @pytest.mark.unit
    async def test_empty_content_is_a_failure(self, make_stage, topology):
        outcomes = await EventSynthesizer(EmptyContentFiller(), random.Random(1)).synthesize_stage(
            make_stage(), topology
        )
        outcome = outcomes["T1059.001"]
        assert not outcome.ok
        assert outcome.error.reason == "empty content"

    @pytest.mark.unit
    async def test_timeout_is_a_failure(self, make_stage, topology):
        synthesizer = EventSynthesizer(SlowContentFiller(delay=5), random.Random(1), timeout=0.05)
        outcomes = await synthesizer.synthesize_stage(make_stage(), topology)

        outcome = outcomes["T1059.001"]
        assert not outcome.ok
        assert "timed out" in outcome.error.reason

    @pytest.mark.unit
    async def test_reserved_keys_from_collaborator_are_dropped(self, make_stage, topology):
        stage = make_stage()
        synthesizer = EventSynthesizer(ReservedKeyContentFiller(), random.Random(1))

        outcomes = await synthesizer.synthesize_stage(stage, topology)
        event = outcomes["T1059.001"].value[0]
        document = event.to_document()

        assert event.source_asset != "attacker-controlled"
        assert document["host.name"] == event.source_asset
        assert document["threat.technique.id"] == "T1059.001"
        assert document["campaign.correlation.id"] == stage.correlation_key
        assert document["@timestamp"] == event.timestamp.isoformat()
        assert document["user.name"] == "mallory"
        assert not RESERVED_FIELDS & event.fields.keys()

    @pytest.mark.unit
    async def test_event_fields_are_read_only(self, make_stage, topology, content_filler):
        outcomes = await EventSynthesizer(content_filler, random.Random(1)).synthesize_stage(
            make_stage(), topology
        )
        event = outcomes["T1059.001"].value[0]
        with pytest.raises(TypeError):
            event.fields["user.name"] = "changed"

    @pytest.mark.unit
    async def test_same_seed_same_events(self, make_stage, topology):
        stage = make_stage(techniques=("T1059.001", "T1003.001"))

        async def run():
            synthesizer = EventSynthesizer(FakerContentFiller(seed=9), random.Random(9))
            outcomes = await synthesizer.synthesize_stage(stage, topology)
            return {t: o.value for t, o in outcomes.items()}

        assert await run() == await run()


class TestCampaignEvents:
    """Tests for campaign-level annotated events."""

    @pytest.mark.unit
    def test_progression_phase(self):
        assert [progression_phase(i, 6) for i in range(6)] == [
            "initial",
            "initial",
            "escalation",
            "escalation",
            "objectives",
            "objectives",
        ]

    @pytest.mark.unit
    def test_round_robin_with_bounded_scores(self, catalog, fixed_clock, content_filler, topology):
        from campaign_forge.simulation.campaign_builder import CampaignBuilder

        rng = random.Random(11)
        campaign, stages = CampaignBuilder(catalog, rng, fixed_clock).build("apt")
        synthesizer = EventSynthesizer(content_filler, rng)

        events = synthesizer.build_campaign_events(campaign, stages, 20, topology)

        assert len(events) == 20
        assert [e["campaign.stage.id"] for e in events[: len(stages)]] == [s.id for s in stages]
        for event in events:
            assert 0.70 <= event["campaign.correlation.score"] <= 0.95
            assert event["campaign.progression.phase"] in {"initial", "escalation", "objectives"}
            assert event["campaign.id"] == campaign.id

    @pytest.mark.unit
    def test_no_stages_no_events(self, content_filler, catalog, fixed_clock, topology):
        from campaign_forge.simulation.campaign_builder import CampaignBuilder

        campaign, _ = CampaignBuilder(catalog, random.Random(1), fixed_clock).build("apt")
        synthesizer = EventSynthesizer(content_filler, random.Random(1))
        assert synthesizer.build_campaign_events(campaign, [], 10, topology) == []

    @pytest.mark.unit
    def test_events_carry_host_user_and_type(self, catalog, fixed_clock, content_filler, topology):
        from campaign_forge.simulation.campaign_builder import CampaignBuilder

        rng = random.Random(11)
        campaign, stages = CampaignBuilder(catalog, rng, fixed_clock).build("ransomware")
        synthesizer = EventSynthesizer(content_filler, rng, target_count=3)

        events = synthesizer.build_campaign_events(campaign, stages, 21, topology)

        users_by_stage = {}
        for event in events:
            stage = next(s for s in stages if s.id == event["campaign.stage.id"])
            pool = {a.hostname for a in synthesizer.target_pool(topology, stage)}
            assert event["host.name"] in pool
            assert event["campaign.type"] == "ransomware"
            assert isinstance(event["user.name"], str) and event["user.name"]
            users_by_stage.setdefault(stage.id, set()).add(event["user.name"])
        assert all(len(users) == 1 for users in users_by_stage.values())

    @pytest.mark.unit
    def test_target_count_bounds_campaign_hosts(self, catalog, fixed_clock, content_filler, topology):
        from campaign_forge.simulation.campaign_builder import CampaignBuilder

        rng = random.Random(4)
        campaign, stages = CampaignBuilder(catalog, rng, fixed_clock).build("apt")
        synthesizer = EventSynthesizer(content_filler, rng, target_count=1)

        events = synthesizer.build_campaign_events(campaign, stages, 40, topology)

        hosts_by_stage = {}
        for event in events:
            hosts_by_stage.setdefault(event["campaign.stage.id"], set()).add(event["host.name"])
        assert all(len(hosts) == 1 for hosts in hosts_by_stage.values())
