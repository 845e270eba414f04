"""
Unit tests for network topology generation and lateral movement planning.
"""

import ipaddress

import networkx as nx
import pytest

from campaign_forge.simulation.errors import TopologyDegenerate
from campaign_forge.simulation.lateral_movement import (
    CREDENTIAL,
    EXPLOITATION,
    FALLBACK_TECHNIQUE,
    LateralMovementPlanner,
    base_rate,
    movement_class,
)
from campaign_forge.simulation.models import Complexity
from campaign_forge.simulation.topology import (
    CONTROLS_PER_ZONE,
    PERIPHERAL_ASSETS_PER_ZONE,
    NetworkTopologyModel,
)


class TestNetworkTopologyModel:
    """Tests for the three-zone topology."""

    @pytest.mark.unit
    @pytest.mark.parametrize("complexity", list(Complexity))
    def test_fixed_skeleton_at_every_complexity(self, complexity):
        topology = NetworkTopologyModel().generate(complexity)

        assert [s.security_zone for s in topology.subnets] == ["dmz", "internal", "critical"]
        assert len(topology.critical_assets) == 2
        assert {a.role for a in topology.critical_assets} == {
            "domain_controller",
            "database_server",
        }
        assert all(a.zone == "critical" and a.critical for a in topology.critical_assets)

        edges = {
            (t.source_zone, t.target_zone): (t.trust_level, t.crosses_boundary)
            for t in topology.trust_relationships
        }
        assert edges == {
            ("dmz", "internal"): (0.6, True),
            ("internal", "internal"): (0.9, False),
            ("internal", "critical"): (0.3, True),
        }

    @pytest.mark.unit
    def test_dmz_cidr(self, topology):
        assert topology.subnet("dmz").cidr == "10.1.0.0/24"
        assert topology.subnet("internal").cidr == "10.2.0.0/24"
        assert topology.subnet("critical").cidr == "10.3.0.0/24"

    @pytest.mark.unit
    def test_asset_ips_belong_to_their_subnet(self, topology):
        for subnet in topology.subnets:
            network = ipaddress.ip_network(subnet.cidr)
            for asset in subnet.assets:
                assert ipaddress.ip_address(asset.ip_address) in network

    @pytest.mark.unit
    @pytest.mark.parametrize("complexity", list(Complexity))
    def test_complexity_scales_peripherals_and_controls(self, complexity):
        topology = NetworkTopologyModel().generate(complexity)
        peripheral = PERIPHERAL_ASSETS_PER_ZONE[complexity]

        assert len(topology.subnet("dmz").assets) == peripheral
        assert len(topology.subnet("internal").assets) == peripheral
        assert len(topology.subnet("critical").assets) == peripheral + 2
        assert len(topology.security_controls) == 3 * CONTROLS_PER_ZONE[complexity]

    @pytest.mark.unit
    def test_hostnames_are_unique(self, topology):
        hostnames = [a.hostname for a in topology.assets]
        assert len(hostnames) == len(set(hostnames))

    @pytest.mark.unit
    def test_graph_follows_trust_relationships(self, topology):
        graph = topology.graph
        assert graph.number_of_nodes() == len(topology.assets)
        assert nx.is_frozen(graph)

        for source, target, data in graph.edges(data=True):
            zones = (graph.nodes[source]["zone"], graph.nodes[target]["zone"])
            assert zones in {("dmz", "internal"), ("internal", "internal"), ("internal", "critical")}
            assert 0.0 <= data["control_strength"] < 1.0
            assert source != target

    @pytest.mark.unit
    def test_generation_is_deterministic(self):
        model = NetworkTopologyModel()
        assert model.generate("high") == model.generate("high")


class TestLateralMovementPlanner:
    """Tests for path planning over the topology graph."""

    @pytest.mark.unit
    def test_movement_classes(self):
        assert movement_class("T1021.002") == CREDENTIAL
        assert movement_class("T1078") == CREDENTIAL
        assert movement_class("T1210") == EXPLOITATION
        assert movement_class("T1083") is None

    @pytest.mark.unit
    def test_empty_technique_set_is_degenerate(self, topology):
        outcome = LateralMovementPlanner().plan(topology, [])

        assert not outcome.ok
        assert isinstance(outcome.error, TopologyDegenerate)
        assert outcome.value == []

    @pytest.mark.unit
    def test_falls_back_to_valid_accounts(self, topology):
        outcome = LateralMovementPlanner().plan(topology, ["T1083", "T1005"])

        assert outcome.ok
        assert outcome.value
        assert all(path.techniques == (FALLBACK_TECHNIQUE,) for path in outcome.value)

    @pytest.mark.unit
    def test_probabilities_are_bounded_and_ranked(self, topology):
        outcome = LateralMovementPlanner().plan(
            topology, ["T1021.001", "T1003.001", "T1210", "T1083"]
        )
        probabilities = [p.success_probability for p in outcome.value]

        assert probabilities == sorted(probabilities, reverse=True)
        assert all(0.0 <= p <= 1.0 for p in probabilities)

    @pytest.mark.unit
    def test_exploitation_only_crosses_boundaries(self, topology):
        outcome = LateralMovementPlanner().plan(topology, ["T1210"])

        assert outcome.value
        assert all(path.crosses_boundary for path in outcome.value)
        assert {(p.source_zone, p.target_zone) for p in outcome.value} == {
            ("dmz", "internal"),
            ("internal", "critical"),
        }

    @pytest.mark.unit
    def test_credential_techniques_use_every_edge(self, topology):
        outcome = LateralMovementPlanner().plan(topology, ["T1021.002"])
        assert len(outcome.value) == topology.graph.number_of_edges()

    @pytest.mark.unit
    def test_probability_is_base_rate_discounted_by_controls(self, topology):
        outcome = LateralMovementPlanner().plan(topology, ["T1021.001", "T1210"])

        for path in outcome.value:
            edge = topology.graph.edges[path.source_asset, path.target_asset]
            rate = max(base_rate(t) for t in path.techniques)
            assert path.success_probability == pytest.approx(
                min(1.0, max(0.0, rate * (1.0 - edge["control_strength"])))
            )

    @pytest.mark.unit
    def test_stronger_controls_lower_probability(self):
        planner = LateralMovementPlanner()
        low = planner.plan(NetworkTopologyModel().generate("low"), ["T1021.001"])
        expert = planner.plan(NetworkTopologyModel().generate("expert"), ["T1021.001"])

        assert max(p.success_probability for p in expert.value) < max(
            p.success_probability for p in low.value
        )
