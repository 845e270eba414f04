"""
Network Topology Model.

Generates the three-zone network a campaign moves through:

    dmz (10.1.0.0/24) -> internal (10.2.0.0/24) -> critical (10.3.0.0/24)

The zone skeleton is fixed. Complexity only changes how many peripheral
assets each zone holds and how many security controls guard it. The
result carries a frozen ``networkx.DiGraph`` whose nodes are asset
hostnames and whose edges follow the zone trust relationships.
"""

import ipaddress
import logging

import networkx as nx

from campaign_forge.config import SimulationDefaults
from campaign_forge.simulation.models import (
    Asset,
    Complexity,
    NetworkTopology,
    SecurityControl,
    Subnet,
    TrustRelationship,
)

logger = logging.getLogger(__name__)


ZONE_TRUST_LEVELS = {
    "dmz": 0.2,
    "internal": 0.6,
    "critical": 0.9,
}

# (source_zone, target_zone, trust_level, crosses_boundary)
TRUST_EDGES: tuple[tuple[str, str, float, bool], ...] = (
    ("dmz", "internal", 0.6, True),
    ("internal", "internal", 0.9, False),
    ("internal", "critical", 0.3, True),
)

PERIPHERAL_ASSETS_PER_ZONE = {
    Complexity.LOW: 2,
    Complexity.MEDIUM: 3,
    Complexity.HIGH: 5,
    Complexity.EXPERT: 8,
}

CONTROLS_PER_ZONE = {
    Complexity.LOW: 1,
    Complexity.MEDIUM: 2,
    Complexity.HIGH: 3,
    Complexity.EXPERT: 4,
}

ZONE_ROLES = {
    "dmz": ("web", "mail", "vpn", "proxy"),
    "internal": ("workstation", "file", "app", "print"),
    "critical": ("backup", "hsm", "erp", "pki"),
}

# Ordered by deployment priority; (name, control_type, strength)
CONTROL_CATALOG: tuple[tuple[str, str, float], ...] = (
    ("Perimeter Firewall", "firewall", 0.20),
    ("Endpoint Detection and Response", "edr", 0.25),
    ("Network Intrusion Detection", "ids", 0.15),
    ("Privileged Access Management", "pam", 0.30),
)

CRITICAL_ASSETS = (
    ("DC01", "domain_controller"),
    ("DB01", "database_server"),
)


def combined_control_strength(controls: list[SecurityControl]) -> float:
    """Probability that at least one control stops an attempt."""
    passthrough = 1.0
    for control in controls:
        passthrough *= 1.0 - control.strength
    return 1.0 - passthrough


class NetworkTopologyModel:
    """Builds ``NetworkTopology`` values for a given complexity."""

    def generate(self, complexity: Complexity | str = Complexity.MEDIUM) -> NetworkTopology:
        complexity = Complexity(complexity)
        peripheral = PERIPHERAL_ASSETS_PER_ZONE[complexity]

        subnets = []
        critical_assets: tuple[Asset, ...] = ()
        for zone, cidr in SimulationDefaults.SUBNETS.items():
            hosts = ipaddress.ip_network(cidr).hosts()
            # Skip the gateway address
            next(hosts)

            assets = []
            if zone == "critical":
                critical_assets = tuple(
                    Asset(
                        hostname=hostname,
                        ip_address=str(next(hosts)),
                        zone=zone,
                        role=role,
                        critical=True,
                    )
                    for hostname, role in CRITICAL_ASSETS
                )
                assets.extend(critical_assets)

            roles = ZONE_ROLES[zone]
            for i in range(peripheral):
                role = roles[i % len(roles)]
                assets.append(Asset(
                    hostname=f"{zone.upper()}-{role.upper()}-{i + 1:02d}",
                    ip_address=str(next(hosts)),
                    zone=zone,
                    role=role,
                ))

            subnets.append(Subnet(
                name=f"{zone}-subnet",
                cidr=cidr,
                security_zone=zone,
                trust_level=ZONE_TRUST_LEVELS[zone],
                assets=tuple(assets),
            ))

        controls = tuple(
            SecurityControl(name=name, control_type=control_type, zone=zone, strength=strength)
            for zone in SimulationDefaults.SUBNETS
            for name, control_type, strength in CONTROL_CATALOG[: CONTROLS_PER_ZONE[complexity]]
        )

        trust = tuple(
            TrustRelationship(
                source_zone=source,
                target_zone=target,
                trust_level=level,
                crosses_boundary=crosses,
            )
            for source, target, level, crosses in TRUST_EDGES
        )

        graph = self._build_graph(subnets, trust, controls)

        logger.debug(
            f"Generated {complexity.value} topology: {graph.number_of_nodes()} assets, "
            f"{graph.number_of_edges()} trust edges, {len(controls)} controls"
        )

        return NetworkTopology(
            subnets=tuple(subnets),
            critical_assets=critical_assets,
            trust_relationships=trust,
            security_controls=controls,
            graph=graph,
        )

    def _build_graph(
        self,
        subnets: list[Subnet],
        trust: tuple[TrustRelationship, ...],
        controls: tuple[SecurityControl, ...],
    ) -> nx.DiGraph:
        graph = nx.DiGraph()
        by_zone = {subnet.security_zone: subnet.assets for subnet in subnets}

        for subnet in subnets:
            for asset in subnet.assets:
                graph.add_node(
                    asset.hostname,
                    zone=asset.zone,
                    role=asset.role,
                    ip=asset.ip_address,
                    critical=asset.critical,
                )

        strength = {
            zone: combined_control_strength([c for c in controls if c.zone == zone])
            for zone in by_zone
        }

        for relationship in trust:
            for source in by_zone[relationship.source_zone]:
                for target in by_zone[relationship.target_zone]:
                    if source.hostname == target.hostname:
                        continue
                    graph.add_edge(
                        source.hostname,
                        target.hostname,
                        trust_level=relationship.trust_level,
                        crosses_boundary=relationship.crosses_boundary,
                        control_strength=strength[relationship.target_zone],
                    )

        return nx.freeze(graph)
