"""
Lateral Movement Planner.

Derives candidate movement paths by walking the trust edges of a
``NetworkTopology`` graph and matching them against the campaign's
techniques.

Movement classes:
- credential: reuses stolen or valid credentials, works over any trust edge
- exploitation: abuses a vulnerable service, only across a trust boundary
"""

import logging
from collections.abc import Iterable

from campaign_forge.simulation.errors import StepOutcome, TopologyDegenerate
from campaign_forge.simulation.mitre_attack import (
    Tactic,
    base_technique_id,
    get_technique_by_id,
)
from campaign_forge.simulation.models import LateralMovementPath, NetworkTopology

logger = logging.getLogger(__name__)


CREDENTIAL = "credential"
EXPLOITATION = "exploitation"

# Keyed by parent technique ID
MOVEMENT_CLASSES: dict[str, str] = {
    "T1078": CREDENTIAL,   # Valid Accounts
    "T1003": CREDENTIAL,   # OS Credential Dumping
    "T1550": CREDENTIAL,   # Use Alternate Authentication Material
    "T1021": CREDENTIAL,   # Remote Services
    "T1558": CREDENTIAL,   # Steal or Forge Kerberos Tickets
    "T1552": CREDENTIAL,   # Unsecured Credentials
    "T1570": CREDENTIAL,   # Lateral Tool Transfer
    "T1047": CREDENTIAL,   # WMI
    "T1210": EXPLOITATION,  # Exploitation of Remote Services
    "T1190": EXPLOITATION,  # Exploit Public-Facing Application
    "T1068": EXPLOITATION,  # Exploitation for Privilege Escalation
    "T1133": EXPLOITATION,  # External Remote Services
}

TACTIC_BASE_RATES: dict[Tactic, float] = {
    Tactic.LATERAL_MOVEMENT: 0.8,
    Tactic.CREDENTIAL_ACCESS: 0.7,
    Tactic.INITIAL_ACCESS: 0.6,
    Tactic.PRIVILEGE_ESCALATION: 0.55,
    Tactic.EXECUTION: 0.5,
}
DEFAULT_BASE_RATE = 0.5

FALLBACK_TECHNIQUE = "T1078"


def movement_class(technique_id: str) -> str | None:
    return MOVEMENT_CLASSES.get(base_technique_id(technique_id))


def base_rate(technique_id: str) -> float:
    technique = get_technique_by_id(technique_id)
    if technique is None:
        return DEFAULT_BASE_RATE
    return TACTIC_BASE_RATES.get(technique.primary_tactic, DEFAULT_BASE_RATE)


def _clip(value: float) -> float:
    return min(1.0, max(0.0, value))


class LateralMovementPlanner:
    """Plans ranked lateral movement paths over a topology."""

    def plan(
        self,
        topology: NetworkTopology,
        techniques: Iterable[str],
    ) -> StepOutcome[list[LateralMovementPath]]:
        """
        Plan movement paths for the given campaign techniques.

        Returns a failed outcome with no paths when the technique set is
        empty. Otherwise at least one path is produced: when none of the
        techniques can move laterally, Valid Accounts is assumed.
        """
        unique = list(dict.fromkeys(techniques))
        if not unique:
            return StepOutcome.failure(
                TopologyDegenerate("No techniques available for lateral movement"),
                [],
            )

        movers = [t for t in unique if movement_class(t) is not None]
        if not movers:
            logger.debug(
                f"No movement-capable technique in {unique}, "
                f"falling back to {FALLBACK_TECHNIQUE}"
            )
            movers = [FALLBACK_TECHNIQUE]

        paths = []
        for source, target, edge in topology.graph.edges(data=True):
            applicable = tuple(
                t for t in movers
                if movement_class(t) == CREDENTIAL or edge["crosses_boundary"]
            )
            if not applicable:
                continue

            rate = max(base_rate(t) for t in applicable)
            probability = _clip(rate * (1.0 - edge["control_strength"]))
            paths.append(LateralMovementPath(
                source_asset=source,
                target_asset=target,
                techniques=applicable,
                success_probability=probability,
                source_zone=topology.graph.nodes[source]["zone"],
                target_zone=topology.graph.nodes[target]["zone"],
                crosses_boundary=edge["crosses_boundary"],
            ))

        # ties keep graph edge order
        paths.sort(key=lambda p: p.success_probability, reverse=True)
        return StepOutcome.success(paths)
