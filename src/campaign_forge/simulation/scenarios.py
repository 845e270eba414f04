"""
Campaign template catalog.

Templates describe the ordered stages of a campaign family: which tactic
each stage serves, the candidate techniques, the objectives and how long
the stage tends to last. The catalog is an immutable value table that is
constructed once and injected into the builder.

References:
- MITRE ATT&CK Groups: https://attack.mitre.org/groups/
- CISA #StopRansomware advisories
- CERT Insider Threat Center common sense guide
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from campaign_forge.simulation.errors import UnknownScenarioError
from campaign_forge.simulation.models import ScenarioType


@dataclass(frozen=True)
class StageTemplate:
    """A stage as described by a template, before timing is assigned."""

    name: str
    tactic: str
    techniques: tuple[str, ...]
    objectives: tuple[str, ...] = ()
    duration_hours: tuple[int, int] = (2, 12)  # (min, max)


@dataclass(frozen=True)
class CampaignTemplate:
    """Immutable campaign template. Loaded once, never mutated."""

    name: str
    type: ScenarioType
    threat_actor: str
    description: str
    stages: tuple[StageTemplate, ...]
    objectives: tuple[str, ...] = ()
    duration_days: tuple[int, int] = (7, 30)  # (min, max)

    @property
    def techniques(self) -> list[str]:
        seen: dict[str, None] = {}
        for stage in self.stages:
            for technique in stage.techniques:
                seen.setdefault(technique, None)
        return list(seen)


class ScenarioCatalog:
    """Read-only registry of campaign templates keyed by scenario type."""

    def __init__(self, templates: Iterable[CampaignTemplate]) -> None:
        grouped: dict[ScenarioType, list[CampaignTemplate]] = {}
        for template in templates:
            grouped.setdefault(template.type, []).append(template)
        self._templates: Mapping[ScenarioType, tuple[CampaignTemplate, ...]] = (
            MappingProxyType({k: tuple(v) for k, v in grouped.items()})
        )

    def templates_for(self, scenario_type: ScenarioType | str) -> tuple[CampaignTemplate, ...]:
        """Return the templates for a scenario type or raise UnknownScenarioError."""
        try:
            key = ScenarioType(scenario_type)
        except ValueError as exc:
            raise UnknownScenarioError(str(scenario_type)) from exc
        templates = self._templates.get(key)
        if not templates:
            raise UnknownScenarioError(key.value)
        return templates

    def list_templates(self) -> list[CampaignTemplate]:
        return [t for group in self._templates.values() for t in group]

    @property
    def scenario_types(self) -> list[ScenarioType]:
        return list(self._templates)

    def __contains__(self, scenario_type: object) -> bool:
        try:
            return ScenarioType(scenario_type) in self._templates
        except ValueError:
            return False


# =============================================================================
# Default Templates
# =============================================================================

APT_ESPIONAGE = CampaignTemplate(
    name="Operation Silent Harvest",
    type=ScenarioType.APT,
    threat_actor="APT29",
    description=(
        "State-sponsored espionage intrusion: spearphishing foothold, "
        "long dwell, credential theft and slow exfiltration of research data."
    ),
    objectives=("steal credentials", "maintain long-term access", "exfiltrate data"),
    duration_days=(7, 30),
    stages=(
        StageTemplate(
            name="Initial Access",
            tactic="initial-access",
            techniques=("T1566.001", "T1078"),
            objectives=("establish foothold",),
            duration_hours=(2, 12),
        ),
        StageTemplate(
            name="Execution",
            tactic="execution",
            techniques=("T1204.002", "T1059.001"),
            objectives=("run first-stage loader",),
            duration_hours=(1, 4),
        ),
        StageTemplate(
            name="Persistence",
            tactic="persistence",
            techniques=("T1547.001", "T1053.005"),
            objectives=("survive reboots",),
            duration_hours=(2, 8),
        ),
        StageTemplate(
            name="Credential Access",
            tactic="credential-access",
            techniques=("T1003.001", "T1558.003"),
            objectives=("dump credentials", "obtain service account tickets"),
            duration_hours=(2, 24),
        ),
        StageTemplate(
            name="Discovery",
            tactic="discovery",
            techniques=("T1083", "T1057", "T1018"),
            objectives=("map the environment",),
            duration_hours=(4, 48),
        ),
        StageTemplate(
            name="Lateral Movement",
            tactic="lateral-movement",
            techniques=("T1021.001", "T1021.002", "T1550.002"),
            objectives=("reach critical servers",),
            duration_hours=(6, 72),
        ),
        StageTemplate(
            name="Collection",
            tactic="collection",
            techniques=("T1005", "T1560.001"),
            objectives=("gather research documents",),
            duration_hours=(4, 48),
        ),
        StageTemplate(
            name="Exfiltration",
            tactic="exfiltration",
            techniques=("T1041", "T1567.002"),
            objectives=("exfiltrate data",),
            duration_hours=(1, 12),
        ),
    ),
)

RANSOMWARE_INTRUSION = CampaignTemplate(
    name="LockBit Affiliate Intrusion",
    type=ScenarioType.RANSOMWARE,
    threat_actor="LockBit 3.0 Affiliate",
    description=(
        "Human-operated ransomware: exposed service exploitation, rapid "
        "domain-wide spread, recovery inhibition and mass encryption."
    ),
    objectives=("encrypt files", "extort victim"),
    duration_days=(1, 5),
    stages=(
        StageTemplate(
            name="Initial Access",
            tactic="initial-access",
            techniques=("T1190", "T1133"),
            objectives=("breach the perimeter",),
            duration_hours=(1, 6),
        ),
        StageTemplate(
            name="Execution",
            tactic="execution",
            techniques=("T1059.003", "T1047"),
            objectives=("deploy tooling",),
            duration_hours=(1, 3),
        ),
        StageTemplate(
            name="Credential Access",
            tactic="credential-access",
            techniques=("T1003.001",),
            objectives=("obtain domain admin",),
            duration_hours=(1, 6),
        ),
        StageTemplate(
            name="Discovery",
            tactic="discovery",
            techniques=("T1018", "T1083"),
            objectives=("find backups and file servers",),
            duration_hours=(1, 8),
        ),
        StageTemplate(
            name="Lateral Movement",
            tactic="lateral-movement",
            techniques=("T1021.002", "T1570"),
            objectives=("stage payload on every host",),
            duration_hours=(2, 12),
        ),
        StageTemplate(
            name="Defense Evasion",
            tactic="defense-evasion",
            techniques=("T1562.001",),
            objectives=("disable endpoint protection",),
            duration_hours=(1, 2),
        ),
        StageTemplate(
            name="Encryption Phase",
            tactic="impact",
            techniques=("T1490", "T1486"),
            objectives=("encrypt files", "prevent recovery"),
            duration_hours=(1, 4),
        ),
    ),
)

INSIDER_DATA_THEFT = CampaignTemplate(
    name="Departing Engineer Data Theft",
    type=ScenarioType.INSIDER,
    threat_actor="Malicious Employee",
    description=(
        "A departing engineer with legitimate access quietly collects "
        "intellectual property and removes it before the last working day."
    ),
    objectives=("steal intellectual property", "avoid attribution"),
    duration_days=(3, 21),
    stages=(
        StageTemplate(
            name="Reconnaissance of Internal Data",
            tactic="discovery",
            techniques=("T1083", "T1135"),
            objectives=("locate valuable repositories",),
            duration_hours=(2, 24),
        ),
        StageTemplate(
            name="Data Collection",
            tactic="collection",
            techniques=("T1005", "T1039", "T1213"),
            objectives=("copy source code and designs",),
            duration_hours=(4, 72),
        ),
        StageTemplate(
            name="Data Staging",
            tactic="collection",
            techniques=("T1074.001", "T1560.001"),
            objectives=("compress collected files",),
            duration_hours=(1, 8),
        ),
        StageTemplate(
            name="Exfiltration",
            tactic="exfiltration",
            techniques=("T1052.001", "T1567.002"),
            objectives=("remove data from the company",),
            duration_hours=(1, 6),
        ),
        StageTemplate(
            name="Cover Tracks",
            tactic="defense-evasion",
            techniques=("T1070.004",),
            objectives=("delete local copies",),
            duration_hours=(1, 2),
        ),
    ),
)

SUPPLY_CHAIN_COMPROMISE = CampaignTemplate(
    name="Compromised Build Dependency",
    type=ScenarioType.SUPPLY_CHAIN,
    threat_actor="UNC Supply Chain Cluster",
    description=(
        "A trojanized third-party package reaches build servers, opens a "
        "web C2 channel and harvests deployment secrets."
    ),
    objectives=("access downstream environments", "steal secrets"),
    duration_days=(14, 60),
    stages=(
        StageTemplate(
            name="Package Compromise",
            tactic="initial-access",
            techniques=("T1195.002",),
            objectives=("install trojanized dependency",),
            duration_hours=(12, 96),
        ),
        StageTemplate(
            name="Execution",
            tactic="execution",
            techniques=("T1059.001",),
            objectives=("run post-install hook",),
            duration_hours=(1, 4),
        ),
        StageTemplate(
            name="Persistence",
            tactic="persistence",
            techniques=("T1543.003",),
            objectives=("install backdoor service",),
            duration_hours=(1, 6),
        ),
        StageTemplate(
            name="Command and Control",
            tactic="command-and-control",
            techniques=("T1071.001", "T1105"),
            objectives=("establish beaconing", "download second stage"),
            duration_hours=(24, 240),
        ),
        StageTemplate(
            name="Credential Access",
            tactic="credential-access",
            techniques=("T1552.001",),
            objectives=("harvest deployment secrets",),
            duration_hours=(2, 12),
        ),
        StageTemplate(
            name="Lateral Movement",
            tactic="lateral-movement",
            techniques=("T1021.004", "T1210"),
            objectives=("pivot to production hosts",),
            duration_hours=(4, 48),
        ),
        StageTemplate(
            name="Exfiltration",
            tactic="exfiltration",
            techniques=("T1041",),
            objectives=("steal secrets",),
            duration_hours=(1, 12),
        ),
    ),
)

DEFAULT_TEMPLATES: tuple[CampaignTemplate, ...] = (
    APT_ESPIONAGE,
    RANSOMWARE_INTRUSION,
    INSIDER_DATA_THEFT,
    SUPPLY_CHAIN_COMPROMISE,
)


def default_catalog() -> ScenarioCatalog:
    """Build the catalog of built-in templates."""
    return ScenarioCatalog(DEFAULT_TEMPLATES)
