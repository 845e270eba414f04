"""
MITRE ATT&CK technique definitions and mappings.

This module provides the subset of ATT&CK techniques used by the campaign
templates, the data sources each technique leaves traces in, and the
short detection names used when naming simulated alerts.

References:
- MITRE ATT&CK: https://attack.mitre.org/
- Elastic Common Schema: https://www.elastic.co/guide/en/ecs/current/
"""

from dataclasses import dataclass, field
from enum import Enum


class Tactic(str, Enum):
    """MITRE ATT&CK Tactics (Kill Chain Phases)."""

    RECONNAISSANCE = "reconnaissance"
    RESOURCE_DEVELOPMENT = "resource-development"
    INITIAL_ACCESS = "initial-access"
    EXECUTION = "execution"
    PERSISTENCE = "persistence"
    PRIVILEGE_ESCALATION = "privilege-escalation"
    DEFENSE_EVASION = "defense-evasion"
    CREDENTIAL_ACCESS = "credential-access"
    DISCOVERY = "discovery"
    LATERAL_MOVEMENT = "lateral-movement"
    COLLECTION = "collection"
    COMMAND_AND_CONTROL = "command-and-control"
    EXFILTRATION = "exfiltration"
    IMPACT = "impact"


class DataSource(str, Enum):
    """Data sources a technique leaves traces in."""

    # Endpoint
    PROCESS_CREATION = "process_creation"
    POWERSHELL_LOG = "powershell_log"
    FILE_CREATION = "file_creation"
    FILE_MODIFICATION = "file_modification"
    REGISTRY_KEY_MODIFICATION = "registry_key_modification"
    SERVICE_CREATION = "service_creation"
    SCHEDULED_TASK = "scheduled_task"
    DEVICE_CONNECTION = "device_connection"

    # Network
    NETWORK_CONNECTION = "network_connection"
    DNS_QUERY = "dns_query"
    PROXY_LOG = "proxy_log"
    FIREWALL_LOG = "firewall_log"

    # Authentication
    AUTHENTICATION_LOG = "authentication_log"
    KERBEROS_LOG = "kerberos_log"

    # Applications and cloud
    EMAIL_LOG = "email_log"
    APPLICATION_LOG = "application_log"
    CLOUD_AUDIT_LOG = "cloud_audit_log"
    PACKAGE_MANAGER_LOG = "package_manager_log"


# (data_stream.dataset, event.category) emitted for each data source
DATA_SOURCE_DATASETS: dict[DataSource, tuple[str, str]] = {
    DataSource.PROCESS_CREATION: ("endpoint.events.process", "process"),
    DataSource.POWERSHELL_LOG: ("windows.powershell_operational", "process"),
    DataSource.FILE_CREATION: ("endpoint.events.file", "file"),
    DataSource.FILE_MODIFICATION: ("endpoint.events.file", "file"),
    DataSource.REGISTRY_KEY_MODIFICATION: ("endpoint.events.registry", "registry"),
    DataSource.SERVICE_CREATION: ("windows.system", "configuration"),
    DataSource.SCHEDULED_TASK: ("windows.system", "configuration"),
    DataSource.DEVICE_CONNECTION: ("endpoint.events.device", "host"),
    DataSource.NETWORK_CONNECTION: ("network_traffic.flow", "network"),
    DataSource.DNS_QUERY: ("network_traffic.dns", "network"),
    DataSource.PROXY_LOG: ("proxy.access", "web"),
    DataSource.FIREWALL_LOG: ("firewall.traffic", "network"),
    DataSource.AUTHENTICATION_LOG: ("windows.security", "authentication"),
    DataSource.KERBEROS_LOG: ("windows.security", "authentication"),
    DataSource.EMAIL_LOG: ("email.gateway", "email"),
    DataSource.APPLICATION_LOG: ("application.audit", "web"),
    DataSource.CLOUD_AUDIT_LOG: ("cloud.audit", "configuration"),
    DataSource.PACKAGE_MANAGER_LOG: ("package_manager.install", "package"),
}


@dataclass(frozen=True)
class Technique:
    """
    MITRE ATT&CK Technique definition.

    ``detection_name`` is the short analyst-facing label used in alert
    rule names, e.g. "Suspicious PowerShell Execution".
    """

    id: str  # e.g., "T1059.001"
    name: str
    tactics: tuple[Tactic, ...]
    data_sources: tuple[DataSource, ...]
    detection_name: str
    description: str = ""
    platforms: tuple[str, ...] = field(default=("windows", "linux", "macos"))

    @property
    def base_id(self) -> str:
        return base_technique_id(self.id)

    @property
    def primary_tactic(self) -> Tactic:
        return self.tactics[0]


def base_technique_id(technique_id: str) -> str:
    """Strip the sub-technique suffix: ``T1059.001`` -> ``T1059``."""
    return technique_id.split(".", 1)[0]


# =============================================================================
# Technique Library
# Organized by Tactic (Kill Chain Phase)
# =============================================================================

TECHNIQUE_LIBRARY: dict[str, Technique] = {
    # =========================================================================
    # INITIAL ACCESS
    # =========================================================================
    "T1566.001": Technique(
        id="T1566.001",
        name="Phishing: Spearphishing Attachment",
        tactics=(Tactic.INITIAL_ACCESS,),
        data_sources=(DataSource.EMAIL_LOG, DataSource.FILE_CREATION),
        detection_name="Spearphishing Attachment Delivered",
        description="Adversaries send emails with malicious attachments.",
    ),
    "T1190": Technique(
        id="T1190",
        name="Exploit Public-Facing Application",
        tactics=(Tactic.INITIAL_ACCESS,),
        data_sources=(DataSource.APPLICATION_LOG, DataSource.FIREWALL_LOG),
        detection_name="Public-Facing Application Exploitation",
        description="Adversaries exploit weaknesses in internet-facing services.",
    ),
    "T1133": Technique(
        id="T1133",
        name="External Remote Services",
        tactics=(Tactic.INITIAL_ACCESS, Tactic.PERSISTENCE),
        data_sources=(DataSource.AUTHENTICATION_LOG,),
        detection_name="Anomalous VPN Logon",
        description="Adversaries use VPN or other remote services to gain access.",
    ),
    "T1195.002": Technique(
        id="T1195.002",
        name="Compromise Software Supply Chain",
        tactics=(Tactic.INITIAL_ACCESS,),
        data_sources=(DataSource.PACKAGE_MANAGER_LOG, DataSource.FILE_CREATION),
        detection_name="Tampered Software Package Installed",
        description="Adversaries manipulate software before it reaches the consumer.",
    ),
    "T1078": Technique(
        id="T1078",
        name="Valid Accounts",
        tactics=(
            Tactic.INITIAL_ACCESS,
            Tactic.PERSISTENCE,
            Tactic.PRIVILEGE_ESCALATION,
            Tactic.DEFENSE_EVASION,
        ),
        data_sources=(DataSource.AUTHENTICATION_LOG,),
        detection_name="Valid Account Misuse",
        description="Adversaries log in with stolen but legitimate credentials.",
    ),
    # =========================================================================
    # EXECUTION
    # =========================================================================
    "T1059.001": Technique(
        id="T1059.001",
        name="Command and Scripting Interpreter: PowerShell",
        tactics=(Tactic.EXECUTION,),
        data_sources=(DataSource.POWERSHELL_LOG, DataSource.PROCESS_CREATION),
        detection_name="Suspicious PowerShell Execution",
        platforms=("windows",),
    ),
    "T1059.003": Technique(
        id="T1059.003",
        name="Command and Scripting Interpreter: Windows Command Shell",
        tactics=(Tactic.EXECUTION,),
        data_sources=(DataSource.PROCESS_CREATION,),
        detection_name="Suspicious Command Shell Execution",
        platforms=("windows",),
    ),
    "T1047": Technique(
        id="T1047",
        name="Windows Management Instrumentation",
        tactics=(Tactic.EXECUTION,),
        data_sources=(DataSource.PROCESS_CREATION, DataSource.NETWORK_CONNECTION),
        detection_name="Remote WMI Process Creation",
        platforms=("windows",),
    ),
    "T1204.002": Technique(
        id="T1204.002",
        name="User Execution: Malicious File",
        tactics=(Tactic.EXECUTION,),
        data_sources=(DataSource.PROCESS_CREATION, DataSource.FILE_CREATION),
        detection_name="Office Application Spawned Child Process",
    ),
    # =========================================================================
    # PERSISTENCE
    # =========================================================================
    "T1547.001": Technique(
        id="T1547.001",
        name="Boot or Logon Autostart Execution: Registry Run Keys",
        tactics=(Tactic.PERSISTENCE, Tactic.PRIVILEGE_ESCALATION),
        data_sources=(DataSource.REGISTRY_KEY_MODIFICATION,),
        detection_name="Registry Run Key Persistence",
        platforms=("windows",),
    ),
    "T1053.005": Technique(
        id="T1053.005",
        name="Scheduled Task/Job: Scheduled Task",
        tactics=(Tactic.EXECUTION, Tactic.PERSISTENCE),
        data_sources=(DataSource.SCHEDULED_TASK, DataSource.PROCESS_CREATION),
        detection_name="Suspicious Scheduled Task Created",
        platforms=("windows",),
    ),
    "T1543.003": Technique(
        id="T1543.003",
        name="Create or Modify System Process: Windows Service",
        tactics=(Tactic.PERSISTENCE, Tactic.PRIVILEGE_ESCALATION),
        data_sources=(DataSource.SERVICE_CREATION, DataSource.REGISTRY_KEY_MODIFICATION),
        detection_name="New Service Installed From Unusual Path",
        platforms=("windows",),
    ),
    # =========================================================================
    # PRIVILEGE ESCALATION / DEFENSE EVASION
    # =========================================================================
    "T1068": Technique(
        id="T1068",
        name="Exploitation for Privilege Escalation",
        tactics=(Tactic.PRIVILEGE_ESCALATION,),
        data_sources=(DataSource.PROCESS_CREATION,),
        detection_name="Privilege Escalation Exploit",
    ),
    "T1562.001": Technique(
        id="T1562.001",
        name="Impair Defenses: Disable or Modify Tools",
        tactics=(Tactic.DEFENSE_EVASION,),
        data_sources=(DataSource.PROCESS_CREATION, DataSource.REGISTRY_KEY_MODIFICATION),
        detection_name="Security Tool Tampering",
    ),
    "T1070.004": Technique(
        id="T1070.004",
        name="Indicator Removal: File Deletion",
        tactics=(Tactic.DEFENSE_EVASION,),
        data_sources=(DataSource.FILE_MODIFICATION, DataSource.PROCESS_CREATION),
        detection_name="Bulk Evidence File Deletion",
    ),
    # =========================================================================
    # CREDENTIAL ACCESS
    # =========================================================================
    "T1003.001": Technique(
        id="T1003.001",
        name="OS Credential Dumping: LSASS Memory",
        tactics=(Tactic.CREDENTIAL_ACCESS,),
        data_sources=(DataSource.PROCESS_CREATION, DataSource.FILE_CREATION),
        detection_name="LSASS Memory Credential Dumping",
        platforms=("windows",),
    ),
    "T1558.003": Technique(
        id="T1558.003",
        name="Steal or Forge Kerberos Tickets: Kerberoasting",
        tactics=(Tactic.CREDENTIAL_ACCESS,),
        data_sources=(DataSource.KERBEROS_LOG,),
        detection_name="Kerberoasting Service Ticket Requests",
        platforms=("windows",),
    ),
    "T1552.001": Technique(
        id="T1552.001",
        name="Unsecured Credentials: Credentials In Files",
        tactics=(Tactic.CREDENTIAL_ACCESS,),
        data_sources=(DataSource.PROCESS_CREATION, DataSource.FILE_CREATION),
        detection_name="Credential File Harvesting",
    ),
    # =========================================================================
    # DISCOVERY
    # =========================================================================
    "T1083": Technique(
        id="T1083",
        name="File and Directory Discovery",
        tactics=(Tactic.DISCOVERY,),
        data_sources=(DataSource.PROCESS_CREATION,),
        detection_name="File and Directory Enumeration",
    ),
    "T1057": Technique(
        id="T1057",
        name="Process Discovery",
        tactics=(Tactic.DISCOVERY,),
        data_sources=(DataSource.PROCESS_CREATION,),
        detection_name="Process Enumeration",
    ),
    "T1018": Technique(
        id="T1018",
        name="Remote System Discovery",
        tactics=(Tactic.DISCOVERY,),
        data_sources=(DataSource.PROCESS_CREATION, DataSource.NETWORK_CONNECTION),
        detection_name="Remote System Enumeration",
    ),
    "T1082": Technique(
        id="T1082",
        name="System Information Discovery",
        tactics=(Tactic.DISCOVERY,),
        data_sources=(DataSource.PROCESS_CREATION,),
        detection_name="System Information Enumeration",
    ),
    "T1135": Technique(
        id="T1135",
        name="Network Share Discovery",
        tactics=(Tactic.DISCOVERY,),
        data_sources=(DataSource.PROCESS_CREATION, DataSource.NETWORK_CONNECTION),
        detection_name="Network Share Enumeration",
    ),
    # =========================================================================
    # LATERAL MOVEMENT
    # =========================================================================
    "T1021.001": Technique(
        id="T1021.001",
        name="Remote Services: Remote Desktop Protocol",
        tactics=(Tactic.LATERAL_MOVEMENT,),
        data_sources=(DataSource.AUTHENTICATION_LOG, DataSource.NETWORK_CONNECTION),
        detection_name="Internal RDP Session",
        platforms=("windows",),
    ),
    "T1021.002": Technique(
        id="T1021.002",
        name="Remote Services: SMB/Windows Admin Shares",
        tactics=(Tactic.LATERAL_MOVEMENT,),
        data_sources=(DataSource.AUTHENTICATION_LOG, DataSource.NETWORK_CONNECTION),
        detection_name="Admin Share Access",
        platforms=("windows",),
    ),
    "T1021.004": Technique(
        id="T1021.004",
        name="Remote Services: SSH",
        tactics=(Tactic.LATERAL_MOVEMENT,),
        data_sources=(DataSource.AUTHENTICATION_LOG, DataSource.NETWORK_CONNECTION),
        detection_name="Internal SSH Pivot",
        platforms=("linux", "macos"),
    ),
    "T1550.002": Technique(
        id="T1550.002",
        name="Use Alternate Authentication Material: Pass the Hash",
        tactics=(Tactic.LATERAL_MOVEMENT, Tactic.DEFENSE_EVASION),
        data_sources=(DataSource.AUTHENTICATION_LOG,),
        detection_name="Pass-the-Hash Logon",
        platforms=("windows",),
    ),
    "T1570": Technique(
        id="T1570",
        name="Lateral Tool Transfer",
        tactics=(Tactic.LATERAL_MOVEMENT,),
        data_sources=(DataSource.FILE_CREATION, DataSource.NETWORK_CONNECTION),
        detection_name="Tool Transfer Over Admin Share",
    ),
    "T1210": Technique(
        id="T1210",
        name="Exploitation of Remote Services",
        tactics=(Tactic.LATERAL_MOVEMENT,),
        data_sources=(DataSource.NETWORK_CONNECTION, DataSource.FIREWALL_LOG),
        detection_name="Remote Service Exploitation",
    ),
    # =========================================================================
    # COLLECTION
    # =========================================================================
    "T1005": Technique(
        id="T1005",
        name="Data from Local System",
        tactics=(Tactic.COLLECTION,),
        data_sources=(DataSource.FILE_MODIFICATION, DataSource.PROCESS_CREATION),
        detection_name="Sensitive Local Data Access",
    ),
    "T1039": Technique(
        id="T1039",
        name="Data from Network Shared Drive",
        tactics=(Tactic.COLLECTION,),
        data_sources=(DataSource.FILE_MODIFICATION, DataSource.NETWORK_CONNECTION),
        detection_name="Mass File Share Access",
    ),
    "T1213": Technique(
        id="T1213",
        name="Data from Information Repositories",
        tactics=(Tactic.COLLECTION,),
        data_sources=(DataSource.APPLICATION_LOG,),
        detection_name="Bulk Document Repository Download",
    ),
    "T1074.001": Technique(
        id="T1074.001",
        name="Data Staged: Local Data Staging",
        tactics=(Tactic.COLLECTION,),
        data_sources=(DataSource.FILE_CREATION,),
        detection_name="Local Data Staging",
    ),
    "T1560.001": Technique(
        id="T1560.001",
        name="Archive Collected Data: Archive via Utility",
        tactics=(Tactic.COLLECTION,),
        data_sources=(DataSource.PROCESS_CREATION, DataSource.FILE_CREATION),
        detection_name="Archive Utility Staging",
    ),
    # =========================================================================
    # COMMAND AND CONTROL
    # =========================================================================
    "T1071.001": Technique(
        id="T1071.001",
        name="Application Layer Protocol: Web Protocols",
        tactics=(Tactic.COMMAND_AND_CONTROL,),
        data_sources=(DataSource.PROXY_LOG, DataSource.NETWORK_CONNECTION),
        detection_name="HTTP Beaconing",
    ),
    "T1105": Technique(
        id="T1105",
        name="Ingress Tool Transfer",
        tactics=(Tactic.COMMAND_AND_CONTROL,),
        data_sources=(DataSource.PROXY_LOG, DataSource.FILE_CREATION),
        detection_name="Executable Download",
    ),
    # =========================================================================
    # EXFILTRATION
    # =========================================================================
    "T1041": Technique(
        id="T1041",
        name="Exfiltration Over C2 Channel",
        tactics=(Tactic.EXFILTRATION,),
        data_sources=(DataSource.NETWORK_CONNECTION, DataSource.PROXY_LOG),
        detection_name="Large Outbound Transfer Over C2",
    ),
    "T1567.002": Technique(
        id="T1567.002",
        name="Exfiltration to Cloud Storage",
        tactics=(Tactic.EXFILTRATION,),
        data_sources=(DataSource.PROXY_LOG, DataSource.CLOUD_AUDIT_LOG),
        detection_name="Upload to Cloud Storage",
    ),
    "T1052.001": Technique(
        id="T1052.001",
        name="Exfiltration over USB",
        tactics=(Tactic.EXFILTRATION,),
        data_sources=(DataSource.DEVICE_CONNECTION, DataSource.FILE_CREATION),
        detection_name="Removable Media Exfiltration",
    ),
    # =========================================================================
    # IMPACT
    # =========================================================================
    "T1490": Technique(
        id="T1490",
        name="Inhibit System Recovery",
        tactics=(Tactic.IMPACT,),
        data_sources=(DataSource.PROCESS_CREATION,),
        detection_name="Shadow Copy Deletion",
    ),
    "T1486": Technique(
        id="T1486",
        name="Data Encrypted for Impact",
        tactics=(Tactic.IMPACT,),
        data_sources=(DataSource.FILE_MODIFICATION, DataSource.PROCESS_CREATION),
        detection_name="Ransomware File Encryption",
    ),
}


def get_technique_by_id(technique_id: str) -> Technique | None:
    """
    Get a technique by its ATT&CK ID.

    A bare parent ID such as ``T1059`` resolves to the first registered
    sub-technique of that parent.
    """
    technique = TECHNIQUE_LIBRARY.get(technique_id)
    if technique is not None:
        return technique
    parent = base_technique_id(technique_id)
    for candidate in TECHNIQUE_LIBRARY.values():
        if candidate.base_id == parent:
            return candidate
    return None


def get_techniques_by_tactic(tactic: Tactic) -> list[Technique]:
    """Get all techniques for a specific tactic."""
    return [t for t in TECHNIQUE_LIBRARY.values() if tactic in t.tactics]


def dataset_for(data_source: DataSource) -> tuple[str, str]:
    """Return the ``(data_stream.dataset, event.category)`` pair for a source."""
    return DATA_SOURCE_DATASETS.get(data_source, ("generic.log", "host"))
