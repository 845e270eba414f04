"""
Output batches for simulated campaign data.

Logs are routed to one data stream per dataset
(``logs-<dataset>-<namespace>``) and alerts to the security alerts index
of the namespace (``.alerts-security.alerts-<namespace>``). Durable
storage is the sink's concern; ``JsonlBatchSink`` writes each stream to a
local JSON-lines file.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Protocol

from campaign_forge.logging_config import LogEventType
from campaign_forge.simulation.correlation import cluster_fields, strongest_cluster_by_event
from campaign_forge.simulation.models import CampaignResult

logger = logging.getLogger(__name__)


def log_stream(dataset: str, namespace: str) -> str:
    return f"logs-{dataset}-{namespace}"


def alert_stream(namespace: str) -> str:
    return f".alerts-security.alerts-{namespace}"


@dataclass(frozen=True)
class Batch:
    """Documents bound for a single stream."""

    stream: str
    kind: Literal["logs", "alerts"]
    namespace: str
    documents: tuple[dict[str, Any], ...]
    correlation_ids: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.documents)


def build_batches(result: CampaignResult, namespace: str | None = None) -> list[Batch]:
    """
    Group a campaign result into output batches.

    Returns one log batch per dataset (campaign events included) followed
    by exactly one alert batch, which may be empty. Logs matched by a
    correlation cluster carry its rule id, name and confidence.
    """
    namespace = namespace or result.namespace
    by_dataset: dict[str, list[dict[str, Any]]] = {}
    clusters = strongest_cluster_by_event(result.correlation_clusters)
    correlation: dict[str, dict[str, None]] = {}

    for stage_logs in result.stage_logs:
        for event in stage_logs.logs:
            document = event.to_document()
            document["data_stream.namespace"] = namespace
            if event.id in clusters:
                document.update(cluster_fields(clusters[event.id]))
            by_dataset.setdefault(event.dataset, []).append(document)
            correlation.setdefault(event.dataset, {})[event.correlation_id] = None

    for event in result.campaign_events:
        dataset = event.get("data_stream.dataset", "campaign.events")
        by_dataset.setdefault(dataset, []).append({**event, "data_stream.namespace": namespace})
        correlation.setdefault(dataset, {})[event["campaign.correlation.id"]] = None

    batches = [
        Batch(
            stream=log_stream(dataset, namespace),
            kind="logs",
            namespace=namespace,
            documents=tuple(documents),
            correlation_ids=tuple(correlation[dataset]),
        )
        for dataset, documents in by_dataset.items()
    ]

    alert_docs = []
    for alert in result.detected_alerts:
        document = dict(alert.document)
        document["kibana.space_ids"] = [namespace]
        alert_docs.append(document)
    batches.append(Batch(
        stream=alert_stream(namespace),
        kind="alerts",
        namespace=namespace,
        documents=tuple(alert_docs),
        correlation_ids=tuple(dict.fromkeys(a.correlation_id for a in result.detected_alerts)),
    ))
    return batches


class BatchSink(Protocol):
    """Destination for output batches (Elasticsearch, Splunk HEC, files...)."""

    def write(self, batch: Batch) -> int:
        """Write a batch and return the number of documents written."""
        ...


class JsonlBatchSink:
    """Writes each stream to ``<directory>/<stream>.jsonl``."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def path_for(self, stream: str) -> Path:
        return self.directory / f"{stream.lstrip('.')}.jsonl"

    def write(self, batch: Batch) -> int:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(batch.stream)
        with path.open("a", encoding="utf-8") as handle:
            for document in batch.documents:
                handle.write(json.dumps(document, default=str) + "\n")
        return len(batch.documents)


def write_batches(result: CampaignResult, sink: BatchSink, namespace: str | None = None) -> int:
    """Build and write every batch for a result. Returns total documents written."""
    total = 0
    for batch in build_batches(result, namespace):
        written = sink.write(batch)
        total += written
        logger.info(
            f"Wrote {written} {batch.kind} documents to {batch.stream}",
            extra={"event_type": LogEventType.BATCH_WRITTEN.value},
        )
    return total
