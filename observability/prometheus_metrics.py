"""Prometheus metrics for ingestion and search."""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry
import logging

logger = logging.getLogger(__name__)

# Dedicated registry so tests and multiple apps don't collide on the default one
grounding_registry = CollectorRegistry()

records_parsed = Counter(
    'grounding_records_parsed_total',
    'Candidate records built from source documents',
    ['namespace'],
    registry=grounding_registry
)

records_filtered = Counter(
    'grounding_records_filtered_total',
    'Candidate records by organism filter outcome',
    ['namespace', 'outcome'],
    registry=grounding_registry
)

batches_inserted = Counter(
    'grounding_batches_inserted_total',
    'Record batches written to the store',
    ['namespace', 'status'],
    registry=grounding_registry
)

records_inserted = Counter(
    'grounding_records_inserted_total',
    'Records written to the store',
    ['namespace'],
    registry=grounding_registry
)

batch_insert_duration = Histogram(
    'grounding_batch_insert_duration_seconds',
    'Batch insert duration in seconds',
    ['namespace'],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=grounding_registry
)

ingestions_running = Gauge(
    'grounding_ingestions_running',
    'Ingestion runs currently in progress',
    ['namespace'],
    registry=grounding_registry
)

ingestion_runs = Counter(
    'grounding_ingestion_runs_total',
    'Completed ingestion runs',
    ['namespace', 'status'],
    registry=grounding_registry
)

search_requests = Counter(
    'grounding_search_requests_total',
    'Total number of search requests',
    ['namespace', 'status'],
    registry=grounding_registry
)

search_duration = Histogram(
    'grounding_search_duration_seconds',
    'Search request duration in seconds',
    ['namespace'],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0],
    registry=grounding_registry
)


def record_filter_outcome(namespace: str, accepted: bool, reason: str = 'rejected'):
    records_parsed.labels(namespace=namespace).inc()
    records_filtered.labels(namespace=namespace, outcome='accepted' if accepted else reason).inc()


def record_batch_insert(namespace: str, size: int, duration: float, status: str = 'success'):
    """Record one batch insert."""
    batches_inserted.labels(namespace=namespace, status=status).inc()
    if status == 'success':
        records_inserted.labels(namespace=namespace).inc(size)
        batch_insert_duration.labels(namespace=namespace).observe(duration)


def record_search(namespace: str, duration: float, status: str = 'success'):
    search_requests.labels(namespace=namespace, status=status).inc()
    search_duration.labels(namespace=namespace).observe(duration)


def get_metrics_text() -> bytes:
    """Prometheus text exposition of the grounding registry."""
    return generate_latest(grounding_registry)


__all__ = [
    'grounding_registry',
    'ingestions_running',
    'ingestion_runs',
    'record_filter_outcome',
    'record_batch_insert',
    'record_search',
    'get_metrics_text',
    'CONTENT_TYPE_LATEST'
]
