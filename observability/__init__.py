"""Observability package for the grounding service."""

from .logging import setup_logging, get_logger, get_structured_logger, StructuredLogger
from .prometheus_metrics import (
    grounding_registry,
    ingestions_running,
    ingestion_runs,
    record_filter_outcome,
    record_batch_insert,
    record_search,
    get_metrics_text,
    CONTENT_TYPE_LATEST
)

__all__ = [
    'setup_logging',
    'get_logger',
    'get_structured_logger',
    'StructuredLogger',
    'grounding_registry',
    'ingestions_running',
    'ingestion_runs',
    'record_filter_outcome',
    'record_batch_insert',
    'record_search',
    'get_metrics_text',
    'CONTENT_TYPE_LATEST'
]
