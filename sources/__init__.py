"""Sources package for the grounding service.

Provides the datasources that download, ingest and query each namespace.
"""

from .download import Downloader, download
from .uniprot import UniprotDatasource, IngestionStats
from .registry import AggregateDatasource, DatasourceRegistry, AGGREGATE_NS

__all__ = [
    'Downloader',
    'download',
    'UniprotDatasource',
    'IngestionStats',
    'AggregateDatasource',
    'DatasourceRegistry',
    'AGGREGATE_NS'
]
