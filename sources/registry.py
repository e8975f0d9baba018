"""Namespace to datasource mapping, plus cross-namespace search."""

import logging
from typing import Any, Dict, List, Optional

from config.settings import Settings
from indexer.sqlite_store import SQLiteStore
from .uniprot import UniprotDatasource

logger = logging.getLogger(__name__)

AGGREGATE_NS = 'aggregate'


class AggregateDatasource:
    """Searches every namespace at once."""

    def __init__(self, store: SQLiteStore, datasources: Dict[str, Any]):
        self.store = store
        self.datasources = datasources

    async def search(self, text: str, from_: int = 0, size: int = 10,
                     organism_counts: Optional[Dict[str, int]] = None) -> List[Dict[str, Any]]:
        return await self.store.search(text, None, from_, size, organism_counts)

    async def get(self, namespace: str, record_id: str) -> Optional[Dict[str, Any]]:
        datasource = self.datasources.get(namespace)
        if datasource is None:
            return None
        return await datasource.get(record_id)


class DatasourceRegistry:
    """Owns one datasource per namespace."""

    def __init__(self, store: SQLiteStore, settings: Optional[Settings] = None, **datasources):
        self.store = store
        self.datasources: Dict[str, Any] = {
            UniprotDatasource.namespace: UniprotDatasource(store, settings)
        }
        self.datasources.update(datasources)
        self.aggregate = AggregateDatasource(store, self.datasources)

    @property
    def namespaces(self) -> List[str]:
        return sorted(self.datasources)

    def get(self, namespace: Optional[str]):
        """Datasource for a namespace; None or ``aggregate`` selects all."""
        if namespace is None or namespace == AGGREGATE_NS:
            return self.aggregate
        return self.datasources.get(namespace)
