"""UniProt datasource: ingestion orchestration and namespace-scoped queries."""

import asyncio
import logging
import time
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from config.settings import Settings, get_settings
from indexer.sqlite_store import SQLiteStore
from observability.logging import get_structured_logger
from observability.prometheus_metrics import (
    ingestion_runs,
    ingestions_running,
    record_batch_insert,
    record_filter_outcome
)
from pipelines.dispatcher import BatchDispatcher
from pipelines.organisms import OrganismFilter
from pipelines.records import ProteinRecord
from pipelines.uniprot_builder import PROTEIN_TYPE, UNIPROT_NS, UniprotRecordBuilder
from pipelines.xml_tokenizer import XmlTokenizer
from .download import Downloader

logger = logging.getLogger(__name__)


@dataclass
class IngestionStats:
    """Outcome of one ingestion run."""
    namespace: str
    source_path: str
    records_built: int = 0
    records_accepted: int = 0
    batches_inserted: int = 0
    records_inserted: int = 0
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UniprotDatasource:
    """Ingests the UniProt XML dump into the ``uniprot`` namespace."""

    namespace = UNIPROT_NS
    record_type = PROTEIN_TYPE

    def __init__(self,
                 store: SQLiteStore,
                 settings: Optional[Settings] = None,
                 downloader: Optional[Downloader] = None,
                 organism_filter: Optional[OrganismFilter] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.downloader = downloader or Downloader(
            self.settings.input_path,
            request_timeout=self.settings.download_timeout,
            max_retries=self.settings.download_max_retries
        )
        self.organism_filter = organism_filter or OrganismFilter(self.settings.supported_organisms)
        self.log = get_structured_logger(__name__, namespace=self.namespace)

    @property
    def source_path(self) -> Path:
        return Path(self.settings.input_path) / self.settings.uniprot_file_name

    async def update(self, force: bool = False) -> IngestionStats:
        """Download (unless cached) and ingest the UniProt dump.

        Args:
            force: Re-download even when a cached copy exists
        """
        path = await self.downloader.download(
            self.settings.uniprot_url,
            self.settings.uniprot_file_name,
            force
        )
        return await self.update_from_file(path)

    async def update_from_file(self, path: Union[str, Path]) -> IngestionStats:
        """Rebuild the namespace from a local dump.

        The namespace is cleared and automatic refresh disabled before
        parsing; afterwards refresh is re-enabled and one manual refresh makes
        the new records searchable.
        """
        stats = IngestionStats(namespace=self.namespace, source_path=str(path))
        start_time = time.time()

        ingestions_running.labels(namespace=self.namespace).inc()
        self.log.info(f"Processing UniProt data from {path}")

        try:
            await self.store.ensure_index()
            await self.store.clear_namespace(self.namespace)
            await self.store.disable_auto_refresh()

            await self._ingest(path, stats)

            self.log.info("Updating index with processed UniProt data")
            await self.store.enable_auto_refresh()
            await self.store.refresh_index()
        except Exception:
            ingestion_runs.labels(namespace=self.namespace, status='failed').inc()
            self.log.exception("UniProt ingestion failed", source_path=str(path))
            raise
        finally:
            ingestions_running.labels(namespace=self.namespace).dec()

        stats.duration = time.time() - start_time
        ingestion_runs.labels(namespace=self.namespace, status='success').inc()
        self.log.info(
            "Finished updating UniProt data",
            records_built=stats.records_built,
            records_accepted=stats.records_accepted,
            batches=stats.batches_inserted,
            duration=round(stats.duration, 2)
        )
        return stats

    async def _ingest(self, path: Union[str, Path], stats: IngestionStats):
        dispatcher = BatchDispatcher(
            self._insert_batch,
            batch_size=self.settings.batch_size,
            max_pending=self.settings.max_pending_batches
        )
        builder = UniprotRecordBuilder(
            dispatcher,
            self._accept,
            namespace=self.namespace,
            record_type=self.record_type
        )
        tokenizer = XmlTokenizer(self.settings.xml_chunk_size)

        try:
            await tokenizer.run(path, builder, before_chunk=dispatcher.wait_for_capacity)
        except (Exception, asyncio.CancelledError):
            await dispatcher.abort()
            raise
        finally:
            stats.records_built = builder.records_built
            stats.records_accepted = builder.records_accepted
            stats.batches_inserted = dispatcher.batches_delivered
            stats.records_inserted = dispatcher.records_delivered

    def _accept(self, record: ProteinRecord) -> bool:
        if record.id is None:
            # no accession, nothing to key the record by
            logger.warning(f"Skipping {self.namespace} entry without accession (name={record.name})")
            record_filter_outcome(self.namespace, False, reason='missing_id')
            return False

        accepted = self.organism_filter.accept(record)
        record_filter_outcome(self.namespace, accepted)
        return accepted

    async def _insert_batch(self, batch: List[ProteinRecord]):
        start_time = time.time()
        try:
            await self.store.insert_records(batch, refresh_after=False)
        except Exception:
            record_batch_insert(self.namespace, len(batch), time.time() - start_time, status='error')
            raise
        record_batch_insert(self.namespace, len(batch), time.time() - start_time)

    async def clear(self) -> int:
        """Delete every record of the namespace, then refresh."""
        deleted = await self.store.clear_namespace(self.namespace)
        await self.store.refresh_index()
        return deleted

    async def search(self, text: str, from_: int = 0, size: int = 10,
                     organism_counts: Optional[Dict[str, int]] = None) -> List[Dict[str, Any]]:
        """Search the namespace.

        Args:
            text: Free search text
            from_: Offset of the first result
            size: Maximum number of results
            organism_counts: Optional organism id to weight map; records of
                more heavily weighted organisms rank first
        """
        return await self.store.search(text, self.namespace, from_, size, organism_counts)

    async def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(record_id, self.namespace)
