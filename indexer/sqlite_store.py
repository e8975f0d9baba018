"""SQLite record store for the grounding service.

Records live in a plain ``records`` table keyed by (namespace, id); names are
searchable through an FTS5 table sharing the record rowid. Mirroring a search
engine's refresh cycle, freshly inserted records only become searchable once
their FTS rows are written: immediately while automatic refresh is enabled,
otherwise at the next ``refresh_index()``.
"""

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from pipelines.errors import StoreError
from pipelines.records import ProteinRecord

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    namespace TEXT NOT NULL,
    id TEXT NOT NULL,
    type TEXT,
    name TEXT,
    organism TEXT,
    protein_names TEXT,
    gene_names TEXT,
    document TEXT NOT NULL,
    is_searchable INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (namespace, id)
);

CREATE INDEX IF NOT EXISTS idx_records_searchable ON records(is_searchable);
CREATE INDEX IF NOT EXISTS idx_records_organism ON records(organism);

CREATE VIRTUAL TABLE IF NOT EXISTS records_fts USING fts5(
    accession,
    name,
    protein_names,
    gene_names,
    tokenize = 'unicode61'
);

CREATE TABLE IF NOT EXISTS index_settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

AUTO_REFRESH_KEY = 'auto_refresh'

_TOKEN = re.compile(r'[^\W_]+', re.UNICODE)


def build_match_query(text: str) -> Optional[str]:
    """Turn free text into an FTS5 prefix query.

    Every token is lower-cased and quoted, so search is case-insensitive and
    FTS syntax in user input is inert. Returns None for blank input.
    """
    tokens = _TOKEN.findall(text.lower()) if text else []
    if not tokens:
        return None
    return ' '.join(f'"{token}"*' for token in tokens)


def _organism_weight(organism_counts: Optional[Dict[str, int]]):
    """SQL expression (and its parameters) giving each record's organism weight."""
    if not organism_counts:
        return "0", []

    cases = []
    params: List[Any] = []
    for org_id, count in organism_counts.items():
        cases.append("WHEN ? THEN ?")
        params.extend([str(org_id), int(count)])
    return f"CASE r.organism {' '.join(cases)} ELSE 0 END", params


@contextmanager
def _store_errors(operation: str):
    try:
        yield
    except sqlite3.Error as e:
        logger.error(f"Store operation '{operation}' failed: {e}")
        raise StoreError(f"{operation} failed: {e}", operation=operation) from e


class SQLiteStore:
    """SQLite-backed index of grounding records."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        self.conn: Optional[sqlite3.Connection] = None

    async def initialize(self):
        """Open the connection; the index itself is created by ensure_index."""
        with _store_errors('initialize'):
            if self.db_path != ':memory:':
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
        logger.info(f"SQLite store initialized: {self.db_path}")

    async def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("SQLite store closed")

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise StoreError("Store not initialized. Call initialize() first.")
        return self.conn

    def _index_exists(self) -> bool:
        cursor = self._connection().execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='records'"
        )
        return cursor.fetchone() is not None

    # Index lifecycle

    async def exists(self) -> bool:
        with _store_errors('exists'):
            return self._index_exists()

    async def ensure_index(self):
        """Create the index tables if absent."""
        with _store_errors('ensure_index'):
            conn = self._connection()
            created = not self._index_exists()
            conn.executescript(SCHEMA)
            conn.execute(
                "INSERT OR IGNORE INTO index_settings (key, value) VALUES (?, ?)",
                (AUTO_REFRESH_KEY, '1')
            )
            conn.commit()
        if created:
            logger.info("Created records index")

    async def delete_index(self):
        with _store_errors('delete_index'):
            conn = self._connection()
            conn.executescript(
                """
                DROP TABLE IF EXISTS records_fts;
                DROP TABLE IF EXISTS records;
                DROP TABLE IF EXISTS index_settings;
                """
            )
            conn.commit()
        logger.info("Deleted records index")

    # Refresh control

    def _auto_refresh(self) -> bool:
        row = self._connection().execute(
            "SELECT value FROM index_settings WHERE key = ?", (AUTO_REFRESH_KEY,)
        ).fetchone()
        return row is None or row['value'] == '1'

    def _set_auto_refresh(self, enabled: bool):
        conn = self._connection()
        conn.execute(
            "INSERT OR REPLACE INTO index_settings (key, value) VALUES (?, ?)",
            (AUTO_REFRESH_KEY, '1' if enabled else '0')
        )
        conn.commit()

    async def disable_auto_refresh(self):
        with _store_errors('disable_auto_refresh'):
            self._set_auto_refresh(False)
        logger.debug("Automatic refresh disabled")

    async def enable_auto_refresh(self):
        with _store_errors('enable_auto_refresh'):
            self._set_auto_refresh(True)
        logger.debug("Automatic refresh enabled")

    async def is_auto_refresh_enabled(self) -> bool:
        with _store_errors('is_auto_refresh_enabled'):
            return self._auto_refresh()

    def _write_pending_fts_rows(self) -> int:
        conn = self._connection()
        cursor = conn.execute(
            """
            INSERT INTO records_fts (rowid, accession, name, protein_names, gene_names)
            SELECT rowid, id, name, protein_names, gene_names
            FROM records WHERE is_searchable = 0
            """
        )
        made_searchable = cursor.rowcount
        conn.execute("UPDATE records SET is_searchable = 1 WHERE is_searchable = 0")
        return made_searchable

    async def refresh_index(self) -> int:
        """Make every stored record searchable.

        Returns:
            Number of records that became searchable
        """
        with _store_errors('refresh_index'):
            if not self._index_exists():
                logger.debug("Refresh skipped: index does not exist")
                return 0
            made_searchable = self._write_pending_fts_rows()
            self._connection().commit()
        logger.debug(f"Index refreshed: {made_searchable} records made searchable")
        return made_searchable

    # Writes

    async def insert_records(self,
                             records: Iterable[Union[ProteinRecord, Dict[str, Any]]],
                             refresh_after: bool = False) -> int:
        """Upsert a batch of records.

        Args:
            records: ProteinRecord instances or their dictionary form
            refresh_after: Make the whole index searchable after the write
                even when automatic refresh is disabled

        Returns:
            Number of records written
        """
        documents = [r.to_dict() if isinstance(r, ProteinRecord) else dict(r) for r in records]
        if not documents:
            return 0

        for doc in documents:
            if not doc.get('id') or not doc.get('namespace'):
                raise StoreError("Records need an id and a namespace", operation='insert_records')

        with _store_errors('insert_records'):
            conn = self._connection()
            try:
                for doc in documents:
                    conn.execute(
                        """
                        INSERT INTO records (namespace, id, type, name, organism,
                                             protein_names, gene_names, document, is_searchable)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)
                        ON CONFLICT(namespace, id) DO UPDATE SET
                            type = excluded.type,
                            name = excluded.name,
                            organism = excluded.organism,
                            protein_names = excluded.protein_names,
                            gene_names = excluded.gene_names,
                            document = excluded.document,
                            is_searchable = 0
                        """,
                        (
                            doc['namespace'],
                            doc['id'],
                            doc.get('type'),
                            doc.get('name'),
                            doc.get('organism'),
                            '\n'.join(doc.get('proteinNames') or []),
                            '\n'.join(doc.get('geneNames') or []),
                            json.dumps(doc)
                        )
                    )
                    row = conn.execute(
                        "SELECT rowid FROM records WHERE namespace = ? AND id = ?",
                        (doc['namespace'], doc['id'])
                    ).fetchone()
                    # an upsert keeps the rowid, so a stale FTS row may exist
                    conn.execute("DELETE FROM records_fts WHERE rowid = ?", (row[0],))

                if refresh_after or self._auto_refresh():
                    self._write_pending_fts_rows()

                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

        return len(documents)

    async def clear_namespace(self, namespace: str) -> int:
        """Delete every record of a namespace.

        Returns:
            Number of records deleted
        """
        with _store_errors('clear_namespace'):
            if not self._index_exists():
                return 0
            conn = self._connection()
            conn.execute(
                "DELETE FROM records_fts WHERE rowid IN "
                "(SELECT rowid FROM records WHERE namespace = ?)",
                (namespace,)
            )
            cursor = conn.execute("DELETE FROM records WHERE namespace = ?", (namespace,))
            deleted = cursor.rowcount
            conn.commit()

        logger.info(f"Deleted {deleted} records from namespace '{namespace}'")
        return deleted

    # Reads

    async def search(self, query: str, namespace: Optional[str] = None,
                     from_: int = 0, size: int = 10,
                     organism_counts: Optional[Dict[str, int]] = None) -> List[Dict[str, Any]]:
        """Case-insensitive prefix search over record names.

        Args:
            query: Free search text
            namespace: Restrict to one namespace; None searches all of them
            from_: Offset of the first result
            size: Maximum number of results
            organism_counts: Optional organism id to weight map; matches are
                ordered by their organism's weight first, then by relevance
        """
        match = build_match_query(query)
        if match is None or size <= 0:
            return []

        weight_sql, weight_params = _organism_weight(organism_counts)

        conditions = ["records_fts MATCH ?"]
        params: List[Any] = weight_params + [match]
        if namespace is not None:
            conditions.append("r.namespace = ?")
            params.append(namespace)
        params.extend([size, max(from_, 0)])

        with _store_errors('search'):
            if not self._index_exists():
                return []
            cursor = self._connection().execute(
                f"""
                SELECT r.document, bm25(records_fts) AS score, {weight_sql} AS weight
                FROM records_fts
                JOIN records r ON r.rowid = records_fts.rowid
                WHERE {' AND '.join(conditions)}
                ORDER BY weight DESC, score, r.id
                LIMIT ? OFFSET ?
                """,
                params
            )
            rows = cursor.fetchall()

        return [json.loads(row['document']) for row in rows]

    async def get(self, record_id: str, namespace: str) -> Optional[Dict[str, Any]]:
        with _store_errors('get'):
            if not self._index_exists():
                return None
            row = self._connection().execute(
                "SELECT document FROM records WHERE namespace = ? AND id = ?",
                (namespace, record_id)
            ).fetchone()
        return json.loads(row['document']) if row else None

    async def count(self, namespace: Optional[str] = None) -> int:
        with _store_errors('count'):
            if not self._index_exists():
                return 0
            if namespace is None:
                row = self._connection().execute("SELECT COUNT(*) FROM records").fetchone()
            else:
                row = self._connection().execute(
                    "SELECT COUNT(*) FROM records WHERE namespace = ?", (namespace,)
                ).fetchone()
        return row[0]

    async def get_stats(self) -> Dict[str, Any]:
        """Per-namespace record counts for health reporting."""
        with _store_errors('get_stats'):
            if not self._index_exists():
                return {'index_exists': False, 'namespaces': {}}
            conn = self._connection()
            rows = conn.execute(
                "SELECT namespace, COUNT(*) AS total, SUM(is_searchable) AS searchable "
                "FROM records GROUP BY namespace"
            ).fetchall()
            return {
                'index_exists': True,
                'auto_refresh': self._auto_refresh(),
                'namespaces': {
                    row['namespace']: {'count': row['total'], 'searchable': row['searchable'] or 0}
                    for row in rows
                }
            }
