"""PostgreSQL-backed record store for honey batches."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Tuple

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)

TABLE = "verify_honey"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id SERIAL PRIMARY KEY,
    batch_id TEXT UNIQUE NOT NULL,
    beekeeper_name TEXT NOT NULL,
    harvest_date DATE,
    flower_type TEXT NOT NULL,
    description TEXT DEFAULT '',
    region TEXT NOT NULL,
    qr_code_url TEXT,
    certificate_hash TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

COLUMNS = (
    "batch_id",
    "beekeeper_name",
    "harvest_date",
    "flower_type",
    "description",
    "region",
    "qr_code_url",
    "certificate_hash",
)

UPSERT_SQL = f"""
INSERT INTO {TABLE}
    ({", ".join(COLUMNS)}, created_at)
VALUES
    (%s, %s, %s, %s, %s, %s, %s, %s, NOW())
ON CONFLICT (batch_id)
DO UPDATE SET
    beekeeper_name = EXCLUDED.beekeeper_name,
    harvest_date = EXCLUDED.harvest_date,
    flower_type = EXCLUDED.flower_type,
    description = EXCLUDED.description,
    region = EXCLUDED.region,
    qr_code_url = EXCLUDED.qr_code_url,
    certificate_hash = EXCLUDED.certificate_hash,
    created_at = NOW()
RETURNING *
"""

INSERT_IF_ABSENT_SQL = f"""
INSERT INTO {TABLE}
    ({", ".join(COLUMNS)}, created_at)
VALUES
    (%s, %s, %s, %s, %s, %s, %s, %s, NOW())
ON CONFLICT (batch_id) DO NOTHING
RETURNING batch_id
"""


class RecordStoreError(Exception):
    """Raised when the database cannot be reached or rejects a statement."""


def build_filters(
    flower_type: Optional[str] = None,
    region: Optional[str] = None,
    search: Optional[str] = None,
) -> Tuple[str, List[Any]]:
    """WHERE clause and parameters shared by the list and count queries."""
    clauses = ["1=1"]
    params: List[Any] = []
    if flower_type:
        clauses.append("flower_type = %s")
        params.append(flower_type)
    if region:
        clauses.append("region = %s")
        params.append(region)
    if search:
        clauses.append("(batch_id ILIKE %s OR beekeeper_name ILIKE %s OR description ILIKE %s)")
        pattern = f"%{search}%"
        params.extend([pattern, pattern, pattern])
    return " AND ".join(clauses), params


class HoneyBatchStore:
    """Parameterized SQL over the ``verify_honey`` table.

    Every call borrows one pooled connection and hands it back, committing on
    success and rolling back on error.
    """

    def __init__(self, connection_pool: pool.AbstractConnectionPool):
        self._pool = connection_pool

    @classmethod
    def from_settings(cls, settings) -> "HoneyBatchStore":
        logger.info(
            f"Initialising record store pool (min={settings.DB_POOL_MIN}, max={settings.DB_POOL_MAX}) "
            f"for {settings.DB_USER}@{settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}"
        )
        try:
            connection_pool = pool.SimpleConnectionPool(
                settings.DB_POOL_MIN,
                settings.DB_POOL_MAX,
                host=settings.DB_HOST,
                port=settings.DB_PORT,
                dbname=settings.DB_NAME,
                user=settings.DB_USER,
                password=settings.DB_PASS,
            )
        except psycopg2.Error as exc:
            raise RecordStoreError(f"Could not connect to the record store: {exc}") from exc
        return cls(connection_pool)

    def close(self) -> None:
        logger.info("Closing record store pool")
        self._pool.closeall()

    @contextmanager
    def _cursor(self) -> Generator[RealDictCursor, None, None]:
        try:
            conn = self._pool.getconn()
        except psycopg2.Error as exc:
            raise RecordStoreError(str(exc)) from exc
        try:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cursor
                conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                raise RecordStoreError(str(exc)) from exc
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()
        finally:
            self._pool.putconn(conn)

    # ------------------------------------------------------------------
    # Schema / health
    # ------------------------------------------------------------------
    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL)
        logger.info(f"Record store table {TABLE} is ready")

    def check_connection(self) -> bool:
        try:
            with self._cursor() as cur:
                cur.execute("SELECT 1")
                return cur.fetchone() is not None
        except RecordStoreError as exc:
            logger.error(f"Record store connection check failed: {exc}")
            return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, batch_id: str) -> Optional[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT * FROM {TABLE} WHERE batch_id = %s ORDER BY created_at DESC LIMIT 1",
                (batch_id,),
            )
            row = cur.fetchone()
        return dict(row) if row else None

    def list_batches(
        self,
        flower_type: Optional[str] = None,
        region: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """One page of rows (newest first) and the total matching the filters."""
        where, params = build_filters(flower_type, region, search)
        with self._cursor() as cur:
            cur.execute(
                f"SELECT * FROM {TABLE} WHERE {where} ORDER BY created_at DESC LIMIT %s OFFSET %s",
                tuple(params + [limit, offset]),
            )
            rows = [dict(row) for row in cur.fetchall()]
            cur.execute(f"SELECT COUNT(*) AS count FROM {TABLE} WHERE {where}", tuple(params))
            count_row = cur.fetchone()
        total = int(count_row["count"]) if count_row else 0
        return rows, total

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    @staticmethod
    def _values(record: Dict[str, Any]) -> Tuple[Any, ...]:
        return (
            record["batch_id"],
            record["beekeeper_name"],
            record.get("harvest_date") or None,
            record["flower_type"],
            record.get("description") or "",
            record["region"],
            record.get("qr_code_url"),
            record.get("certificate_hash"),
        )

    def upsert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or overwrite the row for ``record['batch_id']``; last write wins."""
        with self._cursor() as cur:
            cur.execute(UPSERT_SQL, self._values(record))
            row = cur.fetchone()
        logger.info(f"Stored batch {record['batch_id']}")
        return dict(row)

    def insert_if_absent(self, record: Dict[str, Any]) -> bool:
        """Insert unless the batch id already exists; True when a row was written."""
        with self._cursor() as cur:
            cur.execute(INSERT_IF_ABSENT_SQL, self._values(record))
            row = cur.fetchone()
        return row is not None
