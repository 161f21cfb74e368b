from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class Database:
    """PostgreSQL access for the prediction store (psycopg 3).

    Long-running processes (the API and the evaluation loop) use a
    connection pool; one-shot CLI commands can ask for a single connection.
    """

    def __init__(
        self,
        dsn: str,
        *,
        use_pool: bool = True,
        min_size: int = 1,
        max_size: int = 8,
    ) -> None:
        self._dsn = dsn
        self._use_pool = use_pool
        self._min_size = min_size
        self._max_size = max_size
        self._pool: ConnectionPool | None = None
        self._conn: psycopg.Connection | None = None

    def connect(self) -> None:
        if self._use_pool:
            self._pool = ConnectionPool(
                self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
                kwargs={"row_factory": dict_row},
            )
            self._pool.wait()
            logger.info(
                "Connection pool established (min=%d, max=%d)",
                self._min_size, self._max_size,
            )
        else:
            self._conn = psycopg.connect(self._dsn, row_factory=dict_row)
            logger.info("Single database connection established")

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None or self._conn is not None

    def _get_connection(self) -> psycopg.Connection:
        if self._pool is not None:
            return self._pool.getconn()
        if self._conn is not None:
            return self._conn
        raise RuntimeError("Database not connected. Call connect() first.")

    def _put_connection(self, conn: psycopg.Connection) -> None:
        if self._pool is not None:
            self._pool.putconn(conn)

    def execute(self, query: str, params: tuple | None = None) -> list[dict]:
        """Run one statement in its own transaction and return any rows as dicts.

        The transaction is rolled back if the statement fails.
        """
        conn = self._get_connection()
        try:
            with conn.cursor() as cur:
                try:
                    cur.execute(query, params)
                    rows = cur.fetchall() if cur.description is not None else []
                except Exception:
                    conn.rollback()
                    raise
                conn.commit()
                return [dict(row) for row in rows]
        finally:
            self._put_connection(conn)

    def run_migrations(self, migrations_dir: str | Path = MIGRATIONS_DIR) -> list[str]:
        """Apply pending ``*.sql`` files in name order. Returns the applied names."""
        applied_now: list[str] = []
        conn = self._get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS _migrations (
                        filename TEXT PRIMARY KEY,
                        applied_at TIMESTAMPTZ DEFAULT NOW()
                    )
                """)
                conn.commit()

                cur.execute("SELECT filename FROM _migrations ORDER BY filename")
                applied = {row["filename"] for row in cur.fetchall()}

                for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
                    if sql_file.name in applied:
                        continue
                    logger.info("Applying migration: %s", sql_file.name)
                    cur.execute(sql_file.read_text())
                    cur.execute(
                        "INSERT INTO _migrations (filename) VALUES (%s)",
                        (sql_file.name,),
                    )
                    conn.commit()
                    applied_now.append(sql_file.name)
        finally:
            self._put_connection(conn)
        return applied_now

    def health_check(self) -> bool:
        try:
            rows = self.execute("SELECT 1 AS ok")
        except Exception:
            logger.exception("Database health check failed")
            return False
        return bool(rows) and rows[0].get("ok") == 1

    def __enter__(self) -> Database:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
