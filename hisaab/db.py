import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence

import mysql.connector
from mysql.connector import pooling

from .config import config

logger = logging.getLogger(__name__)


class Database:
    def __init__(self) -> None:
        self._pool: Optional[pooling.MySQLConnectionPool] = None

    @property
    def pool(self) -> pooling.MySQLConnectionPool:
        # Created on first use so importing the app never needs a live server
        if self._pool is None:
            logger.info("Opening MySQL pool to %s:%s/%s", config.DB_HOST, config.DB_PORT, config.DB_NAME)
            self._pool = pooling.MySQLConnectionPool(
                pool_name="hisaab_pool",
                pool_size=config.DB_POOL_SIZE,
                host=config.DB_HOST,
                port=config.DB_PORT,
                user=config.DB_USER,
                password=config.DB_PASSWORD,
                database=config.DB_NAME,
                auth_plugin="mysql_native_password",
            )
        return self._pool

    @contextmanager
    def connection(self):
        conn = self.pool.get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def cursor(self, dictionary: bool = True):
        with self.connection() as conn:
            cursor = conn.cursor(dictionary=dictionary)
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def fetch_one(self, query: str, params: Optional[Iterable[Any]] = None) -> Optional[Dict[str, Any]]:
        with self.cursor() as cursor:
            cursor.execute(query, params or ())
            return cursor.fetchone()

    def fetch_all(self, query: str, params: Optional[Iterable[Any]] = None) -> List[Dict[str, Any]]:
        with self.cursor() as cursor:
            cursor.execute(query, params or ())
            return cursor.fetchall()

    def execute(self, query: str, params: Optional[Iterable[Any]] = None) -> int:
        with self.cursor() as cursor:
            cursor.execute(query, params or ())
            return cursor.lastrowid

    def execute_many(self, query: str, rows: Sequence[Iterable[Any]]) -> List[int]:
        """Run ``query`` once per row inside a single transaction.

        Either every row is committed or the whole batch is rolled back.
        Returns the ``lastrowid`` of each statement.
        """
        row_ids = []
        with self.cursor() as cursor:
            for params in rows:
                cursor.execute(query, params)
                row_ids.append(cursor.lastrowid)
        return row_ids


db = Database()
