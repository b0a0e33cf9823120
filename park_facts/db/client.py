"""MySQL client for the national park store.

Thread-local connection reuse: each thread (API worker, CLI pool worker) gets
a persistent connection that reconnects on failure.
"""

import os
import threading
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Generator

import pymysql
from pymysql.cursors import DictCursor

from ..errors import ConfigurationError

_thread_local = threading.local()


@lru_cache(maxsize=1)
def _get_config() -> dict:
    """Get connection configuration.

    Environment variables:
        PARKS_DB_HOST: Database host (default: 127.0.0.1)
        PARKS_DB_PORT: Database port (default: 3306)
        PARKS_DB_USER: Database user (default: root)
        PARKS_DB_PASSWORD: Database password (default: empty)
        PARKS_DB_DATABASE: Database name (default: parks)

    Returns:
        Connection config dict

    Raises:
        ConfigurationError: If PARKS_DB_PORT is not an integer
    """
    port = os.environ.get("PARKS_DB_PORT", "3306")
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigurationError(f"PARKS_DB_PORT must be an integer, got {port!r}") from None

    return {
        "host": os.environ.get("PARKS_DB_HOST", "127.0.0.1"),
        "port": port_number,
        "user": os.environ.get("PARKS_DB_USER", "root"),
        "password": os.environ.get("PARKS_DB_PASSWORD", ""),
        "database": os.environ.get("PARKS_DB_DATABASE", "parks"),
        "autocommit": True,
        "charset": "utf8mb4",
        "cursorclass": DictCursor,
    }


def get_connection() -> pymysql.Connection:
    """Get a thread-local database connection, reusing if alive."""
    conn = getattr(_thread_local, "conn", None)
    if conn is not None:
        try:
            conn.ping(reconnect=False)
            return conn
        except pymysql.Error:
            # Connection is dead, close and reconnect
            try:
                conn.close()
            except pymysql.Error:
                pass
    conn = pymysql.connect(**_get_config())
    _thread_local.conn = conn
    return conn


@contextmanager
def get_cursor() -> Generator[Any, None, None]:
    """Context manager for a DictCursor on the thread-local connection.

    Example:
        with get_cursor() as cursor:
            cursor.execute("SELECT * FROM national_parks WHERE id = %s", (park_id,))
            row = cursor.fetchone()
    """
    conn = get_connection()
    with conn.cursor() as cursor:
        yield cursor


def execute_query(sql: str, params: tuple | None = None, fetch: str = "all") -> list[dict] | dict | None:
    """Execute a query and return results.

    Args:
        sql: SQL query with %s placeholders
        params: Query parameters
        fetch: 'all' for fetchall(), 'one' for fetchone(), 'none' for no fetch

    Returns:
        Query results as list of dicts, single dict, or None

    Example:
        rows = execute_query("SELECT * FROM national_parks")
        row = execute_query("SELECT * FROM national_parks WHERE id = %s", (park_id,), fetch="one")
        execute_query("DELETE FROM national_parks WHERE id = %s", (park_id,), fetch="none")
    """
    with get_cursor() as cursor:
        cursor.execute(sql, params or ())

        if fetch == "all":
            return cursor.fetchall()
        elif fetch == "one":
            return cursor.fetchone()
        return None


def check_connection() -> bool:
    """Test database connectivity.

    Returns:
        True if connection succeeds, False otherwise
    """
    try:
        with get_cursor() as cursor:
            cursor.execute("SELECT 1")
            return True
    except pymysql.Error:
        return False
