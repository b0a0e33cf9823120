"""Tests for the MySQL client helpers (connection patched)."""

from unittest.mock import MagicMock, patch

import pymysql
import pytest

from park_facts.db import client as db_client
from park_facts.errors import ConfigurationError

GET_CONNECTION = "park_facts.db.client.get_connection"


def _connection(rows=None, row=None):
    cursor = MagicMock()
    cursor.fetchall.return_value = rows or []
    cursor.fetchone.return_value = row
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn, cursor


@pytest.fixture
def fresh_config():
    db_client._get_config.cache_clear()
    yield
    db_client._get_config.cache_clear()


class TestExecuteQuery:
    def test_fetch_all(self):
        conn, cursor = _connection(rows=[{"id": "park-1"}])
        with patch(GET_CONNECTION, return_value=conn):
            rows = db_client.execute_query("SELECT * FROM national_parks WHERE name = %s", ("Yellowstone",))
        assert rows == [{"id": "park-1"}]
        cursor.execute.assert_called_once_with("SELECT * FROM national_parks WHERE name = %s", ("Yellowstone",))

    def test_fetch_one(self):
        conn, _ = _connection(row={"cnt": 3})
        with patch(GET_CONNECTION, return_value=conn):
            assert db_client.execute_query("SELECT COUNT(*) AS cnt FROM national_parks", fetch="one") == {"cnt": 3}

    def test_fetch_none(self):
        conn, cursor = _connection()
        with patch(GET_CONNECTION, return_value=conn):
            assert db_client.execute_query("DELETE FROM national_parks", fetch="none") is None
        cursor.execute.assert_called_once_with("DELETE FROM national_parks", ())


class TestCheckConnection:
    def test_ok(self):
        conn, _ = _connection()
        with patch(GET_CONNECTION, return_value=conn):
            assert db_client.check_connection() is True

    def test_unreachable(self):
        with patch(GET_CONNECTION, side_effect=pymysql.err.OperationalError(2003, "Can't connect")):
            assert db_client.check_connection() is False


class TestConfig:
    def test_defaults(self, fresh_config, monkeypatch):
        for name in ("PARKS_DB_HOST", "PARKS_DB_PORT", "PARKS_DB_DATABASE"):
            monkeypatch.delenv(name, raising=False)
        config = db_client._get_config()
        assert config["host"] == "127.0.0.1"
        assert config["port"] == 3306
        assert config["database"] == "parks"

    def test_bad_port(self, fresh_config, monkeypatch):
        monkeypatch.setenv("PARKS_DB_PORT", "mysql")
        with pytest.raises(ConfigurationError, match="PARKS_DB_PORT"):
            db_client._get_config()
