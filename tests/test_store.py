"""Tests for roasboard/store.py — SQLiteStore and identifier quoting."""

from __future__ import annotations

import pytest

from roasboard.store import SQLiteStore, StoreError, quote_identifier


class TestQuoteIdentifier:
    def test_allowed_name_is_quoted(self):
        assert quote_identifier("ventas", ["ventas"]) == '"ventas"'

    def test_embedded_quote_is_doubled(self):
        assert quote_identifier('a"b', ['a"b']) == '"a""b"'

    def test_unknown_name_rejected(self):
        with pytest.raises(StoreError, match="not allowed"):
            quote_identifier("ventas; DROP TABLE x", ["ventas"])


class TestSQLiteStore:
    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SQLiteStore(tmp_path / "nope.sqlite")

    def test_list_tables(self, lead_db):
        assert SQLiteStore(lead_db).list_tables() == ["captaciones", "ventas"]

    def test_columns(self, lead_db):
        cols = SQLiteStore(lead_db).columns("ventas")
        assert cols == ["cliente_id", "monto", "fuente", "FECHA"]

    def test_column_exists(self, lead_db):
        store = SQLiteStore(lead_db)
        assert store.column_exists("captaciones", "#")
        assert store.column_exists("captaciones", "CAMPAÑA")
        assert not store.column_exists("captaciones", "monto")

    def test_columns_of_unknown_table_raise(self, lead_db):
        with pytest.raises(StoreError):
            SQLiteStore(lead_db).columns("missing")

    def test_query_binds_named_params(self, lead_db):
        rows = SQLiteStore(lead_db).query(
            "SELECT COUNT(*) AS n FROM ventas WHERE cliente_id = :cid", {"cid": 1}
        )
        assert rows == [{"n": 2}]

    def test_bad_sql_raises_store_error(self, lead_db):
        with pytest.raises(StoreError):
            SQLiteStore(lead_db).query("SELECT * FROM no_such_table")
