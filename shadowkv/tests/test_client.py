import sqlite3
from types import SimpleNamespace

import pytest

from shadowkv.repository.client import DbClient, ERRMODE_EXCEPTION, ERRMODE_SILENT, check_identifier


def _client_with_style(conn, style):
    client = DbClient(conn)
    client.paramstyle = style
    client.driver_name = "fakedb"
    return client


def test_driver_detection(conn):
    client = DbClient(conn)
    assert client.driver_name == "sqlite3"
    assert client.is_sqlite
    assert client.driver_error is sqlite3.Error


def test_silent_mode_returns_false_and_records_error(conn):
    client = DbClient(conn, error_mode=ERRMODE_SILENT)
    stmt = client.prepare("SELECT * FROM no_such_table")
    assert stmt.execute() is False
    assert stmt.error_code == "42000"
    assert "no_such_table" in stmt.error_info[2]
    stmt.close_cursor()


def test_exception_mode_raises(conn):
    client = DbClient(conn, error_mode=ERRMODE_EXCEPTION)
    stmt = client.prepare("SELECT * FROM no_such_table")
    with pytest.raises(sqlite3.OperationalError):
        stmt.execute()
    assert stmt.error_code == "42000"


def test_rows_are_dicts_and_close_is_idempotent(conn):
    client = DbClient(conn)
    stmt = client.prepare("SELECT 1 AS a, 'x' AS b UNION ALL SELECT 2, 'y'")
    assert stmt.execute()
    assert stmt.fetch_all() == [{"a": 1, "b": "x"}, {"a": 2, "b": "y"}]
    stmt.close_cursor()
    stmt.close_cursor()
    assert stmt.fetch_one() is None
    assert stmt.fetch_all() == []


def test_query_and_fetch_column(conn):
    client = DbClient(conn)
    stmt = client.query("SELECT 'v' AS val")
    assert stmt.fetch_column() == "v"
    stmt.close_cursor()


def test_adapt_pyformat(conn):
    client = _client_with_style(conn, "pyformat")
    sql, params = client.adapt("SELECT * FROM t WHERE a = :a AND b LIKE '5%' AND c = :a", {":a": 1})
    assert sql == "SELECT * FROM t WHERE a = %(a)s AND b LIKE '5%%' AND c = %(a)s"
    assert params == {"a": 1}


def test_adapt_qmark_and_numeric_are_positional(conn):
    sql, params = _client_with_style(conn, "qmark").adapt("VALUES (:a, :b, :a)", {"a": 1, "b": 2})
    assert sql == "VALUES (?, ?, ?)" and params == [1, 2, 1]
    sql, params = _client_with_style(conn, "numeric").adapt("VALUES (:a, :b)", {"a": 1, "b": 2})
    assert sql == "VALUES (:1, :2)" and params == [1, 2]


def test_adapt_leaves_casts_and_times_alone(conn):
    client = _client_with_style(conn, "pyformat")
    sql, _ = client.adapt("SELECT '12:30'::time, :x", {"x": 1})
    assert sql == "SELECT '12:30'::time, %(x)s"


def test_adapt_passes_sequences_and_none(conn):
    client = DbClient(conn)
    assert client.adapt("SELECT ?", (1,)) == ("SELECT ?", (1,))
    assert client.adapt("SELECT 1", None) == ("SELECT 1", None)


def test_error_info_for_mysql_style_exception(conn):
    from shadowkv.repository import client as client_mod

    class Error(Exception):
        pass

    class IntegrityError(Error):
        pass

    fake = SimpleNamespace(Error=Error, IntegrityError=IntegrityError)
    info = client_mod._error_info(IntegrityError(1062, "Duplicate entry 'x' for key 'uk1'"), fake)
    assert info == ("23000", 1062, "Duplicate entry 'x' for key 'uk1'")


@pytest.mark.parametrize("name", ["kvs_record", "_x1", "Result_KVS"])
def test_check_identifier_ok(name):
    assert check_identifier(name) == name


@pytest.mark.parametrize("name", ["", "1abc", "a-b", "a b", "a;drop", None])
def test_check_identifier_rejects(name):
    with pytest.raises(ValueError):
        check_identifier(name)
