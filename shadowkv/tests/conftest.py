import os
import sys
import sqlite3
import pytest
from pathlib import Path

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


@pytest.fixture(scope="session")
def tmp_db_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("db") / "shadowkv_test.db"
    # Point shadowkv to this temp DB
    os.environ["KVS_DB_PATH"] = str(path)
    # Initialize schema
    schema = Path(_PROJECT_ROOT / "schema.sql").read_text(encoding="utf-8")
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(schema)
        conn.commit()
    finally:
        conn.close()
    return str(path)


@pytest.fixture(autouse=True)
def _clean_db(tmp_db_path):
    # Safety: ensure we only ever wipe the temp DB, never a real one
    assert os.environ.get("KVS_DB_PATH") == tmp_db_path, "Refusing to clean non-temp DB"
    conn = sqlite3.connect(tmp_db_path)
    try:
        conn.execute("DELETE FROM kvs_record")
        conn.execute("DROP TABLE IF EXISTS scratch")
        conn.commit()
    finally:
        conn.close()
    yield


@pytest.fixture()
def conn(tmp_db_path):
    from shadowkv.db import get_conn
    with get_conn(tmp_db_path) as c:
        yield c


@pytest.fixture()
def helper(conn):
    from shadowkv.repository.client import DbClient
    from shadowkv.repository.pdox import QueryHelper
    return QueryHelper(DbClient(conn))
