from __future__ import annotations

# shadowkv/db.py
import sqlite3
from contextlib import contextmanager
from typing import Iterator
import os
import yaml
from pydantic import BaseModel

from .repository.client import DbClient
from .repository.pdox import QueryHelper

# Resolution order for the DB path:
# 1) KVS_DB_PATH environment variable (highest priority)
# 2) config.yaml test_db_path (when a test environment is detected)
# 3) config.yaml db_path
# 4) fallback: shadowkv.db at the project root
_PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
_ROOT_DB = os.path.join(_PROJECT_ROOT, "shadowkv.db")

_TRUTHY = ("1", "true", "yes", "on")


class Settings(BaseModel):
    db_path: str
    developer: bool = False
    slow_query: float = 0.0
    die_on_error: bool = False


def _read_config_yaml() -> dict:
    cfg_path = os.path.join(_PROJECT_ROOT, "config.yaml")
    if not os.path.exists(cfg_path):
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}
    if not isinstance(cfg, dict):
        return {}
    out = {}
    for k in ("db_path", "test_db_path"):
        v = cfg.get(k)
        if isinstance(v, str) and v.strip():
            out[k] = v.strip()
    for k in ("developer", "die_on_error"):
        if isinstance(cfg.get(k), bool):
            out[k] = cfg[k]
    v = cfg.get("slow_query")
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        out["slow_query"] = float(v)
    return out


def _is_test_env() -> bool:
    return (os.environ.get("APP_ENV") == "test") or (os.environ.get("PYTEST_CURRENT_TEST") is not None)


def get_db_path(_: str | None = None) -> str:
    env_path = os.environ.get("KVS_DB_PATH")
    cfg = _read_config_yaml()
    cfg_db = cfg.get("db_path")
    cfg_test = cfg.get("test_db_path")

    if env_path:
        path = env_path
    elif _is_test_env() and cfg_test:
        path = cfg_test
    elif cfg_db:
        path = cfg_db
    else:
        path = _ROOT_DB

    dirn = os.path.dirname(path) or "."
    os.makedirs(dirn, exist_ok=True)
    return path


def get_settings() -> Settings:
    """
    Resolve runtime settings: environment first, then config.yaml, then defaults.

    KVS_DEVELOPER / KVS_DIE_ON_ERROR accept 1/true/yes/on; KVS_SLOW_QUERY is seconds
    (negative logs every query, 0 disables slow-query logging).
    """
    cfg = _read_config_yaml()
    developer = cfg.get("developer", False)
    die_on_error = cfg.get("die_on_error", False)
    slow_query = cfg.get("slow_query", 0.0)

    env_dev = os.environ.get("KVS_DEVELOPER")
    if env_dev is not None:
        developer = env_dev.strip().lower() in _TRUTHY
    env_die = os.environ.get("KVS_DIE_ON_ERROR")
    if env_die is not None:
        die_on_error = env_die.strip().lower() in _TRUTHY
    env_slow = os.environ.get("KVS_SLOW_QUERY")
    if env_slow:
        try:
            slow_query = float(env_slow)
        except ValueError:
            pass

    return Settings(
        db_path=get_db_path(),
        developer=developer,
        slow_query=slow_query,
        die_on_error=die_on_error,
    )


@contextmanager
def get_conn(db_path: str | None = None) -> Iterator[sqlite3.Connection]:
    """
    Open a SQLite connection, preferring an explicit db_path over get_db_path().
    Autocommit mode: every statement is its own unit of work.
    """
    path = db_path or get_db_path()
    conn = sqlite3.connect(
        path,
        check_same_thread=False,
        isolation_level=None,
    )
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.row_factory = sqlite3.Row
        yield conn
    finally:
        conn.close()


@contextmanager
def open_helper(db_path: str | None = None, settings: Settings | None = None):
    """Yield a QueryHelper bound to a fresh connection, configured from settings."""
    settings = settings or get_settings()
    with get_conn(db_path or settings.db_path) as conn:
        yield QueryHelper.from_settings(DbClient(conn), settings)
