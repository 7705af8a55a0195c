"""Thin prepare/execute/fetch client over any DB-API 2.0 connection.

SQL handed to the client always uses ``:name`` placeholders; they are rewritten
for drivers whose paramstyle differs (pymysql/psycopg use ``%(name)s``).
Rows come back as plain dicts keyed by column name.
"""
from __future__ import annotations

import re
import sys
from collections.abc import Mapping
from typing import Any, Optional

ERRMODE_SILENT = 0
ERRMODE_EXCEPTION = 2

SQLSTATE_OK = "00000"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PLACEHOLDER = re.compile(r"(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)")


def check_identifier(name: str) -> str:
    """Table/column names are interpolated into SQL, so only plain identifiers pass."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"invalid SQL identifier: {name!r}")
    return name


def _error_info(exc: BaseException, module) -> tuple[str, Any, str]:
    if isinstance(exc, getattr(module, "IntegrityError", ())):
        state = "23000"
    elif isinstance(exc, getattr(module, "DataError", ())):
        state = "22000"
    elif isinstance(exc, (getattr(module, "ProgrammingError", ()), getattr(module, "OperationalError", ()))):
        state = "42000"
    else:
        state = "HY000"

    message = str(exc)
    code = getattr(exc, "sqlite_errorcode", None)
    if code is None and exc.args and isinstance(exc.args[0], int):
        # pymysql / mysqlclient: (errno, message)
        code = exc.args[0]
        if len(exc.args) > 1:
            message = str(exc.args[1])
    if code is None:
        code = state
    return state, code, message


class Statement:
    """A prepared statement: one cursor, one SQL text."""

    def __init__(self, client: "DbClient", sql: str):
        self._client = client
        self.sql = sql
        self._cursor = client.connection.cursor()
        self._closed = False
        self.error_code = SQLSTATE_OK
        self.error_info: tuple[str, Any, Any] = (SQLSTATE_OK, None, None)

    def execute(self, params: Any = None) -> bool:
        sql, bound = self._client.adapt(self.sql, params)
        try:
            if bound is None:
                self._cursor.execute(sql)
            else:
                self._cursor.execute(sql, bound)
        except self._client.driver_error as e:
            self.error_info = _error_info(e, self._client.driver)
            self.error_code = self.error_info[0]
            if self._client.error_mode == ERRMODE_EXCEPTION:
                raise
            return False
        self.error_code = SQLSTATE_OK
        self.error_info = (SQLSTATE_OK, None, None)
        lastrowid = getattr(self._cursor, "lastrowid", None)
        if lastrowid:
            self._client._last_insert_id = lastrowid
        return True

    def _columns(self) -> list[str] | None:
        desc = self._cursor.description
        if not desc:
            return None
        return [d[0] for d in desc]

    def _as_dict(self, row, columns):
        if isinstance(row, Mapping):
            return dict(row)
        return dict(zip(columns, row))

    def fetch_one(self) -> Optional[dict]:
        if self._closed:
            return None
        columns = self._columns()
        if columns is None:
            return None
        row = self._cursor.fetchone()
        if row is None:
            return None
        return self._as_dict(row, columns)

    def fetch_all(self) -> list[dict]:
        if self._closed:
            return []
        columns = self._columns()
        if columns is None:
            return []
        return [self._as_dict(r, columns) for r in self._cursor.fetchall()]

    def fetch_column(self, index: int = 0):
        row = self.fetch_one()
        if row is None:
            return None
        return list(row.values())[index]

    def close_cursor(self) -> None:
        if not self._closed:
            self._closed = True
            self._cursor.close()


class DbClient:
    """
    The client contract the query helper consumes:

        prepare(sql) -> Statement; Statement.execute(params) -> bool
        Statement.fetch_one() / fetch_all() / close_cursor()
        error_mode (ERRMODE_SILENT | ERRMODE_EXCEPTION), last_insert_id(), query(sql)
    """

    def __init__(self, connection, error_mode: int = ERRMODE_SILENT):
        self.connection = connection
        self.error_mode = error_mode
        self.driver_name = type(connection).__module__.split(".")[0]
        self.driver = sys.modules.get(self.driver_name)
        self.driver_error = getattr(self.driver, "Error", Exception)
        self.paramstyle = getattr(self.driver, "paramstyle", "named")
        self._last_insert_id: Any = None

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.driver_name

    def adapt(self, sql: str, params: Any):
        """Rewrite ``:name`` placeholders and params for the driver's paramstyle."""
        if params is None:
            return sql, None
        if not isinstance(params, Mapping):
            return sql, params
        named = {str(k).lstrip(":"): v for k, v in params.items()}
        style = self.paramstyle
        if style == "named" or self.is_sqlite:
            return sql, named
        if style == "pyformat":
            sql = _PLACEHOLDER.sub(lambda m: f"%({m.group(1)})s", sql.replace("%", "%%"))
            return sql, named
        # qmark / format / numeric: positional, in order of appearance
        order = _PLACEHOLDER.findall(sql)
        if style == "qmark":
            sql = _PLACEHOLDER.sub("?", sql)
        elif style == "format":
            sql = _PLACEHOLDER.sub("%s", sql.replace("%", "%%"))
        else:
            counter = iter(range(1, len(order) + 1))
            sql = _PLACEHOLDER.sub(lambda m: f":{next(counter)}", sql)
        return sql, [named[name] for name in order]

    def prepare(self, sql: str) -> Statement:
        return Statement(self, sql)

    def query(self, sql: str) -> Statement:
        stmt = self.prepare(sql)
        stmt.execute()
        return stmt

    def last_insert_id(self):
        return self._last_insert_id
