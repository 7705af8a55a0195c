"""Query helper: prepare + execute with uniform error reporting and timing.

The core is query_return_error(), which folds prepare() and execute() into one
call, catches every failure and always hands back a QueryResult. The rest are
conveniences that combine common multi-step patterns:

    res = helper.query_or_die("INSERT INTO ...", {"sha": user_sha})
    profile_id = helper.last_insert_id()

The *_or_die methods only fail on SQL errors (syntax, bind, constraint). Those
are treated as coding bugs: FatalSqlError is raised, or the process exits when
the helper is built with die_on_error. Not finding a row is never fatal.
"""
from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain import column_meta
from ..domain.column_meta import AlreadyFetchedMetadata, MetadataSource, TableName
from ..request_context import current_request_path
from .client import ERRMODE_EXCEPTION, SQLSTATE_OK, DbClient, Statement, check_identifier

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal database error"
_DEFAULT_STATE = "42000"


@dataclass
class QueryResult:
    success: bool
    elapsed_time: float
    error_code: str
    error_info: tuple
    error_summary: str
    statement: Optional[Statement] = field(default=None, repr=False)

    @property
    def synthetic(self) -> bool:
        return self.statement is None

    def fetch_one(self) -> Optional[dict]:
        if self.statement is None:
            return None
        return self.statement.fetch_one()

    def fetch_all(self) -> list[dict]:
        if self.statement is None:
            return []
        return self.statement.fetch_all()

    def close_cursor(self) -> None:
        if self.statement is not None:
            self.statement.close_cursor()


class FatalSqlError(RuntimeError):
    def __init__(self, message: str, result: QueryResult):
        super().__init__(message)
        self.result = result


def _normalize_params(params: Any):
    if params is None or isinstance(params, (dict, list, tuple)):
        return params
    if hasattr(params, "items"):
        return dict(params.items())
    return (params,)


class QueryHelper:
    def __init__(
        self,
        client: DbClient,
        developer_mode: bool = False,
        slow_query: float = 0.0,
        die_on_error: bool = False,
        log: logging.Logger | None = None,
    ):
        self.client = client
        self.developer_mode = developer_mode
        # seconds; 0 = off, > 0 = log queries slower than this, < 0 = log every query
        self.slow_query = slow_query
        self.die_on_error = die_on_error
        self.log = log or logger

    @classmethod
    def from_settings(cls, client: DbClient, settings) -> "QueryHelper":
        return cls(
            client,
            developer_mode=settings.developer,
            slow_query=settings.slow_query,
            die_on_error=settings.die_on_error,
        )

    def last_insert_id(self):
        return self.client.last_insert_id()

    def query_return_error(
        self,
        sql: str,
        params: Any = None,
        log_errors: bool = True,
        caller: str | None = None,
    ) -> QueryResult:
        """
        Prepare and execute `sql`, never raising for SQL problems.

        The client is switched to exception mode for the duration of the call so
        prepare/bind/execute failures all surface here; the previous mode is
        restored before returning. When prepare() itself fails there is no
        statement, and the result is synthetic with sqlstate 42000.
        """
        prior_mode = self.client.error_mode
        if prior_mode != ERRMODE_EXCEPTION:
            self.client.error_mode = ERRMODE_EXCEPTION
        try:
            stmt: Optional[Statement] = None
            success = False
            message = ""
            params = _normalize_params(params)
            start = time.perf_counter()
            try:
                stmt = self.client.prepare(sql)
                success = bool(stmt.execute(params))
            except Exception as e:
                success = False
                message = str(e)
                if log_errors:
                    self.log.error(message)
            elapsed = time.perf_counter() - start

            if self.slow_query < 0 or (self.slow_query > 0 and elapsed > self.slow_query):
                path = current_request_path() or ""
                self.log.warning(f"PDOX Slow Query:{elapsed} {path} {caller or '-'} {sql}")

            if stmt is not None and (success or stmt.error_code != SQLSTATE_OK):
                error_code, error_info = stmt.error_code, stmt.error_info
            else:
                error_code, error_info = _DEFAULT_STATE, (_DEFAULT_STATE, _DEFAULT_STATE, message)
            return QueryResult(
                success=success,
                elapsed_time=elapsed,
                error_code=error_code,
                error_info=tuple(error_info),
                error_summary=":".join("" if p is None else str(p) for p in error_info),
                statement=stmt,
            )
        finally:
            if prior_mode != ERRMODE_EXCEPTION:
                self.client.error_mode = prior_mode

    def query_or_die(
        self,
        sql: str,
        params: Any = None,
        log_errors: bool = True,
        caller: str | None = None,
    ) -> QueryResult:
        """Like query_return_error(), but a failed query raises FatalSqlError (or exits)."""
        result = self.query_return_error(sql, params, log_errors, caller)
        if not result.success:
            self.log.error(f"Sql Failure:{result.error_summary} {sql}")
            result.close_cursor()
            message = result.error_summary if self.developer_mode else GENERIC_ERROR
            if self.die_on_error:
                sys.exit(message)
            raise FatalSqlError(message, result)
        return result

    def row_or_die(
        self,
        sql: str,
        params: Any = None,
        log_errors: bool = True,
        caller: str | None = None,
    ) -> Optional[dict]:
        result = self.query_or_die(sql, params, log_errors, caller)
        try:
            return result.fetch_one()
        finally:
            result.close_cursor()

    def all_rows_or_die(
        self,
        sql: str,
        params: Any = None,
        log_errors: bool = True,
        caller: str | None = None,
    ) -> list[dict]:
        """
        Retrieve every row into a list.

        Queries are expected to be paged, so holding 10-30 rows in memory is fine.
        Code that needs to stream a large result should run its own query.
        """
        result = self.query_or_die(sql, params, log_errors, caller)
        try:
            return result.fetch_all()
        finally:
            result.close_cursor()

    # --- schema introspection -------------------------------------------------

    def _introspect(self, sql: str, table: str) -> Optional[list[dict]]:
        check_identifier(table)
        if self.client.is_sqlite:
            sql = f"PRAGMA table_info({table})"
        result = self.query_return_error(sql)
        try:
            if not result.success:
                return None
            rows = result.fetch_all()
        finally:
            result.close_cursor()
        if self.client.is_sqlite:
            # missing tables give an empty pragma result, not an error
            if not rows:
                return None
            rows = [_mysql_shaped(r) for r in rows]
        return rows

    def metadata(self, table: str) -> Optional[list[dict]]:
        return self._introspect(f"SHOW COLUMNS FROM {table}", table)

    def describe(self, table: str) -> Optional[list[dict]]:
        return self._introspect(f"DESCRIBE {table}", table)

    def describe_column(self, field_name: str, source: MetadataSource) -> Optional[dict]:
        """
        Find the metadata row for one column.

        For the row format see https://dev.mysql.com/doc/refman/8.0/en/show-columns.html
        """
        if isinstance(source, TableName):
            rows = self.describe(source.name)
            if rows is None:
                return None
        elif isinstance(source, AlreadyFetchedMetadata):
            rows = source.rows
        else:
            raise TypeError("source must be AlreadyFetchedMetadata or TableName")
        column = column_meta.find_column(rows, field_name)
        return dict(column) if column is not None else None

    def _require_column(self, field_name: str, source: MetadataSource) -> dict:
        column = self.describe_column(field_name, source)
        if not column:
            raise LookupError(f"Could not find {field_name}")
        return column

    def column_is_null(self, field_name: str, source: MetadataSource) -> bool:
        return self._require_column(field_name, source).get("Null") == "YES"

    def column_exists(self, field_name: str, source: MetadataSource) -> bool:
        if isinstance(source, TableName):
            rows = self.describe(source.name)
            if rows is None:
                raise LookupError(f"Could not find {source.name}")
            source = AlreadyFetchedMetadata(rows)
        return self.describe_column(field_name, source) is not None

    def column_type(self, field_name: str, source: MetadataSource) -> Optional[str]:
        return column_meta.type_name(self._require_column(field_name, source).get("Type"))

    def column_length(self, field_name: str, source: MetadataSource) -> Optional[int]:
        return column_meta.type_length(self._require_column(field_name, source).get("Type"))

    # --- server version -------------------------------------------------------

    def version_number(self) -> str:
        sql = "select sqlite_version()" if self.client.is_sqlite else "select version()"
        stmt = self.client.query(sql)
        try:
            raw = stmt.fetch_column()
        finally:
            stmt.close_cursor()
        return column_meta.extract_version(raw)

    def version_at_least(self, minimum: str) -> bool:
        """if helper.version_at_least("8.0.0"): ..."""
        return column_meta.version_at_least(self.version_number(), minimum)


def _mysql_shaped(row: dict) -> dict:
    """PRAGMA table_info row -> SHOW COLUMNS row."""
    pk = bool(row.get("pk"))
    return {
        "Field": row.get("name"),
        "Type": row.get("type"),
        "Null": "NO" if (row.get("notnull") or pk) else "YES",
        "Key": "PRI" if pk else "",
        "Default": row.get("dflt_value"),
        "Extra": "",
    }
