"""
KVS: a small key/value store layered on one SQL table.

Each row holds a JSON body plus the shadow columns pulled out of it
(see domain/kvs_rules.py). One KVS instance is scoped to one owner: every
row it writes or reads carries the same foreign key value.

    with get_conn() as conn:
        helper = QueryHelper(DbClient(conn))
        kvs = KVS(helper, "kvs_record", "owner_id", 1)
        rid = kvs.insert({"uk1": "profile", "theme": {"dark": True}})
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from ..domain.kvs_rules import (
    KVSValidationError,
    decode_body,
    encode_body,
    extract_keys,
    validate as validate_record,
)
from .client import check_identifier
from .pdox import QueryHelper, QueryResult

logger = logging.getLogger(__name__)

__all__ = ["KVS", "KVSValidationError"]


class KVS:
    def __init__(self, helper: QueryHelper, table: str, fk_name: str, fk: int, strict: bool = True):
        """
        strict=True writes through query_or_die(), so any SQL failure (including a
        duplicate uk1 on insert) raises FatalSqlError. With strict=False writes go
        through query_return_error() and a failed write returns None.
        """
        self.helper = helper
        self.table = check_identifier(table)
        self.fk_name = check_identifier(fk_name)
        self.fk = fk
        self.strict = strict
        if helper.client.is_sqlite:
            self.now = "datetime('now')"
            self.dup_key = "ON CONFLICT(uk1) DO UPDATE SET"
        else:
            self.now = "NOW()"
            self.dup_key = "ON DUPLICATE KEY UPDATE"

    def validate(self, data: Any) -> Optional[str]:
        """None when `data` is a valid record, else the first problem found."""
        return validate_record(data)

    def _params(self, data: Any) -> dict:
        params = extract_keys(data)
        params["foreign_key"] = self.fk
        params["json_body"] = encode_body(data)
        return params

    def _write(self, sql: str, params: dict, caller: str) -> Optional[QueryResult]:
        if self.strict:
            result = self.helper.query_or_die(sql, params, caller=caller)
        else:
            result = self.helper.query_return_error(sql, params, caller=caller)
        result.close_cursor()
        if not result.success:
            return None
        return result

    def _insert_sql(self) -> str:
        return (
            f"INSERT INTO {self.table} ({self.fk_name}, uk1, sk1, tk1, co1, co2, json_body, created_at) "
            f"VALUES (:foreign_key, :uk1, :sk1, :tk1, :co1, :co2, :json_body, {self.now})"
        )

    def insert(self, data: Any) -> Optional[int]:
        params = self._params(data)
        if self._write(self._insert_sql(), params, "KVS.insert") is None:
            return None
        new_id = self.helper.last_insert_id()
        logger.debug(f"kvs insert {self.table} id={new_id} {self.fk_name}={self.fk}")
        return int(new_id) if new_id is not None else None

    def insert_or_update(self, data: Any) -> Optional[int]:
        """Insert, or overwrite the row holding the same uk1 (created_at is kept)."""
        params = self._params(data)
        sql = (
            f"{self._insert_sql()} {self.dup_key} "
            f"{self.fk_name}=:foreign_key, sk1=:sk1, tk1=:tk1, co1=:co1, co2=:co2, "
            f"json_body=:json_body, updated_at={self.now}"
        )
        if self._write(sql, params, "KVS.insert_or_update") is None:
            return None
        if params["uk1"] is None:
            new_id = self.helper.last_insert_id()
        else:
            # lastrowid is not reliable when the conflict branch ran
            row = self.helper.row_or_die(
                f"SELECT id FROM {self.table} WHERE uk1 = :uk1",
                {"uk1": params["uk1"]},
                caller="KVS.insert_or_update",
            )
            new_id = row["id"] if row else None
        logger.debug(f"kvs upsert {self.table} id={new_id} {self.fk_name}={self.fk}")
        return int(new_id) if new_id is not None else None

    def _decoded(self, row: dict) -> dict:
        row["json_body"] = decode_body(row["json_body"])
        return row

    def get_row(self, record_id: int) -> Optional[dict]:
        row = self.helper.row_or_die(
            f"SELECT * FROM {self.table} WHERE id = :id AND {self.fk_name} = :foreign_key",
            {"id": record_id, "foreign_key": self.fk},
            caller="KVS.get_row",
        )
        return self._decoded(row) if row else None

    def get_rows(self, limit: int = 100) -> list[dict]:
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            raise ValueError("limit must be a positive integer")
        rows = self.helper.all_rows_or_die(
            f"SELECT * FROM {self.table} WHERE {self.fk_name} = :foreign_key ORDER BY id LIMIT :limit",
            {"foreign_key": self.fk, "limit": limit},
            caller="KVS.get_rows",
        )
        return [self._decoded(r) for r in rows]
