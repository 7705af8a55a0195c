from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

_TYPE_NAME = re.compile(r"([a-z]+)\([0-9]+\)", re.IGNORECASE)
_TYPE_LENGTH = re.compile(r"[a-z]+\(([0-9]+)\)", re.IGNORECASE)
_VERSION_PREFIX = re.compile(r"^[0-9.]+")


@dataclass(frozen=True)
class AlreadyFetchedMetadata:
    """Column rows as returned by describe()/metadata()."""
    rows: Sequence[Mapping[str, Any]]


@dataclass(frozen=True)
class TableName:
    """A table to describe on demand."""
    name: str


MetadataSource = Union[AlreadyFetchedMetadata, TableName]


def find_column(rows: Sequence[Mapping[str, Any]], field: str) -> Optional[Mapping[str, Any]]:
    for column in rows:
        if column.get("Field") == field:
            return column
    return None


def type_name(type_str: Optional[str]) -> Optional[str]:
    """'decimal(10)' -> 'decimal'; 'text' -> 'text'; None when it cannot be parsed."""
    if not type_str:
        return None
    if "(" not in type_str:
        return type_str
    m = _TYPE_NAME.search(type_str)
    return m.group(1) if m else None


def type_length(type_str: Optional[str]) -> Optional[int]:
    """'varchar(150)' -> 150; 0 when the type carries no length qualifier."""
    if not type_str:
        return None
    if "(" not in type_str:
        return 0
    m = _TYPE_LENGTH.search(type_str)
    return int(m.group(1)) if m else 0


def extract_version(raw: Any) -> str:
    m = _VERSION_PREFIX.match(str(raw)) if raw is not None else None
    if not m:
        return "0.0.0"
    return m.group(0)


def _version_parts(version: str) -> list[int]:
    return [int(p) for p in extract_version(version).split(".") if p]


def compare_versions(a: str, b: str) -> int:
    """Numeric, part-by-part comparison; missing parts count as 0. Returns -1, 0 or 1."""
    pa, pb = _version_parts(a), _version_parts(b)
    width = max(len(pa), len(pb))
    pa += [0] * (width - len(pa))
    pb += [0] * (width - len(pb))
    return (pa > pb) - (pa < pb)


def version_at_least(version: str, minimum: str) -> bool:
    return compare_versions(version, minimum) >= 0
