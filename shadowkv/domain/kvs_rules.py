"""
Rules for KVS records.

A record is a JSON object at its top level; below that anything JSON can hold
is allowed. A few reserved top-level keys are copied into their own columns
("shadow columns") so they can be used in WHERE / ORDER BY without parsing JSON:

    uk1  VARCHAR(150), unique across the store
    sk1  VARCHAR(75), indexed, not unique
    tk1  TEXT, first 75 characters indexed
    co1, co2  VARCHAR(150), not indexed

All of them are optional. Top-level keys must be strings, since JSON object
keys are strings and anything else would come back changed.
"""
from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Optional

# (key, max length); None means no ceiling
SHADOW_FIELDS: tuple[tuple[str, Optional[int]], ...] = (
    ("uk1", 150),
    ("sk1", 75),
    ("tk1", None),
    ("co1", 150),
    ("co2", 150),
)


class KVSValidationError(ValueError):
    pass


def validate(data: Any) -> Optional[str]:
    """Return None for a valid record, else the first violation found."""
    if not isinstance(data, Mapping):
        return "data must be a mapping"
    if any(not isinstance(key, str) for key in data):
        return "keys must be strings"
    for key, max_len in SHADOW_FIELDS:
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            return f"{key} must be a string"
        if len(value) < 1:
            return f"{key} cannot be empty"
        if max_len is not None and len(value) > max_len:
            return f"{key} must be no more than {max_len} characters"
    return None


def extract_keys(data: Any) -> dict[str, Optional[str]]:
    """Bind parameters for the shadow columns; raises on an invalid record."""
    reason = validate(data)
    if reason is not None:
        raise KVSValidationError(reason)
    return {key: data.get(key) for key, _ in SHADOW_FIELDS}


def encode_body(data: Mapping) -> str:
    return json.dumps(dict(data), ensure_ascii=False)


def decode_body(raw: Any) -> dict:
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    body = json.loads(raw)
    if not isinstance(body, dict):
        raise ValueError("json_body must be a JSON object at its top level")
    return body
