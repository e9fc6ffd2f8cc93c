"""
Request fingerprinting.

A fingerprint is a SHA-256 digest over a canonical, type-tagged encoding of a
request's semantic fields.  It identifies "the same logical request" so a
reused idempotency key can be checked against what it was first used for.

Canonical form:
- mapping keys sorted, nested values encoded recursively
- every scalar wrapped as [tag, value] so "123" and 123 differ
- strings trimmed; blank strings collapse to null
"""
from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Mapping, Sequence
from typing import Any

DEFAULT_CURRENCY = "usd"


def normalize_text(value: str | None) -> str | None:
    """Trim free text; blank or missing becomes ``None``."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_currency(value: str | None) -> str:
    """Lower-case ISO currency code, defaulting to USD."""
    currency = normalize_text(value)
    if currency is None:
        return DEFAULT_CURRENCY
    currency = currency.lower()
    if len(currency) != 3 or not currency.isascii() or not currency.isalpha():
        raise ValueError(f"Invalid currency code: {value!r}")
    return currency


def _canonical(value: Any) -> list[Any]:
    if value is None:
        return ["null"]
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return ["bool", value]
    if isinstance(value, int):
        return ["int", str(value)]
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("Non-finite floats cannot be fingerprinted")
        if value.is_integer():
            return ["float", str(int(value))]
        return ["float", repr(value)]
    if isinstance(value, str):
        text = normalize_text(value)
        return ["null"] if text is None else ["str", text]
    if isinstance(value, Mapping):
        return [
            "map",
            [[str(k), _canonical(value[k])] for k in sorted(value, key=str)],
        ]
    if isinstance(value, Sequence):
        return ["list", [_canonical(v) for v in value]]
    raise TypeError(f"Unsupported fingerprint value type: {type(value).__name__}")


def canonicalize(fields: Mapping[str, Any]) -> str:
    """Return the canonical JSON text that :func:`hash_fingerprint` digests."""
    return json.dumps(
        _canonical(fields),
        ensure_ascii=False,
        separators=(",", ":"),
    )


def hash_fingerprint(fields: Mapping[str, Any]) -> str:
    """Deterministic hex digest of the given request fields."""
    return hashlib.sha256(canonicalize(fields).encode("utf-8")).hexdigest()
