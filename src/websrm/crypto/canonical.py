"""
Canonical JSON

Deterministic serialization used for transaction signing:
- object keys sorted by Unicode code point, recursively
- arrays keep their order
- no insignificant whitespace, UTF-8 output
- numbers must be integers (amounts in cents); integral floats and
  Decimals below 2**53 render as integers
- fractional numbers, NaN, Infinity, non-string keys and non-JSON types
  are rejected

Structurally equal payloads produce identical bytes regardless of the
key insertion order they were built with.
"""

import hashlib
import json
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from websrm.exceptions import CanonicalizationError


_MAX_SAFE_INTEGER = 2 ** 53


@dataclass(frozen=True)
class CanonicalDocument:
    """Canonical bytes of a payload plus their SHA-256 digest"""
    data: bytes

    @property
    def text(self) -> str:
        return self.data.decode("utf-8")

    @property
    def digest(self) -> bytes:
        return hashlib.sha256(self.data).digest()

    @property
    def digest_hex(self) -> str:
        return hashlib.sha256(self.data).hexdigest()

    def __len__(self) -> int:
        return len(self.data)


def _normalize(value: Any, path: str) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value

    if isinstance(value, int):
        return value

    if isinstance(value, (float, Decimal)):
        finite = value.is_finite() if isinstance(value, Decimal) else math.isfinite(value)
        if not finite:
            raise CanonicalizationError(f"Non-finite number at {path}", path=path)
        if value != int(value):
            raise CanonicalizationError(
                f"Fractional number {value} at {path}; use integers (cents)",
                path=path,
            )
        if abs(value) >= _MAX_SAFE_INTEGER:
            raise CanonicalizationError(
                f"Number {value} at {path} is outside the exact integer range",
                path=path,
            )
        return int(value)

    if isinstance(value, dict):
        normalized = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"Object key {key!r} at {path} is not a string", path=path
                )
            normalized[key] = _normalize(item, f"{path}/{key}")
        return normalized

    if isinstance(value, (list, tuple)):
        return [_normalize(item, f"{path}/{index}") for index, item in enumerate(value)]

    raise CanonicalizationError(
        f"Unsupported type {type(value).__name__} at {path}", path=path
    )


def canonical_dumps(payload: Any) -> str:
    """
    Return the canonical JSON text of a payload

    Raises:
        CanonicalizationError: If the payload holds a value with no
            canonical JSON form
    """
    return json.dumps(
        _normalize(payload, "$"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def canonical_bytes(payload: Any) -> bytes:
    """Return the canonical JSON of a payload as UTF-8 bytes"""
    return canonical_dumps(payload).encode("utf-8")


def canonicalize(payload: Any) -> CanonicalDocument:
    """Reduce a payload to a CanonicalDocument"""
    return CanonicalDocument(canonical_bytes(payload))
