"""
Deterministic hashing for cache fingerprints.

Manifesto:
    A cache key must be identical for semantically identical requests:
    - **Deterministic:** Same inputs → same output, always
    - **Order-dependent:** (a, b) ≠ (b, a) for positional parts
    - **Key-order independent:** {"a": 1, "b": 2} == {"b": 2, "a": 1}

Examples:
    >>> compute_hash("embedder", "1.0", canonical_json({"text": "hi"})) == \\
    ...     compute_hash("embedder", "1.0", canonical_json({"text": "hi"}))
    True

Tags:
    hashing, fingerprint, cache, weft
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(value: Any) -> str:
    """Serialize ``value`` into a stable JSON string.

    Mapping keys are sorted, whitespace is removed, and values JSON cannot
    represent natively (Decimal, datetime, dataclasses ...) fall back to
    ``str()``. Sets are sorted so their iteration order does not leak into
    the key.
    """
    return json.dumps(_normalize(value), sort_keys=True, separators=(",", ":"), default=str)


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(v) for v in value), key=repr)
    return value


def compute_hash(*values: Any, length: int = 64) -> str:
    """Compute a SHA-256 hex digest over ``'|'``-joined string values.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 64 = full digest)
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


__all__ = ["canonical_json", "compute_hash"]
