"""Stable keys for prediction requests and the seeds derived from them."""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from enum import Enum
import hashlib
import json
import math
from typing import Any, Mapping, Optional

import numpy as np

KEY_DIGEST_LENGTH = 16


def canonicalize(obj: Any) -> Any:
    """Reduce ``obj`` to JSON-compatible data with mapping keys in sorted order.

    Non-finite floats are tagged so that ``nan`` and ``inf`` inputs still
    produce distinct keys.
    """
    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else {"__float__": repr(obj)}
    if isinstance(obj, Enum):
        return canonicalize(obj.value)
    if isinstance(obj, np.generic):
        return canonicalize(obj.item())
    if isinstance(obj, np.ndarray):
        return [canonicalize(item) for item in obj.tolist()]
    if isinstance(obj, Mapping):
        return {str(key): canonicalize(obj[key]) for key in sorted(obj, key=str)}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(item) for item in obj]
    if hasattr(obj, "to_dict"):
        return canonicalize(obj.to_dict())
    if is_dataclass(obj) and not isinstance(obj, type):
        return canonicalize(asdict(obj))
    raise TypeError(f"Cannot build a stable key from {type(obj)!r}")


def stable_hash(obj: Any, *, length: Optional[int] = KEY_DIGEST_LENGTH) -> str:
    payload = json.dumps(canonicalize(obj), separators=(",", ":"), ensure_ascii=True)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    if length is None:
        return digest
    if length <= 0:
        raise ValueError("length must be a positive integer or None.")
    return digest[:length]


def seed_from_hash(obj: Any) -> int:
    """Derive a 64-bit seed from the stable hash of ``obj``."""
    return int(stable_hash(obj, length=16), 16)


__all__ = [
    "KEY_DIGEST_LENGTH",
    "canonicalize",
    "seed_from_hash",
    "stable_hash",
]
