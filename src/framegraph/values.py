"""Frame values exchanged between graph nodes."""

from __future__ import annotations

from typing import Any

import numpy as np

# =========================
# Settings / fidelity
# =========================
RAW_DTYPE = np.float64


def as_value(data: Any, *, name: str = "value") -> np.ndarray:
    """Coerce ``data`` into a 1-D ``float64`` frame."""

    array = np.asarray(data, dtype=RAW_DTYPE)
    if array.ndim == 0:
        return array.reshape(1)
    if array.ndim != 1:
        raise ValueError(f"{name}: expected a 1-D frame, got rank {array.ndim}")
    return array


def freeze(value: np.ndarray) -> np.ndarray:
    """Mark ``value`` read-only so consumers cannot mutate shared frames."""

    value.flags.writeable = False
    return value


def frozen_value(data: Any, *, name: str = "value") -> np.ndarray:
    """Coerce ``data`` to a read-only frame without freezing the caller's array.

    Writable arrays handed in by the caller are copied first; read-only
    frames (typically another node's cached value) are shared as they are.
    """

    array = as_value(data, name=name)
    if isinstance(data, np.ndarray) and array.flags.writeable and np.may_share_memory(array, data):
        array = owned_copy(array)
    return freeze(array)


def owned_copy(value: np.ndarray) -> np.ndarray:
    """Return a writable copy of ``value``."""

    return np.array(value, dtype=RAW_DTYPE, copy=True)


def values_equal(a: np.ndarray, b: np.ndarray) -> bool:
    return bool(np.array_equal(np.asarray(a), np.asarray(b)))


__all__ = ["RAW_DTYPE", "as_value", "freeze", "frozen_value", "owned_copy", "values_equal"]
