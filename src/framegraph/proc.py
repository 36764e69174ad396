"""Compute units and the capability contract shared by every graph node.

A node exposes some subset of four capabilities:

* ``FRAMER``: ``get(index)`` returns the frame at ``index``.
* ``ONE_VALUER``: ``get_value()`` returns a single aggregate for the stream.
* ``INPUTTER``: ``set_inputs(*nodes)`` binds ordered upstream providers.
* ``RESETTER``: ``reset()`` rewinds per-stream state.

:class:`Proc` pairs a compute function with a :class:`FrameCache` so that a
frame is computed at most once per stream regardless of request order. The
compute function receives ``(index, inputs)`` and may request any upstream
index, including earlier indices of the node itself when it is wired with a
self-edge. Such recurrences terminate only when every self-request targets a
strictly smaller index; re-entering an index that is still being computed
raises :class:`CyclicEvaluation`. A cold request whose recursion outgrows the
interpreter stack raises :class:`EvaluationTooDeep`; sweeping the earlier
indices first keeps every step shallow.
"""

from __future__ import annotations

import operator
import time
from enum import Flag, auto
from threading import get_ident
from typing import Any, Callable, Iterable, Optional, Set, Tuple

import numpy as np

from .cache import FrameCache
from .diagnostics import log_trace, trace_logging_enabled
from .errors import (
    AlreadyBound,
    CapabilityError,
    CyclicEvaluation,
    DimensionMismatch,
    EvaluationTooDeep,
    GraphError,
    NegativeIndex,
    OutOfBounds,
    Unconfigured,
)
from .values import frozen_value

DEFAULT_CACHE_SIZE = 1000


class Capability(Flag):
    NONE = 0
    FRAMER = auto()
    ONE_VALUER = auto()
    INPUTTER = auto()
    RESETTER = auto()


VALUE_CAPABILITIES = Capability.FRAMER | Capability.ONE_VALUER


def capabilities_of(node: Any) -> Capability:
    """Return the capability set ``node`` implements.

    Nodes may declare a ``capabilities`` attribute; otherwise the set is
    derived from the methods they expose.
    """

    declared = getattr(node, "capabilities", None)
    if isinstance(declared, Capability):
        return declared
    caps = Capability.NONE
    if callable(getattr(node, "get", None)):
        caps |= Capability.FRAMER
    if callable(getattr(node, "get_value", None)):
        caps |= Capability.ONE_VALUER
    if callable(getattr(node, "set_inputs", None)):
        caps |= Capability.INPUTTER
    if callable(getattr(node, "reset", None)):
        caps |= Capability.RESETTER
    return caps


def get(node: Any, index: int) -> np.ndarray:
    """Fetch a value from ``node`` regardless of its access style.

    Framers are asked for ``index``; one-valuers return their aggregate and
    ignore the index.
    """

    caps = capabilities_of(node)
    if Capability.FRAMER in caps:
        return node.get(index)
    if Capability.ONE_VALUER in caps:
        return node.get_value()
    raise CapabilityError(f"{_label(node)} exposes neither get(index) nor get_value()")


def _label(node: Any) -> str:
    name = getattr(node, "name", None)
    return str(name) if name else type(node).__name__


def _trace(message: str) -> None:
    if trace_logging_enabled():
        log_trace(f"{time.time()} {message}")


class Inputs(tuple):
    """Ordered upstream providers handed to compute functions."""

    __slots__ = ()

    def get(self, index: int, slot: int = 0) -> np.ndarray:
        """Return the value of input ``slot`` at ``index``."""

        if not self:
            raise DimensionMismatch("no inputs are bound")
        try:
            node = self[slot]
        except IndexError as exc:
            raise DimensionMismatch(f"input slot {slot} requested but only {len(self)} bound") from exc
        return get(node, index)

    def check(self, count: int) -> "Inputs":
        """Require exactly ``count`` bound inputs."""

        if len(self) != count:
            raise DimensionMismatch(f"expected {count} inputs, got {len(self)}")
        return self


FrameFunction = Callable[[int, Inputs], Any]
AggregateFunction = Callable[[Inputs], Any]


class _InputBinding:
    """Single-assignment positional input binding."""

    def __init__(self, name: Optional[str]) -> None:
        self.name = name or type(self).__name__
        self._inputs = Inputs()
        self._bound = False

    @property
    def inputs(self) -> Inputs:
        return self._inputs

    @property
    def bound(self) -> bool:
        return self._bound

    def set_inputs(self, *nodes: Any) -> None:
        if self._bound:
            raise AlreadyBound(f"{self.name}: inputs are already bound")
        for slot, node in enumerate(nodes):
            if not capabilities_of(node) & VALUE_CAPABILITIES:
                raise CapabilityError(
                    f"{self.name}: input {slot} ({_label(node)}) cannot provide values"
                )
        self._inputs = Inputs(nodes)
        self._bound = True

    def framer(self, slot: int = 0) -> Any:
        """Return input ``slot``, which must support indexed access."""

        try:
            node = self._inputs[slot]
        except IndexError as exc:
            raise DimensionMismatch(
                f"{self.name}: input slot {slot} requested but only {len(self._inputs)} bound"
            ) from exc
        if Capability.FRAMER not in capabilities_of(node):
            raise CapabilityError(f"{self.name}: input {slot} ({_label(node)}) is not indexable")
        return node


class Proc(_InputBinding):
    """Memoising per-frame compute unit."""

    capabilities = Capability.FRAMER | Capability.INPUTTER | Capability.RESETTER

    def __init__(
        self,
        fn: Optional[FrameFunction] = None,
        *,
        cache_size: int | None = DEFAULT_CACHE_SIZE,
        synchronized: bool = False,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(name)
        self._fn = fn
        self._cache = FrameCache(cache_size, synchronized=synchronized)
        self._in_flight: Set[Tuple[int, int]] = set()

    @property
    def cache(self) -> FrameCache:
        return self._cache

    def get(self, index: int) -> np.ndarray:
        index = operator.index(index)
        if index < 0:
            raise NegativeIndex(f"{self.name}: negative frame index {index}")
        value, found = self._cache.get(index)
        if found:
            return value
        key = (get_ident(), index)
        if key in self._in_flight:
            raise CyclicEvaluation(
                f"{self.name}: frame {index} was requested while it is being computed"
            )
        self._in_flight.add(key)
        try:
            result = self.compute(index, self._inputs)
        except RecursionError as exc:
            raise EvaluationTooDeep(
                f"{self.name}: frame {index} recursed past the interpreter stack limit"
            ) from exc
        except GraphError as exc:
            _trace(f"{self.name}.get index={index} failed {type(exc).__name__}")
            raise
        finally:
            self._in_flight.discard(key)
        value = frozen_value(result, name=self.name)
        self._cache.set(index, value)
        _trace(f"{self.name}.get index={index} computed size={value.shape[0]}")
        return value

    def compute(self, index: int, inputs: Inputs) -> Any:
        """Produce the frame at ``index``; override in subclasses."""

        if self._fn is None:
            raise Unconfigured(f"{self.name}: no compute function is bound")
        return self._fn(index, inputs)

    def get_cache(self, index: int) -> Tuple[np.ndarray | None, bool]:
        return self._cache.get(index)

    def set_cache(self, index: int, value: Any) -> None:
        self._cache.set(index, frozen_value(value, name=self.name))

    def reset(self) -> None:
        self._cache.clear()
        self._in_flight.clear()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, inputs={len(self._inputs)}, cached={len(self._cache)})"


class OneProc(_InputBinding):
    """Compute unit producing one aggregate value for the whole stream.

    The function usually scans its input from index 0 until
    :class:`~framegraph.errors.OutOfBounds`; the result is cached until
    :meth:`reset`.
    """

    capabilities = Capability.ONE_VALUER | Capability.INPUTTER | Capability.RESETTER

    def __init__(self, fn: Optional[AggregateFunction] = None, *, name: Optional[str] = None) -> None:
        super().__init__(name)
        self._fn = fn
        self._value: np.ndarray | None = None
        self._computing: Set[int] = set()

    @property
    def computed(self) -> bool:
        return self._value is not None

    def get_value(self) -> np.ndarray:
        if self._value is not None:
            return self._value
        caller = get_ident()
        if caller in self._computing:
            raise CyclicEvaluation(f"{self.name}: aggregate requested while it is being computed")
        self._computing.add(caller)
        try:
            result = self.compute(self._inputs)
        except GraphError as exc:
            _trace(f"{self.name}.get_value failed {type(exc).__name__}")
            raise
        finally:
            self._computing.discard(caller)
        self._value = frozen_value(result, name=self.name)
        _trace(f"{self.name}.get_value computed size={self._value.shape[0]}")
        return self._value

    def compute(self, inputs: Inputs) -> Any:
        if self._fn is None:
            raise Unconfigured(f"{self.name}: no compute function is bound")
        return self._fn(inputs)

    def reset(self) -> None:
        self._value = None
        self._computing.clear()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, inputs={len(self._inputs)}, computed={self.computed})"


def iter_frames(node: Any, start: int = 0) -> Iterable[Tuple[int, np.ndarray]]:
    """Yield ``(index, value)`` from ``start`` until the node runs out of data."""

    if Capability.FRAMER not in capabilities_of(node):
        raise CapabilityError(f"{_label(node)} does not support indexed access")
    index = start
    while True:
        try:
            value = get(node, index)
        except OutOfBounds:
            return
        yield index, value
        index += 1


__all__ = [
    "Capability",
    "DEFAULT_CACHE_SIZE",
    "Inputs",
    "OneProc",
    "Proc",
    "VALUE_CAPABILITIES",
    "capabilities_of",
    "get",
    "iter_frames",
]
