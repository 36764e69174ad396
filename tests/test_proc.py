from __future__ import annotations

import sys
import threading

import numpy as np
import pytest

from framegraph.errors import (
    AlreadyBound,
    CapabilityError,
    CyclicEvaluation,
    DimensionMismatch,
    EndOfStream,
    EvaluationTooDeep,
    NegativeIndex,
    OutOfBounds,
    Unconfigured,
)
from framegraph.proc import Capability, Inputs, OneProc, Proc, capabilities_of, get, iter_frames


def list_source(values) -> Proc:
    frames = [np.atleast_1d(np.asarray(v, dtype=float)) for v in values]

    def _frame(index: int, inputs: Inputs) -> np.ndarray:
        if index >= len(frames):
            raise EndOfStream(f"no frame {index}")
        return frames[index]

    return Proc(_frame, name="source")


class Constant:
    """Duck-typed one-valuer."""

    def __init__(self, value) -> None:
        self.value = np.atleast_1d(np.asarray(value, dtype=float))

    def get_value(self) -> np.ndarray:
        return self.value


def counting_proc():
    calls: list[int] = []

    def _fn(index: int, inputs: Inputs) -> np.ndarray:
        calls.append(index)
        return np.array([float(index) * 2.0])

    return Proc(_fn), calls


def test_each_index_is_computed_at_most_once() -> None:
    proc, calls = counting_proc()
    for index in (5, 2, 5, 2, 7, 5):
        proc.get(index)
    assert sorted(calls) == [2, 5, 7]
    np.testing.assert_array_equal(proc.get(5), [10.0])


def test_negative_index_short_circuits() -> None:
    proc, calls = counting_proc()
    with pytest.raises(NegativeIndex) as excinfo:
        proc.get(-1)
    assert isinstance(excinfo.value, OutOfBounds)
    assert calls == []
    assert len(proc.cache) == 0


def test_unconfigured_proc_raises_but_negative_wins() -> None:
    proc = Proc()
    with pytest.raises(Unconfigured):
        proc.get(0)
    with pytest.raises(NegativeIndex):
        proc.get(-2)


def test_failures_are_not_cached() -> None:
    attempts: list[int] = []

    def _flaky(index: int, inputs: Inputs) -> np.ndarray:
        attempts.append(index)
        if len(attempts) == 1:
            raise EndOfStream("not yet")
        return np.array([1.0])

    proc = Proc(_flaky)
    with pytest.raises(EndOfStream):
        proc.get(0)
    assert 0 not in proc.cache
    np.testing.assert_array_equal(proc.get(0), [1.0])
    assert attempts == [0, 0]


def test_cached_values_are_read_only() -> None:
    proc, _ = counting_proc()
    value = proc.get(1)
    assert not value.flags.writeable
    with pytest.raises(ValueError):
        value[0] = 0.0


def test_reset_forces_recomputation() -> None:
    proc, calls = counting_proc()
    proc.get(3)
    proc.reset()
    assert len(proc.cache) == 0
    proc.get(3)
    assert calls == [3, 3]


def test_cache_size_bounds_retained_frames() -> None:
    proc = Proc(lambda index, inputs: [float(index)], cache_size=2)
    for index in range(5):
        proc.get(index)
    assert len(proc.cache) == 2
    assert proc.cache.indices() == (3, 4)


def test_inputs_can_only_be_bound_once() -> None:
    proc = Proc(lambda index, inputs: inputs.get(index))
    proc.set_inputs(list_source([1, 2]))
    with pytest.raises(AlreadyBound):
        proc.set_inputs(list_source([3]))


def test_inputs_require_value_capability() -> None:
    proc = Proc()
    with pytest.raises(CapabilityError):
        proc.set_inputs(object())


def test_self_request_of_in_flight_index_is_detected() -> None:
    proc = Proc(lambda index, inputs: inputs.get(index))
    proc.set_inputs(proc)
    with pytest.raises(CyclicEvaluation):
        proc.get(2)
    with pytest.raises(CyclicEvaluation):
        proc.get(2)


def test_capabilities_are_declared_or_inferred() -> None:
    assert capabilities_of(Proc()) == Capability.FRAMER | Capability.INPUTTER | Capability.RESETTER
    assert capabilities_of(OneProc()) == Capability.ONE_VALUER | Capability.INPUTTER | Capability.RESETTER
    assert capabilities_of(Constant(1.0)) == Capability.ONE_VALUER
    assert capabilities_of(object()) == Capability.NONE


def test_uniform_get_dispatches_by_capability() -> None:
    source = list_source([[1, 2], [3, 4]])
    np.testing.assert_array_equal(get(source, 1), [3.0, 4.0])
    np.testing.assert_array_equal(get(Constant([7.0]), 99), [7.0])
    with pytest.raises(CapabilityError):
        get(object(), 0)


def test_inputs_helpers() -> None:
    inputs = Inputs((list_source([1, 2]), Constant(5.0)))
    np.testing.assert_array_equal(inputs.get(1, 0), [2.0])
    np.testing.assert_array_equal(inputs.get(0, 1), [5.0])
    assert inputs.check(2) is inputs
    with pytest.raises(DimensionMismatch):
        inputs.check(3)
    with pytest.raises(DimensionMismatch):
        inputs.get(0, 4)
    with pytest.raises(DimensionMismatch):
        Inputs().get(0)


def test_one_proc_computes_once_per_stream() -> None:
    runs: list[int] = []

    def _total(inputs: Inputs) -> np.ndarray:
        runs.append(1)
        return sum(value for _, value in iter_frames(inputs[0]))

    node = OneProc(_total)
    node.set_inputs(list_source([1, 2, 3]))
    np.testing.assert_array_equal(node.get_value(), [6.0])
    np.testing.assert_array_equal(node.get_value(), [6.0])
    assert len(runs) == 1
    assert node.computed
    node.reset()
    assert not node.computed
    node.get_value()
    assert len(runs) == 2


def test_unconfigured_one_proc() -> None:
    with pytest.raises(Unconfigured):
        OneProc().get_value()


def test_iter_frames_stops_at_end_of_stream() -> None:
    source = list_source([1, 2, 3])
    indices = [index for index, _ in iter_frames(source)]
    assert indices == [0, 1, 2]
    assert [index for index, _ in iter_frames(source, start=2)] == [2]


def test_iter_frames_requires_indexed_access() -> None:
    with pytest.raises(CapabilityError):
        list(iter_frames(Constant(1.0)))


def test_cold_recurrence_past_stack_limit_raises_graph_error() -> None:
    def _count(index: int, inputs: Inputs) -> np.ndarray:
        if index == 0:
            return np.array([0.0])
        return inputs.get(index - 1) + 1.0

    proc = Proc(_count, cache_size=None)
    proc.set_inputs(proc)
    depth = sys.getrecursionlimit()
    with pytest.raises(EvaluationTooDeep):
        proc.get(depth)
    assert isinstance(EvaluationTooDeep("x"), CyclicEvaluation)

    # A forward sweep keeps each request one level deep.
    for index in range(depth):
        proc.get(index)
    np.testing.assert_array_equal(proc.get(depth), [float(depth)])


def test_returned_arrays_stay_writable_for_their_owner() -> None:
    owned = np.array([1.0, 2.0])
    proc = Proc(lambda index, inputs: owned)
    value = proc.get(0)
    assert not value.flags.writeable
    assert owned.flags.writeable
    owned[0] = 5.0
    np.testing.assert_array_equal(proc.get(0), [1.0, 2.0])

    proc.set_cache(1, owned)
    assert owned.flags.writeable
    np.testing.assert_array_equal(proc.get(1), [5.0, 2.0])


def test_one_proc_allows_concurrent_callers() -> None:
    started = threading.Event()
    release = threading.Event()
    runs: list[int] = []

    def _slow(inputs: Inputs) -> np.ndarray:
        runs.append(1)
        if len(runs) == 1:
            started.set()
            release.wait(5.0)
        return np.array([3.0])

    node = OneProc(_slow)
    results: list[np.ndarray] = []
    worker = threading.Thread(target=lambda: results.append(node.get_value()))
    worker.start()
    assert started.wait(5.0)
    try:
        np.testing.assert_array_equal(node.get_value(), [3.0])
    finally:
        release.set()
        worker.join(5.0)
    assert not worker.is_alive()
    np.testing.assert_array_equal(results[0], [3.0])
