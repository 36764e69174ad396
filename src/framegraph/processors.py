# processors.py
"""Library of feature processors built on :class:`Proc` and :class:`OneProc`.

Factories return ready-to-wire compute units; ``PROCESSOR_TYPES`` maps the
type names used in configuration files to those factories.
"""

from __future__ import annotations

import math
import sys
from collections.abc import Sequence
from typing import Any, Callable, Dict, TextIO

import numpy as np

from . import dsp
from .errors import DimensionMismatch, EndOfStream, OutOfBounds
from .proc import DEFAULT_CACHE_SIZE, Inputs, OneProc, Proc, iter_frames
from .values import RAW_DTYPE


def _same_size(a: np.ndarray, b: np.ndarray, *, what: str) -> None:
    if a.shape != b.shape:
        raise DimensionMismatch(f"{what}: input sizes differ ({a.shape[0]} vs {b.shape[0]})")


def _stack_stream(inputs: Inputs, *, what: str) -> np.ndarray:
    inputs.check(1)
    frames = [value for _, value in iter_frames(inputs[0])]
    if not frames:
        raise EndOfStream(f"{what}: input stream is empty")
    try:
        return np.vstack(frames)
    except ValueError as exc:
        raise DimensionMismatch(f"{what}: input frames have inconsistent sizes") from exc


# =========================
# Elementwise / combinators
# =========================


def scale(alpha: float, *, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """Multiply each frame of the single input by ``alpha``."""

    alpha = float(alpha)

    def _scale(index: int, inputs: Inputs) -> np.ndarray:
        return inputs.get(index) * alpha

    return Proc(_scale, cache_size=cache_size, name="scale")


def add_scaled(size: int, alpha: float, *, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """Sum every input frame of length ``size`` and scale the result by ``alpha``."""

    size = int(size)
    alpha = float(alpha)

    def _add_scaled(index: int, inputs: Inputs) -> np.ndarray:
        total = np.zeros(size, dtype=RAW_DTYPE)
        for slot in range(len(inputs)):
            frame = inputs.get(index, slot)
            if frame.shape[0] != size:
                raise DimensionMismatch(f"add_scaled: input {slot} has size {frame.shape[0]}, expected {size}")
            total += frame
        return total * alpha

    return Proc(_add_scaled, cache_size=cache_size, name="add_scaled")


def sub(*, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """``input[0] - input[1]``; the second input may be a one-valuer."""

    def _sub(index: int, inputs: Inputs) -> np.ndarray:
        inputs.check(2)
        left = inputs.get(index, 0)
        right = inputs.get(index, 1)
        _same_size(left, right, what="sub")
        return left - right

    return Proc(_sub, cache_size=cache_size, name="sub")


def join(*, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """Concatenate the frames of all inputs in slot order."""

    def _join(index: int, inputs: Inputs) -> np.ndarray:
        if not inputs:
            raise DimensionMismatch("join: no inputs are bound")
        return np.concatenate([inputs.get(index, slot) for slot in range(len(inputs))])

    return Proc(_join, cache_size=cache_size, name="join")


def log(*, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """Natural logarithm of each element."""

    def _log(index: int, inputs: Inputs) -> np.ndarray:
        return np.log(inputs.get(index))

    return Proc(_log, cache_size=cache_size, name="log")


def sum_values(*, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """One-element frame holding the sum of the input frame."""

    def _sum(index: int, inputs: Inputs) -> np.ndarray:
        return np.array([inputs.get(index).sum()], dtype=RAW_DTYPE)

    return Proc(_sum, cache_size=cache_size, name="sum")


def mse(*, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """Per-element squared error ``(a - b)**2 / n`` of two inputs.

    The frame sums to the mean squared error; feed it to :func:`sum_values`
    for the scalar.
    """

    def _mse(index: int, inputs: Inputs) -> np.ndarray:
        inputs.check(2)
        left = inputs.get(index, 0)
        right = inputs.get(index, 1)
        _same_size(left, right, what="mse")
        diff = left - right
        return diff * diff / diff.shape[0]

    return Proc(_mse, cache_size=cache_size, name="mse")


def write_values(
    stream: TextIO | None = None,
    enabled: bool = True,
    *,
    cache_size: int | None = DEFAULT_CACHE_SIZE,
) -> Proc:
    """Pass frames through unchanged, printing each one to ``stream`` (stdout by default)."""

    def _write(index: int, inputs: Inputs) -> np.ndarray:
        value = inputs.get(index)
        if enabled:
            target = sys.stdout if stream is None else stream
            target.write(f"{index} {' '.join(repr(float(x)) for x in value)}\n")
        return value

    return Proc(_write, cache_size=cache_size, name="write_values")


# =========================
# Spectral / cepstral
# =========================


def spectral_energy(log_size: int, *, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """Energy spectrum with ``2**log_size`` bins of each input frame."""

    log_size = int(log_size)

    def _energy(index: int, inputs: Inputs) -> np.ndarray:
        return dsp.spectral_energy(inputs.get(index), log_size)

    return Proc(_energy, cache_size=cache_size, name="spectral_energy")


def filterbank(
    indices: Sequence[int],
    coefficients: Sequence[Sequence[float]],
    *,
    cache_size: int | None = DEFAULT_CACHE_SIZE,
) -> Proc:
    """Apply triangular (or arbitrary) filters starting at ``indices``."""

    starts = tuple(int(i) for i in indices)
    weights = tuple(np.asarray(c, dtype=RAW_DTYPE) for c in coefficients)
    if len(starts) != len(weights):
        raise DimensionMismatch(
            f"filterbank: {len(starts)} indices but {len(weights)} coefficient vectors"
        )

    def _filterbank(index: int, inputs: Inputs) -> np.ndarray:
        try:
            return dsp.apply_filterbank(inputs.get(index), starts, weights)
        except ValueError as exc:
            raise DimensionMismatch(f"filterbank: {exc}") from exc

    return Proc(_filterbank, cache_size=cache_size, name="filterbank")


def dct(in_size: int, out_size: int, *, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """Cepstral DCT: rows ``1..out_size`` of the transform applied to ``in_size`` inputs."""

    in_size = int(in_size)
    out_size = int(out_size)
    matrix = dsp.generate_dct(out_size + 1, in_size)[1:]

    def _dct(index: int, inputs: Inputs) -> np.ndarray:
        frame = inputs.get(index)
        if frame.shape[0] != in_size:
            raise DimensionMismatch(
                f"dct: mismatch in size [{in_size}] and input frame size [{frame.shape[0]}]"
            )
        return matrix @ frame

    return Proc(_dct, cache_size=cache_size, name="dct")


def max_norm(alpha: float, *, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """Decaying running maximum of the frame norm.

    With ``y[n] = norm[n-1] * alpha`` the output is
    ``max(y[n], norm(x[n]))`` evaluated over frames ``0..index``.
    """

    alpha = float(alpha)

    def _max_norm(index: int, inputs: Inputs) -> np.ndarray:
        best = 0.0
        norm = 0.0
        for i in range(index + 1):
            decayed = norm * alpha
            frame = inputs.get(i)
            norm = math.sqrt(float(np.dot(frame, frame)))
            best = max(decayed, norm)
        return np.array([best], dtype=RAW_DTYPE)

    return Proc(_max_norm, cache_size=cache_size, name="max_norm")


def max_xcorr_index(lag_limit: int, *, cache_size: int | None = DEFAULT_CACHE_SIZE) -> Proc:
    """``[lag, value]`` of the maximum cross-correlation for lags ``0..lag_limit-1``."""

    lag_limit = int(lag_limit)

    def _xcorr(index: int, inputs: Inputs) -> np.ndarray:
        inputs.check(2)
        first = inputs.get(index, 0)
        second = inputs.get(index, 1)
        n0, n1 = first.shape[0], second.shape[0]
        best_lag = 0
        best = -sys.float_info.max
        for lag in range(lag_limit):
            end = min(n0, n1 + lag)
            if lag > end:
                break
            total = float(np.dot(first[lag:end], second[: end - lag]))
            if total > best:
                best = total
                best_lag = lag
        return np.array([best_lag, best], dtype=RAW_DTYPE)

    return Proc(_xcorr, cache_size=cache_size, name="max_xcorr_index")


# =========================
# Whole-stream aggregates
# =========================


def max_win() -> OneProc:
    """Elementwise maximum over every frame of the input stream."""

    def _max(inputs: Inputs) -> np.ndarray:
        return _stack_stream(inputs, what="max_win").max(axis=0)

    return OneProc(_max, name="max_win")


def mean() -> OneProc:
    """Elementwise mean over every frame of the input stream."""

    def _mean(inputs: Inputs) -> np.ndarray:
        return _stack_stream(inputs, what="mean").mean(axis=0)

    return OneProc(_mean, name="mean")


# =========================
# Stateful processors
# =========================


class MovingAverage(Proc):
    """Average of the current frame and up to ``window - 1`` preceding ones.

    Near the start of the stream fewer frames are available and the average
    is taken over frames ``0..index``.
    """

    def __init__(self, dim: int, window: int, cache_size: int | None = DEFAULT_CACHE_SIZE) -> None:
        super().__init__(cache_size=cache_size)
        self.dim = int(dim)
        self.window = int(window)
        if self.window <= 0:
            raise ValueError("moving average window must be positive")

    def compute(self, index: int, inputs: Inputs) -> np.ndarray:
        source = self.framer(0)
        start = max(0, index - self.window + 1)
        total = np.zeros(self.dim, dtype=RAW_DTYPE)
        for j in range(start, index + 1):
            frame = source.get(j)
            if frame.shape[0] != self.dim:
                raise DimensionMismatch(f"{self.name}: frame {j} has size {frame.shape[0]}, expected {self.dim}")
            total += frame
        return total / (index + 1 - start)


class Diff(Proc):
    """Weighted symmetric difference used for delta features.

    ``diff[i] = sum_j coeff[j] * (x[i + j + 1] - x[i - j - 1])``. Frames too
    close to the start to look back ``len(coeff)`` frames repeat the next
    frame's result; frames too close to the end raise
    :class:`~framegraph.errors.EndOfStream`.
    """

    def __init__(
        self,
        dim: int,
        coeff: Sequence[float],
        cache_size: int | None = DEFAULT_CACHE_SIZE,
    ) -> None:
        super().__init__(cache_size=cache_size)
        self.dim = int(dim)
        self.coeff = tuple(float(c) for c in coeff)
        if not self.coeff:
            raise ValueError("diff requires at least one coefficient")

    @property
    def delta(self) -> int:
        return len(self.coeff)

    def compute(self, index: int, inputs: Inputs) -> np.ndarray:
        source = self.framer(0)
        result = np.zeros(self.dim, dtype=RAW_DTYPE)
        for j, weight in enumerate(self.coeff):
            plus = source.get(index + j + 1)
            if plus.shape[0] != self.dim:
                raise DimensionMismatch(f"{self.name}: input frame has size {plus.shape[0]}, expected {self.dim}")
            try:
                minus = source.get(index - j - 1)
            except OutOfBounds:
                return self.get(index + 1)
            result += weight * plus
            result -= weight * minus
        return result


class Window(Proc):
    """Cut windowed frames from a whole-stream input available at index 0.

    Frame ``i`` starts at ``i * step``; when ``centered`` the frame is
    centered on ``i * step + step // 2`` and samples before the start of the
    stream are reflected.
    """

    def __init__(
        self,
        step: int,
        size: int,
        kind: int | str = dsp.WindowType.HAMMING,
        centered: bool = True,
        cache_size: int | None = DEFAULT_CACHE_SIZE,
    ) -> None:
        super().__init__(cache_size=cache_size)
        self.step = int(step)
        self.size = int(size)
        if self.step <= 0 or self.size <= 0:
            raise ValueError("window step and size must be positive")
        self.centered = bool(centered)
        self.weights = dsp.window(kind, self.size)

    def compute(self, index: int, inputs: Inputs) -> np.ndarray:
        samples = self.framer(0).get(0)
        total = samples.shape[0]
        if self.size > total:
            raise DimensionMismatch(
                f"{self.name}: window size [{self.size}] is larger than input vector [{total}]"
            )
        start = index * self.step
        if self.centered:
            start = start + self.step // 2 - self.size // 2
        if start + self.size > total:
            raise EndOfStream(f"{self.name}: frame {index} extends past the end of the input")
        if start >= 0:
            frame = samples[start : start + self.size]
        else:
            reflected = samples[-start:0:-1]
            frame = np.concatenate([reflected, samples[: self.size + start]])
        return frame * self.weights


PROCESSOR_TYPES: Dict[str, Callable[..., Any]] = {
    "scale": scale,
    "add_scaled": add_scaled,
    "sub": sub,
    "join": join,
    "log": log,
    "sum": sum_values,
    "mse": mse,
    "write_values": write_values,
    "spectral_energy": spectral_energy,
    "filterbank": filterbank,
    "dct": dct,
    "max_norm": max_norm,
    "max_xcorr_index": max_xcorr_index,
    "max_win": max_win,
    "mean": mean,
    "moving_average": MovingAverage,
    "diff": Diff,
    "window": Window,
}


__all__ = [
    "Diff",
    "MovingAverage",
    "PROCESSOR_TYPES",
    "Window",
    "add_scaled",
    "dct",
    "filterbank",
    "join",
    "log",
    "max_norm",
    "max_win",
    "max_xcorr_index",
    "mean",
    "mse",
    "scale",
    "spectral_energy",
    "sub",
    "sum_values",
    "write_values",
]
