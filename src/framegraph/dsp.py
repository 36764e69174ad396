"""Numerical kernels used by the feature processors.

These are deterministic functions of their arguments; the graph runtime
treats them as opaque.
"""

from __future__ import annotations

import math
from enum import IntEnum
from typing import List, Sequence, Tuple

import numpy as np

from .values import RAW_DTYPE


class WindowType(IntEnum):
    RECTANGULAR = 0
    HANNING = 1
    HAMMING = 2
    BLACKMAN = 3


# =========================
# Fourier transforms
# =========================


def real_ft(data: Sequence[float]) -> np.ndarray:
    """Return the packed DFT of a real sequence of even length ``n``.

    Layout: ``[Re X0, Re X(n/2), Re X1, Im X1, Re X2, Im X2, ...]`` using the
    positive exponent sign convention, so ``Im`` has the opposite sign of
    :func:`numpy.fft.rfft`. Energies are unaffected by the convention.
    """

    signal = np.asarray(data, dtype=RAW_DTYPE)
    n = signal.shape[0]
    if n < 2 or n % 2:
        raise ValueError(f"real_ft: length must be even and >= 2, got {n}")
    spectrum = np.fft.rfft(signal)
    packed = np.empty(n, dtype=RAW_DTYPE)
    packed[0] = spectrum[0].real
    packed[1] = spectrum[n // 2].real
    packed[2::2] = spectrum[1 : n // 2].real
    packed[3::2] = -spectrum[1 : n // 2].imag
    return packed


def dft_energy(packed: Sequence[float]) -> np.ndarray:
    """Energy per frequency bin of a :func:`real_ft` result (half its size).

    The Nyquist term stored in ``packed[1]`` is dropped.
    """

    dft = np.asarray(packed, dtype=RAW_DTYPE)
    size = dft.shape[0] // 2
    energy = np.empty(size, dtype=RAW_DTYPE)
    energy[0] = dft[0] * dft[0]
    energy[1:] = dft[2 : 2 * size : 2] ** 2 + dft[3 : 2 * size : 2] ** 2
    return energy


def spectral_energy(frame: Sequence[float], log_size: int) -> np.ndarray:
    """Energy spectrum of ``frame`` with ``2**log_size`` output bins.

    The frame is zero padded (or truncated) to an FFT size of
    ``2**(log_size + 1)``.
    """

    if log_size < 0:
        raise ValueError(f"log_size must be non-negative, got {log_size}")
    bins = 1 << int(log_size)
    fft_size = 2 * bins
    samples = np.asarray(frame, dtype=RAW_DTYPE)
    buffer = np.zeros(fft_size, dtype=RAW_DTYPE)
    count = min(fft_size, samples.shape[0])
    buffer[:count] = samples[:count]
    spectrum = np.fft.rfft(buffer)[:bins]
    return spectrum.real ** 2 + spectrum.imag ** 2


# =========================
# Cepstral transforms
# =========================


def generate_dct(rows: int, columns: int) -> np.ndarray:
    """Return the ``rows x columns`` matrix ``T[i, j] = cos(i (2j + 1) pi / columns)``."""

    i = np.arange(rows, dtype=RAW_DTYPE)[:, None]
    j = np.arange(columns, dtype=RAW_DTYPE)[None, :]
    return np.cos(i * (2.0 * j + 1.0) * math.pi / float(columns))


def _filter_coefficients(mid: int) -> np.ndarray:
    coeff = np.zeros(2 * mid, dtype=RAW_DTYPE)
    for i in range(1, mid + 1):
        coeff[i] = i / mid
        coeff[2 * mid - i] = coeff[i]
    return coeff


def generate_filterbank(
    n: int,
    nf: int,
    fs: float | None = None,
    min_freq: float | None = None,
    max_freq: float | None = None,
) -> Tuple[Tuple[int, ...], Tuple[np.ndarray, ...]]:
    """Generate ``nf`` overlapping triangular filters over ``n`` DFT bins.

    With ``mid = points // (nf + 1)`` each filter is ``2 * mid`` wide and
    starts ``mid`` bins after the previous one. For ``n=32, nf=6`` this gives
    indices ``0, 4, 8, ...`` and coefficients
    ``0, .25, .5, .75, 1, .75, .5, .25``.

    Passing ``fs``, ``min_freq`` and ``max_freq`` (all three or none)
    restricts the filters to that frequency range; the default covers
    ``0..fs/2``.

    Returns ``(indices, coefficients)``.
    """

    freqs = (fs, min_freq, max_freq)
    start, end = 0, int(n)
    if all(value is None for value in freqs):
        points = end
    elif any(value is None for value in freqs):
        raise ValueError("generate_filterbank: fs, min_freq and max_freq must be given together")
    else:
        nyquist = float(fs) / 2.0
        lo, hi = float(min_freq), float(max_freq)
        if lo > hi or hi > nyquist or nyquist < 0 or lo < 0 or hi < 0:
            raise ValueError(
                f"bad frequency combination, got fs:{float(fs)}, min:{lo}, max:{hi}"
            )
        start = int(n * lo / nyquist)
        end = int(n * hi / nyquist)
        points = end - start
    if points < nf:
        raise ValueError(
            "not enough DFT points to compute filterbank, "
            f"got start:{start}, end:{end}, nf:{nf}, num points:{points}"
        )
    mid = points // (nf + 1)
    indices: List[int] = []
    filters: List[np.ndarray] = []
    for i in range(nf):
        indices.append(i * mid + start)
        filters.append(_filter_coefficients(mid))
    return tuple(indices), tuple(filters)


def apply_filterbank(
    spectrum: Sequence[float],
    indices: Sequence[int],
    coefficients: Sequence[Sequence[float]],
) -> np.ndarray:
    """Weighted sums ``fb[i] = sum_k coefficients[i][k] * spectrum[indices[i] + k]``."""

    data = np.asarray(spectrum, dtype=RAW_DTYPE)
    out = np.zeros(len(indices), dtype=RAW_DTYPE)
    for i, (start, coeff) in enumerate(zip(indices, coefficients)):
        weights = np.asarray(coeff, dtype=RAW_DTYPE)
        stop = int(start) + weights.shape[0]
        if start < 0 or stop > data.shape[0]:
            raise ValueError(
                f"filter {i} spans bins [{start}, {stop}) outside spectrum of size {data.shape[0]}"
            )
        out[i] = float(np.dot(weights, data[int(start) : stop]))
    return out


# =========================
# Windows
# =========================


def rectangular_window(n: int) -> np.ndarray:
    """w(t) = 1"""

    return np.ones(int(n), dtype=RAW_DTYPE)


def hanning_window(n: int) -> np.ndarray:
    """w(t) = 0.5 - 0.5 cos(2 pi t / T)"""

    t = np.arange(int(n), dtype=RAW_DTYPE)
    return 0.5 * (1.0 - np.cos(2.0 * math.pi * t / n))


def hamming_window(n: int) -> np.ndarray:
    """w(t) = 0.54 - 0.46 cos(2 pi t / T)"""

    t = np.arange(int(n), dtype=RAW_DTYPE)
    return 0.54 - 0.46 * np.cos(2.0 * math.pi * t / n)


def blackman_window(n: int) -> np.ndarray:
    """w(t) = 0.42 - 0.5 cos(2 pi t / T) + 0.08 cos(4 pi t / T)"""

    t = np.arange(int(n), dtype=RAW_DTYPE)
    return 0.42 - 0.5 * np.cos(2.0 * math.pi * t / n) + 0.08 * np.cos(4.0 * math.pi * t / n)


_WINDOWS = {
    WindowType.RECTANGULAR: rectangular_window,
    WindowType.HANNING: hanning_window,
    WindowType.HAMMING: hamming_window,
    WindowType.BLACKMAN: blackman_window,
}


def window(kind: int | str, size: int) -> np.ndarray:
    """Return the window of type ``kind`` (enum value, int or name)."""

    if isinstance(kind, str):
        try:
            kind = WindowType[kind.strip().upper()]
        except KeyError as exc:
            raise ValueError(f"Unknown window type: {kind!r}") from exc
    try:
        factory = _WINDOWS[WindowType(int(kind))]
    except ValueError as exc:
        raise ValueError(f"Unknown window type: {kind!r}") from exc
    return factory(size)


__all__ = [
    "WindowType",
    "apply_filterbank",
    "blackman_window",
    "dft_energy",
    "generate_dct",
    "generate_filterbank",
    "hamming_window",
    "hanning_window",
    "real_ft",
    "rectangular_window",
    "spectral_energy",
    "window",
]
