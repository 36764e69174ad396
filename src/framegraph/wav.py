"""Waveform container and the waveform source node.

Waveforms are read from streams of JSON objects::

    {"id": "utt-001", "samples": [0.1, 0.2, ...], "fs": 8000}

stored in a plain or gzip-compressed file, or in every file of a directory.
"""

from __future__ import annotations

import gzip
import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Mapping

import numpy as np

from .errors import EndOfStream, NegativeIndex, Unconfigured
from .proc import Capability
from .values import RAW_DTYPE, freeze


@dataclass(slots=True)
class Waveform:
    """Digital samples partitioned into (possibly overlapping) frames.

    Frame ``i`` holds ``samples[i * step_size : i * step_size + frame_size]``.
    A ``frame_size`` below 1 yields a single frame with the whole waveform.
    """

    id: str
    samples: np.ndarray
    sample_rate: float = 0.0
    frame_size: int = 0
    step_size: int = 0

    def __post_init__(self) -> None:
        samples = np.array(self.samples, dtype=RAW_DTYPE)
        if samples.ndim != 1:
            raise ValueError(f"waveform '{self.id}': samples must be 1-D, got rank {samples.ndim}")
        self.samples = freeze(samples)
        self.sample_rate = float(self.sample_rate)
        if self.frame_size < 1:
            self.frame_size = samples.shape[0]
            self.step_size = max(samples.shape[0], 1)
        elif self.step_size < 1:
            raise ValueError(f"waveform '{self.id}': step_size must be positive when frame_size is set")

    def __len__(self) -> int:
        return self.samples.shape[0]

    @property
    def num_frames(self) -> int:
        n = self.samples.shape[0]
        if n == 0 or n < self.frame_size:
            return 0
        return (n - self.frame_size) // self.step_size + 1

    @property
    def mean(self) -> float:
        if not len(self):
            return 0.0
        return float(self.samples.sum() / len(self))

    @property
    def sd(self) -> float:
        n = len(self)
        if not n:
            return 0.0
        mu = self.samples.sum() / n
        return math.sqrt(max(float(np.dot(self.samples, self.samples) / n - mu * mu), 0.0))

    def frame(self, index: int) -> np.ndarray:
        if index < 0:
            raise NegativeIndex(f"waveform '{self.id}': negative frame index {index}")
        n = self.samples.shape[0]
        start = index * self.step_size
        end = start + self.frame_size
        if start >= n or end > n:
            raise EndOfStream(f"waveform '{self.id}': frame {index} is past the end of {n} samples")
        return self.samples[start:end]

    def zero_mean(self) -> "Waveform":
        """Return a copy with the sample mean subtracted."""

        return Waveform(
            id=self.id,
            samples=self.samples - self.mean,
            sample_rate=self.sample_rate,
            frame_size=self.frame_size,
            step_size=self.step_size,
        )

    @classmethod
    def from_json(
        cls,
        data: Mapping[str, Any],
        *,
        frame_size: int = 0,
        step_size: int = 0,
    ) -> "Waveform":
        try:
            wav_id = str(data["id"])
            samples = data["samples"]
        except KeyError as exc:
            raise ValueError(f"waveform object is missing {exc.args[0]!r}") from exc
        return cls(
            id=wav_id,
            samples=samples,
            sample_rate=float(data.get("fs", 0.0) or 0.0),
            frame_size=frame_size,
            step_size=step_size,
        )


def _waveform_files(path: Path) -> List[Path]:
    if path.is_dir():
        return sorted(child for child in path.iterdir() if child.is_file())
    if not path.exists():
        raise FileNotFoundError(f"waveform path does not exist: {path}")
    return [path]


def _json_objects(path: Path) -> Iterator[Any]:
    opener = gzip.open if path.suffix == ".gz" else open
    with opener(path, "rt", encoding="utf-8") as fh:
        text = fh.read()
    decoder = json.JSONDecoder()
    pos = 0
    length = len(text)
    while True:
        while pos < length and text[pos].isspace():
            pos += 1
        if pos >= length:
            return
        try:
            obj, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path}: invalid JSON near offset {pos}: {exc.msg}") from exc
        yield obj


def iter_waveforms(
    path: str | Path,
    *,
    sample_rate: float = 0.0,
    frame_size: int = 0,
    step_size: int = 0,
) -> Iterator[Waveform]:
    """Yield every waveform stored under ``path``.

    When both ``sample_rate`` and a waveform's ``fs`` are positive they must
    match; resampling is not supported.
    """

    for file_path in _waveform_files(Path(path)):
        for obj in _json_objects(file_path):
            if not isinstance(obj, Mapping):
                raise ValueError(f"{file_path}: expected JSON objects, got {type(obj).__name__}")
            waveform = Waveform.from_json(obj, frame_size=frame_size, step_size=step_size)
            if sample_rate > 0 and waveform.sample_rate > 0 and waveform.sample_rate != sample_rate:
                raise ValueError(
                    f"waveform '{waveform.id}': sampling rate is {waveform.sample_rate}, expected {float(sample_rate)}"
                )
            yield waveform


class WaveformSource:
    """Source node exposing the frames of the current waveform.

    ``next()`` loads waveforms from ``path`` one at a time; ``load()`` feeds
    one directly. With ``zero_mean`` the sample mean is removed on load, while
    :attr:`mean` and :attr:`sd` keep describing the samples as read.
    """

    capabilities = Capability.FRAMER | Capability.RESETTER

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        sample_rate: float = 0.0,
        frame_size: int = 0,
        step_size: int = 0,
        zero_mean: bool = False,
        name: str = "source",
    ) -> None:
        self.name = name
        self.path = Path(path) if path is not None else None
        self.sample_rate = float(sample_rate)
        self.frame_size = int(frame_size)
        self.step_size = int(step_size)
        self.zero_mean = bool(zero_mean)
        self._iterator: Iterator[Waveform] | None = None
        self._waveform: Waveform | None = None
        self._mean = 0.0
        self._sd = 0.0
        self._cursor = 0

    @property
    def waveform(self) -> Waveform:
        if self._waveform is None:
            raise Unconfigured(f"{self.name}: no waveform is loaded")
        return self._waveform

    @property
    def id(self) -> str:
        return self.waveform.id

    @property
    def num_frames(self) -> int:
        return self.waveform.num_frames

    @property
    def mean(self) -> float:
        return self._mean

    @property
    def sd(self) -> float:
        return self._sd

    def load(self, waveform: Waveform) -> Waveform:
        if waveform.frame_size != self.frame_size and self.frame_size > 0:
            waveform = Waveform(
                id=waveform.id,
                samples=waveform.samples,
                sample_rate=waveform.sample_rate,
                frame_size=self.frame_size,
                step_size=self.step_size,
            )
        self._mean = waveform.mean
        self._sd = waveform.sd
        self._waveform = waveform.zero_mean() if self.zero_mean else waveform
        self._cursor = 0
        return self._waveform

    def next(self) -> Waveform:
        """Load the next waveform; raises ``StopIteration`` when none are left."""

        if self.path is None:
            raise Unconfigured(f"{self.name}: no waveform path was given")
        if self._iterator is None:
            self._iterator = iter_waveforms(
                self.path,
                sample_rate=self.sample_rate,
                frame_size=self.frame_size,
                step_size=self.step_size,
            )
        return self.load(next(self._iterator))

    def __iter__(self) -> Iterator[Waveform]:
        while True:
            try:
                yield self.next()
            except StopIteration:
                return

    def get(self, index: int) -> np.ndarray:
        return self.waveform.frame(index)

    def next_frame(self) -> np.ndarray:
        """Return frames sequentially; raises ``EndOfStream`` at the end."""

        frame = self.waveform.frame(self._cursor)
        self._cursor += 1
        return frame

    def reset(self) -> None:
        self._cursor = 0

    def close(self) -> None:
        if self._iterator is not None:
            self._iterator.close()
            self._iterator = None

    def __repr__(self) -> str:
        current = self._waveform.id if self._waveform is not None else None
        return f"WaveformSource(name={self.name!r}, path={self.path!s}, waveform={current!r})"


__all__ = ["Waveform", "WaveformSource", "iter_waveforms"]
