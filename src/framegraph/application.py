"""High level feature extraction orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import numpy as np

from .config import AppConfig, load_configuration
from .errors import OutOfBounds
from .graph import Graph
from .proc import Capability
from .speech import COMBINED, build_frontend
from .values import RAW_DTYPE
from .wav import Waveform, WaveformSource, iter_waveforms

SOURCE_NAME = "wav"


@dataclass(slots=True)
class FeatureExtractor:
    """Runtime container for a feature graph and its waveform source.

    The extractor builds either the cepstral front-end or, when the
    configuration carries an explicit ``graph`` section, a graph assembled
    from processor type names. In the latter case the waveform source is
    registered as ``wav`` so connections can reference it.
    """

    config: AppConfig
    graph: Graph
    source: WaveformSource
    outputs: Tuple[str, ...]

    @classmethod
    def from_config(cls, config: AppConfig, *, input_path: str | Path | None = None) -> "FeatureExtractor":
        frontend = config.frontend
        source = WaveformSource(
            input_path,
            sample_rate=frontend.sample_rate,
            zero_mean=frontend.zero_mean,
        )
        if config.graph is not None:
            graph = Graph.from_config(config.graph, name="custom", sources={SOURCE_NAME: source})
            if not graph.outputs:
                raise ValueError("graph.outputs must name at least one node to extract")
        else:
            graph = build_frontend("speech", source, frontend)
        outputs = graph.outputs or (COMBINED,)
        return cls(config=config, graph=graph, source=source, outputs=tuple(outputs))

    @classmethod
    def from_file(cls, path: str | Path, *, input_path: str | Path | None = None) -> "FeatureExtractor":
        return cls.from_config(load_configuration(path), input_path=input_path)

    def load(self, waveform: Waveform) -> None:
        """Start a new stream with ``waveform``."""

        self.graph.reset()
        self.source.load(waveform)

    def extract(self) -> np.ndarray:
        """Pull every frame of the output nodes for the loaded waveform.

        Frames of multiple outputs are concatenated; extraction stops at the
        first index any output cannot provide. When every output is a
        whole-stream aggregate the result is a single row. Returns
        ``(frames, dim)``.
        """

        handles = self.graph.by_names(*self.outputs)
        framed = any(Capability.FRAMER in handle.capabilities for handle in handles)
        rows: List[np.ndarray] = []
        index = 0
        while True:
            try:
                parts = [handle.value(index) for handle in handles]
            except OutOfBounds:
                break
            rows.append(np.concatenate(parts))
            if not framed:
                break
            index += 1
        if not rows:
            return np.empty((0, 0), dtype=RAW_DTYPE)
        return np.vstack(rows)

    def process(self, path: str | Path | None = None) -> Iterator[Tuple[str, np.ndarray]]:
        """Yield ``(waveform id, features)`` for every waveform under ``path``."""

        target: Optional[Path] = Path(path) if path is not None else self.source.path
        if target is None:
            raise ValueError("no input path was given")
        for waveform in iter_waveforms(target, sample_rate=self.source.sample_rate):
            self.load(waveform)
            yield waveform.id, self.extract()

    def summary(self) -> str:
        frontend = self.config.frontend
        lines = [
            f"Sample rate: {frontend.sample_rate} Hz",
            f"Window: {frontend.window_type} size={frontend.window_size} step={frontend.window_step}",
            f"Cache size: {frontend.cache_size if frontend.cache_size is not None else 'unbounded'}",
            f"Outputs: {', '.join(self.outputs)}",
            self.graph.summary(),
        ]
        return "\n".join(lines)


__all__ = ["FeatureExtractor", "SOURCE_NAME"]
