"""Cepstral feature front-end for speech waveforms.

The graph computes short-term energy spectra from windowed frames, reduces
them with a filterbank, takes logs and finally applies a DCT to obtain the
cepstrum. Energy, zero-mean cepstra and their deltas are derived from those
nodes and the requested features are joined into a single ``combined``
vector per frame.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

from . import dsp, processors
from .config import FrontEndConfig
from .graph import Graph

# Hand-tuned 18 channel mel filterbank for 8 kHz audio and a 256 bin spectrum.
MEL_FILTERBANK_INDICES: Tuple[int, ...] = (
    10, 11, 14, 17, 20, 23, 27, 30, 33, 36, 40, 45, 50, 56, 62, 69, 76, 84,
)
MEL_FILTERBANK_COEFFICIENTS: Tuple[Tuple[float, ...], ...] = (
    (1.0, 1.0, 1.0, 1.0, 0.66, 0.33),
    (0.33, 0.66, 1.0, 1.0, 1.0, 1.0, 0.66, 0.33),
    (0.33, 0.66, 1.0, 1.0, 1.0, 1.0, 0.66, 0.33),
    (0.33, 0.66, 1.0, 1.0, 1.0, 1.0, 0.75, 0.5, 0.25),
    (0.33, 0.66, 1.0, 1.0, 1.0, 1.0, 1.0, 0.66, 0.33),
    (0.25, 0.5, 0.75, 1.0, 1.0, 1.0, 1.0, 0.66, 0.33),
    (0.33, 0.66, 1.0, 1.0, 1.0, 1.0, 0.66, 0.33),
    (0.33, 0.66, 1.0, 1.0, 1.0, 1.0, 0.75, 0.5, 0.25),
    (0.33, 0.66, 1.0, 1.0, 1.0, 1.0, 1.0, 0.8, 0.6, 0.4, 0.2),
    (0.25, 0.5, 0.75, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 0.8, 0.6, 0.4, 0.2),
    (0.2, 0.4, 0.6, 0.8, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 0.83, 0.66, 0.5, 0.33, 0.16),
    (0.2, 0.4, 0.6, 0.8, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 0.83, 0.66, 0.5, 0.33, 0.16),
    (0.16, 0.33, 0.5, 0.66, 0.83, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 0.85, 0.71, 0.57, 0.42, 0.28, 0.14),
    (0.16, 0.33, 0.5, 0.66, 0.83, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 0.85, 0.71, 0.57, 0.42, 0.28, 0.14),
    (
        0.14, 0.28, 0.42, 0.57, 0.71, 0.85, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0,
        0.875, 0.75, 0.625, 0.5, 0.375, 0.25, 0.125,
    ),
    (
        0.142, 0.285, 0.428, 0.571, 0.714, 0.857, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0,
        0.88, 0.77, 0.66, 0.55, 0.44, 0.33, 0.22, 0.11,
    ),
    (
        0.125, 0.25, 0.375, 0.5, 0.625, 0.75, 0.875, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0,
        1.0, 0.88, 0.77, 0.66, 0.55, 0.44, 0.33, 0.22, 0.11,
    ),
    (
        0.11, 0.22, 0.33, 0.44, 0.55, 0.66, 0.77, 0.88, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0,
        1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0,
    ),
)

COMBINED = "combined"


def build_frontend(
    name: str,
    source: Any,
    config: FrontEndConfig,
    *,
    filterbank: Tuple[Sequence[int], Sequence[Sequence[float]]] | None = None,
) -> Graph:
    """Wire the cepstral front-end around ``source``.

    ``source`` must return the whole waveform at index 0. ``filterbank``
    overrides the generated triangular filters with explicit
    ``(indices, coefficients)``, e.g. the mel tables above.
    """

    cache_size = config.cache_size
    if filterbank is None:
        indices, coefficients = dsp.generate_filterbank(
            1 << config.log_fft_size,
            config.filterbank_size,
            config.sample_rate,
            config.filterbank_min_freq,
            config.max_freq,
        )
    else:
        indices, coefficients = filterbank

    graph = Graph(name)
    cep = graph.chain(
        graph.add("cepstrum", processors.dct(len(indices), config.cepstrum_size, cache_size=cache_size)),
        graph.add("log filterbank", processors.log(cache_size=cache_size)),
        graph.add("filterbank", processors.filterbank(indices, coefficients, cache_size=cache_size)),
        graph.add("spectrum", processors.spectral_energy(config.log_fft_size, cache_size=cache_size)),
        graph.add(
            "windowed",
            processors.Window(
                config.window_step,
                config.window_size,
                config.window_type,
                True,
                cache_size=cache_size,
            ),
        ),
        graph.add("wav", source),
    )

    mean_cep = graph.connect(graph.add("mean cepstrum", processors.mean()), cep)
    zm_cep = graph.connect(graph.add("zm cepstrum", processors.sub(cache_size=cache_size)), cep, mean_cep)

    # Energy features.
    egy = graph.connect(
        graph.add("cepstral energy", processors.sum_values(cache_size=cache_size)),
        "log filterbank",
    )
    max_egy = graph.connect(graph.add("max cepstral energy", processors.max_win()), egy)
    norm_egy = graph.connect(
        graph.add("normalized cepstral energy", processors.sub(cache_size=cache_size)),
        egy,
        max_egy,
    )

    # Deltas.
    d_cep = graph.connect(
        graph.add("delta cepstrum", processors.Diff(config.cepstrum_size, config.delta_coeff, cache_size)),
        zm_cep,
    )
    graph.connect(
        graph.add("delta delta cepstrum", processors.Diff(config.cepstrum_size, config.delta_coeff, cache_size)),
        d_cep,
    )
    d_egy = graph.connect(
        graph.add("delta energy", processors.Diff(1, config.delta_coeff, cache_size)),
        norm_egy,
    )
    graph.connect(
        graph.add("delta delta energy", processors.Diff(1, config.delta_coeff, cache_size)),
        d_egy,
    )

    features = graph.by_names(*config.features)
    graph.connect(graph.add(COMBINED, processors.join(cache_size=cache_size)), *features)
    graph.outputs = (COMBINED,)
    return graph


__all__ = [
    "COMBINED",
    "MEL_FILTERBANK_COEFFICIENTS",
    "MEL_FILTERBANK_INDICES",
    "build_frontend",
]
