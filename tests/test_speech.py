from __future__ import annotations

import numpy as np
import pytest

from framegraph.config import FrontEndConfig
from framegraph.errors import EndOfStream, UnknownName
from framegraph.proc import iter_frames
from framegraph.speech import (
    COMBINED,
    MEL_FILTERBANK_COEFFICIENTS,
    MEL_FILTERBANK_INDICES,
    build_frontend,
)
from framegraph.wav import Waveform, WaveformSource


def synthetic_waveform(n: int = 1000, seed: int = 7) -> Waveform:
    rng = np.random.default_rng(seed)
    t = np.arange(n) / 8000.0
    samples = np.sin(2 * np.pi * 440.0 * t) + 0.1 * rng.standard_normal(n)
    return Waveform("synthetic", samples, sample_rate=8000.0)


def loaded_source() -> WaveformSource:
    source = WaveformSource(sample_rate=8000.0)
    source.load(synthetic_waveform())
    return source


def test_frontend_wiring() -> None:
    graph = build_frontend("speech", loaded_source(), FrontEndConfig())
    expected = {
        "wav",
        "windowed",
        "spectrum",
        "filterbank",
        "log filterbank",
        "cepstrum",
        "mean cepstrum",
        "zm cepstrum",
        "cepstral energy",
        "max cepstral energy",
        "normalized cepstral energy",
        "delta cepstrum",
        "delta delta cepstrum",
        "delta energy",
        "delta delta energy",
        COMBINED,
    }
    assert {node.name for node in graph} == expected
    assert graph.outputs == (COMBINED,)
    assert [n.name for n in graph.inputs_of("zm cepstrum")] == ["cepstrum", "mean cepstrum"]
    assert [n.name for n in graph.inputs_of(COMBINED)] == list(FrontEndConfig().features)


def test_frontend_frame_counts() -> None:
    graph = build_frontend("speech", loaded_source(), FrontEndConfig())
    # 1000 samples, window 205, step 80, centered: frames 0..10.
    assert len(list(iter_frames(graph.by_name("cepstrum")))) == 11
    assert len(list(iter_frames(graph.by_name("delta cepstrum")))) == 8
    combined = [value for _, value in iter_frames(graph.by_name(COMBINED))]
    assert len(combined) == 5
    assert combined[0].shape == (3 + 3 * 8,)
    assert all(np.isfinite(value).all() for value in combined)


def test_zero_mean_cepstrum_averages_to_zero() -> None:
    graph = build_frontend("speech", loaded_source(), FrontEndConfig())
    frames = np.vstack([value for _, value in iter_frames(graph.by_name("zm cepstrum"))])
    np.testing.assert_allclose(frames.mean(axis=0), np.zeros(8), atol=1e-9)


def test_normalized_energy_peaks_at_zero() -> None:
    graph = build_frontend("speech", loaded_source(), FrontEndConfig())
    energy = np.array([value[0] for _, value in iter_frames(graph.by_name("normalized cepstral energy"))])
    assert energy.max() == pytest.approx(0.0)
    assert (energy <= 0.0).all()


def test_reset_and_reload_recomputes_features() -> None:
    source = loaded_source()
    graph = build_frontend("speech", source, FrontEndConfig())
    first = graph.by_name(COMBINED).get(0)
    graph.reset()
    source.load(synthetic_waveform(seed=11))
    second = graph.by_name(COMBINED).get(0)
    assert not np.allclose(first, second)
    with pytest.raises(EndOfStream):
        graph.by_name(COMBINED).get(5)


def test_explicit_mel_filterbank() -> None:
    graph = build_frontend(
        "mel",
        loaded_source(),
        FrontEndConfig(),
        filterbank=(MEL_FILTERBANK_INDICES, MEL_FILTERBANK_COEFFICIENTS),
    )
    assert graph.by_name("filterbank").get(0).shape == (18,)
    assert graph.by_name("cepstrum").get(0).shape == (8,)
    assert len(MEL_FILTERBANK_INDICES) == len(MEL_FILTERBANK_COEFFICIENTS)


def test_selected_features() -> None:
    config = FrontEndConfig(features=("cepstral energy", "cepstrum"))
    graph = build_frontend("subset", loaded_source(), config)
    assert graph.by_name(COMBINED).get(10).shape == (9,)


def test_unknown_feature_name() -> None:
    config = FrontEndConfig(features=("pitch",))
    with pytest.raises(UnknownName):
        build_frontend("bad", loaded_source(), config)
