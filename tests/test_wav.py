from __future__ import annotations

import gzip
import json
import math
from pathlib import Path

import numpy as np
import pytest

from framegraph.errors import EndOfStream, NegativeIndex, Unconfigured
from framegraph.proc import Capability, capabilities_of
from framegraph.wav import Waveform, WaveformSource, iter_waveforms


def write_waveforms(path: Path, *items: dict) -> Path:
    path.write_text("\n".join(json.dumps(item) for item in items))
    return path


def test_whole_waveform_is_a_single_frame() -> None:
    wav = Waveform("w", [1.0, 2.0, 3.0])
    np.testing.assert_array_equal(wav.frame(0), [1.0, 2.0, 3.0])
    assert wav.num_frames == 1
    with pytest.raises(EndOfStream):
        wav.frame(1)
    with pytest.raises(NegativeIndex):
        wav.frame(-1)


def test_overlapping_frames() -> None:
    wav = Waveform("w", np.arange(10.0), frame_size=4, step_size=3)
    assert wav.num_frames == 3
    np.testing.assert_array_equal(wav.frame(2), [6.0, 7.0, 8.0, 9.0])
    with pytest.raises(EndOfStream):
        wav.frame(3)
    assert not wav.frame(0).flags.writeable


def test_frame_size_requires_step() -> None:
    with pytest.raises(ValueError):
        Waveform("w", [1.0, 2.0], frame_size=1)


def test_statistics() -> None:
    wav = Waveform("w", [1.0, 2.0, 3.0, 4.0])
    assert wav.mean == pytest.approx(2.5)
    assert wav.sd == pytest.approx(math.sqrt(1.25))
    np.testing.assert_allclose(wav.zero_mean().samples, [-1.5, -0.5, 0.5, 1.5])


def test_empty_waveform_has_no_frames() -> None:
    wav = Waveform("empty", [])
    assert wav.num_frames == 0
    with pytest.raises(EndOfStream):
        wav.frame(0)


def test_iter_waveforms_reads_json_stream(tmp_path: Path) -> None:
    path = write_waveforms(
        tmp_path / "wavs.json",
        {"id": "a", "samples": [1, 2, 3], "fs": 8000},
        {"id": "b", "samples": [4, 5]},
    )
    waves = list(iter_waveforms(path))
    assert [w.id for w in waves] == ["a", "b"]
    assert waves[0].sample_rate == 8000.0
    np.testing.assert_array_equal(waves[1].samples, [4.0, 5.0])


def test_iter_waveforms_reads_gzip_and_directories(tmp_path: Path) -> None:
    folder = tmp_path / "data"
    folder.mkdir()
    write_waveforms(folder / "1.json", {"id": "first", "samples": [0.0]})
    with gzip.open(folder / "2.json.gz", "wt", encoding="utf-8") as fh:
        fh.write(json.dumps({"id": "second", "samples": [1.0, 2.0]}))
    assert [w.id for w in iter_waveforms(folder)] == ["first", "second"]


def test_iter_waveforms_validates_content(tmp_path: Path) -> None:
    missing = write_waveforms(tmp_path / "missing.json", {"samples": [1.0]})
    with pytest.raises(ValueError, match="id"):
        list(iter_waveforms(missing))
    rate = write_waveforms(tmp_path / "rate.json", {"id": "x", "samples": [1.0], "fs": 16000})
    with pytest.raises(ValueError, match="sampling rate"):
        list(iter_waveforms(rate, sample_rate=8000))
    with pytest.raises(FileNotFoundError):
        list(iter_waveforms(tmp_path / "nope.json"))


def test_source_loads_waveforms_in_order(tmp_path: Path) -> None:
    path = write_waveforms(
        tmp_path / "wavs.json",
        {"id": "a", "samples": [1.0, 3.0]},
        {"id": "b", "samples": [2.0, 2.0, 2.0]},
    )
    source = WaveformSource(path, zero_mean=True)
    assert capabilities_of(source) == Capability.FRAMER | Capability.RESETTER
    with pytest.raises(Unconfigured):
        source.get(0)

    source.next()
    assert source.id == "a"
    assert source.mean == pytest.approx(2.0)
    assert source.sd == pytest.approx(1.0)
    np.testing.assert_allclose(source.get(0), [-1.0, 1.0])

    source.next()
    assert source.id == "b"
    assert source.num_frames == 1
    with pytest.raises(StopIteration):
        source.next()
    source.close()


def test_source_iteration_and_sequential_frames() -> None:
    source = WaveformSource(frame_size=2, step_size=2)
    source.load(Waveform("w", [1.0, 2.0, 3.0, 4.0]))
    np.testing.assert_array_equal(source.next_frame(), [1.0, 2.0])
    np.testing.assert_array_equal(source.next_frame(), [3.0, 4.0])
    with pytest.raises(EndOfStream):
        source.next_frame()
    source.reset()
    np.testing.assert_array_equal(source.next_frame(), [1.0, 2.0])


def test_source_without_path() -> None:
    with pytest.raises(Unconfigured):
        WaveformSource().next()


def test_source_iterates_all_waveforms(tmp_path: Path) -> None:
    path = write_waveforms(tmp_path / "w.json", {"id": "a", "samples": [1.0]}, {"id": "b", "samples": [2.0]})
    assert [w.id for w in WaveformSource(path)] == ["a", "b"]
