from pathlib import Path

import numpy as np
import pytest

from framegraph import diagnostics
from framegraph.errors import EndOfStream
from framegraph.graph import Graph
from framegraph.proc import Proc


@pytest.fixture
def trace_path(tmp_path: Path):
    path = tmp_path / "logs" / "trace.log"
    diagnostics.enable_trace_logging(True, path)
    yield path
    diagnostics.enable_trace_logging(False, diagnostics.DEFAULT_TRACE_PATH)


def test_tracing_is_disabled_by_default(tmp_path: Path) -> None:
    assert not diagnostics.trace_logging_enabled()
    path = tmp_path / "unused.log"
    diagnostics.log_trace("ignored")
    assert not path.exists()


def test_log_trace_appends_lines(trace_path: Path) -> None:
    assert diagnostics.trace_logging_enabled()
    assert diagnostics.trace_log_path() == trace_path
    diagnostics.log_trace("one")
    diagnostics.log_trace("two")
    assert trace_path.read_text().splitlines() == ["one", "two"]


def test_evaluation_and_wiring_are_traced(trace_path: Path) -> None:
    def _frames(index, inputs):
        if index > 0:
            raise EndOfStream("single frame")
        return np.array([1.0])

    graph = Graph("traced")
    node = graph.add("only", Proc(_frames))
    node.get(0)
    with pytest.raises(EndOfStream):
        node.get(1)
    graph.reset()
    text = trace_path.read_text()
    assert "traced.add name=only" in text
    assert "only.get index=0 computed size=1" in text
    assert "only.get index=1 failed EndOfStream" in text
    assert "traced.reset nodes=1" in text
