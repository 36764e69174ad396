"""Package surface tests ensuring the single package layout."""

import importlib

import pytest


def test_amp_namespace_missing():
    """The synthesiser package should no longer ship alongside framegraph."""

    spec = importlib.util.find_spec("amp")
    assert spec is None


def test_core_types_exposed():
    """The package should expose the graph runtime at top level."""

    framegraph = importlib.import_module("framegraph")
    for name in ("Graph", "Proc", "OneProc", "Capability", "OutOfBounds", "iter_frames"):
        assert hasattr(framegraph, name)


@pytest.mark.parametrize(
    "module",
    ["application", "cache", "cli", "config", "diagnostics", "dsp", "graph", "proc", "processors", "speech", "wav"],
)
def test_modules_reside_in_framegraph(module: str):
    """Modules should resolve directly from the framegraph package."""

    spec = importlib.util.find_spec(f"framegraph.{module}")
    assert spec is not None, f"framegraph.{module} should be importable"
