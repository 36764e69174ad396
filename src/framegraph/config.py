"""Configuration loading for the feature extractor."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Tuple

from .proc import DEFAULT_CACHE_SIZE

_REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = _REPO_ROOT / "configs" / "default.json"

DEFAULT_FEATURES: Tuple[str, ...] = (
    "normalized cepstral energy",
    "delta energy",
    "delta delta energy",
    "zm cepstrum",
    "delta cepstrum",
    "delta delta cepstrum",
)
DEFAULT_DELTA_COEFF: Tuple[float, ...] = (0.7, 0.2, 0.1)
WINDOW_TYPES = ("rectangular", "hanning", "hamming", "blackman")


@dataclass(slots=True)
class FrontEndConfig:
    """Parameters of the cepstral speech front-end."""

    sample_rate: float = 8000.0
    cache_size: int | None = DEFAULT_CACHE_SIZE
    window_size: int = 205
    window_step: int = 80
    window_type: str = "hamming"
    log_fft_size: int = 8
    filterbank_size: int = 18
    filterbank_min_freq: float = 0.0
    # None means the Nyquist frequency.
    filterbank_max_freq: float | None = None
    cepstrum_size: int = 8
    delta_coeff: Tuple[float, ...] = DEFAULT_DELTA_COEFF
    features: Tuple[str, ...] = DEFAULT_FEATURES
    zero_mean: bool = False

    @property
    def max_freq(self) -> float:
        if self.filterbank_max_freq is None:
            return self.sample_rate / 2.0
        return self.filterbank_max_freq


@dataclass(slots=True)
class NodeConfig:
    name: str
    type: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ConnectionConfig:
    source: str
    target: str
    slot: int | None = None


@dataclass(slots=True)
class GraphConfig:
    nodes: List[NodeConfig]
    connections: List[ConnectionConfig]
    outputs: List[str] = field(default_factory=list)


@dataclass(slots=True)
class AppConfig:
    frontend: FrontEndConfig
    graph: GraphConfig | None = None


def _positive_int(data: Mapping[str, Any], key: str, default: int, *, where: str) -> int:
    value = int(data.get(key, default))
    if value <= 0:
        raise ValueError(f"{where}.{key} must be a positive integer, got {value}")
    return value


def _normalise_frontend(data: Mapping[str, Any]) -> FrontEndConfig:
    where = "frontend"
    defaults = FrontEndConfig()
    cache_size = data.get("cache_size", defaults.cache_size)
    if cache_size is not None:
        cache_size = _positive_int(data, "cache_size", DEFAULT_CACHE_SIZE, where=where)
    window_type = str(data.get("window_type", defaults.window_type)).strip().lower()
    if window_type not in WINDOW_TYPES:
        raise ValueError(f"{where}.window_type must be one of {', '.join(WINDOW_TYPES)}; got '{window_type}'")
    delta_coeff = data.get("delta_coeff", defaults.delta_coeff)
    if not isinstance(delta_coeff, (list, tuple)) or not delta_coeff:
        raise TypeError(f"{where}.delta_coeff must be a non-empty list of numbers")
    features = data.get("features") or defaults.features
    if isinstance(features, str) or not isinstance(features, (list, tuple)):
        raise TypeError(f"{where}.features must be a list of node names")
    max_freq = data.get("filterbank_max_freq")
    config = FrontEndConfig(
        sample_rate=float(data.get("sample_rate", defaults.sample_rate)),
        cache_size=cache_size,
        window_size=_positive_int(data, "window_size", defaults.window_size, where=where),
        window_step=_positive_int(data, "window_step", defaults.window_step, where=where),
        window_type=window_type,
        log_fft_size=int(data.get("log_fft_size", defaults.log_fft_size)),
        filterbank_size=_positive_int(data, "filterbank_size", defaults.filterbank_size, where=where),
        filterbank_min_freq=float(data.get("filterbank_min_freq", defaults.filterbank_min_freq)),
        filterbank_max_freq=None if max_freq is None else float(max_freq),
        cepstrum_size=_positive_int(data, "cepstrum_size", defaults.cepstrum_size, where=where),
        delta_coeff=tuple(float(value) for value in delta_coeff),
        features=tuple(str(name) for name in features),
        zero_mean=bool(data.get("zero_mean", defaults.zero_mean)),
    )
    if config.sample_rate <= 0:
        raise ValueError(f"{where}.sample_rate must be positive")
    if config.log_fft_size < 0:
        raise ValueError(f"{where}.log_fft_size must be non-negative")
    if config.cepstrum_size > config.filterbank_size:
        raise ValueError(f"{where}.cepstrum_size cannot exceed {where}.filterbank_size")
    return config


def _normalise_graph(data: Mapping[str, Any]) -> GraphConfig:
    node_items = data.get("nodes", [])
    if not node_items:
        raise ValueError("graph.nodes must contain at least one node definition")
    nodes = []
    for position, item in enumerate(node_items):
        try:
            nodes.append(
                NodeConfig(
                    name=str(item["name"]),
                    type=str(item["type"]),
                    params=dict(item.get("params", {}) or {}),
                )
            )
        except KeyError as exc:
            raise ValueError(f"graph.nodes[{position}] is missing {exc.args[0]!r}") from exc
    connections = []
    for position, item in enumerate(data.get("connections", [])):
        slot = item.get("slot")
        if slot is not None and (isinstance(slot, bool) or not isinstance(slot, int) or slot < 0):
            raise TypeError(f"graph.connections[{position}].slot must be a non-negative integer")
        try:
            connections.append(
                ConnectionConfig(source=str(item["source"]), target=str(item["target"]), slot=slot)
            )
        except KeyError as exc:
            raise ValueError(f"graph.connections[{position}] is missing {exc.args[0]!r}") from exc
    outputs = data.get("outputs", [])
    if isinstance(outputs, str):
        outputs = [outputs]
    return GraphConfig(nodes=nodes, connections=connections, outputs=[str(name) for name in outputs])


def parse_configuration(raw: Mapping[str, Any]) -> AppConfig:
    """Build an :class:`AppConfig` from already decoded JSON data."""

    frontend = _normalise_frontend(dict(raw.get("frontend", {}) or {}))
    graph_data = raw.get("graph")
    graph = _normalise_graph(graph_data) if graph_data else None
    return AppConfig(frontend=frontend, graph=graph)


def load_configuration(path: str | Path) -> AppConfig:
    """Load an :class:`AppConfig` from ``path``."""

    with open(path, "r", encoding="utf8") as fh:
        raw = json.load(fh)
    return parse_configuration(raw)


__all__ = [
    "AppConfig",
    "ConnectionConfig",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_DELTA_COEFF",
    "DEFAULT_FEATURES",
    "FrontEndConfig",
    "GraphConfig",
    "NodeConfig",
    "WINDOW_TYPES",
    "load_configuration",
    "parse_configuration",
]
