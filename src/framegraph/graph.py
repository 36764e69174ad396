"""Named registry of frame-graph nodes and their positional wiring."""

from __future__ import annotations

from contextlib import nullcontext
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Mapping, Tuple, Union

import numpy as np

from .config import GraphConfig
from .errors import AlreadyBound, CapabilityError, NameCollision, UnknownName, WiringError
from .proc import VALUE_CAPABILITIES, Capability, OneProc, Proc, _trace, capabilities_of, get
from .processors import PROCESSOR_TYPES


@dataclass(slots=True)
class Node:
    """Handle to a node registered in a :class:`Graph`."""

    name: str
    proc: Any
    capabilities: Capability
    graph: "Graph"

    def get(self, index: int) -> np.ndarray:
        if Capability.FRAMER not in self.capabilities:
            raise CapabilityError(f"node '{self.name}' does not support get(index)")
        return self.proc.get(index)

    def get_value(self) -> np.ndarray:
        if Capability.ONE_VALUER not in self.capabilities:
            raise CapabilityError(f"node '{self.name}' does not support get_value()")
        return self.proc.get_value()

    def value(self, index: int) -> np.ndarray:
        """Uniform access: frame ``index`` for framers, the aggregate otherwise."""

        return get(self.proc, index)

    def reset(self) -> None:
        if Capability.RESETTER in self.capabilities:
            self.proc.reset()

    def __repr__(self) -> str:
        return f"Node(name={self.name!r}, graph={self.graph.name!r}, proc={self.proc!r})"


NodeRef = Union[Node, str]


class Graph:
    """Holds nodes by unique name and records who feeds whom.

    The graph never evaluates anything itself; values are pulled from a node
    handle and each node asks its inputs for whatever indices it needs.
    """

    def __init__(self, name: str, *, synchronized: bool = False) -> None:
        self.name = str(name)
        self.outputs: Tuple[str, ...] = ()
        self._nodes: Dict[str, Node] = {}
        self._inputs: Dict[str, Tuple[str, ...]] = {}
        self._lock: ContextManager = RLock() if synchronized else nullcontext()

    @classmethod
    def from_config(
        cls,
        config: GraphConfig,
        factories: Mapping[str, Callable[..., Any]] | None = None,
        *,
        name: str = "graph",
        sources: Mapping[str, Any] | None = None,
    ) -> "Graph":
        """Build a graph from ``config``.

        ``sources`` are pre-built nodes (typically a waveform source) added
        before the configured ones so connections can reference them.
        Providers of each target are ordered by explicit ``slot`` first, then
        by their position in the connection list.
        """

        registry = PROCESSOR_TYPES if factories is None else factories
        graph = cls(name)
        for source_name, node in (sources or {}).items():
            graph.add(source_name, node)
        for node_cfg in config.nodes:
            node_type = node_cfg.type.lower()
            try:
                factory = registry[node_type]
            except KeyError as exc:
                raise UnknownName(f"Unknown node type '{node_cfg.type}'") from exc
            try:
                node = factory(**dict(node_cfg.params))
            except TypeError as exc:
                raise WiringError(
                    f"Node '{node_cfg.name}' of type '{node_cfg.type}' rejected params {dict(node_cfg.params)}: {exc}"
                ) from exc
            graph.add(node_cfg.name, node)

        grouped: Dict[str, List[Tuple[Tuple[int, int, int], str]]] = {}
        for position, connection in enumerate(config.connections):
            if connection.slot is None:
                key = (1, 0, position)
            else:
                key = (0, connection.slot, position)
            grouped.setdefault(connection.target, []).append((key, connection.source))
        for target, entries in grouped.items():
            entries.sort(key=lambda entry: entry[0])
            graph.connect(target, *(source for _, source in entries))

        graph.outputs = tuple(graph.by_name(output).name for output in config.outputs)
        return graph

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------
    def add(self, name: str, node: Any) -> Node:
        """Register ``node`` under ``name`` and return its handle."""

        key = str(name).strip()
        if not key:
            raise WiringError(f"graph '{self.name}': node name must not be empty")
        if isinstance(node, Node):
            raise WiringError(f"graph '{self.name}': '{key}' is already a node handle; add the underlying node")
        caps = capabilities_of(node)
        if not caps & VALUE_CAPABILITIES:
            raise CapabilityError(
                f"graph '{self.name}': '{key}' ({type(node).__name__}) exposes neither get(index) nor get_value()"
            )
        with self._lock:
            if key in self._nodes:
                raise NameCollision(f"graph '{self.name}': node name '{key}' is already taken")
            for existing in self._nodes.values():
                if existing.proc is node:
                    raise WiringError(
                        f"graph '{self.name}': node object is already registered as '{existing.name}'"
                    )
            if isinstance(node, (Proc, OneProc)):
                node.name = key
            handle = Node(name=key, proc=node, capabilities=caps, graph=self)
            self._nodes[key] = handle
            self._inputs[key] = ()
        _trace(f"{self.name}.add name={key} caps={caps}")
        return handle

    def connect(self, consumer: NodeRef, *providers: NodeRef) -> Node:
        """Bind ``providers`` as the ordered inputs of ``consumer``.

        Self-edges are allowed; they are how a node reads its own earlier
        frames.
        """

        with self._lock:
            target = self._resolve(consumer)
            if Capability.INPUTTER not in target.capabilities:
                raise CapabilityError(f"graph '{self.name}': node '{target.name}' does not accept inputs")
            sources = [self._resolve(provider) for provider in providers]
            target.proc.set_inputs(*(source.proc for source in sources))
            self._inputs[target.name] = tuple(source.name for source in sources)
        _trace(f"{self.name}.connect {target.name} <- {', '.join(self._inputs[target.name])}")
        return target

    def chain(self, *nodes: NodeRef) -> Node:
        """Connect ``nodes[i]`` to its single input ``nodes[i + 1]``; return the first handle."""

        if not nodes:
            raise WiringError(f"graph '{self.name}': chain requires at least one node")
        handles = [self._resolve(node) for node in nodes]
        for consumer in handles[:-1]:
            if Capability.INPUTTER not in consumer.capabilities:
                raise CapabilityError(f"graph '{self.name}': node '{consumer.name}' does not accept inputs")
            if getattr(consumer.proc, "bound", False):
                raise AlreadyBound(f"graph '{self.name}': node '{consumer.name}' already has inputs")
        for consumer, provider in zip(handles, handles[1:]):
            self.connect(consumer, provider)
        return handles[0]

    def reset(self) -> None:
        """Rewind every resettable node for a new stream."""

        with self._lock:
            for handle in self._nodes.values():
                handle.reset()
        _trace(f"{self.name}.reset nodes={len(self._nodes)}")

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def by_name(self, name: str) -> Node:
        try:
            return self._nodes[str(name).strip()]
        except KeyError as exc:
            raise UnknownName(f"graph '{self.name}': no node named '{name}'") from exc

    def by_names(self, *names: str) -> Tuple[Node, ...]:
        return tuple(self.by_name(name) for name in names)

    def inputs_of(self, node: NodeRef) -> Tuple[Node, ...]:
        handle = self._resolve(node)
        return tuple(self._nodes[name] for name in self._inputs[handle.name])

    def edges(self) -> Tuple[Tuple[str, str, int], ...]:
        """Return ``(provider, consumer, slot)`` triples in wiring order."""

        return tuple(
            (provider, consumer, slot)
            for consumer, providers in self._inputs.items()
            for slot, provider in enumerate(providers)
        )

    def summary(self) -> str:
        lines = [f"Graph '{self.name}' with {len(self._nodes)} nodes:"]
        for handle in self._nodes.values():
            kind = type(handle.proc).__name__
            providers = self._inputs[handle.name]
            wiring = f" <- {', '.join(providers)}" if providers else ""
            lines.append(f"  {handle.name} [{kind}]{wiring}")
        if self.outputs:
            lines.append(f"Outputs: {', '.join(self.outputs)}")
        return "\n".join(lines)

    def _resolve(self, ref: NodeRef) -> Node:
        if isinstance(ref, Node):
            if ref.graph is not self or self._nodes.get(ref.name) is not ref:
                raise UnknownName(f"graph '{self.name}': node '{ref.name}' belongs to another graph")
            return ref
        return self.by_name(str(ref))

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Node):
            return self._nodes.get(item.name) is item
        return item in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(tuple(self._nodes.values()))

    def __repr__(self) -> str:
        return f"Graph(name={self.name!r}, nodes={len(self._nodes)})"


__all__ = ["Graph", "Node"]
