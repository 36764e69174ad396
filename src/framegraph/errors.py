"""
Canonical exception types for framegraph.

Evaluation errors (``OutOfBounds`` and friends) are raised from ``get`` calls
and are never cached. Wiring errors derive from :class:`WiringError` and are
raised while the graph is assembled.
"""

from __future__ import annotations


class GraphError(Exception):
    """Base class for every error raised by the graph runtime."""


class OutOfBounds(GraphError, IndexError):
    """No value exists at the requested index."""


class NegativeIndex(OutOfBounds):
    """A negative frame index was requested."""


class EndOfStream(OutOfBounds):
    """The underlying stream has no data at (or beyond) the requested index."""


class Unconfigured(GraphError):
    """A compute unit was evaluated without a compute function."""


class CyclicEvaluation(GraphError, RuntimeError):
    """A node was asked for an index that is already being computed."""


class EvaluationTooDeep(CyclicEvaluation):
    """A cold request recursed deeper than the interpreter stack allows."""


class WiringError(GraphError, ValueError):
    """Invalid graph construction request."""


class NameCollision(WiringError):
    """A node name is already registered in the graph."""


class UnknownName(WiringError):
    """A node name or handle does not belong to the graph."""


class CapabilityError(WiringError, TypeError):
    """A node does not implement the capability an operation requires."""


class AlreadyBound(WiringError):
    """Inputs were bound to a node that already has inputs."""


class DimensionMismatch(GraphError, ValueError):
    """A compute function received inputs it cannot be configured for."""


__all__ = [
    "AlreadyBound",
    "CapabilityError",
    "CyclicEvaluation",
    "DimensionMismatch",
    "EndOfStream",
    "EvaluationTooDeep",
    "GraphError",
    "NameCollision",
    "NegativeIndex",
    "OutOfBounds",
    "Unconfigured",
    "UnknownName",
    "WiringError",
]
