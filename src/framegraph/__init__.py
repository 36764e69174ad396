"""Demand-driven frame graph for streaming feature extraction."""

from __future__ import annotations

from .errors import (
    AlreadyBound,
    CapabilityError,
    CyclicEvaluation,
    DimensionMismatch,
    EndOfStream,
    EvaluationTooDeep,
    GraphError,
    NameCollision,
    NegativeIndex,
    OutOfBounds,
    Unconfigured,
    UnknownName,
    WiringError,
)
from .graph import Graph, Node
from .proc import Capability, Inputs, OneProc, Proc, capabilities_of, get, iter_frames

__all__ = [
    "AlreadyBound",
    "Capability",
    "CapabilityError",
    "CyclicEvaluation",
    "DimensionMismatch",
    "EndOfStream",
    "EvaluationTooDeep",
    "Graph",
    "GraphError",
    "Inputs",
    "NameCollision",
    "NegativeIndex",
    "Node",
    "OneProc",
    "OutOfBounds",
    "Proc",
    "Unconfigured",
    "UnknownName",
    "WiringError",
    "capabilities_of",
    "get",
    "iter_frames",
]
