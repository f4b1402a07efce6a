"""owlflow core package.

Runs automation flows: graphs of action nodes wired by (optionally
conditional) edges, executed against a registry of capability providers.
"""

from __future__ import annotations

from owlflow.domain.models import Edge, Graph, Node, NodeExecutionState, RunState
from owlflow.execution import ExecutionEngine, ExecutionOptions, ResumeController
from owlflow.registry import AppDefinition, CapabilityRegistry, build_default_registry

__version__ = "0.1.0"

__all__ = [
    "AppDefinition",
    "CapabilityRegistry",
    "Edge",
    "ExecutionEngine",
    "ExecutionOptions",
    "Graph",
    "Node",
    "NodeExecutionState",
    "ResumeController",
    "RunState",
    "build_default_registry",
]
