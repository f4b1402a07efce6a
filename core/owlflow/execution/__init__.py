"""Flow execution with branch-aware data flow.

This package provides:
- Trigger discovery and successor lookup over the flow graph
- Per-node invocation with timeouts and bounded retries
- Run and node state tracking with observer callbacks
- Resuming a failed run from its failure point

Architecture:
- graph.py: Pure graph queries and structural validation
- invoker.py: Single-action invocation (timeout, retries, cancellation)
- options.py: Engine settings and callbacks
- engine.py: Main execution orchestrator
- resume.py: Restart after a failure, preserving earlier results
"""

from __future__ import annotations

from owlflow.execution.engine import ExecutionEngine
from owlflow.execution.graph import FlowGraph, Successor
from owlflow.execution.invoker import CancellationToken, NodeInvoker
from owlflow.execution.options import ExecutionOptions, RetryPolicy
from owlflow.execution.resume import ResumeController

__all__ = [
    "CancellationToken",
    "ExecutionEngine",
    "ExecutionOptions",
    "FlowGraph",
    "NodeInvoker",
    "ResumeController",
    "RetryPolicy",
    "Successor",
]
