"""Exception taxonomy for flow execution.

- FlowStructureError: the graph cannot be run (no entry point, unknown start
  node, dangling edge, cycle) or a resume point cannot be determined.
- ConfigurationError: a node has no usable provider/action reference.
- ActionTimeoutError: one invocation attempt exceeded its time budget.
- ActionExecutionError: the capability's own logic failed.
- ExecutionStoppedError: the run was stopped while a node was in flight.

Timeouts and action failures are retried by the node invoker; the others
are fatal to the call that raised them.
"""

from __future__ import annotations


class FlowError(Exception):
    """Base class for all owlflow errors."""


class FlowStructureError(FlowError):
    """The flow graph (or a resume request) is structurally invalid."""


class ConfigurationError(FlowError):
    """A node's capability reference is missing or cannot be resolved."""


class ActionTimeoutError(FlowError, TimeoutError):
    """An action invocation attempt exceeded its timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Action execution timed out after {timeout:g}s")
        self.timeout = timeout


class ActionExecutionError(FlowError):
    """An action raised an error or returned an unusable result."""


class ExecutionStoppedError(FlowError):
    """The run was stopped before the action finished."""

    def __init__(self, message: str = "Execution stopped") -> None:
        super().__init__(message)
