"""Execution engine with depth-first, branch-aware node orchestration."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from owlflow.domain.models import Graph, Node, NodeStatus, RunState, RunStatus
from owlflow.errors import ConfigurationError, ExecutionStoppedError, FlowStructureError
from owlflow.execution.graph import FlowGraph, Successor
from owlflow.execution.invoker import CancellationToken, NodeInvoker
from owlflow.execution.options import ExecutionOptions, RetryPolicy
from owlflow.registry import Action, CapabilityRegistry


@dataclass
class _Frame:
    """A finished node whose outgoing edges are still being walked."""

    node_id: str
    outputs: dict[str, Any]
    successors: Iterator[Successor] = field(repr=False)


@dataclass
class _Run:
    """State and stop signal owned by one `execute()` call."""

    state: RunState
    token: CancellationToken = field(default_factory=CancellationToken)


class ExecutionEngine:
    """Runs a flow graph against a capability registry.

    This engine:
    1. Validates the graph and picks entry nodes (trigger nodes or an
       explicit start node)
    2. Drives each entry node's subtree to completion, one after another
    3. Resolves each node's action and invokes it through the NodeInvoker
    4. Passes a node's outputs to the successors whose edge condition holds
    5. Tracks node and run status, notifying the configured callbacks

    Run status: idle -> running -> completed | error | stopped.
    Node status: idle -> running -> success | error.
    """

    def __init__(
        self,
        graph: Graph | FlowGraph,
        registry: CapabilityRegistry,
        options: ExecutionOptions | None = None,
        invoker: NodeInvoker | None = None,
    ) -> None:
        self.graph = graph if isinstance(graph, FlowGraph) else FlowGraph(graph)
        self.registry = registry
        self.options = options or ExecutionOptions()
        self.invoker = invoker or NodeInvoker()
        self._run = _Run(RunState.for_graph(self.graph.graph))

    @property
    def _state(self) -> RunState:
        return self._run.state

    async def execute(self, start_node_id: str | None = None) -> RunState:
        """Run the flow.

        Each call owns a fresh RunState and stop signal. A stopped run that
        is still unwinding only touches its own state, so a new run may be
        started right after `stop()`.

        Args:
            start_node_id: Sole entry point (used when resuming). When omitted
                every trigger node is started in declaration order.

        Returns:
            Snapshot of the final RunState. Flow failures are reported
            through the state and `on_error`, not raised.
        """
        if self._state.status == "running":
            raise RuntimeError("A run is already in progress on this engine")

        run = _Run(RunState.for_graph(self.graph.graph))
        self._run = run
        run.state.start_time = _now()
        self._set_flow_status(run, "running")

        sys.stderr.write(f"[ENGINE] Starting flow execution (start={start_node_id or 'triggers'})\n")
        sys.stderr.flush()

        try:
            self.graph.validate()
            entry_ids = self._entry_node_ids(start_node_id)
            sys.stderr.write(f"[ENGINE] Entry nodes: {entry_ids}\n")
            sys.stderr.flush()

            for node_id in entry_ids:
                if run.token.cancelled:
                    break
                await self._run_branch(run, node_id)
        except asyncio.CancelledError:
            if not run.state.is_terminal:
                self._finish(run, "stopped")
            raise
        except Exception as e:
            if run.state.status != "stopped":
                self._fail(run, e)
            return run.state.model_copy(deep=True)

        if run.state.status == "stopped":
            sys.stderr.write("[ENGINE] Flow stopped\n")
            sys.stderr.flush()
            return run.state.model_copy(deep=True)

        self._finish(run, "completed")
        sys.stderr.write("[ENGINE] Flow execution completed\n")
        sys.stderr.flush()
        if self.options.on_complete is not None:
            self.options.on_complete(run.state.model_copy(deep=True))
        return run.state.model_copy(deep=True)

    def stop(self) -> None:
        """Stop the current run.

        No new node is started afterwards and the in-flight action, if any,
        is cancelled. `on_complete` is never fired for a stopped run. Only a
        running run can be stopped.
        """
        if self._state.status != "running":
            sys.stderr.write(f"[ENGINE] stop() ignored, run is {self._state.status}\n")
            sys.stderr.flush()
            return

        sys.stderr.write("[ENGINE] Stopping flow execution\n")
        sys.stderr.flush()
        self._run.token.cancel()
        self._finish(self._run, "stopped")

    async def resume_execution(
        self,
        node_id: str | None = None,
        preserve_state: bool = True,
        previous_state: RunState | None = None,
    ) -> RunState:
        """Shortcut for `ResumeController(self).resume_execution(...)`."""
        from owlflow.execution.resume import ResumeController

        return await ResumeController(self).resume_execution(
            node_id, preserve_state=preserve_state, previous_state=previous_state
        )

    def get_state(self) -> RunState:
        """Point-in-time copy of the current RunState."""
        return self._state.model_copy(deep=True)

    def load_state(self, state: RunState) -> None:
        """Replace the current state, e.g. with a merged or restored one."""
        if self._state.status == "running":
            raise RuntimeError("Cannot replace state while a run is in progress")
        self._run = _Run(state.model_copy(deep=True))

    def _entry_node_ids(self, start_node_id: str | None) -> list[str]:
        if start_node_id is not None:
            if not self.graph.has_node(start_node_id):
                raise FlowStructureError(f"Start node with ID {start_node_id} not found")
            return [start_node_id]

        triggers = self.graph.find_trigger_nodes()
        if not triggers:
            raise FlowStructureError("No trigger nodes found in the flow")
        return [node.id for node in triggers]

    async def _run_branch(self, run: _Run, entry_id: str) -> None:
        """Depth-first walk from `entry_id` using an explicit stack."""
        outputs = await self._execute_node(run, entry_id, {})
        stack = [_Frame(entry_id, outputs, iter(self.graph.find_successors(entry_id)))]
        active = {entry_id}

        while stack:
            frame = stack[-1]
            successor = next(frame.successors, None)
            if successor is None:
                active.discard(stack.pop().node_id)
                continue

            target_id = successor.node.id
            if not _follows_edge(successor.branch_label, frame.outputs):
                sys.stderr.write(
                    f"[ENGINE] Skipping {frame.node_id} -> {target_id} "
                    f"(branch '{successor.branch_label}' not taken)\n"
                )
                sys.stderr.flush()
                continue

            if target_id in active:
                raise FlowStructureError(
                    f"Cycle detected: edge {frame.node_id} -> {target_id} re-enters a running branch"
                )

            if run.state.nodes[target_id].status != "idle":
                sys.stderr.write(f"[ENGINE] Node {target_id} already executed in this run, not re-entering\n")
                sys.stderr.flush()
                continue

            if run.token.cancelled:
                return

            outputs = await self._execute_node(run, target_id, frame.outputs)
            stack.append(_Frame(target_id, outputs, iter(self.graph.find_successors(target_id))))
            active.add(target_id)

    async def _execute_node(self, run: _Run, node_id: str, input_data: dict[str, Any]) -> dict[str, Any]:
        node = self.graph.get_node(node_id)
        if node is None:
            raise FlowStructureError(f"Node with ID {node_id} not found")

        sys.stderr.write(f"[ENGINE] Executing node: {node_id}\n")
        sys.stderr.flush()
        self._update_node_status(run, node_id, "running")
        run.state.current_node_id = node_id

        try:
            action = self._resolve_action(node)
            policy = self._policy_for(node)

            # Outputs of the upstream node win over static inputs.
            merged_inputs = {**node.inputs, **input_data}
            run.state.nodes[node_id].inputs = dict(merged_inputs)

            outputs = await self.invoker.invoke(
                action, merged_inputs, node.auth_config, policy, run.token
            )
        except asyncio.CancelledError:
            self._update_node_status(run, node_id, "error", "Execution cancelled")
            raise
        except Exception as e:
            error_msg = str(e) or type(e).__name__
            if isinstance(e, ExecutionStoppedError):
                error_msg = "Execution stopped"
            sys.stderr.write(f"[ENGINE] Node {node_id} failed: {type(e).__name__}: {error_msg}\n")
            sys.stderr.flush()
            self._update_node_status(run, node_id, "error", error_msg)
            raise

        run.state.nodes[node_id].outputs = outputs
        self._update_node_status(run, node_id, "success")
        sys.stderr.write(f"[ENGINE] Node {node_id} completed, outputs: {list(outputs.keys())}\n")
        sys.stderr.flush()
        return outputs

    def _resolve_action(self, node: Node) -> Action:
        if not node.app_id or not node.action_id:
            raise ConfigurationError(f"Node {node.id} is not properly configured")
        return self.registry.resolve(node.app_id, node.action_id)

    def _policy_for(self, node: Node) -> RetryPolicy:
        try:
            return self.options.policy_for(node)
        except ValidationError as e:
            raise ConfigurationError(f"Node {node.id} has invalid retry settings: {e}") from e

    def _update_node_status(
        self, run: _Run, node_id: str, status: NodeStatus, error: str | None = None
    ) -> None:
        record = run.state.nodes[node_id]
        record.status = status
        record.error = error
        if status == "running":
            record.start_time = _now()
            record.end_time = None
            record.outputs = None
        elif status in ("success", "error"):
            record.end_time = _now()

        # Runs superseded by a newer execute() no longer notify observers.
        if self.options.on_node_status_change is not None and run is self._run:
            self.options.on_node_status_change(node_id, status)

    def _set_flow_status(self, run: _Run, status: RunStatus) -> None:
        run.state.status = status
        if self.options.on_flow_status_change is not None and run is self._run:
            self.options.on_flow_status_change(status)

    def _finish(self, run: _Run, status: RunStatus) -> None:
        run.state.end_time = _now()
        self._set_flow_status(run, status)

    def _fail(self, run: _Run, error: Exception) -> None:
        run.state.error = str(error) or type(error).__name__
        sys.stderr.write(f"[ENGINE] Flow failed: {type(error).__name__}: {run.state.error}\n")
        sys.stderr.flush()
        self._finish(run, "error")
        if self.options.on_error is not None:
            self.options.on_error(error, run.state.model_copy(deep=True))


def _follows_edge(branch_label: str | None, outputs: dict[str, Any]) -> bool:
    """Conditional routing on the reserved `success` output."""
    if branch_label == "true":
        return outputs.get("success") is True
    if branch_label == "false":
        return outputs.get("success") is False
    return True


def _now() -> datetime:
    return datetime.now(UTC)
