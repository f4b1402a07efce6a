"""Resume a failed run from its failure point."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from owlflow.domain.models import RunState
from owlflow.errors import FlowStructureError

if TYPE_CHECKING:
    from owlflow.execution.engine import ExecutionEngine


class ResumeController:
    """Starts a new run after a failure and merges preserved results.

    Example:
        state = await engine.execute()
        if state.status == "error":
            state = await ResumeController(engine).resume_execution()
    """

    def __init__(self, engine: ExecutionEngine) -> None:
        self.engine = engine

    async def resume_execution(
        self,
        node_id: str | None = None,
        *,
        preserve_state: bool = True,
        previous_state: RunState | None = None,
    ) -> RunState:
        """Run the flow again from `node_id` or from after the last failure.

        Args:
            node_id: Node to start from. When omitted, the first successor
                of the most recent error node is used.
            preserve_state: Carry over successful node records of the
                previous run for nodes the new run did not execute.
            previous_state: The run to resume; defaults to the engine's
                current state.

        Returns:
            The new RunState (merged when `preserve_state` is set)

        Raises:
            FlowStructureError: If no resume point can be determined
        """
        previous = previous_state.model_copy(deep=True) if previous_state else self.engine.get_state()

        if node_id is None:
            node_id = self.find_resume_node(previous)

        sys.stderr.write(f"[RESUME] Resuming from node {node_id} (preserve_state={preserve_state})\n")
        sys.stderr.flush()

        result = await self.engine.execute(node_id)

        if not preserve_state:
            return result

        restored = []
        for prev_id, prev_record in previous.nodes.items():
            if prev_record.status != "success":
                continue
            current = result.nodes.get(prev_id)
            if current is None or current.status == "idle":
                result.nodes[prev_id] = prev_record
                restored.append(prev_id)

        if restored:
            sys.stderr.write(f"[RESUME] Restored previous results for: {restored}\n")
            sys.stderr.flush()

        self.engine.load_state(result)
        return result

    def find_resume_node(self, previous: RunState) -> str:
        """First successor of the most recently failed node.

        Raises:
            FlowStructureError: If there is no error node or it has no successor
        """
        error_node_id = self._last_error_node(previous)
        if error_node_id is None:
            raise FlowStructureError("No error nodes found to resume from")

        if not self.engine.graph.has_node(error_node_id):
            raise FlowStructureError(f"Error node with ID {error_node_id} not found")

        successors = self.engine.graph.find_successors(error_node_id)
        if not successors:
            raise FlowStructureError(f"No next nodes found after error node {error_node_id}")
        return successors[0].node.id

    @staticmethod
    def _last_error_node(previous: RunState) -> str | None:
        # Latest end time wins; ties and missing times fall back to map order.
        failed = [
            (position, node_id, _as_utc(record.end_time))
            for position, (node_id, record) in enumerate(previous.nodes.items())
            if record.status == "error"
        ]
        if not failed:
            return None
        return max(failed, key=lambda item: (item[2], item[0]))[1]


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.min.replace(tzinfo=UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
