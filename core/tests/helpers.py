"""Test doubles shared by the test modules."""

from __future__ import annotations

import asyncio
from typing import Any

from owlflow.domain.models import Node
from owlflow.registry import Action


class ScriptedAction(Action):
    """Action that replays a list of outcomes, one per call.

    An outcome is either a result mapping or an exception instance to raise.
    The last outcome repeats once the list is exhausted.
    """

    def __init__(
        self,
        action_id: str,
        outcomes: list[Any],
        *,
        delay: float = 0.0,
        log: list[str] | None = None,
    ) -> None:
        self.id = action_id
        self.name = action_id
        self.outcomes = outcomes or [{}]
        self.delay = delay
        self.log = log if log is not None else []
        self.calls: list[dict[str, Any]] = []
        self.call_times: list[float] = []
        self.started = asyncio.Event()
        self.cancelled = False

    async def execute(self, inputs: dict[str, Any], auth_config: dict[str, Any] | None = None) -> Any:
        self.calls.append(dict(inputs))
        self.call_times.append(asyncio.get_running_loop().time())
        self.log.append(self.id)
        self.started.set()

        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise

        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def make_node(node_id: str, action_id: str | None = None, **kwargs: Any) -> Node:
    """Node bound to the test app; the action id defaults to the node id."""
    return Node(id=node_id, app_id="test", action_id=action_id or node_id, **kwargs)
