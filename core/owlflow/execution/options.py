"""Execution configuration and observer callbacks."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from owlflow.domain.models import Node, NodeStatus, RunState, RunStatus

NodeStatusCallback = Callable[[str, NodeStatus], None]
FlowStatusCallback = Callable[[RunStatus], None]
CompleteCallback = Callable[[RunState], None]
ErrorCallback = Callable[[BaseException, RunState], None]

# Node config keys that override the engine-wide retry policy.
NODE_OVERRIDE_KEYS = {
    "timeout": "timeout",
    "maxRetries": "max_retries",
    "retryDelay": "retry_delay",
}


class RetryPolicy(BaseModel):
    """Time budget and retry bounds applied to one node invocation."""

    model_config = ConfigDict(frozen=True)

    timeout: float | None = Field(default=30.0, ge=0, description="Seconds per attempt; None disables")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_delay: float = Field(default=1.0, ge=0, description="Seconds between attempts")


class ExecutionOptions(BaseModel):
    """Engine-wide settings.

    Durations are in seconds. Nodes may override `timeout`, `maxRetries`
    and `retryDelay` through their `config` map.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    timeout: float | None = Field(default=30.0, ge=0)

    on_node_status_change: NodeStatusCallback | None = None
    on_flow_status_change: FlowStatusCallback | None = None
    on_complete: CompleteCallback | None = None
    on_error: ErrorCallback | None = None

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout=self.timeout,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
        )

    def policy_for(self, node: Node) -> RetryPolicy:
        """Engine defaults overridden by the node's own config.

        Raises:
            pydantic.ValidationError: If an override is not a valid value
        """
        values: dict[str, Any] = self.retry_policy().model_dump()
        for config_key, field_name in NODE_OVERRIDE_KEYS.items():
            if config_key in node.config:
                values[field_name] = node.config[config_key]
        return RetryPolicy(**values)
