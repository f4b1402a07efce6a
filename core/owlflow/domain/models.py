"""Pydantic domain models for owlflow graphs and run state.

Two groups of models live here:
- Graph definition: Node, Edge, Graph (frozen, authored by the editor)
- Run state: NodeExecutionState, RunState (mutated only by the engine)

These models are the contract between the editor/persistence layers and
the execution engine. Field names are snake_case; the editor's camelCase
names are accepted as aliases.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

NodeStatus = Literal["idle", "running", "success", "error"]
RunStatus = Literal["idle", "running", "completed", "error", "stopped"]

TERMINAL_RUN_STATUSES: frozenset[str] = frozenset({"completed", "error", "stopped"})


class Node(BaseModel):
    """A configured action node."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Unique identifier within the graph")
    app_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("app_id", "appId"),
        description="Capability-provider id",
    )
    action_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("action_id", "actionId"),
        description="Action id within the provider",
    )
    config: dict[str, Any] = Field(default_factory=dict, description="Free-form configuration, incl. auth")
    inputs: dict[str, Any] = Field(default_factory=dict, description="Static inputs set at design time")
    label: str | None = Field(
        default=None,
        validation_alias=AliasChoices("label", "nodeName"),
        description="Optional display label",
    )

    @model_validator(mode="before")
    @classmethod
    def _lift_editor_data(cls, value: Any) -> Any:
        # Editor nodes carry their configuration under "data".
        if isinstance(value, dict) and isinstance(value.get("data"), dict):
            lifted = {k: v for k, v in value.items() if k not in ("data", "position", "type")}
            for key, item in value["data"].items():
                lifted.setdefault(key, item)
            return lifted
        return value

    @property
    def auth_config(self) -> dict[str, Any] | None:
        """Auth material passed to the action, if any."""
        auth = self.config.get("authConfig")
        return dict(auth) if isinstance(auth, dict) else None


class Edge(BaseModel):
    """A directed edge between two nodes, optionally labeled for branching."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = Field(default=None, description="Edge identifier")
    source: str = Field(..., description="Source node id")
    target: str = Field(..., description="Target node id")
    branch_label: str | None = Field(
        default=None,
        validation_alias=AliasChoices("branch_label", "branchLabel", "sourceHandle"),
        description="'true' / 'false' for conditional edges; None means unconditional",
    )


class Graph(BaseModel):
    """An ordered collection of nodes and edges."""

    model_config = ConfigDict(frozen=True)

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


class NodeExecutionState(BaseModel):
    """Execution record of one node within one run."""

    node_id: str
    status: NodeStatus = "idle"
    start_time: datetime | None = None
    end_time: datetime | None = None
    inputs: dict[str, Any] | None = None
    outputs: dict[str, Any] | None = None
    error: str | None = None


class RunState(BaseModel):
    """Status snapshot of one execution attempt across all nodes."""

    status: RunStatus = "idle"
    start_time: datetime | None = None
    end_time: datetime | None = None
    current_node_id: str | None = None
    nodes: dict[str, NodeExecutionState] = Field(default_factory=dict)
    error: str | None = None

    @classmethod
    def for_graph(cls, graph: Graph) -> RunState:
        """Create an idle state with one idle record per node."""
        return cls(nodes={node.id: NodeExecutionState(node_id=node.id) for node in graph.nodes})

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    def node_ids_with_status(self, status: NodeStatus) -> list[str]:
        """Node ids currently in `status`, in map order."""
        return [node_id for node_id, state in self.nodes.items() if state.status == status]
