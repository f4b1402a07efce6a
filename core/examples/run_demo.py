#!/usr/bin/env python3
"""Demo script for the execution engine.

Builds a small flow from an in-process app, lets one node fail, then
resumes the run from the failure point.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Add core to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from owlflow import (
    AppDefinition,
    CapabilityRegistry,
    Edge,
    ExecutionEngine,
    ExecutionOptions,
    Graph,
    Node,
)

app = AppDefinition(id="demo", name="Demo", category="Examples")
attempts = {"deploy": 0}


@app.action("fetch")
async def fetch(inputs, auth_config):
    return {"success": True, "build": inputs.get("build", 101)}


@app.action("deploy")
async def deploy(inputs, auth_config):
    attempts["deploy"] += 1
    if attempts["deploy"] == 1:
        raise RuntimeError("registry unavailable")
    return {"success": True, "deployed": inputs.get("build", 101)}


@app.action("announce")
def announce(inputs, auth_config):
    print(f"  📣 build {inputs['deployed']} is live")
    return {}


def build_graph() -> Graph:
    return Graph(
        nodes=[
            Node(id="fetch", app_id="demo", action_id="fetch"),
            Node(id="deploy", app_id="demo", action_id="deploy"),
            Node(id="announce", app_id="demo", action_id="announce"),
        ],
        edges=[
            Edge(source="fetch", target="deploy", branch_label="true"),
            Edge(source="deploy", target="announce", branch_label="true"),
        ],
    )


def show(title, state):
    print("\n" + "─" * 60)
    print(f"{title}: {state.status}")
    for node_id, record in state.nodes.items():
        suffix = f" ({record.error})" if record.error else ""
        print(f"  {node_id}: {record.status}{suffix}")
    print("─" * 60)


async def main():
    print("=" * 60)
    print("owlflow - Execute and Resume Demo")
    print("=" * 60)

    options = ExecutionOptions(
        max_retries=0,
        on_node_status_change=lambda node_id, status: print(f"  • {node_id} -> {status}"),
    )
    engine = ExecutionEngine(build_graph(), CapabilityRegistry([app]), options)

    state = await engine.execute()
    show("First run", state)

    if state.status == "error":
        # deploy failed: re-run it, keeping fetch's result.
        state = await engine.resume_execution("deploy")
        show("Resumed run", state)


if __name__ == "__main__":
    asyncio.run(main())
