"""Tests for the flow execution engine.

These tests verify:
- Entry point discovery (trigger nodes, explicit start node)
- Conditional routing on the `success` output
- Input merging and output propagation
- Run/node status transitions and callbacks
- Failure propagation, structural errors and cycle rejection
- Stopping a run
"""

from __future__ import annotations

import asyncio

import pytest

from helpers import make_node
from owlflow.domain.models import Edge, Graph, Node
from owlflow.execution.engine import ExecutionEngine
from owlflow.execution.options import ExecutionOptions

pytest_plugins = ('pytest_asyncio',)


def _edge(source: str, target: str, label: str | None = None) -> Edge:
    return Edge(id=f"{source}-{target}", source=source, target=target, branch_label=label)


class TestEntryPoints:
    """Trigger discovery and explicit start nodes."""

    @pytest.mark.asyncio
    async def test_all_trigger_nodes_run_in_declaration_order(self, registry, script, call_log, fast_options):
        for node_id in ("t1", "t2", "a"):
            script(node_id, {})
        graph = Graph(
            nodes=[make_node("t1"), make_node("a"), make_node("t2")],
            edges=[_edge("t1", "a")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "completed"
        assert call_log == ["t1", "a", "t2"]

    @pytest.mark.asyncio
    async def test_no_trigger_nodes_is_an_error(self, registry, script, fast_options):
        script("a", {})
        script("b", {})
        graph = Graph(
            nodes=[make_node("a"), make_node("b")],
            edges=[_edge("a", "b"), _edge("b", "a")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "error"
        assert "No trigger nodes" in state.error
        assert state.node_ids_with_status("idle") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_explicit_start_node_is_sole_entry(self, registry, script, call_log, fast_options):
        for node_id in ("t", "a", "b"):
            script(node_id, {})
        graph = Graph(
            nodes=[make_node("t"), make_node("a"), make_node("b")],
            edges=[_edge("t", "a"), _edge("a", "b")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute("a")

        assert state.status == "completed"
        assert call_log == ["a", "b"]
        assert state.nodes["t"].status == "idle"

    @pytest.mark.asyncio
    async def test_unknown_start_node(self, registry, script, fast_options):
        script("t", {})
        graph = Graph(nodes=[make_node("t")])

        state = await ExecutionEngine(graph, registry, fast_options).execute("missing")

        assert state.status == "error"
        assert "missing" in state.error
        assert state.nodes["t"].status == "idle"


class TestScenarios:
    """End-to-end routing scenarios."""

    @pytest.mark.asyncio
    async def test_linear_flow_without_success_field(self, registry, script, fast_options):
        script("trigger", {"value": 1})
        script("a", {"value": 2})
        script("b", {"done": True})
        graph = Graph(
            nodes=[make_node("trigger"), make_node("a"), make_node("b")],
            edges=[_edge("trigger", "a"), _edge("a", "b")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "completed"
        assert [state.nodes[n].status for n in ("trigger", "a", "b")] == ["success"] * 3
        assert state.nodes["b"].outputs == {"done": True}

    @pytest.mark.asyncio
    async def test_false_branch_only(self, registry, script, fast_options):
        script("c", {"success": False})
        x = script("x", {})
        y = script("y", {})
        graph = Graph(
            nodes=[make_node("c"), make_node("x"), make_node("y")],
            edges=[_edge("c", "x", "true"), _edge("c", "y", "false")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "completed"
        assert state.nodes["y"].status == "success"
        assert state.nodes["x"].status == "idle"
        assert x.calls == []
        assert len(y.calls) == 1

    @pytest.mark.asyncio
    async def test_true_branch_only(self, registry, script, fast_options):
        script("c", {"success": True})
        script("x", {})
        script("y", {})
        graph = Graph(
            nodes=[make_node("c"), make_node("x"), make_node("y")],
            edges=[_edge("c", "x", "true"), _edge("c", "y", "false")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.nodes["x"].status == "success"
        assert state.nodes["y"].status == "idle"

    @pytest.mark.asyncio
    async def test_missing_success_skips_both_branches(self, registry, script, fast_options):
        script("c", {"result": "no flag"})
        script("x", {})
        script("y", {})
        graph = Graph(
            nodes=[make_node("c"), make_node("x"), make_node("y")],
            edges=[_edge("c", "x", "true"), _edge("c", "y", "false")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "completed"
        assert state.nodes["x"].status == "idle"
        assert state.nodes["y"].status == "idle"

    @pytest.mark.asyncio
    async def test_truthy_non_boolean_success_is_not_true(self, registry, script, fast_options):
        script("c", {"success": 1})
        script("x", {})
        graph = Graph(nodes=[make_node("c"), make_node("x")], edges=[_edge("c", "x", "true")])

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.nodes["x"].status == "idle"

    @pytest.mark.asyncio
    async def test_unconditional_edge_ignores_success(self, registry, script, fast_options):
        script("c", {"success": False})
        script("x", {})
        graph = Graph(nodes=[make_node("c"), make_node("x")], edges=[_edge("c", "x")])

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.nodes["x"].status == "success"

    @pytest.mark.asyncio
    async def test_timeout_with_one_retry(self, registry, script):
        slow = script("d", {}, delay=0.2)
        graph = Graph(nodes=[make_node("d", config={"timeout": 0.05, "maxRetries": 1})])
        options = ExecutionOptions(timeout=5.0, max_retries=3, retry_delay=0.0)

        state = await ExecutionEngine(graph, registry, options).execute()

        assert len(slow.calls) == 2
        assert state.status == "error"
        assert state.nodes["d"].status == "error"
        assert "timed out" in state.nodes["d"].error


class TestDataFlow:
    """Input merging and output propagation."""

    @pytest.mark.asyncio
    async def test_upstream_outputs_override_static_inputs(self, registry, script, fast_options):
        script("a", {"url": "https://dynamic.example", "count": 2})
        b = script("b", {})
        graph = Graph(
            nodes=[
                make_node("a"),
                make_node("b", inputs={"url": "https://static.example", "method": "GET"}),
            ],
            edges=[_edge("a", "b")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        expected = {"url": "https://dynamic.example", "method": "GET", "count": 2}
        assert b.calls == [expected]
        assert state.nodes["b"].inputs == expected

    @pytest.mark.asyncio
    async def test_trigger_receives_only_static_inputs(self, registry, script, fast_options):
        t = script("t", {})
        graph = Graph(nodes=[make_node("t", inputs={"q": "x"})])

        await ExecutionEngine(graph, registry, fast_options).execute()

        assert t.calls == [{"q": "x"}]

    @pytest.mark.asyncio
    async def test_auth_config_passed_to_action(self, app, registry, fast_options):
        seen = []

        @app.action("auth")
        async def auth_action(inputs, auth_config):
            seen.append(auth_config)
            return {}

        graph = Graph(nodes=[make_node("n", "auth", config={"authConfig": {"accessToken": "t0k"}})])

        await ExecutionEngine(graph, registry, fast_options).execute()

        assert seen == [{"accessToken": "t0k"}]

    @pytest.mark.asyncio
    async def test_fan_out_runs_depth_first(self, registry, script, call_log, fast_options):
        for node_id in ("t", "a", "a1", "b"):
            script(node_id, {})
        graph = Graph(
            nodes=[make_node(n) for n in ("t", "a", "a1", "b")],
            edges=[_edge("t", "a"), _edge("t", "b"), _edge("a", "a1")],
        )

        await ExecutionEngine(graph, registry, fast_options).execute()

        assert call_log == ["t", "a", "a1", "b"]

    @pytest.mark.asyncio
    async def test_diamond_join_runs_once(self, registry, script, fast_options):
        for node_id in ("t", "a", "b"):
            script(node_id, {"from": node_id})
        d = script("d", {})
        graph = Graph(
            nodes=[make_node(n) for n in ("t", "a", "b", "d")],
            edges=[_edge("t", "a"), _edge("t", "b"), _edge("a", "d"), _edge("b", "d")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "completed"
        assert d.calls == [{"from": "a"}]


class TestFailures:
    """Node failures, configuration and structure errors."""

    @pytest.mark.asyncio
    async def test_failure_aborts_run_and_keeps_completed_siblings(self, registry, script, fast_options):
        script("t", {})
        script("a", {"ok": 1})
        script("b", RuntimeError("boom"))
        c = script("c", {})
        graph = Graph(
            nodes=[make_node(n) for n in ("t", "a", "b", "c")],
            edges=[_edge("t", "a"), _edge("t", "b"), _edge("t", "c")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "error"
        assert state.error == "boom"
        assert state.nodes["t"].status == "success"
        assert state.nodes["a"].status == "success"
        assert state.nodes["b"].status == "error"
        assert state.nodes["b"].error == "boom"
        assert state.nodes["b"].outputs is None
        assert state.nodes["c"].status == "idle"
        assert c.calls == []

    @pytest.mark.asyncio
    async def test_later_trigger_not_started_after_failure(self, registry, script, fast_options):
        script("t1", ValueError("bad input"))
        t2 = script("t2", {})
        graph = Graph(nodes=[make_node("t1"), make_node("t2")])

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "error"
        assert t2.calls == []

    @pytest.mark.asyncio
    async def test_node_without_action_reference(self, registry, fast_options):
        graph = Graph(nodes=[Node(id="bare", app_id="test")])

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "error"
        assert state.nodes["bare"].status == "error"
        assert "not properly configured" in state.nodes["bare"].error

    @pytest.mark.asyncio
    async def test_unknown_app(self, registry, fast_options):
        graph = Graph(nodes=[Node(id="n", app_id="nope", action_id="x")])

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "error"
        assert "App nope not found" in state.nodes["n"].error

    @pytest.mark.asyncio
    async def test_invalid_node_retry_override(self, registry, script, fast_options):
        script("n", {})
        graph = Graph(nodes=[make_node("n", config={"maxRetries": -1})])

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "error"
        assert "invalid retry settings" in state.nodes["n"].error

    @pytest.mark.asyncio
    async def test_dangling_edge_rejected_before_any_node_runs(self, registry, script, fast_options):
        t = script("t", {})
        graph = Graph(nodes=[make_node("t")], edges=[_edge("t", "ghost")])

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "error"
        assert "ghost" in state.error
        assert t.calls == []

    @pytest.mark.asyncio
    async def test_cycle_is_rejected(self, registry, script, fast_options):
        for node_id in ("t", "a", "b"):
            script(node_id, {})
        graph = Graph(
            nodes=[make_node(n) for n in ("t", "a", "b")],
            edges=[_edge("t", "a"), _edge("a", "b"), _edge("b", "a")],
        )

        state = await ExecutionEngine(graph, registry, fast_options).execute()

        assert state.status == "error"
        assert "Cycle detected" in state.error
        assert state.nodes["b"].status == "success"

    @pytest.mark.asyncio
    async def test_retry_budget_is_per_node(self, registry, script):
        a = script("a", RuntimeError("flaky"), {"step": 1})
        b = script("b", RuntimeError("flaky"), {"step": 2})
        graph = Graph(nodes=[make_node("a"), make_node("b")], edges=[_edge("a", "b")])
        options = ExecutionOptions(timeout=1.0, max_retries=1, retry_delay=0.0)

        state = await ExecutionEngine(graph, registry, options).execute()

        assert state.status == "completed"
        assert len(a.calls) == 2
        assert len(b.calls) == 2


class TestCallbacksAndState:
    """Notifications and state snapshots."""

    @pytest.mark.asyncio
    async def test_status_notifications_on_success(self, registry, script):
        script("a", {})
        script("b", {})
        node_events, flow_events, completed, errors = [], [], [], []
        options = ExecutionOptions(
            timeout=1.0,
            max_retries=0,
            retry_delay=0.0,
            on_node_status_change=lambda node_id, status: node_events.append((node_id, status)),
            on_flow_status_change=flow_events.append,
            on_complete=completed.append,
            on_error=lambda error, state: errors.append(error),
        )
        graph = Graph(nodes=[make_node("a"), make_node("b")], edges=[_edge("a", "b")])

        await ExecutionEngine(graph, registry, options).execute()

        assert node_events == [("a", "running"), ("a", "success"), ("b", "running"), ("b", "success")]
        assert flow_events == ["running", "completed"]
        assert len(completed) == 1
        assert completed[0].status == "completed"
        assert errors == []

    @pytest.mark.asyncio
    async def test_error_notification(self, registry, script):
        script("a", RuntimeError("nope"))
        flow_events, completed, errors = [], [], []
        options = ExecutionOptions(
            timeout=1.0,
            max_retries=0,
            retry_delay=0.0,
            on_flow_status_change=flow_events.append,
            on_complete=completed.append,
            on_error=lambda error, state: errors.append((error, state)),
        )

        await ExecutionEngine(Graph(nodes=[make_node("a")]), registry, options).execute()

        assert flow_events == ["running", "error"]
        assert completed == []
        assert len(errors) == 1
        error, state = errors[0]
        assert str(error) == "nope"
        assert state.nodes["a"].status == "error"

    @pytest.mark.asyncio
    async def test_run_state_has_every_node_and_timestamps(self, registry, script, fast_options):
        script("a", {"success": False})
        script("b", {})
        graph = Graph(nodes=[make_node("a"), make_node("b")], edges=[_edge("a", "b", "true")])
        engine = ExecutionEngine(graph, registry, fast_options)

        assert set(engine.get_state().nodes) == {"a", "b"}
        state = await engine.execute()

        assert state.start_time is not None and state.end_time is not None
        assert state.start_time <= state.end_time
        assert state.current_node_id == "a"
        assert state.nodes["a"].start_time <= state.nodes["a"].end_time
        assert state.nodes["b"].start_time is None

    @pytest.mark.asyncio
    async def test_get_state_returns_a_copy(self, registry, script, fast_options):
        script("a", {"items": [1, 2]})
        engine = ExecutionEngine(Graph(nodes=[make_node("a")]), registry, fast_options)
        await engine.execute()

        snapshot = engine.get_state()
        snapshot.status = "error"
        snapshot.nodes["a"].outputs["items"].append(3)

        fresh = engine.get_state()
        assert fresh.status == "completed"
        assert fresh.nodes["a"].outputs == {"items": [1, 2]}

    @pytest.mark.asyncio
    async def test_concurrent_execute_is_rejected(self, registry, script, fast_options):
        slow = script("a", {}, delay=0.2)
        engine = ExecutionEngine(Graph(nodes=[make_node("a")]), registry, fast_options)

        task = asyncio.create_task(engine.execute())
        await slow.started.wait()
        with pytest.raises(RuntimeError):
            await engine.execute()
        state = await task

        assert state.status == "completed"


class TestStop:
    """Stopping a run."""

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_action(self, registry, script):
        slow = script("a", {}, delay=5.0)
        b = script("b", {})
        completed, errors, flow_events = [], [], []
        options = ExecutionOptions(
            timeout=10.0,
            max_retries=3,
            retry_delay=0.0,
            on_flow_status_change=flow_events.append,
            on_complete=completed.append,
            on_error=lambda error, state: errors.append(error),
        )
        engine = ExecutionEngine(
            Graph(nodes=[make_node("a"), make_node("b")], edges=[_edge("a", "b")]),
            registry,
            options,
        )

        task = asyncio.create_task(engine.execute())
        await slow.started.wait()
        engine.stop()
        state = await asyncio.wait_for(task, timeout=2.0)

        assert state.status == "stopped"
        assert state.end_time is not None
        assert state.nodes["a"].status == "error"
        assert state.nodes["a"].error == "Execution stopped"
        assert state.nodes["b"].status == "idle"
        assert slow.cancelled is True
        assert len(slow.calls) == 1
        assert b.calls == []
        assert completed == []
        assert errors == []
        assert flow_events == ["running", "stopped"]

    @pytest.mark.asyncio
    async def test_stop_between_nodes(self, registry, script):
        script("a", {})
        b = script("b", {})
        completed = []
        engine_ref: list[ExecutionEngine] = []

        def on_node(node_id, status):
            if node_id == "a" and status == "success":
                engine_ref[0].stop()

        options = ExecutionOptions(
            timeout=1.0, max_retries=0, retry_delay=0.0,
            on_node_status_change=on_node,
            on_complete=completed.append,
        )
        engine = ExecutionEngine(
            Graph(nodes=[make_node("a"), make_node("b")], edges=[_edge("a", "b")]),
            registry,
            options,
        )
        engine_ref.append(engine)

        state = await engine.execute()

        assert state.status == "stopped"
        assert state.nodes["a"].status == "success"
        assert b.calls == []
        assert completed == []

    @pytest.mark.asyncio
    async def test_stop_after_completion_is_ignored(self, registry, script, fast_options):
        script("a", {})
        engine = ExecutionEngine(Graph(nodes=[make_node("a")]), registry, fast_options)
        await engine.execute()

        engine.stop()

        assert engine.get_state().status == "completed"

    def test_stop_before_any_run_is_ignored(self, registry):
        flow_events = []
        engine = ExecutionEngine(
            Graph(nodes=[make_node("a")]),
            registry,
            ExecutionOptions(on_flow_status_change=flow_events.append),
        )

        engine.stop()

        assert engine.get_state().status == "idle"
        assert flow_events == []

    @pytest.mark.asyncio
    async def test_new_run_right_after_stop_is_isolated(self, registry, script):
        slow = script("a", {"first": True}, {"second": True}, delay=0.3)
        errors, completed, node_events = [], [], []
        options = ExecutionOptions(
            timeout=5.0,
            max_retries=0,
            retry_delay=0.0,
            on_node_status_change=lambda node_id, status: node_events.append((node_id, status)),
            on_complete=completed.append,
            on_error=lambda error, state: errors.append(error),
        )
        engine = ExecutionEngine(Graph(nodes=[make_node("a")]), registry, options)

        first = asyncio.create_task(engine.execute())
        await slow.started.wait()
        engine.stop()
        node_events.clear()

        second = await engine.execute()
        stopped = await asyncio.wait_for(first, timeout=2.0)

        assert stopped.status == "stopped"
        assert stopped.nodes["a"].error == "Execution stopped"
        assert second.status == "completed"
        assert second.error is None
        assert second.nodes["a"].status == "success"
        assert second.nodes["a"].error is None
        assert second.nodes["a"].outputs == {"second": True}
        assert errors == []
        assert len(completed) == 1
        assert node_events == [("a", "running"), ("a", "success")]
        assert engine.get_state() == second
