"""Shared fixtures: a scriptable test app and fast execution options."""

from __future__ import annotations

from typing import Any

import pytest

from helpers import ScriptedAction
from owlflow.execution.options import ExecutionOptions
from owlflow.registry import AppDefinition, CapabilityRegistry


@pytest.fixture
def app() -> AppDefinition:
    return AppDefinition(id="test", name="Test", category="Testing")


@pytest.fixture
def registry(app: AppDefinition) -> CapabilityRegistry:
    return CapabilityRegistry([app])


@pytest.fixture
def call_log() -> list[str]:
    return []


@pytest.fixture
def script(app: AppDefinition, call_log: list[str]):
    """Factory: `script("id", outcome, ...)` adds a ScriptedAction to the test app."""

    def factory(action_id: str, *outcomes: Any, delay: float = 0.0) -> ScriptedAction:
        action = ScriptedAction(action_id, list(outcomes), delay=delay, log=call_log)
        app.add_action(action)
        return action

    return factory


@pytest.fixture
def fast_options() -> ExecutionOptions:
    return ExecutionOptions(timeout=2.0, max_retries=0, retry_delay=0.0)
