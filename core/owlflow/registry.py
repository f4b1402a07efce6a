"""Capability registry and the Action contract.

This module provides:
- The `Action` base class: one invocable unit of external behavior
- `FunctionAction`: adapts a plain (sync or async) callable into an Action
- `AppDefinition`: a capability provider grouping its actions
- `CapabilityRegistry`: provider/action lookup used by the execution engine

Design:
- Each provider-action pair is one Action instance with an async
  `execute(inputs, auth_config)` returning an open mapping of outputs
- The boolean output `success` is reserved for conditional branching
- A registry instance is built once at startup and passed explicitly into
  the engine; it is read-only while flows run

Example:
    app = AppDefinition(id="math", name="Math", description="Arithmetic")

    @app.action("add", name="Add")
    def add(inputs: dict, auth_config: dict | None) -> dict:
        return {"sum": inputs["a"] + inputs["b"]}

    registry = CapabilityRegistry()
    registry.register_app(app)
    action = registry.resolve("math", "add")
"""

from __future__ import annotations

import asyncio
import inspect
import re
import sys
from collections.abc import Callable, Mapping
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from owlflow.errors import ConfigurationError

InputType = Literal["string", "number", "boolean", "object", "array", "date"]
AuthType = Literal["none", "apiKey", "oauth2", "basic"]


class InputOption(BaseModel):
    """A selectable value for an enumerated input."""

    model_config = ConfigDict(frozen=True)

    label: str
    value: Any


class InputValidation(BaseModel):
    """Constraints on a provided input value."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    pattern: str | None = Field(default=None, description="Regex a string value must match")
    min: float | None = None
    max: float | None = None
    min_length: int | None = Field(
        default=None, validation_alias=AliasChoices("min_length", "minLength")
    )
    max_length: int | None = Field(
        default=None, validation_alias=AliasChoices("max_length", "maxLength")
    )

    def check(self, value: Any) -> str | None:
        """Return a description of the violated constraint, or None."""
        if self.pattern is not None and isinstance(value, str) and not re.search(self.pattern, value):
            return f"must match {self.pattern!r}"
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if self.min is not None and value < self.min:
                return f"must be >= {self.min:g}"
            if self.max is not None and value > self.max:
                return f"must be <= {self.max:g}"
        if isinstance(value, (str, list)):
            if self.min_length is not None and len(value) < self.min_length:
                return f"must have length >= {self.min_length}"
            if self.max_length is not None and len(value) > self.max_length:
                return f"must have length <= {self.max_length}"
        return None


class ActionInput(BaseModel):
    """Declared input of an action (rendered as a form field by editors)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Input key in the inputs mapping")
    label: str = Field(..., description="Display label")
    type: InputType = Field("string", description="Expected value type")
    required: bool = Field(default=False)
    default: Any = Field(default=None, description="Value used when the input is absent")
    description: str | None = None
    placeholder: str | None = Field(default=None, description="Hint shown in an empty form field")
    options: list[InputOption] | None = None
    validation: InputValidation | None = None


class OutputProperty(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: InputType
    description: str | None = None


class OutputSchema(BaseModel):
    """Declared shape of an action result."""

    model_config = ConfigDict(frozen=True)

    type: Literal["object"] = "object"
    properties: dict[str, OutputProperty] = Field(default_factory=dict)


def output_schema(**properties: tuple[InputType, str]) -> OutputSchema:
    """Build an OutputSchema from `name=(type, description)` pairs."""
    return OutputSchema(
        properties={
            name: OutputProperty(type=kind, description=description)
            for name, (kind, description) in properties.items()
        }
    )


class Action:
    """One invocable action of a capability provider.

    Subclasses set the class attributes and implement `execute`.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    inputs: list[ActionInput] = []
    output_schema: OutputSchema = OutputSchema()

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        """Run the action and return its named outputs."""
        raise NotImplementedError

    def apply_defaults(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """Return `inputs` with declared defaults filled in.

        Raises:
            ValueError: If a required input is missing or empty, or a value
                breaks its declared validation
        """
        resolved = dict(inputs)
        for declared in self.inputs:
            if resolved.get(declared.id) is None and declared.default is not None:
                resolved[declared.id] = declared.default
            value = resolved.get(declared.id)
            if declared.required and value in (None, ""):
                raise ValueError(f"Missing required input '{declared.id}' for action '{self.id}'")
            if declared.validation is not None and value is not None:
                problem = declared.validation.check(value)
                if problem:
                    raise ValueError(f"Input '{declared.id}' for action '{self.id}' {problem}")
        return resolved

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


ActionFn = Callable[..., Any]


class FunctionAction(Action):
    """Action backed by a plain function.

    Coroutine functions are awaited directly. Regular functions run in a
    worker thread so a timeout can still bound the attempt.
    """

    def __init__(
        self,
        id: str,  # noqa: A002 - matches the action contract
        fn: ActionFn,
        *,
        name: str | None = None,
        description: str = "",
        inputs: list[ActionInput] | None = None,
        output_schema: OutputSchema | None = None,
    ) -> None:
        self.id = id
        self.name = name or id
        self.description = description
        self.inputs = list(inputs or [])
        self.output_schema = output_schema or OutputSchema()
        self._fn = fn

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        if inspect.iscoroutinefunction(self._fn):
            return await self._fn(inputs, auth_config)
        result = await asyncio.to_thread(self._fn, inputs, auth_config)
        if inspect.isawaitable(result):
            result = await result
        return result


class AppDefinition(BaseModel):
    """A capability provider and its actions."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str
    description: str = ""
    category: str = "General"
    icon: str | None = None
    color: str | None = None
    actions: list[Action] = Field(default_factory=list)
    default_auth_type: AuthType | None = None
    default_auth_config: dict[str, Any] | None = None

    def get_action(self, action_id: str) -> Action | None:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None

    def add_action(self, action: Action) -> Action:
        if self.get_action(action.id) is not None:
            raise ValueError(f"Action '{action.id}' already defined in app '{self.id}'")
        self.actions.append(action)
        return action

    def action(
        self,
        action_id: str,
        *,
        name: str | None = None,
        description: str = "",
        inputs: list[ActionInput] | None = None,
        output_schema: OutputSchema | None = None,
    ) -> Callable[[ActionFn], ActionFn]:
        """Decorator registering a function as an action of this app.

        Example:
            @app.action("echo")
            async def echo(inputs, auth_config):
                return {"success": True, **inputs}
        """

        def decorator(fn: ActionFn) -> ActionFn:
            self.add_action(
                FunctionAction(
                    action_id,
                    fn,
                    name=name,
                    description=description,
                    inputs=inputs,
                    output_schema=output_schema,
                )
            )
            return fn

        return decorator


class CapabilityRegistry:
    """Registry of capability providers.

    Maps provider ids (e.g. "http", "github") to their AppDefinition and
    resolves provider/action pairs to Action instances.

    Example:
        registry = CapabilityRegistry()
        registry.register_app(app)
        action = registry.resolve("http", "get")
    """

    def __init__(self, apps: list[AppDefinition] | None = None) -> None:
        self._apps: dict[str, AppDefinition] = {}
        for app in apps or []:
            self.register_app(app)

    def register_app(self, app: AppDefinition) -> None:
        """Register (or replace) a provider definition."""
        if app.id in self._apps:
            sys.stderr.write(f"[REGISTRY] Replacing app '{app.id}'\n")
            sys.stderr.flush()
        self._apps[app.id] = app

    def get_app(self, app_id: str) -> AppDefinition | None:
        return self._apps.get(app_id)

    def get_all_apps(self) -> list[AppDefinition]:
        return list(self._apps.values())

    def get_apps_by_category(self, category: str) -> list[AppDefinition]:
        return [app for app in self._apps.values() if app.category == category]

    def has_action(self, app_id: str, action_id: str) -> bool:
        app = self._apps.get(app_id)
        return app is not None and app.get_action(action_id) is not None

    def resolve(self, app_id: str, action_id: str) -> Action:
        """Resolve a provider/action pair.

        Raises:
            ConfigurationError: If the provider or the action is unknown
        """
        app = self._apps.get(app_id)
        if app is None:
            raise ConfigurationError(
                f"App {app_id} not found. "
                f"Available apps: {', '.join(sorted(self._apps)) or '(none)'}"
            )

        action = app.get_action(action_id)
        if action is None:
            raise ConfigurationError(f"Action {action_id} not found in app {app_id}")

        return action

    def __len__(self) -> int:
        return len(self._apps)


def build_default_registry(**app_options: Any) -> CapabilityRegistry:
    """Create a registry populated with the built-in providers.

    Keyword arguments are forwarded to the provider builders
    (e.g. `transport=` for an httpx transport in tests).
    """
    from owlflow.library import builtin_apps

    return CapabilityRegistry(builtin_apps(**app_options))
