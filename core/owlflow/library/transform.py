"""Data Transformer provider: local data manipulation without external calls."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any

from owlflow.registry import Action, ActionInput, AppDefinition, InputOption, output_schema


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        text = json.dumps(value, separators=(",", ":"))
    elif isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    return text.replace('"', '""')


class JsonToCsvAction(Action):
    id = "jsonToCsv"
    name = "JSON to CSV"
    description = "Convert JSON array to CSV format"
    inputs = [
        ActionInput(id="data", label="JSON Array", type="array", required=True, description="Array of objects to convert to CSV"),
        ActionInput(id="includeHeaders", label="Include Headers", type="boolean", default=True, description="Include column headers in the CSV output"),
        ActionInput(id="delimiter", label="Delimiter", default=",", description="Character to use as delimiter"),
    ]
    output_schema = output_schema(
        csv=("string", "CSV formatted string"),
        rowCount=("number", "Number of rows in the CSV"),
    )

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        data = inputs.get("data")
        include_headers = inputs.get("includeHeaders") is not False
        delimiter = inputs.get("delimiter") or ","

        if not isinstance(data, list) or not data:
            return {"csv": "", "rowCount": 0}

        # Union of keys across rows, first-seen order.
        headers: list[str] = []
        for row in data:
            for key in row:
                if key not in headers:
                    headers.append(key)

        lines = [delimiter.join(headers)] if include_headers else []
        for row in data:
            lines.append(delimiter.join(_cell(row.get(header)) for header in headers))

        return {"csv": "\n".join(lines), "rowCount": len(data)}


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _loose_equals(a: Any, b: Any) -> bool:
    if a == b:
        return True
    left, right = _number(a), _number(b)
    if left is not None and right is not None:
        return left == right
    return a is not None and b is not None and str(a) == str(b)


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(a: Any, b: Any) -> bool:
        left, right = _number(a), _number(b)
        if left is not None and right is not None:
            return compare(left, right)
        if a is None or b is None:
            return False
        return compare(str(a), str(b))

    return check


COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": _loose_equals,
    "neq": lambda a, b: not _loose_equals(a, b),
    "gt": _ordered(lambda a, b: a > b),
    "lt": _ordered(lambda a, b: a < b),
    "contains": lambda a, b: str(b) in ("" if a is None else str(a)),
}


class FilterArrayAction(Action):
    id = "filterArray"
    name = "Filter Array"
    description = "Filter an array based on a condition"
    inputs = [
        ActionInput(id="data", label="Array", type="array", required=True, description="Array to filter"),
        ActionInput(id="field", label="Field", required=True, description="Field to filter on"),
        ActionInput(
            id="operator",
            label="Operator",
            required=True,
            options=[
                InputOption(label="Equals", value="eq"),
                InputOption(label="Not Equals", value="neq"),
                InputOption(label="Greater Than", value="gt"),
                InputOption(label="Less Than", value="lt"),
                InputOption(label="Contains", value="contains"),
            ],
            description="Comparison operator",
        ),
        ActionInput(id="value", label="Value", required=True, description="Value to compare against"),
    ]
    output_schema = output_schema(
        result=("array", "Filtered array"),
        count=("number", "Number of items in the filtered array"),
    )

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        data = inputs.get("data")
        if not isinstance(data, list):
            raise ValueError("Filter array failed: Input data must be an array")

        operator = inputs.get("operator")
        compare = COMPARISONS.get(operator)
        if compare is None:
            raise ValueError(f"Filter array failed: Unknown operator: {operator}")

        field, value = inputs.get("field"), inputs.get("value")
        result = [
            item for item in data
            if isinstance(item, Mapping) and compare(item.get(field), value)
        ]
        return {"result": result, "count": len(result)}


def _lookup(data: Any, path: str) -> Any:
    current = data
    for key in path.split("."):
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None
    return current


def render_template(template: Any, data: Any) -> Any:
    """Replace every `$.path` string in `template` with the value at `path` in `data`."""
    if isinstance(template, str) and template.startswith("$."):
        return _lookup(data, template[2:])
    if isinstance(template, list):
        return [render_template(item, data) for item in template]
    if isinstance(template, Mapping):
        return {key: render_template(item, data) for key, item in template.items()}
    return template


class TransformObjectAction(Action):
    id = "transformObject"
    name = "Transform Object"
    description = "Transform an object using a template"
    inputs = [
        ActionInput(id="data", label="Input Object", type="object", required=True, description="Object to transform"),
        ActionInput(id="template", label="Template", type="object", required=True, description="Template object with field mappings"),
    ]
    output_schema = output_schema(result=("object", "Transformed object"))

    async def execute(
        self,
        inputs: dict[str, Any],
        auth_config: dict[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        data, template = inputs.get("data"), inputs.get("template")
        if not isinstance(data, (Mapping, list)):
            raise ValueError("Transform object failed: Input data must be an object")
        if not isinstance(template, (Mapping, list)):
            raise ValueError("Transform object failed: Template must be an object")
        return {"result": render_template(template, data)}


def build_transform_app() -> AppDefinition:
    return AppDefinition(
        id="dataTransformer",
        name="Data Transformer",
        description="Transform, filter, and manipulate data in your flows",
        category="Utilities",
        icon="magic",
        color="#8b5cf6",
        actions=[JsonToCsvAction(), FilterArrayAction(), TransformObjectAction()],
    )
