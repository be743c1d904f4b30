"""
Switch node - evaluates a condition on the run context and picks a route.

Used for ``branch`` nodes: the runner follows the "if" leg when the route
is ``match`` and the "else" leg when it is ``default``.
"""

from __future__ import annotations

import json
import math
from typing import Annotated, Any, Literal

from pydantic import Field

from flows.nodes.definition import define_node
from flows.nodes.executor import NodeExecutionContext, create_node_executor
from flows.nodes.manifest import NodeKind, NodeManifest
from flows.nodes.parameters import ParameterOption, define_parameter
from flows.nodes.ports import PortsDefinition, define_port

Operator = Literal["equals", "notEquals", "greaterThan", "lessThan", "exists", "notExists"]
Route = Literal["match", "default"]
ValueType = Literal["string", "number", "boolean"]

ROUTE_TO_BRANCH_KEY = {"match": "if", "default": "else"}

_PRESENCE_OPERATORS = ("exists", "notExists")

SWITCH_NODE = define_node(
    NodeManifest(
        id="switch",
        version="0.1.0",
        display_name="Switch",
        description="Evaluates a condition and routes execution through Match/Default outputs.",
        kind=NodeKind.TRANSFORM,
        categories=("control",),
        icon="git-branch",
    ),
    parameters=[
        define_parameter(
            "path",
            "Context path",
            Annotated[str, Field(min_length=1)],
            description="Dot-notation path to inspect within the incoming context.",
            control="text",
        ),
        define_parameter(
            "operator",
            "Operator",
            Operator,
            description="How to compare the resolved value against the expected one.",
            default="equals",
            control="select",
            options=[
                ParameterOption("Equals", "equals"),
                ParameterOption("Not equals", "notEquals"),
                ParameterOption("Greater than", "greaterThan"),
                ParameterOption("Less than", "lessThan"),
                ParameterOption("Exists", "exists"),
                ParameterOption("Not exists", "notExists"),
            ],
        ),
        define_parameter(
            "valueType",
            "Value type",
            ValueType,
            description="How to coerce the context value and the expected value.",
            default="string",
            control="select",
            options=[
                ParameterOption("String", "string"),
                ParameterOption("Number", "number"),
                ParameterOption("Boolean", "boolean"),
            ],
        ),
        define_parameter(
            "expectedValue",
            "Expected value",
            str,
            description="Literal to compare against when the operator needs it.",
            required=False,
            control="text",
        ),
        define_parameter(
            "missingRoute",
            "Missing value route",
            Route,
            description="Route to follow if the context path resolves to nothing.",
            default="default",
            control="select",
            options=[ParameterOption("Match", "match"), ParameterOption("Default", "default")],
        ),
    ],
    ports=PortsDefinition.of(
        outputs=[
            define_port(
                "route",
                "Selected route",
                Route,
                description="Route selected after evaluating the condition.",
            ),
            define_port(
                "matched",
                "Matched",
                bool,
                description="Whether the evaluated condition returned true.",
            ),
            define_port(
                "value",
                "Resolved value",
                Any,
                description="Value read from the provided context path.",
            ),
        ]
    ),
)

_MISSING = object()


def resolve_path(data: Any, path: str) -> Any:
    """Walk a dot path through nested dicts; returns _MISSING when it breaks off."""
    segments = [segment.strip() for segment in path.strip().split(".")]
    segments = [segment for segment in segments if segment]
    if not segments:
        return _MISSING
    current = data
    for segment in segments:
        if not isinstance(current, dict) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _to_boolean(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return {"true": True, "false": False}.get(value.lower())
    if isinstance(value, int | float):
        return {1: True, 0: False}.get(value)
    return None


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, dict | list):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def coerce_value(value: Any, value_type: str) -> Any:
    """Coerce to the comparison type; None when the value cannot be coerced."""
    if value is None or value is _MISSING:
        return None
    if value_type == "number":
        return _to_number(value)
    if value_type == "boolean":
        return _to_boolean(value)
    return _to_string(value)


def evaluate_comparison(left: Any, right: Any, operator: str) -> bool:
    if operator == "exists":
        return left is not None
    if operator == "notExists":
        return left is None
    if left is None or right is None:
        return False
    if operator == "equals":
        return left == right
    if operator == "notEquals":
        return left != right
    if not isinstance(left, float) or not isinstance(right, float):
        return False
    if operator == "greaterThan":
        return left > right
    if operator == "lessThan":
        return left < right
    return False


def select_route(raw_value: Any, matched: bool, operator: str, missing_route: str) -> str:
    if raw_value is _MISSING and operator not in _PRESENCE_OPERATORS:
        return missing_route
    return "match" if matched else "default"


def _handle_switch(node: NodeExecutionContext) -> None:
    params = node.parameters
    data = getattr(node.ctx, "context", None) or {}

    raw_value = resolve_path(data, params["path"])
    actual = coerce_value(raw_value, params["valueType"])
    expected = coerce_value(params.get("expectedValue"), params["valueType"])
    operator = params["operator"]

    can_compare = operator in _PRESENCE_OPERATORS or expected is not None
    matched = evaluate_comparison(actual, expected, operator) if can_compare else False

    node.emit("route", select_route(raw_value, matched, operator, params["missingRoute"]))
    node.emit("matched", matched)
    node.emit("value", None if raw_value is _MISSING else raw_value)


run_switch_node = create_node_executor(SWITCH_NODE, _handle_switch)
