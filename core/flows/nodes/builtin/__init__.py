"""Built-in node catalog."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flows.nodes.builtin.http import HTTP_NODE, run_http_node
from flows.nodes.builtin.switch import ROUTE_TO_BRANCH_KEY, SWITCH_NODE, run_switch_node
from flows.nodes.builtin.text import TEXT_NODE, run_text_node
from flows.nodes.builtin.trigger import TRIGGER_NODE, run_trigger_node
from flows.nodes.builtin.wait import WAIT_NODE, run_wait_node

if TYPE_CHECKING:
    from flows.nodes.registry import NodeRegistry

# Type tag stored on workflow nodes -> executor
BUILTIN_EXECUTORS = {
    "trigger": run_trigger_node,
    "http": run_http_node,
    "wait": run_wait_node,
    "branch": run_switch_node,
    "switch": run_switch_node,
    "text": run_text_node,
}


def register_builtin_nodes(registry: NodeRegistry) -> NodeRegistry:
    for type_tag, executor in BUILTIN_EXECUTORS.items():
        registry.register(type_tag, executor)
    return registry


__all__ = [
    "BUILTIN_EXECUTORS",
    "ROUTE_TO_BRANCH_KEY",
    "register_builtin_nodes",
    "HTTP_NODE",
    "SWITCH_NODE",
    "TEXT_NODE",
    "TRIGGER_NODE",
    "WAIT_NODE",
]
