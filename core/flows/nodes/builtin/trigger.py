"""Manual trigger node - exposes the payload a run was started with."""

from typing import Any

from flows.nodes.definition import define_node
from flows.nodes.executor import NodeExecutionContext, create_node_executor
from flows.nodes.manifest import NodeKind, NodeManifest
from flows.nodes.parameters import define_parameter
from flows.nodes.ports import PortsDefinition, define_port

TRIGGER_NODE = define_node(
    NodeManifest(
        id="manual-trigger",
        version="0.1.0",
        display_name="Manual Trigger",
        description="Starts a workflow and passes the trigger payload downstream.",
        kind=NodeKind.SOURCE,
        categories=("trigger",),
        icon="play",
    ),
    parameters=[
        define_parameter(
            "payload",
            "Default payload",
            dict[str, Any],
            description="Values used when the trigger does not provide them.",
            default={},
            control="json",
        )
    ],
    ports=PortsDefinition.of(
        outputs=[
            define_port(
                "payload",
                "Payload",
                dict[str, Any],
                description="Trigger payload merged over the default payload.",
            )
        ]
    ),
)


def _handle_trigger(node: NodeExecutionContext) -> None:
    trigger = getattr(node.ctx, "trigger", None) or {}
    node.emit("payload", {**node.parameters["payload"], **trigger})


run_trigger_node = create_node_executor(TRIGGER_NODE, _handle_trigger)
