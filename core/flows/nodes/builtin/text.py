"""Constant text node - emits a configured message."""

from typing import Annotated

from pydantic import Field

from flows.nodes.definition import define_node
from flows.nodes.executor import NodeExecutionContext, create_node_executor
from flows.nodes.manifest import NodeKind, NodeManifest
from flows.nodes.parameters import define_parameter
from flows.nodes.ports import PortMultiplicity, PortsDefinition, define_port

TEXT_NODE = define_node(
    NodeManifest(
        id="text-constant",
        version="0.1.0",
        display_name="Constant Text",
        description="Emits a configured string every time the node executes.",
        kind=NodeKind.SOURCE,
        categories=("demo", "text"),
    ),
    parameters=[
        define_parameter(
            "message",
            "Message",
            Annotated[str, Field(min_length=1)],
            description="Text that will be emitted on every run.",
            default="Hello from flows",
            control="textarea",
        ),
        define_parameter(
            "repeat",
            "Repeat",
            Annotated[int, Field(ge=1, le=5)],
            description="Number of times to emit the message in one run.",
            default=1,
            control="number",
        ),
    ],
    ports=PortsDefinition.of(
        outputs=[
            define_port(
                "text",
                "Text payload",
                str,
                description="One or more copies of the configured message.",
                multiplicity=PortMultiplicity.MANY,
            )
        ]
    ),
)


def _handle_text(node: NodeExecutionContext) -> None:
    node.emit("text", [node.parameters["message"]] * node.parameters["repeat"])


run_text_node = create_node_executor(TEXT_NODE, _handle_text)
