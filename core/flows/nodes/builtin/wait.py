"""Wait node - suspends the run for a while without blocking the event loop."""

import asyncio
import logging
from typing import Annotated

from pydantic import Field

from flows.nodes.definition import define_node
from flows.nodes.executor import NodeExecutionContext, create_node_executor
from flows.nodes.manifest import NodeKind, NodeManifest
from flows.nodes.parameters import define_parameter
from flows.nodes.ports import PortsDefinition, define_port

logger = logging.getLogger(__name__)

DEFAULT_MAX_WAIT_SECONDS = 3600.0

WAIT_NODE = define_node(
    NodeManifest(
        id="wait",
        version="0.1.0",
        display_name="Wait",
        description="Pauses the run before continuing with the next step.",
        kind=NodeKind.TRANSFORM,
        categories=("control",),
        icon="clock",
    ),
    parameters=[
        define_parameter(
            "seconds",
            "Seconds",
            Annotated[float, Field(ge=0)],
            description="How long to wait.",
            default=1.0,
            control="number",
        )
    ],
    ports=PortsDefinition.of(
        outputs=[define_port("waited", "Waited", float, description="Seconds actually waited.")]
    ),
)


async def _handle_wait(node: NodeExecutionContext) -> None:
    seconds = node.parameters["seconds"]
    config = getattr(node.ctx, "config", None)
    limit = getattr(config, "max_wait_seconds", DEFAULT_MAX_WAIT_SECONDS)
    if seconds > limit:
        logger.warning("Wait of %ss exceeds the %ss limit, capping", seconds, limit)
        seconds = limit

    sleep = getattr(node.ctx, "sleep", None) or asyncio.sleep
    await sleep(seconds)
    node.emit("waited", seconds)


run_wait_node = create_node_executor(WAIT_NODE, _handle_wait)
