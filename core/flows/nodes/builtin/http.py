"""HTTP request node - calls an external endpoint through the run's httpx client."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

import httpx
from pydantic import AfterValidator, Field

from flows.errors import ActionError, HttpStatusError
from flows.nodes.definition import define_node
from flows.nodes.executor import NodeExecutionContext, create_node_executor
from flows.nodes.manifest import NodeKind, NodeManifest
from flows.nodes.parameters import ParameterOption, define_parameter
from flows.nodes.ports import PortsDefinition, define_port

logger = logging.getLogger(__name__)

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]

DEFAULT_URL = "https://jsonplaceholder.typicode.com/todos/1"
DEFAULT_TIMEOUT_SECONDS = 30.0
MAX_ERROR_BODY = 500


def _absolute_http_url(value: str) -> str:
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as e:
        raise ValueError("Provide a valid absolute URL") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ValueError("Provide a valid absolute URL")
    return value


AbsoluteUrl = Annotated[str, AfterValidator(_absolute_http_url)]

HTTP_NODE = define_node(
    NodeManifest(
        id="http-request",
        version="0.1.0",
        display_name="HTTP Request",
        description="Call any HTTP(S) endpoint and expose the response.",
        kind=NodeKind.SOURCE,
        categories=("network", "http"),
        icon="globe",
    ),
    parameters=[
        define_parameter(
            "method",
            "HTTP Method",
            HttpMethod,
            description="HTTP method to use for the request.",
            default="GET",
            control="select",
            options=[ParameterOption(m, m) for m in ("GET", "POST", "PUT", "DELETE", "PATCH")],
        ),
        define_parameter(
            "url",
            "Request URL",
            AbsoluteUrl,
            description="Absolute http(s) URL to call.",
            default=DEFAULT_URL,
            control="text",
        ),
        define_parameter(
            "body",
            "Request Body",
            Any,
            description="JSON value sent as the request body.",
            required=False,
            control="json",
        ),
        define_parameter(
            "headers",
            "Headers",
            dict[str, str],
            description="Extra request headers.",
            default={},
            control="json",
        ),
        define_parameter(
            "timeout",
            "Timeout",
            Annotated[float, Field(gt=0)],
            description="Seconds before the request is abandoned.",
            required=False,
            control="number",
        ),
    ],
    ports=PortsDefinition.of(
        outputs=[
            define_port(
                "status",
                "Status Code",
                Annotated[int, Field(ge=0)],
                description="HTTP status returned by the remote server.",
            ),
            define_port(
                "body", "Body", str, description="Raw response body as a UTF-8 string."
            ),
            define_port(
                "headers",
                "Headers",
                dict[str, str],
                description="Normalized (lowercase) response headers.",
            ),
            define_port(
                "json", "JSON", Any, description="Parsed body when the response is JSON."
            ),
        ]
    ),
    retryable=True,
)


def _request_kwargs(params: dict[str, Any]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"headers": params["headers"]}
    body = params.get("body")
    if isinstance(body, str):
        kwargs["content"] = body
    elif body is not None:
        kwargs["json"] = body
    return kwargs


async def _send(client: httpx.AsyncClient, params: dict[str, Any], timeout: float) -> httpx.Response:
    return await client.request(
        params["method"], params["url"], timeout=timeout, **_request_kwargs(params)
    )


async def _handle_http(node: NodeExecutionContext) -> None:
    params = node.parameters
    config = getattr(node.ctx, "config", None)
    timeout = params.get("timeout") or getattr(
        config, "http_timeout_seconds", DEFAULT_TIMEOUT_SECONDS
    )
    client = getattr(node.ctx, "http", None)

    try:
        if client is None:
            async with httpx.AsyncClient() as owned:
                response = await _send(owned, params, timeout)
        else:
            response = await _send(client, params, timeout)
    except httpx.HTTPError as e:
        raise ActionError(f"{params['method']} {params['url']} failed: {e}") from e

    logger.info(
        "HTTP %s %s -> %d",
        params["method"],
        params["url"],
        response.status_code,
        extra={"event": "http_request"},
    )
    if not response.is_success:
        raise HttpStatusError(response.status_code, params["url"], response.text[:MAX_ERROR_BODY])

    node.emit("status", response.status_code)
    node.emit("body", response.text)
    node.emit("headers", dict(response.headers.items()))
    if "json" in response.headers.get("content-type", ""):
        try:
            node.emit("json", response.json())
        except ValueError:
            logger.debug("Response from %s is not valid JSON", params["url"])


run_http_node = create_node_executor(HTTP_NODE, _handle_http)
