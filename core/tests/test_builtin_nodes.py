"""Tests for the built-in node catalog (http, switch, text, wait, trigger)."""

from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from flows.config import RuntimeConfig
from flows.errors import ActionError, HttpStatusError, NodeValidationError
from flows.nodes.builtin import (
    BUILTIN_EXECUTORS,
    ROUTE_TO_BRANCH_KEY,
)
from flows.nodes.builtin.http import DEFAULT_URL, run_http_node
from flows.nodes.builtin.switch import (
    _MISSING,
    coerce_value,
    evaluate_comparison,
    resolve_path,
    run_switch_node,
)
from flows.nodes.builtin.text import run_text_node
from flows.nodes.builtin.trigger import run_trigger_node
from flows.nodes.builtin.wait import run_wait_node


def make_config(**overrides):
    defaults = {
        "traversal": "canvas_dfs",
        "stop_on_failure": True,
        "max_attempts": 3,
        "retry_backoff_seconds": 0.0,
        "http_timeout_seconds": 30.0,
        "max_wait_seconds": 3600.0,
        "journal_dir": None,
        "log_level": "INFO",
        "log_format": "human",
    }
    defaults.update(overrides)
    return RuntimeConfig(**defaults)


def http_ctx(handler, **config):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SimpleNamespace(http=client, config=make_config(**config))


# ---------------------------------------------------------------------------
# HTTP request
# ---------------------------------------------------------------------------


class TestHttpNode:
    @pytest.mark.asyncio
    async def test_json_response(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        ctx = http_ctx(handler)
        outputs = await run_http_node(
            ctx, {"method": "POST", "url": "https://api.test/items", "body": {"a": 1}}
        )

        assert outputs["status"] == 200
        assert outputs["json"] == {"ok": True}
        assert json.loads(outputs["body"]) == {"ok": True}
        assert outputs["headers"]["content-type"] == "application/json"
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"a": 1}
        await ctx.http.aclose()

    @pytest.mark.asyncio
    async def test_defaults_to_get_on_default_url(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="plain")

        ctx = http_ctx(handler)
        outputs = await run_http_node(ctx, {})

        assert str(seen[0].url) == DEFAULT_URL
        assert seen[0].method == "GET"
        assert outputs["body"] == "plain"
        assert "json" not in outputs
        await ctx.http.aclose()

    @pytest.mark.asyncio
    async def test_headers_and_timeout_forwarded(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        ctx = http_ctx(handler, http_timeout_seconds=7.0)
        await run_http_node(
            ctx, {"url": "https://api.test/", "headers": {"X-Token": "abc"}}
        )

        assert seen[0].headers["x-token"] == "abc"
        assert seen[0].extensions["timeout"]["read"] == 7.0
        await ctx.http.aclose()

    @pytest.mark.asyncio
    async def test_timeout_parameter_wins_over_config(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        ctx = http_ctx(handler, http_timeout_seconds=7.0)
        await run_http_node(ctx, {"url": "https://api.test/", "timeout": 2.5})
        assert seen[0].extensions["timeout"]["read"] == 2.5
        await ctx.http.aclose()

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        ctx = http_ctx(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(HttpStatusError) as exc_info:
            await run_http_node(ctx, {"url": "https://api.test/"})
        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "busy"
        assert exc_info.value.retryable is True
        await ctx.http.aclose()

    @pytest.mark.asyncio
    async def test_client_error_is_not_retryable(self):
        ctx = http_ctx(lambda request: httpx.Response(404))
        with pytest.raises(HttpStatusError) as exc_info:
            await run_http_node(ctx, {"url": "https://api.test/"})
        assert exc_info.value.retryable is False
        await ctx.http.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_becomes_action_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        ctx = http_ctx(handler)
        with pytest.raises(ActionError) as exc_info:
            await run_http_node(ctx, {"url": "https://api.test/"})
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        await ctx.http.aclose()

    @pytest.mark.asyncio
    async def test_relative_url_rejected(self):
        with pytest.raises(NodeValidationError) as exc_info:
            await run_http_node(None, {"url": "/items"})
        assert exc_info.value.target == "parameters"

    @pytest.mark.asyncio
    async def test_unsupported_method_rejected(self):
        with pytest.raises(NodeValidationError):
            await run_http_node(None, {"method": "TRACE"})


# ---------------------------------------------------------------------------
# Switch
# ---------------------------------------------------------------------------


def switch_ctx(data):
    return SimpleNamespace(context=data)


class TestSwitchNode:
    @pytest.mark.asyncio
    async def test_string_equals_matches(self):
        outputs = await run_switch_node(
            switch_ctx({"trigger": {"status": "ok"}}),
            {"path": "trigger.status", "expectedValue": "ok"},
        )
        assert outputs == {"route": "match", "matched": True, "value": "ok"}

    @pytest.mark.asyncio
    async def test_string_equals_mismatch(self):
        outputs = await run_switch_node(
            switch_ctx({"trigger": {"status": "error"}}),
            {"path": "trigger.status", "expectedValue": "ok"},
        )
        assert outputs["route"] == "default"
        assert outputs["matched"] is False

    @pytest.mark.asyncio
    async def test_number_comparison(self):
        outputs = await run_switch_node(
            switch_ctx({"count": 10}),
            {"path": "count", "operator": "greaterThan", "valueType": "number", "expectedValue": "5"},
        )
        assert outputs["route"] == "match"

    @pytest.mark.asyncio
    async def test_boolean_comparison(self):
        outputs = await run_switch_node(
            switch_ctx({"flag": True}),
            {"path": "flag", "valueType": "boolean", "expectedValue": "TRUE"},
        )
        assert outputs["matched"] is True

    @pytest.mark.asyncio
    async def test_missing_path_follows_missing_route(self):
        outputs = await run_switch_node(
            switch_ctx({}), {"path": "a.b", "expectedValue": "x", "missingRoute": "match"}
        )
        assert outputs["route"] == "match"
        assert outputs["matched"] is False
        assert outputs["value"] is None

    @pytest.mark.asyncio
    async def test_presence_operators_ignore_missing_route(self):
        exists = await run_switch_node(
            switch_ctx({}), {"path": "a", "operator": "exists", "missingRoute": "match"}
        )
        not_exists = await run_switch_node(
            switch_ctx({}), {"path": "a", "operator": "notExists"}
        )
        assert exists["route"] == "default"
        assert not_exists["route"] == "match"

    @pytest.mark.asyncio
    async def test_without_expected_value_never_matches(self):
        outputs = await run_switch_node(switch_ctx({"a": "x"}), {"path": "a"})
        assert outputs["route"] == "default"

    @pytest.mark.asyncio
    async def test_path_is_required(self):
        with pytest.raises(NodeValidationError):
            await run_switch_node(switch_ctx({}), {})

    def test_routes_map_to_branch_legs(self):
        assert ROUTE_TO_BRANCH_KEY == {"match": "if", "default": "else"}
        assert BUILTIN_EXECUTORS["branch"] is BUILTIN_EXECUTORS["switch"]


class TestSwitchHelpers:
    def test_resolve_path(self):
        data = {"a": {"b": {"c": 3}}}
        assert resolve_path(data, "a.b.c") == 3
        assert resolve_path(data, " a . b ") == {"c": 3}
        assert resolve_path(data, "a.x") is _MISSING
        assert resolve_path(data, "...") is _MISSING

    def test_coerce_number(self):
        assert coerce_value("42", "number") == 42.0
        assert coerce_value("", "number") == 0.0
        assert coerce_value("abc", "number") is None
        assert coerce_value(True, "number") == 1.0

    def test_coerce_boolean(self):
        assert coerce_value("False", "boolean") is False
        assert coerce_value(1, "boolean") is True
        assert coerce_value("yes", "boolean") is None

    def test_coerce_string(self):
        assert coerce_value(1.0, "string") == "1"
        assert coerce_value(False, "string") == "false"
        assert coerce_value({"a": 1}, "string") == '{"a":1}'
        assert coerce_value(None, "string") is None

    def test_ordering_needs_numbers(self):
        assert evaluate_comparison("b", "a", "greaterThan") is False
        assert evaluate_comparison(2.0, 1.0, "greaterThan") is True
        assert evaluate_comparison(None, 1.0, "lessThan") is False


# ---------------------------------------------------------------------------
# Text, wait, trigger
# ---------------------------------------------------------------------------


class TestTextNode:
    @pytest.mark.asyncio
    async def test_default_message(self):
        assert await run_text_node(None, {}) == {"text": ["Hello from flows"]}

    @pytest.mark.asyncio
    async def test_repeat(self):
        outputs = await run_text_node(None, {"message": "hi", "repeat": 3})
        assert outputs == {"text": ["hi", "hi", "hi"]}

    @pytest.mark.asyncio
    async def test_repeat_out_of_range(self):
        with pytest.raises(NodeValidationError):
            await run_text_node(None, {"repeat": 6})


class TestWaitNode:
    @pytest.mark.asyncio
    async def test_uses_injected_sleep(self):
        slept = []

        async def fake_sleep(seconds):
            slept.append(seconds)

        ctx = SimpleNamespace(sleep=fake_sleep, config=make_config())
        outputs = await run_wait_node(ctx, {"seconds": 2})

        assert slept == [2.0]
        assert outputs == {"waited": 2.0}

    @pytest.mark.asyncio
    async def test_caps_at_configured_limit(self):
        slept = []

        async def fake_sleep(seconds):
            slept.append(seconds)

        ctx = SimpleNamespace(sleep=fake_sleep, config=make_config(max_wait_seconds=10.0))
        outputs = await run_wait_node(ctx, {"seconds": 99})

        assert slept == [10.0]
        assert outputs == {"waited": 10.0}

    @pytest.mark.asyncio
    async def test_negative_seconds_rejected(self):
        with pytest.raises(NodeValidationError):
            await run_wait_node(None, {"seconds": -1})


class TestTriggerNode:
    @pytest.mark.asyncio
    async def test_trigger_overrides_defaults(self):
        ctx = SimpleNamespace(trigger={"status": "ok"})
        outputs = await run_trigger_node(ctx, {"payload": {"status": "new", "user": "u1"}})
        assert outputs == {"payload": {"status": "ok", "user": "u1"}}

    @pytest.mark.asyncio
    async def test_without_trigger(self):
        assert await run_trigger_node(None, {}) == {"payload": {}}
