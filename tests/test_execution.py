"""
Tests for the Execution Bridge (workflow_bridge/execution.py).

The bridge talks to the fake engine from conftest, so every request it makes
is inspectable via `engine.requests` / `engine.bodies()`.
"""

import httpx
import pytest

from workflow_bridge.authorization import AuthorizationGuard
from workflow_bridge.execution import (
    ErrorKind,
    ExecutionBridge,
    ExecutionContext,
    ExecutionResult,
)
from workflow_bridge.profiles import Role

ENGINE_URL = "http://engine.test"


@pytest.fixture
def make_bridge(catalog, engine_client):
    def _make_bridge(**kwargs) -> ExecutionBridge:
        kwargs.setdefault("client", engine_client)
        return ExecutionBridge(catalog, AuthorizationGuard(catalog), ENGINE_URL, **kwargs)

    return _make_bridge


@pytest.fixture
def bridge(make_bridge):
    return make_bridge()


class TestExecuteSuccess:
    async def test_posts_arguments_to_catalog_endpoint(self, bridge, engine, ceo_context):
        result = await bridge.execute(
            "get_financial_analytics", {"period": "Q4 2024"}, ceo_context
        )

        assert result.success is True
        (request,) = engine.requests
        assert request.method == "POST"
        assert str(request.url) == f"{ENGINE_URL}/webhook/librechat/financial-analytics"
        assert request.headers["content-type"] == "application/json"

    async def test_response_body_is_returned_verbatim(self, bridge, engine, ceo_context):
        payload = {"success": True, "data": {"revenue": {"total": 1000}}, "extra": [1, 2]}
        engine.respond_with(200, payload)

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert result == ExecutionResult(
            success=True,
            function_name="get_financial_analytics",
            executed_at=result.executed_at,
            data=payload,
        )

    async def test_context_envelope_is_attached(self, bridge, engine, ceo_context):
        await bridge.execute("get_financial_analytics", {"period": "Q4 2024"}, ceo_context)

        (body,) = engine.bodies()
        assert body["period"] == "Q4 2024"
        assert body["_context"] == {
            "profileType": "ceo",
            "userId": "user-ceo",
            "username": "Carla",
            "timestamp": ceo_context.timestamp.isoformat(),
            "functionName": "get_financial_analytics",
            "profile": {"profileType": "ceo", "department": "Executive"},
        }

    async def test_caller_supplied_context_is_replaced(self, bridge, engine, ceo_context):
        forged = {"profileType": "admin", "userId": "someone-else"}

        await bridge.execute(
            "get_financial_analytics", {"period": "Q4", "_context": forged}, ceo_context
        )

        (body,) = engine.bodies()
        assert body["_context"]["profileType"] == "ceo"
        assert body["_context"]["userId"] == "user-ceo"

    async def test_missing_profile_sends_minimal_profile(self, bridge, engine):
        context = ExecutionContext(role=Role.EMPLOYEE, user_id="user-employee")

        await bridge.execute("search_documents", {"query": "handbook"}, context)

        (body,) = engine.bodies()
        assert body["_context"]["profile"] == {"profileType": "employee"}

    async def test_arguments_are_coerced_to_schema_types(self, bridge, engine, ceo_context):
        await bridge.execute("search_documents", {"query": "handbook", "limit": "3"}, ceo_context)

        (body,) = engine.bodies()
        assert body["limit"] == 3

    async def test_non_json_body_is_wrapped_as_text(self, bridge, engine, ceo_context):
        engine.respond_with(200, text="done")

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert result.success is True
        assert result.data == {"text": "done"}

    async def test_empty_body_yields_no_data(self, bridge, engine, ceo_context):
        engine.respond_with(204)

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert result.success is True
        assert result.data is None

    async def test_api_key_header_is_sent_when_configured(self, make_bridge, engine, ceo_context):
        bridge = make_bridge(api_key="secret-key", api_key_header="X-Engine-Key")

        await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert engine.requests[0].headers["x-engine-key"] == "secret-key"

    async def test_no_api_key_header_by_default(self, bridge, engine, ceo_context):
        await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert "x-n8n-api-key" not in engine.requests[0].headers


class TestExecuteRejections:
    async def test_unknown_function_is_not_found(self, bridge, engine, ceo_context):
        result = await bridge.execute("drop_tables", {}, ceo_context)

        assert result.success is False
        assert result.error.kind is ErrorKind.NOT_FOUND
        assert result.error.message == "Function not found: drop_tables"
        assert engine.requests == []

    async def test_forbidden_role_never_reaches_engine(self, bridge, engine):
        context = ExecutionContext(role=Role.EMPLOYEE, user_id="user-employee")

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, context)

        assert result.error.kind is ErrorKind.FORBIDDEN
        assert result.error.message == "Profile employee not authorized for get_financial_analytics"
        assert engine.requests == []

    async def test_schema_problems_are_forwarded_when_lenient(self, bridge, engine, ceo_context, caplog):
        result = await bridge.execute("get_financial_analytics", {}, ceo_context)

        assert result.success is True
        assert len(engine.requests) == 1
        assert "Tool arguments do not match schema" in [r.getMessage() for r in caplog.records]

    async def test_schema_problems_are_rejected_when_strict(self, make_bridge, engine, ceo_context):
        bridge = make_bridge(strict_parameters=True)

        result = await bridge.execute("get_financial_analytics", {}, ceo_context)

        assert result.error.kind is ErrorKind.MALFORMED_INPUT
        assert result.error.message.startswith("Invalid arguments for get_financial_analytics")
        assert engine.requests == []

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    async def test_non_finite_arguments_are_rejected(self, bridge, engine, ceo_context, value):
        result = await bridge.execute("search_documents", {"query": "q", "limit": value}, ceo_context)

        assert result.error.kind is ErrorKind.MALFORMED_INPUT
        assert result.error.message.startswith("Arguments for search_documents are not valid JSON")
        assert engine.requests == []


class TestExecuteFailures:
    async def test_remote_error_carries_status_and_message(self, bridge, engine, ceo_context):
        engine.respond_with(500, {"message": "boom"})

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert result.success is False
        assert result.error.kind is ErrorKind.REMOTE_ERROR
        assert result.error.code == 500
        assert result.error.message == "boom"
        assert result.error.details == {"message": "boom"}

    async def test_remote_error_without_message_uses_status(self, bridge, engine, ceo_context):
        engine.respond_with(404)

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert result.error.code == 404
        assert result.error.message == "Workflow execution failed with HTTP 404"
        assert result.error.to_dict() == {
            "type": "remote_error",
            "message": "Workflow execution failed with HTTP 404",
            "code": 404,
        }

    async def test_connection_failure_is_unreachable(self, bridge, engine, ceo_context):
        engine.fail_with(httpx.ConnectError, "connection refused")

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert result.error.kind is ErrorKind.UNREACHABLE
        assert "not responding" in result.error.message
        assert result.error.code is None

    async def test_timeout_is_unreachable(self, make_bridge, engine, ceo_context):
        bridge = make_bridge(timeout=2.5)
        engine.fail_with(httpx.ReadTimeout, "timed out")

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)

        assert result.error.kind is ErrorKind.UNREACHABLE
        assert result.error.message == "Workflow engine not responding (no reply within 2.5s)"
        assert result.error.code is None

    async def test_failed_result_serializes_error(self, bridge, engine, ceo_context):
        engine.fail_with(httpx.ConnectError)

        result = await bridge.execute("get_financial_analytics", {"period": "Q4"}, ceo_context)
        rendered = result.to_dict()

        assert rendered["success"] is False
        assert rendered["function_name"] == "get_financial_analytics"
        assert rendered["error"]["type"] == "unreachable"
        assert "data" not in rendered
