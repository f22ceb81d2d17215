"""
The Execution Bridge: one tool invocation, one HTTP call to the workflow engine.

    execute("get_financial_analytics", {"period": "Q4 2024"}, context)

    POST {engine_base_url}/webhook/librechat/financial-analytics
    Content-Type: application/json
    {"period": "Q4 2024",
     "_context": {"profileType": "ceo", "userId": "user-ceo", "username": "...",
                  "timestamp": "...", "functionName": "get_financial_analytics",
                  "profile": {...}}}

Every outcome is returned as an ExecutionResult. Callers never see httpx
exceptions: a failed tool call is reported to the agent as a failed tool
result, it does not abort the conversation turn.

Failure classes (ErrorKind):
- not_found: the function is not in the catalog
- forbidden: the caller's role may not run it (the engine is never called)
- malformed_input: arguments fail the schema and strict checking is on
- remote_error: the engine answered with a non-2xx status
- unreachable: timeout or connection failure (no status code)
- cancelled: the surrounding request was cancelled
- internal_error: the call failed in an unexpected way (logged with traceback)

The bridge performs no retries and keeps no connection open between calls.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from workflow_bridge.authorization import AuthorizationGuard
from workflow_bridge.catalog import WorkflowCatalog
from workflow_bridge.profiles import Role

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExecutionContext:
    """Who is calling. Built fresh for every call and never stored."""

    role: Role
    user_id: str
    username: str | None = None
    profile: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    def envelope(self, function_name: str) -> dict[str, Any]:
        return {
            "profileType": self.role.value,
            "userId": self.user_id,
            "username": self.username,
            "timestamp": self.timestamp.isoformat(),
            "functionName": function_name,
            "profile": self.profile or {"profileType": self.role.value},
        }


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    MALFORMED_INPUT = "malformed_input"
    REMOTE_ERROR = "remote_error"
    UNREACHABLE = "unreachable"
    CANCELLED = "cancelled"
    INTERNAL = "internal_error"


@dataclass(frozen=True)
class ExecutionError:
    kind: ErrorKind
    message: str
    code: int | None = None
    details: Any = None

    def to_dict(self) -> dict[str, Any]:
        rendered: dict[str, Any] = {"type": self.kind.value, "message": self.message}
        if self.code is not None:
            rendered["code"] = self.code
        if self.details is not None:
            rendered["details"] = self.details
        return rendered


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    function_name: str
    executed_at: datetime = field(default_factory=_utcnow)
    data: Any = None
    error: ExecutionError | None = None

    @classmethod
    def ok(cls, function_name: str, data: Any) -> "ExecutionResult":
        return cls(success=True, function_name=function_name, data=data)

    @classmethod
    def failed(
        cls,
        function_name: str,
        kind: ErrorKind,
        message: str,
        code: int | None = None,
        details: Any = None,
    ) -> "ExecutionResult":
        return cls(
            success=False,
            function_name=function_name,
            error=ExecutionError(kind=kind, message=message, code=code, details=details),
        )

    def to_dict(self) -> dict[str, Any]:
        rendered: dict[str, Any] = {
            "success": self.success,
            "function_name": self.function_name,
            "executed_at": self.executed_at.isoformat(),
        }
        if self.success:
            rendered["data"] = self.data
        else:
            rendered["error"] = self.error.to_dict() if self.error else {"message": "Unknown error"}
        return rendered


def _response_payload(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"text": response.text}


def _remote_message(payload: Any, status_code: int) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return f"Workflow execution failed with HTTP {status_code}"


class ExecutionBridge:
    """Dispatches authorized tool calls to the workflow engine."""

    def __init__(
        self,
        catalog: WorkflowCatalog,
        guard: AuthorizationGuard,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        api_key: str | None = None,
        api_key_header: str = "X-N8N-API-KEY",
        strict_parameters: bool = False,
        client: httpx.AsyncClient | None = None,
    ):
        self._catalog = catalog
        self._guard = guard
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._api_key = api_key
        self._api_key_header = api_key_header
        self._strict_parameters = strict_parameters
        self._client = client

    async def execute(
        self,
        function_name: str,
        parameters: dict[str, Any] | None,
        context: ExecutionContext,
    ) -> ExecutionResult:
        definition = self._catalog.lookup(function_name)
        if definition is None:
            return ExecutionResult.failed(
                function_name, ErrorKind.NOT_FOUND, f"Function not found: {function_name}"
            )

        if not self._guard.authorize(context.role, function_name):
            return ExecutionResult.failed(
                function_name,
                ErrorKind.FORBIDDEN,
                f"Profile {context.role.value} not authorized for {function_name}",
            )

        arguments = {k: v for k, v in (parameters or {}).items() if k != "_context"}
        arguments, problems = definition.parameters.coerce(arguments)
        if problems:
            logger.warning(
                "Tool arguments do not match schema",
                extra={"event_data": {"function": function_name, "problems": problems}},
            )
            if self._strict_parameters:
                return ExecutionResult.failed(
                    function_name,
                    ErrorKind.MALFORMED_INPUT,
                    f"Invalid arguments for {function_name}: {'; '.join(problems)}",
                )

        payload = {**arguments, "_context": context.envelope(function_name)}
        try:
            json.dumps(payload, allow_nan=False)
        except (TypeError, ValueError) as e:
            return ExecutionResult.failed(
                function_name,
                ErrorKind.MALFORMED_INPUT,
                f"Arguments for {function_name} are not valid JSON: {e}",
            )

        url = f"{self._base_url}{definition.endpoint}"

        logger.info(
            "Calling workflow engine",
            extra={
                "event_data": {
                    "function": function_name,
                    "url": url,
                    "role": context.role.value,
                    "user_id": context.user_id,
                    "has_profile": context.profile is not None,
                }
            },
        )

        try:
            response = await self._post(url, payload)
        except httpx.TimeoutException:
            logger.error(
                "Workflow engine timed out",
                extra={"event_data": {"function": function_name, "timeout": self._timeout}},
            )
            return ExecutionResult.failed(
                function_name,
                ErrorKind.UNREACHABLE,
                f"Workflow engine not responding (no reply within {self._timeout:g}s)",
            )
        except httpx.RequestError as e:
            logger.error(
                "Workflow engine unreachable",
                extra={"event_data": {"function": function_name, "error": str(e)}},
            )
            return ExecutionResult.failed(
                function_name,
                ErrorKind.UNREACHABLE,
                "Workflow engine not responding. Please check connection.",
            )

        body = _response_payload(response)

        if not response.is_success:
            logger.error(
                "Workflow engine returned an error",
                extra={
                    "event_data": {"function": function_name, "status": response.status_code}
                },
            )
            return ExecutionResult.failed(
                function_name,
                ErrorKind.REMOTE_ERROR,
                _remote_message(body, response.status_code),
                code=response.status_code,
                details=body,
            )

        logger.info(
            "Workflow executed successfully",
            extra={"event_data": {"function": function_name, "status": response.status_code}},
        )
        return ExecutionResult.ok(function_name, body)

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers[self._api_key_header] = self._api_key

        if self._client is not None:
            return await self._client.post(url, json=payload, headers=headers, timeout=self._timeout)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, json=payload, headers=headers)
