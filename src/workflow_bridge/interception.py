"""
Post-response tool-call interception.

After the model answers, its response may contain function calls:

    {"choices": [{"message": {"tool_calls": [
        {"id": "call_1", "type": "function",
         "function": {"name": "search_documents", "arguments": "{\"query\": \"handbook\"}"}}
    ]}}]}

The interceptor claims the calls whose names belong to the caller's
materialized workflow tools, runs them through the Authorization Guard and
the Execution Bridge, and returns a copy of the response with the tool-result
messages under `metadata["workflow_tool_results"]`. Calls to other tools are
left for whatever handles them downstream. A response with nothing to claim
is returned as-is.
"""

import asyncio
import json
import logging
from typing import Any, Iterable, Iterator

from workflow_bridge.authorization import AuthorizationGuard
from workflow_bridge.execution import ErrorKind, ExecutionBridge, ExecutionContext, ExecutionResult
from workflow_bridge.formatting import to_protocol_message
from workflow_bridge.tools import ToolDescriptor

logger = logging.getLogger(__name__)

RESULTS_KEY = "workflow_tool_results"


def iter_tool_calls(response: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Yield every tool call of every choice, in order."""
    choices = response.get("choices") if isinstance(response, dict) else None
    if not isinstance(choices, list):
        return
    for choice in choices:
        message = choice.get("message") if isinstance(choice, dict) else None
        tool_calls = message.get("tool_calls") if isinstance(message, dict) else None
        if isinstance(tool_calls, list):
            yield from (call for call in tool_calls if isinstance(call, dict))


def _function_name(call: dict[str, Any]) -> str | None:
    function = call.get("function")
    name = function.get("name") if isinstance(function, dict) else None
    return name if isinstance(name, str) else None


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Non-finite number {token} in tool arguments")


def _parse_arguments(call: dict[str, Any]) -> dict[str, Any] | None:
    raw = call["function"].get("arguments")
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw, parse_constant=_reject_constant)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


class ToolCallInterceptor:
    def __init__(self, guard: AuthorizationGuard, bridge: ExecutionBridge):
        self._guard = guard
        self._bridge = bridge

    async def intercept(
        self,
        response: dict[str, Any],
        tools: Iterable[ToolDescriptor],
        context: ExecutionContext,
    ) -> dict[str, Any]:
        tool_names = {tool.name for tool in tools}
        claimed = [call for call in iter_tool_calls(response) if _function_name(call) in tool_names]

        if not claimed:
            return response

        logger.info(
            "Intercepted workflow tool calls",
            extra={
                "event_data": {
                    "user_id": context.user_id,
                    "role": context.role.value,
                    "calls": [_function_name(call) for call in claimed],
                }
            },
        )

        # Results keep call order. Cancelling the surrounding request cancels
        # the gather itself, so no partial list is ever returned.
        outcomes = await asyncio.gather(
            *(self._run(call, context) for call in claimed),
            return_exceptions=True,
        )

        results = []
        for call, outcome in zip(claimed, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                outcome = ExecutionResult.failed(
                    _function_name(call), ErrorKind.CANCELLED, "Tool call was cancelled"
                )
            elif isinstance(outcome, Exception):
                logger.error(
                    "Tool call failed unexpectedly",
                    exc_info=outcome,
                    extra={"event_data": {"function": _function_name(call), "call_id": call.get("id")}},
                )
                outcome = ExecutionResult.failed(
                    _function_name(call), ErrorKind.INTERNAL, "Tool call failed unexpectedly"
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            results.append(to_protocol_message(outcome, call.get("id")))

        metadata = dict(response.get("metadata") or {})
        metadata[RESULTS_KEY] = results
        return {**response, "metadata": metadata}

    async def _run(self, call: dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        function_name = _function_name(call)

        arguments = _parse_arguments(call)
        if arguments is None:
            logger.warning(
                "Tool call arguments are not a JSON object",
                extra={"event_data": {"function": function_name, "call_id": call.get("id")}},
            )
            return ExecutionResult.failed(
                function_name,
                ErrorKind.MALFORMED_INPUT,
                f"Arguments for {function_name} must be a JSON object",
            )

        if not self._guard.authorize(context.role, function_name):
            return ExecutionResult.failed(
                function_name,
                ErrorKind.FORBIDDEN,
                f"Not authorized to use function: {function_name}",
            )

        return await self._bridge.execute(function_name, arguments, context)
