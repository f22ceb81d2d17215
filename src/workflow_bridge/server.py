"""
FastMCP server exposing the workflow bridge over MCP and plain HTTP.

`create_server(service)` returns a server with:
- One MCP tool per catalog workflow, behind an auth middleware that filters
  tools/list to the caller's materialized tools and authorizes tools/call
- HTTP routes for the chat integration and for operators:
    GET  /api/tools               caller's function tools (for tool injection)
    GET  /api/tools/test          diagnostic: caller profile and resolved tool names
    POST /api/tools/execute       run one tool: {"function_name", "parameters"}
    POST /api/tools/intercept     chat-completion response in, augmented response out
    GET  /api/tools/workflows     every workflow definition (elevated roles)
    POST /api/tools/clear-cache   drop cached tool lists (admin roles)
- Health and readiness endpoints (no auth)

Every MCP request and /api route authenticates the Bearer token, then looks
up the caller's profile. The profile, not the token, decides what the caller
may see and run.

Running the server:
    uv run python -m workflow_bridge.server
"""

import contextvars
import functools
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest
from pydantic import Field
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from workflow_bridge.auth import AuthError, Identity, validate_token
from workflow_bridge.config import settings
from workflow_bridge.formatting import to_display_text
from workflow_bridge.logs import configure_logging
from workflow_bridge.profiles import ProfileEntitlement
from workflow_bridge.service import ToolBridgeService

logger = logging.getLogger("workflow_bridge.server")

# The authenticated caller of the MCP tool call in progress. Set by
# AuthMiddleware.on_call_tool around call_next, read by WorkflowTool.run.
_current_caller: contextvars.ContextVar[tuple[Identity, ProfileEntitlement]] = (
    contextvars.ContextVar("workflow_bridge_caller")
)


# ---------------------------------------------------------------------------
# MCP tools
# ---------------------------------------------------------------------------


class WorkflowTool(Tool):
    """A catalog workflow served as an MCP tool."""

    service: Any = Field(exclude=True)

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        caller = _current_caller.get(None)
        if caller is None:
            raise ToolError("Authentication required")

        identity, entitlement = caller
        result = await self.service.execute(identity, self.name, arguments, entitlement)
        content = json.dumps(result.to_dict(), default=str)

        # MCP reports failed executions as tool errors (isError=true).
        if not result.success:
            raise ToolError(content)
        return ToolResult(content=content)


# ---------------------------------------------------------------------------
# Authentication & Authorization Middleware
# ---------------------------------------------------------------------------


class AuthMiddleware(Middleware):
    """
    Profile-based tool visibility and authorization for MCP requests.

    - tools/list returns only the caller's materialized tools, in grant order
    - tools/call is rejected unless the Authorization Guard allows the
      caller's role to run the tool, even if the caller guessed its name
    """

    def __init__(self, service: ToolBridgeService):
        self.service = service

    def _get_auth_header(self) -> str | None:
        try:
            request = get_http_request()
            return request.headers.get("authorization")
        except RuntimeError:
            return None

    async def _authenticate(self, request_id: str) -> tuple[Identity, ProfileEntitlement]:
        """
        Validate the JWT and load the caller's profile.

        Raises:
            AuthError: the token is missing or invalid
            PermissionError: the identity has no profile
        """
        try:
            identity = validate_token(self._get_auth_header())
        except AuthError as e:
            logger.warning(
                "Authentication failed",
                extra={
                    "event_data": {
                        "request_id": request_id,
                        "decision": "rejected",
                        "reason": e.message,
                    }
                },
            )
            raise

        entitlement = await self.service.entitlement_for(identity)
        if entitlement is None:
            logger.warning(
                "No profile found",
                extra={
                    "event_data": {
                        "request_id": request_id,
                        "subject": identity.subject,
                        "decision": "rejected",
                    }
                },
            )
            raise PermissionError("Access denied: user profile not configured")

        return identity, entitlement

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        request_id = str(uuid.uuid4())[:8]
        identity, entitlement = await self._authenticate(request_id)

        all_tools = await call_next(context)

        materialized = await self.service.tools_for(identity, entitlement)
        order = {tool.name: index for index, tool in enumerate(materialized)}
        visible = sorted((t for t in all_tools if t.name in order), key=lambda t: order[t.name])

        logger.info(
            "Tool list filtered by profile",
            extra={
                "event_data": {
                    "request_id": request_id,
                    "subject": identity.subject,
                    "role": entitlement.role.value,
                    "total_tools": len(all_tools),
                    "visible_tools": [t.name for t in visible],
                    "decision": "filtered",
                }
            },
        )
        return visible

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        request_id = str(uuid.uuid4())[:8]
        tool_name = context.message.name

        identity, entitlement = await self._authenticate(request_id)

        if not self.service.guard.authorize(entitlement.role, tool_name):
            raise PermissionError(
                f"Access denied: profile '{entitlement.role.value}' may not call '{tool_name}'"
            )

        logger.info(
            "Tool call authorized",
            extra={
                "event_data": {
                    "request_id": request_id,
                    "subject": identity.subject,
                    "role": entitlement.role.value,
                    "tool": tool_name,
                    "decision": "allowed",
                }
            },
        )

        token = _current_caller.set((identity, entitlement))
        try:
            return await call_next(context)
        finally:
            _current_caller.reset(token)


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------

RouteHandler = Callable[[Request, Identity, ProfileEntitlement], Awaitable[Response]]


def _error(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"success": False, "error": error, **extra}, status_code=status_code)


async def _json_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def create_server(service: ToolBridgeService) -> FastMCP:
    mcp = FastMCP(
        name="workflow-bridge",
        instructions=(
            "Exposes company automation workflows as tools. The tools you can see "
            "depend on your profile; each call runs a workflow and returns its JSON result."
        ),
        middleware=[AuthMiddleware(service)],
    )

    for definition in service.catalog.entries():
        mcp.add_tool(
            WorkflowTool(
                name=definition.function_name,
                description=definition.description,
                parameters=definition.parameters.to_json_schema(),
                service=service,
            )
        )

    def authenticated(handler: RouteHandler) -> Callable[[Request], Awaitable[Response]]:
        """Resolve the caller (401/403 on failure) and map PermissionError to 403."""

        @functools.wraps(handler)
        async def wrapper(request: Request) -> Response:
            try:
                identity = validate_token(request.headers.get("authorization"))
            except AuthError as e:
                logger.warning(
                    "Authentication failed",
                    extra={"event_data": {"path": request.url.path, "reason": e.message}},
                )
                return _error(e.status_code, "Authentication failed")

            entitlement = await service.entitlement_for(identity)
            if entitlement is None:
                return _error(
                    403,
                    "No profile found",
                    message="User profile not configured. Please contact administrator.",
                )

            try:
                return await handler(request, identity, entitlement)
            except PermissionError as e:
                return _error(403, str(e))

        return wrapper

    @mcp.custom_route("/api/tools", methods=["GET"])
    @authenticated
    async def list_tools(
        request: Request, identity: Identity, entitlement: ProfileEntitlement
    ) -> Response:
        tools = await service.tools_for(identity, entitlement)
        return JSONResponse(
            {
                "success": True,
                "user_id": identity.subject,
                "role": entitlement.role.value,
                "tool_count": len(tools),
                "tools": [tool.to_function_tool() for tool in tools],
            }
        )

    @mcp.custom_route("/api/tools/test", methods=["GET"])
    @authenticated
    async def diagnose_tools(
        request: Request, identity: Identity, entitlement: ProfileEntitlement
    ) -> Response:
        """Diagnostic: what the bridge resolves for the calling identity."""
        tools = await service.tools_for(identity, entitlement)
        return JSONResponse(
            {
                "success": True,
                "message": "Workflow tools system is working",
                "user": {
                    "id": identity.subject,
                    "username": identity.username or entitlement.username,
                },
                "profile": {
                    "profileType": entitlement.role.value,
                    "permissions": list(entitlement.permissions),
                    "workflowCount": len(entitlement.grants),
                },
                "tools": {"count": len(tools), "names": [tool.name for tool in tools]},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    @mcp.custom_route("/api/tools/execute", methods=["POST"])
    @authenticated
    async def execute_tool(
        request: Request, identity: Identity, entitlement: ProfileEntitlement
    ) -> Response:
        body = await _json_body(request)
        if body is None:
            return _error(400, "Request body must be a JSON object")

        function_name = body.get("function_name")
        if not function_name:
            return _error(400, "function_name is required")

        parameters = body.get("parameters") or {}
        if not isinstance(parameters, dict):
            return _error(400, "parameters must be a JSON object")

        if not service.guard.authorize(entitlement.role, function_name):
            return _error(403, f"Not authorized to execute {function_name}")

        result = await service.execute(identity, function_name, parameters, entitlement)
        return JSONResponse({**result.to_dict(), "display": to_display_text(result)})

    @mcp.custom_route("/api/tools/intercept", methods=["POST"])
    @authenticated
    async def intercept_response(
        request: Request, identity: Identity, entitlement: ProfileEntitlement
    ) -> Response:
        body = await _json_body(request)
        if body is None:
            return _error(400, "Request body must be a chat completion response object")
        return JSONResponse(await service.intercept(identity, body, entitlement))

    @mcp.custom_route("/api/tools/workflows", methods=["GET"])
    @authenticated
    async def list_workflows(
        request: Request, identity: Identity, entitlement: ProfileEntitlement
    ) -> Response:
        definitions = service.list_all_workflow_definitions(entitlement.role)
        return JSONResponse(
            {"success": True, "workflows": [definition.to_dict() for definition in definitions]}
        )

    @mcp.custom_route("/api/tools/clear-cache", methods=["POST"])
    @authenticated
    async def clear_cache(
        request: Request, identity: Identity, entitlement: ProfileEntitlement
    ) -> Response:
        dropped = service.clear_tool_cache(entitlement.role)
        return JSONResponse(
            {"success": True, "message": "Tool cache cleared successfully", "entries": dropped}
        )

    # Health and readiness checks carry no caller data and need no token.

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness check: is the server process alive and responsive?"""
        return JSONResponse({"status": "healthy"})

    @mcp.custom_route("/ready", methods=["GET"])
    async def readiness_check(request: Request) -> Response:
        """Readiness check: is there a catalog to serve?"""
        if len(service.catalog) == 0:
            return JSONResponse(
                {"status": "not_ready", "reason": "workflow catalog is empty"},
                status_code=503,
            )
        return JSONResponse({"status": "ready", "workflows": len(service.catalog)})

    return mcp


def main() -> None:
    configure_logging(settings.log_level)
    # A broken catalog raises CatalogError here and the process exits.
    service = ToolBridgeService.from_settings(settings)
    mcp = create_server(service)

    logger.info(
        "Starting workflow bridge on %s:%d (transport=streamable-http, engine=%s)",
        settings.host,
        settings.port,
        settings.engine_base_url,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
