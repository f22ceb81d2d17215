"""
ToolBridgeService: the explicitly constructed bridge that request handlers use.

It owns the catalog, the tool cache and the execution pipeline, and gives
every call site (HTTP routes, MCP middleware, chat integration) the same
operations:

    service = ToolBridgeService.from_settings(settings)

    tools = await service.function_tools_for(identity)       # before the model runs
    response = await service.intercept(identity, response)   # after it answers
    result = await service.execute(identity, "search_documents", {"query": "handbook"})

Nothing here is a module-level singleton; the server builds one instance and
passes it to its handlers.
"""

import logging
from typing import Any

import httpx

from workflow_bridge.auth import Identity
from workflow_bridge.authorization import AuthorizationGuard
from workflow_bridge.catalog import WorkflowCatalog, WorkflowDefinition
from workflow_bridge.config import Settings
from workflow_bridge.execution import (
    DEFAULT_TIMEOUT,
    ErrorKind,
    ExecutionBridge,
    ExecutionContext,
    ExecutionResult,
)
from workflow_bridge.interception import ToolCallInterceptor
from workflow_bridge.profiles import ProfileEntitlement, ProfileStore, Role, load_profiles
from workflow_bridge.tools import ToolDescriptor, ToolMaterializer

logger = logging.getLogger(__name__)


class ToolBridgeService:
    def __init__(
        self,
        catalog: WorkflowCatalog,
        profiles: ProfileStore,
        *,
        engine_base_url: str = "http://localhost:5678",
        engine_timeout: float = DEFAULT_TIMEOUT,
        engine_api_key: str | None = None,
        engine_api_key_header: str = "X-N8N-API-KEY",
        strict_parameters: bool = False,
        client: httpx.AsyncClient | None = None,
        admin_roles: tuple[str, ...] = ("admin",),
        catalog_viewer_roles: tuple[str, ...] = ("admin", "ceo"),
    ):
        self.catalog = catalog
        self.profiles = profiles
        self.guard = AuthorizationGuard(catalog)
        self.materializer = ToolMaterializer(catalog)
        self.bridge = ExecutionBridge(
            catalog,
            self.guard,
            base_url=engine_base_url,
            timeout=engine_timeout,
            api_key=engine_api_key,
            api_key_header=engine_api_key_header,
            strict_parameters=strict_parameters,
            client=client,
        )
        self.interceptor = ToolCallInterceptor(self.guard, self.bridge)
        self._admin_roles = frozenset(admin_roles)
        self._catalog_viewer_roles = frozenset(catalog_viewer_roles)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        profiles: ProfileStore | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> "ToolBridgeService":
        """
        Build the service from configuration.

        Raises CatalogError if the catalog is invalid and ProfileError if the
        profiles file is unusable; callers at startup let them propagate so
        the process does not start half-configured.
        """
        if settings.catalog_file is not None:
            catalog = WorkflowCatalog.from_file(settings.catalog_file)
        else:
            catalog = WorkflowCatalog.default()

        service = cls(
            catalog,
            profiles if profiles is not None else load_profiles(settings.profiles_file),
            engine_base_url=settings.engine_base_url,
            engine_timeout=settings.engine_timeout,
            engine_api_key=settings.engine_api_key,
            engine_api_key_header=settings.engine_api_key_header,
            strict_parameters=settings.strict_parameters,
            client=client,
            admin_roles=tuple(settings.admin_roles),
            catalog_viewer_roles=tuple(settings.catalog_viewer_roles),
        )
        logger.info(
            "Tool bridge ready",
            extra={
                "event_data": {
                    "workflows": len(catalog),
                    "engine": settings.engine_base_url,
                }
            },
        )
        return service

    # --- Profile lookup and materialization ---

    async def entitlement_for(self, identity: Identity) -> ProfileEntitlement | None:
        return await self.profiles.find_entitlement(identity.subject)

    async def tools_for(
        self, identity: Identity, entitlement: ProfileEntitlement | None = None
    ) -> tuple[ToolDescriptor, ...]:
        entitlement = entitlement or await self.entitlement_for(identity)
        if entitlement is None:
            logger.warning("No profile found for %s", identity.subject)
            return ()
        return self.materializer.materialize(entitlement.role, entitlement.grants)

    async def function_tools_for(self, identity: Identity) -> list[dict[str, Any]]:
        """The tool list to advertise in a chat-completion request."""
        return [tool.to_function_tool() for tool in await self.tools_for(identity)]

    def execution_context(
        self, identity: Identity, entitlement: ProfileEntitlement
    ) -> ExecutionContext:
        return ExecutionContext(
            role=entitlement.role,
            user_id=identity.subject,
            username=identity.username or entitlement.username or identity.subject,
            profile=entitlement.snapshot(),
        )

    # --- Execution ---

    async def execute(
        self,
        identity: Identity,
        function_name: str,
        parameters: dict[str, Any] | None = None,
        entitlement: ProfileEntitlement | None = None,
    ) -> ExecutionResult:
        entitlement = entitlement or await self.entitlement_for(identity)
        if entitlement is None:
            return ExecutionResult.failed(
                function_name, ErrorKind.FORBIDDEN, "User profile not found"
            )
        context = self.execution_context(identity, entitlement)
        return await self.bridge.execute(function_name, parameters, context)

    async def intercept(
        self,
        identity: Identity,
        response: dict[str, Any],
        entitlement: ProfileEntitlement | None = None,
    ) -> dict[str, Any]:
        entitlement = entitlement or await self.entitlement_for(identity)
        if entitlement is None:
            return response
        tools = self.materializer.materialize(entitlement.role, entitlement.grants)
        context = self.execution_context(identity, entitlement)
        return await self.interceptor.intercept(response, tools, context)

    # --- Administrative and diagnostic operations ---

    def clear_tool_cache(self, role: Role | str) -> int:
        self._require(role, self._admin_roles, "clear the tool cache")
        return self.materializer.clear()

    def list_all_workflow_definitions(self, role: Role | str) -> tuple[WorkflowDefinition, ...]:
        self._require(role, self._catalog_viewer_roles, "list workflow definitions")
        return self.catalog.entries()

    def _require(self, role: Role | str, allowed: frozenset[str], action: str) -> None:
        role_name = role.value if isinstance(role, Role) else str(role)
        if role_name not in allowed:
            logger.warning(
                "Administrative operation denied",
                extra={"event_data": {"role": role_name, "action": action, "decision": "denied"}},
            )
            raise PermissionError(
                f"Access denied: {' or '.join(sorted(allowed))} role required to {action}"
            )
