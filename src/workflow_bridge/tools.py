"""
Tool materialization: turning catalog entries into agent-facing tools.

A profile grants workflows by id. Materialization resolves each grant against
the catalog and produces a ToolDescriptor in the function-calling format:

    {"type": "function",
     "function": {"name": "get_financial_analytics",
                  "description": "...",
                  "parameters": {...JSON schema...}}}

Every descriptor also carries a ToolMetadata block (workflow id, endpoint,
display name, allowed roles) for internal bookkeeping. It is NOT part of
`to_function_tool()`: the agent never sees endpoints, and nothing from the
metadata block is forwarded to the workflow engine.

Visibility rules:
- A grant whose workflow id is not in the catalog is dropped (and logged).
- A grant whose workflow does not allow the profile's role is dropped (and
  logged). Profiles cannot widen the catalog's role table.
- Output order follows grant order, so a profile can prioritize its tools.

Seeing a tool is not permission to run it: the Authorization Guard checks
again at execution time.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from workflow_bridge.catalog import WorkflowCatalog
from workflow_bridge.profiles import Role, WorkflowGrant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolMetadata:
    workflow_id: str
    endpoint: str
    display_name: str
    allowed_roles: frozenset[Role]


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    parameters: dict[str, Any]
    metadata: ToolMetadata

    def to_function_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


# Cache key: the role plus the exact grant list. Two identities of the same
# role with differently customized grants never share an entry.
CacheKey = tuple[Role, tuple[WorkflowGrant, ...]]


class ToolMaterializer:
    """Builds and caches ToolDescriptor lists. Entries live until `clear()`."""

    def __init__(self, catalog: WorkflowCatalog):
        self._catalog = catalog
        self._cache: dict[CacheKey, tuple[ToolDescriptor, ...]] = {}

    def materialize(self, role: Role, grants: Iterable[WorkflowGrant]) -> tuple[ToolDescriptor, ...]:
        grants = tuple(grants)
        key = (role, grants)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Returning cached tools for role %s", role.value)
            return cached

        tools = tuple(self._build(role, grants))
        self._cache[key] = tools

        logger.info(
            "Tools materialized",
            extra={
                "event_data": {
                    "role": role.value,
                    "granted": len(grants),
                    "tools": [t.name for t in tools],
                }
            },
        )
        return tools

    def _build(self, role: Role, grants: tuple[WorkflowGrant, ...]) -> Iterable[ToolDescriptor]:
        for grant in grants:
            definition = self._catalog.lookup_workflow(grant.workflow_id)

            if definition is None:
                logger.warning(
                    "Granted workflow not found in catalog",
                    extra={"event_data": {"role": role.value, "workflow_id": grant.workflow_id}},
                )
                continue

            if role not in definition.allowed_roles:
                logger.warning(
                    "Granted workflow not allowed for role",
                    extra={
                        "event_data": {
                            "role": role.value,
                            "workflow_id": grant.workflow_id,
                            "function": definition.function_name,
                        }
                    },
                )
                continue

            yield ToolDescriptor(
                name=definition.function_name,
                description=definition.description,
                parameters=definition.parameters.to_json_schema(),
                metadata=ToolMetadata(
                    workflow_id=definition.workflow_id,
                    endpoint=definition.endpoint,
                    display_name=grant.display_name or definition.function_name,
                    allowed_roles=definition.allowed_roles,
                ),
            )

    def clear(self) -> int:
        """Drop every cached tool list. Returns how many entries were dropped."""
        dropped = len(self._cache)
        self._cache.clear()
        logger.info("Tool cache cleared", extra={"event_data": {"entries": dropped}})
        return dropped
