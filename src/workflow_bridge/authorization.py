"""
The Authorization Guard: may this role run this function right now?

Every execution path (HTTP, MCP, chat interception) asks the guard against
the catalog, whatever tool list the caller was shown earlier.
Unknown functions are denied ("fail closed").
"""

import logging

from workflow_bridge.catalog import WorkflowCatalog
from workflow_bridge.profiles import Role

logger = logging.getLogger(__name__)


class AuthorizationGuard:
    def __init__(self, catalog: WorkflowCatalog):
        self._catalog = catalog

    def authorize(self, role: Role | str, function_name: str) -> bool:
        """Return whether `role` may call `function_name`. Never raises."""
        role_name = role.value if isinstance(role, Role) else str(role)
        definition = self._catalog.lookup(function_name)

        if definition is None:
            reason = "unknown_function"
        elif role_name not in {r.value for r in definition.allowed_roles}:
            reason = "role_not_allowed"
        else:
            logger.debug(
                "Tool call authorized",
                extra={"event_data": {"role": role_name, "function": function_name}},
            )
            return True

        logger.warning(
            "Tool call denied",
            extra={
                "event_data": {
                    "role": role_name,
                    "function": function_name,
                    "decision": "denied",
                    "reason": reason,
                }
            },
        )
        return False
