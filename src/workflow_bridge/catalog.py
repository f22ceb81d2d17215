"""
The Workflow Catalog: every workflow the bridge can expose as a tool.

Each entry maps a function name (what the agent calls) to a workflow engine
endpoint (what actually runs) and the set of roles allowed to use it:

    "get_financial_analytics" -> POST /webhook/librechat/financial-analytics
                                 allowed for {"ceo"}

The catalog is loaded once at process start and is read-only afterwards.
Function names and workflow ids must be unique; a collision is a
configuration error and the process refuses to start.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from workflow_bridge.profiles import Role
from workflow_bridge.schema import ParameterSchema, SchemaError


class CatalogError(Exception):
    """Raised when catalog configuration is invalid. Fatal at startup."""


@dataclass(frozen=True)
class WorkflowDefinition:
    workflow_id: str
    function_name: str
    description: str
    parameters: ParameterSchema
    endpoint: str
    allowed_roles: frozenset[Role]
    examples: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, workflow_id: str, raw: dict[str, Any]) -> "WorkflowDefinition":
        try:
            parameters = ParameterSchema.from_json_schema(raw.get("parameters"))
            allowed_roles = frozenset(Role(r) for r in raw["profile_types"])
            return cls(
                workflow_id=workflow_id,
                function_name=raw["name"],
                description=raw["description"],
                parameters=parameters,
                endpoint=raw["endpoint"],
                allowed_roles=allowed_roles,
                examples=tuple(raw.get("examples", ())),
            )
        except SchemaError as e:
            raise CatalogError(f"Workflow '{workflow_id}': {e}") from e
        except KeyError as e:
            raise CatalogError(f"Workflow '{workflow_id}' is missing field {e}") from e
        except ValueError as e:
            raise CatalogError(f"Workflow '{workflow_id}' has an unknown role: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "function_name": self.function_name,
            "description": self.description,
            "endpoint": self.endpoint,
            "allowed_roles": sorted(role.value for role in self.allowed_roles),
            "parameters": self.parameters.to_json_schema(),
            "examples": list(self.examples),
        }


class WorkflowCatalog:
    """Read-only lookup table of workflow definitions."""

    def __init__(self, definitions: Iterable[WorkflowDefinition]):
        self._by_name: dict[str, WorkflowDefinition] = {}
        self._by_id: dict[str, WorkflowDefinition] = {}

        for definition in definitions:
            if definition.function_name in self._by_name:
                raise CatalogError(
                    f"Duplicate function name '{definition.function_name}' "
                    f"(workflows '{self._by_name[definition.function_name].workflow_id}' "
                    f"and '{definition.workflow_id}')"
                )
            if definition.workflow_id in self._by_id:
                raise CatalogError(f"Duplicate workflow id '{definition.workflow_id}'")
            self._by_name[definition.function_name] = definition
            self._by_id[definition.workflow_id] = definition

    @classmethod
    def from_mapping(cls, workflows: dict[str, dict[str, Any]]) -> "WorkflowCatalog":
        return cls(WorkflowDefinition.from_dict(wid, raw) for wid, raw in workflows.items())

    @classmethod
    def from_file(cls, path: Path) -> "WorkflowCatalog":
        try:
            workflows = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Cannot read catalog file {path}: {e}") from e
        if not isinstance(workflows, dict):
            raise CatalogError(f"Catalog file {path} must map workflow ids to definitions")
        return cls.from_mapping(workflows)

    @classmethod
    def default(cls) -> "WorkflowCatalog":
        return cls.from_mapping(DEFAULT_WORKFLOWS)

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, function_name: str) -> bool:
        return function_name in self._by_name

    def lookup(self, function_name: str) -> WorkflowDefinition | None:
        return self._by_name.get(function_name)

    def lookup_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        return self._by_id.get(workflow_id)

    def entries(self) -> tuple[WorkflowDefinition, ...]:
        return tuple(self._by_name.values())


# Built-in catalog, keyed by workflow id. `profile_types` lists the roles
# allowed to see and call each workflow.
DEFAULT_WORKFLOWS: dict[str, dict[str, Any]] = {
    # --- Executive ---
    "wf_financial_analytics": {
        "name": "get_financial_analytics",
        "description": (
            "Get comprehensive financial analytics including revenue, expenses, profit, "
            "department performance, and trends. Use this when user asks about financial "
            "data, revenue, profit, expenses, or financial metrics."
        ),
        "endpoint": "/webhook/librechat/financial-analytics",
        "profile_types": ["ceo"],
        "parameters": {
            "type": "object",
            "properties": {
                "period": {
                    "type": "string",
                    "description": (
                        'Time period for analytics (e.g., "Q4 2024", "2024", '
                        '"Last Quarter", "This Year")'
                    ),
                    "default": "Q4 2024",
                },
                "includeComparison": {
                    "type": "boolean",
                    "description": "Include comparison with previous period",
                    "default": True,
                },
                "department": {
                    "type": "string",
                    "description": (
                        "Specific department to analyze (optional). "
                        "Leave empty for all departments."
                    ),
                    "enum": ["Sales", "Marketing", "Engineering", "Operations", "all"],
                },
            },
            "required": ["period"],
        },
        "examples": [
            "Show me Q4 2024 financials",
            "What is our revenue this quarter?",
            "How much profit did we make?",
            "Compare sales performance",
        ],
    },
    "wf_company_metrics": {
        "name": "get_company_metrics",
        "description": (
            "Get company-wide KPIs and metrics including employee count, customer "
            "satisfaction, active projects, department performance, and goal progress. "
            "Use this when user asks about company performance, KPIs, metrics, or "
            "overall company status."
        ),
        "endpoint": "/webhook/librechat/company-metrics",
        "profile_types": ["ceo"],
        "parameters": {
            "type": "object",
            "properties": {
                "metricType": {
                    "type": "string",
                    "description": "Type of metrics to retrieve",
                    "enum": ["all", "employees", "customers", "projects", "departments", "goals"],
                    "default": "all",
                },
                "includeHistory": {
                    "type": "boolean",
                    "description": "Include historical trend data",
                    "default": False,
                },
            },
            "required": [],
        },
        "examples": [
            "Show me company metrics",
            "How many employees do we have?",
            "What is our customer satisfaction score?",
        ],
    },
    # --- Employee operations ---
    "wf_task_management": {
        "name": "manage_tasks",
        "description": (
            "Manage tasks including listing, creating, updating, and completing tasks. "
            "Use this when user wants to view tasks, create new tasks, update task "
            "status, or mark tasks as complete."
        ),
        "endpoint": "/webhook/librechat/task-management",
        "profile_types": ["employee"],
        "parameters": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "description": "Action to perform on tasks",
                    "enum": ["list", "create", "update", "complete"],
                    "default": "list",
                },
                "status": {
                    "type": "string",
                    "description": "Filter tasks by status (for list action)",
                    "enum": ["pending", "in-progress", "completed", "all"],
                },
                "taskTitle": {
                    "type": "string",
                    "description": "Task title (for create/update actions)",
                },
                "taskDescription": {
                    "type": "string",
                    "description": "Task description (for create action)",
                },
                "priority": {
                    "type": "string",
                    "description": "Task priority (for create action)",
                    "enum": ["low", "medium", "high", "urgent"],
                    "default": "medium",
                },
                "taskId": {
                    "type": "string",
                    "description": "Task ID (for update/complete actions)",
                },
            },
            "required": ["action"],
        },
        "examples": [
            "Show me my tasks",
            "Create a task to review Q4 reports",
            "Mark task as complete",
        ],
    },
    # --- Customer operations ---
    "wf_support_ticket": {
        "name": "manage_support_tickets",
        "description": (
            "Manage support tickets including creating new tickets, viewing ticket "
            "status, and listing all tickets. Use this when customer wants to report an "
            "issue, check ticket status, or view their support history."
        ),
        "endpoint": "/webhook/librechat/support-ticket",
        "profile_types": ["customer"],
        "parameters": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "description": "Action to perform",
                    "enum": ["create", "list", "get_status"],
                    "default": "list",
                },
                "subject": {
                    "type": "string",
                    "description": "Ticket subject (for create action)",
                },
                "description": {
                    "type": "string",
                    "description": (
                        "Detailed description of the issue (for create action). "
                        "Minimum 10 characters."
                    ),
                },
                "priority": {
                    "type": "string",
                    "description": "Issue priority (for create action)",
                    "enum": ["low", "medium", "high", "urgent"],
                    "default": "medium",
                },
                "ticketId": {
                    "type": "string",
                    "description": "Ticket ID (for get_status action)",
                },
            },
            "required": ["action"],
        },
        "examples": [
            "I need help with login issues",
            "Check my ticket status",
            "List my support tickets",
        ],
    },
    "wf_project_status": {
        "name": "get_project_status",
        "description": (
            "Get project status, progress, budget, timeline, and team information. Use "
            "this when customer asks about their project progress, budget status, "
            "milestones, or team members."
        ),
        "endpoint": "/webhook/librechat/project-status",
        "profile_types": ["customer"],
        "parameters": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "description": "Action to perform",
                    "enum": ["get", "list"],
                    "default": "list",
                },
                "projectId": {
                    "type": "string",
                    "description": "Project ID (for get action). Examples: PRJ-001, PRJ-002",
                },
            },
            "required": ["action"],
        },
        "examples": [
            "Show me my project status",
            "What is the progress of PRJ-001?",
        ],
    },
    # --- General ---
    "wf_doc_search": {
        "name": "search_documents",
        "description": (
            "Search company documents and knowledge base. Use this when user wants to "
            "find documents, search for information, or access company resources."
        ),
        "endpoint": "/webhook/librechat/document-search",
        "profile_types": ["ceo", "employee", "customer"],
        "parameters": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query or keywords",
                },
                "documentType": {
                    "type": "string",
                    "description": "Filter by document type",
                    "enum": ["all", "pdf", "doc", "txt", "xlsx"],
                    "default": "all",
                },
                "category": {
                    "type": "string",
                    "description": "Document category",
                    "enum": ["all", "policies", "procedures", "reports", "templates", "guides"],
                    "default": "all",
                },
                "limit": {
                    "type": "number",
                    "description": "Maximum number of results",
                    "default": 10,
                },
            },
            "required": ["query"],
        },
        "examples": [
            "Search for employee handbook",
            "Find Q4 reports",
        ],
    },
}
