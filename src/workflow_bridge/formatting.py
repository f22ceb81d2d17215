"""
Rendering execution results for the agent and for people.

Two renderings of the same ExecutionResult:

- `to_protocol_message()` is the tool-result message the agent protocol
  expects after a function call:

      {"tool_call_id": "call_abc", "role": "tool",
       "name": "get_financial_analytics", "content": "<JSON of the result>"}

- `to_display_text()` is a short markdown summary for the chat transcript,
  chosen by function name. Engine payloads vary between workflow versions,
  so every renderer treats missing fields as absent rather than failing.
"""

import json
from typing import Any, Callable

from workflow_bridge.execution import ExecutionResult


def to_protocol_message(result: ExecutionResult, call_id: str | None) -> dict[str, Any]:
    return {
        "tool_call_id": call_id,
        "role": "tool",
        "name": result.function_name,
        "content": json.dumps(result.to_dict(), default=str),
    }


def to_display_text(result: ExecutionResult, function_name: str | None = None) -> str:
    function_name = function_name or result.function_name

    if not result.success:
        message = result.error.message if result.error else "Unknown error"
        return f"❌ Error executing {function_name}: {message}"

    renderer = RENDERERS.get(function_name)
    if renderer is None:
        pretty = json.dumps(result.data, indent=2, default=str)
        return f"✅ {function_name} executed successfully.\n\n{pretty}"
    return renderer(result.data)


def _section(data: Any) -> dict[str, Any] | None:
    """Workflows answer {"success": ..., "data": {...}}; return the inner dict."""
    if not isinstance(data, dict):
        return None
    inner = data.get("data")
    return inner if isinstance(inner, dict) else None


def _get(obj: Any, key: str, default: Any = None) -> Any:
    return obj.get(key, default) if isinstance(obj, dict) else default


def _items(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _amount(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:,}"
    return "0" if value is None else str(value)


def format_financial_analytics(data: Any) -> str:
    section = _section(data)
    if section is None:
        return "No financial data available"

    revenue = section.get("revenue")
    profit = section.get("profit")
    departments = _items(section.get("departments"))

    message = "📊 **Financial Analytics**\n\n"

    if revenue:
        message += f"💰 **Revenue:** ${_amount(_get(revenue, 'total'))}\n"
        message += f"   - Target: ${_amount(_get(revenue, 'target'))}\n"
        message += f"   - Achievement: {_get(revenue, 'achievement', 0)}%\n\n"

    if profit:
        message += f"📈 **Profit:** ${_amount(_get(profit, 'amount'))}\n"
        message += f"   - Margin: {_get(profit, 'margin', 0)}%\n\n"

    if departments:
        message += "🏢 **Department Performance:**\n"
        for dept in departments[:3]:
            message += f"   - {_get(dept, 'name', 'Unknown')}: ${_amount(_get(dept, 'revenue'))} revenue\n"

    return message


def format_company_metrics(data: Any) -> str:
    section = _section(data)
    if section is None:
        return "No company metrics available"

    employees = section.get("employees")
    customers = section.get("customers")
    projects = section.get("projects")

    message = "📊 **Company Metrics**\n\n"

    if employees:
        message += f"👥 **Employees:** {_get(employees, 'total', 0)}\n"
        message += f"   - Productivity: {_get(employees, 'avgProductivity', 0)}%\n\n"

    if customers:
        message += f"😊 **Customer Satisfaction:** {_get(customers, 'satisfaction', 0)}%\n"
        message += f"   - Total Customers: {_get(customers, 'total', 0)}\n\n"

    if projects:
        message += f"📁 **Projects:** {_get(projects, 'active', 0)} active\n"
        message += f"   - Completion Rate: {_get(projects, 'completionRate', 0)}%\n\n"

    return message


_TASK_STATUS = {"completed": "✅", "in-progress": "🔄"}


def format_task_management(data: Any) -> str:
    section = _section(data)
    if section is None:
        return "No task data available"

    action = section.get("action")
    task = section.get("task")
    tasks = section.get("tasks")

    if action == "create" and task:
        return (
            "✅ Task created successfully!\n\n"
            f"**{_get(task, 'title')}**\n"
            f"ID: {_get(task, 'id')}\n"
            f"Priority: {_get(task, 'priority')}"
        )

    if action == "list" and isinstance(tasks, list):
        message = f"📋 **Your Tasks** ({len(tasks)} total)\n\n"
        for t in tasks[:5]:
            emoji = _TASK_STATUS.get(_get(t, "status"), "⏳")
            message += f"{emoji} **{_get(t, 'title')}**\n"
            message += (
                f"   Priority: {_get(t, 'priority')} | "
                f"Due: {_get(t, 'dueDate') or 'No deadline'}\n\n"
            )

        summary = section.get("summary")
        if isinstance(summary, dict):
            message += (
                f"\n📊 Summary: {summary.get('pending', 0)} pending, "
                f"{summary.get('inProgress', 0)} in progress, "
                f"{summary.get('completed', 0)} completed"
            )
        return message

    return "Task operation completed"


_TICKET_STATUS = {"resolved": "✅", "in-progress": "🔄"}


def format_support_tickets(data: Any) -> str:
    section = _section(data)
    if section is None:
        return "No ticket data available"

    action = section.get("action")
    ticket = section.get("ticket")
    tickets = section.get("tickets")

    if action == "create" and ticket:
        return (
            "✅ Support ticket created!\n\n"
            f"**{_get(ticket, 'subject')}**\n"
            f"Ticket ID: {_get(ticket, 'ticketId')}\n"
            f"Status: {_get(ticket, 'status')}\n"
            f"Priority: {_get(ticket, 'priority')}"
        )

    if action == "list" and isinstance(tickets, list):
        message = f"🎫 **Your Support Tickets** ({len(tickets)} total)\n\n"
        for t in tickets[:5]:
            emoji = _TICKET_STATUS.get(_get(t, "status"), "🆕")
            message += f"{emoji} **{_get(t, 'subject')}**\n"
            message += f"   ID: {_get(t, 'ticketId')} | Priority: {_get(t, 'priority')}\n"
            message += f"   Status: {_get(t, 'status')}\n\n"
        return message

    return "Ticket operation completed"


def format_project_status(data: Any) -> str:
    section = _section(data)
    if section is None:
        return "No project data available"

    action = section.get("action")
    project = section.get("project")
    projects = section.get("projects")

    if action == "get" and project:
        message = f"📁 **Project: {_get(project, 'name')}**\n\n"
        message += f"ID: {_get(project, 'projectId')}\n"
        message += f"Status: {_get(project, 'status')}\n"
        message += f"Progress: {_get(project, 'progress')}%\n\n"

        budget = _get(project, "budget")
        if budget:
            message += (
                f"💰 Budget: ${_amount(_get(budget, 'total'))} "
                f"({_get(budget, 'spent', 0)}% spent)\n\n"
            )

        team = _items(_get(project, "team"))
        if team:
            message += "👥 Team:\n"
            for member in team:
                message += f"   - {_get(member, 'name')} ({_get(member, 'role')})\n"
        return message

    if action == "list" and isinstance(projects, list):
        message = f"📁 **Your Projects** ({len(projects)} total)\n\n"
        for p in projects:
            message += f"**{_get(p, 'name')}**\n"
            message += f"   ID: {_get(p, 'projectId')} | Progress: {_get(p, 'progress')}%\n\n"
        return message

    return "Project data retrieved"


def format_document_search(data: Any) -> str:
    section = _section(data)
    if section is None:
        return "No documents found"

    results = _items(section.get("results"))
    total = section.get("totalResults", len(results))

    message = f"🔍 **Search Results for \"{section.get('query', '')}\"**\n\n"
    message += f"Found {total} document(s)\n\n"

    for index, doc in enumerate(results[:5], start=1):
        message += f"{index}. **{_get(doc, 'title')}**\n"
        message += f"   Type: {_get(doc, 'type')} | Category: {_get(doc, 'category')}\n"
        message += f"   📄 {_get(doc, 'excerpt', '')}\n\n"

    return message


RENDERERS: dict[str, Callable[[Any], str]] = {
    "get_financial_analytics": format_financial_analytics,
    "get_company_metrics": format_company_metrics,
    "manage_tasks": format_task_management,
    "manage_support_tickets": format_support_tickets,
    "get_project_status": format_project_status,
    "search_documents": format_document_search,
}
