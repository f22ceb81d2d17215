"""Tests for ToolBridgeService, profile loading and settings wiring."""

import json
from pathlib import Path

import pytest

from workflow_bridge.auth import Identity
from workflow_bridge.catalog import DEFAULT_WORKFLOWS, CatalogError
from workflow_bridge.config import Settings
from workflow_bridge.execution import ErrorKind
from workflow_bridge.interception import RESULTS_KEY
from workflow_bridge.profiles import InMemoryProfileStore, ProfileError, Role, load_profiles
from workflow_bridge.service import ToolBridgeService

CEO = Identity(subject="user-ceo", username="Carla")
EMPLOYEE = Identity(subject="user-employee")
STRANGER = Identity(subject="user-unknown")


class TestTools:
    async def test_function_tools_follow_profile_grants(self, service):
        tools = await service.function_tools_for(CEO)

        assert [t["function"]["name"] for t in tools] == [
            "get_financial_analytics",
            "get_company_metrics",
            "search_documents",
        ]

    async def test_identity_without_profile_gets_no_tools(self, service, caplog):
        assert await service.function_tools_for(STRANGER) == []
        assert "No profile found for user-unknown" in [r.getMessage() for r in caplog.records]

    async def test_profiles_of_same_role_do_not_share_tools(self, catalog, profile_factory):
        store = InMemoryProfileStore(
            [
                profile_factory("emp-a", Role.EMPLOYEE, "wf_doc_search"),
                profile_factory("emp-b", Role.EMPLOYEE, "wf_task_management"),
            ]
        )
        service = ToolBridgeService(catalog, store)

        a = await service.function_tools_for(Identity(subject="emp-a"))
        b = await service.function_tools_for(Identity(subject="emp-b"))

        assert [t["function"]["name"] for t in a] == ["search_documents"]
        assert [t["function"]["name"] for t in b] == ["manage_tasks"]


class TestExecute:
    async def test_execute_sends_profile_snapshot(self, service, engine):
        result = await service.execute(CEO, "get_financial_analytics", {"period": "Q4 2024"})

        assert result.success is True
        context = engine.bodies()[0]["_context"]
        assert context["userId"] == "user-ceo"
        assert context["username"] == "Carla"
        assert context["profile"] == {
            "profileType": "ceo",
            "department": "Executive",
            "companyId": "ACME",
            "customerId": None,
            "securityLevel": 5,
            "permissions": ["knowledge_base"],
        }

    async def test_username_falls_back_to_profile(self, service, engine):
        await service.execute(EMPLOYEE, "search_documents", {"query": "handbook"})

        assert engine.bodies()[0]["_context"]["username"] == "user-employee@example.com"

    async def test_execute_without_profile_is_forbidden(self, service, engine):
        result = await service.execute(STRANGER, "search_documents", {"query": "x"})

        assert result.error.kind is ErrorKind.FORBIDDEN
        assert result.error.message == "User profile not found"
        assert engine.requests == []

    async def test_employee_cannot_execute_financial_analytics(self, service, engine):
        result = await service.execute(EMPLOYEE, "get_financial_analytics", {"period": "Q4"})

        assert result.error.kind is ErrorKind.FORBIDDEN
        assert engine.requests == []


class TestIntercept:
    async def test_intercept_uses_caller_tools(self, service, engine):
        response = {
            "choices": [
                {
                    "message": {
                        "tool_calls": [
                            {
                                "id": "call_1",
                                "type": "function",
                                "function": {
                                    "name": "search_documents",
                                    "arguments": '{"query": "handbook"}',
                                },
                            }
                        ]
                    }
                }
            ]
        }

        out = await service.intercept(EMPLOYEE, response)

        assert out["metadata"][RESULTS_KEY][0]["tool_call_id"] == "call_1"
        assert len(engine.requests) == 1

    async def test_intercept_without_profile_passes_response_through(self, service, engine):
        response = {"choices": [{"message": {"tool_calls": []}}]}

        assert await service.intercept(STRANGER, response) is response


class TestAdministrativeOperations:
    async def test_admin_can_clear_cache(self, service):
        await service.function_tools_for(CEO)
        await service.function_tools_for(EMPLOYEE)

        assert service.clear_tool_cache(Role.ADMIN) == 2

    @pytest.mark.parametrize("role", [Role.CEO, Role.EMPLOYEE, Role.CUSTOMER])
    def test_other_roles_cannot_clear_cache(self, service, role):
        with pytest.raises(PermissionError, match="admin role required to clear the tool cache"):
            service.clear_tool_cache(role)

    @pytest.mark.parametrize("role", ["admin", "ceo"])
    def test_elevated_roles_list_workflows(self, service, role):
        definitions = service.list_all_workflow_definitions(role)

        assert len(definitions) == len(DEFAULT_WORKFLOWS)

    def test_employee_cannot_list_workflows(self, service, caplog):
        with pytest.raises(PermissionError, match="admin or ceo role required"):
            service.list_all_workflow_definitions("employee")

        assert "Administrative operation denied" in [r.getMessage() for r in caplog.records]


class TestFromSettings:
    def test_builds_default_catalog_and_loads_profiles(self, tmp_path):
        profiles_file = tmp_path / "profiles.json"
        profiles_file.write_text(
            json.dumps(
                [
                    {
                        "user_id": "user-1",
                        "role": "employee",
                        "allowed_workflows": [{"workflow_id": "wf_doc_search"}],
                    }
                ]
            )
        )
        settings = Settings(profiles_file=profiles_file, engine_base_url="http://engine.test")

        service = ToolBridgeService.from_settings(settings)

        assert len(service.catalog) == len(DEFAULT_WORKFLOWS)
        assert len(service.profiles) == 1

    def test_invalid_catalog_file_is_fatal(self, tmp_path):
        catalog_file = tmp_path / "catalog.json"
        catalog_file.write_text(
            json.dumps(
                {
                    "wf_a": DEFAULT_WORKFLOWS["wf_doc_search"],
                    "wf_b": DEFAULT_WORKFLOWS["wf_doc_search"],
                }
            )
        )
        settings = Settings(catalog_file=catalog_file, profiles_file=tmp_path / "missing.json")

        with pytest.raises(CatalogError, match="Duplicate function name"):
            ToolBridgeService.from_settings(settings)


class TestLoadProfiles:
    async def test_example_records_are_loaded(self, tmp_path):
        path = tmp_path / "profiles.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "user_id": "user-customer",
                        "role": "customer",
                        "username": "customer@example.com",
                        "permissions": ["own_projects"],
                        "allowed_workflows": [
                            {"workflow_id": "wf_support_ticket", "workflow_name": "Create Support Ticket"}
                        ],
                        "metadata": {"customer_id": "CUST-001", "security_level": 1},
                    }
                ]
            )
        )

        store = load_profiles(path)
        profile = await store.find_entitlement("user-customer")

        assert profile.role is Role.CUSTOMER
        assert profile.grants[0].workflow_id == "wf_support_ticket"
        assert profile.grants[0].display_name == "Create Support Ticket"
        assert profile.metadata.customer_id == "CUST-001"

    def test_missing_file_yields_empty_store(self, tmp_path):
        assert len(load_profiles(tmp_path / "nope.json")) == 0

    async def test_invalid_records_are_skipped(self, tmp_path, caplog):
        path = tmp_path / "profiles.json"
        path.write_text(
            json.dumps(
                [
                    {"user_id": "ok", "role": "employee"},
                    {"user_id": "bad-role", "role": "intern"},
                    {"role": "employee"},
                ]
            )
        )

        store = load_profiles(path)

        assert len(store) == 1
        assert await store.find_entitlement("ok") is not None
        assert [r.getMessage() for r in caplog.records].count("Skipping invalid profile record") == 2

    async def test_wrongly_shaped_records_are_skipped(self, tmp_path, caplog):
        path = tmp_path / "profiles.json"
        path.write_text(
            json.dumps(
                [
                    {"user_id": "bare-grant", "role": "employee", "allowed_workflows": ["wf_doc_search"]},
                    {"user_id": "bad-metadata", "role": "employee", "metadata": "Engineering"},
                    "user-string",
                    ["not", "a", "record"],
                    {
                        "user_id": "ok",
                        "role": "employee",
                        "allowed_workflows": [{"workflow_id": "wf_doc_search"}],
                    },
                ]
            )
        )

        store = load_profiles(path)

        assert len(store) == 1
        assert await store.find_entitlement("ok") is not None
        skipped = [r for r in caplog.records if r.getMessage() == "Skipping invalid profile record"]
        assert [r.event_data["user_id"] for r in skipped] == ["bare-grant", "bad-metadata", None, None]

    @pytest.mark.parametrize("content", ['{"user_id": "user-1"}', "{not json"])
    def test_unusable_file_raises_profile_error(self, tmp_path, content):
        path = tmp_path / "profiles.json"
        path.write_text(content)

        with pytest.raises(ProfileError, match="(?i)profiles file"):
            load_profiles(path)

    def test_shipped_example_file_loads(self):
        store = load_profiles(Path(__file__).parent.parent / "profiles.example.json")

        assert len(store) == 4
