"""
Shared test fixtures for the workflow bridge test suite.

Key fixtures:
- make_token / make_auth_header: factories for signed JWTs with any claims
- profiles: an in-memory profile store with one profile per role
- engine: a fake workflow engine behind httpx.MockTransport that records
  every request it receives
- service: a ToolBridgeService wired to the fake engine

No test talks to a real network: the Execution Bridge gets an httpx client
whose transport is the fake engine.
"""

import datetime
import json
from typing import Any, Callable

import httpx
import jwt
import pytest

from workflow_bridge.catalog import WorkflowCatalog
from workflow_bridge.config import settings
from workflow_bridge.execution import ExecutionContext
from workflow_bridge.profiles import (
    InMemoryProfileStore,
    ProfileEntitlement,
    ProfileMetadata,
    Role,
    WorkflowGrant,
)
from workflow_bridge.service import ToolBridgeService

TEST_SECRET = settings.jwt_secret_key
TEST_ALGORITHM = settings.jwt_algorithm
ENGINE_URL = "http://engine.test"


# ---------------------------------------------------------------------------
# Token factory fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to generate JWT tokens for testing.

    Usage in tests:
        def test_something(make_token):
            token = make_token(sub="user-ceo", name="Carla")
    """

    def _make_token(
        sub: str = "test-user",
        name: str | None = None,
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_hours: float = 1.0,
        extra_claims: dict | None = None,
        include_exp: bool = True,
        include_sub: bool = True,
    ) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {"iat": now}

        if include_sub:
            payload["sub"] = sub
        if name is not None:
            payload["name"] = name
        if include_exp:
            payload["exp"] = now + datetime.timedelta(hours=exp_hours)
        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


@pytest.fixture
def make_auth_header(make_token):
    """Convenience fixture that returns a full "Bearer <token>" string."""

    def _make_auth_header(**kwargs) -> str:
        return f"Bearer {make_token(**kwargs)}"

    return _make_auth_header


# ---------------------------------------------------------------------------
# Catalog and profiles
# ---------------------------------------------------------------------------
@pytest.fixture
def catalog() -> WorkflowCatalog:
    return WorkflowCatalog.default()


def make_profile(
    user_id: str,
    role: Role,
    *workflow_ids: str,
    username: str | None = None,
    **metadata: Any,
) -> ProfileEntitlement:
    return ProfileEntitlement(
        user_id=user_id,
        role=role,
        username=username or f"{user_id}@example.com",
        grants=tuple(WorkflowGrant(workflow_id=w, display_name=w.upper()) for w in workflow_ids),
        permissions=("knowledge_base",),
        metadata=ProfileMetadata(**metadata),
    )


@pytest.fixture
def profile_factory():
    return make_profile


@pytest.fixture
def profiles() -> InMemoryProfileStore:
    return InMemoryProfileStore(
        [
            make_profile(
                "user-ceo",
                Role.CEO,
                "wf_financial_analytics",
                "wf_company_metrics",
                "wf_doc_search",
                department="Executive",
                company_id="ACME",
                security_level=5,
            ),
            make_profile("user-employee", Role.EMPLOYEE, "wf_doc_search", "wf_task_management"),
            make_profile("user-customer", Role.CUSTOMER, "wf_support_ticket", "wf_project_status"),
            make_profile("user-admin", Role.ADMIN),
        ]
    )


# ---------------------------------------------------------------------------
# Fake workflow engine
# ---------------------------------------------------------------------------
class FakeEngine:
    """
    Records every request and answers with `responder(request)`.

    By default it answers 200 with {"success": true, "data": {...}} echoing
    the request path.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = self._default

    @staticmethod
    def _default(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": {"path": request.url.path}})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def respond_with(self, status_code: int, payload: Any = None, **kwargs) -> None:
        def _responder(request: httpx.Request) -> httpx.Response:
            if payload is None:
                return httpx.Response(status_code, **kwargs)
            return httpx.Response(status_code, json=payload, **kwargs)

        self.responder = _responder

    def fail_with(self, exc_type: type[httpx.RequestError], message: str = "boom") -> None:
        def _responder(request: httpx.Request) -> httpx.Response:
            raise exc_type(message, request=request)

        self.responder = _responder


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
async def engine_client(engine):
    async with httpx.AsyncClient(transport=httpx.MockTransport(engine)) as client:
        yield client


@pytest.fixture
def service(catalog, profiles, engine_client) -> ToolBridgeService:
    return ToolBridgeService(
        catalog,
        profiles,
        engine_base_url=ENGINE_URL,
        client=engine_client,
    )


@pytest.fixture
def ceo_context() -> ExecutionContext:
    return ExecutionContext(
        role=Role.CEO,
        user_id="user-ceo",
        username="Carla",
        profile={"profileType": "ceo", "department": "Executive"},
    )
