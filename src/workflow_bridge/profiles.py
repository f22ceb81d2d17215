"""
Profile records and the lookup-by-identity contract.

A profile says what an identity is entitled to: its role, the workflows it
has been granted, and descriptive metadata that is forwarded to the workflow
engine as context. Profiles are owned by an external persistence layer; the
bridge only consumes them through `ProfileStore.find_entitlement()`.

`load_profiles()` reads a JSON file of records and serves them from memory.
It is the development stand-in for that persistence layer:

    [
        {
            "user_id": "user-ceo",
            "role": "ceo",
            "username": "ceo@example.com",
            "permissions": ["full_analytics"],
            "allowed_workflows": [
                {"workflow_id": "wf_financial_analytics",
                 "workflow_name": "Financial Analytics Dashboard"}
            ],
            "metadata": {"department": "Executive", "security_level": 5}
        }
    ]
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ProfileError(Exception):
    """Raised when the profiles file cannot be used at all. Fatal at startup."""


class Role(str, Enum):
    CEO = "ceo"
    EMPLOYEE = "employee"
    CUSTOMER = "customer"
    ADMIN = "admin"


@dataclass(frozen=True)
class WorkflowGrant:
    """A reference from a profile to a catalog workflow."""

    workflow_id: str
    display_name: str | None = None
    endpoint: str | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "WorkflowGrant":
        return cls(
            workflow_id=raw["workflow_id"],
            display_name=raw.get("workflow_name"),
            endpoint=raw.get("endpoint"),
            description=raw.get("description"),
        )


@dataclass(frozen=True)
class ProfileMetadata:
    department: str | None = None
    company_id: str | None = None
    customer_id: str | None = None
    security_level: int = 1


@dataclass(frozen=True)
class ProfileEntitlement:
    user_id: str
    role: Role
    username: str | None = None
    grants: tuple[WorkflowGrant, ...] = ()
    permissions: tuple[str, ...] = ()
    metadata: ProfileMetadata = field(default_factory=ProfileMetadata)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ProfileEntitlement":
        metadata = raw.get("metadata") or {}
        return cls(
            user_id=str(raw["user_id"]),
            role=Role(raw["role"]),
            username=raw.get("username"),
            grants=tuple(WorkflowGrant.from_dict(g) for g in raw.get("allowed_workflows", [])),
            permissions=tuple(raw.get("permissions", [])),
            metadata=ProfileMetadata(
                department=metadata.get("department"),
                company_id=metadata.get("company_id"),
                customer_id=metadata.get("customer_id"),
                security_level=metadata.get("security_level", 1),
            ),
        )

    def snapshot(self) -> dict[str, Any]:
        """The profile block sent to the workflow engine inside `_context`."""
        return {
            "profileType": self.role.value,
            "department": self.metadata.department,
            "companyId": self.metadata.company_id,
            "customerId": self.metadata.customer_id,
            "securityLevel": self.metadata.security_level,
            "permissions": list(self.permissions),
        }


class ProfileStore(Protocol):
    async def find_entitlement(self, identity_id: str) -> ProfileEntitlement | None: ...


class InMemoryProfileStore:
    """Profiles held in a dict keyed by user id."""

    def __init__(self, profiles: list[ProfileEntitlement] | None = None):
        self._profiles = {p.user_id: p for p in profiles or []}

    def __len__(self) -> int:
        return len(self._profiles)

    async def find_entitlement(self, identity_id: str) -> ProfileEntitlement | None:
        return self._profiles.get(identity_id)


def load_profiles(path: Path) -> InMemoryProfileStore:
    """
    Load profile records from a JSON file.

    A missing file yields an empty store (every caller is then treated as
    having no profile). Malformed records (unknown role, missing user id,
    wrongly shaped grants or metadata) are skipped and logged. A file that is
    not a JSON list of records raises ProfileError.
    """
    if not path.exists():
        logger.warning("Profiles file not found at %s, no identities are entitled", path)
        return InMemoryProfileStore()

    try:
        records = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ProfileError(f"Cannot read profiles file {path}: {e}") from e
    if not isinstance(records, list):
        raise ProfileError(f"Profiles file {path} must contain a list of profile records")

    profiles = []
    for record in records:
        try:
            profiles.append(ProfileEntitlement.from_dict(record))
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            user_id = record.get("user_id") if isinstance(record, dict) else None
            logger.warning(
                "Skipping invalid profile record",
                extra={"event_data": {"user_id": user_id, "reason": repr(e)}},
            )

    logger.info("Loaded %d profiles from %s", len(profiles), path)
    return InMemoryProfileStore(profiles)
