"""
Global pytest fixtures for the azhistory test suite.

Provides:
- Test environment set before any package imports
- Settings cache isolation
- In-memory inventory and activity log fakes
"""
import os
from typing import Dict, Iterable, List, Optional

import pytest

# Set test environment BEFORE any package imports
os.environ["TESTING"] = "true"
for _var in (
    "AZURE_TENANT_ID",
    "AZURE_CLIENT_ID",
    "AZURE_CLIENT_SECRET",
    "AZURE_SUBSCRIPTION_ID",
    "AZURE_AUTH_METHOD",
):
    os.environ.pop(_var, None)

from azhistory.modules.provenance.domain.models import AuditEvent, Resource  # noqa: E402
from azhistory.shared.adapters.azure import tag_fingerprint  # noqa: E402
from azhistory.shared.core.config import Settings, get_settings  # noqa: E402
from azhistory.shared.core.exceptions import (  # noqa: E402
    AuditQueryError,
    MetadataWriteConflictError,
    MetadataWriteError,
)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        AZURE_SUBSCRIPTION_ID="sub-123",
        AUDIT_QUERY_RATE_PER_SECOND=1000,
    )


class FakeInventory:
    """
    Inventory backed by a dict. Every listing reads the current stored
    state, so a failed write is visible (or not) on the next listing.
    """

    def __init__(
        self,
        resources: Iterable[Resource],
        fail_writes_for: Iterable[str] = (),
        list_error_after: Optional[int] = None,
    ):
        self._resources = list(resources)
        self.store: Dict[str, Optional[Dict[str, str]]] = {
            r.id: (dict(r.tags) if r.tags is not None else None) for r in self._resources
        }
        self.fail_writes_for = set(fail_writes_for)
        self.list_error_after = list_error_after
        self.write_calls: List[tuple] = []

    async def list_resources(self):
        for index, resource in enumerate(self._resources):
            if self.list_error_after is not None and index == self.list_error_after:
                raise RuntimeError("listing page failed")
            tags = self.store[resource.id]
            yield Resource(
                id=resource.id,
                type=resource.type,
                name=resource.name,
                tags=dict(tags) if tags is not None else None,
                kind=resource.kind,
                version=tag_fingerprint(tags),
            )

    async def update_resource_tags(self, resource_id, expected_version, new_tags):
        self.write_calls.append((resource_id, expected_version, dict(new_tags)))
        if resource_id in self.fail_writes_for:
            raise MetadataWriteError(f"write rejected for {resource_id}")
        if expected_version != tag_fingerprint(self.store[resource_id]):
            raise MetadataWriteConflictError(f"{resource_id} changed")
        self.store[resource_id] = dict(new_tags)

    def listed(self) -> List[Resource]:
        return [
            Resource(r.id, r.type, r.name, tags=self.store[r.id], kind=r.kind)
            for r in self._resources
        ]


class FakeAuditSource:
    def __init__(
        self,
        events: Optional[Dict[str, List[AuditEvent]]] = None,
        fail_for: Iterable[str] = (),
    ):
        self.events = events or {}
        self.fail_for = set(fail_for)
        self.calls: List[tuple] = []

    async def query_events(self, resource_id, start, end, fields=()):
        self.calls.append((resource_id, start, end, tuple(fields)))
        if resource_id in self.fail_for:
            raise AuditQueryError(f"throttled querying {resource_id}")
        return list(self.events.get(resource_id, []))


@pytest.fixture
def fake_inventory():
    return FakeInventory


@pytest.fixture
def fake_audit_source():
    return FakeAuditSource


def make_resource(name: str, tags: Optional[Dict[str, str]] = None, kind: Optional[str] = None) -> Resource:
    return Resource(
        id=f"/subscriptions/sub-123/resourceGroups/rg/providers/Microsoft.Storage/storageAccounts/{name}",
        type="Microsoft.Storage/storageAccounts",
        name=name,
        tags=tags,
        kind=kind,
    )


@pytest.fixture
def resource_factory():
    return make_resource
