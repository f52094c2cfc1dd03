from datetime import date, datetime, timezone

import pytest

from azhistory.modules.provenance.domain.audit_miner import AuditLogMiner
from azhistory.modules.provenance.domain.models import (
    AuditEvent,
    OutcomeStatus,
    ProvenanceRecord,
)
from azhistory.modules.provenance.domain.resolver import ProvenanceResolver
from azhistory.shared.core.exceptions import AuditQueryError, AuthenticationError

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _resolver(source) -> ProvenanceResolver:
    miner = AuditLogMiner(source, clock=lambda: NOW)
    return ProvenanceResolver(miner, "azh-creator", "azh-createddate")


@pytest.mark.asyncio
async def test_already_tagged_resource_never_queries(fake_audit_source, resource_factory):
    source = fake_audit_source()
    resource = resource_factory(
        "tagged", tags={"azh-creator": "bob@b.com", "azh-createddate": "2024-01-02"}
    )

    outcome = await _resolver(source).resolve(resource)

    assert outcome.status is OutcomeStatus.ALREADY_TAGGED
    assert outcome.record is None
    assert source.calls == []


@pytest.mark.asyncio
async def test_unknown_creator_counts_as_tagged(fake_audit_source, resource_factory):
    source = fake_audit_source()
    resource = resource_factory(
        "aged-out", tags={"azh-creator": "<unknown>", "azh-createddate": "<unknown>"}
    )

    outcome = await _resolver(source).resolve(resource)

    assert outcome.status is OutcomeStatus.ALREADY_TAGGED
    assert source.calls == []


@pytest.mark.asyncio
async def test_resolves_creator_and_date_from_earliest_human_event(fake_audit_source, resource_factory):
    resource = resource_factory("fresh", tags={"env": "dev"})
    source = fake_audit_source(
        {
            resource.id: [
                AuditEvent("svc-123", datetime(2024, 5, 1, tzinfo=timezone.utc), "write"),
                AuditEvent("a@b.com", datetime(2024, 5, 3, tzinfo=timezone.utc), "write"),
                AuditEvent("c@d.com", datetime(2024, 5, 2, 22, 15, tzinfo=timezone.utc), "write"),
            ]
        }
    )

    outcome = await _resolver(source).resolve(resource)

    assert outcome.status is OutcomeStatus.RESOLVED
    assert outcome.record == ProvenanceRecord("c@d.com", date(2024, 5, 2))
    assert len(source.calls) == 1


@pytest.mark.asyncio
async def test_event_without_timestamp_keeps_creator(fake_audit_source, resource_factory):
    resource = resource_factory("undated")
    source = fake_audit_source({resource.id: [AuditEvent("a@b.com", None, "write")]})

    outcome = await _resolver(source).resolve(resource)

    assert outcome.record.creator == "a@b.com"
    assert outcome.record.created_date is None
    assert outcome.record.created_date_value == "<unknown>"


@pytest.mark.asyncio
async def test_no_qualifying_event_resolves_to_unknown(fake_audit_source, resource_factory):
    resource = resource_factory("ancient")
    source = fake_audit_source({resource.id: [AuditEvent("svc-123", NOW, "write")]})

    outcome = await _resolver(source).resolve(resource)

    assert outcome.status is OutcomeStatus.RESOLVED
    assert outcome.record == ProvenanceRecord.unknown()
    assert outcome.error is None


@pytest.mark.asyncio
async def test_query_failure_is_a_failed_outcome_not_unknown(fake_audit_source, resource_factory):
    resource = resource_factory("throttled")
    source = fake_audit_source(fail_for=[resource.id])

    outcome = await _resolver(source).resolve(resource)

    assert outcome.status is OutcomeStatus.FAILED_RESOLUTION
    assert outcome.record is None
    assert isinstance(outcome.error, AuditQueryError)


@pytest.mark.asyncio
async def test_authentication_failure_propagates(resource_factory):
    class ExpiredSource:
        async def query_events(self, resource_id, start, end, fields=()):
            raise AuthenticationError("token expired")

    with pytest.raises(AuthenticationError):
        await _resolver(ExpiredSource()).resolve(resource_factory("any"))
