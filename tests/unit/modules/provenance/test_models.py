from datetime import date, datetime, timedelta, timezone

from azhistory.modules.provenance.domain.models import (
    AuditEvent,
    OutcomeStatus,
    ProvenanceRecord,
    ReconciliationOutcome,
    Resource,
    RunSummary,
)


def test_record_tags_always_carry_both_keys():
    assert ProvenanceRecord.unknown().to_tags("c", "d") == {"c": "<unknown>", "d": "<unknown>"}
    assert ProvenanceRecord("a@b.com", date(2023, 1, 9)).to_tags("c", "d") == {
        "c": "a@b.com",
        "d": "2023-01-09",
    }


def test_record_date_is_taken_in_utc():
    local = datetime(2024, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    record = ProvenanceRecord.from_event(AuditEvent("a@b.com", local, "write"))
    assert record.created_date == date(2024, 3, 2)


def test_run_summary_counts_each_outcome_kind():
    resource = Resource(id="/r/1", type="t", name="one")
    summary = RunSummary()
    summary.record(ReconciliationOutcome.already_tagged(resource))
    summary.record(ReconciliationOutcome.resolved(resource, ProvenanceRecord.unknown()))
    summary.record(
        ReconciliationOutcome.failed(resource, RuntimeError("x"), OutcomeStatus.FAILED_RESOLUTION)
    )
    summary.record(
        ReconciliationOutcome.failed(resource, RuntimeError("y"), OutcomeStatus.FAILED_WRITE)
    )

    assert summary.as_dict() == {
        "total": 4,
        "already_tagged": 1,
        "resolved": 1,
        "failed_resolution": 1,
        "failed_write": 1,
    }
    assert summary.failed == 2
    assert [o.status for o in summary.failures] == [
        OutcomeStatus.FAILED_RESOLUTION,
        OutcomeStatus.FAILED_WRITE,
    ]
