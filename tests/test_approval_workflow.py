"""
Tests for the approval workflow state machine.

These tests prove:
- submissions create exactly one pending record and touch no target store
- only pending, unexpired records can be reviewed
- approve replays exactly once; reject never replays
- execution failure does not revert an approval
"""
import pytest
from datetime import datetime, timedelta
from sqlalchemy.exc import OperationalError

from swm.models.documents import ApprovalAuditEvent, AuditEventType, ChangeRecord
from swm.models.enums import BackendType, ChangeStatus, Operation, Priority
from swm.models.relational import Area
from swm.services.approval_workflow import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)


class TestSubmission:

    def test_submit_creates_pending_record(self, workflow, manager, document_session):
        record = workflow.submit_change(manager, "UPDATE", "area", 7, {"Area_Name": "Sector 9"})

        assert record.status == ChangeStatus.PENDING
        assert record.operation == Operation.UPDATE
        assert record.target_entity == "swm.area_details"
        assert record.target_id == "7"
        assert record.backend == BackendType.RELATIONAL
        assert record.proposed_changes == {"Area_Name": "Sector 9"}
        assert record.requested_by == "mgr-1"
        assert record.requested_by_name == "Ravi Kumar"
        assert record.category == "area-management"
        assert record.priority == Priority.MEDIUM
        assert record.description == "UPDATE operation on area (ID: 7)"
        assert record.reviewed_by is None
        assert record.reviewed_at is None
        assert document_session.query(ChangeRecord).count() == 1

    def test_expiry_is_seven_days_after_creation(self, workflow, manager):
        record = workflow.submit_change(manager, "CREATE", "house", payload={"owner": "A"})
        assert record.expires_at - record.created_at == timedelta(days=7)

    def test_submission_does_not_touch_target(self, workflow, manager, sample_area, db_session):
        workflow.submit_change(manager, "UPDATE", "area", 7, {"Area_Name": "Sector 9"})
        db_session.expire_all()
        assert db_session.get(Area, 7).Area_Name == "Sector 7"

    def test_update_snapshots_original_data(self, workflow, manager, sample_area):
        record = workflow.submit_change(manager, "UPDATE", "area", 7, {"Area_Name": "Sector 9"})
        assert record.original_data["Area_Name"] == "Sector 7"
        assert record.original_data["id"] == 7

    def test_snapshot_is_best_effort(self, workflow, manager):
        record = workflow.submit_change(manager, "DELETE", "area", "not-a-number")
        assert record.original_data is None
        assert record.status == ChangeStatus.PENDING

    def test_create_has_no_target_id_or_snapshot(self, workflow, manager):
        record = workflow.submit_change(manager, "CREATE", "vehicle", payload={"Vehicle_No": "TS09"})
        assert record.target_id is None
        assert record.original_data is None

    def test_submission_is_audited(self, workflow, manager, document_session):
        record = workflow.submit_change(manager, "DELETE", "house", "abc")
        event = document_session.query(ApprovalAuditEvent).filter(
            ApprovalAuditEvent.change_id == record.id
        ).one()
        assert event.event_type == AuditEventType.CHANGE_SUBMITTED
        assert event.actor_id == "mgr-1"

    def test_unknown_operation_is_rejected(self, workflow, manager):
        with pytest.raises(ValidationError):
            workflow.submit_change(manager, "ARCHIVE", "house", "1")

    def test_update_without_target_uses_entity_id_from_payload(self, workflow, manager):
        record = workflow.submit_change(manager, "UPDATE", "area", payload={"entityId": 7, "Area_Name": "X"})
        assert record.target_id == "7"

    def test_delete_without_target_is_rejected(self, workflow, manager):
        with pytest.raises(ValidationError):
            workflow.submit_change(manager, "DELETE", "area")

    def test_persistence_failure_surfaces(self, workflow, manager, document_session, monkeypatch):
        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(document_session, "commit", broken_commit)
        with pytest.raises(PersistenceError):
            workflow.submit_change(manager, "CREATE", "house", payload={"owner": "A"})


class TestCanBeReviewed:
    """Reviewable iff status is pending and expiry is in the future."""

    def _record(self, status, expires_in):
        now = datetime.utcnow()
        return ChangeRecord(
            operation=Operation.UPDATE,
            target_entity="HouseDetails",
            backend=BackendType.DOCUMENT,
            status=status,
            expires_at=now + expires_in,
        )

    def test_pending_and_not_expired(self):
        assert self._record(ChangeStatus.PENDING, timedelta(days=1)).can_be_reviewed() is True

    def test_pending_but_expired(self):
        record = self._record(ChangeStatus.PENDING, timedelta(seconds=-1))
        assert record.can_be_reviewed() is False
        assert record.effective_status == ChangeStatus.EXPIRED

    def test_approved(self):
        assert self._record(ChangeStatus.APPROVED, timedelta(days=1)).can_be_reviewed() is False

    def test_rejected(self):
        assert self._record(ChangeStatus.REJECTED, timedelta(days=1)).can_be_reviewed() is False

    def test_approved_and_expired(self):
        record = self._record(ChangeStatus.APPROVED, timedelta(days=-1))
        assert record.can_be_reviewed() is False
        assert record.effective_status == ChangeStatus.APPROVED


class TestApprove:

    def test_approve_sets_reviewer_fields_and_replays_once(self, workflow, manager, admin, fake_engine):
        record = workflow.submit_change(manager, "UPDATE", "area", 7, {"Area_Name": "Sector 9"})

        approved = workflow.approve(record.id, admin, "Looks good")

        assert approved.status == ChangeStatus.APPROVED
        assert approved.reviewed_by == "adm-1"
        assert approved.reviewed_by_name == "Site Admin"
        assert approved.reviewed_at is not None
        assert approved.review_comments == "Looks good"
        assert len(fake_engine.calls) == 1
        call = fake_engine.calls[0]
        assert call["operation"] == Operation.UPDATE
        assert call["target_entity"] == "swm.area_details"
        assert call["target_id"] == "7"
        assert call["proposed_changes"] == {"Area_Name": "Sector 9"}

    def test_approve_records_execution_outcome(self, workflow, manager, admin):
        record = workflow.submit_change(manager, "CREATE", "house", payload={"owner": "A"})
        approved = workflow.approve(record.id, admin)
        assert approved.execution_outcome["succeeded"] is True
        assert approved.execution_outcome["error"] is None
        assert approved.review_comments == ""

    def test_execution_failure_keeps_approval(self, workflow, manager, admin, fake_engine, document_session):
        fake_engine.succeed = False
        record = workflow.submit_change(manager, "DELETE", "house", "abc")

        approved = workflow.approve(record.id, admin)

        assert approved.status == ChangeStatus.APPROVED
        assert approved.execution_outcome["succeeded"] is False
        assert "store unavailable" in approved.execution_outcome["error"]
        events = [
            e.event_type for e in document_session.query(ApprovalAuditEvent).filter(
                ApprovalAuditEvent.change_id == record.id
            )
        ]
        assert AuditEventType.CHANGE_EXECUTION_FAILED in events

    def test_approve_missing_record(self, workflow, admin, fake_engine):
        with pytest.raises(NotFoundError):
            workflow.approve("does-not-exist", admin)
        assert fake_engine.calls == []

    def test_cannot_approve_twice(self, workflow, manager, admin, fake_engine):
        record = workflow.submit_change(manager, "UPDATE", "house", "abc", {"owner": "B"})
        first = workflow.approve(record.id, admin, "first")
        reviewed_at = first.reviewed_at

        with pytest.raises(InvalidStateError):
            workflow.approve(record.id, admin, "second")

        again = workflow.get(record.id)
        assert again.status == ChangeStatus.APPROVED
        assert again.review_comments == "first"
        assert again.reviewed_at == reviewed_at
        assert len(fake_engine.calls) == 1

    def test_cannot_approve_rejected(self, workflow, manager, admin, fake_engine):
        record = workflow.submit_change(manager, "UPDATE", "house", "abc", {"owner": "B"})
        workflow.reject(record.id, admin, "no")

        with pytest.raises(InvalidStateError):
            workflow.approve(record.id, admin)

        assert workflow.get(record.id).status == ChangeStatus.REJECTED
        assert fake_engine.calls == []

    def test_cannot_approve_expired(self, workflow, manager, admin, fake_engine, document_session):
        record = workflow.submit_change(manager, "UPDATE", "house", "abc", {"owner": "B"})
        record.expires_at = datetime.utcnow() - timedelta(minutes=1)
        document_session.commit()

        with pytest.raises(InvalidStateError):
            workflow.approve(record.id, admin)

        unchanged = workflow.get(record.id)
        assert unchanged.status == ChangeStatus.PENDING
        assert unchanged.reviewed_by is None
        assert unchanged.reviewed_at is None
        assert fake_engine.calls == []

    def test_lost_race_does_not_replay(self, workflow, manager, admin, fake_engine, document_session, monkeypatch):
        """Both reviewers pass the read check; only the conditional update's winner replays."""
        record = workflow.submit_change(manager, "DELETE", "house", "abc")
        workflow.approve(record.id, admin)
        assert len(fake_engine.calls) == 1

        # Second reviewer read the record while it still looked pending
        monkeypatch.setattr(ChangeRecord, "can_be_reviewed", lambda self, now=None: True)
        with pytest.raises(InvalidStateError):
            workflow.approve(record.id, admin)
        assert len(fake_engine.calls) == 1

    def test_manager_cannot_approve(self, workflow, manager, fake_engine):
        record = workflow.submit_change(manager, "DELETE", "house", "abc")
        with pytest.raises(AuthorizationError):
            workflow.approve(record.id, manager)
        assert workflow.get(record.id).status == ChangeStatus.PENDING
        assert fake_engine.calls == []


class TestReject:

    def test_reject_never_replays(self, workflow, manager, admin, fake_engine):
        record = workflow.submit_change(manager, "DELETE", "area", 7)

        rejected = workflow.reject(record.id, admin, "Area still in use")

        assert rejected.status == ChangeStatus.REJECTED
        assert rejected.reviewed_by == "adm-1"
        assert rejected.review_comments == "Area still in use"
        assert rejected.execution_outcome is None
        assert fake_engine.calls == []

    def test_cannot_reject_twice(self, workflow, manager, admin):
        record = workflow.submit_change(manager, "DELETE", "area", 7)
        workflow.reject(record.id, admin)
        with pytest.raises(InvalidStateError):
            workflow.reject(record.id, admin)

    def test_reject_missing_record(self, workflow, admin):
        with pytest.raises(NotFoundError):
            workflow.reject("nope", admin)


class TestListing:

    def test_pending_sorted_by_priority_then_newest(self, workflow, manager, admin, document_session):
        medium_old = workflow.submit_change(manager, "UPDATE", "house", "a", {"owner": "x"})
        high = workflow.submit_change(manager, "DELETE", "house", "b")
        urgent = workflow.submit_change(manager, "UPDATE", "house", "c", {"urgent": True})
        medium_new = workflow.submit_change(manager, "UPDATE", "house", "d", {"owner": "y"})
        medium_old.created_at = datetime.utcnow() - timedelta(hours=1)
        document_session.commit()

        records, pagination = workflow.list_pending(admin)

        assert [r.id for r in records] == [urgent.id, high.id, medium_new.id, medium_old.id]
        assert pagination["total_items"] == 4

    def test_pending_excludes_decided_and_expired(self, workflow, manager, admin, document_session):
        keep = workflow.submit_change(manager, "UPDATE", "house", "a", {"owner": "x"})
        decided = workflow.submit_change(manager, "UPDATE", "house", "b", {"owner": "x"})
        expired = workflow.submit_change(manager, "UPDATE", "house", "c", {"owner": "x"})
        workflow.reject(decided.id, admin)
        expired.expires_at = datetime.utcnow() - timedelta(days=1)
        document_session.commit()

        records, _ = workflow.list_pending(admin)

        assert [r.id for r in records] == [keep.id]

    def test_pending_filters_and_pagination(self, workflow, manager, admin):
        for i in range(5):
            workflow.submit_change(manager, "UPDATE", "zone", i + 1, {"Zone_Name": f"Z{i}"})
        workflow.submit_change(manager, "CREATE", "house", payload={"owner": "x"})

        records, pagination = workflow.list_pending(admin, category="area-management", page=2, limit=2)

        assert len(records) == 2
        assert all(r.category == "area-management" for r in records)
        assert pagination == {"current_page": 2, "total_pages": 3, "total_items": 5, "items_per_page": 2}

        urgent_only, _ = workflow.list_pending(admin, priority=Priority.URGENT)
        assert urgent_only == []

    def test_manager_cannot_list_pending(self, workflow, manager):
        with pytest.raises(AuthorizationError):
            workflow.list_pending(manager)

    def test_my_requests_only_returns_own(self, workflow, manager, other_manager, admin):
        mine = workflow.submit_change(manager, "UPDATE", "house", "a", {"owner": "x"})
        workflow.submit_change(other_manager, "UPDATE", "house", "b", {"owner": "x"})
        workflow.reject(mine.id, admin)

        records, pagination = workflow.list_requests(manager)
        assert [r.id for r in records] == [mine.id]
        assert pagination["total_items"] == 1

        rejected, _ = workflow.list_requests(manager, status="rejected")
        assert [r.id for r in rejected] == [mine.id]
        pending, _ = workflow.list_requests(manager, status="pending")
        assert pending == []

    def test_my_requests_expired_filter(self, workflow, manager, document_session):
        record = workflow.submit_change(manager, "UPDATE", "house", "a", {"owner": "x"})
        record.expires_at = datetime.utcnow() - timedelta(days=1)
        document_session.commit()

        expired, _ = workflow.list_requests(manager, status="expired")
        assert [r.id for r in expired] == [record.id]
        assert expired[0].effective_status == ChangeStatus.EXPIRED

    def test_my_requests_rejects_unknown_status(self, workflow, manager):
        with pytest.raises(ValidationError):
            workflow.list_requests(manager, status="archived")

    def test_admin_cannot_use_my_requests(self, workflow, admin):
        with pytest.raises(AuthorizationError):
            workflow.list_requests(admin)


class TestStatistics:

    def test_grouped_counts(self, workflow, manager, admin):
        a = workflow.submit_change(manager, "DELETE", "house", "a")
        b = workflow.submit_change(manager, "UPDATE", "zone", 1, {"Zone_Name": "Z"})
        workflow.submit_change(manager, "UPDATE", "house", "c", {"urgent": True})
        workflow.approve(a.id, admin)
        workflow.reject(b.id, admin)

        stats = workflow.statistics(admin)

        assert stats["by_status"] == {"approved": 1, "rejected": 1, "pending": 1}
        assert stats["by_category"] == {"house-management": 1}
        assert stats["by_priority"] == {"urgent": 1}

    def test_overdue_pending_counts_as_expired(self, workflow, manager, admin, document_session):
        workflow.submit_change(manager, "UPDATE", "house", "a", {"owner": "x"})
        overdue = workflow.submit_change(manager, "UPDATE", "zone", 1, {"Zone_Name": "Z"})
        overdue.expires_at = datetime.utcnow() - timedelta(days=1)
        document_session.commit()

        stats = workflow.statistics(admin)
        records, _ = workflow.list_pending(admin)

        assert stats["by_status"] == {"pending": 1, "expired": 1}
        assert stats["by_category"] == {"house-management": 1}
        assert stats["by_priority"] == {"medium": 1}
        assert len(records) == stats["by_status"]["pending"]

    def test_all_overdue_drops_pending_key(self, workflow, manager, admin, document_session):
        record = workflow.submit_change(manager, "UPDATE", "house", "a", {"owner": "x"})
        record.expires_at = datetime.utcnow() - timedelta(days=1)
        document_session.commit()

        stats = workflow.statistics(admin)

        assert stats["by_status"] == {"expired": 1}
        assert stats["by_category"] == {}
        assert stats["by_priority"] == {}

    def test_statistics_require_admin(self, workflow, manager):
        with pytest.raises(AuthorizationError):
            workflow.statistics(manager)
