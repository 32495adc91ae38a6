"""
Approval workflow for manager-initiated changes.

This is the only place change records are created or transitioned. A record
leaves `pending` exactly once, through a conditional update, so two
reviewers racing on the same record cannot both replay it.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import case, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from swm.models.documents import ApprovalAuditEvent, AuditEventType, ChangeRecord, default_expiry
from swm.models.enums import BackendType, ChangeStatus, Operation, Priority, PRIORITY_RANK
from swm.models.principal import Principal
from swm.services.classification import (
    classify_backend,
    classify_category,
    classify_priority,
    describe_change,
    parse_operation,
    resolve_target_entity,
)
from swm.services.execution import ExecutionEngine
from swm.services.repositories import UnknownTargetError, get_repository

logger = logging.getLogger(__name__)


class ApprovalError(Exception):
    """Base for errors surfaced to callers of the workflow."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class AuthorizationError(ApprovalError):
    """Caller's role is insufficient for the requested operation."""


class NotFoundError(ApprovalError):
    """Referenced change record does not exist."""


class InvalidStateError(ApprovalError):
    """Record already decided or past its expiry."""


class PersistenceError(ApprovalError):
    """The change record could not be stored; the change is not submitted."""


class ValidationError(ApprovalError):
    """Unknown entity type or operation."""


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "current_page": page,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "total_items": total,
        "items_per_page": limit,
    }


class ApprovalWorkflow:
    """Creates, lists and decides change records."""

    def __init__(self, db: Session, document_db: Session, engine: Optional[ExecutionEngine] = None):
        self.db = db
        self.document_db = document_db
        self.engine = engine or ExecutionEngine(db, document_db)

    # Submission

    def submit_change(
        self,
        principal: Principal,
        operation: Any,
        entity: str,
        target_id: Optional[Any] = None,
        payload: Optional[Mapping[str, Any]] = None,
        reason: Optional[str] = None,
        description: Optional[str] = None
    ) -> ChangeRecord:
        """
        Persist a pending change record. Nothing is written to the target store.

        Raises PersistenceError if the record cannot be stored.
        """
        parsed = parse_operation(operation)
        if parsed is None:
            raise ValidationError(f"Unknown operation '{operation}'")
        if parsed != Operation.CREATE and target_id is None:
            target_id = (payload or {}).get("entityId")
            if target_id is None:
                raise ValidationError(f"{parsed.value} requires a target id")

        target_entity = resolve_target_entity(entity)
        target_id = str(target_id) if target_id is not None else None
        proposed_changes = dict(payload or {})
        now = datetime.utcnow()

        record = ChangeRecord(
            operation=parsed,
            target_entity=target_entity,
            target_id=target_id,
            backend=classify_backend(target_entity),
            proposed_changes=proposed_changes,
            original_data=self._snapshot(parsed, target_entity, target_id),
            requested_by=str(principal.id),
            requested_by_name=principal.display_name,
            reason=reason,
            status=ChangeStatus.PENDING,
            priority=classify_priority(parsed, target_entity, proposed_changes),
            category=classify_category(target_entity),
            description=description or describe_change(parsed, entity, target_id),
            expires_at=default_expiry(now),
            created_at=now,
            updated_at=now
        )

        try:
            self.document_db.add(record)
            self.document_db.flush()
            self._record_event(
                AuditEventType.CHANGE_SUBMITTED,
                record,
                principal.id,
                {"operation": parsed.value, "target_entity": target_entity, "target_id": target_id}
            )
            self.document_db.commit()
        except SQLAlchemyError as e:
            self.document_db.rollback()
            logger.exception("Could not store change record for %s on %s", parsed.value, target_entity)
            raise PersistenceError(f"Error processing approval request: {e}") from e

        self.document_db.refresh(record)
        logger.info(
            "Change %s submitted by %s: %s (priority=%s)",
            record.id, principal.id, record.description, record.priority.value
        )
        return record

    def _snapshot(self, operation: Operation, target_entity: str, target_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Best-effort copy of the current row/document for UPDATE and DELETE."""
        if operation == Operation.CREATE or target_id is None:
            return None
        session = self.db if classify_backend(target_entity) == BackendType.RELATIONAL else self.document_db
        try:
            return get_repository(target_entity).get(session, target_id)
        except (UnknownTargetError, SQLAlchemyError, ValueError) as e:
            logger.warning("No snapshot for %s %s: %s", target_entity, target_id, e)
            return None

    # Reads

    def get(self, change_id: str) -> ChangeRecord:
        record = self.document_db.query(ChangeRecord).filter(ChangeRecord.id == change_id).first()
        if record is None:
            raise NotFoundError("Pending change not found")
        return record

    def list_pending(
        self,
        principal: Principal,
        category: Optional[str] = None,
        priority: Optional[Priority] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[ChangeRecord], Dict[str, int]]:
        """Reviewable records, most urgent first, newest first within a tier."""
        self._require_admin(principal, "Only admins can view pending changes")

        query = self.document_db.query(ChangeRecord).filter(
            ChangeRecord.status == ChangeStatus.PENDING,
            ChangeRecord.expires_at > datetime.utcnow()
        )
        if category:
            query = query.filter(ChangeRecord.category == category)
        if priority:
            query = query.filter(ChangeRecord.priority == Priority(priority))

        total = query.count()
        rank = case(
            *[(ChangeRecord.priority == tier, value) for tier, value in PRIORITY_RANK.items()],
            else_=0
        )
        records = query.order_by(
            rank.desc(),
            ChangeRecord.created_at.desc()
        ).offset((page - 1) * limit).limit(limit).all()
        return records, paginate(page, limit, total)

    def list_requests(
        self,
        principal: Principal,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[ChangeRecord], Dict[str, int]]:
        """The caller's own requests, any status unless filtered."""
        if not principal.is_manager:
            raise AuthorizationError("Only managers can view their own requests")

        query = self.document_db.query(ChangeRecord).filter(ChangeRecord.requested_by == str(principal.id))
        if status and status != "all":
            try:
                status = ChangeStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status '{status}'")
            if status == ChangeStatus.EXPIRED:
                query = query.filter(
                    ChangeRecord.status.in_([ChangeStatus.EXPIRED, ChangeStatus.PENDING]),
                    ChangeRecord.expires_at <= datetime.utcnow()
                )
            elif status == ChangeStatus.PENDING:
                query = query.filter(
                    ChangeRecord.status == ChangeStatus.PENDING,
                    ChangeRecord.expires_at > datetime.utcnow()
                )
            else:
                query = query.filter(ChangeRecord.status == status)

        total = query.count()
        records = query.order_by(ChangeRecord.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
        return records, paginate(page, limit, total)

    def statistics(self, principal: Principal) -> Dict[str, Dict[str, int]]:
        """
        Counts by status (all records) and by category/priority (reviewable only).

        Pending records past their expiry are counted as expired, matching
        `effective_status`.
        """
        self._require_admin(principal, "Only admins can view approval statistics")
        now = datetime.utcnow()

        def grouped(column, pending_only: bool) -> Dict[str, int]:
            query = self.document_db.query(column, func.count(ChangeRecord.id))
            if pending_only:
                query = query.filter(
                    ChangeRecord.status == ChangeStatus.PENDING,
                    ChangeRecord.expires_at > now
                )
            counts = {}
            for key, count in query.group_by(column).all():
                counts[getattr(key, "value", key) or "uncategorized"] = count
            return counts

        by_status = grouped(ChangeRecord.status, pending_only=False)
        overdue = self.document_db.query(func.count(ChangeRecord.id)).filter(
            ChangeRecord.status == ChangeStatus.PENDING,
            ChangeRecord.expires_at <= now
        ).scalar()
        if overdue:
            pending = by_status.pop(ChangeStatus.PENDING.value) - overdue
            if pending:
                by_status[ChangeStatus.PENDING.value] = pending
            by_status[ChangeStatus.EXPIRED.value] = by_status.get(ChangeStatus.EXPIRED.value, 0) + overdue

        return {
            "by_status": by_status,
            "by_category": grouped(ChangeRecord.category, pending_only=True),
            "by_priority": grouped(ChangeRecord.priority, pending_only=True),
        }

    # Review transitions

    def approve(self, change_id: str, reviewer: Principal, comments: Optional[str] = None) -> ChangeRecord:
        """
        Approve a pending record and replay it against its target store.

        A replay failure does not revert the approval; it is stored on
        `execution_outcome` and logged.
        """
        self._require_admin(reviewer, "Only admins can approve changes")
        record = self._claim(change_id, reviewer, ChangeStatus.APPROVED, comments)

        outcome = self.engine.execute(record)
        record.execution_outcome = outcome
        record.updated_at = datetime.utcnow()
        event_type = AuditEventType.CHANGE_EXECUTED if outcome["succeeded"] else AuditEventType.CHANGE_EXECUTION_FAILED
        self._record_event(event_type, record, reviewer.id, outcome)
        self.document_db.commit()
        self.document_db.refresh(record)

        if not outcome["succeeded"]:
            logger.error("Change %s approved but execution failed: %s", record.id, outcome["error"])
        return record

    def reject(self, change_id: str, reviewer: Principal, comments: Optional[str] = None) -> ChangeRecord:
        """Reject a pending record. The target store is never touched."""
        self._require_admin(reviewer, "Only admins can reject changes")
        return self._claim(change_id, reviewer, ChangeStatus.REJECTED, comments)

    def _claim(
        self,
        change_id: str,
        reviewer: Principal,
        new_status: ChangeStatus,
        comments: Optional[str]
    ) -> ChangeRecord:
        """
        Move a record out of pending with a compare-and-swap on status and expiry.

        Raises NotFoundError or InvalidStateError; on either, nothing changes.
        """
        record = self.get(change_id)
        now = datetime.utcnow()
        if not record.can_be_reviewed(now):
            raise InvalidStateError("This change cannot be reviewed (already processed or expired)")

        result = self.document_db.execute(
            update(ChangeRecord)
            .where(
                ChangeRecord.id == change_id,
                ChangeRecord.status == ChangeStatus.PENDING,
                ChangeRecord.expires_at > now
            )
            .values(
                status=new_status,
                reviewed_by=str(reviewer.id),
                reviewed_by_name=reviewer.display_name,
                reviewed_at=now,
                review_comments=comments or "",
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.document_db.rollback()
            raise InvalidStateError("This change cannot be reviewed (already processed or expired)")

        event_type = AuditEventType.CHANGE_APPROVED if new_status == ChangeStatus.APPROVED else AuditEventType.CHANGE_REJECTED
        self._record_event(event_type, record, reviewer.id, {"comments": comments or ""})
        self.document_db.commit()
        self.document_db.refresh(record)

        logger.info("Change %s %s by %s", record.id, new_status.value, reviewer.id)
        return record

    # Helpers

    def _require_admin(self, principal: Principal, message: str) -> None:
        if principal is None or not principal.is_admin:
            raise AuthorizationError(message)

    def _record_event(
        self,
        event_type: str,
        record: ChangeRecord,
        actor_id: Optional[Any],
        payload: Optional[Dict[str, Any]] = None
    ) -> None:
        self.document_db.add(ApprovalAuditEvent(
            event_type=event_type,
            change_id=record.id,
            actor_id=str(actor_id) if actor_id is not None else None,
            payload_json=payload
        ))
