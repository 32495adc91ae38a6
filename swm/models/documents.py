"""Document-store models.

The document store keeps schema-flexible records as JSON bodies grouped by
collection name, next to the change records and their audit trail.
"""
import uuid
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, JSON
from swm.config import settings
from swm.database import DocumentBase
from swm.models.enums import Operation, BackendType, ChangeStatus, Priority


def new_document_id() -> str:
    return uuid.uuid4().hex


def default_expiry(now: Optional[datetime] = None) -> datetime:
    """Creation time plus the fixed review window."""
    return (now or datetime.utcnow()) + timedelta(days=settings.APPROVAL_WINDOW_DAYS)


class Document(DocumentBase):
    """A single schema-flexible document (house, collection record, forum post...)."""
    __tablename__ = "documents"

    id = Column(String(32), primary_key=True, default=new_document_id)
    collection = Column(String, nullable=False, index=True)  # e.g. "HouseDetails"
    body = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        data = dict(self.body or {})
        data["id"] = self.id
        return data


class ChangeRecord(DocumentBase):
    """
    A proposed mutation awaiting, or having received, a review decision.

    Invariants:
    - operation, target_entity and backend never change after creation
    - status only leaves `pending`; approved and rejected are terminal
    - reviewer fields are set only on the transition out of pending
    - execution_outcome is set at most once, by the approval that won the review
    """
    __tablename__ = "pending_changes"

    id = Column(String(32), primary_key=True, default=new_document_id)
    operation = Column(SQLEnum(Operation), nullable=False)
    target_entity = Column(String, nullable=False, index=True)  # e.g. "swm.area_details", "HouseDetails"
    target_id = Column(String, nullable=True)  # Absent for CREATE
    backend = Column(SQLEnum(BackendType), nullable=False)

    proposed_changes = Column(JSON, nullable=False, default=dict)  # Applied verbatim on approval
    original_data = Column(JSON, nullable=True)  # Best-effort snapshot

    requested_by = Column(String, nullable=False, index=True)
    requested_by_name = Column(String, nullable=False)
    reason = Column(String, nullable=True)

    status = Column(SQLEnum(ChangeStatus), nullable=False, default=ChangeStatus.PENDING, index=True)
    reviewed_by = Column(String, nullable=True)
    reviewed_by_name = Column(String, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    review_comments = Column(String, nullable=True)

    priority = Column(SQLEnum(Priority), nullable=False, default=Priority.MEDIUM)
    category = Column(String, nullable=True, index=True)
    description = Column(String, nullable=True)

    expires_at = Column(DateTime, nullable=False, default=default_expiry)
    execution_outcome = Column(JSON, nullable=True)  # {succeeded, error, attempted_at}

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def can_be_reviewed(self, now: Optional[datetime] = None) -> bool:
        """Reviewable only while pending and not past its expiry."""
        return self.status == ChangeStatus.PENDING and not self.is_expired(now)

    @property
    def effective_status(self) -> ChangeStatus:
        """Status as seen by readers: a past-due pending record reads as expired."""
        if self.status == ChangeStatus.PENDING and self.is_expired():
            return ChangeStatus.EXPIRED
        return self.status


class ApprovalAuditEvent(DocumentBase):
    """
    Append-only trail of what happened to each change record.

    Once written, never edited or deleted.
    """
    __tablename__ = "approval_audit_events"

    id = Column(String(32), primary_key=True, default=new_document_id)
    event_type = Column(String, nullable=False, index=True)  # e.g. "change_approved"
    change_id = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=True)  # Nullable for system events
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    payload_json = Column(JSON, nullable=True)


class AuditEventType:
    """Enumeration of approval audit event types."""
    CHANGE_SUBMITTED = "change_submitted"
    CHANGE_APPROVED = "change_approved"
    CHANGE_REJECTED = "change_rejected"
    CHANGE_EXECUTED = "change_executed"
    CHANGE_EXECUTION_FAILED = "change_execution_failed"
