"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from swm.models.enums import Operation, BackendType, ChangeStatus, Priority


# Change record schemas
class ExecutionOutcome(BaseModel):
    succeeded: bool
    error: Optional[str] = None
    attempted_at: datetime


class ChangeRecordResponse(BaseModel):
    id: str
    operation: Operation
    target_entity: str
    target_id: Optional[str]
    backend: BackendType
    proposed_changes: Dict[str, Any]
    original_data: Optional[Dict[str, Any]]
    requested_by: str
    requested_by_name: str
    reason: Optional[str]
    status: ChangeStatus
    effective_status: ChangeStatus
    reviewed_by: Optional[str]
    reviewed_by_name: Optional[str]
    reviewed_at: Optional[datetime]
    review_comments: Optional[str]
    priority: Priority
    category: Optional[str]
    description: Optional[str]
    expires_at: datetime
    execution_outcome: Optional[ExecutionOutcome]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class PendingChangesPage(BaseModel):
    changes: List[ChangeRecordResponse]
    pagination: Pagination


class MyRequestsPage(BaseModel):
    requests: List[ChangeRecordResponse]
    pagination: Pagination


class ReviewDecision(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000)


class ReviewResult(BaseModel):
    """Summary returned after an approve or reject."""
    success: bool = True
    message: str
    change: ChangeRecordResponse


class ApprovalStats(BaseModel):
    by_status: Dict[str, int]
    by_category: Dict[str, int]
    by_priority: Dict[str, int]


# Manual approval requests
class ApprovalRequestCreate(BaseModel):
    entity_type: str = Field(..., min_length=1)
    operation: str = Field(..., min_length=1)
    target_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    reason: Optional[str] = Field(None, max_length=500)


class PendingApprovalDetails(BaseModel):
    operation: Operation
    entityType: str
    estimatedApprovalTime: str
    priority: Priority


class PendingApprovalResponse(BaseModel):
    """Returned with HTTP 202 instead of the normal success payload."""
    success: bool = True
    message: str
    request_id: str
    status: str = "pending_approval"
    details: PendingApprovalDetails


class DirectExecutionResponse(BaseModel):
    success: bool = True
    message: str = "Operation executed directly (admin privilege)"
    direct_execution: bool = True


# Error response
class ErrorResponse(BaseModel):
    message: str
