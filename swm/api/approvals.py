"""API routes for reviewing change records."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from swm.api.auth import get_current_principal
from swm.api.dependencies import get_workflow
from swm.api.schemas import (
    ApprovalRequestCreate,
    ApprovalStats,
    ChangeRecordResponse,
    DirectExecutionResponse,
    ErrorResponse,
    MyRequestsPage,
    PendingApprovalResponse,
    PendingChangesPage,
    ReviewDecision,
    ReviewResult,
)
from swm.config import settings
from swm.models.enums import Priority
from swm.models.principal import Principal
from swm.services.approval_workflow import (
    ApprovalError,
    ApprovalWorkflow,
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from swm.services.interception import Decision, pending_approval_body, request_change

router = APIRouter()

ERROR_STATUS = {
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

ERROR_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Role not allowed"},
    404: {"model": ErrorResponse, "description": "Change record not found"},
    409: {"model": ErrorResponse, "description": "Already reviewed or expired"},
}


def as_http_error(error: ApprovalError) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST),
        detail={"message": error.message}
    )


@router.get("/pending-changes", response_model=PendingChangesPage, responses=ERROR_RESPONSES)
def list_pending_changes(
    category: Optional[str] = None,
    priority: Optional[Priority] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    principal: Principal = Depends(get_current_principal),
    workflow: ApprovalWorkflow = Depends(get_workflow)
):
    """Pending, unexpired changes: highest priority first, then newest."""
    try:
        records, pagination = workflow.list_pending(principal, category, priority, page, limit)
    except ApprovalError as e:
        raise as_http_error(e)
    return {"changes": records, "pagination": pagination}


@router.get("/pending-changes/{change_id}", response_model=ChangeRecordResponse, responses=ERROR_RESPONSES)
def get_pending_change(
    change_id: str,
    principal: Principal = Depends(get_current_principal),
    workflow: ApprovalWorkflow = Depends(get_workflow)
):
    if not principal.is_admin:
        raise as_http_error(AuthorizationError("Only admins can view pending changes"))
    try:
        return workflow.get(change_id)
    except ApprovalError as e:
        raise as_http_error(e)


@router.post("/pending-changes/{change_id}/approve", response_model=ReviewResult, responses=ERROR_RESPONSES)
def approve_change(
    change_id: str,
    decision: Optional[ReviewDecision] = None,
    principal: Principal = Depends(get_current_principal),
    workflow: ApprovalWorkflow = Depends(get_workflow)
):
    """
    Approve a change and replay it against its store.

    Succeeds even if the replay fails; check `execution_outcome`.
    """
    comments = decision.comments if decision else None
    try:
        record = workflow.approve(change_id, principal, comments)
    except ApprovalError as e:
        raise as_http_error(e)
    return {"message": "Change approved successfully", "change": record}


@router.post("/pending-changes/{change_id}/reject", response_model=ReviewResult, responses=ERROR_RESPONSES)
def reject_change(
    change_id: str,
    decision: Optional[ReviewDecision] = None,
    principal: Principal = Depends(get_current_principal),
    workflow: ApprovalWorkflow = Depends(get_workflow)
):
    """Reject a change. The target store is not touched."""
    comments = decision.comments if decision else None
    try:
        record = workflow.reject(change_id, principal, comments)
    except ApprovalError as e:
        raise as_http_error(e)
    return {"message": "Change rejected successfully", "change": record}


@router.get("/my-requests", response_model=MyRequestsPage, responses=ERROR_RESPONSES)
def list_my_requests(
    status_filter: Optional[str] = Query("all", alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.MY_REQUESTS_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    principal: Principal = Depends(get_current_principal),
    workflow: ApprovalWorkflow = Depends(get_workflow)
):
    """The calling manager's own requests."""
    try:
        records, pagination = workflow.list_requests(principal, status_filter, page, limit)
    except ApprovalError as e:
        raise as_http_error(e)
    return {"requests": records, "pagination": pagination}


@router.get("/approval-stats", response_model=ApprovalStats, responses=ERROR_RESPONSES)
def approval_stats(
    principal: Principal = Depends(get_current_principal),
    workflow: ApprovalWorkflow = Depends(get_workflow)
):
    try:
        return workflow.statistics(principal)
    except ApprovalError as e:
        raise as_http_error(e)


@router.post(
    "/approval-requests",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=PendingApprovalResponse,
    responses={200: {"model": DirectExecutionResponse, "description": "Admin create, execute directly"}}
)
def create_approval_request(
    request_data: ApprovalRequestCreate,
    principal: Principal = Depends(get_current_principal),
    workflow: ApprovalWorkflow = Depends(get_workflow)
):
    """
    Submit a change for review for any entity type.

    Admin CREATE requests are not queued; the caller is told to execute directly.
    """
    try:
        result = request_change(
            workflow,
            principal,
            entity_type=request_data.entity_type,
            operation=request_data.operation,
            target_id=request_data.target_id,
            data=request_data.data,
            reason=request_data.reason
        )
    except ApprovalError as e:
        raise as_http_error(e)

    if result.decision == Decision.DIRECT_EXECUTION:
        return JSONResponse(status_code=status.HTTP_200_OK, content=DirectExecutionResponse().model_dump())
    return pending_approval_body(result)
