"""
Interception of mutating requests.

Managers never mutate directly: their changes become pending change
records. Admin creates are signalled for direct execution. Everything else
passes through to the normal handler.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from swm.config import settings
from swm.models.documents import ChangeRecord
from swm.models.enums import HTTP_METHOD_OPERATIONS, Operation, REVIEW_REQUEST_ROLES
from swm.models.principal import Principal
from swm.services.approval_workflow import ApprovalWorkflow, AuthorizationError, ValidationError
from swm.services.classification import ENTITY_TARGETS, entity_type_of, parse_operation

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    PASS_THROUGH = "pass_through"
    DIRECT_EXECUTION = "direct_execution"
    QUEUED = "queued"


@dataclass(frozen=True)
class ExecutionContext:
    """Who is calling, and whether this request must skip the approval gate."""
    principal: Optional[Principal]
    bypass_approval: bool = False


@dataclass
class InterceptionResult:
    decision: Decision
    record: Optional[ChangeRecord] = None
    entity_type: Optional[str] = None

    @property
    def queued(self) -> bool:
        return self.decision == Decision.QUEUED


def operation_for_method(method: str) -> Optional[Operation]:
    """HTTP verb -> operation; None for reads."""
    return HTTP_METHOD_OPERATIONS.get(method.upper())


def intercept_mutation(
    workflow: ApprovalWorkflow,
    context: ExecutionContext,
    method: str,
    entity_type: str,
    target_id: Optional[Any] = None,
    payload: Optional[Mapping[str, Any]] = None
) -> InterceptionResult:
    """
    Decide what happens to a request against a CRUD route.

    - reads, bypassed requests, unauthenticated callers and other roles pass through
    - admin CREATE is flagged for direct execution
    - manager CREATE/UPDATE/DELETE is queued as exactly one pending record

    PersistenceError from the workflow propagates; the mutation must not run.
    """
    operation = operation_for_method(method)
    principal = context.principal

    if operation is None or context.bypass_approval or principal is None:
        return InterceptionResult(Decision.PASS_THROUGH, entity_type=entity_type)

    if principal.is_admin and operation == Operation.CREATE:
        return InterceptionResult(Decision.DIRECT_EXECUTION, entity_type=entity_type)

    if not principal.is_manager:
        return InterceptionResult(Decision.PASS_THROUGH, entity_type=entity_type)

    record = workflow.submit_change(principal, operation, entity_type, target_id, payload)
    return InterceptionResult(Decision.QUEUED, record=record, entity_type=entity_type)


def request_change(
    workflow: ApprovalWorkflow,
    principal: Principal,
    entity_type: str,
    operation: str,
    target_id: Optional[Any] = None,
    data: Optional[Mapping[str, Any]] = None,
    reason: Optional[str] = None
) -> InterceptionResult:
    """Explicit approval request for any known entity type."""
    if principal is None or principal.role not in REVIEW_REQUEST_ROLES:
        raise AuthorizationError("Only managers and above can create approval requests")
    if entity_type_of(entity_type) is None:
        raise ValidationError(
            f"Unknown entity type '{entity_type}'. Expected one of: {', '.join(sorted(ENTITY_TARGETS))}"
        )
    parsed = parse_operation(operation)
    if parsed is None:
        raise ValidationError(f"Unknown operation '{operation}'")

    if principal.is_admin and parsed == Operation.CREATE:
        return InterceptionResult(Decision.DIRECT_EXECUTION, entity_type=entity_type)

    record = workflow.submit_change(principal, parsed, entity_type, target_id, data, reason=reason)
    return InterceptionResult(Decision.QUEUED, record=record, entity_type=entity_type)


def pending_approval_body(result: InterceptionResult) -> Dict[str, Any]:
    """Acknowledgement returned (with HTTP 202) instead of the normal payload."""
    record = result.record
    entity_type = result.entity_type or entity_type_of(record.target_entity) or record.target_entity
    return {
        "success": True,
        "message": f"{entity_type} {record.operation.value.lower()} request submitted for approval",
        "request_id": record.id,
        "status": "pending_approval",
        "details": {
            "operation": record.operation.value,
            "entityType": entity_type,
            "estimatedApprovalTime": settings.ESTIMATED_APPROVAL_TIME,
            "priority": record.priority.value,
        },
    }
