"""FastAPI wiring for the approval gate on mutating CRUD routes."""
import json
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from swm.api.auth import get_optional_principal
from swm.api.dependencies import get_workflow
from swm.models.principal import Principal
from swm.services.approval_workflow import ApprovalWorkflow, PersistenceError, ValidationError
from swm.services.interception import (
    ExecutionContext,
    InterceptionResult,
    intercept_mutation,
    pending_approval_body,
)

logger = logging.getLogger(__name__)


class ApprovalQueued(Exception):
    """Short-circuits a route: the change was queued for review instead of applied."""

    def __init__(self, result: InterceptionResult):
        self.result = result
        super().__init__(f"Change {result.record.id} queued for approval")


async def approval_queued_handler(request: Request, exc: ApprovalQueued) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=pending_approval_body(exc.result))


async def _read_payload(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def get_execution_context(principal: Optional[Principal] = Depends(get_optional_principal)) -> ExecutionContext:
    """
    Context the approval gate decides with.

    Trusted in-process callers that replay already-approved changes through
    the CRUD routes override this dependency to set `bypass_approval`.
    """
    return ExecutionContext(principal=principal)


def require_approval(entity_type: str, id_param: str = "record_id"):
    """
    Dependency factory guarding one entity type's mutating routes.

    Raises ApprovalQueued for manager changes; returns the decision otherwise.
    """

    async def approval_gate(
        request: Request,
        context: ExecutionContext = Depends(get_execution_context),
        workflow: ApprovalWorkflow = Depends(get_workflow)
    ) -> InterceptionResult:
        payload = await _read_payload(request)
        try:
            # Session work is blocking; keep it off the event loop
            result = await run_in_threadpool(
                intercept_mutation,
                workflow,
                context,
                request.method,
                entity_type,
                target_id=request.path_params.get(id_param),
                payload=payload
            )
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": e.message})
        except PersistenceError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"message": "Error processing approval request", "error": e.message}
            )

        if result.queued:
            raise ApprovalQueued(result)
        return result

    return approval_gate
