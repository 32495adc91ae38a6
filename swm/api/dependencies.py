"""Shared FastAPI dependencies."""
from fastapi import Depends
from sqlalchemy.orm import Session

from swm.database import get_db, get_document_db
from swm.services.approval_workflow import ApprovalWorkflow


def get_workflow(
    db: Session = Depends(get_db),
    document_db: Session = Depends(get_document_db)
) -> ApprovalWorkflow:
    return ApprovalWorkflow(db, document_db)
