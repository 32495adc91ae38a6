"""
Replay of approved change records against their target store.

Execution is best-effort: errors are caught, logged and reported back as an
outcome so that the approval bookkeeping always completes.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from swm.models.documents import ChangeRecord
from swm.models.enums import BackendType, Operation
from swm.services.repositories import get_repository

logger = logging.getLogger(__name__)


def execution_outcome(succeeded: bool, error: Optional[str] = None) -> Dict[str, Any]:
    return {
        "succeeded": succeeded,
        "error": error,
        "attempted_at": datetime.utcnow().isoformat(),
    }


class ExecutionEngine:
    """Dispatches a change record to the relational or document store."""

    def __init__(self, db: Session, document_db: Session):
        self.db = db
        self.document_db = document_db

    def _session_for(self, backend: BackendType) -> Session:
        if backend == BackendType.RELATIONAL:
            return self.db
        return self.document_db

    def execute(self, record: ChangeRecord) -> Dict[str, Any]:
        """
        Replay the stored operation. Never raises.

        Returns {succeeded, error, attempted_at}.
        """
        logger.info(
            "Executing %s on %s (%s) target_id=%s",
            record.operation.value, record.target_entity, record.backend.value, record.target_id
        )
        session = self._session_for(record.backend)
        try:
            self._apply(session, record)
        except Exception as e:
            session.rollback()
            logger.exception(
                "Failed to execute %s on %s for change %s",
                record.operation.value, record.target_entity, record.id
            )
            return execution_outcome(False, f"{type(e).__name__}: {e}")

        logger.info("Executed %s on %s for change %s", record.operation.value, record.target_entity, record.id)
        return execution_outcome(True)

    def _apply(self, session: Session, record: ChangeRecord) -> None:
        repository = get_repository(record.target_entity)
        payload = record.proposed_changes or {}

        if record.operation == Operation.CREATE:
            repository.insert(session, payload)
            return

        target_id = record.target_id
        if record.operation == Operation.UPDATE:
            if target_id is None:
                target_id = payload.get("entityId")
            if target_id is None:
                raise ValueError("UPDATE requires a target id")
            repository.update(session, target_id, payload)
            return

        if target_id is None:
            raise ValueError("DELETE requires a target id")
        repository.delete(session, target_id)
