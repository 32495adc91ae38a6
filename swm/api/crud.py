"""Plain CRUD routes for every entity type, behind the approval gate."""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from swm.api.interception import require_approval
from swm.database import get_db, get_document_db
from swm.models.enums import BackendType
from swm.services.repositories import RecordNotFoundError, get_repository

logger = logging.getLogger(__name__)

# URL segment -> entity type
CRUD_ROUTES = {
    "zones": "zone",
    "wards": "ward",
    "areas": "area",
    "employees": "employee",
    "vehicles": "vehicle",
    "devices": "device",
    "dumpYards": "dumpyard",
    "dustBins": "dustbin",
    "iplogs": "iplog",
    "houses": "house",
    "garbageCollections": "garbage_collection",
    "garbage_collection_areaWise": "areawise_garbage_collection",
    "attendanceLogs": "attendance",
    "carbonFootprintDetails": "carbon_footprint",
    "forumPosts": "forum_post",
    "queries": "query_post",
}


def build_crud_router(segment: str, entity_type: str) -> APIRouter:
    """List/get/create/update/delete for one entity type."""
    repository = get_repository(entity_type)
    router = APIRouter(prefix=f"/{segment}", tags=[segment])
    gate = [Depends(require_approval(entity_type))]

    def session_for(db: Session, document_db: Session) -> Session:
        return db if repository.backend == BackendType.RELATIONAL else document_db

    def not_found(record_id: str) -> HTTPException:
        return HTTPException(status_code=404, detail={"message": f"{entity_type} {record_id} not found"})

    def rejected(session: Session, e: Exception) -> HTTPException:
        session.rollback()
        logger.warning("Write to %s rejected: %s", repository.target_entity, e)
        return HTTPException(status_code=400, detail={"message": f"Invalid {entity_type} data", "error": str(e)})

    @router.get("", response_model=List[Dict[str, Any]])
    def list_records(
        skip: int = 0,
        limit: int = 100,
        db: Session = Depends(get_db),
        document_db: Session = Depends(get_document_db)
    ):
        return repository.list(session_for(db, document_db), skip=skip, limit=limit)

    @router.get("/{record_id}", response_model=Dict[str, Any])
    def get_record(
        record_id: str,
        db: Session = Depends(get_db),
        document_db: Session = Depends(get_document_db)
    ):
        try:
            record = repository.get(session_for(db, document_db), record_id)
        except ValueError:
            record = None
        if record is None:
            raise not_found(record_id)
        return record

    @router.post("", status_code=status.HTTP_201_CREATED, dependencies=gate)
    def create_record(
        payload: Dict[str, Any] = Body(...),
        db: Session = Depends(get_db),
        document_db: Session = Depends(get_document_db)
    ):
        session = session_for(db, document_db)
        try:
            record_id = repository.insert(session, payload)
        except (SQLAlchemyError, ValueError) as e:
            raise rejected(session, e)
        return {"success": True, "id": record_id}

    def update_record(
        record_id: str,
        payload: Dict[str, Any] = Body(...),
        db: Session = Depends(get_db),
        document_db: Session = Depends(get_document_db)
    ):
        session = session_for(db, document_db)
        try:
            repository.update(session, record_id, payload)
        except RecordNotFoundError:
            raise not_found(record_id)
        except (SQLAlchemyError, ValueError) as e:
            raise rejected(session, e)
        return {"success": True, "id": record_id}

    router.add_api_route("/{record_id}", update_record, methods=["PUT", "PATCH"], dependencies=gate)

    @router.delete("/{record_id}", dependencies=gate)
    def delete_record(
        record_id: str,
        db: Session = Depends(get_db),
        document_db: Session = Depends(get_document_db)
    ):
        session = session_for(db, document_db)
        try:
            repository.delete(session, record_id)
        except RecordNotFoundError:
            raise not_found(record_id)
        except (SQLAlchemyError, ValueError) as e:
            raise rejected(session, e)
        return {"success": True, "id": record_id}

    return router


routers = [build_crud_router(segment, entity_type) for segment, entity_type in CRUD_ROUTES.items()]
