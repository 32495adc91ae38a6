"""
Repositories the CRUD routes and the replay of approved changes write through.

Each target entity maps to exactly one repository through a closed table;
relational writes are parameterized SQLAlchemy Core statements against a
known `Table`, never SQL text built from names.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import Date, DateTime, Integer, Table, delete, insert, select, update
from sqlalchemy.orm import Session

from swm.models.documents import Document
from swm.models.enums import BackendType
from swm.models.relational import (
    Area,
    Device,
    DumpYard,
    DustBin,
    Employee,
    IpLog,
    Vehicle,
    Ward,
    Zone,
)
from swm.services.classification import classify_backend, resolve_target_entity

logger = logging.getLogger(__name__)

# Wrapper keys review clients send alongside the actual column values
METADATA_FIELDS = frozenset({
    "operation",
    "entityType",
    "entityId",
    "currentData",
    "proposedChanges",
    "reason",
    "requestedBy",
    "requestedAt",
    "status",
    "priority",
    "category",
})

ZERO_DATES = ("", "0000-00-00", "0000-00-00 00:00:00")

# Field names the employee forms send, by target entity
FIELD_ALIASES = {
    "swm.employee_table": {
        "full_name": "Full_Name",
        "mobile_no": "Mobile_No",
        "user_address": "User_Address",
        "blood_group": "Blood_Group",
        "employment_type": "Employment_Type",
        "assigned_target": "Assigned_Target",
        "designation": "Designation",
        "father_name": "Father_Name",
        "mother_name": "Mother_Name",
        "joined_date": "Joined_Date",
        "qr_id": "QR_ID",
        "assigned_vehicle_id": "Assigned_Vehicle_ID",
    },
}


class UnknownTargetError(LookupError):
    """Raised when a target entity has no repository."""

    def __init__(self, target_entity: str):
        self.target_entity = target_entity
        super().__init__(f"No repository for target entity '{target_entity}'")


class RecordNotFoundError(LookupError):
    """Raised when an update/delete addresses a row or document that does not exist."""

    def __init__(self, target_entity: str, target_id: Any):
        self.target_entity = target_entity
        self.target_id = target_id
        super().__init__(f"{target_entity} record '{target_id}' not found")


def unwrap_payload(payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Use a nested `proposedChanges` object when the client wrapped the data in one."""
    if not payload:
        return {}
    nested = payload.get("proposedChanges")
    if isinstance(nested, Mapping):
        return dict(nested)
    return dict(payload)


def _parse_date(value: Any, as_datetime: bool):
    """Parse ISO or MM/DD/YYYY strings; None when the value should be dropped."""
    if isinstance(value, datetime):
        return value if as_datetime else value.date()
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time()) if as_datetime else value
    text = str(value).strip()
    if text in ZERO_DATES:
        return None
    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%m/%d/%Y")
        except ValueError:
            return None
    if as_datetime:
        return parsed.replace(tzinfo=None)
    return parsed.date()


class RelationalRepository:
    """CRUD over one relational table addressed by its `id` column."""

    backend = BackendType.RELATIONAL

    def __init__(self, target_entity: str, table: Table):
        self.target_entity = target_entity
        self.table = table

    def _coerce_id(self, record_id: Any):
        if isinstance(self.table.c.id.type, Integer):
            return int(record_id)
        return record_id

    def column_name(self, key: str) -> str:
        """Map a client field name onto a column of this table; unknown keys come back unchanged."""
        if self.table.c.get(key) is not None:
            return key
        alias = FIELD_ALIASES.get(self.target_entity, {}).get(key)
        if alias is not None:
            return alias
        # Fall back to a case-insensitive match, e.g. `area_name` -> `Area_Name`
        for column in self.table.c:
            if column.name.lower() == key.lower():
                return column.name
        return key

    def prepare_values(self, payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Strip wrapper keys, map client field names to columns and coerce dates.

        Keys that are not columns are kept, so the statement fails loudly
        instead of silently dropping data. Blank or invalid dates are dropped.
        """
        values = {}
        for key, value in unwrap_payload(payload).items():
            if key in METADATA_FIELDS or key == "id":
                continue
            key = self.column_name(key)
            column = self.table.c.get(key)
            if column is not None and value is not None and isinstance(column.type, (Date, DateTime)):
                value = _parse_date(value, as_datetime=isinstance(column.type, DateTime))
                if value is None:
                    continue
            values[key] = value
        return values

    def get(self, db: Session, record_id: Any) -> Optional[Dict[str, Any]]:
        row = db.execute(
            select(self.table).where(self.table.c.id == self._coerce_id(record_id))
        ).mappings().first()
        return _jsonable(dict(row)) if row else None

    def list(self, db: Session, skip: int = 0, limit: int = 100) -> List[Dict[str, Any]]:
        rows = db.execute(
            select(self.table).order_by(self.table.c.id).offset(skip).limit(limit)
        ).mappings().all()
        return [_jsonable(dict(row)) for row in rows]

    def insert(self, db: Session, payload: Mapping[str, Any]) -> Optional[Any]:
        values = self.prepare_values(payload)
        if not values:
            logger.info("No fields to insert into %s; skipping", self.target_entity)
            return None
        result = db.execute(insert(self.table).values(**values))
        db.commit()
        return result.inserted_primary_key[0]

    def update(self, db: Session, record_id: Any, payload: Mapping[str, Any]) -> int:
        values = self.prepare_values(payload)
        if not values:
            logger.info("No fields to update on %s %s; skipping", self.target_entity, record_id)
            return 0
        result = db.execute(
            update(self.table)
            .where(self.table.c.id == self._coerce_id(record_id))
            .values(**values)
        )
        db.commit()
        if result.rowcount == 0:
            raise RecordNotFoundError(self.target_entity, record_id)
        return result.rowcount

    def delete(self, db: Session, record_id: Any) -> int:
        result = db.execute(
            delete(self.table).where(self.table.c.id == self._coerce_id(record_id))
        )
        db.commit()
        if result.rowcount == 0:
            raise RecordNotFoundError(self.target_entity, record_id)
        return result.rowcount


class DocumentRepository:
    """CRUD over one document collection."""

    backend = BackendType.DOCUMENT

    def __init__(self, collection: str):
        self.target_entity = collection
        self.collection = collection

    def _find(self, db: Session, record_id: Any) -> Optional[Document]:
        return db.query(Document).filter(
            Document.id == str(record_id),
            Document.collection == self.collection
        ).first()

    def get(self, db: Session, record_id: Any) -> Optional[Dict[str, Any]]:
        document = self._find(db, record_id)
        return document.to_dict() if document else None

    def list(self, db: Session, skip: int = 0, limit: int = 100) -> List[Dict[str, Any]]:
        documents = db.query(Document).filter(
            Document.collection == self.collection
        ).order_by(Document.created_at.desc()).offset(skip).limit(limit).all()
        return [document.to_dict() for document in documents]

    def insert(self, db: Session, payload: Mapping[str, Any]) -> str:
        body = dict(payload or {})
        body.pop("id", None)
        document = Document(collection=self.collection, body=body)
        db.add(document)
        db.commit()
        db.refresh(document)
        return document.id

    def update(self, db: Session, record_id: Any, payload: Mapping[str, Any]) -> int:
        """Patch semantics: given keys overwrite, the rest of the body is kept."""
        document = self._find(db, record_id)
        if document is None:
            raise RecordNotFoundError(self.collection, record_id)
        body = dict(document.body or {})
        body.update({k: v for k, v in dict(payload or {}).items() if k != "id"})
        document.body = body
        db.commit()
        return 1

    def delete(self, db: Session, record_id: Any) -> int:
        document = self._find(db, record_id)
        if document is None:
            raise RecordNotFoundError(self.collection, record_id)
        db.delete(document)
        db.commit()
        return 1


def _jsonable(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, (date, datetime)) else value
        for key, value in row.items()
    }


RELATIONAL_TABLES = {
    "swm.zone_details": Zone.__table__,
    "swm.ward_details": Ward.__table__,
    "swm.area_details": Area.__table__,
    "swm.employee_table": Employee.__table__,
    "swm.vehicle_details": Vehicle.__table__,
    "swm.device_details": Device.__table__,
    "swm.dump_yard_details": DumpYard.__table__,
    "swm.dust_bin_details": DustBin.__table__,
    "swm.ip_log_table": IpLog.__table__,
}

DOCUMENT_COLLECTIONS = frozenset({
    "HouseDetails",
    "GarbageCollection",
    "AreaWiseGarbageCollection",
    "DailyAttendanceLog",
    "CarbonFootprint",
    "ForumPost",
    "QueryPost",
})

_REPOSITORIES = {}
_REPOSITORIES.update(
    {target: RelationalRepository(target, table) for target, table in RELATIONAL_TABLES.items()}
)
_REPOSITORIES.update(
    {collection: DocumentRepository(collection) for collection in DOCUMENT_COLLECTIONS}
)


def get_repository(target_entity: str):
    """Look up the repository for a target entity or entity type."""
    target = resolve_target_entity(target_entity)
    repository = _REPOSITORIES.get(target)
    if repository is None:
        raise UnknownTargetError(target_entity)
    if repository.backend != classify_backend(target):
        # Classification and the registry must agree on which store a target lives in
        raise UnknownTargetError(target_entity)
    return repository
