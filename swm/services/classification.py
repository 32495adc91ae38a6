"""
Classification rules for change records.

Pure functions: (entity, operation, payload) -> backend, category, priority.
Unknown inputs degrade to safe defaults instead of failing.
"""
from typing import Any, Mapping, Optional

from swm.models.enums import BackendType, Operation, Priority

RELATIONAL_SCHEMA = "swm"

# Entity type (as routes speak it) -> target entity (table or collection name)
ENTITY_TARGETS = {
    # Relational store, schema-qualified
    "zone": "swm.zone_details",
    "ward": "swm.ward_details",
    "area": "swm.area_details",
    "employee": "swm.employee_table",
    "vehicle": "swm.vehicle_details",
    "device": "swm.device_details",
    "dumpyard": "swm.dump_yard_details",
    "dustbin": "swm.dust_bin_details",
    "iplog": "swm.ip_log_table",
    # Document store, bare model names
    "house": "HouseDetails",
    "garbage_collection": "GarbageCollection",
    "areawise_garbage_collection": "AreaWiseGarbageCollection",
    "attendance": "DailyAttendanceLog",
    "carbon_footprint": "CarbonFootprint",
    "forum_post": "ForumPost",
    "query_post": "QueryPost",
}

TARGET_ENTITY_TYPES = {target: entity_type for entity_type, target in ENTITY_TARGETS.items()}

RELATIONAL_ENTITIES = frozenset(
    target for target in ENTITY_TARGETS.values() if target.startswith(RELATIONAL_SCHEMA + ".")
)

CATEGORIES = {
    "house": "house-management",
    "garbage_collection": "waste-collection",
    "areawise_garbage_collection": "waste-collection",
    "attendance": "attendance",
    "carbon_footprint": "analytics",
    "forum_post": "community",
    "query_post": "community",
    "employee": "user-management",
    "vehicle": "vehicle-management",
    "area": "area-management",
    "zone": "area-management",
    "ward": "area-management",
    "dumpyard": "infrastructure",
    "dustbin": "infrastructure",
    "device": "device-management",
    "iplog": "system-logs",
}

DEFAULT_CATEGORY = "general"


def qualify_relational(name: str) -> str:
    """`area_details` -> `swm.area_details`; anything already qualified is returned as is."""
    if "." in name:
        return name
    return f"{RELATIONAL_SCHEMA}.{name}"


def resolve_target_entity(entity: str) -> str:
    """
    Map an entity type or a table/collection name to its canonical target entity.

    Unknown names are returned unchanged.
    """
    if entity in ENTITY_TARGETS:
        return ENTITY_TARGETS[entity]
    if qualify_relational(entity) in RELATIONAL_ENTITIES:
        return qualify_relational(entity)
    return entity


def entity_type_of(entity: str) -> Optional[str]:
    """Reverse of resolve_target_entity; None for unrecognized names."""
    if entity in ENTITY_TARGETS:
        return entity
    return TARGET_ENTITY_TYPES.get(resolve_target_entity(entity))


def classify_backend(target_entity: str) -> BackendType:
    """Relational if on the allow-list, otherwise the document store."""
    if resolve_target_entity(target_entity) in RELATIONAL_ENTITIES:
        return BackendType.RELATIONAL
    return BackendType.DOCUMENT


def classify_category(target_entity: str) -> str:
    return CATEGORIES.get(entity_type_of(target_entity), DEFAULT_CATEGORY)


def parse_operation(value: Any) -> Optional[Operation]:
    """Accept an Operation or its name in any case; None when unrecognized."""
    if isinstance(value, Operation):
        return value
    try:
        return Operation(str(value).upper())
    except ValueError:
        return None


def _has_urgent_marker(payload: Any) -> bool:
    if not isinstance(payload, Mapping):
        return False
    if payload.get("urgent") or payload.get("priority") == Priority.URGENT.value:
        return True
    if payload.get("emergency") or payload.get("status") == "emergency":
        return True
    return False


def classify_priority(
    operation: Operation,
    target_entity: str,
    payload: Optional[Mapping[str, Any]] = None
) -> Priority:
    """
    Derive the review priority. First matching rule wins:

    1. DELETE -> high
    2. employee UPDATE -> high
    3. vehicle CREATE -> medium
    4. any dump yard change -> medium
    5. urgent/emergency marker in the payload -> urgent
    6. otherwise medium
    """
    operation = parse_operation(operation)
    entity_type = entity_type_of(target_entity)

    if operation == Operation.DELETE:
        return Priority.HIGH
    if entity_type == "employee" and operation == Operation.UPDATE:
        return Priority.HIGH
    if entity_type == "vehicle" and operation == Operation.CREATE:
        return Priority.MEDIUM
    if entity_type == "dumpyard":
        return Priority.MEDIUM

    if _has_urgent_marker(payload):
        return Priority.URGENT

    return Priority.MEDIUM


def describe_change(operation: Operation, entity: str, target_id: Optional[str] = None) -> str:
    """Human-readable summary, e.g. `UPDATE operation on area (ID: 7)`."""
    label = entity_type_of(entity) or entity
    summary = f"{parse_operation(operation).value} operation on {label}"
    if target_id:
        summary += f" (ID: {target_id})"
    return summary
