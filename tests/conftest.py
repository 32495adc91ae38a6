"""Pytest configuration and shared fixtures."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from swm.database import Base, DocumentBase, get_db, get_document_db
from swm.models import relational, documents  # noqa: F401
from swm.models.principal import Principal
from swm.models.relational import Area, Zone
from swm.services.approval_workflow import ApprovalWorkflow
from swm.services.execution import execution_outcome


def _memory_engine():
    # StaticPool keeps one connection so every session sees the same in-memory DB
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )


@pytest.fixture
def db_session():
    """Fresh in-memory relational store for each test."""
    engine = _memory_engine()
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    yield session
    session.close()


@pytest.fixture
def document_session():
    """Fresh in-memory document store for each test."""
    engine = _memory_engine()
    DocumentBase.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    yield session
    session.close()


class FakeExecutionEngine:
    """Records replay calls instead of touching a store."""

    def __init__(self, succeed=True):
        self.calls = []
        self.succeed = succeed

    def execute(self, record):
        self.calls.append({
            "id": record.id,
            "operation": record.operation,
            "target_entity": record.target_entity,
            "target_id": record.target_id,
            "proposed_changes": record.proposed_changes,
        })
        if self.succeed:
            return execution_outcome(True)
        return execution_outcome(False, "RuntimeError: store unavailable")


@pytest.fixture
def fake_engine():
    return FakeExecutionEngine()


@pytest.fixture
def workflow(db_session, document_session, fake_engine):
    """Workflow whose replays are recorded, not executed."""
    return ApprovalWorkflow(db_session, document_session, engine=fake_engine)


@pytest.fixture
def live_workflow(db_session, document_session):
    """Workflow that replays against the in-memory stores."""
    return ApprovalWorkflow(db_session, document_session)


@pytest.fixture
def manager():
    return Principal(id="mgr-1", role="manager", username="ravi", name="Ravi Kumar")


@pytest.fixture
def other_manager():
    return Principal(id="mgr-2", role="manager", username="anita", name="Anita Rao")


@pytest.fixture
def admin():
    return Principal(id="adm-1", role="admin", username="admin", name="Site Admin")


@pytest.fixture
def sample_area(db_session):
    """Area 7 in zone 1."""
    zone = Zone(id=1, Zone_Name="North")
    db_session.add(zone)
    area = Area(id=7, Area_Name="Sector 7", Coordinates="17.38,78.48", Zone_ID=1)
    db_session.add(area)
    db_session.commit()
    db_session.refresh(area)
    return area


def headers_for(principal):
    headers = {
        "X-User-Id": principal.id,
        "X-User-Role": principal.role,
        "X-Username": principal.username,
        "X-User-Name": principal.name,
    }
    return {key: value for key, value in headers.items() if value is not None}


@pytest.fixture
def client(db_session, document_session):
    """TestClient wired to the in-memory stores."""
    from swm.main import app

    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_document_db] = lambda: document_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Header builder for a principal."""
    return headers_for
