"""Database configuration and session management for both stores."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from swm.config import settings


def _normalize_url(url: str) -> str:
    # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def make_engine(url: str):
    """Build an engine with per-backend pool settings."""
    url = _normalize_url(url)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10
    )


# Relational store: zones, wards, areas, employees, vehicles, ...
engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Document store: houses, collection records, change records, ...
document_engine = make_engine(settings.DOCUMENT_DATABASE_URL)
DocumentSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=document_engine)
DocumentBase = declarative_base()


def get_db():
    """Dependency for FastAPI endpoints to get a relational session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_document_db():
    """Dependency for FastAPI endpoints to get a document-store session."""
    db = DocumentSessionLocal()
    try:
        yield db
    finally:
        db.close()
