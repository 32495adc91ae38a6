"""Main FastAPI application entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swm.config import settings
from swm.logging_config import setup_logging
from swm.database import engine, document_engine, Base, DocumentBase
from swm.api import approvals, crud
from swm.api.interception import ApprovalQueued, approval_queued_handler
# Import models to register them with their declarative bases
from swm.models import relational, documents  # noqa: F401

setup_logging()


def create_tables():
    Base.metadata.create_all(bind=engine)
    DocumentBase.metadata.create_all(bind=document_engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_tables()
    yield


app = FastAPI(
    title="SWM API",
    description="Municipal solid-waste-management backend with reviewed manager changes.",
    version="1.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ApprovalQueued, approval_queued_handler)

# Include API routes
app.include_router(approvals.router, prefix="/api", tags=["Approvals"])
for router in crud.routers:
    app.include_router(router, prefix="/api")


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "SWM API"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
