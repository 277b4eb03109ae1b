import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from degreeplan.api.routes import router as api_router
from degreeplan.core.database import SessionLocal
from degreeplan.core.errors import (
    AuthError,
    ConflictError,
    DegreePlanError,
    ForbiddenError,
    NotFound,
    SessionStateError,
    StoreError,
    ValidationError,
)
from degreeplan.core.logging import configure_logging
from degreeplan.models.base import Base
from degreeplan.services.gateway import SqlPlanGateway
from degreeplan.services.registry import SessionRegistry
import degreeplan.models  # noqa: F401

logger = logging.getLogger(__name__)

# Most specific first; subclasses precede their bases
_STATUS_BY_ERROR: list[tuple[type[DegreePlanError], int]] = [
    (ValidationError, 422),
    (ForbiddenError, 403),
    (AuthError, 401),
    (NotFound, 404),
    (ConflictError, 409),
    (SessionStateError, 409),
    (StoreError, 503),
]


def status_for(exc: DegreePlanError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return 500


async def planner_error_handler(request: Request, exc: DegreePlanError) -> JSONResponse:
    code = status_for(exc)
    log = logger.error if code >= 500 else logger.warning
    log("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    body = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    if isinstance(exc, StoreError) and exc.applied_ids:
        body["applied_ids"] = exc.applied_ids
    return JSONResponse(status_code=code, content=body)


def create_app(session_factory: sessionmaker | None = None) -> FastAPI:
    configure_logging()
    factory = session_factory or SessionLocal

    app = FastAPI(title="Degree Planner API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    gateway = SqlPlanGateway(factory)
    app.state.gateway = gateway
    app.state.registry = SessionRegistry(gateway)

    app.add_exception_handler(DegreePlanError, planner_error_handler)
    app.include_router(api_router)

    @app.on_event("startup")
    def on_startup():
        bind = factory.kw.get("bind")
        if bind is not None:
            Base.metadata.create_all(bind=bind)

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


app = create_app()
