import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1.day_patterns.router import assignment_router as day_pattern_assignments_router
from app.api.v1.day_patterns.router import router as day_patterns_router
from app.api.v1.period_slots.router import router as period_slots_router
from app.api.v1.shifts.router import router as shifts_router
from app.api.v1.substitutions.router import router as substitutions_router
from app.api.v1.timetables.router import router as timetables_router
from app.core.config import settings
from app.core.logging import configure_logging

logger = logging.getLogger(__name__)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Scheduling Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    # Routers
    app.include_router(shifts_router)
    app.include_router(day_patterns_router)
    app.include_router(day_pattern_assignments_router)
    app.include_router(period_slots_router)
    app.include_router(timetables_router)
    app.include_router(substitutions_router)

    return app


app = create_app()
