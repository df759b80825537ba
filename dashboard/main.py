import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dashboard.routers import risk_assessments
from risk_engine.engine import RiskEngine, create_risk_engine
from risk_engine.types import (
    AlertTransitionError,
    InterventionTransitionError,
    MissingSignalError,
    NotFoundError,
    RiskEngineError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def error_status(exc: RiskEngineError) -> int:
    """HTTP status for an engine error."""
    if isinstance(exc, (ValidationError, MissingSignalError)):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (AlertTransitionError, InterventionTransitionError)):
        return 409
    return 500


def create_app(engine: Optional[RiskEngine] = None) -> FastAPI:
    """
    Build the API application.

    Without an explicit engine one is created from the environment
    at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = engine is None
        app.state.risk_engine = engine or create_risk_engine()
        yield
        if owned:
            await app.state.risk_engine.close()

    app = FastAPI(
        title="Student Risk Engine API",
        description="Dropout risk scoring, early-warning alerts and intervention tracking.",
        version="1.0.0",
        lifespan=lifespan,
    )
    if engine is not None:
        app.state.risk_engine = engine

    # CORS (Allow local frontend development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RiskEngineError)
    async def handle_engine_error(request: Request, exc: RiskEngineError):
        code = error_status(exc)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error_type": "ValidationError",
                "message": "Invalid request body",
                "details": {"errors": jsonable_errors(exc)},
            },
        )

    # Include Routers
    app.include_router(risk_assessments.router)
    app.include_router(risk_assessments.interventions_router)

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Risk Engine API is running"}

    return app


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


if __name__ == "__main__":
    import uvicorn

    setup_logging()
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
