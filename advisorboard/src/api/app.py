"""
FastAPI application for AdvisorBoard.

Error responses share one shape: {"detail": ..., "timestamp": ...}, with a
per-field "errors" list added for request validation failures.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .routes_mission import create_mission_router

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, detail, headers=None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, **extra, "timestamp": _now()},
        headers=headers,
    )


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _error(422, "Validation error", errors=errors)


async def _on_http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return _error(exc.status_code, exc.detail, headers=exc.headers)


def create_app(controller, tutor=None, inference=None, debug_mode: bool = False) -> FastAPI:
    """
    Build the API around a running MissionController.

    Args:
        controller: MissionController that owns the orchestrator
        tutor: EducationTutor backing /api/v1/mission/explain (optional)
        inference: InferenceService whose provider /health probes (optional)
        debug_mode: Put exception text in 500 responses
    """
    app = FastAPI(
        title="AdvisorBoard API",
        description="Autonomous multi-agent investment advisory",
        version=API_VERSION,
    )

    async def on_unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True
        )
        detail = f"{type(exc).__name__}: {exc}" if debug_mode else "An internal server error occurred"
        return _error(500, detail)

    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(HTTPException, _on_http_error)
    app.add_exception_handler(Exception, on_unhandled)

    app.include_router(create_health_router(controller, inference))
    app.include_router(create_mission_router(controller, tutor))
    return app


def create_health_router(controller, inference=None) -> APIRouter:
    """/health reports the orchestrator and, when given, the inference provider."""
    router = APIRouter(tags=["health"])

    @router.get("/health")
    async def health():
        orchestrator = controller.orchestrator
        components = {
            "orchestrator": {
                "status": "healthy",
                "mission_state": orchestrator.state.value,
                "agents": len(orchestrator.agents),
            },
        }
        overall = "healthy"
        if inference is not None:
            reachable = await inference.client.health_check()
            components["inference"] = {
                "status": "healthy" if reachable else "unreachable",
                "provider": inference.client.provider_name,
            }
            if not reachable:
                overall = "degraded"
        return {"status": overall, "timestamp": _now(), "components": components}

    @router.get("/health/live")
    async def liveness():
        return {"status": "alive"}

    return router
