"""
Mission API Routes - Endpoints the presentation layer drives missions with.

Endpoints:
- POST /api/v1/mission/start - Launch a mission in the background
- GET  /api/v1/mission/blackboard - Current blackboard snapshot
- GET  /api/v1/mission/messages - Message log, filterable by kind
- GET  /api/v1/mission/status - Orchestrator and agent status
- PUT  /api/v1/mission/blackboard/{field} - Manual field override
- POST /api/v1/mission/stages/{agent_id}/rerun - Rerun one stage with overrides
- POST /api/v1/mission/explain - Ask the education tutor
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, HTTPException, Query
from pydantic import BaseModel, Field

from ..llm.inference import InferenceError
from ..orchestration.blackboard import BlackboardField, parse_field_value, serialize_value
from ..orchestration.message_bus import MessageKind

logger = logging.getLogger(__name__)

VALID_FIELDS = frozenset(f.value for f in BlackboardField)
VALID_KINDS = frozenset(k.value for k in MessageKind)


# =============================================================================
# Pydantic Models
# =============================================================================

class StartMissionRequest(BaseModel):
    """Questionnaire answers and market preference for a new mission."""
    answers: dict[str, str] = Field(..., description="Question id to chosen option value")
    market: str = Field("both", description="Market preference: tw, us or both")


class OverrideRequest(BaseModel):
    """Raw JSON value for a manual blackboard override."""
    value: Any = Field(..., description="Field value in its JSON form")


class RerunRequest(BaseModel):
    """Optional overrides for a stage rerun."""
    preferences: Optional[str] = Field(None, max_length=2000, description="Portfolio stage only")
    years: Optional[int] = Field(None, ge=1, le=50, description="Simulation stage only")


class ExplainRequest(BaseModel):
    """A question for the education tutor."""
    query: str = Field(..., min_length=1, max_length=2000)


# =============================================================================
# Router Factory
# =============================================================================

def create_mission_router(controller, tutor=None) -> APIRouter:
    """
    Create mission router with dependencies.

    Args:
        controller: MissionController instance
        tutor: EducationTutor instance (optional)

    Returns:
        Configured APIRouter
    """
    router = APIRouter(prefix="/api/v1", tags=["mission"])
    orchestrator = controller.orchestrator

    @router.post("/mission/start", status_code=202)
    async def start_mission(request: StartMissionRequest):
        """
        Launch a mission. Returns immediately; poll status and blackboard.

        Returns:
            Accepted status with the new mission id
        """
        try:
            mission_id = controller.launch(request.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Failed to start mission: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error starting mission")

        return {"status": "accepted", "mission_id": mission_id}

    @router.get("/mission/blackboard")
    async def get_blackboard():
        """Get the current blackboard snapshot."""
        try:
            return orchestrator.current_blackboard().to_dict()
        except Exception as e:
            logger.error(f"Failed to get blackboard: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error getting blackboard")

    @router.get("/mission/messages")
    async def get_messages(
        kind: Optional[str] = Query(None, description="Filter by message kind"),
        limit: int = Query(100, ge=1, le=500, description="Maximum messages to return"),
    ):
        """
        Get message log entries, oldest first.

        Args:
            kind: Optional kind filter
            limit: Maximum messages to return
        """
        if kind is not None and kind not in VALID_KINDS:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid message kind: '{kind}'. Valid: {', '.join(sorted(VALID_KINDS))}"
            )

        try:
            messages = orchestrator.get_history(
                kind=MessageKind(kind) if kind else None,
                limit=limit,
            )
            return {
                "mission_id": orchestrator.mission_id,
                "count": len(messages),
                "messages": [m.to_dict() for m in messages],
            }
        except Exception as e:
            logger.error(f"Failed to get messages: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error getting messages")

    @router.get("/mission/status")
    async def get_status():
        """Get orchestrator state, agent states and statistics."""
        try:
            return orchestrator.get_status()
        except Exception as e:
            logger.error(f"Failed to get mission status: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error getting status")

    @router.put("/mission/blackboard/{field}")
    async def override_field(field: str, request: OverrideRequest = Body(...)):
        """
        Manually set a blackboard field, bypassing the agents.

        Args:
            field: Blackboard field name
        """
        if field not in VALID_FIELDS:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid field: '{field}'. Valid: {', '.join(sorted(VALID_FIELDS))}"
            )

        blackboard_field = BlackboardField(field)
        try:
            value = parse_field_value(blackboard_field, request.value)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid value for {field}: {e}")

        try:
            controller.force_set_field(blackboard_field, value)
        except Exception as e:
            logger.error(f"Failed to override {field}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error applying override")

        return {
            "status": "updated",
            "field": field,
            "blackboard": orchestrator.current_blackboard().to_dict(),
        }

    @router.post("/mission/stages/{agent_id}/rerun")
    async def rerun_stage(agent_id: str, request: Optional[RerunRequest] = Body(None)):
        """
        Rerun one stage on the current mission and commit its output.

        Downstream stages are not retriggered.

        Args:
            agent_id: Stage id, e.g. portfolio_design or simulation
        """
        if orchestrator.get_agent(agent_id) is None:
            raise HTTPException(status_code=404, detail=f"Unknown stage: '{agent_id}'")
        overrides = request.model_dump(exclude_none=True) if request else {}

        try:
            value = await controller.rerun_stage(agent_id, **overrides)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except InferenceError as e:
            logger.warning(f"Rerun of {agent_id} failed: {e}")
            raise HTTPException(status_code=502, detail=f"Stage {agent_id} could not complete: {e}")
        except Exception as e:
            logger.error(f"Failed to rerun {agent_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error rerunning stage")

        if value is None:
            raise HTTPException(status_code=409, detail="Mission was replaced while the stage was running")

        field = orchestrator.get_agent(agent_id).output_field
        return {
            "status": "updated",
            "agent_id": agent_id,
            "field": field.value,
            "value": serialize_value(value),
        }

    @router.post("/mission/explain")
    async def explain(request: ExplainRequest):
        """Ask the education tutor to explain a concept."""
        if not tutor:
            raise HTTPException(status_code=503, detail="Education tutor not initialized")

        try:
            answer = await tutor.explain(request.query, orchestrator.current_blackboard())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except InferenceError as e:
            logger.warning(f"Tutor inference failed: {e}")
            raise HTTPException(status_code=502, detail="Tutor could not answer right now")
        except Exception as e:
            logger.error(f"Failed to explain: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error explaining")

        return {"query": request.query, "answer": answer}

    return router
