# executions.py - Start/advance/monitor workflow executions
# This file defines the API endpoints for running executions and submitting human input.

from fastapi import APIRouter, HTTPException, Depends, Query, Request
from typing import Any, Dict, List, Optional
import logging

from ..models import WorkflowExecution, WorkflowStartRequest, DecisionSubmission, ApprovalSubmission
from ..workflow_engine import WorkflowEngine
from ..exceptions import WorkflowError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/executions", tags=["executions"])

# Dependencies
def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.workflow_engine

@router.post("/", response_model=WorkflowExecution, status_code=201)
async def start_execution(
    request: WorkflowStartRequest,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Start a workflow execution from a template."""
    try:
        execution = await engine.start_workflow(
            request.template_id,
            request.session_id,
            request.initiated_by,
            context=request.context,
            documents=request.documents
        )
        logger.info(f"Started execution {execution.id} for template {request.template_id}")
        return execution

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to start execution: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/", response_model=List[WorkflowExecution])
async def list_executions(
    user_id: str = Query(..., description="Initiator or participant"),
    limit: int = Query(50, ge=1, le=500),
    engine: WorkflowEngine = Depends(get_engine)
):
    """List executions visible to a user, newest first."""
    try:
        executions = await engine.list_executions(user_id)
        return executions[:limit]

    except Exception as e:
        logger.error(f"Failed to list executions for {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{execution_id}", response_model=WorkflowExecution)
async def get_execution(
    execution_id: str,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Get specific workflow execution details, live or finished."""
    try:
        return await engine.get_execution(execution_id)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to get execution {execution_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/{execution_id}/steps/{step_id}", response_model=WorkflowExecution)
async def execute_step(
    execution_id: str,
    step_id: str,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Run a step of a live execution."""
    try:
        return await engine.execute_step(execution_id, step_id)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to execute step {step_id} of {execution_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/{execution_id}/steps/{step_id}/decision", response_model=WorkflowExecution)
async def submit_decision(
    execution_id: str,
    step_id: str,
    submission: DecisionSubmission,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Submit the decision a decision_point step is waiting for."""
    try:
        return await engine.submit_decision(execution_id, step_id, submission)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to submit decision for {execution_id}/{step_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/{execution_id}/steps/{step_id}/approval", response_model=WorkflowExecution)
async def submit_approval(
    execution_id: str,
    step_id: str,
    submission: ApprovalSubmission,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Submit an approval response for an approval step."""
    try:
        return await engine.submit_approval(execution_id, step_id, submission)

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to submit approval for {execution_id}/{step_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/{execution_id}/steps/{step_id}/resume", response_model=WorkflowExecution)
async def resume_step(
    execution_id: str,
    step_id: str,
    payload: Dict[str, Any],
    engine: WorkflowEngine = Depends(get_engine)
):
    """Resume a waiting step with a payload matching its step type."""
    return await engine.resume_step(execution_id, step_id, payload)

@router.post("/{execution_id}/cancel", response_model=WorkflowExecution)
async def cancel_execution(
    execution_id: str,
    reason: Optional[str] = None,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Cancel a running workflow execution."""
    try:
        return await engine.cancel_execution(execution_id, reason or "Cancelled by user")

    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to cancel execution {execution_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
