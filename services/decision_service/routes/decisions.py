# decisions.py - Decision analysis endpoints
# This file defines the API endpoints for decision analysis and decision history.

from fastapi import APIRouter, HTTPException, Depends, Query, Request
from typing import List
from datetime import datetime
import time
import logging

from ..models import (
    DecisionAnalysisRequest, DecisionAnalysisResponse, DecisionContext, DecisionHistoryItem, AnalysisLogEntry
)
from ..decision_engine import DecisionEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/decisions", tags=["decisions"])

ENGINE_VERSION = "1.0.0"

# Dependencies
def get_decision_engine(request: Request) -> DecisionEngine:
    return request.app.state.decision_engine

@router.post("/analyze", response_model=DecisionAnalysisResponse)
async def analyze_decision(
    request: DecisionAnalysisRequest,
    engine: DecisionEngine = Depends(get_decision_engine)
):
    """Analyze a decision and return a recommendation with historical insights."""
    try:
        logger.info(f"Analyzing decision for scenario: {request.scenario} "
                    f"({len(request.participants)} participants, risk tolerance: {request.risk_tolerance})")

        for decision in request.previous_decisions:
            engine.add_decision_history(decision)

        context = DecisionContext(**request.model_dump(exclude={"session_id"}))
        started = time.perf_counter()
        recommendation = await engine.analyze_decision(context, session_id=request.session_id)
        analysis_time_ms = round((time.perf_counter() - started) * 1000, 2)

        return DecisionAnalysisResponse(
            session_id=request.session_id,
            scenario=request.scenario,
            recommendation=recommendation,
            historical_insights=engine.get_historical_insights(request.scenario),
            analysis_metadata={
                "analysis_time_ms": analysis_time_ms,
                "timestamp": datetime.utcnow().isoformat(),
                "engine_version": ENGINE_VERSION
            }
        )

    except Exception as e:
        logger.error(f"Failed to analyze decision: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to analyze decision: {str(e)}")

@router.get("/analyses", response_model=List[AnalysisLogEntry])
async def list_session_analyses(
    session_id: str = Query(..., description="Board session id"),
    engine: DecisionEngine = Depends(get_decision_engine)
):
    """Analyses previously run for a session, newest first."""
    return engine.get_session_analyses(session_id)

@router.post("/history", response_model=DecisionHistoryItem, status_code=201)
async def add_decision_history(
    decision: DecisionHistoryItem,
    engine: DecisionEngine = Depends(get_decision_engine)
):
    """Record the outcome of a past decision."""
    engine.add_decision_history(decision)
    return decision

@router.get("/insights", response_model=List[str])
async def get_historical_insights(
    scenario: str = Query(..., min_length=1),
    engine: DecisionEngine = Depends(get_decision_engine)
):
    """Insights from past decisions on similar scenarios."""
    return engine.get_historical_insights(scenario)
