# models.py - Decision analysis data models
# This file defines the inputs and results of the decision support engine.

from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Any, Literal
from datetime import datetime
import uuid

RiskTolerance = Literal["low", "medium", "high"]
RiskLevel = Literal["low", "medium", "high", "critical"]
Recommendation = Literal["proceed", "proceed_with_caution", "defer", "reject"]
Impact = Literal["low", "medium", "high"]

class DecisionHistoryItem(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    scenario: str
    decision: str
    outcome: Literal["positive", "negative", "neutral"]
    confidence: float = Field(ge=0, le=100)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    factors: List[str] = Field(default_factory=list)

class DecisionContext(BaseModel):
    scenario: str
    documents: List[str] = Field(default_factory=list)
    participants: List[str]
    timeline: str
    budget: Optional[float] = None
    risk_tolerance: RiskTolerance
    organization_type: str
    previous_decisions: List[DecisionHistoryItem] = Field(default_factory=list)

class RiskFactor(BaseModel):
    category: Literal["financial", "operational", "strategic", "regulatory", "reputational"]
    description: str
    impact: Impact
    probability: Impact
    severity: int = Field(ge=1, le=10)

class RiskAssessment(BaseModel):
    overall_risk: RiskLevel
    risk_score: int = Field(ge=0, le=100)
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    mitigation_strategies: List[str] = Field(default_factory=list)
    contingency_plans: List[str] = Field(default_factory=list)

class AlternativeOutcome(BaseModel):
    scenario: str
    probability: int
    impact: Literal["positive", "negative", "neutral"]
    description: str

class OutcomePrediction(BaseModel):
    confidence: int = Field(ge=0, le=100)
    primary_outcome: str
    alternative_outcomes: List[AlternativeOutcome] = Field(default_factory=list)
    success_factors: List[str] = Field(default_factory=list)
    time_to_realization: str
    business_impact: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

class ActionItem(BaseModel):
    id: str
    description: str
    priority: Literal["low", "medium", "high", "critical"]
    assignee: Optional[str] = None
    deadline: Optional[datetime] = None
    dependencies: List[str] = Field(default_factory=list)

class DecisionRecommendation(BaseModel):
    recommendation: Recommendation
    confidence: int = Field(ge=0, le=100)
    reasoning: List[str] = Field(default_factory=list)
    risk_assessment: RiskAssessment
    outcome_prediction: OutcomePrediction
    action_items: List[ActionItem] = Field(default_factory=list)
    follow_up_required: bool

# =========================
# API MODELS
# =========================

class DecisionAnalysisRequest(DecisionContext):
    session_id: str

class AnalysisLogEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    scenario: str
    recommendation: Recommendation
    confidence: int
    risk_score: int
    risk_level: RiskLevel
    timestamp: datetime = Field(default_factory=datetime.utcnow)

class DecisionAnalysisResponse(BaseModel):
    session_id: str
    scenario: str
    recommendation: DecisionRecommendation
    historical_insights: List[str]
    analysis_metadata: Dict[str, Any]
