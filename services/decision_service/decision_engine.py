# decision_engine.py - Rule-based decision support
# This file scores a decision context for risk and confidence and turns the scores into a recommendation.

import logging
from collections import deque
from typing import Deque, Dict, List, Optional
from datetime import datetime, timedelta

from .models import (
    DecisionContext, DecisionHistoryItem, DecisionRecommendation, RiskAssessment, RiskFactor,
    OutcomePrediction, AlternativeOutcome, ActionItem, AnalysisLogEntry, RiskLevel, Recommendation
)

logger = logging.getLogger(__name__)

URGENT_KEYWORDS = ("urgent", "immediate")
LONG_HORIZON_KEYWORDS = ("6 months", "year")
LARGE_BUDGET = 1_000_000

class DecisionEngine:
    """Scores decisions and keeps a history of past outcomes for insights."""

    def __init__(self, history_limit: int = 1000, analysis_log_limit: int = 500):
        self.decision_history: Deque[DecisionHistoryItem] = deque(maxlen=history_limit)
        self.analysis_log: Deque[AnalysisLogEntry] = deque(maxlen=analysis_log_limit)

    async def analyze_decision(self, context: DecisionContext,
                               session_id: Optional[str] = None) -> DecisionRecommendation:
        """Full analysis: risk, outcome, recommendation, action items and follow-up flag."""
        logger.info(f"Analyzing decision for scenario: {context.scenario}")

        risk_assessment = self.assess_risk(context)
        outcome_prediction = self.predict_outcomes(context)
        recommendation = self.determine_recommendation(context)

        result = DecisionRecommendation(
            recommendation=recommendation,
            confidence=self.calculate_confidence(context),
            reasoning=[
                "Strong business case with clear value proposition",
                "Acceptable risk level for organization tolerance",
                "Available resources and timeline alignment",
                "Strategic fit with organizational objectives"
            ],
            risk_assessment=risk_assessment,
            outcome_prediction=outcome_prediction,
            action_items=self.generate_action_items(context, recommendation),
            follow_up_required=self.requires_follow_up(risk_assessment, outcome_prediction)
        )

        if session_id:
            self.analysis_log.append(AnalysisLogEntry(
                session_id=session_id,
                scenario=context.scenario,
                recommendation=result.recommendation,
                confidence=result.confidence,
                risk_score=risk_assessment.risk_score,
                risk_level=risk_assessment.overall_risk
            ))

        logger.info(
            f"Recommendation: {result.recommendation} ({result.confidence}% confidence), "
            f"risk level: {risk_assessment.overall_risk} ({risk_assessment.risk_score}/100)"
        )
        return result

    # =========================
    # SCORING
    # =========================

    def calculate_risk_score(self, context: DecisionContext) -> int:
        score = 50

        if context.risk_tolerance == "low":
            score -= 15
        if context.risk_tolerance == "high":
            score += 15

        timeline = context.timeline
        if any(keyword in timeline for keyword in URGENT_KEYWORDS):
            score += 20
        if any(keyword in timeline for keyword in LONG_HORIZON_KEYWORDS):
            score -= 10

        if context.budget and context.budget > LARGE_BUDGET:
            score += 10

        return max(0, min(100, score))

    def calculate_confidence(self, context: DecisionContext) -> int:
        confidence = 75
        confidence += min(15, len(context.participants) * 3)
        confidence += min(10, len(context.documents) * 2)

        if context.risk_tolerance == "low":
            confidence += 5
        if context.risk_tolerance == "high":
            confidence -= 5

        return max(50, min(95, confidence))

    def determine_recommendation(self, context: DecisionContext) -> Recommendation:
        risk_score = self.calculate_risk_score(context)
        confidence = self.calculate_confidence(context)

        if confidence > 80 and risk_score < 40:
            return "proceed"
        if confidence > 70 and risk_score < 60:
            return "proceed_with_caution"
        if confidence > 60:
            return "defer"
        return "reject"

    @staticmethod
    def determine_risk_level(score: int) -> RiskLevel:
        if score <= 25:
            return "low"
        if score <= 50:
            return "medium"
        if score <= 75:
            return "high"
        return "critical"

    @staticmethod
    def requires_follow_up(risk: RiskAssessment, outcome: OutcomePrediction) -> bool:
        return risk.overall_risk in ("high", "critical") or outcome.confidence < 70

    # =========================
    # ANALYSIS SECTIONS
    # =========================

    def assess_risk(self, context: DecisionContext) -> RiskAssessment:
        risk_score = self.calculate_risk_score(context)
        return RiskAssessment(
            overall_risk=self.determine_risk_level(risk_score),
            risk_score=risk_score,
            risk_factors=[
                RiskFactor(category="financial", description="Budget overrun and cost escalation risks",
                           impact="medium", probability="medium", severity=6),
                RiskFactor(category="operational", description="Implementation complexity and resource constraints",
                           impact="medium", probability="high", severity=5)
            ],
            mitigation_strategies=[
                "Implement phased rollout with checkpoints",
                "Establish clear success metrics and monitoring",
                "Maintain contingency budget of 15-20%"
            ],
            contingency_plans=[
                "Scale back scope if budget constraints emerge",
                "Extend timeline if implementation challenges arise",
                "Identify alternative approaches for critical dependencies"
            ]
        )

    def predict_outcomes(self, context: DecisionContext) -> OutcomePrediction:
        return OutcomePrediction(
            confidence=self.calculate_confidence(context),
            primary_outcome="Successful implementation with measurable business value",
            alternative_outcomes=[
                AlternativeOutcome(scenario="Delayed implementation with partial success", probability=25,
                                   impact="neutral",
                                   description="Implementation takes longer but achieves core objectives"),
                AlternativeOutcome(scenario="Scope reduction but faster delivery", probability=15,
                                   impact="positive",
                                   description="Reduced scope enables quicker wins and learning")
            ],
            success_factors=[
                "Strong executive sponsorship and clear communication",
                "Adequate resource allocation and skilled team",
                "Stakeholder buy-in and change management"
            ],
            time_to_realization="3-6 months for initial results",
            business_impact={
                "financial": {
                    "revenue": {"min": 100000, "max": 500000, "unit": "USD"},
                    "costs": {"min": 50000, "max": 150000, "unit": "USD"},
                    "roi": {"min": 150, "max": 300}
                },
                "operational": {
                    "efficiency": "15-25% improvement in process efficiency",
                    "resources": "Requires 2-3 FTE for 6 months",
                    "timeline": "Initial results in 3 months, full impact in 6-12 months"
                },
                "strategic": {
                    "market_position": "Strengthened competitive position",
                    "competitive_advantage": "Enhanced decision-making capabilities",
                    "long_term_value": "Foundation for future AI-driven initiatives"
                }
            }
        )

    def generate_action_items(self, context: DecisionContext, recommendation: str) -> List[ActionItem]:
        logger.info(f"Generating action items for recommendation: {recommendation}")
        now = datetime.utcnow()
        return [
            ActionItem(id="action_1", description="Finalize project scope and success metrics",
                       priority="high", assignee="Project Manager",
                       deadline=now + timedelta(weeks=1)),
            ActionItem(id="action_2", description="Secure budget approval and resource allocation",
                       priority="critical", assignee="CFO",
                       deadline=now + timedelta(weeks=2), dependencies=["action_1"]),
            ActionItem(id="action_3", description="Develop detailed implementation plan",
                       priority="high", assignee="Technical Lead",
                       deadline=now + timedelta(weeks=3), dependencies=["action_1", "action_2"])
        ]

    # =========================
    # HISTORY
    # =========================

    def add_decision_history(self, decision: DecisionHistoryItem):
        """Record a past decision. Re-adding a known id replaces the earlier record."""
        for index, existing in enumerate(self.decision_history):
            if existing.id == decision.id:
                self.decision_history[index] = decision
                return
        self.decision_history.append(decision)
        logger.info(f"Added decision to history: {decision.id}")

    def get_historical_insights(self, scenario: str) -> List[str]:
        """Success rate and confidence of past decisions with overlapping scenarios."""
        scenario_text = scenario.lower()
        similar_decisions = [
            decision for decision in self.decision_history
            if decision.scenario.lower() in scenario_text or scenario_text in decision.scenario.lower()
        ]

        if not similar_decisions:
            return ["No historical data available for similar decisions"]

        success_rate = sum(1 for d in similar_decisions if d.outcome == "positive") / len(similar_decisions)
        avg_confidence = sum(d.confidence for d in similar_decisions) / len(similar_decisions)

        return [
            f"Historical success rate for similar decisions: {success_rate * 100:.1f}%",
            f"Average confidence level: {avg_confidence:.1f}%",
            f"Based on {len(similar_decisions)} similar decision(s)"
        ]

    def get_session_analyses(self, session_id: str) -> List[AnalysisLogEntry]:
        """Analyses run for a session, newest first."""
        return [entry for entry in reversed(self.analysis_log) if entry.session_id == session_id]

    def stats(self) -> Dict[str, int]:
        return {"history_size": len(self.decision_history), "analyses_logged": len(self.analysis_log)}
