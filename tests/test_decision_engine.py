"""Decision scoring, recommendations and historical insights."""

import pytest

from services.decision_service.decision_engine import DecisionEngine
from services.decision_service.models import DecisionContext, DecisionHistoryItem


def make_context(**overrides):
    values = {
        "scenario": "Expand into the EU market",
        "participants": ["CEO", "CFO"],
        "timeline": "Q3",
        "risk_tolerance": "medium",
        "organization_type": "enterprise",
    }
    values.update(overrides)
    return DecisionContext(**values)


@pytest.fixture
def decision_engine():
    return DecisionEngine(history_limit=10, analysis_log_limit=10)


def test_risk_score_adds_up_and_clamps(decision_engine):
    risky = make_context(risk_tolerance="high", timeline="urgent rollout", budget=2_000_000)
    assert decision_engine.calculate_risk_score(risky) == 95
    assert decision_engine.assess_risk(risky).overall_risk == "critical"

    patient = make_context(risk_tolerance="low", timeline="within a year")
    assert decision_engine.calculate_risk_score(patient) == 25
    assert decision_engine.assess_risk(patient).overall_risk == "low"


def test_timeline_keywords_are_case_sensitive(decision_engine):
    assert decision_engine.calculate_risk_score(make_context(timeline="Urgent rollout")) == 50
    assert decision_engine.calculate_risk_score(make_context(timeline="IMMEDIATE")) == 50
    assert decision_engine.calculate_risk_score(make_context(timeline="within 6 Months")) == 50
    assert decision_engine.calculate_risk_score(make_context(timeline="immediate start")) == 70


def test_confidence_is_capped(decision_engine):
    context = make_context(
        risk_tolerance="low",
        participants=[f"exec-{n}" for n in range(10)],
        documents=[f"doc-{n}.pdf" for n in range(10)],
    )

    assert decision_engine.calculate_confidence(context) == 95


@pytest.mark.parametrize(
    "overrides, risk, confidence, recommendation",
    [
        (
            {"risk_tolerance": "low", "participants": ["CEO", "CFO", "CTO"],
             "documents": ["plan.pdf", "budget.xlsx"], "timeline": "6 months"},
            25, 93, "proceed",
        ),
        ({"risk_tolerance": "medium"}, 50, 81, "proceed_with_caution"),
        ({"risk_tolerance": "high", "participants": ["CEO"], "timeline": "immediate"}, 85, 73, "defer"),
    ],
)
def test_recommendation_thresholds(decision_engine, overrides, risk, confidence, recommendation):
    context = make_context(**overrides)

    assert decision_engine.calculate_risk_score(context) == risk
    assert decision_engine.calculate_confidence(context) == confidence
    assert decision_engine.determine_recommendation(context) == recommendation


@pytest.mark.parametrize("score, level", [(0, "low"), (25, "low"), (26, "medium"), (50, "medium"),
                                          (75, "high"), (76, "critical")])
def test_risk_levels(score, level):
    assert DecisionEngine.determine_risk_level(score) == level


@pytest.mark.asyncio
async def test_analysis_flags_follow_up_for_high_risk(decision_engine):
    urgent = make_context(risk_tolerance="high", participants=["CEO"], timeline="immediate")
    calm = make_context(risk_tolerance="low", participants=["CEO", "CFO", "CTO"], timeline="6 months")

    urgent_result = await decision_engine.analyze_decision(urgent)
    calm_result = await decision_engine.analyze_decision(calm)

    assert urgent_result.follow_up_required is True
    assert calm_result.follow_up_required is False
    assert calm_result.outcome_prediction.confidence == calm_result.confidence
    assert [item.id for item in calm_result.action_items] == ["action_1", "action_2", "action_3"]
    assert calm_result.action_items[2].dependencies == ["action_1", "action_2"]
    assert calm_result.action_items[0].deadline < calm_result.action_items[1].deadline


@pytest.mark.asyncio
async def test_analyses_are_logged_per_session(decision_engine):
    await decision_engine.analyze_decision(make_context(scenario="First"), session_id="board-1")
    await decision_engine.analyze_decision(make_context(scenario="Second"), session_id="board-1")
    await decision_engine.analyze_decision(make_context(scenario="Other"), session_id="board-2")
    await decision_engine.analyze_decision(make_context(scenario="Unlogged"))

    entries = decision_engine.get_session_analyses("board-1")

    assert [entry.scenario for entry in entries] == ["Second", "First"]
    assert decision_engine.stats() == {"history_size": 0, "analyses_logged": 3}


def test_historical_insights(decision_engine):
    assert decision_engine.get_historical_insights("Budget increase") == [
        "No historical data available for similar decisions"
    ]

    for outcome, confidence in (("positive", 80), ("positive", 90), ("negative", 70)):
        decision_engine.add_decision_history(DecisionHistoryItem(
            scenario="budget", decision="approve", outcome=outcome, confidence=confidence
        ))
    decision_engine.add_decision_history(DecisionHistoryItem(
        scenario="hiring", decision="hire", outcome="negative", confidence=10
    ))

    assert decision_engine.get_historical_insights("Quarterly BUDGET increase") == [
        "Historical success rate for similar decisions: 66.7%",
        "Average confidence level: 80.0%",
        "Based on 3 similar decision(s)",
    ]


def test_history_deduplicates_by_id(decision_engine):
    first = DecisionHistoryItem(id="d-1", scenario="budget", decision="approve", outcome="negative", confidence=50)
    decision_engine.add_decision_history(first)
    decision_engine.add_decision_history(first.model_copy(update={"outcome": "positive"}))

    assert len(decision_engine.decision_history) == 1
    assert decision_engine.decision_history[0].outcome == "positive"
