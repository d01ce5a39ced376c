"""AI analysis providers and action parameter resolution."""

import json
from types import SimpleNamespace

import pytest

from services.workflow_service.actions import LoggingActionExecutor, substitute_variables
from services.workflow_service.ai_client import (
    MockAIAnalysisProvider,
    OpenAIAnalysisProvider,
    create_ai_provider,
)
from services.workflow_service.config import Settings
from services.workflow_service.exceptions import StepExecutionError


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


@pytest.mark.asyncio
async def test_mock_provider_records_calls():
    provider = MockAIAnalysisProvider(confidence=0.6)

    response = await provider.analyze("analyze", "Assess the budget", ["CFO"], {"documents": ["q3.pdf"]})

    assert response.confidence == 0.6
    assert response.documents_used == ["q3.pdf"]
    assert provider.calls[0]["prompt"] == "Assess the budget"


@pytest.mark.asyncio
async def test_openai_provider_parses_json_reply():
    completions = FakeCompletions(json.dumps({
        "analysis": "Budget is within plan",
        "confidence": 1.4,
        "recommendations": ["Approve"],
        "risks": ["FX exposure"],
        "escalation_required": False,
    }))
    provider = OpenAIAnalysisProvider(model="gpt-test", client=fake_client(completions))

    response = await provider.analyze("analyze", "Assess", ["CFO", "CTO"], {"documents": []})

    assert response.analysis == "Budget is within plan"
    assert response.confidence == 1.0
    assert response.recommendations == ["Approve"]
    assert completions.kwargs["model"] == "gpt-test"
    assert completions.kwargs["response_format"] == {"type": "json_object"}
    assert "CFO, CTO" in completions.kwargs["messages"][0]["content"]


@pytest.mark.asyncio
async def test_openai_provider_wraps_errors():
    provider = OpenAIAnalysisProvider(client=fake_client(FakeCompletions(error=RuntimeError("rate limited"))))
    with pytest.raises(StepExecutionError, match="rate limited"):
        await provider.analyze("analyze", "Assess", [], {})

    provider = OpenAIAnalysisProvider(client=fake_client(FakeCompletions("not json")))
    with pytest.raises(StepExecutionError, match="invalid JSON"):
        await provider.analyze("analyze", "Assess", [], {})


def test_create_ai_provider_defaults_to_mock():
    provider = create_ai_provider(Settings(ai_provider="mock", mock_ai_confidence=0.9))

    assert isinstance(provider, MockAIAnalysisProvider)
    assert provider.confidence == 0.9


def test_substitute_variables():
    context = {"amount": 250000, "owner": {"email": "cfo@example.com"}}
    parameters = {
        "to": "${owner.email}",
        "subject": "Budget of ${amount} approved",
        "limit": "${amount}",
        "cc": ["${missing}"],
    }

    assert substitute_variables(parameters, context) == {
        "to": "cfo@example.com",
        "subject": "Budget of 250000 approved",
        "limit": 250000,
        "cc": [None],
    }


@pytest.mark.asyncio
async def test_logging_action_executor():
    executor = LoggingActionExecutor()

    result = await executor.execute("email", {"to": "${owner}"}, {"owner": "cfo"})

    assert result["success"] is True
    assert result["parameters"] == {"to": "cfo"}
    assert executor.executed == [{"action_type": "email", "parameters": {"to": "cfo"}}]
