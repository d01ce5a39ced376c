# ai_client.py - AI analysis providers used by ai_analysis steps
# This file contains the provider interface plus a canned provider and an OpenAI-backed one.

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from openai import AsyncOpenAI

from .config import Settings
from .exceptions import StepExecutionError
from .models import AIWorkflowResponse

logger = logging.getLogger(__name__)

class AIAnalysisProvider(Protocol):
    """Produces an analysis for a step given its prompt, roles and context."""

    async def analyze(self, step_id: str, prompt: str, required_agents: List[str],
                      context: Dict[str, Any]) -> AIWorkflowResponse:
        ...

class MockAIAnalysisProvider:
    """Returns a fixed analysis. Used for demos and whenever no model is configured."""

    def __init__(self, confidence: float = 0.85):
        self.confidence = confidence
        self.calls: List[Dict[str, Any]] = []

    async def analyze(self, step_id: str, prompt: str, required_agents: List[str],
                      context: Dict[str, Any]) -> AIWorkflowResponse:
        logger.info(f"AI analysis requested with prompt: {prompt[:50]}... for agents: {', '.join(required_agents)}")
        self.calls.append({
            "step_id": step_id,
            "prompt": prompt,
            "required_agents": list(required_agents),
            "context": context
        })

        return AIWorkflowResponse(
            step_id=step_id,
            analysis="AI analysis performed on the request and its supporting context",
            confidence=self.confidence,
            reasoning=["Analyzed available data", "Considered risk factors", "Evaluated alternatives"],
            recommendations=["Proceed with proposed action", "Monitor key metrics", "Schedule follow-up"],
            risks=["Market volatility", "Resource constraints"],
            documents_used=list(context.get("documents", [])),
            data_points={"confidence_score": self.confidence, "risk_level": "medium"},
            alternative_options=["Option A", "Option B", "Option C"],
            suggested_next_steps=["approval", "risk_review"],
            escalation_required=False,
            stakeholders_to_notify=["team_lead", "manager"]
        )

class OpenAIAnalysisProvider:
    """Asks an OpenAI chat model for a structured analysis from the required executive roles."""

    SYSTEM_MESSAGE = (
        "You are a panel of executive advisors ({roles}). Analyze the request and reply with a JSON object "
        "with keys: analysis (string), confidence (number 0-1), reasoning (list of strings), "
        "recommendations (list of strings), risks (list of strings), alternative_options (list of strings), "
        "suggested_next_steps (list of strings), escalation_required (boolean), "
        "stakeholders_to_notify (list of strings)."
    )

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o-mini",
                 temperature: float = 0.3, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature
        logger.info(f"Initialized OpenAI analysis provider for model: {self.model}")

    async def analyze(self, step_id: str, prompt: str, required_agents: List[str],
                      context: Dict[str, Any]) -> AIWorkflowResponse:
        messages = [
            {"role": "system", "content": self.SYSTEM_MESSAGE.format(roles=", ".join(required_agents) or "executives")},
            {"role": "user", "content": f"{prompt}\n\nContext:\n{json.dumps(context, default=str)}"}
        ]

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                response_format={"type": "json_object"}
            )
        except Exception as e:
            raise StepExecutionError(f"AI analysis call failed: {str(e)}") from e

        content = response.choices[0].message.content or "{}"
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise StepExecutionError(f"AI analysis returned invalid JSON: {str(e)}") from e

        confidence = parsed.get("confidence", 0.0)
        try:
            confidence = min(1.0, max(0.0, float(confidence)))
        except (TypeError, ValueError):
            confidence = 0.0

        return AIWorkflowResponse(
            step_id=step_id,
            analysis=str(parsed.get("analysis", "")),
            confidence=confidence,
            reasoning=list(parsed.get("reasoning", [])),
            recommendations=list(parsed.get("recommendations", [])),
            risks=list(parsed.get("risks", [])),
            documents_used=list(context.get("documents", [])),
            alternative_options=list(parsed.get("alternative_options", [])),
            suggested_next_steps=list(parsed.get("suggested_next_steps", [])),
            escalation_required=bool(parsed.get("escalation_required", False)),
            stakeholders_to_notify=list(parsed.get("stakeholders_to_notify", []))
        )

def create_ai_provider(settings: Settings) -> AIAnalysisProvider:
    """Build the provider selected by configuration."""
    if settings.ai_provider == "openai":
        return OpenAIAnalysisProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            temperature=settings.openai_temperature
        )
    return MockAIAnalysisProvider(confidence=settings.mock_ai_confidence)
