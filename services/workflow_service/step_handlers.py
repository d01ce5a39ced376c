# step_handlers.py - Behavior of each workflow step type
# Each handler fills in the step execution record and may write to the shared
# execution context. Handlers that wait on a person leave the step PENDING.

import asyncio
import copy
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional, Type, TypeVar, TYPE_CHECKING

from .conditions import evaluate_conditions
from .exceptions import StepConfigurationError
from .models import (
    WorkflowExecution, WorkflowStep, WorkflowStepExecution, WorkflowAction, StepType, StepStatus,
    AIAnalysisConfig, DecisionPointConfig, ApprovalConfig, ActionConfig, ConditionConfig, EscalationConfig
)

if TYPE_CHECKING:
    from .workflow_engine import WorkflowEngine

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT")
StepHandler = Callable[["WorkflowEngine", WorkflowExecution, WorkflowStep, WorkflowStepExecution], Awaitable[None]]

def require_config(step: WorkflowStep, config_type: Type[ConfigT], message: str) -> ConfigT:
    """Return the step's config or fail fast when it is missing."""
    if not isinstance(step.config, config_type):
        raise StepConfigurationError(step.id, message)
    return step.config

def optional_config(step: WorkflowStep, config_type: Type[ConfigT]) -> Optional[ConfigT]:
    return step.config if isinstance(step.config, config_type) else None

async def handle_ai_analysis(engine: "WorkflowEngine", execution: WorkflowExecution,
                             step: WorkflowStep, step_execution: WorkflowStepExecution):
    """Run an AI analysis and publish its insights into the execution context."""
    config = require_config(step, AIAnalysisConfig, "AI configuration required for ai_analysis step")

    analysis_context = {
        "session_id": execution.session_id,
        "documents": list(execution.documents),
        "context": copy.deepcopy(execution.context),
        "previous_decisions": [decision.model_dump(mode="json") for decision in execution.decisions],
        "analysis_type": config.analysis_type
    }

    ai_response = await engine.ai_provider.analyze(
        step.id, config.prompt, config.required_agents, analysis_context
    )

    # Low confidence only escalates for steps that demand more than the configured floor
    if (ai_response.confidence < config.confidence_threshold
            and config.confidence_threshold > engine.escalation_confidence_floor):
        await engine.event_publisher.escalate(
            execution, step,
            f"AI confidence ({ai_response.confidence}) below threshold ({config.confidence_threshold})"
        )

    step_execution.ai_response = ai_response
    step_execution.output_data = {
        "confidence": ai_response.confidence,
        "recommendations": list(ai_response.recommendations),
        "risks": list(ai_response.risks),
        "escalation_required": ai_response.escalation_required
    }

    execution.context[f"{step.id}_analysis"] = ai_response.analysis
    execution.context[f"{step.id}_confidence"] = ai_response.confidence
    execution.context[f"{step.id}_recommendations"] = list(ai_response.recommendations)

async def handle_decision_point(engine: "WorkflowEngine", execution: WorkflowExecution,
                                step: WorkflowStep, step_execution: WorkflowStepExecution):
    """Wait for a human decision."""
    config = optional_config(step, DecisionPointConfig)
    options = list(config.options) if config and config.options else []
    recipients = list(config.decision_roles) if config and config.decision_roles else None

    step_execution.status = StepStatus.PENDING
    step_execution.output_data = {
        "awaiting_decision": True,
        "decision_options": options or [step.description]
    }

    await engine.event_publisher.notify(execution, step, "decision_required", recipients)

async def handle_approval(engine: "WorkflowEngine", execution: WorkflowExecution,
                          step: WorkflowStep, step_execution: WorkflowStepExecution):
    """Request approval and arm the escalation timer."""
    config = require_config(step, ApprovalConfig, "Approval configuration required for approval step")

    deadline = datetime.utcnow() + timedelta(hours=config.escalation_hours)
    step_execution.status = StepStatus.PENDING
    step_execution.output_data = {
        "approval_request": {
            "step_id": step.id,
            "required_roles": list(config.required_roles),
            "approval_type": config.approval_type,
            "deadline": deadline.isoformat()
        },
        "status": "pending_approval",
        "escalation_level": 0
    }

    engine.schedule_approval_escalation(execution.id, step.id, config.escalation_hours * 3600, level=1)
    await engine.event_publisher.notify(execution, step, "approval_required", list(config.required_roles))

async def handle_action(engine: "WorkflowEngine", execution: WorkflowExecution,
                        step: WorkflowStep, step_execution: WorkflowStepExecution):
    """Execute a side-effecting action against the current context."""
    config = require_config(step, ActionConfig, "Action configuration required for action step")

    action = WorkflowAction(
        step_id=step.id,
        type=config.type,
        description=step.description,
        status="in_progress",
        config=dict(config.parameters)
    )
    execution.actions.append(action)

    try:
        action_result = await engine.action_executor.execute(config.type, config.parameters, execution.context)
    except asyncio.CancelledError:
        action.status = "failed"
        action.error = "Action was cancelled before it finished"
        raise
    except Exception as e:
        action.status = "failed"
        action.error = str(e)
        raise

    action.status = "completed"
    action.executed_at = datetime.utcnow()
    action.result = action_result

    step_execution.output_data = {
        "action_type": config.type,
        "action_result": action_result,
        "executed_at": action.executed_at.isoformat()
    }

async def handle_condition(engine: "WorkflowEngine", execution: WorkflowExecution,
                           step: WorkflowStep, step_execution: WorkflowStepExecution):
    """Evaluate all predicates; the step result is their AND."""
    config = require_config(step, ConditionConfig, "Conditions required for condition step")

    condition_results = evaluate_conditions(config.conditions, execution.context)
    overall_result = all(condition_results)

    step_execution.output_data = {
        "conditions_met": overall_result,
        "condition_results": condition_results
    }
    execution.context[f"{step.id}_result"] = overall_result

async def handle_escalation(engine: "WorkflowEngine", execution: WorkflowExecution,
                            step: WorkflowStep, step_execution: WorkflowStepExecution):
    config = optional_config(step, EscalationConfig)
    reason = (config.reason if config and config.reason else None) or step.description
    escalate_to = list(config.escalate_to) if config else []

    await engine.event_publisher.escalate(execution, step, reason, escalate_to)

    step_execution.output_data = {
        "escalated": True,
        "escalation_reason": reason,
        "escalated_to": escalate_to,
        "escalated_at": datetime.utcnow().isoformat()
    }

STEP_HANDLERS: Dict[StepType, StepHandler] = {
    StepType.AI_ANALYSIS: handle_ai_analysis,
    StepType.DECISION_POINT: handle_decision_point,
    StepType.APPROVAL: handle_approval,
    StepType.ACTION: handle_action,
    StepType.CONDITION: handle_condition,
    StepType.ESCALATION: handle_escalation,
}

_unhandled = set(StepType) - set(STEP_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No handler registered for step types: {sorted(t.value for t in _unhandled)}")
