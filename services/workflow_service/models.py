# models.py - Workflow templates and execution state
# This file defines the data models for workflow templates and their execution state.

from pydantic import BaseModel, Field, model_validator
from typing import Annotated, Dict, List, Optional, Any, Union, Literal
from datetime import datetime
from enum import Enum
import uuid

class StepType(str, Enum):
    AI_ANALYSIS = "ai_analysis"
    DECISION_POINT = "decision_point"
    APPROVAL = "approval"
    ACTION = "action"
    CONDITION = "condition"
    ESCALATION = "escalation"

# Steps that wait on a person; they are resumed by an explicit submission, never retried
HUMAN_WAIT_STEP_TYPES = frozenset({StepType.DECISION_POINT, StepType.APPROVAL})

class WorkflowStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

class ConditionOperator(str, Enum):
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    EXISTS = "exists"

class RetryPolicy(BaseModel):
    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=5.0, ge=0)  # seconds
    backoff_multiplier: float = Field(default=2.0, ge=1)

    def delay_for(self, retry_count: int) -> float:
        """Backoff delay before the retry that follows `retry_count` earlier retries."""
        return self.initial_delay * (self.backoff_multiplier ** retry_count)

# =========================
# STEP CONFIGURATION (one variant per step type)
# =========================

class WorkflowCondition(BaseModel):
    field: str
    operator: ConditionOperator
    value: Optional[Union[bool, int, float, str]] = None

class AIAnalysisConfig(BaseModel):
    kind: Literal["ai_analysis"] = "ai_analysis"
    prompt: str
    required_agents: List[str] = Field(default_factory=list)
    confidence_threshold: float = Field(default=0.7, ge=0, le=1)
    analysis_type: Literal["risk", "financial", "strategic", "operational", "compliance"] = "strategic"

class DecisionPointConfig(BaseModel):
    kind: Literal["decision_point"] = "decision_point"
    options: List[str] = Field(default_factory=list)
    decision_roles: List[str] = Field(default_factory=list)

class ApprovalConfig(BaseModel):
    kind: Literal["approval"] = "approval"
    required_roles: List[str]
    approval_type: Literal["any", "all", "majority"] = "any"
    escalation_hours: float = Field(default=24, gt=0)
    escalation_to: List[str] = Field(default_factory=list)

class ActionConfig(BaseModel):
    kind: Literal["action"] = "action"
    type: Literal["email", "calendar", "task", "notification", "api_call"]
    parameters: Dict[str, Any] = Field(default_factory=dict)

class ConditionConfig(BaseModel):
    kind: Literal["condition"] = "condition"
    conditions: List[WorkflowCondition]
    # When either branch is set the step picks one branch instead of fanning out to next_steps
    on_true: Optional[List[str]] = None
    on_false: Optional[List[str]] = None

    @property
    def branches(self) -> bool:
        return self.on_true is not None or self.on_false is not None

class EscalationConfig(BaseModel):
    kind: Literal["escalation"] = "escalation"
    escalate_to: List[str] = Field(default_factory=list)
    reason: Optional[str] = None

StepConfig = Annotated[
    Union[
        AIAnalysisConfig,
        DecisionPointConfig,
        ApprovalConfig,
        ActionConfig,
        ConditionConfig,
        EscalationConfig,
    ],
    Field(discriminator="kind"),
]

# =========================
# TEMPLATES
# =========================

class WorkflowStep(BaseModel):
    id: str
    type: StepType
    name: str
    description: str = ""
    required: bool = True
    timeout_minutes: Optional[int] = None
    config: Optional[StepConfig] = None
    next_steps: List[str] = Field(default_factory=list)  # empty means terminal step

    def successor_ids(self) -> List[str]:
        """Every step id this step can transition to."""
        ids = list(self.next_steps)
        if isinstance(self.config, ConditionConfig):
            ids.extend(self.config.on_true or [])
            ids.extend(self.config.on_false or [])
        return ids

def find_unattended_cycle(steps: List[WorkflowStep]) -> Optional[List[str]]:
    """Return a loop made only of steps that never wait on a person, or None.

    Loops through a decision or approval step pause on every pass and are allowed.
    """
    automatic = {step.id: step for step in steps if step.type not in HUMAN_WAIT_STEP_TYPES}
    finished = set()

    for root_id in automatic:
        if root_id in finished:
            continue
        path = [root_id]
        successors = [iter(automatic[root_id].successor_ids())]
        while successors:
            next_id = next(successors[-1], None)
            if next_id is None:
                finished.add(path.pop())
                successors.pop()
            elif next_id in path:
                return path[path.index(next_id):] + [next_id]
            elif next_id in automatic and next_id not in finished:
                path.append(next_id)
                successors.append(iter(automatic[next_id].successor_ids()))
    return None

class WorkflowTemplate(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Literal["financial", "hr", "strategic", "operational", "compliance", "general"] = "general"
    industry: List[str] = Field(default_factory=list)
    complexity: Literal["simple", "moderate", "complex"] = "moderate"
    estimated_duration: int = Field(default=60, gt=0)  # minutes
    steps: List[WorkflowStep]
    start_step_id: str
    created_by: str = "system"
    is_public: bool = True
    usage_count: int = 0
    rating: float = 0.0
    tags: List[str] = Field(default_factory=list)
    requires_documents: bool = False
    min_participants: int = Field(default=1, ge=1)
    max_participants: int = Field(default=10, ge=1)
    required_roles: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_step_graph(self):
        step_ids = [step.id for step in self.steps]
        if len(step_ids) != len(set(step_ids)):
            raise ValueError("Step ids must be unique within a template")
        if self.start_step_id not in step_ids:
            raise ValueError(f"Start step '{self.start_step_id}' is not a step of the template")
        for step in self.steps:
            for next_id in step.successor_ids():
                if next_id not in step_ids:
                    raise ValueError(f"Step '{step.id}' points to unknown step '{next_id}'")
        cycle = find_unattended_cycle(self.steps)
        if cycle:
            raise ValueError(
                f"Steps {' -> '.join(cycle)} form a cycle with no decision or approval step"
            )
        if self.min_participants > self.max_participants:
            raise ValueError("min_participants cannot exceed max_participants")
        return self

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

# =========================
# EXECUTION STATE
# =========================

class AIWorkflowResponse(BaseModel):
    step_id: str
    analysis: str
    confidence: float = Field(ge=0, le=1)
    reasoning: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    documents_used: List[str] = Field(default_factory=list)
    data_points: Dict[str, Any] = Field(default_factory=dict)
    alternative_options: List[str] = Field(default_factory=list)
    suggested_next_steps: List[str] = Field(default_factory=list)
    escalation_required: bool = False
    stakeholders_to_notify: List[str] = Field(default_factory=list)

class StepApproval(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    step_id: str
    approver_role: str
    approver_user_id: str
    status: Literal["pending", "approved", "rejected", "escalated"] = "pending"
    decision: Optional[Literal["approve", "reject", "request_changes"]] = None
    comments: str = ""
    approved_at: Optional[datetime] = None
    escalation_level: int = 0
    escalated_to: Optional[str] = None
    escalated_at: Optional[datetime] = None

class WorkflowDecision(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    step_id: str
    description: str = ""
    decided_by: str
    decided_at: datetime = Field(default_factory=datetime.utcnow)
    option: str
    reasoning: str = ""
    confidence: Optional[float] = None
    alternatives_considered: List[str] = Field(default_factory=list)

class WorkflowAction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    step_id: str
    type: str
    description: str = ""
    status: Literal["pending", "in_progress", "completed", "failed"] = "pending"
    scheduled_for: datetime = Field(default_factory=datetime.utcnow)
    executed_at: Optional[datetime] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

class WorkflowStepExecution(BaseModel):
    step_id: str
    status: StepStatus = StepStatus.IN_PROGRESS
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    executed_by: Optional[str] = None
    input_data: Dict[str, Any] = Field(default_factory=dict)
    output_data: Dict[str, Any] = Field(default_factory=dict)
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    ai_response: Optional[AIWorkflowResponse] = None
    approvals: List[StepApproval] = Field(default_factory=list)
    error: Optional[str] = None

    @model_validator(mode="after")
    def check_retry_bound(self):
        if self.retry_count > self.max_retries:
            raise ValueError("retry_count cannot exceed max_retries")
        return self

class WorkflowExecution(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    template_id: str
    session_id: str
    initiated_by: str
    status: WorkflowStatus = WorkflowStatus.PENDING
    current_step_id: str
    completed_steps: List[str] = Field(default_factory=list)
    step_history: List[WorkflowStepExecution] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)  # Shared data between steps
    documents: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    estimated_completion: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    decisions: List[WorkflowDecision] = Field(default_factory=list)
    actions: List[WorkflowAction] = Field(default_factory=list)
    error_message: Optional[str] = None

    def latest_step_execution(self, step_id: str) -> Optional[WorkflowStepExecution]:
        """Most recent attempt record for a step."""
        for step_execution in reversed(self.step_history):
            if step_execution.step_id == step_id:
                return step_execution
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED)

# =========================
# API REQUESTS
# =========================

class WorkflowStartRequest(BaseModel):
    template_id: str
    session_id: str
    initiated_by: str
    context: Dict[str, Any] = Field(default_factory=dict)
    documents: List[str] = Field(default_factory=list)

class DecisionSubmission(BaseModel):
    decided_by: str
    decision: str
    reasoning: str = ""
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    alternatives_considered: List[str] = Field(default_factory=list)

class ApprovalSubmission(BaseModel):
    approver_user_id: str
    approver_role: str
    approval: Literal["approve", "reject", "request_changes"]
    comments: str = ""
