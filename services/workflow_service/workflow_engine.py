# workflow_engine.py - Core execution engine for workflows
# This file advances executions step by step through their template's graph,
# pausing on human steps and retrying failed steps with backoff.

import asyncio
import copy
import logging
from typing import Dict, List, Optional, Any, Set
from datetime import datetime, timedelta

from .models import (
    WorkflowTemplate, WorkflowStep, WorkflowExecution, WorkflowStepExecution, WorkflowDecision,
    StepApproval, WorkflowStatus, StepStatus, StepType, RetryPolicy, ApprovalConfig,
    DecisionPointConfig, ConditionConfig, DecisionSubmission, ApprovalSubmission, HUMAN_WAIT_STEP_TYPES
)
from .exceptions import (
    TemplateNotFoundError, ExecutionNotFoundError, StepNotFoundError, StepConfigurationError,
    InvalidStepStateError, InvalidSubmissionError, WorkflowCapacityError, StepExecutionError
)
from .workflow_registry import TemplateRegistry, ExecutionStore
from .ai_client import AIAnalysisProvider
from .actions import ActionExecutor, LoggingActionExecutor
from .event_publisher import WorkflowEventPublisher
from .scheduler import StepScheduler
from .step_handlers import STEP_HANDLERS

logger = logging.getLogger(__name__)

class WorkflowEngine:
    """Runs workflow executions against their templates.

    Live executions are held in `active_executions` until they reach a
    terminal status; every transition is also written to the execution
    store, which keeps finished executions for later lookup.

    An execution completes once every branch it fanned out into has reached
    a step with no successors. Steps waiting on a decision or approval keep
    their branch open until resumed.
    """

    def __init__(self, templates: TemplateRegistry, store: ExecutionStore,
                 ai_provider: AIAnalysisProvider, event_publisher: WorkflowEventPublisher,
                 scheduler: Optional[StepScheduler] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 action_executor: Optional[ActionExecutor] = None,
                 escalation_enabled: bool = True, max_escalation_levels: int = 3,
                 escalation_confidence_floor: float = 0.7,
                 max_concurrent_workflows: int = 100,
                 default_step_timeout: Optional[float] = None):
        self.templates = templates
        self.store = store
        self.ai_provider = ai_provider
        self.event_publisher = event_publisher
        self.scheduler = scheduler or StepScheduler()
        self.retry_policy = retry_policy or RetryPolicy()
        self.action_executor = action_executor or LoggingActionExecutor()
        self.escalation_enabled = escalation_enabled
        self.max_escalation_levels = max_escalation_levels
        self.escalation_confidence_floor = escalation_confidence_floor
        self.max_concurrent_workflows = max_concurrent_workflows
        self.default_step_timeout = default_step_timeout  # seconds

        self.active_executions: Dict[str, WorkflowExecution] = {}
        # Template snapshot taken at start, so edits to the registry never affect a running execution
        self._execution_templates: Dict[str, WorkflowTemplate] = {}
        self._open_branches: Dict[str, int] = {}
        # Steps whose retry is scheduled but has not started running under the lock
        self._retries_pending: Dict[str, Set[str]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # =========================
    # STARTING AND ADVANCING
    # =========================

    async def start_workflow(self, template_id: str, session_id: str, initiated_by: str,
                             context: Optional[Dict[str, Any]] = None,
                             documents: Optional[List[str]] = None) -> WorkflowExecution:
        """Create an execution for a template and run it from its start step."""
        template = await self.templates.load_template(template_id)
        if not template:
            raise TemplateNotFoundError(template_id)

        if len(self.active_executions) >= self.max_concurrent_workflows:
            raise WorkflowCapacityError(
                f"Maximum of {self.max_concurrent_workflows} concurrent workflows reached"
            )

        started_at = datetime.utcnow()
        execution = WorkflowExecution(
            template_id=template.id,
            session_id=session_id,
            initiated_by=initiated_by,
            current_step_id=template.start_step_id,
            context=dict(context or {}),
            documents=list(documents or []),
            participants=[initiated_by],
            started_at=started_at,
            estimated_completion=started_at + timedelta(minutes=template.estimated_duration)
        )

        self.active_executions[execution.id] = execution
        self._execution_templates[execution.id] = template.model_copy(deep=True)
        self._open_branches[execution.id] = 1

        logger.info(f"Starting workflow execution {execution.id} from template {template.id}")
        await self._persist(execution)
        await self.event_publisher.publish_workflow_started(execution, template.name, len(template.steps))

        async with self._lock_for(execution.id):
            start_step = template.get_step(template.start_step_id)
            await self._advance(execution, self._execution_templates[execution.id], start_step)

        return execution

    async def execute_step(self, execution_id: str, step_id: str) -> WorkflowExecution:
        """Run a named step of a live execution.

        A step that is waiting for input, or waiting out a retry delay, is
        superseded by the new attempt.
        """
        self._require_active(execution_id)
        async with self._lock_for(execution_id):
            execution = self._require_active(execution_id)
            template = self._execution_templates[execution_id]
            step = self._require_step(template, step_id)

            previous = execution.latest_step_execution(step_id)
            retry_superseded = self._take_pending_retry(execution_id, step_id)
            if previous is not None and previous.status == StepStatus.PENDING:
                previous.status = StepStatus.SKIPPED
                previous.completed_at = datetime.utcnow()
                self.scheduler.cancel(execution_id, f"escalation:{step_id}")
            elif not retry_superseded:
                self._open_branches[execution_id] += 1

            await self._advance(execution, template, step)
            return execution

    async def _advance(self, execution: WorkflowExecution, template: WorkflowTemplate,
                       step: WorkflowStep, retry_count: int = 0,
                       completed: Optional[WorkflowStepExecution] = None):
        """Run a step and then every successor it unlocks, depth first.

        Successors are taken from an explicit stack so long chains never nest
        calls. `completed` is a step record a person has just finished; it is
        completed instead of run. Any unexpected error fails the execution.
        """
        stack = [(step, retry_count, completed)]
        try:
            while stack and not execution.is_terminal:
                step, retry_count, step_execution = stack.pop()
                if step_execution is None:
                    step_execution = await self._run_step(execution, template, step, retry_count)
                    if step_execution is None:
                        continue
                next_steps = await self._complete_step(execution, template, step, step_execution)
                stack.extend((next_step, 0, None) for next_step in reversed(next_steps))

        except Exception as e:
            logger.exception(f"Unexpected error advancing workflow {execution.id} at step {step.id}")
            if not execution.is_terminal:
                await self._fail_workflow(execution, step, f"Step {step.name} failed: {str(e)}")

    async def _run_step(self, execution: WorkflowExecution, template: WorkflowTemplate,
                        step: WorkflowStep, retry_count: int = 0):
        """Record a new attempt of a step and run its handler.

        Returns the step record once it has finished, or None when it failed or
        is waiting for input.
        """
        step_execution = WorkflowStepExecution(
            step_id=step.id,
            status=StepStatus.IN_PROGRESS,
            input_data=self._prepare_step_input(execution, step),
            retry_count=retry_count,
            max_retries=self.retry_policy.max_retries
        )
        execution.step_history.append(step_execution)
        execution.current_step_id = step.id
        execution.status = WorkflowStatus.IN_PROGRESS

        logger.info(f"Executing step {step.name} ({step.type.value}) in workflow {execution.id}")
        await self.event_publisher.publish_step_started(execution, step, retry_count)

        handler = STEP_HANDLERS[step.type]
        try:
            if step.config is not None and step.config.kind != step.type.value:
                raise StepConfigurationError(
                    step.id, f"Step {step.id} of type {step.type.value} has {step.config.kind} configuration"
                )
            timeout = step.timeout_minutes * 60 if step.timeout_minutes else self.default_step_timeout
            try:
                await asyncio.wait_for(handler(self, execution, step, step_execution), timeout)
            except asyncio.TimeoutError:
                raise StepExecutionError(f"Step {step.name} timed out after {timeout}s")

        except StepConfigurationError as e:
            await self._handle_step_failure(execution, step, step_execution, e, retryable=False)
            return None
        except Exception as e:
            await self._handle_step_failure(execution, step, step_execution, e,
                                            retryable=step.type not in HUMAN_WAIT_STEP_TYPES)
            return None

        if step_execution.status == StepStatus.PENDING:
            logger.info(f"Step {step.name} in workflow {execution.id} is waiting for input")
            await self._persist(execution)
            return None

        return step_execution

    async def _complete_step(self, execution: WorkflowExecution, template: WorkflowTemplate,
                             step: WorkflowStep, step_execution: WorkflowStepExecution) -> List[WorkflowStep]:
        """Mark a step completed and return the successors to run next."""
        step_execution.status = StepStatus.COMPLETED
        step_execution.completed_at = datetime.utcnow()
        if step.id not in execution.completed_steps:
            execution.completed_steps.append(step.id)

        execution_time = (step_execution.completed_at - step_execution.started_at).total_seconds()
        logger.info(f"Step {step.name} completed successfully")
        await self.event_publisher.publish_step_completed(execution, step, execution_time)
        await self._persist(execution)

        return await self._process_next_steps(execution, template, step)

    def select_next_steps(self, execution: WorkflowExecution, step: WorkflowStep) -> List[str]:
        """Successors to run after a step completes.

        A condition step with on_true/on_false branches follows one branch by
        its result; every other step runs all of its next_steps in order.
        """
        if isinstance(step.config, ConditionConfig) and step.config.branches:
            if execution.context.get(f"{step.id}_result"):
                return list(step.config.on_true or [])
            return list(step.config.on_false or [])
        return list(step.next_steps)

    async def _process_next_steps(self, execution: WorkflowExecution, template: WorkflowTemplate,
                                  step: WorkflowStep) -> List[WorkflowStep]:
        next_step_ids = self.select_next_steps(execution, step)
        open_branches = self._open_branches.get(execution.id, 1) + len(next_step_ids) - 1
        self._open_branches[execution.id] = open_branches

        if not next_step_ids:
            if open_branches <= 0:
                await self._complete_workflow(execution)
            else:
                await self._persist(execution)
            return []

        return [template.get_step(next_step_id) for next_step_id in next_step_ids]

    def _prepare_step_input(self, execution: WorkflowExecution, step: WorkflowStep) -> Dict[str, Any]:
        return {
            "execution_id": execution.id,
            "session_id": execution.session_id,
            "step_type": step.type.value,
            "context": copy.deepcopy(execution.context)
        }

    # =========================
    # FAILURE AND RETRY
    # =========================

    async def _handle_step_failure(self, execution: WorkflowExecution, step: WorkflowStep,
                                   step_execution: WorkflowStepExecution, error: Exception,
                                   retryable: bool):
        step_execution.status = StepStatus.FAILED
        step_execution.error = str(error)
        step_execution.completed_at = datetime.utcnow()

        will_retry = retryable and step_execution.retry_count < step_execution.max_retries
        logger.error(f"Step {step.name} in workflow {execution.id} failed: {str(error)}")
        await self.event_publisher.publish_step_failed(
            execution, step, str(error), step_execution.retry_count, will_retry
        )

        if will_retry:
            delay = self.retry_policy.delay_for(step_execution.retry_count)
            next_retry = step_execution.retry_count + 1
            self._retries_pending.setdefault(execution.id, set()).add(step.id)
            self.scheduler.schedule(
                execution.id, f"retry:{step.id}", delay,
                lambda: self._retry_step(execution.id, step.id, next_retry)
            )
            logger.info(f"Retrying step {step.name} in {delay}s (attempt {next_retry + 1})")
            await self._persist(execution)
            return

        if retryable:
            logger.error(f"Step {step.name} failed after {step_execution.retry_count} retries")

        await self._fail_workflow(execution, step, f"Step {step.name} failed: {str(error)}")

    async def _fail_workflow(self, execution: WorkflowExecution, step: WorkflowStep, error_message: str):
        execution.status = WorkflowStatus.FAILED
        execution.completed_at = datetime.utcnow()
        execution.error_message = error_message
        await self.event_publisher.publish_workflow_failed(execution, error_message, step.id)
        await self._finalize(execution)

    def _take_pending_retry(self, execution_id: str, step_id: str) -> bool:
        """Claim a scheduled retry of a step. Only one of the timer and a manual run gets it."""
        self.scheduler.cancel(execution_id, f"retry:{step_id}")
        pending = self._retries_pending.get(execution_id)
        if not pending or step_id not in pending:
            return False
        pending.discard(step_id)
        return True

    async def _retry_step(self, execution_id: str, step_id: str, retry_count: int):
        if execution_id not in self.active_executions:
            logger.info(f"Skipping retry of step {step_id}: execution {execution_id} is no longer active")
            return

        async with self._lock_for(execution_id):
            execution = self.active_executions.get(execution_id)
            if execution is None or execution.is_terminal:
                return
            if not self._take_pending_retry(execution_id, step_id):
                logger.info(f"Retry of step {step_id} in workflow {execution_id} was superseded")
                return
            template = self._execution_templates[execution_id]
            await self._advance(execution, template, template.get_step(step_id), retry_count)

    # =========================
    # HUMAN INPUT
    # =========================

    async def submit_decision(self, execution_id: str, step_id: str,
                              submission: DecisionSubmission) -> WorkflowExecution:
        """Resume a decision_point step with a human decision."""
        self._require_active(execution_id)
        async with self._lock_for(execution_id):
            execution, template, step, step_execution = self._waiting_step(
                execution_id, step_id, StepType.DECISION_POINT
            )

            config = step.config if isinstance(step.config, DecisionPointConfig) else None
            if config and config.options and submission.decision not in config.options:
                raise InvalidSubmissionError(
                    f"Decision '{submission.decision}' is not one of {', '.join(config.options)}"
                )

            decision = WorkflowDecision(
                step_id=step.id,
                description=step.description,
                decided_by=submission.decided_by,
                option=submission.decision,
                reasoning=submission.reasoning,
                confidence=submission.confidence,
                alternatives_considered=list(submission.alternatives_considered)
            )
            execution.decisions.append(decision)
            self._add_participant(execution, submission.decided_by)

            step_execution.executed_by = submission.decided_by
            step_execution.output_data.update({
                "awaiting_decision": False,
                "decision": submission.decision,
                "decided_by": submission.decided_by
            })
            execution.context[f"{step.id}_decision"] = submission.decision

            logger.info(f"Decision '{submission.decision}' recorded for step {step.id} by {submission.decided_by}")
            await self._advance(execution, template, step, completed=step_execution)
            return execution

    async def submit_approval(self, execution_id: str, step_id: str,
                              submission: ApprovalSubmission) -> WorkflowExecution:
        """Record an approval response; the step completes once its quorum is met."""
        self._require_active(execution_id)
        async with self._lock_for(execution_id):
            execution, template, step, step_execution = self._waiting_step(
                execution_id, step_id, StepType.APPROVAL
            )
            config: ApprovalConfig = step.config

            if config.required_roles and submission.approver_role not in config.required_roles:
                raise InvalidSubmissionError(
                    f"Role '{submission.approver_role}' cannot approve step {step.id}; "
                    f"expected one of {', '.join(config.required_roles)}"
                )

            status = {"approve": "approved", "reject": "rejected", "request_changes": "pending"}[submission.approval]
            step_execution.approvals.append(StepApproval(
                step_id=step.id,
                approver_role=submission.approver_role,
                approver_user_id=submission.approver_user_id,
                status=status,
                decision=submission.approval,
                comments=submission.comments,
                approved_at=datetime.utcnow()
            ))
            self._add_participant(execution, submission.approver_user_id)

            if submission.approval == "reject":
                await self._reject_approval(execution, step, step_execution, submission)
            elif submission.approval == "request_changes":
                step_execution.output_data["status"] = "changes_requested"
                await self.event_publisher.notify(execution, step, "changes_requested", [execution.initiated_by])
                await self._persist(execution)
            elif self._approval_satisfied(config, step_execution.approvals):
                self.scheduler.cancel(execution.id, f"escalation:{step.id}")
                step_execution.executed_by = submission.approver_user_id
                step_execution.output_data.update({"status": "approved", "approved": True})
                execution.context[f"{step.id}_approved"] = True
                await self._advance(execution, template, step, completed=step_execution)
            else:
                await self._persist(execution)

            return execution

    async def resume_step(self, execution_id: str, step_id: str, payload: Dict[str, Any]) -> WorkflowExecution:
        """Resume a waiting step with a payload shaped for its step type."""
        execution = self._require_active(execution_id)
        step = self._require_step(self._execution_templates[execution.id], step_id)

        if step.type == StepType.DECISION_POINT:
            return await self.submit_decision(execution_id, step_id, DecisionSubmission.model_validate(payload))
        if step.type == StepType.APPROVAL:
            return await self.submit_approval(execution_id, step_id, ApprovalSubmission.model_validate(payload))
        raise InvalidStepStateError(f"Step {step_id} of type {step.type.value} does not accept input")

    def _approval_satisfied(self, config: ApprovalConfig, approvals: List[StepApproval]) -> bool:
        approved_roles = {approval.approver_role for approval in approvals if approval.status == "approved"}
        if not config.required_roles:
            return bool(approved_roles)

        required_roles = set(config.required_roles)
        granted = len(approved_roles & required_roles)
        if config.approval_type == "all":
            return granted == len(required_roles)
        if config.approval_type == "majority":
            return granted * 2 > len(required_roles)
        return granted >= 1

    async def _reject_approval(self, execution: WorkflowExecution, step: WorkflowStep,
                               step_execution: WorkflowStepExecution, submission: ApprovalSubmission):
        step_execution.status = StepStatus.COMPLETED
        step_execution.completed_at = datetime.utcnow()
        step_execution.executed_by = submission.approver_user_id
        step_execution.output_data.update({"status": "rejected", "approved": False})
        execution.context[f"{step.id}_approved"] = False
        if step.id not in execution.completed_steps:
            execution.completed_steps.append(step.id)

        execution_time = (step_execution.completed_at - step_execution.started_at).total_seconds()
        await self.event_publisher.publish_step_completed(execution, step, execution_time)

        reason = f"Rejected by {submission.approver_role} ({submission.approver_user_id}) at step {step.name}"
        if submission.comments:
            reason = f"{reason}: {submission.comments}"

        execution.status = WorkflowStatus.CANCELLED
        execution.completed_at = datetime.utcnow()
        execution.error_message = reason
        logger.info(f"Workflow execution {execution.id} cancelled: {reason}")
        await self.event_publisher.publish_workflow_cancelled(execution, reason)
        await self._finalize(execution)

    # =========================
    # APPROVAL ESCALATION
    # =========================

    def schedule_approval_escalation(self, execution_id: str, step_id: str, delay: float, level: int = 1):
        """Escalate an approval step if it is still pending after `delay` seconds."""
        if not self.escalation_enabled:
            return
        self.scheduler.schedule(
            execution_id, f"escalation:{step_id}", delay,
            lambda: self._escalate_approval(execution_id, step_id, delay, level)
        )

    async def _escalate_approval(self, execution_id: str, step_id: str, delay: float, level: int):
        if execution_id not in self.active_executions:
            return

        async with self._lock_for(execution_id):
            execution = self.active_executions.get(execution_id)
            if execution is None:
                return
            step_execution = execution.latest_step_execution(step_id)
            if step_execution is None or step_execution.status != StepStatus.PENDING:
                return

            step = self._execution_templates[execution_id].get_step(step_id)
            escalate_to = list(step.config.escalation_to) if isinstance(step.config, ApprovalConfig) else []

            step_execution.approvals.append(StepApproval(
                step_id=step.id,
                approver_role="system",
                approver_user_id="system",
                status="escalated",
                escalation_level=level,
                escalated_to=", ".join(escalate_to) or None,
                escalated_at=datetime.utcnow()
            ))
            step_execution.output_data["escalation_level"] = level

            await self.event_publisher.escalate(
                execution, step, f"Approval for {step.name} not received in time", escalate_to, level
            )

            if level < self.max_escalation_levels:
                self.schedule_approval_escalation(execution_id, step_id, delay, level + 1)
            await self._persist(execution)

    # =========================
    # QUERIES AND LIFECYCLE
    # =========================

    async def get_execution(self, execution_id: str) -> WorkflowExecution:
        """Live execution if active, otherwise the stored record."""
        execution = self.active_executions.get(execution_id)
        if execution:
            return execution

        execution = await self.store.get_execution(execution_id)
        if not execution:
            raise ExecutionNotFoundError(execution_id)
        return execution

    async def list_executions(self, user_id: str) -> List[WorkflowExecution]:
        """Executions a user initiated or takes part in, newest first."""
        return await self.store.list_executions_by_user(user_id)

    async def cancel_execution(self, execution_id: str, reason: str = "Cancelled by user") -> WorkflowExecution:
        """Cancel a live execution and any retry or escalation it has pending."""
        self._require_active(execution_id)
        async with self._lock_for(execution_id):
            execution = self._require_active(execution_id)

            now = datetime.utcnow()
            for step_execution in execution.step_history:
                if step_execution.status in (StepStatus.PENDING, StepStatus.IN_PROGRESS):
                    step_execution.status = StepStatus.SKIPPED
                    step_execution.completed_at = now

            execution.status = WorkflowStatus.CANCELLED
            execution.completed_at = now
            execution.error_message = reason

            logger.info(f"Cancelled workflow execution {execution_id}")
            await self.event_publisher.publish_workflow_cancelled(execution, reason)
            await self._finalize(execution)
            return execution

    async def _complete_workflow(self, execution: WorkflowExecution):
        execution.status = WorkflowStatus.COMPLETED
        execution.completed_at = datetime.utcnow()
        logger.info(f"Workflow execution {execution.id} completed with status: {execution.status.value}")
        await self.event_publisher.publish_workflow_completed(execution)
        await self._finalize(execution)

    async def _finalize(self, execution: WorkflowExecution):
        """Drop a terminal execution from the live index and persist its final state."""
        self.active_executions.pop(execution.id, None)
        self._execution_templates.pop(execution.id, None)
        self._open_branches.pop(execution.id, None)
        self._retries_pending.pop(execution.id, None)
        self._locks.pop(execution.id, None)
        self.scheduler.cancel_execution(execution.id)
        await self._persist(execution)

    async def shutdown(self):
        """Cancel pending timers and close outbound clients."""
        await self.scheduler.shutdown()
        await self.event_publisher.close()

    # =========================
    # HELPERS
    # =========================

    async def _persist(self, execution: WorkflowExecution):
        if not await self.store.put_execution(execution):
            logger.warning(f"Failed to persist workflow execution {execution.id}")

    def _lock_for(self, execution_id: str) -> asyncio.Lock:
        if execution_id not in self._locks:
            self._locks[execution_id] = asyncio.Lock()
        return self._locks[execution_id]

    def _require_active(self, execution_id: str) -> WorkflowExecution:
        execution = self.active_executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def _require_step(self, template: WorkflowTemplate, step_id: str) -> WorkflowStep:
        step = template.get_step(step_id)
        if step is None:
            raise StepNotFoundError(step_id, template.id)
        return step

    def _waiting_step(self, execution_id: str, step_id: str, step_type: StepType):
        execution = self._require_active(execution_id)
        template = self._execution_templates[execution_id]
        step = self._require_step(template, step_id)
        if step.type != step_type:
            raise InvalidStepStateError(f"Step {step_id} is a {step.type.value} step, not {step_type.value}")

        step_execution = execution.latest_step_execution(step_id)
        if step_execution is None or step_execution.status != StepStatus.PENDING:
            raise InvalidStepStateError(f"Step {step_id} is not waiting for input")
        return execution, template, step, step_execution

    def _add_participant(self, execution: WorkflowExecution, user_id: str):
        if user_id not in execution.participants:
            execution.participants.append(user_id)
