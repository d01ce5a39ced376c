# services/workflow_service/event_publisher.py
# Event publishing for workflow service: lifecycle events, notifications and escalations

import httpx
import logging
from collections import deque
from typing import Dict, Any, List, Optional
from datetime import datetime

from .models import WorkflowExecution, WorkflowStep

logger = logging.getLogger(__name__)

class WorkflowEventPublisher:
    """Publishes workflow events to communication and monitoring services.

    Delivery is fire-and-forget: a failed delivery is logged and never
    propagates back into the engine.
    """

    def __init__(self, communication_url: str = "http://localhost:8004",
                 monitoring_url: str = "http://localhost:8003",
                 enabled: bool = True, timeout: float = 5.0,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.communication_url = communication_url
        self.monitoring_url = monitoring_url
        self.enabled = enabled
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.recent_events: deque = deque(maxlen=200)

    # =========================
    # WORKFLOW LIFECYCLE
    # =========================

    async def publish_workflow_started(self, execution: WorkflowExecution, workflow_name: str, step_count: int):
        """Publish workflow started event."""
        await self._publish("workflow.started", execution, "medium", {
            "template_id": execution.template_id,
            "workflow_name": workflow_name,
            "step_count": step_count,
            "session_id": execution.session_id,
            "initiated_by": execution.initiated_by
        })
        await self._send_counter_to_monitoring("workflows_started", 1)

    async def publish_workflow_completed(self, execution: WorkflowExecution):
        """Publish workflow completed event."""
        duration_seconds = 0.0
        if execution.completed_at:
            duration_seconds = (execution.completed_at - execution.started_at).total_seconds()

        await self._publish("workflow.completed", execution, "medium", {
            "template_id": execution.template_id,
            "duration_seconds": duration_seconds,
            "steps_completed": len(execution.completed_steps)
        })
        await self._send_counter_to_monitoring("workflows_completed", 1)
        await self._send_metric_to_monitoring("workflow_execution_time", duration_seconds,
                                              {"template_id": execution.template_id})

    async def publish_workflow_failed(self, execution: WorkflowExecution, error_message: str,
                                      failed_step: Optional[str] = None):
        """Publish workflow failed event."""
        await self._publish("workflow.failed", execution, "high", {
            "template_id": execution.template_id,
            "error_message": error_message,
            "failed_step": failed_step
        })
        await self._send_counter_to_monitoring("workflows_failed", 1)

    async def publish_workflow_cancelled(self, execution: WorkflowExecution, reason: str):
        """Publish workflow cancelled event."""
        await self._publish("workflow.cancelled", execution, "medium", {
            "template_id": execution.template_id,
            "reason": reason
        })

    # =========================
    # STEP LIFECYCLE
    # =========================

    async def publish_step_started(self, execution: WorkflowExecution, step: WorkflowStep, retry_count: int = 0):
        """Publish step started event."""
        await self._publish("step.started", execution, "low", {
            "step_id": step.id,
            "step_name": step.name,
            "step_type": step.type.value,
            "retry_count": retry_count
        }, step_id=step.id)
        await self._send_counter_to_monitoring("steps_started", 1)

    async def publish_step_completed(self, execution: WorkflowExecution, step: WorkflowStep, execution_time: float):
        """Publish step completed event."""
        await self._publish("step.completed", execution, "low", {
            "step_id": step.id,
            "step_type": step.type.value,
            "execution_time": execution_time
        }, step_id=step.id)
        await self._send_counter_to_monitoring("steps_completed", 1)
        await self._send_metric_to_monitoring("step_execution_time", execution_time, {"step_id": step.id})

    async def publish_step_failed(self, execution: WorkflowExecution, step: WorkflowStep,
                                  error_message: str, retry_count: int = 0, will_retry: bool = False):
        """Publish step failed event."""
        await self._publish("step.failed", execution, "high", {
            "step_id": step.id,
            "step_type": step.type.value,
            "error_message": error_message,
            "retry_count": retry_count,
            "will_retry": will_retry
        }, step_id=step.id)
        await self._send_counter_to_monitoring("steps_failed", 1)

    # =========================
    # NOTIFICATIONS AND ESCALATIONS
    # =========================

    async def notify(self, execution: WorkflowExecution, step: WorkflowStep, reason: str,
                     recipients: Optional[List[str]] = None):
        """Notify participants (or explicit recipients) about a step."""
        await self._publish("workflow.notification", execution, "medium", {
            "step_id": step.id,
            "step_name": step.name,
            "reason": reason,
            "recipients": recipients if recipients is not None else list(execution.participants)
        }, step_id=step.id)

    async def escalate(self, execution: WorkflowExecution, step: WorkflowStep, reason: str,
                       escalate_to: Optional[List[str]] = None, level: int = 1):
        """Escalate a step to higher-authority roles."""
        logger.warning(f"Escalation triggered for execution {execution.id}, step {step.id}: {reason}")
        await self._publish("workflow.escalated", execution, "high", {
            "step_id": step.id,
            "step_name": step.name,
            "reason": reason,
            "escalate_to": escalate_to or [],
            "escalation_level": level
        }, step_id=step.id)
        await self._send_counter_to_monitoring("workflow_escalations", 1)

    def events_of_type(self, event_type: str) -> List[Dict[str, Any]]:
        """Recently published events of one type."""
        return [event for event in self.recent_events if event["event_type"] == event_type]

    # =========================
    # DELIVERY
    # =========================

    async def _publish(self, event_type: str, execution: WorkflowExecution, priority: str,
                       payload: Dict[str, Any], step_id: Optional[str] = None):
        source_id = f"{execution.id}:{step_id}" if step_id else execution.id
        event_data = {
            "event_type": event_type,
            "source_service": "workflow-service",
            "source_id": source_id,
            "priority": priority,
            "payload": {"execution_id": execution.id, **payload},
            "metadata": {
                "execution_id": execution.id,
                "session_id": execution.session_id,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
        if step_id:
            event_data["metadata"]["step_id"] = step_id

        self.recent_events.append(event_data)
        logger.info(f"Event {event_type} for {source_id}")
        await self._send_to_communication(event_data)

    async def _send_to_communication(self, event_data: Dict[str, Any]):
        """Send event to communication service."""
        if not self.enabled:
            return
        try:
            response = await self.http_client.post(
                f"{self.communication_url}/events/publish",
                json=event_data
            )
            response.raise_for_status()

        except Exception as e:
            logger.warning(f"Failed to send event to communication service: {str(e)}")

    async def _send_metric_to_monitoring(self, metric_name: str, value: float,
                                         labels: Dict[str, str] = None):
        """Send metric to monitoring service."""
        if not self.enabled:
            return
        try:
            params = {"metric_name": metric_name, "value": value}
            if labels:
                params.update({f"label_{key}": label for key, label in labels.items()})

            response = await self.http_client.post(
                f"{self.monitoring_url}/metrics/record",
                params=params
            )
            response.raise_for_status()

        except Exception as e:
            logger.warning(f"Failed to send metric to monitoring: {str(e)}")

    async def _send_counter_to_monitoring(self, counter_name: str, increment: int = 1):
        """Send counter increment to monitoring service."""
        if not self.enabled:
            return
        try:
            response = await self.http_client.post(
                f"{self.monitoring_url}/counters/increment",
                params={"counter_name": counter_name, "increment": increment}
            )
            response.raise_for_status()

        except Exception as e:
            logger.warning(f"Failed to send counter to monitoring: {str(e)}")

    async def close(self):
        """Close HTTP client."""
        await self.http_client.aclose()
