# workflow_registry.py - Template registry and execution storage
# This file contains the storage interfaces plus in-memory and Redis-backed implementations.

import redis
import logging
from typing import Dict, List, Optional, Protocol, Iterable
from datetime import datetime

from .models import WorkflowTemplate, WorkflowExecution
from .config import Settings

logger = logging.getLogger(__name__)

class TemplateRegistry(Protocol):
    """Lookup of workflow templates by id."""

    async def load_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        """Return the template, or None when it is unknown."""

    async def list_templates(self) -> List[WorkflowTemplate]:
        """Return every registered template."""

    async def store_template(self, template: WorkflowTemplate) -> bool:
        """Register or replace a template."""

    async def delete_template(self, template_id: str) -> bool:
        """Remove a template. Returns False when it is unknown."""

class ExecutionStore(Protocol):
    """Durable record of workflow executions, including finished ones."""

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Return the stored execution, or None."""

    async def put_execution(self, execution: WorkflowExecution) -> bool:
        """Insert or replace an execution."""

    async def delete_execution(self, execution_id: str) -> bool:
        """Remove an execution. Returns False when it is unknown."""

    async def list_executions_by_user(self, user_id: str) -> List[WorkflowExecution]:
        """Executions the user initiated or participates in, newest first."""

def _newest_first(executions: Iterable[WorkflowExecution]) -> List[WorkflowExecution]:
    return sorted(executions, key=lambda x: x.started_at or datetime.min, reverse=True)

class InMemoryWorkflowRegistry:
    """Keep templates and executions in local memory.

    Useful for tests or when no Redis is configured. Data is not persisted
    across process restarts.
    """

    def __init__(self, templates: Optional[Iterable[WorkflowTemplate]] = None):
        self._templates: Dict[str, WorkflowTemplate] = {}
        self._executions: Dict[str, str] = {}
        for template in templates or []:
            self._templates[template.id] = template

    # Templates
    async def load_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        return self._templates.get(template_id)

    async def list_templates(self) -> List[WorkflowTemplate]:
        return list(self._templates.values())

    async def store_template(self, template: WorkflowTemplate) -> bool:
        self._templates[template.id] = template
        logger.info(f"Stored workflow template {template.id}")
        return True

    async def delete_template(self, template_id: str) -> bool:
        if self._templates.pop(template_id, None) is None:
            return False
        logger.info(f"Deleted workflow template {template_id}")
        return True

    # Executions are kept serialized so callers never share the engine's live objects
    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        data = self._executions.get(execution_id)
        if data is None:
            return None
        return WorkflowExecution.model_validate_json(data)

    async def put_execution(self, execution: WorkflowExecution) -> bool:
        self._executions[execution.id] = execution.model_dump_json()
        return True

    async def delete_execution(self, execution_id: str) -> bool:
        return self._executions.pop(execution_id, None) is not None

    async def list_executions_by_user(self, user_id: str) -> List[WorkflowExecution]:
        executions = []
        for data in self._executions.values():
            execution = WorkflowExecution.model_validate_json(data)
            if execution.initiated_by == user_id or user_id in execution.participants:
                executions.append(execution)
        return _newest_first(executions)

class RedisWorkflowRegistry:
    """Store templates and executions in Redis."""

    def __init__(self, settings: Settings, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client or redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            decode_responses=True
        )
        self.execution_ttl = settings.execution_ttl_days * 24 * 3600

    # Workflow Templates
    async def load_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        """Retrieve workflow template from Redis."""
        try:
            template_data = self.redis_client.get(f"workflow:template:{template_id}")
            if not template_data:
                return None
            return WorkflowTemplate.model_validate_json(template_data)

        except redis.RedisError as e:
            logger.error(f"Failed to get template {template_id}: {str(e)}")
            raise

    async def list_templates(self) -> List[WorkflowTemplate]:
        """List all workflow templates."""
        templates = []
        for template_id in sorted(self.redis_client.smembers("workflow:templates:all")):
            template = await self.load_template(template_id)
            if template:
                templates.append(template)
        return templates

    async def store_template(self, template: WorkflowTemplate) -> bool:
        """Store workflow template in Redis."""
        try:
            self.redis_client.set(f"workflow:template:{template.id}", template.model_dump_json())
            self.redis_client.sadd("workflow:templates:all", template.id)
            logger.info(f"Stored workflow template {template.id}")
            return True

        except redis.RedisError as e:
            logger.error(f"Failed to store template {template.id}: {str(e)}")
            return False

    async def delete_template(self, template_id: str) -> bool:
        """Delete workflow template."""
        removed = self.redis_client.delete(f"workflow:template:{template_id}")
        self.redis_client.srem("workflow:templates:all", template_id)
        if removed:
            logger.info(f"Deleted workflow template {template_id}")
        return bool(removed)

    # Workflow Executions
    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Retrieve workflow execution from Redis."""
        try:
            execution_data = self.redis_client.get(f"workflow:exec:{execution_id}")
            if not execution_data:
                return None
            return WorkflowExecution.model_validate_json(execution_data)

        except redis.RedisError as e:
            logger.error(f"Failed to get execution {execution_id}: {str(e)}")
            raise

    async def put_execution(self, execution: WorkflowExecution) -> bool:
        """Store workflow execution state in Redis."""
        try:
            execution_key = f"workflow:exec:{execution.id}"
            self.redis_client.set(execution_key, execution.model_dump_json(), ex=self.execution_ttl)

            # Index by every user that can see the execution
            for user_id in {execution.initiated_by, *execution.participants}:
                self.redis_client.sadd(f"executions:user:{user_id}", execution.id)
            self.redis_client.sadd("executions:all", execution.id)
            return True

        except redis.RedisError as e:
            logger.error(f"Failed to store execution {execution.id}: {str(e)}")
            return False

    async def delete_execution(self, execution_id: str) -> bool:
        """Delete workflow execution and its index entries."""
        execution = await self.get_execution(execution_id)
        if not execution:
            return False

        self.redis_client.delete(f"workflow:exec:{execution_id}")
        self.redis_client.srem("executions:all", execution_id)
        for user_id in {execution.initiated_by, *execution.participants}:
            self.redis_client.srem(f"executions:user:{user_id}", execution_id)
        return True

    async def list_executions_by_user(self, user_id: str) -> List[WorkflowExecution]:
        """List executions visible to a user, dropping index entries whose data expired."""
        executions = []
        for execution_id in self.redis_client.smembers(f"executions:user:{user_id}"):
            execution = await self.get_execution(execution_id)
            if execution:
                executions.append(execution)
            else:
                self.redis_client.srem(f"executions:user:{user_id}", execution_id)
        return _newest_first(executions)

def create_registry(settings: Settings):
    """Build the registry backend selected by configuration."""
    if settings.storage_backend == "redis":
        return RedisWorkflowRegistry(settings)
    return InMemoryWorkflowRegistry()
