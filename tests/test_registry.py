"""Template registry and execution store backends."""

from unittest.mock import MagicMock

import pytest
import redis

from services.workflow_service.config import Settings
from services.workflow_service.models import WorkflowExecution
from services.workflow_service.templates import budget_approval_template
from services.workflow_service.workflow_registry import (
    InMemoryWorkflowRegistry,
    RedisWorkflowRegistry,
    create_registry,
)


def make_execution(initiated_by="alice", participants=None):
    return WorkflowExecution(
        template_id="budget-approval",
        session_id="session-1",
        initiated_by=initiated_by,
        current_step_id="analyze_request",
        participants=participants or [initiated_by],
    )


# =========================
# IN MEMORY
# =========================

@pytest.mark.asyncio
async def test_memory_template_crud():
    registry = InMemoryWorkflowRegistry()
    template = budget_approval_template()

    assert await registry.load_template(template.id) is None
    assert await registry.store_template(template) is True
    assert (await registry.load_template(template.id)).name == "Budget Approval Workflow"
    assert [t.id for t in await registry.list_templates()] == [template.id]
    assert await registry.delete_template(template.id) is True
    assert await registry.delete_template(template.id) is False


@pytest.mark.asyncio
async def test_memory_executions_are_copies():
    registry = InMemoryWorkflowRegistry()
    execution = make_execution()
    await registry.put_execution(execution)

    execution.context["changed"] = True
    stored = await registry.get_execution(execution.id)

    assert stored is not execution
    assert "changed" not in stored.context


@pytest.mark.asyncio
async def test_memory_list_by_user_includes_participants():
    registry = InMemoryWorkflowRegistry()
    own = make_execution("alice")
    shared = make_execution("bob", participants=["bob", "alice"])
    other = make_execution("carol")
    for execution in (own, shared, other):
        await registry.put_execution(execution)

    ids = {execution.id for execution in await registry.list_executions_by_user("alice")}

    assert ids == {own.id, shared.id}
    assert await registry.delete_execution(other.id) is True
    assert await registry.get_execution(other.id) is None


# =========================
# REDIS
# =========================

@pytest.fixture
def redis_client():
    return MagicMock(spec=redis.Redis)


@pytest.fixture
def redis_registry(redis_client):
    return RedisWorkflowRegistry(Settings(storage_backend="redis", execution_ttl_days=2), redis_client=redis_client)


@pytest.mark.asyncio
async def test_redis_store_and_load_template(redis_registry, redis_client):
    template = budget_approval_template()

    assert await redis_registry.store_template(template) is True
    redis_client.set.assert_called_once_with("workflow:template:budget-approval", template.model_dump_json())
    redis_client.sadd.assert_called_once_with("workflow:templates:all", "budget-approval")

    redis_client.get.return_value = template.model_dump_json()
    loaded = await redis_registry.load_template("budget-approval")
    assert loaded == template


@pytest.mark.asyncio
async def test_redis_store_template_failure_returns_false(redis_registry, redis_client):
    redis_client.set.side_effect = redis.RedisError("down")

    assert await redis_registry.store_template(budget_approval_template()) is False


@pytest.mark.asyncio
async def test_redis_put_execution_sets_ttl_and_indexes(redis_registry, redis_client):
    execution = make_execution("alice", participants=["alice", "bob"])

    assert await redis_registry.put_execution(execution) is True

    redis_client.set.assert_called_once_with(
        f"workflow:exec:{execution.id}", execution.model_dump_json(), ex=2 * 24 * 3600
    )
    indexed = {call.args[0] for call in redis_client.sadd.call_args_list}
    assert indexed == {"executions:user:alice", "executions:user:bob", "executions:all"}


@pytest.mark.asyncio
async def test_redis_list_drops_expired_index_entries(redis_registry, redis_client):
    live = make_execution("alice")
    redis_client.smembers.return_value = {live.id, "expired-id"}
    redis_client.get.side_effect = lambda key: live.model_dump_json() if key.endswith(live.id) else None

    executions = await redis_registry.list_executions_by_user("alice")

    assert [execution.id for execution in executions] == [live.id]
    redis_client.srem.assert_called_once_with("executions:user:alice", "expired-id")


def test_create_registry_selects_backend():
    assert isinstance(create_registry(Settings(storage_backend="memory")), InMemoryWorkflowRegistry)
    assert isinstance(create_registry(Settings(storage_backend="redis")), RedisWorkflowRegistry)
