"""Shared fixtures for workflow and decision service tests."""

import asyncio

import pytest
import pytest_asyncio

from services.workflow_service.ai_client import MockAIAnalysisProvider
from services.workflow_service.event_publisher import WorkflowEventPublisher
from services.workflow_service.models import RetryPolicy
from services.workflow_service.scheduler import StepScheduler
from services.workflow_service.templates import builtin_templates
from services.workflow_service.workflow_engine import WorkflowEngine
from services.workflow_service.workflow_registry import InMemoryWorkflowRegistry


class RecordingSleep:
    """Sleep replacement that records every delay.

    Delays up to `max_instant` seconds return immediately; longer ones block
    until the waiting task is cancelled.
    """

    def __init__(self, max_instant: float = 60.0):
        self.max_instant = max_instant
        self.delays = []

    async def __call__(self, delay: float):
        self.delays.append(delay)
        if delay > self.max_instant:
            await asyncio.Event().wait()


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def scheduler(fake_sleep):
    return StepScheduler(sleep=fake_sleep)


@pytest.fixture
def registry():
    return InMemoryWorkflowRegistry(builtin_templates())


@pytest.fixture
def publisher():
    return WorkflowEventPublisher(enabled=False)


@pytest.fixture
def ai_provider():
    return MockAIAnalysisProvider(confidence=0.85)


@pytest_asyncio.fixture
async def make_engine(registry, publisher, scheduler, ai_provider):
    """Build an engine over the shared fixtures, with overridable settings."""
    engines = []

    def factory(**overrides):
        options = {
            "templates": registry,
            "store": registry,
            "ai_provider": ai_provider,
            "event_publisher": publisher,
            "scheduler": scheduler,
            "retry_policy": RetryPolicy(max_retries=2, initial_delay=1, backoff_multiplier=2),
        }
        options.update(overrides)
        engine = WorkflowEngine(**options)
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        await engine.scheduler.shutdown()
    await publisher.close()


@pytest.fixture
def engine(make_engine):
    return make_engine()
