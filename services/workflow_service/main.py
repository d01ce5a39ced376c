# main.py - FastAPI app entry point for the workflow_service
# This file wires the template registry, execution engine and collaborators into the FastAPI application.

import logging
import sys
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import uvicorn

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, project_root)

from services.workflow_service.config import settings
from services.workflow_service.routes import workflows, executions
from services.workflow_service.models import RetryPolicy
from services.workflow_service.templates import builtin_templates
from services.workflow_service.workflow_registry import create_registry
from services.workflow_service.workflow_engine import WorkflowEngine
from services.workflow_service.ai_client import create_ai_provider
from services.workflow_service.event_publisher import WorkflowEventPublisher
from services.workflow_service.scheduler import StepScheduler
from services.workflow_service.exceptions import (
    WorkflowError, TemplateNotFoundError, ExecutionNotFoundError, StepNotFoundError,
    InvalidStepStateError, InvalidSubmissionError, WorkflowCapacityError, TemplateProtectedError
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info(f"Starting {settings.service_name} on port {settings.service_port}")

    registry = create_registry(settings)
    if settings.storage_backend == "redis":
        try:
            registry.redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {str(e)}")
            raise

    for template in builtin_templates():
        await registry.store_template(template)
    logger.info("Built-in workflow templates loaded")

    event_publisher = WorkflowEventPublisher(
        communication_url=settings.communication_service_url,
        monitoring_url=settings.monitoring_service_url,
        enabled=settings.events_enabled,
        timeout=settings.event_timeout
    )

    workflow_engine = WorkflowEngine(
        templates=registry,
        store=registry,
        ai_provider=create_ai_provider(settings),
        event_publisher=event_publisher,
        scheduler=StepScheduler(),
        retry_policy=RetryPolicy(
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay,
            backoff_multiplier=settings.retry_backoff_multiplier
        ),
        escalation_enabled=settings.escalation_enabled,
        max_escalation_levels=settings.max_escalation_levels,
        escalation_confidence_floor=settings.ai_confidence_threshold,
        max_concurrent_workflows=settings.max_concurrent_workflows,
        default_step_timeout=settings.default_step_timeout * 60
    )

    app.state.registry = registry
    app.state.workflow_engine = workflow_engine

    yield

    # Shutdown
    logger.info("Shutting down workflow service...")
    await workflow_engine.shutdown()
    logger.info("Workflow service shutdown complete")

# Create FastAPI app
app = FastAPI(
    title="Executive Workflow Service",
    description="Runs AI-assisted executive decision workflows with human checkpoints",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(workflows.router)
app.include_router(executions.router)

# =========================
# ERROR RESPONSES
# =========================

ERROR_STATUS = [
    (TemplateNotFoundError, 404, "NOT_FOUND"),
    (ExecutionNotFoundError, 404, "NOT_FOUND"),
    (StepNotFoundError, 404, "NOT_FOUND"),
    (InvalidStepStateError, 409, "INVALID_STATE"),
    (TemplateProtectedError, 409, "TEMPLATE_PROTECTED"),
    (InvalidSubmissionError, 400, "INVALID_SUBMISSION"),
    (WorkflowCapacityError, 429, "CAPACITY_EXCEEDED"),
]

def error_body(code: str, message: str, details=None):
    return {"error": {"code": code, "message": message, "details": details or []}}

@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return JSONResponse(status_code=status_code, content=error_body(code, str(exc)))
    logger.error(f"Unhandled workflow error on {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content=error_body("INTERNAL", str(exc)))

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"path": ".".join(str(part) for part in error["loc"]), "msg": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("VALIDATION_ERROR", "Invalid request", details))

@app.exception_handler(ValidationError)
async def payload_validation_handler(request: Request, exc: ValidationError):
    details = [
        {"path": ".".join(str(part) for part in error["loc"]), "msg": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("VALIDATION_ERROR", "Invalid payload", details))

@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }

@app.get("/health")
async def health_check(request: Request):
    """Basic health check endpoint."""
    registry = request.app.state.registry
    storage_status = "healthy"
    if settings.storage_backend == "redis":
        try:
            registry.redis_client.ping()
        except Exception:
            storage_status = "unhealthy"

    workflow_engine = request.app.state.workflow_engine
    return {
        "status": "healthy" if storage_status == "healthy" else "degraded",
        "service": settings.service_name,
        "components": {
            "storage": {"backend": settings.storage_backend, "status": storage_status},
            "ai_provider": settings.ai_provider
        },
        "active_executions": len(workflow_engine.active_executions),
        "pending_timers": len(workflow_engine.scheduler.pending())
    }

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.service_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
