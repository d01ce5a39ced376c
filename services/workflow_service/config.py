# config.py - Service configuration for workflow_service
# This file contains configuration settings for the workflow_service.

from pydantic_settings import BaseSettings
from typing import Optional, Literal

class Settings(BaseSettings):
    # Redis Configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 1
    redis_password: Optional[str] = None

    # Service Configuration
    service_name: str = "workflow-service"
    service_port: int = 8002
    log_level: str = "INFO"

    # Storage backend for templates and executions
    storage_backend: Literal["memory", "redis"] = "memory"
    execution_ttl_days: int = 7

    # Workflow Configuration
    max_concurrent_workflows: int = 100
    default_step_timeout: int = 60  # minutes, for steps without timeout_minutes

    # Retry Policy
    retry_max_retries: int = 3
    retry_initial_delay: float = 5.0  # seconds
    retry_backoff_multiplier: float = 2.0

    # AI Provider
    ai_provider: Literal["mock", "openai"] = "mock"
    ai_confidence_threshold: float = 0.7
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.3
    mock_ai_confidence: float = 0.85

    # Escalation
    escalation_enabled: bool = True
    max_escalation_levels: int = 3

    # Event publishing (communication + monitoring services)
    events_enabled: bool = True
    communication_service_url: str = "http://localhost:8004"
    monitoring_service_url: str = "http://localhost:8003"
    event_timeout: float = 5.0  # seconds

    class Config:
        env_prefix = "WORKFLOW_SERVICE_"
        env_file = ".env"

settings = Settings()
