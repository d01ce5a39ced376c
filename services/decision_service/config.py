# config.py - Service configuration for decision_service
# This file contains configuration settings for the decision_service.

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Service Configuration
    service_name: str = "decision-service"
    service_port: int = 8005
    log_level: str = "INFO"

    # Decision history kept in memory for historical insights
    history_limit: int = 1000
    analysis_log_limit: int = 500

    class Config:
        env_prefix = "DECISION_SERVICE_"
        env_file = ".env"

settings = Settings()
