from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_AGENT_HISTORY_SIZE,
    DEFAULT_EXECUTION_TIMEOUT_SECONDS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
    MAX_PAGE_SIZE,
)


class EngineSettings(BaseModel):
    """Settings consumed by the orchestrator and step handlers."""

    agent_history_size: int = Field(default=DEFAULT_AGENT_HISTORY_SIZE, ge=0)
    webhook_timeout_seconds: float = Field(default=DEFAULT_WEBHOOK_TIMEOUT_SECONDS, gt=0)
    max_parallel_branches: Optional[int] = Field(default=None, ge=1)


class ServiceSettings(BaseModel):
    """Settings for the execute / management boundary."""

    execution_timeout_seconds: Optional[float] = Field(
        default=DEFAULT_EXECUTION_TIMEOUT_SECONDS, gt=0
    )
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    max_page_size: int = Field(default=MAX_PAGE_SIZE, ge=1)


class StepwiseConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    engine: EngineSettings = EngineSettings()
    service: ServiceSettings = ServiceSettings()


def load_config(path: Optional[str] = None) -> StepwiseConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPWISE_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPWISE_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepwiseConfig(**data)
    else:
        config = StepwiseConfig()

    env_db_url = os.getenv("STEPWISE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_log_level = os.getenv("STEPWISE_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level
    return config
