"""Tests for configuration loading."""

import pytest

import stepwise.persistence as persistence
from stepwise.config import StepwiseConfig, load_config
from stepwise.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
)
from stepwise.service import WorkflowService


def test_load_config_from_env(tmp_path, monkeypatch):
    monkeypatch.delenv("STEPWISE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
log_level: DEBUG
engine:
  agent_history_size: 5
  max_parallel_branches: 2
service:
  execution_timeout_seconds: 30
  max_page_size: 50
"""
    )
    monkeypatch.setenv("STEPWISE_CONFIG", str(config_path))

    config = load_config()
    assert config.log_level == "DEBUG"
    assert config.engine.agent_history_size == 5
    assert config.engine.max_parallel_branches == 2
    assert config.service.execution_timeout_seconds == 30
    assert config.service.max_page_size == 50
    assert config.database_url is None


def test_env_overrides_config_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite://from-file.db\n")
    monkeypatch.setenv("STEPWISE_CONFIG", str(config_path))
    monkeypatch.setenv("STEPWISE_DATABASE_URL", "sqlite://from-env.db")
    monkeypatch.setenv("STEPWISE_LOG_LEVEL", "WARNING")

    config = load_config()
    assert config.database_url == "sqlite://from-env.db"
    assert config.log_level == "WARNING"


def test_get_repository_uses_database_url(tmp_path, monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.setattr(persistence, "_repository_url", None)
    monkeypatch.delenv("STEPWISE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("STEPWISE_CONFIG", str(tmp_path / "absent.yaml"))

    repo = get_repository(database_url=f"sqlite://{tmp_path / 'wf.db'}")
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert get_repository() is repo

    monkeypatch.setattr(persistence, "_repository_instance", None)
    assert isinstance(get_repository(), InMemoryWorkflowRepository)


def test_get_repository_keeps_instance_for_same_url(tmp_path, monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.setattr(persistence, "_repository_url", None)
    monkeypatch.delenv("STEPWISE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    first = get_repository(config=StepwiseConfig())
    assert isinstance(first, InMemoryWorkflowRepository)
    assert get_repository(config=StepwiseConfig()) is first

    sqlite_config = StepwiseConfig(database_url=f"sqlite://{tmp_path / 'wf.db'}")
    second = get_repository(config=sqlite_config)
    assert isinstance(second, SQLiteWorkflowRepository)
    assert second is not first
    assert get_repository(config=sqlite_config) is second
    assert get_repository() is second


def test_services_share_the_configured_repository(monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.setattr(persistence, "_repository_url", None)
    monkeypatch.delenv("STEPWISE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config = StepwiseConfig()

    assert WorkflowService(config=config).repository is WorkflowService(config=config).repository


def test_get_repository_rejects_unknown_backend(monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.setattr(persistence, "_repository_url", None)
    with pytest.raises(ValueError, match="Unsupported database backend"):
        get_repository(database_url="mysql://localhost/db")
