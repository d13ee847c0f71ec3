"""Application configuration + declarative YAML workflow loader for STEPFLOW.

All env vars defined here with STEPFLOW_ prefix.
YAML loader: load_workflows_yaml()
"""

import warnings
from pydantic_settings import BaseSettings
from typing import Optional

from stepflow.config.loader import load_workflows_yaml
from stepflow.config.schema import TriggerYAML, WorkflowYAML, WorkflowsConfig


class StepflowConfig(BaseSettings):
    # ── App ──
    app_name: str = "stepflow"
    debug: bool = False
    log_level: str = "INFO"
    secret_key: str = "change-me-in-production-stepflow-insecure-default-key"

    # ── Database ──
    database_url: str = "sqlite+aiosqlite:///./stepflow.db"

    # ── Auth ──
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60

    # ── Server ──
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]

    # ── Workflows ──
    max_workflow_steps: int = 50               # total steps across all branches
    max_step_depth: int = 16                   # condition nesting

    # ── Execution ──
    execution_mode: str = "background"         # "inline" | "background"
    max_concurrent_runs: int = 10
    attempt_timeout_seconds: float = 300.0     # one whole attempt
    record_create_timeout_seconds: float = 30.0
    ledger_write_timeout_seconds: float = 10.0

    # ── Retry ──
    retry_base_delay_seconds: float = 0.0      # 0 = immediate retries
    retry_max_delay_seconds: float = 30.0
    retry_multiplier: float = 2.0
    retry_jitter: bool = False

    # ── Triggers ──
    schedule_tick_interval_seconds: int = 60
    event_dedupe_capacity: int = 10_000        # remembered event ids

    # ── Recovery ──
    stale_run_threshold_seconds: int = 3600

    # ── Record store ──
    record_store_url: Optional[str] = None     # unset → in-memory store
    record_store_token: Optional[str] = None

    model_config = {"env_prefix": "STEPFLOW_", "env_file": ".env", "extra": "ignore"}


config = StepflowConfig()

if config.secret_key == "change-me-in-production-stepflow-insecure-default-key":
    warnings.warn("STEPFLOW_SECRET_KEY is the insecure default; set a strong value in .env", stacklevel=1)


__all__ = [
    "StepflowConfig",
    "config",
    "load_workflows_yaml",
    "TriggerYAML",
    "WorkflowYAML",
    "WorkflowsConfig",
]
