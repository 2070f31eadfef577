"""Configuration for the replica provisioning workflow.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

The Tavus API key uses the plain `TAVUS_API_KEY` variable so it can be shared
with the rest of the application.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProvisioningSettings(BaseSettings):
    """Settings for the provisioning workflow.

    Environment variables:
    - TAVUS_API_KEY
    - TAVUS_BASE_URL            (optional)
    - LOG_LEVEL                 (optional)
    - PROVISIONING_STATE_PATH   (optional)
    - PROVISIONING_*            (optional tuning, see fields)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `ProvisioningSettings(_env_file=path_to_env)`.
    """

    tavus_api_key: str = Field(
        default="",
        validation_alias="TAVUS_API_KEY",
        description="API key used for Tavus authentication",
    )
    tavus_base_url: str = Field(
        default="https://api.tavus.io/v2",
        validation_alias="TAVUS_BASE_URL",
        description="Tavus API base URL",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    state_path: Path = Field(
        default=Path("provisioning_state"),
        validation_alias="PROVISIONING_STATE_PATH",
        description="Directory where owner records are persisted",
    )

    poll_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        validation_alias="PROVISIONING_POLL_INTERVAL_SECONDS",
        description="Seconds between scheduler ticks.",
    )
    inter_job_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        validation_alias="PROVISIONING_INTER_JOB_DELAY_SECONDS",
        description="Pause between two jobs within one tick, to respect upstream rate limits.",
    )
    max_attempts: int = Field(
        default=100,
        ge=0,
        validation_alias="PROVISIONING_MAX_ATTEMPTS",
        description=(
            "Poll attempts after which a job is failed regardless of upstream status. "
            "The default is roughly eight hours at the default poll interval."
        ),
    )
    retention_seconds: float = Field(
        default=3600.0,
        ge=0,
        validation_alias="PROVISIONING_RETENTION_SECONDS",
        description="How long terminal jobs stay visible before cleanup removes them.",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="PROVISIONING_REQUEST_TIMEOUT_SECONDS",
    )
    derived_llm_model: str = Field(
        default="gpt-4",
        validation_alias="PROVISIONING_DERIVED_LLM_MODEL",
        description="LLM model configured on personas created for trained replicas.",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _require_tavus_auth(self) -> ProvisioningSettings:
        if not self.tavus_api_key.strip():
            raise ValueError("TAVUS_API_KEY is required")
        return self

    @property
    def owners_state_file(self) -> Path:
        """Path where owner records are persisted."""

        return self.state_path / "owners.json"

    @property
    def retention(self) -> timedelta:
        return timedelta(seconds=self.retention_seconds)
