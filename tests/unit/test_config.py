"""Unit tests for provisioning settings loading."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from replica_automation.config import ProvisioningSettings

_ENV_VARS = (
    "TAVUS_API_KEY",
    "TAVUS_BASE_URL",
    "LOG_LEVEL",
    "PROVISIONING_STATE_PATH",
    "PROVISIONING_POLL_INTERVAL_SECONDS",
    "PROVISIONING_MAX_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def _clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_settings_loads_from_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "TAVUS_API_KEY=test-key",
                "LOG_LEVEL=DEBUG",
                "PROVISIONING_POLL_INTERVAL_SECONDS=60",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = ProvisioningSettings()

    assert settings.tavus_api_key == "test-key"
    assert settings.log_level == "DEBUG"
    assert settings.poll_interval_seconds == 60.0


def test_settings_defaults(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("TAVUS_API_KEY=test-key\n", encoding="utf-8")

    settings = ProvisioningSettings()

    assert settings.tavus_base_url == "https://api.tavus.io/v2"
    assert settings.poll_interval_seconds == 300.0
    assert settings.inter_job_delay_seconds == 1.0
    assert settings.max_attempts == 100
    assert settings.retention == timedelta(hours=1)
    assert settings.owners_state_file == Path("provisioning_state") / "owners.json"


def test_settings_require_api_key() -> None:
    with pytest.raises(ValidationError):
        ProvisioningSettings()


def test_settings_reject_non_positive_interval(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAVUS_API_KEY", "test-key")
    monkeypatch.setenv("PROVISIONING_POLL_INTERVAL_SECONDS", "0")

    with pytest.raises(ValidationError):
        ProvisioningSettings()
