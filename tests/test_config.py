from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from rotator.config import RotatorSettings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "ROTATOR_DATA_DIR", "ROTATOR_DB_NAME", "ROTATOR_LOG_LEVEL", "ROTATOR_TZ",
        "ROTATOR_ALLOW_MULTIPLE", "ROTATOR_FLOATING_TIMER", "ROTATOR_OVERLAY_POLL_MS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    settings = RotatorSettings(_env_file=None)

    assert settings.data_dir == tmp_path / "rotator"
    assert settings.db_name == "rotator.db"
    assert settings.log_level == "INFO"
    assert settings.timezone is None
    assert settings.allow_multiple is False
    assert settings.show_floating_timer is True
    assert settings.overlay_poll_ms == 250


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ROTATOR_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("ROTATOR_LOG_LEVEL", " debug ")
    monkeypatch.setenv("ROTATOR_TZ", "Europe/Berlin")
    monkeypatch.setenv("ROTATOR_ALLOW_MULTIPLE", "true")
    monkeypatch.setenv("ROTATOR_FLOATING_TIMER", "0")
    settings = RotatorSettings(_env_file=None)

    assert settings.log_level == "DEBUG"
    assert settings.timezone == "Europe/Berlin"
    assert settings.allow_multiple is True
    assert settings.show_floating_timer is False
    assert settings.db_path == tmp_path / "data" / "rotator.db"
    assert (tmp_path / "data").is_dir()


def test_blank_timezone_means_system_zone(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROTATOR_TZ", "  ")
    assert RotatorSettings(_env_file=None).timezone is None


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("ROTATOR_LOG_LEVEL", "LOUD"),
        ("ROTATOR_TZ", "Mars/Olympus_Mons"),
        ("ROTATOR_DB_NAME", "../escape.db"),
        ("ROTATOR_OVERLAY_POLL_MS", "10"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        RotatorSettings(_env_file=None)
