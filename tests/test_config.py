from __future__ import annotations

import os
from pathlib import Path

import allure
import pytest

from iqfetch.config import (
    DEFAULT_OUTPUT_DIR,
    IqServerSettings,
    RunSettings,
    Settings,
    apply_env_file,
    parse_env_file,
)

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]


def _valid_settings(**overrides) -> Settings:
    iq_server = IqServerSettings(
        url="https://iq.example.com/api/v2",
        username="admin",
        password="secret",
    )
    settings = Settings(iq_server=iq_server)
    for name, value in overrides.items():
        target = settings.run if hasattr(settings.run, name) else settings.iq_server
        setattr(target, name, value)
    return settings


def test_from_env_reads_required_values(iq_env, tmp_path: Path) -> None:
    settings = Settings.from_env(env_file=tmp_path / "missing.env")

    assert settings.iq_server.url == "https://iq.example.com/api/v2"
    assert settings.iq_server.username == "admin"
    assert settings.iq_server.password == "secret"
    assert settings.iq_server.request_timeout_seconds == 30.0
    assert settings.iq_server.max_retries == 3
    assert settings.run.output_dir == DEFAULT_OUTPUT_DIR
    assert settings.run.run_timeout_seconds == 0.0
    settings.validate()


def test_blank_output_dir_falls_back_to_default(iq_env, monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("REPORT_OUTPUT_DIR", "   ")

    settings = Settings.from_env(env_file=tmp_path / "missing.env")

    assert settings.run.output_dir == Path("reports_output")


def test_explicit_output_dir_wins_over_env(iq_env, monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("REPORT_OUTPUT_DIR", "from-env")

    settings = Settings.from_env(output_dir=tmp_path / "cli", env_file=None)

    assert settings.run.output_dir == tmp_path / "cli"


def test_password_is_hidden_from_repr() -> None:
    assert "secret" not in repr(_valid_settings())


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"url": ""}, "IQ_SERVER_URL is required"),
        ({"url": "ftp://iq.example.com"}, "Invalid IQ_SERVER_URL"),
        ({"username": ""}, "IQ_USERNAME is required"),
        ({"password": ""}, "IQ_PASSWORD is required"),
        ({"request_timeout_seconds": 0}, "REQUEST_TIMEOUT_SECONDS"),
        ({"max_retries": -1}, "MAX_RETRIES"),
        ({"run_timeout_seconds": -5}, "RUN_TIMEOUT_SECONDS"),
    ],
)
def test_validate_rejects_invalid_settings(overrides: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        _valid_settings(**overrides).validate()


def test_parse_env_file_handles_comments_quotes_and_export(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# IQ Server\n"
        "\n"
        "export IQ_SERVER_URL=https://iq.example.com/api/v2\n"
        'IQ_USERNAME="admin user"\n'
        "IQ_PASSWORD='p#ss'\n"
        "REPORT_OUTPUT_DIR=out # local only\n",
        encoding="utf-8",
    )

    assert parse_env_file(env_file) == {
        "IQ_SERVER_URL": "https://iq.example.com/api/v2",
        "IQ_USERNAME": "admin user",
        "IQ_PASSWORD": "p#ss",
        "REPORT_OUTPUT_DIR": "out",
    }


def test_quoted_value_followed_by_comment_is_unquoted(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        'IQ_PASSWORD="s3cret" # prod\n'
        "IQ_USERNAME='ad$min'\n",
        encoding="utf-8",
    )

    assert parse_env_file(env_file) == {"IQ_PASSWORD": "s3cret", "IQ_USERNAME": "ad$min"}


def test_env_file_does_not_override_real_environment(monkeypatch, tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("IQ_USERNAME=from-file\nIQ_PASSWORD=file-secret\n", encoding="utf-8")
    monkeypatch.setenv("IQ_USERNAME", "from-env")

    applied = apply_env_file(env_file)

    assert applied == {"IQ_PASSWORD": "file-secret"}
    assert os.environ["IQ_USERNAME"] == "from-env"
    assert os.environ["IQ_PASSWORD"] == "file-secret"


def test_from_env_loads_env_file(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "IQ_SERVER_URL=https://iq.example.com/api/v2\n"
        "IQ_USERNAME=admin\n"
        "IQ_PASSWORD=secret\n"
        "IQFETCH_RUN_TIMEOUT_SECONDS=120\n",
        encoding="utf-8",
    )

    settings = Settings.from_env(env_file=env_file)

    assert settings.iq_server.username == "admin"
    assert settings.run == RunSettings(output_dir=DEFAULT_OUTPUT_DIR, run_timeout_seconds=120.0)
