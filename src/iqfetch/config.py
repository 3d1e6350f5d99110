"""Runtime configuration for IQ Server report fetching."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from dotenv import dotenv_values

DEFAULT_ENV_FILE = Path("config/.env")
DEFAULT_OUTPUT_DIR = Path("reports_output")


@dataclass(slots=True)
class IqServerSettings:
    """IQ Server connection settings."""

    url: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    request_timeout_seconds: float = 30.0
    max_retries: int = 3


@dataclass(slots=True)
class RunSettings:
    """Report run settings."""

    output_dir: Path = DEFAULT_OUTPUT_DIR
    run_timeout_seconds: float = 0.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    iq_server: IqServerSettings = field(default_factory=IqServerSettings)
    run: RunSettings = field(default_factory=RunSettings)

    @classmethod
    def from_env(
        cls,
        *,
        output_dir: Path | None = None,
        env_file: Path | None = DEFAULT_ENV_FILE,
    ) -> Settings:
        """Load settings from the environment, after seeding it from ``env_file``.

        Variables already present in the environment win over the file. A
        missing env file is not an error.
        """

        if env_file is not None:
            apply_env_file(env_file)
        env_output_dir = os.getenv("REPORT_OUTPUT_DIR", "").strip()
        return cls(
            iq_server=IqServerSettings(
                url=os.getenv("IQ_SERVER_URL", "").strip(),
                username=os.getenv("IQ_USERNAME", ""),
                password=os.getenv("IQ_PASSWORD", ""),
                request_timeout_seconds=float(
                    os.getenv("IQFETCH_REQUEST_TIMEOUT_SECONDS", "30"),
                ),
                max_retries=int(os.getenv("IQFETCH_MAX_RETRIES", "3")),
            ),
            run=RunSettings(
                output_dir=output_dir or Path(env_output_dir or DEFAULT_OUTPUT_DIR),
                run_timeout_seconds=float(os.getenv("IQFETCH_RUN_TIMEOUT_SECONDS", "0")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if required settings are missing or invalid."""

        if not self.iq_server.url:
            raise ValueError("IQ_SERVER_URL is required.")
        _validate_server_url(self.iq_server.url)
        if not self.iq_server.username:
            raise ValueError("IQ_USERNAME is required.")
        if not self.iq_server.password:
            raise ValueError("IQ_PASSWORD is required.")
        if self.iq_server.request_timeout_seconds <= 0:
            raise ValueError("IQFETCH_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.iq_server.max_retries < 0:
            raise ValueError("IQFETCH_MAX_RETRIES must be >= 0.")
        if self.run.run_timeout_seconds < 0:
            raise ValueError("IQFETCH_RUN_TIMEOUT_SECONDS must be >= 0.")
        if not str(self.run.output_dir).strip():
            raise ValueError("REPORT_OUTPUT_DIR must not be empty.")


def parse_env_file(path: Path) -> dict[str, str]:
    """Read ``KEY=value`` pairs from a dotenv file; keys without a value are dropped."""

    values = dotenv_values(path, interpolate=False, encoding="utf-8")
    return {key: value for key, value in values.items() if value is not None}


def apply_env_file(path: Path) -> dict[str, str]:
    """Copy values from ``path`` into ``os.environ`` without overriding real variables."""

    if not path.is_file():
        return {}
    applied: dict[str, str] = {}
    for key, value in parse_env_file(path).items():
        if key in os.environ:
            continue
        os.environ[key] = value
        applied[key] = value
    return applied


def _validate_server_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid IQ_SERVER_URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
