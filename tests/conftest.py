"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import httpx
import pytest

from iqfetch.http.client import IqServerClient

_ENV_VARS = (
    "IQ_SERVER_URL",
    "IQ_USERNAME",
    "IQ_PASSWORD",
    "REPORT_OUTPUT_DIR",
    "IQFETCH_REQUEST_TIMEOUT_SECONDS",
    "IQFETCH_MAX_RETRIES",
    "IQFETCH_RUN_TIMEOUT_SECONDS",
)

IQ_BASE_URL = "https://iq.example.com/api/v2"

_POLICY_REPORT = {
    "components": [
        {
            "displayName": "setuptools 80.9.0 (.tar.gz)",
            "componentIdentifier": {"format": "pypi"},
            "violations": [
                {
                    "policyName": "Security-Medium",
                    "policyThreatLevel": 7,
                    "constraints": [
                        {
                            "constraintName": "Medium risk CVSS score",
                            "conditions": [
                                {"conditionSummary": "Security Vulnerability Severity >= 4"},
                                {"conditionSummary": "Security Vulnerability Severity < 7"},
                            ],
                        },
                    ],
                },
            ],
        },
        {
            "displayName": "setuptools (py3-none-any) 80.9.0 (.whl)",
            "componentIdentifier": {"format": "pypi"},
            "violations": [
                {
                    "policyName": "Security-Medium",
                    "policyThreatLevel": 7.0,
                    "constraints": [
                        {
                            "constraintName": "Medium risk CVSS score",
                            "conditions": [
                                {"conditionSummary": "Security Vulnerability Severity >= 4"},
                            ],
                        },
                    ],
                },
            ],
        },
    ],
}


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Hide host configuration and undo anything an env file adds during a test."""
    for name in _ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture()
def iq_env(monkeypatch):
    monkeypatch.setenv("IQ_SERVER_URL", IQ_BASE_URL)
    monkeypatch.setenv("IQ_USERNAME", "admin")
    monkeypatch.setenv("IQ_PASSWORD", "secret")


@pytest.fixture()
def policy_report() -> dict[str, object]:
    return _POLICY_REPORT


@pytest.fixture()
def make_client() -> Iterator[Callable[[Callable[[httpx.Request], httpx.Response]], IqServerClient]]:
    clients: list[IqServerClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> IqServerClient:
        client = IqServerClient(
            IQ_BASE_URL,
            "admin",
            "secret",
            transport=httpx.MockTransport(handler),
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()
