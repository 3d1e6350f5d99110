"""Authenticated IQ Server REST client."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse, urlunparse

import httpx

from iqfetch.reports.models import (
    Application,
    Organization,
    ReportInfo,
    ViolationRow,
    parse_policy_violations,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
MAX_ERROR_BODY_CHARS = 200


@dataclass(slots=True)
class IqServerError(Exception):
    """IQ Server request failed at the transport or HTTP level."""

    message: str
    status_code: int = 0

    def __str__(self) -> str:
        return self.message


class IqServerClient:
    """Thin wrapper over ``httpx.Client`` for the IQ Server v2 API.

    ``server_url`` is expected to already include the ``/api/v2`` prefix.
    The client is safe to share between threads.
    """

    def __init__(
        self,
        server_url: str,
        username: str,
        password: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not server_url.strip():
            raise ValueError("server_url is required")
        if not username:
            raise ValueError("username is required")
        if not password:
            raise ValueError("password is required")

        self.base_url = normalize_base_url(server_url)
        self._client = httpx.Client(
            base_url=self.base_url,
            auth=(username, password),
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )
        logger.info("Initialized IQ Server API client: base_url=%s", self.base_url)

    def get_applications(self) -> list[Application]:
        logger.debug("Fetching applications")
        payload = self._get_json("applications")
        return [Application.from_payload(entry) for entry in payload.get("applications") or []]

    def get_organizations(self) -> list[Organization]:
        logger.debug("Fetching organizations")
        payload = self._get_json("organizations")
        organizations = [
            Organization.from_payload(entry) for entry in payload.get("organizations") or []
        ]
        logger.debug("Retrieved organizations: count=%d", len(organizations))
        return organizations

    def get_latest_report_info(self, app_id: str) -> ReportInfo | None:
        """Return the most recent report of an application, ``None`` if it has none."""

        reports = self._get_json(f"reports/applications/{app_id}")
        if not reports:
            logger.debug("No reports found: app_id=%s", app_id)
            return None
        logger.debug("Found reports: app_id=%s count=%d", app_id, len(reports))
        return ReportInfo.from_payload(reports[0])

    def get_policy_violations(
        self,
        public_id: str,
        report_id: str,
        organization: str,
    ) -> list[ViolationRow]:
        logger.debug(
            "Fetching policy violations: public_id=%s report_id=%s",
            public_id,
            report_id,
        )
        payload = self._get_json(
            f"applications/{public_id}/reports/{report_id}/policy",
            params={"includeViolationTimes": "true"},
        )
        return parse_policy_violations(payload, application=public_id, organization=organization)

    def _get_json(self, endpoint: str, params: dict[str, str] | None = None) -> Any:
        try:
            response = self._client.get(endpoint, params=params)
        except httpx.TimeoutException as exc:
            raise IqServerError("timeout") from exc
        except httpx.HTTPError as exc:
            raise IqServerError(str(exc) or type(exc).__name__) from exc
        if response.is_error:
            body = response.text.strip()[:MAX_ERROR_BODY_CHARS] or response.reason_phrase
            raise IqServerError(
                f"HTTP {response.status_code}: {body}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise IqServerError(f"invalid JSON from {endpoint}: {exc}") from exc

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> IqServerClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def normalize_base_url(server_url: str) -> str:
    """Collapse duplicate separators and guarantee exactly one trailing slash."""

    parsed = urlparse(server_url.strip().rstrip("/"))
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"invalid server_url: {server_url!r}")
    path = posixpath.normpath("/" + parsed.path.lstrip("/"))
    return urlunparse(parsed._replace(path=path.rstrip("/") + "/"))


def _log_request(request: httpx.Request) -> None:
    logger.debug("Executing request: method=%s url=%s", request.method, request.url)


def _log_response(response: httpx.Response) -> None:
    logger.debug(
        "Request completed: status=%d method=%s url=%s",
        response.status_code,
        response.request.method,
        response.request.url,
    )
