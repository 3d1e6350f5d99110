"""Controllers for report CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from iqfetch.config import DEFAULT_ENV_FILE, Settings
from iqfetch.http.client import IqServerClient
from iqfetch.pipeline.models import PipelineError, RunResult
from iqfetch.reports.services.report_service import DEFAULT_REPORT_FILENAME, IqReportService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReportCommand:
    """CLI inputs for the report command."""

    output_dir: Path | None = None
    filename: str = DEFAULT_REPORT_FILENAME
    env_file: Path | None = DEFAULT_ENV_FILE
    timeout_seconds: float | None = None
    strict: bool = False


@dataclass(slots=True)
class ReportCommandResult:
    """Report run summary to render in CLI."""

    lines: list[str]
    success: bool
    result: RunResult | None = None


class ReportCliController:
    """Coordinates report command execution."""

    def run_report(self, command: ReportCommand) -> ReportCommandResult:
        try:
            settings = Settings.from_env(output_dir=command.output_dir, env_file=command.env_file)
            settings.validate()
        except ValueError as error:
            return ReportCommandResult(lines=[f"Configuration error: {error}"], success=False)

        timeout = command.timeout_seconds
        if timeout is None:
            timeout = settings.run.run_timeout_seconds or None

        try:
            with IqServerClient(
                settings.iq_server.url,
                settings.iq_server.username,
                settings.iq_server.password,
                timeout_seconds=settings.iq_server.request_timeout_seconds,
                max_retries=settings.iq_server.max_retries,
            ) as client:
                service = IqReportService(client=client, output_dir=settings.run.output_dir)
                result = service.generate_latest_policy_report(
                    command.filename,
                    timeout_seconds=timeout,
                )
        except PipelineError as error:
            logger.error("Report run failed: %s", error)
            return ReportCommandResult(lines=[f"Report failed: {error}"], success=False)

        return ReportCommandResult(
            lines=format_run_result(result),
            success=not (command.strict and result.is_partial),
            result=result,
        )


def format_run_result(result: RunResult) -> list[str]:
    lines = [
        "Report written: "
        f"path={result.path} rows={result.record_count} "
        f"items={result.items_total} failed={len(result.failures)} "
        f"skipped={result.skipped} "
        f"cancelled={'yes' if result.cancelled else 'no'}",
    ]
    for failure in result.failures:
        lines.append(f"  failed item={failure.item_id} error={failure.message}")
    aggregate = result.failure_error()
    if aggregate is not None:
        lines.append(f"Completed with errors: {aggregate}")
    return lines
