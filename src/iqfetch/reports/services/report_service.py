"""Latest policy violation report across all IQ Server applications."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from iqfetch.http.client import IqServerClient, IqServerError
from iqfetch.pipeline.dispatcher import DEFAULT_MAX_CONCURRENT
from iqfetch.pipeline.models import (
    ItemEmpty,
    ItemError,
    ItemFailure,
    ItemSuccess,
    Outcome,
    RunResult,
)
from iqfetch.pipeline.orchestrator import PipelineSteps, RunOrchestrator
from iqfetch.pipeline.writer import write_csv_report
from iqfetch.reports.models import VIOLATION_COLUMNS, Application, ViolationRow

DEFAULT_REPORT_FILENAME = "latest_policy_violations.csv"
ITEM_KIND = "app"

logger = logging.getLogger(__name__)


class IqReportService:
    """Binds the IQ Server client to the fetch-aggregate pipeline."""

    def __init__(
        self,
        *,
        client: IqServerClient,
        output_dir: Path,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    ) -> None:
        self.client = client
        self.output_dir = output_dir
        self.max_concurrent = max_concurrent

    def generate_latest_policy_report(
        self,
        filename: str = DEFAULT_REPORT_FILENAME,
        *,
        cancel_event: threading.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> RunResult:
        """Fetch the latest violations of every application into ``output_dir/filename``."""

        logger.info("Generating latest policy report: filename=%s", filename)
        steps: PipelineSteps[Application, dict[str, str], ViolationRow] = PipelineSteps(
            list_items=self.list_applications,
            build_lookup=self.build_organization_names,
            fetch_one=self.fetch_application_rows,
            write=write_violation_csv,
        )
        orchestrator = RunOrchestrator(
            steps,
            max_concurrent=self.max_concurrent,
            item_label="applications",
            item_kind=ITEM_KIND,
        )
        return orchestrator.run(
            self.output_dir / filename,
            cancel_event=cancel_event,
            timeout_seconds=timeout_seconds,
        )

    def list_applications(self, _cancel: threading.Event) -> list[Application]:
        return self.client.get_applications()

    def build_organization_names(self, _cancel: threading.Event) -> dict[str, str]:
        names = {org.id: org.name for org in self.client.get_organizations()}
        logger.info("Created organization id-to-name map: count=%d", len(names))
        return names

    def fetch_application_rows(
        self,
        cancel: threading.Event,
        app: Application,
        organization_names: dict[str, str],
    ) -> Outcome:
        """Produce the outcome for one application; HTTP errors become item failures."""

        if cancel.is_set():
            return _failure(app, "cancelled before fetching report info")
        try:
            report_info = self.client.get_latest_report_info(app.id)
        except IqServerError as exc:
            return _failure(app, str(exc), exc)

        if report_info is None or not report_info.report_html_url.strip():
            logger.debug("No report available: app_public_id=%s", app.public_id)
            return ItemEmpty(item_id=app.item_id)

        report_id = report_info.report_id
        if report_id is None:
            return _failure(app, f"malformed report URL: {report_info.report_html_url}")
        logger.debug(
            "Parsed report id: app_public_id=%s report_id=%s stage=%s",
            app.public_id,
            report_id,
            report_info.stage,
        )

        organization = organization_names.get(app.organization_id)
        if organization is None:
            logger.debug(
                "Organization name not found, using id: org_id=%s",
                app.organization_id,
            )
            organization = app.organization_id

        if cancel.is_set():
            return _failure(app, "cancelled before fetching policy violations")
        try:
            rows = self.client.get_policy_violations(app.public_id, report_id, organization)
        except IqServerError as exc:
            return _failure(app, f"get policy violations: {exc}", exc)
        logger.debug(
            "Fetched policy violations: app_public_id=%s rows=%d",
            app.public_id,
            len(rows),
        )
        return ItemSuccess(item_id=app.item_id, records=rows)


def write_violation_csv(path: Path, rows: list[ViolationRow]) -> Path:
    return write_csv_report(
        path,
        rows,
        columns=VIOLATION_COLUMNS,
        row_fields=ViolationRow.csv_fields,
    )


def _failure(app: Application, message: str, cause: BaseException | None = None) -> ItemFailure:
    return ItemFailure(
        ItemError(message=message, item_id=app.item_id, cause=cause, item_kind=ITEM_KIND),
    )
