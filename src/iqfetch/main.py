"""CLI entrypoint for iqfetch."""

import logging
from pathlib import Path

import rich_click as click

from iqfetch import __version__
from iqfetch.config import DEFAULT_ENV_FILE
from iqfetch.reports.controllers import ReportCliController, ReportCommand
from iqfetch.reports.services.report_service import DEFAULT_REPORT_FILENAME

click.rich_click.USE_MARKDOWN = True
REPORT_CONTROLLER = ReportCliController()
LOG_LEVELS = ("debug", "info", "warning", "error")


@click.group()
@click.version_option(version=__version__, prog_name="iqfetch")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="info",
    show_default=True,
    help="Logging verbosity.",
)
def iqfetch(log_level: str) -> None:
    """IQ Server report fetcher."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@iqfetch.command("report")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Output directory. If omitted, REPORT_OUTPUT_DIR or `reports_output` is used.",
)
@click.option(
    "--filename",
    default=DEFAULT_REPORT_FILENAME,
    show_default=True,
    help="CSV file name inside the output directory.",
)
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_ENV_FILE,
    show_default=True,
    help="Optional env file; real environment variables take precedence.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Cancel remaining applications after this many seconds; partial rows are still written.",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Exit with an error if any application failed or was skipped.",
)
def report(
    output_dir: Path | None,
    filename: str,
    env_file: Path,
    timeout_seconds: float | None,
    strict: bool,
) -> None:
    """Write the latest policy violations of every application to one CSV."""

    result = REPORT_CONTROLLER.run_report(
        ReportCommand(
            output_dir=output_dir,
            filename=filename,
            env_file=env_file,
            timeout_seconds=timeout_seconds,
            strict=strict,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Report generation failed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    iqfetch()
