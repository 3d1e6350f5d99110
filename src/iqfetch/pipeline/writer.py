"""Crash-safe CSV output.

Content is written to a temp file in the destination directory, fsynced and
closed, then moved over the destination with ``os.replace``. A reader of the
destination path sees either the previous file or the complete new one.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import tempfile
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from iqfetch.pipeline.models import WriteError

ROW_NUMBER_COLUMN = "No."
OUTPUT_FILE_MODE = 0o644

RecordT = TypeVar("RecordT")

logger = logging.getLogger(__name__)


def serialize_csv(
    records: Sequence[RecordT],
    *,
    columns: Sequence[str],
    row_fields: Callable[[RecordT], Sequence[object]],
) -> bytes:
    """Render records as CSV with a 1-based row number column prepended."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([ROW_NUMBER_COLUMN, *columns])
    for number, record in enumerate(records, start=1):
        fields = row_fields(record)
        if len(fields) != len(columns):
            raise ValueError(
                f"Row {number} has {len(fields)} fields, expected {len(columns)}.",
            )
        writer.writerow([number, *fields])
    return buffer.getvalue().encode("utf-8")


def persist_atomic(path: Path, content: bytes) -> Path:
    """Atomically replace ``path`` with ``content`` and return the absolute path."""

    target = Path(path).absolute()
    directory = target.parent
    logger.debug("Preparing output directory %s", directory)
    with _stage("prepare_dir", target):
        directory.mkdir(parents=True, exist_ok=True)

    with _stage("create_temp", target):
        fd, tmp_name = tempfile.mkstemp(
            prefix=".tmp-",
            suffix=target.suffix or ".tmp",
            dir=directory,
        )
    tmp_path = Path(tmp_name)
    logger.debug("Created temp file %s", tmp_path)

    committed = False
    try:
        handle = os.fdopen(fd, "wb")
        try:
            with _stage("write", target):
                handle.write(content)
                handle.flush()
            with _stage("fsync", target):
                os.fsync(handle.fileno())
        except BaseException:
            handle.close()
            raise
        with _stage("close", target):
            handle.close()
        with _stage("rename", target):
            os.replace(tmp_path, target)
        committed = True
    finally:
        if not committed:
            tmp_path.unlink(missing_ok=True)

    with _stage("chmod", target):
        os.chmod(target, OUTPUT_FILE_MODE)
    return target


def write_csv_report(
    path: Path,
    records: Sequence[RecordT],
    *,
    columns: Sequence[str],
    row_fields: Callable[[RecordT], Sequence[object]],
) -> Path:
    """Serialize ``records`` and commit them to ``path``."""

    try:
        content = serialize_csv(records, columns=columns, row_fields=row_fields)
    except (csv.Error, ValueError) as exc:
        raise WriteError(message=str(exc), stage="serialize", path=str(path)) from exc
    target = persist_atomic(path, content)
    logger.info("CSV file written: path=%s rows=%d", target, len(records))
    return target


@contextmanager
def _stage(stage: str, target: Path) -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        raise WriteError(
            message=f"{stage} failed for {target}: {exc}",
            stage=stage,
            path=str(target),
        ) from exc
