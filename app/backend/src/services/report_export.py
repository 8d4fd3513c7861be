"""CSV + gzip serialisation of report rows."""

from __future__ import annotations

import csv
import gzip
import io
import json
from collections.abc import Iterable
from typing import BinaryIO
from uuid import UUID

from .compendium import Monster

REPORT_COLUMNS: tuple[str, ...] = (
    "id",
    "name",
    "description",
    "common_locations",
    "drops",
    "category",
    "image",
    "dlc",
)
REPORT_EXTENSION = "csv.gz"
REPORT_CONTENT_TYPE = "application/gzip"


def report_object_key(user_id: UUID, report_id: UUID) -> str:
    """Return the storage key for a report; stable across retries."""

    return f"users/{user_id}/{report_id}.{REPORT_EXTENSION}"


def _format_list(values: list[str] | None) -> str:
    return json.dumps(values or [], ensure_ascii=False)


def _row(monster: Monster) -> list[str]:
    return [
        str(monster.id),
        monster.name,
        monster.description,
        _format_list(monster.common_locations),
        _format_list(monster.drops),
        monster.category,
        monster.image,
        "true" if monster.dlc else "false",
    ]


def write_report(rows: Iterable[Monster], fileobj: BinaryIO) -> int:
    """Stream the header and rows as gzip-compressed CSV into ``fileobj``.

    Rows are compressed as they are written, so the uncompressed table is
    never held in memory. Returns the number of data rows written.
    """

    count = 0
    with gzip.GzipFile(fileobj=fileobj, mode="wb") as compressed:
        with io.TextIOWrapper(compressed, encoding="utf-8", newline="") as text:
            writer = csv.writer(text)
            writer.writerow(REPORT_COLUMNS)
            for monster in rows:
                writer.writerow(_row(monster))
                count += 1
    return count


def build_report_bytes(rows: Iterable[Monster]) -> bytes:
    buffer = io.BytesIO()
    write_report(rows, buffer)
    return buffer.getvalue()


__all__ = [
    "REPORT_COLUMNS",
    "REPORT_CONTENT_TYPE",
    "REPORT_EXTENSION",
    "build_report_bytes",
    "report_object_key",
    "write_report",
]
