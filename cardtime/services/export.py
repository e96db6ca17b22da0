"""CSV and JSON payloads for report downloads.

Every duration is written twice, raw milliseconds next to the formatted
string, so spreadsheets can compute on one and show the other.
"""

from __future__ import annotations

import csv
import json
from io import StringIO
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from ..schemas import ReportOut
from ..util.durations import format_deviation, format_duration, format_pct
from .report import CardAggregate

# (record key, header) pairs
TIME_COLUMNS: List[Tuple[str, str]] = [
    ("card_name", "Card"),
    ("list_name", "List"),
    ("labels", "Labels"),
    ("member_name", "Person"),
    ("total_ms", "Time (ms)"),
    ("total_formatted", "Time"),
    ("active", "Active"),
]

GROUP_HEADERS = {"card": "Card", "person": "Person", "label": "Label"}


def flatten_time_report(cards: Iterable[CardAggregate]) -> List[Dict[str, Any]]:
    """One record per (card, member) with completed time only."""
    rows = []
    for card in cards:
        for member_id, m in card.members.items():
            rows.append({
                "card_name": card.card_name,
                "list_name": card.list_name,
                "labels": ", ".join(l.key for l in card.labels),
                "member_name": m.name or member_id,
                "member_id": member_id,
                "total_ms": m.actual_ms,
                "total_formatted": format_duration(m.actual_ms),
                "active": m.active_start is not None,
            })
    return rows


def report_columns(group_by: str) -> List[Tuple[str, str]]:
    cols = [("label", GROUP_HEADERS.get(group_by, "Label"))]
    if group_by == "card":
        cols.append(("sublabel", "List"))
    cols += [
        ("estimated", "Estimated"),
        ("estimated_ms", "Estimated (ms)"),
        ("original", "Original estimate"),
        ("original_ms", "Original (ms)"),
        ("actual", "Actual"),
        ("actual_ms", "Actual (ms)"),
        ("remaining", "Remaining"),
        ("remaining_ms", "Remaining (ms)"),
        ("deviation", "Deviation"),
        ("deviation_ms", "Deviation (ms)"),
        ("deviation_pct", "Deviation %"),
        ("accuracy", "Accuracy"),
    ]
    return cols


def report_records(report: ReportOut) -> List[Dict[str, Any]]:
    records = []
    for row in report.rows:
        records.append({
            "key": row.key,
            "label": row.label,
            "sublabel": row.sublabel or "",
            "estimated": format_duration(row.estimated_ms),
            "estimated_ms": row.estimated_ms,
            "original": format_duration(row.original_ms) if row.original_ms is not None else "",
            "original_ms": row.original_ms,
            "actual": format_duration(row.actual_ms),
            "actual_ms": row.actual_ms,
            "remaining": format_duration(row.remaining_ms),
            "remaining_ms": row.remaining_ms,
            "deviation": format_deviation(row.deviation_ms),
            "deviation_ms": row.deviation_ms,
            "deviation_pct": format_pct(row.deviation_pct),
            "accuracy": f"{row.accuracy:.0f}%" if row.accuracy is not None else "—",
        })
    return records


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return value


def to_delimited(records: Iterable[Dict[str, Any]], columns: Sequence[Tuple[str, str]], delimiter: str = ";") -> str:
    """Header plus one line per record; fields holding the delimiter, quotes
    or newlines are quoted with inner quotes doubled."""
    sio = StringIO()
    w = csv.writer(sio, delimiter=delimiter, quotechar='"', quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    w.writerow([header for _, header in columns])
    for r in records:
        w.writerow([_cell(r.get(key)) for key, _ in columns])
    return sio.getvalue()


def to_structured(records: Iterable[Dict[str, Any]]) -> str:
    return json.dumps(list(records), indent=2, ensure_ascii=False, default=str)
