from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font

REPORT_TYPES = ("users", "companies", "jobs", "applications")
GROUP_BY_VALUES = ("day", "week", "month")
DEFAULT_GROUP_BY = "day"
DEFAULT_WINDOW_DAYS = 30
MAX_TREND_BUCKETS = 1000
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

TREND_COLUMN_LABELS = {
    "users": "New Users",
    "companies": "New Companies",
    "jobs": "New Jobs",
    "applications": "New Applications",
}


class ReportParameterError(ValueError):
    """Raised when report query parameters are inconsistent."""


@dataclass(frozen=True, slots=True)
class ReportWindow:
    from_date: datetime
    to_date: datetime
    group_by: str


def validate_report_type(report_type: str) -> str:
    if report_type not in REPORT_TYPES:
        raise ReportParameterError(f"Unknown report type: {report_type}")
    return report_type


def resolve_report_window(
    *,
    from_date: datetime | None,
    to_date: datetime | None,
    group_by: str | None,
    now: datetime | None = None,
) -> ReportWindow:
    resolved_group_by = group_by or DEFAULT_GROUP_BY
    if resolved_group_by not in GROUP_BY_VALUES:
        raise ReportParameterError("group_by must be one of: day, week, month")

    current = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    try:
        resolved_to = _as_utc(to_date) if to_date is not None else current
        if from_date is not None:
            resolved_from = _as_utc(from_date)
        else:
            resolved_from = resolved_to - timedelta(days=DEFAULT_WINDOW_DAYS)
    except OverflowError as exc:
        raise ReportParameterError("from_date and to_date must fall within the supported date range") from exc
    if resolved_from > resolved_to:
        raise ReportParameterError("from_date must not be after to_date")
    if count_buckets(resolved_from, resolved_to, resolved_group_by) > MAX_TREND_BUCKETS:
        raise ReportParameterError(
            f"date range spans more than {MAX_TREND_BUCKETS} {resolved_group_by} buckets; "
            "narrow it or use a coarser group_by"
        )
    return ReportWindow(from_date=resolved_from, to_date=resolved_to, group_by=resolved_group_by)


def bucket_start(value: date | datetime, group_by: str) -> date:
    day = value.date() if isinstance(value, datetime) else value
    if group_by == "week":
        return day - timedelta(days=day.weekday())
    if group_by == "month":
        return day.replace(day=1)
    return day


def count_buckets(from_date: date | datetime, to_date: date | datetime, group_by: str) -> int:
    first = bucket_start(from_date, group_by)
    last = bucket_start(to_date, group_by)
    if last < first:
        return 0
    if group_by == "month":
        return (last.year - first.year) * 12 + last.month - first.month + 1
    if group_by == "week":
        return (last - first).days // 7 + 1
    return (last - first).days + 1


def fill_trend(points: list[dict[str, Any]], window: ReportWindow) -> list[dict[str, Any]]:
    """Expand sparse bucket counts into one entry per bucket of the window."""
    counts: dict[date, int] = {}
    for point in points:
        bucket = point.get("date")
        if isinstance(bucket, str):
            bucket = date.fromisoformat(bucket[:10])
        if not isinstance(bucket, (date, datetime)):
            continue
        key = bucket_start(bucket, window.group_by)
        counts[key] = counts.get(key, 0) + int(point.get("count") or 0)

    trend: list[dict[str, Any]] = []
    cursor = bucket_start(window.from_date, window.group_by)
    last = bucket_start(window.to_date, window.group_by)
    while cursor <= last:
        trend.append({"date": cursor.isoformat(), "count": counts.get(cursor, 0)})
        # The last bucket may have no successor inside the date range.
        if cursor == last:
            break
        cursor = _next_bucket(cursor, window.group_by)
    return trend


def build_report_workbook(report_type: str, report: dict[str, Any]) -> bytes:
    validate_report_type(report_type)
    workbook = Workbook()
    header_font = Font(bold=True)

    trend_sheet = workbook.active
    trend_sheet.title = "Trend"
    trend_sheet.append(["Date", TREND_COLUMN_LABELS[report_type]])
    for cell in trend_sheet[1]:
        cell.font = header_font
    for point in report.get("trend") or []:
        trend_sheet.append([point["date"], int(point["count"])])
    trend_sheet.column_dimensions["A"].width = 14
    trend_sheet.column_dimensions["B"].width = 20

    summary_sheet = workbook.create_sheet("Summary")
    summary_sheet.append(["Metric", "Value"])
    for cell in summary_sheet[1]:
        cell.font = header_font
    for key, value in report.items():
        if key == "trend":
            continue
        if isinstance(value, list):
            for item in value:
                label, count = _breakdown_item(item)
                summary_sheet.append([f"{key}.{label}", count])
        elif isinstance(value, (datetime, date)):
            summary_sheet.append([key, value.isoformat()])
        else:
            summary_sheet.append([key, value])
    summary_sheet.column_dimensions["A"].width = 32

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_filename(report_type: str, today: date | None = None) -> str:
    day = today or datetime.now(timezone.utc).date()
    return f"{report_type}-report-{day.strftime('%Y%m%d')}.xlsx"


def _breakdown_item(item: dict[str, Any]) -> tuple[str, int]:
    count = int(item.get("count") or 0)
    label = next((str(value) for key, value in item.items() if key != "count"), "unknown")
    return label, count


def _next_bucket(day: date, group_by: str) -> date:
    if group_by == "week":
        return day + timedelta(days=7)
    if group_by == "month":
        if day.month == 12:
            return day.replace(year=day.year + 1, month=1, day=1)
        return day.replace(month=day.month + 1, day=1)
    return day + timedelta(days=1)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
