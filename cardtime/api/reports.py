from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ..core.config import Settings
from ..db.models import now_utc
from ..schemas import GroupBy, ReportFilters, ReportKind, ReportOut, SortBy
from ..services.tracker import TimeTracker
from ..util.dates import day_range, preset_range
from .deps import get_app_settings, get_tracker

router = APIRouter(prefix="/reports", tags=["reports"])

BOM = "\ufeff"

def _filters(
    preset: Optional[str] = Query(None, description="today, yesterday, this-week, last-week, this-month, last-month, this-year or all"),
    start: Optional[str] = Query(None, alias="from"),
    end: Optional[str] = Query(None, alias="to"),
    settings: Settings = Depends(get_app_settings),
) -> ReportFilters:
    # a preset wins over explicit days
    if preset:
        lo, hi = preset_range(preset, now_utc(), settings.timezone)
    else:
        lo, hi = day_range(start, end, settings.timezone)
    return ReportFilters(start=lo, end=hi)

def _csv(body: str, filename: str, settings: Settings) -> Response:
    if settings.csv_bom:
        body = BOM + body
    return Response(
        content=body.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@router.get("", response_model=ReportOut)
async def get_report(
    kind: ReportKind = "estimate",
    group_by: GroupBy = "card",
    sort_by: SortBy = "deviation",
    filters: ReportFilters = Depends(_filters),
    tracker: TimeTracker = Depends(get_tracker),
):
    return await tracker.get_report(filters, kind=kind, group_by=group_by, sort_by=sort_by)

@router.get("/export.csv")
async def export_csv(
    kind: ReportKind = "estimate",
    group_by: GroupBy = "card",
    sort_by: SortBy = "deviation",
    filters: ReportFilters = Depends(_filters),
    tracker: TimeTracker = Depends(get_tracker),
    settings: Settings = Depends(get_app_settings),
):
    report = await tracker.get_report(filters, kind=kind, group_by=group_by, sort_by=sort_by)
    return _csv(tracker.export_delimited(report), f"{kind}-report-{group_by}.csv", settings)

@router.get("/export.json")
async def export_json(
    kind: ReportKind = "estimate",
    group_by: GroupBy = "card",
    sort_by: SortBy = "deviation",
    filters: ReportFilters = Depends(_filters),
    tracker: TimeTracker = Depends(get_tracker),
):
    report = await tracker.get_report(filters, kind=kind, group_by=group_by, sort_by=sort_by)
    return Response(
        content=tracker.export_structured(report).encode("utf-8"),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{kind}-report-{group_by}.json"'},
    )

@router.get("/entries.csv")
async def export_entries(
    filters: ReportFilters = Depends(_filters),
    tracker: TimeTracker = Depends(get_tracker),
    settings: Settings = Depends(get_app_settings),
):
    return _csv(await tracker.export_entries(filters), "time-entries.csv", settings)
