"""
BI Report Endpoints

Every report shares the same shape:
    GET /api/reports/{key}          -> {report, date_range, summary}
    GET /api/reports/{key}/export   -> export rows as JSON or CSV

Load failures return the report's zeroed summary rather than an error.
"""

import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from supabase import Client

from intelliservice.reports import REPORTS, get_report, resolve_date_range, run_report, to_dict
from intelliservice.reports.base import DateRange, ReportDefinition
from intelliservice.reports.export import export_to_csv, export_to_dict
from intelliservice.services.supabase_client import get_supabase

router = APIRouter()

REPORT_DEFAULT_RANGE = os.getenv("REPORT_DEFAULT_RANGE", "last_30")


def _lookup(key: str) -> ReportDefinition:
    try:
        return get_report(key)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _date_range(range_preset: str, start: Optional[str], end: Optional[str]) -> DateRange:
    try:
        return resolve_date_range(range_preset, start, end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("")
def list_reports():
    """List available reports"""
    return {
        "reports": [
            {"key": d.key, "title": d.title, "subtitle": d.subtitle}
            for d in REPORTS.values()
        ]
    }


@router.get("/{key}")
async def get_report_summary(
    key: str,
    range_preset: str = Query(REPORT_DEFAULT_RANGE, alias="range", description="today, last_7, last_30, last_90, mtd, ytd, custom"),
    start: Optional[str] = Query(None, description="Custom range start (ISO 8601)"),
    end: Optional[str] = Query(None, description="Custom range end (ISO 8601)"),
    db: Client = Depends(get_supabase)
):
    """
    Run a report for a date range

    - **key**: customer-value, dso, financials, labor-efficiency, project-margins,
      revenue-trends, technician-metrics
    - **range**: preset (custom needs start and end)
    """
    definition = _lookup(key)
    date_range = _date_range(range_preset, start, end)

    summary = await run_report(definition, db, date_range)

    return {
        "report": definition.key,
        "title": definition.title,
        "date_range": date_range.to_dict(),
        "summary": to_dict(summary),
    }


@router.get("/{key}/export")
async def export_report(
    key: str,
    format: str = Query("json", description="json or csv"),
    range_preset: str = Query(REPORT_DEFAULT_RANGE, alias="range"),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    db: Client = Depends(get_supabase)
):
    """Export a report's rows and summary"""
    if format not in ("json", "csv"):
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")

    definition = _lookup(key)
    date_range = _date_range(range_preset, start, end)

    summary = await run_report(definition, db, date_range)
    export = definition.export(summary, date_range)

    if format == "csv":
        filename = f"{definition.key}-{date_range.end.date().isoformat()}.csv"
        return Response(
            content=export_to_csv(export),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )

    return export_to_dict(export)
