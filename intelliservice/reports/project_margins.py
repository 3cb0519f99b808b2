"""
Project Margins Report

Profitability per project created in the range: budget is revenue,
actual_cost is cost.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from intelliservice.reports.base import (
    Dataset,
    DateRange,
    ExportColumn,
    ExportData,
    ReportDefinition,
    percent,
    safe_div,
    to_number,
)


@dataclass
class ProjectMargin:
    id: str
    name: str
    revenue: float
    costs: float
    profit: float
    margin: float


@dataclass
class MarginMetrics:
    avg_margin: float = 0.0
    highest_margin_project: str = "N/A"
    highest_margin: float = 0.0
    lowest_margin_project: str = "N/A"
    lowest_margin: float = 0.0
    projects: List[ProjectMargin] = field(default_factory=list)


def compute_margin(revenue: float, cost: float) -> float:
    """Gross margin percentage, 0 without revenue"""
    return percent(revenue - cost, revenue) if revenue > 0 else 0.0


async def fetch_project_margins_dataset(db, date_range: DateRange) -> Dataset:
    result = db.table("projects") \
        .select("*") \
        .gte("created_at", date_range.start.isoformat()) \
        .lte("created_at", date_range.end.isoformat()) \
        .execute()
    return {"projects": result.data or []}


def reduce_project_margins(dataset: Dataset, date_range: DateRange, now: datetime) -> MarginMetrics:
    projects = []
    for project in dataset.get("projects") or []:
        revenue = to_number(project.get("budget"))
        costs = to_number(project.get("actual_cost"))
        projects.append(ProjectMargin(
            id=project.get("id"),
            name=project.get("name") or "Untitled",
            revenue=revenue,
            costs=costs,
            profit=revenue - costs,
            margin=compute_margin(revenue, costs),
        ))

    projects.sort(key=lambda p: p.margin, reverse=True)

    if not projects:
        return MarginMetrics()

    highest = projects[0]
    lowest = projects[-1]

    return MarginMetrics(
        avg_margin=safe_div(sum(p.margin for p in projects), len(projects)),
        highest_margin_project=highest.name,
        highest_margin=highest.margin,
        lowest_margin_project=lowest.name,
        lowest_margin=lowest.margin,
        projects=projects,
    )


def export_project_margins(metrics: MarginMetrics, date_range: DateRange) -> ExportData:
    return ExportData(
        title="Project Margins Report",
        subtitle="Profitability analysis by project",
        start=date_range.start,
        end=date_range.end,
        columns=[
            ExportColumn("Project", "name"),
            ExportColumn("Revenue", "revenue", "currency"),
            ExportColumn("Costs", "costs", "currency"),
            ExportColumn("Gross Profit", "profit", "currency"),
            ExportColumn("Margin %", "margin", "percent"),
        ],
        rows=[
            {
                "name": p.name,
                "revenue": p.revenue,
                "costs": p.costs,
                "profit": p.profit,
                "margin": p.margin / 100,
            }
            for p in metrics.projects
        ],
        summary={
            "avg_margin": f"{metrics.avg_margin:.1f}%",
            "highest_margin": f"{metrics.highest_margin:.1f}% ({metrics.highest_margin_project})",
            "lowest_margin": f"{metrics.lowest_margin:.1f}% ({metrics.lowest_margin_project})",
            "total_projects": len(metrics.projects),
        },
    )


PROJECT_MARGINS_REPORT = ReportDefinition(
    key="project-margins",
    title="Project Margins",
    subtitle="Profitability analysis by project",
    fetch=fetch_project_margins_dataset,
    reduce=reduce_project_margins,
    empty=MarginMetrics,
    export=export_project_margins,
)
