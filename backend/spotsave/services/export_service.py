import csv
import io
from datetime import date, datetime, timezone
from typing import Optional

from spotsave.models.schemas import CostSummary, RecommendationSummary

CSV_HEADER = ["Type", "Date", "Service", "Cost", "Description"]


def export_filename(today: Optional[date] = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"spotsave-export-{today.isoformat()}.csv"


def build_export_csv(
    cost_data: Optional[CostSummary],
    recommendations_data: Optional[RecommendationSummary] = None,
) -> str:
    """Render monthly totals, the service breakdown and recommendations as CSV.

    Service rows are dated with the first month of the cost history;
    recommendation rows carry no date. Fields containing commas are quoted.
    """
    cost_data = cost_data or CostSummary()
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for cost in cost_data.monthly_costs:
        writer.writerow(["Cost", cost.month, "Total", f"{cost.amount:.2f}", "Monthly cost"])

    first_month = cost_data.monthly_costs[0].month if cost_data.monthly_costs else ""
    for service in cost_data.service_breakdown:
        writer.writerow([
            "Service",
            first_month,
            service.service,
            f"{service.amount:.2f}",
            f"{service.percentage:.2f}% of total",
        ])

    if recommendations_data is not None:
        for rec in recommendations_data.recommendations:
            writer.writerow([
                "Recommendation",
                "",
                rec.service,
                f"{rec.potential_savings:.2f}",
                f"{rec.title} - {rec.description}",
            ])

    return buffer.getvalue()
