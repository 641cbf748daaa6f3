"""Sample dashboard data for demos and for sessions without credentials."""

import random
from datetime import date, datetime, timezone
from typing import List, Optional

from spotsave.core.config import settings
from spotsave.models.schemas import (
    CostSummary,
    ForecastPoint,
    ForecastSummary,
    MonthlyCost,
    Recommendation,
    RecommendationSummary,
    RecommendationType,
)
from spotsave.services.cost_explorer_service import derive_priority, summarize_service_costs

SAMPLE_SERVICES: List[str] = [
    "Amazon Elastic Compute Cloud - Compute",
    "Amazon Simple Storage Service",
    "Amazon Relational Database Service",
    "Amazon CloudFront",
    "AWS Lambda",
    "Amazon Elasticsearch Service",
    "Amazon EC2 Container Service",
    "Amazon Route 53",
    "Amazon CloudWatch",
    "AWS Data Transfer",
]


def is_mock_mode() -> bool:
    return settings.MOCK_MODE


def _shift_month(day: date, months: int) -> str:
    index = day.year * 12 + (day.month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def _today() -> date:
    return datetime.now(timezone.utc).date()


def get_mock_cost_data(rng: Optional[random.Random] = None, today: Optional[date] = None) -> CostSummary:
    rng = rng or random.Random()
    today = today or _today()

    monthly_costs = [
        MonthlyCost(
            month=_shift_month(today, -offset),
            amount=round(5000 + rng.random() * 2000, 2),
            currency=settings.DEFAULT_CURRENCY,
        )
        for offset in range(11, -1, -1)
    ]

    year_total = sum(m.amount for m in monthly_costs)
    weights = [(15 - index * 1.2) + rng.random() * 5 for index in range(len(SAMPLE_SERVICES))]
    weight_total = sum(weights)
    service_totals = {
        service: round(year_total * weight / weight_total, 2)
        for service, weight in zip(SAMPLE_SERVICES, weights)
    }
    breakdown, total_cost = summarize_service_costs(service_totals)

    return CostSummary(
        monthly_costs=monthly_costs,
        service_breakdown=breakdown,
        total_cost=round(total_cost, 2),
        currency=settings.DEFAULT_CURRENCY,
    )


def get_mock_forecast_data(rng: Optional[random.Random] = None, today: Optional[date] = None) -> ForecastSummary:
    rng = rng or random.Random()
    today = today or _today()
    cost_data = get_mock_cost_data(rng, today)
    last_month_cost = cost_data.monthly_costs[-1].amount if cost_data.monthly_costs else 5000.0

    forecast = [
        ForecastPoint(
            time_period=f"{_shift_month(today, offset)}-01",
            mean_value=f"{last_month_cost * (1 + (rng.random() * 0.1 - 0.05)):.2f}",
        )
        for offset in range(1, 4)
    ]

    return ForecastSummary(forecast=forecast, actual=cost_data.monthly_costs[-3:])


def get_mock_recommendations() -> RecommendationSummary:
    samples = [
        ("rec-1", RecommendationType.RESERVED_INSTANCE, "Purchase Reserved Instances for EC2",
         "You have 15 on-demand EC2 instances that could benefit from Reserved Instances.", 450.0, "EC2", None),
        ("rec-2", RecommendationType.RIGHTSIZING, "Rightsize m5.xlarge instances",
         "10 m5.xlarge instances are underutilized. Consider downsizing to m5.large.", 320.0, "EC2", None),
        ("rec-3", RecommendationType.IDLE_RESOURCE, "Remove idle load balancer",
         "The load balancer has had no healthy targets for 30 days.", 75.0, "ELB", "app/idle-lb"),
        ("rec-4", RecommendationType.IDLE_RESOURCE, "Delete unattached EBS volume",
         "A 100 GiB gp2 volume has been unattached for 45 days.", 10.0, "EBS", "vol-0a1b2c3d4e5f67890"),
    ]
    recommendations = [
        Recommendation(
            id=rec_id,
            type=rec_type,
            title=title,
            description=description,
            potential_savings=savings,
            service=service,
            resource_id=resource_id,
            priority=derive_priority(savings),
        )
        for rec_id, rec_type, title, description, savings, service, resource_id in samples
    ]
    return RecommendationSummary(
        recommendations=recommendations,
        total_potential_savings=sum(r.potential_savings for r in recommendations),
    )
