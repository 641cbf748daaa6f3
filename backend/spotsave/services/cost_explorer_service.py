"""Cost Explorer queries and their reduction into dashboard summaries.

Three calls are exposed: monthly cost and usage grouped by service, the
monthly cost forecast (paired with actuals over the same window), and EC2
rightsizing recommendations. Cost and forecast failures are raised as
CostFetchError; recommendation failures degrade to an empty result because
the optimizer feature is often disabled on an account.
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from spotsave.core.config import settings
from spotsave.core.exceptions import CostFetchError
from spotsave.models.schemas import (
    AWSCredentials,
    CostSummary,
    ForecastComparison,
    ForecastPoint,
    ForecastSummary,
    MonthlyCost,
    Priority,
    Recommendation,
    RecommendationSummary,
    RecommendationType,
    ServiceCost,
)
from spotsave.services.aws_client import AWSClientManager, FailurePolicy, aws_client_manager

logger = structlog.get_logger(__name__)

COST_METRIC = 'UnblendedCost'
FORECAST_METRIC = 'UNBLENDED_COST'
RIGHTSIZING_SERVICE = 'AmazonEC2'
OTHERS_LABEL = 'Others'

HIGH_PRIORITY_SAVINGS = 100.0
MEDIUM_PRIORITY_SAVINGS = 50.0


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _parse_amount(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def summarize_service_costs(
    service_totals: Dict[str, float],
    limit: int = None,
) -> Tuple[List[ServiceCost], float]:
    """Reduce per-service totals to the top ``limit`` services plus "Others".

    Returns the breakdown (descending by amount) and the grand total. Each
    percentage is the service's share of the grand total, so the full list
    sums to 100. "Others" holds everything ranked below ``limit`` and is
    left out when that remainder is zero.
    """
    limit = settings.TOP_SERVICES_LIMIT if limit is None else limit
    total_cost = sum(service_totals.values())

    def _percentage(amount: float) -> float:
        return (amount / total_cost) * 100 if total_cost else 0.0

    ranked = sorted(service_totals.items(), key=lambda item: (-item[1], item[0]))
    breakdown = [
        ServiceCost(service=service, amount=amount, percentage=_percentage(amount))
        for service, amount in ranked[:limit]
    ]

    others_amount = sum(amount for _, amount in ranked[limit:])
    if len(ranked) > limit and others_amount != 0:
        breakdown.append(ServiceCost(
            service=OTHERS_LABEL,
            amount=others_amount,
            percentage=_percentage(others_amount),
        ))

    return breakdown, total_cost


def build_cost_summary(results_by_time: Iterable[Dict[str, Any]], limit: int = None) -> CostSummary:
    """Fold Cost Explorer ResultsByTime buckets into a CostSummary.

    One MonthlyCost is kept per YYYY-MM key. Grouped queries carry no
    bucket Total, so the month amount falls back to the sum of its groups;
    a month split across result pages is merged into one entry.
    """
    monthly: "OrderedDict[str, MonthlyCost]" = OrderedDict()
    service_totals: Dict[str, float] = {}

    for result in results_by_time:
        month = (result.get('TimePeriod', {}).get('Start') or '')[:7]
        groups = result.get('Groups', [])

        group_sum = 0.0
        group_unit = None
        for group in groups:
            keys = group.get('Keys') or ['Unknown']
            metric = group.get('Metrics', {}).get(COST_METRIC, {})
            amount = _parse_amount(metric.get('Amount'))
            group_unit = group_unit or metric.get('Unit')
            group_sum += amount
            service_totals[keys[0]] = service_totals.get(keys[0], 0.0) + amount

        total = result.get('Total', {}).get(COST_METRIC)
        if total:
            amount = _parse_amount(total.get('Amount'))
            currency = total.get('Unit') or group_unit or settings.DEFAULT_CURRENCY
        else:
            amount = group_sum
            currency = group_unit or settings.DEFAULT_CURRENCY

        if month in monthly:
            monthly[month].amount += amount
        else:
            monthly[month] = MonthlyCost(month=month, amount=amount, currency=currency)

    breakdown, total_cost = summarize_service_costs(service_totals, limit)
    monthly_costs = sorted(monthly.values(), key=lambda m: m.month)

    return CostSummary(
        monthly_costs=monthly_costs,
        service_breakdown=breakdown,
        total_cost=total_cost,
        currency=monthly_costs[0].currency if monthly_costs else settings.DEFAULT_CURRENCY,
    )


def align_forecast_with_actual(forecast: ForecastSummary) -> List[ForecastComparison]:
    """Pair each forecast month with the actual cost of the same YYYY-MM.

    Months without an actual report 0.
    """
    actual_by_month = {item.month[:7]: item.amount for item in forecast.actual}
    return [
        ForecastComparison(
            month=point.time_period[:7],
            actual=actual_by_month.get(point.time_period[:7], 0.0),
            forecast=_parse_amount(point.mean_value),
        )
        for point in forecast.forecast
    ]


def derive_priority(savings: float) -> Priority:
    if savings > HIGH_PRIORITY_SAVINGS:
        return Priority.HIGH
    if savings > MEDIUM_PRIORITY_SAVINGS:
        return Priority.MEDIUM
    return Priority.LOW


def _instance_type(instance: Dict[str, Any]) -> Optional[str]:
    return instance.get('ResourceDetails', {}).get('EC2ResourceDetails', {}).get('InstanceType')


def _target_instance(rec: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    targets = rec.get('ModifyRecommendationDetail', {}).get('TargetInstances', [])
    for target in targets:
        if target.get('DefaultTargetInstance'):
            return target
    return targets[0] if targets else None


def build_recommendation(rec: Dict[str, Any], index: int = 0) -> Optional[Recommendation]:
    """Turn one rightsizing record into a Recommendation.

    Savings are the current monthly cost minus the target's estimated
    monthly cost (zero target for termination). Records without positive
    savings yield None.
    """
    current = rec.get('CurrentInstance', {})
    current_cost = _parse_amount(current.get('MonthlyCost', '0'))
    current_type = _instance_type(current)
    name = current.get('InstanceName') or current.get('ResourceId') or 'Instance'
    resource_id = current.get('ResourceId') or current.get('InstanceName')

    if rec.get('RightsizingType') == 'TERMINATE':
        savings = current_cost
        rec_type = RecommendationType.IDLE_RESOURCE
        title = f"Terminate idle {name}"
        description = f"{name} ({current_type or 'unknown type'}) shows little or no utilization. Consider terminating it"
    else:
        target = _target_instance(rec)
        target_cost = _parse_amount(target.get('EstimatedMonthlyCost', '0')) if target else current_cost
        target_type = _instance_type(target) if target else None
        savings = current_cost - target_cost
        rec_type = RecommendationType.RIGHTSIZING
        title = f"Rightsize {name}"
        description = f"Consider downsizing from {current_type} to {target_type or 'smaller instance'}"

    if savings <= 0:
        return None

    return Recommendation(
        id=resource_id or f"rec-{index}",
        type=rec_type,
        title=title,
        description=description,
        potential_savings=savings,
        service='EC2',
        resource_id=resource_id,
        priority=derive_priority(savings),
    )


def summarize_recommendations(records: Iterable[Dict[str, Any]]) -> RecommendationSummary:
    recommendations = []
    for index, rec in enumerate(records):
        recommendation = build_recommendation(rec, index)
        if recommendation is not None:
            recommendations.append(recommendation)

    return RecommendationSummary(
        recommendations=recommendations,
        total_potential_savings=sum(r.potential_savings for r in recommendations),
    )


def _collect_pages(fetch: Callable[..., Dict[str, Any]], key: str, **params: Any) -> List[Dict[str, Any]]:
    """Follow NextPageToken until the listing is exhausted"""
    items: List[Dict[str, Any]] = []
    token = None
    while True:
        if token:
            params['NextPageToken'] = token
        response = fetch(**params)
        items.extend(response.get(key, []))
        token = response.get('NextPageToken')
        if not token:
            return items


class CostExplorerService:
    """Cost Explorer queries made with a customer's temporary credentials"""

    def __init__(
        self,
        client_manager: AWSClientManager = None,
        client_factory: Callable[[AWSCredentials], Any] = None,
        today: Callable[[], date] = _utc_today,
    ):
        self.client_manager = client_manager or aws_client_manager
        self.client_factory = client_factory or self.client_manager.get_cost_explorer_client
        self.today = today

    async def get_cost_and_usage(
        self,
        credentials: AWSCredentials,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> CostSummary:
        """Monthly unblended cost grouped by service; defaults to the last 365 days"""
        today = self.today()
        end = end_date or today.isoformat()
        start = start_date or (today - timedelta(days=settings.COST_HISTORY_DAYS)).isoformat()

        def _get_cost_sync():
            client = self.client_factory(credentials)
            return _collect_pages(
                client.get_cost_and_usage,
                'ResultsByTime',
                TimePeriod={'Start': start, 'End': end},
                Granularity='MONTHLY',
                Metrics=[COST_METRIC],
                GroupBy=[{'Type': 'DIMENSION', 'Key': 'SERVICE'}],
            )

        results = await self.client_manager.invoke(
            "ce:GetCostAndUsage",
            _get_cost_sync,
            translate=lambda e: CostFetchError(f"Failed to fetch cost data: {e}"),
        )

        summary = build_cost_summary(results)
        logger.info("Fetched cost and usage",
                    start_date=start,
                    end_date=end,
                    months=len(summary.monthly_costs),
                    services=len(summary.service_breakdown))
        return summary

    async def get_cost_forecast(
        self,
        credentials: AWSCredentials,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> ForecastSummary:
        """Monthly mean forecast plus actuals over the same window; defaults to the next 90 days"""
        today = self.today()
        start = start_date or today.isoformat()
        end = end_date or (today + timedelta(days=settings.FORECAST_DAYS)).isoformat()

        def _get_forecast_sync():
            client = self.client_factory(credentials)
            return client.get_cost_forecast(
                TimePeriod={'Start': start, 'End': end},
                Metric=FORECAST_METRIC,
                Granularity='MONTHLY',
            )

        response = await self.client_manager.invoke(
            "ce:GetCostForecast",
            _get_forecast_sync,
            translate=lambda e: CostFetchError(f"Failed to fetch forecast: {e}"),
        )

        forecast = [
            ForecastPoint(
                time_period=result.get('TimePeriod', {}).get('Start', ''),
                mean_value=result.get('MeanValue') or '0',
            )
            for result in response.get('ForecastResultsByTime', [])
        ]

        actual = await self.get_cost_and_usage(credentials, start, end)

        return ForecastSummary(forecast=forecast, actual=actual.monthly_costs)

    async def get_rightsizing_recommendations(self, credentials: AWSCredentials) -> RecommendationSummary:
        """EC2 rightsizing recommendations; provider failures yield an empty summary"""

        def _get_recommendations_sync():
            client = self.client_factory(credentials)
            return _collect_pages(
                client.get_rightsizing_recommendation,
                'RightsizingRecommendations',
                Service=RIGHTSIZING_SERVICE,
                Configuration={
                    'BenefitsConsidered': True,
                    'RecommendationTarget': 'SAME_INSTANCE_FAMILY'
                },
            )

        records = await self.client_manager.invoke(
            "ce:GetRightsizingRecommendation",
            _get_recommendations_sync,
            policy=FailurePolicy.DEGRADE,
            fallback=list,
        )

        summary = summarize_recommendations(records)
        logger.info("Fetched rightsizing recommendations",
                    count=len(summary.recommendations),
                    total_potential_savings=summary.total_potential_savings)
        return summary


# Global instance
cost_explorer_service = CostExplorerService()
