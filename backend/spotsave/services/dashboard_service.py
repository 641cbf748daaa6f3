import asyncio
import structlog

from spotsave.core.exceptions import ExpiredCredentialsError
from spotsave.models.schemas import DashboardData
from spotsave.services.cost_explorer_service import (
    CostExplorerService,
    align_forecast_with_actual,
    cost_explorer_service,
)
from spotsave.services.credential_store import CredentialStore
from spotsave.services.mock_data import (
    get_mock_cost_data,
    get_mock_forecast_data,
    get_mock_recommendations,
    is_mock_mode,
)
from spotsave.services.retry import retry_with_backoff

logger = structlog.get_logger(__name__)


def get_mock_dashboard() -> DashboardData:
    forecast_data = get_mock_forecast_data()
    return DashboardData(
        cost_data=get_mock_cost_data(),
        forecast_data=forecast_data,
        recommendations_data=get_mock_recommendations(),
        forecast_comparison=align_forecast_with_actual(forecast_data),
        is_mock=True,
    )


async def load_dashboard(store: CredentialStore, service: CostExplorerService = None) -> DashboardData:
    """Fetch cost, forecast and recommendations for a session.

    Sessions without credentials (or any session in mock mode) get sample
    data. The store is only updated once all three fetches succeed.
    """
    service = service or cost_explorer_service

    if is_mock_mode() or store.credentials is None:
        logger.info("Serving sample dashboard data", user_id=store.user_id)
        return get_mock_dashboard()

    if store.credentials_expired():
        raise ExpiredCredentialsError("AWS credentials have expired. Please reconnect your AWS account.")

    credentials = store.credentials
    cost_data, forecast_data, recommendations_data = await asyncio.gather(
        retry_with_backoff(lambda: service.get_cost_and_usage(credentials), sleep=store.sleep),
        retry_with_backoff(lambda: service.get_cost_forecast(credentials), sleep=store.sleep),
        service.get_rightsizing_recommendations(credentials),
    )

    store.set_cost_data(cost_data)
    store.set_forecast_data(forecast_data)
    store.set_recommendations_data(recommendations_data)

    logger.info("Dashboard data loaded",
                user_id=store.user_id,
                total_cost=cost_data.total_cost,
                recommendations=len(recommendations_data.recommendations))

    return DashboardData(
        cost_data=cost_data,
        forecast_data=forecast_data,
        recommendations_data=recommendations_data,
        forecast_comparison=align_forecast_with_actual(forecast_data),
    )
