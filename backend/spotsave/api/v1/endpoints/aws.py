from fastapi import APIRouter, Depends
import structlog

from spotsave.api.deps import get_cost_explorer, get_role_assumer
from spotsave.core.exceptions import ValidationError
from spotsave.models.schemas import AWSCredentials, CostSummary, ForecastSummary, RecommendationSummary
from spotsave.schemas.aws import AssumeRoleRequest, AssumeRoleResponse, CostQueryRequest
from spotsave.services.cost_explorer_service import CostExplorerService
from spotsave.services.sts_service import RoleAssumptionService
from spotsave.utils.validation import sanitize_external_id, validate_external_id

router = APIRouter()
logger = structlog.get_logger(__name__)


def _require_credentials(query: CostQueryRequest) -> AWSCredentials:
    if query.credentials is None:
        raise ValidationError("Credentials are required")
    return query.credentials


@router.post("/assume-role", response_model=AssumeRoleResponse)
async def assume_role(
    request: AssumeRoleRequest,
    role_assumer: RoleAssumptionService = Depends(get_role_assumer),
):
    """Exchange a role ARN and external ID for temporary credentials"""
    if not request.role_arn:
        raise ValidationError("Role ARN is required")
    if not request.external_id:
        raise ValidationError("External ID is required")

    external_id = sanitize_external_id(request.external_id)
    if not validate_external_id(external_id):
        raise ValidationError(
            "Invalid external ID format. Must be alphanumeric with hyphens/underscores, 2-1224 characters."
        )

    credentials = await role_assumer.assume_role(request.role_arn.strip(), external_id)
    return AssumeRoleResponse(credentials=credentials)


@router.post("/costs", response_model=CostSummary)
async def get_costs(
    query: CostQueryRequest,
    service: CostExplorerService = Depends(get_cost_explorer),
):
    """Monthly costs and the top-service breakdown"""
    credentials = _require_credentials(query)
    return await service.get_cost_and_usage(credentials, query.start_date, query.end_date)


@router.post("/forecast", response_model=ForecastSummary)
async def get_forecast(
    query: CostQueryRequest,
    service: CostExplorerService = Depends(get_cost_explorer),
):
    credentials = _require_credentials(query)
    return await service.get_cost_forecast(credentials, query.start_date, query.end_date)


@router.post("/recommendations", response_model=RecommendationSummary)
async def get_recommendations(
    query: CostQueryRequest,
    service: CostExplorerService = Depends(get_cost_explorer),
):
    credentials = _require_credentials(query)
    return await service.get_rightsizing_recommendations(credentials)
