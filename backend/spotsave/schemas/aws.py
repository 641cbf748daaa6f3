from typing import Optional

from spotsave.models.schemas import (
    AWSCredentials,
    CamelModel,
    CostSummary,
    RecommendationSummary,
)


class AssumeRoleRequest(CamelModel):
    """Role assumption request; fields are checked by the endpoint so it can answer 400"""
    role_arn: Optional[str] = None
    external_id: Optional[str] = None


class AssumeRoleResponse(CamelModel):
    credentials: AWSCredentials
    message: str = "Successfully assumed role"


class CostQueryRequest(CamelModel):
    """Credentials plus an optional YYYY-MM-DD window"""
    credentials: Optional[AWSCredentials] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ExportRequest(CamelModel):
    cost_data: Optional[CostSummary] = None
    recommendations_data: Optional[RecommendationSummary] = None


class ConnectRequest(CamelModel):
    role_arn: str
    external_id: str


class SessionStatus(CamelModel):
    """Public view of a credential store; never contains secrets"""
    state: str
    is_connected: bool
    is_refreshing: bool
    role_arn: Optional[str] = None
    account_id: Optional[str] = None
    expiration: Optional[int] = None
    last_refresh: Optional[float] = None
    credentials_expired: bool = True
