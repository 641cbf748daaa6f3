from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from enum import Enum


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys for the dashboard client"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecommendationType(str, Enum):
    RESERVED_INSTANCE = "reserved-instance"
    RIGHTSIZING = "rightsizing"
    IDLE_RESOURCE = "idle-resource"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AWSCredentials(CamelModel):
    """Temporary credentials from STS; expiration is unix seconds"""

    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: int

    def __repr__(self) -> str:
        return f"<AWSCredentials {self.access_key_id} expires={self.expiration}>"


class RoleBinding(CamelModel):
    """Non-secret role metadata that survives restarts"""

    role_arn: str
    account_id: str
    external_id: str


class MonthlyCost(CamelModel):
    month: str
    amount: float
    currency: str


class ServiceCost(CamelModel):
    service: str
    amount: float
    percentage: float


class CostSummary(CamelModel):
    monthly_costs: List[MonthlyCost] = Field(default_factory=list)
    service_breakdown: List[ServiceCost] = Field(default_factory=list)
    total_cost: float = 0.0
    currency: str = "USD"


class ForecastPoint(CamelModel):
    time_period: str
    mean_value: str


class ForecastSummary(CamelModel):
    forecast: List[ForecastPoint] = Field(default_factory=list)
    actual: List[MonthlyCost] = Field(default_factory=list)


class ForecastComparison(CamelModel):
    month: str
    actual: float
    forecast: float


class Recommendation(CamelModel):
    id: str
    type: RecommendationType
    title: str
    description: str
    potential_savings: float = Field(ge=0)
    service: str
    resource_id: Optional[str] = None
    priority: Priority


class RecommendationSummary(CamelModel):
    recommendations: List[Recommendation] = Field(default_factory=list)
    total_potential_savings: float = 0.0


class DashboardData(CamelModel):
    cost_data: CostSummary
    forecast_data: ForecastSummary
    recommendations_data: RecommendationSummary
    forecast_comparison: List[ForecastComparison] = Field(default_factory=list)
    is_mock: bool = False
