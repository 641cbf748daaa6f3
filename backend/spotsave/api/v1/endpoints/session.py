from fastapi import APIRouter, Depends, Query
import structlog

from spotsave.api.deps import get_cost_explorer, get_session_store
from spotsave.core.exceptions import NotConnectedError
from spotsave.models.schemas import DashboardData
from spotsave.schemas.aws import ConnectRequest, SessionStatus
from spotsave.services.cost_explorer_service import CostExplorerService
from spotsave.services.credential_store import CredentialStore, RefreshOutcome
from spotsave.services.dashboard_service import load_dashboard

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/connect", response_model=SessionStatus)
async def connect(
    request: ConnectRequest,
    store: CredentialStore = Depends(get_session_store),
):
    """Assume the customer role and bind it to the signed-in user"""
    await store.connect(request.role_arn, request.external_id)
    return store.status()


@router.get("/status", response_model=SessionStatus)
async def get_status(store: CredentialStore = Depends(get_session_store)):
    return store.status()


@router.post("/refresh", response_model=SessionStatus)
async def refresh(store: CredentialStore = Depends(get_session_store)):
    """Re-assume the bound role now instead of waiting for the timer"""
    if store.role_binding is None:
        raise NotConnectedError("No AWS role is bound to this session")

    outcome = await store.refresh_credentials()
    logger.info("Manual credential refresh", user_id=store.user_id, outcome=outcome.value)
    if outcome is RefreshOutcome.FAILED and store.credentials is None:
        raise NotConnectedError("Credential refresh failed. Please reconnect your AWS account.")
    return store.status()


@router.post("/disconnect", response_model=SessionStatus)
async def disconnect(
    forget_role: bool = Query(False, alias="forgetRole"),
    store: CredentialStore = Depends(get_session_store),
):
    """Drop credentials; with forgetRole the persisted role binding goes too"""
    if forget_role:
        store.clear_all()
    else:
        store.clear_credentials()
    return store.status()


@router.get("/dashboard", response_model=DashboardData)
async def dashboard(
    store: CredentialStore = Depends(get_session_store),
    service: CostExplorerService = Depends(get_cost_explorer),
):
    return await load_dashboard(store, service)
