from fastapi import APIRouter, Depends, status
import structlog

from spotsave.api.deps import get_auth_service, get_bearer_token, get_current_user, get_session_registry
from spotsave.core.config import settings
from spotsave.schemas.auth import LoginRequest, TokenResponse, UserCreate, UserResponse
from spotsave.services.auth_service import AuthService, User
from spotsave.services.credential_store import SessionRegistry

router = APIRouter()
logger = structlog.get_logger(__name__)


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, created_at=user.created_at)


@router.post("/sign-up", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(
    user_create: UserCreate,
    auth: AuthService = Depends(get_auth_service),
):
    """Register a new user"""
    user = auth.sign_up(user_create.email, user_create.password)
    return _user_response(user)


@router.post("/sign-in", response_model=TokenResponse)
async def sign_in(
    login: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Authenticate user and return access token"""
    token = auth.sign_in(login.email, login.password)
    user = auth.get_current_user(token)
    return TokenResponse(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=_user_response(user),
    )


@router.post("/sign-out")
async def sign_out(
    token: str = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Revoke the token and drop the user's AWS session, role binding included"""
    user = auth.sign_out(token)
    if user is not None:
        registry.get(user.id).clear_all()
        registry.discard(user.id)
    return {"message": "Signed out"}


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return _user_response(user)
