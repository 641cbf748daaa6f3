from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from spotsave.services.auth_service import AuthService, User, auth_service
from spotsave.services.cost_explorer_service import CostExplorerService, cost_explorer_service
from spotsave.services.credential_store import CredentialStore, SessionRegistry, session_registry
from spotsave.services.sts_service import RoleAssumptionService, role_assumption_service

# JWT Bearer token
security = HTTPBearer(auto_error=False)


def get_auth_service() -> AuthService:
    return auth_service


def get_session_registry() -> SessionRegistry:
    return session_registry


def get_role_assumer() -> RoleAssumptionService:
    return role_assumption_service


def get_cost_explorer() -> CostExplorerService:
    return cost_explorer_service


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    if credentials is None or not credentials.credentials:
        raise _unauthorized()
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the bearer token to a user or answer 401"""
    user = auth.get_current_user(token)
    if user is None:
        raise _unauthorized()
    return user


async def get_session_store(
    user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_session_registry),
) -> CredentialStore:
    return registry.get(user.id)
