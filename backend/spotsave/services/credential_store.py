"""Per-session credential state and the persisted role bindings behind it.

A CredentialStore is either disconnected (no credentials) or connected
(credentials plus the role binding they came from). Connected stores are
refreshed in place before the credentials expire; a failed refresh keeps
the stale credentials and relies on the expiry check to force a reconnect.
Only the role binding is ever written to disk.
"""

import asyncio
import json
import os
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from spotsave.core.config import settings
from spotsave.core.exceptions import InvalidRoleError, ValidationError
from spotsave.models.schemas import (
    AWSCredentials,
    CostSummary,
    ForecastSummary,
    RecommendationSummary,
    RoleBinding,
)
from spotsave.schemas.aws import SessionStatus
from spotsave.services.retry import retry_with_backoff
from spotsave.services.sts_service import (
    RoleAssumptionService,
    are_credentials_expired,
    role_assumption_service,
)
from spotsave.utils.validation import (
    extract_account_id_from_arn,
    sanitize_external_id,
    validate_external_id,
)

logger = structlog.get_logger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class RefreshOutcome(str, Enum):
    REFRESHED = "refreshed"
    SKIPPED = "skipped"
    FAILED = "failed"


class RoleBindingRepository:
    """JSON file of role bindings keyed by user ID."""

    def __init__(self, state_dir: Optional[Path] = None):
        """Initialize the repository.

        Args:
            state_dir: Directory holding role_bindings.json. Defaults to
                       settings.STATE_DIR; created on first save.
        """
        self.state_dir = Path(state_dir or settings.STATE_DIR).expanduser()
        self.bindings_file = self.state_dir / "role_bindings.json"

    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        if not self.bindings_file.exists():
            return {}
        try:
            with open(self.bindings_file, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable role bindings file",
                           path=str(self.bindings_file), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Dict[str, Any]]) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)

        # Write atomically by writing to temp file first
        temp_file = self.bindings_file.with_suffix('.tmp')
        try:
            with open(temp_file, 'w') as f:
                json.dump(data, f, indent=2)
            os.chmod(temp_file, 0o600)
            temp_file.replace(self.bindings_file)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def load(self, user_id: str) -> Optional[RoleBinding]:
        raw = self._read_all().get(user_id)
        if not raw:
            return None
        try:
            return RoleBinding.model_validate(raw)
        except ValueError as e:
            logger.warning("Ignoring invalid role binding", user_id=user_id, error=str(e))
            return None

    def save(self, user_id: str, binding: RoleBinding) -> None:
        data = self._read_all()
        data[user_id] = binding.model_dump(by_alias=True)
        self._write_all(data)

    def delete(self, user_id: str) -> None:
        data = self._read_all()
        if data.pop(user_id, None) is not None:
            self._write_all(data)


class CredentialStore:
    """Credentials, role binding and cached summaries for one signed-in user"""

    def __init__(
        self,
        user_id: str,
        role_assumer: RoleAssumptionService = None,
        repository: Optional[RoleBindingRepository] = None,
        clock: Callable[[], float] = time.time,
        refresh_interval: Optional[float] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.user_id = user_id
        self.role_assumer = role_assumer or role_assumption_service
        self.repository = repository
        self.clock = clock
        self.refresh_interval = (
            settings.CREDENTIAL_REFRESH_INTERVAL_SECONDS if refresh_interval is None else refresh_interval
        )
        self.sleep = sleep

        self.credentials: Optional[AWSCredentials] = None
        self.role_binding: Optional[RoleBinding] = repository.load(user_id) if repository else None
        self.cost_data: Optional[CostSummary] = None
        self.forecast_data: Optional[ForecastSummary] = None
        self.recommendations_data: Optional[RecommendationSummary] = None
        # Owned by the single in-flight refresh_credentials call
        self.is_refreshing = False
        self.last_refresh: Optional[float] = None
        # Bumped whenever credentials are replaced or cleared outside a refresh
        self._generation = 0

    @property
    def is_connected(self) -> bool:
        return self.credentials is not None

    @property
    def state(self) -> ConnectionState:
        return ConnectionState.CONNECTED if self.is_connected else ConnectionState.DISCONNECTED

    def set_credentials(self, credentials: AWSCredentials) -> None:
        self.credentials = credentials
        self.last_refresh = self.clock()

    def set_role_info(self, role_arn: str, account_id: str, external_id: str) -> None:
        self.role_binding = RoleBinding(role_arn=role_arn, account_id=account_id, external_id=external_id)
        if self.repository:
            self.repository.save(self.user_id, self.role_binding)

    def set_cost_data(self, data: CostSummary) -> None:
        self.cost_data = data

    def set_forecast_data(self, data: ForecastSummary) -> None:
        self.forecast_data = data

    def set_recommendations_data(self, data: RecommendationSummary) -> None:
        self.recommendations_data = data

    async def _assume(self, binding: RoleBinding) -> AWSCredentials:
        return await retry_with_backoff(
            lambda: self.role_assumer.assume_role(binding.role_arn, binding.external_id),
            sleep=self.sleep,
        )

    async def connect(self, role_arn: str, external_id: str) -> AWSCredentials:
        """Assume the role, then bind it to this session.

        Nothing is stored unless role assumption succeeds.
        """
        role_arn = role_arn.strip()
        external_id = sanitize_external_id(external_id)
        if not validate_external_id(external_id):
            raise ValidationError(
                "Invalid external ID format. Must be alphanumeric with hyphens/underscores, 2-1224 characters."
            )

        account_id = extract_account_id_from_arn(role_arn)
        if account_id is None:
            raise InvalidRoleError(
                f"Invalid role ARN format: {role_arn}. "
                "Expected format: arn:aws:iam::ACCOUNT_ID:role/ROLE_NAME"
            )

        binding = RoleBinding(role_arn=role_arn, account_id=account_id, external_id=external_id)
        credentials = await self._assume(binding)

        self._generation += 1
        self.set_role_info(role_arn, account_id, external_id)
        self.set_credentials(credentials)
        logger.info("AWS account connected", user_id=self.user_id, role_arn=role_arn)
        return credentials

    async def refresh_credentials(self) -> RefreshOutcome:
        """Re-assume the bound role; failures are logged and leave credentials untouched"""
        binding = self.role_binding
        if binding is None or self.is_refreshing:
            return RefreshOutcome.SKIPPED

        self.is_refreshing = True
        generation = self._generation
        try:
            credentials = await self._assume(binding)
            if generation != self._generation:
                logger.info("Discarding refreshed credentials for a reset session", user_id=self.user_id)
                return RefreshOutcome.SKIPPED
            self.set_credentials(credentials)
            logger.info("Refreshed AWS credentials", user_id=self.user_id, expiration=credentials.expiration)
            return RefreshOutcome.REFRESHED
        except Exception as e:
            logger.error("Failed to refresh credentials",
                         user_id=self.user_id,
                         role_arn=binding.role_arn,
                         error=str(e))
            return RefreshOutcome.FAILED
        finally:
            self.is_refreshing = False

    def refresh_due(self) -> bool:
        return (
            self.credentials is not None
            and self.last_refresh is not None
            and not self.is_refreshing
            and self.clock() - self.last_refresh > self.refresh_interval
        )

    async def maybe_refresh(self) -> RefreshOutcome:
        """Timer tick: refresh only when the refresh interval has elapsed"""
        if not self.refresh_due():
            return RefreshOutcome.SKIPPED
        return await self.refresh_credentials()

    def credentials_expired(self, buffer_minutes: int = None) -> bool:
        if self.credentials is None:
            return True
        return are_credentials_expired(self.credentials, buffer_minutes, now=self.clock())

    def clear_credentials(self) -> None:
        """Drop credentials but keep the role binding for a later reconnect"""
        self._generation += 1
        self.credentials = None
        self.last_refresh = None
        logger.info("Cleared AWS credentials", user_id=self.user_id)

    def clear_all(self) -> None:
        """Forget everything, including the persisted role binding"""
        self._generation += 1
        self.credentials = None
        self.role_binding = None
        self.cost_data = None
        self.forecast_data = None
        self.recommendations_data = None
        self.last_refresh = None
        if self.repository:
            self.repository.delete(self.user_id)
        logger.info("Cleared session state", user_id=self.user_id)

    def snapshot(self) -> Dict[str, Any]:
        """The persistable part of the store; credentials are never included"""
        if self.role_binding is None:
            return {}
        return self.role_binding.model_dump(by_alias=True)

    def status(self) -> SessionStatus:
        binding = self.role_binding
        return SessionStatus(
            state=self.state.value,
            is_connected=self.is_connected,
            is_refreshing=self.is_refreshing,
            role_arn=binding.role_arn if binding else None,
            account_id=binding.account_id if binding else None,
            expiration=self.credentials.expiration if self.credentials else None,
            last_refresh=self.last_refresh,
            credentials_expired=self.credentials_expired(),
        )


class SessionRegistry:
    """One CredentialStore per user, created on first use.

    Stores not requested for longer than the idle timeout are evicted on the
    next refresh tick: their credentials are dropped and the background
    refresh stops. The persisted role binding is kept for a later reconnect.
    """

    def __init__(
        self,
        role_assumer: RoleAssumptionService = None,
        repository: Optional[RoleBindingRepository] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Any] = asyncio.sleep,
        idle_timeout: Optional[float] = None,
    ):
        self.role_assumer = role_assumer or role_assumption_service
        self.repository = repository
        self.clock = clock
        self.sleep = sleep
        self.idle_timeout = (
            settings.SESSION_IDLE_TIMEOUT_MINUTES * 60 if idle_timeout is None else idle_timeout
        )
        self._stores: Dict[str, CredentialStore] = {}
        self._last_seen: Dict[str, float] = {}

    def get(self, user_id: str) -> CredentialStore:
        store = self._stores.get(user_id)
        if store is None:
            store = CredentialStore(
                user_id,
                role_assumer=self.role_assumer,
                repository=self.repository,
                clock=self.clock,
                sleep=self.sleep,
            )
            self._stores[user_id] = store
        self._last_seen[user_id] = self.clock()
        return store

    def discard(self, user_id: str) -> None:
        self._stores.pop(user_id, None)
        self._last_seen.pop(user_id, None)

    def stores(self) -> List[CredentialStore]:
        return list(self._stores.values())

    def evict_idle(self) -> List[str]:
        """Drop stores idle past the timeout; returns the evicted user IDs"""
        now = self.clock()
        idle = [
            user_id for user_id, seen in self._last_seen.items()
            if now - seen > self.idle_timeout
        ]
        for user_id in idle:
            self._stores[user_id].clear_credentials()
            self.discard(user_id)
            logger.info("Evicted idle session", user_id=user_id)
        return idle

    async def refresh_due(self) -> Dict[str, RefreshOutcome]:
        """Evict idle stores, then tick the rest once; returns each user's refresh outcome"""
        self.evict_idle()
        stores = self.stores()
        outcomes = await asyncio.gather(*(store.maybe_refresh() for store in stores))
        return {store.user_id: outcome for store, outcome in zip(stores, outcomes)}


# Global instance
session_registry = SessionRegistry(repository=RoleBindingRepository())
