import boto3
from typing import Any, Callable, Optional, TypeVar
from enum import Enum
import structlog
import asyncio
from concurrent.futures import ThreadPoolExecutor
import functools

from spotsave.core.config import settings
from spotsave.models.schemas import AWSCredentials

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class FailurePolicy(str, Enum):
    """What an external call does when the provider fails"""
    RAISE = "raise"      # translate and propagate
    DEGRADE = "degrade"  # log a warning and return the fallback value


class AWSClientManager:
    """Builds boto3 clients and runs their blocking calls off the event loop"""

    def __init__(self, max_workers: int = 10):
        self._executor = ThreadPoolExecutor(max_workers=max_workers)

    def _get_base_session(self) -> boto3.Session:
        """Get the base AWS session; falls back to the default credential chain"""
        return boto3.Session(
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION
        )

    def get_sts_client(self) -> Any:
        """STS client signed with the service's own credentials"""
        return self._get_base_session().client('sts')

    def get_cost_explorer_client(self, credentials: AWSCredentials) -> Any:
        """Cost Explorer client signed with assumed-role credentials"""
        session = boto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
            region_name=settings.COST_EXPLORER_REGION
        )
        return session.client('ce')

    async def run_sync(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking boto3 call in the thread pool"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))

    async def invoke(
        self,
        operation: str,
        call: Callable[[], T],
        policy: FailurePolicy = FailurePolicy.RAISE,
        translate: Optional[Callable[[Exception], Exception]] = None,
        fallback: Optional[Callable[[], T]] = None,
    ) -> T:
        """Invoke an external service call under an explicit failure policy.

        With RAISE, failures are passed through ``translate`` (when given) and
        re-raised. With DEGRADE, failures are logged as warnings and the
        ``fallback`` value is returned instead.
        """
        try:
            return await self.run_sync(call)
        except Exception as e:
            if policy is FailurePolicy.DEGRADE:
                logger.warning("External call failed, returning fallback", operation=operation, error=str(e))
                return fallback() if fallback else None

            logger.error("External call failed", operation=operation, error=str(e))
            if translate is not None:
                raise translate(e) from e
            raise

    def shutdown(self):
        self._executor.shutdown(wait=False)


# Global instance
aws_client_manager = AWSClientManager()
