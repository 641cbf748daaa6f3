"""Cross-account role assumption through AWS STS.

Provider errors are translated through ASSUME_ROLE_ERROR_RULES, an ordered
table of error-code and message signatures. Telling "role not found" apart
from "external ID mismatch" depends on STS message wording and is best
effort: STS usually reports both as AccessDenied, which maps to
PermissionDeniedError.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type

import structlog
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from spotsave.core.config import settings
from spotsave.core.exceptions import (
    InvalidRoleError,
    PermissionDeniedError,
    SpotSaveError,
    TransientProviderError,
    UnknownProviderError,
)
from spotsave.models.schemas import AWSCredentials
from spotsave.services.aws_client import AWSClientManager, aws_client_manager
from spotsave.utils.validation import validate_role_arn

logger = structlog.get_logger(__name__)

NETWORK_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ConnectionClosedError)


@dataclass(frozen=True)
class ErrorRule:
    """One row of the provider error translation table"""
    error_class: Type[SpotSaveError]
    message: str
    codes: Tuple[str, ...] = ()
    substrings: Tuple[str, ...] = ()

    def matches(self, code: str, text: str) -> bool:
        return code in self.codes or any(s in text for s in self.substrings)


ASSUME_ROLE_ERROR_RULES: Tuple[ErrorRule, ...] = (
    ErrorRule(
        PermissionDeniedError,
        "Access denied. Please verify the role ARN and external ID are correct, "
        "and that the trust policy allows this application to assume the role.",
        codes=("AccessDenied", "AccessDeniedException"),
        substrings=("AccessDenied",),
    ),
    ErrorRule(
        InvalidRoleError,
        "Role not found: {role_arn}. Please verify the role exists in your AWS account.",
        codes=("InvalidUserID.NotFound", "NoSuchEntity"),
        substrings=("InvalidUserID.NotFound",),
    ),
    ErrorRule(
        PermissionDeniedError,
        "Invalid external ID. Please verify the external ID matches the one "
        "configured in the role's trust policy.",
        substrings=("ExternalId",),
    ),
    ErrorRule(
        TransientProviderError,
        "AWS STS is temporarily unavailable: {error}",
        codes=(
            "Throttling",
            "ThrottlingException",
            "RequestLimitExceeded",
            "TooManyRequestsException",
            "ServiceUnavailable",
            "InternalFailure",
            "InternalError",
            "RequestTimeout",
            "RequestTimeoutException",
            "IDPCommunicationError",
        ),
    ),
)


def _error_signature(error: Exception) -> Tuple[str, str]:
    """Return (error code, searchable text) for a provider exception"""
    if isinstance(error, ClientError):
        err = error.response.get('Error', {})
        code = err.get('Code', 'Unknown')
        message = err.get('Message', str(error))
        return code, f"{code}: {message} {error}"
    return type(error).__name__, f"{type(error).__name__}: {error}"


def translate_provider_error(error: Exception, role_arn: str = "") -> SpotSaveError:
    """Map an STS failure onto the SpotSave error taxonomy.

    Unmatched failures become UnknownProviderError carrying the original message.
    """
    if isinstance(error, SpotSaveError):
        return error

    if isinstance(error, NETWORK_ERRORS):
        return TransientProviderError(f"AWS STS is temporarily unavailable: {error}")

    code, text = _error_signature(error)
    for rule in ASSUME_ROLE_ERROR_RULES:
        if rule.matches(code, text):
            return rule.error_class(
                rule.message.format(role_arn=role_arn, error=error),
                details={"error_code": code},
            )

    return UnknownProviderError(f"Failed to assume role: {error}", details={"error_code": code})


def are_credentials_expired(
    credentials: AWSCredentials,
    buffer_minutes: int = None,
    now: Optional[float] = None,
) -> bool:
    """True once ``now`` is within ``buffer_minutes`` of the expiration."""
    buffer_minutes = settings.CREDENTIAL_EXPIRY_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
    now = time.time() if now is None else now
    return now >= credentials.expiration - buffer_minutes * 60


class RoleAssumptionService:
    """Obtains short-lived credentials for a customer role"""

    def __init__(
        self,
        client_manager: AWSClientManager = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client_manager = client_manager or aws_client_manager
        self.clock = clock

    async def assume_role(
        self,
        role_arn: str,
        external_id: str,
        session_name: str = None,
        duration_seconds: int = None,
    ) -> AWSCredentials:
        """Assume ``role_arn`` presenting ``external_id``.

        Raises:
            InvalidRoleError: If the ARN is malformed (STS is not called) or the role is missing.
            PermissionDeniedError: If the trust policy or external ID rejects the request.
            TransientProviderError: On throttling or network failures.
            UnknownProviderError: For anything else.
        """
        if not validate_role_arn(role_arn):
            raise InvalidRoleError(
                f"Invalid role ARN format: {role_arn}. "
                "Expected format: arn:aws:iam::ACCOUNT_ID:role/ROLE_NAME"
            )

        session_name = session_name or settings.ROLE_SESSION_NAME
        duration_seconds = duration_seconds or settings.ROLE_SESSION_DURATION_SECONDS

        def _assume_sync():
            sts_client = self.client_manager.get_sts_client()
            return sts_client.assume_role(
                RoleArn=role_arn,
                RoleSessionName=session_name,
                ExternalId=external_id,
                DurationSeconds=duration_seconds,
            )

        logger.info("Assuming IAM role", role_arn=role_arn, duration_seconds=duration_seconds)
        response = await self.client_manager.invoke(
            "sts:AssumeRole",
            _assume_sync,
            translate=lambda e: translate_provider_error(e, role_arn),
        )

        credentials = response.get('Credentials')
        if not credentials:
            raise UnknownProviderError("Failed to assume role: no credentials returned from STS")

        expiration = credentials.get('Expiration')
        if expiration is not None:
            expires_at = int(expiration.timestamp())
        else:
            expires_at = int(self.clock()) + duration_seconds

        logger.info("Successfully assumed IAM role", role_arn=role_arn, expiration=expires_at)
        return AWSCredentials(
            access_key_id=credentials.get('AccessKeyId', ''),
            secret_access_key=credentials.get('SecretAccessKey', ''),
            session_token=credentials.get('SessionToken', ''),
            expiration=expires_at,
        )


# Global instance
role_assumption_service = RoleAssumptionService()
