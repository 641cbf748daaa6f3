"""
Pytest configuration and shared fixtures for SpotSave tests.
"""

import asyncio
from typing import List

import pytest

from spotsave.models.schemas import AWSCredentials
from spotsave.services.credential_store import RoleBindingRepository

ROLE_ARN = "arn:aws:iam::123456789012:role/SpotSaveReadOnlyRole"
EXTERNAL_ID = "spotsave-test-external-id"


class FakeClock:
    """Manually advanced replacement for time.time"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that records requested delays and returns immediately"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeRoleAssumer:
    """Stands in for RoleAssumptionService; hands out numbered credentials"""

    def __init__(self, clock: FakeClock, lifetime: int = 1800):
        self.clock = clock
        self.lifetime = lifetime
        self.calls = []
        self.error = None
        self.gate = None

    async def assume_role(self, role_arn, external_id, session_name=None, duration_seconds=None):
        self.calls.append((role_arn, external_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return make_credentials(int(self.clock()) + self.lifetime, suffix=str(len(self.calls)))


def make_credentials(expiration: int, suffix: str = "1") -> AWSCredentials:
    return AWSCredentials(
        access_key_id=f"ASIATESTKEY{suffix}",
        secret_access_key=f"secret-{suffix}",
        session_token=f"token-{suffix}",
        expiration=expiration,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def role_assumer(clock):
    return FakeRoleAssumer(clock)


@pytest.fixture
def repository(tmp_path):
    return RoleBindingRepository(state_dir=tmp_path / "state")


@pytest.fixture
def gate():
    return asyncio.Event()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
