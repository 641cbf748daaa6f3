"""HTTP boundary tests using FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from conftest import EXTERNAL_ID, ROLE_ARN
from spotsave.api import deps
from spotsave.core.config import settings
from spotsave.core.exceptions import PermissionDeniedError
from spotsave.main import app
from spotsave.models.schemas import CostSummary, ForecastSummary, MonthlyCost, RecommendationSummary
from spotsave.services.auth_service import AuthService
from spotsave.services.credential_store import RoleBindingRepository, SessionRegistry

PREFIX = settings.API_PREFIX
PASSWORD = "Sup3rSecret"
CREDENTIALS_BODY = {
    "accessKeyId": "ASIATEST",
    "secretAccessKey": "secret",
    "sessionToken": "token",
    "expiration": 4_000_000_000,
}


class FakeCostExplorer:

    async def get_cost_and_usage(self, credentials, start_date=None, end_date=None):
        return CostSummary(monthly_costs=[MonthlyCost(month="2024-01", amount=12.0, currency="USD")], total_cost=12.0)

    async def get_cost_forecast(self, credentials, start_date=None, end_date=None):
        return ForecastSummary()

    async def get_rightsizing_recommendations(self, credentials):
        return RecommendationSummary()


@pytest.fixture
def registry(role_assumer, repository, clock, sleep):
    return SessionRegistry(role_assumer=role_assumer, repository=repository, clock=clock, sleep=sleep)


@pytest.fixture
def client(role_assumer, registry):
    auth = AuthService()
    app.dependency_overrides[deps.get_auth_service] = lambda: auth
    app.dependency_overrides[deps.get_session_registry] = lambda: registry
    app.dependency_overrides[deps.get_role_assumer] = lambda: role_assumer
    app.dependency_overrides[deps.get_cost_explorer] = FakeCostExplorer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def token(client):
    client.post(f"{PREFIX}/auth/sign-up", json={"email": "ada@example.com", "password": PASSWORD})
    response = client.post(f"{PREFIX}/auth/sign-in", json={"email": "ada@example.com", "password": PASSWORD})
    return response.json()["access_token"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestHealth:

    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "healthy"
        response = client.get("/health")
        assert response.status_code == 200
        assert response.headers["X-Request-ID"]

    def test_version_comes_from_package(self, client):
        from spotsave import __version__

        assert client.get("/health").json()["version"] == __version__
        assert app.version == __version__
        assert not hasattr(settings, "VERSION")


class TestAwsEndpoints:

    def test_assume_role(self, client, role_assumer):
        response = client.post(f"{PREFIX}/aws/assume-role", json={"roleArn": ROLE_ARN, "externalId": f" {EXTERNAL_ID} "})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Successfully assumed role"
        assert set(body["credentials"]) == {"accessKeyId", "secretAccessKey", "sessionToken", "expiration"}
        assert role_assumer.calls == [(ROLE_ARN, EXTERNAL_ID)]

    @pytest.mark.parametrize("body,error", [
        ({"externalId": EXTERNAL_ID}, "Role ARN is required"),
        ({"roleArn": ROLE_ARN}, "External ID is required"),
        ({"roleArn": ROLE_ARN, "externalId": "bad id!"}, "Invalid external ID format"),
    ])
    def test_assume_role_bad_input(self, client, role_assumer, body, error):
        response = client.post(f"{PREFIX}/aws/assume-role", json=body)

        assert response.status_code == 400
        assert response.json()["error"].startswith(error)
        assert role_assumer.calls == []

    def test_assume_role_permission_denied(self, client, role_assumer):
        role_assumer.error = PermissionDeniedError("Access denied.")

        response = client.post(f"{PREFIX}/aws/assume-role", json={"roleArn": ROLE_ARN, "externalId": EXTERNAL_ID})

        assert response.status_code == 403
        assert response.json() == {"error": "Access denied."}

    @pytest.mark.parametrize("path", ["costs", "forecast", "recommendations"])
    def test_credentials_required(self, client, path):
        response = client.post(f"{PREFIX}/aws/{path}", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Credentials are required"}

    def test_costs_use_camel_case(self, client):
        response = client.post(f"{PREFIX}/aws/costs", json={"credentials": CREDENTIALS_BODY, "startDate": "2024-01-01"})

        assert response.status_code == 200
        body = response.json()
        assert body["totalCost"] == 12.0
        assert body["monthlyCosts"][0]["month"] == "2024-01"
        assert "serviceBreakdown" in body


class TestExportEndpoint:

    def test_csv_download(self, client):
        response = client.post(f"{PREFIX}/export", json={
            "costData": {"monthlyCosts": [{"month": "2024-01", "amount": 5, "currency": "USD"}],
                         "serviceBreakdown": [], "totalCost": 5, "currency": "USD"},
            "recommendationsData": {"recommendations": [], "totalPotentialSavings": 0},
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="spotsave-export-' in response.headers["content-disposition"]
        assert response.text.splitlines() == ["Type,Date,Service,Cost,Description", "Cost,2024-01,Total,5.00,Monthly cost"]

    def test_cost_data_required(self, client):
        assert client.post(f"{PREFIX}/export", json={}).status_code == 400

    def test_recommendations_required(self, client):
        response = client.post(f"{PREFIX}/export", json={"costData": {"monthlyCosts": []}})

        assert response.status_code == 400
        assert response.json() == {"error": "Cost data and recommendations are required"}


class TestPolicyEndpoints:

    def test_trust_policy(self, client):
        response = client.get(f"{PREFIX}/policies/trust", params={"accountId": "210987654321", "externalId": "ext-1"})

        assert response.status_code == 200
        statement = response.json()["Statement"][0]
        assert statement["Condition"]["StringEquals"]["sts:ExternalId"] == "ext-1"

    def test_trust_policy_bad_account(self, client):
        response = client.get(f"{PREFIX}/policies/trust", params={"accountId": "42", "externalId": "ext-1"})
        assert response.status_code == 400

    def test_cloudformation_download(self, client):
        response = client.get(f"{PREFIX}/policies/cloudformation", params={"externalId": "ext-1"})

        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert "Default: 'ext-1'" in response.text

    def test_external_id_and_role_arn(self, client):
        assert client.get(f"{PREFIX}/policies/external-id").json()["externalId"].startswith("spotsave-")
        response = client.get(f"{PREFIX}/policies/role-arn", params={"accountId": "123456789012"})
        assert response.json() == {"roleArn": "arn:aws:iam::123456789012:role/SpotSaveReadOnlyRole"}


class TestAuthEndpoints:

    def test_me_requires_token(self, client):
        assert client.get(f"{PREFIX}/auth/me").status_code == 401

    def test_weak_password_rejected(self, client):
        response = client.post(f"{PREFIX}/auth/sign-up", json={"email": "ada@example.com", "password": "short"})
        assert response.status_code == 422
        assert "at least 8 characters" in response.json()["error"]

    def test_duplicate_sign_up(self, client, token):
        response = client.post(f"{PREFIX}/auth/sign-up", json={"email": "ada@example.com", "password": PASSWORD})
        assert response.status_code == 400

    def test_wrong_password(self, client, token):
        response = client.post(f"{PREFIX}/auth/sign-in", json={"email": "ada@example.com", "password": "Wr0ngPassword"})
        assert response.status_code == 401
        assert response.json() == {"error": "Incorrect email or password"}

    def test_me_and_sign_out(self, client, token):
        assert client.get(f"{PREFIX}/auth/me", headers=bearer(token)).json()["email"] == "ada@example.com"

        assert client.post(f"{PREFIX}/auth/sign-out", headers=bearer(token)).status_code == 200

        assert client.get(f"{PREFIX}/auth/me", headers=bearer(token)).status_code == 401


class TestSessionEndpoints:

    def test_connect_status_dashboard_disconnect(self, client, token, repository):
        headers = bearer(token)

        status = client.get(f"{PREFIX}/session/status", headers=headers).json()
        assert status["state"] == "disconnected"

        response = client.post(f"{PREFIX}/session/connect", headers=headers,
                               json={"roleArn": ROLE_ARN, "externalId": EXTERNAL_ID})
        assert response.status_code == 200
        assert response.json()["isConnected"]
        assert response.json()["accountId"] == "123456789012"
        assert "secretAccessKey" not in response.text

        dashboard = client.get(f"{PREFIX}/session/dashboard", headers=headers).json()
        assert dashboard["isMock"] is False
        assert dashboard["costData"]["totalCost"] == 12.0

        assert client.post(f"{PREFIX}/session/refresh", headers=headers).json()["isConnected"]

        response = client.post(f"{PREFIX}/session/disconnect", headers=headers)
        assert response.json()["state"] == "disconnected"
        assert response.json()["roleArn"] == ROLE_ARN

        response = client.post(f"{PREFIX}/session/disconnect", headers=headers, params={"forgetRole": "true"})
        assert response.json()["roleArn"] is None

    def test_dashboard_without_connection_is_sample_data(self, client, token):
        assert client.get(f"{PREFIX}/session/dashboard", headers=bearer(token)).json()["isMock"] is True

    def test_refresh_without_binding(self, client, token):
        response = client.post(f"{PREFIX}/session/refresh", headers=bearer(token))
        assert response.status_code == 409

    def test_sign_out_forgets_role_binding(self, client, token, registry, repository):
        headers = bearer(token)
        client.post(f"{PREFIX}/session/connect", headers=headers, json={"roleArn": ROLE_ARN, "externalId": EXTERNAL_ID})
        user_id = client.get(f"{PREFIX}/auth/me", headers=headers).json()["id"]
        assert repository.load(user_id) is not None

        client.post(f"{PREFIX}/auth/sign-out", headers=headers)

        assert repository.load(user_id) is None
        assert registry.stores() == []

    def test_session_requires_token(self, client):
        assert client.get(f"{PREFIX}/session/status").status_code == 401


class FailingRepository(RoleBindingRepository):

    def save(self, user_id, binding):
        raise OSError("disk full")


class TestErrorBodies:

    def test_malformed_connect_body(self, client, token):
        response = client.post(f"{PREFIX}/session/connect", headers=bearer(token), json={"roleArn": ROLE_ARN})

        assert response.status_code == 422
        assert response.json()["error"].startswith("Invalid request: body.externalId")

    def test_unexpected_failure_is_json(self, client, token, role_assumer, clock, sleep, tmp_path):
        registry = SessionRegistry(
            role_assumer=role_assumer, repository=FailingRepository(tmp_path), clock=clock, sleep=sleep,
        )
        app.dependency_overrides[deps.get_session_registry] = lambda: registry
        lenient = TestClient(app, raise_server_exceptions=False)

        response = lenient.post(f"{PREFIX}/session/connect", headers=bearer(token),
                                json={"roleArn": ROLE_ARN, "externalId": EXTERNAL_ID})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
