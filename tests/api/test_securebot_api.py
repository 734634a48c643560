"""
Tests for the HTTP layer: status codes and JSON error shapes.

The pipeline is replaced with a stub whose methods return canned payloads
or raise the service exceptions each endpoint has to translate.
"""

import pytest
from fastapi.testclient import TestClient

from backend.app.main import app
from backend.app.services import shared
from backend.app.services.errors import (
    AIConfigurationError, AppNotInstalledError, ConfigurationError, InvalidRequestError,
    OracleRateLimitedError, RepositoryNotFoundError, WorkspaceError,
)

INSTALL_URL = "https://github.com/apps/securebot/installations/new"


class StubPipeline:
    """Raises ``error`` from every run when set, otherwise echoes its arguments."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def _maybe_raise(self):
        if self.error is not None:
            raise self.error

    def _require(self, repo_id, username):
        if not repo_id or not username:
            raise InvalidRequestError("Repository ID and username are required")

    def installation_status(self, username):
        self.calls.append(("installation_status", username))
        self._maybe_raise()
        return {"success": True, "installed": True, "repositories": [], "repository_count": 0}

    def user_repositories(self, username):
        self.calls.append(("user_repositories", username))
        self._maybe_raise()
        return {"success": True, "installed": True, "username": username, "repositories": []}

    def scan(self, repo_id, username):
        self.calls.append(("scan", repo_id, username))
        self._require(repo_id, username)
        self._maybe_raise()
        return {"success": True, "message": "Repository scanned successfully", "clone_action": "cloned"}

    def fix(self, repo_id, username):
        self.calls.append(("fix", repo_id, username))
        self._require(repo_id, username)
        self._maybe_raise()
        return {"success": True, "message": "No security issues found", "fix_results": None,
                "pull_request": None}

    def cloned_repositories(self):
        self._maybe_raise()
        return {"success": True, "count": 0, "cloned_repositories": []}

    def scan_logs(self):
        return {"success": True, "scan_logs": [{"repoId": 42, "status": "cloning"}], "count": 1}


@pytest.fixture
def stub(monkeypatch):
    pipeline = StubPipeline()
    monkeypatch.setattr(shared, "get_pipeline", lambda: pipeline)
    return pipeline


@pytest.fixture
def client(stub):
    return TestClient(app)


class TestServiceEndpoints:
    """Banner, health and diagnostics."""

    def test_root_banner(self, client):
        body = client.get("/").json()
        assert body["message"].startswith("🔒 SecureBot")
        assert body["endpoints"]["fix_and_create_pr"] == "POST /api/fix"

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["message"] == "SecureBot API is running"

    def test_scan_logs(self, client):
        body = client.get("/api/scan/logs").json()
        assert body["count"] == 1
        assert body["scan_logs"][0]["repoId"] == 42

    def test_cloned_repositories_failure(self, client, stub):
        stub.error = WorkspaceError("Failed to get cloned repositories: permission denied")
        response = client.get("/api/repositories/cloned")
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to get cloned repositories"


class TestInstallationEndpoints:
    """Installation status and repository listing."""

    def test_installed(self, client, stub):
        response = client.get("/api/installation/status", params={"username": "octocat"})
        assert response.status_code == 200
        assert response.json()["installed"] is True
        assert stub.calls == [("installation_status", "octocat")]

    def test_missing_username_is_400(self, client, stub):
        stub.error = InvalidRequestError("Username is required")
        response = client.get("/api/installation/status")
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Username is required",
                                   "message": "Username is required"}

    def test_not_installed_is_reported_in_body(self, client, stub):
        stub.error = AppNotInstalledError("stranger", INSTALL_URL)
        response = client.get("/api/installation/status", params={"username": "stranger"})
        assert response.status_code == 200
        body = response.json()
        assert body["installed"] is False
        assert body["install_url"] == INSTALL_URL

    def test_user_repositories_not_installed(self, client, stub):
        stub.error = AppNotInstalledError("stranger", INSTALL_URL)
        body = client.get("/api/user/stranger/repositories").json()
        assert body["repositories"] == []
        assert body["repository_count"] == 0

    def test_missing_credentials_is_500_with_solution(self, client, stub):
        stub.error = ConfigurationError("GitHub App credentials missing")
        response = client.get("/api/user/octocat/repositories")
        assert response.status_code == 500
        assert response.json()["error"] == "Service configuration error"
        assert "GITHUB_APP_ID" in response.json()["solution"]


class TestRunEndpoints:
    """POST /scan and POST /fix."""

    def test_scan_passes_request_fields(self, client, stub):
        response = client.post("/api/scan", json={"repoId": 42, "username": "octocat"})
        assert response.status_code == 200
        assert response.json()["clone_action"] == "cloned"
        assert stub.calls == [("scan", 42, "octocat")]

    @pytest.mark.parametrize("error,status_code,error_text", [
        (InvalidRequestError("Repository ID and username are required"), 400,
         "Repository ID and username are required"),
        (AppNotInstalledError("stranger", INSTALL_URL), 403, "GitHub App not installed"),
        (WorkspaceError(f"Failed to clone repository: {RepositoryNotFoundError(7)}"), 500,
         "Failed to scan repository"),
        (WorkspaceError("Failed to clone repository: boom"), 500, "Failed to scan repository"),
    ])
    def test_scan_failures(self, client, stub, error, status_code, error_text):
        stub.error = error
        response = client.post("/api/scan", json={"repoId": 7, "username": "stranger"})
        assert response.status_code == status_code
        body = response.json()
        assert body["success"] is False
        assert body["error"] == error_text

    def test_scan_not_installed_carries_install_url(self, client, stub):
        stub.error = AppNotInstalledError("stranger", INSTALL_URL)
        body = client.post("/api/scan", json={"repoId": 1, "username": "stranger"}).json()
        assert body["install_url"] == INSTALL_URL

    def test_fix_success(self, client):
        response = client.post("/api/fix", json={"repoId": "42", "username": "octocat"})
        assert response.status_code == 200
        assert response.json()["pull_request"] is None

    def test_fix_rate_limited_is_429(self, client, stub):
        stub.error = OracleRateLimitedError("Quota exceeded")
        response = client.post("/api/fix", json={"repoId": 42, "username": "octocat"})
        assert response.status_code == 429
        assert response.json()["error"] == "AI service rate limit exceeded"
        assert response.json()["solution"] == "Please try again in a few minutes"

    def test_fix_missing_ai_key_is_500(self, client, stub):
        stub.error = AIConfigurationError("LLM_API_KEY not found in environment variables")
        response = client.post("/api/fix", json={"repoId": 42, "username": "octocat"})
        assert response.status_code == 500
        assert response.json()["error"] == "AI service configuration error"

    def test_fix_generic_failure(self, client, stub):
        stub.error = WorkspaceError("Failed to commit and push changes: rejected")
        response = client.post("/api/fix", json={"repoId": 42, "username": "octocat"})
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to fix repository and create PR"
        assert "rejected" in response.json()["message"]


class TestRequestBodies:
    """Missing and malformed bodies on the run endpoints are 400s in the API error shape."""

    @pytest.mark.parametrize("path", ["/api/scan", "/api/fix"])
    def test_no_body_is_400(self, client, stub, path):
        response = client.post(path)
        assert response.status_code == 400
        assert response.json() == {"success": False,
                                   "error": "Repository ID and username are required",
                                   "message": "Repository ID and username are required"}
        assert stub.calls[0][1:] == (None, None)

    @pytest.mark.parametrize("path", ["/api/scan", "/api/fix"])
    def test_empty_object_is_400(self, client, path):
        response = client.post(path, json={})
        assert response.status_code == 400
        assert response.json()["error"] == "Repository ID and username are required"

    def test_missing_username_is_400(self, client, stub):
        response = client.post("/api/fix", json={"repoId": 42})
        assert response.status_code == 400
        assert stub.calls == [("fix", 42, None)]

    @pytest.mark.parametrize("path", ["/api/scan", "/api/fix"])
    def test_malformed_json_is_400(self, client, stub, path):
        response = client.post(path, content="{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Invalid request body"
        assert body["message"]
        assert stub.calls == []

    def test_wrongly_typed_field_is_400(self, client, stub):
        response = client.post("/api/scan", json={"repoId": {"id": 42}, "username": "octocat"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"
        assert stub.calls == []
