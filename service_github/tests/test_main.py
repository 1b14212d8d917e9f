"""
Unit tests for the GitHub proxy service.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_github.app.adapters.github_client import UpstreamResponse
from service_github.app.main import GitHubProxyService, create_app
from shared.errors import UpstreamError

from .conftest import TEST_API_KEY, TEST_PASSWORD, make_github_client, make_settings

AUTH = {"x-password": TEST_PASSWORD}


class TestPublicEndpoints:
    """Unauthenticated routes."""

    @pytest.fixture
    def client(self, settings, github_client):
        """Create test client."""
        return TestClient(create_app(settings, github_client=github_client))

    def test_root_endpoint(self, client):
        """Test root documentation endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "GitHub Backend API"
        assert data["status"] == "running"
        assert "authentication" in data["documentation"]

    def test_status_reports_configuration(self, client):
        """Test status endpoint."""
        response = client.get("/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["github_token_configured"] is True
        assert data["api_key_configured"] is False

    @pytest.mark.parametrize("path", ["/health", "/status"])
    def test_health_without_token(self, path):
        """Test health answers 200 and reports a missing token."""
        client = TestClient(create_app(make_settings(github_token=None)))

        response = client.get(path, headers={"x-password": "wrong"})

        assert response.status_code == 200
        assert response.json()["github_token_configured"] is False

    @pytest.mark.parametrize("path", ["/health", "/status"])
    def test_health_with_token(self, client, path):
        """Test health reports a configured token regardless of credentials."""
        response = client.get(path)

        assert response.status_code == 200
        assert response.json()["github_token_configured"] is True

    def test_health_checks(self, client):
        """Test detailed health checks."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["checks"] == {"server": "ok", "github_api": "configured", "authentication": "secure"}

    def test_health_default_password_is_degraded(self):
        """Test the insecure default password is flagged."""
        client = TestClient(create_app(make_settings(backend_password="change-this-secure-password")))

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["checks"]["authentication"] == "default_password"

    def test_metrics_endpoint(self, client):
        """Test Prometheus exposition."""
        client.get("/status")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_unknown_route(self, client):
        """Test 404 envelope for unknown routes."""
        response = client.get("/nope")

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "NOT_FOUND"
        assert data["message"] == "The endpoint GET /nope does not exist"
        assert "timestamp" in data

    def test_security_headers_and_request_id(self, client):
        """Test helmet-style headers and request correlation."""
        response = client.get("/", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Request-ID"] == "abc-123"


class TestAccessGateWiring:
    """Gate applied to /github routes."""

    @pytest.fixture
    def client(self, github_client):
        """Client with an API key configured."""
        app = create_app(make_settings(api_key=TEST_API_KEY), github_client=github_client)
        return TestClient(app)

    @pytest.mark.parametrize("headers,params", [
        ({}, {}),
        ({"x-password": "wrong"}, {}),
        ({"x-api-key": "wrong"}, {}),
        ({}, {"password": ""}),
        ({}, {"password": "wrong", "api_key": "wrong"}),
    ])
    def test_rejected(self, client, github_client, headers, params):
        """Test unauthorized requests never reach GitHub."""
        response = client.get("/github/user", headers=headers, params=params)

        assert response.status_code == 401
        data = response.json()
        assert data["code"] == "UNAUTHORIZED"
        assert data["error"] == "Unauthorized: Invalid credentials"
        assert "timestamp" in data
        github_client.get_authenticated_user.assert_not_called()

    @pytest.mark.parametrize("headers,params", [
        ({"x-password": TEST_PASSWORD}, {}),
        ({}, {"password": TEST_PASSWORD}),
        ({"x-password": TEST_PASSWORD, "x-api-key": "wrong"}, {}),
        ({"x-api-key": TEST_API_KEY}, {}),
        ({}, {"api_key": TEST_API_KEY}),
    ])
    def test_admitted(self, client, github_client, headers, params):
        """Test valid credentials are admitted."""
        github_client.get_authenticated_user.return_value = {"login": "octocat"}

        response = client.get("/github/user", headers=headers, params=params)

        assert response.status_code == 200
        assert response.json()["data"] == {"login": "octocat"}


class TestGitHubRoutes:
    """Forwarding through the HTTP surface."""

    @pytest.fixture
    def client(self, settings, github_client):
        return TestClient(create_app(settings, github_client=github_client))

    @pytest.mark.parametrize("method,path", [
        ("GET", "/github/user"),
        ("GET", "/github/user/repos"),
        ("GET", "/github/user/orgs"),
        ("GET", "/github/repos"),
        ("GET", "/github/repo/octo/hello"),
        ("GET", "/github/repo/octo/hello/contents"),
        ("GET", "/github/repo/octo/hello/contents/src/app.py"),
        ("GET", "/github/repo/octo/hello/commits"),
        ("GET", "/github/repo/octo/hello/branches"),
        ("GET", "/github/repo/octo/hello/issues"),
        ("GET", "/github/repo/octo/hello/issues/1"),
        ("POST", "/github/repo/octo/hello/issues"),
        ("PATCH", "/github/repo/octo/hello/issues/1"),
        ("GET", "/github/repo/octo/hello/issues/1/comments"),
        ("POST", "/github/repo/octo/hello/issues/1/comments"),
        ("GET", "/github/search/repos?q=x"),
        ("GET", "/github/rate-limit"),
        ("DELETE", "/github/api/repos/octo/hello"),
    ])
    def test_configuration_error_without_client(self, method, path):
        """Test every gated route fails with a configuration error and no outbound call."""
        service = GitHubProxyService(make_settings(github_token=None))
        client = TestClient(service.app)

        response = client.request(method, path, headers=AUTH, json={"title": "t", "body": "b"})

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "CONFIGURATION_ERROR"
        assert data["error"] == "GitHub token not configured"
        assert service.forwarder.client is None

    def test_list_repos_envelope(self, client, github_client):
        """Test count, pagination and unchanged payload."""
        repos = [{"id": 1}, {"id": 2}]
        github_client.list_repos_for_authenticated_user.return_value = repos

        response = client.get("/github/repos", headers=AUTH, params={"per_page": "500"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"] == repos
        assert data["count"] == 2
        assert data["pagination"] == {"page": 1, "per_page": 100}

    def test_contents_nested_path(self, client, github_client):
        """Test nested contents paths are forwarded intact."""
        github_client.get_content.return_value = {"name": "app.py"}

        response = client.get("/github/repo/octo/hello/contents/src/app.py", headers=AUTH, params={"ref": "dev"})

        assert response.status_code == 200
        github_client.get_content.assert_awaited_once_with("octo", "hello", path="src/app.py", ref="dev")

    def test_create_issue_requires_title(self, client, github_client):
        """Test validation error without an outbound call."""
        response = client.post("/github/repo/octo/hello/issues", headers=AUTH, json={"body": "no title"})

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert data["message"] == "Title is required"
        github_client.create_issue.assert_not_called()

    def test_create_issue(self, client, github_client):
        """Test issue creation returns 201."""
        github_client.create_issue.return_value = {"number": 7, "title": "Bug"}

        response = client.post(
            "/github/repo/octo/hello/issues",
            headers=AUTH,
            json={"title": "Bug", "labels": ["bug"]},
        )

        assert response.status_code == 201
        assert response.json()["data"]["number"] == 7
        github_client.create_issue.assert_awaited_once_with(
            "octo", "hello", title="Bug", body=None, labels=["bug"], assignees=None, milestone=None
        )

    def test_invalid_json_body(self, client, github_client):
        """Test malformed JSON is a validation error."""
        response = client.post(
            "/github/repo/octo/hello/issues",
            headers={**AUTH, "Content-Type": "application/json"},
            content=b"{not json",
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        github_client.create_issue.assert_not_called()

    def test_invalid_issue_number(self, client, github_client):
        """Test a non-numeric issue number is rejected locally."""
        response = client.get("/github/repo/octo/hello/issues/abc", headers=AUTH)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        github_client.get_issue.assert_not_called()

    def test_search_requires_query(self, client, github_client):
        """Test search validation."""
        response = client.get("/github/search/repos", headers=AUTH)

        assert response.status_code == 400
        github_client.search_repos.assert_not_called()

    def test_search_clamps_per_page(self, client, github_client):
        """Test per_page=500 is forwarded as 100."""
        github_client.search_repos.return_value = {"total_count": 0, "items": []}

        response = client.get("/github/search/repos", headers=AUTH, params={"q": "fastapi", "per_page": "500"})

        assert response.status_code == 200
        assert github_client.search_repos.call_args.kwargs["per_page"] == 100

    def test_upstream_error_passthrough(self, client, github_client):
        """Test upstream status and message are preserved."""
        github_client.get_repo.side_effect = UpstreamError("Not Found", status=404)

        response = client.get("/github/repo/octo/missing", headers=AUTH)

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "UPSTREAM_ERROR"
        assert data["error"] == "GitHub API Error"
        assert data["message"] == "Not Found"
        assert data["status"] == 404
        assert "timestamp" in data

    def test_upstream_error_without_status(self, client, github_client):
        """Test failures without an upstream status default to 500."""
        github_client.get_rate_limit.side_effect = UpstreamError("GitHub API unavailable")

        response = client.get("/github/rate-limit", headers=AUTH)

        assert response.status_code == 500
        assert response.json()["code"] == "UPSTREAM_ERROR"

    def test_passthrough_post(self, client, github_client):
        """Test the generic route forwards method, path, query and body."""
        github_client.request.return_value = UpstreamResponse(status=201, data={"id": 1})

        response = client.post(
            "/github/api/repos/octo/hello/labels",
            params={"password": TEST_PASSWORD, "x": "1"},
            json={"name": "triage", "color": "ededed"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == 201
        assert data["data"] == {"id": 1}
        github_client.request.assert_awaited_once_with(
            "POST",
            "/repos/octo/hello/labels",
            params={"x": "1"},
            json={"name": "triage", "color": "ededed"},
        )

    def test_passthrough_repeated_query_keys(self, client, github_client):
        """Test every value of a repeated query key reaches GitHub."""
        response = client.get("/github/api/repos/octo/hello/issues?labels=a&labels=b&state=open", headers=AUTH)

        assert response.status_code == 200
        github_client.request.assert_awaited_once_with(
            "GET",
            "/repos/octo/hello/issues",
            params={"labels": ["a", "b"], "state": "open"},
            json=None,
        )

    def test_non_ascii_digits_fall_back_to_defaults(self, client, github_client):
        """Test superscript and other non-ASCII digits are treated as unparseable."""
        github_client.list_repos_for_authenticated_user.return_value = []

        response = client.get("/github/repos", headers=AUTH, params={"per_page": "²", "page": "٣"})

        assert response.status_code == 200
        assert response.json()["pagination"] == {"page": 1, "per_page": 30}

    def test_configuration_error_precedes_body_parsing(self):
        """Test a malformed body still reports the missing token."""
        client = TestClient(create_app(make_settings(github_token=None)))

        response = client.post(
            "/github/repo/octo/hello/issues",
            headers={**AUTH, "Content-Type": "application/json"},
            content=b"{not json",
        )

        assert response.status_code == 500
        assert response.json()["code"] == "CONFIGURATION_ERROR"

    def test_unexpected_error_is_generic(self, settings, github_client):
        """Test internal failures never leak details."""
        github_client.get_authenticated_user.side_effect = RuntimeError("db password is hunter2")
        client = TestClient(create_app(settings, github_client=github_client), raise_server_exceptions=False)

        response = client.get("/github/user", headers=AUTH)

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "INTERNAL_ERROR"
        assert "hunter2" not in response.text


class TestHttpGuards:
    """Rate limiting, body size and CORS."""

    def test_rate_limit(self, github_client):
        """Test requests past the per-IP budget get 429."""
        client = TestClient(create_app(make_settings(rate_limit_max_requests=2), github_client=github_client))

        statuses = [client.get("/status").status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        response = client.get("/status")
        assert response.json()["code"] == "RATE_LIMIT_ERROR"
        assert "Retry-After" in response.headers

    def test_rate_limit_ignores_rotating_forwarded_for(self, github_client):
        """Test a caller cannot escape the budget by varying X-Forwarded-For."""
        client = TestClient(create_app(make_settings(rate_limit_max_requests=2), github_client=github_client))

        statuses = [
            client.get("/status", headers={"X-Forwarded-For": f"203.0.113.{i}"}).status_code
            for i in range(5)
        ]

        assert statuses == [200, 200, 429, 429, 429]

    def test_rate_limit_trusts_forwarded_for_when_configured(self, github_client):
        """Test forwarding headers key the budget behind a trusted proxy."""
        client = TestClient(create_app(
            make_settings(rate_limit_max_requests=1, trust_proxy_headers=True),
            github_client=github_client,
        ))

        first = client.get("/status", headers={"X-Forwarded-For": "203.0.113.1"})
        second = client.get("/status", headers={"X-Forwarded-For": "203.0.113.2"})
        repeat = client.get("/status", headers={"X-Forwarded-For": "203.0.113.1"})

        assert [first.status_code, second.status_code, repeat.status_code] == [200, 200, 429]

    def test_rate_limit_headers(self, settings, github_client):
        """Test RateLimit headers on allowed responses."""
        client = TestClient(create_app(settings, github_client=github_client))

        response = client.get("/status")

        assert response.headers["RateLimit-Limit"] == "1000"

    def test_body_too_large(self, github_client):
        """Test oversized bodies are refused before forwarding."""
        client = TestClient(create_app(make_settings(max_body_bytes=64), github_client=github_client))

        response = client.post(
            "/github/repo/octo/hello/issues",
            headers=AUTH,
            json={"title": "x" * 200},
        )

        assert response.status_code == 413
        assert response.json()["code"] == "PAYLOAD_TOO_LARGE"
        github_client.create_issue.assert_not_called()

    def test_chunked_body_too_large(self, github_client):
        """Test a body without Content-Length is cut off at the size cap."""
        client = TestClient(create_app(make_settings(max_body_bytes=64), github_client=github_client))

        response = client.post(
            "/github/repo/octo/hello/issues",
            headers=AUTH,
            content=iter([b'{"title": "', b"x" * 200, b'"}']),
        )

        assert response.status_code == 413
        assert response.json()["code"] == "PAYLOAD_TOO_LARGE"
        github_client.create_issue.assert_not_called()

    def test_cors_allow_list(self, github_client):
        """Test configured origins are honoured."""
        client = TestClient(create_app(
            make_settings(allowed_origins="https://app.example.com, https://admin.example.com"),
            github_client=github_client,
        ))

        allowed = client.get("/", headers={"Origin": "https://app.example.com"})
        denied = client.get("/", headers={"Origin": "https://evil.example.com"})

        assert allowed.headers["access-control-allow-origin"] == "https://app.example.com"
        assert "access-control-allow-origin" not in denied.headers

    def test_lifespan_closes_client(self, settings):
        """Test the upstream client is closed on shutdown."""
        github_client = make_github_client()

        with TestClient(create_app(settings, github_client=github_client)) as client:
            client.get("/status")

        github_client.close.assert_awaited_once()
