"""
GitHub Backend API service.

Password-gated proxy in front of the GitHub REST API. Every route under
``/github`` passes the access gate, then the forwarder makes exactly one
upstream call with the server's own token.
"""

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from shared.base_service import BaseService, error_response
from shared.config import ServiceSettings
from shared.errors import (
    ConfigurationError,
    PayloadTooLargeError,
    RateLimitError,
    ValidationError,
    utc_timestamp,
)
from service_github.app.adapters.github_client import GitHubClient
from service_github.app.domain.access_gate import AccessGate
from service_github.app.domain.forwarder import Forwarder
from service_github.app.domain.models import CredentialSet, RequestEnvelope, query_from_items
from service_github.app.ratelimit.fixed_window import (
    FixedWindowRateLimiter,
    get_client_ip,
    rate_limit_headers,
)

PASSTHROUGH_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class GitHubProxyService(BaseService):
    """GitHub proxy service implementation."""

    def __init__(self, settings: Optional[ServiceSettings] = None, github_client: Optional[GitHubClient] = None):
        self._github_client = github_client
        super().__init__("github", settings)

        self._setup_public_routes()
        self._setup_github_routes()

    def _init_components(self):
        if self._github_client is None and self.config.github_token:
            self._github_client = GitHubClient(
                self.config.github_token,
                base_url=self.config.github_api_url,
                timeout=self.config.upstream_timeout_seconds,
            )

        self.credentials = CredentialSet.from_settings(self.config)
        self.access_gate = AccessGate(self.credentials, metrics=self.metrics)
        self.forwarder = Forwarder(self._github_client, metrics=self.metrics)
        self.rate_limiter = FixedWindowRateLimiter(
            max_requests=self.config.rate_limit_max_requests,
            window_seconds=self.config.rate_limit_window_seconds,
            redis_url=self.config.rate_limit_redis_url,
        )

    async def on_startup(self):
        self.logger.info(
            "GitHub Backend API starting",
            port=self.config.port,
            environment=self.config.env,
            github_token_configured=self.config.github_token_configured,
            password_configured=not self.config.uses_default_password,
            api_key_configured=self.config.api_key_configured,
            cors_origins=self.config.cors_origins,
        )
        if self.config.uses_default_password:
            self.logger.warning("BACKEND_PASSWORD is the insecure default, set it before exposing the service")

    async def on_shutdown(self):
        if self._github_client is not None:
            await self._github_client.close()
        await self.rate_limiter.close()

    def _setup_service_middleware(self):
        """Body size guard (innermost), then the per-IP rate limiter."""

        @self.app.middleware("http")
        async def limit_body_size(request: Request, call_next):
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > self.config.max_body_bytes:
                return error_response(PayloadTooLargeError(
                    f"Request body exceeds {self.config.max_body_bytes} bytes"
                ))
            return await call_next(request)

        @self.app.middleware("http")
        async def enforce_rate_limit(request: Request, call_next):
            result = await self.rate_limiter.check_rate_limit(
                get_client_ip(request, trust_proxy_headers=self.config.trust_proxy_headers)
            )
            headers = rate_limit_headers(result)

            if not result["allowed"]:
                self.metrics.record_rate_limit_hit()
                return error_response(
                    RateLimitError(details={"limit": result["limit"], "reset_in_seconds": result["reset_in_seconds"]}),
                    headers=headers,
                )

            response = await call_next(request)
            response.headers.update(headers)
            return response

    def _health_checks(self):
        return {
            "github_api": "configured" if self.config.github_token_configured else "not_configured",
            "authentication": "default_password" if self.config.uses_default_password else "secure",
        }

    def _status_details(self):
        return {
            "github_token_configured": self.config.github_token_configured,
            "api_key_configured": self.config.api_key_configured,
        }

    async def _read_body(self, request: Request) -> Any:
        """Parse the JSON body; an empty body is None.

        The body is read chunk by chunk so requests without Content-Length
        stop at the size cap. A missing token is reported before the body is
        looked at.
        """
        if not self.forwarder.configured:
            raise ConfigurationError()

        chunks = []
        size = 0
        async for chunk in request.stream():
            size += len(chunk)
            if size > self.config.max_body_bytes:
                raise PayloadTooLargeError(f"Request body exceeds {self.config.max_body_bytes} bytes")
            chunks.append(chunk)
        raw = b"".join(chunks)
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid JSON body: {e}")

    def _setup_public_routes(self):
        """Unauthenticated documentation endpoint."""

        @self.app.get("/")
        async def root():
            """API documentation."""
            return {
                "name": "GitHub Backend API",
                "version": self.version,
                "status": "running",
                "timestamp": utc_timestamp(),
                "documentation": {
                    "authentication": {
                        "methods": [
                            "Header: x-password with your password",
                            "Query: ?password=your-password",
                            "Header: x-api-key with your API key (if configured)",
                            "Query: ?api_key=your-api-key (if configured)",
                        ]
                    },
                    "endpoints": {
                        "public": [
                            "GET / - This documentation",
                            "GET /status - Health check and system status",
                            "GET /health - Detailed health information",
                        ],
                        "github_user": [
                            "GET /github/user - Get authenticated GitHub user information",
                            "GET /github/user/repos - Get user repositories",
                            "GET /github/user/orgs - Get user organizations",
                        ],
                        "github_repos": [
                            "GET /github/repos - List authenticated user repositories",
                            "GET /github/repo/{owner}/{repo} - Get specific repository details",
                            "GET /github/repo/{owner}/{repo}/contents/{path} - Get repository contents",
                            "GET /github/repo/{owner}/{repo}/commits - Get repository commits",
                            "GET /github/repo/{owner}/{repo}/branches - Get repository branches",
                        ],
                        "github_issues": [
                            "GET /github/repo/{owner}/{repo}/issues - List repository issues",
                            "GET /github/repo/{owner}/{repo}/issues/{issue_number} - Get specific issue",
                            "POST /github/repo/{owner}/{repo}/issues - Create new issue",
                            "PATCH /github/repo/{owner}/{repo}/issues/{issue_number} - Update issue",
                            "GET /github/repo/{owner}/{repo}/issues/{issue_number}/comments - Get issue comments",
                            "POST /github/repo/{owner}/{repo}/issues/{issue_number}/comments - Add issue comment",
                        ],
                        "github_search": [
                            "GET /github/search/repos - Search repositories",
                        ],
                        "utilities": [
                            "GET /github/rate-limit - Check API rate limit status",
                            "ANY /github/api/{path} - Forward any request to the GitHub API",
                        ],
                    },
                },
                "examples": {
                    "curl_with_header": 'curl -H "x-password: your-password" https://your-host/github/user',
                    "curl_with_query": 'curl "https://your-host/github/repos?password=your-password"',
                    "create_issue": (
                        'curl -X POST -H "x-password: your-password" -H "Content-Type: application/json" '
                        "-d '{\"title\": \"Bug Report\", \"body\": \"Description\"}' "
                        "https://your-host/github/repo/owner/repo/issues"
                    ),
                },
            }

    def _setup_github_routes(self):
        """Gated routes, one forwarder call each."""
        router = APIRouter(prefix="/github", dependencies=[Depends(self.access_gate)])
        forwarder = self.forwarder

        # User

        @router.get("/user")
        async def get_user():
            return await forwarder.get_authenticated_user()

        @router.get("/user/repos")
        async def get_user_repos(request: Request):
            return await forwarder.list_user_repos(request.query_params)

        @router.get("/user/orgs")
        async def get_user_orgs(request: Request):
            return await forwarder.list_user_orgs(request.query_params)

        # Repositories

        @router.get("/repos")
        async def list_repos(request: Request):
            return await forwarder.list_repos(request.query_params)

        @router.get("/repo/{owner}/{repo}")
        async def get_repo(owner: str, repo: str):
            return await forwarder.get_repo(owner, repo)

        @router.get("/repo/{owner}/{repo}/contents")
        async def get_root_contents(owner: str, repo: str, request: Request):
            return await forwarder.get_contents(owner, repo, "", request.query_params)

        @router.get("/repo/{owner}/{repo}/contents/{path:path}")
        async def get_contents(owner: str, repo: str, path: str, request: Request):
            return await forwarder.get_contents(owner, repo, path, request.query_params)

        @router.get("/repo/{owner}/{repo}/commits")
        async def list_commits(owner: str, repo: str, request: Request):
            return await forwarder.list_commits(owner, repo, request.query_params)

        @router.get("/repo/{owner}/{repo}/branches")
        async def list_branches(owner: str, repo: str, request: Request):
            return await forwarder.list_branches(owner, repo, request.query_params)

        # Issues

        @router.get("/repo/{owner}/{repo}/issues")
        async def list_issues(owner: str, repo: str, request: Request):
            return await forwarder.list_issues(owner, repo, request.query_params)

        @router.post("/repo/{owner}/{repo}/issues", status_code=201)
        async def create_issue(owner: str, repo: str, request: Request):
            body = await self._read_body(request)
            return await forwarder.create_issue(owner, repo, body)

        @router.get("/repo/{owner}/{repo}/issues/{issue_number}")
        async def get_issue(owner: str, repo: str, issue_number: int):
            return await forwarder.get_issue(owner, repo, issue_number)

        @router.patch("/repo/{owner}/{repo}/issues/{issue_number}")
        async def update_issue(owner: str, repo: str, issue_number: int, request: Request):
            body = await self._read_body(request)
            return await forwarder.update_issue(owner, repo, issue_number, body)

        @router.get("/repo/{owner}/{repo}/issues/{issue_number}/comments")
        async def list_issue_comments(owner: str, repo: str, issue_number: int, request: Request):
            return await forwarder.list_issue_comments(owner, repo, issue_number, request.query_params)

        @router.post("/repo/{owner}/{repo}/issues/{issue_number}/comments", status_code=201)
        async def add_issue_comment(owner: str, repo: str, issue_number: int, request: Request):
            body = await self._read_body(request)
            return await forwarder.add_issue_comment(owner, repo, issue_number, body)

        # Search and limits

        @router.get("/search/repos")
        async def search_repos(request: Request):
            return await forwarder.search_repos(request.query_params)

        @router.get("/rate-limit")
        async def get_rate_limit():
            return await forwarder.get_rate_limit()

        # Generic pass-through

        @router.api_route("/api/{path:path}", methods=PASSTHROUGH_METHODS)
        async def passthrough(path: str, request: Request):
            envelope = RequestEnvelope(
                method=request.method,
                path=path,
                query=query_from_items(request.query_params.multi_items()),
                body=await self._read_body(request),
            )
            return await forwarder.forward(envelope)

        self.app.include_router(router)


def create_app(settings: Optional[ServiceSettings] = None, github_client: Optional[GitHubClient] = None):
    """Create FastAPI application."""
    service = GitHubProxyService(settings, github_client=github_client)
    return service.app


if __name__ == "__main__":
    service = GitHubProxyService()
    service.run()
