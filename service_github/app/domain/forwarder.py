"""
Forwarder for the GitHub proxy.

Translates one admitted request into exactly one GitHub API call and wraps
the outcome in the uniform success envelope. Upstream failures propagate as
``UpstreamError`` and are rendered by the service's exception handlers.
Nothing is retried.
"""

import re
from typing import Any, Dict, Mapping, Optional

from shared.errors import ConfigurationError, ValidationError, utc_timestamp
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from service_github.app.adapters.github_client import GitHubClient
from service_github.app.domain.models import RequestEnvelope

DEFAULT_PER_PAGE = 30
MAX_PER_PAGE = 100
DEFAULT_PAGE = 1

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
CREDENTIAL_PARAMS = frozenset({"password", "api_key"})

ISSUE_CREATE_FIELDS = ("title", "body", "labels", "assignees", "milestone")

LEADING_INT = re.compile(r"[+-]?[0-9]+")


def _parse_int(value: Optional[str]) -> Optional[int]:
    """Leading-integer parse over ASCII digits; None when there is no usable number."""
    if value is None:
        return None
    match = LEADING_INT.match(str(value).strip())
    if match is None:
        return None
    return int(match.group(0))


def clamp_per_page(value: Optional[str]) -> int:
    """Page size from the caller, defaulted to 30 and bounded to 1..100."""
    parsed = _parse_int(value)
    if not parsed:
        return DEFAULT_PER_PAGE
    return max(1, min(parsed, MAX_PER_PAGE))


def parse_page(value: Optional[str]) -> int:
    parsed = _parse_int(value)
    if not parsed or parsed < 1:
        return DEFAULT_PAGE
    return parsed


def success_envelope(data: Any, **extra: Any) -> Dict[str, Any]:
    """Wrap an upstream payload without touching its shape."""
    envelope: Dict[str, Any] = {"success": True, "data": data}
    if isinstance(data, list):
        envelope["count"] = len(data)
    envelope.update(extra)
    envelope["timestamp"] = utc_timestamp()
    return envelope


class Forwarder:
    """Per-resource GitHub operations plus one generic pass-through."""

    def __init__(self, client: Optional[GitHubClient], metrics: Optional[MetricsCollector] = None):
        self.client = client
        self.metrics = metrics
        self.logger = get_logger("github.forwarder")

    @property
    def configured(self) -> bool:
        return self.client is not None

    def _require_client(self) -> GitHubClient:
        if self.client is None:
            self.logger.error("GitHub token not configured, refusing to forward")
            raise ConfigurationError()
        return self.client

    async def _call(self, operation: str, coro_factory) -> Any:
        """Run one upstream call, timed and labelled by operation."""
        if self.metrics is None:
            return await coro_factory()
        with self.metrics.time_upstream_call(operation):
            return await coro_factory()

    # Users

    async def get_authenticated_user(self) -> Dict[str, Any]:
        client = self._require_client()
        data = await self._call("get_authenticated_user", client.get_authenticated_user)
        return success_envelope(data)

    async def list_user_repos(self, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        params = {
            "sort": query.get("sort") or "updated",
            "direction": query.get("direction") or "desc",
            "per_page": clamp_per_page(query.get("per_page")),
            "page": parse_page(query.get("page")),
            "visibility": query.get("visibility") or "all",
            "type": query.get("type") or "all",
        }
        data = await self._call(
            "list_user_repos",
            lambda: client.list_repos_for_authenticated_user(**params),
        )
        return success_envelope(data)

    async def list_user_orgs(self, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        params = {
            "per_page": clamp_per_page(query.get("per_page")),
            "page": parse_page(query.get("page")),
        }
        data = await self._call(
            "list_user_orgs",
            lambda: client.list_orgs_for_authenticated_user(**params),
        )
        return success_envelope(data)

    # Repositories

    async def list_repos(self, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        per_page = clamp_per_page(query.get("per_page"))
        page = parse_page(query.get("page"))
        params = {
            "sort": query.get("sort") or "updated",
            "direction": query.get("direction") or "desc",
            "per_page": per_page,
            "page": page,
            "visibility": query.get("visibility") or "all",
        }
        data = await self._call(
            "list_repos",
            lambda: client.list_repos_for_authenticated_user(**params),
        )
        return success_envelope(data, pagination={"page": page, "per_page": per_page})

    async def get_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        client = self._require_client()
        data = await self._call("get_repo", lambda: client.get_repo(owner, repo))
        return success_envelope(data)

    async def get_contents(self, owner: str, repo: str, path: str, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        data = await self._call(
            "get_contents",
            lambda: client.get_content(owner, repo, path=path or "", ref=query.get("ref")),
        )
        return success_envelope(data)

    async def list_commits(self, owner: str, repo: str, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        params = {
            "sha": query.get("sha"),
            "path": query.get("path"),
            "author": query.get("author"),
            "since": query.get("since"),
            "until": query.get("until"),
            "per_page": clamp_per_page(query.get("per_page")),
            "page": parse_page(query.get("page")),
        }
        data = await self._call("list_commits", lambda: client.list_commits(owner, repo, **params))
        return success_envelope(data)

    async def list_branches(self, owner: str, repo: str, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        params = {
            "protected": query.get("protected"),
            "per_page": clamp_per_page(query.get("per_page")),
            "page": parse_page(query.get("page")),
        }
        data = await self._call("list_branches", lambda: client.list_branches(owner, repo, **params))
        return success_envelope(data)

    # Issues

    async def list_issues(self, owner: str, repo: str, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        params = {
            "state": query.get("state") or "open",
            "labels": query.get("labels"),
            "sort": query.get("sort") or "created",
            "direction": query.get("direction") or "desc",
            "since": query.get("since"),
            "per_page": clamp_per_page(query.get("per_page")),
            "page": parse_page(query.get("page")),
        }
        data = await self._call("list_issues", lambda: client.list_issues(owner, repo, **params))
        return success_envelope(data)

    async def get_issue(self, owner: str, repo: str, issue_number: int) -> Dict[str, Any]:
        client = self._require_client()
        data = await self._call("get_issue", lambda: client.get_issue(owner, repo, issue_number))
        return success_envelope(data)

    async def create_issue(self, owner: str, repo: str, body: Any) -> Dict[str, Any]:
        client = self._require_client()
        payload = body if isinstance(body, dict) else {}
        if not payload.get("title"):
            raise ValidationError("Title is required")

        fields = {name: payload.get(name) for name in ISSUE_CREATE_FIELDS}
        data = await self._call("create_issue", lambda: client.create_issue(owner, repo, **fields))
        self.logger.info("Issue created", owner=owner, repo=repo, number=_field(data, "number"))
        return success_envelope(data, message="Issue created successfully")

    async def update_issue(self, owner: str, repo: str, issue_number: int, body: Any) -> Dict[str, Any]:
        client = self._require_client()
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        data = await self._call(
            "update_issue",
            lambda: client.update_issue(owner, repo, issue_number, body),
        )
        self.logger.info("Issue updated", owner=owner, repo=repo, number=issue_number)
        return success_envelope(data, message="Issue updated successfully")

    async def list_issue_comments(self, owner: str, repo: str, issue_number: int, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        params = {
            "since": query.get("since"),
            "per_page": clamp_per_page(query.get("per_page")),
            "page": parse_page(query.get("page")),
        }
        data = await self._call(
            "list_issue_comments",
            lambda: client.list_issue_comments(owner, repo, issue_number, **params),
        )
        return success_envelope(data)

    async def add_issue_comment(self, owner: str, repo: str, issue_number: int, body: Any) -> Dict[str, Any]:
        client = self._require_client()
        comment = body.get("body") if isinstance(body, dict) else None
        if not comment:
            raise ValidationError("Comment body is required")

        data = await self._call(
            "add_issue_comment",
            lambda: client.create_issue_comment(owner, repo, issue_number, comment),
        )
        return success_envelope(data, message="Comment added successfully")

    # Search and limits

    async def search_repos(self, query: Mapping[str, str]) -> Dict[str, Any]:
        client = self._require_client()
        q = query.get("q")
        if not q:
            raise ValidationError("Search query (q) parameter is required")

        params = {
            "q": q,
            "sort": query.get("sort"),
            "order": query.get("order"),
            "per_page": clamp_per_page(query.get("per_page")),
            "page": parse_page(query.get("page")),
        }
        data = await self._call("search_repos", lambda: client.search_repos(**params))
        return success_envelope(data)

    async def get_rate_limit(self) -> Dict[str, Any]:
        client = self._require_client()
        data = await self._call("get_rate_limit", client.get_rate_limit)
        return success_envelope(data)

    # Generic pass-through

    async def forward(self, envelope: RequestEnvelope) -> Dict[str, Any]:
        """Send an arbitrary method/path to GitHub with no per-field validation.

        Query parameters go out as query parameters, minus the proxy's own
        credentials. The body goes out verbatim, and only for POST, PUT and
        PATCH.
        """
        client = self._require_client()
        method = envelope.method.upper()
        params = {key: value for key, value in envelope.query.items() if key not in CREDENTIAL_PARAMS}
        body = envelope.body if method in BODY_METHODS else None

        self.logger.info("Forwarding raw GitHub request", method=method, path=envelope.upstream_path)
        response = await self._call(
            "forward",
            lambda: client.request(method, envelope.upstream_path, params=params, json=body),
        )
        return success_envelope(response.data, status=response.status)


def _field(data: Any, name: str) -> Any:
    return data.get(name) if isinstance(data, dict) else None
