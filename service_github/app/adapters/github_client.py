"""
GitHub REST API client for the proxy.

A thin, pre-authenticated wrapper around one shared ``httpx.AsyncClient``.
Each method performs exactly one request; failures surface as
``UpstreamError`` carrying GitHub's own status and message.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from shared.errors import UpstreamError
from shared.logging import get_logger

DEFAULT_BASE_URL = "https://api.github.com"
DEFAULT_USER_AGENT = "GitHub-Backend-API/1.0.0"
GITHUB_API_VERSION = "2022-11-28"


@dataclass(frozen=True)
class UpstreamResponse:
    """Status and decoded payload of a raw pass-through request."""

    status: int
    data: Any


def _segment(value: Any) -> str:
    """Escape one path segment supplied by the caller."""
    return quote(str(value), safe="")


def _drop_none(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {key: value for key, value in (params or {}).items() if value is not None}


class GitHubClient:
    """Client for communicating with the GitHub REST API."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.logger = get_logger("github.client")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": user_agent,
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> UpstreamResponse:
        """Send one request to ``path`` relative to the API root."""
        kwargs: Dict[str, Any] = {"params": _drop_none(params)}
        if json is not None:
            kwargs["json"] = json

        try:
            response = await self._client.request(method.upper(), path, **kwargs)
        except httpx.TimeoutException as e:
            self.logger.error("GitHub API timeout", method=method, path=path, error=str(e))
            raise UpstreamError(f"Request to GitHub timed out: {e}")
        except httpx.HTTPError as e:
            self.logger.error("GitHub API HTTP error", method=method, path=path, error=str(e))
            raise UpstreamError(f"GitHub API unavailable: {e}")

        data = self._decode(response)

        if response.is_error:
            message = None
            details = None
            if isinstance(data, dict):
                message = data.get("message")
                if data.get("documentation_url"):
                    details = {"documentation_url": data["documentation_url"]}

            self.logger.warning(
                "GitHub API returned an error",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise UpstreamError(
                message or response.reason_phrase or f"HTTP {response.status_code}",
                status=response.status_code,
                details=details,
            )

        return UpstreamResponse(status=response.status_code, data=data)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return (await self.request("GET", path, params=params)).data

    # Users

    async def get_authenticated_user(self) -> Dict[str, Any]:
        return await self._get("/user")

    async def list_repos_for_authenticated_user(self, **params: Any) -> Any:
        return await self._get("/user/repos", params)

    async def list_orgs_for_authenticated_user(self, **params: Any) -> Any:
        return await self._get("/user/orgs", params)

    # Repositories

    async def get_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._get(f"/repos/{_segment(owner)}/{_segment(repo)}")

    async def get_content(self, owner: str, repo: str, path: str = "", ref: Optional[str] = None) -> Any:
        """File or directory listing; ``path`` keeps its slashes."""
        content_path = quote(path.strip("/"), safe="/")
        return await self._get(
            f"/repos/{_segment(owner)}/{_segment(repo)}/contents/{content_path}",
            {"ref": ref},
        )

    async def list_commits(self, owner: str, repo: str, **params: Any) -> Any:
        return await self._get(f"/repos/{_segment(owner)}/{_segment(repo)}/commits", params)

    async def list_branches(self, owner: str, repo: str, **params: Any) -> Any:
        return await self._get(f"/repos/{_segment(owner)}/{_segment(repo)}/branches", params)

    # Issues

    async def list_issues(self, owner: str, repo: str, **params: Any) -> Any:
        return await self._get(f"/repos/{_segment(owner)}/{_segment(repo)}/issues", params)

    async def get_issue(self, owner: str, repo: str, issue_number: int) -> Dict[str, Any]:
        return await self._get(f"/repos/{_segment(owner)}/{_segment(repo)}/issues/{int(issue_number)}")

    async def create_issue(self, owner: str, repo: str, **fields: Any) -> Dict[str, Any]:
        response = await self.request(
            "POST",
            f"/repos/{_segment(owner)}/{_segment(repo)}/issues",
            json=_drop_none(fields),
        )
        return response.data

    async def update_issue(self, owner: str, repo: str, issue_number: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.request(
            "PATCH",
            f"/repos/{_segment(owner)}/{_segment(repo)}/issues/{int(issue_number)}",
            json=fields,
        )
        return response.data

    async def list_issue_comments(self, owner: str, repo: str, issue_number: int, **params: Any) -> Any:
        return await self._get(
            f"/repos/{_segment(owner)}/{_segment(repo)}/issues/{int(issue_number)}/comments",
            params,
        )

    async def create_issue_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Dict[str, Any]:
        response = await self.request(
            "POST",
            f"/repos/{_segment(owner)}/{_segment(repo)}/issues/{int(issue_number)}/comments",
            json={"body": body},
        )
        return response.data

    # Search and limits

    async def search_repos(self, **params: Any) -> Dict[str, Any]:
        return await self._get("/search/repositories", params)

    async def get_rate_limit(self) -> Dict[str, Any]:
        return await self._get("/rate_limit")
