"""
Shared fixtures for GitHub proxy service tests.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import ServiceSettings
from service_github.app.adapters.github_client import GitHubClient, UpstreamResponse

TEST_PASSWORD = "s3cret-password"
TEST_API_KEY = "test-api-key"


def make_settings(**overrides) -> ServiceSettings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "backend_password": TEST_PASSWORD,
        "github_token": "ghp_test_token",
        "api_key": None,
        "log_level": "warning",
        "rate_limit_max_requests": 1000,
        "rate_limit_redis_url": None,
    }
    values.update(overrides)
    return ServiceSettings(_env_file=None, **values)


def make_github_client() -> MagicMock:
    """GitHubClient double whose upstream operations are all AsyncMocks."""
    client = MagicMock(spec=GitHubClient)
    for name in (
        "get_authenticated_user",
        "list_repos_for_authenticated_user",
        "list_orgs_for_authenticated_user",
        "get_repo",
        "get_content",
        "list_commits",
        "list_branches",
        "list_issues",
        "get_issue",
        "create_issue",
        "update_issue",
        "list_issue_comments",
        "create_issue_comment",
        "search_repos",
        "get_rate_limit",
        "request",
        "close",
    ):
        setattr(client, name, AsyncMock())
    client.request.return_value = UpstreamResponse(status=200, data={})
    return client


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def github_client():
    return make_github_client()
