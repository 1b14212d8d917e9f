"""
Adapters package for the GitHub proxy.

Contains the HTTP client for the GitHub REST API. The adapter owns:

- Base URL, auth headers and timeout
- Decoding of upstream payloads
- Mapping of upstream failures onto shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .github_client import GitHubClient, UpstreamResponse

__all__ = [
    "GitHubClient",
    "UpstreamResponse",
]
