"""
Rate limiting package for the GitHub proxy.

Holds the per-IP fixed-window limiter applied to every inbound request,
independent of GitHub's own limits.
"""

from .fixed_window import FixedWindowRateLimiter, get_client_ip, rate_limit_headers

__all__ = ["FixedWindowRateLimiter", "get_client_ip", "rate_limit_headers"]
