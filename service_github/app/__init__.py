"""
GitHub proxy service package for the GitHub Backend API.

The service fronts the GitHub REST API, enforcing:
- Access: a shared password or optional API key on every /github route
- Rate limiting: a per-IP fixed window independent of GitHub's own limits
- Forwarding: one upstream call per request with the server's own token

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: HTTP client for the GitHub REST API.
- app.domain: Access gate, forwarder and value objects.
- app.ratelimit: Fixed-window limiter and helpers.
"""
