"""
Domain logic for the GitHub proxy.

- access_gate: credential check run before any forwarding
- forwarder: maps admitted requests onto GitHub API calls and wraps results
- models: credential set and request envelope value objects
"""

from .access_gate import AccessGate
from .forwarder import Forwarder, success_envelope
from .models import CredentialSet, RequestEnvelope, query_from_items

__all__ = [
    "AccessGate",
    "CredentialSet",
    "Forwarder",
    "RequestEnvelope",
    "query_from_items",
    "success_envelope",
]
