"""
Unit tests for AccessGate.
"""

import pytest
from unittest.mock import MagicMock
from fastapi import Request

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_github.app.domain.access_gate import AccessGate
from service_github.app.domain.models import CredentialSet
from shared.errors import UnauthorizedError

PASSWORD = "correct-horse"
API_KEY = "key-123"


def build_request(headers=None, query=None):
    request = MagicMock(spec=Request)
    request.headers = headers or {}
    request.query_params = query or {}
    request.method = "GET"
    request.state = MagicMock()
    return request


class TestAccessGate:
    """Test cases for AccessGate."""

    @pytest.fixture
    def gate(self):
        """Gate with password only."""
        return AccessGate(CredentialSet(password=PASSWORD))

    @pytest.fixture
    def gate_with_api_key(self):
        """Gate with password and API key."""
        return AccessGate(CredentialSet(password=PASSWORD, api_key=API_KEY))

    def test_password_header_admits(self, gate):
        """Test password supplied via header."""
        request = build_request(headers={"x-password": PASSWORD})

        assert gate.authenticate(request) == "password"
        assert request.state.auth_method == "password"

    def test_password_query_admits(self, gate):
        """Test password supplied via query parameter."""
        request = build_request(query={"password": PASSWORD})

        assert gate.authenticate(request) == "password"

    def test_empty_header_falls_back_to_query(self, gate):
        """Test an empty header does not hide the query parameter."""
        request = build_request(headers={"x-password": ""}, query={"password": PASSWORD})

        assert gate.authenticate(request) == "password"

    def test_header_takes_precedence_over_query(self, gate):
        """Test a wrong header is not rescued by a correct query value."""
        request = build_request(headers={"x-password": "wrong"}, query={"password": PASSWORD})

        with pytest.raises(UnauthorizedError):
            gate.authenticate(request)

    @pytest.mark.parametrize("headers,query", [
        ({}, {}),
        ({"x-password": "wrong"}, {}),
        ({}, {"password": ""}),
        ({"x-password": PASSWORD.upper()}, {}),
        ({"x-password": PASSWORD + " "}, {}),
        ({"x-api-key": API_KEY}, {}),
        ({}, {"api_key": API_KEY}),
    ])
    def test_rejects_without_valid_password_when_no_api_key_configured(self, gate, headers, query):
        """Test rejection for every combination lacking the exact password."""
        with pytest.raises(UnauthorizedError):
            gate.authenticate(build_request(headers=headers, query=query))

    def test_api_key_header_admits(self, gate_with_api_key):
        """Test API key supplied via header."""
        request = build_request(headers={"x-api-key": API_KEY})

        assert gate_with_api_key.authenticate(request) == "api_key"
        assert request.state.auth_method == "api_key"

    def test_api_key_query_admits(self, gate_with_api_key):
        """Test API key supplied via query parameter."""
        request = build_request(query={"api_key": API_KEY})

        assert gate_with_api_key.authenticate(request) == "api_key"

    def test_valid_password_with_wrong_api_key_admits(self, gate_with_api_key):
        """Test password wins regardless of API key correctness."""
        request = build_request(headers={"x-password": PASSWORD, "x-api-key": "bogus"})

        assert gate_with_api_key.authenticate(request) == "password"

    def test_wrong_password_with_valid_api_key_admits(self, gate_with_api_key):
        """Test the API key is checked after a failed password."""
        request = build_request(headers={"x-password": "bogus", "x-api-key": API_KEY})

        assert gate_with_api_key.authenticate(request) == "api_key"

    def test_both_valid_reports_password(self, gate_with_api_key):
        """Test the first success wins."""
        request = build_request(headers={"x-password": PASSWORD, "x-api-key": API_KEY})

        assert gate_with_api_key.authenticate(request) == "password"

    def test_rejection_message_is_uniform(self, gate_with_api_key):
        """Test missing and wrong credentials produce identical errors."""
        with pytest.raises(UnauthorizedError) as missing:
            gate_with_api_key.authenticate(build_request())
        with pytest.raises(UnauthorizedError) as wrong:
            gate_with_api_key.authenticate(build_request(headers={"x-password": "nope", "x-api-key": "nope"}))

        assert missing.value.message == wrong.value.message
        assert missing.value.error == wrong.value.error
        assert missing.value.status_code == 401

    def test_empty_configured_api_key_is_disabled(self):
        """Test an empty configured API key never matches an empty supplied key."""
        gate = AccessGate(CredentialSet(password=PASSWORD, api_key=""))

        with pytest.raises(UnauthorizedError):
            gate.authenticate(build_request(headers={"x-api-key": ""}))

    def test_records_auth_failure_metric(self):
        """Test rejected attempts are counted."""
        metrics = MagicMock()
        gate = AccessGate(CredentialSet(password=PASSWORD), metrics=metrics)

        with pytest.raises(UnauthorizedError):
            gate.authenticate(build_request())

        metrics.record_auth_failure.assert_called_once()

    @pytest.mark.asyncio
    async def test_dependency_call(self, gate):
        """Test the gate works as a FastAPI dependency."""
        request = build_request(headers={"x-password": PASSWORD})

        assert await gate(request) == "password"
