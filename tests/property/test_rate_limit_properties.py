"""
Property-Based Tests for Rate Limiting

Tests that the search limiter keys clients consistently and that the 429
response always carries retry_after.
"""
from unittest.mock import MagicMock

from fastapi import Request
from hypothesis import given, settings, strategies as st

from app.core.rate_limit import get_client_identifier
from app.models.schemas import RateLimitResponse


def make_request(headers: dict, host: str = "127.0.0.1"):
    request = MagicMock(spec=Request)
    request.headers = headers
    request.client = MagicMock()
    request.client.host = host
    return request


# =============================================================================
# Property Tests for Rate Limit Response
# =============================================================================

class TestRateLimitResponseProperties:

    @given(retry_after=st.integers(min_value=1, max_value=3600))
    @settings(max_examples=100, deadline=None)
    def test_rate_limit_response_serialization_round_trip(self, retry_after: int):
        """
        Property: RateLimitResponse serialization preserves retry_after
        """
        response = RateLimitResponse(
            message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            retry_after=retry_after,
        )

        restored = RateLimitResponse.model_validate_json(response.model_dump_json())

        assert restored.retry_after == retry_after
        assert restored.error == "rate_limited"


class TestClientIdentifierProperties:

    @given(operator=st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_", min_size=1, max_size=30))
    @settings(max_examples=50, deadline=None)
    def test_operator_identifier_is_consistent(self, operator: str):
        """
        Property: the same operator is always keyed the same, whatever its address
        """
        first = get_client_identifier(make_request({"X-Operator": operator}, host="10.0.0.1"))
        second = get_client_identifier(make_request({"X-Operator": operator}, host="10.0.0.2"))

        assert first == second == f"operator:{operator}"

    def test_without_operator_uses_ip(self):
        assert get_client_identifier(make_request({}, host="192.168.1.1")) == "192.168.1.1"
