"""Tests for client identity resolution."""

import pytest
from starlette.datastructures import Headers
from starlette.requests import Request

from eventgate.app.middleware.client_ip import UNKNOWN_CLIENT, get_client_ip, get_client_key


def make_request(headers):
    raw = [(name.lower().encode(), value.encode()) for name, value in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class TestGetClientIp:
    """Header precedence and parsing."""

    def test_forwarded_for_first_entry(self):
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1, 10.0.0.2"}
        assert get_client_ip(headers) == "203.0.113.7"

    def test_forwarded_for_wins_over_others(self):
        headers = {
            "x-forwarded-for": "203.0.113.7",
            "cf-connecting-ip": "198.51.100.1",
            "x-real-ip": "192.0.2.1",
        }
        assert get_client_ip(headers) == "203.0.113.7"

    def test_cloudflare_before_real_ip(self):
        headers = {"cf-connecting-ip": "198.51.100.1", "x-real-ip": "192.0.2.1"}
        assert get_client_ip(headers) == "198.51.100.1"

    def test_real_ip_last(self):
        assert get_client_ip({"x-real-ip": "192.0.2.1"}) == "192.0.2.1"

    def test_no_headers(self):
        assert get_client_ip({}) is None

    def test_header_names_are_case_insensitive(self):
        assert get_client_ip({"X-Forwarded-For": " 203.0.113.7 "}) == "203.0.113.7"

    @pytest.mark.parametrize("value", ["", " ", " , 10.0.0.1"])
    def test_blank_forwarded_for_falls_through(self, value):
        """Test that an empty first hop does not become the identity."""
        headers = {"x-forwarded-for": value, "x-real-ip": "192.0.2.1"}
        assert get_client_ip(headers) == "192.0.2.1"

    def test_starlette_headers(self):
        headers = Headers({"CF-Connecting-IP": "198.51.100.1"})
        assert get_client_ip(headers) == "198.51.100.1"


class TestGetClientKey:
    """Rate limit keys for requests."""

    def test_resolved_ip(self):
        request = make_request({"X-Forwarded-For": "203.0.113.7"})
        assert get_client_key(request) == "203.0.113.7"

    def test_unresolved_ip_shares_unknown_bucket(self):
        assert get_client_key(make_request({})) == UNKNOWN_CLIENT == "unknown"
