"""Unit tests for client fingerprint extraction."""

from __future__ import annotations

import pytest

from app.services.fingerprint import (
    PROXY_ADDRESS_HEADERS,
    UNKNOWN_ADDRESS,
    Fingerprint,
    extract_fingerprint,
)


def test_uses_first_address_header_present() -> None:
    fp = extract_fingerprint(
        {
            "CF-Connecting-IP": "203.0.113.7",
            "X-Real-IP": "198.51.100.1",
            "User-Agent": "Mozilla/5.0",
        },
        address_headers=PROXY_ADDRESS_HEADERS,
    )

    assert fp == Fingerprint(address="203.0.113.7", agent="Mozilla/5.0")
    assert fp.key == "203.0.113.7::Mozilla/5.0"


def test_default_ignores_client_supplied_forwarding_headers() -> None:
    headers = {"X-Forwarded-For": "1.2.3.4", "X-Real-IP": "5.6.7.8", "User-Agent": "ua"}

    fp = extract_fingerprint(headers, client_host="192.0.2.10")

    assert fp.address == "192.0.2.10"


def test_forwarded_for_takes_leftmost_entry() -> None:
    fp = extract_fingerprint(
        {"X-Forwarded-For": " 1.2.3.4 , 10.0.0.1", "User-Agent": "ua"},
        address_headers=PROXY_ADDRESS_HEADERS,
    )

    assert fp.address == "1.2.3.4"


def test_header_lookup_is_case_insensitive() -> None:
    fp = extract_fingerprint({"cf-connecting-ip": "192.0.2.5", "user-agent": "ua"})

    assert fp.key == "192.0.2.5::ua"


def test_falls_back_to_client_host_then_unknown() -> None:
    assert extract_fingerprint({}, client_host="127.0.0.1").address == "127.0.0.1"
    assert extract_fingerprint({}).address == UNKNOWN_ADDRESS


def test_missing_user_agent_is_empty_string() -> None:
    fp = extract_fingerprint({"CF-Connecting-IP": "192.0.2.5"})

    assert fp.agent == ""
    assert fp.key == "192.0.2.5::"


def test_empty_address_header_is_skipped() -> None:
    fp = extract_fingerprint(
        {"CF-Connecting-IP": "", "X-Real-IP": "192.0.2.9"},
        address_headers=PROXY_ADDRESS_HEADERS,
    )

    assert fp.address == "192.0.2.9"


def test_custom_address_header_order() -> None:
    headers = {"X-Real-IP": "192.0.2.1", "X-Forwarded-For": "192.0.2.2"}

    fp = extract_fingerprint(headers, address_headers=["X-Forwarded-For", "X-Real-IP"])

    assert fp.address == "192.0.2.2"


@pytest.mark.parametrize("agent", ["Mozilla/5.0", "", "curl/8.0"])
def test_same_headers_give_same_fingerprint(agent: str) -> None:
    headers = {"CF-Connecting-IP": "1.2.3.4", "User-Agent": agent}

    assert extract_fingerprint(headers) == extract_fingerprint(dict(headers))
