"""Tests for digest challenge parsing and Authorization header generation."""

from __future__ import annotations

import re

import pytest

from hikbridge.errors import NoChallengeAvailable
from hikbridge.isapi.digest import (
    DigestAuthenticator,
    compute_digest_response,
    format_nonce_count,
    is_digest_challenge,
    parse_challenge,
)

RFC_CHALLENGE = (
    'Digest realm="testrealm@host.com", qop="auth,auth-int", '
    'nonce="dcd98b7102dd2f0e8b11d0f600bfb0c093", opaque="5ccc069c403ebaf9f0171e9517f40e41"'
)


def _header_params(header: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for key, quoted, bare in re.findall(r'(\w+)=(?:"([^"]*)"|([^,\s]*))', header):
        params[key] = quoted or bare
    return params


def test_compute_digest_response_matches_rfc2617_vector() -> None:
    """Response hash matches the worked example from RFC 2617 section 3.5."""
    # Given: the RFC 2617 example inputs
    # When: computing the digest response
    response = compute_digest_response(
        username="Mufasa",
        realm="testrealm@host.com",
        password="Circle Of Life",
        method="GET",
        uri="/dir/index.html",
        nonce="dcd98b7102dd2f0e8b11d0f600bfb0c093",
        nc="00000001",
        cnonce="0a4f113b",
    )

    # Then: it equals the published value
    assert response == "6629fae49393a05397450978507c4ef1"


def test_parse_challenge_extracts_fields() -> None:
    """Quoted values are unquoted and opaque is kept."""
    # Given: a full digest challenge header
    # When: parsing it
    challenge = parse_challenge(RFC_CHALLENGE)

    # Then: realm, nonce, qop and opaque are extracted
    assert challenge.realm == "testrealm@host.com"
    assert challenge.nonce == "dcd98b7102dd2f0e8b11d0f600bfb0c093"
    assert challenge.qop == "auth,auth-int"
    assert challenge.opaque == "5ccc069c403ebaf9f0171e9517f40e41"
    assert challenge.nonce_count == 0
    assert challenge.is_valid


def test_parse_challenge_is_case_insensitive_for_keys() -> None:
    """Hikvision firmwares vary key casing; keys match case-insensitively."""
    # Given: a challenge with mixed-case keys and an unquoted qop
    header = 'digest Realm="IP Camera(C1234)", NONCE="abc123", QOP=auth'

    # When: parsing it
    challenge = parse_challenge(header)

    # Then: fields are extracted regardless of casing
    assert challenge.realm == "IP Camera(C1234)"
    assert challenge.nonce == "abc123"
    assert challenge.qop == "auth"
    assert challenge.opaque is None


def test_parse_challenge_without_nonce_is_invalid_not_an_error() -> None:
    """Missing realm or nonce yields an invalid challenge instead of raising."""
    # Given: a challenge without a nonce
    # When: parsing it
    challenge = parse_challenge('Digest realm="nvr"')

    # Then: the challenge is flagged invalid
    assert challenge.realm == "nvr"
    assert challenge.nonce == ""
    assert not challenge.is_valid


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ('Digest realm="x", nonce="y"', True),
        ('  digest realm="x"', True),
        ('Basic realm="x"', False),
        ("", False),
        (None, False),
    ],
)
def test_is_digest_challenge(header: str | None, expected: bool) -> None:
    """Only Digest scheme headers count as challenges."""
    assert is_digest_challenge(header) is expected


def test_authorization_header_before_challenge_raises() -> None:
    """Signing without a parsed challenge fails with NoChallengeAvailable."""
    # Given: an authenticator that never saw a 401
    auth = DigestAuthenticator("admin", "secret")

    # When/Then: building a header raises
    with pytest.raises(NoChallengeAvailable):
        auth.authorization_header("GET", "/ISAPI/System/deviceInfo")


def test_authorization_header_matches_rfc_example() -> None:
    """Header carries the RFC response, qop=auth, nc and opaque."""
    # Given: the RFC credentials and challenge
    auth = DigestAuthenticator("Mufasa", "Circle Of Life")
    auth.update_challenge(RFC_CHALLENGE)

    # When: signing the example request with the example cnonce
    header = auth.authorization_header("GET", "/dir/index.html", cnonce="0a4f113b")

    # Then: all parameters are present and the response matches
    assert header.startswith("Digest ")
    params = _header_params(header)
    assert params["username"] == "Mufasa"
    assert params["realm"] == "testrealm@host.com"
    assert params["uri"] == "/dir/index.html"
    assert params["qop"] == "auth"
    assert params["nc"] == "00000001"
    assert params["cnonce"] == "0a4f113b"
    assert params["response"] == "6629fae49393a05397450978507c4ef1"
    assert params["opaque"] == "5ccc069c403ebaf9f0171e9517f40e41"


def test_nonce_count_increases_by_one_per_request() -> None:
    """Reusing one challenge renders nc as strictly increasing 8-digit hex."""
    # Given: an authenticator with a cached challenge
    auth = DigestAuthenticator("admin", "secret")
    auth.update_challenge('Digest realm="nvr", nonce="n1", qop="auth"')

    # When: signing 20 requests
    counts = [
        _header_params(auth.authorization_header("GET", "/ISAPI/System/deviceInfo"))["nc"]
        for _ in range(20)
    ]

    # Then: nc goes 00000001..00000014 in hex
    assert counts == [f"{n:08x}" for n in range(1, 21)]
    assert counts[15] == "00000010"


def test_client_nonce_is_fresh_per_request() -> None:
    """Each header uses a new 16-hex-digit client nonce."""
    # Given: an authenticator with a cached challenge
    auth = DigestAuthenticator("admin", "secret")
    auth.update_challenge('Digest realm="nvr", nonce="n1"')

    # When: signing two requests
    first = _header_params(auth.authorization_header("GET", "/a"))["cnonce"]
    second = _header_params(auth.authorization_header("GET", "/a"))["cnonce"]

    # Then: client nonces are 8 random bytes in hex and differ
    assert re.fullmatch(r"[0-9a-f]{16}", first)
    assert first != second


def test_new_challenge_replaces_old_and_resets_count() -> None:
    """A new 401 challenge replaces the cached one wholesale."""
    # Given: an authenticator that already signed requests
    auth = DigestAuthenticator("admin", "secret")
    auth.update_challenge('Digest realm="nvr", nonce="old"')
    auth.authorization_header("GET", "/a")
    auth.authorization_header("GET", "/a")

    # When: the server issues a fresh challenge
    auth.update_challenge('Digest realm="nvr", nonce="new"')
    params = _header_params(auth.authorization_header("GET", "/a"))

    # Then: the new nonce is used and counting restarts
    assert params["nonce"] == "new"
    assert params["nc"] == "00000001"


def test_header_omits_opaque_when_absent() -> None:
    auth = DigestAuthenticator("admin", "secret")
    auth.update_challenge('Digest realm="nvr", nonce="n1"')

    header = auth.authorization_header("GET", "/a")

    assert "opaque" not in header


def test_format_nonce_count() -> None:
    assert format_nonce_count(1) == "00000001"
    assert format_nonce_count(255) == "000000ff"
