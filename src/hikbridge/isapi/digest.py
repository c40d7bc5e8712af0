"""RFC 2617 digest authentication (qop=auth, MD5) for ISAPI requests."""

from __future__ import annotations

import hashlib
import logging
import re
import secrets
from dataclasses import dataclass

from hikbridge.errors import NoChallengeAvailable

logger = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r"^\s*Digest\s+", re.IGNORECASE)
_PARAM_RE = re.compile(r'([A-Za-z][\w-]*)\s*=\s*("(?:[^"\\]|\\.)*"|[^,\s]*)')


@dataclass(slots=True)
class DigestChallenge:
    """Server-issued digest challenge plus the nonce count used against it."""

    realm: str = ""
    nonce: str = ""
    qop: str = ""
    opaque: str | None = None
    nonce_count: int = 0

    @property
    def is_valid(self) -> bool:
        return bool(self.realm) and bool(self.nonce)


def is_digest_challenge(header: str | None) -> bool:
    return bool(header) and _SCHEME_RE.match(header or "") is not None


def parse_challenge(header: str) -> DigestChallenge:
    """Parse a `WWW-Authenticate: Digest ...` header value.

    Keys are matched case-insensitively and quoted values are unquoted. A
    header without realm or nonce yields an invalid challenge instead of
    raising; authentication against it will simply be rejected.
    """
    challenge = DigestChallenge()
    body = _SCHEME_RE.sub("", header, count=1)
    for key, raw_value in _PARAM_RE.findall(body):
        value = _unquote(raw_value)
        match key.lower():
            case "realm":
                challenge.realm = value
            case "nonce":
                challenge.nonce = value
            case "qop":
                challenge.qop = value
            case "opaque":
                challenge.opaque = value
    if not challenge.is_valid:
        logger.warning("Digest challenge is missing realm or nonce: %s", header)
    return challenge


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def compute_digest_response(
    *,
    username: str,
    realm: str,
    password: str,
    method: str,
    uri: str,
    nonce: str,
    nc: str,
    cnonce: str,
    qop: str = "auth",
) -> str:
    """Return the digest `response` value; a pure function of its inputs."""
    ha1 = md5_hex(f"{username}:{realm}:{password}")
    ha2 = md5_hex(f"{method}:{uri}")
    return md5_hex(f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")


def format_nonce_count(count: int) -> str:
    return f"{count:08x}"


class DigestAuthenticator:
    """Caches one challenge for one credential pair and signs requests against it."""

    def __init__(self, username: str, password: str) -> None:
        self._username = username
        self._password = password
        self._challenge: DigestChallenge | None = None

    @property
    def challenge(self) -> DigestChallenge | None:
        return self._challenge

    @property
    def has_challenge(self) -> bool:
        return self._challenge is not None

    def update_challenge(self, header: str) -> DigestChallenge:
        """Replace the cached challenge wholesale with one parsed from `header`."""
        self._challenge = parse_challenge(header)
        return self._challenge

    def reset(self) -> None:
        self._challenge = None

    def authorization_header(self, method: str, uri: str, *, cnonce: str | None = None) -> str:
        """Build the `Authorization` header value for one request.

        Each call increments the nonce count of the cached challenge by one
        and uses a fresh client nonce unless one is supplied.

        Raises:
            NoChallengeAvailable: If no 401 challenge has been parsed yet
        """
        challenge = self._challenge
        if challenge is None:
            raise NoChallengeAvailable()

        challenge.nonce_count += 1
        nc = format_nonce_count(challenge.nonce_count)
        client_nonce = cnonce if cnonce is not None else secrets.token_hex(8)
        response = compute_digest_response(
            username=self._username,
            realm=challenge.realm,
            password=self._password,
            method=method,
            uri=uri,
            nonce=challenge.nonce,
            nc=nc,
            cnonce=client_nonce,
        )

        header = (
            f'Digest username="{self._username}", '
            f'realm="{challenge.realm}", '
            f'nonce="{challenge.nonce}", '
            f'uri="{uri}", '
            f"qop=auth, "
            f"nc={nc}, "
            f'cnonce="{client_nonce}", '
            f'response="{response}"'
        )
        if challenge.opaque:
            header += f', opaque="{challenge.opaque}"'
        return header


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    return value


__all__ = [
    "DigestAuthenticator",
    "DigestChallenge",
    "compute_digest_response",
    "format_nonce_count",
    "is_digest_challenge",
    "parse_challenge",
]
