"""
Password hashing and bearer token signing.

Passwords are stored as ``pbkdf2_sha256$<iterations>$<salt>$<hash>``.

Tokens are ``<payload>.<signature>`` where payload is base64url canonical JSON
``{"id", "username", "iat", "exp"}`` and signature is the base64url
HMAC-SHA256 of the payload segment. Verification is stateless.
"""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass

from . import config
from .errors import Forbidden

_HASH_ALGORITHM = "pbkdf2_sha256"


def hash_password(password: str, iterations: int | None = None) -> str:
    iterations = iterations or config.PASSWORD_HASH_ITERATIONS
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{_HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Constant-time comparison against a hash produced by hash_password."""
    try:
        algorithm, iterations, salt, expected = stored_hash.split("$")
        iterations = int(iterations)
    except ValueError:
        return False
    if algorithm != _HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return hmac.compare_digest(digest.hex().encode("ascii"), expected.encode("utf-8"))


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


@dataclass(frozen=True)
class TokenClaims:
    principal_id: int
    username: str
    issued_at: int
    expires_at: int


class TokenSigner:
    def __init__(self, secret: str, ttl_seconds: int, clock=time.time):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._key = secret.encode("utf-8")
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def _sign(self, payload_segment: str) -> str:
        mac = hmac.new(self._key, payload_segment.encode("utf-8"), hashlib.sha256)
        return _b64encode(mac.digest())

    def issue(self, principal_id: int, username: str) -> str:
        issued_at = int(self._clock())
        claims = {
            "id": principal_id,
            "username": username,
            "iat": issued_at,
            "exp": issued_at + self._ttl_seconds,
        }
        payload = json.dumps(claims, sort_keys=True, separators=(",", ":")).encode("utf-8")
        payload_segment = _b64encode(payload)
        return f"{payload_segment}.{self._sign(payload_segment)}"

    def verify(self, token: str) -> TokenClaims:
        """Returns the claims of a valid token, raises Forbidden otherwise."""
        if not token or token.count(".") != 1:
            raise Forbidden("Invalid token")
        payload_segment, signature = token.split(".")
        if not hmac.compare_digest(self._sign(payload_segment).encode("ascii"), signature.encode("utf-8")):
            raise Forbidden("Invalid token")
        try:
            claims = json.loads(_b64decode(payload_segment))
            token_claims = TokenClaims(
                principal_id=int(claims["id"]),
                username=str(claims["username"]),
                issued_at=int(claims["iat"]),
                expires_at=int(claims["exp"]),
            )
        except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise Forbidden("Invalid token") from e
        if self._clock() >= token_claims.expires_at:
            raise Forbidden("Token expired")
        return token_claims
