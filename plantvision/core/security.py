"""Credential hashing and signed session tokens."""

import logging
import secrets
import time
from enum import StrEnum

from itsdangerous import BadSignature, URLSafeSerializer
from passlib.context import CryptContext
from pydantic import BaseModel

from plantvision.core.config import settings


logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class TokenKind(StrEnum):
    """Purpose a token was issued for."""

    ACCESS = "access"
    REFRESH = "refresh"


class TokenError(Exception):
    """Token is malformed, tampered with, expired, or of the wrong kind."""


class TokenPayload(BaseModel):
    """Verified token contents."""

    sub: str
    kind: TokenKind
    iat: int
    exp: int


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, digest: str) -> bool:
    """Check a plain password against a stored digest; malformed digests never match."""
    try:
        return pwd_context.verify(plain, digest)
    except (ValueError, TypeError):
        logger.warning("Unrecognised password digest format")
        return False


class TokenService:
    """Issues and verifies signed tokens.

    Each kind is signed with its own salt, so a refresh token never verifies as
    an access token even before the embedded ``kind`` is compared.
    """

    def __init__(self, secret_key: str | None = None) -> None:
        self._secret_key = secret_key or settings.secret_key

    def _serializer(self, kind: TokenKind) -> URLSafeSerializer:
        return URLSafeSerializer(self._secret_key, salt=f"plantvision-{kind.value}")

    def issue(self, subject: str, kind: TokenKind, ttl: int) -> str:
        now = int(time.time())
        payload = {"sub": subject, "kind": kind.value, "iat": now, "exp": now + ttl, "jti": secrets.token_hex(8)}
        return self._serializer(kind).dumps(payload)

    def verify(self, token: str, kind: TokenKind) -> TokenPayload:
        try:
            data = self._serializer(kind).loads(token)
        except BadSignature as e:
            msg = "Invalid token"
            raise TokenError(msg) from e

        if not isinstance(data, dict) or data.get("kind") != kind.value:
            msg = "Invalid token type"
            raise TokenError(msg)

        payload = TokenPayload.model_validate(data)
        if payload.exp <= int(time.time()):
            msg = "Token expired"
            raise TokenError(msg)
        return payload

    def issue_pair(self, subject: str) -> dict[str, str | int]:
        """Issue an access/refresh pair using the configured lifetimes."""
        return {
            "access_token": self.issue(subject, TokenKind.ACCESS, settings.access_token_ttl_seconds),
            "refresh_token": self.issue(subject, TokenKind.REFRESH, settings.refresh_token_ttl_seconds),
            "token_type": "bearer",
            "expires_in": settings.access_token_ttl_seconds,
        }
