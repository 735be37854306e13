"""Unit tests for security module."""

import pytest

from plantvision.core.security import TokenError, TokenKind, TokenService, hash_password, verify_password


@pytest.fixture
def tokens():
    return TokenService("unit-test-secret")


@pytest.mark.unit
class TestPasswords:
    """Tests for password hashing."""

    def test_hash_round_trip(self):
        digest = hash_password("s3cret-pass")

        assert digest != "s3cret-pass"
        assert verify_password("s3cret-pass", digest)
        assert not verify_password("other-pass", digest)

    def test_malformed_digest_never_matches(self):
        assert verify_password("anything", "not-a-real-digest") is False


@pytest.mark.unit
class TestTokenService:
    """Tests for TokenService."""

    def test_issue_and_verify(self, tokens):
        payload = tokens.verify(tokens.issue("user-1", TokenKind.ACCESS, 60), TokenKind.ACCESS)

        assert payload.sub == "user-1"
        assert payload.kind == TokenKind.ACCESS
        assert payload.exp - payload.iat == 60

    def test_kind_mismatch(self, tokens):
        refresh = tokens.issue("user-1", TokenKind.REFRESH, 60)

        with pytest.raises(TokenError, match="Invalid token"):
            tokens.verify(refresh, TokenKind.ACCESS)

    def test_expired(self, tokens):
        with pytest.raises(TokenError, match="Token expired"):
            tokens.verify(tokens.issue("user-1", TokenKind.ACCESS, -5), TokenKind.ACCESS)

    def test_other_secret_rejected(self, tokens):
        foreign = TokenService("another-secret").issue("user-1", TokenKind.ACCESS, 60)

        with pytest.raises(TokenError):
            tokens.verify(foreign, TokenKind.ACCESS)

    def test_tokens_are_unique(self, tokens):
        assert tokens.issue("user-1", TokenKind.ACCESS, 60) != tokens.issue("user-1", TokenKind.ACCESS, 60)

    def test_issue_pair_shape(self, tokens):
        pair = tokens.issue_pair("user-1")

        assert set(pair) == {"access_token", "refresh_token", "token_type", "expires_in"}
        assert tokens.verify(pair["refresh_token"], TokenKind.REFRESH).sub == "user-1"
