"""
Tests for identity provider integration.

Covers token verification and the best-effort admin API client.
"""

import json
import time

import httpx
import jwt
import pytest

from adminops.exceptions import InvalidCredentialError
from adminops.services.identity import IdentityProviderClient, IdentityTokenVerifier

from conftest import TEST_TOKEN_KEY

# ============================================================================
# Token verification
# ============================================================================


class TestIdentityTokenVerifier:
    """Credential verification."""

    def test_valid_token(self, verifier, token_factory):
        identity = verifier.verify(token_factory("user-1", email="u@example.com"))
        assert identity.uid == "user-1"
        assert identity.email == "u@example.com"
        assert identity.claims["sub"] == "user-1"

    def test_empty_token_rejected(self, verifier):
        with pytest.raises(InvalidCredentialError, match="empty"):
            verifier.verify("")

    def test_garbage_token_rejected(self, verifier):
        with pytest.raises(InvalidCredentialError):
            verifier.verify("not.a.jwt")

    def test_expired_token_rejected(self, verifier, token_factory):
        with pytest.raises(InvalidCredentialError, match="expired"):
            verifier.verify(token_factory("user-1", expires_in=-60))

    def test_wrong_key_rejected(self, verifier, token_factory):
        forged = token_factory("user-1", key="some-other-key-that-is-long-enough!!")
        with pytest.raises(InvalidCredentialError):
            verifier.verify(forged)

    def test_missing_subject_rejected(self, verifier):
        token = jwt.encode({"exp": int(time.time()) + 60}, TEST_TOKEN_KEY, algorithm="HS256")
        with pytest.raises(InvalidCredentialError):
            verifier.verify(token)

    def test_audience_enforced_when_configured(self, token_factory):
        verifier = IdentityTokenVerifier(
            key=TEST_TOKEN_KEY, algorithms=["HS256"], audience="adminops"
        )
        assert verifier.verify(token_factory("u1", aud="adminops")).uid == "u1"
        with pytest.raises(InvalidCredentialError):
            verifier.verify(token_factory("u1", aud="someone-else"))

    def test_issuer_enforced_when_configured(self, token_factory):
        verifier = IdentityTokenVerifier(
            key=TEST_TOKEN_KEY, algorithms=["HS256"], issuer="https://idp.example.com"
        )
        with pytest.raises(InvalidCredentialError):
            verifier.verify(token_factory("u1", iss="https://evil.example.com"))


# ============================================================================
# Admin API client
# ============================================================================


def make_client(handler) -> IdentityProviderClient:
    """Client whose HTTP traffic goes to ``handler``."""
    return IdentityProviderClient(
        base_url="https://idp.example.com/admin/",
        api_token="admin-token",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestDeleteUser:
    """Best-effort account deletion."""

    @pytest.mark.asyncio
    async def test_success(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        client = make_client(handler)
        result = await client.delete_user("user-1")

        assert result.ok is True
        assert seen[0].method == "DELETE"
        assert str(seen[0].url) == "https://idp.example.com/admin/users/user-1"
        assert seen[0].headers["Authorization"] == "Bearer admin-token"
        await client.close()

    @pytest.mark.asyncio
    async def test_already_absent_counts_as_success(self):
        client = make_client(lambda request: httpx.Response(404))
        assert (await client.delete_user("ghost")).ok is True
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_is_failure_not_exception(self):
        client = make_client(lambda request: httpx.Response(500))
        result = await client.delete_user("user-1")
        assert result.ok is False
        assert "500" in result.error
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_error_is_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        result = await client.delete_user("user-1")
        assert result.ok is False
        await client.close()

    @pytest.mark.asyncio
    async def test_unconfigured_client_fails_softly(self):
        client = IdentityProviderClient(base_url=None)
        result = await client.delete_user("user-1")
        assert result.ok is False
        assert "not configured" in result.error


class TestSetCustomClaims:
    """Best-effort custom claims mirroring."""

    @pytest.mark.asyncio
    async def test_sends_claims(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler)
        result = await client.set_custom_claims("user-1", {"admin": True})

        assert result.ok is True
        assert seen[0].method == "PUT"
        assert str(seen[0].url) == "https://idp.example.com/admin/users/user-1/claims"
        assert json.loads(seen[0].content) == {"customClaims": {"admin": True}}
        await client.close()

    @pytest.mark.asyncio
    async def test_rejection_is_failure(self):
        client = make_client(lambda request: httpx.Response(403))
        result = await client.set_custom_claims("user-1", {})
        assert result.ok is False
        assert "403" in result.error
        await client.close()
