"""
Identity provider integration.

Two collaborators:
- ``IdentityTokenVerifier`` exchanges a bearer credential for a verified
  subject id (PyJWT, key material from configuration).
- ``IdentityProviderClient`` calls the provider's admin API to delete an
  account or set custom claims. Every call is best-effort: it returns a
  ``BestEffortResult`` and never raises.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import jwt
from structlog import get_logger

from adminops.exceptions import InvalidCredentialError
from adminops.models.domain import BestEffortResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class VerifiedIdentity:
    """Subject extracted from a verified credential."""

    uid: str
    email: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


class IdentityTokenVerifier:
    """Verifies identity tokens issued by the trusted provider."""

    def __init__(
        self,
        key: str,
        algorithms: list[str],
        audience: str | None = None,
        issuer: str | None = None,
        leeway_seconds: int = 0,
    ):
        self.key = key
        self.algorithms = algorithms
        self.audience = audience
        self.issuer = issuer
        self.leeway_seconds = leeway_seconds

    def verify(self, token: str) -> VerifiedIdentity:
        """
        Verify signature, expiry and (when configured) audience and issuer.

        Raises:
            InvalidCredentialError: token missing, malformed, expired or forged
        """
        if not token:
            raise InvalidCredentialError("credential is empty")

        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.leeway_seconds,
                options={
                    "require": ["exp", "sub"],
                    "verify_aud": self.audience is not None,
                },
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning("identity_token_expired")
            raise InvalidCredentialError("token expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning("identity_token_invalid", error=str(e))
            raise InvalidCredentialError(str(e)) from e

        uid = payload.get("sub")
        if not isinstance(uid, str) or not uid:
            logger.warning("identity_token_missing_subject")
            raise InvalidCredentialError("token subject is empty")

        return VerifiedIdentity(uid=uid, email=payload.get("email"), claims=payload)


class IdentityProviderClient:
    """Identity provider admin API client."""

    def __init__(
        self,
        base_url: str | None,
        api_token: str | None = None,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_token = api_token
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def _headers(self) -> dict[str, str]:
        if self.api_token:
            return {"Authorization": f"Bearer {self.api_token}"}
        return {}

    async def delete_user(self, uid: str) -> BestEffortResult:
        """
        Delete the provider account for ``uid``.

        An account that is already absent counts as deleted.
        """
        if self.base_url is None:
            return BestEffortResult.failure("identity provider admin API not configured")

        try:
            response = await self.http_client.delete(
                f"{self.base_url}/users/{uid}", headers=self._headers()
            )
            if response.status_code == 404:
                logger.info("identity_user_already_absent", uid=uid)
                return BestEffortResult.success()
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "identity_user_delete_failed",
                uid=uid,
                status=e.response.status_code,
            )
            return BestEffortResult.failure(f"delete failed: {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.warning("identity_user_delete_error", uid=uid, error=str(e))
            return BestEffortResult.failure(f"delete failed: {e}")

        logger.info("identity_user_deleted", uid=uid)
        return BestEffortResult.success()

    async def set_custom_claims(self, uid: str, claims: dict[str, Any]) -> BestEffortResult:
        """Replace the custom claims carried by ``uid``'s future tokens."""
        if self.base_url is None:
            return BestEffortResult.failure("identity provider admin API not configured")

        try:
            response = await self.http_client.put(
                f"{self.base_url}/users/{uid}/claims",
                json={"customClaims": claims},
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "identity_claims_update_failed",
                uid=uid,
                status=e.response.status_code,
            )
            return BestEffortResult.failure(f"claims update failed: {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.warning("identity_claims_update_error", uid=uid, error=str(e))
            return BestEffortResult.failure(f"claims update failed: {e}")

        logger.info("identity_claims_updated", uid=uid, claims=sorted(claims))
        return BestEffortResult.success()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
