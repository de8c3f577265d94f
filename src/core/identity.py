"""
Identity provider adapter.

The identity provider (Auth0) is the source of authentication truth. It also holds a
best-effort mirror of each user's internal id and role in per-user metadata
(Auth0 `app_metadata`), which an Auth0 Action copies into access tokens as
namespaced custom claims. Reading those claims gives the caller's linkage without
a database round-trip.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import quote
from uuid import UUID

import httpx

from core.config import Settings
from models.user import UserRole
from services.exceptions import IdentityProviderError

logger = logging.getLogger(__name__)

DEV_EXTERNAL_ID = "dev|local-development-user"


@dataclass(frozen=True)
class IdentityMetadata:
    """Internal linkage mirrored into the identity provider."""

    internal_id: UUID | None = None
    role: UserRole | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> "IdentityMetadata":
        """
        Parse metadata written by update_metadata().

        Values that don't parse are treated as absent: a malformed internal id just
        sends the caller through sync again, which rewrites it.
        """
        data = data or {}
        internal_id = None
        role = None
        try:
            if data.get("internal_id"):
                internal_id = UUID(str(data["internal_id"]))
        except ValueError:
            logger.warning("identity_metadata_invalid_internal_id value=%s", data["internal_id"])
        try:
            if data.get("role"):
                role = UserRole(data["role"])
        except ValueError:
            logger.warning("identity_metadata_invalid_role value=%s", data["role"])
        return cls(internal_id=internal_id, role=role)

    def to_dict(self) -> dict[str, str | None]:
        """Serialize for the identity provider API."""
        return {
            "internal_id": str(self.internal_id) if self.internal_id else None,
            "role": self.role.value if self.role else None,
        }


@dataclass(frozen=True)
class ExternalSession:
    """The caller's identity as seen by the identity provider."""

    external_id: str
    metadata: IdentityMetadata = field(default_factory=IdentityMetadata)


@dataclass(frozen=True)
class ExternalProfile:
    """Full profile of an external identity."""

    external_id: str
    full_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    primary_email: str | None = None
    image_url: str | None = None
    metadata: IdentityMetadata = field(default_factory=IdentityMetadata)


def session_from_profile(profile: ExternalProfile) -> ExternalSession:
    """Build a session view from a full profile."""
    return ExternalSession(external_id=profile.external_id, metadata=profile.metadata)


class IdentityProvider(ABC):
    """Base class for identity provider adapters."""

    # Adapter name reported by the health check
    name: str

    def __init__(self, claims_namespace: str) -> None:
        self._claims_namespace = claims_namespace.rstrip("/")

    def session_from_claims(self, claims: dict[str, Any]) -> ExternalSession:
        """Build the caller's session from validated access token claims."""
        namespace = self._claims_namespace
        metadata = IdentityMetadata.from_mapping({
            "internal_id": claims.get(f"{namespace}/internal_id"),
            "role": claims.get(f"{namespace}/role"),
        })
        return ExternalSession(external_id=claims["sub"], metadata=metadata)

    @abstractmethod
    async def get_profile(self, external_id: str) -> ExternalProfile:
        """Fetch the full profile of an identity."""
        ...

    @abstractmethod
    async def update_metadata(self, external_id: str, metadata: IdentityMetadata) -> None:
        """Write the internal linkage into the identity's metadata."""
        ...

    async def aclose(self) -> None:
        """Release resources held by the adapter."""
        return None


class Auth0IdentityProvider(IdentityProvider):
    """Identity provider backed by the Auth0 Management API."""

    name = "auth0"

    # Refresh management tokens this many seconds before they expire
    TOKEN_EXPIRY_MARGIN = 60

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(settings.auth0_claims_namespace)
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=f"https://{settings.auth0_domain}",
            timeout=settings.auth0_timeout,
        )
        self._token: str | None = None
        self._token_expires_at = 0.0

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _management_token(self) -> str:
        """Get a Management API token via client credentials, cached until near expiry."""
        if self._token is not None and time.monotonic() < self._token_expires_at:
            return self._token

        payload = await self._request(
            "POST",
            "/oauth/token",
            json={
                "grant_type": "client_credentials",
                "client_id": self._settings.auth0_management_client_id,
                "client_secret": self._settings.auth0_management_client_secret,
                "audience": self._settings.auth0_management_audience,
            },
        )
        self._token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 86400))
        self._token_expires_at = time.monotonic() + expires_in - self.TOKEN_EXPIRY_MARGIN
        logger.info("auth0_management_token_refreshed expires_in=%s", expires_in)
        return self._token

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "auth0_request_failed method=%s path=%s status=%s",
                method,
                path,
                e.response.status_code,
            )
            raise IdentityProviderError(
                f"Identity provider returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("auth0_request_error method=%s path=%s error=%s", method, path, e)
            raise IdentityProviderError("Identity provider unreachable") from e
        return response.json()

    def _user_path(self, external_id: str) -> str:
        return f"/api/v2/users/{quote(external_id, safe='')}"

    async def get_profile(self, external_id: str) -> ExternalProfile:
        token = await self._management_token()
        data = await self._request("GET", self._user_path(external_id), token=token)
        return ExternalProfile(
            external_id=data.get("user_id", external_id),
            full_name=data.get("name"),
            first_name=data.get("given_name"),
            last_name=data.get("family_name"),
            username=data.get("username") or data.get("nickname"),
            primary_email=data.get("email"),
            image_url=data.get("picture"),
            metadata=IdentityMetadata.from_mapping(data.get("app_metadata")),
        )

    async def update_metadata(self, external_id: str, metadata: IdentityMetadata) -> None:
        token = await self._management_token()
        await self._request(
            "PATCH",
            self._user_path(external_id),
            json={"app_metadata": metadata.to_dict()},
            token=token,
        )
        logger.info(
            "auth0_metadata_updated external_id=%s internal_id=%s role=%s",
            external_id,
            metadata.internal_id,
            metadata.role,
        )


class LocalIdentityProvider(IdentityProvider):
    """
    In-memory identity provider for DEV_MODE.

    Holds profiles in process memory; metadata written by update_metadata() is
    visible to later get_profile() calls, like the real provider.
    """

    name = "local"

    def __init__(
        self,
        profiles: list[ExternalProfile] | None = None,
        claims_namespace: str = "",
    ) -> None:
        super().__init__(claims_namespace)
        self._profiles = {profile.external_id: profile for profile in profiles or []}

    def add_profile(self, profile: ExternalProfile) -> None:
        """Register or replace an identity."""
        self._profiles[profile.external_id] = profile

    async def get_profile(self, external_id: str) -> ExternalProfile:
        try:
            return self._profiles[external_id]
        except KeyError:
            raise IdentityProviderError(
                f"Unknown identity: {external_id}", status_code=404,
            ) from None

    async def update_metadata(self, external_id: str, metadata: IdentityMetadata) -> None:
        profile = await self.get_profile(external_id)
        self._profiles[external_id] = replace(profile, metadata=metadata)


def dev_profile() -> ExternalProfile:
    """Profile of the fixed DEV_MODE identity."""
    return ExternalProfile(
        external_id=DEV_EXTERNAL_ID,
        full_name="Local Developer",
        primary_email="dev@localhost",
        metadata=IdentityMetadata(role=UserRole.ADMIN),
    )


def create_identity_provider(settings: Settings) -> IdentityProvider:
    """Create the adapter for the configured environment."""
    if settings.dev_mode:
        logger.info("Using local identity provider (DEV_MODE)")
        return LocalIdentityProvider([dev_profile()], settings.auth0_claims_namespace)
    return Auth0IdentityProvider(settings)
