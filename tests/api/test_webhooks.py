"""Tests for the identity lifecycle webhook."""
import json
import time
from unittest.mock import patch

import pytest
from httpx import AsyncClient, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.identity import ExternalProfile, LocalIdentityProvider
from core.tag_cache import InMemoryTagCache
from core.webhook_security import SIGNATURE_HEADER, TIMESTAMP_HEADER, compute_signature
from models.user import DELETED_USER_NAME, User


ADA = ExternalProfile(external_id="auth0|ada", primary_email="ada@example.com")


@pytest.fixture
def secret(test_settings: Settings) -> str:
    """Webhook secret the app under test verifies against."""
    return test_settings.webhook_secret


def _payload(event_type: str, **data: object) -> bytes:
    body = {"id": "auth0|ada", "full_name": "Ada Lovelace", "email": "ada@example.com"}
    body.update(data)
    return json.dumps({"type": event_type, "data": body}).encode()


async def _post_signed(
    client: AsyncClient,
    body: bytes,
    secret: str,
    timestamp: str | None = None,
) -> Response:
    timestamp = timestamp or str(int(time.time()))
    return await client.post(
        "/webhooks/identity",
        content=body,
        headers={
            "content-type": "application/json",
            SIGNATURE_HEADER: compute_signature(secret, timestamp, body),
            TIMESTAMP_HEADER: timestamp,
        },
    )


async def _users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).execution_options(populate_existing=True))
    return list(result.scalars().all())


async def test__webhook__lifecycle(
    client: AsyncClient,
    identity_provider: LocalIdentityProvider,
    db_session: AsyncSession,
    secret: str,
) -> None:
    identity_provider.add_profile(ADA)

    created = await _post_signed(client, _payload("identity.created"), secret)
    assert created.status_code == 200
    assert created.json()["status"] == "processed"
    user_id = created.json()["user_id"]
    profile = await identity_provider.get_profile("auth0|ada")
    assert str(profile.metadata.internal_id) == user_id

    updated = await _post_signed(
        client, _payload("identity.updated", full_name="Augusta Ada King"), secret,
    )
    assert updated.status_code == 200
    assert updated.json()["user_id"] == user_id

    users = await _users(db_session)
    assert len(users) == 1
    assert users[0].name == "Augusta Ada King"

    deleted = await _post_signed(client, _payload("identity.deleted"), secret)
    assert deleted.status_code == 200
    assert deleted.json()["user_id"] == user_id

    users = await _users(db_session)
    assert len(users) == 1
    assert users[0].name == DELETED_USER_NAME
    assert users[0].deleted_at is not None


async def test__webhook__bad_signature_changes_nothing(
    client: AsyncClient,
    identity_provider: LocalIdentityProvider,
    tag_cache: InMemoryTagCache,
    db_session: AsyncSession,
) -> None:
    identity_provider.add_profile(ADA)

    with patch.object(tag_cache, "invalidate", wraps=tag_cache.invalidate) as invalidate:
        response = await _post_signed(
            client, _payload("identity.created"), secret="wrong-secret",
        )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid webhook signature"
    invalidate.assert_not_called()
    result = await db_session.execute(select(func.count()).select_from(User))
    assert result.scalar_one() == 0
    profile = await identity_provider.get_profile("auth0|ada")
    assert profile.metadata.internal_id is None


async def test__webhook__missing_headers_is_401(client: AsyncClient) -> None:
    response = await client.post(
        "/webhooks/identity",
        content=_payload("identity.created"),
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 401


async def test__webhook__stale_timestamp_is_401(client: AsyncClient, secret: str) -> None:
    stale = str(int(time.time()) - 3600)
    response = await _post_signed(
        client, _payload("identity.created"), secret, timestamp=stale,
    )
    assert response.status_code == 401


async def test__webhook__malformed_payload_is_422(client: AsyncClient, secret: str) -> None:
    body = json.dumps({"type": "identity.renamed"}).encode()
    response = await _post_signed(client, body, secret)
    assert response.status_code == 422


async def test__webhook__missing_email_is_422(
    client: AsyncClient, db_session: AsyncSession, secret: str,
) -> None:
    response = await _post_signed(client, _payload("identity.created", email=None), secret)

    assert response.status_code == 422
    result = await db_session.execute(select(func.count()).select_from(User))
    assert result.scalar_one() == 0


async def test__webhook__delete_of_unknown_user_is_404(
    client: AsyncClient, secret: str,
) -> None:
    response = await _post_signed(client, _payload("identity.deleted"), secret)
    assert response.status_code == 404
