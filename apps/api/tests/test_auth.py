from __future__ import annotations

import re
from datetime import timedelta
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from grc_api.domain.grc import utcnow
from grc_api.models import MagicLinkToken, UserRoleEnum
from grc_api.services.auth import (
    GENERIC_RESPONSE,
    InvalidSessionToken,
    MagicLinkService,
    create_session_token,
    decode_session_token,
    hash_token,
    sanitize_callback_url,
)
from grc_api.services.errors import GoneError, RateLimitedError, ValidationFailed

from factories import auth_headers, create_admin, create_member, create_merchant, create_user

TOKEN_PATTERN = re.compile(r"token=([0-9a-f]{64})")


def _link_token(message) -> str:
    body = message.get_body(preferencelist=("plain",)).get_content()
    match = TOKEN_PATTERN.search(body)
    assert match, body
    return match.group(1)


@pytest.mark.parametrize(
    ("candidate", "expected"),
    [
        ("/member/upload", "/member/upload"),
        ("https://evil.example.com/steal", None),
        ("//evil.example.com", None),
        ("/", None),
        (None, None),
    ],
)
def test_sanitize_callback_url(candidate, expected) -> None:
    assert sanitize_callback_url(candidate) == expected


def test_session_token_round_trip() -> None:
    user_id = uuid4()
    claims = decode_session_token(create_session_token(user_id, "merchant"))
    assert claims.user_id == user_id
    assert claims.role == "merchant"


def test_expired_session_token_is_rejected() -> None:
    token = create_session_token(uuid4(), "member", now=utcnow() - timedelta(days=60))
    with pytest.raises(InvalidSessionToken):
        decode_session_token(token)


@pytest.mark.asyncio
async def test_magic_link_flow_signs_member_in(app_with_db, email_backend) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        await create_member(session, "jamie.rivera@grcmail.com")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/v1/auth/magic-link", json={"email": "Jamie.Rivera@grcmail.com"})
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": GENERIC_RESPONSE}

        messages = email_backend.messages_to("jamie.rivera@grcmail.com")
        assert len(messages) == 1
        token = _link_token(messages[0])

        verify = await client.get("/api/v1/auth/verify", params={"token": token})
        assert verify.status_code == 200
        body = verify.json()
        assert body["redirect"] == "/member"
        assert body["user"]["role"] == "member"
        assert "session_token" in verify.cookies

        me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.json()["member"]["firstName"] == "Jamie"
        assert me.json()["merchant"] is None

        replay = await client.post("/api/v1/auth/verify", json={"token": token})
        assert replay.status_code == 400
        assert "already been used" in replay.json()["detail"]


@pytest.mark.asyncio
async def test_magic_link_for_unknown_email_sends_nothing(client, email_backend) -> None:
    response = await client.post("/api/v1/auth/magic-link", json={"email": "nobody@grcmail.com"})
    assert response.status_code == 200
    assert response.json()["message"] == GENERIC_RESPONSE
    assert email_backend.sent_messages == []


@pytest.mark.asyncio
async def test_magic_link_rejects_malformed_email(client) -> None:
    response = await client.post("/api/v1/auth/magic-link", json={"email": "not-an-email"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_magic_link_requests_are_rate_limited(session_factory, rate_limiter) -> None:
    async with session_factory() as session:
        await create_user(session, "busy@grcmail.com")
        service = MagicLinkService(session, rate_limiter=rate_limiter)
        for _ in range(10):
            await service.request_link("busy@grcmail.com")
        with pytest.raises(RateLimitedError) as excinfo:
            await service.request_link("busy@grcmail.com")
    assert excinfo.value.retry_after_seconds == 900


@pytest.mark.asyncio
async def test_verify_redirects_by_role(session_factory) -> None:
    async with session_factory() as session:
        admin = await create_admin(session)
        merchant_user, _ = await create_merchant(session)
        bare_member = await create_user(session, "new.member@grcmail.com", UserRoleEnum.MEMBER)

        service = MagicLinkService(session)
        redirects = {}
        for user in (admin, merchant_user, bare_member):
            token = await service.issue_token(user.email)
            await session.commit()
            redirects[user.role if user is not bare_member else "bare"] = (await service.verify(token)).redirect_path

        callback_token = await service.issue_token(admin.email, callback_url="/admin/receipts")
        await session.commit()
        with_callback = await service.verify(callback_token)

    assert redirects == {"admin": "/admin", "merchant": "/merchant", "bare": "/member/register"}
    assert with_callback.redirect_path == "/admin/receipts"


@pytest.mark.asyncio
async def test_verify_rejects_unknown_and_expired_tokens(session_factory) -> None:
    async with session_factory() as session:
        await create_user(session, "late@grcmail.com")
        service = MagicLinkService(session)

        with pytest.raises(ValidationFailed):
            await service.verify("f" * 64)

        raw = await service.issue_token("late@grcmail.com")
        record = (
            await session.execute(select(MagicLinkToken).where(MagicLinkToken.token_hash == hash_token(raw)))
        ).scalar_one()
        record.expires_at = utcnow() - timedelta(minutes=1)
        await session.commit()

        with pytest.raises(GoneError):
            await service.verify(raw)


@pytest.mark.asyncio
async def test_me_requires_session(client) -> None:
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401

    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_reads_session_cookie_and_logout_clears_it(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        user, merchant = await create_merchant(session)

    token = create_session_token(user.id, user.role)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={"session_token": token},
    ) as client:
        me = await client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.json()["merchant"]["businessName"] == merchant.business_name

        logout = await client.post("/api/v1/auth/logout", headers=auth_headers(user))
        assert logout.status_code == 200
        assert logout.json() == {"success": True}
        assert "session_token" in logout.headers.get("set-cookie", "")
