from __future__ import annotations

import json
from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from grc_api.services.notifications import NotificationService

from factories import auth_headers, create_admin, create_member, create_merchant


def _invite_token(invite_url: str) -> str:
    return parse_qs(urlparse(invite_url).query)["token"][0]


@pytest.mark.asyncio
async def test_invite_onboarding_grants_trial_inventory(app_with_db, email_backend):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        category = await client.post("/api/v1/admin/categories", json={"name": "Bakery"}, headers=auth_headers(admin))
        created = await client.post(
            "/api/v1/admin/merchant-invites",
            json={"email": "owner@sunrisebakes.com", "businessName": "Sunrise Bakes"},
            headers=auth_headers(admin),
        )
        assert created.status_code == 201
        invite_url = created.json()["inviteUrl"]
        assert invite_url.startswith("http://localhost:3000/onboard/merchant?token=")
        token = _invite_token(invite_url)

        validated = await client.get("/api/v1/onboard/validate-invite", params={"token": token})
        assert validated.json() == {"valid": True, "email": "owner@sunrisebakes.com", "businessName": "Sunrise Bakes"}

        completed = await client.post(
            "/api/v1/onboard/complete",
            json={
                "token": token,
                "email": "Owner@SunriseBakes.com",
                "businessName": "Sunrise Bakes",
                "city": "Austin",
                "state": "TX",
                "categoryId": category.json()["id"],
            },
        )
        assert completed.status_code == 201
        body = completed.json()
        assert body["slug"] == "sunrise-bakes-austin"
        assert body["trialGrcs"] == 10
        assert body["trialDenomination"] == 100

        reused = await client.post(
            "/api/v1/onboard/complete",
            json={"token": token, "email": "someone@else.com", "businessName": "Another"},
        )
        assert reused.status_code == 410
        assert reused.json()["detail"]["code"] == "gone"

        invites = await client.get("/api/v1/admin/merchant-invites", headers=auth_headers(admin))
        assert invites.json()["stats"] == {"total": 1, "pending": 0, "used": 1, "expired": 0}

        merchants = await client.get("/api/v1/admin/merchants", headers=auth_headers(admin))
        assert merchants.json()[0]["totalAvailable"] == 10
        assert merchants.json()[0]["categoryName"] == "Bakery"

    welcome = email_backend.messages_to("owner@sunrisebakes.com")
    assert len(welcome) == 1
    assert "10 trial certificates" in welcome[0].get_body(preferencelist=("plain",)).get_content()


@pytest.mark.asyncio
async def test_onboarding_rejects_existing_accounts_with_code(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        member_user, _ = await create_member(session)
        merchant_user, _ = await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for_member = await client.post(
            "/api/v1/admin/merchant-invites",
            json={"email": member_user.email},
            headers=auth_headers(admin),
        )
        assert for_member.status_code == 400
        assert for_member.json()["detail"]["code"] == "member_exists"

        open_invite = await client.post("/api/v1/admin/merchant-invites", json={}, headers=auth_headers(admin))
        token = _invite_token(open_invite.json()["inviteUrl"])
        taken = await client.post(
            "/api/v1/onboard/complete",
            json={"token": token, "email": merchant_user.email, "businessName": "Corner Bakery"},
        )
        assert taken.status_code == 400
        assert taken.json()["detail"]["code"] == "merchant_exists"

        unknown = await client.get("/api/v1/onboard/validate-invite", params={"token": "f" * 64})
        assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_invites_can_be_revoked_until_used(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        too_long = await client.post(
            "/api/v1/admin/merchant-invites",
            json={"expiresInDays": 60},
            headers=auth_headers(admin),
        )
        assert too_long.status_code == 400

        created = await client.post("/api/v1/admin/merchant-invites", json={}, headers=auth_headers(admin))
        invite_id = created.json()["invite"]["id"]
        assert created.json()["invite"]["status"] == "pending"

        pending = await client.get(
            "/api/v1/admin/merchant-invites",
            params={"status": "pending"},
            headers=auth_headers(admin),
        )
        assert [row["id"] for row in pending.json()["invites"]] == [invite_id]

        revoked = await client.delete(f"/api/v1/admin/merchant-invites/{invite_id}", headers=auth_headers(admin))
        assert revoked.status_code == 204
        missing = await client.delete(f"/api/v1/admin/merchant-invites/{invite_id}", headers=auth_headers(admin))
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_campaign_send_and_tracking(app_with_db, postmark_stub):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        await create_member(session)
        await create_member(session, "alex.kim@grcmail.com", first_name="Alex", last_name="Kim")
        await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        count = await client.get(
            "/api/v1/admin/emails/recipient-count",
            params={"lists": "members,merchants"},
            headers=auth_headers(admin),
        )
        assert count.json() == {"count": 3}

        bad_list = await client.get(
            "/api/v1/admin/emails/recipient-count",
            params={"lists": "everyone"},
            headers=auth_headers(admin),
        )
        assert bad_list.status_code == 400

        preview = await client.post(
            "/api/v1/admin/emails/preview",
            json={"subject": "Hi {{firstName}}", "content": "<p>Hello {{name}}</p>"},
            headers=auth_headers(admin),
        )
        assert preview.json()["subject"] == "Hi Jordan"
        assert "Hello Jordan Smith" in preview.json()["html"]
        assert "/unsubscribe?email=" in preview.json()["html"]

        created = await client.post(
            "/api/v1/admin/emails",
            json={
                "subject": "Spring rewards, {{firstName}}",
                "content": "<p>New merchants joined this month.</p>",
                "recipientType": "lists",
                "recipientLists": ["members"],
            },
            headers=auth_headers(admin),
        )
        assert created.status_code == 201
        campaign_id = created.json()["id"]
        assert created.json()["status"] == "draft"
        assert created.json()["recipientCount"] == 2

        sent = await client.post(f"/api/v1/admin/emails/{campaign_id}/send", headers=auth_headers(admin))
        assert sent.status_code == 200
        assert sent.json()["status"] == "sent"
        assert sent.json()["totalSent"] == 2

        request = postmark_stub.requests[0]
        assert request.url.path == "/email/batch"
        assert request.headers["X-Postmark-Server-Token"] == "postmark-token"
        messages = json.loads(request.content)
        assert {message["Subject"] for message in messages} == {"Spring rewards, Jamie", "Spring rewards, Alex"}

        recipients = await client.get(f"/api/v1/admin/emails/{campaign_id}/recipients", headers=auth_headers(admin))
        rows = recipients.json()["recipients"]
        assert recipients.json()["total"] == 2
        assert all(row["status"] == "sent" for row in rows)

        resend = await client.put(
            f"/api/v1/admin/emails/{campaign_id}",
            json={"subject": "Edited"},
            headers=auth_headers(admin),
        )
        assert resend.status_code == 400

        opened = await client.post("/api/v1/webhooks/postmark", json={"RecordType": "Open", "MessageID": "pm-0"})
        assert opened.json() == {"received": True, "matched": True}
        clicked = await client.post("/api/v1/webhooks/postmark", json={"RecordType": "Click", "MessageID": "pm-1"})
        assert clicked.json()["matched"] is True
        bounced = await client.post("/api/v1/webhooks/postmark", json={"RecordType": "Bounce", "MessageID": "pm-1"})
        assert bounced.json()["matched"] is True
        unknown = await client.post("/api/v1/webhooks/postmark", json={"RecordType": "Open", "MessageID": "nope"})
        assert unknown.json() == {"received": True, "matched": False}
        garbage = await client.post(
            "/api/v1/webhooks/postmark",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert garbage.status_code == 200
        assert garbage.json()["matched"] is False

        stats = await client.get(f"/api/v1/admin/emails/{campaign_id}", headers=auth_headers(admin))
        assert stats.json()["uniqueOpens"] == 2
        assert stats.json()["uniqueClicks"] == 1
        assert stats.json()["totalBounces"] == 1


@pytest.mark.asyncio
async def test_individual_campaign_needs_recipient(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/admin/emails",
            json={"subject": "Hello", "content": "<p>Hi</p>", "recipientType": "individual"},
            headers=auth_headers(admin),
        )
        listed = await client.get("/api/v1/admin/emails", headers=auth_headers(admin))

    assert response.status_code == 400
    assert listed.json() == []


@pytest.mark.asyncio
async def test_unsubscribe_suppresses_marketing_and_transactional_mail(app_with_db, email_backend):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        member_user, member = await create_member(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        defaults = await client.get("/api/v1/unsubscribe", params={"email": member_user.email})
        assert defaults.json() == {"marketingEmails": True, "transactionalEmails": True, "unsubscribedAll": False}

        updated = await client.post(
            "/api/v1/unsubscribe",
            json={"userId": str(member_user.id), "unsubscribedAll": True},
        )
        assert updated.json()["unsubscribedAll"] is True

        count = await client.get(
            "/api/v1/admin/emails/recipient-count",
            params={"lists": "members"},
            headers=auth_headers(admin),
        )
        assert count.json() == {"count": 0}

        unknown = await client.post("/api/v1/unsubscribe", json={"email": "ghost@grcmail.com", "marketingEmails": False})
        assert unknown.status_code == 404
        missing = await client.get("/api/v1/unsubscribe")
        assert missing.status_code == 400

    async with session_factory() as session:
        await NotificationService(session, backend=email_backend).send_receipt_rejected(
            member,
            receipt_id=uuid4(),
            reason="Blurry image",
            notes=None,
            reupload_until=None,
        )
    assert email_backend.messages_to(member_user.email) == []
