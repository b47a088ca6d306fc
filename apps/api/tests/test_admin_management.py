from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from grc_api.models import Receipt
from grc_api.services.admin import percent_change, window_for
from grc_api.services.errors import ValidationFailed

from factories import auth_headers, create_active_grc, create_admin, create_member, create_merchant


@pytest.mark.asyncio
async def test_admin_lists_searches_and_edits_users(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        jamie_user, _ = await create_member(session)
        alex_user, _ = await create_member(session, "alex.kim@grcmail.com", first_name="Alex", last_name="Kim")
        merchant_user, _ = await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        listed = await client.get("/api/v1/admin/users", headers=auth_headers(admin))
        assert listed.status_code == 200
        assert listed.json()["stats"] == {"total": 4, "admins": 1, "merchants": 1, "members": 2}

        members_only = await client.get("/api/v1/admin/users", params={"role": "member"}, headers=auth_headers(admin))
        assert {row["email"] for row in members_only.json()["users"]} == {
            "jamie.rivera@grcmail.com",
            "alex.kim@grcmail.com",
        }
        by_name = await client.get("/api/v1/admin/users", params={"search": "kim"}, headers=auth_headers(admin))
        assert [row["name"] for row in by_name.json()["users"]] == ["Alex Kim"]
        bad_role = await client.get("/api/v1/admin/users", params={"role": "wizard"}, headers=auth_headers(admin))
        assert bad_role.status_code == 400

        too_short = await client.get("/api/v1/admin/users/search", params={"q": "c"}, headers=auth_headers(admin))
        assert too_short.json() == []
        found = await client.get("/api/v1/admin/users/search", params={"q": "corner"}, headers=auth_headers(admin))
        assert [(row["id"], row["name"]) for row in found.json()] == [(str(merchant_user.id), "Corner Bakery")]

        detail = await client.get(f"/api/v1/admin/users/{jamie_user.id}", headers=auth_headers(admin))
        assert detail.json()["member"]["firstName"] == "Jamie"
        assert detail.json()["merchant"] is None
        merchant_detail = await client.get(f"/api/v1/admin/users/{merchant_user.id}", headers=auth_headers(admin))
        assert merchant_detail.json()["merchant"]["businessName"] == "Corner Bakery"
        assert merchant_detail.json()["hasTrialGrcs"] is False
        missing = await client.get(f"/api/v1/admin/users/{uuid4()}", headers=auth_headers(admin))
        assert missing.status_code == 404

        edited = await client.patch(
            f"/api/v1/admin/users/{jamie_user.id}",
            json={"user": {"phone": "5125550100"}, "member": {"city": "Round Rock"}},
            headers=auth_headers(admin),
        )
        assert edited.status_code == 200
        assert edited.json()["user"]["phone"] == "5125550100"
        assert edited.json()["member"]["city"] == "Round Rock"

        clash = await client.patch(
            f"/api/v1/admin/users/{jamie_user.id}",
            json={"user": {"email": "Alex.Kim@grcmail.com"}},
            headers=auth_headers(admin),
        )
        assert clash.status_code == 409

        promoted = await client.patch(
            f"/api/v1/admin/users/{alex_user.id}",
            json={"role": "admin"},
            headers=auth_headers(admin),
        )
        assert promoted.json()["user"]["role"] == "admin"
        invalid_role = await client.patch(
            f"/api/v1/admin/users/{alex_user.id}",
            json={"role": "wizard"},
            headers=auth_headers(admin),
        )
        assert invalid_role.status_code == 400
        demote_self = await client.patch(
            f"/api/v1/admin/users/{admin.id}",
            json={"role": "member"},
            headers=auth_headers(admin),
        )
        assert demote_self.status_code == 400
        assert demote_self.json()["detail"] == "Cannot change your own role"

        member_view = await client.get("/api/v1/admin/users", headers=auth_headers(jamie_user))
        assert member_view.status_code == 403


@pytest.mark.asyncio
async def test_admin_deletes_other_users_only(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        user, _ = await create_member(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        own = await client.delete(f"/api/v1/admin/users/{admin.id}", headers=auth_headers(admin))
        assert own.status_code == 400
        assert own.json()["detail"] == "Cannot delete your own account"

        removed = await client.delete(f"/api/v1/admin/users/{user.id}", headers=auth_headers(admin))
        assert removed.status_code == 204
        gone = await client.get(f"/api/v1/admin/users/{user.id}", headers=auth_headers(admin))
        assert gone.status_code == 404
        again = await client.delete(f"/api/v1/admin/users/{user.id}", headers=auth_headers(admin))
        assert again.status_code == 404


@pytest.mark.asyncio
async def test_categories_rename_and_delete(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        _, merchant = await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        bakery = (await client.post("/api/v1/admin/categories", json={"name": "Bakery"}, headers=auth_headers(admin))).json()
        coffee = (await client.post("/api/v1/admin/categories", json={"name": "Coffee"}, headers=auth_headers(admin))).json()

        renamed = await client.patch(
            f"/api/v1/admin/categories/{bakery['id']}",
            json={"name": "Bakeries"},
            headers=auth_headers(admin),
        )
        assert renamed.status_code == 200
        assert renamed.json()["name"] == "Bakeries"

        duplicate = await client.patch(
            f"/api/v1/admin/categories/{bakery['id']}",
            json={"name": "coffee"},
            headers=auth_headers(admin),
        )
        assert duplicate.status_code == 400
        unknown = await client.patch(
            f"/api/v1/admin/categories/{uuid4()}",
            json={"name": "Florist"},
            headers=auth_headers(admin),
        )
        assert unknown.status_code == 404

        await client.patch(
            f"/api/v1/admin/merchants/{merchant.id}",
            json={"categoryId": bakery["id"]},
            headers=auth_headers(admin),
        )
        in_use = await client.delete(f"/api/v1/admin/categories/{bakery['id']}", headers=auth_headers(admin))
        assert in_use.status_code == 400
        assert in_use.json()["detail"] == "Cannot delete category that has merchants assigned to it"

        deleted = await client.delete(f"/api/v1/admin/categories/{coffee['id']}", headers=auth_headers(admin))
        assert deleted.status_code == 204
        repeat = await client.delete(f"/api/v1/admin/categories/{coffee['id']}", headers=auth_headers(admin))
        assert repeat.status_code == 404

        remaining = await client.get("/api/v1/admin/categories", headers=auth_headers(admin))
        assert [(row["name"], row["merchantCount"]) for row in remaining.json()] == [("Bakeries", 1)]


@pytest.mark.asyncio
async def test_public_merchant_pages(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        _, owned = await create_merchant(session)

    page = {
        "businessName": "Sunrise Tacos",
        "city": "Austin",
        "state": "tx",
        "phone": "(512) 555-0199",
        "vimeoUrl": "https://vimeo.com/123456789",
    }
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post("/api/v1/admin/merchant-pages", json=page, headers=auth_headers(admin))
        assert created.status_code == 201
        body = created.json()
        assert body["phone"] == "5125550199"
        assert body["state"] == "TX"
        assert body["slug"] == "sunrise-tacos-austin"
        assert body["isPublicPage"] is True
        assert body["verified"] is False

        for overrides, message in [
            ({"phone": "555-0199"}, "Phone number must be 10 digits"),
            ({"vimeoUrl": "https://youtube.com/watch?v=1"}, "Invalid Vimeo URL. Use format: https://vimeo.com/123456789"),
            ({"city": "  "}, "City is required"),
            ({"state": "Texas"}, "State must be a 2-letter code"),
            ({"categoryId": str(uuid4())}, "Invalid category"),
        ]:
            rejected = await client.post(
                "/api/v1/admin/merchant-pages",
                json={**page, **overrides},
                headers=auth_headers(admin),
            )
            assert rejected.status_code == 400
            assert rejected.json()["detail"] == message

        listed = await client.get("/api/v1/admin/merchant-pages", params={"search": "sunrise"}, headers=auth_headers(admin))
        assert listed.json()["total"] == 1
        assert listed.json()["merchants"][0]["merchant"]["businessName"] == "Sunrise Tacos"
        accounts = await client.get("/api/v1/admin/merchants", headers=auth_headers(admin))
        assert [row["merchant"]["businessName"] for row in accounts.json()] == ["Corner Bakery"]

        renamed = await client.patch(
            f"/api/v1/admin/merchant-pages/{body['id']}",
            json={"businessName": "Sunrise Taqueria"},
            headers=auth_headers(admin),
        )
        assert renamed.json()["slug"] == "sunrise-taqueria-austin"
        bad_phone = await client.patch(
            f"/api/v1/admin/merchant-pages/{body['id']}",
            json={"phone": "12"},
            headers=auth_headers(admin),
        )
        assert bad_phone.status_code == 400

        account = await client.delete(f"/api/v1/admin/merchant-pages/{owned.id}", headers=auth_headers(admin))
        assert account.status_code == 400
        assert account.json()["detail"] == "Cannot delete merchant accounts. Only public pages can be deleted."

        deleted = await client.delete(f"/api/v1/admin/merchant-pages/{body['id']}", headers=auth_headers(admin))
        assert deleted.status_code == 204
        missing = await client.delete(f"/api/v1/admin/merchant-pages/{body['id']}", headers=auth_headers(admin))
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_admin_analytics_counts(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        _, member = await create_member(session)
        _, merchant = await create_merchant(session)
        grc = await create_active_grc(session, merchant, member, grocery_store="Safeway")
        session.add(Receipt(member_id=member.id, grc_id=grc.id, amount=Decimal("42.10")))
        await session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/admin/analytics", params={"range": "7d"}, headers=auth_headers(admin))
        assert response.status_code == 200
        payload = response.json()
        assert payload["summary"]["totalUsers"]["value"] == 3
        assert payload["summary"]["activeGrcs"] == {"value": 1, "change": 100}
        assert payload["summary"]["giftCardsSent"] == {"value": 0, "change": 0}
        assert payload["usersByRole"] == {"members": 1, "merchants": 1, "admins": 1}
        assert payload["grcsByStatus"]["active"] == 1
        assert payload["receiptsByStatus"] == {"pending": 1, "approved": 0, "rejected": 0}
        assert payload["topMerchants"][0]["name"] == "Corner Bakery"
        assert payload["topMerchants"][0]["activeGrcs"] == 1
        assert payload["topGroceryStores"] == [{"name": "Safeway", "receiptCount": 1}]

        bad_range = await client.get("/api/v1/admin/analytics", params={"range": "2w"}, headers=auth_headers(admin))
        assert bad_range.status_code == 400


def test_percent_change_and_windows() -> None:
    assert percent_change(5, 0) == 100
    assert percent_change(0, 0) == 0
    assert percent_change(15, 10) == 50
    assert percent_change(5, 10) == -50

    now = datetime(2026, 3, 15, 12, tzinfo=timezone.utc)
    rolling = window_for("30d", now=now)
    assert rolling.start == datetime(2026, 2, 13, 12, tzinfo=timezone.utc)
    assert rolling.previous_start < rolling.previous_end < rolling.start
    ytd = window_for("ytd", now=now)
    assert ytd.start == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert ytd.previous_end == datetime(2025, 3, 15, tzinfo=timezone.utc)
    with pytest.raises(ValidationFailed):
        window_for("forever", now=now)


@pytest.mark.asyncio
async def test_campaign_test_send_and_stats_sync(app_with_db, postmark_stub):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        await create_member(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        incomplete = await client.post(
            "/api/v1/admin/emails/test",
            json={"subject": "Hello", "content": "<p>Hi</p>"},
            headers=auth_headers(admin),
        )
        assert incomplete.status_code == 400
        invalid = await client.post(
            "/api/v1/admin/emails/test",
            json={"subject": "Hello", "content": "<p>Hi</p>", "testEmail": "not-an-address"},
            headers=auth_headers(admin),
        )
        assert invalid.status_code == 400

        sent = await client.post(
            "/api/v1/admin/emails/test",
            json={"subject": "Hello", "content": "<p>Hi</p>", "testEmail": "ops@localcityplaces.com"},
            headers=auth_headers(admin),
        )
        assert sent.status_code == 200
        assert sent.json() == {"success": True, "messageId": "pm-0"}
        message = json.loads(postmark_stub.requests[0].content)[0]
        assert message["Subject"] == "[TEST] Hello"
        assert message["To"] == "ops@localcityplaces.com"

        created = await client.post(
            "/api/v1/admin/emails",
            json={
                "subject": "Spring rewards",
                "content": "<p>New merchants joined.</p>",
                "recipientType": "lists",
                "recipientLists": ["members"],
            },
            headers=auth_headers(admin),
        )
        campaign_id = created.json()["id"]
        await client.post(f"/api/v1/admin/emails/{campaign_id}/send", headers=auth_headers(admin))
        await client.post("/api/v1/webhooks/postmark", json={"RecordType": "Open", "MessageID": "pm-0"})

        synced = await client.post(f"/api/v1/admin/emails/{campaign_id}/sync-stats", headers=auth_headers(admin))
        assert synced.status_code == 200
        assert synced.json()["totalSent"] == 1
        assert synced.json()["uniqueOpens"] == 1

        missing = await client.post(f"/api/v1/admin/emails/{uuid4()}/sync-stats", headers=auth_headers(admin))
        assert missing.status_code == 404
