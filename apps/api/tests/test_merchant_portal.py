from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from grc_api.models import Grc

from factories import (
    auth_headers,
    create_active_grc,
    create_admin,
    create_member,
    create_merchant,
)

QUESTIONS = [
    {"id": "visit", "text": "How often do you visit?", "type": "multiple_choice", "options": ["Weekly", "Monthly"], "required": True},
    {"id": "tip", "text": "Anything we should change?", "type": "text"},
]


@pytest.mark.asyncio
async def test_merchant_survey_lifecycle(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        merchant_user, _ = await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post(
            "/api/v1/merchant/surveys",
            json={"title": "Visit survey", "questions": QUESTIONS},
            headers=auth_headers(merchant_user),
        )
        assert first.status_code == 201
        assert first.json()["isActive"] is True
        assert first.json()["questions"][0]["options"] == ["Weekly", "Monthly"]
        assert first.json()["questions"][1]["required"] is False

        second = await client.post(
            "/api/v1/merchant/surveys",
            json={"title": "Holiday survey", "questions": QUESTIONS[1:]},
            headers=auth_headers(merchant_user),
        )
        assert second.status_code == 201

        listed = await client.get("/api/v1/merchant/surveys", headers=auth_headers(merchant_user))
        active = {row["survey"]["title"]: row["survey"]["isActive"] for row in listed.json()}
        assert active == {"Visit survey": False, "Holiday survey": True}
        assert all(row["responseCount"] == 0 for row in listed.json())

        reactivated = await client.put(
            f"/api/v1/merchant/surveys/{first.json()['id']}",
            json={"isActive": True, "title": "Visit survey v2"},
            headers=auth_headers(merchant_user),
        )
        assert reactivated.json()["title"] == "Visit survey v2"

        fetched = await client.get(f"/api/v1/merchant/surveys/{second.json()['id']}", headers=auth_headers(merchant_user))
        assert fetched.json()["isActive"] is False

        one_option = await client.post(
            "/api/v1/merchant/surveys",
            json={
                "title": "Broken",
                "questions": [{"id": "a", "text": "Pick", "type": "multiple_choice", "options": ["Only"]}],
            },
            headers=auth_headers(merchant_user),
        )
        assert one_option.status_code == 400


@pytest.mark.asyncio
async def test_surveys_are_scoped_to_their_merchant(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        owner, _ = await create_merchant(session)
        other, _ = await create_merchant(
            session,
            "hello@greenleafcafe.com",
            business_name="Greenleaf Cafe",
            slug="greenleaf-cafe-austin",
        )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post(
            "/api/v1/merchant/surveys",
            json={"title": "Visit survey", "questions": QUESTIONS},
            headers=auth_headers(owner),
        )
        response = await client.get(f"/api/v1/merchant/surveys/{created.json()['id']}", headers=auth_headers(other))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_review_bonus_month_and_listings(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        merchant_user, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        grc = await create_active_grc(session, merchant, member)

    payload = {"merchantId": str(merchant.id), "grcId": str(grc.id), "content": " ".join(["Fresh"] * 50)}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post("/api/v1/review/create", json=payload, headers=auth_headers(member_user))
        assert created.status_code == 201
        assert created.json()["bonusMonthAwarded"] is True
        assert created.json()["authorName"] == "Jamie R."

        duplicate = await client.post("/api/v1/review/create", json=payload, headers=auth_headers(member_user))
        assert duplicate.status_code == 400

        public = await client.get("/api/v1/reviews", params={"merchantId": str(merchant.id), "limit": 5})
        assert [row["id"] for row in public.json()] == [created.json()["id"]]

        mine = await client.get("/api/v1/merchant/reviews", headers=auth_headers(merchant_user))
        assert len(mine.json()) == 1

        moderated = await client.get("/api/v1/admin/reviews", headers=auth_headers(admin))
        assert moderated.json()[0]["merchantName"] == "Corner Bakery"

        deleted = await client.delete(f"/api/v1/admin/reviews/{created.json()['id']}", headers=auth_headers(admin))
        assert deleted.status_code == 204

        after = await client.get("/api/v1/reviews", params={"merchantId": str(merchant.id)})
        assert after.json() == []

    async with session_factory() as session:
        refreshed = (await session.execute(select(Grc).where(Grc.id == grc.id))).scalar_one()
    assert refreshed.months_remaining == 5


@pytest.mark.asyncio
async def test_short_review_keeps_months(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        grc = await create_active_grc(session, merchant, member)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/review/create",
            json={"merchantId": str(merchant.id), "grcId": str(grc.id), "content": "Great bread."},
            headers=auth_headers(member_user),
        )

    assert response.status_code == 201
    assert response.json()["bonusMonthAwarded"] is False
    assert response.json()["wordCount"] == 2


@pytest.mark.asyncio
async def test_public_directory_lists_verified_merchants(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        _, merchant = await create_merchant(session)
        await create_merchant(session, "hello@greenleafcafe.com", business_name="Greenleaf Cafe", slug="greenleaf-cafe-austin")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        category = await client.post("/api/v1/admin/categories", json={"name": "Bakery"}, headers=auth_headers(admin))
        assert category.status_code == 201
        duplicate = await client.post("/api/v1/admin/categories", json={"name": "bakery"}, headers=auth_headers(admin))
        assert duplicate.status_code == 400

        empty = await client.get("/api/v1/merchants/public")
        assert empty.json() == []

        verified = await client.patch(
            f"/api/v1/admin/merchants/{merchant.id}",
            json={"verified": True, "categoryId": category.json()["id"]},
            headers=auth_headers(admin),
        )
        assert verified.json()["verified"] is True

        categories = await client.get("/api/v1/categories")
        assert [row["name"] for row in categories.json()] == ["Bakery"]

        listed = await client.get("/api/v1/merchants/public", params={"city": "austin"})
        assert [row["profile"]["slug"] for row in listed.json()] == ["corner-bakery-austin"]
        assert listed.json()[0]["categoryName"] == "Bakery"

        by_category = await client.get("/api/v1/merchants/public", params={"categoryId": category.json()["id"]})
        assert len(by_category.json()) == 1

        page = await client.get("/api/v1/merchants/public/corner-bakery-austin")
        assert page.json()["reviewCount"] == 0
        missing = await client.get("/api/v1/merchants/public/nowhere")
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_merchant_profile_and_dashboard(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        merchant_user, merchant = await create_merchant(session)
        _, member = await create_member(session)
        await create_active_grc(session, merchant, member)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        profile = await client.get("/api/v1/merchant/profile", headers=auth_headers(merchant_user))
        assert profile.status_code == 200
        assert profile.json()["email"] == merchant_user.email
        before = profile.json()["completion"]["percentage"]

        updated = await client.put(
            "/api/v1/merchant/profile",
            json={"businessName": "Corner Bakery & Cafe", "aboutStory": "Family bakers since 1998.", "phone": "5125550100"},
            headers=auth_headers(merchant_user),
        )
        assert updated.status_code == 200
        assert updated.json()["profile"]["businessName"] == "Corner Bakery & Cafe"
        assert updated.json()["profile"]["slug"].startswith("corner-bakery-cafe")
        assert updated.json()["completion"]["percentage"] > before

        bad_state = await client.put("/api/v1/merchant/profile", json={"state": "Texas"}, headers=auth_headers(merchant_user))
        assert bad_state.status_code in (400, 422)

        dashboard = await client.get("/api/v1/merchant/dashboard", headers=auth_headers(merchant_user))
        body = dashboard.json()
        assert body["grcCounts"] == {"active": 1, "completed": 0, "pending": 0, "total": 1}
        assert body["activeMembers"] == 1
        assert body["recentGrcs"][0]["memberName"] == "Jamie R."
        assert body["inventory"]["totalAvailable"] == 0
