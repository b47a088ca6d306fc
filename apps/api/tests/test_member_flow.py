from __future__ import annotations

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from grc_api.domain.grc import current_period, utcnow
from grc_api.models import Grc, GrcStatusEnum, Review, SurveyResponse, User
from grc_api.services.grc import QualificationService

from factories import (
    auth_headers,
    create_active_grc,
    create_grc,
    create_member,
    create_merchant,
    create_survey,
    create_user,
)

PROFILE = {
    "firstName": "Jamie",
    "lastName": "Rivera",
    "phone": "5125550199",
    "address": "12 Oak Lane",
    "city": "Austin",
    "state": "TX",
    "zip": "78701",
}


@pytest.mark.asyncio
async def test_claim_creates_account_and_redirects_to_registration(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        grc = await create_grc(session, merchant, recipient_email="new.friend@grcmail.com")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        info = await client.get(f"/api/v1/grc/{grc.id}")
        assert info.status_code == 200
        assert info.json()["merchant"]["businessName"] == "Corner Bakery"
        assert info.json()["monthsRemaining"] == 4

        claim = await client.get(f"/api/v1/grc/{grc.id}/claim")
        assert claim.status_code == 307
        assert claim.headers["location"].endswith(f"/member/register?grc={grc.id}")
        assert "session_token" in claim.headers["set-cookie"]

        bad_id = await client.get("/api/v1/grc/not-a-uuid")
        assert bad_id.status_code == 400

    async with session_factory() as session:
        user = (await session.execute(select(User).where(User.email == "new.friend@grcmail.com"))).scalar_one()
    assert user.role == "member"


@pytest.mark.asyncio
async def test_claim_info_reports_expired_and_claimed_certificates(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        _, member = await create_member(session)
        expired = await create_grc(session, merchant, status=GrcStatusEnum.EXPIRED)
        claimed = await create_active_grc(session, merchant, member)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        gone = await client.get(f"/api/v1/grc/{expired.id}")
        taken = await client.get(f"/api/v1/grc/{claimed.id}")
        claim_expired = await client.get(f"/api/v1/grc/{expired.id}/claim")

    assert gone.status_code == 410
    assert taken.status_code == 400
    assert claim_expired.status_code == 400


@pytest.mark.asyncio
async def test_member_registration_validates_profile(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        user = await create_user(session, "jamie.rivera@grcmail.com")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        bad_zip = await client.post(
            "/api/v1/member/register",
            json={**PROFILE, "zip": "7870"},
            headers=auth_headers(user),
        )
        assert bad_zip.status_code == 400

        created = await client.post("/api/v1/member/register", json=PROFILE, headers=auth_headers(user))
        assert created.status_code == 201
        assert created.json()["homeCity"] == "Austin"

        again = await client.post("/api/v1/member/register", json=PROFILE, headers=auth_headers(user))
        assert again.status_code == 400

        updated = await client.put(
            "/api/v1/member/profile",
            json={"city": "Round Rock"},
            headers=auth_headers(user),
        )
        assert updated.status_code == 200
        assert updated.json()["city"] == "Round Rock"
        assert updated.json()["homeCity"] == "Austin"


@pytest.mark.asyncio
async def test_register_grc_with_long_review_earns_bonus_month(app_with_db, email_backend):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        survey = await create_survey(session, merchant)
        grc = await create_grc(session, merchant, recipient_email=member_user.email)

    month, year = current_period()
    review = " ".join(["Wonderful"] * 55)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/member/register-grc",
            json={
                "grcId": str(grc.id),
                "groceryStore": "Safeway",
                "startMonth": month,
                "startYear": year,
                "surveyAnswers": {"q1": "Sourdough"},
                "reviewContent": review,
            },
            headers=auth_headers(member_user),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["bonusMonth"] is True
        assert body["grc"]["status"] == "active"
        assert body["grc"]["monthsRemaining"] == 5
        assert body["qualification"]["status"] == "in_progress"

        listing = await client.get("/api/v1/member/grcs", headers=auth_headers(member_user))
        assert listing.json()["hasActiveGrc"] is True
        assert [row["id"] for row in listing.json()["active"]] == [str(grc.id)]

        dashboard = await client.get("/api/v1/member/dashboard", headers=auth_headers(member_user))
        assert dashboard.status_code == 200
        summary = dashboard.json()
        assert summary["amountRemaining"] == 100.0
        assert summary["activeGrc"]["merchantName"] == "Corner Bakery"
        assert summary["hasSurvey"] is True
        assert summary["surveyId"] == str(survey.id)
        assert summary["currentMonth"]["month"] == month

    assert [message["Subject"] for message in email_backend.messages_to(member_user.email)]

    async with session_factory() as session:
        saved_review = (await session.execute(select(Review))).scalar_one()
        registration = (await session.execute(select(SurveyResponse))).scalar_one()
    assert saved_review.bonus_month_awarded is True
    assert saved_review.word_count == 55
    assert registration.month is None


@pytest.mark.asyncio
async def test_only_one_active_certificate_at_a_time(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        await create_active_grc(session, merchant, member)
        queued = await create_grc(session, merchant, recipient_email=member_user.email)

    month, year = current_period()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/member/register-grc",
            json={"grcId": str(queued.id), "groceryStore": "Kroger", "startMonth": month, "startYear": year},
            headers=auth_headers(member_user),
        )

    assert response.status_code == 400
    assert "already have an active GRC" in response.json()["detail"]


@pytest.mark.asyncio
async def test_register_grc_hides_other_members_certificates(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, _ = await create_member(session)
        _, other = await create_member(session, "alex.kim@grcmail.com", first_name="Alex", last_name="Kim")
        foreign = await create_grc(session, merchant, member=other, recipient_email="alex.kim@grcmail.com")

    month, year = current_period()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/member/register-grc",
            json={"grcId": str(foreign.id), "groceryStore": "Kroger", "startMonth": month, "startYear": year},
            headers=auth_headers(member_user),
        )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_register_grc_claims_unassigned_certificate_for_any_email(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        gifted = await create_grc(session, merchant, recipient_email="gift.buyer@grcmail.com")

    month, year = current_period()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/member/register-grc",
            json={"grcId": str(gifted.id), "groceryStore": "Kroger", "startMonth": month, "startYear": year},
            headers=auth_headers(member_user),
        )

    assert response.status_code == 200
    assert response.json()["grc"]["status"] == "active"
    async with session_factory() as session:
        claimed = await session.get(Grc, gifted.id)
    assert claimed.member_id == member.id


@pytest.mark.asyncio
async def test_pending_queue_follows_member_order(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        _, other_merchant = await create_merchant(
            session,
            "hello@greenleafcafe.com",
            business_name="Greenleaf Cafe",
            slug="greenleaf-cafe-austin",
        )
        member_user, _ = await create_member(session)
        older = await create_grc(
            session,
            merchant,
            recipient_email=member_user.email,
            issued_at=utcnow() - timedelta(days=3),
        )
        newer = await create_grc(session, other_merchant, recipient_email=member_user.email)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        default = await client.get("/api/v1/member/grcs", headers=auth_headers(member_user))
        assert [row["id"] for row in default.json()["pending"]] == [str(newer.id), str(older.id)]

        reordered = await client.put(
            "/api/v1/member/grcs/order",
            json={"grcIds": [str(older.id), str(newer.id)]},
            headers=auth_headers(member_user),
        )
        assert reordered.status_code == 200

        listing = await client.get("/api/v1/member/grcs", headers=auth_headers(member_user))
        assert [row["id"] for row in listing.json()["pending"]] == [str(older.id), str(newer.id)]

        duplicate = await client.put(
            "/api/v1/member/grcs/order",
            json={"grcIds": [str(older.id), str(older.id)]},
            headers=auth_headers(member_user),
        )
        assert duplicate.status_code == 400


@pytest.mark.asyncio
async def test_dashboard_without_active_certificate(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        member_user, _ = await create_member(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/member/dashboard", headers=auth_headers(member_user))

    body = response.json()
    assert body["activeGrc"] is None
    assert body["amountRemaining"] == 100.0
    assert body["monthsQualified"] == 0


@pytest.mark.asyncio
async def test_member_routes_need_profile(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        user = await create_user(session, "halfway@grcmail.com")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/member/dashboard", headers=auth_headers(user))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_expire_unclaimed_certificates(session_factory):
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        stale = await create_grc(session, merchant, issued_at=utcnow() - timedelta(days=120))
        fresh = await create_grc(session, merchant, recipient_email="fresh@grcmail.com")

        expired = await QualificationService(session).expire_unclaimed_grcs(max_age_days=90)
        await session.commit()
        await session.refresh(stale)
        await session.refresh(fresh)

    assert expired == 1
    assert stale.status == GrcStatusEnum.EXPIRED
    assert fresh.status == GrcStatusEnum.PENDING
