from __future__ import annotations

import base64
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest
from httpx import ASGITransport, AsyncClient, MockTransport, Response

from grc_api.core.settings import Settings
from grc_api.models import GrcStatusEnum
from grc_api.services.receipts import (
    VeryfiAuthenticationError,
    VeryfiClient,
    VeryfiDuplicateError,
    VeryfiResult,
    evaluate_receipt,
)

from factories import auth_headers, create_active_grc, create_grc, create_member, create_merchant, veryfi_document

IMAGE = "data:image/jpeg;base64," + base64.b64encode(b"receipt-image-bytes").decode()


def _result(vendor: str | None = "Safeway", total: str | None = "42.50", receipt_date: date | None = None) -> VeryfiResult:
    return VeryfiResult(
        document_id=1,
        vendor_name=vendor,
        raw_vendor_name=vendor,
        total=Decimal(total) if total is not None else None,
        subtotal=None,
        tax=None,
        receipt_date=receipt_date,
    )


def test_evaluate_receipt_flags_store_date_and_missing_total() -> None:
    checks = evaluate_receipt(_result(vendor="Kroger", total=None, receipt_date=date(2025, 1, 15)), "Safeway", today=(3, 2025))

    assert checks.store_mismatch is True
    assert checks.date_mismatch is True
    assert len(checks.warnings) == 3
    assert "Kroger" in checks.warnings[0]
    assert "January 2025" in checks.warnings[1]


def test_evaluate_receipt_treats_unreadable_store_as_mismatch() -> None:
    checks = evaluate_receipt(_result(vendor=None, receipt_date=date(2025, 3, 2)), "Safeway", today=(3, 2025))

    assert checks.store_mismatch is True
    assert checks.extracted_store_name is None
    assert checks.warnings == ["We couldn't read the store name. Make sure this receipt is from Safeway."]


def test_evaluate_receipt_accepts_matching_receipt() -> None:
    checks = evaluate_receipt(_result(vendor="SAFEWAY #1234", receipt_date=date(2025, 3, 2)), "Safeway", today=(3, 2025))

    assert checks.warnings == []
    assert checks.amount == Decimal("42.50")


@pytest.mark.asyncio
async def test_veryfi_client_posts_document_and_parses_result() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> Response:
        captured.append(request)
        return Response(200, json=veryfi_document(vendor="Whole Foods", total=88.1, receipt_date="2026-02-03 09:00:00"))

    settings = Settings(veryfi_client_id="cid", veryfi_username="grc", veryfi_api_key="key")
    async with httpx.AsyncClient(transport=MockTransport(handler)) as http_client:
        result = await VeryfiClient(settings=settings, http_client=http_client).process_document("Zm9v", file_name="r.jpg")

    assert result.vendor_name == "Whole Foods"
    assert result.total == Decimal("88.1")
    assert result.receipt_date == date(2026, 2, 3)
    assert str(captured[0].url) == "https://api.veryfi.com/api/v8/partner/documents"
    assert captured[0].headers["Client-Id"] == "cid"
    assert captured[0].headers["Authorization"] == "apikey grc:key"
    assert json.loads(captured[0].content) == {"file_data": "Zm9v", "file_name": "r.jpg"}


@pytest.mark.asyncio
async def test_veryfi_client_error_mapping() -> None:
    responses = iter(
        [
            Response(400, json={"status": "fail", "error": "Duplicate document detected"}),
            Response(200, json={**veryfi_document(), "is_duplicate": True, "duplicate_of": 77}),
        ]
    )
    settings = Settings(veryfi_client_id="cid", veryfi_username="grc", veryfi_api_key="key")
    async with httpx.AsyncClient(transport=MockTransport(lambda request: next(responses))) as http_client:
        client = VeryfiClient(settings=settings, http_client=http_client)
        with pytest.raises(VeryfiDuplicateError):
            await client.process_document("Zm9v")
        with pytest.raises(VeryfiDuplicateError) as excinfo:
            await client.process_document("Zm9v")
    assert excinfo.value.duplicate_of == 77

    with pytest.raises(VeryfiAuthenticationError):
        await VeryfiClient(settings=Settings(veryfi_client_id="")).process_document("Zm9v")


@pytest.mark.asyncio
async def test_clean_receipt_is_saved_pending(app_with_db, veryfi_stub):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        grc = await create_active_grc(session, merchant, member)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": IMAGE, "grcId": str(grc.id)},
            headers=auth_headers(member_user),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["requiresConfirmation"] is False
        assert body["warnings"] == []
        assert body["receipt"]["status"] == "pending"
        assert body["receipt"]["amount"] == 42.5
        assert body["extracted"]["storeName"] == "Safeway"

        listed = await client.get("/api/v1/member/receipts", headers=auth_headers(member_user))
        assert [row["id"] for row in listed.json()] == [body["receipt"]["id"]]

    sent = json.loads(veryfi_stub.requests[0].content)
    assert sent["file_data"] == IMAGE.split(",", 1)[1]


@pytest.mark.asyncio
async def test_receipt_with_warnings_needs_acknowledgement(app_with_db, veryfi_stub):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        grc = await create_active_grc(session, merchant, member)

    veryfi_stub.respond_with(json=veryfi_document(vendor="Kroger"))
    veryfi_stub.respond_with(json=veryfi_document(vendor="Kroger", document_id=9002))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": IMAGE, "grcId": str(grc.id)},
            headers=auth_headers(member_user),
        )
        assert first.status_code == 200
        assert first.json()["requiresConfirmation"] is True
        assert first.json()["receipt"] is None
        assert first.json()["extracted"]["storeMismatch"] is True

        confirmed = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": IMAGE, "grcId": str(grc.id), "acknowledgeWarnings": True},
            headers=auth_headers(member_user),
        )
        assert confirmed.status_code == 201
        receipt = confirmed.json()["receipt"]
        assert receipt["memberOverride"] is True
        assert receipt["storeMismatch"] is True


@pytest.mark.asyncio
async def test_receipt_without_store_name_needs_acknowledgement(app_with_db, veryfi_stub):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        grc = await create_active_grc(session, merchant, member)

    veryfi_stub.respond_with(json=veryfi_document(vendor=None))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": IMAGE, "grcId": str(grc.id)},
            headers=auth_headers(member_user),
        )

    assert response.status_code == 200
    body = response.json()
    assert body["requiresConfirmation"] is True
    assert body["receipt"] is None
    assert body["extracted"]["storeMismatch"] is True
    assert any("couldn't read the store name" in warning for warning in body["warnings"])


@pytest.mark.asyncio
async def test_duplicate_receipt_is_rejected(app_with_db, veryfi_stub):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        grc = await create_active_grc(session, merchant, member)

    veryfi_stub.respond_with(json={**veryfi_document(), "is_duplicate": True})
    veryfi_stub.respond_with(status_code=401, json={"error": "bad key"})
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        duplicate = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": IMAGE, "grcId": str(grc.id)},
            headers=auth_headers(member_user),
        )
        unavailable = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": IMAGE, "grcId": str(grc.id)},
            headers=auth_headers(member_user),
        )

    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "This receipt has already been submitted"
    assert unavailable.status_code == 503


@pytest.mark.asyncio
async def test_upload_checks_certificate_ownership_and_status(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        _, stranger = await create_member(session, "other.member@grcmail.com", first_name="Alex")
        foreign = await create_active_grc(session, merchant, stranger)
        pending = await create_grc(session, merchant, member=member, status=GrcStatusEnum.PENDING)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        not_mine = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": IMAGE, "grcId": str(foreign.id)},
            headers=auth_headers(member_user),
        )
        inactive = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": IMAGE, "grcId": str(pending.id)},
            headers=auth_headers(member_user),
        )
        bad_image = await client.post(
            "/api/v1/member/receipts/upload",
            json={"image": "data:image/bmp;base64,Zm9v", "grcId": str(pending.id)},
            headers=auth_headers(member_user),
        )

    assert not_mine.status_code == 404
    assert inactive.status_code == 400
    assert inactive.json()["detail"] == "GRC is not active"
    assert bad_image.status_code == 400


@pytest.mark.asyncio
async def test_uploads_are_rate_limited_per_member(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        member_user, member = await create_member(session)
        grc = await create_active_grc(session, merchant, member)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        statuses = []
        for _ in range(11):
            response = await client.post(
                "/api/v1/member/receipts/upload",
                json={"image": IMAGE, "grcId": str(grc.id)},
                headers=auth_headers(member_user),
            )
            statuses.append(response.status_code)

    assert statuses[:10] == [201] * 10
    assert statuses[10] == 429
    assert response.headers["retry-after"] == "60"
