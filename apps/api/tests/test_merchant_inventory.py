from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from grc_api.domain.grc import OrderLine
from grc_api.models import GrcStatusEnum, PaymentMethodEnum, PaymentStatusEnum
from grc_api.services.grc import GrcIssuanceService, InventoryService, IssueRequest

from factories import auth_headers, create_admin, create_member, create_merchant


@pytest.mark.asyncio
async def test_order_is_pending_until_admin_confirms(app_with_db, email_backend):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        merchant_user, _ = await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        placed = await client.post(
            "/api/v1/merchant/orders",
            json={
                "items": [{"denomination": 100, "quantity": 40}, {"denomination": 200, "quantity": 10}],
                "paymentMethod": "zelle",
                "zelleAccountName": "Corner Bakery LLC",
            },
            headers=auth_headers(merchant_user),
        )
        assert placed.status_code == 201
        orders = placed.json()
        assert [order["paymentStatus"] for order in orders] == ["pending", "pending"]
        assert orders[0]["totalCost"] == 70.0
        assert email_backend.messages_to(admin.email)

        listing = await client.get("/api/v1/merchant/orders", headers=auth_headers(merchant_user))
        assert listing.json()["inventory"]["totalAvailable"] == 0

        pending = await client.get(
            "/api/v1/admin/orders",
            params={"status": "pending"},
            headers=auth_headers(admin),
        )
        assert len(pending.json()) == 2
        assert pending.json()[0]["merchantName"] == "Corner Bakery"

        approved = await client.patch(
            f"/api/v1/admin/orders/{orders[0]['id']}",
            json={"action": "approve", "notes": "Zelle received"},
            headers=auth_headers(admin),
        )
        assert approved.status_code == 200
        assert approved.json()["paymentStatus"] == "confirmed"
        assert email_backend.messages_to(merchant_user.email)

        again = await client.patch(
            f"/api/v1/admin/orders/{orders[0]['id']}",
            json={"action": "reject", "reason": "late"},
            headers=auth_headers(admin),
        )
        assert again.status_code == 400

        no_reason = await client.patch(
            f"/api/v1/admin/orders/{orders[1]['id']}",
            json={"action": "reject"},
            headers=auth_headers(admin),
        )
        assert no_reason.status_code == 400

        inventory = await client.get("/api/v1/merchant/grcs/inventory", headers=auth_headers(merchant_user))
        body = inventory.json()
        assert body["availableDenominations"] == [100]
        assert body["totalAvailable"] == 40


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"items": [{"denomination": 100, "quantity": 49}], "paymentMethod": "zelle", "zelleAccountName": "A"}, "Minimum"),
        ({"items": [{"denomination": 100, "quantity": 50}], "paymentMethod": "zelle"}, "Zelle account name"),
        ({"items": [{"denomination": 100, "quantity": 50}], "paymentMethod": "business_check"}, "Bank account"),
        ({"items": [{"denomination": 105, "quantity": 50}], "paymentMethod": "zelle", "zelleAccountName": "A"}, "denomination"),
    ],
)
async def test_order_validation_errors(app_with_db, payload, message):
    app, session_factory = app_with_db
    async with session_factory() as session:
        merchant_user, _ = await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/v1/merchant/orders", json=payload, headers=auth_headers(merchant_user))

    assert response.status_code == 400
    assert message in response.json()["detail"]


@pytest.mark.asyncio
async def test_business_check_order_saves_masked_bank_account(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        merchant_user, _ = await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        empty = await client.get("/api/v1/merchant/bank-account", headers=auth_headers(merchant_user))
        assert empty.json()["hasAccount"] is False

        placed = await client.post(
            "/api/v1/merchant/orders",
            json={
                "items": [{"denomination": 50, "quantity": 50}],
                "paymentMethod": "business_check",
                "bankDetails": {
                    "routingNumber": "121000248",
                    "accountNumber": "000123456789",
                    "accountHolderName": "Corner Bakery LLC",
                    "bankName": "Wells Fargo",
                },
                "saveBankInfo": True,
            },
            headers=auth_headers(merchant_user),
        )
        assert placed.status_code == 201

        account = await client.get("/api/v1/merchant/bank-account", headers=auth_headers(merchant_user))
        body = account.json()
        assert body["hasAccount"] is True
        assert body["routingLast4"] == "0248"
        assert body["accountLast4"] == "6789"
        assert "accountNumber" not in body

        reorder = await client.post(
            "/api/v1/merchant/orders",
            json={"items": [{"denomination": 50, "quantity": 50}], "paymentMethod": "business_check", "useSavedBank": True},
            headers=auth_headers(merchant_user),
        )
        assert reorder.status_code == 201


@pytest.mark.asyncio
async def test_issue_draws_down_confirmed_stock_and_emails_claim_link(app_with_db, email_backend):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        merchant_user, merchant = await create_merchant(session)
        await InventoryService(session).grant_trial(merchant.id, denomination=100, confirmed_by=admin.id)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        issued = await client.post(
            "/api/v1/merchant/grcs",
            json={"email": "Pat.Lee@grcmail.com", "recipientName": "Pat Lee", "denomination": 100},
            headers=auth_headers(merchant_user),
        )
        assert issued.status_code == 201
        grc = issued.json()
        assert grc["status"] == "pending"
        assert grc["monthsRemaining"] == 4
        assert grc["recipientEmail"] == "pat.lee@grcmail.com"

        messages = email_backend.messages_to("pat.lee@grcmail.com")
        assert len(messages) == 1
        assert f"/api/v1/grc/{grc['id']}/claim" in messages[0].get_body(preferencelist=("plain",)).get_content()

        duplicate = await client.post(
            "/api/v1/merchant/grcs",
            json={"email": "pat.lee@grcmail.com", "recipientName": "Pat Lee", "denomination": 100},
            headers=auth_headers(merchant_user),
        )
        assert duplicate.status_code == 400

        out_of_stock = await client.post(
            "/api/v1/merchant/grcs",
            json={"email": "sam@grcmail.com", "recipientName": "Sam", "denomination": 200},
            headers=auth_headers(merchant_user),
        )
        assert out_of_stock.status_code == 400
        assert "No $200" in out_of_stock.json()["detail"]

        listed = await client.get(
            "/api/v1/merchant/grcs",
            params={"status": "pending"},
            headers=auth_headers(merchant_user),
        )
        assert [row["id"] for row in listed.json()] == [grc["id"]]


@pytest.mark.asyncio
async def test_bulk_issue_tracks_running_stock(session_factory):
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        await InventoryService(session).grant_trial(merchant.id, denomination=50)

        requests = [IssueRequest(email=f"guest{index}@grcmail.com", recipient_name="Guest", denomination=50) for index in range(11)]
        requests.append(IssueRequest(email="guest0@grcmail.com", recipient_name="Again", denomination=50))
        result = await GrcIssuanceService(session).bulk_issue(merchant, requests)

        snapshot = await InventoryService(session).get_inventory(merchant.id)

    assert len(result.issued) == 10
    assert len(result.failures) == 2
    assert snapshot.available_for(50) == 0
    assert all(grc.status == GrcStatusEnum.PENDING for grc in result.issued)


@pytest.mark.asyncio
async def test_trial_grant_is_confirmed_inventory(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        admin = await create_admin(session)
        merchant_user, merchant = await create_merchant(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        granted = await client.post(
            f"/api/v1/admin/merchants/{merchant.id}/trial",
            json={"denomination": 75},
            headers=auth_headers(admin),
        )
        assert granted.status_code == 201
        assert granted.json()["isTrial"] is True
        assert granted.json()["paymentStatus"] == "confirmed"
        assert granted.json()["quantity"] == 10

        bad = await client.post(
            f"/api/v1/admin/merchants/{merchant.id}/trial",
            json={"denomination": 300},
            headers=auth_headers(admin),
        )
        assert bad.status_code == 400

        merchants = await client.get("/api/v1/admin/merchants", headers=auth_headers(admin))
        row = merchants.json()[0]
        assert row["totalPurchased"] == 10
        assert row["totalAvailable"] == 10
        assert row["email"] == merchant_user.email


@pytest.mark.asyncio
async def test_merchant_routes_reject_members(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        member_user, _ = await create_member(session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/merchant/orders", headers=auth_headers(member_user))
        admin_only = await client.get("/api/v1/admin/orders", headers=auth_headers(member_user))

    assert response.status_code == 403
    assert admin_only.status_code == 403


@pytest.mark.asyncio
async def test_inventory_ignores_unconfirmed_orders(session_factory):
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        service = InventoryService(session)
        await service.place_order(
            merchant,
            [OrderLine(denomination=150, quantity=50)],
            payment_method=PaymentMethodEnum.ZELLE.value,
            zelle_account_name="Corner Bakery LLC",
        )
        orders = await service.list_orders(merchant.id)
        snapshot = await service.get_inventory(merchant.id)

    assert orders[0].payment_status == PaymentStatusEnum.PENDING
    assert snapshot.rows == []
