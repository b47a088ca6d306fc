from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from grc_api.core.settings import Settings
from grc_api.domain.grc import parse_receipt_image, utcnow
from grc_api.models import Grc, GrcStatusEnum
from grc_api.services.errors import UpstreamError
from grc_api.services.grc import GrcLifecycleScheduler, QualificationService
from grc_api.services.notifications.templates import (
    render_gift_card_sent,
    render_grc_issued,
    render_magic_link,
    render_receipt_rejected,
)
from grc_api.services.receipts import ReceiptImageStorage

from factories import create_active_grc, create_grc, create_member, create_merchant

PNG = "data:image/png;base64," + base64.b64encode(b"\x89PNG-receipt").decode()


class StubS3Client:
    def __init__(self, *, fail: bool = False) -> None:
        self.objects: dict[str, dict] = {}
        self._fail = fail

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str, ACL: str) -> None:
        if self._fail:
            raise RuntimeError("AccessDenied")
        self.objects[Key] = {"Bucket": Bucket, "Body": Body, "ContentType": ContentType, "ACL": ACL}


@pytest.mark.asyncio
async def test_health_endpoints(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        health = await client.get("/api/v1/health/healthz")
        root = await client.get("/healthz")
        ready = await client.get("/api/v1/health/readyz")

    assert health.json() == {"status": "ok"}
    assert root.json()["status"] == "ok"
    payload = ready.json()
    assert payload["status"] == "ready"
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["lifecycle_scheduler"]["status"] == "disabled"
    assert payload["components"]["receipt_storage"]["status"] in {"ready", "disabled"}
    assert "receipt_ocr" in payload["components"]


@pytest.mark.asyncio
async def test_lifecycle_scheduler_sweeps_once(session_factory) -> None:
    async with session_factory() as session:
        _, merchant = await create_merchant(session)
        _, member = await create_member(session)
        grc = await create_active_grc(session, merchant, member)
        await QualificationService(session).get_or_create(member.id, grc.id, 6, 2025)
        await session.commit()
        await create_grc(
            session,
            merchant,
            recipient_email="lost@grcmail.com",
            issued_at=utcnow() - timedelta(days=200),
        )
        stale_id = (await create_grc(session, merchant, recipient_email="old@grcmail.com", issued_at=utcnow() - timedelta(days=95))).id

    scheduler = GrcLifecycleScheduler(session_factory, interval_seconds=60, claim_expiry_days=90)
    result = await scheduler.dispatch_once()

    assert result.forfeited == 1
    assert result.expired == 2
    assert scheduler.last_run_at is not None
    assert scheduler.last_result is result

    async with session_factory() as session:
        stale = await session.get(Grc, stale_id)
    assert stale.status == GrcStatusEnum.EXPIRED

    second = await scheduler.dispatch_once()
    assert (second.forfeited, second.expired) == (0, 0)


@pytest.mark.asyncio
async def test_receipt_storage_writes_under_member_prefix() -> None:
    settings = Settings(
        receipt_storage_bucket="grc-receipts",
        receipt_storage_public_base_url="https://cdn.localcityplaces.com/",
    )
    s3 = StubS3Client()
    storage = ReceiptImageStorage(settings=settings, client=s3)
    member_id = uuid4()

    stored = await storage.store(member_id, parse_receipt_image(PNG, max_bytes=1024), file_name="Safeway March.png")

    assert stored is not None
    assert stored.storage_key.startswith(f"receipts/{member_id}/")
    assert stored.storage_key.endswith("-Safeway-March.png")
    assert stored.public_url == f"https://cdn.localcityplaces.com/{stored.storage_key}"
    saved = s3.objects[stored.storage_key]
    assert saved["Bucket"] == "grc-receipts"
    assert saved["ContentType"] == "image/png"
    assert saved["ACL"] == "private"


@pytest.mark.asyncio
async def test_receipt_storage_disabled_and_failing() -> None:
    image = parse_receipt_image(PNG, max_bytes=1024)

    disabled = ReceiptImageStorage(settings=Settings(receipt_storage_bucket=None))
    assert disabled.enabled is False
    assert await disabled.store(uuid4(), image) is None

    failing = ReceiptImageStorage(settings=Settings(receipt_storage_bucket="grc-receipts"), client=StubS3Client(fail=True))
    with pytest.raises(UpstreamError):
        await failing.store(uuid4(), image)


def test_magic_link_template_mentions_lifetime() -> None:
    rendered = render_magic_link("https://app.localcityplaces.com/api/v1/auth/verify?token=abc", expires_in_minutes=15 * 24 * 60)

    assert rendered.subject == "Sign in to Local City Places"
    assert "This link expires in 15 days." in rendered.text_body
    assert "token=abc" in rendered.html_body


def test_grc_issued_template_describes_reward() -> None:
    rendered = render_grc_issued(
        recipient_name="Pat",
        merchant_name="Corner Bakery",
        denomination=100,
        months=4,
        claim_url="http://localhost:8000/api/v1/grc/1/claim",
    )

    assert rendered.subject == "Corner Bakery sent you a $100 Grocery Rebate Certificate"
    assert rendered.text_body.startswith("Hi Pat,")
    assert "for 4 months" in rendered.text_body


def test_receipt_rejected_template_escapes_html() -> None:
    rendered = render_receipt_rejected(
        member_name="Jamie",
        reason="Store <b>mismatch</b>",
        notes=None,
        reupload_until=datetime(2026, 3, 9, tzinfo=timezone.utc),
        upload_url="http://localhost:3000/member/upload",
    )

    assert "March 09, 2026" in rendered.text_body
    assert "&lt;b&gt;" in rendered.html_body
    assert "Reviewer notes" not in rendered.text_body


def test_gift_card_template_includes_tracking() -> None:
    rendered = render_gift_card_sent(
        member_name=None,
        month=2,
        year=2026,
        amount=Decimal("25"),
        tracking_number="9400 1000",
    )

    assert rendered.subject == "Your February 2026 reward has been sent"
    assert rendered.text_body.startswith("Hi there,")
    assert "$25.00 gift card" in rendered.text_body
    assert "Tracking number: 9400 1000" in rendered.text_body


def test_span_exporter_prefers_otlp_endpoint(monkeypatch) -> None:
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter

    from grc_api.observability.tracing import _build_exporter, _parse_headers

    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    assert isinstance(_build_exporter(), ConsoleSpanExporter)

    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4318/v1/traces")
    assert isinstance(_build_exporter(), OTLPSpanExporter)

    assert _parse_headers("api-key=abc, x-team=grc,broken") == {"api-key": "abc", "x-team": "grc"}
    assert _parse_headers("") is None
