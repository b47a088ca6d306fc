import json
import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from grc_api.api.dependencies.services import (  # noqa: E402
    get_notification_service,
    get_postmark_client,
    get_rate_limiter,
    get_receipt_storage,
    get_veryfi_client,
)
from grc_api.app import create_app  # noqa: E402
from grc_api.core.settings import Settings  # noqa: E402
from grc_api.db.base import Base  # noqa: E402
from grc_api.db.session import get_session  # noqa: E402
from grc_api.services.auth import RateLimiter  # noqa: E402
from grc_api.services.notifications import (  # noqa: E402
    InMemoryEmailBackend,
    NotificationService,
    PostmarkBroadcastClient,
)
from grc_api.services.receipts import ReceiptImageStorage, VeryfiClient  # noqa: E402

from factories import veryfi_document  # noqa: E402


class FakeRedis:
    """Counter subset of the redis client used by the rate limiter."""

    def __init__(self) -> None:
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True

    async def ttl(self, key: str) -> int:
        return self.ttls.get(key, -1)

    async def delete(self, key: str) -> int:
        self.ttls.pop(key, None)
        return 1 if self.values.pop(key, None) is not None else 0


class StubUpstream:
    """Programmable httpx handler recording every request it serves."""

    def __init__(self, default: Callable[[httpx.Request], httpx.Response]) -> None:
        self._default = default
        self.queue: list[httpx.Response] = []
        self.requests: list[httpx.Request] = []

    def respond_with(self, status_code: int = 200, json: Any = None) -> None:
        self.queue.append(httpx.Response(status_code, json=json))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.queue:
            return self.queue.pop(0)
        return self._default(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _postmark_batch(request: httpx.Request) -> httpx.Response:
    messages = json.loads(request.content)
    return httpx.Response(
        200,
        json=[
            {"ErrorCode": 0, "Message": "OK", "MessageID": f"pm-{index}", "To": message["To"]}
            for index, message in enumerate(messages)
        ],
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        veryfi_client_id="client-id",
        veryfi_username="grc-tests",
        veryfi_api_key="api-key",
        postmark_server_token="postmark-token",
        secret_key="test-secret",
    )


@pytest.fixture
def email_backend() -> InMemoryEmailBackend:
    return InMemoryEmailBackend()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def rate_limiter(fake_redis) -> RateLimiter:
    return RateLimiter(fake_redis)


@pytest.fixture
def veryfi_stub() -> StubUpstream:
    return StubUpstream(lambda request: httpx.Response(200, json=veryfi_document()))


@pytest.fixture
def postmark_stub() -> StubUpstream:
    return StubUpstream(_postmark_batch)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory, email_backend, rate_limiter, veryfi_stub, postmark_stub, test_settings):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    def override_notifications(db: AsyncSession = Depends(get_session)) -> NotificationService:
        return NotificationService(db, backend=email_backend)

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notification_service] = override_notifications
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_veryfi_client] = lambda: VeryfiClient(
        settings=test_settings,
        http_client=veryfi_stub.client(),
    )
    app.dependency_overrides[get_receipt_storage] = lambda: ReceiptImageStorage(settings=Settings())
    app.dependency_overrides[get_postmark_client] = lambda: PostmarkBroadcastClient(
        settings=test_settings,
        http_client=postmark_stub.client(),
    )

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app_with_db):
    app, _ = app_with_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
