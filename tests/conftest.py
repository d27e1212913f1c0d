"""
Pytest configuration and fixtures
"""

import re
from typing import AsyncGenerator, Dict, List, Sequence, Tuple
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from core.database import build_session_factory
from models.base import Base
from pipeline.services import build_services

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CATALOG_URL = "https://myfigurecollection.net"


# ============================================================================
# Catalog pages
# ============================================================================

def item_page_html(
    external_id: int,
    title: str = "Hatsune Miku 1/7",
    category: str = "Prepainted",
    origins: Sequence[Tuple[int, str]] = ((100, "Vocaloid"),),
    characters: Sequence[Tuple[int, str]] = ((200, "Hatsune Miku"),),
    companies: Sequence[Tuple[int, str, str]] = ((300, "Good Smile Company", "Manufacturer"),),
    versions: Sequence[str] = (),
    scale: str = "1/7",
    height: int = 250,
    releases: Sequence[Tuple[str, str, str, str]] = (("06/20/2020", "Standard", "14,800 JPY", "4580416940993"),),
    image: bool = True,
) -> str:
    """Item page with the markup the catalog serves"""

    def entry(entry_id, name):
        return f'<a class="item-entry" href="/entry/{entry_id}"><span switch="">{name}</span></a>'

    def field(label, value, extra_class=""):
        label_html = f'<div class="data-label">{label}</div>' if label else ""
        return f'<div class="data-field {extra_class}">{label_html}<div class="data-value">{value}</div></div>'

    fields = [field("Category", f'<a href="/browse?categoryId=1"><span>{category}</span></a>')]
    if origins:
        fields.append(field("Origin", "".join(entry(i, n) for i, n in origins)))
    if characters:
        fields.append(field("Character", "".join(entry(i, n) for i, n in characters)))
    if companies:
        company_html = "".join(
            f'{entry(i, n)}<small class="light"><em>{role}</em></small>' for i, n, role in companies
        )
        fields.append(field("Companies", f'<div class="item-entries">{company_html}</div>'))
    if versions:
        fields.append(field("Version", "".join(f"<a>{v}</a>" for v in versions)))
    fields.append(field("Dimensions", f'<a class="item-scale">{scale}</a> H={height}mm'))

    for index, (date, type_, price, barcode) in enumerate(releases):
        amount, currency = price.split()
        value = (
            f'<a class="time">{date}</a> <small class="light"><em>{type_}</em></small>'
            f"<br>{amount} <small>{currency}</small> {barcode}"
        )
        if index == 0:
            fields.append(field(f"Releases ({len(releases)})", value))
        else:
            fields.append(field("", value, extra_class="item-extra-release"))

    picture = (
        f'<div class="item-picture"><a><img src="/upload/items/1/{external_id}-a1b2c3.jpg"></a></div>'
        if image else ""
    )
    return (
        "<html><body>"
        f'<h1 class="title">{title}</h1>'
        f"{picture}"
        f'<div class="form">{"".join(fields)}</div>'
        "</body></html>"
    )


class CatalogSite:
    """
    Stand-in for the catalog site behind httpx.MockTransport.

    `flaky[id] = n` fails the first n requests for an item with a 503;
    ids in `down` always fail.
    """

    def __init__(self):
        self.pages: Dict[int, str] = {}
        self.flaky: Dict[int, int] = {}
        self.down = set()
        self.requests: List[httpx.Request] = []

    def add_item(self, external_id: int, **kwargs) -> None:
        self.pages[external_id] = item_page_html(external_id, **kwargs)

    def item_requests(self, external_id: int) -> int:
        return sum(1 for r in self.requests if r.url.path == f"/item/{external_id}")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.startswith("/upload/"):
            return httpx.Response(200, content=b"\xff\xd8\xff\xe0fake", headers={"content-type": "image/jpeg"})

        match = re.match(r"^/item/(\d+)$", path)
        if not match:
            return httpx.Response(404)

        external_id = int(match.group(1))
        if external_id in self.down:
            return httpx.Response(503)
        if self.flaky.get(external_id, 0) > 0:
            self.flaky[external_id] -= 1
            return httpx.Response(503)
        if external_id not in self.pages:
            return httpx.Response(404)
        return httpx.Response(200, text=self.pages[external_id])


# ============================================================================
# Redis / S3 / sleep fakes
# ============================================================================

class FakeRedis:
    """The subset of redis.asyncio.Redis used by the queue and status keys"""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.lists: Dict[str, List[str]] = {}
        self.expiry: Dict[str, int] = {}
        self.unavailable = False

    def _check(self):
        if self.unavailable:
            raise redis.ConnectionError("Redis unavailable")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.values.get(key)

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.expiry[key] = ex
        return True

    async def incr(self, key):
        self._check()
        value = int(self.values.get(key, 0)) + 1
        self.values[key] = str(value)
        return value

    async def lpush(self, key, *values):
        self._check()
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def llen(self, key):
        self._check()
        return len(self.lists.get(key, []))

    async def lrange(self, key, start, end):
        self._check()
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    async def lrem(self, key, count, value):
        self._check()
        items = self.lists.get(key, [])
        removed = 0
        while value in items and (count == 0 or removed < count):
            items.remove(value)
            removed += 1
        return removed

    async def ltrim(self, key, start, end):
        self._check()
        items = self.lists.get(key, [])
        self.lists[key] = items[start:] if end == -1 else items[start:end + 1]
        return True

    async def lmove(self, first_list, second_list, src="LEFT", dest="RIGHT"):
        self._check()
        source = self.lists.get(first_list, [])
        if not source:
            return None
        value = source.pop(0) if src == "LEFT" else source.pop()
        target = self.lists.setdefault(second_list, [])
        if dest == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        return value

    async def blmove(self, first_list, second_list, timeout, src="LEFT", dest="RIGHT"):
        return await self.lmove(first_list, second_list, src=src, dest=dest)

    async def aclose(self):
        return None


class SleepRecorder:
    """Replaces asyncio.sleep; records the requested delays in seconds"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_s3_client(status_code: int = 200) -> MagicMock:
    s3 = MagicMock()
    s3.put_object.return_value = {"ResponseMetadata": {"HTTPStatusCode": status_code}}
    return s3


# ============================================================================
# Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_s3():
    return make_s3_client()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def catalog_site():
    return CatalogSite()


@pytest_asyncio.fixture
async def http_client(catalog_site) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(catalog_site.handler)) as client:
        yield client


@pytest.fixture
def services(test_engine, http_client, fake_redis, fake_s3, sleeper):
    """Full pipeline wired to the in-memory database and fakes"""
    return build_services(
        engine=test_engine,
        http_client=http_client,
        redis_client=fake_redis,
        s3_client=fake_s3,
        scraper_sleep=sleeper,
    )


@pytest.fixture
def make_item_page():
    return item_page_html


def csv_request(external_ids: Sequence[int], user_id: str = "user-1", existing_count: int = 0) -> dict:
    return {
        "type": "csv",
        "userId": user_id,
        "existingCount": existing_count,
        "items": [
            {"itemExternalId": external_id, "status": "Owned", "price": "12,800", "shop": "AmiAmi"}
            for external_id in external_ids
        ],
    }


@pytest.fixture
def make_csv_request():
    return csv_request
