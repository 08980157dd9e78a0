import asyncio
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from visibility_tracker.core.config import settings

# Override settings for tests
settings.app_env = "development"
settings.telegram_bot_token = ""
settings.telegram_chat_id = ""
settings.sentry_dsn = ""

from visibility_tracker.db.base import Base  # noqa: E402
from visibility_tracker.db.postgres import get_db  # noqa: E402
from visibility_tracker.gateway.types import GatewayResult, ProviderStats  # noqa: E402
from visibility_tracker.main import app  # noqa: E402
from visibility_tracker.models import Brand, BrandPrompt, Competitor, Provider  # noqa: E402
from visibility_tracker.models.brand import COMPETITOR_ACCEPTED  # noqa: E402
from visibility_tracker.models.prompt import PROMPT_ACTIVE  # noqa: E402

# In-memory SQLite shared by every connection of the test engine
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_provider(db: AsyncSession):
    async def _make(name: str = "openai", weight: int = 1, is_enabled: bool = True, api_key: str | None = "sk-test"):
        provider = Provider(
            name=name,
            display_name=name.title(),
            weight=weight,
            is_enabled=is_enabled,
            api_config={"api_key": api_key} if api_key is not None else {},
        )
        db.add(provider)
        await db.commit()
        return provider

    return _make


@pytest.fixture
async def brand(db: AsyncSession) -> Brand:
    """Brand "Acme" with accepted competitors Globex and Initech and a rejected one."""
    brand = Brand(name="Acme", website="https://www.acme.com")
    db.add(brand)
    await db.flush()

    db.add_all(
        [
            Competitor(brand_id=brand.id, name="Globex", domain="globex.com", status=COMPETITOR_ACCEPTED),
            Competitor(brand_id=brand.id, name="Initech", domain="initech.io", status=COMPETITOR_ACCEPTED),
            Competitor(brand_id=brand.id, name="Hooli", domain="hooli.xyz", status="rejected"),
        ]
    )
    await db.commit()
    return brand


@pytest.fixture
def make_prompt(db: AsyncSession):
    async def _make(brand: Brand, text: str, status: str = PROMPT_ACTIVE, **fields) -> BrandPrompt:
        prompt = BrandPrompt(brand_id=brand.id, prompt=text, status=status, **fields)
        db.add(prompt)
        await db.commit()
        return prompt

    return _make


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeGateway:
    """Gateway whose behaviour is scripted per prompt text / provider name.

    ``responses`` maps prompt text to a GatewayResult, an exception instance
    (raised), or the string "hang" (never returns).
    """

    def __init__(self, responses=None, default_text="Acme is a solid choice.", probe_errors=None):
        self.responses = responses or {}
        self.default_text = default_text
        self.probe_errors = probe_errors or {}
        self.calls: list[tuple[int, str]] = []
        self.probes: list[str] = []

    async def analyze(self, provider, prompt_text):
        self.calls.append((provider.id, prompt_text))
        behaviour = self.responses.get(prompt_text)
        if isinstance(behaviour, Exception):
            raise behaviour
        if behaviour == "hang":
            await asyncio.sleep(3600)
        if isinstance(behaviour, GatewayResult):
            return behaviour
        return GatewayResult(text=self.default_text, stats=ProviderStats(sentiment=75, visibility=60, position=1))

    async def probe(self, provider):
        self.probes.append(provider.name)
        error = self.probe_errors.get(provider.name)
        if error == "hang":
            await asyncio.sleep(3600)
        if isinstance(error, Exception):
            raise error


class FakeSink:
    def __init__(self, error: Exception | None = None):
        self.calls: list[list] = []
        self.error = error

    async def notify_providers_failed(self, failures):
        self.calls.append(list(failures))
        if self.error:
            raise self.error


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def fake_sink() -> FakeSink:
    return FakeSink()


class _SharedEngine:
    """Stands in for a task-owned engine; disposing must not drop the in-memory DB."""

    async def dispose(self):
        pass


@pytest.fixture
def task_session_factory():
    """Return value for patching the tasks' _make_session_factory()."""
    return test_session_factory, _SharedEngine()


@pytest.fixture
def make_sink():
    return FakeSink
