"""
Pytest configuration and shared fixtures.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from citabot.agents.controller import DialogueController
from citabot.core.dedup import MessageDeduplicator
from citabot.core.sessions import InMemorySessionStore
from citabot.core.storage import InMemoryAppointmentStore
from tests.utils.fakes import FakeClock, FakeController, RecordingSender, ScriptedExtractor


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions(clock):
    return InMemorySessionStore(ttl_seconds=20 * 60, clock=clock)


@pytest.fixture
def store():
    return InMemoryAppointmentStore()


@pytest.fixture
def extractor():
    return ScriptedExtractor()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def make_controller(sessions, sender):
    """Factory so each test can pick its own store/extractor/schedule."""

    def _make(store, extractor, **kwargs):
        return DialogueController(
            sessions=sessions,
            store=store,
            extractor=extractor,
            sender=sender,
            **kwargs,
        )

    return _make


@pytest.fixture
def controller(make_controller, store, extractor):
    return make_controller(store, extractor)


@pytest.fixture
def app():
    """FastAPI application with the dialogue controller replaced by a fake."""
    from citabot.api.webhook import get_controller, get_deduplicator
    from citabot.main import app

    fake = FakeController()
    app.dependency_overrides[get_controller] = lambda: fake
    dedup = MessageDeduplicator(ttl_seconds=600)
    app.dependency_overrides[get_deduplicator] = lambda: dedup
    app.state.fake_controller = fake
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app):
    """Create async HTTP client for testing."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
