import pytest

from tracklinker.application.use_cases import TransferOrchestrator
from tracklinker.application.utilities import (
    RecordingProgressSink,
    RetryPolicy,
    SlidingWindowRateLimiter,
)
from tracklinker.infrastructure.persistence.database.db_connection import (
    create_db_engine,
    create_session_factory,
    init_db,
)
from tracklinker.infrastructure.persistence.repositories import (
    InMemoryMatchCache,
    InMemoryRunLog,
)

from tests.fixtures.catalogs import FakeLinkResolver, FakeSourceCatalog, FakeTargetCatalog
from tests.fixtures.models import plan, playlist, tracks  # noqa: F401


@pytest.fixture
def match_cache():
    """Empty in-memory match cache."""
    return InMemoryMatchCache()


@pytest.fixture
def run_log():
    """Empty in-memory run log."""
    return InMemoryRunLog()


@pytest.fixture
def recorder():
    """Progress sink that keeps every event."""
    return RecordingProgressSink()


@pytest.fixture
def fast_retry():
    """Retry policy with two attempts and no waiting."""
    return RetryPolicy(attempts=2, base_delay=0.0, jitter=None)


@pytest.fixture
def make_orchestrator(match_cache, run_log, recorder, fast_retry, tracks):
    """Factory building an orchestrator around fake catalogs.

    Keyword arguments override the defaults (source, target, link_resolver,
    retry_policy, acceptance_policy, on_progress).
    """

    def factory(**overrides):
        options = {
            "source": FakeSourceCatalog({"pl-source": tracks}),
            "target": FakeTargetCatalog(),
            "match_cache": match_cache,
            "run_log": run_log,
            "link_resolver": FakeLinkResolver(),
            "limiter": SlidingWindowRateLimiter(max_calls=1000, window_seconds=60),
            "retry_policy": fast_retry,
            "on_progress": recorder,
        }
        options.update(overrides)
        return TransferOrchestrator(**options)

    return factory


@pytest.fixture
async def session_factory():
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_db_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()
