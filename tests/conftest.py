"""
Pytest fixtures for the exam-prep cache tests.

Redis is replaced by fakeredis's asyncio client.
"""

import fakeredis
import pytest
import pytest_asyncio

from examprep.cache import CacheService, RedisConnector
from tests.fixtures import REDIS_URL


@pytest.fixture
def redis_server():
    """Isolated fakeredis server shared by every client of one test."""
    return fakeredis.FakeServer()


@pytest.fixture
def fake_client_factory(redis_server):
    """Client factory producing fakeredis clients; records the options it receives."""
    created: list[dict] = []

    def factory(url, **options):
        created.append({"url": url, **options})
        return fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)

    factory.created = created
    return factory


@pytest_asyncio.fixture
async def connector(fake_client_factory):
    connector = RedisConnector(REDIS_URL, client_factory=fake_client_factory)
    yield connector
    await connector.close()


@pytest_asyncio.fixture
async def cache(fake_client_factory):
    """CacheService connected to fakeredis."""
    service = CacheService(RedisConnector(REDIS_URL, client_factory=fake_client_factory))
    await service.init()
    yield service
    await service.close()


@pytest_asyncio.fixture
async def offline_cache():
    """CacheService with no Redis URL configured."""
    service = CacheService(RedisConnector(None))
    await service.init()
    yield service
    await service.close()


@pytest.fixture
def sample_limits():
    return {
        "questionsPerDay": 50,
        "questionsUsedToday": 12,
        "mockTestsPerMonth": 4,
        "mockTestsUsedThisMonth": 1,
        "lastResetDate": "2024-06-01T00:00:00.000Z",
    }


@pytest.fixture
def sample_question():
    return {
        "_id": "650a1b2c3d4e5f6a7b8c9d0e",
        "examType": "jee",
        "subject": "Physics",
        "chapter": "Kinematics",
        "topic": "Projectile Motion",
        "question": "A ball is thrown at 30 degrees with speed 20 m/s. Find its range.",
        "options": ["20.0 m", "34.6 m", "40.0 m", "17.3 m"],
        "correctAnswer": 1,
        "difficulty": "medium",
        "tags": ["2d-motion", "pyq"],
    }
