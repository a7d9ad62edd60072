"""
Tests for the domain cache facade.
"""

import time

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from examprep.cache import CacheKeys, CacheService, ConnectionStatus, RedisConnector
from examprep.config import Settings

from tests.fixtures import REDIS_URL
from tests.fixtures.stub_redis import StubRedis, stub_factory


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_init_reports_availability(self, cache, offline_cache):
        assert cache.is_available() is True
        assert offline_cache.is_available() is False

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, cache, fake_client_factory):
        assert await cache.init() is True
        assert await cache.init() is True
        assert len(fake_client_factory.created) == 1

    @pytest.mark.asyncio
    async def test_from_settings_uses_budgets(self, fake_client_factory):
        settings = Settings(
            redis_url=REDIS_URL, cache_op_timeout=0.25, cache_bulk_timeout=2.0
        )
        service = CacheService.from_settings(settings, client_factory=fake_client_factory)

        assert await service.init() is True
        assert fake_client_factory.created[0]["url"] == REDIS_URL
        await service.close()
        assert service.is_available() is False


class TestFamilyRoundTrips:
    @pytest.mark.asyncio
    async def test_limits(self, cache, sample_limits):
        assert await cache.set_limits("u1", sample_limits) is True
        assert await cache.get_limits("u1") == sample_limits

    @pytest.mark.asyncio
    async def test_profile_subscription_analytics(self, cache):
        profile = {"name": "Asha", "examType": "neet", "targetYear": 2025}
        subscription = {"plan": "premium", "expiresAt": "2025-03-31T00:00:00.000Z"}
        analytics = {"accuracy": 0.72, "attempted": 418}

        await cache.set_user_profile("u1", profile)
        await cache.set_subscription("u1", subscription)
        await cache.set_analytics("u1", analytics)

        assert await cache.get_user_profile("u1") == profile
        assert await cache.get_subscription("u1") == subscription
        assert await cache.get_analytics("u1") == analytics

    @pytest.mark.asyncio
    async def test_questions(self, cache, sample_question):
        await cache.set_question_list("jee", "Physics", "Kinematics", None, 1, [sample_question])
        await cache.set_full_question(sample_question["_id"], sample_question)

        assert await cache.get_question_list("jee", "Physics", "Kinematics") == [sample_question]
        assert await cache.get_question_list("jee", "Physics", "Kinematics", page=2) is None
        assert await cache.get_full_question(sample_question["_id"]) == sample_question

    @pytest.mark.asyncio
    async def test_syllabus_and_tasks(self, cache):
        await cache.set_subjects("jee", ["Physics", "Chemistry", "Mathematics"])
        await cache.set_chapters("jee", "Physics", ["Kinematics", "Optics"])
        await cache.set_topics("jee", "Physics", "Optics", ["Lenses", "Mirrors"])
        await cache.set_tasks("u1", [{"title": "Revise optics", "done": False}])

        assert await cache.get_subjects("jee") == ["Physics", "Chemistry", "Mathematics"]
        assert await cache.get_chapters("jee", "Physics") == ["Kinematics", "Optics"]
        assert await cache.get_topics("jee", "Physics", "Optics") == ["Lenses", "Mirrors"]
        assert await cache.get_tasks("u1") == [{"title": "Revise optics", "done": False}]

    @pytest.mark.asyncio
    async def test_default_ttl_applied(self, cache, sample_limits):
        await cache.set_limits("u1", sample_limits)
        await cache.set_analytics("u1", {"accuracy": 0.5})
        client = cache.connector.client

        assert 0 < await client.ttl(CacheKeys.limits("u1")) <= CacheKeys.TTL_LIMITS
        assert 0 < await client.ttl(CacheKeys.analytics("u1")) <= CacheKeys.TTL_ANALYTICS

    @pytest.mark.asyncio
    async def test_explicit_ttl_overrides_default(self, cache):
        await cache.set_subjects("neet", ["Biology"], ttl=60)
        assert 0 < await cache.connector.client.ttl(CacheKeys.subjects("neet")) <= 60


class TestMisses:
    """Absent, unavailable and undecodable all read as a miss."""

    @pytest.mark.asyncio
    async def test_missing_key(self, cache):
        assert await cache.get_limits("nobody") is None
        assert cache.guard.stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_offline_reads_and_writes(self, offline_cache, sample_limits):
        assert await offline_cache.set_limits("u1", sample_limits) is False
        assert await offline_cache.get_limits("u1") is None
        assert await offline_cache.invalidate_limits("u1") is False

    @pytest.mark.asyncio
    async def test_undecodable_value(self, cache):
        await cache.connector.client.set(CacheKeys.profile("u1"), "{not json")

        assert await cache.get_user_profile("u1") is None
        assert cache.guard.stats["decode_errors"] == 1

    @pytest.mark.asyncio
    async def test_unserializable_value_is_not_stored(self, cache):
        assert await cache.set_user_profile("u1", {"joined": object()}) is False
        assert await cache.connector.client.exists(CacheKeys.profile("u1")) == 0

    @pytest.mark.asyncio
    async def test_non_positive_ttl_is_not_stored(self, cache):
        assert await cache.set_json("k", {"a": 1}, ttl=0) is False
        assert await cache.get_json("k") is None


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_invalidate_single_family(self, cache, sample_limits):
        await cache.set_limits("u1", sample_limits)

        assert await cache.invalidate_limits("u1") is True
        assert await cache.get_limits("u1") is None

    @pytest.mark.asyncio
    async def test_invalidate_is_idempotent(self, cache):
        assert await cache.invalidate_subscription("u1") is True
        assert await cache.invalidate_subscription("u1") is True

    @pytest.mark.asyncio
    async def test_invalidate_question_and_syllabus(self, cache, sample_question):
        await cache.set_full_question("q1", sample_question)
        await cache.set_question_list("jee", None, None, None, 1, [sample_question])
        await cache.set_topics("jee", "Physics", "Optics", ["Lenses"])

        await cache.invalidate_full_question("q1")
        await cache.invalidate_question_list("jee")
        await cache.invalidate_topics("jee", "Physics", "Optics")

        assert await cache.get_full_question("q1") is None
        assert await cache.get_question_list("jee") is None
        assert await cache.get_topics("jee", "Physics", "Optics") is None

    @pytest.mark.asyncio
    async def test_user_cache_scope(self, cache, sample_limits, sample_question):
        for user_id in ("u1", "u2"):
            await cache.set_limits(user_id, sample_limits)
            await cache.set_user_profile(user_id, {"name": user_id})
            await cache.set_subscription(user_id, {"plan": "free"})
            await cache.set_analytics(user_id, {"accuracy": 0.4})
        await cache.set_tasks("u1", [{"title": "Mock test"}])
        await cache.set_full_question("q1", sample_question)

        assert await cache.invalidate_user_cache("u1") is True

        assert await cache.get_limits("u1") is None
        assert await cache.get_user_profile("u1") is None
        assert await cache.get_subscription("u1") is None
        assert await cache.get_analytics("u1") is None

        assert await cache.get_limits("u2") == sample_limits
        assert await cache.get_analytics("u2") == {"accuracy": 0.4}
        assert await cache.get_tasks("u1") == [{"title": "Mock test"}]
        assert await cache.get_full_question("q1") == sample_question

    @pytest.mark.asyncio
    async def test_user_cache_offline(self, offline_cache):
        assert await offline_cache.invalidate_user_cache("u1") is False


class TestGetOrLoad:
    @pytest.mark.asyncio
    async def test_loader_runs_once(self, cache):
        calls = []

        async def load():
            calls.append(1)
            return {"plan": "premium"}

        key = CacheKeys.subscription("u1")
        assert await cache.get_or_load(key, load, ttl=60) == {"plan": "premium"}
        assert await cache.get_or_load(key, load, ttl=60) == {"plan": "premium"}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_loader_runs_every_time_offline(self, offline_cache):
        calls = []

        async def load():
            calls.append(1)
            return ["Physics"]

        await offline_cache.get_or_load("subjects:jee", load, ttl=60)
        await offline_cache.get_or_load("subjects:jee", load, ttl=60)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_loader_errors_propagate(self, cache):
        async def load():
            raise LookupError("user not found")

        with pytest.raises(LookupError):
            await cache.get_or_load("profile:ghost", load, ttl=60)


class TestAdmin:
    @pytest.mark.asyncio
    async def test_stats_online(self, cache, sample_limits):
        await cache.set_limits("u1", sample_limits)
        await cache.set_limits("u2", sample_limits)

        stats = await cache.get_cache_stats()

        assert stats["connected"] is True
        assert stats["status"] == "ready"
        assert stats["dbsize"] == 2
        assert isinstance(stats["info"], dict)

    @pytest.mark.asyncio
    async def test_stats_offline(self, offline_cache):
        stats = await offline_cache.get_cache_stats()

        assert stats["connected"] is False
        assert stats["status"] == "uninitialized"
        assert "dbsize" not in stats

    @pytest.mark.asyncio
    async def test_clear_all(self, cache, sample_limits, sample_question):
        await cache.set_limits("u1", sample_limits)
        await cache.set_full_question("q1", sample_question)

        assert await cache.clear_all_cache() is True
        assert await cache.connector.client.dbsize() == 0

    @pytest.mark.asyncio
    async def test_clear_all_offline(self, offline_cache):
        assert await offline_cache.clear_all_cache() is False


class TestHungStore:
    """Facade calls stay within their budget when Redis stops answering."""

    @pytest.mark.asyncio
    async def test_operations_return_neutral_values_in_time(self, sample_limits):
        stub = StubRedis(hang=True)
        service = CacheService(
            RedisConnector(REDIS_URL, client_factory=stub_factory(stub)),
            op_timeout=0.1,
            bulk_timeout=0.2,
        )
        assert await service.init() is True

        start = time.perf_counter()
        assert await service.get_limits("u1") is None
        assert await service.set_limits("u1", sample_limits) is False
        assert await service.invalidate_user_cache("u1") is False
        assert await service.clear_all_cache() is False
        assert (await service.check_rate_limit("ratelimit:api:1.2.3.4", 5, 60)).allowed is True
        assert time.perf_counter() - start < 1.5

        assert service.guard.stats["timeouts"] == 5
        stats = await service.get_cache_stats()
        assert stats["status"] == "error"

        await service.close()
        assert service.guard.pending == 0


class TestReconnect:
    """A lost or never-established connection is reopened by later operations."""

    @staticmethod
    def _service(client_factory, reconnect_interval: float, **kwargs) -> CacheService:
        connector = RedisConnector(
            REDIS_URL,
            reconnect_interval=reconnect_interval,
            client_factory=client_factory,
            **kwargs,
        )
        return CacheService(connector)

    @staticmethod
    async def _drop_connection(service: CacheService) -> None:
        async def reset(client):
            raise RedisConnectionError("Connection reset by peer")

        await service.guard.run("get", reset)

    @pytest.mark.asyncio
    async def test_read_succeeds_after_connection_blip(self, fake_client_factory, sample_limits):
        service = self._service(fake_client_factory, reconnect_interval=0)
        await service.init()
        await service.set_limits("u1", sample_limits)

        await self._drop_connection(service)
        assert service.is_available() is False

        assert await service.get_limits("u1") == sample_limits
        assert service.is_available() is True
        assert len(fake_client_factory.created) == 2
        await service.close()

    @pytest.mark.asyncio
    async def test_rate_limiting_resumes_after_blip(self, fake_client_factory):
        service = self._service(fake_client_factory, reconnect_interval=0)
        await service.init()

        await self._drop_connection(service)
        statuses = [await service.check_rate_limit("ratelimit:otp:ip", 1, 60) for _ in range(2)]

        assert [s.allowed for s in statuses] == [True, False]
        assert statuses[1].failed_open is False
        await service.close()

    @pytest.mark.asyncio
    async def test_reconnects_are_throttled(self, fake_client_factory, sample_limits):
        service = self._service(fake_client_factory, reconnect_interval=60)
        await service.init()
        await service.set_limits("u1", sample_limits)

        await self._drop_connection(service)
        for _ in range(3):
            assert await service.get_limits("u1") is None

        assert len(fake_client_factory.created) == 1
        assert service.guard.stats["unavailable"] == 3
        await service.close()

    @pytest.mark.asyncio
    async def test_recovers_from_failed_startup(self, fake_client_factory, sample_limits):
        clients = [StubRedis(ping_error=RedisConnectionError("Connection refused"))]

        def factory(url, **options):
            return clients.pop(0) if clients else fake_client_factory(url, **options)

        service = self._service(factory, reconnect_interval=0)
        assert await service.init() is False

        assert await service.set_limits("u1", sample_limits) is True
        assert await service.get_limits("u1") == sample_limits
        await service.close()

    @pytest.mark.asyncio
    async def test_slow_reconnect_stays_within_budget(self):
        stub = StubRedis(hang_ping=True)
        service = CacheService(
            RedisConnector(
                REDIS_URL,
                connect_timeout=5.0,
                reconnect_interval=0,
                client_factory=stub_factory(stub),
            ),
            op_timeout=0.1,
        )

        start = time.perf_counter()
        assert await service.get_limits("u1") is None
        assert time.perf_counter() - start < 0.5
        assert service.connector.status is ConnectionStatus.CONNECTING

        await service.close()
        assert service.connector.status is ConnectionStatus.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_no_reconnect_after_close(self, fake_client_factory):
        service = self._service(fake_client_factory, reconnect_interval=0)
        await service.init()
        await service.close()

        assert await service.get_limits("u1") is None
        assert len(fake_client_factory.created) == 1
