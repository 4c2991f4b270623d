"""
Redis Session Backend Integration Tests

Runs the session store and lifecycle manager against a real Redis server started
with Testcontainers. Skipped when no Docker daemon is reachable.
"""

import time
from datetime import timedelta

import docker
import pytest
from testcontainers.redis import RedisContainer

from sessionward.cache.client import create_redis_backend
from sessionward.session.exceptions import NotFoundError
from sessionward.session.manager import SessionLifecycleManager
from sessionward.session.registry import NamespaceRegistry
from sessionward.session.store import SessionStore


def docker_available() -> bool:
    try:
        docker.from_env().ping()
        return True
    except Exception:
        return False


pytestmark = [
    pytest.mark.integration,
    pytest.mark.testcontainers,
    pytest.mark.skipif(not docker_available(), reason="Docker is not available for Testcontainers"),
]


@pytest.fixture(scope='module')
def redis_url():
    with RedisContainer("redis:7.2-alpine") as container:
        host = container.get_container_host_ip()
        port = container.get_exposed_port(6379)
        yield f"redis://{host}:{port}/0"


@pytest.fixture
def redis_backend(redis_url):
    backend = create_redis_backend(redis_url, key_prefix='it:session:', retry_backoff=0)
    yield backend
    for session_id in backend.ids():
        backend.delete(session_id)
    backend.close()


@pytest.fixture
def redis_manager(redis_backend):
    with SessionLifecycleManager(
        'integration',
        SessionStore(redis_backend),
        idle_timeout=timedelta(seconds=2),
        renewal_timeout=timedelta(seconds=1),
        lifetime=timedelta(seconds=5),
        registry=NamespaceRegistry()
    ) as manager:
        yield manager


class TestRedisBackendIntegration:
    """Backend contract against a live Redis server."""

    def test_put_get_delete(self, redis_backend):
        redis_backend.put('abc', b'payload')

        assert redis_backend.get('abc') == b'payload'
        assert redis_backend.ids() == ['abc']

        redis_backend.delete('abc')
        redis_backend.delete('abc')

        with pytest.raises(NotFoundError):
            redis_backend.get('abc')

    def test_rename_is_applied_atomically(self, redis_backend):
        redis_backend.put('old', b'v1')

        redis_backend.rename('old', 'new', b'v2')

        assert redis_backend.get('new') == b'v2'
        with pytest.raises(NotFoundError):
            redis_backend.get('old')

    def test_ping(self, redis_backend):
        assert redis_backend.ping() is True


class TestLifecycleOnRedis:
    """Lifecycle manager with Redis persistence."""

    def test_session_round_trip(self, redis_manager):
        record = redis_manager.create_session({'user_id': '42', 'avatar': b'\x89PNG'})

        loaded = redis_manager.process_request(record.id)

        assert loaded.data == {'user_id': '42', 'avatar': b'\x89PNG'}

    def test_records_carry_redis_expiry(self, redis_manager, redis_backend):
        record = redis_manager.create_session()

        ttl_ms = redis_backend._client.pttl(f'{redis_backend.key_prefix}{record.id}')

        assert 0 < ttl_ms <= 2000

    @pytest.mark.slow
    def test_renewal_and_idle_expiry(self, redis_manager, redis_backend):
        renewed = redis_manager.create_session()
        idle = redis_manager.create_session()
        old_id = renewed.id

        time.sleep(1.5)
        renewed = redis_manager.process_request(old_id)

        assert renewed.id != old_id
        with pytest.raises(NotFoundError):
            redis_backend.get(old_id)

        time.sleep(1.0)
        assert redis_manager.process_request(idle.id) is None
