"""
Session Lifecycle Manager Unit Tests

Exercises session creation, the per-request transition function (refresh, renewal
and invalidation), manual rotation and invalidation, failure handling around the
store, cleanup sweeps and namespace registration. Time is driven by the FakeClock
fixture; managers use idle 2s, renewal 1s and lifetime 5s unless stated otherwise.
"""

import logging
import re
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from sessionward.cache.backends import InMemoryBackend
from sessionward.config.settings import ConfigurationError, LifecycleSettings
from sessionward.session.exceptions import (
    DecodeError,
    DuplicateNamespaceError,
    NotFoundError,
    RotationFailedError,
    SessionInvalidError,
    StoreIOError,
    UnsupportedTypeError,
)
from sessionward.session.manager import SessionLifecycleManager
from sessionward.session.models import SessionStatus
from sessionward.session.registry import NamespaceRegistry
from sessionward.session.store import SessionStore


class FlakyBackend(InMemoryBackend):
    """In-memory backend with switchable failures."""

    name = "flaky"

    def __init__(self, atomic=True):
        super().__init__()
        self.supports_atomic_rename = atomic
        self.fail_delete = False
        self.fail_rename = False
        self.fail_put = False

    def put(self, session_id, payload, expires_at=None):
        if self.fail_put:
            raise StoreIOError("put failed", operation='put', backend=self.name)
        super().put(session_id, payload, expires_at)

    def delete(self, session_id):
        if self.fail_delete:
            raise StoreIOError("delete failed", operation='delete', backend=self.name)
        super().delete(session_id)

    def rename(self, old_id, new_id, payload, expires_at=None):
        if self.fail_rename:
            raise StoreIOError("rename failed", operation='rename', backend=self.name)
        super().rename(old_id, new_id, payload, expires_at)


@pytest.mark.unit
class TestSessionCreation:
    """create_session() and identifier generation."""

    def test_new_session_defaults(self, manager, store, clock):
        record = manager.create_session()
        now = clock()

        assert record.status is SessionStatus.VALID
        assert record.idle_deadline == now + timedelta(seconds=2)
        assert record.renewal_deadline == now + timedelta(seconds=1)
        assert record.lifetime_deadline == now + timedelta(seconds=5)
        assert record.idle_deadline < record.lifetime_deadline
        assert record.data == {}
        assert store.get(record.id) == record

    def test_cookie_metadata(self, manager):
        record = manager.create_session()

        assert record.cookie.name == 'session_test'
        assert record.cookie.value == record.id
        assert record.cookie.expires == record.lifetime_deadline
        assert record.cookie.http_only is True
        assert record.cookie.secure is True
        assert record.cookie.same_site == 'Lax'
        assert record.cookie.path == '/'

    def test_identifiers_are_fixed_width_and_unique(self, manager):
        ids = {manager.new_session_id() for _ in range(1000)}

        assert len(ids) == 1000
        assert all(re.fullmatch(r'[0-9a-f]{64}', session_id) for session_id in ids)

    def test_initial_data_is_persisted(self, manager, store):
        record = manager.create_session({'user_id': '42', 'roles': {'admin': True}})

        assert store.get(record.id).data == {'user_id': '42', 'roles': {'admin': True}}

    def test_unsupported_initial_data_is_rejected(self, manager, backend):
        with pytest.raises(UnsupportedTypeError):
            manager.create_session({'tags': ['a', 'b']})

        assert len(backend) == 0

    def test_default_timeouts(self, store, registry):
        with SessionLifecycleManager('defaults', store, registry=registry) as default_manager:
            assert default_manager.idle_timeout == timedelta(minutes=15)
            assert default_manager.renewal_timeout == timedelta(minutes=1)
            assert default_manager.lifetime == timedelta(hours=2)


@pytest.mark.unit
class TestLifecycleTransitions:
    """evaluate() transition function."""

    def test_fresh_session_resets_idle_deadline_only(self, manager, clock):
        record = manager.create_session()
        session_id = record.id
        renewal_deadline = record.renewal_deadline
        lifetime_deadline = record.lifetime_deadline

        now = clock.advance(0.5)
        manager.evaluate(record)

        assert record.id == session_id
        assert record.idle_deadline == now + timedelta(seconds=2)
        assert record.renewal_deadline == renewal_deadline
        assert record.lifetime_deadline == lifetime_deadline
        assert record.is_valid

    def test_renewal_rotates_identifier(self, manager, store, clock):
        record = manager.create_session({'user_id': '42'})
        old_id = record.id
        idle_deadline = record.idle_deadline
        renewal_deadline = record.renewal_deadline
        lifetime_deadline = record.lifetime_deadline

        now = clock.advance(1.5)
        manager.evaluate(record)

        assert record.is_valid
        assert record.id != old_id
        assert record.cookie.value == record.id
        assert record.renewal_deadline == now + timedelta(seconds=1)
        assert record.renewal_deadline > renewal_deadline
        assert record.idle_deadline > idle_deadline
        assert record.lifetime_deadline == lifetime_deadline

        with pytest.raises(NotFoundError):
            store.get(old_id)
        stored = store.get(record.id)
        assert stored.data == {'user_id': '42'}
        assert stored.idle_deadline == record.idle_deadline

    def test_idle_expiry_invalidates(self, manager, store, clock):
        record = manager.create_session()
        old_id = record.id

        now = clock.advance(2.5)
        manager.evaluate(record)

        assert record.status is SessionStatus.INVALID
        assert record.cookie.value == ''
        assert record.cookie.expires < now
        assert record.cookie.expires == now - timedelta(seconds=2)
        with pytest.raises(NotFoundError):
            store.get(old_id)

    def test_idle_expiry_takes_precedence_over_renewal(self, manager, store, clock):
        record = manager.create_session()
        old_id = record.id

        clock.advance(2)
        manager.evaluate(record)

        assert record.status is SessionStatus.INVALID
        assert record.id == old_id
        with pytest.raises(NotFoundError):
            store.get(old_id)

    def test_lifetime_caps_an_active_session(self, manager, clock):
        record = manager.create_session()
        lifetime_deadline = record.lifetime_deadline
        seen_ids = {record.id}

        for _ in range(3):
            clock.advance(1.5)
            manager.evaluate(record)
            assert record.is_valid
            assert record.lifetime_deadline == lifetime_deadline
            seen_ids.add(record.id)

        clock.advance(1.5)
        manager.evaluate(record)

        assert len(seen_ids) == 4
        assert record.status is SessionStatus.INVALID
        assert record.lifetime_deadline == lifetime_deadline

    def test_invalid_record_is_returned_untouched(self, manager, clock):
        record = manager.create_session()
        clock.advance(3)
        manager.evaluate(record)
        cookie_expires = record.cookie.expires

        clock.advance(10)
        manager.evaluate(record)

        assert record.status is SessionStatus.INVALID
        assert record.cookie.expires == cookie_expires

    def test_idle_timeout_longer_than_lifetime(self, make_manager, clock, caplog):
        with caplog.at_level(logging.WARNING, logger='sessionward.config.settings'):
            long_idle = make_manager(
                'long-idle',
                idle_timeout=timedelta(seconds=10),
                lifetime=timedelta(seconds=5)
            )
        assert 'idle timeout' in caplog.text

        record = long_idle.create_session()
        clock.advance(5)
        long_idle.evaluate(record)

        assert record.status is SessionStatus.INVALID


@pytest.mark.unit
class TestManualOperations:
    """invalidate_session() and rotate_session()."""

    def test_manual_invalidation(self, manager, store, clock):
        record = manager.create_session()
        old_id = record.id

        manager.invalidate_session(record)

        assert record.status is SessionStatus.INVALID
        assert record.cookie.value == ''
        assert record.cookie.expires == clock() - timedelta(seconds=2)
        with pytest.raises(NotFoundError):
            store.get(old_id)

    def test_manual_rotation_keeps_data(self, manager, store):
        record = manager.create_session({'user_id': '42'})
        old_id = record.id

        manager.rotate_session(record)

        assert record.id != old_id
        with pytest.raises(NotFoundError):
            store.get(old_id)
        assert store.get(record.id).data == {'user_id': '42'}

    def test_rotation_of_invalid_session_is_refused(self, manager):
        record = manager.create_session()
        manager.invalidate_session(record)

        with pytest.raises(SessionInvalidError):
            manager.rotate_session(record)

    def test_rotation_of_expired_session_is_refused(self, manager, clock):
        record = manager.create_session()
        clock.advance(6)

        with pytest.raises(SessionInvalidError):
            manager.rotate_session(record)


@pytest.mark.unit
class TestStoreFailures:
    """Behaviour when the backend fails mid-lifecycle."""

    def test_failed_delete_during_invalidation_is_logged(self, make_manager, registry, clock):
        backend = FlakyBackend()
        flaky_manager = make_manager('flaky', store=SessionStore(backend))
        record = flaky_manager.create_session()
        backend.fail_delete = True

        with capture_logs() as logs:
            flaky_manager.invalidate_session(record)

        assert record.status is SessionStatus.INVALID
        assert record.cookie.value == ''
        assert any(
            entry['event'] == 'Failed to delete invalidated session from store'
            and entry['log_level'] == 'warning'
            for entry in logs
        )

    def test_failed_delete_during_expiry_is_not_raised(self, make_manager, clock):
        backend = FlakyBackend()
        flaky_manager = make_manager('flaky', store=SessionStore(backend))
        record = flaky_manager.create_session()
        backend.fail_delete = True

        clock.advance(3)
        flaky_manager.evaluate(record)

        assert record.status is SessionStatus.INVALID

    def test_failed_atomic_rotation_reverts_record(self, make_manager, clock):
        backend = FlakyBackend(atomic=True)
        flaky_manager = make_manager('flaky', store=SessionStore(backend))
        record = flaky_manager.create_session()
        old_id = record.id
        renewal_deadline = record.renewal_deadline
        backend.fail_rename = True

        clock.advance(1.5)
        with pytest.raises(StoreIOError):
            flaky_manager.evaluate(record)

        assert record.is_valid
        assert record.id == old_id
        assert record.cookie.value == old_id
        assert record.renewal_deadline == renewal_deadline
        assert old_id in backend

    def test_lost_non_atomic_rotation_invalidates_record(self, make_manager, clock):
        backend = FlakyBackend(atomic=False)
        flaky_manager = make_manager('flaky', store=SessionStore(backend))
        record = flaky_manager.create_session()
        old_id = record.id

        backend.fail_put = True
        clock.advance(1.5)
        with pytest.raises(RotationFailedError):
            flaky_manager.evaluate(record)

        assert record.status is SessionStatus.INVALID
        assert record.cookie.value == ''
        assert old_id not in backend
        assert len(backend) == 0


@pytest.mark.unit
class TestRequestProcessing:
    """process_request() and save_session()."""

    def test_missing_identifier(self, manager):
        assert manager.process_request(None) is None
        assert manager.process_request('') is None

    def test_unknown_identifier(self, manager):
        assert manager.process_request('f' * 64) is None

    def test_known_identifier_is_evaluated(self, manager, clock):
        record = manager.create_session()

        now = clock.advance(0.5)
        loaded = manager.process_request(record.id)

        assert loaded.id == record.id
        assert loaded.idle_deadline == now + timedelta(seconds=2)

    def test_corrupt_payload_propagates(self, manager, backend):
        backend.put('corrupt', b'garbage')

        with pytest.raises(DecodeError):
            manager.process_request('corrupt')

    def test_payload_with_naive_timestamps_propagates_decode_error(self, manager, backend):
        record = manager.create_session()
        backend.put(record.id, backend.get(record.id).replace(b'+00:00', b''))

        with pytest.raises(DecodeError):
            manager.process_request(record.id)

    def test_self_referencing_value_rejected_by_set(self, manager):
        record = manager.create_session()
        loop = {}
        loop['self'] = loop

        with pytest.raises(UnsupportedTypeError):
            record.set('loop', loop)

        assert 'loop' not in record.data

    def test_self_referencing_initial_data_rejected(self, manager, backend):
        loop = {}
        loop['self'] = loop

        with pytest.raises(UnsupportedTypeError):
            manager.create_session({'loop': loop})

        assert len(backend) == 0

    def test_save_session_persists_changes(self, manager, store):
        record = manager.create_session()
        record.set('cart', {'items': 3})

        assert manager.save_session(record) is True
        assert store.get(record.id).data == {'cart': {'items': 3}}

    def test_invalid_session_is_not_saved(self, manager, backend):
        record = manager.create_session()
        manager.invalidate_session(record)

        assert manager.save_session(record) is False
        assert len(backend) == 0

    def test_attach_and_retrieve(self, manager):
        record = manager.create_session()
        context = {'request_id': 'r-1'}

        attached = manager.attach(context, record)

        assert manager.session_from(attached) is record
        assert attached['request_id'] == 'r-1'
        assert manager.session_from(context) is None


@pytest.mark.unit
class TestCleanup:
    """cleanup_expired_sessions() sweep."""

    def test_cleanup_removes_expired_and_corrupt(self, manager, backend, clock):
        expired = manager.create_session()
        active = manager.create_session()
        backend.put('corrupt', b'garbage')

        clock.advance(1.5)
        active = manager.process_request(active.id)
        manager.save_session(active)
        clock.advance(1.0)

        stats = manager.cleanup_expired_sessions()

        assert stats == {
            'processed_sessions': 3,
            'expired_sessions': 1,
            'orphaned_sessions': 1,
            'cleanup_errors': 0,
        }
        assert expired.id not in backend
        assert 'corrupt' not in backend
        assert active.id in backend

    def test_cleanup_counts_backend_errors(self, make_manager, clock):
        backend = FlakyBackend()
        flaky_manager = make_manager('flaky', store=SessionStore(backend))
        flaky_manager.create_session()
        backend.fail_delete = True

        clock.advance(10)
        stats = flaky_manager.cleanup_expired_sessions()

        assert stats['cleanup_errors'] == 1
        assert stats['expired_sessions'] == 0


@pytest.mark.unit
class TestNamespaceRegistration:
    """Namespace uniqueness and manager configuration."""

    def test_duplicate_namespace_is_rejected(self, make_manager):
        make_manager('shop')

        with pytest.raises(DuplicateNamespaceError):
            make_manager('shop')

    def test_close_releases_namespace(self, store, registry):
        first = SessionLifecycleManager('shop', store, registry=registry)
        first.close()
        first.close()

        with SessionLifecycleManager('shop', store, registry=registry):
            assert 'shop' in registry
        assert 'shop' not in registry

    def test_distinct_namespaces_have_distinct_keys(self, make_manager):
        shop = make_manager('shop')
        admin = make_manager('admin')

        assert shop.context_key != admin.context_key
        assert shop.cookie_name != admin.cookie_name

    def test_independent_registries(self, store):
        with SessionLifecycleManager('shop', store, registry=NamespaceRegistry()):
            with SessionLifecycleManager('shop', store, registry=NamespaceRegistry()):
                pass

    def test_non_positive_timeout_is_rejected(self, make_manager, registry):
        with pytest.raises(ConfigurationError):
            make_manager('bad', idle_timeout=timedelta(0))

        assert 'bad' not in registry

    def test_failed_cookie_naming_leaves_namespace_free(self, store, registry):
        settings = MagicMock()
        settings.with_overrides.return_value.cookie_name.side_effect = KeyError('env')

        with pytest.raises(KeyError):
            SessionLifecycleManager('shop', store, settings, registry=registry)

        assert 'shop' not in registry

    def test_empty_namespace_is_rejected(self, store, registry):
        with pytest.raises(ConfigurationError):
            SessionLifecycleManager('', store, registry=registry)

    def test_settings_template_drives_cookie_name(self, make_manager):
        settings = LifecycleSettings(cookie_name_template='sid_{namespace}', cookie_secure=False)
        custom = make_manager('custom', settings=settings)

        record = custom.create_session()

        assert record.cookie.name == 'sid_custom'
        assert record.cookie.secure is False


@pytest.mark.slow
def test_timeouts_in_real_time(store, registry):
    """Renewal and idle expiry against the wall clock."""
    with SessionLifecycleManager(
        'real-time',
        store,
        idle_timeout=timedelta(seconds=2),
        renewal_timeout=timedelta(seconds=1),
        lifetime=timedelta(seconds=5),
        registry=registry
    ) as real_manager:
        renewed = real_manager.create_session()
        expired = real_manager.create_session()
        renewed_id = renewed.id

        time.sleep(1.5)
        real_manager.evaluate(renewed)
        assert renewed.is_valid
        assert renewed.id != renewed_id

        time.sleep(1.0)
        real_manager.evaluate(expired)
        assert expired.status is SessionStatus.INVALID
        assert expired.cookie.value == ''
