"""Tests for ElementLockManager claims, cooldowns and weak surface references."""

import gc

from snipsmith import locks
from snipsmith.locks import ElementLockManager
from snipsmith.surfaces import TextInput


class TestElementLockManager:
    def test_acquire_then_busy(self, lock_manager):
        surface = TextInput()
        assert lock_manager.try_acquire(surface)
        assert lock_manager.is_locked(surface)
        assert not lock_manager.try_acquire(surface)

    def test_claim_outlives_cooldown_until_released(self, lock_manager, clock):
        surface = TextInput()
        lock_manager.try_acquire(surface, cooldown_ms=500)
        clock.advance(2.0)
        assert lock_manager.is_locked(surface)
        assert not lock_manager.try_acquire(surface)

    def test_cooldown_expires_after_release(self, lock_manager, clock):
        surface = TextInput()
        lock_manager.try_acquire(surface, cooldown_ms=500)
        lock_manager.release(surface)
        clock.advance(0.499)
        assert lock_manager.is_locked(surface)
        clock.advance(0.002)
        assert not lock_manager.is_locked(surface)
        assert lock_manager.try_acquire(surface)

    def test_release_restarts_cooldown(self, lock_manager, clock):
        surface = TextInput()
        lock_manager.try_acquire(surface, cooldown_ms=500)
        clock.advance(0.4)
        lock_manager.release(surface)
        assert lock_manager.locks[surface].locked is False

        clock.advance(0.4)
        assert lock_manager.is_locked(surface)
        clock.advance(0.2)
        assert not lock_manager.is_locked(surface)

    def test_failure_cooldown(self, lock_manager, clock):
        surface = TextInput()
        lock_manager.try_acquire(surface)
        lock_manager.mark_failed(surface)
        assert lock_manager.locks[surface].cooldown_ms == locks.FAILURE_COOLDOWN_MS
        assert lock_manager.locks[surface].locked is False

        clock.advance(4.9)
        assert lock_manager.is_locked(surface)
        clock.advance(0.2)
        assert not lock_manager.is_locked(surface)

    def test_abandoned_claim_lapses(self, clock):
        manager = ElementLockManager(clock=clock, max_hold_ms=10000)
        surface = TextInput()
        manager.try_acquire(surface)
        clock.advance(9.9)
        assert manager.is_locked(surface)
        clock.advance(0.2)
        assert manager.try_acquire(surface)

    def test_surfaces_are_independent(self, lock_manager):
        first, second = TextInput(), TextInput()
        lock_manager.try_acquire(first)
        assert lock_manager.try_acquire(second)

    def test_forget(self, lock_manager):
        surface = TextInput()
        lock_manager.try_acquire(surface)
        lock_manager.forget(surface)
        assert not lock_manager.is_locked(surface)

    def test_discarded_surface_drops_record(self, lock_manager):
        surface = TextInput()
        lock_manager.try_acquire(surface)
        del surface
        gc.collect()
        assert len(lock_manager.locks) == 0

    def test_module_singleton(self):
        assert locks.get_lock_manager() is locks.get_lock_manager()
