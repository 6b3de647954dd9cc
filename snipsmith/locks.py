import logging
import time
import weakref
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 500
FAILURE_COOLDOWN_MS = 5000
# A claim never released (crashed or abandoned replacement) stops blocking after this
MAX_HOLD_MS = 30000


@dataclass
class LockRecord:
    locked: bool  # True while a replacement holds the surface
    held_since: float  # seconds, from the manager's clock; acquire time, then release/failure time
    cooldown_ms: float


class ElementLockManager:
    """
    Per-surface expansion locks.
    A claimed surface stays locked until release() or mark_failed(), bounded
    by max_hold_ms. After that it stays locked for its cooldown, counted from
    the release or failure. Records are held weakly so a discarded surface
    drops its lock with it.
    """

    def __init__(self, clock=time.monotonic, failure_cooldown_ms=FAILURE_COOLDOWN_MS, max_hold_ms=MAX_HOLD_MS):
        self.clock = clock
        self.failure_cooldown_ms = failure_cooldown_ms
        self.max_hold_ms = max_hold_ms
        self.locks = weakref.WeakKeyDictionary()

    def is_locked(self, surface) -> bool:
        lock = self.locks.get(surface)
        if lock is None:
            return False
        elapsed_ms = (self.clock() - lock.held_since) * 1000
        if lock.locked:
            if elapsed_ms < self.max_hold_ms:
                return True
            logger.warning(f"Expansion lock held for over {self.max_hold_ms}ms, letting it lapse")
            return False
        return elapsed_ms < lock.cooldown_ms

    def try_acquire(self, surface, cooldown_ms=DEFAULT_COOLDOWN_MS) -> bool:
        if self.is_locked(surface):
            logger.debug("Surface is locked, refusing expansion")
            return False
        self.locks[surface] = LockRecord(locked=True, held_since=self.clock(), cooldown_ms=cooldown_ms)
        return True

    def release(self, surface):
        lock = self.locks.get(surface)
        if lock is not None:
            lock.locked = False
            # Cooldown runs from release so back-to-back expansions stay apart
            lock.held_since = self.clock()

    def mark_failed(self, surface):
        self.locks[surface] = LockRecord(
            locked=False,
            held_since=self.clock(),
            cooldown_ms=self.failure_cooldown_ms,
        )
        logger.debug(f"Surface marked failed for {self.failure_cooldown_ms}ms")

    def forget(self, surface):
        self.locks.pop(surface, None)


_manager = None


def get_lock_manager() -> ElementLockManager:
    global _manager
    if _manager is None:
        _manager = ElementLockManager()
    return _manager
