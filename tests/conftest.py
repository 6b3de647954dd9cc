import pytest

from snipsmith.config import ConfigManager
from snipsmith.locks import ElementLockManager


class FakeClock:
    """Monotonic clock the tests move by hand (seconds)."""

    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def config_manager(tmp_path):
    return ConfigManager(config_file=str(tmp_path / "config.toml"))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lock_manager(clock):
    return ElementLockManager(clock=clock)
