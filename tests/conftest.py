import copy
import pytest
import config
import runner
import store as store_module
import workstation
from pacing import PacingClock
from store import MemoryStore, SQLiteStore


class FakeClock(PacingClock):
    def __init__(self, on_sleep=None):
        super().__init__()
        self.durations = []
        self.on_sleep = on_sleep
    def sleep(self, duration_ms):
        if self.cancelled:
            return False
        self.durations.append(duration_ms)
        if self.on_sleep is not None:
            self.on_sleep(len(self.durations))
        return not self.cancelled


def settings_with(**values):
    settings = copy.deepcopy(config.DEFAULT_SETTINGS)
    for name, value in values.items():
        settings[name]['value'] = value
    return settings


@pytest.fixture
def memory_store():
    return MemoryStore().initialize()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "kanban.db")


@pytest.fixture
def sqlite_store(db_path):
    return SQLiteStore(db_path).initialize()


@pytest.fixture(autouse=True)
def no_retry_backoff(monkeypatch):
    monkeypatch.setitem(store_module.STORE_CONFIG, 'retry_attempts', 1)
    monkeypatch.setitem(store_module.STORE_CONFIG, 'retry_backoff_seconds', 0.0)


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch):
    monkeypatch.setattr(workstation, 'install_signal_handlers', lambda clock, label: None)
    monkeypatch.setattr(runner, 'install_signal_handlers', lambda clock, label: None)
