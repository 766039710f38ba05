import threading
import pytest
from allocation import AllocationStatus, allocate_for_startup, allocate_station
from errors import ConnectivityError
from pacing import WorkerType
from store import MemoryStore, SQLiteStore


def race(store, worker_type, contenders):
    barrier = threading.Barrier(contenders)
    results = []
    lock = threading.Lock()
    def contend():
        barrier.wait()
        result = allocate_station(store, worker_type)
        with lock:
            results.append(result)
    threads = [threading.Thread(target=contend) for _ in range(contenders)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


@pytest.mark.parametrize("backend", ["memory", "sqlite"])
def test_concurrent_starts_never_oversubscribe(backend, tmp_path):
    capacity = {'new': 2, 'normal': 3, 'experienced': 2}
    if backend == "memory":
        store = MemoryStore().initialize(capacity=capacity)
    else:
        store = SQLiteStore(str(tmp_path / "race.db")).initialize(capacity=capacity)
    results = race(store, WorkerType.NORMAL, 8)
    leased = [r for r in results if r.leased]
    assert len(leased) == 3
    assert sorted(r.station_id for r in leased) == [3, 4, 5]
    assert sum(r.exhausted for r in results) == 5
    assert not any(r.fatal for r in results)
    assert all(s.leased == (s.station_id in (3, 4, 5)) for s in store.station_status())


def test_exhausted_is_not_fatal(memory_store):
    first = allocate_station(memory_store, WorkerType.EXPERIENCED)
    second = allocate_station(memory_store, WorkerType.EXPERIENCED)
    third = allocate_station(memory_store, WorkerType.EXPERIENCED)
    assert (first.station_id, second.station_id) == (6, 7)
    assert third.status is AllocationStatus.EXHAUSTED
    assert third.station_id is None and third.error is None


def test_zero_capacity_is_exhausted():
    store = MemoryStore().initialize(capacity={'new': 0, 'normal': 1})
    assert allocate_station(store, WorkerType.NEW).exhausted


class StubStore(MemoryStore):
    def __init__(self, type_error=None, lease_error=None, lease_result=1):
        super().__init__()
        self.type_error = type_error
        self.lease_error = lease_error
        self.lease_result = lease_result
    def _resolve_worker_type(self, description):
        if self.type_error:
            raise self.type_error
        return 1
    def lease_station(self, worker_type_id):
        if self.lease_error:
            raise self.lease_error
        return self.lease_result


def test_unknown_type_is_fatal(memory_store):
    memory_store._worker_types.pop('new')
    result = allocate_station(memory_store, WorkerType.NEW)
    assert result.fatal
    assert "resolve worker type" in result.error


def test_store_failure_during_lease_is_fatal():
    result = allocate_station(StubStore(lease_error=ConnectivityError("down")), WorkerType.NORMAL)
    assert result.status is AllocationStatus.FATAL
    assert "down" in result.error


def test_store_failure_resolving_type_is_fatal():
    result = allocate_station(StubStore(type_error=ConnectivityError("down")), WorkerType.NORMAL)
    assert result.fatal and not result.exhausted


@pytest.mark.parametrize("bad_id", [0, -4])
def test_invalid_station_id_is_fatal(bad_id):
    result = allocate_station(StubStore(lease_result=bad_id), WorkerType.NORMAL)
    assert result.fatal
    assert result.station_id is None


def test_startup_allocation_checks_time_scale_first(memory_store):
    assert allocate_for_startup(memory_store, WorkerType.NEW).station_id == 1
    memory_store._settings['TimeScale'].value = -3
    result = allocate_for_startup(memory_store, WorkerType.NEW)
    assert result.fatal
    assert [s.station_id for s in memory_store.station_status() if s.leased] == [1]
