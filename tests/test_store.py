import sqlite3
import pytest
from conftest import settings_with
from errors import (
    ConnectivityError, PartsShortage, SettingNotFound, SettingOutOfRange,
    StationNotLeased, StoreError, UnknownWorkerType
)
from store import MemoryStore, SQLiteStore, open_store


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request):
    return request.getfixturevalue(f"{request.param}_store")


def lease(store, type_name):
    return store.lease_station(store.resolve_worker_type(type_name))


def test_initialize_seeds_settings_and_stations(any_store):
    settings = {s.name: s for s in any_store.list_settings()}
    assert settings['TimeScale'].value == 1
    assert settings['RefillThreshold'].value == 10
    assert settings['HousingBinSize'].value == 24
    stations = any_store.station_status()
    assert [s.station_id for s in stations] == [1, 2, 3, 4, 5, 6, 7]
    assert [s.worker_type for s in stations] == ['new', 'new', 'normal', 'normal', 'normal', 'experienced', 'experienced']
    assert all(not s.leased and s.lamps_built == 0 for s in stations)
    assert stations[0].bins['Bezel'] == 75


def test_initialize_is_idempotent(db_path):
    store = SQLiteStore(db_path).initialize()
    store.change_setting('TimeScale', 7)
    store.initialize()
    assert store.read_setting('TimeScale') == 7
    assert len(store.station_status()) == 7


def test_change_setting_and_reset_defaults(any_store):
    any_store.change_setting('TimeScale', 10)
    assert any_store.read_setting('TimeScale') == 10
    any_store.change_setting('HousingBinSize', 30)
    assert any_store.reset_defaults() == 8
    assert any_store.read_setting('TimeScale') == 1
    assert any_store.read_setting('HousingBinSize') == 24


def test_change_setting_out_of_range_keeps_value(any_store):
    with pytest.raises(SettingOutOfRange) as info:
        any_store.change_setting('TimeScale', 0)
    assert (info.value.minimum, info.value.maximum) == (1, 1000)
    with pytest.raises(SettingOutOfRange):
        any_store.change_setting('RefillThreshold', 51)
    assert any_store.read_setting('TimeScale') == 1


def test_unknown_setting(any_store):
    with pytest.raises(SettingNotFound):
        any_store.read_setting('NoSuchSetting')
    with pytest.raises(SettingNotFound):
        any_store.change_setting('NoSuchSetting', 1)


def test_lease_is_per_worker_type_and_runs_out(any_store):
    assert lease(any_store, 'experienced') == 6
    assert lease(any_store, 'experienced') == 7
    assert lease(any_store, 'experienced') is None
    assert lease(any_store, 'new') == 1


def test_unknown_worker_type(any_store):
    with pytest.raises(UnknownWorkerType):
        any_store.resolve_worker_type('apprentice')
    with pytest.raises(UnknownWorkerType):
        any_store.lease_station(99)


def test_release_returns_station_to_pool(any_store):
    station_id = lease(any_store, 'new')
    any_store.release_station(station_id)
    assert lease(any_store, 'new') == station_id
    with pytest.raises(StationNotLeased):
        any_store.release_station(2)


def test_report_unit_consumes_one_of_each_part(any_store):
    station_id = lease(any_store, 'normal')
    assert any_store.report_unit(station_id) == 1
    assert any_store.report_unit(station_id) == 2
    record = [s for s in any_store.station_status() if s.station_id == station_id][0]
    assert record.lamps_built == 2
    assert record.bins == {'Harness': 53, 'Reflector': 33, 'Housing': 22, 'Lens': 38, 'Bulb': 58, 'Bezel': 73}


def test_report_unit_requires_lease(any_store):
    with pytest.raises(StationNotLeased):
        any_store.report_unit(1)
    with pytest.raises(StationNotLeased):
        any_store.report_unit(999)


def test_report_unit_on_empty_bin_is_parts_shortage():
    store = MemoryStore().initialize(capacity={'normal': 1}, settings=settings_with(HousingBinSize=2))
    station_id = lease(store, 'normal')
    store.report_unit(station_id)
    store.report_unit(station_id)
    with pytest.raises(PartsShortage) as info:
        store.report_unit(station_id)
    assert info.value.parts == ['Housing']
    assert store.station_status()[0].lamps_built == 2


def test_replenishment_refills_low_bins_on_leased_stations(any_store):
    station_id = lease(any_store, 'normal')
    for _ in range(20):
        any_store.report_unit(station_id)
    assert any_store.apply_replenishment() == 1
    records = {s.station_id: s for s in any_store.station_status()}
    assert records[station_id].bins['Housing'] == 28
    assert records[station_id].bins['Reflector'] == 15
    assert records[4].bins['Housing'] == 24
    assert any_store.apply_replenishment() == 0


def test_replenishment_uses_current_threshold(any_store):
    station_id = lease(any_store, 'new')
    any_store.report_unit(station_id)
    any_store.change_setting('RefillThreshold', 50)
    # Reflector 34, Housing 23 and Lens 39 are at or below 50
    assert any_store.apply_replenishment() == 3


def test_missing_sqlite_file_is_connectivity_error(tmp_path):
    store = SQLiteStore(str(tmp_path / "absent" / "kanban.db"))
    with pytest.raises(ConnectivityError):
        store.list_settings()


def test_uninitialized_sqlite_store(tmp_path):
    path = str(tmp_path / "empty.db")
    sqlite3.connect(path).close()
    store = SQLiteStore(path)
    with pytest.raises(StoreError) as info:
        store.read_setting('TimeScale')
    assert not isinstance(info.value, ConnectivityError)
    assert "kanban-admin init" in str(info.value)


class FlakyStore(MemoryStore):
    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.calls = 0
    def _read_setting(self, name):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectivityError("connection reset")
        return super()._read_setting(name)


def test_read_setting_retries_transient_failures():
    store = FlakyStore(2, retry_attempts=3, retry_backoff_seconds=0.0).initialize()
    assert store.read_setting('TimeScale') == 1
    assert store.calls == 3


def test_read_setting_gives_up_after_attempts():
    store = FlakyStore(5, retry_attempts=2, retry_backoff_seconds=0.0).initialize()
    with pytest.raises(ConnectivityError):
        store.read_setting('TimeScale')
    assert store.calls == 2


def test_open_store_backends(db_path):
    store = open_store({'backend': 'memory'})
    assert isinstance(store, MemoryStore)
    assert store.read_setting('TimeScale') == 1
    assert isinstance(open_store({'backend': 'sqlite', 'sqlite_path': db_path}), SQLiteStore)
    with pytest.raises(StoreError):
        open_store({'backend': 'redis'})


def test_station_rows_flatten_bins(memory_store):
    row = memory_store.station_status()[0].as_row()
    assert row['station_id'] == 1
    assert row['bin_Housing'] == 24
    assert row['leased'] is False
