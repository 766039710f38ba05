import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import psycopg2
from config import (
    DEFAULT_SETTINGS, PART_BINS, REFILL_THRESHOLD_SETTING, STATION_CAPACITY,
    STORE_CONFIG, WORKER_TYPES
)
from errors import (
    ConnectivityError, KanbanError, PartsShortage, SettingNotFound,
    SettingOutOfRange, StationNotLeased, StoreError, UnknownWorkerType
)
@dataclass
class Setting:
    name: str
    value: int
    minimum: int
    maximum: int
    default: int
    def in_range(self, value: int) -> bool:
        return self.minimum <= value <= self.maximum
@dataclass
class StationRecord:
    station_id: int
    worker_type: str
    leased: bool = False
    lamps_built: int = 0
    bins: Dict[str, int] = field(default_factory=dict)
    def as_row(self) -> Dict[str, Any]:
        row = {'station_id': self.station_id, 'worker_type': self.worker_type,
               'leased': self.leased, 'lamps_built': self.lamps_built}
        row.update({f"bin_{part}": qty for part, qty in sorted(self.bins.items())})
        return row
def _station_plan(capacity: Dict[str, int]) -> List[Tuple[int, str]]:
    plan = []
    station_id = 0
    for type_name in WORKER_TYPES:
        for _ in range(int(capacity.get(type_name, 0))):
            station_id += 1
            plan.append((station_id, type_name))
    unknown = [t for t in capacity if t not in WORKER_TYPES]
    if unknown:
        raise UnknownWorkerType(f"Capacity given for unknown worker types: {unknown}")
    return plan
def _full_bins(settings: Dict[str, Dict[str, int]]) -> Dict[str, int]:
    return {part: int(settings[key]['value']) for part, key in PART_BINS.items()}
def with_retry(func: Callable[[], Any], attempts: int, backoff_seconds: float, label: str) -> Any:
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except ConnectivityError as e:
            if attempt == attempts:
                raise
            print(f"WARNING: {label} failed ({e}). Retry {attempt}/{attempts - 1} in {backoff_seconds * attempt:.1f}s.")
            time.sleep(backoff_seconds * attempt)
class KanbanStore:
    """Contract of the external store shared by every workstation and the runner.

    Only read_setting() and resolve_worker_type() are retried on ConnectivityError;
    every write is issued exactly once so a unit or a refill is never applied twice.
    """
    def __init__(self, retry_attempts: int = 1, retry_backoff_seconds: float = 0.0):
        self.retry_attempts = retry_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
    def read_setting(self, name: str) -> int:
        return with_retry(lambda: self._read_setting(name), self.retry_attempts,
                          self.retry_backoff_seconds, f"Reading setting '{name}'")
    def resolve_worker_type(self, description: str) -> int:
        return with_retry(lambda: self._resolve_worker_type(description), self.retry_attempts,
                          self.retry_backoff_seconds, f"Resolving worker type '{description}'")
    def initialize(self, capacity: Optional[Dict[str, int]] = None, settings: Optional[Dict[str, Dict[str, int]]] = None) -> 'KanbanStore':
        raise NotImplementedError
    def list_settings(self) -> List[Setting]:
        raise NotImplementedError
    def change_setting(self, name: str, value: int) -> Setting:
        raise NotImplementedError
    def reset_defaults(self) -> int:
        raise NotImplementedError
    def lease_station(self, worker_type_id: int) -> Optional[int]:
        raise NotImplementedError
    def release_station(self, station_id: int) -> None:
        raise NotImplementedError
    def report_unit(self, station_id: int) -> int:
        raise NotImplementedError
    def apply_replenishment(self) -> int:
        raise NotImplementedError
    def station_status(self) -> List[StationRecord]:
        raise NotImplementedError
    def close(self) -> None:
        pass
    def _read_setting(self, name: str) -> int:
        raise NotImplementedError
    def _resolve_worker_type(self, description: str) -> int:
        raise NotImplementedError
class MemoryStore(KanbanStore):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._lock = threading.RLock()
        self._settings: Dict[str, Setting] = {}
        self._worker_types: Dict[str, int] = {}
        self._stations: Dict[int, StationRecord] = {}
    def initialize(self, capacity=None, settings=None):
        capacity = STATION_CAPACITY if capacity is None else capacity
        settings = DEFAULT_SETTINGS if settings is None else settings
        with self._lock:
            for name, spec in settings.items():
                if name not in self._settings:
                    self._settings[name] = Setting(name, int(spec['value']), int(spec['min']),
                                                   int(spec['max']), int(spec['default']))
            for type_id, type_name in enumerate(WORKER_TYPES, start=1):
                self._worker_types.setdefault(type_name, type_id)
            if not self._stations:
                for station_id, type_name in _station_plan(capacity):
                    self._stations[station_id] = StationRecord(station_id, type_name, bins=_full_bins(settings))
        return self
    def _read_setting(self, name):
        with self._lock:
            if name not in self._settings:
                raise SettingNotFound(name)
            return self._settings[name].value
    def list_settings(self):
        with self._lock:
            return [Setting(**vars(s)) for s in self._settings.values()]
    def change_setting(self, name, value):
        with self._lock:
            setting = self._settings.get(name)
            if setting is None:
                raise SettingNotFound(name)
            if not setting.in_range(value):
                raise SettingOutOfRange(name, value, setting.minimum, setting.maximum)
            setting.value = int(value)
            return Setting(**vars(setting))
    def reset_defaults(self):
        with self._lock:
            for setting in self._settings.values():
                setting.value = setting.default
            return len(self._settings)
    def _resolve_worker_type(self, description):
        with self._lock:
            if description not in self._worker_types:
                raise UnknownWorkerType(f"Worker type '{description}' is not defined in the store")
            return self._worker_types[description]
    def lease_station(self, worker_type_id):
        with self._lock:
            names = [n for n, i in self._worker_types.items() if i == worker_type_id]
            if not names:
                raise UnknownWorkerType(f"Worker type id {worker_type_id} is not defined in the store")
            for station_id in sorted(self._stations):
                station = self._stations[station_id]
                if station.worker_type == names[0] and not station.leased:
                    station.leased = True
                    return station_id
            return None
    def release_station(self, station_id):
        with self._lock:
            station = self._stations.get(station_id)
            if station is None or not station.leased:
                raise StationNotLeased(f"Station {station_id} is not leased")
            station.leased = False
    def report_unit(self, station_id):
        with self._lock:
            station = self._stations.get(station_id)
            if station is None or not station.leased:
                raise StationNotLeased(f"Station {station_id} is not leased")
            empty = sorted(part for part, qty in station.bins.items() if qty <= 0)
            if empty:
                raise PartsShortage(station_id, empty)
            for part in station.bins:
                station.bins[part] -= 1
            station.lamps_built += 1
            return station.lamps_built
    def apply_replenishment(self):
        with self._lock:
            threshold = self._read_setting(REFILL_THRESHOLD_SETTING)
            refilled = 0
            for station in self._stations.values():
                if not station.leased:
                    continue
                for part, qty in station.bins.items():
                    if qty <= threshold:
                        station.bins[part] = qty + self._read_setting(PART_BINS[part])
                        refilled += 1
            return refilled
    def station_status(self):
        with self._lock:
            return [StationRecord(s.station_id, s.worker_type, s.leased, s.lamps_built, dict(s.bins))
                    for _, s in sorted(self._stations.items())]
SCHEMA = [
    """CREATE TABLE IF NOT EXISTS configuration (
        setting VARCHAR(64) PRIMARY KEY,
        value INTEGER NOT NULL,
        min_value INTEGER NOT NULL,
        max_value INTEGER NOT NULL,
        default_value INTEGER NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS worker_type (
        worker_type_id INTEGER PRIMARY KEY,
        description VARCHAR(32) NOT NULL UNIQUE,
        multiplier REAL NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS station (
        station_id INTEGER PRIMARY KEY,
        worker_type_id INTEGER NOT NULL REFERENCES worker_type (worker_type_id),
        leased INTEGER NOT NULL DEFAULT 0,
        lamps_built INTEGER NOT NULL DEFAULT 0
    )""",
    """CREATE TABLE IF NOT EXISTS bin (
        station_id INTEGER NOT NULL REFERENCES station (station_id),
        part VARCHAR(32) NOT NULL,
        quantity INTEGER NOT NULL,
        PRIMARY KEY (station_id, part)
    )""",
]
class SQLStore(KanbanStore):
    """Shared SQL for the relational adapters. Queries are written with '?' markers."""
    placeholder = '?'
    lease_lock_clause = ''
    row_lock_clause = ''
    driver_errors: Tuple[type, ...] = ()
    def _connect(self, create: bool = False):
        raise NotImplementedError
    def _translate(self, exc: Exception) -> StoreError:
        return StoreError(str(exc))
    def _begin(self, conn, cur, write: bool) -> None:
        pass
    def _sql(self, query: str) -> str:
        if self.placeholder == '?':
            return query
        return query.replace('?', self.placeholder)
    def _rollback(self, conn) -> None:
        try:
            conn.rollback()
        except self.driver_errors as e:
            print(f"WARNING: Rollback failed: {e}")
    @contextmanager
    def _transaction(self, write: bool = True, create: bool = False):
        try:
            conn = self._connect(create=create)
        except self.driver_errors as e:
            raise self._translate(e) from e
        try:
            cur = conn.cursor()
            self._begin(conn, cur, write)
            yield cur
            conn.commit()
        except KanbanError:
            self._rollback(conn)
            raise
        except self.driver_errors as e:
            self._rollback(conn)
            raise self._translate(e) from e
        finally:
            conn.close()
    def _execute(self, cur, query: str, params: Iterable[Any] = ()):
        cur.execute(self._sql(query), tuple(params))
        return cur
    def initialize(self, capacity=None, settings=None):
        capacity = STATION_CAPACITY if capacity is None else capacity
        settings = DEFAULT_SETTINGS if settings is None else settings
        plan = _station_plan(capacity)
        with self._transaction(create=True) as cur:
            for statement in SCHEMA:
                cur.execute(statement)
            for name, spec in settings.items():
                self._execute(cur, "INSERT INTO configuration (setting, value, min_value, max_value, default_value) "
                                   "VALUES (?, ?, ?, ?, ?) ON CONFLICT (setting) DO NOTHING",
                              (name, int(spec['value']), int(spec['min']), int(spec['max']), int(spec['default'])))
            type_ids = {}
            for type_id, type_name in enumerate(WORKER_TYPES, start=1):
                self._execute(cur, "INSERT INTO worker_type (worker_type_id, description, multiplier) "
                                   "VALUES (?, ?, ?) ON CONFLICT (worker_type_id) DO NOTHING",
                              (type_id, type_name, WORKER_TYPES[type_name]['multiplier']))
                type_ids[type_name] = type_id
            (existing,) = self._execute(cur, "SELECT COUNT(*) FROM station").fetchone()
            if existing == 0:
                bins = _full_bins(settings)
                for station_id, type_name in plan:
                    self._execute(cur, "INSERT INTO station (station_id, worker_type_id, leased, lamps_built) VALUES (?, ?, 0, 0)",
                                  (station_id, type_ids[type_name]))
                    for part, qty in bins.items():
                        self._execute(cur, "INSERT INTO bin (station_id, part, quantity) VALUES (?, ?, ?)",
                                      (station_id, part, qty))
        return self
    def _read_setting(self, name):
        with self._transaction(write=False) as cur:
            row = self._execute(cur, "SELECT value FROM configuration WHERE setting = ?", (name,)).fetchone()
        if row is None:
            raise SettingNotFound(name)
        return int(row[0])
    def list_settings(self):
        with self._transaction(write=False) as cur:
            rows = self._execute(cur, "SELECT setting, value, min_value, max_value, default_value "
                                      "FROM configuration ORDER BY setting").fetchall()
        return [Setting(r[0], int(r[1]), int(r[2]), int(r[3]), int(r[4])) for r in rows]
    def change_setting(self, name, value):
        with self._transaction() as cur:
            row = self._execute(cur, "SELECT setting, value, min_value, max_value, default_value "
                                     "FROM configuration WHERE setting = ?", (name,)).fetchone()
            if row is None:
                raise SettingNotFound(name)
            setting = Setting(row[0], int(row[1]), int(row[2]), int(row[3]), int(row[4]))
            if not setting.in_range(value):
                raise SettingOutOfRange(name, value, setting.minimum, setting.maximum)
            self._execute(cur, "UPDATE configuration SET value = ? WHERE setting = ?", (int(value), name))
        setting.value = int(value)
        return setting
    def reset_defaults(self):
        with self._transaction() as cur:
            return self._execute(cur, "UPDATE configuration SET value = default_value").rowcount
    def _resolve_worker_type(self, description):
        with self._transaction(write=False) as cur:
            row = self._execute(cur, "SELECT worker_type_id FROM worker_type WHERE description = ?", (description,)).fetchone()
        if row is None:
            raise UnknownWorkerType(f"Worker type '{description}' is not defined in the store")
        return int(row[0])
    def lease_station(self, worker_type_id):
        with self._transaction() as cur:
            known = self._execute(cur, "SELECT 1 FROM worker_type WHERE worker_type_id = ?", (worker_type_id,)).fetchone()
            if known is None:
                raise UnknownWorkerType(f"Worker type id {worker_type_id} is not defined in the store")
            row = self._execute(cur,
                "UPDATE station SET leased = 1 "
                "WHERE leased = 0 AND station_id = ("
                "  SELECT station_id FROM station WHERE worker_type_id = ? AND leased = 0 "
                "  ORDER BY station_id LIMIT 1" + self.lease_lock_clause + ") "
                "RETURNING station_id", (worker_type_id,)).fetchall()
        return int(row[0][0]) if row else None
    def release_station(self, station_id):
        with self._transaction() as cur:
            released = self._execute(cur, "UPDATE station SET leased = 0 WHERE station_id = ? AND leased = 1",
                                     (station_id,)).rowcount
            if released == 0:
                raise StationNotLeased(f"Station {station_id} is not leased")
    def report_unit(self, station_id):
        with self._transaction() as cur:
            row = self._execute(cur, "SELECT leased FROM station WHERE station_id = ?" + self.row_lock_clause,
                                (station_id,)).fetchone()
            if row is None or not row[0]:
                raise StationNotLeased(f"Station {station_id} is not leased")
            empty = self._execute(cur, "SELECT part FROM bin WHERE station_id = ? AND quantity <= 0 ORDER BY part",
                                  (station_id,)).fetchall()
            if empty:
                raise PartsShortage(station_id, [r[0] for r in empty])
            self._execute(cur, "UPDATE bin SET quantity = quantity - 1 WHERE station_id = ?", (station_id,))
            ((lamps,),) = self._execute(cur, "UPDATE station SET lamps_built = lamps_built + 1 WHERE station_id = ? "
                                            "RETURNING lamps_built", (station_id,)).fetchall()
        return int(lamps)
    def apply_replenishment(self):
        with self._transaction() as cur:
            sizes = dict(self._execute(cur, "SELECT setting, value FROM configuration").fetchall())
            if REFILL_THRESHOLD_SETTING not in sizes:
                raise SettingNotFound(REFILL_THRESHOLD_SETTING)
            low = self._execute(cur,
                "SELECT b.station_id, b.part FROM bin b JOIN station s ON s.station_id = b.station_id "
                "WHERE s.leased = 1 AND b.quantity <= ? ORDER BY b.station_id, b.part",
                (int(sizes[REFILL_THRESHOLD_SETTING]),)).fetchall()
            for station_id, part in low:
                if PART_BINS.get(part) not in sizes:
                    raise SettingNotFound(PART_BINS.get(part, f"{part}BinSize"))
                self._execute(cur, "UPDATE bin SET quantity = quantity + ? WHERE station_id = ? AND part = ?",
                              (int(sizes[PART_BINS[part]]), station_id, part))
        return len(low)
    def station_status(self):
        with self._transaction(write=False) as cur:
            rows = self._execute(cur,
                "SELECT s.station_id, w.description, s.leased, s.lamps_built FROM station s "
                "JOIN worker_type w ON w.worker_type_id = s.worker_type_id ORDER BY s.station_id").fetchall()
            bins = self._execute(cur, "SELECT station_id, part, quantity FROM bin ORDER BY station_id, part").fetchall()
        records = {int(r[0]): StationRecord(int(r[0]), r[1], bool(r[2]), int(r[3])) for r in rows}
        for station_id, part, qty in bins:
            if int(station_id) in records:
                records[int(station_id)].bins[part] = int(qty)
        return list(records.values())
class SQLiteStore(SQLStore):
    driver_errors = (sqlite3.Error,)
    def __init__(self, path: str, connect_timeout: float = 5.0, **kwargs):
        super().__init__(**kwargs)
        self.path = str(path)
        self.connect_timeout = connect_timeout
    def _connect(self, create=False):
        if create:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)) or ".", exist_ok=True)
        uri = Path(self.path).resolve().as_uri() + ("?mode=rwc" if create else "?mode=rw")
        return sqlite3.connect(uri, uri=True, timeout=self.connect_timeout, isolation_level=None)
    def _begin(self, conn, cur, write):
        cur.execute("BEGIN IMMEDIATE" if write else "BEGIN")
    def _translate(self, exc):
        message = str(exc)
        if isinstance(exc, sqlite3.OperationalError):
            if 'no such table' in message:
                return StoreError(f"Store at {self.path} is not initialized ({message}). Run 'kanban-admin init'.")
            return ConnectivityError(f"SQLite store at {self.path} unavailable: {message}")
        return StoreError(message)
class PostgresStore(SQLStore):
    placeholder = '%s'
    lease_lock_clause = ' FOR UPDATE SKIP LOCKED'
    row_lock_clause = ' FOR UPDATE'
    driver_errors = (psycopg2.Error,)
    def __init__(self, params: Dict[str, Any], connect_timeout: float = 5.0, **kwargs):
        super().__init__(**kwargs)
        self.params = dict(params)
        self.connect_timeout = connect_timeout
    def _connect(self, create=False):
        return psycopg2.connect(connect_timeout=int(self.connect_timeout), **self.params)
    def _translate(self, exc):
        if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
            return ConnectivityError(f"PostgreSQL store unavailable: {exc}")
        return StoreError(str(exc))
def open_store(store_config: Optional[Dict[str, Any]] = None) -> KanbanStore:
    cfg = dict(STORE_CONFIG)
    cfg.update(store_config or {})
    retry = {
        'retry_attempts': cfg.get('retry_attempts', 1),
        'retry_backoff_seconds': cfg.get('retry_backoff_seconds', 0.0),
    }
    backend = str(cfg.get('backend', 'sqlite')).lower()
    if backend == 'sqlite':
        return SQLiteStore(cfg['sqlite_path'], connect_timeout=cfg.get('connect_timeout', 5), **retry)
    if backend == 'postgres':
        return PostgresStore(cfg['postgres'], connect_timeout=cfg.get('connect_timeout', 5), **retry)
    if backend == 'memory':
        return MemoryStore(**retry).initialize()
    raise StoreError(f"Unknown store backend '{backend}'. Options: sqlite, postgres, memory")
