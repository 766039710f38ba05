import argparse
import signal
import sys
import time
from typing import Optional
from allocation import AllocationResult, allocate_for_startup
from config import EXIT_CODES, TIMESCALE_SETTING, WORKSTATION_CONFIG
from errors import KanbanError, ValidationError
from logging_export import EventLogger, export_events
from pacing import PacingClock, WorkerType, build_duration_ms, make_rng, parse_worker_type
from store import KanbanStore, open_store
class Workstation:
    def __init__(self, store: KanbanStore, worker_type: WorkerType, rng=None, clock: Optional[PacingClock] = None,
                 logger: Optional[EventLogger] = None, release_on_exit: Optional[bool] = None, worker_id: Optional[str] = None):
        self.store = store
        self.worker_type = worker_type
        self.rng = rng if rng is not None else make_rng(WORKSTATION_CONFIG['random_seed'])
        self.clock = clock if clock is not None else PacingClock()
        self.logger = logger if logger is not None else EventLogger(source=f"workstation-{worker_type.value}")
        self.release_on_exit = WORKSTATION_CONFIG['release_on_exit'] if release_on_exit is None else release_on_exit
        self.worker_id = worker_id or f"{worker_type.value}-{id(self):x}"
        self.station_id: Optional[int] = None
        self.lamps_assembled = 0
        self._started_at = time.monotonic()
    def _now(self) -> float:
        return time.monotonic() - self._started_at
    def start(self) -> AllocationResult:
        result = allocate_for_startup(self.store, self.worker_type)
        self.logger.log('allocation', self._now(), worker_id=self.worker_id, worker_type=self.worker_type.value,
                        outcome=result.status.value, station_id=result.station_id, error=result.error)
        if result.leased:
            self.station_id = result.station_id
        return result
    def build_one(self) -> Optional[int]:
        """Build and report one lamp. Returns the station's lamp count, or None if the build was cancelled."""
        if self.station_id is None:
            raise RuntimeError("Workstation has no station; call start() first")
        time_scale = self.store.read_setting(TIMESCALE_SETTING)
        duration_ms = build_duration_ms(self.worker_type, time_scale, self.rng)
        if not self.clock.sleep(duration_ms):
            self.logger.log('build_cancelled', self._now(), worker_id=self.worker_id, station_id=self.station_id)
            return None
        lamps_built = self.store.report_unit(self.station_id)
        self.lamps_assembled += 1
        self.logger.log('unit_built', self._now(), worker_id=self.worker_id, worker_type=self.worker_type.value,
                        station_id=self.station_id, duration_ms=duration_ms, time_scale=time_scale,
                        lamps_built=lamps_built)
        return lamps_built
    def run(self, max_units: Optional[int] = None) -> int:
        while max_units is None or self.lamps_assembled < max_units:
            if self.clock.cancelled or self.build_one() is None:
                break
        return self.lamps_assembled
    def shutdown(self) -> bool:
        if self.station_id is None or not self.release_on_exit:
            return False
        self.store.release_station(self.station_id)
        self.logger.log('station_released', self._now(), worker_id=self.worker_id, station_id=self.station_id)
        self.station_id = None
        return True
def _worker_type_arg(value: str) -> WorkerType:
    try:
        return parse_worker_type(value)
    except ValidationError as e:
        raise argparse.ArgumentTypeError(str(e))
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kanban-workstation",
                                     description="Run one Kanban lamp workstation until stopped.")
    parser.add_argument('worker_type', type=_worker_type_arg, metavar='{new,normal,experienced}',
                        help="Worker type staffing this station.")
    parser.add_argument('--store', choices=['sqlite', 'postgres'], default=None, help="Store backend (default from config).")
    parser.add_argument('--db', default=None, help="SQLite database path.")
    parser.add_argument('--seed', type=int, default=None, help="Seed for the build-time jitter.")
    parser.add_argument('--units', type=int, default=None, help="Stop after this many lamps (default: run forever).")
    parser.add_argument('--release-on-exit', action='store_true', default=None,
                        help="Give the station back to the pool when the process stops.")
    parser.add_argument('--events-out', default=None, help="Write the event log CSV into this directory on exit.")
    return parser
def store_overrides(args) -> dict:
    overrides = {}
    if getattr(args, 'store', None):
        overrides['backend'] = args.store
    if getattr(args, 'db', None):
        overrides['sqlite_path'] = args.db
    return overrides
def install_signal_handlers(clock: PacingClock, label: str) -> None:
    def _handler(signum, frame):
        print(f"{label}: shutdown requested (signal {signum}).")
        clock.cancel()
    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        store = open_store(store_overrides(args))
    except KanbanError as e:
        print(f"FATAL: {e}")
        return EXIT_CODES['fatal']
    clock = PacingClock()
    install_signal_handlers(clock, "Workstation")
    seed = args.seed if args.seed is not None else WORKSTATION_CONFIG['random_seed']
    logger = EventLogger(source=f"workstation-{args.worker_type.value}", echo=False)
    station = Workstation(store, args.worker_type, rng=make_rng(seed), clock=clock, logger=logger,
                          release_on_exit=args.release_on_exit)
    exit_code = EXIT_CODES['ok']
    try:
        result = station.start()
        if result.exhausted:
            print("No Station Available!")
            return EXIT_CODES['exhausted']
        if result.fatal:
            print(f"FATAL: {result.error}")
            return EXIT_CODES['fatal']
        print(f"Added New Workstation: {result.station_id}")
        built = station.run(max_units=args.units)
        print(f"Workstation {result.station_id} stopped after {built} lamp(s).")
    except KanbanError as e:
        logger.log('fatal', station._now(), worker_id=station.worker_id, station_id=station.station_id, error=str(e))
        print(f"FATAL: {e}")
        exit_code = EXIT_CODES['fatal']
    finally:
        try:
            if station.shutdown():
                print("Station released back to the pool.")
        except KanbanError as e:
            print(f"ERROR: Could not release station {station.station_id}: {e}")
            exit_code = EXIT_CODES['fatal']
        if args.events_out:
            print(f"Event log written to {export_events(args.events_out, logger)}")
        store.close()
    return exit_code
if __name__ == "__main__":
    sys.exit(main())
