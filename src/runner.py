import argparse
import sys
import time
from typing import Optional
from config import EXIT_CODES, RUNNER_INTERVAL_SECONDS, TIMESCALE_SETTING
from errors import KanbanError
from logging_export import EventLogger, export_events
from pacing import PacingClock, runner_interval_ms
from store import KanbanStore, open_store
from workstation import install_signal_handlers, store_overrides
class ReplenishmentRunner:
    """Refills low part bins on every leased station once per runner interval.

    The interval is RUNNER_INTERVAL_SECONDS divided by the TimeScale read at the start of
    each cycle, so an edit made with `kanban-admin set TimeScale` applies from the next tick.
    """
    def __init__(self, store: KanbanStore, clock: Optional[PacingClock] = None, logger: Optional[EventLogger] = None,
                 reference_seconds: float = RUNNER_INTERVAL_SECONDS):
        self.store = store
        self.clock = clock if clock is not None else PacingClock()
        self.logger = logger if logger is not None else EventLogger(source="runner")
        self.reference_seconds = reference_seconds
        self.ticks = 0
        self._started_at = time.monotonic()
    def _now(self) -> float:
        return time.monotonic() - self._started_at
    def tick(self) -> bool:
        time_scale = self.store.read_setting(TIMESCALE_SETTING)
        interval_ms = runner_interval_ms(time_scale, self.reference_seconds)
        if not self.clock.sleep(interval_ms):
            return False
        print("Calling Runner Update.")
        refilled = self.store.apply_replenishment()
        self.ticks += 1
        self.logger.log('replenishment', self._now(), tick=self.ticks, interval_ms=interval_ms,
                        time_scale=time_scale, bins_refilled=refilled)
        return True
    def run(self, max_ticks: Optional[int] = None) -> int:
        while max_ticks is None or self.ticks < max_ticks:
            if self.clock.cancelled or not self.tick():
                break
        return self.ticks
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kanban-runner",
                                     description="Periodically refill the part bins of every leased station.")
    parser.add_argument('--store', choices=['sqlite', 'postgres'], default=None, help="Store backend (default from config).")
    parser.add_argument('--db', default=None, help="SQLite database path.")
    parser.add_argument('--ticks', type=int, default=None, help="Stop after this many refills (default: run forever).")
    parser.add_argument('--events-out', default=None, help="Write the event log CSV into this directory on exit.")
    return parser
def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        store = open_store(store_overrides(args))
    except KanbanError as e:
        print(f"FATAL: {e}")
        return EXIT_CODES['fatal']
    clock = PacingClock()
    install_signal_handlers(clock, "Runner")
    logger = EventLogger(source="runner")
    runner = ReplenishmentRunner(store, clock=clock, logger=logger)
    exit_code = EXIT_CODES['ok']
    print("Runner Running. Press CTRL+C to exit.")
    try:
        runner.run(max_ticks=args.ticks)
        print(f"Runner stopped after {runner.ticks} tick(s).")
    except KanbanError as e:
        logger.log('fatal', runner._now(), error=str(e))
        print(f"FATAL: {e}")
        exit_code = EXIT_CODES['fatal']
    finally:
        if args.events_out:
            print(f"Event log written to {export_events(args.events_out, logger)}")
        store.close()
    return exit_code
if __name__ == "__main__":
    sys.exit(main())
