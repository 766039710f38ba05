import argparse
import sys
from config import DEFAULT_SETTINGS, EXIT_CODES, STATION_CAPACITY
from errors import KanbanError, SettingNotFound, SettingOutOfRange
from store import KanbanStore, open_store
from workstation import store_overrides
def cmd_init(store: KanbanStore, args) -> int:
    store.initialize(capacity=STATION_CAPACITY, settings=DEFAULT_SETTINGS)
    stations = store.station_status()
    print(f"Store initialized: {len(DEFAULT_SETTINGS)} settings, {len(stations)} stations.")
    return EXIT_CODES['ok']
def cmd_list(store: KanbanStore, args) -> int:
    print(f"{'Setting':<20}{'Value':>8}{'Min':>8}{'Max':>8}{'Default':>9}")
    print("-" * 53)
    for s in store.list_settings():
        print(f"{s.name:<20}{s.value:>8}{s.minimum:>8}{s.maximum:>8}{s.default:>9}")
    return EXIT_CODES['ok']
def cmd_get(store: KanbanStore, args) -> int:
    for s in store.list_settings():
        if s.name == args.name:
            print(f"{s.name} = {s.value} (min {s.minimum}, max {s.maximum})")
            return EXIT_CODES['ok']
    raise SettingNotFound(args.name)
def cmd_set(store: KanbanStore, args) -> int:
    try:
        store.change_setting(args.name, args.value)
    except SettingOutOfRange as e:
        print(f"Error: Value out of range for setting ({e.minimum}..{e.maximum})")
        return EXIT_CODES['fatal']
    print("Value Changed Successfully")
    return EXIT_CODES['ok']
def cmd_defaults(store: KanbanStore, args) -> int:
    store.reset_defaults()
    print("Defaults Reset")
    return EXIT_CODES['ok']
def cmd_stations(store: KanbanStore, args) -> int:
    for record in store.station_status():
        state = "LEASED" if record.leased else "free"
        bins = ", ".join(f"{part}={qty}" for part, qty in sorted(record.bins.items()))
        print(f"Station {record.station_id:>3} [{record.worker_type:<11}] {state:<6} lamps={record.lamps_built:<6} {bins}")
    return EXIT_CODES['ok']
COMMANDS = {
    'init': cmd_init,
    'list': cmd_list,
    'get': cmd_get,
    'set': cmd_set,
    'defaults': cmd_defaults,
    'stations': cmd_stations,
}
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kanban-admin", description="View and change the Kanban factory configuration.")
    parser.add_argument('--store', choices=['sqlite', 'postgres'], default=None, help="Store backend (default from config).")
    parser.add_argument('--db', default=None, help="SQLite database path.")
    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('init', help="Create tables, seed settings, worker types and stations.")
    sub.add_parser('list', help="List every configuration setting.")
    p_get = sub.add_parser('get', help="Show one setting.")
    p_get.add_argument('name')
    p_set = sub.add_parser('set', help="Change one setting (must stay within its min/max).")
    p_set.add_argument('name')
    p_set.add_argument('value', type=int)
    sub.add_parser('defaults', help="Reset every setting to its default.")
    sub.add_parser('stations', help="Show station lease state, lamps built and bin levels.")
    return parser
def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        store = open_store(store_overrides(args))
        try:
            return COMMANDS[args.command](store, args)
        finally:
            store.close()
    except KanbanError as e:
        print(f"Error: {e}")
        return EXIT_CODES['fatal']
if __name__ == "__main__":
    sys.exit(main())
