# ======================================================================================
# MASTER CONFIGURATION FILE for the Kanban Lamp Factory
# ======================================================================================
# This file centralizes the parameters shared by the workstation processes, the
# replenishment runner, the administrative CLI and the virtual-time simulation.
#
# Values stored in the database (TimeScale, bin sizes, ...) are only SEEDED from here.
# At run time the processes always read them back from the store so that changes made
# with `kanban-admin set` are picked up live.
# ======================================================================================

# IMPORTS
import os
from pathlib import Path

# --------------------------------------------------------------------------------------
# 1. WORKER TYPES & PACING
# --------------------------------------------------------------------------------------
# Production-rate multipliers applied to the jittered baseline build time.
# Used by: pacing.py build_duration_ms()
# --------------------------------------------------------------------------------------

WORKER_TYPES = {
    'new': {
        'multiplier': 1.50,          # takes 50% longer than a normal worker
        'description': 'Rookie, still learning the assembly sequence',
    },
    'normal': {
        'multiplier': 1.00,
        'description': 'Standard worker at 100% efficiency',
    },
    'experienced': {
        'multiplier': 0.85,          # 15% faster
        'description': 'Senior worker',
    },
}

BASELINE_BUILD_MS = 60 * 1000 # ONE LAMP AT 100% EFFICIENCY
JITTER_FRACTION = 0.10 # +/- 10%, SIGN CHOSEN BY COIN FLIP

RUNNER_INTERVAL_SECONDS = 300 # THE RUNNER COMES BY EVERY FIVE MINUTES

TIMESCALE_SETTING = 'TimeScale'
REFILL_THRESHOLD_SETTING = 'RefillThreshold'

# --------------------------------------------------------------------------------------
# 2. STORED CONFIGURATION SETTINGS
# --------------------------------------------------------------------------------------
# Seeded into the configuration table by `kanban-admin init`.
# 'default' is what `kanban-admin defaults` restores.
# --------------------------------------------------------------------------------------

# RefillThreshold must stay above the parts one station can use between two runner visits
# (about 7 for an experienced worker at the fastest jitter), otherwise a bin runs dry.
DEFAULT_SETTINGS = {
    'TimeScale':        {'value': 1,  'min': 1, 'max': 1000, 'default': 1},
    'RefillThreshold':  {'value': 10, 'min': 1, 'max': 50,   'default': 10},
    'HarnessBinSize':   {'value': 55, 'min': 1, 'max': 500,  'default': 55},
    'ReflectorBinSize': {'value': 35, 'min': 1, 'max': 500,  'default': 35},
    'HousingBinSize':   {'value': 24, 'min': 1, 'max': 500,  'default': 24},
    'LensBinSize':      {'value': 40, 'min': 1, 'max': 500,  'default': 40},
    'BulbBinSize':      {'value': 60, 'min': 1, 'max': 500,  'default': 60},
    'BezelBinSize':     {'value': 75, 'min': 1, 'max': 500,  'default': 75},
}

# One bin per part at every station. Each lamp consumes one part from every bin.
PART_BINS = {
    'Harness': 'HarnessBinSize',
    'Reflector': 'ReflectorBinSize',
    'Housing': 'HousingBinSize',
    'Lens': 'LensBinSize',
    'Bulb': 'BulbBinSize',
    'Bezel': 'BezelBinSize',
}

# --------------------------------------------------------------------------------------
# 3. STATION POOL
# --------------------------------------------------------------------------------------
# Number of station slots created per worker type by `kanban-admin init`.
# A worker of type T can only lease a station of type T.
# --------------------------------------------------------------------------------------

STATION_CAPACITY = {
    'new': 2,
    'normal': 3,
    'experienced': 2,
}

# --------------------------------------------------------------------------------------
# 4. STORE CONNECTION
# --------------------------------------------------------------------------------------
# backend options:
#   - 'sqlite'   : (Default) file database shared by all local processes
#   - 'postgres' : psycopg2 connection built from 'postgres'
#   - 'memory'   : single-process only, used by tests and the simulation
# --------------------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parents[1] # TO ENTER PARENT DIRECTORY

STORE_CONFIG = {
    'backend': os.environ.get('KANBAN_STORE', 'sqlite'),
    'sqlite_path': os.environ.get('KANBAN_DB_PATH', str(BASE_DIR / "data" / "kanban.db")),
    'postgres': {
        'host': os.environ.get('KANBAN_PG_HOST', 'localhost'),
        'port': int(os.environ.get('KANBAN_PG_PORT', '5432')),
        'dbname': os.environ.get('KANBAN_PG_DB', 'kanban'),
        'user': os.environ.get('KANBAN_PG_USER', 'kanban'),
        'password': os.environ.get('KANBAN_PG_PASSWORD', ''),
    },
    'connect_timeout': 5,           # seconds
    'retry_attempts': 3,            # only for idempotent reads
    'retry_backoff_seconds': 0.5,
}

# --------------------------------------------------------------------------------------
# 5. PROCESS BEHAVIOUR
# --------------------------------------------------------------------------------------

WORKSTATION_CONFIG = {
    'release_on_exit': False,   # False = a leased station stays leased after the worker exits
    'random_seed': None,        # None = seeded from the OS
}

EXIT_CODES = {
    'ok': 0,
    'fatal': 1,
    'usage': 2,       # argparse default
    'exhausted': 3,   # no station free for the requested worker type
}

# --------------------------------------------------------------------------------------
# 6. VIRTUAL-TIME SIMULATION
# --------------------------------------------------------------------------------------
# Used by: main.py run_simulation()
# Time unit inside simpy is the SECOND of real (scaled) elapsed time.
# --------------------------------------------------------------------------------------

SIMULATION_TIME = 8 # IN HOURS OF ELAPSED (ALREADY TIME-SCALED) TIME
RANDOM_SEED = 42

SIMULATION_CONFIG = {
    # worker processes launched per type; more than STATION_CAPACITY means some get exhausted
    'workers': {'new': 2, 'normal': 4, 'experienced': 2},
    'startup_spacing_seconds': 5,
    'time_scale': 1,
    # scheduled live edits, e.g. [{'at_hours': 2, 'setting': 'TimeScale', 'value': 2}]
    'setting_changes': [],
    'chart': True,
}
