from dataclasses import dataclass
from enum import Enum
from typing import Optional
from config import TIMESCALE_SETTING
from errors import KanbanError, StoreError
from pacing import WorkerType, validate_time_scale
from store import KanbanStore
class AllocationStatus(Enum):
    LEASED = 'leased'
    EXHAUSTED = 'exhausted'
    FATAL = 'fatal'
@dataclass(frozen=True)
class AllocationResult:
    status: AllocationStatus
    worker_type: WorkerType
    station_id: Optional[int] = None
    error: Optional[str] = None
    @property
    def leased(self) -> bool:
        return self.status is AllocationStatus.LEASED
    @property
    def exhausted(self) -> bool:
        return self.status is AllocationStatus.EXHAUSTED
    @property
    def fatal(self) -> bool:
        return self.status is AllocationStatus.FATAL
def allocate_station(store: KanbanStore, worker_type: WorkerType) -> AllocationResult:
    """Lease one station slot for a starting workstation.

    The lease itself is a single call into the store, which decides and marks the slot
    in one atomic step. Nothing here reads the free-slot count first.

    Returns LEASED with the slot id, EXHAUSTED when the pool has no free slot of this
    type (a normal outcome), or FATAL when the type cannot be resolved or the store
    fails. Exhaustion and failure are never folded into each other.
    """
    try:
        worker_type_id = store.resolve_worker_type(worker_type.value)
    except StoreError as e:
        return AllocationResult(AllocationStatus.FATAL, worker_type, error=f"Could not resolve worker type: {e}")
    try:
        station_id = store.lease_station(worker_type_id)
    except StoreError as e:
        return AllocationResult(AllocationStatus.FATAL, worker_type, error=f"Station lease failed: {e}")
    if station_id is None:
        return AllocationResult(AllocationStatus.EXHAUSTED, worker_type)
    if station_id <= 0:
        return AllocationResult(AllocationStatus.FATAL, worker_type, error=f"Store returned invalid station id {station_id}")
    return AllocationResult(AllocationStatus.LEASED, worker_type, station_id=station_id)
def allocate_for_startup(store: KanbanStore, worker_type: WorkerType) -> AllocationResult:
    """Validate the stored TimeScale, then lease. Returns FATAL without leasing when TimeScale is missing or invalid."""
    try:
        validate_time_scale(store.read_setting(TIMESCALE_SETTING))
    except KanbanError as e:
        return AllocationResult(AllocationStatus.FATAL, worker_type, error=f"Could not read {TIMESCALE_SETTING}: {e}")
    return allocate_station(store, worker_type)
