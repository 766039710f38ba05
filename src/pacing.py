import random
import threading
from enum import Enum
from typing import List, Optional
from config import BASELINE_BUILD_MS, JITTER_FRACTION, RUNNER_INTERVAL_SECONDS, WORKER_TYPES
from errors import ConfigurationError, ValidationError
class WorkerType(str, Enum):
    NEW = 'new'
    NORMAL = 'normal'
    EXPERIENCED = 'experienced'
    @property
    def multiplier(self) -> float:
        return WORKER_TYPES[self.value]['multiplier']
def parse_worker_type(value: str) -> WorkerType:
    try:
        return WorkerType(str(value).strip().lower())
    except ValueError:
        options = '|'.join(t.value for t in WorkerType)
        raise ValidationError(f"Invalid worker type '{value}'. Expected one of [{options}]") from None
def validate_time_scale(value) -> int:
    """TimeScale divides every simulated delay, so anything but a positive integer is fatal."""
    if isinstance(value, bool):
        raise ConfigurationError(f"TimeScale must be a positive integer, got {value!r}")
    try:
        scale = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"TimeScale must be a positive integer, got {value!r}") from None
    if scale != value and not isinstance(value, str):
        raise ConfigurationError(f"TimeScale must be a positive integer, got {value!r}")
    if scale < 1:
        raise ConfigurationError(f"TimeScale must be >= 1, got {scale}")
    return scale
def jittered_baseline_ms(rng: random.Random, baseline_ms: float = BASELINE_BUILD_MS, jitter: float = JITTER_FRACTION) -> float:
    if rng.randrange(2) == 1:
        return baseline_ms * (1.0 + jitter)
    return baseline_ms * (1.0 - jitter)
def unscaled_build_ms(worker_type: WorkerType, rng: random.Random, baseline_ms: float = BASELINE_BUILD_MS) -> float:
    return jittered_baseline_ms(rng, baseline_ms) * worker_type.multiplier
def build_duration_ms(worker_type: WorkerType, time_scale, rng: random.Random, baseline_ms: float = BASELINE_BUILD_MS) -> float:
    scale = validate_time_scale(time_scale)
    return unscaled_build_ms(worker_type, rng, baseline_ms) / scale
def runner_interval_ms(time_scale, reference_seconds: float = RUNNER_INTERVAL_SECONDS) -> float:
    scale = validate_time_scale(time_scale)
    return reference_seconds * 1000.0 / scale
def make_rng(seed: Optional[int] = None) -> random.Random:
    return random.Random(seed)
def derive_seeds(base_seed: Optional[int], count: int, policy: str = 'random') -> List[Optional[int]]:
    """Seeds for `count` independent jitter streams (one per worker, or one per replication).

    - fixed: every stream gets base_seed
    - increment: base_seed, base_seed + 1, ...
    - random: drawn from a generator seeded with base_seed, so the set is reproducible
    """
    if policy == 'fixed':
        return [base_seed] * count
    if policy == 'increment':
        start = base_seed or 0
        return list(range(start, start + count))
    if policy == 'random':
        seeder = random.Random(base_seed)
        return [seeder.randrange(1, 10**9) for _ in range(count)]
    raise ConfigurationError(f"Unknown seed policy '{policy}'. Options: fixed, increment, random")
class PacingClock:
    """One cancellable timer per process.

    sleep() returns True when the full duration elapsed and False when cancel() cut it
    short, so callers can drop the in-flight unit or tick instead of reporting it.
    """
    def __init__(self):
        self._cancelled = threading.Event()
    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()
    def sleep(self, duration_ms: float) -> bool:
        if duration_ms < 0:
            raise ValueError("Sleep duration must be non-negative")
        return not self._cancelled.wait(duration_ms / 1000.0)
    def cancel(self) -> None:
        self._cancelled.set()
