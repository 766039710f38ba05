from typing import Any, Dict, List, Optional
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from config import REFILL_THRESHOLD_SETTING
from logging_export import MetricsBus
def _cycle_stats(durations: np.ndarray) -> Dict[str, float]:
    if durations.size == 0:
        return {"mean_ms": 0.0, "p50_ms": 0.0, "p90_ms": 0.0, "min_ms": 0.0, "max_ms": 0.0, "n": 0}
    return {
        "mean_ms": float(np.mean(durations)),
        "p50_ms": float(np.percentile(durations, 50)),
        "p90_ms": float(np.percentile(durations, 90)),
        "min_ms": float(np.min(durations)),
        "max_ms": float(np.max(durations)),
        "n": int(durations.size),
    }
class ProductionKPIs:
    def __init__(self, events: pd.DataFrame, horizon_seconds: float):
        self.events = events
        self.horizon_seconds = float(horizon_seconds)
    def _of_type(self, event_type: str) -> pd.DataFrame:
        if self.events.empty or 'event_type' not in self.events:
            return self.events.iloc[0:0]
        return self.events[self.events['event_type'] == event_type]
    def units(self) -> pd.DataFrame:
        return self._of_type('unit_built')
    def allocation_outcomes(self) -> Dict[str, int]:
        alloc = self._of_type('allocation')
        counts = {'leased': 0, 'exhausted': 0, 'fatal': 0}
        if not alloc.empty:
            for outcome, n in alloc['outcome'].value_counts().items():
                counts[str(outcome)] = int(n)
        return counts
    def by_station(self) -> Dict[int, int]:
        units = self.units()
        if units.empty:
            return {}
        return {int(k): int(v) for k, v in units.groupby('station_id').size().items()}
    def by_worker_type(self) -> Dict[str, Dict[str, Any]]:
        units = self.units()
        hours = self.horizon_seconds / 3600.0 if self.horizon_seconds > 0 else 0.0
        out = {}
        if units.empty:
            return out
        for worker_type, grp in units.groupby('worker_type'):
            durations = grp['duration_ms'].to_numpy(dtype=float)
            stations = grp['station_id'].nunique()
            out[str(worker_type)] = {
                "units": int(len(grp)),
                "stations": int(stations),
                "units_per_hour": (len(grp) / hours) if hours else 0.0,
                "units_per_station_hour": (len(grp) / hours / stations) if hours and stations else 0.0,
                "cycle_time": _cycle_stats(durations),
            }
        return out
    def replenishment(self) -> Dict[str, Any]:
        ticks = self._of_type('replenishment')
        if ticks.empty:
            return {"ticks": 0, "bins_refilled": 0, "mean_interval_ms": 0.0}
        return {
            "ticks": int(len(ticks)),
            "bins_refilled": int(ticks['bins_refilled'].sum()),
            "mean_interval_ms": float(np.mean(ticks['interval_ms'].to_numpy(dtype=float))),
        }
    def summary(self) -> Dict[str, Any]:
        units = self.units()
        return {
            "horizon_seconds": self.horizon_seconds,
            "units_total": int(len(units)),
            "allocations": self.allocation_outcomes(),
            "units_by_station": self.by_station(),
            "by_worker_type": self.by_worker_type(),
            "replenishment": self.replenishment(),
            "fatal_events": int(len(self._of_type('fatal'))),
        }
class AlertsManager:
    def __init__(self, metrics_bus: MetricsBus):
        self.metrics_bus = metrics_bus
    def evaluate(self, current_time: float, kpis: Dict[str, Any], stations: Optional[List[Dict[str, Any]]] = None):
        self._check_allocations(current_time, kpis)
        self._check_fatal(current_time, kpis)
        if stations is not None:
            self._check_bins(current_time, stations)
    def _check_allocations(self, t: float, kpis: Dict[str, Any]):
        exhausted = kpis.get('allocations', {}).get('exhausted', 0)
        if exhausted > 0:
            self.metrics_bus.raise_alert(
                key="stations_exhausted",
                severity="medium",
                title="Station Pool Exhausted",
                message=f"{exhausted} workstation(s) could not get a station and did not start.",
                t=t,
                meta={'exhausted': exhausted}
            )
    def _check_fatal(self, t: float, kpis: Dict[str, Any]):
        # a failed allocation also logs a 'fatal' event, so fatal_events already counts it
        fatal = kpis.get('fatal_events', 0)
        if fatal > 0:
            self.metrics_bus.raise_alert(
                key="fatal_terminations",
                severity="high",
                title="Processes Terminated",
                message=f"{fatal} process(es) terminated on a fatal error.",
                t=t,
                meta={'fatal': fatal}
            )
    def _check_bins(self, t: float, stations: List[Dict[str, Any]]):
        for station in stations:
            if not station.get('leased'):
                continue
            for key, qty in station.items():
                if key.startswith('bin_') and qty <= 0:
                    part = key[len('bin_'):]
                    self.metrics_bus.raise_alert(
                        key=f"bin_empty_{station['station_id']}_{part}",
                        severity="high",
                        title=f"Empty {part} Bin at Station {station['station_id']}",
                        message=f"{part} bin at station {station['station_id']} ran dry; raise {REFILL_THRESHOLD_SETTING} or the bin size.",
                        t=t,
                        meta={'station_id': station['station_id'], 'part': part}
                    )
def plot_cumulative_production(events: pd.DataFrame, path: str, title: str = "Cumulative lamps per station") -> Optional[str]:
    units = events[events['event_type'] == 'unit_built'] if not events.empty else events
    if units.empty:
        print("WARNING: No units built, skipping production chart.")
        return None
    fig, ax = plt.subplots(figsize=(10, 5))
    try:
        for station_id, grp in units.groupby('station_id'):
            hours = grp['sim_time'].to_numpy(dtype=float) / 3600.0
            label = f"Station {int(station_id)} ({grp['worker_type'].iloc[0]})"
            ax.step(hours, np.arange(1, len(grp) + 1), where='post', label=label)
        ax.set_xlabel("Elapsed time (hours)")
        ax.set_ylabel("Lamps built")
        ax.set_title(title)
        ax.grid(True, alpha=0.3)
        ax.legend(loc='upper left', fontsize='small')
        fig.tight_layout()
        fig.savefig(path, dpi=120)
    finally:
        plt.close(fig)
    return path
