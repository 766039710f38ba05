import os
import csv
import json
import time
from typing import Dict, List, Any, Iterable, Optional
from collections import deque, defaultdict
import statistics
import pandas as pd
class MetricsBus:
    def __init__(self, windows_seconds=(300.0, 3600.0)):
        self.gauges = {}
        self.counters = defaultdict(float)
        self.series = defaultdict(list)
        self.windows = list(windows_seconds)
        self.windowed = {w: defaultdict(deque) for w in self.windows}
        self.alerts = []
        self._alert_index = {}
    def set_gauge(self, name, value, t):
        self.gauges[name] = float(value)
        self._append(name, value, t)
    def inc(self, name, delta, t):
        self.counters[name] += float(delta)
        self._append(name, self.counters[name], t)
    def observe(self, name, value, t):
        self._append(name, value, t)
    def _append(self, name, value, t):
        t = float(t)
        v = float(value)
        self.series[name].append((t, v))
        for w in self.windows:
            dq = self.windowed[w][name]
            dq.append((t, v))
            t0 = t - w
            while dq and dq[0][0] < t0:
                dq.popleft()
    def window_stats(self, name, w):
        dq = self.windowed[w][name]
        if not dq:
            return {"avg": 0.0, "min": 0.0, "max": 0.0, "n": 0}
        vals = [v for _, v in dq]
        return {
            "avg": statistics.fmean(vals),
            "min": min(vals),
            "max": max(vals),
            "n": len(vals),
        }
    def raise_alert(self, key, severity, title, message, t, meta=None):
        if key in self._alert_index:
            idx = self._alert_index[key]
            self.alerts[idx]["latest_seen"] = t
            self.alerts[idx]["count"] += 1
            return
        rec = {
            "key": key, "severity": severity, "title": title, "message": message,
            "first_seen": t, "latest_seen": t, "count": 1, "meta": meta or {}
        }
        self._alert_index[key] = len(self.alerts)
        self.alerts.append(rec)
class EventLogger:
    def __init__(self, source: str = "kanban", echo: bool = False) -> None:
        self.source = source
        self.echo = echo
        self.events: List[Dict[str, Any]] = []
        self._eid: int = 0
    def clear(self) -> None:
        self.events.clear()
        self._eid = 0
    def __len__(self) -> int:
        return len(self.events)
    def log(self, event_type: str, sim_time: float, **fields: Any) -> Dict[str, Any]:
        self._eid += 1
        row = {
            'event_id': self._eid,
            'event_type': event_type,
            'sim_time': sim_time,
            'timestamp': time.time(),
            'source': self.source,
        }
        row.update(fields)
        self.events.append(row)
        if self.echo:
            extras = " ".join(f"{k}={v}" for k, v in fields.items())
            print(f"[{self.source}] {event_type} {extras}".rstrip())
        return row
    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e['event_type'] == event_type]
def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)
def _write_csv(path: str, rows: Iterable[Dict[str, Any]], fieldnames: Optional[List[str]] = None) -> None:
    _ensure_dir(os.path.dirname(path) or ".")
    rows = list(rows)
    if not rows and not fieldnames:
        open(path, 'w').close()
        return
    if fieldnames is None:
        all_keys = set()
        for r in rows:
            all_keys.update(r.keys())
        preferred_order = [
            'event_id', 'event_type', 'sim_time', 'timestamp', 'source',
            'worker_id', 'worker_type', 'station_id', 'duration_ms', 'time_scale'
        ]
        final_fieldnames = [k for k in preferred_order if k in all_keys]
        remaining_keys = sorted([k for k in all_keys if k not in preferred_order])
        final_fieldnames.extend(remaining_keys)
    else:
        final_fieldnames = fieldnames
    with open(path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=final_fieldnames, extrasaction='ignore')
        writer.writeheader()
        if rows:
            writer.writerows(rows)
def _write_json(path: str, obj: Any) -> None:
    _ensure_dir(os.path.dirname(path) or ".")
    with open(path, 'w') as f:
        json.dump(obj, f, indent=2, default=str)
def events_frame(logger: EventLogger) -> pd.DataFrame:
    if not logger.events:
        return pd.DataFrame(columns=['event_id', 'event_type', 'sim_time', 'timestamp', 'source'])
    return pd.DataFrame(logger.events)
def export_events(output_dir: str, logger: EventLogger, filename: str = "events.csv") -> str:
    path = os.path.join(output_dir, filename)
    _write_csv(path, logger.events)
    return path
def export_all(output_dir: str,
               events: pd.DataFrame,
               kpis: Dict[str, Any],
               metrics: Optional[MetricsBus] = None,
               stations: Optional[List[Dict[str, Any]]] = None) -> Dict[str, str]:
    _ensure_dir(output_dir)
    written = {}
    events_path = os.path.join(output_dir, "events.csv")
    events.to_csv(events_path, index=False)
    written['events'] = events_path
    kpis_path = os.path.join(output_dir, "kpis.json")
    _write_json(kpis_path, kpis)
    written['kpis'] = kpis_path
    if stations is not None:
        stations_path = os.path.join(output_dir, "stations.csv")
        _write_csv(stations_path, stations)
        written['stations'] = stations_path
    if metrics is not None:
        alerts_path = os.path.join(output_dir, "alerts.json")
        _write_json(alerts_path, metrics.alerts)
        written['alerts'] = alerts_path
    print(f"SUCCESS: Simulation artifacts exported to '{output_dir}'.")
    return written
