import os, json, time, copy, types
from typing import Dict, Any, List, Optional
import numpy as np
import config as base_config
import main as sim_main
from pacing import derive_seeds
def config_snapshot(module) -> types.SimpleNamespace:
    """Deep copy of a config module's upper-case constants, so one run's overrides never leak into the next."""
    return types.SimpleNamespace(**{name: copy.deepcopy(value) for name, value in vars(module).items() if name.isupper()})
def apply_override(cfg, dotted_key: str, value: Any) -> None:
    # 'SIMULATION_TIME' replaces a constant, 'SIMULATION_CONFIG.workers.new' walks into its dicts
    constant, *keys = dotted_key.split('.')
    if not hasattr(cfg, constant):
        raise AttributeError(f"Override '{dotted_key}': no configuration constant named '{constant}'")
    if not keys:
        setattr(cfg, constant, copy.deepcopy(value))
        return
    section = getattr(cfg, constant)
    for key in keys[:-1]:
        if not isinstance(section, dict) or key not in section:
            raise AttributeError(f"Override '{dotted_key}': '{key}' is not a section of {constant}")
        section = section[key]
    if not isinstance(section, dict):
        raise AttributeError(f"Override '{dotted_key}': {constant} has no keys to assign")
    section[keys[-1]] = copy.deepcopy(value)
def _ensure_dir(p: str):
    os.makedirs(p, exist_ok=True)
def _key_metrics(kpis: Dict[str, Any]) -> Dict[str, float]:
    k = {
        "units_total": float(kpis.get("units_total", 0)),
        "allocations_exhausted": float(kpis.get("allocations", {}).get("exhausted", 0)),
        "replenishment_ticks": float(kpis.get("replenishment", {}).get("ticks", 0)),
        "fatal_events": float(kpis.get("fatal_events", 0)),
    }
    for worker_type, vals in kpis.get("by_worker_type", {}).items():
        k[f"units_per_station_hour.{worker_type}"] = float(vals.get("units_per_station_hour", 0.0))
    return k
class ScenarioManager:
    def __init__(self, base_cfg_module=base_config):
        self.base_cfg_module = base_cfg_module
    def load(self, path: str) -> Dict[str, Any]:
        with open(path, "r") as f:
            data = json.load(f)
        return data or {}
    def apply_to_config(self, scenario: Dict[str, Any]):
        cfg_ns = config_snapshot(self.base_cfg_module)
        overrides = scenario.get("overrides") or scenario.get("config_overrides") or {}
        for key, value in overrides.items():
            apply_override(cfg_ns, key, value)
        run = scenario.get("run", {})
        if "SIMULATION_TIME" in run:
            cfg_ns.SIMULATION_TIME = run["SIMULATION_TIME"]
        if "RANDOM_SEED" in run:
            cfg_ns.RANDOM_SEED = run["RANDOM_SEED"]
        return cfg_ns
    def run_once(self, scenario: Dict[str, Any], seed: Optional[int], output_dir: Optional[str], label: str) -> Dict[str, Any]:
        cfg_ns = self.apply_to_config(scenario)
        if seed is not None:
            cfg_ns.RANDOM_SEED = seed
        if output_dir:
            _ensure_dir(output_dir)
        kpis = sim_main.run_simulation(config_ns=cfg_ns, output_dir=output_dir, scenario_label=label)
        return {
            "label": label,
            "seed": cfg_ns.RANDOM_SEED,
            "output_dir": output_dir,
            "metrics": _key_metrics(kpis),
        }
    def run_batch(self, scenarios: List[Dict[str, Any]], out_root: str) -> List[Dict[str, Any]]:
        results = []
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        batch_root = os.path.join(out_root, f"batch_{timestamp}")
        _ensure_dir(batch_root)
        for i, sc in enumerate(scenarios):
            label = sc.get("name", f"scenario_{i+1}")
            run = sc.get("run", {})
            res = self.run_once(sc, run.get("base_seed"), os.path.join(batch_root, label), label)
            results.append(res)
        with open(os.path.join(batch_root, "index.json"), "w") as f:
            json.dump(results, f, indent=2)
        return results
    def run_monte_carlo(self, scenario: Dict[str, Any], replications: int, out_root: str) -> Dict[str, Any]:
        run = scenario.get("run", {})
        seeds = derive_seeds(run.get("base_seed"), replications, run.get("seed_policy", "increment"))
        label = scenario.get("name", "scenario")
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        mc_root = os.path.join(out_root, f"mc_{label}_{timestamp}")
        _ensure_dir(mc_root)
        per_run = []
        for i, sd in enumerate(seeds):
            outdir = os.path.join(mc_root, f"rep_{i+1:03d}")
            per_run.append(self.run_once(scenario, sd, outdir, f"{label}_rep{i+1:03d}"))
        agg = self._aggregate_mc(per_run)
        with open(os.path.join(mc_root, "aggregate.json"), "w") as f:
            json.dump(agg, f, indent=2)
        return {"root": mc_root, "replications": per_run, "aggregate": agg}
    def _aggregate_mc(self, per_run: List[Dict[str, Any]]) -> Dict[str, Any]:
        cols: Dict[str, List[float]] = {}
        for r in per_run:
            for k, v in r.get("metrics", {}).items():
                cols.setdefault(k, []).append(float(v))
        out = {}
        for k, vals in cols.items():
            arr = np.asarray(vals, dtype=float)
            out[k] = {
                "mean": float(arr.mean()),
                "p50": float(np.percentile(arr, 50)),
                "p90": float(np.percentile(arr, 90)),
                "n": int(arr.size),
            }
        return out
