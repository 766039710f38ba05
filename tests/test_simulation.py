import json
from pathlib import Path
import pandas as pd
import pytest
import config
import main as sim_main
from allocation import AllocationResult, AllocationStatus
from logging_export import EventLogger, MetricsBus, events_frame
from metrics import AlertsManager, ProductionKPIs
from scenarios import ScenarioManager, apply_override, config_snapshot

SCENARIO_DIR = Path(__file__).resolve().parents[1] / "scenarios"


def small_config(**overrides):
    scenario = {
        "overrides": {
            "SIMULATION_CONFIG.workers": {"new": 3, "normal": 3, "experienced": 2},
            "SIMULATION_CONFIG.time_scale": 10,
            "SIMULATION_CONFIG.chart": False,
        },
        "run": {"SIMULATION_TIME": 0.5, "RANDOM_SEED": 5},
    }
    scenario["overrides"].update(overrides)
    return ScenarioManager().apply_to_config(scenario)


def test_simulation_counts_allocations_and_units(tmp_path):
    kpis = sim_main.run_simulation(config_ns=small_config(), output_dir=str(tmp_path), scenario_label="small")
    assert kpis['allocations'] == {'leased': 7, 'exhausted': 1, 'fatal': 0}
    assert kpis['fatal_events'] == 0
    assert kpis['units_total'] > 0
    assert set(kpis['by_worker_type']) == {'new', 'normal', 'experienced'}
    experienced = kpis['by_worker_type']['experienced']['units_per_station_hour']
    new = kpis['by_worker_type']['new']['units_per_station_hour']
    assert experienced > new
    # the tick due exactly at the horizon is not run
    assert kpis['replenishment']['ticks'] == 59
    assert [a['key'] for a in kpis['alerts']] == ['stations_exhausted']
    for name in ("events.csv", "kpis.json", "stations.csv", "alerts.json"):
        assert (tmp_path / name).exists()
    assert not (tmp_path / "production.png").exists()
    saved = json.loads((tmp_path / "kpis.json").read_text())
    assert saved['scenario'] == "small"
    assert saved['final_settings']['TimeScale'] == 10


def test_simulation_is_reproducible():
    first = sim_main.run_simulation(config_ns=small_config())
    second = sim_main.run_simulation(config_ns=small_config())
    assert first['units_total'] == second['units_total']
    assert first['units_by_station'] == second['units_by_station']


def test_live_time_scale_change_shortens_runner_interval(tmp_path):
    cfg = small_config(**{
        "SIMULATION_CONFIG.setting_changes": [{"at_hours": 0.25, "setting": "TimeScale", "value": 20}],
        "SIMULATION_CONFIG.chart": True,
    })
    kpis = sim_main.run_simulation(config_ns=cfg, output_dir=str(tmp_path))
    assert kpis['final_settings']['TimeScale'] == 20
    assert (tmp_path / "production.png").exists()
    saved = json.loads((tmp_path / "kpis.json").read_text())
    assert saved['replenishment']['ticks'] > 60
    events = pd.read_csv(tmp_path / "events.csv")
    intervals = events[events["event_type"] == "replenishment"]["interval_ms"].tolist()
    assert intervals[0] == 30000 and intervals[-1] == 15000
    assert set(intervals) == {30000, 15000}


def test_rejected_setting_change_is_logged():
    cfg = small_config(**{
        "SIMULATION_CONFIG.setting_changes": [{"at_hours": 0.1, "setting": "TimeScale", "value": 0}],
    })
    kpis = sim_main.run_simulation(config_ns=cfg)
    assert kpis['final_settings']['TimeScale'] == 10


def test_runner_intervals_follow_time_scale():
    logger = EventLogger(source="test")
    for tick, interval in enumerate([30000.0, 30000.0, 15000.0], start=1):
        logger.log('replenishment', tick * 10.0, tick=tick, interval_ms=interval, time_scale=10, bins_refilled=tick)
    summary = ProductionKPIs(events_frame(logger), 60.0).replenishment()
    assert summary == {"ticks": 3, "bins_refilled": 6, "mean_interval_ms": 25000.0}


def test_empty_bin_alert():
    bus = MetricsBus()
    stations = [
        {'station_id': 1, 'leased': True, 'bin_Lens': 0, 'bin_Bulb': 4},
        {'station_id': 2, 'leased': False, 'bin_Lens': 0},
    ]
    AlertsManager(bus).evaluate(10.0, {'allocations': {}, 'fatal_events': 0}, stations)
    AlertsManager(bus).evaluate(20.0, {'allocations': {}, 'fatal_events': 0}, stations)
    assert [a['key'] for a in bus.alerts] == ['bin_empty_1_Lens']


def test_metrics_bus_windows():
    bus = MetricsBus(windows_seconds=(60.0,))
    bus.observe('cycle_time_ms', 100, 0.0)
    bus.observe('cycle_time_ms', 300, 50.0)
    bus.observe('cycle_time_ms', 500, 100.0)
    stats = bus.window_stats('cycle_time_ms', 60.0)
    assert stats == {"avg": 400.0, "min": 300.0, "max": 500.0, "n": 2}


def test_scenario_overrides_leave_base_config_untouched():
    manager = ScenarioManager()
    scenario = manager.load(str(SCENARIO_DIR / "overstaffed_fast.json"))
    cfg = manager.apply_to_config(scenario)
    assert cfg.SIMULATION_CONFIG['workers'] == {"new": 3, "normal": 4, "experienced": 3}
    assert cfg.SIMULATION_CONFIG['time_scale'] == 10
    assert cfg.SIMULATION_TIME == 1
    assert cfg.RANDOM_SEED == 7
    assert config.SIMULATION_CONFIG['workers'] == {'new': 2, 'normal': 4, 'experienced': 2}
    assert config.SIMULATION_TIME == 8


def test_bad_override_path_raises():
    with pytest.raises(AttributeError):
        ScenarioManager().apply_to_config({"overrides": {"NOPE.workers": 1}})


def test_nested_override_only_touches_one_key():
    cfg = config_snapshot(config)
    apply_override(cfg, "SIMULATION_CONFIG.workers.new", 5)
    apply_override(cfg, "RANDOM_SEED", 99)
    assert cfg.SIMULATION_CONFIG["workers"] == {"new": 5, "normal": 4, "experienced": 2}
    assert cfg.RANDOM_SEED == 99
    assert config.SIMULATION_CONFIG["workers"]["new"] == 2
    with pytest.raises(AttributeError):
        apply_override(cfg, "SIMULATION_CONFIG.nope.new", 1)
    with pytest.raises(AttributeError):
        apply_override(cfg, "SIMULATION_TIME.hours", 1)


def test_failed_allocation_counts_once(monkeypatch):
    real_allocate = sim_main.allocate_for_startup
    def fail_new_workers(store, worker_type):
        if worker_type.value == "new":
            return AllocationResult(AllocationStatus.FATAL, worker_type, error="store unreachable")
        return real_allocate(store, worker_type)
    monkeypatch.setattr(sim_main, "allocate_for_startup", fail_new_workers)
    kpis = sim_main.run_simulation(config_ns=small_config())
    assert kpis["allocations"]["fatal"] == 3
    assert kpis["fatal_events"] == 3
    fatal_alert = [a for a in kpis["alerts"] if a["key"] == "fatal_terminations"][0]
    assert fatal_alert["meta"] == {"fatal": 3}


def test_monte_carlo_aggregates(tmp_path):
    scenario = {
        "name": "mc",
        "overrides": {"SIMULATION_CONFIG.time_scale": 20, "SIMULATION_CONFIG.chart": False},
        "run": {"SIMULATION_TIME": 0.1, "base_seed": 1},
    }
    result = ScenarioManager().run_monte_carlo(scenario, 2, str(tmp_path))
    assert [r['seed'] for r in result['replications']] == [1, 2]
    assert result['aggregate']['units_total']['n'] == 2
    assert (Path(result['root']) / "aggregate.json").exists()


def test_cli_runs_scenario(tmp_path):
    out = tmp_path / "run"
    code = sim_main.main(['--scenario', str(SCENARIO_DIR / "overstaffed_fast.json"), '--hours', '0.1', '-o', str(out)])
    assert code == 0
    kpis = json.loads((out / "kpis.json").read_text())
    assert kpis['scenario'] == "overstaffed_fast"
    assert kpis['allocations']['exhausted'] == 3


def test_cli_missing_scenario_file(tmp_path):
    assert sim_main.main(['--scenario', str(tmp_path / "nope.json"), '-o', str(tmp_path)]) == 1
