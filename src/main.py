#STANDARD IMPORTS

import argparse
import os
import random
import sys
import time
from pathlib import Path
from typing import Dict, List


# 3rd PARTY IMPORTS

import numpy as np
import simpy

#LOCAL IMPORTS

import config as base_config
from allocation import allocate_for_startup
from config import TIMESCALE_SETTING
from errors import KanbanError
from logging_export import EventLogger, MetricsBus, events_frame, export_all
from metrics import AlertsManager, ProductionKPIs, plot_cumulative_production
from pacing import WorkerType, build_duration_ms, derive_seeds, make_rng, runner_interval_ms, validate_time_scale
from store import KanbanStore, MemoryStore


class SimWorkstation:
    def __init__(self, env, store, worker_type, worker_id, rng, logger, metrics_bus, start_delay=0.0):
        self.env = env
        self.store = store
        self.worker_type = worker_type
        self.worker_id = worker_id
        self.rng = rng
        self.logger = logger
        self.metrics_bus = metrics_bus
        self.station_id = None
        self.lamps_assembled = 0
        self.status = 'starting'
        self.process = env.process(self.run(start_delay))
    def _fatal(self, error):
        self.status = 'fatal'
        self.logger.log('fatal', self.env.now, worker_id=self.worker_id, worker_type=self.worker_type.value,
                        station_id=self.station_id, error=str(error))
        print(f"FATAL (t={self.env.now:.1f}s): workstation {self.worker_id}: {error}")
    def run(self, start_delay):
        try:
            yield self.env.timeout(start_delay)
            result = allocate_for_startup(self.store, self.worker_type)
            self.logger.log('allocation', self.env.now, worker_id=self.worker_id, worker_type=self.worker_type.value,
                            outcome=result.status.value, station_id=result.station_id, error=result.error)
            self.metrics_bus.inc(f"allocation.{result.status.value}", 1, self.env.now)
            if result.exhausted:
                self.status = 'exhausted'
                print(f"--> Time {self.env.now:.1f}s: {self.worker_id} found no station available.")
                return
            if result.fatal:
                self._fatal(result.error)
                return
            self.station_id = result.station_id
            self.status = 'producing'
            while True:
                try:
                    time_scale = self.store.read_setting(TIMESCALE_SETTING)
                    duration_ms = build_duration_ms(self.worker_type, time_scale, self.rng)
                except KanbanError as e:
                    self._fatal(e)
                    return
                yield self.env.timeout(duration_ms / 1000.0)
                try:
                    lamps_built = self.store.report_unit(self.station_id)
                except KanbanError as e:
                    self._fatal(e)
                    return
                self.lamps_assembled += 1
                self.logger.log('unit_built', self.env.now, worker_id=self.worker_id, worker_type=self.worker_type.value,
                                station_id=self.station_id, duration_ms=duration_ms, time_scale=time_scale,
                                lamps_built=lamps_built)
                self.metrics_bus.inc('units_built', 1, self.env.now)
                self.metrics_bus.observe('cycle_time_ms', duration_ms, self.env.now)
        except simpy.Interrupt as interrupt:
            if self.status == 'producing':
                self.status = 'stopped'
                self.logger.log('build_cancelled', self.env.now, worker_id=self.worker_id,
                                station_id=self.station_id, cause=str(interrupt.cause))
class SimRunner:
    def __init__(self, env, store, logger, metrics_bus, reference_seconds=base_config.RUNNER_INTERVAL_SECONDS):
        self.env = env
        self.store = store
        self.logger = logger
        self.metrics_bus = metrics_bus
        self.reference_seconds = reference_seconds
        self.ticks = 0
        self.status = 'running'
        self.process = env.process(self.run())
    def run(self):
        try:
            while True:
                try:
                    time_scale = self.store.read_setting(TIMESCALE_SETTING)
                    interval_ms = runner_interval_ms(time_scale, self.reference_seconds)
                    self.metrics_bus.set_gauge('time_scale', time_scale, self.env.now)
                except KanbanError as e:
                    self._fatal(e)
                    return
                yield self.env.timeout(interval_ms / 1000.0)
                try:
                    refilled = self.store.apply_replenishment()
                except KanbanError as e:
                    self._fatal(e)
                    return
                self.ticks += 1
                self.logger.log('replenishment', self.env.now, tick=self.ticks, interval_ms=interval_ms,
                                time_scale=time_scale, bins_refilled=refilled)
                self.metrics_bus.inc('bins_refilled', refilled, self.env.now)
        except simpy.Interrupt:
            self.status = 'stopped'
    def _fatal(self, error):
        self.status = 'fatal'
        self.logger.log('fatal', self.env.now, source_process='runner', error=str(error))
        print(f"FATAL (t={self.env.now:.1f}s): runner: {error}")
def setting_changer(env, store: KanbanStore, changes: List[Dict], logger: EventLogger):
    try:
        for change in sorted(changes, key=lambda c: c['at_hours']):
            at = float(change['at_hours']) * 3600.0
            if at > env.now:
                yield env.timeout(at - env.now)
            try:
                store.change_setting(change['setting'], int(change['value']))
                logger.log('setting_changed', env.now, setting=change['setting'], value=int(change['value']))
                print(f"--> Time {env.now:.1f}s: {change['setting']} set to {change['value']}.")
            except KanbanError as e:
                logger.log('setting_rejected', env.now, setting=change['setting'], value=change['value'], error=str(e))
                print(f"WARNING: Scheduled change of '{change['setting']}' rejected: {e}")
    except simpy.Interrupt:
        return
def run_simulation(config_ns=None, output_dir=None, scenario_label=None):
    cfg = config_ns if config_ns is not None else base_config
    sim_cfg = cfg.SIMULATION_CONFIG
    seed = cfg.RANDOM_SEED
    random.seed(seed)
    np.random.seed(seed)
    print("=" * 60)
    print(f"KANBAN SIMULATION '{scenario_label or 'baseline'}'")
    print(f"Workers requested: {sim_cfg['workers']}")
    print(f"Station capacity: {cfg.STATION_CAPACITY}")
    print(f"Duration: {cfg.SIMULATION_TIME} hours, seed {seed}")
    print("=" * 60)
    env = simpy.Environment()
    store = MemoryStore().initialize(capacity=cfg.STATION_CAPACITY, settings=cfg.DEFAULT_SETTINGS)
    store.change_setting(TIMESCALE_SETTING, validate_time_scale(sim_cfg.get('time_scale', 1)))
    logger = EventLogger(source="simulation")
    rt_metrics = MetricsBus()
    workstations = []
    spacing = float(sim_cfg.get('startup_spacing_seconds', 0))
    roster = [(WorkerType(type_name), i + 1) for type_name, count in sim_cfg['workers'].items() for i in range(int(count))]
    worker_seeds = derive_seeds(seed, len(roster))
    for (worker_type, n), worker_seed in zip(roster, worker_seeds):
        workstations.append(SimWorkstation(env, store, worker_type, f"{worker_type.value}-{n}", make_rng(worker_seed),
                                           logger, rt_metrics, start_delay=spacing * len(workstations)))
    runner = SimRunner(env, store, logger, rt_metrics, reference_seconds=cfg.RUNNER_INTERVAL_SECONDS)
    changer = env.process(setting_changer(env, store, list(sim_cfg.get('setting_changes', [])), logger))
    horizon = float(cfg.SIMULATION_TIME) * 3600.0
    env.run(until=horizon)
    long_lived = [w.process for w in workstations] + [runner.process, changer]
    for proc in long_lived:
        if proc.is_alive:
            proc.interrupt("shutdown")
    env.run()
    print(f"Simulation completed at time {horizon:.1f}s")
    events = events_frame(logger)
    kpis = ProductionKPIs(events, horizon).summary()
    stations = [r.as_row() for r in store.station_status()]
    settings = {s.name: s.value for s in store.list_settings()}
    AlertsManager(rt_metrics).evaluate(horizon, kpis, stations)
    kpis['scenario'] = scenario_label or 'baseline'
    kpis['seed'] = seed
    kpis['final_settings'] = settings
    kpis['last_hour_cycle_time'] = rt_metrics.window_stats('cycle_time_ms', 3600.0)
    kpis['alerts'] = list(rt_metrics.alerts)
    print(f"Lamps built: {kpis['units_total']}  Allocations: {kpis['allocations']}  "
          f"Replenishment ticks: {kpis['replenishment']['ticks']}")
    if output_dir:
        export_all(output_dir, events, kpis, metrics=rt_metrics, stations=stations)
        if sim_cfg.get('chart', True):
            chart = plot_cumulative_production(events, os.path.join(output_dir, "production.png"),
                                               title=f"Cumulative lamps per station ({kpis['scenario']})")
            if chart:
                print(f"Chart saved to {chart}")
    return kpis
def main(argv=None) -> int:
    import scenarios
    parser = argparse.ArgumentParser(prog="kanban-simulate", description="Run the Kanban factory in virtual time.")
    parser.add_argument('--scenario', default=None, help="JSON scenario file with config overrides.")
    parser.add_argument('-o', '--output', default=None, help="Output directory for events, KPIs and chart.")
    parser.add_argument('--seed', type=int, default=None, help="Random seed (overrides config/scenario).")
    parser.add_argument('--hours', type=float, default=None, help="Simulated duration in hours.")
    parser.add_argument('-n', '--replications', type=int, default=1, help="Monte Carlo replications of the scenario.")
    args = parser.parse_args(argv)
    manager = scenarios.ScenarioManager(base_config)
    try:
        scenario = manager.load(args.scenario) if args.scenario else {}
    except (OSError, ValueError) as e:
        print(f"FATAL: Could not load scenario '{args.scenario}': {e}")
        return base_config.EXIT_CODES['fatal']
    label = scenario.get('name', Path(args.scenario).stem if args.scenario else "DirectRun")
    output_dir = args.output
    if output_dir is None:
        output_dir = os.path.join(base_config.BASE_DIR, "data", "processed", f"{label}-{int(time.time())}")
        print(f"No output directory specified. Using default: {output_dir}")
    if args.hours is not None:
        scenario.setdefault('run', {})['SIMULATION_TIME'] = args.hours
    try:
        if 'scenarios' in scenario:
            results = manager.run_batch(scenario['scenarios'], output_dir)
            print(f"Batch of {len(results)} scenario(s) complete.")
            return base_config.EXIT_CODES['ok']
        if args.replications > 1:
            if args.seed is not None:
                scenario.setdefault('run', {})['base_seed'] = args.seed
            scenario.setdefault('name', label)
            mc = manager.run_monte_carlo(scenario, args.replications, output_dir)
            print(f"Monte Carlo aggregate written to {mc['root']}")
            return base_config.EXIT_CODES['ok']
        cfg_ns = manager.apply_to_config(scenario)
        if args.seed is not None:
            cfg_ns.RANDOM_SEED = args.seed
        run_simulation(config_ns=cfg_ns, output_dir=output_dir, scenario_label=label)
    except (KanbanError, ValueError, AttributeError) as e:
        print("--- SIMULATION FAILED ---")
        print(f"An error occurred: {e}")
        return base_config.EXIT_CODES['fatal']
    return base_config.EXIT_CODES['ok']
if __name__ == '__main__':
    sys.exit(main())
