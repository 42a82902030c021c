"""
Run control: combination table, task list and worker pool.

Every row of the run table is an independent simulation unit. Units share
no mutable state, so the pool can be threads, processes or a plain loop
without changing results.
"""
import itertools
import logging
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from agrorisk.core.config import EngineConfig, RunnerConfig
from agrorisk.core.context import RunContext
from agrorisk.core.exceptions import ConfigurationError, DataGapError, ErrorContext, handle_exception
from agrorisk.core.types import PhenologyState, SiteParameters, SoilLayer, UnitStatus, WeatherRecord
from agrorisk.data.contracts import Cultivar, Scenario
from agrorisk.pipeline.unit import SimulationUnit, UnitResult

logger = logging.getLogger(__name__)

RUN_TABLE_COLUMNS = [
    "unit_id", "cultivar", "soil_id", "station_id", "realization",
    "planting_date", "initial_condition",
]


def make_unit_id(cultivar: str, soil_id: str, station_id: str, realization: int,
                 planting_date: date, initial_condition: float) -> str:
    """Identifier of one combination; the initial condition is written at full precision"""
    return (
        f"{cultivar}_{soil_id}_{station_id}_r{realization}_"
        f"{planting_date:%Y%m%d}_ic{float(initial_condition)!r}"
    )


def build_run_table(
    cultivars: Sequence[str],
    soils: Sequence[str],
    stations: Sequence[str],
    realizations: Sequence[int],
    planting_dates: Sequence[date],
    initial_conditions: Sequence[float]
) -> pd.DataFrame:
    """
    Cartesian product of all scenario dimensions, one row per unit.

    Returns:
        DataFrame with RUN_TABLE_COLUMNS; ``unit_id`` is unique and stable

    Raises:
        ConfigurationError: Repeated values in a dimension produce the same unit id
    """
    rows = [
        (make_unit_id(c, s, st, r, p, ic), c, s, st, int(r), p, float(ic))
        for c, s, st, r, p, ic in itertools.product(
            cultivars, soils, stations, realizations, planting_dates, initial_conditions
        )
    ]
    table = pd.DataFrame(rows, columns=RUN_TABLE_COLUMNS)

    duplicated = table.loc[table["unit_id"].duplicated(), "unit_id"]
    if not duplicated.empty:
        raise ConfigurationError(
            f"Run table has {len(duplicated)} duplicate unit id(s), "
            f"first: {duplicated.iloc[0]}",
            ErrorContext(unit_id=duplicated.iloc[0], component="SimulationRunner",
                         operation="build_run_table"),
        )

    logger.info(f"Run table: {len(table)} unit(s)")
    return table


@dataclass(frozen=True)
class UnitTask:
    """Everything one worker needs to run a unit (picklable)"""
    unit_id: str
    cultivar: Cultivar
    soil_id: str
    soil_layers: Tuple[SoilLayer, ...]
    site: SiteParameters
    weather: Tuple[WeatherRecord, ...]
    scenario: Scenario
    engine_config: EngineConfig
    logger_name: str = "agrorisk.unit"


def run_unit(task: UnitTask) -> UnitResult:
    """Worker entry point; module level so process pools can pickle it"""
    unit = SimulationUnit(
        unit_id=task.unit_id,
        cultivar=task.cultivar,
        soil_layers=task.soil_layers,
        site=task.site,
        weather=task.weather,
        scenario=task.scenario,
        config=task.engine_config,
        soil_id=task.soil_id,
        logger=logging.getLogger(f"{task.logger_name}.{task.unit_id}"),
    )
    return unit.run()


def tasks_from_run_table(
    table: pd.DataFrame,
    cultivars: Mapping[str, Cultivar],
    soils: Mapping[str, Sequence[SoilLayer]],
    sites: Mapping[str, SiteParameters],
    weather: Mapping[Tuple[str, int], Sequence[WeatherRecord]],
    context: RunContext
) -> List[UnitTask]:
    """
    Resolve run table rows into tasks.

    Args:
        table: Output of build_run_table
        cultivars: Cultivar parameters by name
        soils: Soil layers by soil id
        sites: Station constants by station id
        weather: Weather series by (station id, realization)
        context: Run context supplying the engine configuration

    Raises:
        ConfigurationError: Unknown cultivar, soil or station
        DataGapError: No weather for a (station, realization) pair
    """
    tasks = []
    for row in table.itertuples(index=False):
        ctx = ErrorContext(unit_id=row.unit_id, component="SimulationRunner", operation="tasks")
        if row.cultivar not in cultivars:
            raise ConfigurationError(f"Unknown cultivar '{row.cultivar}'", ctx)
        if row.soil_id not in soils:
            raise ConfigurationError(f"Unknown soil '{row.soil_id}'", ctx)
        if row.station_id not in sites:
            raise ConfigurationError(f"Unknown station '{row.station_id}'", ctx)
        key = (row.station_id, int(row.realization))
        if key not in weather:
            raise DataGapError(f"No weather for station {key[0]} realization {key[1]}", ctx)

        tasks.append(UnitTask(
            unit_id=row.unit_id,
            cultivar=cultivars[row.cultivar],
            soil_id=row.soil_id,
            soil_layers=tuple(soils[row.soil_id]),
            site=sites[row.station_id],
            weather=tuple(weather[key]),
            scenario=Scenario(
                planting_date=row.planting_date,
                initial_condition=row.initial_condition,
            ),
            engine_config=context.config.engine,
            logger_name=context.logger.name,
        ))
    return tasks


class SimulationRunner:
    """
    Dispatch unit tasks to a configurable worker pool.

    Example:
        runner = SimulationRunner(RunContext.create(config))
        results = runner.run(tasks)
    """

    def __init__(self, context: Optional[RunContext] = None):
        self.context = context or RunContext.create()
        self.config: RunnerConfig = self.context.config.runner
        self.logger = self.context.logger.getChild("runner")

    def _failure(self, task: UnitTask, exc: Exception) -> UnitResult:
        error = handle_exception(exc, ErrorContext(unit_id=task.unit_id, component="SimulationRunner"))
        return UnitResult(task.unit_id, UnitStatus.FAILURE, error=error)

    def _run_sequential(self, tasks: Sequence[UnitTask]) -> List[UnitResult]:
        results = []
        for task in tasks:
            try:
                results.append(run_unit(task))
            except Exception as e:
                self.logger.error(f"Unit {task.unit_id} raised: {e}")
                results.append(self._failure(task, e))
        return results

    def _run_pool(self, tasks: Sequence[UnitTask]) -> List[UnitResult]:
        executor_cls = ProcessPoolExecutor if self.config.executor == "process" else ThreadPoolExecutor
        results: Dict[str, UnitResult] = {}

        with executor_cls(max_workers=self.config.max_workers) as executor:
            future_to_task = {executor.submit(run_unit, task): task for task in tasks}

            for future in as_completed(future_to_task):
                task = future_to_task[future]
                try:
                    results[task.unit_id] = future.result()
                except Exception as e:
                    self.logger.error(f"Unit {task.unit_id} raised: {e}")
                    results[task.unit_id] = self._failure(task, e)

        return [results[task.unit_id] for task in tasks]

    def run(self, tasks: Sequence[UnitTask]) -> List[UnitResult]:
        """Run all tasks; results come back in task order"""
        self.logger.info(
            f"Run {self.context.run_id}: {len(tasks)} unit(s) on "
            f"{self.config.executor} executor (max_workers={self.config.max_workers})"
        )
        if self.config.executor == "sequential" or len(tasks) <= 1:
            results = self._run_sequential(tasks)
        else:
            results = self._run_pool(tasks)

        counts = pd.Series([r.status.value for r in results]).value_counts().to_dict() if results else {}
        self.logger.info(f"Run {self.context.run_id} finished: {counts}")
        return results


def summarize_results(results: Iterable[UnitResult]) -> pd.DataFrame:
    """
    One row per unit: status, stage dates, season totals and stress.
    """
    rows = []
    for r in results:
        row = {"unit_id": r.unit_id, "status": r.status.value,
               "error": str(r.error) if r.error else None,
               "issues": "; ".join(str(i) for i in r.issues) or None}

        if r.phenology is not None:
            dates = r.phenology.stage_dates
            for state in (PhenologyState.EMERGED, PhenologyState.ANTHESIS,
                          PhenologyState.END_GRAIN_FILLING, PhenologyState.HARVEST):
                row[state.stage_name] = dates.get(state)
            row["phenology_complete"] = r.phenology.complete

        if r.balance is not None and len(r.balance):
            ks = np.array([s.ks for s in r.balance.states])
            row.update({
                "days": len(r.balance),
                "ETc_total": r.balance.total_et_c,
                "rain_total": r.balance.total_rain,
                "DP_total": r.balance.total_deep_percolation,
                "Ks_min": float(ks.min()),
                "stress_days": int((ks < 1.0).sum()),
                "Dr_final": r.balance.states[-1].dr,
            })
        rows.append(row)
    return pd.DataFrame(rows)
