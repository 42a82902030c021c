"""
Pipeline: simulation units, run table, worker pool and CSV output.
"""
from agrorisk.pipeline.unit import SimulationUnit, UnitResult
from agrorisk.pipeline.runner import (
    SimulationRunner,
    UnitTask,
    build_run_table,
    run_unit,
    summarize_results,
    tasks_from_run_table,
)
from agrorisk.pipeline.output import write_summary, write_unit_result

__all__ = [
    "SimulationUnit",
    "UnitResult",
    "SimulationRunner",
    "UnitTask",
    "build_run_table",
    "run_unit",
    "summarize_results",
    "tasks_from_run_table",
    "write_summary",
    "write_unit_result",
]
