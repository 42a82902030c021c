#!/usr/bin/env python

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

from agrorisk.core.config import load_config
from agrorisk.core.context import RunContext
from agrorisk.core.exceptions import AgroriskError
from agrorisk.core.types import SiteParameters
from agrorisk.data.sources.crop import default_wheat_cultivars, get_cultivar, load_cultivars
from agrorisk.data.sources.soil import load_soil_profile
from agrorisk.data.sources.weather import load_weather_csv
from agrorisk.pipeline.output import write_summary, write_unit_result
from agrorisk.pipeline.runner import SimulationRunner, build_run_table, tasks_from_run_table


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(
        description="Simulate wheat phenology and FAO-56 soil water balance for planting scenarios")
    parser.add_argument("--config", default=None,
                        help="YAML configuration file")
    parser.add_argument("--weather", required=True,
                        help="Daily weather CSV of the station")
    parser.add_argument("--station-id", default=None)
    parser.add_argument("--latitude", type=float, required=True)
    parser.add_argument("--elevation", type=float, default=0.0)
    parser.add_argument("--soil-file", required=True,
                        help="DSSAT .SOL file")
    parser.add_argument("--soil-id", required=True, action="append",
                        help="Soil profile identifier (repeatable)")
    parser.add_argument("--cultivars", default=None,
                        help="YAML cultivar table (built-in wheat defaults if omitted)")
    parser.add_argument("--cultivar", required=True, action="append",
                        help="Cultivar name (repeatable)")
    parser.add_argument("--planting-date", required=True, action="append",
                        type=date.fromisoformat, help="YYYY-MM-DD (repeatable)")
    parser.add_argument("--initial-condition", action="append", type=float,
                        help="Fraction of field capacity at start (repeatable, default 1.0)")
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--executor", choices=["thread", "process", "sequential"], default=None)
    parser.add_argument("--out", default=None,
                        help="Output directory (defaults to config output_dir)")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    runner_overrides = {}
    if args.workers is not None:
        runner_overrides["max_workers"] = args.workers
    if args.executor is not None:
        runner_overrides["executor"] = args.executor
    if runner_overrides:
        config = config.model_copy(update={"runner": config.runner.model_copy(update=runner_overrides)})

    logging.basicConfig(level=getattr(logging, config.runner.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    context = RunContext.create(config)
    out_dir = Path(args.out) if args.out else config.output_dir

    try:
        cultivar_file = args.cultivars or config.cultivar_file
        cultivars = load_cultivars(cultivar_file) if cultivar_file else default_wheat_cultivars()
        selected = {name: get_cultivar(cultivars, name) for name in args.cultivar}

        weather = load_weather_csv(args.weather, station_id=args.station_id)
        station_id = args.station_id or Path(args.weather).stem
        site = SiteParameters(station_id=station_id, latitude=args.latitude, elevation_m=args.elevation)

        soils = {sid: load_soil_profile(args.soil_file, sid).layers for sid in args.soil_id}

        table = build_run_table(
            cultivars=list(selected),
            soils=list(soils),
            stations=[station_id],
            realizations=[0],
            planting_dates=args.planting_date,
            initial_conditions=args.initial_condition or [1.0],
        )
        tasks = tasks_from_run_table(
            table, selected, soils, {station_id: site}, {(station_id, 0): weather}, context
        )
    except AgroriskError as e:
        context.logger.error(str(e))
        return 2

    results = SimulationRunner(context).run(tasks)

    if config.runner.write_daily_outputs:
        for result in results:
            write_unit_result(result, out_dir)
    write_summary(results, out_dir / f"summary_{context.run_id}.csv")

    failed = sum(1 for r in results if not r.ok)
    print(f"{len(results)} unit(s), {failed} failed; outputs in {out_dir}")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
