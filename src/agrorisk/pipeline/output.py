"""
CSV persistence of unit results.
"""
import logging
from pathlib import Path
from typing import Iterable, Union

from agrorisk.pipeline.runner import summarize_results
from agrorisk.pipeline.unit import UnitResult

logger = logging.getLogger(__name__)


def write_unit_result(result: UnitResult, out_dir: Union[str, Path]) -> list:
    """
    Write ``<unit_id>_phenology.csv`` and ``<unit_id>_balance.csv``.

    Failed units have nothing to write. Returns the paths written.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []

    if result.phenology is not None:
        path = out_dir / f"{result.unit_id}_phenology.csv"
        df = result.phenology_table()
        df["Complete"] = result.phenology.complete
        df.to_csv(path, index=False)
        written.append(path)

    if result.balance is not None:
        path = out_dir / f"{result.unit_id}_balance.csv"
        result.balance_table().to_csv(path, index=False, float_format="%.6f")
        written.append(path)

    logger.debug(f"Wrote {len(written)} file(s) for {result.unit_id}")
    return written


def write_summary(results: Iterable[UnitResult], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    summarize_results(results).to_csv(path, index=False)
    logger.info(f"Summary written to {path}")
    return path
