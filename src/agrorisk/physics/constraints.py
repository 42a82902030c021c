"""
Daily invariants of the root zone water balance.

Clamping is part of the water balance algorithm; anything that still
violates these checks afterwards is a defect and is raised as
InternalConsistencyError instead of being corrected.
"""
from dataclasses import dataclass
from typing import Callable, List

from agrorisk.core import constants as C
from agrorisk.core.exceptions import ErrorContext, InternalConsistencyError
from agrorisk.core.types import DailyBalanceState


@dataclass(frozen=True)
class PhysicalConstraint:
    """Definition of a daily invariant"""
    name: str
    description: str
    check_function: Callable[[DailyBalanceState, float], bool]


def _depletion_within_capacity(s: DailyBalanceState, tol: float) -> bool:
    return -tol <= s.dr <= s.taw + tol


def _stress_coefficient_bounded(s: DailyBalanceState, tol: float) -> bool:
    return -tol <= s.ks <= 1.0 + tol


def _crop_et_non_negative(s: DailyBalanceState, tol: float) -> bool:
    return s.et_c >= -tol


def _readily_available_within_total(s: DailyBalanceState, tol: float) -> bool:
    return -tol <= s.raw <= s.taw + tol


def _fluxes_non_negative(s: DailyBalanceState, tol: float) -> bool:
    return min(s.deep_percolation_mm, s.transpiration_mm, s.evaporation_mm, s.et_ref) >= -tol


DAILY_INVARIANTS: List[PhysicalConstraint] = [
    PhysicalConstraint("depletion_bounds", "0 <= Dr <= TAW", _depletion_within_capacity),
    PhysicalConstraint("stress_bounds", "0 <= Ks <= 1", _stress_coefficient_bounded),
    PhysicalConstraint("crop_et_non_negative", "ETc >= 0", _crop_et_non_negative),
    PhysicalConstraint("raw_bounds", "0 <= RAW <= TAW", _readily_available_within_total),
    PhysicalConstraint("fluxes_non_negative", "ETref, T, E, DP >= 0", _fluxes_non_negative),
]


class BalanceInvariantChecker:
    """
    Checks every emitted DailyBalanceState against DAILY_INVARIANTS.

    Example:
        checker = BalanceInvariantChecker(tolerance=1e-9)
        checker.check(state)  # raises InternalConsistencyError
    """

    def __init__(self, tolerance: float = C.INVARIANT_TOLERANCE, unit_id: str = None):
        self.tolerance = tolerance
        self.unit_id = unit_id
        self.constraints = list(DAILY_INVARIANTS)
        self.days_checked = 0

    def check(self, state: DailyBalanceState) -> None:
        for constraint in self.constraints:
            if not constraint.check_function(state, self.tolerance):
                raise InternalConsistencyError(
                    f"Violated invariant {constraint.name} ({constraint.description}): "
                    f"Dr={state.dr!r}, TAW={state.taw!r}, RAW={state.raw!r}, "
                    f"Ks={state.ks!r}, ETc={state.et_c!r}",
                    ErrorContext(
                        unit_id=self.unit_id,
                        date=state.date.isoformat(),
                        component="WaterBalanceEngine",
                        operation=constraint.name,
                    ),
                )
        self.days_checked += 1
