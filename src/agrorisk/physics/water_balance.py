"""
FAO-56 dual crop coefficient root zone water balance.

Daily recurrence (FAO-56 Chapter 7, Eq. 69-86):

    ETc = (Ks × Kcb + Ke) × ETref
    Dr,i = Dr,i-1 - Rain + ETc + DP,     0 <= Dr,i <= TAW

Growth stages come from the phenology stage dates; TAW follows the growing
root depth while Dr stays an absolute depth of water, so deepening roots
dilute the relative depletion. Ks uses the depletion at the start of the
day. The surface evaporation layer (REW/TEW) is tracked separately through
its own depletion De.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Mapping, Optional, Sequence

import pandas as pd

from agrorisk.core import constants as C
from agrorisk.core.config import EngineConfig
from agrorisk.core.exceptions import DataGapError, ErrorContext, MissingWeatherField
from agrorisk.core.types import (
    DailyBalanceState, PhenologyState, SiteParameters, SoilProfileDerived, WeatherRecord, is_missing
)
from agrorisk.data.contracts import CropWaterParameters
from agrorisk.physics.constraints import BalanceInvariantChecker
from agrorisk.physics.crop_development import CropDevelopmentModel
from agrorisk.physics.evapotranspiration import (
    calculate_Kc_max, calculate_Ke, calculate_Kr, calculate_Ks, calculate_p_adjusted,
    canopy_cover_fraction, reference_et,
)

logger = logging.getLogger(__name__)


@dataclass
class BalanceState:
    """Water balance state carried from one day to the next"""
    dr: float
    de: float
    days_in_stage: int = 0


@dataclass
class BalanceResult:
    """Daily balance series of one simulation unit"""
    states: List[DailyBalanceState]
    complete: bool
    fallbacks: List[MissingWeatherField] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.states)

    def to_dataframe(self) -> pd.DataFrame:
        """Daily table; the first columns are the output contract"""
        rows = [s.as_row() for s in self.states]
        if not rows:
            return pd.DataFrame(columns=list(C.BALANCE_COLUMNS))
        return pd.DataFrame(rows)

    @property
    def total_et_c(self) -> float:
        return float(sum(s.et_c for s in self.states))

    @property
    def total_rain(self) -> float:
        return float(sum(s.rain_mm for s in self.states))

    @property
    def total_deep_percolation(self) -> float:
        return float(sum(s.deep_percolation_mm for s in self.states))


class WaterBalanceEngine:
    """
    Daily dual-Kc water balance for one crop on one soil.

    Key features:
    - Growth stage mapping from phenology dates
    - Root depth dependent TAW with absolute depletion
    - Evaporation from a separate surface layer (REW/TEW)
    - Invariant checks on every emitted day

    Example:
        engine = WaterBalanceEngine(profile, water_params, site)
        result = engine.run(weather, phenology.stage_dates, planting_date)
    """

    def __init__(
        self,
        profile: SoilProfileDerived,
        water_params: CropWaterParameters,
        site: SiteParameters,
        config: Optional[EngineConfig] = None,
        logger: Optional[logging.Logger] = None,
        unit_id: Optional[str] = None
    ):
        """
        Initialize the engine.

        Args:
            profile: Derived soil properties (TAW, REW/TEW, initial condition)
            water_params: FAO-56 crop parameters
            site: Station constants for reference ET
            config: Engine settings (reference ET method, defaults)
            logger: Logger to report through, defaults to the class logger
            unit_id: Identifier used in error context
        """
        self.profile = profile
        self.params = water_params
        self.site = site
        self.config = config or EngineConfig()
        self.unit_id = unit_id
        self.logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self.crop = CropDevelopmentModel(water_params, profile.max_depth_m, logger=self.logger)
        self.checker = BalanceInvariantChecker(self.config.invariant_tolerance, unit_id)
        self.state = self._initial_state()

    def _initial_state(self) -> BalanceState:
        f = self.profile.initial_condition
        return BalanceState(
            dr=self.profile.initial_depletion_at(self.crop.state.root_depth_m),
            de=(1.0 - f) * self.profile.total_evaporable_water_mm,
        )

    def reset(self) -> None:
        self.crop.reset()
        self.state = self._initial_state()

    def advance(
        self,
        record: WeatherRecord,
        stages: Mapping[PhenologyState, date],
        et_ref: float,
        et_ref_method: str = "hargreaves"
    ) -> DailyBalanceState:
        """
        Advance the balance by one day.

        Args:
            record: Weather of the day
            stages: Phenology stage dates known for this unit
            et_ref: Reference ET of the day (mm)
            et_ref_method: Label of the method that produced et_ref

        Returns:
            The day's DailyBalanceState

        Raises:
            InternalConsistencyError: A daily invariant failed
        """
        s = self.state
        previous_stage = self.crop.state.stage
        rain = max(0.0, record.precipitation_mm)
        et_ref = max(0.0, et_ref)

        # 1. Canopy and roots
        crop = self.crop.advance_day(record.date, stages)
        kcb = crop.kcb

        # 2. Root zone capacity, Dr stays absolute as roots deepen
        taw = self.profile.available_water(crop.root_depth_m)
        p = calculate_p_adjusted(self.params.depletion_fraction, et_ref)
        raw = p * taw
        dr = min(s.dr, taw)

        # 3. Stress from start-of-day depletion
        ks = calculate_Ks(dr, taw, raw)

        # 4. Evaporation coefficient
        u2 = record.wind_speed_m_s
        if is_missing(u2):
            u2 = self.config.wind_speed_default_m_s
        kc_max = calculate_Kc_max(kcb, u2, self.config.rh_min_default_pct, crop.plant_height_m)
        fc = canopy_cover_fraction(kcb, self.params.kc_min, kc_max, crop.plant_height_m)
        few = max(C.MIN_EXPOSED_WETTED_FRACTION, 1.0 - fc)

        rew = self.profile.readily_evaporable_water_mm
        tew = self.profile.total_evaporable_water_mm
        kr = calculate_Kr(s.de, rew, tew)
        ke = calculate_Ke(kcb, kr, kc_max, few)

        transpiration = ks * kcb * et_ref
        evaporation = ke * et_ref

        # Surface layer cannot dry beyond TEW
        de_wet = max(0.0, s.de - rain)
        evaporation = min(evaporation, few * max(0.0, tew - de_wet))

        # 5. Root zone update, ETc limited so Dr never exceeds TAW
        et_c = transpiration + evaporation
        et_c_limit = max(0.0, taw - dr + rain)
        if et_c > et_c_limit:
            scale = et_c_limit / et_c
            transpiration *= scale
            evaporation *= scale
            et_c = et_c_limit

        deep_percolation = max(0.0, rain - et_c - dr)
        dr_new = min(taw, max(0.0, dr - rain + et_c + deep_percolation))
        de_new = min(tew, max(0.0, de_wet + evaporation / few))

        kc_act = et_c / et_ref if et_ref > 0 else ks * kcb + ke

        if crop.stage is previous_stage:
            days_in_stage = s.days_in_stage + 1
        else:
            days_in_stage = 1
        self.state = BalanceState(
            dr=dr_new, de=de_new, days_in_stage=days_in_stage
        )

        # 6. Emit
        daily = DailyBalanceState(
            date=record.date,
            growth_stage=crop.stage,
            root_depth_m=crop.root_depth_m,
            plant_height_m=crop.plant_height_m,
            kcb=kcb,
            ke=ke,
            kc_act=kc_act,
            et_ref=et_ref,
            et_c=et_c,
            transpiration_mm=transpiration,
            evaporation_mm=evaporation,
            rain_mm=rain,
            deep_percolation_mm=deep_percolation,
            dr=dr_new,
            de=de_new,
            taw=taw,
            raw=raw,
            ks=ks,
            et_ref_method=et_ref_method,
            days_in_stage=days_in_stage,
        )
        self.checker.check(daily)
        return daily

    def simulation_window(
        self,
        weather: Sequence[WeatherRecord],
        stages: Mapping[PhenologyState, date],
        planting_date: date,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ):
        """
        First and last simulated day and whether harvest bounds the run.

        Start is the earlier of planting and the pre-season start; end is
        harvest, else the end of the weather series, else ``end_date`` if
        that comes first.
        """
        preseason_start = start_date or planting_date - timedelta(days=self.config.preseason_days)
        start = min(planting_date, preseason_start)

        harvest = stages.get(PhenologyState.HARVEST)
        end = harvest if harvest is not None else weather[-1].date
        if end_date is not None and end_date < end:
            end = end_date
        complete = harvest is not None and end == harvest
        return start, min(end, weather[-1].date), complete

    def run(
        self,
        weather: Sequence[WeatherRecord],
        stages: Mapping[PhenologyState, date],
        planting_date: date,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        et_ref: Optional[Mapping[date, float]] = None
    ) -> BalanceResult:
        """
        Run the balance over the simulation window.

        Every call starts from the initial soil and canopy state, so
        repeated runs on one engine are independent.

        Args:
            weather: Contiguous daily weather
            stages: Phenology stage dates (PhenologyResult.stage_dates)
            planting_date: Sowing date
            start_date: Pre-season start, defaults to planting minus
                ``preseason_days``
            end_date: Optional last day requested by the scenario
            et_ref: Precomputed reference ET by date; computed from weather
                with the configured method when omitted

        Returns:
            BalanceResult, ``complete`` False when harvest was not reached

        Raises:
            DataGapError: Weather does not cover the window or has gaps
            InternalConsistencyError: A daily invariant failed
        """
        self.reset()
        context = ErrorContext(unit_id=self.unit_id, component="WaterBalanceEngine", operation="run")
        if not weather:
            raise DataGapError("Empty weather series", context)

        start, end, complete = self.simulation_window(weather, stages, planting_date, start_date, end_date)
        if weather[0].date > start:
            raise DataGapError(
                f"Weather starts {weather[0].date}, after simulation start {start}", context
            )

        self.logger.info(
            f"Running water balance {start} .. {end} "
            f"(TAW max={self.profile.total_available_water_mm:.1f} mm, "
            f"Dr0={self.state.dr:.1f} mm)"
        )

        states: List[DailyBalanceState] = []
        fallbacks: List[MissingWeatherField] = []
        expected = start

        for record in weather:
            if record.date < start:
                continue
            if record.date > end:
                break
            if record.date != expected:
                context.date = expected.isoformat()
                raise DataGapError(f"Missing weather for {expected}", context)
            expected = record.date + timedelta(days=1)

            if et_ref is not None and record.date in et_ref:
                value, method = et_ref[record.date], "provided"
            else:
                ref = reference_et(record, self.site, self.config.reference_et_method)
                value, method = ref.value, ref.method_used.value
                if ref.fallback is not None:
                    fallbacks.append(ref.fallback)

            states.append(self.advance(record, stages, value, method))

        if fallbacks:
            self.logger.warning(
                f"{len(fallbacks)} day(s) used Hargreaves because Penman-Monteith inputs were missing "
                f"(first: {fallbacks[0].context.date}, fields {fallbacks[0].fields})"
            )

        result = BalanceResult(states=states, complete=complete, fallbacks=fallbacks)
        self.logger.info(
            f"Water balance complete: {len(states)} days, ETc={result.total_et_c:.1f} mm, "
            f"rain={result.total_rain:.1f} mm, DP={result.total_deep_percolation:.1f} mm"
        )
        return result
