"""
Thermal-time driven phenology state machine.

A PhenologyModel supplies the crop-specific pieces (daily thermal time,
vernalization, development factor and the threshold to leave each state);
PhenologyEngine runs the daily loop shared by every crop:

    NOT_SOWN -> SOWN -> EMERGED -> END_JUVENILE -> ANTHESIS
             -> END_GRAIN_FILLING -> HARVEST

Transition rule: the unit is sown at the start of the planting day and that
day's thermal time counts toward emergence. Every later transition happens
at the end of the first day on which the phase accumulator reaches the
threshold (ceiling rule), the accumulator restarts at zero without carrying
overshoot and the new phase accumulates from the following day.

References:
- Ritchie, J.T. and Otter, S. (1985). Description and performance of
  CERES-Wheat: a user-oriented wheat yield model. ARS Wheat Yield Project.
- Jones, C.A. and Kiniry, J.R. (1986). CERES-Maize. Texas A&M Press.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Type

import numpy as np
import pandas as pd

from agrorisk.core import constants as C
from agrorisk.core.exceptions import (
    ConfigurationError, DataGapError, ErrorContext, IncompletePhenology
)
from agrorisk.core.types import (
    PhenologyStageDate, PhenologyState, SiteParameters, WeatherRecord
)
from agrorisk.data.contracts import CropGeneticCoefficients

logger = logging.getLogger(__name__)


# =============================================================================
# TEMPERATURE RESPONSES
# =============================================================================

def crown_temperature(air_temperature_c: float, snow_depth_cm: float = 0.0) -> float:
    """
    CERES-Wheat crown temperature.

    Equal to air temperature at or above 0 °C; below freezing the crown is
    insulated by soil and snow: Tc = 2 + T (0.4 + 0.0018 (snow - 15)^2),
    with snow depth capped at 15 cm.
    """
    if air_temperature_c >= 0.0:
        return air_temperature_c
    snow = min(snow_depth_cm, C.CROWN_SNOW_CAP_CM)
    return 2.0 + air_temperature_c * (0.4 + 0.0018 * (snow - C.CROWN_SNOW_CAP_CM) ** 2)


def daily_thermal_time(
    tmin_c: float,
    tmax_c: float,
    base_c: float,
    optimum_c: float,
    ceiling_c: float
) -> float:
    """
    Degree-days of one day from the mean of min/max temperature.

    Zero at or below base and at or above ceiling, T - Tbase up to the
    optimum, then a linear decline from (Topt - Tbase) to zero at the
    ceiling.
    """
    t = 0.5 * (tmin_c + tmax_c)
    if t <= base_c or t >= ceiling_c:
        return 0.0
    if t <= optimum_c:
        return t - base_c
    return (optimum_c - base_c) * (ceiling_c - t) / (ceiling_c - optimum_c)


def day_length(latitude_deg: float, day_of_year: int, twilight_angle_deg: float = 6.0) -> float:
    """
    Day length in hours (CERES formulation).

    The day lasts while the sun is above ``-twilight_angle_deg``; the
    default of 6 degrees includes civil twilight, 0 gives sunrise to sunset.
    """
    s1 = math.sin(math.radians(latitude_deg))
    c1 = math.cos(math.radians(latitude_deg))
    dec = 0.4093 * math.sin(0.0172 * (day_of_year - 82.2))
    twilight = math.sin(math.radians(twilight_angle_deg))
    dlv = (-s1 * math.sin(dec) - twilight) / (c1 * math.cos(dec))
    dlv = float(np.clip(dlv, -0.87, 1.0))
    return 7.639 * math.acos(dlv)


def daily_vernalization(tcrown_c: float, tmin_c: float, tmax_c: float, cumvd: float) -> float:
    """
    Update cumulative vernalization days for one day (CERES-Wheat).

    Cold days (Tmin < 15 °C, Tmax > 0 °C) add up to one vernalization day;
    hot days (Tmax > 30 °C) remove 0.5 day per degree while fewer than 10
    days have accumulated. Never below zero.
    """
    if tmin_c < C.VERNALIZATION_TMIN_LIMIT_C and tmax_c > 0.0:
        vd1 = 1.4 - 0.0778 * tcrown_c
        vd2 = 0.5 + 13.44 / (tmax_c - tmin_c + 3.0) ** 2 * tcrown_c
        vd = float(np.clip(min(1.0, vd1, vd2), 0.0, 1.0))
        return cumvd + vd
    if tmax_c > C.DEVERNALIZATION_TEMPERATURE_C and cumvd < C.DEVERNALIZATION_LIMIT_DAYS:
        return max(0.0, cumvd - 0.5 * (tmax_c - C.DEVERNALIZATION_TEMPERATURE_C))
    return cumvd


def vernalization_factor(cumvd: float, requirement: float, sensitivity: float,
                         minimum: float = 0.0) -> float:
    """VF = 1 - (0.0054545 P1V + 0.0003)(VREQ - cumvd), clamped to [minimum, 1]"""
    vf = 1.0 - (0.0054545 * sensitivity + 0.0003) * (requirement - cumvd)
    return float(np.clip(vf, minimum, 1.0))


def photoperiod_factor(sensitivity: float, daylength_h: float) -> float:
    """DF = 1 - 0.002 P1D (20 - daylength)^2, clamped to [0, 1]"""
    shortfall = max(0.0, C.PHOTOPERIOD_THRESHOLD_H - daylength_h)
    df = 1.0 - 0.002 * sensitivity * shortfall ** 2
    return float(np.clip(df, 0.0, 1.0))


# =============================================================================
# PHENOLOGY MODELS
# =============================================================================

@dataclass
class PhenologyAccumulator:
    """Mutable per-run phenology state"""
    state: PhenologyState = PhenologyState.NOT_SOWN
    phase_thermal_time: float = 0.0
    cumulative_vernalization: float = 0.0
    days_in_phase: int = 0


@dataclass(frozen=True)
class DailyPhenology:
    """Diagnostics of one simulated day"""
    date: date
    state: PhenologyState
    thermal_time: float
    development_factor: float
    phase_thermal_time: float
    cumulative_vernalization: float


class PhenologyModel(ABC):
    """
    Crop-specific phenology capability.

    Implementations are stateless with respect to a run: all per-run values
    live in the PhenologyAccumulator passed to each call.
    """

    crop_name: str = ""

    def __init__(self, coefficients: CropGeneticCoefficients):
        self.coefficients = coefficients
        self.validate()

    @abstractmethod
    def validate(self) -> None:
        """Raise ConfigurationError for unusable coefficients"""

    @abstractmethod
    def threshold(self, state: PhenologyState) -> float:
        """Degree-days needed to leave ``state``"""

    @abstractmethod
    def thermal_time(self, record: WeatherRecord, state: PhenologyState) -> float:
        """Unscaled thermal time of one day"""

    @abstractmethod
    def update(self, record: WeatherRecord, acc: PhenologyAccumulator) -> None:
        """Advance crop-specific daily state (e.g. vernalization)"""

    @abstractmethod
    def development_factor(
        self,
        record: WeatherRecord,
        acc: PhenologyAccumulator,
        site: SiteParameters
    ) -> float:
        """Scaling in [0, 1] applied to the day's thermal time"""


class WheatPhenology(PhenologyModel):
    """
    CERES-Wheat style phenology.

    Crown temperature drives thermal time before emergence and air
    temperature afterwards. During the juvenile phase thermal time is scaled
    by min(vernalization factor, photoperiod factor).
    """

    crop_name = "wheat"

    def validate(self) -> None:
        c = self.coefficients
        context = ErrorContext(unit_id=c.cultivar, component="WheatPhenology", operation="validate")
        thresholds = {
            "tt_emergence": c.tt_emergence,
            "tt_juvenile": c.tt_juvenile,
            "tt_anthesis": c.tt_anthesis,
            "tt_grain_filling": c.tt_grain_filling,
            "tt_harvest": c.tt_harvest,
        }
        for name, value in thresholds.items():
            if not value > 0:
                raise ConfigurationError(f"Thermal threshold {name}={value} must be positive", context)
        if not c.base_temperature_c < c.optimum_temperature_c < c.ceiling_temperature_c:
            raise ConfigurationError(
                f"Cardinal temperatures must satisfy base < optimum < ceiling "
                f"({c.base_temperature_c}, {c.optimum_temperature_c}, {c.ceiling_temperature_c})",
                context,
            )
        if c.vernalization_requirement_days <= 0:
            raise ConfigurationError("Vernalization requirement must be positive", context)

        self._thresholds = {
            PhenologyState.SOWN: c.tt_emergence,
            PhenologyState.EMERGED: c.tt_juvenile,
            PhenologyState.END_JUVENILE: c.tt_anthesis,
            PhenologyState.ANTHESIS: c.tt_grain_filling,
            PhenologyState.END_GRAIN_FILLING: c.tt_harvest,
        }

    def threshold(self, state: PhenologyState) -> float:
        return self._thresholds[state]

    def _development_temperatures(self, record: WeatherRecord, state: PhenologyState):
        if state < PhenologyState.EMERGED:
            snow = self.coefficients.snow_depth_cm
            return crown_temperature(record.tmin_c, snow), crown_temperature(record.tmax_c, snow)
        return record.tmin_c, record.tmax_c

    def thermal_time(self, record: WeatherRecord, state: PhenologyState) -> float:
        c = self.coefficients
        tmin, tmax = self._development_temperatures(record, state)
        return daily_thermal_time(
            tmin, tmax, c.base_temperature_c, c.optimum_temperature_c, c.ceiling_temperature_c
        )

    def update(self, record: WeatherRecord, acc: PhenologyAccumulator) -> None:
        if acc.state is not PhenologyState.EMERGED:
            return
        c = self.coefficients
        snow = c.snow_depth_cm
        tcrown = 0.5 * (crown_temperature(record.tmin_c, snow) + crown_temperature(record.tmax_c, snow))
        cumvd = daily_vernalization(tcrown, record.tmin_c, record.tmax_c, acc.cumulative_vernalization)
        acc.cumulative_vernalization = min(cumvd, c.vernalization_requirement_days)

    def development_factor(
        self,
        record: WeatherRecord,
        acc: PhenologyAccumulator,
        site: SiteParameters
    ) -> float:
        if acc.state is not PhenologyState.EMERGED:
            return 1.0
        c = self.coefficients
        vf = vernalization_factor(
            acc.cumulative_vernalization,
            c.vernalization_requirement_days,
            c.vernalization_sensitivity,
            c.min_vernalization_factor,
        )
        if c.photoperiod_sensitivity is None:
            return vf
        df = photoperiod_factor(
            c.photoperiod_sensitivity,
            day_length(site.latitude, record.day_of_year, c.twilight_angle_deg),
        )
        return min(vf, df)


_PHENOLOGY_MODELS: Dict[str, Type[PhenologyModel]] = {
    "wheat": WheatPhenology,
}


def register_phenology_model(crop_name: str, model_cls: Type[PhenologyModel]) -> None:
    """Make a PhenologyModel implementation available to create_phenology_model"""
    _PHENOLOGY_MODELS[crop_name.lower()] = model_cls


def create_phenology_model(coefficients: CropGeneticCoefficients) -> PhenologyModel:
    """
    Create the phenology model for the crop named in the coefficients.

    Raises:
        ConfigurationError: No model registered for the crop
    """
    model_cls = _PHENOLOGY_MODELS.get(coefficients.crop.lower())
    if model_cls is None:
        raise ConfigurationError(
            f"No phenology model for crop '{coefficients.crop}'. "
            f"Available: {sorted(_PHENOLOGY_MODELS)}",
            ErrorContext(unit_id=coefficients.cultivar, component="PhenologyEngine"),
        )
    return model_cls(coefficients)


# =============================================================================
# ENGINE
# =============================================================================

@dataclass
class PhenologyResult:
    """Stage dates reached by one run plus daily diagnostics"""
    planting_date: date
    stages: List[PhenologyStageDate]
    final_state: PhenologyState
    daily: List[DailyPhenology] = field(default_factory=list)
    issue: Optional[IncompletePhenology] = None

    @property
    def complete(self) -> bool:
        return self.final_state is PhenologyState.HARVEST

    def stage_date(self, stage: PhenologyState) -> Optional[date]:
        """Date on which ``stage`` was entered, None if never reached"""
        name = stage.stage_name
        for s in self.stages:
            if s.stage == name:
                return s.date
        return None

    @property
    def stage_dates(self) -> Dict[PhenologyState, date]:
        by_name = {s.stage: s.date for s in self.stages}
        return {
            state: by_name[state.stage_name]
            for state in PhenologyState
            if state.stage_name in by_name
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Phenology table with columns Stage, Date, DOY, DAP"""
        return pd.DataFrame(
            [(s.stage, s.date, s.day_of_year, s.days_after_planting) for s in self.stages],
            columns=list(C.PHENOLOGY_COLUMNS),
        )

    def daily_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([
            {
                "Date": d.date,
                "State": d.state.name,
                "ThermalTime": d.thermal_time,
                "DevelopmentFactor": d.development_factor,
                "PhaseThermalTime": d.phase_thermal_time,
                "CumulativeVernalization": d.cumulative_vernalization,
            }
            for d in self.daily
        ])


class PhenologyEngine:
    """
    Run a PhenologyModel over a daily weather series.

    Example:
        engine = PhenologyEngine(create_phenology_model(coefficients))
        result = engine.run(weather, date(2020, 10, 15), site)
    """

    def __init__(self, model: PhenologyModel, logger: Optional[logging.Logger] = None):
        self.model = model
        self.logger = logger or logging.getLogger(f"{__name__}.PhenologyEngine")

    def _stage_record(self, state: PhenologyState, day: date, planting: date) -> PhenologyStageDate:
        return PhenologyStageDate(
            stage=state.stage_name,
            date=day,
            day_of_year=day.timetuple().tm_yday,
            days_after_planting=(day - planting).days,
        )

    def run(
        self,
        weather: Sequence[WeatherRecord],
        planting_date: date,
        site: SiteParameters
    ) -> PhenologyResult:
        """
        Simulate phenology from the planting date to harvest or weather end.

        Args:
            weather: Contiguous daily weather covering the planting date
            planting_date: Sowing date
            site: Station constants (latitude for photoperiod)

        Returns:
            PhenologyResult; ``complete`` is False and ``issue`` is set when
            the series ended before harvest.

        Raises:
            DataGapError: Weather does not cover the planting date or has gaps
        """
        context = ErrorContext(unit_id=site.station_id, component="PhenologyEngine", operation="run")
        if not weather or not weather[0].date <= planting_date <= weather[-1].date:
            raise DataGapError(f"Weather series does not cover planting date {planting_date}", context)

        acc = PhenologyAccumulator()
        stages: List[PhenologyStageDate] = []
        daily: List[DailyPhenology] = []
        expected = None

        for record in weather:
            if record.date < planting_date:
                continue
            if expected is not None and record.date != expected:
                context.date = expected.isoformat()
                raise DataGapError(f"Missing weather for {expected}", context)
            expected = record.date + timedelta(days=1)

            if acc.state is PhenologyState.NOT_SOWN:
                acc.state = PhenologyState.SOWN
                stages.append(self._stage_record(acc.state, record.date, planting_date))

            tt = self.model.thermal_time(record, acc.state)
            self.model.update(record, acc)
            factor = self.model.development_factor(record, acc, site)
            acc.phase_thermal_time += tt * factor
            acc.days_in_phase += 1

            daily.append(DailyPhenology(
                date=record.date,
                state=acc.state,
                thermal_time=tt,
                development_factor=factor,
                phase_thermal_time=acc.phase_thermal_time,
                cumulative_vernalization=acc.cumulative_vernalization,
            ))

            if acc.phase_thermal_time >= self.model.threshold(acc.state):
                self.logger.debug(
                    f"{record.date}: {acc.state.name} -> {acc.state.next().name} after "
                    f"{acc.days_in_phase} days ({acc.phase_thermal_time:.1f} °C d)"
                )
                acc.state = acc.state.next()
                acc.phase_thermal_time = 0.0
                acc.days_in_phase = 0
                stages.append(self._stage_record(acc.state, record.date, planting_date))
                if acc.state is PhenologyState.HARVEST:
                    break

        result = PhenologyResult(
            planting_date=planting_date,
            stages=stages,
            final_state=acc.state,
            daily=daily,
        )

        if not result.complete:
            result.issue = IncompletePhenology(
                f"Weather ended on {weather[-1].date} before harvest; last stage "
                f"{acc.state.stage_name}",
                last_stage=acc.state.stage_name,
                context=ErrorContext(
                    unit_id=site.station_id,
                    date=weather[-1].date.isoformat(),
                    component="PhenologyEngine",
                ),
            )
            self.logger.warning(str(result.issue))
        else:
            self.logger.info(
                f"Phenology complete: harvest {stages[-1].date} "
                f"({stages[-1].days_after_planting} DAP)"
            )

        return result
