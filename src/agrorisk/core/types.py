"""
Type definitions for the agrorisk simulation engine.
Immutable records exchanged between the engine components.
"""
import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Tuple

from typing_extensions import TypeAlias

from agrorisk.core.exceptions import InvalidSoilProfile

# Type aliases for clarity
UnitID: TypeAlias = str
Date: TypeAlias = date
DepthCm: TypeAlias = float
DepthM: TypeAlias = float
WaterMm: TypeAlias = float


def is_missing(value: Optional[float]) -> bool:
    """True for None or NaN"""
    return value is None or (isinstance(value, float) and math.isnan(value))


class PhenologyState(int, Enum):
    """Wheat development states, in strict order"""
    NOT_SOWN = 0
    SOWN = 1
    EMERGED = 2
    END_JUVENILE = 3
    ANTHESIS = 4
    END_GRAIN_FILLING = 5
    HARVEST = 6

    @property
    def stage_name(self) -> str:
        """Label of the stage event that enters this state"""
        return _STAGE_NAMES[self]

    def next(self) -> "PhenologyState":
        if self is PhenologyState.HARVEST:
            raise ValueError("HARVEST is the terminal state")
        return PhenologyState(self.value + 1)


_STAGE_NAMES = {
    PhenologyState.NOT_SOWN: "NotSown",
    PhenologyState.SOWN: "Sowing",
    PhenologyState.EMERGED: "Emergence",
    PhenologyState.END_JUVENILE: "EndJuvenile",
    PhenologyState.ANTHESIS: "Anthesis",
    PhenologyState.END_GRAIN_FILLING: "EndGrainFilling",
    PhenologyState.HARVEST: "Harvest",
}


class GrowthStage(str, Enum):
    """FAO-56 crop growth stages"""
    INITIAL = "Initial"
    DEVELOPMENT = "Development"
    MID = "Mid"
    LATE = "Late"


class UnitStatus(str, Enum):
    """Outcome of one simulation unit"""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class ReferenceETMethod(str, Enum):
    HARGREAVES = "hargreaves"
    PENMAN_MONTEITH = "penman_monteith"


@dataclass(frozen=True)
class WeatherRecord:
    """One day of weather forcing"""
    date: Date
    tmin_c: float
    tmax_c: float
    precipitation_mm: float = 0.0
    solar_radiation_mj_m2: Optional[float] = None
    wind_speed_m_s: Optional[float] = None
    relative_humidity_pct: Optional[float] = None

    @property
    def tmean_c(self) -> float:
        return 0.5 * (self.tmin_c + self.tmax_c)

    @property
    def day_of_year(self) -> int:
        return self.date.timetuple().tm_yday


@dataclass(frozen=True)
class SiteParameters:
    """Station constants used by reference ET and photoperiod"""
    station_id: str
    latitude: float
    elevation_m: float = 0.0


@dataclass(frozen=True)
class SoilLayer:
    """One soil horizon, depths in cm, water contents volumetric (m3/m3)"""
    depth_top_cm: DepthCm
    depth_bottom_cm: DepthCm
    field_capacity: float
    wilting_point: float
    saturation: Optional[float] = None

    @property
    def thickness_m(self) -> DepthM:
        return (self.depth_bottom_cm - self.depth_top_cm) / 100.0

    @property
    def available_water_per_m(self) -> float:
        """Plant-available water in mm per m of depth"""
        return 1000.0 * (self.field_capacity - self.wilting_point)

    def overlap_m(self, top_m: DepthM, bottom_m: DepthM) -> DepthM:
        """Thickness of this layer inside the [top_m, bottom_m] interval"""
        upper = max(self.depth_top_cm / 100.0, top_m)
        lower = min(self.depth_bottom_cm / 100.0, bottom_m)
        return max(0.0, lower - upper)


@dataclass(frozen=True)
class SoilProfileDerived:
    """
    Soil properties derived once per (soil, initial condition) pair.

    Attributes:
        max_depth_m: Maximum usable rooting depth (m)
        total_available_water_mm: TAW over the usable depth (mm)
        taw_per_m: Mean TAW per metre of usable depth (mm/m)
        readily_evaporable_water_mm: REW of the surface layer (mm)
        total_evaporable_water_mm: TEW of the surface layer (mm)
        initial_condition: Requested fraction of field capacity
        initial_depletion_mm: (1 - f) * TAW (mm)
        layers: Layers clipped to the usable depth
    """
    max_depth_m: DepthM
    total_available_water_mm: WaterMm
    taw_per_m: float
    readily_evaporable_water_mm: WaterMm
    total_evaporable_water_mm: WaterMm
    initial_condition: float
    initial_depletion_mm: WaterMm
    layers: Tuple[SoilLayer, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not 0.0 <= self.initial_depletion_mm <= self.total_available_water_mm + 1e-9:
            raise InvalidSoilProfile(
                f"Initial depletion {self.initial_depletion_mm:.3f} mm outside "
                f"[0, {self.total_available_water_mm:.3f}] mm"
            )

    def available_water(self, depth_m: DepthM) -> WaterMm:
        """TAW (mm) of the top depth_m metres, limited to the usable depth"""
        depth = min(max(depth_m, 0.0), self.max_depth_m)
        return float(sum(
            layer.available_water_per_m * layer.overlap_m(0.0, depth)
            for layer in self.layers
        ))

    def initial_depletion_at(self, depth_m: DepthM) -> WaterMm:
        """Initial depletion of the top depth_m metres"""
        return (1.0 - self.initial_condition) * self.available_water(depth_m)


@dataclass(frozen=True)
class PhenologyStageDate:
    """Date at which a development stage was reached"""
    stage: str
    date: Date
    day_of_year: int
    days_after_planting: int


@dataclass(frozen=True)
class DailyBalanceState:
    """
    One simulated day of the dual-Kc water balance.

    Depletions are end-of-day values; Ks is the start-of-day stress
    coefficient that was applied to the day's transpiration.
    ``days_in_stage`` counts the day itself, starting at 1 on the first
    day of each growth stage.
    """
    date: Date
    growth_stage: GrowthStage
    root_depth_m: DepthM
    plant_height_m: float
    kcb: float
    ke: float
    kc_act: float
    et_ref: float
    et_c: float
    transpiration_mm: WaterMm
    evaporation_mm: WaterMm
    rain_mm: WaterMm
    deep_percolation_mm: WaterMm
    dr: WaterMm
    de: WaterMm
    taw: WaterMm
    raw: WaterMm
    ks: float
    et_ref_method: str = ReferenceETMethod.HARGREAVES.value
    days_in_stage: int = 0

    def as_row(self) -> dict:
        return {
            "Date": self.date,
            "ETref": self.et_ref,
            "ETc": self.et_c,
            "Rain": self.rain_mm,
            "Dr": self.dr,
            "TAW": self.taw,
            "RAW": self.raw,
            "Ks": self.ks,
            "RootDepth": self.root_depth_m,
            "PlantHeight": self.plant_height_m,
            "GrowthStage": self.growth_stage.value,
            "Kcb": self.kcb,
            "Ke": self.ke,
            "KcAct": self.kc_act,
            "Transpiration": self.transpiration_mm,
            "Evaporation": self.evaporation_mm,
            "DeepPercolation": self.deep_percolation_mm,
            "De": self.de,
            "ETrefMethod": self.et_ref_method,
            "DaysInStage": self.days_in_stage,
        }
