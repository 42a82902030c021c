"""
Data contracts for crop parameters and simulation scenarios.
Ensures parameter consistency and provides validation.
"""
from datetime import date
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from agrorisk.core.exceptions import ConfigurationError, ErrorContext


class _Contract(BaseModel):
    """Frozen, strictly validated parameter set"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], name: Optional[str] = None):
        """Validate a mapping, reporting failures as ConfigurationError"""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid {cls.__name__}: {exc.error_count()} error(s): "
                + "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()),
                ErrorContext(unit_id=name, component=cls.__name__, operation="from_mapping"),
            ) from exc


class CropGeneticCoefficients(_Contract):
    """
    Cultivar-specific development coefficients (CERES-Wheat conventions).

    Thermal thresholds are degree-days needed to leave each phase:
    sowing to emergence, emergence to end of juvenile phase, end of juvenile
    to anthesis, anthesis to end of grain filling, end of grain filling to
    harvest.
    """
    cultivar: str
    crop: str = "wheat"

    # Cardinal temperatures (°C)
    base_temperature_c: float = 0.0
    optimum_temperature_c: float = 26.0
    ceiling_temperature_c: float = 34.0

    # Thermal time thresholds (°C day)
    tt_emergence: float = Field(58.6, gt=0)
    tt_juvenile: float = Field(400.0, gt=0)
    tt_anthesis: float = Field(675.0, gt=0)
    tt_grain_filling: float = Field(500.0, gt=0)
    tt_harvest: float = Field(250.0, gt=0)

    # Vernalization
    vernalization_requirement_days: float = Field(50.0, gt=0)
    vernalization_sensitivity: float = Field(1.0, ge=0)
    min_vernalization_factor: float = Field(0.0, ge=0, le=1)

    # Photoperiod, None disables the response
    photoperiod_sensitivity: Optional[float] = Field(3.675, ge=0)
    # Sun elevation below the horizon still counted as day; 6 is civil twilight
    twilight_angle_deg: float = Field(6.0, ge=0, le=18)

    # Crown temperature insulation
    snow_depth_cm: float = Field(0.0, ge=0)

    @model_validator(mode="after")
    def check_cardinal_temperatures(self):
        if not self.base_temperature_c < self.optimum_temperature_c < self.ceiling_temperature_c:
            raise ValueError(
                "cardinal temperatures must satisfy base < optimum < ceiling"
            )
        return self


class CropWaterParameters(_Contract):
    """
    FAO-56 crop water parameters.

    Nominal stage lengths are only used to ramp coefficients when the
    closing phenology boundary of a stage was never reached.
    """
    kcb_ini: float = Field(0.15, ge=0, le=1.5)
    kcb_mid: float = Field(1.10, ge=0, le=1.5)
    kcb_end: float = Field(0.25, ge=0, le=1.5)
    kc_min: float = Field(0.15, ge=0, le=0.5)

    min_root_depth_m: float = Field(0.15, gt=0)
    max_root_depth_m: float = Field(1.5, gt=0)
    max_plant_height_m: float = Field(1.0, gt=0)

    depletion_fraction: float = Field(0.55, gt=0, lt=1)
    senescence_fraction: float = Field(0.5, ge=0, le=1)

    nominal_initial_days: int = Field(15, gt=0)
    nominal_development_days: int = Field(25, gt=0)
    nominal_mid_days: int = Field(50, gt=0)
    nominal_late_days: int = Field(30, gt=0)

    @model_validator(mode="after")
    def check_root_depths(self):
        if self.min_root_depth_m > self.max_root_depth_m:
            raise ValueError("min_root_depth_m must not exceed max_root_depth_m")
        return self


class Cultivar(_Contract):
    """Genetic and water parameters of one cultivar"""
    genetics: CropGeneticCoefficients
    water: CropWaterParameters = Field(default_factory=CropWaterParameters)

    @property
    def name(self) -> str:
        return self.genetics.cultivar


class Scenario(_Contract):
    """Management scenario of one simulation unit"""
    planting_date: date
    initial_condition: float = Field(1.0, ge=0, le=1)
    simulation_start: Optional[date] = None
    simulation_end: Optional[date] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.simulation_start and self.simulation_end and self.simulation_end < self.simulation_start:
            raise ValueError("simulation_end precedes simulation_start")
        if self.simulation_end and self.simulation_end < self.planting_date:
            raise ValueError("simulation_end precedes planting_date")
        return self
