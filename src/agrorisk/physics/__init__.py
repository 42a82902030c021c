"""Physics modules: reference ET, soil profile, phenology and water balance."""
from agrorisk.physics.evapotranspiration import (
    ReferenceETResult,
    reference_et,
    reference_et_series,
)
from agrorisk.physics.soil_profile import derive_soil_profile
from agrorisk.physics.phenology import (
    PhenologyEngine,
    PhenologyModel,
    PhenologyResult,
    WheatPhenology,
    create_phenology_model,
    register_phenology_model,
)
from agrorisk.physics.crop_development import (
    CropDevelopmentModel,
    StageProgress,
    growth_stage_for_date,
)
from agrorisk.physics.water_balance import (
    BalanceResult,
    WaterBalanceEngine,
)

__all__ = [
    "ReferenceETResult",
    "reference_et",
    "reference_et_series",
    "derive_soil_profile",
    # Phenology
    "PhenologyEngine",
    "PhenologyModel",
    "PhenologyResult",
    "WheatPhenology",
    "create_phenology_model",
    "register_phenology_model",
    # Water balance
    "CropDevelopmentModel",
    "StageProgress",
    "growth_stage_for_date",
    "BalanceResult",
    "WaterBalanceEngine",
]
