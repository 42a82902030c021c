"""
Physical constants and FAO-56 default values.
"""
from typing import Final

# Physical constants
SOLAR_CONSTANT: Final[float] = 0.0820  # MJ m-2 min-1
STEFAN_BOLTZMANN: Final[float] = 4.903e-9  # MJ K-4 m-2 day-1
LATENT_HEAT_FACTOR: Final[float] = 0.408  # mm day-1 per MJ m-2 day-1
ALBEDO_REFERENCE: Final[float] = 0.23  # grass reference surface

# Hargreaves-Samani (FAO-56 Eq. 52)
HARGREAVES_COEFFICIENT: Final[float] = 0.0023
HARGREAVES_TEMPERATURE_OFFSET: Final[float] = 17.8

# FAO-56 dual crop coefficient defaults
REFERENCE_ET_DEMAND: Final[float] = 5.0  # mm/day at which p is tabulated
P_ADJUSTMENT_SLOPE: Final[float] = 0.04
P_MIN: Final[float] = 0.1
P_MAX: Final[float] = 0.8
DEFAULT_WIND_SPEED_M_S: Final[float] = 2.0
DEFAULT_RH_MIN_PCT: Final[float] = 45.0
MIN_EXPOSED_WETTED_FRACTION: Final[float] = 0.01
EVAPORATION_LAYER_DEPTH_M: Final[float] = 0.10
REW_MIN_MM: Final[float] = 2.0
REW_MAX_MM: Final[float] = 12.0
REW_TEW_RATIO: Final[float] = 0.35

# Crown temperature (CERES-Wheat)
CROWN_SNOW_CAP_CM: Final[float] = 15.0

# Vernalization (CERES-Wheat)
DEVERNALIZATION_TEMPERATURE_C: Final[float] = 30.0
DEVERNALIZATION_LIMIT_DAYS: Final[float] = 10.0
VERNALIZATION_TMIN_LIMIT_C: Final[float] = 15.0

# Photoperiod
PHOTOPERIOD_THRESHOLD_H: Final[float] = 20.0

# Numerical stability
EPSILON: Final[float] = 1e-10
INVARIANT_TOLERANCE: Final[float] = 1e-9

# Output contract of the daily balance table
BALANCE_COLUMNS: Final[tuple] = (
    "Date", "ETref", "ETc", "Rain", "Dr", "TAW", "RAW", "Ks",
    "RootDepth", "PlantHeight", "GrowthStage",
)
PHENOLOGY_COLUMNS: Final[tuple] = ("Stage", "Date", "DOY", "DAP")
