"""
Reference evapotranspiration and FAO-56 dual crop coefficient helpers.

Reference ET is computed per day with either the temperature-only
Hargreaves-Samani equation or the FAO-56 Penman-Monteith combination
equation. When Penman-Monteith inputs are missing the day is computed with
Hargreaves and the caller receives a MissingWeatherField condition.

References:
- Allen, R.G., Pereira, L.S., Raes, D. and Smith, M. (1998).
  Crop evapotranspiration - Guidelines for computing crop water requirements.
  FAO Irrigation and drainage paper 56. FAO, Rome.
- Hargreaves, G.H. and Samani, Z.A. (1985). Reference crop
  evapotranspiration from temperature. Applied Engineering in Agriculture, 1(2).
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np

from agrorisk.core import constants as C
from agrorisk.core.exceptions import ConfigurationError, ErrorContext, MissingWeatherField
from agrorisk.core.types import ReferenceETMethod, SiteParameters, WeatherRecord, is_missing

logger = logging.getLogger(__name__)


# =============================================================================
# SOLAR GEOMETRY
# =============================================================================

def extraterrestrial_radiation(latitude_deg: float, day_of_year: int) -> float:
    """
    Daily extraterrestrial radiation Ra (FAO-56 Eq. 21-25).

    Args:
        latitude_deg: Latitude in decimal degrees (negative south)
        day_of_year: Julian day 1-366

    Returns:
        Ra in MJ m-2 day-1
    """
    phi = math.radians(latitude_deg)
    dr = 1.0 + 0.033 * math.cos(2.0 * math.pi * day_of_year / 365.0)
    delta = 0.409 * math.sin(2.0 * math.pi * day_of_year / 365.0 - 1.39)

    # Polar day / night guard on the sunset hour angle argument
    x = float(np.clip(-math.tan(phi) * math.tan(delta), -1.0, 1.0))
    omega_s = math.acos(x)

    ra = (24.0 * 60.0 / math.pi) * C.SOLAR_CONSTANT * dr * (
        omega_s * math.sin(phi) * math.sin(delta)
        + math.cos(phi) * math.cos(delta) * math.sin(omega_s)
    )
    return max(0.0, ra)


def saturation_vapour_pressure(temperature_c: float) -> float:
    """e°(T) in kPa (FAO-56 Eq. 11)"""
    return 0.6108 * math.exp(17.27 * temperature_c / (temperature_c + 237.3))


# =============================================================================
# REFERENCE ET
# =============================================================================

@dataclass(frozen=True)
class ReferenceETResult:
    """Reference ET of one day and how it was obtained"""
    value: float
    method_used: ReferenceETMethod
    fallback: Optional[MissingWeatherField] = None


def hargreaves_et0(tmin_c: float, tmax_c: float, ra: float) -> float:
    """
    Hargreaves-Samani reference ET (FAO-56 Eq. 52).

    ET0 = 0.0023 (Tmean + 17.8) (Tmax - Tmin)^0.5 × 0.408 Ra
    """
    tmean = 0.5 * (tmin_c + tmax_c)
    trange = max(0.0, tmax_c - tmin_c)
    et0 = (C.HARGREAVES_COEFFICIENT
           * (tmean + C.HARGREAVES_TEMPERATURE_OFFSET)
           * math.sqrt(trange)
           * C.LATENT_HEAT_FACTOR * ra)
    return max(0.0, et0)


def penman_monteith_et0(
    record: WeatherRecord,
    site: SiteParameters,
    ra: float
) -> float:
    """
    FAO-56 Penman-Monteith grass reference ET (Eq. 6), daily step, G = 0.

    Requires solar radiation (MJ m-2 day-1), wind speed at 2 m (m/s) and
    mean relative humidity (%) on the record.
    """
    tmin, tmax = record.tmin_c, record.tmax_c
    tmean = record.tmean_c
    rs = record.solar_radiation_mj_m2
    u2 = max(0.0, record.wind_speed_m_s)
    rh = float(np.clip(record.relative_humidity_pct, 0.0, 100.0))

    # Psychrometric constant from elevation (Eq. 7-8)
    pressure = 101.3 * ((293.0 - 0.0065 * site.elevation_m) / 293.0) ** 5.26
    gamma = 0.000665 * pressure

    # Slope of saturation vapour pressure curve (Eq. 13)
    delta = 4098.0 * saturation_vapour_pressure(tmean) / (tmean + 237.3) ** 2

    es = 0.5 * (saturation_vapour_pressure(tmax) + saturation_vapour_pressure(tmin))
    ea = es * rh / 100.0

    # Net radiation (Eq. 37-40)
    rso = (0.75 + 2e-5 * site.elevation_m) * ra
    rns = (1.0 - C.ALBEDO_REFERENCE) * rs
    relative_sw = min(1.0, rs / rso) if rso > 0 else 1.0
    rnl = (C.STEFAN_BOLTZMANN
           * 0.5 * ((tmax + 273.16) ** 4 + (tmin + 273.16) ** 4)
           * (0.34 - 0.14 * math.sqrt(max(ea, 0.0)))
           * (1.35 * relative_sw - 0.35))
    rn = rns - rnl

    numerator = (0.408 * delta * rn
                 + gamma * (900.0 / (tmean + 273.0)) * u2 * (es - ea))
    denominator = delta + gamma * (1.0 + 0.34 * u2)
    return max(0.0, numerator / denominator)


def _missing_combination_fields(record: WeatherRecord) -> List[str]:
    fields = []
    if is_missing(record.solar_radiation_mj_m2):
        fields.append("solar_radiation_mj_m2")
    if is_missing(record.wind_speed_m_s):
        fields.append("wind_speed_m_s")
    if is_missing(record.relative_humidity_pct):
        fields.append("relative_humidity_pct")
    return fields


def reference_et(
    record: WeatherRecord,
    site: SiteParameters,
    method: Union[ReferenceETMethod, str] = ReferenceETMethod.HARGREAVES
) -> ReferenceETResult:
    """
    Daily reference evapotranspiration.

    Args:
        record: Weather of the day
        site: Station latitude and elevation
        method: 'hargreaves' or 'penman_monteith'

    Returns:
        ReferenceETResult; ``fallback`` is set when Penman-Monteith was
        requested but the day lacked radiation, wind or humidity.

    Raises:
        ConfigurationError: Unknown method name
    """
    try:
        method = ReferenceETMethod(method)
    except ValueError:
        raise ConfigurationError(
            f"Unknown reference ET method '{method}'",
            ErrorContext(component="ReferenceET", operation="reference_et")
        )

    ra = extraterrestrial_radiation(site.latitude, record.day_of_year)

    if method is ReferenceETMethod.PENMAN_MONTEITH:
        missing = _missing_combination_fields(record)
        if not missing:
            return ReferenceETResult(
                value=penman_monteith_et0(record, site, ra),
                method_used=ReferenceETMethod.PENMAN_MONTEITH,
            )
        condition = MissingWeatherField(
            f"Penman-Monteith inputs missing ({', '.join(missing)}); using Hargreaves",
            fields=missing,
            context=ErrorContext(
                unit_id=site.station_id,
                date=record.date.isoformat(),
                component="ReferenceET",
            ),
        )
        return ReferenceETResult(
            value=hargreaves_et0(record.tmin_c, record.tmax_c, ra),
            method_used=ReferenceETMethod.HARGREAVES,
            fallback=condition,
        )

    return ReferenceETResult(
        value=hargreaves_et0(record.tmin_c, record.tmax_c, ra),
        method_used=ReferenceETMethod.HARGREAVES,
    )


def reference_et_series(
    weather: Sequence[WeatherRecord],
    site: SiteParameters,
    method: Union[ReferenceETMethod, str] = ReferenceETMethod.HARGREAVES
) -> List[ReferenceETResult]:
    """Reference ET for every day of a weather series"""
    results = [reference_et(record, site, method) for record in weather]
    n_fallback = sum(1 for r in results if r.fallback is not None)
    if n_fallback:
        logger.warning(
            f"{site.station_id}: {n_fallback}/{len(results)} days fell back to Hargreaves"
        )
    return results


# =============================================================================
# DUAL CROP COEFFICIENT
# =============================================================================

def calculate_Kr(De: float, REW: float, TEW: float) -> float:
    """
    Evaporation reduction coefficient Kr (FAO-56 Eq. 74).

    Kr = 1                          for De <= REW
    Kr = (TEW - De) / (TEW - REW)   for De > REW
    """
    if De <= REW:
        return 1.0
    if De >= TEW or TEW <= REW:
        return 0.0
    return (TEW - De) / (TEW - REW)


def calculate_Ke(
    Kcb: float,
    Kr: float,
    Kc_max: float,
    few: float
) -> float:
    """
    Soil evaporation coefficient Ke (FAO-56 Eq. 71).

    Ke = min(Kr × (Kc_max - Kcb), few × Kc_max)

    Args:
        Kcb: Basal crop coefficient
        Kr: Evaporation reduction coefficient
        Kc_max: Upper limit of Kc after rain
        few: Fraction of soil both exposed and wetted

    Returns:
        Ke (>= 0)
    """
    few = float(np.clip(few, C.MIN_EXPOSED_WETTED_FRACTION, 1.0))
    Ke = min(Kr * (Kc_max - Kcb), few * Kc_max)
    return max(0.0, Ke)


def calculate_Kc_max(
    Kcb: float,
    u2: float = C.DEFAULT_WIND_SPEED_M_S,
    RH_min: float = C.DEFAULT_RH_MIN_PCT,
    crop_height_m: float = 0.1
) -> float:
    """
    Upper limit of Kc (FAO-56 Eq. 72).

    Kc_max = max{1.2 + [0.04(u2-2) - 0.004(RH_min-45)](h/3)^0.3, Kcb + 0.05}
    """
    u2 = float(np.clip(u2, 1.0, 6.0))
    RH_min = float(np.clip(RH_min, 20.0, 80.0))
    h = float(np.clip(crop_height_m, 0.1, 10.0))

    climate = 1.2 + (0.04 * (u2 - 2.0) - 0.004 * (RH_min - 45.0)) * (h / 3.0) ** 0.3
    return max(climate, Kcb + 0.05)


def canopy_cover_fraction(
    Kcb: float,
    Kc_min: float,
    Kc_max: float,
    crop_height_m: float
) -> float:
    """
    Effective ground cover fc (FAO-56 Eq. 76).

    fc = ((Kcb - Kc_min) / (Kc_max - Kc_min)) ^ (1 + 0.5 h)
    """
    if Kc_max <= Kc_min or Kcb <= Kc_min:
        return 0.0
    ratio = (Kcb - Kc_min) / (Kc_max - Kc_min)
    ratio = float(np.clip(ratio, 0.0, 1.0))
    return ratio ** (1.0 + 0.5 * max(crop_height_m, 0.0))


def calculate_p_adjusted(
    p_standard: float,
    ET0: float,
    ET0_ref: float = C.REFERENCE_ET_DEMAND
) -> float:
    """
    Adjust depletion fraction p for ET demand (FAO-56 Table 22 footnote).

    p = p_standard + 0.04 × (5 - ET0), limited to [0.1, 0.8]
    """
    p_adj = p_standard + C.P_ADJUSTMENT_SLOPE * (ET0_ref - ET0)
    return float(np.clip(p_adj, C.P_MIN, C.P_MAX))


def calculate_Ks(Dr: float, TAW: float, RAW: float) -> float:
    """
    Water stress coefficient Ks (FAO-56 Eq. 84).

    Ks = 1                              when Dr <= RAW
    Ks = (TAW - Dr) / (TAW - RAW)       otherwise, clamped to [0, 1]

    Args:
        Dr: Root zone depletion at the start of the day (mm)
        TAW: Total available water of the root zone (mm)
        RAW: Readily available water (mm)
    """
    if Dr <= RAW:
        return 1.0
    if TAW - RAW <= C.EPSILON:
        return 0.0
    return float(np.clip((TAW - Dr) / (TAW - RAW), 0.0, 1.0))
