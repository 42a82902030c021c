"""
Derived soil water properties for the FAO-56 root zone balance.

Computes, once per (soil, initial condition) pair, the usable rooting depth,
total available water (TAW), the surface layer evaporation parameters
(REW/TEW, FAO-56 Eq. 73 and Table 19) and the initial root zone depletion.
"""

import logging
from typing import Sequence

import numpy as np

from agrorisk.core import constants as C
from agrorisk.core.exceptions import ConfigurationError, ErrorContext, InvalidSoilProfile
from agrorisk.core.types import SoilLayer, SoilProfileDerived

logger = logging.getLogger(__name__)

_DEPTH_TOLERANCE_CM = 1e-6


def validate_layers(layers: Sequence[SoilLayer], soil_id: str = None) -> None:
    """
    Check that layers are ordered, contiguous and physically consistent.

    Raises:
        InvalidSoilProfile: On the first problem found
    """
    context = ErrorContext(unit_id=soil_id, component="SoilProfile", operation="validate")

    if not layers:
        raise InvalidSoilProfile("Soil profile has no layers", context)

    if layers[0].depth_top_cm < 0:
        raise InvalidSoilProfile(
            f"First layer starts above the surface ({layers[0].depth_top_cm} cm)", context
        )

    previous_bottom = None
    for i, layer in enumerate(layers):
        if layer.depth_bottom_cm <= layer.depth_top_cm:
            raise InvalidSoilProfile(
                f"Layer {i}: bottom {layer.depth_bottom_cm} cm not below top "
                f"{layer.depth_top_cm} cm", context
            )
        if previous_bottom is not None and abs(layer.depth_top_cm - previous_bottom) > _DEPTH_TOLERANCE_CM:
            raise InvalidSoilProfile(
                f"Layer {i}: depths not contiguous/monotonic (top {layer.depth_top_cm} cm, "
                f"previous bottom {previous_bottom} cm)", context
            )
        if not 0.0 <= layer.wilting_point < layer.field_capacity <= 1.0:
            raise InvalidSoilProfile(
                f"Layer {i}: wilting point {layer.wilting_point} must be below field "
                f"capacity {layer.field_capacity} (both in [0, 1])", context
            )
        if layer.saturation is not None and layer.field_capacity > layer.saturation:
            raise InvalidSoilProfile(
                f"Layer {i}: field capacity {layer.field_capacity} above saturation "
                f"{layer.saturation}", context
            )
        previous_bottom = layer.depth_bottom_cm


def evaporable_water(
    layers: Sequence[SoilLayer],
    evaporation_layer_depth_m: float = C.EVAPORATION_LAYER_DEPTH_M
) -> tuple:
    """
    Readily and total evaporable water of the surface layer.

    TEW = 1000 (θFC - 0.5 θWP) Ze, depth-weighted over the layers within Ze.
    REW = 0.35 TEW limited to [2, 12] mm and never above TEW.

    Returns:
        (REW, TEW) in mm
    """
    tew = sum(
        1000.0 * (layer.field_capacity - 0.5 * layer.wilting_point)
        * layer.overlap_m(0.0, evaporation_layer_depth_m)
        for layer in layers
    )
    rew = float(np.clip(C.REW_TEW_RATIO * tew, C.REW_MIN_MM, C.REW_MAX_MM))
    rew = min(rew, tew)
    return rew, float(tew)


def derive_soil_profile(
    layers: Sequence[SoilLayer],
    max_depth_cap_m: float,
    initial_condition: float,
    evaporation_layer_depth_m: float = C.EVAPORATION_LAYER_DEPTH_M,
    soil_id: str = None
) -> SoilProfileDerived:
    """
    Derive root zone water properties from a layered profile.

    Args:
        layers: Soil layers ordered from the surface down
        max_depth_cap_m: Configured cap on rooting depth (m)
        initial_condition: Fraction of field capacity at the start, in [0, 1]
        evaporation_layer_depth_m: Depth Ze of the evaporating surface layer (m)
        soil_id: Profile identifier used in error context

    Returns:
        SoilProfileDerived

    Raises:
        InvalidSoilProfile: Missing, non-monotonic or inconsistent layers
        ConfigurationError: Initial condition outside [0, 1] or non-positive cap
    """
    context = ErrorContext(unit_id=soil_id, component="SoilProfile", operation="derive")

    if not 0.0 <= initial_condition <= 1.0:
        raise ConfigurationError(
            f"Initial condition fraction {initial_condition} outside [0, 1]", context
        )
    if max_depth_cap_m <= 0:
        raise ConfigurationError(f"Maximum depth cap must be positive, got {max_depth_cap_m}", context)

    validate_layers(layers, soil_id)

    profile_bottom_m = layers[-1].depth_bottom_cm / 100.0
    max_depth_m = min(max_depth_cap_m, profile_bottom_m)

    used = tuple(layer for layer in layers if layer.overlap_m(0.0, max_depth_m) > 0)
    taw = float(sum(layer.available_water_per_m * layer.overlap_m(0.0, max_depth_m) for layer in used))

    rew, tew = evaporable_water(layers, evaporation_layer_depth_m)

    derived = SoilProfileDerived(
        max_depth_m=max_depth_m,
        total_available_water_mm=taw,
        taw_per_m=taw / max_depth_m,
        readily_evaporable_water_mm=rew,
        total_evaporable_water_mm=tew,
        initial_condition=initial_condition,
        initial_depletion_mm=(1.0 - initial_condition) * taw,
        layers=used,
    )

    logger.debug(
        f"Soil {soil_id or '?'}: depth={max_depth_m:.2f} m, TAW={taw:.1f} mm, "
        f"REW={rew:.1f} mm, TEW={tew:.1f} mm, f={initial_condition:.2f}"
    )
    return derived
