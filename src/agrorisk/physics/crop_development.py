"""
FAO-56 growth stages, basal crop coefficient and canopy growth.

Maps each calendar day onto one of the four FAO-56 growth stages using the
stage dates produced by the phenology engine:

    before Emergence                 -> Initial
    Emergence .. day before Anthesis -> Development
    Anthesis .. day before onset     -> Mid
    senescence onset .. Harvest      -> Late

Senescence onset is Anthesis plus ``senescence_fraction`` of the
Anthesis -> EndGrainFilling interval. Kcb is constant in Initial and Mid and
ramps linearly in Development and Late.

References:
- FAO-56: Allen et al. (1998), Chapter 7, Eq. 66 and Fig. 34
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Mapping, Optional

from agrorisk.core.types import DepthM, GrowthStage, PhenologyState
from agrorisk.data.contracts import CropWaterParameters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageProgress:
    """Growth stage of one day with the fraction of the stage elapsed"""
    stage: GrowthStage
    progress: float
    kcb: float


def _fraction(elapsed_days: int, length_days: int) -> float:
    if length_days <= 0:
        return 1.0
    return min(1.0, max(0.0, elapsed_days / length_days))


def senescence_onset(
    stages: Mapping[PhenologyState, date],
    params: CropWaterParameters
) -> Optional[date]:
    """First day of the Late stage, None before Anthesis is known"""
    anthesis = stages.get(PhenologyState.ANTHESIS)
    if anthesis is None:
        return None
    end_fill = stages.get(PhenologyState.END_GRAIN_FILLING)
    if end_fill is None:
        return anthesis + timedelta(days=params.nominal_mid_days)
    offset = round(params.senescence_fraction * (end_fill - anthesis).days)
    return anthesis + timedelta(days=offset)


def growth_stage_for_date(
    day: date,
    stages: Mapping[PhenologyState, date],
    params: CropWaterParameters
) -> StageProgress:
    """
    FAO-56 growth stage and basal crop coefficient for a calendar day.

    Args:
        day: Day being simulated
        stages: Dates at which each phenology state was entered
        params: Crop water parameters (Kcb endpoints, nominal lengths)

    Returns:
        StageProgress with stage, fraction elapsed and interpolated Kcb
    """
    emergence = stages.get(PhenologyState.EMERGED)
    anthesis = stages.get(PhenologyState.ANTHESIS)

    if emergence is None or day < emergence:
        sowing = stages.get(PhenologyState.SOWN)
        if sowing is None or day < sowing:
            progress = 0.0
        else:
            length = (emergence - sowing).days if emergence else params.nominal_initial_days
            progress = _fraction((day - sowing).days, length)
        return StageProgress(GrowthStage.INITIAL, progress, params.kcb_ini)

    if anthesis is None or day < anthesis:
        length = (anthesis - emergence).days if anthesis else params.nominal_development_days
        progress = _fraction((day - emergence).days, length)
        kcb = params.kcb_ini + (params.kcb_mid - params.kcb_ini) * progress
        return StageProgress(GrowthStage.DEVELOPMENT, progress, kcb)

    onset = senescence_onset(stages, params)
    if day < onset:
        progress = _fraction((day - anthesis).days, (onset - anthesis).days)
        return StageProgress(GrowthStage.MID, progress, params.kcb_mid)

    harvest = stages.get(PhenologyState.HARVEST)
    length = (harvest - onset).days if harvest else params.nominal_late_days
    progress = _fraction((day - onset).days, length)
    kcb = params.kcb_mid + (params.kcb_end - params.kcb_mid) * progress
    return StageProgress(GrowthStage.LATE, progress, kcb)


def canopy_growth_fraction(stage: StageProgress) -> float:
    """Share of maximum root and height growth reached in a stage"""
    if stage.stage is GrowthStage.INITIAL:
        return 0.0
    if stage.stage is GrowthStage.DEVELOPMENT:
        return stage.progress
    return 1.0


@dataclass
class CropState:
    """Canopy state carried across days"""
    root_depth_m: DepthM
    plant_height_m: float = 0.0
    stage: GrowthStage = GrowthStage.INITIAL
    stage_progress: float = 0.0
    kcb: float = 0.0


class CropDevelopmentModel:
    """
    Daily root and canopy growth driven by phenology stage dates.

    Root depth grows from the minimum toward min(crop maximum, soil usable
    depth) in proportion to Development progress; plant height grows from
    zero to its maximum the same way. Neither ever decreases.

    Example:
        crop = CropDevelopmentModel(params, soil_max_depth_m=1.2)
        state = crop.advance_day(day, stage_dates)
    """

    def __init__(
        self,
        params: CropWaterParameters,
        soil_max_depth_m: DepthM,
        logger: Optional[logging.Logger] = None
    ):
        self.params = params
        self.max_root_depth_m = min(params.max_root_depth_m, soil_max_depth_m)
        self.min_root_depth_m = min(params.min_root_depth_m, self.max_root_depth_m)
        self.logger = logger or logging.getLogger(f"{__name__}.CropDevelopmentModel")
        self.state = CropState(root_depth_m=self.min_root_depth_m, kcb=params.kcb_ini)

    def advance_day(self, day: date, stages: Mapping[PhenologyState, date]) -> CropState:
        """Update the canopy for ``day`` and return the new state"""
        stage = growth_stage_for_date(day, stages, self.params)
        g = canopy_growth_fraction(stage)

        root_target = self.min_root_depth_m + (self.max_root_depth_m - self.min_root_depth_m) * g
        height_target = self.params.max_plant_height_m * g

        previous = self.state
        self.state = CropState(
            root_depth_m=min(self.max_root_depth_m, max(previous.root_depth_m, root_target)),
            plant_height_m=min(self.params.max_plant_height_m, max(previous.plant_height_m, height_target)),
            stage=stage.stage,
            stage_progress=stage.progress,
            kcb=stage.kcb,
        )

        if stage.stage is not previous.stage:
            self.logger.debug(f"{day}: growth stage {previous.stage.value} -> {stage.stage.value}")

        return self.state

    def reset(self) -> None:
        self.state = CropState(root_depth_m=self.min_root_depth_m, kcb=self.params.kcb_ini)
