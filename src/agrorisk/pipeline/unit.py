"""
One simulation unit: a (cultivar, soil, station, realization, planting date,
initial condition) combination run through phenology and then the water
balance.

The unit never raises the project's own errors; it reports them on a
UnitResult with status success, partial or failure.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Mapping, Optional, Sequence

import pandas as pd

from agrorisk.core.config import EngineConfig
from agrorisk.core.exceptions import (
    AgroriskError, ErrorContext, MissingWeatherField
)
from agrorisk.core.types import SiteParameters, SoilLayer, UnitStatus, WeatherRecord
from agrorisk.data.contracts import Cultivar, Scenario
from agrorisk.data.sources.weather import check_contiguous
from agrorisk.physics.phenology import PhenologyEngine, PhenologyResult, create_phenology_model
from agrorisk.physics.soil_profile import derive_soil_profile
from agrorisk.physics.water_balance import BalanceResult, WaterBalanceEngine

logger = logging.getLogger(__name__)


@dataclass
class UnitResult:
    """Structured outcome of one simulation unit"""
    unit_id: str
    status: UnitStatus
    phenology: Optional[PhenologyResult] = None
    balance: Optional[BalanceResult] = None
    issues: List[AgroriskError] = field(default_factory=list)
    error: Optional[AgroriskError] = None

    @property
    def ok(self) -> bool:
        return self.status is not UnitStatus.FAILURE

    def phenology_table(self) -> pd.DataFrame:
        if self.phenology is None:
            return pd.DataFrame()
        return self.phenology.to_dataframe()

    def balance_table(self) -> pd.DataFrame:
        if self.balance is None:
            return pd.DataFrame()
        return self.balance.to_dataframe()


def _summarize_fallbacks(fallbacks: Sequence[MissingWeatherField], unit_id: str) -> MissingWeatherField:
    fields = sorted({f for fb in fallbacks for f in fb.fields})
    return MissingWeatherField(
        f"{len(fallbacks)} day(s) computed with Hargreaves (missing {', '.join(fields)})",
        fields=fields,
        context=ErrorContext(
            unit_id=unit_id,
            date=fallbacks[0].context.date,
            component="ReferenceET",
        ),
    )


class SimulationUnit:
    """
    Binds one combination and runs PhenologyEngine then WaterBalanceEngine.

    Example:
        unit = SimulationUnit("u1", cultivar, layers, site, weather, scenario)
        result = unit.run()
    """

    def __init__(
        self,
        unit_id: str,
        cultivar: Cultivar,
        soil_layers: Sequence[SoilLayer],
        site: SiteParameters,
        weather: Sequence[WeatherRecord],
        scenario: Scenario,
        config: Optional[EngineConfig] = None,
        soil_id: Optional[str] = None,
        et_ref: Optional[Mapping[date, float]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.unit_id = unit_id
        self.cultivar = cultivar
        self.soil_layers = tuple(soil_layers)
        self.site = site
        self.weather = list(weather)
        self.scenario = scenario
        self.config = config or EngineConfig()
        self.soil_id = soil_id
        self.et_ref = et_ref
        self.logger = logger or logging.getLogger(f"{__name__}.{unit_id}")

    def _weather_window(self) -> List[WeatherRecord]:
        """Weather from the simulation start to the scenario end bound"""
        planting = self.scenario.planting_date
        start = self.scenario.simulation_start or planting - timedelta(days=self.config.preseason_days)
        start = min(start, planting)
        end = self.scenario.simulation_end
        return [
            r for r in self.weather
            if r.date >= start and (end is None or r.date <= end)
        ]

    def run(self) -> UnitResult:
        """Run the unit; project errors are returned, not raised"""
        issues: List[AgroriskError] = []
        scenario = self.scenario

        try:
            profile = derive_soil_profile(
                self.soil_layers,
                self.config.max_root_depth_cap_m,
                scenario.initial_condition,
                self.config.evaporation_layer_depth_m,
                soil_id=self.soil_id,
            )

            weather = self._weather_window()
            check_contiguous(weather, self.site.station_id)

            model = create_phenology_model(self.cultivar.genetics)
            phenology = PhenologyEngine(model, logger=self.logger).run(
                weather, scenario.planting_date, self.site
            )
            if phenology.issue is not None:
                issues.append(phenology.issue)

            engine = WaterBalanceEngine(
                profile, self.cultivar.water, self.site,
                config=self.config, logger=self.logger, unit_id=self.unit_id,
            )
            balance = engine.run(
                weather,
                phenology.stage_dates,
                scenario.planting_date,
                start_date=scenario.simulation_start,
                end_date=scenario.simulation_end,
                et_ref=self.et_ref,
            )
            if balance.fallbacks:
                issues.append(_summarize_fallbacks(balance.fallbacks, self.unit_id))

        except AgroriskError as e:
            if e.context.unit_id is None:
                e.context.unit_id = self.unit_id
            self.logger.error(f"Unit {self.unit_id} failed: {e}")
            return UnitResult(self.unit_id, UnitStatus.FAILURE, issues=issues, error=e)

        status = UnitStatus.SUCCESS if phenology.complete and balance.complete else UnitStatus.PARTIAL
        self.logger.info(
            f"Unit {self.unit_id}: {status.value}, {len(phenology.stages)} stage(s), "
            f"{len(balance)} balance day(s)"
        )
        return UnitResult(
            unit_id=self.unit_id,
            status=status,
            phenology=phenology,
            balance=balance,
            issues=issues,
        )
