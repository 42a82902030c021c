"""
Tests for the dual crop coefficient root zone water balance.
Covers the stress coefficient, daily invariants, mass closure and the
simulation window.
"""
from datetime import date, timedelta

import numpy as np
import pandas as pd
import pytest

from agrorisk.core import constants as C
from agrorisk.core.config import EngineConfig
from agrorisk.core.exceptions import DataGapError, InternalConsistencyError
from agrorisk.core.types import (
    DailyBalanceState, GrowthStage, PhenologyState, SoilLayer, WeatherRecord,
)
from agrorisk.data.contracts import CropWaterParameters
from agrorisk.physics.constraints import BalanceInvariantChecker
from agrorisk.physics.phenology import PhenologyEngine, create_phenology_model
from agrorisk.physics.soil_profile import derive_soil_profile
from agrorisk.physics.water_balance import WaterBalanceEngine


@pytest.fixture
def loam_profile(loam_layers):
    return derive_soil_profile(loam_layers, max_depth_cap_m=1.5, initial_condition=0.8)


@pytest.fixture
def season_stages(season_weather, genetics, site):
    engine = PhenologyEngine(create_phenology_model(genetics))
    return engine.run(season_weather, date(2021, 3, 1), site).stage_dates


class TestStressCoefficient:

    def test_stress_at_sixty_percent_depletion(self, site):
        """TAW 100, p 0.5, Dr 60 gives Ks 0.8"""
        layers = [SoilLayer(0, 100, field_capacity=0.30, wilting_point=0.20)]
        profile = derive_soil_profile(layers, max_depth_cap_m=1.0, initial_condition=0.4)
        params = CropWaterParameters(
            min_root_depth_m=1.0, max_root_depth_m=1.0, depletion_fraction=0.5
        )
        engine = WaterBalanceEngine(profile, params, site)
        assert engine.state.dr == pytest.approx(60.0)

        day = engine.advance(WeatherRecord(date(2021, 6, 1), 10.0, 25.0), {}, 5.0)

        assert day.taw == pytest.approx(100.0)
        assert day.raw == pytest.approx(50.0)
        assert day.ks == pytest.approx(0.8)
        assert day.transpiration_mm == pytest.approx(0.8 * params.kcb_ini * 5.0)
        assert day.dr == pytest.approx(60.0 + day.et_c)

    def test_no_stress_at_field_capacity(self, loam_profile, water_params, site, weather_factory):
        profile = derive_soil_profile(
            list(loam_profile.layers), max_depth_cap_m=1.5, initial_condition=1.0
        )
        engine = WaterBalanceEngine(profile, water_params, site)
        day = engine.advance(weather_factory(date(2021, 5, 1), 1)[0], {}, 4.0)
        assert day.ks == 1.0


class TestWaterBalanceEngine:
    """Season runs driven by phenology stage dates"""

    def test_daily_invariants_hold(self, loam_profile, water_params, site, season_weather, season_stages):
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        result = engine.run(season_weather, season_stages, date(2021, 3, 1))

        assert len(result) > 0
        for s in result.states:
            assert 0.0 <= s.dr <= s.taw + C.INVARIANT_TOLERANCE
            assert 0.0 <= s.raw <= s.taw + C.INVARIANT_TOLERANCE
            assert 0.0 <= s.ks <= 1.0
            assert s.et_c >= 0.0
            assert s.deep_percolation_mm >= 0.0

    def test_depletion_closes_daily(self, loam_profile, water_params, site, season_weather, season_stages):
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        previous = engine.state.dr
        result = engine.run(season_weather, season_stages, date(2021, 3, 1))

        for s in result.states:
            expected = previous - s.rain_mm + s.et_c + s.deep_percolation_mm
            assert s.dr == pytest.approx(expected, abs=1e-9)
            previous = s.dr

    def test_roots_and_stages_follow_phenology(self, loam_profile, water_params, site,
                                               season_weather, season_stages):
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        df = engine.run(season_weather, season_stages, date(2021, 3, 1)).to_dataframe()

        assert df["RootDepth"].is_monotonic_increasing
        assert df["PlantHeight"].is_monotonic_increasing
        assert df["RootDepth"].max() <= min(water_params.max_root_depth_m, loam_profile.max_depth_m)

        emergence = season_stages[PhenologyState.EMERGED]
        first_dev = df.loc[df["GrowthStage"] == GrowthStage.DEVELOPMENT.value, "Date"].iloc[0]
        assert first_dev == emergence

    def test_stops_at_harvest(self, loam_profile, water_params, site, season_weather, season_stages):
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        result = engine.run(season_weather, season_stages, date(2021, 3, 1))

        if PhenologyState.HARVEST in season_stages:
            assert result.complete
            assert result.states[-1].date == season_stages[PhenologyState.HARVEST]
        else:
            assert not result.complete
            assert result.states[-1].date == season_weather[-1].date

    def test_depletion_increases_without_rain(self, loam_profile, water_params, site, weather_factory):
        weather = weather_factory(date(2021, 5, 1), 40, tmin=12.0, tmax=28.0)
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        result = engine.run(weather, {}, date(2021, 5, 1))

        dr = [s.dr for s in result.states]
        assert all(b >= a for a, b in zip(dr, dr[1:]))
        assert sum(s.deep_percolation_mm for s in result.states) == 0.0

    def test_zero_demand_keeps_profile_full(self, loam_layers, water_params, site, weather_factory):
        profile = derive_soil_profile(loam_layers, max_depth_cap_m=1.5, initial_condition=1.0)
        weather = weather_factory(date(2021, 5, 1), 20)
        zero = {r.date: 0.0 for r in weather}

        result = WaterBalanceEngine(profile, water_params, site).run(
            weather, {}, date(2021, 5, 1), et_ref=zero
        )

        assert all(s.dr == 0.0 for s in result.states)
        assert all(s.ks == 1.0 for s in result.states)
        assert all(s.et_ref_method == "provided" for s in result.states)

    def test_heavy_rain_drains(self, loam_layers, water_params, site, weather_factory):
        profile = derive_soil_profile(loam_layers, max_depth_cap_m=1.5, initial_condition=1.0)
        weather = weather_factory(date(2021, 5, 1), 3, rain=[60.0, 0.0, 0.0])
        result = WaterBalanceEngine(profile, water_params, site).run(weather, {}, date(2021, 5, 1))

        first = result.states[0]
        assert first.dr == pytest.approx(0.0, abs=1e-12)
        assert first.deep_percolation_mm == pytest.approx(60.0 - first.et_c)

    def test_deterministic(self, loam_profile, water_params, site, season_weather, season_stages):
        def run():
            engine = WaterBalanceEngine(loam_profile, water_params, site)
            return engine.run(season_weather, season_stages, date(2021, 3, 1)).to_dataframe()

        pd.testing.assert_frame_equal(run(), run())

    def test_reset_restores_initial_state(self, loam_profile, water_params, site, weather_factory):
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        initial = engine.state.dr
        engine.run(weather_factory(date(2021, 5, 1), 10), {}, date(2021, 5, 1))
        engine.reset()
        assert engine.state.dr == initial
        assert engine.state.days_in_stage == 0

    def test_repeated_runs_on_one_engine(self, loam_profile, water_params, site, weather_factory):
        weather = weather_factory(date(2021, 5, 1), 20, tmin=12.0, tmax=28.0)
        engine = WaterBalanceEngine(loam_profile, water_params, site)

        first = engine.run(weather, {}, date(2021, 5, 1)).to_dataframe()
        second = engine.run(weather, {}, date(2021, 5, 1)).to_dataframe()

        pd.testing.assert_frame_equal(first, second)
        assert first["Dr"].iloc[0] < first["TAW"].iloc[0]

    def test_days_in_stage_restart_at_transitions(self, loam_profile, water_params, site,
                                                  season_weather, season_stages):
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        df = engine.run(season_weather, season_stages, date(2021, 3, 1)).to_dataframe()

        expected, previous = [], None
        for stage in df["GrowthStage"]:
            expected.append(expected[-1] + 1 if stage == previous else 1)
            previous = stage
        assert df["DaysInStage"].tolist() == expected
        assert df["GrowthStage"].nunique() > 1


class TestSimulationWindow:

    def test_preseason_days(self, loam_profile, water_params, site, weather_factory):
        config = EngineConfig(preseason_days=10)
        weather = weather_factory(date(2021, 3, 1), 60)
        engine = WaterBalanceEngine(loam_profile, water_params, site, config=config)

        result = engine.run(weather, {}, date(2021, 3, 15))

        assert result.states[0].date == date(2021, 3, 5)
        assert result.states[0].growth_stage is GrowthStage.INITIAL
        assert result.states[-1].date == weather[-1].date
        assert not result.complete

    def test_end_date_truncates(self, loam_profile, water_params, site, weather_factory):
        weather = weather_factory(date(2021, 3, 1), 60)
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        result = engine.run(weather, {}, date(2021, 3, 1), end_date=date(2021, 3, 20))
        assert len(result) == 20

    def test_weather_starting_late_raises(self, loam_profile, water_params, site, weather_factory):
        config = EngineConfig(preseason_days=10)
        weather = weather_factory(date(2021, 3, 1), 30)
        engine = WaterBalanceEngine(loam_profile, water_params, site, config=config)
        with pytest.raises(DataGapError):
            engine.run(weather, {}, date(2021, 3, 5))

    def test_gap_raises(self, loam_profile, water_params, site, weather_factory):
        weather = weather_factory(date(2021, 3, 1), 30)
        del weather[12]
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        with pytest.raises(DataGapError):
            engine.run(weather, {}, date(2021, 3, 1))

    def test_empty_weather_raises(self, loam_profile, water_params, site):
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        with pytest.raises(DataGapError):
            engine.run([], {}, date(2021, 3, 1))


class TestReferenceETSelection:

    def test_penman_monteith_falls_back(self, loam_profile, water_params, site, weather_factory):
        config = EngineConfig(reference_et_method="penman_monteith")
        weather = weather_factory(date(2021, 6, 1), 5)
        engine = WaterBalanceEngine(loam_profile, water_params, site, config=config)

        result = engine.run(weather, {}, date(2021, 6, 1))

        assert len(result.fallbacks) == 5
        assert all(s.et_ref_method == "hargreaves" for s in result.states)
        assert "solar_radiation_mj_m2" in result.fallbacks[0].fields

    def test_penman_monteith_with_full_inputs(self, loam_profile, water_params, site, weather_factory):
        config = EngineConfig(reference_et_method="penman_monteith")
        weather = weather_factory(
            date(2021, 6, 1), 5,
            solar_radiation_mj_m2=22.0, wind_speed_m_s=2.0, relative_humidity_pct=60.0,
        )
        engine = WaterBalanceEngine(loam_profile, water_params, site, config=config)

        result = engine.run(weather, {}, date(2021, 6, 1))

        assert result.fallbacks == []
        assert all(s.et_ref_method == "penman_monteith" for s in result.states)
        assert all(s.et_ref > 0 for s in result.states)


class TestInvariantChecker:

    def _state(self, **overrides):
        values = dict(
            date=date(2021, 6, 1), growth_stage=GrowthStage.MID, root_depth_m=1.0,
            plant_height_m=1.0, kcb=1.1, ke=0.05, kc_act=1.0, et_ref=5.0, et_c=5.0,
            transpiration_mm=4.75, evaporation_mm=0.25, rain_mm=0.0,
            deep_percolation_mm=0.0, dr=40.0, de=5.0, taw=100.0, raw=55.0, ks=1.0,
        )
        values.update(overrides)
        return DailyBalanceState(**values)

    def test_valid_state_passes(self):
        BalanceInvariantChecker().check(self._state())

    @pytest.mark.parametrize("overrides", [
        {"dr": 100.1},
        {"dr": -0.5},
        {"ks": 1.2},
        {"et_c": -1.0},
        {"raw": 120.0},
        {"deep_percolation_mm": -2.0},
    ])
    def test_violation_raises(self, overrides):
        with pytest.raises(InternalConsistencyError):
            BalanceInvariantChecker(unit_id="U1").check(self._state(**overrides))


class TestBalanceResult:

    def test_dataframe_columns(self, loam_profile, water_params, site, weather_factory):
        engine = WaterBalanceEngine(loam_profile, water_params, site)
        df = engine.run(weather_factory(date(2021, 5, 1), 10), {}, date(2021, 5, 1)).to_dataframe()

        assert list(df.columns[:len(C.BALANCE_COLUMNS)]) == list(C.BALANCE_COLUMNS)
        assert len(df) == 10
        assert np.isfinite(df["Dr"]).all()
