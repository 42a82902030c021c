"""
Shared fixtures: synthetic weather, soils and cultivars.
"""
from datetime import date, timedelta

import numpy as np
import pytest

from agrorisk.core.types import SiteParameters, SoilLayer, WeatherRecord
from agrorisk.data.contracts import CropGeneticCoefficients, CropWaterParameters, Cultivar


def make_weather(start, days, tmin=10.0, tmax=20.0, rain=0.0, **optional):
    """Constant (or per-day sequence) weather starting at ``start``"""
    def pick(value, i):
        if np.ndim(value) == 0:
            return float(value)
        return float(value[i])

    return [
        WeatherRecord(
            date=start + timedelta(days=i),
            tmin_c=pick(tmin, i),
            tmax_c=pick(tmax, i),
            precipitation_mm=pick(rain, i),
            **optional,
        )
        for i in range(days)
    ]


@pytest.fixture
def site():
    return SiteParameters(station_id="TEST", latitude=40.0, elevation_m=100.0)


@pytest.fixture
def loam_layers():
    """Three layers, 150/140/140 mm of available water per metre"""
    return [
        SoilLayer(0, 30, field_capacity=0.30, wilting_point=0.15, saturation=0.45),
        SoilLayer(30, 60, field_capacity=0.28, wilting_point=0.14, saturation=0.44),
        SoilLayer(60, 120, field_capacity=0.26, wilting_point=0.12, saturation=0.42),
    ]


@pytest.fixture
def genetics():
    return CropGeneticCoefficients(cultivar="TESTWHEAT")


@pytest.fixture
def water_params():
    return CropWaterParameters()


@pytest.fixture
def cultivar(genetics, water_params):
    return Cultivar(genetics=genetics, water=water_params)


@pytest.fixture
def season_weather():
    """One year of seasonal weather with intermittent rain"""
    rng = np.random.default_rng(42)
    days = 365
    doy = np.arange(days)
    tmean = 12.0 + 8.0 * np.sin(2 * np.pi * (doy - 30) / 365)
    rain = np.where(rng.random(days) < 0.25, rng.gamma(2.0, 5.0, days), 0.0)
    return make_weather(date(2021, 3, 1), days, tmin=tmean - 6.0, tmax=tmean + 6.0, rain=rain)


@pytest.fixture
def weather_factory():
    """make_weather as a fixture"""
    return make_weather
