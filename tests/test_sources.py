"""
Tests for the weather, soil and cultivar file loaders.
"""
from datetime import date, timedelta

import pandas as pd
import pytest

from agrorisk.core.exceptions import ConfigurationError, DataError, DataGapError, InvalidSoilProfile
from agrorisk.data.contracts import Cultivar
from agrorisk.data.sources import (
    CsvWeatherSource, DssatSoilSource, get_cultivar, load_cultivars, load_soil_profile,
    load_weather_csv,
)
from agrorisk.data.sources.crop import default_wheat_cultivars
from agrorisk.data.sources.weather import weather_from_dataframe, weather_to_dataframe
from agrorisk.physics.soil_profile import derive_soil_profile

SOIL_TEXT = """*SOILS: General DSSAT Soil Input File
! test profiles

*IBWH980018  IBSNAT      SIC     150 DEFAULT BROAD-BASED PROFILE
@SITE        COUNTRY          LAT     LONG SCS FAMILY
 Generic     Generic        -99.0    -99.0 Generic
@ SCOM  SALB  SLU1  SLDR  SLRO  SLNF  SLPF  SMHB  SMPX  SMKE
    BN  0.13   6.0  0.50  75.0  1.00  1.00 IB001 IB001 IB001
@  SLB  SLMH  SLLL  SDUL  SSAT  SRGF  SSKS  SBDM  SLOC
    15   -99 0.125 0.260 0.380 1.000   -99  1.30  1.10
    30   -99 0.125 0.260 0.380 0.638   -99  1.30  1.10
    60   -99 0.125 0.260 0.380 0.407   -99  1.35  0.80
   100   -99 0.110 0.240 0.360 0.202   -99  1.40  0.40
@  SLB  SLPX  SLPT  SLPO CACO3  SLAL  SLFE  SLMN  SLBS
    15   -99   -99   -99   -99   -99   -99   -99   -99

*SHALLOW01   TEST        L        40 SHALLOW LOAM
@  SLB  SLMH  SLLL  SDUL  SSAT
    20   -99 0.100 0.250   -99
    40   -99 0.110 0.240   -99
"""


@pytest.fixture
def weather_csv(tmp_path):
    start = date(2021, 3, 1)
    df = pd.DataFrame({
        "DATE": [start + timedelta(days=i) for i in range(10)],
        "Tmin": [5.0] * 10,
        "Tmax": [18.0] * 10,
        "Rain": [0.0, 2.5] * 5,
        "srad": [15.0] * 9 + [None],
    })
    path = tmp_path / "STN1.csv"
    df.to_csv(path, index=False)
    return path


@pytest.fixture
def soil_file(tmp_path):
    path = tmp_path / "SOIL.SOL"
    path.write_text(SOIL_TEXT)
    return path


class TestWeatherSource:

    def test_loads_aliased_columns(self, weather_csv):
        records = load_weather_csv(weather_csv)
        assert len(records) == 10
        assert records[0].date == date(2021, 3, 1)
        assert records[1].precipitation_mm == 2.5
        assert records[0].solar_radiation_mj_m2 == 15.0
        assert records[-1].solar_radiation_mj_m2 is None
        assert records[0].wind_speed_m_s is None

    def test_station_id_defaults_to_file_stem(self, weather_csv):
        assert CsvWeatherSource(weather_csv).station_id == "STN1"

    def test_window(self, weather_csv):
        records = load_weather_csv(weather_csv, start=date(2021, 3, 3), end=date(2021, 3, 5))
        assert [r.date.day for r in records] == [3, 4, 5]

    def test_gap_raises(self, weather_factory):
        df = weather_to_dataframe(weather_factory(date(2021, 3, 1), 10))
        with pytest.raises(DataGapError):
            weather_from_dataframe(df.drop(index=4))

    def test_missing_column_raises(self, weather_factory):
        df = weather_to_dataframe(weather_factory(date(2021, 3, 1), 5)).drop(columns="tmax_c")
        with pytest.raises(DataGapError, match="tmax_c"):
            weather_from_dataframe(df)

    def test_missing_temperature_raises(self, weather_factory):
        df = weather_to_dataframe(weather_factory(date(2021, 3, 1), 5))
        df.loc[2, "tmin_c"] = None
        with pytest.raises(DataGapError):
            weather_from_dataframe(df)

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataError):
            load_weather_csv(tmp_path / "nope.csv")


class TestDssatSoilSource:

    def test_parses_profiles(self, soil_file):
        profiles = DssatSoilSource(soil_file).load()
        assert set(profiles) == {"IBWH980018", "SHALLOW01"}

        profile = profiles["IBWH980018"]
        assert len(profile.layers) == 4
        assert profile.depth_cm == 100
        first, last = profile.layers[0], profile.layers[-1]
        assert (first.depth_top_cm, first.depth_bottom_cm) == (0.0, 15.0)
        assert first.wilting_point == pytest.approx(0.125)
        assert first.field_capacity == pytest.approx(0.260)
        assert first.saturation == pytest.approx(0.380)
        assert last.depth_top_cm == 60.0

    def test_missing_saturation_is_none(self, soil_file):
        profile = load_soil_profile(soil_file, "SHALLOW01")
        assert all(layer.saturation is None for layer in profile.layers)

    def test_parsed_profile_derives(self, soil_file):
        profile = load_soil_profile(soil_file, "SHALLOW01")
        derived = derive_soil_profile(list(profile.layers), max_depth_cap_m=1.5, initial_condition=1.0)
        assert derived.max_depth_m == pytest.approx(0.40)
        assert derived.total_available_water_mm == pytest.approx(150 * 0.2 + 130 * 0.2)

    def test_unknown_profile(self, soil_file):
        with pytest.raises(InvalidSoilProfile):
            load_soil_profile(soil_file, "MISSING")

    def test_layer_without_lower_limit(self):
        text = "*BAD0000001 TEST\n@  SLB  SLLL  SDUL\n   20   -99 0.25\n"
        with pytest.raises(InvalidSoilProfile):
            DssatSoilSource("unused.SOL").parse(text)


class TestCultivarSource:

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "cultivars.yaml"
        path.write_text(
            "cultivars:\n"
            "  NEWTON:\n"
            "    genetics:\n"
            "      tt_emergence: 60\n"
            "      vernalization_sensitivity: 5.0\n"
            "    water:\n"
            "      kcb_mid: 1.05\n"
            "  PLAIN: {}\n"
        )
        cultivars = load_cultivars(path)

        newton = get_cultivar(cultivars, "NEWTON")
        assert isinstance(newton, Cultivar)
        assert newton.name == "NEWTON"
        assert newton.genetics.tt_emergence == 60
        assert newton.water.kcb_mid == 1.05
        assert get_cultivar(cultivars, "PLAIN").genetics.crop == "wheat"

    def test_missing_cultivars_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("varieties: {}\n")
        with pytest.raises(ConfigurationError):
            load_cultivars(path)

    def test_invalid_coefficient(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("cultivars:\n  X:\n    genetics:\n      tt_anthesis: -5\n")
        with pytest.raises(ConfigurationError):
            load_cultivars(path)

    def test_unknown_cultivar(self):
        with pytest.raises(ConfigurationError, match="Unknown cultivar"):
            get_cultivar(default_wheat_cultivars(), "EMMER")

    def test_defaults(self):
        cultivars = default_wheat_cultivars()
        assert set(cultivars) == {"SPRING", "WINTER"}
        assert cultivars["WINTER"].genetics.vernalization_sensitivity > \
            cultivars["SPRING"].genetics.vernalization_sensitivity
