"""
Input sources for weather, soil and cultivar files.
"""
from agrorisk.data.sources.base import FileSource
from agrorisk.data.sources.crop import CultivarSource, get_cultivar, load_cultivars
from agrorisk.data.sources.soil import DssatSoilProfile, DssatSoilSource, load_soil_profile, read_dssat_soil
from agrorisk.data.sources.weather import CsvWeatherSource, check_contiguous, load_weather_csv

__all__ = [
    "FileSource",
    "CultivarSource",
    "get_cultivar",
    "load_cultivars",
    "DssatSoilProfile",
    "DssatSoilSource",
    "load_soil_profile",
    "read_dssat_soil",
    "CsvWeatherSource",
    "check_contiguous",
    "load_weather_csv",
]
