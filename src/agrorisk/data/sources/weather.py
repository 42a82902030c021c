"""
Daily weather series from CSV files.

Accepted column names (case-insensitive):
    date; tmin/tmin_c; tmax/tmax_c; rain/prec/precipitation/precipitation_mm;
    optional srad/solar_radiation; wind/wind_speed/u2; rh/relative_humidity.
"""
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from agrorisk.core.exceptions import DataGapError, ErrorContext
from agrorisk.core.types import WeatherRecord
from agrorisk.data.sources.base import FileSource

COLUMN_ALIASES: Dict[str, str] = {
    "date": "date",
    "tmin": "tmin_c",
    "tmin_c": "tmin_c",
    "tmax": "tmax_c",
    "tmax_c": "tmax_c",
    "rain": "precipitation_mm",
    "prec": "precipitation_mm",
    "precipitation": "precipitation_mm",
    "precipitation_mm": "precipitation_mm",
    "srad": "solar_radiation_mj_m2",
    "solar_radiation": "solar_radiation_mj_m2",
    "solar_radiation_mj_m2": "solar_radiation_mj_m2",
    "wind": "wind_speed_m_s",
    "u2": "wind_speed_m_s",
    "wind_speed": "wind_speed_m_s",
    "wind_speed_m_s": "wind_speed_m_s",
    "rh": "relative_humidity_pct",
    "relative_humidity": "relative_humidity_pct",
    "relative_humidity_pct": "relative_humidity_pct",
}

REQUIRED_COLUMNS = ("date", "tmin_c", "tmax_c", "precipitation_mm")
OPTIONAL_COLUMNS = ("solar_radiation_mj_m2", "wind_speed_m_s", "relative_humidity_pct")


def check_contiguous(records: Sequence[WeatherRecord], station_id: Optional[str] = None) -> None:
    """
    Raise DataGapError unless records are one per day with no gaps.
    """
    for previous, current in zip(records, records[1:]):
        expected = previous.date + timedelta(days=1)
        if current.date != expected:
            raise DataGapError(
                f"Weather series not contiguous: expected {expected}, found {current.date}",
                ErrorContext(unit_id=station_id, date=expected.isoformat(),
                             component="WeatherSource", operation="check_contiguous"),
            )


def weather_from_dataframe(df: pd.DataFrame, station_id: Optional[str] = None) -> List[WeatherRecord]:
    """
    Convert a DataFrame with canonical or aliased columns into WeatherRecords.

    Raises:
        DataGapError: Missing required column, missing value or date gap
    """
    context = ErrorContext(unit_id=station_id, component="WeatherSource", operation="parse")

    df = df.rename(columns=lambda c: COLUMN_ALIASES.get(str(c).strip().lower(), str(c).strip().lower()))
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise DataGapError(f"Weather data missing required columns: {missing}", context)

    df = df.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df = df.sort_values("date").reset_index(drop=True)

    incomplete = df[list(REQUIRED_COLUMNS)].isna().any(axis=1)
    if incomplete.any():
        first = df.loc[incomplete.idxmax(), "date"]
        context.date = str(first)
        raise DataGapError(f"{int(incomplete.sum())} day(s) lack temperature or precipitation", context)

    records = []
    for row in df.itertuples(index=False):
        row = row._asdict()
        optional = {
            col: (None if pd.isna(row[col]) else float(row[col]))
            for col in OPTIONAL_COLUMNS if col in row
        }
        records.append(WeatherRecord(
            date=row["date"],
            tmin_c=float(row["tmin_c"]),
            tmax_c=float(row["tmax_c"]),
            precipitation_mm=float(row["precipitation_mm"]),
            **optional,
        ))

    check_contiguous(records, station_id)
    return records


def weather_to_dataframe(records: Sequence[WeatherRecord]) -> pd.DataFrame:
    """Canonical DataFrame view of a weather series"""
    return pd.DataFrame([
        {
            "date": r.date,
            "tmin_c": r.tmin_c,
            "tmax_c": r.tmax_c,
            "precipitation_mm": r.precipitation_mm,
            "solar_radiation_mj_m2": r.solar_radiation_mj_m2,
            "wind_speed_m_s": r.wind_speed_m_s,
            "relative_humidity_pct": r.relative_humidity_pct,
        }
        for r in records
    ])


class CsvWeatherSource(FileSource):
    """Daily weather of one station stored as CSV"""

    def __init__(self, path: Union[str, Path], station_id: Optional[str] = None):
        super().__init__("weather", path)
        self.station_id = station_id or self.path.stem

    def load(self, start: Optional[date] = None, end: Optional[date] = None) -> List[WeatherRecord]:
        self._check_exists()
        df = pd.read_csv(self.path)
        records = weather_from_dataframe(df, self.station_id)
        if start is not None:
            records = [r for r in records if r.date >= start]
        if end is not None:
            records = [r for r in records if r.date <= end]

        if records:
            self.logger.info(
                f"Loaded {len(records)} days for {self.station_id} "
                f"({records[0].date} .. {records[-1].date})"
            )
        else:
            self.logger.warning(f"No weather for {self.station_id} in the requested window")
        return records


def load_weather_csv(
    path: Union[str, Path],
    start: Optional[date] = None,
    end: Optional[date] = None,
    station_id: Optional[str] = None
) -> List[WeatherRecord]:
    """Load a contiguous daily weather series from CSV"""
    return CsvWeatherSource(path, station_id).load(start, end)
