"""
DSSAT soil file (.SOL) reader.

A file holds one or more profiles. Each profile starts with a line
``*<ID>  <source> <texture> <depth> <description>`` followed by tables
introduced by ``@`` header lines. Layer rows are read from tables whose
header contains SLB (layer bottom depth, cm), SLLL (lower limit / wilting
point), SDUL (drained upper limit / field capacity) and optionally SSAT.
Missing values are written as -99.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from agrorisk.core.exceptions import ErrorContext, InvalidSoilProfile
from agrorisk.core.types import SoilLayer
from agrorisk.data.sources.base import FileSource

MISSING_VALUE = -99.0
LAYER_COLUMNS = ("SLB", "SLLL", "SDUL")


@dataclass(frozen=True)
class DssatSoilProfile:
    """One parsed DSSAT soil profile"""
    profile_id: str
    description: str
    layers: Tuple[SoilLayer, ...]

    @property
    def depth_cm(self) -> float:
        return self.layers[-1].depth_bottom_cm if self.layers else 0.0


def _value(token: str) -> Optional[float]:
    try:
        value = float(token)
    except ValueError:
        return None
    return None if value <= MISSING_VALUE else value


class DssatSoilSource(FileSource):
    """
    Reader for DSSAT .SOL files.

    Example:
        profiles = DssatSoilSource("SOIL.SOL").load()
        layers = profiles["IBWH980018"].layers
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__("soil", path)

    def load(self) -> Dict[str, DssatSoilProfile]:
        self._check_exists()
        with open(self.path, encoding="utf-8", errors="replace") as f:
            profiles = self.parse(f.read())
        self.logger.info(f"Read {len(profiles)} soil profile(s) from {self.path.name}")
        return profiles

    def parse(self, text: str) -> Dict[str, DssatSoilProfile]:
        profiles: Dict[str, DssatSoilProfile] = {}
        current_id: Optional[str] = None
        description = ""
        rows: List[Dict[str, Optional[float]]] = []
        header: Optional[List[str]] = None

        def close_profile():
            if current_id is not None:
                profiles[current_id] = self._build_profile(current_id, description, rows)

        for raw_line in text.splitlines():
            line = raw_line.rstrip()
            stripped = line.strip()
            if not stripped or stripped.startswith("!"):
                continue

            if stripped.startswith("*"):
                if stripped.upper().startswith("*SOILS"):
                    continue
                close_profile()
                parts = stripped[1:].split(None, 1)
                current_id = parts[0]
                description = parts[1].strip() if len(parts) > 1 else ""
                rows = []
                header = None
                continue

            if stripped.startswith("@"):
                tokens = stripped[1:].split()
                header = tokens if all(col in tokens for col in LAYER_COLUMNS) else None
                continue

            if header is not None and current_id is not None:
                tokens = stripped.split()
                rows.append({name: _value(tok) for name, tok in zip(header, tokens)})

        close_profile()
        return profiles

    def _build_profile(self, profile_id: str, description: str,
                       rows: List[Dict[str, Optional[float]]]) -> DssatSoilProfile:
        context = ErrorContext(unit_id=profile_id, component="DssatSoilSource", operation="parse")
        layers = []
        top = 0.0
        for i, row in enumerate(rows):
            bottom, ll, dul = row.get("SLB"), row.get("SLLL"), row.get("SDUL")
            if bottom is None or ll is None or dul is None:
                raise InvalidSoilProfile(f"Layer {i} lacks SLB, SLLL or SDUL", context)
            layers.append(SoilLayer(
                depth_top_cm=top,
                depth_bottom_cm=bottom,
                field_capacity=dul,
                wilting_point=ll,
                saturation=row.get("SSAT"),
            ))
            top = bottom
        if not layers:
            self.logger.warning(f"Soil profile {profile_id} has no layer table")
        return DssatSoilProfile(profile_id, description, tuple(layers))


def read_dssat_soil(path: Union[str, Path]) -> Dict[str, DssatSoilProfile]:
    """Parse every profile of a DSSAT .SOL file"""
    return DssatSoilSource(path).load()


def load_soil_profile(path: Union[str, Path], profile_id: str) -> DssatSoilProfile:
    """
    Load one profile by identifier.

    Raises:
        InvalidSoilProfile: The file has no profile with that identifier
    """
    profiles = read_dssat_soil(path)
    try:
        return profiles[profile_id]
    except KeyError:
        raise InvalidSoilProfile(
            f"Soil profile {profile_id} not found in {Path(path).name} "
            f"(available: {sorted(profiles)})",
            ErrorContext(unit_id=profile_id, component="DssatSoilSource", operation="load"),
        )
