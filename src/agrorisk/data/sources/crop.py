"""
Cultivar table loader.

YAML layout::

    cultivars:
      NEWTON:
        genetics:
          crop: wheat
          tt_emergence: 60
          vernalization_sensitivity: 5.0
        water:
          kcb_mid: 1.10
          max_root_depth_m: 1.5

The cultivar identifier is taken from the mapping key.
"""
from pathlib import Path
from typing import Dict, Union

import yaml

from agrorisk.core.exceptions import ConfigurationError, ErrorContext
from agrorisk.data.contracts import CropGeneticCoefficients, Cultivar
from agrorisk.data.sources.base import FileSource


def default_wheat_cultivars() -> Dict[str, Cultivar]:
    """Built-in spring and winter wheat parameter sets"""
    spring = CropGeneticCoefficients(
        cultivar="SPRING",
        vernalization_sensitivity=1.0,
        photoperiod_sensitivity=3.675,
    )
    winter = CropGeneticCoefficients(
        cultivar="WINTER",
        vernalization_sensitivity=5.0,
        photoperiod_sensitivity=3.675,
        tt_juvenile=400.0,
    )
    return {c.cultivar: Cultivar(genetics=c) for c in (spring, winter)}


def cultivars_from_mapping(data: Dict) -> Dict[str, Cultivar]:
    """Validate a ``{name: {genetics, water}}`` mapping"""
    cultivars = {}
    for name, entry in (data or {}).items():
        entry = dict(entry or {})
        genetics = dict(entry.get("genetics") or {})
        genetics.setdefault("cultivar", str(name))
        entry["genetics"] = genetics
        cultivars[str(name)] = Cultivar.from_mapping(entry, name=str(name))
    return cultivars


class CultivarSource(FileSource):
    """YAML cultivar table"""

    def __init__(self, path: Union[str, Path]):
        super().__init__("cultivars", path)

    def load(self) -> Dict[str, Cultivar]:
        self._check_exists()
        with open(self.path, encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}
        if "cultivars" not in document:
            raise ConfigurationError(
                f"{self.path.name}: missing top-level 'cultivars' mapping",
                ErrorContext(component="CultivarSource", operation="load"),
            )
        cultivars = cultivars_from_mapping(document["cultivars"])
        self.logger.info(f"Loaded {len(cultivars)} cultivar(s) from {self.path.name}")
        return cultivars


def load_cultivars(path: Union[str, Path]) -> Dict[str, Cultivar]:
    return CultivarSource(path).load()


def get_cultivar(cultivars: Dict[str, Cultivar], name: str) -> Cultivar:
    """
    Look up a cultivar by name.

    Raises:
        ConfigurationError: Unknown cultivar
    """
    try:
        return cultivars[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown cultivar '{name}' (available: {sorted(cultivars)})",
            ErrorContext(unit_id=name, component="CultivarSource", operation="get_cultivar"),
        )
