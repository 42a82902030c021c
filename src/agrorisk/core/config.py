"""
Configuration system with validation and environment awareness.
Based on Pydantic Settings; values can come from YAML, environment
variables (prefix AGRORISK_, nested delimiter __) or keyword arguments.
"""
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

from agrorisk.core.types import ReferenceETMethod


class EngineConfig(BaseSettings):
    """Settings of the phenology and water balance engine"""

    reference_et_method: ReferenceETMethod = Field(
        default=ReferenceETMethod.HARGREAVES,
        description="Reference ET algorithm (falls back to hargreaves on missing inputs)"
    )
    preseason_days: int = Field(
        default=0, ge=0,
        description="Days simulated before planting (bare soil, Initial stage)"
    )
    max_root_depth_cap_m: float = Field(
        default=1.5, gt=0,
        description="Configured cap on usable rooting depth"
    )
    evaporation_layer_depth_m: float = Field(0.10, gt=0, le=0.25)
    wind_speed_default_m_s: float = Field(2.0, ge=0)
    rh_min_default_pct: float = Field(45.0, ge=0, le=100)
    invariant_tolerance: float = Field(1e-9, gt=0)

    model_config = ConfigDict(env_prefix="AGRORISK_ENGINE_", case_sensitive=False)


class RunnerConfig(BaseSettings):
    """Settings of the worker pool that dispatches simulation units"""

    executor: Literal["thread", "process", "sequential"] = "thread"
    max_workers: int = Field(4, ge=1)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    write_daily_outputs: bool = True

    model_config = ConfigDict(env_prefix="AGRORISK_RUNNER_", case_sensitive=False)


class AgroriskConfig(BaseSettings):
    """Main configuration for the agrorisk system"""

    project_name: str = "agrorisk"

    engine: EngineConfig = Field(default_factory=EngineConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)

    # Paths
    output_dir: Path = Path("./output")
    cultivar_file: Optional[Path] = None

    model_config = ConfigDict(
        env_prefix="AGRORISK_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    @field_validator("output_dir", "cultivar_file", mode="before")
    @classmethod
    def coerce_path(cls, v):
        if v is None:
            return v
        return Path(v)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "AgroriskConfig":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def to_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)


def load_config(config_path: Optional[Union[str, Path]] = None) -> AgroriskConfig:
    """
    Build a configuration instance.

    A new object is returned on every call; callers pass it along explicitly
    (usually inside a RunContext) instead of reading a module global.
    """
    if config_path is not None:
        return AgroriskConfig.from_yaml(config_path)
    return AgroriskConfig()
