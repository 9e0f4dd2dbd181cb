"""Configuration of a lattice run."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from parlbm.lbm.errors import ConfigurationError

__all__ = [
    "ResultsType",
    "BoundaryConditions",
    "BoundaryOption",
    "LatticeConfig",
    "load_config",
]


class _Option(str, enum.Enum):
    @classmethod
    def parse(cls, value: Union[str, "_Option"]):
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).lower() in (member.value, member.name.lower()):
                return member
        choices = ", ".join(m.value for m in cls)
        raise ConfigurationError(
            f"Unknown {cls.__name__} '{value}', expected one of: {choices}."
        )


class ResultsType(_Option):
    DENSITY = "density"
    SPEED = "speed"
    VORTICITY = "vorticity"


class BoundaryConditions(_Option):
    BOUNCE_BACK = "bounceback"
    PERIODIC = "periodic"


class BoundaryOption(_Option):
    NONE = "none"
    DENSITY = "density"
    VELOCITY = "velocity"


# camelCase names accepted by from_dict
_ALIASES = {
    "resultsType": "results_type",
    "boundaryConditions": "boundary_conditions",
    "refreshSteps": "refresh_steps",
    "accelX": "accel_x",
    "useAccelX": "use_accel_x",
    "inletOption": "inlet_option",
    "outletOption": "outlet_option",
    "inletDensity": "inlet_density",
    "outletDensity": "outlet_density",
    "inletSpeed": "inlet_speed",
    "outletSpeed": "outlet_speed",
    "numThreads": "num_threads",
    "initialDensity": "initial_density",
    "warmupSteps": "warmup_steps",
}

_ENUMS = {
    "results_type": ResultsType,
    "boundary_conditions": BoundaryConditions,
    "inlet_option": BoundaryOption,
    "outlet_option": BoundaryOption,
}


@dataclass
class LatticeConfig:
    """Options of a lattice run. They are read once when a run starts and cannot be
    changed while it is in flight."""

    results_type: ResultsType = ResultsType.DENSITY
    boundary_conditions: BoundaryConditions = BoundaryConditions.BOUNCE_BACK
    refresh_steps: int = 10
    accel_x: float = 0.015
    use_accel_x: bool = False
    inlet_option: BoundaryOption = BoundaryOption.DENSITY
    outlet_option: BoundaryOption = BoundaryOption.DENSITY
    inlet_density: float = 1.05
    outlet_density: float = 1.0
    inlet_speed: float = 0.5
    outlet_speed: float = 0.5
    tau: float = 0.6
    num_threads: Optional[int] = 8
    initial_density: float = 1.0
    warmup_steps: int = 2000

    def __post_init__(self):
        for name, cls in _ENUMS.items():
            setattr(self, name, cls.parse(getattr(self, name)))
        if self.num_threads is None:
            self.num_threads = os.cpu_count() or 1

    @property
    def periodic(self) -> bool:
        return self.boundary_conditions is BoundaryConditions.PERIODIC

    def validate(self) -> "LatticeConfig":
        """Check the options, raising ConfigurationError on the first invalid one."""
        if int(self.num_threads) < 1:
            raise ConfigurationError(
                f"num_threads must be at least 1, but got {self.num_threads}."
            )
        if int(self.refresh_steps) < 1:
            raise ConfigurationError(
                f"refresh_steps must be positive, but got {self.refresh_steps}."
            )
        if int(self.warmup_steps) < 0:
            raise ConfigurationError(
                f"warmup_steps must not be negative, but got {self.warmup_steps}."
            )
        if not self.tau > 0.5:
            raise ConfigurationError(
                f"tau must be greater than 0.5, but got {self.tau}."
            )
        for name in ("initial_density", "inlet_density", "outlet_density"):
            if not getattr(self, name) > 0.0:
                raise ConfigurationError(
                    f"{name} must be positive, but got {getattr(self, name)}."
                )
        return self

    def update(self, **kwargs) -> "LatticeConfig":
        return replace(self, **kwargs)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "LatticeConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, val in values.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown lattice option '{key}'.")
            kwargs[name] = val
        return cls(**kwargs)

    def __getitem__(self, key: str) -> Any:
        return getattr(self, _ALIASES.get(key, key))

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, _ALIASES.get(key, key), default)


def load_config(path: Union[str, Path]) -> LatticeConfig:
    """Load a lattice configuration from a YAML file.

    The options can be given at the top level of the document or under a
    ``lattice`` key.

    Args:
        path: Path of the YAML file.

    Returns:
        The parsed LatticeConfig. It is not validated yet, this happens when a run
            starts.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found at {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping.")

    return LatticeConfig.from_dict(raw.get("lattice", raw))
