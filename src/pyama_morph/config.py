"""Run configuration and YAML config loading."""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from pyama_morph.errors import ConfigError
from pyama_morph.types.mode import DEFAULT_FAMILIES, DEFAULT_POPULATIONS, Mode


@dataclass(frozen=True)
class RunConfig:
    """Read-only settings shared by every unit of a run."""

    populations: str = DEFAULT_POPULATIONS
    families: str = DEFAULT_FAMILIES
    pad: int = 1
    min_size: int = 1
    drop_borders: bool = False
    connectivity: int = 2
    n_workers: int | None = None
    channels: int | None = None
    verbose: bool = False
    area_tolerance: float = 0.05

    @property
    def mode(self) -> Mode:
        return Mode.parse(self.populations, self.families)

    @property
    def workers(self) -> int:
        """Worker count, defaulting to the number of CPUs."""
        if self.n_workers is None:
            return os.cpu_count() or 1
        return self.n_workers

    def validate(self) -> Mode:
        """Check every setting and return the parsed mode.

        Raises:
            ConfigError: On the first invalid value
        """
        mode = self.mode
        for name in ("pad", "min_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"{name} must be a non-negative integer, got {value!r}")
        if self.connectivity not in (1, 2):
            raise ConfigError(
                f"connectivity must be 1 (4-neighbour) or 2 (8-neighbour), got {self.connectivity!r}"
            )
        if self.n_workers is not None and (
            not isinstance(self.n_workers, int) or self.n_workers < 1
        ):
            raise ConfigError(f"n_workers must be >= 1, got {self.n_workers!r}")
        if self.channels is not None and (
            not isinstance(self.channels, int) or self.channels < 1
        ):
            raise ConfigError(f"channels must be >= 1, got {self.channels!r}")
        if not 0 <= float(self.area_tolerance) <= 1:
            raise ConfigError(
                f"area_tolerance must be within [0, 1], got {self.area_tolerance!r}"
            )
        return mode

    def with_overrides(self, **overrides: Any) -> "RunConfig":
        """Copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(values) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return replace(self, **values)


def load_config(path: Path) -> RunConfig:
    """Load a RunConfig from a YAML mapping with the same keys."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must contain a mapping at the top level")
    for key in ("populations", "families"):
        if key in data and data[key] is not None:
            data[key] = str(data[key])
    config = RunConfig().with_overrides(**data)
    config.validate()
    return config


__all__ = ["RunConfig", "load_config"]
