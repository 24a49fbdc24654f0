"""
camcalib/config.py

Objective:
    Application settings: KITTI conventions the dump files do not encode,
    the default comparison tolerance and logging options. Loaded from YAML.
"""
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Tuple
import math

import yaml

from camcalib.exceptions import ConfigError
from camcalib.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class KittiConfig:
    frame_rate_hz: float = 10.0                     # KITTI sensors run at ~10 Hz
    image_size: Tuple[int, int] = (1241, 376)       # odometry grayscale (width, height)


@dataclass(frozen=True)
class ComparisonConfig:
    tolerance: float = 1e-9


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    log_file: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    kitti: KittiConfig = field(default_factory=KittiConfig)
    comparison: ComparisonConfig = field(default_factory=ComparisonConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _section(cls, data, name):
    """ Build one frozen section from a mapping, rejecting unknown keys. """
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {sorted(unknown)}")
    return cls(**data)


def _validate(config: AppConfig):
    rate = config.kitti.frame_rate_hz
    if (not isinstance(rate, (int, float)) or isinstance(rate, bool)
            or not math.isfinite(rate) or rate <= 0):
        raise ConfigError(f"kitti.frame_rate_hz must be finite and > 0, got {rate!r}")
    size = config.kitti.image_size
    if (len(size) != 2
            or not all(isinstance(v, int) and not isinstance(v, bool) for v in size)
            or min(size) <= 0):
        raise ConfigError(f"kitti.image_size must be two positive integers, got {size!r}")
    tol = config.comparison.tolerance
    if (not isinstance(tol, (int, float)) or isinstance(tol, bool)
            or not math.isfinite(tol) or tol < 0):
        raise ConfigError(f"comparison.tolerance must be >= 0, got {tol!r}")


def load_config(path: Optional[Path] = None) -> AppConfig:
    """
    Load settings from a YAML file; omitted sections keep their defaults.

    Raises:
        ConfigError: if the file is missing, unparsable or holds invalid values
    """
    if path is None:
        return AppConfig()

    path = Path(path)
    logger.info(f"Loading configuration from {path}")
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {path}")

    unknown = set(data) - {"kitti", "comparison", "logging"}
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {sorted(unknown)}")

    kitti_data = data.get("kitti")
    if isinstance(kitti_data, dict) and "image_size" in kitti_data:
        kitti_data = dict(kitti_data)
        size = kitti_data["image_size"]
        if not isinstance(size, (list, tuple)):
            raise ConfigError(f"kitti.image_size must be [width, height], got {size!r}")
        kitti_data["image_size"] = tuple(size)

    try:
        config = AppConfig(
            kitti=_section(KittiConfig, kitti_data, "kitti"),
            comparison=_section(ComparisonConfig, data.get("comparison"), "comparison"),
            logging=_section(LoggingConfig, data.get("logging"), "logging"),
        )
    except TypeError as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e
    _validate(config)
    return config
