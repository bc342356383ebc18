from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Union

from .models import MapperConfig, ReverseOffset

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised for out-of-range or malformed mapping parameters."""


def check_readable(path: str | Path, *, what: str = "Input file") -> None:
    """Ensure an input file exists and is a regular file; raise with a fix hint."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"{what} does not exist: {p}")
    if not p.is_file():
        raise FileNotFoundError(f"{what} is not a regular file: {p}")
    if p.stat().st_size == 0:
        logger.warning("%s is empty: %s", what, p)


def _check_ratio(name: str, value: float, *, upper: float = math.inf) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if math.isnan(v) or v < 0 or v > upper:
        bound = "[0, inf)" if math.isinf(upper) else f"[0, {upper:g}]"
        raise ConfigError(f"{name} must be within {bound}, got {value!r}")
    return v


def parse_reverse_offset(value: Union[str, int, ReverseOffset]) -> ReverseOffset:
    """Accept 'legacy'/'standard' or the numeric shift (2/1)."""
    if isinstance(value, ReverseOffset):
        return value
    token = str(value).strip().lower().lstrip("-")
    if token in ("legacy", "cgaln", "2"):
        return ReverseOffset.LEGACY
    if token in ("standard", "1"):
        return ReverseOffset.STANDARD
    raise ConfigError(
        f"reverse offset must be 'legacy' (-2) or 'standard' (-1), got {value!r}"
    )


def build_config(
    *,
    max_block_overlap_ratio: float = 0.25,
    max_multi_position_ratio: float = 0.05,
    reverse_offset: Union[str, int, ReverseOffset] = ReverseOffset.LEGACY,
) -> MapperConfig:
    """Validate scalar parameters and bundle them into a ``MapperConfig``."""
    return MapperConfig(
        max_block_overlap_ratio=_check_ratio("max-block-overlap-ratio", max_block_overlap_ratio),
        max_multi_position_ratio=_check_ratio(
            "max-multi-position-ratio", max_multi_position_ratio, upper=1.0
        ),
        reverse_offset=parse_reverse_offset(reverse_offset),
    )
