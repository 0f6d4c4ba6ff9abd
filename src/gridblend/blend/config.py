# src/gridblend/blend/config.py

"""
This module holds the configuration knobs of the blend engine.

All settings are explicit values on a BlendConfig instance that is handed to
the engine; nothing is read from module-level state.
"""

import logging
from pathlib import Path
from typing import Union, Optional, Tuple
from enum import Enum

import numpy as np
from rasterio.crs import CRS
from rasterio.enums import Resampling

from gridblend.raster.region import Registration, parse_region, parse_increment

log = logging.getLogger(__name__)

__all__ = [
    "CombinationPolicy",
    "SignFilter",
    "OutputMode",
    "BlendConfig",
    "parse_clobber"
]

class CombinationPolicy(Enum):
    """How overlapping tiles are combined into one output value.

    Options:
        BLEND: Taper-weighted average of every contributing tile.
        FIRST: Keep the first tile (input order) that has a value.
        LAST: Keep the last tile (input order) that has a value.
        LOWER: Keep the smallest value.
        UPPER: Keep the largest value.
    """
    BLEND = "blend"
    FIRST = "first"
    LAST = "last"
    LOWER = "lower"
    UPPER = "upper"

class SignFilter(Enum):
    """Restricts which values may clobber the current one.

    Options:
        ANY: No restriction.
        NEGATIVE: Only values <= 0 may replace the current value.
        POSITIVE: Only values >= 0 may replace the current value.
    """
    ANY = 0
    NEGATIVE = -1
    POSITIVE = 1

class OutputMode(Enum):
    """What each output cell holds.

    Options:
        VALUE: The combined value (times the configured scale).
        WEIGHT: The sum of the weights.
        WEIGHT_TIMES_VALUE: The weighted sum, without dividing by the weights.
    """
    VALUE = "value"
    WEIGHT = "weight"
    WEIGHT_TIMES_VALUE = "weight_times_value"

_CLOBBER_CODES = {
    "f": CombinationPolicy.FIRST,
    "l": CombinationPolicy.LOWER,
    "o": CombinationPolicy.LAST,
    "u": CombinationPolicy.UPPER
}

_SIGN_CODES = {
    "n": SignFilter.NEGATIVE,
    "p": SignFilter.POSITIVE
}

def parse_clobber(text: str) -> Tuple[CombinationPolicy, SignFilter]:
    """
    Decodes a clobber selector such as 'u', 'l+n' or 'o+p'.

    The letter picks the policy (f=first, l=lower, o=last/overwrite,
    u=upper); an optional '+n' or '+p' adds a sign filter.

    Raises:
        ValueError: If the selector is not recognised.
    """
    code, _, modifier = text.strip().partition("+")
    policy = _CLOBBER_CODES.get(code.lower())
    if policy is None:
        raise ValueError(f"Unknown clobber mode '{text}'. Expected one of f, l, o, u")

    sign = SignFilter.ANY
    if modifier:
        sign = _SIGN_CODES.get(modifier.lower())
        if sign is None:
            raise ValueError(f"Unknown clobber modifier '+{modifier}'. Expected +n or +p")
    return policy, sign

class BlendConfig:
    """Configuration object for the blend engine.

    Args:
        policy: CombinationPolicy (or its name). Default=BLEND.
        sign: SignFilter applied by the clobber policies. Default=ANY.
        output_mode: OutputMode (or its name). Default=VALUE.
        scale: Multiplier applied to VALUE outputs. Default=1.0.
        nodata: Value written to cells no tile covers. Default=NaN.
        region: Explicit output bounds, a (w, e, s, n) tuple or a 'w/e/s/n' string.
                If None the union of the tile footprints is used.
        increment: Explicit output (dx, dy), a number or a 'dx[/dy]' string.
        registration: Explicit output registration. If None the tiles' common
                      registration is used.
        geographic: Treat longitudes as periodic. If None it is taken from the
                    CRS of the first tile.
        crs: CRS written to the output. If None the first tile's CRS is used.
        raw: Write a headerless native float32 file instead of a grid format.
        resampling: Interpolation used when a tile must be regridded.
        tmp_dir: Directory for temporary grids.
        progress_interval: Log a progress line every this many rows.

    Raises:
        ValueError: If a sign filter is combined with the BLEND policy.
    """
    def __init__(
        self,
        policy: Union[CombinationPolicy, str] = CombinationPolicy.BLEND,
        sign: Union[SignFilter, int] = SignFilter.ANY,
        output_mode: Union[OutputMode, str] = OutputMode.VALUE,
        scale: float = 1.0,
        nodata: float = np.nan,
        region: Optional[Union[Tuple[float, float, float, float], str]] = None,
        increment: Optional[Union[Tuple[float, float], float, str]] = None,
        registration: Optional[Union[Registration, str]] = None,
        geographic: Optional[bool] = None,
        crs: Optional[Union[CRS, str]] = None,
        raw: bool = False,
        resampling: Union[Resampling, str] = Resampling.bilinear,
        tmp_dir: Optional[Union[str, Path]] = None,
        progress_interval: int = 10
    ):
        self.policy = CombinationPolicy(policy)
        self.sign = SignFilter(sign)
        self.output_mode = OutputMode(output_mode)
        self.scale = float(scale)
        self.nodata = float(nodata)

        if isinstance(region, str):
            region = parse_region(region)
        self.region = tuple(float(v) for v in region) if region is not None else None

        if isinstance(increment, str):
            increment = parse_increment(increment)
        elif isinstance(increment, (int, float)):
            increment = (float(increment), float(increment))
        self.increment = tuple(float(v) for v in increment) if increment is not None else None

        self.registration = Registration(registration) if registration is not None else None
        self.geographic = geographic
        self.crs = CRS.from_user_input(crs) if crs is not None else None
        self.raw = raw
        self.resampling = Resampling[resampling] if isinstance(resampling, str) else resampling
        self.tmp_dir = Path(tmp_dir) if tmp_dir else None
        self.progress_interval = max(1, int(progress_interval))

        if self.sign is not SignFilter.ANY and self.policy is CombinationPolicy.BLEND:
            raise ValueError("A sign filter only applies to the clobber policies")

        if self.scale != 1.0 and self.output_mode is not OutputMode.VALUE:
            log.warning("Scale factor only applies to value output and will be ignored")

    @property
    def is_clobber(self) -> bool:
        return self.policy is not CombinationPolicy.BLEND

    def __repr__(self) -> str:
        return (f"<BlendConfig policy={self.policy.value} sign={self.sign.name} "
                f"mode={self.output_mode.value} scale={self.scale:g}>")
