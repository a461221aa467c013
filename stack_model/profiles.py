"""Spatial profiles along the surface, as functions of l/L.

Layer thicknesses and the outer driving temperature vary with the
non-dimensional position ``l/L`` in [0, 1] along the 3D surface. Each
profile is a small immutable callable so that it can be stored in the
frozen configuration, pickled to worker processes and evaluated per slice.

All profiles share the pattern::

    value(l/L) = (shape(l/L) + offset) * scale

Notes
-----
The ``scale`` factor exists because the reference thickness curves are
written in centimetres and converted to metres (``scale = 0.01``).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConstantProfile:
    """Position-independent value."""

    value: float

    def __call__(self, l_over_L: float) -> float:
        return self.value


@dataclass(frozen=True)
class SineProfile:
    """Rectified sine: ``(|A·sin(2π·f·span·l/L)| + offset) · scale``.

    Attributes
    ----------
    amplitude : float
        Peak amplitude A.
    frequency : float
        Oscillation frequency f per unit of stretched position.
    span : float
        Stretch factor applied to l/L before evaluation.
    offset : float
        Additive floor, keeps the value strictly positive.
    scale : float
        Unit conversion factor.
    """

    amplitude: float
    frequency: float
    span: float
    offset: float
    scale: float = 1.0

    def __call__(self, l_over_L: float) -> float:
        t = l_over_L * self.span
        shape = abs(self.amplitude * math.sin(2.0 * math.pi * self.frequency * t))
        return (shape + self.offset) * self.scale


@dataclass(frozen=True)
class LogProfile:
    """Logarithmic growth or decay: ``(A·ln(rate·l/L + 1) + offset) · scale``.

    A negative amplitude gives a decaying curve, which is how the exhaust
    gas temperature falls off along the surface.
    """

    amplitude: float
    rate: float
    offset: float
    scale: float = 1.0

    def __call__(self, l_over_L: float) -> float:
        return (self.amplitude * math.log(self.rate * l_over_L + 1.0) + self.offset) * self.scale


@dataclass(frozen=True)
class SawtoothProfile:
    """Sawtooth ramp: ``((A/2)·(saw + 1) + offset) · scale``.

    ``saw = 2·(f·t − floor(f·t)) − 1`` with ``t = span · l/L``, i.e. a ramp
    in [-1, 1) repeating ``f`` times per unit of stretched position.
    """

    amplitude: float
    frequency: float
    span: float
    offset: float
    scale: float = 1.0

    def __call__(self, l_over_L: float) -> float:
        ft = self.frequency * l_over_L * self.span
        saw = 2.0 * (ft - math.floor(ft)) - 1.0
        return ((self.amplitude / 2.0) * (saw + 1.0) + self.offset) * self.scale


Profile = Union[ConstantProfile, SineProfile, LogProfile, SawtoothProfile]

_PROFILE_TYPES: dict[str, type] = {
    "constant": ConstantProfile,
    "sine": SineProfile,
    "log": LogProfile,
    "sawtooth": SawtoothProfile,
}


def build_profile(raw: Any) -> Profile:
    """Build a profile from its YAML description.

    Parameters
    ----------
    raw : dict or float
        Either a bare number (constant profile) or a mapping with a
        ``type`` key (``constant``, ``sine``, ``log``, ``sawtooth``) and the
        keyword parameters of the matching profile class.

    Returns
    -------
    Profile
        Immutable callable profile.

    Raises
    ------
    ValueError
        If the profile type is unknown or its parameters do not match.
    """
    if isinstance(raw, (int, float)):
        return ConstantProfile(value=float(raw))

    if not isinstance(raw, dict) or "type" not in raw:
        raise ValueError(f"Profile must be a number or a mapping with a 'type' key, got {raw!r}")

    kind = str(raw["type"]).lower()
    cls = _PROFILE_TYPES.get(kind)
    if cls is None:
        raise ValueError(
            f"Unknown profile type '{kind}'. Expected one of {sorted(_PROFILE_TYPES)}"
        )

    params = {k: float(v) for k, v in raw.items() if k != "type"}
    try:
        profile = cls(**params)
    except TypeError as exc:
        raise ValueError(f"Invalid parameters for '{kind}' profile: {sorted(params)}") from exc

    logger.debug("Built %s profile: %s", kind, profile)
    return profile
