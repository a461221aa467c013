"""Boundary conditions at the two ends of the 1D stack.

A closed set of three kinds, carried by one immutable value type:

- ``FIXED`` (Dirichlet): prescribed temperature T_b [K].
- ``FLUX`` (Neumann): prescribed heat flux q into the stack [W/m²].
- ``EXCHANGE`` (Robin): q = h·(T_ext − T), with h [W/m²/K] and T_ext [K].

The driving value may be a constant or a callable of the non-dimensional
position l/L along the surface. Boundary conditions hold no simulation
state; the solver decides how each kind is written into its row of the
tridiagonal system (see ``thermal_solver.theta_method``).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Union

from stack_model.config import BoundaryConfig
from stack_model.errors import ConfigurationError

logger = logging.getLogger(__name__)

DrivingValue = Union[float, Callable[[float], float]]


class BoundaryKind(enum.Enum):
    """Boundary condition kinds."""

    FIXED = "fixed"
    FLUX = "flux"
    EXCHANGE = "exchange"


@dataclass(frozen=True)
class BoundaryCondition:
    """Boundary condition at one end of the stack.

    Use the :meth:`fixed`, :meth:`flux` and :meth:`exchange` constructors
    rather than building instances directly.

    Attributes
    ----------
    kind : BoundaryKind
        Variant tag.
    value : float or callable
        Temperature (FIXED), flux into the stack (FLUX) or external
        temperature (EXCHANGE); callables receive l/L.
    heat_transfer_coefficient : float
        h [W/m²/K] for EXCHANGE, 0 otherwise.
    """

    kind: BoundaryKind
    value: DrivingValue
    heat_transfer_coefficient: float = 0.0

    @classmethod
    def fixed(cls, temperature: DrivingValue) -> BoundaryCondition:
        return cls(BoundaryKind.FIXED, temperature)

    @classmethod
    def flux(cls, flux: DrivingValue) -> BoundaryCondition:
        return cls(BoundaryKind.FLUX, flux)

    @classmethod
    def exchange(
        cls, heat_transfer_coefficient: float, external_temperature: DrivingValue
    ) -> BoundaryCondition:
        if heat_transfer_coefficient <= 0.0:
            raise ConfigurationError(
                f"Heat transfer coefficient must be positive, got {heat_transfer_coefficient}"
            )
        return cls(BoundaryKind.EXCHANGE, external_temperature, float(heat_transfer_coefficient))

    def driving_value(self, position: float = 0.0) -> float:
        """Raw driving value at ``position``: T_b, q or T_ext."""
        if callable(self.value):
            return float(self.value(position))
        return float(self.value)

    def value_at(self, position: float = 0.0, temperature: float | None = None) -> float:
        """Evaluate the condition at ``position``.

        Parameters
        ----------
        position : float
            Non-dimensional position l/L.
        temperature : float, optional
            Local boundary temperature [K]; required for EXCHANGE.

        Returns
        -------
        float
            Temperature [K] for FIXED, flux [W/m²] for FLUX, and the
            exchanged flux h·(T_ext − T) [W/m²] for EXCHANGE.
        """
        if self.kind is BoundaryKind.EXCHANGE:
            if temperature is None:
                raise ConfigurationError("Exchange boundary needs the local temperature.")
            return self.heat_transfer_coefficient * (self.driving_value(position) - temperature)
        return self.driving_value(position)


def boundary_from_config(cfg: BoundaryConfig) -> BoundaryCondition:
    """Build a boundary condition from its configuration entry."""
    if cfg.kind == BoundaryKind.FIXED.value:
        return BoundaryCondition.fixed(cfg.value)
    if cfg.kind == BoundaryKind.FLUX.value:
        return BoundaryCondition.flux(cfg.value)
    if cfg.kind == BoundaryKind.EXCHANGE.value:
        return BoundaryCondition.exchange(cfg.heat_transfer_coefficient, cfg.value)
    raise ConfigurationError(f"Unsupported boundary condition kind '{cfg.kind}'")
