"""Material layers and the 1D grid through a layered stack.

A stack is an ordered list of layers from the outer (heated) skin to the
innermost structural surface. The grid generator places every layer
interface exactly on a grid node, so an interface temperature can be read
directly from the temperature field without interpolation.

Notes
-----
Grid layout for a stack of layers j = 0 .. L-1 with n_j requested points::

    x = 0                  b_0                 b_1             ...   b_{L-1}
    |--+--+--+--+--+--+--+--|--+--+--+--+--+--+--|   ...   ...  --|
       layer 0 (n_0 nodes)     layer 1 (n_1 nodes)

Each layer spans n_j nodes including its starting node, which it shares
with the previous layer. The grid therefore has ``1 + Σ (n_j − 1)`` nodes
and ``b_j`` (the cumulative thickness) is an exact grid coordinate.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field

import numpy as np

from stack_model.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Material:
    """Thermophysical properties of one material.

    Attributes
    ----------
    name : str
        Material name (e.g. "TPS", "CarbonFiber").
    conductivity : float
        Thermal conductivity k [W/m/K].
    density : float
        Density ρ [kg/m³].
    specific_heat : float
        Specific heat capacity c [J/kg/K].
    max_temperature : float, optional
        Maximum service temperature [K]. None if not applicable.
    glass_transition_temperature : float, optional
        Glass-transition temperature [K]. None if not applicable.
    """

    name: str
    conductivity: float
    density: float
    specific_heat: float
    max_temperature: float | None = None
    glass_transition_temperature: float | None = None

    @property
    def diffusivity(self) -> float:
        """Thermal diffusivity α = k / (ρ·c) [m²/s]."""
        return self.conductivity / (self.density * self.specific_heat)

    @property
    def limit_temperature(self) -> float:
        """Temperature this material must stay below [K].

        The glass-transition temperature governs when present, then the
        maximum service temperature; a material with neither is unlimited.
        """
        if self.glass_transition_temperature is not None:
            return self.glass_transition_temperature
        if self.max_temperature is not None:
            return self.max_temperature
        return math.inf


@dataclass
class Layer:
    """One material layer of a stack.

    Attributes
    ----------
    material : Material
        Layer material.
    thickness : float
        Layer thickness [m]. Mutated by the thickness optimizer.
    num_points : int
        Requested number of grid nodes spanning the layer (>= 2).
    """

    material: Material
    thickness: float
    num_points: int = 10


@dataclass
class Stack:
    """Ordered layers (outer -> inner) and the grid through them.

    Attributes
    ----------
    layers : list[Layer]
        Layers from the outer skin to the innermost surface.
    stack_id : int
        Identifier (slice number when built by the runner).
    x_grid : np.ndarray
        Node coordinates [m], measured inward from the outer surface.
        Shape: (1 + Σ (n_j − 1),).
    total_thickness : float
        Sum of the layer thicknesses [m], equal to ``x_grid[-1]``.
    """

    layers: list[Layer]
    stack_id: int = 0
    x_grid: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))
    total_thickness: float = 0.0

    # ---------------------------------------------------------------
    # Grid generation
    # ---------------------------------------------------------------

    def generate_grid(self, points_per_layer: int | None = None) -> np.ndarray:
        """(Re)build ``x_grid`` from the current layer thicknesses.

        Must be called again whenever a thickness or point count changes.

        Parameters
        ----------
        points_per_layer : int, optional
            If given, overrides ``num_points`` on every layer.

        Returns
        -------
        np.ndarray
            The new grid (also stored on the stack).

        Raises
        ------
        ConfigurationError
            If the stack has no layers, a thickness is not positive, a layer
            requests fewer than 2 points or a material property is not
            positive.
        """
        if not self.layers:
            raise ConfigurationError("Cannot generate a grid for a stack with no layers.")

        if points_per_layer is not None:
            for layer in self.layers:
                layer.num_points = int(points_per_layer)

        for layer in self.layers:
            if not layer.thickness > 0.0:
                raise ConfigurationError(
                    f"Layer '{layer.material.name}' thickness must be positive, "
                    f"got {layer.thickness}"
                )
            if layer.num_points < 2:
                raise ConfigurationError(
                    f"Layer '{layer.material.name}' needs at least 2 points, "
                    f"got {layer.num_points}"
                )
            mat = layer.material
            if min(mat.conductivity, mat.density, mat.specific_heat) <= 0.0:
                raise ConfigurationError(
                    f"Material '{mat.name}' must have positive k, rho and c"
                )

        boundaries = self.layer_boundaries()
        segments = [np.zeros(1, dtype=np.float64)]
        start = 0.0
        for layer, end in zip(self.layers, boundaries):
            # linspace hits `end` exactly, so interfaces sit on grid nodes
            segments.append(np.linspace(start, end, layer.num_points, dtype=np.float64)[1:])
            start = end

        self.x_grid = np.concatenate(segments)
        self.total_thickness = float(self.x_grid[-1])

        logger.debug(
            "Stack %d grid: %d nodes over %d layers, total=%.6e m",
            self.stack_id,
            self.x_grid.size,
            len(self.layers),
            self.total_thickness,
        )
        return self.x_grid

    def layer_boundaries(self) -> np.ndarray:
        """Cumulative thickness at the inner end of each layer [m]."""
        return np.cumsum([layer.thickness for layer in self.layers], dtype=np.float64)

    @property
    def num_points(self) -> int:
        return int(self.x_grid.size)

    def copy(self) -> Stack:
        """Independent deep copy (layers, grid and all)."""
        return copy.deepcopy(self)

    # ---------------------------------------------------------------
    # Property lookup
    # ---------------------------------------------------------------

    def layer_index_at(self, index: int) -> int:
        """Index of the layer owning grid node ``index``.

        Scans layers in order and returns the first whose cumulative
        boundary has not been passed; a node exactly on an interface
        belongs to the outer of the two layers. The last layer is the
        fallback for round-off at the final node.
        """
        x = self.x_grid[index]
        x_start = 0.0
        for j, layer in enumerate(self.layers):
            if x <= x_start + layer.thickness:
                return j
            x_start += layer.thickness
        return len(self.layers) - 1

    def material_at(self, index: int) -> Material:
        return self.layers[self.layer_index_at(index)].material

    def diffusivity_at(self, index: int) -> float:
        """Thermal diffusivity at grid node ``index`` [m²/s]."""
        return self.material_at(index).diffusivity

    def conductivity_at(self, index: int) -> float:
        """Thermal conductivity at grid node ``index`` [W/m/K]."""
        return self.material_at(index).conductivity

    def _layer_indices(self) -> np.ndarray:
        # Vectorised form of layer_index_at: first boundary >= x
        idx = np.searchsorted(self.layer_boundaries(), self.x_grid, side="left")
        return np.minimum(idx, len(self.layers) - 1)

    def diffusivity_profile(self) -> np.ndarray:
        """Diffusivity at every grid node [m²/s]. Shape: (N,)."""
        alphas = np.array([layer.material.diffusivity for layer in self.layers], dtype=np.float64)
        return alphas[self._layer_indices()]

    def conductivity_profile(self) -> np.ndarray:
        """Conductivity at every grid node [W/m/K]. Shape: (N,)."""
        ks = np.array([layer.material.conductivity for layer in self.layers], dtype=np.float64)
        return ks[self._layer_indices()]

    # ---------------------------------------------------------------
    # Interfaces
    # ---------------------------------------------------------------

    def interface_indices(self) -> list[int]:
        """Grid index of the inner end of every layer.

        Found as the first grid coordinate at or beyond each cumulative
        thickness boundary. The last entry is the innermost surface.
        """
        idx = np.searchsorted(self.x_grid, self.layer_boundaries(), side="left")
        idx = np.minimum(idx, self.x_grid.size - 1)
        return [int(i) for i in idx]

    def interface_ceilings(self) -> list[float]:
        """Temperature ceiling at the inner end of every layer [K].

        An interface between layers j and j+1 is limited by the downstream
        material (j+1); the innermost surface by the last material.
        """
        ceilings = []
        for j in range(len(self.layers)):
            downstream = self.layers[min(j + 1, len(self.layers) - 1)].material
            ceilings.append(downstream.limit_temperature)
        return ceilings
