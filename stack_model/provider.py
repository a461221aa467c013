"""Per-slice material and boundary data, as functions of l/L.

The provider turns the stack template from the configuration into a
concrete :class:`Stack` for one position along the surface, and supplies
the position-dependent boundary driving values and the thickness search
bracket of the optimized outer layer.
"""

from __future__ import annotations

import logging

from stack_model.config import SimulationConfig
from stack_model.materials import Layer, Stack

logger = logging.getLogger(__name__)


class MaterialProvider:
    """Builds stacks and boundary values for a position l/L.

    Parameters
    ----------
    config : SimulationConfig
        Full simulation configuration.
    """

    def __init__(self, config: SimulationConfig) -> None:
        self._config = config

    @property
    def config(self) -> SimulationConfig:
        return self._config

    def layer_thickness(self, layer_index: int, l_over_L: float) -> float:
        """Thickness of layer ``layer_index`` at position ``l_over_L`` [m]."""
        return float(self._config.layers[layer_index].thickness(l_over_L))

    def outer_driving_value(self, l_over_L: float) -> float:
        """Outer boundary driving value (exhaust temperature for 'fixed')."""
        return float(self._config.outer_boundary.value(l_over_L))

    def inner_driving_value(self, l_over_L: float) -> float:
        return float(self._config.inner_boundary.value(l_over_L))

    @property
    def thickness_bounds(self) -> tuple[float, float]:
        """Search bracket of the outer-layer thickness [m]."""
        opt = self._config.optimizer
        return opt.min_thickness_m, opt.max_thickness_m

    def build_stack(
        self,
        l_over_L: float,
        stack_id: int = 0,
        points_per_layer: int | None = None,
    ) -> Stack:
        """Build and grid the stack at position ``l_over_L``.

        Parameters
        ----------
        l_over_L : float
            Non-dimensional position along the surface, in [0, 1].
        stack_id : int
            Identifier stored on the stack.
        points_per_layer : int, optional
            Override of every layer's point count.

        Returns
        -------
        Stack
            Stack with its grid generated.
        """
        if not (0.0 <= l_over_L <= 1.0):
            raise ValueError(f"l/L must be in [0, 1], got {l_over_L}")

        layers = [
            Layer(
                material=self._config.materials[lay.material],
                thickness=float(lay.thickness(l_over_L)),
                num_points=lay.num_points,
            )
            for lay in self._config.layers
        ]
        stack = Stack(layers=layers, stack_id=stack_id)
        stack.generate_grid(points_per_layer)

        logger.debug(
            "Built stack %d at l/L=%.4f: thicknesses=%s m",
            stack_id,
            l_over_L,
            ", ".join(f"{lay.thickness:.3e}" for lay in layers),
        )
        return stack
