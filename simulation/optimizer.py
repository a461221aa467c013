"""Minimum outer-layer thickness search by bisection.

Each bisection iteration is one complete transient solve of the stack with
a trial outer-layer thickness. Downstream interface temperatures decrease
monotonically with that thickness, so the feasible set is an interval
[t*, max] and bisection on the "all ceilings met" predicate converges to t*.

Notes
-----
The cost is O(log2((max − min) / tolerance)) full solves per call, about
10 for the default 1e-4 .. 1e-2 m bracket at 1e-5 m tolerance.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from stack_model.config import SimulationConfig, SolverConfig
from stack_model.errors import ConfigurationError, ConvergenceError
from stack_model.materials import Stack
from thermal_solver.boundary import BoundaryCondition, boundary_from_config
from thermal_solver.theta_method import solve_stack

logger = logging.getLogger(__name__)


@dataclass
class OptimizationResult:
    """Outcome of a thickness bisection.

    Attributes
    ----------
    thickness : float
        Smallest feasible outer-layer thickness found (final upper bound) [m].
    last_midpoint : float
        Thickness of the last trial evaluated [m].
    lower_bound : float
        Final lower bound of the bracket [m].
    upper_bound : float
        Final upper bound of the bracket [m].
    iterations : int
        Number of full transient solves performed.
    interface_temperatures : np.ndarray
        Tracked temperatures at ``thickness`` [K].
    ceilings : np.ndarray
        Ceilings the tracked temperatures were checked against [K].
    interface_indices : list[int]
        Grid indices of the tracked interfaces.
    """

    thickness: float
    last_midpoint: float
    lower_bound: float
    upper_bound: float
    iterations: int
    interface_temperatures: np.ndarray
    ceilings: np.ndarray
    interface_indices: list[int] = field(default_factory=list)


class ThicknessOptimizer:
    """Bisection search for the minimum outer-layer thickness.

    Parameters
    ----------
    solver_config : SolverConfig
        Settings for every trial transient solve.
    outer, inner : BoundaryCondition
        Boundary conditions applied in every trial.
    min_thickness, max_thickness : float
        Search bracket [m].
    tolerance : float
        Default bracket width at which the search stops [m].
    max_iterations : int
        Safety ceiling; exceeding it raises :class:`ConvergenceError`.
    tracked_layers : tuple[int, ...]
        Layers whose inner-end temperature is checked.
    initial_temperature : np.ndarray, optional
        Starting field for every trial; uniform default if None.
    """

    def __init__(
        self,
        solver_config: SolverConfig,
        outer: BoundaryCondition,
        inner: BoundaryCondition,
        min_thickness: float,
        max_thickness: float,
        tolerance: float = 1e-5,
        max_iterations: int = 100,
        tracked_layers: tuple[int, ...] = (0, 1, -1),
        initial_temperature: np.ndarray | None = None,
    ) -> None:
        if not (0.0 < min_thickness < max_thickness):
            raise ConfigurationError(
                f"Invalid thickness bracket [{min_thickness}, {max_thickness}]"
            )
        if tolerance <= 0.0:
            raise ConfigurationError(f"Tolerance must be positive, got {tolerance}")

        self._solver_config = solver_config
        self._outer = outer
        self._inner = inner
        self._min = float(min_thickness)
        self._max = float(max_thickness)
        self._tolerance = float(tolerance)
        self._max_iterations = int(max_iterations)
        self._tracked = tuple(tracked_layers)
        self._initial = initial_temperature

    @classmethod
    def from_config(
        cls,
        config: SimulationConfig,
        initial_temperature: np.ndarray | None = None,
    ) -> ThicknessOptimizer:
        opt = config.optimizer
        return cls(
            solver_config=config.solver,
            outer=boundary_from_config(config.outer_boundary),
            inner=boundary_from_config(config.inner_boundary),
            min_thickness=opt.min_thickness_m,
            max_thickness=opt.max_thickness_m,
            tolerance=opt.tolerance_m,
            max_iterations=opt.max_iterations,
            tracked_layers=opt.tracked_layers,
            initial_temperature=initial_temperature,
        )

    def tracked_indices(self, stack: Stack) -> list[int]:
        """Grid indices of the tracked interfaces of ``stack``."""
        interfaces = stack.interface_indices()
        try:
            return [interfaces[j] for j in self._tracked]
        except IndexError as exc:
            raise ConfigurationError(
                f"Tracked layers {self._tracked} do not exist in a "
                f"{len(stack.layers)}-layer stack"
            ) from exc

    def default_ceilings(self, stack: Stack) -> list[float]:
        """Material-limit ceilings for the tracked interfaces of ``stack``."""
        ceilings = stack.interface_ceilings()
        return [ceilings[j] for j in self._tracked]

    def evaluate(
        self,
        stack: Stack,
        thickness: float,
        position: float = 0.0,
        duration: float | None = None,
    ) -> np.ndarray:
        """Tracked interface temperatures after a full solve at ``thickness``.

        ``stack`` is copied; the caller's instance is never modified.
        """
        trial = stack.copy()
        trial.layers[0].thickness = float(thickness)
        trial.generate_grid()
        indices = self.tracked_indices(trial)

        solver = solve_stack(
            trial,
            self._outer,
            self._inner,
            self._solver_config,
            position=position,
            initial_temperature=self._initial,
            duration=duration,
        )
        temps = solver.interface_temperatures(indices)
        solver.close()
        return temps

    def optimize(
        self,
        stack: Stack,
        ceilings: list[float] | None = None,
        duration: float | None = None,
        position: float = 0.0,
        tolerance: float | None = None,
    ) -> OptimizationResult:
        """Find the minimum outer-layer thickness meeting every ceiling.

        Parameters
        ----------
        stack : Stack
            Stack template; its outer-layer thickness is the search
            variable. Not modified.
        ceilings : list[float], optional
            One ceiling per tracked interface [K]. Defaults to the
            downstream materials' limit temperatures.
        duration : float, optional
            Simulated time per trial [s]; defaults to the solver config.
        position : float
            Non-dimensional surface position l/L.
        tolerance : float, optional
            Bracket width at which to stop [m].

        Returns
        -------
        OptimizationResult
            Search outcome.

        Raises
        ------
        ConvergenceError
            If the iteration ceiling is hit, the bracket collapses below
            floating-point resolution, or no trial thickness is feasible.
        """
        tol = self._tolerance if tolerance is None else float(tolerance)
        if tol <= 0.0:
            raise ConfigurationError(f"Tolerance must be positive, got {tol}")

        template = stack.copy()
        template.generate_grid()
        indices = self.tracked_indices(template)

        limits = np.asarray(
            self.default_ceilings(template) if ceilings is None else ceilings,
            dtype=np.float64,
        )
        if limits.size != len(indices):
            raise ConfigurationError(
                f"Got {limits.size} ceilings for {len(indices)} tracked interfaces"
            )

        lo, hi = self._min, self._max
        expected = math.ceil(math.log2((hi - lo) / tol)) if hi - lo > tol else 0
        logger.info(
            "Thickness search at l/L=%.4f: bracket=[%.3e, %.3e] m, tol=%.1e m "
            "(~%d solves), ceilings=%s K",
            position, lo, hi, tol, expected, np.array2string(limits, precision=1),
        )

        iterations = 0
        mid = lo
        best_temps: np.ndarray | None = None
        infeasible_seen = False

        while hi - lo > tol:
            if iterations >= self._max_iterations:
                raise ConvergenceError(
                    f"Thickness search did not converge in {self._max_iterations} "
                    f"iterations (bracket [{lo:.6e}, {hi:.6e}] m, tol={tol:.1e} m)"
                )

            mid = 0.5 * (lo + hi)
            if not (lo < mid < hi):
                raise ConvergenceError(
                    f"Bracket [{lo!r}, {hi!r}] collapsed below floating-point "
                    f"resolution before reaching tol={tol:.1e} m"
                )

            temps = self.evaluate(template, mid, position=position, duration=duration)
            iterations += 1
            feasible = bool(np.all(temps < limits))

            logger.debug(
                "  iter %d: t=%.6e m -> T=%s K (%s)",
                iterations, mid, np.array2string(temps, precision=2),
                "ok" if feasible else "too hot",
            )

            if feasible:
                hi = mid
                best_temps = temps
            else:
                lo = mid
                infeasible_seen = True

        if best_temps is None:
            raise ConvergenceError(
                f"No feasible thickness in [{self._min:.3e}, {self._max:.3e}] m: "
                f"every trial exceeded the ceilings {limits.tolist()} K"
            )
        if not infeasible_seen:
            logger.warning(
                "Every trial met the ceilings; thickness pinned at the lower "
                "bound of the bracket (%.3e m)", hi,
            )

        logger.info(
            "Thickness search converged: t=%.6e m after %d solves, T=%s K",
            hi, iterations, np.array2string(best_temps, precision=2),
        )

        return OptimizationResult(
            thickness=hi,
            last_midpoint=mid,
            lower_bound=lo,
            upper_bound=hi,
            iterations=iterations,
            interface_temperatures=best_temps,
            ceilings=limits,
            interface_indices=indices,
        )

    def suggest_thickness(
        self,
        stack: Stack,
        ceilings: list[float] | None = None,
        duration: float | None = None,
        position: float = 0.0,
        tolerance: float | None = None,
    ) -> float:
        """Minimum feasible outer-layer thickness [m]; see :meth:`optimize`."""
        return self.optimize(stack, ceilings, duration, position, tolerance).thickness
