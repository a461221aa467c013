"""Theta-method 1D transient conduction solver for a layered stack.

Solves the 1D heat equation on a non-uniform, multi-material grid:

    ∂T/∂t = α(x)·∂²T/∂x²,    α = k / (ρ·c) of the layer owning the node

with a one-parameter family of time integrators (θ = 1: fully implicit
Euler, θ = 0.5: Crank-Nicolson).

Derivation
----------
Interior nodes (i = 1, ..., N-1), with the local diffusion number

    r_i = α_i·Δt / Δx̄_i²,    Δx̄_i = (x_{i+1} − x_{i−1}) / 2

give one tridiagonal row each:

    a_i = −θ·r_i
    b_i = 1 + 2θ·r_i
    c_i = −θ·r_i
    d_i = T_i^n + (1 − θ)·r_i·(T_{i−1}^n − 2·T_i^n + T_{i+1}^n)

The same θ weights the matrix and the right-hand side; mixing weights
would break the consistency of the scheme.

Boundary rows (shown for the outer end, j = 0, neighbour j = 1,
Δx = x_1 − x_0, r = α_0·Δt/Δx², k = k_0):

- Fixed T_b:  b_0 = 1, c_0 = 0, d_0 = T_b.
- Flux q into the stack, ghost node T_{−1} = T_1 + 2·Δx·q/k:

      b_0 = 1 + 2θ·r,  c_0 = −2θ·r
      d_0 = T_0^n + (1 − θ)·r·(2·T_1^n − 2·T_0^n) + 2·r·Δx·q/k

  With q = 0 this is the mirror-point (zero-gradient) construction.
- Exchange q = h·(T_ext − T_0), linearised implicitly with β = 2·r·Δx·h/k:

      b_0 = 1 + 2θ·r + θ·β,  c_0 = −2θ·r
      d_0 = T_0^n + (1 − θ)·r·(2·T_1^n − 2·T_0^n) + β·T_ext − (1 − θ)·β·T_0^n

The inner end mirrors this with neighbour N−1.

Adaptive step policy (only when the time controller is adaptive):

- θ = 0.5: step-doubling estimate. The interval is re-solved as two
  half-steps from the same starting field; RMS difference against the full
  step > threshold halves Δt, < threshold/2 doubles it.
- θ = 1: Δt is capped at 0.5·Δx_min²/α_max, never increased.

References
----------
- Crank, J. & Nicolson, P. (1947). Proc. Cambridge Phil. Soc., 43, 50-67.
- Patankar, S.V. (1980). Numerical Heat Transfer and Fluid Flow, ch. 4.
"""

from __future__ import annotations

import enum
import logging

import numpy as np
from numba import njit

from stack_model.config import DEFAULT_INITIAL_TEMPERATURE_K, SolverConfig
from stack_model.errors import ConfigurationError
from stack_model.materials import Stack
from thermal_solver.boundary import BoundaryCondition, BoundaryKind
from thermal_solver.time_controller import TimeController
from thermal_solver.tridiagonal import TridiagonalSolver

logger = logging.getLogger(__name__)

# Time weightings with a dedicated adaptive policy
_THETA_CRANK_NICOLSON = 0.5
_THETA_IMPLICIT = 1.0


class SolverState(enum.Enum):
    """Lifecycle of a :class:`TransientConductionSolver`."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    STEPPING = "stepping"
    FINISHED = "finished"


# ===================================================================
# INTERIOR ASSEMBLY - Numba JIT
# ===================================================================


@njit(cache=True)
def _assemble_interior(
    T: np.ndarray,
    x: np.ndarray,
    alpha: np.ndarray,
    dt: float,
    theta: float,
) -> tuple:
    """Build the tridiagonal system for all interior nodes.

    Boundary rows (0 and N-1) are left as identity rows holding the old
    temperature; the caller overwrites them.

    Parameters
    ----------
    T : np.ndarray
        Temperature at time level n [K]. Shape: (N,). NOT modified.
    x : np.ndarray
        Grid coordinates [m]. Shape: (N,).
    alpha : np.ndarray
        Thermal diffusivity per node [m²/s]. Shape: (N,).
    dt : float
        Time step [s].
    theta : float
        Time weighting in [0, 1].

    Returns
    -------
    a, b, c, d : np.ndarray
        Sub-diagonal (N-1,), diagonal (N,), super-diagonal (N-1,),
        right-hand side (N,).
    """
    n = T.shape[0]
    a = np.zeros(n - 1, dtype=np.float64)
    b = np.ones(n, dtype=np.float64)
    c = np.zeros(n - 1, dtype=np.float64)
    d = T.copy()

    for i in range(1, n - 1):
        dx_left = x[i] - x[i - 1]
        dx_right = x[i + 1] - x[i]
        dx_avg = 0.5 * (dx_left + dx_right)
        r = alpha[i] * dt / (dx_avg * dx_avg)

        a[i - 1] = -theta * r
        b[i] = 1.0 + 2.0 * theta * r
        c[i] = -theta * r
        d[i] = T[i] + (1.0 - theta) * r * (T[i - 1] - 2.0 * T[i] + T[i + 1])

    return a, b, c, d


# ===================================================================
# HIGH-LEVEL SOLVER CLASS
# ===================================================================


class TransientConductionSolver:
    """Theta-method transient conduction solver for one stack.

    Typical use::

        solver = TransientConductionSolver(theta=1.0)
        solver.initialize(stack, TimeController(10.0, 0.1))
        solver.set_initial_temperature()            # uniform 300 K
        solver.set_boundary_conditions(
            BoundaryCondition.fixed(900.0), BoundaryCondition.flux(0.0)
        )
        T_final = solver.run()

    Parameters
    ----------
    theta : float
        Time weighting in [0, 1].
    error_threshold : float
        RMS step-doubling error threshold for Crank-Nicolson adaptation [K].
    default_initial_temperature : float
        Uniform field used when no initial array is given [K].
    """

    def __init__(
        self,
        theta: float = _THETA_IMPLICIT,
        error_threshold: float = 0.01,
        default_initial_temperature: float = DEFAULT_INITIAL_TEMPERATURE_K,
    ) -> None:
        if not (0.0 <= theta <= 1.0):
            raise ConfigurationError(f"Theta must be in [0, 1], got {theta}")
        if error_threshold <= 0.0:
            raise ConfigurationError(f"Error threshold must be positive, got {error_threshold}")

        self._theta = float(theta)
        self._error_threshold = float(error_threshold)
        self._default_T = float(default_initial_temperature)

        self._state = SolverState.UNINITIALIZED
        self._stack: Stack | None = None
        self._clock: TimeController | None = None
        self._x: np.ndarray | None = None
        self._alpha: np.ndarray | None = None
        self._k: np.ndarray | None = None
        self._matrix: TridiagonalSolver | None = None
        self._dt_cap: float | None = None
        self._T: np.ndarray | None = None
        self._outer: BoundaryCondition | None = None
        self._inner: BoundaryCondition | None = None
        self._position = 0.0
        self._policy_logged = False

    @classmethod
    def from_config(cls, config: SolverConfig) -> TransientConductionSolver:
        return cls(
            theta=config.theta,
            error_threshold=config.error_threshold_K,
            default_initial_temperature=config.initial_temperature_K,
        )

    # ---------------------------------------------------------------
    # Set-up
    # ---------------------------------------------------------------

    def initialize(self, stack: Stack, time_controller: TimeController) -> None:
        """Bind a stack and a clock; allocate a zero temperature field.

        The solver keeps its own copy of the stack.

        Raises
        ------
        ConfigurationError
            If the stack grid has fewer than 2 nodes (grid not generated), or
            if the adaptive implicit cap 0.5·Δx_min²/α_max falls below the
            clock's ``min_dt`` floor, which would override it.
        """
        if stack.num_points < 2:
            raise ConfigurationError(
                f"Stack grid has {stack.num_points} nodes; call generate_grid() first."
            )

        x = stack.x_grid
        alpha = stack.diffusivity_profile()
        dx_min = float(np.min(np.diff(x)))
        dt_cap = 0.5 * dx_min * dx_min / float(np.max(alpha))

        if (
            time_controller.is_adaptive
            and self._theta == _THETA_IMPLICIT
            and time_controller.min_dt is not None
            and dt_cap < time_controller.min_dt
        ):
            raise ConfigurationError(
                f"Implicit step cap {dt_cap:.3e} s (dx_min={dx_min:.3e} m) is below "
                f"min_dt={time_controller.min_dt:.3e} s; lower min_dt or coarsen the grid"
            )

        self._stack = stack.copy()
        self._clock = time_controller
        self._x = self._stack.x_grid
        self._alpha = self._stack.diffusivity_profile()
        self._k = self._stack.conductivity_profile()
        self._T = np.zeros(self._stack.num_points, dtype=np.float64)
        self._matrix = TridiagonalSolver(self._stack.num_points)
        self._dt_cap = dt_cap

        self._state = SolverState.UNINITIALIZED
        logger.debug(
            "Solver initialized: theta=%.2f, %d nodes, dt=%.3e s, duration=%.3e s, "
            "adaptive=%s",
            self._theta,
            self._stack.num_points,
            time_controller.dt,
            time_controller.duration,
            time_controller.is_adaptive,
        )

    def set_initial_temperature(self, initial: np.ndarray | None = None) -> None:
        """Set the starting field; ``None`` gives a uniform default field.

        Raises
        ------
        ConfigurationError
            If the solver is not initialized, has already finished (its clock
            cannot be rewound; initialize() again with a fresh clock), or the
            array length does not match the grid. The current state is left
            unchanged.
        """
        if self._T is None:
            raise ConfigurationError("initialize() must be called before setting temperatures.")
        if self._state is SolverState.FINISHED:
            raise ConfigurationError(
                "Solver has finished; initialize() with a fresh clock before restarting."
            )

        n = self._T.size
        if initial is None:
            field = np.full(n, self._default_T, dtype=np.float64)
        else:
            field = np.array(initial, dtype=np.float64)
            if field.ndim != 1 or field.size != n:
                raise ConfigurationError(
                    f"Initial temperature has shape {field.shape}, grid has {n} nodes"
                )

        self._T = field
        self._state = SolverState.READY

    def set_boundary_conditions(
        self,
        outer: BoundaryCondition,
        inner: BoundaryCondition,
        position: float = 0.0,
    ) -> None:
        """Assign the outer (x = 0) and inner (x = L) conditions.

        Any previously assigned pair is released.

        Parameters
        ----------
        outer, inner : BoundaryCondition
            Conditions at the two ends.
        position : float
            Non-dimensional surface position l/L used to evaluate
            position-dependent driving values.
        """
        for name, bc in (("outer", outer), ("inner", inner)):
            if not isinstance(bc, BoundaryCondition):
                raise ConfigurationError(f"{name} boundary must be a BoundaryCondition, got {bc!r}")
        if self._outer is not None or self._inner is not None:
            logger.debug("Replacing boundary conditions (%s, %s)", self._outer, self._inner)

        self._outer = outer
        self._inner = inner
        self._position = float(position)

    # ---------------------------------------------------------------
    # Accessors
    # ---------------------------------------------------------------

    @property
    def state(self) -> SolverState:
        return self._state

    @property
    def theta(self) -> float:
        return self._theta

    @property
    def time_controller(self) -> TimeController | None:
        return self._clock

    @property
    def stack(self) -> Stack | None:
        return self._stack

    @property
    def temperature(self) -> np.ndarray:
        """Copy of the current temperature field [K]."""
        if self._T is None:
            raise ConfigurationError("Solver is not initialized.")
        return self._T.copy()

    def interface_temperatures(self, indices: list[int]) -> np.ndarray:
        """Temperatures at the given grid indices [K]."""
        return self.temperature[np.asarray(indices, dtype=np.int64)]

    def close(self) -> None:
        """Release the boundary conditions and the field."""
        self._outer = None
        self._inner = None
        self._T = None
        self._state = SolverState.UNINITIALIZED

    # ---------------------------------------------------------------
    # Time stepping
    # ---------------------------------------------------------------

    def step(self) -> None:
        """Advance the field by one time step and tick the clock.

        Raises
        ------
        ConfigurationError
            If the solver is not READY/STEPPING or a boundary condition is
            missing.
        """
        if self._state not in (SolverState.READY, SolverState.STEPPING):
            raise ConfigurationError(f"Cannot step a solver in state {self._state.value}")
        if self._outer is None or self._inner is None:
            raise ConfigurationError("Both boundary conditions must be set before stepping.")

        dt = self._clock.dt
        T_old = self._T
        T_new = self._advance(T_old, dt)

        self._T = T_new
        self._clock.advance()

        if self._clock.is_adaptive:
            self._adjust_time_step(T_old, T_new, dt)

        self._state = SolverState.FINISHED if self._clock.is_finished() else SolverState.STEPPING

    def run(self) -> np.ndarray:
        """Step until the clock is finished; return the final field."""
        while self._state is not SolverState.FINISHED:
            self.step()
        return self.temperature

    def _advance(self, T: np.ndarray, dt: float) -> np.ndarray:
        """Solve one step of size ``dt`` from field ``T`` (not modified)."""
        a, b, c, d = _assemble_interior(T, self._x, self._alpha, dt, self._theta)
        n = T.size

        self._apply_boundary(self._outer, 0, 1, T, dt, b, d, c, 0)
        self._apply_boundary(self._inner, n - 1, n - 2, T, dt, b, d, a, n - 2)

        self._matrix.set_coefficients(a, b, c)
        return self._matrix.solve(d)

    def _apply_boundary(
        self,
        bc: BoundaryCondition,
        j: int,
        nb: int,
        T: np.ndarray,
        dt: float,
        b: np.ndarray,
        d: np.ndarray,
        off: np.ndarray,
        off_idx: int,
    ) -> None:
        """Overwrite row ``j`` for ``bc``; ``nb`` is the interior neighbour.

        ``off[off_idx]`` is the row's single off-diagonal entry (the
        super-diagonal at the outer end, the sub-diagonal at the inner end).
        """
        theta = self._theta

        if bc.kind is BoundaryKind.FIXED:
            b[j] = 1.0
            off[off_idx] = 0.0
            d[j] = bc.driving_value(self._position)
            return

        dx = abs(self._x[nb] - self._x[j])
        r = self._alpha[j] * dt / (dx * dx)
        k = self._k[j]

        b[j] = 1.0 + 2.0 * theta * r
        off[off_idx] = -2.0 * theta * r
        d[j] = T[j] + (1.0 - theta) * r * (2.0 * T[nb] - 2.0 * T[j])

        if bc.kind is BoundaryKind.FLUX:
            q = bc.driving_value(self._position)
            d[j] += 2.0 * r * dx * q / k
        elif bc.kind is BoundaryKind.EXCHANGE:
            beta = 2.0 * r * dx * bc.heat_transfer_coefficient / k
            b[j] += theta * beta
            d[j] += beta * bc.driving_value(self._position) - (1.0 - theta) * beta * T[j]
        else:
            raise ConfigurationError(f"Unsupported boundary condition kind {bc.kind}")

    # ---------------------------------------------------------------
    # Adaptive step control
    # ---------------------------------------------------------------

    def estimate_error(self, T_start: np.ndarray, T_full: np.ndarray, dt: float) -> float:
        """RMS step-doubling error of a step of size ``dt`` [K].

        Re-solves the interval from ``T_start`` as two half-steps and
        compares the result with the full-step field ``T_full``. Neither
        input nor the solver field is modified.
        """
        if self._matrix is None or self._outer is None or self._inner is None:
            raise ConfigurationError(
                "Solver needs a grid and boundary conditions before estimating errors."
            )
        half = 0.5 * dt
        T_half = self._advance(self._advance(T_start, half), half)
        return float(np.sqrt(np.mean((T_half - T_full) ** 2)))

    def _adjust_time_step(self, T_old: np.ndarray, T_new: np.ndarray, dt: float) -> None:
        if self._theta == _THETA_CRANK_NICOLSON:
            error = self.estimate_error(T_old, T_new, dt)
            if error > self._error_threshold:
                self._clock.adjust_time_step(dt / 2.0)
            elif error < self._error_threshold / 2.0:
                self._clock.adjust_time_step(dt * 2.0)
            logger.debug("Step-doubling error %.3e K at dt=%.3e s", error, dt)
        elif self._theta == _THETA_IMPLICIT:
            if self._clock.dt > self._dt_cap:
                self._clock.adjust_time_step(self._dt_cap)
        elif not self._policy_logged:
            logger.debug("No adaptive step policy for theta=%.3f; dt left unchanged", self._theta)
            self._policy_logged = True


# ===================================================================
# CONVENIENCE DRIVER
# ===================================================================


def solve_stack(
    stack: Stack,
    outer: BoundaryCondition,
    inner: BoundaryCondition,
    config: SolverConfig,
    position: float = 0.0,
    initial_temperature: np.ndarray | None = None,
    duration: float | None = None,
) -> TransientConductionSolver:
    """Run one full transient solve with a fresh solver and clock.

    Parameters
    ----------
    stack : Stack
        Gridded stack (not modified).
    outer, inner : BoundaryCondition
        Boundary conditions at x = 0 and x = L.
    config : SolverConfig
        Theta, time step, adaptivity and thresholds.
    position : float
        Non-dimensional surface position l/L.
    initial_temperature : np.ndarray, optional
        Starting field; defaults to a uniform ``initial_temperature_K``.
    duration : float, optional
        Override of ``config.duration_s`` [s].

    Returns
    -------
    TransientConductionSolver
        The finished solver (field, clock and stack available).
    """
    clock = TimeController(
        duration=config.duration_s if duration is None else duration,
        dt=config.dt_s,
        adaptive=config.adaptive,
        min_dt=config.min_dt_s,
        max_dt=config.max_dt_s,
    )
    solver = TransientConductionSolver.from_config(config)
    solver.initialize(stack, clock)
    solver.set_initial_temperature(initial_temperature)
    solver.set_boundary_conditions(outer, inner, position)
    solver.run()
    return solver
