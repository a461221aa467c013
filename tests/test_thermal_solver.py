"""Tests for the theta-method transient conduction solver.

Validates the state machine, steady-state limits, boundary handling and the
adaptive step policies of the 1D multi-material solver.

Test Strategy
-------------
1. **Steady state**: constant boundary conditions drive the slab to the
   analytical linear (or uniform) profile for θ = 1 and θ = 0.5.
2. **Flux / exchange boundaries**: steady slopes match q/k and the
   series-resistance balance exactly.
3. **No gradient reversal**: heating one face of an insulated slab gives
   a monotone profile at every step.
4. **End-to-end**: the default four-layer stack at 900 K exhaust.
5. **Adaptive stepping**: implicit cap and Crank-Nicolson step doubling.
"""

from __future__ import annotations

import numpy as np
import pytest

from stack_model.config import SimulationConfig, SolverConfig
from stack_model.errors import ConfigurationError
from stack_model.materials import Stack
from thermal_solver.boundary import BoundaryCondition
from thermal_solver.theta_method import (
    SolverState,
    TransientConductionSolver,
    _assemble_interior,
    solve_stack,
)
from thermal_solver.time_controller import TimeController


# ===================================================================
# HELPERS
# ===================================================================


def _solver_config(theta: float = 1.0, duration: float = 1000.0, dt: float = 0.5,
                   adaptive: bool = False) -> SolverConfig:
    return SolverConfig(
        theta=theta,
        duration_s=duration,
        dt_s=dt,
        adaptive=adaptive,
        min_dt_s=1e-6,
        max_dt_s=10.0,
        error_threshold_K=0.01,
    )


def _ready_solver(stack: Stack, theta: float = 1.0, duration: float = 10.0,
                  dt: float = 0.5, adaptive: bool = False,
                  error_threshold: float = 0.01) -> TransientConductionSolver:
    solver = TransientConductionSolver(theta=theta, error_threshold=error_threshold)
    solver.initialize(stack, TimeController(duration, dt, adaptive=adaptive))
    solver.set_initial_temperature()
    solver.set_boundary_conditions(
        BoundaryCondition.fixed(500.0), BoundaryCondition.flux(0.0)
    )
    return solver


# ===================================================================
# LIFECYCLE TESTS
# ===================================================================


class TestSolverLifecycle:
    """State machine and configuration errors."""

    def test_invalid_theta(self) -> None:
        with pytest.raises(ConfigurationError):
            TransientConductionSolver(theta=1.5)

    def test_initialize_requires_grid(self, slab: Stack) -> None:
        slab.x_grid = np.zeros(0)
        with pytest.raises(ConfigurationError):
            TransientConductionSolver().initialize(slab, TimeController(1.0, 0.1))

    def test_states(self, slab: Stack) -> None:
        solver = TransientConductionSolver()
        assert solver.state is SolverState.UNINITIALIZED
        solver.initialize(slab, TimeController(1.0, 0.5))
        assert solver.state is SolverState.UNINITIALIZED
        solver.set_initial_temperature()
        assert solver.state is SolverState.READY
        solver.set_boundary_conditions(BoundaryCondition.fixed(400.0), BoundaryCondition.flux(0.0))
        solver.step()
        assert solver.state is SolverState.STEPPING
        solver.step()
        assert solver.state is SolverState.FINISHED

    def test_step_before_initial_temperature(self, slab: Stack) -> None:
        solver = TransientConductionSolver()
        solver.initialize(slab, TimeController(1.0, 0.1))
        solver.set_boundary_conditions(BoundaryCondition.fixed(400.0), BoundaryCondition.flux(0.0))
        with pytest.raises(ConfigurationError):
            solver.step()

    def test_step_without_boundary_conditions(self, slab: Stack) -> None:
        solver = TransientConductionSolver()
        solver.initialize(slab, TimeController(1.0, 0.1))
        solver.set_initial_temperature()
        with pytest.raises(ConfigurationError):
            solver.step()

    def test_step_after_finish(self, slab: Stack) -> None:
        solver = _ready_solver(slab, duration=1.0, dt=0.5)
        solver.run()
        assert solver.state is SolverState.FINISHED
        with pytest.raises(ConfigurationError):
            solver.step()

    def test_restart_after_finish_rejected(self, slab: Stack) -> None:
        """A finished clock cannot be rewound by resetting the field."""
        solver = _ready_solver(slab, duration=1.0, dt=0.5)
        final = solver.run()
        with pytest.raises(ConfigurationError):
            solver.set_initial_temperature()
        assert solver.state is SolverState.FINISHED
        np.testing.assert_array_equal(solver.temperature, final)
        assert solver.time_controller.step_count == 2

    def test_restart_with_fresh_clock(self, slab: Stack) -> None:
        solver = _ready_solver(slab, duration=1.0, dt=0.5)
        solver.run()
        solver.initialize(slab, TimeController(1.0, 0.5))
        solver.set_initial_temperature()
        assert solver.state is SolverState.READY

    def test_error_estimate_before_initialize(self) -> None:
        T = np.full(5, 300.0)
        with pytest.raises(ConfigurationError):
            TransientConductionSolver(theta=0.5).estimate_error(T, T, 0.1)

    def test_initial_temperature_size_mismatch(self, slab: Stack) -> None:
        solver = TransientConductionSolver()
        solver.initialize(slab, TimeController(1.0, 0.1))
        with pytest.raises(ConfigurationError):
            solver.set_initial_temperature(np.full(slab.num_points + 1, 300.0))
        assert solver.state is SolverState.UNINITIALIZED

    def test_default_initial_field(self, slab: Stack) -> None:
        solver = TransientConductionSolver()
        solver.initialize(slab, TimeController(1.0, 0.1))
        solver.set_initial_temperature()
        np.testing.assert_array_equal(solver.temperature, np.full(slab.num_points, 300.0))

    def test_custom_initial_field(self, slab: Stack) -> None:
        field = np.linspace(300.0, 400.0, slab.num_points)
        solver = TransientConductionSolver()
        solver.initialize(slab, TimeController(1.0, 0.1))
        solver.set_initial_temperature(field)
        np.testing.assert_array_equal(solver.temperature, field)

    def test_solver_keeps_own_stack(self, slab: Stack) -> None:
        solver = TransientConductionSolver()
        solver.initialize(slab, TimeController(1.0, 0.1))
        slab.layers[0].thickness = 1.0
        slab.generate_grid()
        assert solver.stack.x_grid[-1] == pytest.approx(0.02)

    def test_temperature_is_a_copy(self, slab: Stack) -> None:
        solver = _ready_solver(slab)
        field = solver.temperature
        field[:] = 0.0
        assert solver.temperature[0] == 300.0

    def test_run_returns_final_field(self, slab: Stack) -> None:
        solver = _ready_solver(slab, duration=2.0, dt=0.5)
        final = solver.run()
        assert solver.time_controller.step_count == 4
        np.testing.assert_array_equal(final, solver.temperature)
        assert final[0] == 500.0


# ===================================================================
# ASSEMBLY TESTS
# ===================================================================


class TestAssembly:
    """Interior rows of the theta-method system."""

    def test_uniform_field_is_fixed_point(self, slab: Stack) -> None:
        """A uniform field has zero Laplacian: RHS equals the field."""
        T = np.full(slab.num_points, 350.0)
        alpha = slab.diffusivity_profile()
        a, b, c, d = _assemble_interior(T, slab.x_grid, alpha, 0.5, 0.5)
        np.testing.assert_allclose(d, T)
        # Row sums of the interior rows are 1
        np.testing.assert_allclose(a[:-1] + b[1:-1] + c[1:], 1.0, rtol=1e-12)

    def test_row_coefficients(self, slab: Stack) -> None:
        T = np.full(slab.num_points, 300.0)
        alpha = slab.diffusivity_profile()
        dt, theta = 0.5, 1.0
        a, b, c, _ = _assemble_interior(T, slab.x_grid, alpha, dt, theta)
        r = alpha[5] * dt / 1e-3 ** 2
        assert b[5] == pytest.approx(1.0 + 2.0 * theta * r)
        assert a[4] == pytest.approx(-theta * r)
        assert c[5] == pytest.approx(-theta * r)


# ===================================================================
# STEADY-STATE TESTS
# ===================================================================


class TestSteadyState:
    """Convergence to analytical steady-state profiles."""

    @pytest.mark.parametrize("theta", [1.0, 0.5])
    def test_linear_profile(self, slab: Stack, theta: float) -> None:
        """Fixed 500 K / 300 K ends -> linear profile on a uniform grid."""
        solver = solve_stack(
            slab,
            BoundaryCondition.fixed(500.0),
            BoundaryCondition.fixed(300.0),
            _solver_config(theta=theta),
        )
        expected = 500.0 - 200.0 * slab.x_grid / slab.x_grid[-1]
        np.testing.assert_allclose(solver.temperature, expected, atol=1e-6)

    @pytest.mark.parametrize("theta", [1.0, 0.5])
    def test_equal_fixed_ends(self, slab: Stack, theta: float) -> None:
        solver = solve_stack(
            slab,
            BoundaryCondition.fixed(450.0),
            BoundaryCondition.fixed(450.0),
            _solver_config(theta=theta),
        )
        np.testing.assert_allclose(solver.temperature, 450.0, atol=1e-6)

    def test_insulated_end_reaches_boundary_temperature(self, slab: Stack) -> None:
        solver = solve_stack(
            slab,
            BoundaryCondition.fixed(500.0),
            BoundaryCondition.flux(0.0),
            _solver_config(duration=5000.0, dt=1.0),
        )
        np.testing.assert_allclose(solver.temperature, 500.0, atol=1e-6)

    def test_isothermal_stays_isothermal(self, slab: Stack) -> None:
        solver = solve_stack(
            slab,
            BoundaryCondition.flux(0.0),
            BoundaryCondition.flux(0.0),
            _solver_config(duration=50.0),
        )
        np.testing.assert_allclose(solver.temperature, 300.0, atol=1e-9)

    def test_prescribed_flux_slope(self, slab_factory) -> None:
        """Heat q entering the inner face: T_inner = T_outer + q·L/k."""
        slab = slab_factory(conductivities=(0.2,))
        q = 100.0
        solver = solve_stack(
            slab,
            BoundaryCondition.fixed(300.0),
            BoundaryCondition.flux(q),
            _solver_config(),
        )
        expected = 300.0 + q * slab.x_grid / 0.2
        np.testing.assert_allclose(solver.temperature, expected, atol=1e-6)
        assert solver.temperature[-1] == pytest.approx(305.0, abs=1e-6)

    def test_exchange_balance(self, slab_factory) -> None:
        """h·(T_ext − T_0) = k·(T_0 − T_L)/L with h = k/L gives the midpoint."""
        slab = slab_factory(conductivities=(0.2,))
        solver = solve_stack(
            slab,
            BoundaryCondition.exchange(20.0, 500.0),
            BoundaryCondition.fixed(300.0),
            _solver_config(),
        )
        assert solver.temperature[0] == pytest.approx(400.0, abs=1e-6)

    def test_exchange_insulated_relaxes_to_ambient(self, slab_factory) -> None:
        slab = slab_factory(conductivities=(0.2,))
        solver = solve_stack(
            slab,
            BoundaryCondition.exchange(50.0, 500.0),
            BoundaryCondition.flux(0.0),
            _solver_config(duration=5000.0, dt=1.0),
        )
        np.testing.assert_allclose(solver.temperature, 500.0, atol=1e-3)


# ===================================================================
# MONOTONICITY TESTS
# ===================================================================


class TestMonotonicity:
    """Heating from one face of an insulated stack."""

    def test_no_gradient_reversal(self, slab: Stack) -> None:
        solver = _ready_solver(slab, duration=200.0, dt=0.5)
        while solver.state is not SolverState.FINISHED:
            solver.step()
            T = solver.temperature
            assert np.all(np.diff(T) <= 1e-9), "temperature rises away from the heated face"
            assert np.all(T >= 300.0 - 1e-9)
            assert np.all(T <= 500.0 + 1e-9)

    def test_heating_is_monotone_in_time(self, slab: Stack) -> None:
        solver = _ready_solver(slab, duration=50.0, dt=0.5)
        previous = solver.temperature
        while solver.state is not SolverState.FINISHED:
            solver.step()
            current = solver.temperature
            assert np.all(current >= previous - 1e-9)
            previous = current


# ===================================================================
# END-TO-END TESTS
# ===================================================================


class TestEndToEnd:
    """Default four-layer stack: 900 K exhaust, insulated steel, θ = 1."""

    def _inner_temperature(self, stack: Stack, config: SimulationConfig,
                           duration: float) -> float:
        solver = solve_stack(
            stack,
            BoundaryCondition.fixed(900.0),
            BoundaryCondition.flux(0.0),
            config.solver,
            duration=duration,
        )
        assert solver.time_controller.step_count == round(duration / config.solver.dt_s)
        return float(solver.temperature[-1])

    def test_steel_between_initial_and_exhaust(
        self, default_stack: Stack, config: SimulationConfig
    ) -> None:
        T_steel = self._inner_temperature(default_stack, config, 10.0)
        assert 300.0 < T_steel < 900.0

    def test_steel_warms_with_duration(
        self, default_stack: Stack, config: SimulationConfig
    ) -> None:
        T_10 = self._inner_temperature(default_stack, config, 10.0)
        T_20 = self._inner_temperature(default_stack, config, 20.0)
        assert T_20 > T_10

    def test_caller_stack_untouched(
        self, default_stack: Stack, config: SimulationConfig
    ) -> None:
        before = default_stack.x_grid.copy()
        self._inner_temperature(default_stack, config, 1.0)
        np.testing.assert_array_equal(default_stack.x_grid, before)


# ===================================================================
# ADAPTIVE TIME-STEP TESTS
# ===================================================================


class TestAdaptiveStepping:
    """Implicit cap and Crank-Nicolson step doubling."""

    def test_implicit_cap(self, slab: Stack) -> None:
        solver = _ready_solver(slab, theta=1.0, duration=10.0, dt=0.5, adaptive=True)
        alpha_max = float(np.max(slab.diffusivity_profile()))
        cap = 0.5 * 1e-3 ** 2 / alpha_max
        solver.step()
        assert solver.time_controller.dt == pytest.approx(cap)

    def test_implicit_cap_below_floor_rejected(self, default_stack: Stack,
                                               config: SimulationConfig) -> None:
        """The thin carbon-fibre layer caps dt far below the 1e-6 s floor."""
        clock = TimeController(
            config.solver.duration_s, config.solver.dt_s, adaptive=True,
            min_dt=config.solver.min_dt_s, max_dt=config.solver.max_dt_s,
        )
        solver = TransientConductionSolver(theta=1.0)
        with pytest.raises(ConfigurationError, match="min_dt"):
            solver.initialize(default_stack, clock)
        assert solver.state is SolverState.UNINITIALIZED
        assert solver.stack is None

    def test_implicit_cap_honoured_without_floor(self, default_stack: Stack) -> None:
        x = default_stack.x_grid
        cap = 0.5 * float(np.min(np.diff(x))) ** 2 / float(
            np.max(default_stack.diffusivity_profile())
        )
        solver = _ready_solver(default_stack, theta=1.0, duration=10.0, dt=0.1, adaptive=True)
        solver.step()
        assert solver.time_controller.dt <= cap
        assert solver.time_controller.dt == pytest.approx(cap)

    def test_implicit_never_increases(self, slab: Stack) -> None:
        solver = _ready_solver(slab, theta=1.0, duration=10.0, dt=0.01, adaptive=True)
        for _ in range(5):
            solver.step()
        assert solver.time_controller.dt == 0.01

    def test_crank_nicolson_halves_on_large_error(self, slab: Stack) -> None:
        solver = _ready_solver(slab, theta=0.5, duration=10.0, dt=0.1,
                               adaptive=True, error_threshold=1e-12)
        solver.step()
        assert solver.time_controller.dt == pytest.approx(0.05)

    def test_crank_nicolson_doubles_on_small_error(self, slab: Stack) -> None:
        solver = _ready_solver(slab, theta=0.5, duration=10.0, dt=0.1,
                               adaptive=True, error_threshold=1e3)
        solver.step()
        assert solver.time_controller.dt == pytest.approx(0.2)

    def test_non_adaptive_keeps_step(self, slab: Stack) -> None:
        solver = _ready_solver(slab, theta=0.5, duration=1.0, dt=0.1,
                               error_threshold=1e-12)
        solver.run()
        assert solver.time_controller.dt == 0.1
        assert solver.time_controller.step_count == 10

    def test_error_estimate_is_pure(self, slab: Stack) -> None:
        solver = _ready_solver(slab, theta=0.5, duration=10.0, dt=0.1)
        T_start = solver.temperature
        solver.step()
        T_full = solver.temperature
        state = solver.state

        error = solver.estimate_error(T_start, T_full, 0.1)

        assert error > 0.0
        np.testing.assert_array_equal(solver.temperature, T_full)
        assert solver.state is state
        assert solver.time_controller.step_count == 1

    def test_adaptive_run_reaches_duration(self, slab: Stack) -> None:
        solver = solve_stack(
            slab,
            BoundaryCondition.fixed(500.0),
            BoundaryCondition.flux(0.0),
            _solver_config(theta=0.5, duration=20.0, dt=0.1, adaptive=True),
        )
        clock = solver.time_controller
        assert clock.elapsed >= 20.0 - 1e-9
        assert np.all(np.isfinite(solver.temperature))
