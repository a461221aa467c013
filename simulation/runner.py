"""Simulation Runner: per-slice transient solve and TPS thickness search.

Orchestrates the full pipeline for every slice along the surface:
1. Build the stack at l/L from the configured thickness profiles
2. Run the transient solve with the placeholder outer-layer thickness
3. Search the minimum outer-layer thickness meeting the material ceilings
4. Collect per-slice results and timing

Slices are independent; with ``max_workers > 1`` they are fanned out over a
process pool, each worker rebuilding its stack, clock and solver from the
(picklable) configuration.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from data_ingestion.initial_temperature import load_initial_temperature
from simulation.optimizer import OptimizationResult, ThicknessOptimizer
from stack_model.config import (
    DEFAULT_CONFIG_PATH,
    SimulationConfig,
    hash_array,
    load_config,
    log_platform_info,
)
from stack_model.errors import ConvergenceError
from stack_model.provider import MaterialProvider
from thermal_solver.boundary import boundary_from_config
from thermal_solver.theta_method import solve_stack

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result Containers
# ---------------------------------------------------------------------------


@dataclass
class SliceResult:
    """Output of one slice.

    Attributes
    ----------
    index : int
        Slice number (0-based).
    position : float
        Non-dimensional position l/L.
    layer_thicknesses : list[float]
        Thickness of each layer as built [m].
    outer_value : float
        Outer boundary driving value at l/L (exhaust temperature) [K].
    temperature : np.ndarray
        Final temperature field [K]. Shape: (N,).
    x_grid : np.ndarray
        Node coordinates [m]. Shape: (N,).
    interface_temperatures : np.ndarray
        Final temperature at the end of every layer [K].
    optimization : OptimizationResult or None
        Thickness search outcome, if requested.
    grid_hash : str
        SHA-256 fingerprint of the grid.
    solve_time_s : float
        Wall time of the transient solve [s].
    optimize_time_s : float
        Wall time of the thickness search [s].
    error : str or None
        Failure reason when the transient solve or the thickness search
        raised a numerical or convergence error; None on success.
    """

    index: int
    position: float
    layer_thicknesses: list[float]
    outer_value: float
    temperature: np.ndarray
    x_grid: np.ndarray
    interface_temperatures: np.ndarray
    optimization: OptimizationResult | None
    grid_hash: str
    solve_time_s: float = 0.0
    optimize_time_s: float = 0.0
    error: str | None = None

    @property
    def inner_surface_temperature(self) -> float:
        """Final temperature of the innermost node [K]; NaN if the solve failed."""
        if self.temperature.size == 0:
            return float("nan")
        return float(self.temperature[-1])

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def suggested_thickness(self) -> float | None:
        """Optimized outer-layer thickness [m], if a search was run."""
        return None if self.optimization is None else self.optimization.thickness


@dataclass
class SimulationResults:
    """Results of all slices, ordered by slice index."""

    slices: list[SliceResult] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def summary(self) -> list[dict]:
        """One flat row per slice: position, thicknesses, temperatures."""
        rows = []
        for s in self.slices:
            row = {
                "slice": s.index,
                "l_over_L": s.position,
                "inner_surface_temperature_K": s.inner_surface_temperature,
                "suggested_thickness_m": s.suggested_thickness,
                "error": s.error,
            }
            for j, t in enumerate(s.layer_thicknesses):
                row[f"layer_{j}_thickness_m"] = t
            rows.append(row)
        return rows


# ---------------------------------------------------------------------------
# Slice worker
# ---------------------------------------------------------------------------


def slice_positions(count: int) -> np.ndarray:
    """Evenly spaced positions l/L = i / (count - 1); a single slice sits at 0."""
    if count < 1:
        raise ValueError(f"Slice count must be at least 1, got {count}")
    if count == 1:
        return np.zeros(1, dtype=np.float64)
    return np.arange(count, dtype=np.float64) / (count - 1)


def run_slice(
    config: SimulationConfig,
    index: int,
    position: float,
    initial_temperature: np.ndarray | None = None,
    optimize: bool = True,
) -> SliceResult:
    """Solve one slice and, optionally, search its outer-layer thickness.

    Module-level so that it can be shipped to worker processes. A numerical
    fault in the transient solve, or a failed thickness search, marks only
    this slice as failed (``SliceResult.error``); configuration errors
    propagate.
    """
    provider = MaterialProvider(config)
    stack = provider.build_stack(position, stack_id=index)
    outer = boundary_from_config(config.outer_boundary)
    inner = boundary_from_config(config.inner_boundary)

    t0 = time.perf_counter()
    try:
        solver = solve_stack(
            stack, outer, inner, config.solver,
            position=position, initial_temperature=initial_temperature,
        )
    except ArithmeticError as exc:
        logger.warning(
            "Slice %d (l/L=%.4f): transient solve failed: %s", index, position, exc
        )
        return SliceResult(
            index=index,
            position=float(position),
            layer_thicknesses=[layer.thickness for layer in stack.layers],
            outer_value=provider.outer_driving_value(position),
            temperature=np.empty(0, dtype=np.float64),
            x_grid=stack.x_grid.copy(),
            interface_temperatures=np.empty(0, dtype=np.float64),
            optimization=None,
            grid_hash=hash_array(stack.x_grid),
            solve_time_s=time.perf_counter() - t0,
            error=f"{type(exc).__name__}: {exc}",
        )
    solve_time = time.perf_counter() - t0

    temperature = solver.temperature
    interfaces = solver.interface_temperatures(stack.interface_indices())
    solver.close()

    optimization = None
    error = None
    t1 = time.perf_counter()
    if optimize:
        optimizer = ThicknessOptimizer.from_config(config, initial_temperature)
        try:
            optimization = optimizer.optimize(stack, position=position)
        except (ConvergenceError, ArithmeticError) as exc:
            logger.warning(
                "Slice %d (l/L=%.4f): thickness search failed: %s", index, position, exc
            )
            error = f"{type(exc).__name__}: {exc}"
    optimize_time = time.perf_counter() - t1

    logger.info(
        "Slice %d (l/L=%.4f): T_outer=%.1f K, T_inner=%.2f K, t_opt=%s, "
        "solve=%.3fs, search=%.3fs",
        index, position, provider.outer_driving_value(position), temperature[-1],
        "n/a" if optimization is None else f"{optimization.thickness:.4e} m",
        solve_time, optimize_time,
    )

    return SliceResult(
        index=index,
        position=float(position),
        layer_thicknesses=[layer.thickness for layer in stack.layers],
        outer_value=provider.outer_driving_value(position),
        temperature=temperature,
        x_grid=stack.x_grid.copy(),
        interface_temperatures=interfaces,
        optimization=optimization,
        grid_hash=hash_array(stack.x_grid),
        solve_time_s=solve_time,
        optimize_time_s=optimize_time,
        error=error,
    )


# ---------------------------------------------------------------------------
# Simulation Runner
# ---------------------------------------------------------------------------


class SimulationRunner:
    """Runs every configured slice.

    Parameters
    ----------
    config : SimulationConfig
        Full simulation configuration loaded from YAML.
    initial_temperature : np.ndarray, optional
        Starting field shared by every slice; uniform default if None.
    """

    def __init__(
        self,
        config: SimulationConfig,
        initial_temperature: np.ndarray | None = None,
    ) -> None:
        self._config = config
        self._initial = initial_temperature

        logger.info(
            "SimulationRunner initialized: %d layers, %d slices, theta=%.2f, "
            "dt=%.3es, duration=%.3es",
            len(config.layers), config.slices.count, config.solver.theta,
            config.solver.dt_s, config.solver.duration_s,
        )

    @classmethod
    def from_files(
        cls,
        config_path: str | Path = DEFAULT_CONFIG_PATH,
        initial_temperature_path: str | Path | None = None,
    ) -> SimulationRunner:
        """Build a runner from a YAML configuration and an optional field file."""
        config = load_config(config_path)
        initial = (
            None if initial_temperature_path is None
            else load_initial_temperature(initial_temperature_path)
        )
        return cls(config, initial)

    @property
    def config(self) -> SimulationConfig:
        return self._config

    def run(
        self,
        optimize: bool = True,
        num_slices: int | None = None,
        max_workers: int | None = None,
    ) -> SimulationResults:
        """Solve all slices.

        Parameters
        ----------
        optimize : bool
            Run the outer-layer thickness search for each slice.
        num_slices : int, optional
            Override of ``config.slices.count``.
        max_workers : int, optional
            Override of ``config.slices.max_workers``; > 1 uses a process pool.

        Returns
        -------
        SimulationResults
            Per-slice results, ordered by slice index.
        """
        count = self._config.slices.count if num_slices is None else num_slices
        workers = self._config.slices.max_workers if max_workers is None else max_workers
        positions = slice_positions(count)

        log_platform_info()
        logger.info("Starting simulation: %d slices, %d worker(s)", count, workers)

        wall_start = time.perf_counter()
        if workers > 1 and count > 1:
            with ProcessPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(run_slice, self._config, i, float(p), self._initial, optimize)
                    for i, p in enumerate(positions)
                ]
                slices = [f.result() for f in futures]
        else:
            slices = [
                run_slice(self._config, i, float(p), self._initial, optimize)
                for i, p in enumerate(positions)
            ]
        wall_elapsed = time.perf_counter() - wall_start

        results = SimulationResults(
            slices=slices,
            metadata={
                "num_slices": count,
                "max_workers": workers,
                "theta": self._config.solver.theta,
                "dt_s": self._config.solver.dt_s,
                "duration_s": self._config.solver.duration_s,
                "adaptive": self._config.solver.adaptive,
                "optimized": optimize,
                "wall_time_s": wall_elapsed,
                "total_solve_time_s": sum(s.solve_time_s for s in slices),
                "failed_slices": [s.index for s in slices if s.failed],
            },
        )

        logger.info(
            "Simulation complete: %.2f seconds wall time (%.2f s in transient solves)",
            wall_elapsed, results.metadata["total_solve_time_s"],
        )
        failed = results.metadata["failed_slices"]
        if failed:
            logger.warning("%d of %d slices failed: %s", len(failed), count, failed)
        return results
