"""Material data, stack layout, solver settings and configuration loader.

All numerical values are loaded from YAML configuration files.
No material constants or profile coefficients are hardcoded in this module
or anywhere else; this module provides a typed, validated interface to the
configuration.

References
----------
- Material constants and thickness profiles follow the HeatStack
  reference data set (TPS over carbon fibre, glue and steel).
"""

from __future__ import annotations

import hashlib
import logging
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numba
import numpy as np
import yaml

from stack_model.materials import Material
from stack_model.profiles import Profile, build_profile

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default_config.yaml"

# Uniform initial field used when no initial temperature array is supplied [K].
DEFAULT_INITIAL_TEMPERATURE_K = 300.0

# ---------------------------------------------------------------------------
# Configuration Data Classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LayerConfig:
    """One layer of the stack template.

    Attributes
    ----------
    material : str
        Key into the materials table.
    thickness : Profile
        Thickness [m] as a function of l/L.
    num_points : int
        Grid nodes spanning the layer.
    """

    material: str
    thickness: Profile
    num_points: int


@dataclass(frozen=True)
class BoundaryConfig:
    """Boundary condition at one end of the stack.

    Attributes
    ----------
    kind : str
        'fixed', 'flux' or 'exchange'.
    value : Profile
        Temperature [K] for 'fixed', flux into the stack [W/m²] for 'flux',
        external temperature [K] for 'exchange'; a function of l/L.
    heat_transfer_coefficient : float
        h [W/m²/K], used by 'exchange' only.
    """

    kind: str
    value: Profile
    heat_transfer_coefficient: float = 0.0


@dataclass(frozen=True)
class SolverConfig:
    """Transient conduction solver settings.

    Attributes
    ----------
    theta : float
        Time weighting in [0, 1] (1 = fully implicit, 0.5 = Crank-Nicolson).
    duration_s : float
        Simulated time per run [s].
    dt_s : float
        Initial time step [s].
    adaptive : bool
        Enable the adaptive time-step policy.
    min_dt_s : float
        Floor for adaptive step reduction [s].
    max_dt_s : float
        Ceiling for adaptive step growth [s].
    error_threshold_K : float
        RMS step-doubling error threshold for Crank-Nicolson adaptation [K].
    initial_temperature_K : float
        Uniform initial temperature when no array is supplied [K].
    """

    theta: float
    duration_s: float
    dt_s: float
    adaptive: bool
    min_dt_s: float
    max_dt_s: float
    error_threshold_K: float
    initial_temperature_K: float = DEFAULT_INITIAL_TEMPERATURE_K


@dataclass(frozen=True)
class OptimizerConfig:
    """Outer-layer thickness bisection settings.

    Attributes
    ----------
    min_thickness_m : float
        Lower end of the search bracket [m].
    max_thickness_m : float
        Upper end of the search bracket [m].
    tolerance_m : float
        Bracket width at which bisection stops [m].
    max_iterations : int
        Safety ceiling on bisection iterations.
    tracked_layers : tuple[int, ...]
        Layers whose inner-end temperature is checked (negative indices
        count from the innermost layer).
    """

    min_thickness_m: float
    max_thickness_m: float
    tolerance_m: float
    max_iterations: int
    tracked_layers: tuple[int, ...] = (0, 1, -1)


@dataclass(frozen=True)
class SliceConfig:
    """Slicing of the surface into independent stacks.

    Attributes
    ----------
    count : int
        Number of slices; positions are l/L = i / (count - 1).
    max_workers : int
        Worker processes for slice fan-out (1 = run in-process).
    """

    count: int
    max_workers: int = 1


@dataclass(frozen=True)
class SimulationConfig:
    """Top-level configuration loaded from YAML.

    Attributes
    ----------
    materials : dict[str, Material]
        Material table keyed by name.
    layers : tuple[LayerConfig, ...]
        Stack template, outer -> inner.
    outer_boundary : BoundaryConfig
        Boundary condition at x = 0.
    inner_boundary : BoundaryConfig
        Boundary condition at the innermost surface.
    solver : SolverConfig
        Transient solver settings.
    optimizer : OptimizerConfig
        Thickness optimizer settings.
    slices : SliceConfig
        Surface slicing.
    """

    materials: dict[str, Material]
    layers: tuple[LayerConfig, ...]
    outer_boundary: BoundaryConfig
    inner_boundary: BoundaryConfig
    solver: SolverConfig
    optimizer: OptimizerConfig
    slices: SliceConfig = field(default_factory=lambda: SliceConfig(count=1))


# ---------------------------------------------------------------------------
# Configuration Loader
# ---------------------------------------------------------------------------


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def load_config(config_path: str | Path = DEFAULT_CONFIG_PATH) -> SimulationConfig:
    """Load and validate a simulation configuration from a YAML file.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    SimulationConfig
        Fully populated, typed configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If required configuration keys are missing or values are invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f)

    logger.info("Loading configuration from: %s", config_path)

    try:
        config = parse_config(raw)
    except KeyError as exc:
        raise ValueError(f"Missing configuration key: {exc}") from exc

    _validate_config(config)
    logger.info(
        "Configuration loaded successfully: %d materials, %d layers, theta=%.2f",
        len(config.materials),
        len(config.layers),
        config.solver.theta,
    )

    return config


def parse_config(raw: dict[str, Any]) -> SimulationConfig:
    """Build a :class:`SimulationConfig` from an already-parsed mapping."""
    # --- Parse materials ---
    materials: dict[str, Material] = {}
    for name, m in raw["materials"].items():
        materials[name] = Material(
            name=str(name),
            conductivity=float(m["conductivity_W_mK"]),
            density=float(m["density_kg_m3"]),
            specific_heat=float(m["specific_heat_J_kgK"]),
            max_temperature=_optional_float(m.get("max_temperature_K")),
            glass_transition_temperature=_optional_float(m.get("glass_transition_K")),
        )

    # --- Parse stack template ---
    stk = raw["stack"]
    default_points = int(stk.get("points_per_layer", 10))
    layers = tuple(
        LayerConfig(
            material=str(lay["material"]),
            thickness=build_profile(lay["thickness_m"]),
            num_points=int(lay.get("num_points", default_points)),
        )
        for lay in stk["layers"]
    )

    # --- Parse boundary conditions ---
    bnd = raw["boundary"]
    outer_boundary = _parse_boundary(bnd["outer"])
    inner_boundary = _parse_boundary(bnd["inner"])

    # --- Parse solver config ---
    slv = raw["solver"]
    solver = SolverConfig(
        theta=float(slv["theta"]),
        duration_s=float(slv["duration_s"]),
        dt_s=float(slv["dt_s"]),
        adaptive=bool(slv["adaptive"]),
        min_dt_s=float(slv["min_dt_s"]),
        max_dt_s=float(slv["max_dt_s"]),
        error_threshold_K=float(slv["error_threshold_K"]),
        initial_temperature_K=float(
            slv.get("initial_temperature_K", DEFAULT_INITIAL_TEMPERATURE_K)
        ),
    )

    # --- Parse optimizer config ---
    opt = raw["optimizer"]
    optimizer = OptimizerConfig(
        min_thickness_m=float(opt["min_thickness_m"]),
        max_thickness_m=float(opt["max_thickness_m"]),
        tolerance_m=float(opt["tolerance_m"]),
        max_iterations=int(opt["max_iterations"]),
        tracked_layers=tuple(int(i) for i in opt.get("tracked_layers", (0, 1, -1))),
    )

    # --- Parse slicing ---
    slc = raw.get("slices", {})
    slices = SliceConfig(
        count=int(slc.get("count", 1)),
        max_workers=int(slc.get("max_workers", 1)),
    )

    return SimulationConfig(
        materials=materials,
        layers=layers,
        outer_boundary=outer_boundary,
        inner_boundary=inner_boundary,
        solver=solver,
        optimizer=optimizer,
        slices=slices,
    )


def _parse_boundary(raw: dict[str, Any]) -> BoundaryConfig:
    return BoundaryConfig(
        kind=str(raw["type"]).lower(),
        value=build_profile(raw["value"]),
        heat_transfer_coefficient=float(raw.get("heat_transfer_coefficient_W_m2K", 0.0)),
    )


def _validate_config(config: SimulationConfig) -> None:
    """Validate physical constraints on configuration values.

    Parameters
    ----------
    config : SimulationConfig
        Configuration to validate.

    Raises
    ------
    ValueError
        If any value is physically invalid.
    """
    for m in config.materials.values():
        if m.conductivity <= 0 or m.density <= 0 or m.specific_heat <= 0:
            raise ValueError(
                f"Material '{m.name}' must have positive k, rho and c, "
                f"got k={m.conductivity}, rho={m.density}, c={m.specific_heat}"
            )
    if not config.layers:
        raise ValueError("Stack must contain at least one layer.")
    for lay in config.layers:
        if lay.material not in config.materials:
            raise ValueError(f"Layer references unknown material '{lay.material}'")
        if lay.num_points < 2:
            raise ValueError(f"Layer '{lay.material}' needs at least 2 grid points.")
    for name, bc in (("outer", config.outer_boundary), ("inner", config.inner_boundary)):
        if bc.kind not in ("fixed", "flux", "exchange"):
            raise ValueError(f"Unknown {name} boundary type '{bc.kind}'")
        if bc.kind == "exchange" and bc.heat_transfer_coefficient <= 0:
            raise ValueError(f"Exchange boundary ({name}) needs a positive heat transfer coefficient.")
    if not (0.0 <= config.solver.theta <= 1.0):
        raise ValueError(f"Theta must be in [0, 1], got {config.solver.theta}")
    if config.solver.duration_s <= 0:
        raise ValueError("Simulation duration must be positive.")
    if config.solver.dt_s <= 0:
        raise ValueError("Time step must be positive.")
    if not (0 < config.solver.min_dt_s <= config.solver.max_dt_s):
        raise ValueError("Adaptive step limits must satisfy 0 < min_dt_s <= max_dt_s.")
    if config.solver.error_threshold_K <= 0:
        raise ValueError("Error threshold must be positive.")
    opt = config.optimizer
    if not (0 < opt.min_thickness_m < opt.max_thickness_m):
        raise ValueError("Thickness bracket must satisfy 0 < min_thickness_m < max_thickness_m.")
    if opt.tolerance_m <= 0:
        raise ValueError("Thickness tolerance must be positive.")
    if opt.max_iterations < 1:
        raise ValueError("Optimizer needs at least one iteration.")
    if config.slices.count < 1:
        raise ValueError("Slice count must be at least 1.")

    logger.debug("Configuration validation passed.")


def log_platform_info() -> None:
    """Log platform and library version information for reproducibility."""
    logger.info("=" * 70)
    logger.info("PLATFORM INFORMATION (for reproducibility)")
    logger.info("=" * 70)
    logger.info("  Python:    %s", sys.version)
    logger.info("  Platform:  %s", platform.platform())
    logger.info("  Processor: %s", platform.processor())
    logger.info("  NumPy:     %s", np.__version__)
    logger.info("  Numba:     %s", numba.__version__)
    logger.info("  Float64 eps: %e", np.finfo(np.float64).eps)
    logger.info("=" * 70)


def hash_array(arr: np.ndarray) -> str:
    """Compute SHA-256 hash of a NumPy array for reproducibility verification.

    Parameters
    ----------
    arr : np.ndarray
        Array to hash.

    Returns
    -------
    str
        Hex digest of the SHA-256 hash.
    """
    return hashlib.sha256(np.ascontiguousarray(arr).tobytes()).hexdigest()
