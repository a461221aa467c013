"""Initial temperature field loader.

Reads a 1D starting temperature field [K], one value per grid node, from
either a NumPy ``.npy`` file or a text file read with :func:`numpy.loadtxt`
(comma separated for ``.csv``, whitespace separated otherwise, ``#``
comments allowed). A single row or a single column is accepted.

The length is not checked here: it must match the grid of the stack it is
applied to, which the solver verifies when the field is set.
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)


def load_initial_temperature(file_path: str | Path) -> np.ndarray:
    """Load an initial temperature field.

    Parameters
    ----------
    file_path : str or Path
        ``.npy`` file or delimited text file.

    Returns
    -------
    np.ndarray
        Temperature per node [K], float64. Shape: (N,).

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the data is empty, not one-dimensional or not finite.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Initial temperature file not found: {path}")

    if path.suffix.lower() == ".npy":
        data = np.load(path, allow_pickle=False)
    else:
        delimiter = "," if path.suffix.lower() == ".csv" else None
        with warnings.catch_warnings():
            # An empty file is reported below as a ValueError
            warnings.simplefilter("ignore", UserWarning)
            data = np.loadtxt(path, delimiter=delimiter, comments="#", ndmin=1)

    data = np.asarray(data, dtype=np.float64)
    if data.ndim == 2 and 1 in data.shape:
        data = data.ravel()
    if data.ndim != 1 or data.size == 0:
        raise ValueError(
            f"Initial temperature must be a non-empty 1D array, got shape {data.shape}"
        )
    if not np.all(np.isfinite(data)):
        raise ValueError(f"Initial temperature in {path} contains non-finite values")

    logger.info(
        "Loaded initial temperature from %s: %d nodes, T=[%.1f, %.1f] K",
        path, data.size, data.min(), data.max(),
    )
    return data
