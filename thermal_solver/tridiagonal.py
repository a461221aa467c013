"""Direct solver for tridiagonal linear systems (Thomas algorithm).

Solves A·x = d where A has sub-diagonal ``a`` (length n−1), main diagonal
``b`` (length n) and super-diagonal ``c`` (length n−1)::

    | b0 c0             |
    | a0 b1 c1          |
    |    a1 b2 c2       |
    |       .  .  .     |
    |          a_{n-2} b_{n-1} |

Forward elimination::

    c'_0 = c_0 / b_0,   d'_0 = d_0 / b_0
    denom_i = b_i − a_{i−1}·c'_{i−1}
    c'_i = c_i / denom_i,   d'_i = (d_i − a_{i−1}·d'_{i−1}) / denom_i

Back substitution::

    x_{n−1} = d'_{n−1},   x_i = d'_i − c'_i·x_{i+1}

The sweep is O(n) and performs no pivoting; it is stable for the
diagonally dominant matrices produced by the heat equation. A zero pivot
raises ``ZeroDivisionError`` (Numba's Python error model) and is not
caught here.
"""

from __future__ import annotations

import logging

import numpy as np
from numba import njit

from stack_model.errors import ConfigurationError

logger = logging.getLogger(__name__)


@njit(cache=True)
def _thomas_solve(a: np.ndarray, b: np.ndarray, c: np.ndarray, d: np.ndarray) -> np.ndarray:
    """Solve a tridiagonal system with the Thomas algorithm.

    Inputs are not modified.

    Parameters
    ----------
    a : np.ndarray
        Sub-diagonal. Shape: (n-1,).
    b : np.ndarray
        Main diagonal. Shape: (n,).
    c : np.ndarray
        Super-diagonal. Shape: (n-1,).
    d : np.ndarray
        Right-hand side. Shape: (n,).

    Returns
    -------
    np.ndarray
        Solution vector. Shape: (n,).
    """
    n = d.shape[0]
    x = np.empty(n, dtype=np.float64)

    if n == 1:
        x[0] = d[0] / b[0]
        return x

    c_star = np.empty(n - 1, dtype=np.float64)
    d_star = np.empty(n, dtype=np.float64)

    # Forward elimination
    c_star[0] = c[0] / b[0]
    d_star[0] = d[0] / b[0]
    for i in range(1, n - 1):
        denom = b[i] - a[i - 1] * c_star[i - 1]
        c_star[i] = c[i] / denom
        d_star[i] = (d[i] - a[i - 1] * d_star[i - 1]) / denom

    # Last row has no super-diagonal term
    denom = b[n - 1] - a[n - 2] * c_star[n - 2]
    d_star[n - 1] = (d[n - 1] - a[n - 2] * d_star[n - 2]) / denom

    # Back substitution
    x[n - 1] = d_star[n - 1]
    for i in range(n - 2, -1, -1):
        x[i] = d_star[i] - c_star[i] * x[i + 1]

    return x


class TridiagonalSolver:
    """Tridiagonal system of fixed size with replaceable coefficients.

    Parameters
    ----------
    size : int
        Number of unknowns n (>= 1).
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ConfigurationError(f"System size must be at least 1, got {size}")
        self._size = int(size)
        self._a = np.zeros(self._size - 1, dtype=np.float64)
        self._b = np.ones(self._size, dtype=np.float64)
        self._c = np.zeros(self._size - 1, dtype=np.float64)

    @property
    def size(self) -> int:
        return self._size

    def set_coefficients(self, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> None:
        """Set the three diagonals.

        Raises
        ------
        ConfigurationError
            If a diagonal length does not match the system size.
        """
        n = self._size
        if len(b) != n or len(a) != n - 1 or len(c) != n - 1:
            raise ConfigurationError(
                f"Diagonal sizes ({len(a)}, {len(b)}, {len(c)}) do not match "
                f"system size {n} (expected ({n - 1}, {n}, {n - 1}))"
            )
        self._a = np.asarray(a, dtype=np.float64)
        self._b = np.asarray(b, dtype=np.float64)
        self._c = np.asarray(c, dtype=np.float64)

    def solve(self, d: np.ndarray) -> np.ndarray:
        """Solve A·x = d for the configured coefficients.

        Parameters
        ----------
        d : np.ndarray
            Right-hand side. Shape: (n,).

        Returns
        -------
        np.ndarray
            Solution. Shape: (n,).

        Raises
        ------
        ConfigurationError
            If ``d`` does not have the configured size.
        """
        if len(d) != self._size:
            raise ConfigurationError(
                f"Right-hand side has length {len(d)}, system size is {self._size}"
            )
        return _thomas_solve(self._a, self._b, self._c, np.asarray(d, dtype=np.float64))


def solve_tridiagonal(a: np.ndarray, b: np.ndarray, c: np.ndarray, d: np.ndarray) -> np.ndarray:
    """One-shot convenience wrapper around :class:`TridiagonalSolver`."""
    solver = TridiagonalSolver(len(b))
    solver.set_coefficients(a, b, c)
    return solver.solve(d)
