"""Exception types shared by the stack model, solver and optimizer.

Numerical faults (a zero pivot in the tridiagonal sweep, overflow) are
deliberately not wrapped: they surface as the native arithmetic exception
and the caller treats the slice as failed.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid set-up: mismatched array sizes, missing boundary conditions,
    out-of-range parameters or an unusable grid.

    The object that raised it must not be used further.
    """


class ConvergenceError(RuntimeError):
    """The thickness bisection did not converge or its bracket is invalid."""
