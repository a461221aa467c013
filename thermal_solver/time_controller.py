"""Simulation clock for one transient run."""

from __future__ import annotations

import logging

from stack_model.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Relative slack (in units of dt) for the end-of-run test, so that a duration
# that is an integer multiple of dt finishes in exactly duration/dt steps
# despite round-off in the accumulated elapsed time.
_FINISH_TOLERANCE = 1e-9


class TimeController:
    """Owns elapsed time, step size, step count and the adaptive flag.

    Parameters
    ----------
    duration : float
        Total simulated time [s].
    dt : float
        Initial time step [s].
    adaptive : bool
        If False, :meth:`adjust_time_step` is ignored.
    min_dt : float, optional
        Floor applied to adaptive adjustments [s].
    max_dt : float, optional
        Ceiling applied to adaptive adjustments [s].
    """

    def __init__(
        self,
        duration: float,
        dt: float,
        adaptive: bool = False,
        min_dt: float | None = None,
        max_dt: float | None = None,
    ) -> None:
        if duration <= 0.0:
            raise ConfigurationError(f"Duration must be positive, got {duration}")
        if dt <= 0.0:
            raise ConfigurationError(f"Time step must be positive, got {dt}")

        self._duration = float(duration)
        self._dt = float(dt)
        self._adaptive = bool(adaptive)
        self._min_dt = min_dt
        self._max_dt = max_dt
        self._elapsed = 0.0
        self._step_count = 0

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def dt(self) -> float:
        """Current time step [s]."""
        return self._dt

    @property
    def min_dt(self) -> float | None:
        """Floor applied to adaptive adjustments [s], if any."""
        return self._min_dt

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def step_count(self) -> int:
        return self._step_count

    @property
    def is_adaptive(self) -> bool:
        return self._adaptive

    def advance(self) -> None:
        """Advance the clock by the current step. Never clamps to the duration."""
        self._elapsed += self._dt
        self._step_count += 1

    def is_finished(self) -> bool:
        """True once the elapsed time reaches the total duration."""
        return self._elapsed >= self._duration - _FINISH_TOLERANCE * self._dt

    def adjust_time_step(self, new_dt: float) -> None:
        """Request a new step size; ignored unless adaptive.

        Parameters
        ----------
        new_dt : float
            Requested step [s]. Clamped to [min_dt, max_dt] when set.
        """
        if not self._adaptive:
            return
        if new_dt <= 0.0:
            raise ConfigurationError(f"Time step must be positive, got {new_dt}")

        if self._min_dt is not None:
            new_dt = max(new_dt, self._min_dt)
        if self._max_dt is not None:
            new_dt = min(new_dt, self._max_dt)

        if new_dt != self._dt:
            logger.debug(
                "Time step %.3e s -> %.3e s at t=%.4f s (step %d)",
                self._dt, new_dt, self._elapsed, self._step_count,
            )
        self._dt = new_dt
