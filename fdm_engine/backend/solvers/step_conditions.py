"""
Step Conditions Applied During the Rollback

═══════════════════════════════════════════════════════════════════════════════
CONDITIONS AT SCHEDULED TIMES
═══════════════════════════════════════════════════════════════════════════════

A step condition modifies the solution vector at given times of the
backward rollback:

- Bermudan exercise at t_k:   V ← max(V, payoff)
- American exercise:          V ← max(V, payoff) after every step
- Snapshot at t_snap:         store a copy of V (used for theta)

The composite keeps the sorted, unique union of all stopping times. The
rollback is forced to land exactly on each of them, then calls
apply_to(values, t) on the composite, which dispatches to every member in
order; each member decides whether t concerns it.

SNAPSHOT TIME FOR THETA:
   ═══════════════════════════════════════════════════════════════════════════

   t_snap = 0.99 · min(1/365, t_first)

   t_first = earliest stopping time of the other conditions (or the
   maturity if there is none). The snapshot is taken just before the first
   event that changes the solution, at most about one calendar day after
   valuation, so

   Θ ≈ (V(t_snap) - V(0)) / t_snap

   is a one-sided difference free of exercise discontinuities.

═══════════════════════════════════════════════════════════════════════════════
"""

import math
import sys
from typing import Iterable, List, Optional, Sequence

import numpy as np

# Tolerance used to match a rollback time with a condition time
TIME_TOLERANCE = math.sqrt(sys.float_info.epsilon)


class StepCondition:
    """Base class: a rule applied to the solution at a rollback time."""

    @property
    def stopping_times(self) -> List[float]:
        return []

    def apply_to(self, values: np.ndarray, t: float) -> None:
        raise NotImplementedError


class SnapshotCondition(StepCondition):
    """Captures a copy of the solution when the rollback reaches `time`."""

    def __init__(self, time: float):
        self._time = float(time)
        self._values: Optional[np.ndarray] = None

    @property
    def time(self) -> float:
        return self._time

    @property
    def stopping_times(self) -> List[float]:
        return [self._time]

    @property
    def values(self) -> np.ndarray:
        if self._values is None:
            raise RuntimeError(
                f"snapshot not yet captured: rollback has not reached t={self._time}"
            )
        return self._values

    @property
    def captured(self) -> bool:
        return self._values is not None

    def apply_to(self, values: np.ndarray, t: float) -> None:
        if abs(t - self._time) <= TIME_TOLERANCE:
            self._values = np.array(values, dtype=float, copy=True)

    @staticmethod
    def theta_time(condition: Optional['StepConditionComposite'], maturity: float) -> float:
        """0.99 · min(1/365, first stopping time or maturity)"""
        times = condition.stopping_times if condition is not None else []
        first = times[0] if times else maturity
        return 0.99 * min(1.0 / 365.0, first)


class AmericanStepCondition(StepCondition):
    """Early exercise check after every step: V ← max(V, inner value)."""

    def __init__(self, mesher, calculator):
        self.mesher = mesher
        self.calculator = calculator

    def apply_to(self, values: np.ndarray, t: float) -> None:
        for point in self.mesher.layout:
            inner = self.calculator.inner_value(point, t)
            if inner > values[point.index]:
                values[point.index] = inner


class BermudanStepCondition(StepCondition):
    """Exercise check on the exercise dates only."""

    def __init__(self, exercise_times: Iterable[float], mesher, calculator):
        times = sorted(set(float(t) for t in exercise_times))
        if not times:
            raise ValueError("a Bermudan condition needs at least one exercise time")
        if times[0] < 0:
            raise ValueError(f"exercise times must be non-negative, got {times[0]}")
        self._stopping_times = times
        self.mesher = mesher
        self.calculator = calculator

    @property
    def stopping_times(self) -> List[float]:
        return list(self._stopping_times)

    def apply_to(self, values: np.ndarray, t: float) -> None:
        if any(abs(t - s) <= TIME_TOLERANCE for s in self._stopping_times):
            for point in self.mesher.layout:
                inner = self.calculator.inner_value(point, t)
                if inner > values[point.index]:
                    values[point.index] = inner


class StepConditionComposite(StepCondition):
    """
    Ordered collection of step conditions with the union of their
    stopping times.
    """

    def __init__(
        self,
        stopping_times: Optional[Sequence[Iterable[float]]] = None,
        conditions: Optional[Sequence[StepCondition]] = None
    ):
        self.conditions: List[StepCondition] = list(conditions or [])

        times = set()
        for group in stopping_times or []:
            times.update(float(t) for t in group)
        self._stopping_times = sorted(times)

    @property
    def stopping_times(self) -> List[float]:
        return list(self._stopping_times)

    def apply_to(self, values: np.ndarray, t: float) -> None:
        for condition in self.conditions:
            condition.apply_to(values, t)

    @classmethod
    def from_conditions(cls, *conditions: StepCondition) -> 'StepConditionComposite':
        return cls([c.stopping_times for c in conditions], list(conditions))

    @classmethod
    def join_conditions(
        cls,
        c1: StepCondition,
        c2: Optional['StepConditionComposite']
    ) -> 'StepConditionComposite':
        """Composite firing c1 first, then every member of c2."""
        if c2 is None:
            return cls.from_conditions(c1)
        return cls(
            [c1.stopping_times, c2.stopping_times],
            [c1] + list(c2.conditions)
        )

    @classmethod
    def vanilla_composite(
        cls,
        mesher,
        calculator,
        exercise_times: Optional[Iterable[float]] = None,
        american: bool = False
    ) -> 'StepConditionComposite':
        """
        Composite for plain exercise styles.

        european: no conditions; bermudan: exercise_times given;
        american: american=True.
        """
        if american:
            return cls.from_conditions(AmericanStepCondition(mesher, calculator))
        if exercise_times:
            return cls.from_conditions(BermudanStepCondition(exercise_times, mesher, calculator))
        return cls()
