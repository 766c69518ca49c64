"""
Backward Rollback Driver

Steps a solution vector from `from_time` (maturity) back to `to_time`
(usually 0), landing exactly on every stopping time of the step-condition
composite and applying the condition there and after every regular step.

Damping: the first `damping_steps` steps run with implicit Euler, which is
strongly diffusive and kills the high-frequency oscillations a
Crank-Nicolson type scheme produces from a kinked or discontinuous payoff
(Rannacher smoothing). The time interval is shared in proportion to the
step counts:

    t_damp = from - (from - to) · n_damp / (n_steps + n_damp)
"""

import logging
import math
import sys
from typing import List, Optional, Sequence

import numpy as np

from ..core.boundaries import BoundaryConditionSet
from .schemes import FdmSchemeDesc, ImplicitEulerScheme, make_scheme
from .step_conditions import StepCondition

logger = logging.getLogger(__name__)

_SQRT_EPS = math.sqrt(sys.float_info.epsilon)


class FiniteDifferenceModel:
    """Evolver plus the stopping times it must not step over."""

    def __init__(self, evolver, stopping_times: Optional[Sequence[float]] = None):
        self.evolver = evolver
        self.stopping_times: List[float] = sorted(set(stopping_times or []))

    def rollback(
        self,
        a: np.ndarray,
        from_time: float,
        to_time: float,
        steps: int,
        condition: Optional[StepCondition] = None
    ) -> None:
        if steps < 1:
            raise ValueError(f"number of steps must be positive, got {steps}")
        if from_time < to_time:
            raise ValueError(f"cannot roll back from {from_time} to {to_time}")

        dt = (from_time - to_time) / steps
        t = from_time
        self.evolver.set_step(dt)

        if self.stopping_times and self.stopping_times[-1] == from_time and condition:
            condition.apply_to(a, from_time)

        for _ in range(steps):
            now, next_t = t, t - dt
            if abs(to_time - next_t) < _SQRT_EPS:
                next_t = to_time

            hit = False
            for stop in reversed(self.stopping_times):
                if next_t <= stop < now:
                    # Land exactly on the stopping time
                    hit = True
                    self.evolver.set_step(now - stop)
                    self.evolver.step(a, now)
                    if condition:
                        condition.apply_to(a, stop)
                    now = stop

            if hit:
                if now > next_t:
                    self.evolver.set_step(now - next_t)
                    self.evolver.step(a, now)
                    if condition:
                        condition.apply_to(a, next_t)
                self.evolver.set_step(dt)
            else:
                self.evolver.step(a, now)
                if condition:
                    condition.apply_to(a, next_t)

            t = next_t


class FdmBackwardSolver:
    """
    Rolls a terminal condition back in time.

    Args:
        op: Operator with set_time/apply/solve_splitting (BlackScholesOp)
        bc_set: Boundary condition set, passed to the schemes unchanged
        condition: Step-condition composite
        scheme_desc: FdmSchemeDesc of the main scheme
    """

    def __init__(
        self,
        op,
        bc_set: Optional[BoundaryConditionSet],
        condition,
        scheme_desc: FdmSchemeDesc
    ):
        self.op = op
        self.bc_set = bc_set if bc_set is not None else BoundaryConditionSet()
        self.condition = condition
        self.scheme_desc = scheme_desc

    def rollback(
        self,
        rhs: np.ndarray,
        from_time: float,
        to_time: float,
        steps: int,
        damping_steps: int = 0
    ) -> None:
        """Mutates `rhs` in place from `from_time` back to `to_time`."""
        if damping_steps < 0:
            raise ValueError(f"damping steps must be non-negative, got {damping_steps}")

        stopping_times = self.condition.stopping_times if self.condition is not None else []
        all_steps = steps + damping_steps
        damping_to = from_time - (from_time - to_time) * damping_steps / all_steps

        logger.debug(
            "rollback %s: %.6f -> %.6f, steps=%d, damping=%d, stopping times=%d",
            self.scheme_desc.type, from_time, to_time, steps, damping_steps,
            len(stopping_times),
        )

        if self.scheme_desc.type == 'ImplicitEuler':
            evolver = ImplicitEulerScheme(self.op, self.bc_set)
            FiniteDifferenceModel(evolver, stopping_times).rollback(
                rhs, from_time, to_time, all_steps, self.condition
            )
        else:
            if damping_steps > 0:
                damping = ImplicitEulerScheme(self.op, self.bc_set)
                FiniteDifferenceModel(damping, stopping_times).rollback(
                    rhs, from_time, damping_to, damping_steps, self.condition
                )
            evolver = make_scheme(self.scheme_desc, self.op, self.bc_set)
            FiniteDifferenceModel(evolver, stopping_times).rollback(
                rhs, damping_to, to_time, steps, self.condition
            )

        if not np.all(np.isfinite(rhs)):
            raise ArithmeticError(
                f"rollback with {self.scheme_desc.type} produced non-finite values; "
                f"an explicit scheme may need more time steps"
            )
