"""
Black-Scholes PDE Solver with Log-Space Interpolation

═══════════════════════════════════════════════════════════════════════════════
FROM A ROLLED-BACK GRID TO A PRICE FUNCTION AND ITS GREEKS
═══════════════════════════════════════════════════════════════════════════════

1. ONE ROLLBACK, TWO SURFACES:
   ═══════════════════════════════════════════════════════════════════════════

   terminal payoff (cell averaged)
        │
        ▼  rollback T → 0 with  [snapshot ⊕ user conditions]
        │
        ├── at t_snap:  snapshot condition stores V(x, t_snap)
        ▼
   V(x, 0)

   Both surfaces come out of the same backward pass; theta needs no
   second rollback.

2. CONTINUOUS PRICE FUNCTION:
   ═══════════════════════════════════════════════════════════════════════════

   f(x) = monotonic cubic natural spline through (x_i, V_i), x = ln(S)

   Value:  V(S)  = f(ln S)
   Delta:  ∂V/∂S = f'(ln S) / S
   Gamma:  ∂²V/∂S² = (f''(ln S) - f'(ln S)) / S²

   The -f' term in gamma comes from differentiating f'(ln S)/S once more:
   d/dS [f'(ln S)/S] = f''(ln S)/S² - f'(ln S)/S²

   f is only defined on [x₀, x_n]; a spot outside the mesh raises
   ValueError rather than continuing the end cubic.

3. THETA:
   ═══════════════════════════════════════════════════════════════════════════

   Θ(S) ≈ (g(ln S) - f(ln S)) / t_snap

   with g the spline through the snapshot values. t_snap is below one
   calendar day and before the first exercise/stopping time, so the
   difference does not straddle a discontinuity. With a stopping time at
   t = 0 there is no such window and theta is undefined.

4. CACHING:
   ═══════════════════════════════════════════════════════════════════════════

   The solver observes the process handle. A change only marks the
   results stale; the next query recomputes them once. New results are
   assembled in local variables and swapped in at the end, so a failed
   recalculation never leaves a half-updated cache behind.

═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from ..core.boundaries import (
    BoundaryConditionSet,
    LogInnerValueCalculator,
    PlainVanillaPayoff,
)
from ..core.grid import FdmMesherComposite, create_default_mesher
from ..core.observable import Handle, LazyObject
from .backward_solver import FdmBackwardSolver
from .interpolation import MonotonicCubicNaturalSpline
from .operators import BlackScholesOp
from .schemes import FdmSchemeDesc
from .step_conditions import SnapshotCondition, StepConditionComposite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FdmSolverDesc:
    """
    Everything the rollback needs apart from the model.

    Attributes:
        mesher: FdmMesherComposite, dimension 0 = ln(S)
        bc_set: Boundary conditions, passed through to the schemes
        condition: Step-condition composite (exercise, dividends, ...)
        calculator: Terminal value calculator (avg_inner_value)
        maturity: Maturity T in years
        time_steps: Number of time steps of the main scheme
        damping_steps: Implicit Euler steps run first from maturity
    """

    mesher: Optional[FdmMesherComposite]
    bc_set: Optional[BoundaryConditionSet]
    condition: Optional[StepConditionComposite]
    calculator: Optional[LogInnerValueCalculator]
    maturity: float
    time_steps: int
    damping_steps: int = 0

    def __post_init__(self):
        if self.mesher is None:
            raise ValueError("solver description has no mesher")
        if self.calculator is None:
            raise ValueError("solver description has no inner value calculator")
        if not (math.isfinite(self.maturity) and self.maturity > 0):
            raise ValueError(f"maturity must be positive, got {self.maturity}")
        if self.time_steps < 1:
            raise ValueError(f"time steps must be positive, got {self.time_steps}")
        if self.damping_steps < 0:
            raise ValueError(f"damping steps must be non-negative, got {self.damping_steps}")


class FdmBlackScholesSolver(LazyObject):
    """
    Black-Scholes PDE solver for one (process, strike, mesh, scheme) set-up.

    Args:
        process: BlackScholesProcess or a Handle to one
        strike: Strike (reads the Black volatility, passed to the operator)
        solver_desc: FdmSolverDesc
        scheme_desc: FdmSchemeDesc (default Douglas, i.e. Crank-Nicolson)
        local_vol: Build the operator from the local-volatility surface
        illegal_local_vol_overwrite: Volatility used where the local
            volatility is illegal; None raises instead
    """

    def __init__(
        self,
        process,
        strike: float,
        solver_desc: FdmSolverDesc,
        scheme_desc: Optional[FdmSchemeDesc] = None,
        local_vol: bool = False,
        illegal_local_vol_overwrite: Optional[float] = None
    ):
        super().__init__()

        if not isinstance(process, Handle):
            process = Handle(process)
        if process.empty:
            raise ValueError("process handle is empty")

        self.process = process
        self.strike = strike
        self.solver_desc = solver_desc
        self.scheme_desc = scheme_desc if scheme_desc is not None else FdmSchemeDesc.douglas()
        self.local_vol = local_vol
        self.illegal_local_vol_overwrite = illegal_local_vol_overwrite
        self.mesher = solver_desc.mesher

        self.register_with(self.process)

        self.theta_condition = SnapshotCondition(
            SnapshotCondition.theta_time(solver_desc.condition, solver_desc.maturity)
        )
        self.conditions = StepConditionComposite.join_conditions(
            self.theta_condition, solver_desc.condition
        )

        layout = self.mesher.layout
        calculator = solver_desc.calculator
        self._initial_values = np.empty(layout.size)
        x = []
        for point in layout:
            self._initial_values[point.index] = calculator.avg_inner_value(
                point, solver_desc.maturity
            )
            if not any(point.coordinates[1:]):
                x.append(self.mesher.location(point, 0))
        self._x = np.asarray(x)

        if not np.all(np.diff(self._x) > 0):
            raise ValueError("mesh locations along dimension 0 must be strictly increasing")

        self._result_indices = layout.first_dimension_indices()
        self._result_values: Optional[np.ndarray] = None
        self._theta_values: Optional[np.ndarray] = None
        self._interpolation: Optional[MonotonicCubicNaturalSpline] = None

    # ═══════════════════════════════════════════════════════════════════════
    # LAZY CALCULATION
    # ═══════════════════════════════════════════════════════════════════════

    def perform_calculations(self) -> None:
        desc = self.solver_desc
        logger.debug(
            "FdmBlackScholesSolver recalculation: K=%s T=%s scheme=%s steps=%d damping=%d",
            self.strike, desc.maturity, self.scheme_desc.type,
            desc.time_steps, desc.damping_steps,
        )

        # Rebuilt every time: it captures the current process state
        op = BlackScholesOp(
            self.mesher,
            self.process.current_link(),
            self.strike,
            self.local_vol,
            self.illegal_local_vol_overwrite,
        )

        rhs = self._initial_values.copy()
        FdmBackwardSolver(op, desc.bc_set, self.conditions, self.scheme_desc).rollback(
            rhs, desc.maturity, 0.0, desc.time_steps, desc.damping_steps
        )

        result_values = rhs[self._result_indices]
        theta_values = self.theta_condition.values[self._result_indices]
        interpolation = MonotonicCubicNaturalSpline(self._x, result_values)

        self._result_values = result_values
        self._theta_values = theta_values
        self._interpolation = interpolation

    # ═══════════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════════

    def _log_spot(self, s: float) -> float:
        if not s > 0:
            raise ValueError(f"spot must be positive, got {s}")
        x = math.log(s)
        if not self._x[0] <= x <= self._x[-1]:
            raise ValueError(
                f"spot {s} lies outside the mesh "
                f"[{math.exp(self._x[0]):.4f}, {math.exp(self._x[-1]):.4f}]"
            )
        return x

    def value_at(self, s: float) -> float:
        """V(S) = f(ln S)"""
        x = self._log_spot(s)
        self.calculate()
        return self._interpolation(x)

    def delta_at(self, s: float) -> float:
        """∂V/∂S = f'(ln S)/S"""
        x = self._log_spot(s)
        self.calculate()
        return self._interpolation.derivative(x) / s

    def gamma_at(self, s: float) -> float:
        """∂²V/∂S² = (f''(ln S) - f'(ln S))/S²"""
        x = self._log_spot(s)
        self.calculate()
        return (self._interpolation.second_derivative(x)
                - self._interpolation.derivative(x)) / (s * s)

    def theta_at(self, s: float) -> float:
        """
        Θ = ∂V/∂t ≈ (V(S, t_snap) - V(S, 0)) / t_snap

        Raises:
            ValueError: if the conditions have a stopping time at zero
        """
        if not self.conditions.stopping_times[0] > 0.0:
            raise ValueError("stopping time at zero -> can't calculate theta")
        x = self._log_spot(s)

        self.calculate()
        snapshot = MonotonicCubicNaturalSpline(self._x, self._theta_values)
        return (snapshot(x) - self.value_at(s)) / self.theta_condition.time

    # ═══════════════════════════════════════════════════════════════════════
    # INSPECTION
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def grid_coordinates(self) -> np.ndarray:
        """ln(S) of the first-dimension mesh points."""
        return self._x.copy()

    @property
    def grid_values(self) -> np.ndarray:
        """Rolled-back values at grid_coordinates."""
        self.calculate()
        return self._result_values.copy()

    @property
    def initial_values(self) -> np.ndarray:
        return self._initial_values.copy()

    @property
    def theta_time(self) -> float:
        return self.theta_condition.time


# ═══════════════════════════════════════════════════════════════════════════════
# DEFAULT SET-UP
# ═══════════════════════════════════════════════════════════════════════════════

def create_default_solver(
    process,
    strike: float,
    maturity: float,
    option_type: str = 'call',
    x_grid: Optional[int] = None,
    t_grid: Optional[int] = None,
    damping_steps: int = 0,
    exercise_times: Optional[Iterable[float]] = None,
    american: bool = False,
    scheme_desc: Optional[FdmSchemeDesc] = None,
    local_vol: bool = False,
    illegal_local_vol_overwrite: Optional[float] = None
) -> FdmBlackScholesSolver:
    """
    Vanilla solver with default mesh and step counts.

    Grid Sizing Heuristics:
    ═══════════════════════════════════════════════════════════════════════════
    - x_grid = 200 points (see create_default_mesher)
    - t_grid = max(100, 100·T) Crank-Nicolson steps
    - European unless exercise_times (Bermudan) or american is given
    ═══════════════════════════════════════════════════════════════════════════
    """
    link = process.current_link() if isinstance(process, Handle) else process

    mesher = create_default_mesher(link, maturity, strike, x_grid)
    calculator = LogInnerValueCalculator(PlainVanillaPayoff(option_type, strike), mesher)
    condition = StepConditionComposite.vanilla_composite(
        mesher, calculator, exercise_times, american
    )
    if t_grid is None:
        t_grid = max(100, int(100 * maturity))

    desc = FdmSolverDesc(
        mesher=mesher,
        bc_set=BoundaryConditionSet(),
        condition=condition,
        calculator=calculator,
        maturity=maturity,
        time_steps=t_grid,
        damping_steps=damping_steps,
    )
    return FdmBlackScholesSolver(
        process, strike, desc, scheme_desc, local_vol, illegal_local_vol_overwrite
    )
