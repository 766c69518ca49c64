"""
Payoffs, Terminal Values and Boundary Conditions

═══════════════════════════════════════════════════════════════════════════════
TERMINAL AND BOUNDARY CONDITIONS FOR THE BLACK-SCHOLES PDE
═══════════════════════════════════════════════════════════════════════════════

1. TERMINAL CONDITION (t = T):
   ═══════════════════════════════════════════════════════════════════════════

   At expiry the option value equals its payoff:

   European Call:  V(S, T) = (S - K)⁺
   European Put:   V(S, T) = (K - S)⁺
   Cash-or-nothing call: V(S, T) = cash · 1{S > K}

   This is the starting point for backward time-stepping.

2. CELL-AVERAGED PAYOFF:
   ═══════════════════════════════════════════════════════════════════════════

   The payoff has a kink (vanilla) or a jump (digital) at the strike.
   Sampling it at the nodes makes the error depend on where K falls
   between two nodes. Instead each node receives the cell average

   V_i = 1/(b - a) ∫_a^b payoff(e^x) dx,
   a = x_i - Δx⁻/2,  b = x_i + Δx⁺/2

   which removes that sensitivity and smooths the first rollback steps.

3. DIRICHLET BOUNDARIES:
   ═══════════════════════════════════════════════════════════════════════════

   Optional: pin the solution on the lower/upper edge of a direction,
   e.g. a put's value at S_min or a knock-out rebate.

   Without explicit boundaries the operator uses one-sided first
   derivatives and no diffusion at the edges (linear extrapolation).

═══════════════════════════════════════════════════════════════════════════════
"""

import math
from typing import Callable, Dict, Iterable, Optional, Union

import numpy as np
from scipy.integrate import quad

from .grid import FdmMesherComposite, LayoutPoint


# ═══════════════════════════════════════════════════════════════════════════════
# PAYOFFS
# ═══════════════════════════════════════════════════════════════════════════════

def _check_option_type(option_type: str) -> str:
    if option_type not in ('call', 'put'):
        raise ValueError(f"option_type must be 'call' or 'put', got {option_type!r}")
    return option_type


class PlainVanillaPayoff:
    """(S - K)⁺ for calls, (K - S)⁺ for puts."""

    def __init__(self, option_type: str, strike: float):
        self.option_type = _check_option_type(option_type)
        self.strike = float(strike)

    def __call__(self, S: float) -> float:
        if self.option_type == 'call':
            return max(S - self.strike, 0.0)
        return max(self.strike - S, 0.0)

    def __repr__(self) -> str:
        return f"PlainVanillaPayoff({self.option_type!r}, {self.strike})"


class CashOrNothingPayoff:
    """Pays `cash` if the option finishes in the money."""

    def __init__(self, option_type: str, strike: float, cash: float = 1.0):
        self.option_type = _check_option_type(option_type)
        self.strike = float(strike)
        self.cash = float(cash)

    def __call__(self, S: float) -> float:
        if self.option_type == 'call':
            return self.cash if S > self.strike else 0.0
        return self.cash if S < self.strike else 0.0

    def __repr__(self) -> str:
        return f"CashOrNothingPayoff({self.option_type!r}, {self.strike}, {self.cash})"


# ═══════════════════════════════════════════════════════════════════════════════
# INNER VALUE CALCULATOR
# ═══════════════════════════════════════════════════════════════════════════════

class LogInnerValueCalculator:
    """
    Payoff evaluated on a log-price mesh direction.

    Args:
        payoff: Callable S -> payoff
        mesher: FdmMesherComposite
        direction: Mesh direction holding ln(S)
    """

    def __init__(
        self,
        payoff: Callable[[float], float],
        mesher: FdmMesherComposite,
        direction: int = 0
    ):
        self.payoff = payoff
        self.mesher = mesher
        self.direction = direction
        self._avg_cache: Dict[int, float] = {}

    def inner_value(self, point: LayoutPoint, t: float) -> float:
        x = self.mesher.location(point, self.direction)
        return float(self.payoff(math.exp(x)))

    def avg_inner_value(self, point: LayoutPoint, t: float) -> float:
        """Cell average of the payoff, cached per coordinate of `direction`."""
        coord = point.coordinates[self.direction]
        if coord not in self._avg_cache:
            self._avg_cache[coord] = self._avg_inner_value_calc(point, t)
        return self._avg_cache[coord]

    def _avg_inner_value_calc(self, point: LayoutPoint, t: float) -> float:
        n = self.mesher.layout.dim[self.direction]
        coord = point.coordinates[self.direction]
        x = self.mesher.location(point, self.direction)

        a = x - self.mesher.dminus(point, self.direction) / 2.0 if coord > 0 else x
        b = x + self.mesher.dplus(point, self.direction) / 2.0 if coord < n - 1 else x
        if b <= a:
            return self.inner_value(point, t)

        def f(y: float) -> float:
            return float(self.payoff(math.exp(y)))

        # Tell quad where the kink/jump is
        strike = getattr(self.payoff, 'strike', None)
        points = None
        if strike is not None and strike > 0 and a < math.log(strike) < b:
            points = [math.log(strike)]

        integral, _ = quad(f, a, b, points=points, limit=100)
        return integral / (b - a)


# ═══════════════════════════════════════════════════════════════════════════════
# BOUNDARY CONDITIONS
# ═══════════════════════════════════════════════════════════════════════════════

class DirichletBoundary:
    """
    Fixes the solution on one edge of a mesh direction.

    Args:
        mesher: FdmMesherComposite
        value: Constant boundary value, or callable t -> value
        direction: Mesh direction
        side: 'lower' or 'upper'
    """

    def __init__(
        self,
        mesher: FdmMesherComposite,
        value: Union[float, Callable[[float], float]],
        direction: int = 0,
        side: str = 'lower'
    ):
        if side not in ('lower', 'upper'):
            raise ValueError(f"side must be 'lower' or 'upper', got {side!r}")

        layout = mesher.layout
        edge = 0 if side == 'lower' else layout.dim[direction] - 1
        self.indices = np.array(
            [p.index for p in layout if p.coordinates[direction] == edge],
            dtype=int
        )
        self.direction = direction
        self.side = side
        self._value = value
        self._t: Optional[float] = None

    @property
    def value(self) -> float:
        if callable(self._value):
            if self._t is None:
                raise RuntimeError("boundary time not set")
            return float(self._value(self._t))
        return float(self._value)

    def set_time(self, t: float) -> None:
        self._t = t

    def apply_before_applying(self, op) -> None:
        pass

    def apply_after_applying(self, a: np.ndarray) -> None:
        a[self.indices] = self.value

    def apply_before_solving(self, op, rhs: np.ndarray) -> None:
        pass

    def apply_after_solving(self, a: np.ndarray) -> None:
        a[self.indices] = self.value


class BoundaryConditionSet(list):
    """Ordered collection of boundary conditions applied as one."""

    def __init__(self, conditions: Optional[Iterable] = None):
        super().__init__(conditions or [])

    def set_time(self, t: float) -> None:
        for bc in self:
            bc.set_time(t)

    def apply_before_applying(self, op) -> None:
        for bc in self:
            bc.apply_before_applying(op)

    def apply_after_applying(self, a: np.ndarray) -> None:
        for bc in self:
            bc.apply_after_applying(a)

    def apply_before_solving(self, op, rhs: np.ndarray) -> None:
        for bc in self:
            bc.apply_before_solving(op, rhs)

    def apply_after_solving(self, a: np.ndarray) -> None:
        for bc in self:
            bc.apply_after_solving(a)
