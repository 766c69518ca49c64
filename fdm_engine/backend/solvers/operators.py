"""
Finite Difference Operators

═══════════════════════════════════════════════════════════════════════════════
BLACK-SCHOLES OPERATOR IN LOG-PRICE
═══════════════════════════════════════════════════════════════════════════════

1. PDE (backward in calendar time t):
   ═══════════════════════════════════════════════════════════════════════════

   ∂V/∂t + L V = 0

   L = (r - q - v/2)·∂/∂x + (v/2)·∂²/∂x² - r

   where v is the variance rate on the current step:
   - flat volatility:  v = σ²(t₁, t₂) = Black forward variance / (t₂ - t₁)
   - local volatility: v_i = σ_loc(½(t₁+t₂), e^{x_i})²   (one per node)

2. NON-UNIFORM CENTRAL STENCILS (h⁻ = x_i - x_{i-1}, h⁺ = x_{i+1} - x_i):
   ═══════════════════════════════════════════════════════════════════════════

   ∂V/∂x   ≈ -h⁺/(h⁻(h⁻+h⁺))·V_{i-1} + (h⁺-h⁻)/(h⁻h⁺)·V_i + h⁻/(h⁺(h⁻+h⁺))·V_{i+1}

   ∂²V/∂x² ≈ 2/(h⁻(h⁻+h⁺))·V_{i-1} - 2/(h⁻h⁺)·V_i + 2/(h⁺(h⁻+h⁺))·V_{i+1}

   Edges: one-sided first derivative, zero second derivative.

3. TRIDIAGONAL SOLVE:
   ═══════════════════════════════════════════════════════════════════════════

   Implicit steps need (b·I + a·L)x = r along one direction, solved line
   by line with a banded LU (scipy.linalg.solve_banded), O(N) per line.

═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import math
from typing import List, Optional

import numpy as np
from scipy.linalg import solve_banded

from ..core.grid import FdmMesherComposite

logger = logging.getLogger(__name__)


class TripleBandLinearOp:
    """
    Tridiagonal operator acting along one direction of a mesh layout.

    Row i couples the point with its previous (i0) and next (i2) neighbour
    along `direction`:  (L r)_i = lower_i·r_{i0} + diag_i·r_i + upper_i·r_{i2}
    """

    def __init__(self, direction: int, mesher: FdmMesherComposite):
        layout = mesher.layout
        n = layout.size
        self.direction = direction
        self.mesher = mesher

        coord = (np.arange(n) // layout.spacing[direction]) % layout.dim[direction]
        step = layout.spacing[direction]
        idx = np.arange(n)
        # Edge rows point at themselves; their outer coefficient is zero
        self.i0 = np.where(coord > 0, idx - step, idx)
        self.i2 = np.where(coord < layout.dim[direction] - 1, idx + step, idx)

        self.lower = np.zeros(n)
        self.diag = np.zeros(n)
        self.upper = np.zeros(n)

    def _like(self) -> 'TripleBandLinearOp':
        op = TripleBandLinearOp.__new__(TripleBandLinearOp)
        op.direction = self.direction
        op.mesher = self.mesher
        op.i0, op.i2 = self.i0, self.i2
        op.lower = self.lower.copy()
        op.diag = self.diag.copy()
        op.upper = self.upper.copy()
        return op

    def apply(self, r: np.ndarray) -> np.ndarray:
        return self.lower * r[self.i0] + self.diag * r + self.upper * r[self.i2]

    def mult(self, u) -> 'TripleBandLinearOp':
        """Row scaling: diag(u)·L"""
        op = self._like()
        op.lower *= u
        op.diag *= u
        op.upper *= u
        return op

    def add(self, other: 'TripleBandLinearOp') -> 'TripleBandLinearOp':
        op = self._like()
        op.lower += other.lower
        op.diag += other.diag
        op.upper += other.upper
        return op

    def axpyb(self, a, x: 'TripleBandLinearOp', y: 'TripleBandLinearOp', b) -> None:
        """this = diag(a)·x + y + diag(b), in place"""
        self.lower = a * x.lower + y.lower
        self.diag = a * x.diag + y.diag + b
        self.upper = a * x.upper + y.upper

    def solve_splitting(self, r: np.ndarray, a: float, b: float = 1.0) -> np.ndarray:
        """Solve (b·I + a·L)x = r line by line along the operator's direction."""
        layout = self.mesher.layout
        axis = layout.axis(self.direction)
        n = layout.dim[self.direction]

        def lines(v: np.ndarray) -> np.ndarray:
            return np.moveaxis(layout.as_tensor(v), axis, -1).reshape(-1, n)

        rhs = lines(r)
        lo, di, up = lines(self.lower), lines(self.diag), lines(self.upper)

        x = np.empty_like(rhs)
        ab = np.zeros((3, n))
        for j in range(rhs.shape[0]):
            ab[0, 1:] = a * up[j, :-1]
            ab[1, :] = b + a * di[j]
            ab[2, :-1] = a * lo[j, 1:]
            x[j] = solve_banded((1, 1), ab, rhs[j])

        shape = list(layout.dim[::-1])
        shape.append(shape.pop(axis))
        return np.moveaxis(x.reshape(shape), -1, axis).reshape(-1)

    def to_dense(self) -> np.ndarray:
        n = self.diag.size
        m = np.zeros((n, n))
        rows = np.arange(n)
        np.add.at(m, (rows, self.i0), self.lower)
        np.add.at(m, (rows, rows), self.diag)
        np.add.at(m, (rows, self.i2), self.upper)
        return m


class FirstDerivativeOp(TripleBandLinearOp):
    """Central first derivative on a non-uniform mesh, one-sided at the edges."""

    def __init__(self, direction: int, mesher: FdmMesherComposite):
        super().__init__(direction, mesher)
        layout = mesher.layout
        m = mesher.meshers[direction]
        coord = (np.arange(layout.size) // layout.spacing[direction]) % layout.dim[direction]
        hm = m.dminus[coord]
        hp = m.dplus[coord]
        first = coord == 0
        last = coord == layout.dim[direction] - 1
        inner = ~(first | last)

        self.lower[inner] = -hp[inner] / (hm[inner] * (hm[inner] + hp[inner]))
        self.diag[inner] = (hp[inner] - hm[inner]) / (hm[inner] * hp[inner])
        self.upper[inner] = hm[inner] / (hp[inner] * (hm[inner] + hp[inner]))

        self.diag[first] = -1.0 / hp[first]
        self.upper[first] = 1.0 / hp[first]
        self.lower[last] = -1.0 / hm[last]
        self.diag[last] = 1.0 / hm[last]


class SecondDerivativeOp(TripleBandLinearOp):
    """Central second derivative on a non-uniform mesh, zero at the edges."""

    def __init__(self, direction: int, mesher: FdmMesherComposite):
        super().__init__(direction, mesher)
        layout = mesher.layout
        m = mesher.meshers[direction]
        coord = (np.arange(layout.size) // layout.spacing[direction]) % layout.dim[direction]
        inner = (coord > 0) & (coord < layout.dim[direction] - 1)
        hm = m.dminus[coord][inner]
        hp = m.dplus[coord][inner]

        self.lower[inner] = 2.0 / (hm * (hm + hp))
        self.diag[inner] = -2.0 / (hm * hp)
        self.upper[inner] = 2.0 / (hp * (hm + hp))


class BlackScholesOp:
    """
    Black-Scholes operator L on the log-price direction of a mesh.

    Args:
        mesher: FdmMesherComposite
        process: BlackScholesProcess snapshot
        strike: Strike used to read the Black volatility
        local_vol: Use the process' local-volatility surface
        illegal_local_vol_overwrite: Volatility used where the local
            volatility is negative, not finite or cannot be evaluated;
            None means such a node raises ValueError
        direction: Mesh direction holding ln(S)
    """

    def __init__(
        self,
        mesher: FdmMesherComposite,
        process,
        strike: float,
        local_vol: bool = False,
        illegal_local_vol_overwrite: Optional[float] = None,
        direction: int = 0
    ):
        self.mesher = mesher
        self.process = process
        self.strike = strike
        self.local_vol = local_vol
        self.illegal_local_vol_overwrite = illegal_local_vol_overwrite
        self.direction = direction

        self._spots = np.exp(mesher.locations(direction)) if local_vol else None
        self._dx = FirstDerivativeOp(direction, mesher)
        self._dxx = SecondDerivativeOp(direction, mesher)
        self._map = TripleBandLinearOp(direction, mesher)

    @property
    def directions(self) -> List[int]:
        return [self.direction]

    def size(self) -> int:
        return len(self.directions)

    def set_time(self, t1: float, t2: float) -> None:
        r = self.process.forward_rate(t1, t2)
        q = self.process.forward_dividend(t1, t2)

        if self.local_vol:
            v = self._local_variance(0.5 * (t1 + t2))
        elif t2 > t1:
            v = self.process.black_forward_variance(t1, t2, self.strike) / (t2 - t1)
        else:
            v = self.process.black_volatility ** 2

        self._map.axpyb(r - q - 0.5 * v, self._dx, self._dxx.mult(0.5 * v), -r)

    def _local_variance(self, t: float) -> np.ndarray:
        overwrite = self.illegal_local_vol_overwrite
        v = np.empty(self._spots.size)
        n_illegal = 0
        for i, s in enumerate(self._spots):
            try:
                sigma = self.process.local_volatility(t, s)
            except (ArithmeticError, ValueError):
                if overwrite is None:
                    raise
                sigma = math.nan

            if not (math.isfinite(sigma) and sigma >= 0.0):
                if overwrite is None:
                    raise ValueError(
                        f"illegal local volatility {sigma} at t={t:.6f}, S={s:.6f}"
                    )
                sigma = overwrite
                n_illegal += 1
            v[i] = sigma * sigma

        if n_illegal:
            logger.debug(
                "local vol overwritten at %d of %d nodes (t=%.6f, overwrite=%.4f)",
                n_illegal, v.size, t, overwrite,
            )
        return v

    def apply(self, r: np.ndarray) -> np.ndarray:
        return self._map.apply(r)

    def apply_mixed(self, r: np.ndarray) -> np.ndarray:
        return np.zeros_like(r)

    def apply_direction(self, direction: int, r: np.ndarray) -> np.ndarray:
        if direction == self.direction:
            return self._map.apply(r)
        return np.zeros_like(r)

    def solve_splitting(self, direction: int, r: np.ndarray, a: float) -> np.ndarray:
        """Solve (I + a·L_direction)x = r."""
        if direction == self.direction:
            return self._map.solve_splitting(r, a, 1.0)
        return r.copy()
