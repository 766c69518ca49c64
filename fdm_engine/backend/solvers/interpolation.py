"""
Monotonic Cubic Natural Spline

═══════════════════════════════════════════════════════════════════════════════
SHAPE-PRESERVING INTERPOLATION OF THE GRID SOLUTION
═══════════════════════════════════════════════════════════════════════════════

1. NATURAL CUBIC SPLINE:
   ═══════════════════════════════════════════════════════════════════════════

   Piecewise cubic, C², with f''(x₀) = f''(x_n) = 0. Its knot slopes
   f'_i come from one tridiagonal solve (scipy CubicSpline, bc 'natural').

2. HYMAN MONOTONICITY FILTER:
   ═══════════════════════════════════════════════════════════════════════════

   With secant slopes S_i = (y_{i+1} - y_i)/h_i the spline is made
   monotone on every monotone stretch of the data by limiting the knot
   slopes:

   interior:  p_i = (S_{i-1}h_i + S_ih_{i-1})/(h_{i-1} + h_i)
              M_i = 3·min(|S_{i-1}|, |S_i|, |p_i|)
              (relaxed to 1.5·min(|p_i|, |p_d|), 1.5·min(|p_i|, |p_u|)
               next to a local extremum)
              f'_i ← sign(f'_i)·min(|f'_i|, M_i)  if f'_i·p_i > 0, else 0

   edges:     f'_0 ← sign·min(|f'_0|, 3|S_0|) if f'_0·S_0 > 0, else 0
              (same at the upper edge with S_{n-1})

   The filtered slopes define a C¹ cubic Hermite interpolant. Where no
   slope is touched it coincides with the natural spline.

3. ON THE PDE SOLUTION:
   ═══════════════════════════════════════════════════════════════════════════

   Between monotone nodes the interpolated price stays between the node
   values, so no negative prices or sign-flipped deltas appear between
   mesh points.

═══════════════════════════════════════════════════════════════════════════════
"""

from typing import Sequence

import numpy as np
from scipy.interpolate import CubicHermiteSpline, CubicSpline


def hyman_filter(x: np.ndarray, y: np.ndarray, slopes: np.ndarray) -> np.ndarray:
    """
    Apply the Hyman monotonicity constraint to knot slopes.

    Args:
        x: Strictly increasing knots
        y: Values at the knots
        slopes: Unconstrained first derivatives at the knots

    Returns:
        Filtered slopes (new array)
    """
    n = x.size
    dx = np.diff(x)
    S = np.diff(y) / dx
    tmp = np.array(slopes, dtype=float, copy=True)

    if n == 2:
        # A single interval: only the linear interpolant is monotone-safe
        tmp[:] = S[0]
        return tmp

    for i in range(n):
        if i == 0:
            if tmp[i] * S[0] > 0.0:
                correction = np.sign(tmp[i]) * min(abs(tmp[i]), abs(3.0 * S[0]))
            else:
                correction = 0.0
        elif i == n - 1:
            if tmp[i] * S[n - 2] > 0.0:
                correction = np.sign(tmp[i]) * min(abs(tmp[i]), abs(3.0 * S[n - 2]))
            else:
                correction = 0.0
        else:
            pm = (S[i - 1] * dx[i] + S[i] * dx[i - 1]) / (dx[i - 1] + dx[i])
            M = 3.0 * min(abs(S[i - 1]), abs(S[i]), abs(pm))
            if i > 1:
                if (S[i - 1] - S[i - 2]) * (S[i] - S[i - 1]) > 0.0:
                    pd = ((S[i - 1] * (2.0 * dx[i - 1] + dx[i - 2]) - S[i - 2] * dx[i - 1])
                          / (dx[i - 2] + dx[i - 1]))
                    if pm * pd > 0.0 and pm * (S[i - 1] - S[i - 2]) > 0.0:
                        M = max(M, 1.5 * min(abs(pm), abs(pd)))
            if i < n - 2:
                if (S[i] - S[i - 1]) * (S[i + 1] - S[i]) > 0.0:
                    pu = ((S[i] * (2.0 * dx[i] + dx[i + 1]) - S[i + 1] * dx[i])
                          / (dx[i] + dx[i + 1]))
                    if pm * pu > 0.0 and -pm * (S[i] - S[i - 1]) > 0.0:
                        M = max(M, 1.5 * min(abs(pm), abs(pu)))
            if tmp[i] * pm > 0.0:
                correction = np.sign(tmp[i]) * min(abs(tmp[i]), M)
            else:
                correction = 0.0
        tmp[i] = correction

    return tmp


class MonotonicCubicNaturalSpline:
    """
    Natural cubic spline with Hyman monotonicity filter.

    Callable; also exposes derivative() and second_derivative(). Queries
    outside [x₀, x_n] raise ValueError unless allow_extrapolation is set,
    in which case the end cubics are continued.

    Args:
        x: Strictly increasing abscissas (at least two)
        y: Ordinates, same length as x
        allow_extrapolation: Evaluate outside the knot range
    """

    def __init__(self, x: Sequence[float], y: Sequence[float], allow_extrapolation: bool = False):
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)

        if x.ndim != 1 or y.ndim != 1:
            raise ValueError("x and y must be one-dimensional")
        if x.size != y.size:
            raise ValueError(f"x and y must have equal length, got {x.size} and {y.size}")
        if x.size < 2:
            raise ValueError("at least two points are required")
        if not np.all(np.diff(x) > 0):
            raise ValueError("x must be strictly increasing")

        self.x = x
        self.y = y
        self.allow_extrapolation = allow_extrapolation

        if x.size == 2:
            raw = np.full(2, (y[1] - y[0]) / (x[1] - x[0]))
        else:
            raw = CubicSpline(x, y, bc_type='natural')(x, 1)
        slopes = hyman_filter(x, y, raw)

        self.monotonicity_adjustments = slopes != raw
        self._spline = CubicHermiteSpline(x, y, slopes, extrapolate=True)

    def __call__(self, x):
        return self._evaluate(x, 0)

    def derivative(self, x):
        return self._evaluate(x, 1)

    def second_derivative(self, x):
        return self._evaluate(x, 2)

    def _evaluate(self, x, nu: int):
        if not self.allow_extrapolation:
            z = np.asarray(x, dtype=float)
            if not np.all((z >= self.x[0]) & (z <= self.x[-1])):
                raise ValueError(
                    f"interpolation range is [{self.x[0]}, {self.x[-1]}]: "
                    f"extrapolation at {x} not allowed"
                )
        result = self._spline(x, nu)
        if np.ndim(result) == 0:
            return float(result)
        return result
