"""
Time-Stepping Schemes

═══════════════════════════════════════════════════════════════════════════════
OPERATOR-SPLITTING SCHEMES FOR ∂V/∂τ = L V
═══════════════════════════════════════════════════════════════════════════════

All schemes advance a from calendar time t to t - Δt. L = L_0 + Σ_i L_i
splits into a mixed part L_0 and one part per direction.

DOUGLAS (θ):
   Y₀ = a + Δt·L a
   Y_i = Y_{i-1} + θΔt·L_i(Y_i - a)          (implicit in direction i)
   a ← Y_d

   θ = 0.5 in one dimension is Crank-Nicolson, θ = 1 is implicit Euler.

CRAIG-SNEYD (θ, μ):
   Douglas predictor, then
   Ỹ₀ = Y₀ + μΔt·L_0(Y_d - a),   corrector sweep as above.

MODIFIED CRAIG-SNEYD (θ, μ):
   Ỹ₀ = Y₀ + μΔt·L_0(Y_d - a) + (½ - μ)Δt·L(Y_d - a)

HUNDSDORFER-VERWER (θ, μ):
   Ỹ₀ = Y₀ + μΔt·L(Y_d - a),
   Ỹ_i = Ỹ_{i-1} + θΔt·L_i(Ỹ_i - Y_d)

EXPLICIT EULER:   a ← a + Δt·L a
IMPLICIT EULER:   (I - Δt·L) a_new = a

Each scheme calls op.set_time(t - Δt, t) first and hands the boundary
condition set the hooks it needs around every apply/solve.

═══════════════════════════════════════════════════════════════════════════════
"""

import math
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class FdmSchemeDesc:
    """Scheme type plus its θ/μ parameters."""

    type: str
    theta: float
    mu: float

    TYPES = (
        'Douglas', 'CraigSneyd', 'ModifiedCraigSneyd',
        'Hundsdorfer', 'ImplicitEuler', 'ExplicitEuler',
    )

    def __post_init__(self):
        if self.type not in self.TYPES:
            raise ValueError(f"unknown scheme type {self.type!r}, expected one of {self.TYPES}")
        if not 0.0 <= self.theta <= 1.0:
            raise ValueError(f"θ must be in [0, 1], got {self.theta}")

    @classmethod
    def douglas(cls) -> 'FdmSchemeDesc':
        return cls('Douglas', 0.5, 0.0)

    @classmethod
    def crank_nicolson(cls) -> 'FdmSchemeDesc':
        return cls('Douglas', 0.5, 0.0)

    @classmethod
    def implicit_euler(cls) -> 'FdmSchemeDesc':
        return cls('ImplicitEuler', 0.0, 0.0)

    @classmethod
    def explicit_euler(cls) -> 'FdmSchemeDesc':
        return cls('ExplicitEuler', 0.0, 0.0)

    @classmethod
    def craig_sneyd(cls) -> 'FdmSchemeDesc':
        return cls('CraigSneyd', 0.5, 0.5)

    @classmethod
    def modified_craig_sneyd(cls) -> 'FdmSchemeDesc':
        return cls('ModifiedCraigSneyd', 1.0 / 3.0, 1.0 / 3.0)

    @classmethod
    def hundsdorfer(cls) -> 'FdmSchemeDesc':
        return cls('Hundsdorfer', 0.5 + math.sqrt(3.0) / 6.0, 0.5)


class _SplittingScheme:
    """Shared set-up for the schemes: step size and time bookkeeping."""

    def __init__(self, op, bc_set, theta: float = 0.5, mu: float = 0.0):
        self.op = op
        self.bc_set = bc_set
        self.theta = theta
        self.mu = mu
        self.dt = None

    def set_step(self, dt: float) -> None:
        self.dt = dt

    def _begin(self, t: float) -> None:
        if self.dt is None:
            raise RuntimeError("set_step() must be called before step()")
        if t - self.dt < -1e-8:
            raise ValueError(f"a step towards negative time given (t={t}, dt={self.dt})")
        t_next = max(0.0, t - self.dt)
        self.op.set_time(t_next, t)
        self.bc_set.set_time(t_next)

    def _explicit_predictor(self, a: np.ndarray) -> np.ndarray:
        self.bc_set.apply_before_applying(self.op)
        y = a + self.dt * self.op.apply(a)
        self.bc_set.apply_after_applying(y)
        return y

    def _implicit_sweep(self, y: np.ndarray, base: np.ndarray) -> np.ndarray:
        theta_dt = self.theta * self.dt
        for i in self.op.directions:
            rhs = y - theta_dt * self.op.apply_direction(i, base)
            y = self.op.solve_splitting(i, rhs, -theta_dt)
        return y

    def _finish(self, y: np.ndarray, a: np.ndarray) -> None:
        self.bc_set.apply_before_solving(self.op, y)
        self.bc_set.apply_after_solving(y)
        a[:] = y

    def step(self, a: np.ndarray, t: float) -> None:
        raise NotImplementedError


class DouglasScheme(_SplittingScheme):

    def step(self, a: np.ndarray, t: float) -> None:
        self._begin(t)
        y = self._explicit_predictor(a)
        y = self._implicit_sweep(y, a)
        self._finish(y, a)


class CraigSneydScheme(_SplittingScheme):

    def step(self, a: np.ndarray, t: float) -> None:
        self._begin(t)
        y0 = self._explicit_predictor(a)
        y = self._implicit_sweep(y0, a)

        yt = y0 + self.mu * self.dt * self.op.apply_mixed(y - a)
        self.bc_set.apply_after_applying(yt)
        yt = self._implicit_sweep(yt, a)
        self._finish(yt, a)


class ModifiedCraigSneydScheme(_SplittingScheme):

    def step(self, a: np.ndarray, t: float) -> None:
        self._begin(t)
        y0 = self._explicit_predictor(a)
        y = self._implicit_sweep(y0, a)

        diff = y - a
        yt = (y0 + self.mu * self.dt * self.op.apply_mixed(diff)
              + (0.5 - self.mu) * self.dt * self.op.apply(diff))
        self.bc_set.apply_after_applying(yt)
        yt = self._implicit_sweep(yt, a)
        self._finish(yt, a)


class HundsdorferScheme(_SplittingScheme):

    def step(self, a: np.ndarray, t: float) -> None:
        self._begin(t)
        y0 = self._explicit_predictor(a)
        y = self._implicit_sweep(y0, a)

        yt = y0 + self.mu * self.dt * self.op.apply(y - a)
        self.bc_set.apply_after_applying(yt)
        yt = self._implicit_sweep(yt, y)
        self._finish(yt, a)


class ImplicitEulerScheme(_SplittingScheme):
    """(I - Δt·L)a_new = a; exact for a single-direction operator."""

    def step(self, a: np.ndarray, t: float) -> None:
        self._begin(t)
        if len(self.op.directions) != 1:
            raise ValueError("implicit Euler supports single-direction operators only")
        self.bc_set.apply_before_solving(self.op, a)
        y = self.op.solve_splitting(self.op.directions[0], a, -self.dt)
        self.bc_set.apply_after_solving(y)
        a[:] = y


class ExplicitEulerScheme(_SplittingScheme):

    def step(self, a: np.ndarray, t: float) -> None:
        self._begin(t)
        y = self._explicit_predictor(a)
        self.bc_set.apply_after_solving(y)
        a[:] = y


def make_scheme(desc: FdmSchemeDesc, op, bc_set) -> _SplittingScheme:
    """Instantiate the evolver described by `desc`."""
    if desc.type == 'Douglas':
        return DouglasScheme(op, bc_set, desc.theta)
    if desc.type == 'CraigSneyd':
        return CraigSneydScheme(op, bc_set, desc.theta, desc.mu)
    if desc.type == 'ModifiedCraigSneyd':
        return ModifiedCraigSneydScheme(op, bc_set, desc.theta, desc.mu)
    if desc.type == 'Hundsdorfer':
        return HundsdorferScheme(op, bc_set, desc.theta, desc.mu)
    if desc.type == 'ImplicitEuler':
        return ImplicitEulerScheme(op, bc_set)
    return ExplicitEulerScheme(op, bc_set)
