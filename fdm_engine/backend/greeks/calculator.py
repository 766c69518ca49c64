"""
Greeks Calculator for the PDE Solver

═══════════════════════════════════════════════════════════════════════════════
OPTION GREEKS FROM THE ROLLED-BACK GRID
═══════════════════════════════════════════════════════════════════════════════

1. GRID GREEKS (no extra rollback):
   ═══════════════════════════════════════════════════════════════════════════

   Delta (Δ) = ∂V/∂S         from the spline's first derivative
   Gamma (Γ) = ∂²V/∂S²       from first and second derivatives
   Theta (Θ) = ∂V/∂t         from the snapshot taken during the rollback

2. MODEL GREEKS (bump and reprice):
   ═══════════════════════════════════════════════════════════════════════════

   Vega (ν) = ∂V/∂σ ≈ [V(σ+h) - V(σ-h)] / (2h)
   Rho  (ρ) = ∂V/∂r ≈ [V(r+h) - V(r-h)] / (2h)

   The bump goes through process.update_params(), so the solver learns
   about it through its observer registration and recomputes lazily. The
   original parameters are restored afterwards, which invalidates the
   solver once more.

═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class GreeksCalculator:
    """
    Greeks of one FdmBlackScholesSolver at a spot.

    Args:
        solver: FdmBlackScholesSolver
        spot: Evaluation spot (default: the process spot)
    """

    def __init__(self, solver, spot: Optional[float] = None):
        self.solver = solver
        self._spot = spot

        # Default bump sizes for finite differences
        self.d_vol = 0.001   # Absolute volatility bump
        self.d_r = 0.0001    # Rate bump

    @property
    def process(self):
        return self.solver.process.current_link()

    @property
    def spot(self) -> float:
        return self._spot if self._spot is not None else self.process.x0

    def value(self) -> float:
        return self.solver.value_at(self.spot)

    def delta(self) -> float:
        return self.solver.delta_at(self.spot)

    def gamma(self) -> float:
        return self.solver.gamma_at(self.spot)

    def theta(self) -> float:
        return self.solver.theta_at(self.spot)

    def _bumped_difference(self, name: str, h: float) -> float:
        """Central difference of the solver value in one process parameter."""
        process = self.process
        base = getattr(process.params, name)
        spot = self.spot

        try:
            process.update_params(**{name: base + h})
            up = self.solver.value_at(spot)
            process.update_params(**{name: base - h})
            down = self.solver.value_at(spot)
        finally:
            process.update_params(**{name: base})

        logger.debug("bumped %s by ±%g: up=%.8f down=%.8f", name, h, up, down)
        return (up - down) / (2 * h)

    def vega(self) -> float:
        """
        Vega via central difference in σ.

        Requires σ > d_vol so that the down bump stays non-negative.
        """
        if self.process.black_volatility <= self.d_vol:
            raise ValueError(
                f"volatility {self.process.black_volatility} too small for a ±{self.d_vol} bump"
            )
        return self._bumped_difference('vol', self.d_vol)

    def rho(self) -> float:
        return self._bumped_difference('r', self.d_r)

    def all_greeks(self, include_theta: bool = True) -> Dict[str, float]:
        """
        Compute all Greeks at once.

        Returns:
            Dictionary with value, delta, gamma, theta, vega, rho
        """
        greeks = {
            'value': self.value(),
            'delta': self.delta(),
            'gamma': self.gamma(),
        }
        if include_theta:
            greeks['theta'] = self.theta()
        greeks['vega'] = self.vega()
        greeks['rho'] = self.rho()
        return greeks
