"""
Black-Scholes Process Parameters with Validation

═══════════════════════════════════════════════════════════════════════════════
MATHEMATICAL FOUNDATION - GENERALIZED BLACK-SCHOLES PROCESS
═══════════════════════════════════════════════════════════════════════════════

The underlying follows, under the risk-neutral measure:

1. ASSET PRICE SDE:
   dS_t = (r - q)S_t dt + σ(t, S_t) S_t dW_t

   Where:
   - S_t: Asset price at time t
   - r: Risk-free interest rate (continuous compounding)
   - q: Continuous dividend yield
   - σ(t, S): Volatility; either a flat Black volatility σ or a
     local-volatility surface σ_loc(t, S)

2. LOG-PRICE DYNAMICS (x = ln S):
   dx_t = (r - q - σ²/2) dt + σ dW_t

   With flat σ the log-price is Gaussian:
   x_T ~ N(x_0 + (r - q - σ²/2)T, σ²T)

3. FORWARD QUANTITIES ON [t₁, t₂]:
   - Forward rate:      r  (flat curve)
   - Forward dividend:  q
   - Forward variance:  σ²(t₂ - t₁)   →   variance rate σ²

   The PDE operator is rebuilt on every sub-step from these forward
   quantities, which is why it must observe the process.

═══════════════════════════════════════════════════════════════════════════════
"""

import math
import warnings
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

import numpy as np

from .observable import Observable


LocalVolFunction = Callable[[float, float], float]


@dataclass(frozen=True)
class BlackScholesParams:
    """
    Container for Black-Scholes market parameters with validation.
    """

    spot: float   # S₀: current price of the underlying
    r: float      # Risk-free rate (continuous, annualized)
    q: float      # Dividend yield (continuous, annualized)
    vol: float    # σ: flat Black volatility (annualized)

    def __post_init__(self):
        """
        Validate parameters.

        Requirements:
        ═══════════════════════════════════════════════════════════════════════
        1. S₀ > 0: the mesh lives in ln(S)
        2. σ ≥ 0: negative volatility is meaningless
        3. all values finite
        ═══════════════════════════════════════════════════════════════════════
        """
        for name in ('spot', 'r', 'q', 'vol'):
            value = getattr(self, name)
            if not np.isfinite(value):
                raise ValueError(f"{name} must be finite, got {value}")

        if self.spot <= 0:
            raise ValueError(f"S₀ must be positive, got {self.spot}")
        if self.vol < 0:
            raise ValueError(f"σ must be non-negative, got {self.vol}")

        if self.vol == 0:
            warnings.warn(
                "σ = 0: the PDE degenerates to pure convection and the "
                "rolled-back solution will keep the payoff kink."
            )

    @property
    def forward_factor(self) -> float:
        """Growth of the forward per unit time: e^{r - q}."""
        return math.exp(self.r - self.q)

    def to_dict(self) -> Dict[str, float]:
        return {'spot': self.spot, 'r': self.r, 'q': self.q, 'vol': self.vol}

    @classmethod
    def from_dict(cls, d: Dict[str, float]) -> 'BlackScholesParams':
        return cls(spot=d['spot'], r=d['r'], q=d['q'], vol=d['vol'])


class BlackScholesProcess(Observable):
    """
    Observable Black-Scholes process.

    Every change of parameters or of the local-volatility surface notifies
    the observers (handles, solvers) so their cached results are dropped.
    """

    def __init__(
        self,
        params: BlackScholesParams,
        local_vol: Optional[LocalVolFunction] = None
    ):
        super().__init__()
        self._params = params
        self._local_vol = local_vol

    @property
    def params(self) -> BlackScholesParams:
        return self._params

    @property
    def x0(self) -> float:
        return self._params.spot

    @property
    def risk_free_rate(self) -> float:
        return self._params.r

    @property
    def dividend_yield(self) -> float:
        return self._params.q

    @property
    def black_volatility(self) -> float:
        return self._params.vol

    @property
    def has_local_volatility(self) -> bool:
        return self._local_vol is not None

    def update_params(self, **changes: float) -> None:
        """Replace some parameters (validated) and notify observers."""
        self._params = replace(self._params, **changes)
        self.notify_observers()

    def link_local_volatility(self, local_vol: Optional[LocalVolFunction]) -> None:
        self._local_vol = local_vol
        self.notify_observers()

    def forward_rate(self, t1: float, t2: float) -> float:
        return self._params.r

    def forward_dividend(self, t1: float, t2: float) -> float:
        return self._params.q

    def black_variance(self, t: float, strike: Optional[float] = None) -> float:
        """Total Black variance σ²t."""
        return self._params.vol ** 2 * t

    def black_forward_variance(
        self,
        t1: float,
        t2: float,
        strike: Optional[float] = None
    ) -> float:
        """Black variance accumulated between t₁ and t₂."""
        if t2 < t1:
            raise ValueError(f"t2 ({t2}) must not precede t1 ({t1})")
        return self.black_variance(t2, strike) - self.black_variance(t1, strike)

    def local_volatility(self, t: float, s: float) -> float:
        """
        Local volatility σ_loc(t, S).

        Without a local-volatility surface the flat Black volatility is
        returned (Dupire's formula collapses to it for a flat surface).
        """
        if self._local_vol is None:
            return self._params.vol
        return float(self._local_vol(t, s))

    def __repr__(self) -> str:
        p = self._params
        lv = ", local vol" if self._local_vol is not None else ""
        return (
            f"BlackScholesProcess(S₀={p.spot:.2f}, r={p.r:.4f}, "
            f"q={p.q:.4f}, σ={p.vol:.4f}{lv})"
        )


# ═══════════════════════════════════════════════════════════════════════════════
# TYPICAL PARAMETER SETS FOR TESTING
# ═══════════════════════════════════════════════════════════════════════════════

def get_default_params() -> BlackScholesParams:
    """
    Default parameters for testing: equity-like underlying at 100 with
    20% volatility.
    """
    return BlackScholesParams(
        spot=100.0,   # Spot price $100
        r=0.05,       # 5% risk-free rate
        q=0.02,       # 2% dividend yield
        vol=0.20      # 20% volatility
    )


def get_default_process(local_vol: Optional[LocalVolFunction] = None) -> BlackScholesProcess:
    return BlackScholesProcess(get_default_params(), local_vol)
