"""
Black-Scholes Closed-Form Reference

═══════════════════════════════════════════════════════════════════════════════
BLACK-SCHOLES FORMULA AND GREEKS (flat r, q, σ)
═══════════════════════════════════════════════════════════════════════════════

C = S·e^{-qτ}·N(d₁) - K·e^{-rτ}·N(d₂)
P = K·e^{-rτ}·N(-d₂) - S·e^{-qτ}·N(-d₁)

d₁ = [ln(S/K) + (r - q + σ²/2)τ] / (σ√τ)
d₂ = d₁ - σ√τ

Greeks (n = standard normal pdf):
   Δ_C = e^{-qτ}N(d₁)                 Δ_P = -e^{-qτ}N(-d₁)
   Γ   = e^{-qτ}n(d₁) / (Sσ√τ)
   ν   = S·e^{-qτ}√τ·n(d₁)
   Θ_C = -S·e^{-qτ}n(d₁)σ/(2√τ) + qS·e^{-qτ}N(d₁) - rK·e^{-rτ}N(d₂)
   Θ_P = -S·e^{-qτ}n(d₁)σ/(2√τ) - qS·e^{-qτ}N(-d₁) + rK·e^{-rτ}N(-d₂)
   ρ_C = Kτ·e^{-rτ}N(d₂)              ρ_P = -Kτ·e^{-rτ}N(-d₂)

Θ is the calendar-time derivative ∂V/∂t (negative for a long vanilla
without large carry), the same convention as the PDE solver's theta_at.

═══════════════════════════════════════════════════════════════════════════════
"""

from typing import Dict, Optional, Tuple

import numpy as np
from scipy.stats import norm


class AnalyticalPricer:
    """
    Black-Scholes pricer used as the closed-form benchmark for the PDE.

    Args:
        process: BlackScholesProcess (flat parameters are read on each call)
    """

    def __init__(self, process):
        self.process = process

    def _inputs(self, S: Optional[float]) -> Tuple[float, float, float, float]:
        p = self.process.params
        spot = p.spot if S is None else S
        return spot, p.r, p.q, p.vol

    @staticmethod
    def _d1_d2(S: float, K: float, tau: float, r: float, q: float, sigma: float):
        sqrt_tau = np.sqrt(tau)
        d1 = (np.log(S / K) + (r - q + 0.5 * sigma**2) * tau) / (sigma * sqrt_tau)
        return d1, d1 - sigma * sqrt_tau

    @staticmethod
    def _check(K: float, T: float, sigma: float) -> None:
        if K <= 0:
            raise ValueError(f"strike must be positive, got {K}")
        if T <= 0:
            raise ValueError(f"maturity must be positive, got {T}")
        if sigma <= 0:
            raise ValueError("closed-form Greeks need a positive volatility")

    def call_price(self, K: float, T: float, S: Optional[float] = None) -> float:
        S, r, q, sigma = self._inputs(S)
        self._check(K, T, sigma)
        d1, d2 = self._d1_d2(S, K, T, r, q, sigma)
        return float(S * np.exp(-q * T) * norm.cdf(d1) - K * np.exp(-r * T) * norm.cdf(d2))

    def put_price(self, K: float, T: float, S: Optional[float] = None) -> float:
        S, r, q, sigma = self._inputs(S)
        self._check(K, T, sigma)
        d1, d2 = self._d1_d2(S, K, T, r, q, sigma)
        return float(K * np.exp(-r * T) * norm.cdf(-d2) - S * np.exp(-q * T) * norm.cdf(-d1))

    def price(self, K: float, T: float, option_type: str = 'call', S: Optional[float] = None) -> float:
        if option_type == 'call':
            return self.call_price(K, T, S)
        return self.put_price(K, T, S)

    def delta(self, K: float, T: float, option_type: str = 'call', S: Optional[float] = None) -> float:
        S, r, q, sigma = self._inputs(S)
        self._check(K, T, sigma)
        d1, _ = self._d1_d2(S, K, T, r, q, sigma)
        if option_type == 'call':
            return float(np.exp(-q * T) * norm.cdf(d1))
        return float(-np.exp(-q * T) * norm.cdf(-d1))

    def gamma(self, K: float, T: float, S: Optional[float] = None) -> float:
        S, r, q, sigma = self._inputs(S)
        self._check(K, T, sigma)
        d1, _ = self._d1_d2(S, K, T, r, q, sigma)
        return float(np.exp(-q * T) * norm.pdf(d1) / (S * sigma * np.sqrt(T)))

    def vega(self, K: float, T: float, S: Optional[float] = None) -> float:
        S, r, q, sigma = self._inputs(S)
        self._check(K, T, sigma)
        d1, _ = self._d1_d2(S, K, T, r, q, sigma)
        return float(S * np.exp(-q * T) * np.sqrt(T) * norm.pdf(d1))

    def theta(self, K: float, T: float, option_type: str = 'call', S: Optional[float] = None) -> float:
        S, r, q, sigma = self._inputs(S)
        self._check(K, T, sigma)
        d1, d2 = self._d1_d2(S, K, T, r, q, sigma)
        decay = -S * np.exp(-q * T) * norm.pdf(d1) * sigma / (2 * np.sqrt(T))
        if option_type == 'call':
            return float(decay + q * S * np.exp(-q * T) * norm.cdf(d1)
                         - r * K * np.exp(-r * T) * norm.cdf(d2))
        return float(decay - q * S * np.exp(-q * T) * norm.cdf(-d1)
                     + r * K * np.exp(-r * T) * norm.cdf(-d2))

    def rho(self, K: float, T: float, option_type: str = 'call', S: Optional[float] = None) -> float:
        S, r, q, sigma = self._inputs(S)
        self._check(K, T, sigma)
        _, d2 = self._d1_d2(S, K, T, r, q, sigma)
        if option_type == 'call':
            return float(K * T * np.exp(-r * T) * norm.cdf(d2))
        return float(-K * T * np.exp(-r * T) * norm.cdf(-d2))

    def all_greeks(self, K: float, T: float, option_type: str = 'call') -> Dict[str, float]:
        return {
            'price': self.price(K, T, option_type),
            'delta': self.delta(K, T, option_type),
            'gamma': self.gamma(K, T),
            'vega': self.vega(K, T),
            'theta': self.theta(K, T, option_type),
            'rho': self.rho(K, T, option_type),
        }
