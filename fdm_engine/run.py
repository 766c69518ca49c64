#!/usr/bin/env python3
"""
═══════════════════════════════════════════════════════════════════════════════
FDM ENGINE - Application Entry Point
═══════════════════════════════════════════════════════════════════════════════

Prices a vanilla option with the finite-difference Black-Scholes solver
and compares it against the closed form.

Usage:
    python run.py                      # Demo pricing calculations
    python run.py --type put --american
    python run.py --test               # Run validation tests only
    python run.py --demo -v            # Demo with solver debug logging

PDE (x = ln S, t = calendar time):
    ∂V/∂t + (r - q - σ²/2)∂V/∂x + (σ²/2)∂²V/∂x² - rV = 0

Parameters:
    S₀   - Spot price
    r    - Risk-free interest rate
    q    - Dividend yield
    σ    - Black volatility

═══════════════════════════════════════════════════════════════════════════════
"""

import argparse
import logging
import math
import sys


def run_demo(K: float = 100.0, T: float = 1.0, option_type: str = 'call', american: bool = False):
    """Run demonstration calculations."""

    print("=" * 70)
    print("FDM ENGINE - DEMO")
    print("=" * 70)
    print()

    from fdm_engine.backend.core.parameters import get_default_process
    from fdm_engine.backend.solvers.analytical import AnalyticalPricer
    from fdm_engine.backend.solvers.pde_solver import create_default_solver
    from fdm_engine.backend.greeks.calculator import GreeksCalculator

    process = get_default_process()
    params = process.params
    print("Black-Scholes Parameters:")
    print(f"  S₀         = {params.spot}")
    print(f"  r          = {params.r}")
    print(f"  q          = {params.q}")
    print(f"  σ          = {params.vol}")
    print()

    style = 'American' if american else 'European'
    print(f"Option: {style} {option_type.capitalize()}, K={K}, T={T}")
    print("-" * 70)

    # PDE rollback
    print("\n1. FINITE DIFFERENCES (Douglas / Crank-Nicolson, log-spot mesh)")
    solver = create_default_solver(process, K, T, option_type, american=american)
    print(solver.mesher.summary())
    pde_price = solver.value_at(params.spot)
    print(f"   Price:       {pde_price:.4f}")
    print(f"   Theta time:  {solver.theta_time:.6f}")

    # Closed form
    print("\n2. ANALYTICAL (Black-Scholes, European)")
    pricer = AnalyticalPricer(process)
    bs_price = pricer.price(K, T, option_type)
    print(f"   Price:       {bs_price:.4f}")
    print(f"   Difference:  {pde_price - bs_price:+.6f}")

    # Greeks
    print("\n3. GREEKS")
    greeks = GreeksCalculator(solver).all_greeks()
    print(f"   Delta (Δ): {greeks['delta']:.4f}")
    print(f"   Gamma (Γ): {greeks['gamma']:.6f}")
    print(f"   Vega  (ν): {greeks['vega']:.4f}")
    print(f"   Theta (Θ): {greeks['theta']:.4f} (daily: {greeks['theta']/365:.4f})")
    print(f"   Rho   (ρ): {greeks['rho']:.4f}")

    # Price profile from the same rollback
    print("\n4. PRICE PROFILE (one rollback)")
    print("   Spot      Price     Delta     Gamma")
    x = solver.grid_coordinates
    s_min, s_max = math.exp(x[0]), math.exp(x[-1])
    for spot in (80, 90, 95, 100, 105, 110, 120):
        if not s_min <= spot <= s_max:
            continue
        print(f"   {spot:4.0f}    {solver.value_at(spot):7.4f}   "
              f"{solver.delta_at(spot):7.4f}   {solver.gamma_at(spot):7.5f}")

    print()
    print("=" * 70)
    print("Demo complete!")
    print("=" * 70)


def run_tests():
    """Run validation tests."""
    from fdm_engine.tests.validation import run_all_tests
    success = run_all_tests()
    return 0 if success else 1


def main():
    parser = argparse.ArgumentParser(
        description='Finite-Difference Black-Scholes Engine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run.py                        Demo for the default call
    python run.py --strike 110 --type put
    python run.py --test                 Run validation tests
        """
    )

    parser.add_argument('--test', action='store_true', help='Run validation tests')
    parser.add_argument('--demo', action='store_true', help='Run demo calculations (default)')
    parser.add_argument('--strike', type=float, default=100.0, help='Strike (default: 100)')
    parser.add_argument('--maturity', type=float, default=1.0, help='Maturity in years (default: 1)')
    parser.add_argument('--type', dest='option_type', choices=['call', 'put'], default='call',
                        help='Option type (default: call)')
    parser.add_argument('--american', action='store_true', help='American exercise')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log solver recalculations')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s',
    )

    if args.test:
        sys.exit(run_tests())
    run_demo(args.strike, args.maturity, args.option_type, args.american)


if __name__ == '__main__':
    main()
