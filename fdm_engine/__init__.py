"""
═══════════════════════════════════════════════════════════════════════════════
FDM ENGINE - Finite-Difference Black-Scholes Pricing
═══════════════════════════════════════════════════════════════════════════════

Rolls an option payoff back on a log-price mesh and turns the grid at
valuation time into a smooth price function with its Greeks.

Mathematical Model:
    dS = (r-q)S dt + σ(t, S) S dW

    ∂V/∂t + (r - q - σ²/2)∂V/∂x + (σ²/2)∂²V/∂x² - rV = 0,   x = ln(S)

Where:
    S  = Underlying price
    r  = Risk-free rate
    q  = Dividend yield
    σ  = Black volatility, or a local-volatility surface σ(t, S)

Modules:
    backend.core     - Process, observer plumbing, mesh, payoffs, boundaries
    backend.solvers  - Operators, schemes, rollback, interpolation, solver
    backend.greeks   - Greeks from the solver (grid and bump-and-reprice)
    tests            - Validation tests

Usage:
    from fdm_engine import get_default_process, create_default_solver

    process = get_default_process()
    solver = create_default_solver(process, strike=100.0, maturity=1.0)
    price = solver.value_at(100.0)
    theta = solver.theta_at(100.0)

═══════════════════════════════════════════════════════════════════════════════
"""

__version__ = '1.0.0'
__author__ = 'FDM Engine'

from .backend.core.observable import Handle, LazyObject, Observable, Observer
from .backend.core.parameters import (
    BlackScholesParams,
    BlackScholesProcess,
    get_default_params,
    get_default_process,
)
from .backend.core.grid import (
    Concentrating1dMesher,
    FdmMesherComposite,
    Uniform1dMesher,
    black_scholes_mesher,
    create_default_mesher,
)
from .backend.core.boundaries import (
    BoundaryConditionSet,
    CashOrNothingPayoff,
    DirichletBoundary,
    LogInnerValueCalculator,
    PlainVanillaPayoff,
)
from .backend.solvers.analytical import AnalyticalPricer
from .backend.solvers.interpolation import MonotonicCubicNaturalSpline
from .backend.solvers.pde_solver import (
    FdmBlackScholesSolver,
    FdmSolverDesc,
    create_default_solver,
)
from .backend.solvers.schemes import FdmSchemeDesc
from .backend.solvers.step_conditions import SnapshotCondition, StepConditionComposite
from .backend.greeks.calculator import GreeksCalculator
