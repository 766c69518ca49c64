import math
from typing import Optional, Tuple

import numpy as np

from fdm_engine.backend.core.observable import Handle
from fdm_engine.backend.core.parameters import (
    BlackScholesParams,
    BlackScholesProcess,
    get_default_params,
    get_default_process,
)
from fdm_engine.backend.core.grid import (
    Fdm1dMesher,
    FdmMesherComposite,
    Uniform1dMesher,
    black_scholes_mesher,
    create_default_mesher,
)
from fdm_engine.backend.core.boundaries import (
    BoundaryConditionSet,
    CashOrNothingPayoff,
    DirichletBoundary,
    LogInnerValueCalculator,
    PlainVanillaPayoff,
)
from fdm_engine.backend.solvers.analytical import AnalyticalPricer
from fdm_engine.backend.solvers.interpolation import MonotonicCubicNaturalSpline
from fdm_engine.backend.solvers.pde_solver import (
    FdmBlackScholesSolver,
    FdmSolverDesc,
    create_default_solver,
)
from fdm_engine.backend.solvers.schemes import FdmSchemeDesc
from fdm_engine.backend.solvers.step_conditions import (
    AmericanStepCondition,
    SnapshotCondition,
    StepConditionComposite,
)
from fdm_engine.backend.greeks.calculator import GreeksCalculator

try:
    import QuantLib as ql
    QUANTLIB_AVAILABLE = True
except ImportError:
    QUANTLIB_AVAILABLE = False


def is_numerically_stable(value: float, bound: float = 1e6) -> bool:
    return np.isfinite(value) and abs(value) <= bound


class CountingSolver(FdmBlackScholesSolver):
    """Solver that counts its recalculations."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calculations = 0

    def perform_calculations(self) -> None:
        self.calculations += 1
        super().perform_calculations()


def make_desc(
    process: BlackScholesProcess,
    payoff,
    maturity: float,
    mesher: Optional[FdmMesherComposite] = None,
    condition: Optional[StepConditionComposite] = None,
    bc_set: Optional[BoundaryConditionSet] = None,
    time_steps: int = 100,
    damping_steps: int = 0
) -> FdmSolverDesc:
    if mesher is None:
        mesher = create_default_mesher(process, maturity, getattr(payoff, 'strike', None))
    return FdmSolverDesc(
        mesher=mesher,
        bc_set=bc_set if bc_set is not None else BoundaryConditionSet(),
        condition=condition if condition is not None else StepConditionComposite(),
        calculator=LogInnerValueCalculator(payoff, mesher),
        maturity=maturity,
        time_steps=time_steps,
        damping_steps=damping_steps,
    )


def quantlib_bs_price(
    params: BlackScholesParams,
    K: float,
    T: float,
    option_type: str = 'call'
) -> Tuple[float, float]:
    """
    QuantLib analytic European price.

    Returns:
        (price, year fraction actually used by QuantLib)
    """
    if not QUANTLIB_AVAILABLE:
        raise RuntimeError("QuantLib is not installed")

    evaluation_date = ql.Date(1, 1, 2026)
    ql.Settings.instance().evaluationDate = evaluation_date
    day_count = ql.Actual365Fixed()

    spot_handle = ql.QuoteHandle(ql.SimpleQuote(params.spot))
    risk_free_ts = ql.YieldTermStructureHandle(
        ql.FlatForward(evaluation_date, params.r, day_count)
    )
    dividend_ts = ql.YieldTermStructureHandle(
        ql.FlatForward(evaluation_date, params.q, day_count)
    )
    vol_ts = ql.BlackVolTermStructureHandle(
        ql.BlackConstantVol(evaluation_date, ql.NullCalendar(), params.vol, day_count)
    )
    process = ql.BlackScholesMertonProcess(spot_handle, dividend_ts, risk_free_ts, vol_ts)

    maturity_date = evaluation_date + int(round(T * 365))
    ql_type = ql.Option.Call if option_type == 'call' else ql.Option.Put
    option = ql.VanillaOption(
        ql.PlainVanillaPayoff(ql_type, K), ql.EuropeanExercise(maturity_date)
    )
    option.setPricingEngine(ql.AnalyticEuropeanEngine(process))

    return float(option.NPV()), day_count.yearFraction(evaluation_date, maturity_date)


def central_difference(f, s: float, h: float) -> Tuple[float, float]:
    """First and second central differences of f at s."""
    up, mid, down = f(s + h), f(s), f(s - h)
    return (up - down) / (2 * h), (up - 2 * mid + down) / (h * h)


def log_mesher(lo: float, hi: float, n: int) -> FdmMesherComposite:
    return FdmMesherComposite(Uniform1dMesher(math.log(lo), math.log(hi), n))
