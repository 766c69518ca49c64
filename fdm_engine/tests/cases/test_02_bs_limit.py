import math

import pytest

try:
    from .common import AnalyticalPricer, get_default_process, create_default_solver
except ImportError:
    from common import AnalyticalPricer, get_default_process, create_default_solver


def test_european_call_matches_black_scholes():
    """
    K = 100, T = 1 European call on the default process against the
    closed form: price, delta, gamma and theta.
    """
    process = get_default_process()
    K, T = 100.0, 1.0
    S = process.x0

    solver = create_default_solver(process, K, T, 'call')
    pricer = AnalyticalPricer(process)

    assert solver.value_at(S) == pytest.approx(pricer.call_price(K, T), abs=1e-2)
    assert solver.delta_at(S) == pytest.approx(pricer.delta(K, T, 'call'), abs=1e-3)
    assert solver.gamma_at(S) == pytest.approx(pricer.gamma(K, T), abs=5e-4)

    theta = solver.theta_at(S)
    assert theta < 0
    assert theta == pytest.approx(pricer.theta(K, T, 'call'), abs=5e-2)


@pytest.mark.parametrize("K", [80.0, 100.0, 120.0])
def test_european_put_across_moneyness(K):
    process = get_default_process()
    T = 0.5
    solver = create_default_solver(process, K, T, 'put')
    pricer = AnalyticalPricer(process)

    assert solver.value_at(process.x0) == pytest.approx(pricer.put_price(K, T), abs=1e-2)
    assert solver.delta_at(process.x0) == pytest.approx(pricer.delta(K, T, 'put'), abs=2e-3)


def test_put_call_parity_on_grid():
    """C - P = S·e^{-qT} - K·e^{-rT} between two PDE solutions."""
    process = get_default_process()
    K, T = 105.0, 1.0
    call = create_default_solver(process, K, T, 'call')
    put = create_default_solver(process, K, T, 'put')

    for S in (90.0, 100.0, 110.0):
        parity = (S * math.exp(-process.dividend_yield * T)
                  - K * math.exp(-process.risk_free_rate * T))
        assert call.value_at(S) - put.value_at(S) == pytest.approx(parity, abs=5e-3)
