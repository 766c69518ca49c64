import pytest

try:
    from .common import (
        AnalyticalPricer,
        GreeksCalculator,
        central_difference,
        get_default_process,
        create_default_solver,
    )
except ImportError:
    from common import (
        AnalyticalPricer,
        GreeksCalculator,
        central_difference,
        get_default_process,
        create_default_solver,
    )


def test_greeks_signs():
    """
    For a call with S > 0, K > 0, T > 0:
    - Delta > 0, Gamma > 0, Vega > 0, Rho > 0
    - Theta < 0
    """
    process = get_default_process()
    solver = create_default_solver(process, 100.0, 1.0, 'call')
    greeks = GreeksCalculator(solver).all_greeks()

    assert greeks['delta'] > 0
    assert greeks['gamma'] > 0
    assert greeks['vega'] > 0
    assert greeks['theta'] < 0
    assert greeks['rho'] > 0


def test_bumped_greeks_match_closed_form():
    process = get_default_process()
    K, T = 100.0, 1.0
    solver = create_default_solver(process, K, T, 'call')
    calculator = GreeksCalculator(solver)
    pricer = AnalyticalPricer(process)

    assert calculator.vega() == pytest.approx(pricer.vega(K, T), rel=1e-2)
    assert calculator.rho() == pytest.approx(pricer.rho(K, T, 'call'), rel=1e-2)

    # Parameters are restored after bumping
    assert process.black_volatility == 0.20
    assert process.risk_free_rate == 0.05


@pytest.mark.parametrize("S", [85.0, 100.0, 115.0])
def test_delta_gamma_match_central_differences(S):
    """delta_at/gamma_at agree with finite differences of value_at."""
    process = get_default_process()
    solver = create_default_solver(process, 100.0, 1.0, 'call')

    fd_delta, fd_gamma = central_difference(solver.value_at, S, 0.05)

    assert solver.delta_at(S) == pytest.approx(fd_delta, abs=1e-4)
    assert solver.gamma_at(S) == pytest.approx(fd_gamma, rel=1e-2)


def test_put_greeks_signs():
    process = get_default_process()
    solver = create_default_solver(process, 100.0, 1.0, 'put')
    calculator = GreeksCalculator(solver)

    assert calculator.delta() < 0
    assert calculator.gamma() > 0
    assert calculator.rho() < 0
