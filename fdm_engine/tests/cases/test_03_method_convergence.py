import pytest

try:
    from .common import AnalyticalPricer, FdmSchemeDesc, get_default_process, create_default_solver
except ImportError:
    from common import AnalyticalPricer, FdmSchemeDesc, get_default_process, create_default_solver


@pytest.mark.parametrize("scheme, steps, damping, tol", [
    (FdmSchemeDesc.douglas(), 100, 0, 1e-2),
    (FdmSchemeDesc.douglas(), 100, 2, 1e-2),
    (FdmSchemeDesc.craig_sneyd(), 100, 0, 1e-2),
    (FdmSchemeDesc.modified_craig_sneyd(), 100, 0, 1e-2),
    (FdmSchemeDesc.hundsdorfer(), 100, 0, 1e-2),
    (FdmSchemeDesc.implicit_euler(), 1000, 0, 2e-2),
])
def test_schemes_agree_with_closed_form(scheme, steps, damping, tol):
    process = get_default_process()
    K, T = 100.0, 1.0
    solver = create_default_solver(
        process, K, T, 'call', t_grid=steps, damping_steps=damping, scheme_desc=scheme
    )
    expected = AnalyticalPricer(process).call_price(K, T)

    assert solver.value_at(process.x0) == pytest.approx(expected, abs=tol)


def test_explicit_euler_with_small_steps():
    process = get_default_process()
    K, T = 100.0, 1.0
    solver = create_default_solver(
        process, K, T, 'call', x_grid=50, t_grid=1000,
        scheme_desc=FdmSchemeDesc.explicit_euler()
    )
    expected = AnalyticalPricer(process).call_price(K, T)

    assert solver.value_at(process.x0) == pytest.approx(expected, abs=5e-2)


def test_grid_convergence():
    """PDE error shrinks as the log-price mesh is refined."""
    process = get_default_process()
    K, T = 100.0, 1.0
    expected = AnalyticalPricer(process).call_price(K, T)

    coarse = create_default_solver(process, K, T, 'call', x_grid=25, t_grid=100)
    fine = create_default_solver(process, K, T, 'call', x_grid=400, t_grid=100)

    error_coarse = abs(coarse.value_at(process.x0) - expected)
    error_fine = abs(fine.value_at(process.x0) - expected)

    assert error_fine < error_coarse
    assert error_fine < 5e-3


def test_unknown_scheme_rejected():
    with pytest.raises(ValueError):
        FdmSchemeDesc('Trapezoidal', 0.5, 0.0)
    with pytest.raises(ValueError):
        FdmSchemeDesc('Douglas', 1.5, 0.0)
