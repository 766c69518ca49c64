import gc
import weakref

import pytest

try:
    from .common import (
        BlackScholesParams,
        BlackScholesProcess,
        CountingSolver,
        Handle,
        PlainVanillaPayoff,
        get_default_process,
        make_desc,
    )
except ImportError:
    from common import (
        BlackScholesParams,
        BlackScholesProcess,
        CountingSolver,
        Handle,
        PlainVanillaPayoff,
        get_default_process,
        make_desc,
    )


def make_counting_solver(process, K: float = 100.0, T: float = 1.0) -> CountingSolver:
    link = process.current_link() if isinstance(process, Handle) else process
    return CountingSolver(process, K, make_desc(link, PlainVanillaPayoff('call', K), T))


def test_queries_share_one_calculation():
    process = get_default_process()
    solver = make_counting_solver(process)
    assert solver.calculations == 0

    for s in (90.0, 100.0, 110.0):
        solver.value_at(s)
        solver.delta_at(s)
        solver.gamma_at(s)
        solver.theta_at(s)

    assert solver.calculations == 1
    assert solver.is_calculated


def test_process_change_forces_one_recalculation():
    process = get_default_process()
    solver = make_counting_solver(process)

    before = solver.value_at(100.0)
    process.update_params(vol=0.25)
    assert not solver.is_calculated
    assert solver.calculations == 1

    after = solver.value_at(100.0)
    solver.delta_at(100.0)
    solver.theta_at(100.0)

    assert solver.calculations == 2
    assert after > before


def test_notification_without_query_does_no_work():
    process = get_default_process()
    solver = make_counting_solver(process)

    process.update_params(r=0.03)
    process.update_params(r=0.04)
    assert solver.calculations == 0

    solver.value_at(100.0)
    assert solver.calculations == 1


def test_handle_relink_invalidates():
    process = get_default_process()
    handle = Handle(process)
    solver = make_counting_solver(handle)

    before = solver.value_at(100.0)
    handle.link_to(BlackScholesProcess(BlackScholesParams(spot=100.0, r=0.05, q=0.02, vol=0.30)))

    assert not solver.is_calculated
    assert solver.value_at(100.0) > before
    assert solver.calculations == 2

    # The old process no longer reaches the solver
    process.update_params(vol=0.10)
    assert solver.is_calculated


def test_failed_recalculation_keeps_previous_results():
    process = BlackScholesProcess(
        BlackScholesParams(spot=100.0, r=0.05, q=0.02, vol=0.20),
        local_vol=lambda t, s: 0.20,
    )
    K = 100.0
    solver = CountingSolver(
        process, K, make_desc(process, PlainVanillaPayoff('call', K), 1.0), local_vol=True
    )
    values = solver.grid_values
    interpolation = solver._interpolation

    process.link_local_volatility(lambda t, s: -1.0)
    with pytest.raises(ValueError):
        solver.value_at(100.0)
    assert not solver.is_calculated
    assert solver._interpolation is interpolation

    # Stays stale and retries on the next query
    process.link_local_volatility(lambda t, s: 0.20)
    assert solver.grid_values == pytest.approx(values)
    assert solver.calculations == 3


def test_discarded_solvers_are_released():
    process = get_default_process()
    solvers = [make_counting_solver(process) for _ in range(5)]
    assert process.observer_count == 5

    dropped = weakref.ref(solvers.pop())
    gc.collect()

    assert dropped() is None
    assert process.observer_count == 4

    # The survivors are still notified
    solvers[0].value_at(100.0)
    process.update_params(vol=0.25)
    assert not solvers[0].is_calculated


def test_unregistered_solver_ignores_process():
    process = get_default_process()
    solver = make_counting_solver(process)
    solver.value_at(100.0)

    solver.unregister_with(solver.process)
    process.update_params(vol=0.25)
    assert solver.is_calculated


def test_empty_handle_rejected():
    process = get_default_process()
    desc = make_desc(process, PlainVanillaPayoff('call', 100.0), 1.0)
    with pytest.raises(ValueError):
        CountingSolver(Handle(), 100.0, desc)
