import math

import numpy as np
import pytest

try:
    from .common import (
        BlackScholesParams,
        BlackScholesProcess,
        Fdm1dMesher,
        FdmBlackScholesSolver,
        FdmMesherComposite,
        FdmSolverDesc,
        LogInnerValueCalculator,
        PlainVanillaPayoff,
        Uniform1dMesher,
        black_scholes_mesher,
        get_default_process,
        make_desc,
        create_default_solver,
    )
except ImportError:
    from common import (
        BlackScholesParams,
        BlackScholesProcess,
        Fdm1dMesher,
        FdmBlackScholesSolver,
        FdmMesherComposite,
        FdmSolverDesc,
        LogInnerValueCalculator,
        PlainVanillaPayoff,
        Uniform1dMesher,
        black_scholes_mesher,
        get_default_process,
        make_desc,
        create_default_solver,
    )


def test_coordinates_strictly_increasing():
    process = get_default_process()
    solver = create_default_solver(process, 100.0, 1.0, 'call')
    x = solver.grid_coordinates

    assert x.size == 200
    assert np.all(np.diff(x) > 0)
    assert x[0] < math.log(process.x0) < x[-1]


def test_misordered_mesh_rejected():
    process = get_default_process()
    mesher = FdmMesherComposite(Fdm1dMesher([4.0, 4.7, 4.5, 5.0]))
    desc = make_desc(process, PlainVanillaPayoff('call', 100.0), 1.0, mesher=mesher)

    with pytest.raises(ValueError):
        FdmBlackScholesSolver(process, 100.0, desc)


def test_layout_first_dimension_fastest():
    mesher = FdmMesherComposite(Uniform1dMesher(0.0, 1.0, 4), Uniform1dMesher(0.0, 1.0, 3))
    layout = mesher.layout

    assert layout.size == 12
    assert layout.spacing == (1, 4)
    assert layout.coordinates(5) == (1, 1)
    assert layout.index((3, 2)) == 11
    assert layout.first_dimension_indices().tolist() == [0, 1, 2, 3]
    assert [p.index for p in layout] == list(range(12))


def test_two_dimensional_mesh_slices_first_dimension():
    """
    A second, inert mesh dimension must not change the result: the
    solver reads back the points whose other coordinates are zero.
    """
    process = get_default_process()
    K, T = 100.0, 1.0
    x_mesher = black_scholes_mesher(100, process, T, K)

    flat = FdmMesherComposite(x_mesher)
    wide = FdmMesherComposite(x_mesher, Uniform1dMesher(0.0, 1.0, 3))

    solver_1d = FdmBlackScholesSolver(
        process, K, make_desc(process, PlainVanillaPayoff('call', K), T, mesher=flat)
    )
    solver_2d = FdmBlackScholesSolver(
        process, K, make_desc(process, PlainVanillaPayoff('call', K), T, mesher=wide)
    )

    assert np.array_equal(solver_2d.grid_coordinates, solver_1d.grid_coordinates)
    assert np.allclose(solver_2d.grid_values, solver_1d.grid_values, rtol=1e-12, atol=1e-12)
    assert solver_2d.value_at(100.0) == pytest.approx(solver_1d.value_at(100.0), rel=1e-12)


@pytest.mark.parametrize("s", [0.0, -5.0])
def test_non_positive_spot_rejected(s):
    process = get_default_process()
    solver = create_default_solver(process, 100.0, 1.0, 'call')

    for query in (solver.value_at, solver.delta_at, solver.gamma_at, solver.theta_at):
        with pytest.raises(ValueError):
            query(s)
    assert not solver.is_calculated


@pytest.mark.parametrize("s", [1000.0, 5000.0, 5.0])
def test_spot_outside_mesh_rejected(s):
    """Queries beyond the mesh raise instead of continuing the end cubic."""
    process = get_default_process()
    solver = create_default_solver(process, 100.0, 1.0, 'call')
    x = solver.grid_coordinates
    assert not math.exp(x[0]) <= s <= math.exp(x[-1])

    for query in (solver.value_at, solver.delta_at, solver.gamma_at, solver.theta_at):
        with pytest.raises(ValueError, match="outside the mesh"):
            query(s)
    assert not solver.is_calculated

    # The mesh edges themselves are still valid queries
    edge = solver.value_at(math.exp(x[-1]) * (1.0 - 1e-12))
    assert edge > 0.0


def test_solver_desc_configuration_errors():
    process = get_default_process()
    good = make_desc(process, PlainVanillaPayoff('call', 100.0), 1.0)
    fields = dict(
        mesher=good.mesher, bc_set=good.bc_set, condition=good.condition,
        calculator=good.calculator, maturity=1.0, time_steps=100,
    )

    for bad in (
        {'mesher': None},
        {'calculator': None},
        {'maturity': 0.0},
        {'maturity': float('nan')},
        {'time_steps': 0},
        {'damping_steps': -1},
    ):
        with pytest.raises(ValueError):
            FdmSolverDesc(**{**fields, **bad})


def test_invalid_process_parameters():
    with pytest.raises(ValueError):
        BlackScholesParams(spot=0.0, r=0.05, q=0.0, vol=0.2)
    with pytest.raises(ValueError):
        BlackScholesParams(spot=100.0, r=0.05, q=0.0, vol=-0.2)
    with pytest.raises(ValueError):
        BlackScholesParams(spot=100.0, r=float('inf'), q=0.0, vol=0.2)
    with pytest.warns(UserWarning):
        BlackScholesParams(spot=100.0, r=0.05, q=0.0, vol=0.0)


def test_mesher_range_and_warnings():
    process = get_default_process()
    m = black_scholes_mesher(101, process, 1.0, 100.0)
    half_width = 0.2 * 3.719016485 * 1.5

    assert m.locations[0] == pytest.approx(math.log(100.0) - half_width, rel=1e-6)
    assert m.locations[50] == pytest.approx(math.log(100.0))

    with pytest.warns(UserWarning):
        black_scholes_mesher(50, process, 1.0, 100.0, x_min=5.0, x_max=6.0)

    with pytest.warns(UserWarning):
        zero_vol = BlackScholesParams(spot=100.0, r=0.05, q=0.0, vol=0.0)
    with pytest.raises(ValueError):
        black_scholes_mesher(50, BlackScholesProcess(zero_vol), 1.0, 100.0)


def test_concentrating_mesher_clusters_at_strike():
    process = get_default_process()
    m = black_scholes_mesher(101, process, 1.0, 110.0, concentration=0.05)
    x = m.locations
    i = int(np.argmin(np.abs(x - math.log(110.0))))

    assert np.all(np.diff(x) > 0)
    assert m.dplus[i] < m.dplus[0]
    assert m.dplus[i] < m.dminus[-1]


def test_cell_average_smooths_kink():
    process = get_default_process()
    mesher = FdmMesherComposite(black_scholes_mesher(51, process, 1.0, 100.0))
    calculator = LogInnerValueCalculator(PlainVanillaPayoff('call', 100.0), mesher)

    points = list(mesher.layout)
    at_strike = points[25]
    # ln(K) sits on the middle node: the average is strictly above the payoff
    assert calculator.inner_value(at_strike, 1.0) == pytest.approx(0.0, abs=1e-9)
    assert calculator.avg_inner_value(at_strike, 1.0) > 0.0
    # Far in the money the payoff is nearly linear in S, so both agree closely
    far = points[-2]
    assert calculator.avg_inner_value(far, 1.0) == pytest.approx(
        calculator.inner_value(far, 1.0), rel=1e-3
    )
