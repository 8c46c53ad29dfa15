import numpy as np
import pytest

from meshparam import linsolve
from meshparam.calculator import (
    ParamConfig,
    ParameterizationEngine,
    ParameterizationError,
    compute_scalar_field,
)
from meshparam.classifier import ConstrainedVertex, make_constraints
from meshparam.dispatcher import SUPPORTED_STRATEGIES, SolveStatus
from meshparam.weights import WeightOption


def _state(mesh):
    return [(v.index, v.s, v.is_parameterized) for v in mesh.vertices()]


@pytest.mark.parametrize("strategy", SUPPORTED_STRATEGIES)
def test_triangle_free_vertex_is_average(triangle_mesh, strategy):
    engine = ParameterizationEngine(ParamConfig(solver_type=strategy))
    result = engine.compute(triangle_mesh, make_constraints(triangle_mesh, {0: 0.0, 1: 1.0}))

    assert result.ok, result.message
    assert result.status == 0
    assert triangle_mesh.vertex(0).s == pytest.approx(0.0, abs=1e-12)
    assert triangle_mesh.vertex(1).s == pytest.approx(1.0)
    assert triangle_mesh.vertex(2).s == pytest.approx(0.5, abs=1e-9)
    assert triangle_mesh.parameterized_mask().all()


def test_solver_type_argument_overrides_config(triangle_mesh):
    engine = ParameterizationEngine(ParamConfig(solver_type="no-such-solver"))
    result = engine.compute(
        triangle_mesh,
        make_constraints(triangle_mesh, {0: 0.0, 1: 1.0}),
        solver_type="general-two-phase"
    )
    assert result.ok
    assert result.strategy == "general-two-phase"


@pytest.mark.parametrize("strategy", SUPPORTED_STRATEGIES)
def test_closed_mesh_fails_without_mutation(octahedron_mesh, strategy):
    before = _state(octahedron_mesh)
    result = ParameterizationEngine().compute(octahedron_mesh, [], solver_type=strategy)

    assert not result.ok
    assert result.status < 0
    assert result.solution is None
    assert _state(octahedron_mesh) == before


def test_degenerate_vertex(path_mesh):
    before = _state(path_mesh)
    result = ParameterizationEngine().compute(path_mesh, make_constraints(path_mesh, {0: 0.0, 1: 1.0}))

    assert result.status == SolveStatus.DEGENERATE_TOPOLOGY
    assert "2" in result.message
    assert _state(path_mesh) == before


def test_unsupported_strategy_keeps_previous_result(triangle_mesh, monkeypatch):
    engine = ParameterizationEngine()
    constraints = make_constraints(triangle_mesh, {0: 0.0, 1: 1.0})
    assert engine.compute(triangle_mesh, constraints).ok
    before = _state(triangle_mesh)

    def fail(*args, **kwargs):
        raise AssertionError("不应调用求解器")

    for name in ("linsolve", "lu_symbolic", "llt_symbolic", "iterative_solve"):
        monkeypatch.setattr(linsolve, name, fail)

    result = engine.compute(triangle_mesh, make_constraints(triangle_mesh, {0: 5.0, 1: 6.0}), solver_type="lu")
    assert result.status == SolveStatus.UNSUPPORTED_STRATEGY
    assert _state(triangle_mesh) == before


def test_exception_restores_mesh(triangle_mesh):
    engine = ParameterizationEngine()

    def broken_weight(mesh, vi, vj):
        raise ZeroDivisionError("broken")

    engine.weight_function = broken_weight
    before = _state(triangle_mesh)
    with pytest.raises(ZeroDivisionError):
        engine.compute(triangle_mesh, make_constraints(triangle_mesh, {0: 0.0, 1: 1.0}))
    assert _state(triangle_mesh) == before


def test_deterministic(grid_mesh, linear_boundary_values):
    values, _ = linear_boundary_values(grid_mesh)
    engine = ParameterizationEngine(ParamConfig(weight_option=WeightOption.MVC))

    first = engine.compute(grid_mesh, make_constraints(grid_mesh, values))
    second = engine.compute(grid_mesh, make_constraints(grid_mesh, values))
    assert first.ok and second.ok
    assert np.array_equal(first.solution, second.solution)


@pytest.mark.parametrize("option", [WeightOption.MVC, WeightOption.DCP, WeightOption.TUTTE])
def test_linear_reproduction_on_planar_grid(grid_mesh, linear_boundary_values, option):
    values, f = linear_boundary_values(grid_mesh)
    engine = ParameterizationEngine(ParamConfig(weight_option=option))
    result = engine.compute(grid_mesh, make_constraints(grid_mesh, values))

    assert result.ok
    for v in grid_mesh.vertices():
        assert v.s == pytest.approx(f(v.point), abs=1e-8)


@pytest.mark.parametrize("strategy", ["general-two-phase", "iterative", "out-of-core", "symmetric-direct"])
def test_strategies_agree(grid_factory, linear_boundary_values, strategy):
    mesh = grid_factory(6, 4)
    values, _ = linear_boundary_values(mesh)
    # 非线性边界值
    values = {h: s * s for h, s in values.items()}
    config = ParamConfig(weight_option=WeightOption.DCP)

    reference = ParameterizationEngine(config).compute(mesh, make_constraints(mesh, values))
    result = ParameterizationEngine(config).compute(mesh, make_constraints(mesh, values), solver_type=strategy)

    assert reference.ok and result.ok
    np.testing.assert_allclose(result.solution, reference.solution, atol=1e-7)


def test_poisson(triangle_mesh):
    result = ParameterizationEngine().compute(
        triangle_mesh,
        make_constraints(triangle_mesh, {0: 0.0, 1: 1.0}),
        c_values=np.array([0.0, 0.0, -2.0])
    )
    assert result.ok
    # 2 * s2 - s0 - s1 = |c2|
    assert triangle_mesh.vertex(2).s == pytest.approx(1.5)


def test_duplicate_constraints_last_write_wins(triangle_mesh):
    v0 = triangle_mesh.vertex(0)
    constraints = make_constraints(triangle_mesh, {1: 1.0}) + [
        ConstrainedVertex(v0, 3.0),
        ConstrainedVertex(v0, 0.0),
    ]
    result = ParameterizationEngine().compute(triangle_mesh, constraints)
    assert result.ok
    assert triangle_mesh.vertex(2).s == pytest.approx(0.5)


@pytest.mark.parametrize("make_bad", [
    lambda mesh, other: ([ConstrainedVertex(other.vertex(0), 0.0)], None),
    lambda mesh, other: ([ConstrainedVertex(mesh.vertex(0), float("nan"))], None),
    lambda mesh, other: (make_constraints(mesh, {0: 0.0}), np.ones(7)),
    lambda mesh, other: (make_constraints(mesh, {0: 0.0}), np.array([1.0, np.inf, 0.0])),
])
def test_invalid_input(triangle_mesh, hexagon_mesh, make_bad):
    constraints, c_values = make_bad(triangle_mesh, hexagon_mesh)
    before = _state(triangle_mesh)
    result = ParameterizationEngine().compute(triangle_mesh, constraints, c_values)
    assert result.status == SolveStatus.INVALID_INPUT
    assert _state(triangle_mesh) == before


def test_symmetric_direct_with_asymmetric_weight_warns(triangle_mesh, caplog):
    engine = ParameterizationEngine(ParamConfig(weight_option=WeightOption.MVC, solver_type="symmetric-direct"))
    engine.compute(triangle_mesh, make_constraints(triangle_mesh, {0: 0.0, 1: 1.0}))
    assert "不对称" in caplog.text


def test_parallel_assembly_gives_same_solution(grid_mesh, linear_boundary_values):
    values, _ = linear_boundary_values(grid_mesh)
    values = {h: np.sin(3.0 * s) for h, s in values.items()}

    seq = ParameterizationEngine(ParamConfig(weight_option=WeightOption.MVC))
    par = ParameterizationEngine(ParamConfig(weight_option=WeightOption.MVC, max_workers=4))
    a = seq.compute(grid_mesh, make_constraints(grid_mesh, values)).solution
    b = par.compute(grid_mesh, make_constraints(grid_mesh, values)).solution
    assert np.array_equal(a, b)


def test_compute_scalar_field(triangle_mesh, octahedron_mesh):
    s = compute_scalar_field(triangle_mesh, {0: 0.0, 1: 1.0})
    np.testing.assert_allclose(s, [0.0, 1.0, 0.5], atol=1e-12)

    with pytest.raises(ParameterizationError) as err:
        compute_scalar_field(octahedron_mesh, {})
    assert err.value.result.status == SolveStatus.SINGULAR
