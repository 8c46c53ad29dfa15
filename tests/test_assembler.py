import numpy as np
import pytest

from meshparam.classifier import classify, make_constraints
from meshparam.system import SparseSystem, SymmetricSparseSystem, SystemAssembler
from meshparam.weights import WeightOption, get_weight_function


def _assemble(mesh, values, option=WeightOption.TUTTE, c_values=None, max_workers=1):
    constraints = make_constraints(mesh, values)
    n = classify(mesh, constraints)
    assembler = SystemAssembler(get_weight_function(option), max_workers=max_workers)
    general = SparseSystem(n)
    report = assembler.assemble(general, mesh, constraints, c_values)
    symmetric = SymmetricSparseSystem(n)
    sym_report = assembler.assemble_symmetric(symmetric, mesh, constraints, c_values)
    return general, symmetric, report, sym_report


def test_triangle_rows(triangle_mesh):
    general, symmetric, report, sym_report = _assemble(triangle_mesh, {0: 0.0, 1: 1.0})
    assert report.ok and sym_report.ok
    assert report.n_free == 1

    A = general.matrix().toarray()
    np.testing.assert_array_equal(A, [[1, 0, 0], [0, 1, 0], [-1, -1, 2]])
    np.testing.assert_array_equal(general.B, [0.0, 1.0, 0.0])

    # 指向约束顶点的系数移到右端项
    SA = symmetric.matrix().toarray()
    np.testing.assert_array_equal(SA, np.diag([1.0, 1.0, 2.0]))
    np.testing.assert_array_equal(symmetric.B, [0.0, 1.0, 1.0])


@pytest.mark.parametrize("option", list(WeightOption))
def test_free_rows_sum_to_zero(grid_mesh, option):
    values = {0: 0.0, 24: 1.0}
    general, _, report, _ = _assemble(grid_mesh, values, option)
    assert report.ok

    A = general.matrix().toarray()
    for i in range(len(grid_mesh)):
        if i in values:
            continue
        assert A[i].sum() == pytest.approx(0.0, abs=1e-9)
        assert A[i, i] > 0


@pytest.mark.parametrize("option", list(WeightOption))
def test_pinned_rows_are_identity(grid_mesh, option):
    values = {0: -0.75, 12: 0.3, 24: 1.0}
    general, symmetric, _, _ = _assemble(grid_mesh, values, option)

    for system in (general, symmetric):
        A = system.matrix().toarray()
        for i, value in values.items():
            expected = np.zeros(len(grid_mesh))
            expected[i] = 1.0
            np.testing.assert_array_equal(A[i], expected)
            assert system.B[i] == value


@pytest.mark.parametrize("option", [WeightOption.DCP, WeightOption.TUTTE, WeightOption.SPRING1])
def test_symmetric_form(grid_mesh, option):
    values = {h: 0.0 for h in range(5)}
    general, symmetric, _, _ = _assemble(grid_mesh, values, option)

    SA = symmetric.matrix().toarray()
    np.testing.assert_allclose(SA, SA.T, atol=1e-12)

    free = [i for i in range(len(grid_mesh)) if i not in values]
    A = general.matrix().toarray()
    np.testing.assert_allclose(SA[np.ix_(free, free)], A[np.ix_(free, free)], atol=1e-12)


def test_symmetric_storage_keeps_lower_triangle():
    system = SymmetricSparseSystem(3)
    system.set_coef(2, 0, -1.5)
    system.set_coef(0, 2, 7.0)
    system.set_coef(1, 1, 4.0)

    assert system.get_coef(0, 2) == -1.5
    assert system.get_coef(2, 0) == -1.5
    assert system.lower().toarray()[0, 2] == 0.0
    assert system.matrix().toarray()[0, 2] == -1.5
    assert system.matrix().toarray()[1, 1] == 4.0


def test_sparse_system_overwrites():
    system = SparseSystem(2)
    system.set_coef(0, 1, 1.0)
    system.set_coef(0, 1, 3.0)
    assert system.get_coef(0, 1) == 3.0
    assert system.nnz == 1


def test_poisson_rhs(triangle_mesh):
    c_values = np.array([0.0, 5.0, -2.0])
    general, symmetric, _, _ = _assemble(triangle_mesh, {0: 0.0, 1: 1.0}, c_values=c_values)
    assert general.B[2] == 2.0
    # 约束行仍取目标值
    assert general.B[1] == 1.0
    assert symmetric.B[2] == 3.0


def test_c_values_length_checked(triangle_mesh):
    with pytest.raises(ValueError):
        _assemble(triangle_mesh, {0: 0.0, 1: 1.0}, c_values=np.ones(5))


def test_degenerate_vertex_reported(path_mesh):
    general, symmetric, report, sym_report = _assemble(path_mesh, {0: 0.0, 1: 1.0})
    assert not report.ok
    assert report.failed_vertices == [2]
    assert sym_report.failed_vertices == [2]
    # 退化行不写对角元
    assert general.get_coef(2, 2) == 0.0
    assert general.get_coef(2, 1) == -1.0


def test_parallel_assembly_matches_sequential(grid_factory):
    mesh = grid_factory(7, 6)
    values = {h: float(h) for h in range(7)}

    seq_general, seq_sym, _, _ = _assemble(mesh, values, WeightOption.MVC)
    par_general, par_sym, _, _ = _assemble(mesh, values, WeightOption.MVC, max_workers=4)

    np.testing.assert_array_equal(seq_general.matrix().toarray(), par_general.matrix().toarray())
    np.testing.assert_array_equal(seq_general.B, par_general.B)
    np.testing.assert_array_equal(seq_sym.matrix().toarray(), par_sym.matrix().toarray())
    np.testing.assert_array_equal(seq_sym.B, par_sym.B)
