from __future__ import annotations

import pytest
from hypothesis import given, settings, strategies as st

from matchcast.matrix import (
    covariance,
    jacobi_eigen,
    principal_components,
    singular_value_decomposition,
    strength_ratio,
)


def test_covariance_requires_two_rows() -> None:
    assert covariance([]) == [[0.0]]
    assert covariance([{"x": 1.0, "y": 2.0}]) == [[0.0]]


def test_covariance_sample_denominator() -> None:
    rows = [{"x": 1.0, "y": 2.0}, {"x": 2.0, "y": 4.0}, {"x": 3.0, "y": 6.0}]
    matrix = covariance(rows)
    assert matrix[0][0] == pytest.approx(1.0)
    assert matrix[0][1] == pytest.approx(2.0)
    assert matrix[1][0] == pytest.approx(2.0)
    assert matrix[1][1] == pytest.approx(4.0)


def test_jacobi_eigen_symmetric_2x2() -> None:
    values, vectors, sweeps, converged = jacobi_eigen([[2.0, 1.0], [1.0, 2.0]])
    assert converged
    assert sweeps >= 1
    assert sorted(values) == pytest.approx([1.0, 3.0])
    for column in range(2):
        norm = sum(vectors[row][column] ** 2 for row in range(2))
        assert norm == pytest.approx(1.0)


def test_jacobi_eigen_diagonal_input_is_noop() -> None:
    values, vectors, _sweeps, converged = jacobi_eigen([[4.0, 0.0], [0.0, 9.0]])
    assert converged
    assert values == [4.0, 9.0]
    assert vectors == [[1.0, 0.0], [0.0, 1.0]]


def test_jacobi_eigen_reports_non_convergence() -> None:
    matrix = [[1.0, 0.5, 0.2], [0.5, 2.0, 0.3], [0.2, 0.3, 3.0]]
    _values, _vectors, sweeps, converged = jacobi_eigen(matrix, max_sweeps=0)
    assert sweeps == 0
    assert converged is False


@st.composite
def _matrices(draw: st.DrawFn) -> list[list[float]]:
    rows = draw(st.integers(min_value=1, max_value=4))
    cols = draw(st.integers(min_value=1, max_value=4))
    cell = st.integers(min_value=-10, max_value=10).map(float)
    return [[draw(cell) for _ in range(cols)] for _ in range(rows)]


@settings(max_examples=50, deadline=None)
@given(_matrices())
def test_svd_reconstructs_input(matrix: list[list[float]]) -> None:
    result = singular_value_decomposition(matrix)
    n = len(matrix[0])
    assert list(result.singular_values) == sorted(result.singular_values, reverse=True)
    assert all(value >= 0.0 for value in result.singular_values)
    for i, row in enumerate(matrix):
        for j, expected in enumerate(row):
            rebuilt = sum(
                result.u[i][k] * result.singular_values[k] * result.v[j][k] for k in range(n)
            )
            assert rebuilt == pytest.approx(expected, abs=1e-5)


def test_svd_diagonal_property() -> None:
    result = singular_value_decomposition([[3.0, 0.0], [0.0, 4.0]])
    assert result.singular_values == pytest.approx((4.0, 3.0))
    assert result.s == [[result.singular_values[0], 0.0], [0.0, result.singular_values[1]]]
    assert singular_value_decomposition([]).singular_values == ()


def test_principal_components_orders_by_variance() -> None:
    rows = [{"atk": float(i), "def": 2.0 * i, "mid": 5.0} for i in range(10)]
    pca = principal_components(rows, 2)
    assert pca.variables == ("atk", "def", "mid")
    assert [c.component for c in pca.components] == [1, 2]
    assert pca.components[0].variance_share == pytest.approx(1.0)
    assert pca.components[1].variance_share == pytest.approx(0.0, abs=1e-9)
    loadings = pca.components[0].loadings
    assert loadings[1] == pytest.approx(2.0 * loadings[0])
    assert loadings[2] == pytest.approx(0.0, abs=1e-9)


def test_principal_components_clamps_k_and_handles_degenerate_samples() -> None:
    rows = [{"a": float(i), "b": float(i % 3)} for i in range(6)]
    assert len(principal_components(rows, 5).components) == 2
    single = principal_components([{"a": 1.0, "b": 2.0}], 2)
    assert single.total_variance_explained == 0.0
    assert all(c.loadings == (0.0, 0.0) for c in single.components)
    flat = principal_components([{"a": 1.0}, {"a": 1.0}], 1)
    assert flat.components[0].variance_share == 0.0


def test_strength_ratio_floors() -> None:
    assert strength_ratio(10.0, 0.0) == pytest.approx(10.0)
    assert strength_ratio(0.0, 50.0) == pytest.approx(0.1)
    assert strength_ratio(60.0, 50.0, 1.2) == pytest.approx(1.44)
