"""Matrix and descriptive statistics primitives used by team profiling."""

from __future__ import annotations

import dataclasses
import logging
import math
from typing import List, Mapping, Sequence, Tuple

logger = logging.getLogger(__name__)

Matrix = List[List[float]]

JACOBI_TOLERANCE = 1e-10
JACOBI_MAX_SWEEPS = 50


@dataclasses.dataclass(frozen=True, slots=True)
class PrincipalComponent:
    component: int
    variance_share: float
    loadings: Tuple[float, ...]


@dataclasses.dataclass(frozen=True, slots=True)
class PCAResult:
    components: Tuple[PrincipalComponent, ...]
    total_variance_explained: float
    variables: Tuple[str, ...]


@dataclasses.dataclass(frozen=True, slots=True)
class SVDResult:
    """Singular value decomposition ``A = U · diag(S) · Vᵀ``."""

    u: Tuple[Tuple[float, ...], ...]
    singular_values: Tuple[float, ...]
    v: Tuple[Tuple[float, ...], ...]
    sweeps: int
    converged: bool

    @property
    def s(self) -> Matrix:
        size = len(self.singular_values)
        return [
            [self.singular_values[i] if i == j else 0.0 for j in range(size)]
            for i in range(size)
        ]


def identity_matrix(n: int) -> Matrix:
    return [[1.0 if i == j else 0.0 for j in range(n)] for i in range(n)]


def covariance(rows: Sequence[Mapping[str, float]]) -> Matrix:
    """Sample covariance matrix (``n - 1`` denominator) of named numeric rows.

    Variables are taken from the first row in insertion order.  Fewer than
    two rows carry no spread information and yield ``[[0.0]]``.
    """

    if len(rows) < 2:
        return [[0.0]]
    variables = list(rows[0].keys())
    n = len(rows)
    means = {name: sum(float(row[name]) for row in rows) / n for name in variables}
    matrix: Matrix = []
    for first in variables:
        line: List[float] = []
        for second in variables:
            total = 0.0
            for row in rows:
                total += (float(row[first]) - means[first]) * (
                    float(row[second]) - means[second]
                )
            line.append(total / (n - 1))
        matrix.append(line)
    return matrix


def _rotation(a_pp: float, a_qq: float, a_pq: float) -> Tuple[float, float]:
    tau = (a_qq - a_pp) / (2.0 * a_pq)
    sign = 1.0 if tau >= 0.0 else -1.0
    t = sign / (abs(tau) + math.sqrt(1.0 + tau * tau))
    c = 1.0 / math.sqrt(1.0 + t * t)
    return c, t * c


def _jacobi_rotate(working: Matrix, v: Matrix, p: int, q: int) -> None:
    """Apply ``Jᵀ · working · J`` and ``v · J`` in place for pivot ``(p, q)``."""

    if p == q or working[p][q] == 0.0:
        return
    c, s = _rotation(working[p][p], working[q][q], working[p][q])
    for row in working:
        rp, rq = row[p], row[q]
        row[p] = c * rp - s * rq
        row[q] = s * rp + c * rq
    row_p, row_q = working[p], working[q]
    for j in range(len(row_p)):
        pj, qj = row_p[j], row_q[j]
        row_p[j] = c * pj - s * qj
        row_q[j] = s * pj + c * qj
    # the rotation annihilates the pivot exactly; drop the rounding residue
    working[p][q] = working[q][p] = 0.0
    for row in v:
        vp, vq = row[p], row[q]
        row[p] = c * vp - s * vq
        row[q] = s * vp + c * vq


def jacobi_eigen(
    matrix: Sequence[Sequence[float]],
    tolerance: float = JACOBI_TOLERANCE,
    max_sweeps: int = JACOBI_MAX_SWEEPS,
) -> Tuple[List[float], Matrix, int, bool]:
    """Cyclic Jacobi eigen-decomposition of a symmetric matrix.

    Returns ``(eigenvalues, eigenvectors, sweeps, converged)`` where the
    eigenvectors are the columns of the accumulated rotation matrix.  When the
    sweep budget runs out the current approximation is returned.
    """

    working = [[float(value) for value in row] for row in matrix]
    n = len(working)
    v = identity_matrix(n)
    sweeps = 0
    converged = n < 2
    while not converged and sweeps < max_sweeps:
        sweeps += 1
        for p in range(n - 1):
            for q in range(p + 1, n):
                if abs(working[p][q]) > tolerance:
                    _jacobi_rotate(working, v, p, q)
        largest = max(
            (abs(working[i][j]) for i in range(n) for j in range(n) if i != j),
            default=0.0,
        )
        converged = largest < tolerance
    return [working[i][i] for i in range(n)], v, sweeps, converged


def principal_components(rows: Sequence[Mapping[str, float]], k: int) -> PCAResult:
    """Principal components of ``rows`` ordered by decreasing variance share.

    Eigen-decomposes the sample covariance matrix.  ``k`` is clamped to the
    number of variables; degenerate samples (fewer than two rows or no
    variance) produce zero-share components with zero loadings.
    """

    variables = tuple(rows[0].keys()) if rows else ()
    k = max(0, min(k, len(variables))) if variables else max(0, k)
    width = len(variables)
    if len(rows) < 2:
        return _empty_pca(k, width, variables)
    eigenvalues, vectors, _sweeps, converged = jacobi_eigen(covariance(rows))
    if not converged:
        logger.warning("PCA eigen-decomposition did not converge; using approximation")
    total = sum(max(0.0, value) for value in eigenvalues)
    if total <= 0.0:
        return _empty_pca(k, width, variables)
    order = sorted(range(width), key=lambda idx: eigenvalues[idx], reverse=True)
    components = []
    for rank, idx in enumerate(order[:k], start=1):
        loadings = [vectors[row][idx] for row in range(width)]
        pivot = max(range(width), key=lambda i: abs(loadings[i]))
        if loadings[pivot] < 0.0:
            loadings = [-value for value in loadings]
        components.append(
            PrincipalComponent(
                component=rank,
                variance_share=max(0.0, eigenvalues[idx]) / total,
                loadings=tuple(loadings),
            )
        )
    return PCAResult(
        components=tuple(components),
        total_variance_explained=sum(c.variance_share for c in components),
        variables=variables,
    )


def _empty_pca(k: int, width: int, variables: Tuple[str, ...]) -> PCAResult:
    components = tuple(
        PrincipalComponent(component=i + 1, variance_share=0.0, loadings=(0.0,) * width)
        for i in range(k)
    )
    return PCAResult(components=components, total_variance_explained=0.0, variables=variables)


def singular_value_decomposition(
    matrix: Sequence[Sequence[float]],
    tolerance: float = JACOBI_TOLERANCE,
    max_sweeps: int = JACOBI_MAX_SWEEPS,
) -> SVDResult:
    """Jacobi singular value decomposition of an ``m × n`` matrix.

    Two-sided Jacobi rotations diagonalise the working matrix ``AᵀA`` while
    accumulating the right singular vectors in ``V``; singular values are the
    square roots of the resulting diagonal and ``U = A·V·S⁻¹``.  Columns of
    ``U`` belonging to zero singular values are left as zero vectors.
    """

    a = [[float(value) for value in row] for row in matrix]
    if not a or not a[0]:
        return SVDResult(u=(), singular_values=(), v=(), sweeps=0, converged=True)
    m, n = len(a), len(a[0])
    gram = [
        [sum(a[r][i] * a[r][j] for r in range(m)) for j in range(n)] for i in range(n)
    ]
    eigenvalues, v, sweeps, converged = jacobi_eigen(gram, tolerance, max_sweeps)
    if not converged:
        logger.warning("Jacobi SVD stopped after %d sweeps without converging", sweeps)
    order = sorted(range(n), key=lambda idx: eigenvalues[idx], reverse=True)
    singular = [math.sqrt(max(0.0, eigenvalues[idx])) for idx in order]
    v_sorted = [[v[row][idx] for idx in order] for row in range(n)]
    u: Matrix = [[0.0] * n for _ in range(m)]
    for col, sigma in enumerate(singular):
        if sigma <= tolerance:
            continue
        for row in range(m):
            u[row][col] = sum(a[row][k] * v_sorted[k][col] for k in range(n)) / sigma
    return SVDResult(
        u=tuple(tuple(row) for row in u),
        singular_values=tuple(singular),
        v=tuple(tuple(row) for row in v_sorted),
        sweeps=sweeps,
        converged=converged,
    )


def strength_ratio(home_value: float, away_value: float, home_advantage: float = 1.0) -> float:
    """Home/away strength ratio floored at 0.1 to keep downstream rates positive."""

    return max(0.1, home_value * home_advantage / max(away_value, 1.0))


__all__ = [
    "JACOBI_MAX_SWEEPS",
    "JACOBI_TOLERANCE",
    "Matrix",
    "PCAResult",
    "PrincipalComponent",
    "SVDResult",
    "covariance",
    "identity_matrix",
    "jacobi_eigen",
    "principal_components",
    "singular_value_decomposition",
    "strength_ratio",
]
