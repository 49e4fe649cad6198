"""Representations of the quadratic data-fidelity term.

Every representation exposes the same operations: sufficient statistics of
the single-region problem, reduction onto a partition, gradient and value at
a piecewise-constant iterate, and the plain gradient/majorant used by the
proximal splitting backend on its own variables.
"""

from __future__ import annotations

import warnings

import cvxpy as cp
import numpy as np


def symmetrize_upper(M):
    """Copy the upper triangle of a square matrix onto its lower triangle."""
    return np.triu(M) + np.triu(M, 1).T


def premultiply_reduced(N, rV, iterations):
    """Whether a reduced problem with a direct N x rV matrix should be premultiplied.

    Without premultiplication, each of the ``iterations`` inner iterations
    costs two matrix-vector products, 2 N rV i operations overall; with it,
    N rV^2 for the reduced Gram matrix plus rV^2 i.
    """
    return rV < (2.0 * N * iterations) / (N + iterations)


class QuadraticForm:
    representation = None
    is_direct = False

    def __init__(self, Y=None):
        self.Y = None if Y is None else np.asarray(Y, dtype=float).reshape(-1)

    @property
    def size(self):
        """Number of variables."""
        raise NotImplementedError

    def _y(self):
        return np.zeros(self.size) if self.Y is None else self.Y

    def univertex_stats(self):
        """Return (<A1, Y>, ||A1||^2, reduced column or None)."""
        raise NotImplementedError

    def reduce(self, partition, premultiply=True):
        """Return the representation over the regions and the reduced direct
        matrix (only for direct main problems, else None)."""
        raise NotImplementedError

    def gradient(self, partition, rX, residual=None):
        """Gradient at the piecewise-constant iterate, one value per vertex."""
        raise NotImplementedError

    def objective(self, partition, rX, residual=None):
        raise NotImplementedError

    def apply_gradient(self, x):
        """Gradient at an arbitrary point of its own variables."""
        raise NotImplementedError

    def diagonal_majorant(self):
        """Diagonal d such that diag(d) - A^t A is positive semidefinite."""
        raise NotImplementedError

    def value(self, x):
        """Value at an arbitrary point, up to a constant for premultiplied forms."""
        raise NotImplementedError

    def cvxpy_expression(self, x):
        raise NotImplementedError


class NoQuadratic(QuadraticForm):
    representation = "none"

    def __init__(self, num_vertices):
        super().__init__(None)
        self.V = num_vertices

    @property
    def size(self):
        return self.V

    def univertex_stats(self):
        return 0.0, 0.0, None

    def reduce(self, partition, premultiply=True):
        return NoQuadratic(partition.rV), None

    def gradient(self, partition, rX, residual=None):
        return np.zeros(partition.V)

    def objective(self, partition, rX, residual=None):
        return 0.0

    def apply_gradient(self, x):
        return np.zeros_like(x)

    def diagonal_majorant(self):
        return np.zeros(self.V)

    def value(self, x):
        return 0.0

    def cvxpy_expression(self, x):
        return cp.Constant(0.0)


class DiagonalQuadratic(QuadraticForm):
    """A^t A = diag(A), observation premultiplied as A^t Y."""

    representation = "diagonal"

    def __init__(self, Y, A):
        super().__init__(Y)
        self.A = np.asarray(A, dtype=float).reshape(-1)

    @property
    def size(self):
        return self.A.size

    def univertex_stats(self):
        return float(self._y().sum()), float(self.A.sum()), None

    def reduce(self, partition, premultiply=True):
        rY = None if self.Y is None else partition.region_sums(self.Y)
        return DiagonalQuadratic(rY, partition.region_sums(self.A)), None

    def gradient(self, partition, rX, residual=None):
        return self.A * partition.expand(rX) - self._y()

    def objective(self, partition, rX, residual=None):
        rAA = partition.region_sums(self.A)
        rY = partition.region_sums(self._y())
        return float(np.sum(rX * (0.5 * rAA * rX - rY)))

    def apply_gradient(self, x):
        return self.A * x - self._y()

    def diagonal_majorant(self):
        return np.abs(self.A)

    def value(self, x):
        return float(0.5 * np.sum(self.A * x**2) - self._y() @ x)

    def cvxpy_expression(self, x):
        return 0.5 * cp.sum(cp.multiply(self.A, cp.square(x))) - self._y() @ x


class IdentityQuadratic(DiagonalQuadratic):
    """A^t A = a Id, observation premultiplied as A^t Y."""

    representation = "identity"

    def __init__(self, Y, a, num_vertices):
        self.a = float(a)
        super().__init__(Y, np.full(num_vertices, self.a))

    def univertex_stats(self):
        return float(self._y().sum()), self.a * self.size, None

    def reduce(self, partition, premultiply=True):
        rY = None if self.Y is None else partition.region_sums(self.Y)
        return DiagonalQuadratic(rY, self.a * partition.sizes()), None


class GramQuadratic(QuadraticForm):
    """Full symmetric A^t A (V x V), observation premultiplied as A^t Y."""

    representation = "gram"

    def __init__(self, Y, AA, check_symmetry=True):
        super().__init__(Y)
        self.A = np.asarray(AA, dtype=float)
        if self.A.ndim != 2 or self.A.shape[0] != self.A.shape[1]:
            raise ValueError(f"Gram matrix must be square, got shape {self.A.shape}.")
        if check_symmetry and not np.allclose(self.A, self.A.T):
            warnings.warn("Gram matrix is not symmetric; using its upper triangle.")
            self.A = symmetrize_upper(self.A)

    @property
    def size(self):
        return self.A.shape[0]

    def univertex_stats(self):
        return float(self._y().sum()), float(self.A.sum()), None

    def _region_columns(self, partition):
        # A^t A P, by symmetry summed along rows
        return np.asarray(partition.indicator().T @ self.A).T

    def reduce(self, partition, premultiply=True):
        P = partition.indicator()
        rAA = symmetrize_upper(np.asarray(P.T @ self._region_columns(partition)))
        rY = None if self.Y is None else partition.region_sums(self.Y)
        return GramQuadratic(rY, rAA, check_symmetry=False), None

    def gradient(self, partition, rX, residual=None):
        nonzero = np.flatnonzero(rX)
        grad = -self._y().copy()
        if nonzero.size:
            columns = np.asarray(partition.indicator()[:, nonzero].T @ self.A).T
            grad += columns @ rX[nonzero]
        return grad

    def objective(self, partition, rX, residual=None):
        P = partition.indicator()
        rAA = np.asarray(P.T @ self._region_columns(partition))
        rY = partition.region_sums(self._y())
        return float(0.5 * rX @ rAA @ rX - rX @ rY)

    def apply_gradient(self, x):
        return self.A @ x - self._y()

    def diagonal_majorant(self):
        return np.abs(self.A).sum(axis=1)

    def value(self, x):
        return float(0.5 * x @ self.A @ x - self._y() @ x)

    def cvxpy_expression(self, x):
        return 0.5 * cp.quad_form(x, cp.psd_wrap(self.A)) - self._y() @ x


class DirectQuadratic(QuadraticForm):
    """Design matrix A (N x V) and raw observation Y (length N)."""

    representation = "direct"
    is_direct = True

    def __init__(self, Y, A):
        self.A = np.asarray(A, dtype=float)
        if self.A.ndim != 2:
            raise ValueError(f"Design matrix must be 2-D, got shape {self.A.shape}.")
        super().__init__(np.zeros(self.A.shape[0]) if Y is None else Y)
        if self.Y.shape != (self.A.shape[0],):
            raise ValueError(
                f"Expected observation with shape ({self.A.shape[0]},), got {self.Y.shape}."
            )

    @property
    def N(self):
        return self.A.shape[0]

    @property
    def size(self):
        return self.A.shape[1]

    def univertex_stats(self):
        column = self.A.sum(axis=1)
        return float(column @ self.Y), float(column @ column), column

    def reduce(self, partition, premultiply=True):
        rA = np.asarray(partition.indicator().T @ self.A.T).T
        if premultiply:
            rAA = symmetrize_upper(rA.T @ rA)
            return GramQuadratic(rA.T @ self.Y, rAA, check_symmetry=False), rA
        return DirectQuadratic(self.Y, rA), rA

    def residual(self, x):
        return self.Y - self.A @ x

    def gradient(self, partition, rX, residual=None):
        return -(self.A.T @ residual)

    def objective(self, partition, rX, residual=None):
        return float(0.5 * residual @ residual)

    def apply_gradient(self, x):
        return self.A.T @ (self.A @ x - self.Y)

    def diagonal_majorant(self):
        absA = np.abs(self.A)
        return absA.T @ absA.sum(axis=1)

    def value(self, x):
        r = self.residual(x)
        return float(0.5 * r @ r)

    def cvxpy_expression(self, x):
        return 0.5 * cp.sum_squares(self.A @ x - self.Y)


REPRESENTATIONS = ("none", "identity", "diagonal", "gram", "direct")


def quadratic_form(Y=None, A=None, a=1.0, representation=None, num_vertices=None):
    """
    Build the representation of the quadratic term.

    Parameters:
        Y: observation; raw (length N) for "direct", premultiplied A^t Y
            (length V) otherwise
        A: None, a scalar (identity scaled by it), a length-V diagonal of
            A^t A, a V x V Gram matrix or an N x V design matrix
        a: scale of the identity when A is None; 0 means no quadratic term
        representation: one of REPRESENTATIONS; inferred when None, square
            matrices being treated as design matrices unless "gram" is given
        num_vertices: number of vertices V, for validation
    """
    if A is not None and np.ndim(A) == 0:
        a, A = float(A), None
    if representation is None:
        if A is None:
            representation = "none" if a == 0 else "identity"
        elif np.ndim(A) == 1:
            representation = "diagonal"
        else:
            representation = "direct"
    if representation not in REPRESENTATIONS:
        raise ValueError(
            f"Unknown quadratic representation '{representation}', "
            f"expected one of {REPRESENTATIONS}."
        )

    if representation in ("none", "identity"):
        if num_vertices is None:
            if Y is None:
                raise ValueError("Number of vertices needed without A nor Y.")
            num_vertices = np.size(Y)
        if representation == "none":
            return NoQuadratic(num_vertices)
        form = IdentityQuadratic(Y, a, num_vertices)
    elif A is None:
        raise ValueError(f"Representation '{representation}' needs a matrix A.")
    elif representation == "diagonal":
        form = DiagonalQuadratic(Y, A)
    elif representation == "gram":
        form = GramQuadratic(Y, A)
    else:
        form = DirectQuadratic(Y, A)

    if num_vertices is not None and form.size != num_vertices:
        raise ValueError(
            f"Quadratic term has {form.size} variables, expected {num_vertices}."
        )
    if not form.is_direct and form.Y is not None and form.Y.shape != (form.size,):
        raise ValueError(
            f"Expected premultiplied observation with shape ({form.size},), "
            f"got {form.Y.shape}."
        )
    return form
