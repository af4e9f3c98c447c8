#!/usr/bin/env python
"""Orientational basis and starting vector for slow-motion EPR.

The slow-motion (stochastic Liouville) lineshape is computed in the
direct product of an orientational basis of Wigner functions
``|L M K>`` and the spin basis.  The starting vector is the
equilibrium orientational distribution, given by an ordering
potential, times the detection spin operator.

Examples:
    >>> basis = lmk_basis(2)
    >>> len(basis)
    26
    >>> vec, counts = startvec(basis, Potential([0], [2], [0], [0]), [[0, 1], [0, 0]])
    >>> vec.shape, counts.tolist()
    ((104, 1), [0, 0, 0])
"""

import logging
from typing import Optional

import numpy as np
import scipy as sp

from .wigner import wignerd

logger = logging.getLogger(__name__)


class OrientationalBasis:
    """Index arrays of an orientational basis.

    Args:
        L, M, K (array_like): Quantum numbers of each basis function.
        jK (array_like): Symmetrisation index (+1 or -1) of each basis
            function, or None for the plain ``|L M K>`` basis.
    """

    def __init__(self, L, M, K, jK=None):
        """Basis constructor."""
        self.L = np.atleast_1d(np.asarray(L, dtype=int))
        self.M = np.atleast_1d(np.asarray(M, dtype=int))
        self.K = np.atleast_1d(np.asarray(K, dtype=int))
        self.jK = None if jK is None else np.atleast_1d(np.asarray(jK, dtype=int))
        sizes = {len(self.L), len(self.M), len(self.K)}
        if self.jK is not None:
            sizes.add(len(self.jK))
        if len(sizes) != 1:
            raise ValueError("L, M, K (and jK) must have the same length.")
        if np.any(self.L < 0) or np.any(np.abs(self.M) > self.L) or np.any(np.abs(self.K) > self.L):
            raise ValueError("Basis functions need L >= 0, |M| <= L and |K| <= L.")
        if self.jK is not None and not np.all(np.isin(self.jK, (-1, 1))):
            raise ValueError("jK values must be +1 or -1.")

    def __len__(self) -> int:
        return len(self.L)

    def __repr__(self) -> str:
        kind = "jK-symmetrised" if self.has_jK else "LMK"
        return f"OrientationalBasis({kind}, {len(self)} functions, Lmax={self.L.max()})"

    @property
    def has_jK(self) -> bool:
        """True for the symmetrised basis."""
        return self.jK is not None and bool(np.any(self.jK))


def lmk_basis(
    even_Lmax: int,
    odd_Lmax: int = 0,
    Kmax: Optional[int] = None,
    Mmax: Optional[int] = None,
    jKmin: Optional[int] = None,
    deltaK: int = 1,
) -> OrientationalBasis:
    """Truncated orientational basis.

    Args:
        even_Lmax (int): Largest even L.
        odd_Lmax (int): Largest odd L.
        Kmax (int): Largest |K|; no limit by default.
        Mmax (int): Largest |M|; no limit by default.
        jKmin (int): None for the ``|L M K>`` basis; -1 or +1 for the
            symmetrised basis, keeping only functions with
            ``jK >= jKmin``.
        deltaK (int): Step of K; 2 keeps even K only.

    Returns:
        OrientationalBasis: The basis, ordered by L, then M, then K.

    Examples:
        >>> basis = lmk_basis(2, jKmin=1, deltaK=2)
        >>> basis.L.tolist(), basis.K.tolist()
        ([0, 2, 2, 2, 2, 2, 2, 2, 2, 2, 2], [0, 0, 2, 0, 2, 0, 2, 0, 2, 0, 2])
    """
    Lmax = max(even_Lmax, odd_Lmax)
    Kmax = Lmax if Kmax is None else Kmax
    Mmax = Lmax if Mmax is None else Mmax
    L_, M_, K_, jK_ = [], [], [], []
    for L in range(Lmax + 1):
        if L % 2 == 0 and L > even_Lmax:
            continue
        if L % 2 == 1 and L > odd_Lmax:
            continue
        mmax = min(L, Mmax)
        kmax = min(L, Kmax)
        for M in range(-mmax, mmax + 1):
            if jKmin is None:
                for K in range(-kmax, kmax + 1):
                    if K % deltaK:
                        continue
                    L_.append(L)
                    M_.append(M)
                    K_.append(K)
            else:
                for K in range(0, kmax + 1, deltaK):
                    for jK in (-1, 1):
                        if K == 0 and jK != (-1) ** L:
                            continue
                        if jK < jKmin:
                            continue
                        L_.append(L)
                        M_.append(M)
                        K_.append(K)
                        jK_.append(jK)
    return OrientationalBasis(L_, M_, K_, jK_ if jKmin is not None else None)


class Potential:
    """Orientational potential coefficients.

    ``U = -Σ λ_p D^{L_p}_{M_p K_p}`` made real, see `startvec`.

    Args:
        lambda_ (array_like): Coefficients, may be complex.
        L, M, K (array_like): Quantum numbers of each term.
    """

    def __init__(self, lambda_, L, M, K):
        """Potential constructor."""
        self.lambda_ = np.atleast_1d(np.asarray(lambda_, dtype=complex))
        self.L = np.atleast_1d(np.asarray(L, dtype=int))
        self.M = np.atleast_1d(np.asarray(M, dtype=int))
        self.K = np.atleast_1d(np.asarray(K, dtype=int))
        if not len(self.lambda_) == len(self.L) == len(self.M) == len(self.K):
            raise ValueError("Potential lambda, L, M and K must have the same length.")

    def __call__(self, alpha, beta, gamma) -> float:
        """Potential energy (units of kT) at an orientation."""
        u = 0.0
        for lam, L, M, K in zip(self.lambda_, self.L, self.M, self.K):
            if lam == 0:
                continue
            if M == 0 and K == 0:
                u -= wignerd(L, 0, 0, beta) * lam.real
            else:
                u -= 2 * np.real(wignerd(L, M, K, beta, alpha, gamma) * lam)
        return u

    def nonzero(self) -> "Potential":
        """The potential without zero terms."""
        keep = self.lambda_ != 0
        return Potential(self.lambda_[keep], self.L[keep], self.M[keep], self.K[keep])


def startvec(
    basis: OrientationalBasis,
    potential: Potential,
    sop_h,
    use_selection_rules: bool = True,
    tolerances=(1e-10, 1e-6, 1e-6),
):
    """Starting vector of a slow-motion simulation.

    Args:
        basis (OrientationalBasis): Orientational basis.
        potential (Potential): Ordering potential.
        sop_h (array_like): Detection spin operator in Hilbert space
            (e.g. S+ or Sx); stacked column by column.
        use_selection_rules (bool): Skip basis functions whose
            integrals vanish by symmetry and use lower-dimensional
            integrals where possible.
        tolerances (tuple[float, float, float]): Threshold below which
            an integral counts as zero, and the absolute and relative
            tolerances of the quadrature.

    Returns:
        tuple[scipy.sparse.csc_matrix, np.ndarray]: The normalised
        starting vector of length ``len(basis) * sop_h.size`` as a
        column, and the numbers of 1D, 2D and 3D integrals evaluated.
    """
    threshold, abs_tol, rel_tol = tolerances
    n_integrals = np.zeros(3, dtype=int)
    spin_vector = np.asarray(sop_h).ravel(order="F")
    n_spin = spin_vector.size
    n_ori = len(basis)

    if not np.any(potential.lambda_):
        idx0 = np.flatnonzero((basis.L == 0) & (basis.M == 0) & (basis.K == 0))
        if len(idx0) != 1:
            raise ValueError(
                "Exactly one orientational basis function with L=M=K=0 is allowed."
            )
        vector = np.zeros(n_ori * n_spin, dtype=np.result_type(spin_vector, float))
        vector[idx0[0] * n_spin : (idx0[0] + 1) * n_spin] = spin_vector
        vector = vector / np.linalg.norm(vector)
        return sp.sparse.csc_matrix(vector.reshape(-1, 1)), n_integrals

    U = potential.nonzero()
    zero_Mp = np.all(U.M == 0)
    zero_Kp = np.all(U.K == 0)
    even_Lp = np.all(U.L % 2 == 0)
    even_Mp = np.all(U.M % 2 == 0)
    even_Kp = np.all(U.K % 2 == 0)
    jK_basis = basis.has_jK

    ori_vector = np.zeros(n_ori, dtype=complex)
    for b in range(n_ori):
        L, M, K = int(basis.L[b]), int(basis.M[b]), int(basis.K[b])

        if use_selection_rules and zero_Mp:
            if M != 0:
                continue
            if even_Lp and L % 2:
                continue
            if even_Kp and K % 2:
                continue
            if jK_basis and basis.jK[b] != 1:
                continue
            if zero_Kp:
                if K != 0:
                    continue
                value, _ = sp.integrate.quad(
                    lambda beta: wignerd(L, 0, 0, beta) * np.exp(-U(0, beta, 0) / 2) * np.sin(beta),
                    0,
                    np.pi,
                    epsabs=abs_tol,
                    epsrel=rel_tol,
                )
                integral = (2 * np.pi) ** 2 * value
                n_integrals[0] += 1
            else:
                value, _ = sp.integrate.dblquad(
                    lambda beta, gamma: np.cos(K * gamma)
                    * wignerd(L, 0, K, beta)
                    * np.exp(-U(0, beta, gamma) / 2)
                    * np.sin(beta),
                    0,
                    2 * np.pi,
                    0,
                    np.pi,
                    epsabs=abs_tol,
                    epsrel=rel_tol,
                )
                integral = 2 * np.pi * value
                n_integrals[1] += 1
        elif use_selection_rules and zero_Kp:
            if K != 0:
                continue
            if even_Lp and L % 2:
                continue
            if even_Mp and M % 2:
                continue
            value, _ = sp.integrate.dblquad(
                lambda beta, alpha: np.cos(M * alpha)
                * wignerd(L, M, 0, beta)
                * np.exp(-U(alpha, beta, 0) / 2)
                * np.sin(beta),
                0,
                2 * np.pi,
                0,
                np.pi,
                epsabs=abs_tol,
                epsrel=rel_tol,
            )
            integral = 2 * np.pi * value
            n_integrals[1] += 1
        else:
            integral = _integrate_3d(L, M, K, U, abs_tol, rel_tol)
            n_integrals[2] += 1

        if abs(integral) < threshold:
            logger.debug("integral for L=%d M=%d K=%d below threshold", L, M, K)
            continue

        ori_vector[b] = np.sqrt((2 * L + 1) / (8 * np.pi**2)) * integral
        if jK_basis:
            ori_vector[b] *= np.sqrt(2 / (1 + (K == 0)))

    logger.debug("startvec integrals (1D, 2D, 3D): %s", n_integrals.tolist())
    vector = np.real(np.kron(ori_vector, spin_vector))
    norm = np.linalg.norm(vector)
    if norm == 0:
        raise ValueError("Starting vector is zero. Check the basis and the potential.")
    return sp.sparse.csc_matrix((vector / norm).reshape(-1, 1)), n_integrals


def _integrate_3d(L, M, K, U, abs_tol, rel_tol) -> complex:
    """Integral of conj(D^L_MK) exp(-U/2) sin(beta) over all orientations."""

    def integrand(gamma, beta, alpha, part):
        value = np.conj(wignerd(L, M, K, beta, alpha, gamma))
        value = value * np.exp(-U(alpha, beta, gamma) / 2) * np.sin(beta)
        return part(value)

    re, _ = sp.integrate.tplquad(
        integrand, 0, 2 * np.pi, 0, np.pi, 0, 2 * np.pi,
        args=(np.real,), epsabs=abs_tol, epsrel=rel_tol,
    )
    im, _ = sp.integrate.tplquad(
        integrand, 0, 2 * np.pi, 0, np.pi, 0, 2 * np.pi,
        args=(np.imag,), epsabs=abs_tol, epsrel=rel_tol,
    )
    return re + 1j * im
