#!/usr/bin/env python
"""
Spin operators and spin Hamiltonians in Hilbert space.

The product space of a list of spins is ordered like the Kronecker
product of the single-spin spaces, first spin slowest.  Each single
spin uses the basis ``m = s, s-1, ..., -s``.  All Hamiltonians are
returned in MHz.

Main functions:
    - `spin_matrices(spin)`: single-spin operators.
    - `sop(spins, idx, component)`: spin operator in the product space.
    - `stev(spins, k, q, idx)`: extended Stevens operator O_k^q.
    - `zfield(sys)`, `zeeman(sys, field)`, `hfine(sys)`: spin
      Hamiltonian terms of a `SpinSystem`.

Examples:
    >>> sop([0.5], 0, "z").tolist()
    [[0.5, 0.0], [0.0, -0.5]]
    >>> sop([0.5, 1.0], 1, "e").shape
    (6, 6)
"""

import logging
from fractions import Fraction
from functools import reduce
from math import comb, factorial, gcd, prod

import numpy as np
import scipy as sp

from .data import Isotope, SpinSystem, spin_to_multiplicity
from .shared import constants as C

logger = logging.getLogger(__name__)

_COMPONENTS = {
    "x": "x",
    "y": "y",
    "z": "z",
    "+": "p",
    "p": "p",
    "-": "m",
    "m": "m",
    "e": "u",
    "u": "u",
}


def spin_matrices(spin: float) -> dict:
    """Single-spin operators.

    Args:
        spin (float): Spin quantum number.

    Returns:
        dict:

            A dictionary containing 6 `np.array` matrices of shape
            `(2s+1, 2s+1)`:

            - the unit operator `result["u"]`,
            - raising operator `result["p"]`,
            - lowering operator `result["m"]`,
            - spin operator for x axis `result["x"]`,
            - spin operator for y axis `result["y"]`,
            - spin operator for z axis `result["z"]`.
    """
    mult = spin_to_multiplicity(spin)
    prjs = np.arange(mult - 1, -1, -1) - spin

    p_data = np.sqrt(spin * (spin + 1) - prjs * (prjs + 1))
    m_data = np.sqrt(spin * (spin + 1) - prjs * (prjs - 1))

    result = {}
    result["u"] = np.eye(mult)
    result["p"] = sp.sparse.spdiags(p_data, [1], mult, mult).toarray()
    result["m"] = sp.sparse.spdiags(m_data, [-1], mult, mult).toarray()
    result["x"] = 0.5 * (result["p"] + result["m"])
    result["y"] = -0.5 * 1j * (result["p"] - result["m"])
    result["z"] = np.diag(prjs)
    return result


def _embed(spins, idx: int, op, sparse: bool = False):
    """Kronecker product of `op` at position `idx` with identities."""
    mults = [spin_to_multiplicity(s) for s in spins]
    before_size = prod(mults[:idx])
    after_size = prod(mults[idx + 1 :])
    if sparse:
        spinop = sp.sparse.kron(sp.sparse.eye(before_size), sp.sparse.csr_matrix(op))
        return sp.sparse.kron(spinop, sp.sparse.eye(after_size)).tocsr()
    spinop = np.kron(np.eye(before_size), op)
    return np.kron(spinop, np.eye(after_size))


def sop(spins, idx: int, component: str, sparse: bool = False):
    """Spin operator in the product space of `spins`.

    Args:
        spins (list[float]): Spin quantum numbers.

        idx (int): Index of the spin the operator acts on.

        component (str): ``"x"``, ``"y"``, ``"z"``, ``"+"``, ``"-"``
            or ``"e"`` (identity).

        sparse (bool): Return a `scipy.sparse` CSR matrix.

    Returns:
        np.ndarray | scipy.sparse.csr_matrix: The operator.
    """
    spins = np.atleast_1d(spins)
    if not 0 <= idx < len(spins):
        raise ValueError(f"Spin index {idx} out of range for {len(spins)} spins.")
    if component not in _COMPONENTS:
        raise ValueError(
            f"Unknown spin operator component `{component}`. Use x, y, z, +, - or e."
        )
    sigma = spin_matrices(float(spins[idx]))[_COMPONENTS[component]]
    return _embed(spins, idx, sigma, sparse)


def _stevens_leading_coefficient(k: int, q: int) -> int:
    """Leading coefficient of the coprime integer polynomial of O_k^q."""
    coeffs = []
    for j in range(k // 2 + 1):
        p = k - 2 * j - q
        if p < 0:
            break
        coeffs.append(
            (-1) ** j
            * comb(k, j)
            * comb(2 * k - 2 * j, k)
            * factorial(k - 2 * j)
            // factorial(p)
        )
    return coeffs[0] // reduce(gcd, (abs(c) for c in coeffs))


def _stevens_single(spin: float, k: int, q: int) -> np.ndarray:
    """Stevens operator O_k^q of a single spin.

    The tensor operator T_k^|q| is generated from S+^k by iterated
    commutators with S-.  Its elements are rational multiples of the
    elements of S+^|q|, so the recursion runs on those ratios with
    exact fractions; only the final matrix is rounded to floats.
    """
    S = Fraction(spin).limit_denominator(2)
    n = int(2 * S) + 1
    dtype = complex if q < 0 else float
    if k > n - 1:
        return np.zeros((n, n), dtype=dtype)
    aq = abs(q)
    ss = S * (S + 1)
    ms = [S - i for i in range(n)]

    # ratios f(m) = <m+d|T|m> / <m+d|S+^d|m> for the current d
    f = {m: Fraction(1) for m in ms if m + k <= S}
    for d in range(k, aq, -1):
        f = {
            m: f.get(m, 0) * (ss - (m + d - 1) * (m + d))
            - f.get(m - 1, 0) * (ss - m * (m - 1))
            for m in ms
            if m + d - 1 <= S
        }

    values = [f[m] for m in sorted(f)]
    for _ in range(k - aq):
        values = [b - a for a, b in zip(values, values[1:])]
    lead = values[0] / factorial(k - aq)
    scale = lead / _stevens_leading_coefficient(k, aq)
    if aq > 0:
        scale *= 2

    O = np.zeros((n, n), dtype=dtype)
    for m, ratio in f.items():
        col = int(S - m)
        row = col - aq
        raising = np.sqrt(float(prod(ss - (m + i) * (m + i + 1) for i in range(aq))))
        value = float(ratio / scale) * raising
        if q == 0:
            O[col, col] = value
        elif q > 0:
            O[row, col] = value
            O[col, row] = value
        else:
            O[row, col] = -1j * value
            O[col, row] = 1j * value
    return O


def stev(spins, k: int, q: int, idx: int = 0, sparse: bool = False):
    """Extended Stevens operator O_k^q.

    Conventions, with polynomials a_kq(Sz) normalised to coprime
    integer coefficients:

    - q > 0: ``[a_kq, S+^q + S-^q]_+ / 4``
    - q < 0: ``[a_kq, S+^|q| - S-^|q|]_+ / 4i``
    - q = 0: ``a_k0``

    Args:
        spins (list[float]): Spin quantum numbers.
        k (int): Rank, 0..12.
        q (int): Component, -k..k.
        idx (int): Index of the spin the operator acts on.
        sparse (bool): Return a `scipy.sparse` CSR matrix.

    Returns:
        np.ndarray: The operator; zero if ``2s < k``.

    Examples:
        >>> np.real(stev([1.5], 2, 0)).diagonal().tolist()
        [3.0, -3.0, -3.0, 3.0]
    """
    if int(k) != k or not 0 <= k <= 12:
        raise ValueError(f"Stevens operator rank k must be 0..12, got {k}.")
    if int(q) != q or abs(q) > k:
        raise ValueError(f"Stevens operator component q must be -k..k, got {q}.")
    spins = np.atleast_1d(spins)
    if not 0 <= idx < len(spins):
        raise ValueError(f"Spin index {idx} out of range for {len(spins)} spins.")
    op = _stevens_single(float(spins[idx]), int(k), int(q))
    return _embed(spins, idx, op, sparse)


def zfield(sys: SpinSystem, electrons=None) -> np.ndarray:
    """Zero-field splitting Hamiltonian (MHz).

    Includes the S·D·S term of every selected electron with S >= 1,
    the cubic fourth-order terms `aF` and the extended Stevens terms
    of the first electron.  Stevens terms are skipped for an electron
    with non-zero D.

    Args:
        sys (SpinSystem): The spin system.
        electrons (list[int]): Electron indices; all electrons by
            default.

    Returns:
        np.ndarray: Dense Hermitian matrix over the full spin space.
    """
    if electrons is None:
        electrons = range(sys.n_electrons)
    electrons = list(np.atleast_1d(electrons))
    if any(e < 0 or e >= sys.n_electrons for e in electrons):
        raise ValueError(
            f"Electron indices {electrons} out of range for {sys.n_electrons} electrons."
        )
    spins = sys.spins
    H = sp.sparse.csr_matrix((sys.n_states, sys.n_states), dtype=complex)

    for idx in electrons:
        if spins[idx] < 1:
            continue

        D = sys.D_tensor(idx)
        if np.any(D):
            so = [sop(spins, idx, c, sparse=True) for c in "xyz"]
            for c1 in range(3):
                for c2 in range(3):
                    H = H + D[c1, c2] * (so[c1] @ so[c2])

        if idx != 0:
            continue

        if sys.aF is not None:
            if np.any(sys.D_frame[0]):
                raise ValueError("The `aF` terms cannot be used with a tilted D frame.")
            H = H + _cubic_terms(spins, sys.aF, sys.a_frame)

        if np.any(D):
            if any(np.any(Bk) for Bk in sys.stevens.values()):
                logger.debug("Stevens terms skipped for electron %d with non-zero D", idx)
            continue

        for k, Bk in sys.stevens.items():
            if not np.any(Bk):
                continue
            if Bk.size == 1:
                Bk = np.concatenate([np.zeros(k), Bk, np.zeros(k)])
            elif Bk.size == k + 1:
                Bk = np.concatenate([Bk, np.zeros(k)])
            if Bk.size != 2 * k + 1:
                raise ValueError(
                    f"Stevens coefficients B{k} have {Bk.size} instead of {2 * k + 1} elements."
                )
            for q in range(k, -k - 1, -1):
                if Bk[k - q] == 0:
                    continue
                H = H + Bk[k - q] * stev(spins, k, q, idx, sparse=True)

    H = (H + H.conj().T) / 2
    return H.toarray()


def _cubic_terms(spins, aF, a_frame: int):
    """Fourth-order cubic zero-field terms of the first electron."""
    a, F = aF
    S = spins[0]
    n = S * (S + 1)
    Sz = sop(spins, 0, "z", sparse=True)
    eye = sp.sparse.eye(Sz.shape[0])
    Sz2 = Sz @ Sz
    O40 = 35 * (Sz2 @ Sz2) - 30 * n * Sz2 + 25 * Sz2 - (6 * n - 3 * n**2) * eye
    H = sp.sparse.csr_matrix(Sz.shape, dtype=complex)
    if F != 0:
        H = H + (F / 180) * O40
    if a != 0:
        Sp = sop(spins, 0, "+", sparse=True)
        Sm = sop(spins, 0, "-", sparse=True)
        if a_frame == 3:
            Sp3Sm3 = Sp @ Sp @ Sp + Sm @ Sm @ Sm
            O43 = (Sz @ Sp3Sm3 + Sp3Sm3 @ Sz) / 2
            H = H - 2 / 3 * (a / 120) * (O40 + 10 * np.sqrt(2) * O43)
        elif a_frame == 4:
            O44 = (Sp @ Sp @ Sp @ Sp + Sm @ Sm @ Sm @ Sm) / 2
            H = H + (a / 120) * (O40 + 5 * O44)
        else:
            lines = [
                f"Unknown `a_frame` value {a_frame}.",
                "Use 3 for trigonal and 4 for tetragonal (collinear with D).",
            ]
            raise ValueError("\n".join(lines))
    return H


def zeeman(sys: SpinSystem, field) -> np.ndarray:
    """Electron and nuclear Zeeman Hamiltonian (MHz).

    Args:
        sys (SpinSystem): The spin system.
        field (array_like): Magnetic field vector in mT.

    Returns:
        np.ndarray: Dense Hermitian matrix.
    """
    field = np.asarray(field, dtype=float).ravel()
    if field.size != 3:
        raise ValueError(f"Field must be a 3-vector in mT, got {field.size} values.")
    spins = sys.spins
    H = np.zeros((sys.n_states, sys.n_states), dtype=complex)
    pre_e = C.mu_B / C.h * 1e-9  # MHz/mT
    for e in range(sys.n_electrons):
        gB = field @ sys.g_tensor(e)
        for c, comp in enumerate("xyz"):
            H += pre_e * gB[c] * sop(spins, e, comp)
    pre_n = C.mu_N / C.h * 1e-9
    for n, iso in enumerate(sys.isotopes):
        gn = Isotope(iso).gn
        idx = sys.n_electrons + n
        for c, comp in enumerate("xyz"):
            H -= pre_n * gn * field[c] * sop(spins, idx, comp)
    return H


def hfine(sys: SpinSystem) -> np.ndarray:
    """Hyperfine Hamiltonian (MHz).

    Args:
        sys (SpinSystem): The spin system; it must not contain
            isotope mixtures.

    Returns:
        np.ndarray: Dense Hermitian matrix.
    """
    spins = sys.spins
    H = np.zeros((sys.n_states, sys.n_states), dtype=complex)
    for n in range(sys.n_nuclei):
        idx = sys.n_electrons + n
        nuc = [sop(spins, idx, c) for c in "xyz"]
        for e in range(sys.n_electrons):
            A = sys.A_tensor(n, e)
            ele = [sop(spins, e, c) for c in "xyz"]
            for c1 in range(3):
                for c2 in range(3):
                    if A[c1, c2] != 0:
                        H += A[c1, c2] * (ele[c1] @ nuc[c2])
    return H
