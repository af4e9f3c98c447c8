#!/usr/bin/env python
"""Wigner rotation functions and 3j symbols.

Examples:
    >>> import numpy as np
    >>> bool(np.isclose(wignerd(1, 1, 0, np.pi / 2), -1 / np.sqrt(2)))
    True
    >>> bool(np.isclose(wigner3j(1, 1, 0, 0, 0, 0), -1 / np.sqrt(3)))
    True
    >>> wigner3j(1, 1, 1, 0, 0, 0)
    0.0
"""

from fractions import Fraction
from math import lgamma

import numpy as np
from sympy import Rational
from sympy.physics.wigner import wigner_3j


def _twice(x, name: str) -> int:
    """Return ``2x`` as an integer, checking that x is a multiple of 1/2."""
    x2 = 2 * Fraction(x).limit_denominator(1000)
    if x2.denominator != 1:
        raise ValueError(f"{name} must be an integer or half-integer, got {x}.")
    return int(x2)


def wignerd(J, M, K, beta, alpha=None, gamma=None):
    r"""Wigner rotation functions.

    Evaluates the reduced function :math:`d^J_{MK}(\beta)`, or the full
    function

    .. math::
        D^J_{MK}(\alpha,\beta,\gamma) = e^{-iM\alpha} d^J_{MK}(\beta) e^{-iK\gamma}

    when `alpha` and `gamma` are given.  The prefactors are computed
    with log-gamma functions, so large J are fine.

    Args:
        J (float): Rank, integer or half-integer.
        M (float): First projection, ``|M| <= J``.
        K (float): Second projection, ``|K| <= J``.
        beta (float | np.ndarray): Angle(s) in radians.
        alpha (float | np.ndarray): Optional first Euler angle.
        gamma (float | np.ndarray): Optional third Euler angle.

    Returns:
        np.ndarray: Real d values, or complex D values, broadcast over
        the angles.
    """
    j2, m2, k2 = _twice(J, "J"), _twice(M, "M"), _twice(K, "K")
    if j2 < 0:
        raise ValueError(f"J must be non-negative, got {J}.")
    if abs(m2) > j2 or abs(k2) > j2:
        raise ValueError(f"Need |M| <= J and |K| <= J, got J={J}, M={M}, K={K}.")
    if (j2 - m2) % 2 or (j2 - k2) % 2:
        raise ValueError(f"J-M and J-K must be integers, got J={J}, M={M}, K={K}.")

    jpm, jmm = (j2 + m2) // 2, (j2 - m2) // 2
    jpk, jmk = (j2 + k2) // 2, (j2 - k2) // 2
    mk = (m2 - k2) // 2

    beta = np.asarray(beta, dtype=float)
    cb = np.cos(beta / 2)
    sb = np.sin(beta / 2)
    lognorm = 0.5 * (lgamma(jpm + 1) + lgamma(jmm + 1) + lgamma(jpk + 1) + lgamma(jmk + 1))
    d = np.zeros_like(beta)
    for s in range(max(0, -mk), min(jpk, jmm) + 1):
        logc = (
            lognorm
            - lgamma(jpk - s + 1)
            - lgamma(s + 1)
            - lgamma(mk + s + 1)
            - lgamma(jmm - s + 1)
        )
        sign = -1.0 if (mk + s) % 2 else 1.0
        d = d + sign * np.exp(logc) * cb ** (j2 - mk - 2 * s) * sb ** (mk + 2 * s)

    if alpha is None and gamma is None:
        return d
    alpha = 0.0 if alpha is None else np.asarray(alpha, dtype=float)
    gamma = 0.0 if gamma is None else np.asarray(gamma, dtype=float)
    return np.exp(-1j * M * alpha) * d * np.exp(-1j * K * gamma)


def wigner3j(j1, j2, j3, m1, m2, m3) -> float:
    """Wigner 3j symbol.

    The symbol is evaluated exactly by :func:`sympy.physics.wigner.wigner_3j`
    on rational arguments and converted to float at the end, which keeps
    full precision for large quantum numbers.

    Args:
        j1, j2, j3 (float): Angular momenta, integer or half-integer.
        m1, m2, m3 (float): Projections.

    Returns:
        float: The 3j symbol; zero if any selection rule is violated.
    """
    J = [_twice(j, "j") for j in (j1, j2, j3)]
    Mq = [_twice(m, "m") for m in (m1, m2, m3)]

    if any(j < 0 for j in J):
        raise ValueError("Angular momenta must be non-negative.")
    if sum(Mq) != 0:
        return 0.0
    if any(abs(m) > j or (j + m) % 2 for j, m in zip(J, Mq)):
        return 0.0
    if sum(J) % 2:
        return 0.0
    a, b, c = J
    if c > a + b or c < abs(a - b):
        return 0.0

    value = wigner_3j(*(Rational(x, 2) for x in J + Mq))
    return float(value)
