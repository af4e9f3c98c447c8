#!/usr/bin/env python
"""Resonance fields of EPR transitions from perturbation theory.

Resonance fields, intensities and widths of all allowed transitions
are computed for a single electron spin coupled to any number of
nuclei, to second order in the hyperfine and zero-field interactions
(Iwasaki, J. Magn. Reson. 16, 417 (1974)).  The electron Zeeman
interaction is treated exactly, including an anisotropic g tensor.

Examples:
    Resonance field of a free electron at 9.5 GHz:

    >>> from spinres.data import SpinSystem
    >>> res = resfields_perturb(SpinSystem(g=2.0), Experiment(mw_freq=9.5, orientations=[0, 0]))
    >>> res.B.shape
    (1, 1)
"""

import itertools
import logging
from typing import NamedTuple, Optional

import numpy as np

from .data import SpinSystem
from .rotations import erot
from .shared import constants as C
from .utils import as_magnitude

logger = logging.getLogger(__name__)


class Experiment:
    """Experimental parameters of a field-swept EPR experiment.

    Args:
        mw_freq (float | pint.Quantity): Microwave frequency (GHz).
        orientations (array_like): Field orientations, ``(nOri, 2)``
            as ``[phi, theta]`` (integration over chi) or ``(nOri, 3)``
            as ``[phi, theta, chi]``, in radians.
        mode (str): Detection mode, only ``"perpendicular"``.
        temperature (float | pint.Quantity): Temperature (K) for
            thermal polarisation, or None for equal populations.
        crystal_symmetry: Space group; not supported.
        field_range (tuple[float, float]): Field range (mT) for direct
            accumulation.
        n_points (int): Number of field points for direct
            accumulation.
        accum_weights (array_like): One weight per orientation for
            direct accumulation.
    """

    def __init__(
        self,
        mw_freq=None,
        orientations=None,
        mode: str = "perpendicular",
        temperature=None,
        crystal_symmetry=None,
        field_range=None,
        n_points: Optional[int] = None,
        accum_weights=None,
    ):
        """Experiment constructor."""
        self.mw_freq = None if mw_freq is None else as_magnitude(mw_freq, "GHz")
        self.orientations = orientations
        self.mode = mode
        self.temperature = (
            None if temperature is None else as_magnitude(temperature, "K")
        )
        self.crystal_symmetry = crystal_symmetry
        self.field_range = (
            None if field_range is None else as_magnitude(field_range, "mT")
        )
        self.n_points = n_points
        self.accum_weights = accum_weights

    def __repr__(self) -> str:
        lines = [
            f"Microwave frequency: {self.mw_freq} GHz",
            f"Orientations: {np.shape(self.orientations)}",
            f"Mode: {self.mode}",
        ]
        if self.temperature is not None:
            lines.append(f"Temperature: {self.temperature} K")
        return "\n".join(lines)


class PerturbationOptions:
    """Options of `resfields_perturb`.

    Args:
        perturb_order (int): 1 or 2.
        direct_accumulation (bool): Accumulate a stick spectrum
            instead of returning resonance fields.
    """

    def __init__(self, perturb_order: int = 2, direct_accumulation: bool = False):
        self.perturb_order = perturb_order
        self.direct_accumulation = direct_accumulation


class ResonanceFields(NamedTuple):
    """Results of `resfields_perturb`."""

    B: Optional[np.ndarray]
    """Resonance fields (mT), ``(nTransitions, nOrientations)``."""
    intensities: Optional[np.ndarray]
    """Transition intensities, same shape as `B`."""
    widths: Optional[np.ndarray]
    """Line widths (mT), same shape as `B`, or None."""
    transitions: Optional[np.ndarray]
    """Level index pairs, ``(nTransitions, 2)``."""
    spectrum: object
    """Stick spectrum for direct accumulation, 0 otherwise."""


def orientation_array(orientations):
    """Orientations as an ``(nOri, 3)`` array and the chi-integration flag.

    Args:
        orientations (array_like): ``(nOri, 2|3)`` angles, or the
            transposed layout when unambiguous.

    Returns:
        tuple[np.ndarray, bool]: Angles ``[phi, theta, chi]`` per row,
        and whether chi is integrated over (two angles given).
    """
    ori = np.atleast_2d(np.asarray(orientations, dtype=float))
    n1, n2 = ori.shape
    if n1 in (2, 3) and n2 not in (2, 3):
        ori = ori.T
    if ori.shape[1] not in (2, 3):
        raise ValueError(
            f"Orientations array has {ori.shape[1]} columns instead of 2 or 3."
        )
    integrate_over_chi = ori.shape[1] == 2
    if integrate_over_chi:
        ori = np.hstack([ori, np.zeros((ori.shape[0], 1))])
    return ori, integrate_over_chi


def _check_system(sys: SpinSystem):
    if sys.n_electrons != 1:
        raise ValueError(
            "Perturbation theory available only for systems with 1 electron. "
            f"Yours has {sys.n_electrons}."
        )
    if np.any(sys.A_strain):
        raise ValueError("A strain (A_strain) not supported with perturbation theory.")
    S = sys.S[0]
    if S > 0.5 and np.any(sys.D_strain) and int(2 * S) % 2:
        lines = [
            "D strain (D_strain) not supported for half-integer spins "
            "with perturbation theory.",
            "Use matrix diagonalization instead.",
        ]
        raise ValueError("\n".join(lines))
    if np.any(sys.D_strain) and np.any(sys.D_frame):
        raise ValueError("D strain cannot be used with tilted D tensors.")
    if not sys.is_pure:
        lines = [
            f"Nuclei {sys.nuclei} contain isotope mixtures.",
            "Split the system with `isotopologues` first.",
        ]
        raise ValueError("\n".join(lines))
    if sys.n_nuclei > 0:
        if sys.full_A:
            singular = any(
                np.linalg.det(sys.A_tensor(n)) == 0 for n in range(sys.n_nuclei)
            )
        else:
            singular = np.any(sys.A == 0)
        if singular:
            raise ValueError("All hyperfine coupling constants must be non-zero.")


def _check_experiment(exp: Experiment, opt: PerturbationOptions):
    if exp.mw_freq is None:
        raise ValueError("Microwave frequency (mw_freq) is missing.")
    if exp.orientations is None:
        raise ValueError("Orientations are missing.")
    if exp.mode == "parallel":
        lines = [
            "Parallel mode EPR cannot be done with perturbation theory.",
            "Use matrix diagonalization.",
        ]
        raise ValueError("\n".join(lines))
    if exp.mode != "perpendicular":
        raise ValueError(f"Unknown detection mode `{exp.mode}`.")
    if exp.temperature is not None:
        if np.size(exp.temperature) != 1:
            raise ValueError("Temperature must be a single number.")
        if not np.isfinite(exp.temperature):
            raise ValueError("If given, the temperature must have a finite value.")
    if exp.crystal_symmetry:
        raise ValueError("Space groups are not supported with perturbation theory.")
    if opt.perturb_order not in (1, 2):
        raise ValueError("Only 1st and 2nd order perturbation theory are supported.")
    if opt.direct_accumulation:
        if exp.field_range is None or exp.n_points is None:
            raise ValueError("Direct accumulation needs field_range and n_points.")
        field_range = np.asarray(exp.field_range, dtype=float).ravel()
        if (
            field_range.size != 2
            or not np.all(np.isfinite(field_range))
            or field_range[1] <= field_range[0]
        ):
            raise ValueError(
                f"field_range must be two increasing values in mT, got {exp.field_range}."
            )
        if int(exp.n_points) != exp.n_points or exp.n_points < 2:
            raise ValueError(
                f"n_points must be an integer of at least 2, got {exp.n_points}."
            )
        if exp.accum_weights is None:
            raise ValueError("Direct accumulation needs accum_weights.")


def polarization(S: float, mw_freq: float, temperature=None) -> np.ndarray:
    """Thermal polarisation of the 2S electron transitions.

    Args:
        S (float): Electron spin.
        mw_freq (float): Microwave frequency (GHz).
        temperature (float): Temperature (K); None gives ones.

    Returns:
        np.ndarray: Lower-level minus upper-level populations of the
        transitions ``mS → mS-1``, starting at ``mS = S``.

    Examples:
        >>> polarization(1.0, 9.5).tolist()
        [1.0, 1.0]
    """
    n_trans = int(round(2 * S))
    if temperature is None:
        return np.ones(n_trans)
    levels = np.arange(n_trans, -1, -1)
    populations = np.exp(-C.h * levels * mw_freq * 1e9 / (C.k_B * temperature))
    populations /= populations.sum()
    return np.diff(populations)


def resfields_perturb(
    sys: SpinSystem, exp: Experiment, opt: Optional[PerturbationOptions] = None
) -> ResonanceFields:
    """Resonance fields, intensities and widths by perturbation theory.

    Args:
        sys (SpinSystem): A single-electron spin system with pure
            nuclei.
        exp (Experiment): Microwave frequency and orientations.
        opt (PerturbationOptions): Perturbation order and direct
            accumulation.

    Returns:
        ResonanceFields: ``(B, intensities, widths, transitions,
        spectrum)``.  Rows of `B` are grouped per electron transition
        ``mS → mS-1`` starting at ``mS = S``; within a group the nuclear
        sublevels vary with the last nucleus fastest.  With direct
        accumulation only `spectrum` is set.
    """
    opt = PerturbationOptions() if opt is None else opt
    _check_system(sys)
    _check_experiment(exp, opt)

    S = float(sys.S[0])
    high_spin = S > 0.5
    second_order = opt.perturb_order == 2
    logger.info(
        "%s order perturbation theory",
        "2nd" if second_order else "1st",
    )

    g = sys.g_tensor(0)
    if high_spin:
        D = sys.D_tensor(0)
        D = D - np.trace(D) / 3 * np.eye(3)
        trDD = np.trace(D @ D)

    n_nuclei = sys.n_nuclei
    I = sys.I  # noqa: E741
    A = [sys.A_tensor(n) for n in range(n_nuclei)]
    detA = [np.linalg.det(a) for a in A]
    invA = [np.linalg.inv(a) for a in A]
    trAA = [np.trace(a.T @ a) for a in A]
    II1 = I * (I + 1)
    mI = [np.arange(-i, i + 1) for i in I]
    n_sublevels = [len(m) for m in mI]
    nI = int(np.prod(n_sublevels))
    combos = np.array(
        list(itertools.product(*[range(n) for n in n_sublevels])), dtype=int
    ).reshape(nI, n_nuclei)

    nu = exp.mw_freq * 1e3  # MHz
    E0 = nu
    ori, integrate_over_chi = orientation_array(exp.orientations)
    n_ori = ori.shape[0]
    mS_values = np.arange(S, -S, -1)
    n_trans = len(mS_values)
    logger.info(
        "%d orientations, %d electron transitions, %d nuclear sublevels",
        n_ori,
        n_trans,
        nI,
    )

    pol = polarization(S, exp.mw_freq, exp.temperature)
    if high_spin:
        trans_factor = S * (S + 1) - mS_values * (mS_values - 1)
    else:
        trans_factor = np.ones(n_trans)

    direct = opt.direct_accumulation
    if direct:
        n_points = int(exp.n_points)
        Bmin, Bmax = np.asarray(exp.field_range, dtype=float).ravel()
        axis = np.linspace(Bmin, Bmax, n_points)
        dB = axis[1] - axis[0]
        spectrum = np.zeros(n_points)
        weights = np.asarray(exp.accum_weights, dtype=float).ravel()
        if weights.size != n_ori:
            raise ValueError(
                f"accum_weights has {weights.size} values for {n_ori} orientations."
            )
    else:
        Bres = np.zeros((n_trans, nI, n_ori))

    g1pre = np.linalg.det(g) * np.linalg.inv(g).T
    gg = g.T @ g
    trgg = np.trace(gg)
    vecs = np.zeros((n_ori, 3))
    geff = np.zeros(n_ori)
    g1 = np.zeros(n_ori)

    for iori in range(n_ori):
        h1x, _, h = erot(ori[iori], rows=True)
        vecs[iori] = h

        geff[iori] = np.linalg.norm(g @ h)
        u = g @ h / geff[iori]
        pre = 1e6 * C.h / (geff[iori] * C.mu_B)  # T per MHz

        if integrate_over_chi:
            g1[iori] = np.pi * (trgg - u @ gg @ u)
        else:
            g1[iori] = np.linalg.norm(g1pre @ h1x) ** 2 / geff[iori] ** 2
        # Aasa-Vänngård 1/g factor
        g1[iori] *= C.h / C.mu_B * 1e9 / geff[iori]
        g1[iori] *= (C.mu_B / C.h / 1e9 / 2) ** 2

        if high_spin:
            Du = D @ u
            uDu = u @ Du
            uDDu = Du @ Du
            D1sq = uDDu - uDu**2
            D2sq = 2 * trDD + uDu**2 - 4 * uDDu

        nuclear = []
        for n in range(n_nuclei):
            K = A[n] @ u
            nK = np.linalg.norm(K)
            k = K / nK
            Ak = A[n].T @ k
            kAu = Ak @ u
            kAAk = Ak @ Ak
            nuclear.append(
                dict(
                    nK=nK,
                    A1sq=kAAk - kAu**2,
                    A2=detA[n] * (u @ invA[n] @ k),
                    A3=trAA[n] - nK**2 - kAAk + kAu**2,
                    DA=(Du @ Ak - uDu * kAu) if high_spin else 0.0,
                )
            )

        for imS, mS in enumerate(mS_values):
            E1D = -uDu / 2 * (3 - 6 * mS) if high_spin else 0.0
            E2D = 0.0
            if second_order and high_spin:
                x = D1sq * (4 * S * (S + 1) - 3 * (8 * mS**2 - 8 * mS + 3)) - D2sq / 4 * (
                    2 * S * (S + 1) - 3 * (2 * mS**2 - 2 * mS + 1)
                )
                E2D = -x / (2 * E0)

            shifts = []
            for n, p in enumerate(nuclear):
                m = mI[n]
                E = m * p["nK"]
                if second_order:
                    x = (
                        p["A1sq"] * m**2
                        - p["A2"] * (1 - 2 * mS) * m
                        + p["A3"] / 2 * (II1[n] - m**2)
                    )
                    E = E + x / (2 * E0)
                    if high_spin:
                        E = E - p["DA"] * (3 - 6 * mS) * m / E0
                shifts.append(E)

            if direct:
                electronic = (E0 - E1D - E2D) * pre * 1e3
                positions = np.array([electronic])
                for E in shifts:
                    positions = np.add.outer(positions, -E * pre * 1e3).ravel()
                weight = (
                    g1[iori] * weights[iori] * pol[imS] * trans_factor[imS] / nI
                )
                _accumulate(spectrum, positions, weight, axis[0], dB)
            else:
                total = np.zeros(nI)
                for n, E in enumerate(shifts):
                    total += E[combos[:, n]]
                Bres[imS, :, iori] = (E0 - E1D - E2D - total) * pre

    if direct:
        return ResonanceFields(None, None, None, None, spectrum)

    B = Bres.reshape(n_trans * nI, n_ori) * 1e3

    intensities = (pol * trans_factor)[:, np.newaxis, np.newaxis] * g1[np.newaxis, np.newaxis, :]
    intensities = np.broadcast_to(intensities, (n_trans, nI, n_ori))
    intensities = intensities.reshape(n_trans * nI, n_ori) / nI

    widths = _widths(sys, exp, vecs, geff, n_trans, nI)
    transitions = _transitions(n_trans, nI)
    return ResonanceFields(B, intensities, widths, transitions, 0)


def _accumulate(spectrum, positions, weight, start, step):
    """Add sticks at `positions` to the nearest-lower grid points."""
    idx = np.floor((positions - start) / step).astype(int)
    valid = (idx >= 0) & (idx < len(spectrum))
    np.add.at(spectrum, idx[valid], weight)


def _widths(sys: SpinSystem, exp: Experiment, vecs, geff, n_trans: int, nI: int):
    """Line widths (mT) from H, g or D strain, or None."""
    to_mT = 1e6 * C.h / geff / C.mu_B * 1e3  # mT per MHz
    if np.any(sys.H_strain):
        lw = np.sqrt(np.sum(sys.H_strain**2 * vecs**2, axis=1)) * to_mT
        return np.tile(lw, (n_trans * nI, 1))
    if np.any(sys.g_strain):
        if np.any(sys.g_frame) or sys.full_g:
            raise ValueError("g strain and g tilt cannot be used simultaneously.")
        gslw = sys.g_strain / sys.g[0] * exp.mw_freq * 1e3  # MHz
        lw = np.sqrt(np.sum(gslw**2 * vecs**2, axis=1)) * to_mT
        return np.tile(lw, (n_trans * nI, 1))
    if np.any(sys.D_strain):
        S = sys.S[0]
        x, y, z = vecs.T
        mS = np.arange(S, -S - 1, -1)
        mSS = mS**2 - S * (S + 1) / 3
        # field derivatives of each level with respect to D and E
        dBdD = np.outer(mSS, (3 * z**2 - 1) / 2 * to_mT)
        dBdE = np.outer(mSS, 3 * (x**2 - y**2) / 2 * to_mT)
        lwD = (dBdD[:-1] - dBdD[1:]) * sys.D_strain[0]
        lwE = (dBdE[:-1] - dBdE[1:]) * sys.D_strain[1]
        lw = np.sqrt(lwD**2 + lwE**2)
        return np.repeat(lw, nI, axis=0)
    return None


def _transitions(n_trans: int, nI: int) -> np.ndarray:
    """Level index pairs ``(k, k + nI)`` for each electron manifold.

    >>> _transitions(2, 2).tolist()
    [[0, 2], [1, 3], [2, 4], [3, 5]]
    """
    manifold = np.arange(nI)
    pairs = [np.stack([manifold + t * nI, manifold + (t + 1) * nI], axis=1) for t in range(n_trans)]
    return np.vstack(pairs)
