#! /usr/bin/env python
from __future__ import annotations

import copy
import itertools
import json
import logging
import re
from typing import Optional

import numpy as np
from importlib_resources import files
from importlib_resources.abc import Traversable

from .rotations import erot
from .shared import constants as C

logger = logging.getLogger(__name__)


def spin_to_multiplicity(spin: float) -> int:
    """Spin quantum number to multiplicity.

    Args:
        spin (float): Spin quantum number.

    Returns:
        int: Spin multiplicity.

    """
    if int(2 * spin) != 2 * spin:
        raise ValueError("Spin needs to be half of an integer.")
    return int(2 * spin) + 1


def multiplicity_to_spin(multiplicity: int) -> float:
    """Spin multiplicity to spin quantum number.

    Args:
        multiplicity (int): Spin multiplicity.

    Returns:
        float: Spin quantum number.

    """
    return float(multiplicity - 1) / 2.0


def get_data(suffix: str = "") -> Traversable:
    """Get the directory containing data files."""
    return files(__package__) / "data_files" / suffix


class Isotope:
    """Class representing a nuclear isotope.

    Args:
        symbol (str): The symbol of the isotope in the database,
            mass number followed by the element, e.g. ``"14N"``.

    Examples:
        Create an isotope using the database.

        >>> N = Isotope("14N")
        >>> N
        Symbol: 14N
        Multiplicity: 3
        Magnetic moment: 0.403761
        Nuclear g factor: 0.403761
        Natural abundance: 0.99636
        Details: {'name': 'Nitrogen'}

        Query the spin:

        >>> N.spin_quantum_number
        1.0

        All isotopes of an element, lightest first:

        >>> Isotope.of_element("Cu")
        ['63Cu', '65Cu']
    """

    _isotope_data: Optional[dict] = None

    def __repr__(self) -> str:  # noqa D105
        """Isotope representation."""
        lines = [
            f"Symbol: {self.symbol}",
            f"Multiplicity: {self.multiplicity}",
            f"Magnetic moment: {self.mu}",
            f"Nuclear g factor: {self.gn}",
            f"Natural abundance: {self.abundance}",
            f"Details: {self.details}",
        ]
        return "\n".join(lines)

    def __init__(self, symbol: str):  # noqa D105
        """Isotope constructor."""
        self._ensure_isotope_data()
        if symbol not in self._isotope_data:
            raise ValueError(
                f"Isotope {symbol} not in database. See `Isotope.available()`"
            )
        isotope = dict(self._isotope_data[symbol])
        self.symbol = symbol
        self.multiplicity = spin_to_multiplicity(isotope.pop("spin"))
        self.mu = isotope.pop("mu")
        spin = self.spin_quantum_number
        self.gn = self.mu / spin if spin else 0.0
        self.abundance = isotope.pop("abundance")
        self.element = isotope.pop("element")
        self.details = isotope

    @classmethod
    def _ensure_isotope_data(cls):
        if cls._isotope_data is None:
            with open(get_data() / "isotopes.json", encoding="utf-8") as f:
                cls._isotope_data = json.load(f)

    @classmethod
    def available(cls) -> list[str]:
        """List isotopes available in the database.

        Returns:
            list[str]: List of available isotopes (symbols).

        Examples:
            >>> Isotope.available()[:4]
            ['1H', '2H', '3He', '4He']
        """
        cls._ensure_isotope_data()
        return list(cls._isotope_data)

    @classmethod
    def of_element(cls, element: str) -> list[str]:
        """Isotopes of an element sorted by mass number.

        Args:
            element (str): Element symbol, e.g. ``"Cu"``.

        Returns:
            list[str]: Isotope symbols, lightest first.
        """
        cls._ensure_isotope_data()
        isotopes = [k for k, v in cls._isotope_data.items() if v["element"] == element]
        if not isotopes:
            raise ValueError(f"Element {element} not in the isotope database.")
        return sorted(isotopes, key=_mass_number)

    @property
    def mass_number(self) -> int:
        """Mass number of the `Isotope`."""
        return _mass_number(self.symbol)

    @property
    def spin_quantum_number(self) -> float:
        """Spin quantum numer of `Isotope`."""
        return multiplicity_to_spin(self.multiplicity)

    @property
    def magnetogyric_ratio(self) -> float:
        """Magnetogyric ratio in rad/s/T."""
        return self.gn * C.mu_N / C.hbar


def _mass_number(symbol: str) -> int:
    return int(re.match(r"\d+", symbol).group())


_NUCLEUS = re.compile(
    r"^(?:\((?P<masses>\d+(?:,\d+)*)\)(?P<mixed>[A-Z][a-z]?)"
    r"|(?P<mass>\d+)(?P<single>[A-Z][a-z]?)"
    r"|(?P<natural>[A-Z][a-z]?))$"
)


def parse_nuclei(nucs: str) -> list[list[str]]:
    """Parse a nucleus string.

    Nuclei are separated by commas.  Each one is a single isotope
    (``"14N"``), an explicit mixture (``"(63,65)Cu"``) or an element
    symbol standing for its natural isotope mixture (``"Cu"``).

    Args:
        nucs (str): The nucleus string.

    Returns:
        list[list[str]]: One list of isotope symbols per nucleus.

    Examples:
        >>> parse_nuclei("1H, (63,65)Cu")
        [['1H'], ['63Cu', '65Cu']]
        >>> parse_nuclei("")
        []
    """
    nucs = re.sub(r"\s+", "", nucs)
    if not nucs:
        return []
    result = []
    for token in re.split(r",(?![^(]*\))", nucs):
        match = _NUCLEUS.match(token)
        if match is None:
            lines = [
                f"Could not parse nucleus `{token}` in `{nucs}`.",
                "Use e.g. '14N', '(63,65)Cu' or 'Cu'.",
            ]
            raise ValueError("\n".join(lines))
        if match["natural"]:
            isotopes = Isotope.of_element(match["natural"])
        elif match["single"]:
            isotopes = [match["mass"] + match["single"]]
        else:
            isotopes = [m + match["mixed"] for m in match["masses"].split(",")]
        for iso in isotopes:
            Isotope(iso)
        result.append(isotopes)
    return result


def _size_error(name: str, expected: str, value) -> ValueError:
    lines = [
        f"Wrong size of `{name}`.",
        f"Expected: {expected}",
        f"Got shape: {np.shape(value)}",
    ]
    return ValueError("\n".join(lines))


def _principal_rows(value, n: int, name: str, expected: str) -> np.ndarray:
    """One row of values per electron/nucleus as a 2D array."""
    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0:
        arr = np.full((n, 1), float(arr))
    elif arr.ndim == 1:
        if n == 1:
            arr = arr[np.newaxis, :]
        elif arr.size == n:
            arr = arr[:, np.newaxis]
        else:
            raise _size_error(name, expected, value)
    if arr.ndim != 2 or arr.shape[0] != n:
        raise _size_error(name, expected, value)
    return arr


def _frames(value, n: int, width: int, name: str) -> np.ndarray:
    if value is None:
        return np.zeros((n, width))
    arr = np.asarray(value, dtype=float)
    if n == 1 and arr.ndim == 1:
        arr = arr[np.newaxis, :]
    if arr.shape != (n, width):
        raise _size_error(name, f"({n}, {width}) Euler angles", value)
    return arr


def _strain(value, name: str) -> np.ndarray:
    if value is None:
        return np.zeros(3)
    arr = np.atleast_1d(np.asarray(value, dtype=float)).ravel()
    if arr.size == 1:
        return np.repeat(arr, 3)
    if arr.size == 2:
        return arr[[0, 0, 1]]
    if arr.size == 3:
        return arr
    raise _size_error(name, "1, 2 or 3 values", value)


def zfs_principal_values(D: float, E: float = 0.0) -> np.ndarray:
    """Principal values of the D tensor from D and E.

    >>> zfs_principal_values(300.0, 30.0).tolist()
    [-70.0, -130.0, 200.0]
    """
    return np.array([-D / 3 + E, -D / 3 - E, 2 * D / 3])


class SpinSystem:
    """A validated spin system with electrons and nuclei.

    All spin Hamiltonian parameters are given in MHz, except g values
    which are unitless.  Euler angles are in radians.

    Args:
        S (float | list[float]): Electron spin(s).
        g: Per electron 1 (isotropic), 2 (axial, ``[g_perp, g_par]``)
            or 3 (principal) values, or the full ``(3n, 3)`` tensors.
        g_frame: Euler angles of the g principal axes, per electron.
        nucs (str): Nucleus string, see `parse_nuclei`.
        A: Hyperfine couplings per nucleus: one isotropic value per
            electron, 2 axial values (one electron only), ``3n``
            principal values, or the full ``(3 nNuclei, 3 nElectrons)``
            tensors.
        A_frame: Euler angles of the A principal axes, ``(nNuclei, 3
            nElectrons)``.
        abund: Abundances of the isotopes of each nucleus.
        D: Zero-field splitting per electron: ``[D, E]``, 3 principal
            values or the full tensors.
        D_frame: Euler angles of the D principal axes, per electron.
        aF: Fourth-order cubic terms ``[a, F]`` of the first electron.
        a_frame (int): 3 or 4, the symmetry axis of the `a` term.
        stevens (dict[int, list]): Extended Stevens coefficients
            ``{k: [B_k^k, ..., B_k^-k]}``.
        H_strain, g_strain, A_strain, D_strain: Line broadening
            parameters.

    Examples:
        >>> sys = SpinSystem(g=[2.0, 2.1], nucs="14N", A=[20, 90])
        >>> sys.n_electrons, sys.n_nuclei, sys.n_states
        (1, 1, 6)
        >>> sys.g[0].tolist()
        [2.0, 2.0, 2.1]
        >>> sys.spins.tolist()
        [0.5, 1.0]
    """

    def __repr__(self) -> str:
        """Pretty print the spin system.

        Returns:
            str: Representation of a spin system.
        """
        nuclei = ", ".join("(" + ",".join(n) + ")" if len(n) > 1 else n[0] for n in self.nuclei)
        lines = [
            f"Electron spins: {self.S.tolist()}",
            f"g: {self.g.tolist()}",
            f"Nuclei: {nuclei}" if self.nuclei else "No nuclei specified.",
        ]
        if self.nuclei:
            lines.append(f"A (MHz): {self.A.tolist()}")
        if np.any(self.D):
            lines.append(f"D (MHz): {self.D.tolist()}")
        return "\n".join(lines)

    def __init__(
        self,
        S=0.5,
        g=None,
        g_frame=None,
        nucs: str = "",
        A=None,
        A_frame=None,
        abund=None,
        D=None,
        D_frame=None,
        aF=None,
        a_frame: int = 4,
        stevens: Optional[dict] = None,
        H_strain=None,
        g_strain=None,
        A_strain=None,
        D_strain=None,
    ):
        """Spin system constructor."""
        self.S = np.atleast_1d(np.asarray(S, dtype=float)).ravel()
        for s in self.S:
            if s <= 0 or 2 * s != int(2 * s):
                raise ValueError(
                    f"Electron spins must be positive multiples of 1/2, got {s}."
                )
        n = self.n_electrons

        self.g, self.full_g = self._init_g(g)
        self.g_frame = _frames(g_frame, n, 3, "g_frame")
        self.D, self.full_D = self._init_D(D)
        self.D_frame = _frames(D_frame, n, 3, "D_frame")

        self.nuclei = parse_nuclei(nucs)
        self.A, self.full_A = self._init_A(A)
        self.A_frame = _frames(A_frame, self.n_nuclei, 3 * n, "A_frame")
        self.abund = abund

        if aF is not None:
            aF = np.atleast_1d(np.asarray(aF, dtype=float)).ravel()
            if aF.size != 2:
                raise _size_error("aF", "[a, F]", aF)
        self.aF = aF
        self.a_frame = a_frame

        self.stevens = {}
        for k, coeffs in (stevens or {}).items():
            if int(k) != k or not 0 <= k <= 12:
                raise ValueError(f"Stevens operator rank must be 0..12, got {k}.")
            self.stevens[int(k)] = np.atleast_1d(np.asarray(coeffs, dtype=float))

        self.H_strain = _strain(H_strain, "H_strain")
        self.g_strain = _strain(g_strain, "g_strain")
        self.A_strain = _strain(A_strain, "A_strain")
        if D_strain is None:
            self.D_strain = np.zeros(2)
        else:
            self.D_strain = np.atleast_1d(np.asarray(D_strain, dtype=float)).ravel()
            if self.D_strain.size == 1:
                self.D_strain = np.append(self.D_strain, 0.0)
            if self.D_strain.size != 2:
                raise _size_error("D_strain", "[sigma_D, sigma_E]", D_strain)

    def _init_g(self, g):
        n = self.n_electrons
        if g is None:
            return np.full((n, 3), C.g_e), False
        arr = np.asarray(g, dtype=float)
        if arr.shape == (3 * n, 3):
            return arr, True
        expected = "1, 2 or 3 values per electron, or full (3n, 3) tensors"
        arr = _principal_rows(g, n, "g", expected)
        if arr.shape[1] == 1:
            return np.repeat(arr, 3, axis=1), False
        if arr.shape[1] == 2:
            return arr[:, [0, 0, 1]], False
        if arr.shape[1] == 3:
            return arr, False
        raise _size_error("g", expected, g)

    def _init_D(self, D):
        n = self.n_electrons
        if D is None:
            return np.zeros((n, 3)), False
        arr = np.asarray(D, dtype=float)
        if arr.shape == (3 * n, 3):
            return arr, True
        expected = "[D, E] or 3 principal values per electron, or full (3n, 3) tensors"
        arr = _principal_rows(D, n, "D", expected)
        if arr.shape[1] == 1:
            arr = np.hstack([arr, np.zeros((n, 1))])
        if arr.shape[1] == 2:
            return np.array([zfs_principal_values(d, e) for d, e in arr]), False
        if arr.shape[1] == 3:
            return arr, False
        raise _size_error("D", expected, D)

    def _init_A(self, A):
        n, nn = self.n_electrons, self.n_nuclei
        if nn == 0:
            if A is not None and np.size(A) > 0:
                raise ValueError("Hyperfine values `A` given, but no nuclei in `nucs`.")
            return np.zeros((0, 3 * n)), False
        if A is None:
            raise ValueError(f"Hyperfine values `A` missing for nuclei {self.nuclei}.")
        arr = np.asarray(A, dtype=float)
        if arr.shape == (3 * nn, 3 * n):
            return arr, True
        expected = (
            f"{n} isotropic, 2 axial or {3 * n} principal values per nucleus, "
            f"or full ({3 * nn}, {3 * n}) tensors"
        )
        arr = _principal_rows(A, nn, "A", expected)
        if arr.shape[1] == n:
            return np.repeat(arr, 3, axis=1), False
        if arr.shape[1] == 2 and n == 1:
            return arr[:, [0, 0, 1]], False
        if arr.shape[1] == 3 * n:
            return arr, False
        raise _size_error("A", expected, A)

    @property
    def n_electrons(self) -> int:
        """Number of electrons."""
        return len(self.S)

    @property
    def n_nuclei(self) -> int:
        """Number of nuclei."""
        return len(self.nuclei)

    @property
    def is_pure(self) -> bool:
        """True if every nucleus is a single isotope."""
        return all(len(n) == 1 for n in self.nuclei)

    @property
    def isotopes(self) -> list[str]:
        """Isotope symbols of a pure system."""
        self._check_pure()
        return [n[0] for n in self.nuclei]

    @property
    def I(self) -> np.ndarray:  # noqa: E743
        """Nuclear spin quantum numbers."""
        return np.array(
            [Isotope(iso).spin_quantum_number for iso in self.isotopes], dtype=float
        )

    @property
    def spins(self) -> np.ndarray:
        """Electron spins followed by nuclear spins."""
        return np.concatenate([self.S, self.I])

    @property
    def n_states(self) -> int:
        """Dimension of the spin Hilbert space."""
        return int(np.prod(2 * self.spins + 1))

    def _check_pure(self):
        if not self.is_pure:
            lines = [
                f"Nuclei {self.nuclei} contain isotope mixtures.",
                "Split the system with `isotopologues` first.",
            ]
            raise ValueError("\n".join(lines))

    def g_tensor(self, i: int = 0) -> np.ndarray:
        """The 3x3 g tensor of electron `i` in the molecular frame."""
        if self.full_g:
            return self.g[3 * i : 3 * i + 3, :]
        R = erot(self.g_frame[i])
        return R @ np.diag(self.g[i]) @ R.T

    def D_tensor(self, i: int = 0) -> np.ndarray:
        """The 3x3 D tensor (MHz) of electron `i` in the molecular frame."""
        if self.full_D:
            return self.D[3 * i : 3 * i + 3, :]
        R = erot(self.D_frame[i])
        return R @ np.diag(self.D[i]) @ R.T

    def A_tensor(self, n: int, e: int = 0) -> np.ndarray:
        """The 3x3 hyperfine tensor (MHz) between nucleus `n` and electron `e`."""
        if self.full_A:
            return self.A[3 * n : 3 * n + 3, 3 * e : 3 * e + 3]
        R = erot(self.A_frame[n, 3 * e : 3 * e + 3])
        return R @ np.diag(self.A[n, 3 * e : 3 * e + 3]) @ R.T

    def _with_nuclei(self, isotopes: list[str], keep: list[int], scale: list[float]):
        """Copy of a system with a subset of pure nuclei and scaled A rows."""
        new = copy.copy(self)
        new.nuclei = [[iso] for iso in isotopes]
        new.abund = None
        n = self.n_electrons
        if self.full_A:
            rows = [self.A[3 * k : 3 * k + 3] * s for k, s in zip(keep, scale)]
            new.A = np.vstack(rows) if rows else np.zeros((0, 3 * n))
            new.full_A = bool(rows)
        else:
            new.A = self.A[keep] * np.asarray(scale)[:, np.newaxis] if keep else np.zeros((0, 3 * n))
        new.A_frame = self.A_frame[keep] if keep else np.zeros((0, 3 * n))
        return new


def _position_abundances(sys: SpinSystem) -> list[np.ndarray]:
    if sys.abund is None:
        given = [[Isotope(iso).abundance for iso in isos] for isos in sys.nuclei]
    else:
        given = sys.abund
        if sys.n_nuclei == 1 and np.ndim(given[0]) == 0:
            given = [given]
        if len(given) != sys.n_nuclei:
            raise _size_error("abund", f"one list per nucleus ({sys.n_nuclei})", given)
    result = []
    for isos, ab in zip(sys.nuclei, given):
        ab = np.atleast_1d(np.asarray(ab, dtype=float))
        if ab.size != len(isos):
            lines = [
                f"Abundances {ab.tolist()} do not match isotopes {isos}.",
                "Give one abundance per isotope.",
            ]
            raise ValueError("\n".join(lines))
        if np.any(ab < 0) or ab.sum() <= 0:
            raise ValueError(f"Abundances must be non-negative, got {ab.tolist()}.")
        result.append(ab / ab.sum())
    return result


def isotopologues(sys: SpinSystem, threshold: float = 1e-4) -> list[tuple[SpinSystem, float]]:
    """Split a spin system with isotope mixtures into pure systems.

    Hyperfine values refer to the first magnetic isotope of each
    nucleus and are scaled by the ratio of nuclear g factors for the
    other isotopes.  Nonmagnetic isotopes are removed.

    Args:
        sys (SpinSystem): The spin system.

        threshold (float): Isotopologues with weights below
            `threshold` times the largest weight are dropped.

    Returns:
        list[tuple[SpinSystem, float]]: Pure systems and their
        weights, sorted by decreasing weight.

    Examples:
        >>> sys = SpinSystem(nucs="(12,13)C", A=5, abund=[0.9, 0.1])
        >>> [(s.n_nuclei, round(w, 6)) for s, w in isotopologues(sys)]
        [(0, 0.9), (1, 0.1)]
    """
    abundances = _position_abundances(sys)
    isotopes = [[Isotope(iso) for iso in isos] for isos in sys.nuclei]
    reference = []
    for isos in isotopes:
        magnetic = [iso for iso in isos if iso.multiplicity > 1]
        reference.append(magnetic[0].gn if magnetic else None)

    result = []
    for combo in itertools.product(*[range(len(isos)) for isos in isotopes]):
        weight = float(np.prod([ab[c] for ab, c in zip(abundances, combo)]))
        keep, symbols, scale = [], [], []
        for n, c in enumerate(combo):
            iso = isotopes[n][c]
            if iso.multiplicity == 1:
                continue
            keep.append(n)
            symbols.append(iso.symbol)
            scale.append(iso.gn / reference[n])
        result.append((sys._with_nuclei(symbols, keep, scale), weight))

    result.sort(key=lambda item: -item[1])
    top = result[0][1]
    kept = [(s, w) for s, w in result if w >= threshold * top]
    logger.debug("%d isotopologues, %d above threshold", len(result), len(kept))
    return kept
