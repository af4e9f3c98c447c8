#!/usr/bin/env python
"""
Unit conversions, line shapes and noise for EPR spectra.

Main contents:

    Units
        - ``as_magnitude(value, unit)``: Strip a `pint` quantity to a
          number in `unit`; plain numbers pass through.
        - ``MHz_to_mT(MHz, g)``, ``mT_to_MHz(mT, g)``: Resonance
          frequency ↔ field for a given g value.

    Line shapes
        - ``gaussian(x, x0, fwhm, diff=0)``: Area-normalised Gaussian
          and its first derivative.
        - ``lorentzian(x, x0, fwhm, diff=0)``: Area-normalised
          Lorentzian and its first derivative.

    Noise
        - ``addnoise(y, snr, model="n", rng=None)``: Add normal,
          uniform or 1/f noise at a given signal-to-noise ratio.

Examples:
    >>> round(float(mT_to_MHz(MHz_to_mT(9500.0))), 9)
    9500.0
"""

import logging
from typing import Optional

import numpy as np

from .shared import constants as C

logger = logging.getLogger(__name__)


def as_magnitude(value, unit: str):
    """Magnitude of `value` in `unit` if it is a `pint` quantity.

    Args:
        value: A number, an array or a `pint.Quantity`.
        unit (str): Target unit, e.g. ``"GHz"``.

    Returns:
        The plain magnitude.
    """
    if hasattr(value, "to"):
        return value.to(unit).magnitude
    return value


def MHz_to_mT(MHz: float, g: float = C.g_e) -> float:
    """Convert Megahertz to millitesla.

    Args:
            MHz (float): The frequency in Megahertz (MHz).
            g (float): The g value; the free-electron value by default.

    Returns:
            float: Resonance field in millitesla (mT).
    """
    return MHz / (1e-9 * g * C.mu_B / C.h)


def mT_to_MHz(mT: float, g: float = C.g_e) -> float:
    """Convert millitesla to Megahertz.

    Args:
            mT (float): The field in millitesla (mT).
            g (float): The g value; the free-electron value by default.

    Returns:
            float: Resonance frequency in Megahertz (MHz).
    """
    return mT * (1e-9 * g * C.mu_B / C.h)


mhz2mt = MHz_to_mT
mt2mhz = mT_to_MHz


def _check_diff(diff: int):
    if diff not in (0, 1):
        raise ValueError(f"Only diff=0 (absorption) and diff=1 are supported, got {diff}.")


def gaussian(x, x0: float, fwhm: float, diff: int = 0) -> np.ndarray:
    """Area-normalised Gaussian line shape.

    Args:
        x (np.ndarray): Abscissa.
        x0 (float): Centre.
        fwhm (float): Full width at half maximum.
        diff (int): 0 for the line shape, 1 for its first derivative.

    Returns:
        np.ndarray: Line shape values.

    Examples:
        >>> x = np.linspace(-10, 10, 20001)
        >>> round(float(gaussian(x, 0, 1).sum() * (x[1] - x[0])), 6)
        1.0
    """
    _check_diff(diff)
    if fwhm <= 0:
        raise ValueError("Line width must be positive.")
    x = np.asarray(x, dtype=float)
    sigma = fwhm / (2 * np.sqrt(2 * np.log(2)))
    y = np.exp(-((x - x0) ** 2) / (2 * sigma**2)) / (sigma * np.sqrt(2 * np.pi))
    if diff == 1:
        y = -(x - x0) / sigma**2 * y
    return y


def lorentzian(x, x0: float, fwhm: float, diff: int = 0) -> np.ndarray:
    """Area-normalised Lorentzian line shape.

    Args:
        x (np.ndarray): Abscissa.
        x0 (float): Centre.
        fwhm (float): Full width at half maximum.
        diff (int): 0 for the line shape, 1 for its first derivative.

    Returns:
        np.ndarray: Line shape values.
    """
    _check_diff(diff)
    if fwhm <= 0:
        raise ValueError("Line width must be positive.")
    x = np.asarray(x, dtype=float)
    gamma = fwhm / 2
    if diff == 0:
        return gamma / np.pi / ((x - x0) ** 2 + gamma**2)
    return -2 * gamma / np.pi * (x - x0) / ((x - x0) ** 2 + gamma**2) ** 2


def addnoise(y, snr: float, model: str = "n", rng: Optional[np.random.Generator] = None):
    """Add noise to a signal.

    The noise standard deviation is the signal amplitude
    (``max(y) - min(y)``) divided by `snr`.

    Args:
        y (np.ndarray): Signal.
        snr (float): Signal-to-noise ratio.
        model (str): ``"n"`` normal, ``"u"`` uniform or ``"f"`` 1/f
            (pink) noise.
        rng (np.random.Generator): Random number generator;
            `np.random.default_rng()` by default.

    Returns:
        np.ndarray: Noisy copy of `y`.
    """
    if snr <= 0:
        raise ValueError(f"Signal-to-noise ratio must be positive, got {snr}.")
    y = np.asarray(y, dtype=float)
    rng = np.random.default_rng() if rng is None else rng

    if model == "n":
        noise = rng.standard_normal(y.shape)
    elif model == "u":
        noise = rng.uniform(-0.5, 0.5, y.shape)
    elif model == "f":
        noise = _pink_noise(y.shape, rng)
    else:
        raise ValueError(f"Unknown noise model `{model}`. Use 'n', 'u' or 'f'.")

    std = noise.std()
    if std > 0:
        noise = noise / std
    amplitude = y.max() - y.min()
    logger.debug("noise model %s, amplitude %g, SNR %g", model, amplitude, snr)
    return y + noise * amplitude / snr


def _pink_noise(shape, rng: np.random.Generator) -> np.ndarray:
    """1/f noise along the last axis, shaped in the Fourier domain."""
    n = shape[-1] if shape else 1
    white = rng.standard_normal(shape)
    spectrum = np.fft.rfft(white, axis=-1)
    freqs = np.fft.rfftfreq(n)
    scale = np.zeros_like(freqs)
    scale[1:] = 1 / np.sqrt(freqs[1:])
    return np.fft.irfft(spectrum * scale, n=n, axis=-1)
