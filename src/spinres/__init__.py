"""Spinres package root."""

from importlib.metadata import PackageNotFoundError, version

from pint import UnitRegistry

from . import (
    data,
    hamiltonians,
    hmm,
    resfields,
    rotations,
    shared,
    slowmotion,
    utils,
    wigner,
)

try:
    __version__ = version("spinres")
except PackageNotFoundError:
    # Handle cases where the package is not installed or metadata is missing
    __version__ = "unknown"

ureg = UnitRegistry()
Q_ = ureg.Quantity
