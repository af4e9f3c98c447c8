#! /usr/bin/env python
"""
Physical constants of EPR spectroscopy and paths of the bundled data.

The constants live in ``data_files/constants.json`` (CODATA 2018).
Each entry holds a value and its units, name, symbol and source:

- ``Constant``: a ``float`` that keeps the rest of its entry in
  ``details`` and converts itself to a `pint` quantity with
  ``quantity``.

- ``Constant.fromjson(path)``: validate and load a JSON file of
  constants into a namespace.

- ``DATA_DIR``, ``constants``: the data directory and the default
  namespace.

Examples:
    >>> constants.mu_B.details.units
    'J T^-1'
    >>> constants.k_B
    1.380649e-23
    >>> gamma_e = constants.mu_B.quantity / constants.h.quantity
    >>> round(float(gamma_e.to("MHz/mT").magnitude), 4)
    13.9962
"""

import json
from pathlib import Path
from types import SimpleNamespace

_REQUIRED = ("value", "units", "source")


class Constant(float):
    """A physical constant.

    Extends float with the `Constant.details` member.  Arithmetic
    returns plain floats, so derived values lose the metadata.

    Args:
        details (dict): The JSON entry; needs ``value``, ``units`` and
            ``source``.
    """

    details: SimpleNamespace
    """Details (e.g. units) of the constant."""

    def __new__(cls, details: dict):  # noqa D102
        missing = [key for key in _REQUIRED if key not in details]
        if missing:
            lines = [
                f"Constant entry {details} is incomplete.",
                f"Missing: {', '.join(missing)}",
            ]
            raise ValueError("\n".join(lines))
        details = dict(details)
        value = details.pop("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Constant value must be a number, got {value!r}.")
        obj = super().__new__(cls, value)
        obj.details = SimpleNamespace(**details)
        return obj

    @property
    def quantity(self):
        """The constant as a `pint.Quantity` in its SI units."""
        from . import ureg

        return ureg.Quantity(float(self), self.details.units)

    @staticmethod
    def fromjson(json_file: Path) -> SimpleNamespace:
        """Read all constants from the JSON file.

        Args:
            json_file (Path): Path of the JSON file.

        Returns:
            SimpleNamespace: A namespace containing all constants.
        """
        with open(json_file, encoding="utf-8") as f:
            data = json.load(f)
        return SimpleNamespace(**{k: Constant(v) for k, v in data.items()})


DATA_DIR = Path(__file__).parent / "data_files"
constants = Constant.fromjson(DATA_DIR / "constants.json")
