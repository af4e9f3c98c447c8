#! /usr/bin/env python

import doctest
import unittest

import numpy as np
import numpy.testing
from spinres import data
from spinres.shared import constants as C


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(data))
    return tests


class IsotopeTestCase(unittest.TestCase):
    """Test case for the `Isotope` class."""

    def test_number_of_isotopes(self):
        """Number of isotopes.

        Changes when isotopes are added or removed from the database.
        """
        previous_number = 287
        available = data.Isotope.available()
        self.assertEqual(available[:2], ["1H", "2H"])
        self.assertEqual(available[-1], "238U")
        self.assertEqual(len(available), previous_number)

    def test_all_isotope_jsons(self):
        """Load all isotopes."""
        for isotope in data.Isotope.available():
            with self.subTest(isotope):
                iso = data.Isotope(isotope)
                self.assertGreaterEqual(iso.abundance, 0)
                self.assertLessEqual(iso.abundance, 1)
                if iso.multiplicity == 1:
                    self.assertEqual(iso.mu, 0)
                    self.assertEqual(iso.gn, 0)
                else:
                    self.assertNotEqual(iso.mu, 0)
                    self.assertAlmostEqual(iso.gn * iso.spin_quantum_number, iso.mu)

    def test_natural_abundances(self):
        """Natural abundances of every element add up to one."""
        elements = {data.Isotope(iso).element for iso in data.Isotope.available()}
        self.assertEqual(len(elements), 83)
        for element in elements:
            with self.subTest(element):
                total = sum(data.Isotope(iso).abundance for iso in data.Isotope.of_element(element))
                self.assertAlmostEqual(total, 1.0, places=3)

    def test_heavier_nuclei(self):
        self.assertEqual(data.Isotope.of_element("Br"), ["79Br", "81Br"])
        iodine = data.Isotope("127I")
        self.assertEqual(iodine.multiplicity, 6)
        self.assertEqual(iodine.abundance, 1.0)
        self.assertAlmostEqual(data.Isotope("207Pb").gn, 2 * 0.59102)
        self.assertEqual(len(data.Isotope.of_element("Sn")), 10)
        self.assertEqual(data.Isotope("176Lu").spin_quantum_number, 7)
        self.assertEqual(data.Isotope("235U").multiplicity, 8)

    def test_members(self):
        """Test isotope members and methods."""
        iso = data.Isotope("14N")
        self.assertEqual(iso.details, {"name": "Nitrogen"})
        self.assertEqual(iso.element, "N")
        self.assertEqual(iso.multiplicity, 3)
        self.assertEqual(iso.spin_quantum_number, 1)
        self.assertEqual(iso.mass_number, 14)
        self.assertAlmostEqual(iso.magnetogyric_ratio, 0.403761 * C.mu_N / C.hbar)

    def test_proton_magnetogyric_ratio(self):
        """Proton magnetogyric ratio in rad/s/T."""
        self.assertAlmostEqual(data.Isotope("1H").magnetogyric_ratio / 1e8, 2.6752, places=4)

    def test_constructors(self):
        """Test construction of existing and non-existing Isotope."""
        self.assertIsInstance(data.Isotope("15N"), data.Isotope)
        self.assertRaises(ValueError, data.Isotope, "Kryp")

    def test_of_element(self):
        self.assertEqual(data.Isotope.of_element("C"), ["12C", "13C"])
        self.assertEqual(data.Isotope.of_element("Zn")[0], "64Zn")
        self.assertRaises(ValueError, data.Isotope.of_element, "Xx")


class ParseNucleiTestCase(unittest.TestCase):
    """Test case for nucleus strings."""

    def test_single(self):
        self.assertEqual(data.parse_nuclei("14N,1H"), [["14N"], ["1H"]])

    def test_mixture(self):
        self.assertEqual(
            data.parse_nuclei("(63,65)Cu, 1H"), [["63Cu", "65Cu"], ["1H"]]
        )

    def test_natural(self):
        self.assertEqual(data.parse_nuclei("Cu"), [["63Cu", "65Cu"]])
        self.assertEqual(data.parse_nuclei("Br,127I"), [["79Br", "81Br"], ["127I"]])
        self.assertEqual(data.SpinSystem(nucs="127I", A=300).isotopes, ["127I"])

    def test_errors(self):
        for nucs in ["14", "N14", "(63,65)", "999Cu"]:
            with self.subTest(nucs):
                self.assertRaises(ValueError, data.parse_nuclei, nucs)


class SpinSystemTestCase(unittest.TestCase):
    """Test case for the `SpinSystem` class."""

    def test_defaults(self):
        sys = data.SpinSystem()
        self.assertEqual(sys.n_electrons, 1)
        self.assertEqual(sys.n_nuclei, 0)
        self.assertEqual(sys.n_states, 2)
        numpy.testing.assert_allclose(sys.g, [[C.g_e] * 3])
        numpy.testing.assert_allclose(sys.D, np.zeros((1, 3)))
        self.assertEqual(str(sys).splitlines()[-1], "No nuclei specified.")

    def test_g_forms(self):
        numpy.testing.assert_allclose(data.SpinSystem(g=2.1).g, [[2.1, 2.1, 2.1]])
        numpy.testing.assert_allclose(data.SpinSystem(g=[2.0, 2.2]).g, [[2.0, 2.0, 2.2]])
        numpy.testing.assert_allclose(
            data.SpinSystem(g=[2.0, 2.1, 2.2]).g, [[2.0, 2.1, 2.2]]
        )
        full = np.diag([2.0, 2.1, 2.2])
        sys = data.SpinSystem(g=full)
        self.assertTrue(sys.full_g)
        numpy.testing.assert_allclose(sys.g_tensor(0), full)

    def test_two_electrons(self):
        sys = data.SpinSystem(S=[0.5, 0.5], g=[[2.0, 2.0, 2.0], [2.1, 2.1, 2.1]])
        self.assertEqual(sys.n_states, 4)
        numpy.testing.assert_allclose(sys.g_tensor(1), 2.1 * np.eye(3))

    def test_wrong_sizes(self):
        self.assertRaises(ValueError, data.SpinSystem, g=[2.0, 2.1, 2.2, 2.3])
        self.assertRaises(ValueError, data.SpinSystem, nucs="1H", A=[1, 2, 3, 4])
        self.assertRaises(ValueError, data.SpinSystem, nucs="1H")
        self.assertRaises(ValueError, data.SpinSystem, A=10)
        self.assertRaises(ValueError, data.SpinSystem, S=0.7)
        self.assertRaises(ValueError, data.SpinSystem, g_frame=[0, 0])

    def test_zero_field_splitting(self):
        sys = data.SpinSystem(S=1, D=[300, 30])
        numpy.testing.assert_allclose(sys.D, [[-70.0, -130.0, 200.0]])
        numpy.testing.assert_allclose(np.trace(sys.D_tensor(0)), 0.0, atol=1e-12)

    def test_tilted_tensor(self):
        """Rotation keeps the principal values and tilts the axes."""
        sys = data.SpinSystem(g=[2.0, 2.0, 2.3], g_frame=[0, np.pi / 2, 0])
        g = sys.g_tensor(0)
        numpy.testing.assert_allclose(np.linalg.eigvalsh(g), [2.0, 2.0, 2.3])
        numpy.testing.assert_allclose(g[0, 0], 2.3)
        numpy.testing.assert_allclose(g[2, 2], 2.0)

    def test_hyperfine_forms(self):
        sys = data.SpinSystem(nucs="1H,14N", A=[10, 20])
        numpy.testing.assert_allclose(sys.A_tensor(1), 20 * np.eye(3))
        sys = data.SpinSystem(nucs="1H", A=[10, 30])
        numpy.testing.assert_allclose(sys.A, [[10, 10, 30]])
        sys = data.SpinSystem(S=[0.5, 0.5], g=[2.0, 2.0], nucs="1H", A=[10, 20])
        numpy.testing.assert_allclose(sys.A_tensor(0, 1), 20 * np.eye(3))

    def test_mixture_is_not_pure(self):
        sys = data.SpinSystem(nucs="Cu", A=[100])
        self.assertFalse(sys.is_pure)
        with self.assertRaises(ValueError):
            sys.I

    def test_strains(self):
        sys = data.SpinSystem(H_strain=5, g_strain=[0.01, 0.02], D_strain=10)
        numpy.testing.assert_allclose(sys.H_strain, [5, 5, 5])
        numpy.testing.assert_allclose(sys.g_strain, [0.01, 0.01, 0.02])
        numpy.testing.assert_allclose(sys.D_strain, [10, 0])

    def test_stevens_rank(self):
        self.assertRaises(ValueError, data.SpinSystem, S=2, stevens={13: [1]})


class IsotopologueTestCase(unittest.TestCase):
    """Test case for `isotopologues`."""

    def test_pure(self):
        sys = data.SpinSystem(nucs="1H", A=10)
        result = data.isotopologues(sys)
        self.assertEqual(len(result), 1)
        self.assertEqual(result[0][1], 1.0)
        self.assertEqual(result[0][0].isotopes, ["1H"])

    def test_copper(self):
        sys = data.SpinSystem(nucs="Cu", A=[100])
        result = data.isotopologues(sys)
        self.assertEqual([s.isotopes for s, _ in result], [["63Cu"], ["65Cu"]])
        numpy.testing.assert_allclose([w for _, w in result], [0.6915, 0.3085])
        numpy.testing.assert_allclose(result[0][0].A, [[100.0]])
        numpy.testing.assert_allclose(result[1][0].A, [[100 * 1.5878 / 1.4824]])

    def test_nonmagnetic(self):
        """Nonmagnetic isotopes are removed from the system."""
        sys = data.SpinSystem(nucs="C,1H", A=[5, 10])
        result = data.isotopologues(sys)
        self.assertEqual(result[0][0].isotopes, ["1H"])
        numpy.testing.assert_allclose(result[0][0].A, [[10.0]])
        self.assertEqual(result[1][0].isotopes, ["13C", "1H"])
        self.assertAlmostEqual(sum(w for _, w in result), 1.0, places=5)

    def test_threshold(self):
        sys = data.SpinSystem(nucs="(1,2)H", A=10)
        self.assertEqual(len(data.isotopologues(sys)), 2)
        self.assertEqual(len(data.isotopologues(sys, threshold=0.01)), 1)

    def test_wrong_abundances(self):
        sys = data.SpinSystem(nucs="(63,65)Cu", A=100, abund=[0.5])
        self.assertRaises(ValueError, data.isotopologues, sys)
