#! /usr/bin/env python

import doctest
import unittest

import numpy as np
import numpy.testing
import scipy as sp
from spinres import slowmotion
from spinres.slowmotion import OrientationalBasis, Potential, lmk_basis, startvec

SPLUS = [[0, 1], [0, 0]]


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(slowmotion))
    return tests


class BasisTestCase(unittest.TestCase):
    """Test case for orientational bases."""

    def test_sizes(self):
        self.assertEqual(len(lmk_basis(2)), 26)
        self.assertEqual(len(lmk_basis(2, odd_Lmax=1)), 35)
        self.assertEqual(len(lmk_basis(4, Kmax=0, Mmax=0)), 3)
        self.assertEqual(len(lmk_basis(4, deltaK=2)), 1 + 5 * 3 + 9 * 5)

    def test_ordering(self):
        basis = lmk_basis(2, odd_Lmax=1)
        order = np.lexsort((basis.K, basis.M, basis.L))
        numpy.testing.assert_array_equal(order, np.arange(len(basis)))

    def test_symmetrised(self):
        basis = lmk_basis(2, jKmin=-1)
        self.assertTrue(basis.has_jK)
        zero_K = basis.K == 0
        numpy.testing.assert_array_equal(basis.jK[zero_K], (-1) ** basis.L[zero_K])
        self.assertEqual(len(basis), 1 + 5 * 5)
        self.assertFalse(lmk_basis(2).has_jK)

    def test_invalid(self):
        self.assertRaises(ValueError, OrientationalBasis, [1], [2], [0])
        self.assertRaises(ValueError, OrientationalBasis, [1, 2], [0], [0])
        self.assertRaises(ValueError, OrientationalBasis, [1], [0], [0], [2])


class PotentialTestCase(unittest.TestCase):
    """Test case for ordering potentials."""

    def test_axial(self):
        U = Potential([2.0], [2], [0], [0])
        self.assertAlmostEqual(U(0, 0, 0), -2.0)
        self.assertAlmostEqual(U(0, np.pi / 2, 0), 1.0)

    def test_nonzero(self):
        U = Potential([0, 1.5], [2, 4], [0, 0], [0, 2]).nonzero()
        numpy.testing.assert_array_equal(U.L, [4])
        numpy.testing.assert_array_equal(U.K, [2])

    def test_lengths(self):
        self.assertRaises(ValueError, Potential, [1, 2], [2], [0], [0])


class StartingVectorTestCase(unittest.TestCase):
    """Test case for `startvec`."""

    def test_isotropic(self):
        basis = lmk_basis(4)
        vec, counts = startvec(basis, Potential([0], [2], [0], [0]), SPLUS)
        numpy.testing.assert_array_equal(counts, [0, 0, 0])
        dense = vec.toarray().ravel()
        self.assertEqual(len(dense), 4 * len(basis))
        numpy.testing.assert_array_equal(np.flatnonzero(dense), [2])
        self.assertAlmostEqual(dense[2], 1.0)

    def test_isotropic_needs_one_constant_function(self):
        basis = OrientationalBasis([2], [0], [0])
        self.assertRaises(ValueError, startvec, basis, Potential([0], [2], [0], [0]), SPLUS)

    def test_axial_potential(self):
        lam = 2.0
        basis = lmk_basis(4)
        vec, counts = startvec(basis, Potential([lam], [2], [0], [0]), SPLUS)
        numpy.testing.assert_array_equal(counts, [3, 0, 0])
        dense = vec.toarray().ravel()
        self.assertAlmostEqual(np.linalg.norm(dense), 1.0)

        ori = dense[2::4]
        axial = (basis.M == 0) & (basis.K == 0) & (basis.L % 2 == 0)
        numpy.testing.assert_array_equal(ori[~axial], 0.0)

        def integral(L):
            legendre = sp.special.eval_legendre
            value, _ = sp.integrate.quad(
                lambda b: legendre(L, np.cos(b)) * np.exp(lam * legendre(2, np.cos(b)) / 2) * np.sin(b),
                0,
                np.pi,
            )
            return np.sqrt(2 * L + 1) * value

        L0 = np.flatnonzero(axial & (basis.L == 0))[0]
        L2 = np.flatnonzero(axial & (basis.L == 2))[0]
        self.assertGreater(ori[L2], 0)
        self.assertAlmostEqual(ori[L2] / ori[L0], integral(2) / integral(0), places=5)

    def test_symmetrised_basis(self):
        basis = lmk_basis(4, jKmin=1, deltaK=2)
        vec, counts = startvec(basis, Potential([1.0, 0.5], [2, 2], [0, 0], [0, 2]), SPLUS)
        self.assertEqual(counts[0], 0)
        self.assertGreater(counts[1], 0)
        self.assertEqual(counts[2], 0)
        ori = vec.toarray().ravel()[2::4]
        numpy.testing.assert_array_equal(ori[basis.M != 0], 0.0)

    def test_without_selection_rules(self):
        basis = lmk_basis(0)
        U = Potential([1.0], [2], [0], [0])
        vec, counts = startvec(basis, U, SPLUS, use_selection_rules=False)
        numpy.testing.assert_array_equal(counts, [0, 0, 1])
        reference, _ = startvec(basis, U, SPLUS)
        numpy.testing.assert_allclose(vec.toarray(), reference.toarray(), atol=1e-6)

    def test_zero_vector(self):
        basis = OrientationalBasis([1], [0], [0])
        self.assertRaises(ValueError, startvec, basis, Potential([1.0], [2], [0], [0]), SPLUS)

    def test_rhombic_potential_in_alpha(self):
        """A potential with M != 0 and K = 0 needs 2D integrals over alpha and beta."""
        basis = lmk_basis(2, Kmax=0)
        U = Potential([0.8, 0.3], [2, 2], [0, 2], [0, 0])
        vec, counts = startvec(basis, U, SPLUS)
        numpy.testing.assert_array_equal(counts, [0, 4, 0])
        reference, counts = startvec(basis, U, SPLUS, use_selection_rules=False)
        numpy.testing.assert_array_equal(counts, [0, 0, len(basis)])
        numpy.testing.assert_allclose(vec.toarray(), reference.toarray(), atol=1e-5)
        ori = vec.toarray().ravel()[2::4]
        numpy.testing.assert_array_equal(ori[basis.M % 2 == 1], 0.0)
        self.assertTrue(np.any(ori[basis.M == 2] != 0))

    def test_rhombic_potential_in_gamma(self):
        """A potential with K != 0 and M = 0 needs 2D integrals over gamma and beta."""
        basis = lmk_basis(2, Mmax=0)
        U = Potential([0.8, 0.3], [2, 2], [0, 0], [0, 2])
        vec, counts = startvec(basis, U, SPLUS)
        numpy.testing.assert_array_equal(counts, [0, 4, 0])
        reference, counts = startvec(basis, U, SPLUS, use_selection_rules=False)
        numpy.testing.assert_array_equal(counts, [0, 0, len(basis)])
        numpy.testing.assert_allclose(vec.toarray(), reference.toarray(), atol=1e-5)
        ori = vec.toarray().ravel()[2::4]
        self.assertTrue(np.any(ori[basis.K == 2] != 0))
