#! /usr/bin/env python

import doctest
import unittest

import numpy as np
import numpy.testing
from spinres import hamiltonians
from spinres.data import SpinSystem
from spinres.hamiltonians import sop, stev
from spinres.shared import constants as C


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(hamiltonians))
    return tests


def anticommutator(a, b):
    return a @ b + b @ a


class SpinOperatorTestCase(unittest.TestCase):
    """Test case for spin operators."""

    def test_commutation(self):
        for spin in [0.5, 1.0, 1.5, 3.5]:
            with self.subTest(spin):
                Sx, Sy, Sz = (sop([spin], 0, c) for c in "xyz")
                numpy.testing.assert_allclose(Sx @ Sy - Sy @ Sx, 1j * Sz, atol=1e-12)
                S2 = Sx @ Sx + Sy @ Sy + Sz @ Sz
                numpy.testing.assert_allclose(S2, spin * (spin + 1) * np.eye(int(2 * spin + 1)), atol=1e-12)

    def test_basis_order(self):
        """First spin varies slowest, m runs from s down to -s."""
        Sz = sop([0.5, 1.0], 1, "z")
        numpy.testing.assert_allclose(np.diag(Sz), [1, 0, -1, 1, 0, -1])
        Sz = sop([0.5, 1.0], 0, "z")
        numpy.testing.assert_allclose(np.diag(Sz), [0.5] * 3 + [-0.5] * 3)

    def test_raising(self):
        Sp = sop([0.5], 0, "+")
        numpy.testing.assert_allclose(Sp, [[0, 1], [0, 0]])
        numpy.testing.assert_allclose(sop([0.5], 0, "-"), Sp.T)

    def test_sparse(self):
        dense = sop([1.0, 0.5, 0.5], 2, "x")
        sparse = sop([1.0, 0.5, 0.5], 2, "x", sparse=True)
        numpy.testing.assert_allclose(sparse.toarray(), dense)

    def test_errors(self):
        self.assertRaises(ValueError, sop, [0.5], 1, "z")
        self.assertRaises(ValueError, sop, [0.5], 0, "q")


class StevensTestCase(unittest.TestCase):
    """Test case for extended Stevens operators."""

    def assert_operator(self, actual, expected):
        scale = np.abs(expected).max()
        numpy.testing.assert_allclose(actual, expected, rtol=1e-10, atol=1e-10 * scale)

    def test_second_rank(self):
        S = 1.5
        X = S * (S + 1)
        Sz, Sp, Sm = (sop([S], 0, c) for c in "z+-")
        self.assert_operator(stev([S], 2, 0), 3 * Sz @ Sz - X * np.eye(4))
        self.assert_operator(stev([S], 2, 2), (Sp @ Sp + Sm @ Sm) / 2)
        self.assert_operator(stev([S], 2, -2), (Sp @ Sp - Sm @ Sm) / 2j)
        self.assert_operator(stev([S], 2, 1), anticommutator(Sz, Sp + Sm) / 4)

    def test_O40(self):
        S = 2.5
        X = S * (S + 1)
        Sz = sop([S], 0, "z")
        Sz2 = Sz @ Sz
        expected = 35 * Sz2 @ Sz2 - (30 * X - 25) * Sz2 + (3 * X**2 - 6 * X) * np.eye(6)
        self.assert_operator(stev([S], 4, 0), expected)

    def test_O43(self):
        for S in np.arange(3, 7.5, 0.5):
            with self.subTest(S=S):
                Sz, Sp, Sm = (sop([S], 0, c) for c in "z+-")
                expected = anticommutator(Sz, Sp @ Sp @ Sp + Sm @ Sm @ Sm) / 4
                self.assert_operator(stev([S], 4, 3), expected)

    def test_O61(self):
        for S in np.arange(3, 7.5, 0.5):
            with self.subTest(S=S):
                X = S * (S + 1)
                Sz, Sp, Sm = (sop([S], 0, c) for c in "z+-")
                Sz3 = Sz @ Sz @ Sz
                a = 33 * Sz3 @ Sz @ Sz - (30 * X - 15) * Sz3 + (5 * X**2 - 10 * X + 12) * Sz
                self.assert_operator(stev([S], 6, 1), anticommutator(a, Sp + Sm) / 4)

    def test_hermitian(self):
        for k in range(0, 7):
            for q in range(-k, k + 1):
                with self.subTest(k=k, q=q):
                    O = stev([3.0], k, q)
                    numpy.testing.assert_allclose(O, O.conj().T, atol=1e-9)

    def test_high_rank_vanishes(self):
        numpy.testing.assert_array_equal(stev([1.0], 4, 0), np.zeros((3, 3)))

    def test_embedding(self):
        O = stev([0.5, 1.5], 2, 0, idx=1)
        numpy.testing.assert_allclose(O, np.kron(np.eye(2), stev([1.5], 2, 0)))
        sparse = stev([0.5, 1.5], 2, 0, idx=1, sparse=True)
        numpy.testing.assert_allclose(sparse.toarray(), O)

    def test_errors(self):
        self.assertRaises(ValueError, stev, [2.0], 13, 0)
        self.assertRaises(ValueError, stev, [2.0], 2, 3)
        self.assertRaises(ValueError, stev, [2.0], 2, 0, idx=1)


class ZeroFieldTestCase(unittest.TestCase):
    """Test case for `zfield`."""

    def test_axial_triplet(self):
        D = 300.0
        H = hamiltonians.zfield(SpinSystem(S=1, D=[D, 0]))
        numpy.testing.assert_allclose(np.diag(H).real, [D / 3, -2 * D / 3, D / 3], atol=1e-10)
        numpy.testing.assert_allclose(H, np.diag(np.diag(H)), atol=1e-10)

    def test_rhombic_levels(self):
        D, E = 300.0, 50.0
        H = hamiltonians.zfield(SpinSystem(S=1, D=[D, E]))
        numpy.testing.assert_allclose(
            np.linalg.eigvalsh(H), [-2 * D / 3, D / 3 - E, D / 3 + E], atol=1e-9
        )

    def test_doublet_has_no_splitting(self):
        H = hamiltonians.zfield(SpinSystem(S=0.5, D=[300, 0]))
        numpy.testing.assert_array_equal(H, np.zeros((2, 2)))

    def test_stevens_terms(self):
        B40 = 0.5
        sys = SpinSystem(S=2, stevens={4: [0, 0, 0, 0, B40, 0, 0, 0, 0]})
        numpy.testing.assert_allclose(hamiltonians.zfield(sys), B40 * stev([2.0], 4, 0), atol=1e-10)
        sys = SpinSystem(S=2, stevens={4: [B40]})
        numpy.testing.assert_allclose(hamiltonians.zfield(sys), B40 * stev([2.0], 4, 0), atol=1e-10)

    def test_stevens_skipped_with_full_D(self):
        """Stevens terms are ignored for an electron with a D tensor."""
        D = np.diag([0.0, -100.0, 100.0])
        sys = SpinSystem(S=2, D=D, stevens={4: [0.5]})
        self.assertTrue(sys.full_D)
        with self.assertLogs("spinres.hamiltonians", "DEBUG"):
            H = hamiltonians.zfield(sys)
        numpy.testing.assert_allclose(H, hamiltonians.zfield(SpinSystem(S=2, D=D)), atol=1e-10)

    def test_stevens_wrong_size(self):
        sys = SpinSystem(S=2, stevens={2: [1, 2]})
        self.assertRaises(ValueError, hamiltonians.zfield, sys)

    def test_cubic_terms(self):
        a, F = 30.0, 12.0
        H = hamiltonians.zfield(SpinSystem(S=2.5, aF=[a, F]))
        O40 = stev([2.5], 4, 0)
        O44 = stev([2.5], 4, 4)
        expected = F / 180 * O40 + a / 120 * (O40 + 5 * O44)
        numpy.testing.assert_allclose(H, expected, atol=1e-10)

    def test_cubic_terms_wrong_frame(self):
        sys = SpinSystem(S=2.5, aF=[30, 0], a_frame=2)
        self.assertRaises(ValueError, hamiltonians.zfield, sys)

    def test_electron_selection(self):
        sys = SpinSystem(S=[1, 1], g=[2, 2], D=[[300, 0], [100, 0]])
        H0 = hamiltonians.zfield(sys, electrons=[0])
        H1 = hamiltonians.zfield(sys, electrons=[1])
        numpy.testing.assert_allclose(hamiltonians.zfield(sys), H0 + H1, atol=1e-10)
        self.assertRaises(ValueError, hamiltonians.zfield, sys, electrons=[2])


class ZeemanHyperfineTestCase(unittest.TestCase):
    """Test case for `zeeman` and `hfine`."""

    def test_electron_zeeman(self):
        B = 340.0
        H = hamiltonians.zeeman(SpinSystem(g=2.0), [0, 0, B])
        splitting = H[0, 0].real - H[1, 1].real
        self.assertAlmostEqual(splitting, 2.0 * C.mu_B * B * 1e-3 / C.h / 1e6)

    def test_field_direction(self):
        sys = SpinSystem(g=[2.0, 2.0, 2.3])
        H = hamiltonians.zeeman(sys, [100.0, 0, 0])
        levels = np.linalg.eigvalsh(H)
        self.assertAlmostEqual(levels[1] - levels[0], 2.0 * C.mu_B * 0.1 / C.h / 1e6)

    def test_nuclear_zeeman(self):
        B = 340.0
        sys = SpinSystem(g=2.0, nucs="1H", A=0)
        H = hamiltonians.zeeman(sys, [0, 0, B])
        nuclear = H[0, 0].real - H[1, 1].real
        gn = 5.585694702
        self.assertAlmostEqual(nuclear, -gn * C.mu_N * B * 1e-3 / C.h / 1e6)

    def test_wrong_field(self):
        self.assertRaises(ValueError, hamiltonians.zeeman, SpinSystem(), [0, 1])

    def test_isotropic_hyperfine(self):
        A = 50.0
        H = hamiltonians.hfine(SpinSystem(nucs="1H", A=A))
        numpy.testing.assert_allclose(
            np.linalg.eigvalsh(H), [-3 * A / 4, A / 4, A / 4, A / 4], atol=1e-10
        )

    def test_anisotropic_hyperfine(self):
        A = [10.0, 20.0, 30.0]
        sys = SpinSystem(nucs="14N", A=A)
        H = hamiltonians.hfine(sys)
        expected = sum(
            a * sop(sys.spins, 0, c) @ sop(sys.spins, 1, c) for a, c in zip(A, "xyz")
        )
        numpy.testing.assert_allclose(H, expected, atol=1e-12)
