#!/usr/bin/env python
"""Hidden Markov models of side-chain dihedral trajectories.

Rotameric states of a spin label are modelled as the hidden states of
a Markov chain observed through the dihedral angles of a molecular
dynamics (MD) trajectory.  Each state emits a product of independent
von Mises distributions, one per dihedral.  The model is initialised
by k-means clustering and refined with the Baum-Welch algorithm; the
most likely state sequence follows from the Viterbi algorithm.
"""

import logging
from typing import Optional

import numpy as np
from scipy.special import i0e
from sklearn.cluster import KMeans
from tqdm import tqdm

from .utils import as_magnitude

logger = logging.getLogger(__name__)


class HMMOptions:
    """Options of `mdhmm`.

    Args:
        n_trials (int): Number of k-means restarts.
        max_iter (int): Maximum number of Baum-Welch iterations.
        tol (float): Convergence threshold of the log-likelihood gain.
        seed (int): Random seed of the k-means initialisation.
        verbosity (int): 0 is silent, larger values show progress.
    """

    def __init__(
        self,
        n_trials: int = 10,
        max_iter: int = 200,
        tol: float = 1e-6,
        seed: Optional[int] = 0,
        verbosity: int = 0,
    ):
        self.n_trials = n_trials
        self.max_iter = max_iter
        self.tol = tol
        self.seed = seed
        self.verbosity = verbosity


class HMMResult:
    """Fitted hidden Markov model.

    Attributes:
        trans_prob (np.ndarray): Row-stochastic transition matrix
            for one time step `tau`.
        eq_distr (np.ndarray): Equilibrium (stationary) distribution.
        mu (np.ndarray): Von Mises centres, ``(nStates, nDihedrals)``.
        kappa (np.ndarray): Von Mises concentrations, same shape.
        initial_distr (np.ndarray): Initial state distribution.
        viterbi_traj (np.ndarray): Most likely state per frame,
            ``(nFrames, nTraj)``.
        log_likelihood (float): Log-likelihood of the data.
        tau (float): Time step of the model (s).
        relax_times (np.ndarray): Relaxation times (s) from the
            eigenvalues of `trans_prob`, slowest first.
    """

    def __init__(self, **kwargs):
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __repr__(self) -> str:
        lines = [
            f"States: {len(self.eq_distr)}",
            f"Equilibrium distribution: {np.round(self.eq_distr, 4).tolist()}",
            f"Time step: {self.tau} s",
            f"Log-likelihood: {self.log_likelihood}",
        ]
        return "\n".join(lines)


def _inverse_a1(R: np.ndarray) -> np.ndarray:
    """Concentration from the mean resultant length (Best and Fisher)."""
    R = np.clip(R, 0.0, 1 - 1e-12)
    return np.where(
        R < 0.53,
        2 * R + R**3 + 5 * R**5 / 6,
        np.where(R < 0.85, -0.4 + 1.39 * R + 0.43 / (1 - R), 1 / (R**3 - 4 * R**2 + 3 * R)),
    )


def _von_mises_fit(X: np.ndarray, W: np.ndarray):
    """Weighted von Mises parameters per state and dihedral."""
    C = W.T @ np.cos(X)
    S = W.T @ np.sin(X)
    mu = np.arctan2(S, C)
    total = W.sum(axis=0)[:, np.newaxis]
    R = np.sqrt(C**2 + S**2) / np.where(total > 0, total, 1)
    return mu, _inverse_a1(R)


def _log_emission(X: np.ndarray, mu: np.ndarray, kappa: np.ndarray) -> np.ndarray:
    """Log-density of each frame in each state, ``(nFrames, nStates)``."""
    diff = X[:, np.newaxis, :] - mu[np.newaxis]
    log_norm = np.log(2 * np.pi * i0e(kappa)) + kappa
    return np.sum(kappa * np.cos(diff) - log_norm, axis=-1)


def _forward_backward(logb: np.ndarray, A: np.ndarray, pi: np.ndarray):
    """Scaled forward-backward pass of one trajectory."""
    T, n = logb.shape
    shift = logb.max(axis=1, keepdims=True)
    b = np.exp(logb - shift)

    alpha = np.empty((T, n))
    c = np.empty(T)
    alpha[0] = pi * b[0]
    c[0] = alpha[0].sum()
    alpha[0] /= c[0]
    for t in range(1, T):
        alpha[t] = (alpha[t - 1] @ A) * b[t]
        c[t] = alpha[t].sum()
        alpha[t] /= c[t]

    beta = np.empty((T, n))
    beta[-1] = 1.0
    for t in range(T - 2, -1, -1):
        beta[t] = A @ (b[t + 1] * beta[t + 1]) / c[t + 1]

    gamma = alpha * beta
    Y = b[1:] * beta[1:] / c[1:, np.newaxis]
    xi = A * (alpha[:-1].T @ Y)
    log_likelihood = np.log(c).sum() + shift.sum()
    return gamma, xi, log_likelihood


def _viterbi(logb: np.ndarray, A: np.ndarray, pi: np.ndarray) -> np.ndarray:
    """Most likely state sequence of one trajectory."""
    T, n = logb.shape
    with np.errstate(divide="ignore"):
        logA = np.log(A)
        delta = np.log(pi) + logb[0]
    psi = np.zeros((T, n), dtype=int)
    for t in range(1, T):
        scores = delta[:, np.newaxis] + logA
        psi[t] = np.argmax(scores, axis=0)
        delta = scores[psi[t], np.arange(n)] + logb[t]
    path = np.empty(T, dtype=int)
    path[-1] = np.argmax(delta)
    for t in range(T - 1, 0, -1):
        path[t - 1] = psi[t, path[t]]
    return path


def _stationary(A: np.ndarray) -> np.ndarray:
    eigvals, eigvecs = np.linalg.eig(A.T)
    v = np.real(eigvecs[:, np.argmin(np.abs(eigvals - 1))])
    return v / v.sum()


def mdhmm(dihedrals, dt, n_states: int, n_lag: int, opt: Optional[HMMOptions] = None) -> HMMResult:
    """Fit a hidden Markov model to MD dihedral trajectories.

    Args:
        dihedrals (np.ndarray): Dihedral angles (radians),
            ``(nDihedrals, nSteps)`` or ``(nDihedrals, nSteps, nTraj)``.
        dt (float | pint.Quantity): MD time step (s).
        n_states (int): Number of hidden states.
        n_lag (int): Subsampling interval; the model time step is
            ``dt * n_lag``.
        opt (HMMOptions): Fit options.

    Returns:
        HMMResult: The fitted model with states sorted by decreasing
        equilibrium population.
    """
    opt = HMMOptions() if opt is None else opt
    dihedrals = np.asarray(dihedrals, dtype=float)
    if dihedrals.ndim == 2:
        dihedrals = dihedrals[:, :, np.newaxis]
    if dihedrals.ndim != 3:
        raise ValueError(
            "Dihedrals must have shape (nDihedrals, nSteps) or (nDihedrals, nSteps, nTraj)."
        )
    if int(n_lag) != n_lag or n_lag < 1:
        raise ValueError(f"n_lag must be a positive integer, got {n_lag}.")
    n_lag = int(n_lag)
    tau = as_magnitude(dt, "s") * n_lag

    trajs = [dihedrals[:, ::n_lag, i].T for i in range(dihedrals.shape[2])]
    X = np.vstack(trajs)
    if len(X) < n_states:
        lines = [
            f"Only {len(X)} frames after subsampling every {n_lag} steps.",
            f"At least n_states={n_states} frames are needed.",
        ]
        raise ValueError("\n".join(lines))
    bounds = np.cumsum([0] + [len(x) for x in trajs])

    features = np.hstack([np.cos(X), np.sin(X)])
    kmeans = KMeans(n_clusters=n_states, n_init=opt.n_trials, random_state=opt.seed)
    labels = kmeans.fit_predict(features)

    W = np.eye(n_states)[labels]
    mu, kappa = _von_mises_fit(X, W)
    counts = np.ones((n_states, n_states))
    for start, stop in zip(bounds[:-1], bounds[1:]):
        np.add.at(counts, (labels[start : stop - 1], labels[start + 1 : stop]), 1)
    A = counts / counts.sum(axis=1, keepdims=True)
    pi = np.bincount(labels[bounds[:-1]], minlength=n_states) + 1.0
    pi /= pi.sum()
    logger.info(
        "HMM with %d states, %d dihedrals, %d frames in %d trajectories",
        n_states,
        X.shape[1],
        len(X),
        len(trajs),
    )

    log_likelihood = -np.inf
    for iteration in tqdm(range(opt.max_iter), disable=opt.verbosity == 0, desc="Baum-Welch"):
        logb = _log_emission(X, mu, kappa)
        xi_sum = np.zeros((n_states, n_states))
        pi_sum = np.zeros(n_states)
        gammas = []
        total = 0.0
        for start, stop in zip(bounds[:-1], bounds[1:]):
            gamma, xi, ll = _forward_backward(logb[start:stop], A, pi)
            gammas.append(gamma)
            xi_sum += xi
            pi_sum += gamma[0]
            total += ll

        gain = total - log_likelihood
        log_likelihood = total
        logger.debug("iteration %d: log-likelihood %.6f", iteration, total)

        rows = xi_sum.sum(axis=1, keepdims=True)
        A = np.where(rows > 0, xi_sum / np.where(rows > 0, rows, 1), A)
        pi = pi_sum / pi_sum.sum()
        mu, kappa = _von_mises_fit(X, np.vstack(gammas))
        if gain < opt.tol:
            logger.info("Baum-Welch converged after %d iterations", iteration + 1)
            break
    else:
        logger.info("Baum-Welch stopped after %d iterations", opt.max_iter)

    eq_distr = _stationary(A)
    order = np.argsort(-eq_distr, kind="stable")
    A = A[np.ix_(order, order)]
    eq_distr = eq_distr[order]
    pi = pi[order]
    mu = mu[order]
    kappa = kappa[order]

    logb = _log_emission(X, mu, kappa)
    viterbi = [_viterbi(logb[start:stop], A, pi) for start, stop in zip(bounds[:-1], bounds[1:])]

    eigvals = np.linalg.eigvals(A)
    moduli = np.sort(np.abs(eigvals))[::-1][1:]
    moduli = moduli[(moduli > 0) & (moduli < 1)]
    relax_times = -tau / np.log(moduli)

    return HMMResult(
        trans_prob=A,
        eq_distr=eq_distr,
        mu=mu,
        kappa=kappa,
        initial_distr=pi,
        viterbi_traj=np.stack(viterbi, axis=1),
        log_likelihood=log_likelihood,
        tau=tau,
        relax_times=relax_times,
    )
