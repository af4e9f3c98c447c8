#!/usr/bin/env python
"""
Euler-angle rotations, polar-angle vectors and quaternions.

Rotation matrices follow the zyz Euler convention with passive
rotations: the rows of ``erot(angles)`` are the axes of the rotated
frame expressed in the original frame.  In particular the third row of
``erot([phi, theta, chi])`` is the direction of a magnetic field with
polar angles ``(phi, theta)`` in the molecular frame.

Quaternions are stored as ``[w, x, y, z]`` (scalar first) along the
last axis of an array of any leading shape.

Main functions:
    - `erot(angles, rows=False)`: Euler angles to rotation matrix.
    - `eulang(R)`: rotation matrix to Euler angles.
    - `ang2vec(phi, theta)`, `vec2ang(v)`: polar angles ↔ unit vectors.
    - `quat2rotmat(q)`, `rotmat2quat(R)`: quaternions ↔ rotation matrices.
    - `quatmult(q1, q2)`, `quatinv(q)`, `quatvecmult(q, v)`:
      quaternion algebra and vector rotation.

Examples:
    >>> import numpy as np
    >>> R = erot([0.0, np.pi / 2, 0.0])
    >>> np.round(R[2], 12).tolist()
    [1.0, 0.0, 0.0]
"""

import numpy as np


def erot(angles, rows: bool = False):
    """Rotation matrix for zyz Euler angles.

    Args:
        angles (array_like): Euler angles ``[alpha, beta, gamma]`` in
            radians.  Two angles ``[alpha, beta]`` set ``gamma = 0``.

        rows (bool): Return the three rows of the matrix as separate
            vectors instead of the matrix.

    Returns:
        np.ndarray | tuple[np.ndarray, np.ndarray, np.ndarray]: The
        3x3 rotation matrix, or its rows if `rows` is set.
    """
    angles = np.asarray(angles, dtype=float).ravel()
    if angles.size == 2:
        angles = np.append(angles, 0.0)
    if angles.size != 3:
        raise ValueError(
            f"Three Euler angles are needed, got {angles.size} values."
        )
    sa, sb, sg = np.sin(angles)
    ca, cb, cg = np.cos(angles)
    R = np.array(
        [
            [ca * cb * cg - sa * sg, sa * cb * cg + ca * sg, -sb * cg],
            [-ca * cb * sg - sa * cg, -sa * cb * sg + ca * cg, sb * sg],
            [ca * sb, sa * sb, cb],
        ]
    )
    if rows:
        return R[0], R[1], R[2]
    return R


def eulang(R: np.ndarray, tol: float = 1e-6) -> np.ndarray:
    """Euler angles of a rotation matrix (inverse of `erot`).

    Args:
        R (np.ndarray): A 3x3 proper rotation matrix.

        tol (float): Tolerance of the orthogonality check.

    Returns:
        np.ndarray: Euler angles ``[alpha, beta, gamma]`` with alpha
        and gamma in ``[0, 2π)`` and beta in ``[0, π]``.  At
        ``beta = 0`` or ``π`` only alpha ± gamma is defined and gamma
        is set to zero.
    """
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3):
        raise ValueError(f"Rotation matrix must be 3x3, got {R.shape}.")
    if not np.allclose(R @ R.T, np.eye(3), atol=tol):
        raise ValueError("Matrix is not orthogonal.")
    if abs(np.linalg.det(R) - 1) > tol:
        raise ValueError("Matrix is not a proper rotation (det != 1).")

    beta = np.arccos(np.clip(R[2, 2], -1.0, 1.0))
    if abs(np.sin(beta)) > tol:
        alpha = np.arctan2(R[2, 1], R[2, 0])
        gamma = np.arctan2(R[1, 2], -R[0, 2])
    elif R[2, 2] > 0:
        alpha = np.arctan2(R[0, 1], R[0, 0])
        gamma = 0.0
    else:
        alpha = np.arctan2(-R[0, 1], -R[0, 0])
        gamma = 0.0
    return np.array([alpha % (2 * np.pi), beta, gamma % (2 * np.pi)])


def ang2vec(phi, theta) -> np.ndarray:
    """Unit vectors from polar angles.

    Args:
        phi (float | np.ndarray): Azimuthal angle(s) in radians.
        theta (float | np.ndarray): Polar angle(s) in radians.

    Returns:
        np.ndarray: Vectors of shape ``(..., 3)``.
    """
    phi, theta = np.broadcast_arrays(
        np.asarray(phi, dtype=float), np.asarray(theta, dtype=float)
    )
    return np.stack(
        [np.cos(phi) * np.sin(theta), np.sin(phi) * np.sin(theta), np.cos(theta)],
        axis=-1,
    )


def vec2ang(v):
    """Polar angles of vectors.

    Args:
        v (np.ndarray): Vector(s) of shape ``(..., 3)``, not
            necessarily normalised.

    Returns:
        (np.ndarray, np.ndarray): ``(phi, theta)`` with phi in
        ``[0, 2π)``.
    """
    v = np.asarray(v, dtype=float)
    norm = np.linalg.norm(v, axis=-1)
    if np.any(norm == 0):
        raise ValueError("Zero-length vectors have no direction.")
    phi = np.arctan2(v[..., 1], v[..., 0]) % (2 * np.pi)
    theta = np.arccos(np.clip(v[..., 2] / norm, -1.0, 1.0))
    return phi, theta


def quat2rotmat(q: np.ndarray) -> np.ndarray:
    """Rotation matrices from quaternions.

    The quaternions are normalised first, so any non-zero quaternion
    gives a proper rotation.

    Args:
        q (np.ndarray): Quaternions ``[w, x, y, z]``, shape ``(..., 4)``.

    Returns:
        np.ndarray: Rotation matrices of shape ``(..., 3, 3)`` acting
        on column vectors.
    """
    q = np.asarray(q, dtype=float)
    if q.shape[-1] != 4:
        raise ValueError(f"Quaternions need 4 components, got {q.shape[-1]}.")
    q = q / np.linalg.norm(q, axis=-1, keepdims=True)
    w, x, y, z = np.moveaxis(q, -1, 0)
    R = np.stack(
        [
            np.stack([1 - 2 * (y**2 + z**2), 2 * (x * y - w * z), 2 * (x * z + w * y)], -1),
            np.stack([2 * (x * y + w * z), 1 - 2 * (x**2 + z**2), 2 * (y * z - w * x)], -1),
            np.stack([2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x**2 + y**2)], -1),
        ],
        axis=-2,
    )
    return R


def rotmat2quat(R: np.ndarray) -> np.ndarray:
    """Quaternions from rotation matrices (inverse of `quat2rotmat`).

    Args:
        R (np.ndarray): Rotation matrices, shape ``(..., 3, 3)``.

    Returns:
        np.ndarray: Unit quaternions with ``w >= 0``, shape ``(..., 4)``.
    """
    R = np.asarray(R, dtype=float)
    if R.shape[-2:] != (3, 3):
        raise ValueError(f"Rotation matrices must be 3x3, got {R.shape[-2:]}.")
    flat = R.reshape(-1, 3, 3)
    q = np.empty((flat.shape[0], 4))
    for i, m in enumerate(flat):
        tr = np.trace(m)
        if tr > 0:
            s = 2 * np.sqrt(1 + tr)
            q[i] = [
                s / 4,
                (m[2, 1] - m[1, 2]) / s,
                (m[0, 2] - m[2, 0]) / s,
                (m[1, 0] - m[0, 1]) / s,
            ]
        elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
            s = 2 * np.sqrt(1 + m[0, 0] - m[1, 1] - m[2, 2])
            q[i] = [
                (m[2, 1] - m[1, 2]) / s,
                s / 4,
                (m[0, 1] + m[1, 0]) / s,
                (m[0, 2] + m[2, 0]) / s,
            ]
        elif m[1, 1] > m[2, 2]:
            s = 2 * np.sqrt(1 + m[1, 1] - m[0, 0] - m[2, 2])
            q[i] = [
                (m[0, 2] - m[2, 0]) / s,
                (m[0, 1] + m[1, 0]) / s,
                s / 4,
                (m[1, 2] + m[2, 1]) / s,
            ]
        else:
            s = 2 * np.sqrt(1 + m[2, 2] - m[0, 0] - m[1, 1])
            q[i] = [
                (m[1, 0] - m[0, 1]) / s,
                (m[0, 2] + m[2, 0]) / s,
                (m[1, 2] + m[2, 1]) / s,
                s / 4,
            ]
    q[q[:, 0] < 0] *= -1
    return q.reshape(R.shape[:-2] + (4,))


def quatmult(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Hamilton product ``q1 ⊗ q2`` (broadcasting over leading axes)."""
    w1, x1, y1, z1 = np.moveaxis(np.asarray(q1, dtype=float), -1, 0)
    w2, x2, y2, z2 = np.moveaxis(np.asarray(q2, dtype=float), -1, 0)
    return np.stack(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ],
        axis=-1,
    )


def quatinv(q: np.ndarray) -> np.ndarray:
    """Inverse quaternion (conjugate over squared norm)."""
    q = np.asarray(q, dtype=float)
    conj = q * np.array([1.0, -1.0, -1.0, -1.0])
    return conj / np.sum(q**2, axis=-1, keepdims=True)


def quatvecmult(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate vectors with quaternions, ``q ⊗ (0, v) ⊗ q⁻¹``.

    Args:
        q (np.ndarray): Quaternions, shape ``(..., 4)``.
        v (np.ndarray): Vectors, shape ``(..., 3)``; broadcast against `q`.

    Returns:
        np.ndarray: Rotated vectors, shape ``(..., 3)``.
    """
    v = np.asarray(v, dtype=float)
    pure = np.concatenate([np.zeros(v.shape[:-1] + (1,)), v], axis=-1)
    return quatmult(quatmult(q, pure), quatinv(q))[..., 1:]
