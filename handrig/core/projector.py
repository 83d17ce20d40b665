"""
2d → 3d reconstruction of landmarks through camera matrices.

conventions (opengl / three-style):
  - normalized image coords: origin top-left, x right, y down, range [0, 1]
  - ndc: origin at center, +y up, range [-1, 1]
  - projection_matrix maps eye space → clip space
  - camera_world_matrix maps eye space → world space (camera pose)

pipeline per point:
  ndc = (x*2 - 1, 1 - y*2, depth)
  eye = P⁻¹ · [ndc; 1], then divide by w
  world = C · eye
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from .errors import ProjectionDegenerate
from .landmarks import NUM_LANDMARKS, FINGER_JOINTS, _as_points


DEFAULT_DEPTH = 0.5     # ndc depth used when no estimate is given
W_EPSILON = 1e-8        # |w| below this is treated as degenerate and clamped


# ============================================================
# camera helpers
# ============================================================

def perspective_matrix(fov_deg: float, aspect: float, near: float, far: float) -> np.ndarray:
    """opengl perspective projection (vertical fov in degrees)."""
    if near <= 0 or far <= near:
        raise ValueError(f"invalid clip planes: near={near}, far={far}")
    f = 1.0 / np.tan(np.radians(fov_deg) / 2.0)
    P = np.zeros((4, 4))
    P[0, 0] = f / aspect
    P[1, 1] = f
    P[2, 2] = (far + near) / (near - far)
    P[2, 3] = 2.0 * far * near / (near - far)
    P[3, 2] = -1.0
    return P


def look_at(eye: Sequence[float], target: Sequence[float], up: Sequence[float] = (0.0, 1.0, 0.0)) -> np.ndarray:
    """
    camera world matrix for a camera at `eye` looking at `target`.

    the camera looks down its local -z axis, so local +z points from target to eye.
    """
    eye = np.asarray(eye, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    up = np.asarray(up, dtype=np.float64)

    z = eye - target
    z /= np.linalg.norm(z)
    x = np.cross(up, z)
    if np.linalg.norm(x) < 1e-12:
        # up parallel to view direction, pick any perpendicular axis
        x = np.cross(np.array([0.0, 0.0, 1.0]) if abs(z[2]) < 0.9 else np.array([1.0, 0.0, 0.0]), z)
    x /= np.linalg.norm(x)
    y = np.cross(z, x)

    M = np.eye(4)
    M[:3, 0] = x
    M[:3, 1] = y
    M[:3, 2] = z
    M[:3, 3] = eye
    return M


def _clamp_w(w: np.ndarray, issues: Optional[List[str]], strict: bool, what: str) -> np.ndarray:
    """replace near-zero homogeneous divisors with a signed epsilon, reporting each one."""
    bad = np.abs(w) < W_EPSILON
    if not np.any(bad):
        return w
    indices = np.flatnonzero(bad).tolist()
    if strict:
        raise ProjectionDegenerate(f"degenerate {what}: w≈0 at points {indices}")
    if issues is not None:
        for i in indices:
            issues.append(f"degenerate projection at point {i}: w clamped to {W_EPSILON:g}")
    sign = np.where(w[bad] < 0, -1.0, 1.0)
    w = w.copy()
    w[bad] = sign * W_EPSILON
    return w


# ============================================================
# projection
# ============================================================

def convert_to_3d_coordinates(
    points_2d,
    camera_world_matrix: np.ndarray,
    projection_matrix: np.ndarray,
    depth_estimates: Optional[Sequence[float]] = None,
    issues: Optional[List[str]] = None,
    strict: bool = False,
) -> np.ndarray:
    """
    unproject normalized screen points into world space.

    args:
      points_2d: [N, 2] or [N, 3] normalized image coords (z ignored)
      camera_world_matrix: [4, 4] camera pose (eye → world)
      projection_matrix: [4, 4] projection (eye → clip)
      depth_estimates: optional [N] ndc depths; 0.5 when missing
      issues: list that receives a message per clamped point
      strict: raise ProjectionDegenerate instead of clamping

    returns:
      [N, 3] world-space points (same length as input, never NaN from w≈0)
    """
    pts = _as_points(points_2d)
    n = len(pts)
    if n == 0:
        return np.zeros((0, 3))

    depth = np.full(n, DEFAULT_DEPTH)
    if depth_estimates is not None:
        est = np.asarray(depth_estimates, dtype=np.float64).reshape(-1)
        m = min(n, len(est))
        depth[:m] = est[:m]

    # screen → ndc (flip y: image origin is top-left, ndc is +y up)
    ndc = np.stack([
        pts[:, 0] * 2.0 - 1.0,
        1.0 - pts[:, 1] * 2.0,
        depth,
        np.ones(n),
    ], axis=1)  # [N, 4]

    inv_proj = np.linalg.inv(np.asarray(projection_matrix, dtype=np.float64))
    eye = ndc @ inv_proj.T  # [N, 4]

    w = _clamp_w(eye[:, 3], issues, strict, "unprojection")
    eye = eye / w[:, None]
    eye[:, 3] = 1.0

    world = eye @ np.asarray(camera_world_matrix, dtype=np.float64).T
    return world[:, :3]


def project_to_screen(points_3d, camera_world_matrix: np.ndarray, projection_matrix: np.ndarray,
                      issues: Optional[List[str]] = None) -> np.ndarray:
    """
    world points → normalized screen coords. inverse of convert_to_3d_coordinates.

    returns:
      [N, 3] with (x, y) in image convention and z = ndc depth
    """
    pts = _as_points(points_3d)
    if len(pts) == 0:
        return np.zeros((0, 3))

    homo = np.concatenate([pts, np.ones((len(pts), 1))], axis=1)
    view = np.linalg.inv(np.asarray(camera_world_matrix, dtype=np.float64))
    clip = homo @ view.T @ np.asarray(projection_matrix, dtype=np.float64).T

    w = _clamp_w(clip[:, 3], issues, False, "projection")
    ndc = clip[:, :3] / w[:, None]

    screen = np.empty_like(ndc)
    screen[:, 0] = (ndc[:, 0] + 1.0) / 2.0
    screen[:, 1] = (1.0 - ndc[:, 1]) / 2.0
    screen[:, 2] = ndc[:, 2]
    return screen


# ============================================================
# depth heuristic
# ============================================================

# relative depth per joint (MCP → tip) for the four long fingers,
# and (CMC → tip) for the thumb, which sits forward of the palm plane
_FINGER_DEPTH_PROFILE = (0.01, 0.03, 0.05, 0.07)
_THUMB_DEPTH_PROFILE = (0.02, 0.04, 0.06, 0.08)


def estimate_landmark_depths() -> np.ndarray:
    """
    fallback relative depths when the detector gives no usable depth channel.

    this is an anatomical approximation of a relaxed, slightly cupped hand,
    not a measurement: wrist at 0, every finger rising monotonically toward
    its tip, thumb offset forward because it protrudes from the palm plane.

    returns:
      [21] depth values
    """
    depths = np.zeros(NUM_LANDMARKS)
    for finger, joints in FINGER_JOINTS.items():
        profile = _THUMB_DEPTH_PROFILE if finger == "thumb" else _FINGER_DEPTH_PROFILE
        depths[joints] = profile
    return depths
