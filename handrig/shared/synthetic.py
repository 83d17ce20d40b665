"""
synthetic avatars, detections and cameras for tests and the demo script.

the avatar is a t-pose upper body in centimeters:
  Hips (0, 100, 0) → Spine (+20 y) → {Left,Right}Shoulder (±15 x)
  → UpperArm (±25) → ForeArm (±25) → Hand (±25)
so LeftHand sits at (90, 120, 0) and RightHand at (-90, 120, 0).
the mesh is one tube per arm plus a torso column, rigidly skinned to the
nearest arm bone.
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from ..core.landmarks import HandLandmarks
from ..core.projector import look_at, perspective_matrix
from ..core.skeleton import MAX_INFLUENCES, Bone, RigAsset, Skeleton, SkinnedMesh


HIPS_POSITION = (0.0, 100.0, 0.0)
SPINE_LENGTH = 20.0
SHOULDER_OFFSET = 15.0
ARM_SEGMENT = 25.0

TUBE_RADIUS = 3.0
TUBE_SEGMENTS = 8
TUBE_STEP = 2.5
HAND_OVERHANG = 20.0    # tube continues past the wrist to cover the hand


def build_test_skeleton(prefix: str = "", wrist_names: Optional[Dict[str, str]] = None) -> Skeleton:
    """
    t-pose skeleton, bind pose = current pose.

    args:
      prefix: prepended to every name (e.g. "mixamorig:")
      wrist_names: override the wrist names, {"left": "hand_l", ...}
    """
    wrist_names = wrist_names or {}
    bones = [
        Bone.at(prefix + "Hips", HIPS_POSITION),
        Bone.at(prefix + "Spine", (0.0, SPINE_LENGTH, 0.0), parent=0),
    ]
    for side, sign in (("left", 1.0), ("right", -1.0)):
        title = side.capitalize()
        parent = 1
        for name, offset in (("Shoulder", SHOULDER_OFFSET), ("UpperArm", ARM_SEGMENT), ("ForeArm", ARM_SEGMENT)):
            bones.append(Bone.at(prefix + title + name, (sign * offset, 0.0, 0.0), parent=parent))
            parent = len(bones) - 1
        wrist = wrist_names.get(side, prefix + title + "Hand")
        bones.append(Bone.at(wrist, (sign * ARM_SEGMENT, 0.0, 0.0), parent=parent))
    return Skeleton(bones)


def _tube(x_start: float, x_end: float, center_y: float) -> Tuple[np.ndarray, np.ndarray]:
    """open cylinder along x: rings of TUBE_SEGMENTS vertices, quads split into triangles."""
    xs = np.arange(min(x_start, x_end), max(x_start, x_end) + 1e-9, TUBE_STEP)
    angles = np.linspace(0.0, 2.0 * np.pi, TUBE_SEGMENTS, endpoint=False)
    ring = np.stack([np.zeros_like(angles), np.cos(angles) * TUBE_RADIUS, np.sin(angles) * TUBE_RADIUS], axis=1)

    vertices = np.concatenate([ring + [x, center_y, 0.0] for x in xs])
    faces = []
    for r in range(len(xs) - 1):
        for s in range(TUBE_SEGMENTS):
            a = r * TUBE_SEGMENTS + s
            b = r * TUBE_SEGMENTS + (s + 1) % TUBE_SEGMENTS
            c = a + TUBE_SEGMENTS
            d = b + TUBE_SEGMENTS
            faces.append([a, b, d])
            faces.append([a, d, c])
    return vertices, np.array(faces, dtype=np.int64)


def rigid_skin(vertices: np.ndarray, skeleton: Skeleton, bone_indices: Sequence[int]):
    """each vertex fully weighted to its nearest bone among bone_indices."""
    positions = skeleton.world_positions()[list(bone_indices)]
    d = np.linalg.norm(vertices[:, None, :] - positions[None, :, :], axis=2)
    nearest = np.asarray(bone_indices)[np.argmin(d, axis=1)]
    indices = np.zeros((len(vertices), MAX_INFLUENCES), dtype=np.int64)
    weights = np.zeros((len(vertices), MAX_INFLUENCES))
    indices[:, 0] = nearest
    weights[:, 0] = 1.0
    return indices, weights


def build_test_avatar(prefix: str = "", wrist_names: Optional[Dict[str, str]] = None,
                      with_faces: bool = True) -> RigAsset:
    """skeleton from build_test_skeleton() plus a rigidly skinned body mesh."""
    skeleton = build_test_skeleton(prefix, wrist_names)
    hips_y, shoulder_y = HIPS_POSITION[1], HIPS_POSITION[1] + SPINE_LENGTH
    reach = SHOULDER_OFFSET + 3 * ARM_SEGMENT + HAND_OVERHANG

    parts = [
        _tube(SHOULDER_OFFSET, reach, shoulder_y),
        _tube(-reach, -SHOULDER_OFFSET, shoulder_y),
    ]
    vertices, faces, offset = [], [], 0
    for v, f in parts:
        vertices.append(v)
        faces.append(f + offset)
        offset += len(v)

    # torso column between hips and shoulders
    torso = np.array([[0.0, y, z] for y in np.arange(hips_y, shoulder_y + 1e-9, TUBE_STEP) for z in (-5.0, 5.0)])
    vertices.append(torso)

    vertices = np.concatenate(vertices)
    faces = np.concatenate(faces)
    indices, weights = rigid_skin(vertices, skeleton, range(len(skeleton)))

    mesh = SkinnedMesh(
        vertices,
        skin_indices=indices,
        skin_weights=weights,
        faces=faces if with_faces else None,
        name="Body",
    )
    return RigAsset(skeleton=skeleton, meshes=[mesh], name="test_avatar")


# ============================================================
# detections
# ============================================================

# (dx, dy, z) per landmark in units of the hand scale, for a left hand with
# fingers pointing up in the image (y down); right hands mirror dx
_OPEN_HAND = np.array([
    [0.0, 0.8, 0.0],                                                    # wrist
    [0.3, 0.5, 0.02], [0.4, 0.3, 0.04], [0.45, 0.15, 0.06], [0.5, 0.0, 0.08],          # thumb
    [0.2, 0.3, 0.0], [0.22, 0.0, 0.02], [0.24, -0.25, 0.04], [0.25, -0.45, 0.06],      # index
    [0.0, 0.25, 0.0], [0.0, -0.1, 0.02], [0.0, -0.35, 0.04], [0.0, -0.55, 0.06],       # middle
    [-0.15, 0.3, 0.0], [-0.17, 0.05, 0.02], [-0.18, -0.2, 0.04], [-0.2, -0.4, 0.06],   # ring
    [-0.3, 0.4, 0.0], [-0.35, 0.2, 0.02], [-0.38, 0.0, 0.04], [-0.4, -0.15, 0.06],     # little
])


def synthetic_hand_landmarks(
    side: str = "left",
    confidence: float = 0.95,
    image_size: Tuple[int, int] = (512, 512),
    include_world: bool = True,
) -> HandLandmarks:
    """
    an open hand centered in the image, in pixels, mediapipe style.

    world landmarks (if requested) are metric-ish (0.2 per image width),
    wrist-relative and y-down like mediapipe's.
    """
    width, height = image_size
    cx, cy = width / 2.0, height / 2.0
    scale = width * 0.3
    x_dir = 1.0 if side.lower() == "left" else -1.0

    pts = np.empty((len(_OPEN_HAND), 3))
    pts[:, 0] = cx + x_dir * _OPEN_HAND[:, 0] * scale
    pts[:, 1] = cy + _OPEN_HAND[:, 1] * scale
    pts[:, 2] = _OPEN_HAND[:, 2]

    world = None
    if include_world:
        world = np.empty_like(pts)
        world[:, 0] = (pts[:, 0] - pts[0, 0]) / width * 0.2
        world[:, 1] = (pts[:, 1] - pts[0, 1]) / height * 0.2
        world[:, 2] = -pts[:, 2] * 0.2

    return HandLandmarks(
        landmarks=pts,
        handedness="Left" if side.lower() == "left" else "Right",
        confidence=confidence,
        world_landmarks=world,
        image_size=(width, height),
    )


def synthetic_camera(distance: float = 2.0, fov: float = 50.0) -> Tuple[np.ndarray, np.ndarray]:
    """(camera_world_matrix, projection_matrix) looking at the origin from +z."""
    camera_world = look_at((0.0, 0.0, distance), (0.0, 0.0, 0.0))
    projection = perspective_matrix(fov, 1.0, 0.1, 10.0)
    return camera_world, projection
