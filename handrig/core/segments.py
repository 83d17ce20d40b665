"""
groups the 21 landmarks into anatomical segments and anchors them at a wrist bone.

pure indexing: correctness relies on the detector keeping the 21-point topology.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np

from .landmarks import FINGER_JOINTS, FINGERS, HAND_LANDMARKS, NUM_LANDMARKS, HandLandmarks, _as_points


# wrist, thumb CMC, index / middle / ring / pinky MCP
PALM_INDICES = [
    HAND_LANDMARKS["WRIST"],
    HAND_LANDMARKS["THUMB_CMC"],
    HAND_LANDMARKS["INDEX_MCP"],
    HAND_LANDMARKS["MIDDLE_MCP"],
    HAND_LANDMARKS["RING_MCP"],
    HAND_LANDMARKS["PINKY_MCP"],
]

_MCP_INDICES = PALM_INDICES[2:]


def get_finger_segments(hand: HandLandmarks) -> Dict[str, np.ndarray]:
    """
    split a detection into palm + five finger segments.

    returns:
      {"palm": [6, 3], "thumb": [4, 3], "index": [4, 3], "middle": [4, 3],
       "ring": [4, 3], "little": [4, 3]}
    """
    pts = np.asarray(hand.landmarks)
    if len(pts) != NUM_LANDMARKS:
        raise ValueError(f"expected {NUM_LANDMARKS} landmarks, got {len(pts)}")

    segments = {"palm": pts[PALM_INDICES].copy()}
    for finger in FINGERS:
        segments[finger] = pts[FINGER_JOINTS[finger]].copy()
    return segments


def palm_center(points) -> np.ndarray:
    """average of the four finger MCP joints."""
    pts = _as_points(points)
    return pts[_MCP_INDICES].mean(axis=0)


def landmark_hand_length(points) -> float:
    """wrist → middle MCP → ... → middle tip, summed along the chain."""
    pts = _as_points(points)
    chain = pts[[0] + FINGER_JOINTS["middle"]]
    return float(np.linalg.norm(np.diff(chain, axis=0), axis=1).sum())


@dataclass
class BonePositions:
    """world-space joint positions for one hand, anchored at its wrist bone."""

    side: str
    wrist: np.ndarray
    palm_center: np.ndarray
    fingers: Dict[str, np.ndarray] = field(default_factory=dict)  # finger → [4, 3]

    def all_points(self) -> np.ndarray:
        """back to a [21, 3] array in landmark order."""
        out = np.zeros((NUM_LANDMARKS, 3))
        out[0] = self.wrist
        for finger in FINGERS:
            out[FINGER_JOINTS[finger]] = self.fingers[finger]
        return out


def _relative_points(hand: HandLandmarks, points: Optional[np.ndarray]) -> np.ndarray:
    """
    wrist-relative points in a y-up frame.

    preference: explicit (already projected) world points, then metric world
    landmarks, then image landmarks scaled by the hand's own 2d extent.
    """
    if points is not None:
        pts = _as_points(points)
        return pts - pts[0]

    if hand.world_landmarks is not None and len(hand.world_landmarks) == NUM_LANDMARKS:
        pts = np.array(hand.world_landmarks, dtype=np.float64)
        rel = pts - pts[0]
        # mediapipe world frame is y-down, z toward the camera is negative
        rel[:, 1] *= -1.0
        rel[:, 2] *= -1.0
        return rel

    pts = np.array(hand.landmarks, dtype=np.float64)
    rel = pts - pts[0]
    extent = float(np.max(pts[:, :2].max(axis=0) - pts[:, :2].min(axis=0)))
    if extent <= 0:
        extent = 1.0
    rel[:, :2] /= extent
    if hand.image_size:
        # mediapipe z is in units of image width
        rel[:, 2] *= hand.image_size[0] / extent
    rel[:, 1] *= -1.0
    rel[:, 2] *= -1.0
    return rel


def calculate_bone_positions(
    hand: HandLandmarks,
    side: str,
    wrist_position: Optional[Sequence[float]] = None,
    scale: float = 1.0,
    points: Optional[np.ndarray] = None,
) -> BonePositions:
    """
    anchor one hand's measured joints at a wrist bone.

    args:
      hand: the detection
      side: "left" / "right" side being rigged; if it differs from the
            detection's handedness, x is mirrored
      wrist_position: world position of the wrist bone (origin if None)
      scale: landmark units → skeleton units
      points: optional [21, 3] world points (e.g. from convert_to_3d_coordinates)

    returns:
      BonePositions with wrist, palm center and per-finger [4, 3] arrays
    """
    if len(hand.landmarks) != NUM_LANDMARKS:
        raise ValueError(f"expected {NUM_LANDMARKS} landmarks, got {len(hand.landmarks)}")

    rel = _relative_points(hand, points) * float(scale)
    if side.lower() != hand.side:
        rel[:, 0] *= -1.0

    anchor = np.zeros(3) if wrist_position is None else np.asarray(wrist_position, dtype=np.float64)
    world = rel + anchor

    return BonePositions(
        side=side.lower(),
        wrist=world[0].copy(),
        palm_center=palm_center(world),
        fingers={finger: world[FINGER_JOINTS[finger]].copy() for finger in FINGERS},
    )
