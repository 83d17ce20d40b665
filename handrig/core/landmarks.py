"""
21-point hand landmark model (mediapipe topology) and detection-quality checks.

landmark order:
  0: wrist
  1-4: thumb (CMC, MCP, IP, tip)
  5-8: index (MCP, PIP, DIP, tip)
  9-12: middle (MCP, PIP, DIP, tip)
  13-16: ring (MCP, PIP, DIP, tip)
  17-20: little / pinky (MCP, PIP, DIP, tip)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

import numpy as np

from .errors import DetectionInvalid


NUM_LANDMARKS = 21

HAND_LANDMARKS: Dict[str, int] = {
    "WRIST": 0,
    "THUMB_CMC": 1, "THUMB_MCP": 2, "THUMB_IP": 3, "THUMB_TIP": 4,
    "INDEX_MCP": 5, "INDEX_PIP": 6, "INDEX_DIP": 7, "INDEX_TIP": 8,
    "MIDDLE_MCP": 9, "MIDDLE_PIP": 10, "MIDDLE_DIP": 11, "MIDDLE_TIP": 12,
    "RING_MCP": 13, "RING_PIP": 14, "RING_DIP": 15, "RING_TIP": 16,
    "PINKY_MCP": 17, "PINKY_PIP": 18, "PINKY_DIP": 19, "PINKY_TIP": 20,
}

# finger order used everywhere (bone names, segments, structures)
FINGERS = ("thumb", "index", "middle", "ring", "little")

# landmark indices per finger, proximal → distal
FINGER_JOINTS: Dict[str, List[int]] = {
    "thumb": [1, 2, 3, 4],
    "index": [5, 6, 7, 8],
    "middle": [9, 10, 11, 12],
    "ring": [13, 14, 15, 16],
    "little": [17, 18, 19, 20],
}

# parent → child pairs, used for drawing
HAND_CONNECTIONS = [
    (0, 1), (1, 2), (2, 3), (3, 4),  # thumb
    (0, 5), (5, 6), (6, 7), (7, 8),  # index
    (0, 9), (9, 10), (10, 11), (11, 12),  # middle
    (0, 13), (13, 14), (14, 15), (15, 16),  # ring
    (0, 17), (17, 18), (18, 19), (19, 20),  # little
    (5, 9), (9, 13), (13, 17),  # palm
]

# ============================================================
# validation thresholds
# ============================================================

MIN_CONFIDENCE = 0.7        # detections below this are skipped, not failed

MIN_ASPECT_RATIO = 0.3      # bounding-box width / height
MAX_ASPECT_RATIO = 3.0      # anything outside is not a plausible hand


def _as_points(points) -> np.ndarray:
    """coerce a point list / dicts / array into an [N, 3] float array."""
    if isinstance(points, np.ndarray):
        arr = points.astype(np.float64)
    else:
        rows = []
        for p in points:
            if isinstance(p, dict):
                rows.append([p["x"], p["y"], p.get("z", 0.0)])
            elif hasattr(p, "x") and hasattr(p, "y"):
                rows.append([p.x, p.y, getattr(p, "z", 0.0)])
            else:
                rows.append(list(p))
        arr = np.asarray(rows, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] not in (2, 3):
        raise ValueError(f"expected [N, 3] points, got shape {arr.shape}")
    if arr.shape[1] == 2:
        arr = np.concatenate([arr, np.zeros((arr.shape[0], 1))], axis=1)
    return arr


@dataclass
class HandLandmarks:
    """
    one detected hand.

    landmarks are in image space (pixels, z is mediapipe's relative depth).
    world_landmarks, when present, are metric with the wrist at the origin.
    arrays are frozen after construction: detections are consumed, never edited.
    """

    landmarks: np.ndarray
    handedness: str = "Left"
    confidence: float = 1.0
    world_landmarks: Optional[np.ndarray] = None
    image_size: Optional[tuple] = None  # (width, height) the pixels refer to

    def __post_init__(self):
        self.landmarks = _as_points(self.landmarks)
        self.landmarks.setflags(write=False)
        if self.world_landmarks is not None:
            self.world_landmarks = _as_points(self.world_landmarks)
            self.world_landmarks.setflags(write=False)
        self.confidence = float(self.confidence)
        if self.handedness not in ("Left", "Right"):
            raise ValueError(f"handedness must be 'Left' or 'Right', got {self.handedness!r}")

    @property
    def side(self) -> str:
        """lowercase side used for bone names ("left" / "right")."""
        return self.handedness.lower()


class HandBounds(NamedTuple):
    min: np.ndarray
    max: np.ndarray


@dataclass
class DetectionValidation:
    is_valid: bool
    issues: List[str] = field(default_factory=list)

    def raise_for_issues(self) -> None:
        """turn a failed validation into DetectionInvalid (for callers that want a hard stop)."""
        if not self.is_valid:
            raise DetectionInvalid("invalid hand detection: " + "; ".join(self.issues), issues=self.issues)


def get_hand_bounds(points) -> HandBounds:
    """componentwise min / max of a point set."""
    pts = _as_points(points)
    if len(pts) == 0:
        zero = np.zeros(3)
        return HandBounds(zero, zero.copy())
    return HandBounds(pts.min(axis=0), pts.max(axis=0))


def validate_hand_detection(hand: HandLandmarks, min_confidence: float = MIN_CONFIDENCE) -> DetectionValidation:
    """
    check one detection. never raises; problems come back as issue strings.

    checks (in order):
      1. exactly 21 landmarks
      2. confidence >= min_confidence
      3. bounding-box aspect ratio within [0.3, 3.0]
      4. every coordinate finite
    """
    issues: List[str] = []
    pts = hand.landmarks

    if len(pts) != NUM_LANDMARKS:
        issues.append(f"missing landmarks: {len(pts)}/{NUM_LANDMARKS}")

    if not hand.confidence >= min_confidence:
        issues.append(f"low confidence: {hand.confidence * 100:.1f}%")

    if len(pts) > 0:
        bounds = get_hand_bounds(pts)
        width, height = (bounds.max - bounds.min)[:2]
        if height > 0:
            aspect = width / height
        else:
            aspect = float("inf")
        if not (MIN_ASPECT_RATIO <= aspect <= MAX_ASPECT_RATIO):
            issues.append("improbable hand proportions")

    if not np.all(np.isfinite(pts)):
        issues.append("non-finite landmark coordinates")

    return DetectionValidation(is_valid=not issues, issues=issues)


def get_normalized_landmarks(hand: HandLandmarks, width: float, height: float) -> np.ndarray:
    """pixels → [0, 1] image coords. z is already a relative depth, left alone."""
    if width <= 0 or height <= 0:
        raise ValueError(f"image dimensions must be positive, got {width}x{height}")
    normalized = np.array(hand.landmarks, dtype=np.float64)
    normalized[:, 0] /= width
    normalized[:, 1] /= height
    return normalized
