"""
wraps google's mediapipe hand tracking to turn camera frames into HandLandmarks.

the rig engine itself never calls a detector; this is the glue for callers
that start from images.
"""

from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from .landmarks import HAND_CONNECTIONS, HandLandmarks


# one mediapipe instance, created on first use (singleton pattern)
# reusing same instance is faster than creating new ones
_hands = None

MAX_NUM_HANDS = 2
MIN_DETECTION_CONFIDENCE = 0.5
MIN_TRACKING_CONFIDENCE = 0.5


def _get_hands():
    global _hands
    if _hands is None:
        _hands = mp.solutions.hands.Hands(
            static_image_mode=True,  # avatar captures are single images
            max_num_hands=MAX_NUM_HANDS,
            model_complexity=1,  # balance between speed and accuracy
            min_detection_confidence=MIN_DETECTION_CONFIDENCE,
            min_tracking_confidence=MIN_TRACKING_CONFIDENCE,
        )
    return _hands


def hands_from_results(results, width: int, height: int, flip_handedness: bool = False) -> List[HandLandmarks]:
    """
    convert a mediapipe Hands result into HandLandmarks, one per detected hand.

    image landmarks come back in pixels (mediapipe gives normalized 0-1),
    world landmarks stay metric. mediapipe labels handedness assuming a
    mirrored selfie image; pass flip_handedness=True for unmirrored captures.
    """
    if not results.multi_hand_landmarks:
        return []

    world = getattr(results, "multi_hand_world_landmarks", None) or []
    handedness = getattr(results, "multi_handedness", None) or []

    hands = []
    for i, hand_lm in enumerate(results.multi_hand_landmarks):
        pts = np.array([[p.x * width, p.y * height, p.z] for p in hand_lm.landmark], dtype=np.float64)

        world_pts = None
        if i < len(world):
            world_pts = np.array([[p.x, p.y, p.z] for p in world[i].landmark], dtype=np.float64)
            # reject unrealistic world landmarks (typical hand span ~0.2m)
            span = world_pts.max(axis=0) - world_pts.min(axis=0)
            if np.any(span > 2.0) or np.any(np.isnan(world_pts)):
                world_pts = None

        label, score = "Left", 0.0
        if i < len(handedness):
            cls = handedness[i].classification[0]
            label, score = cls.label, cls.score
        if flip_handedness:
            label = "Right" if label == "Left" else "Left"

        hands.append(HandLandmarks(
            landmarks=pts,
            handedness=label,
            confidence=score,
            world_landmarks=world_pts,
            image_size=(width, height),
        ))
    return hands


def detect_hands(frame_bgr: np.ndarray, flip_handedness: bool = False) -> List[HandLandmarks]:
    """
    find hands in a bgr frame. empty list if none (or no frame).
    """
    if frame_bgr is None or frame_bgr.size == 0:
        return []

    # mediapipe neural network expects rgb, opencv gives us bgr
    rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
    results = _get_hands().process(rgb)
    h, w = frame_bgr.shape[:2]
    return hands_from_results(results, w, h, flip_handedness=flip_handedness)


def draw_landmarks_on_frame(frame_bgr: np.ndarray, hand: Optional[HandLandmarks]) -> None:
    """
    draw bones and keypoints of one detection, with its confidence. modifies frame in-place.
    """
    if hand is None:
        return

    h, w = frame_bgr.shape[:2]
    pts = np.asarray(hand.landmarks)

    # connections first so dots appear on top
    for start_idx, end_idx in HAND_CONNECTIONS:
        if max(start_idx, end_idx) >= len(pts):
            continue
        cx1, cy1 = int(pts[start_idx, 0]), int(pts[start_idx, 1])
        cx2, cy2 = int(pts[end_idx, 0]), int(pts[end_idx, 1])
        if 0 <= cx1 < w and 0 <= cy1 < h and 0 <= cx2 < w and 0 <= cy2 < h:
            cv2.line(frame_bgr, (cx1, cy1), (cx2, cy2), (0, 255, 0), 2)

    for x, y, _ in pts:
        cx, cy = int(x), int(y)
        if 0 <= cx < w and 0 <= cy < h:
            cv2.circle(frame_bgr, (cx, cy), 4, (0, 255, 0), -1)

    cv2.putText(
        frame_bgr,
        f"{hand.handedness} {hand.confidence:.2f}",
        (10, 30),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.8,
        (0, 255, 0),
        2,
    )
