"""
tests for the landmark model and detection validator.
"""

import numpy as np
import pytest

from handrig.core.errors import DetectionInvalid
from handrig.core.landmarks import (
    FINGER_JOINTS,
    HAND_LANDMARKS,
    NUM_LANDMARKS,
    HandLandmarks,
    get_hand_bounds,
    get_normalized_landmarks,
    validate_hand_detection,
)
from handrig.shared.synthetic import synthetic_hand_landmarks


def test_synthetic_hand_is_valid():
    """a clean open hand passes every check."""
    hand = synthetic_hand_landmarks("left")
    result = validate_hand_detection(hand)

    assert len(hand.landmarks) == NUM_LANDMARKS
    assert np.all(np.isfinite(hand.landmarks))
    assert result.is_valid
    assert result.issues == []


def test_landmark_index_table():
    assert HAND_LANDMARKS["WRIST"] == 0
    assert HAND_LANDMARKS["PINKY_TIP"] == 20
    covered = sorted(i for joints in FINGER_JOINTS.values() for i in joints)
    assert covered == list(range(1, 21))


def test_low_confidence_is_reported():
    hand = synthetic_hand_landmarks("left", confidence=0.5)
    result = validate_hand_detection(hand)

    assert not result.is_valid
    assert any("confidence" in issue for issue in result.issues)
    assert "low confidence: 50.0%" in result.issues


def test_confidence_threshold_is_inclusive():
    hand = synthetic_hand_landmarks("left", confidence=0.7)
    assert validate_hand_detection(hand).is_valid
    assert not validate_hand_detection(hand, min_confidence=0.8).is_valid


def test_missing_landmarks():
    full = synthetic_hand_landmarks("left")
    partial = HandLandmarks(full.landmarks[:15], handedness="Left", confidence=0.95)
    result = validate_hand_detection(partial)

    assert not result.is_valid
    assert "missing landmarks: 15/21" in result.issues


def test_improbable_proportions():
    pts = np.array(synthetic_hand_landmarks("left").landmarks)
    pts[:, 1] = 200.0 + pts[:, 1] * 0.01  # squash to a sliver
    result = validate_hand_detection(HandLandmarks(pts, confidence=0.95))

    assert not result.is_valid
    assert "improbable hand proportions" in result.issues


def test_zero_height_is_improbable():
    pts = np.array(synthetic_hand_landmarks("left").landmarks)
    pts[:, 1] = 100.0
    result = validate_hand_detection(HandLandmarks(pts, confidence=0.95))
    assert "improbable hand proportions" in result.issues


def test_non_finite_coordinates():
    pts = np.array(synthetic_hand_landmarks("left").landmarks)
    pts[3, 0] = np.nan
    result = validate_hand_detection(HandLandmarks(pts, confidence=0.95))

    assert not result.is_valid
    assert "non-finite landmark coordinates" in result.issues


def test_validator_never_raises_on_empty():
    result = validate_hand_detection(HandLandmarks(np.zeros((0, 3)), confidence=0.9))
    assert not result.is_valid
    assert "missing landmarks: 0/21" in result.issues


def test_landmarks_are_read_only():
    hand = synthetic_hand_landmarks("left")
    with pytest.raises(ValueError):
        hand.landmarks[0, 0] = 1.0
    with pytest.raises(ValueError):
        hand.world_landmarks[0, 0] = 1.0


def test_handedness_must_be_left_or_right():
    with pytest.raises(ValueError):
        HandLandmarks(np.zeros((21, 3)), handedness="left")
    assert HandLandmarks(np.zeros((21, 3)), handedness="Right").side == "right"


def test_accepts_point_dicts_and_2d_points():
    hand = HandLandmarks([{"x": 1.0, "y": 2.0}, {"x": 3.0, "y": 4.0, "z": 0.5}])
    assert hand.landmarks.shape == (2, 3)
    assert hand.landmarks[0, 2] == 0.0
    assert hand.landmarks[1, 2] == 0.5

    flat = HandLandmarks(np.array([[1.0, 2.0], [3.0, 4.0]]))
    assert flat.landmarks.shape == (2, 3)


def test_hand_bounds():
    bounds = get_hand_bounds([[0, 5, 1], [2, -1, 3], [1, 1, -2]])
    np.testing.assert_allclose(bounds.min, [0, -1, -2])
    np.testing.assert_allclose(bounds.max, [2, 5, 3])


def test_normalized_landmarks():
    hand = synthetic_hand_landmarks("left", image_size=(512, 256))
    normalized = get_normalized_landmarks(hand, 512, 256)

    np.testing.assert_allclose(normalized[:, 0], hand.landmarks[:, 0] / 512)
    np.testing.assert_allclose(normalized[:, 1], hand.landmarks[:, 1] / 256)
    np.testing.assert_allclose(normalized[:, 2], hand.landmarks[:, 2])
    assert normalized[0, 0] == pytest.approx(0.5)


def test_normalized_landmarks_rejects_bad_size():
    hand = synthetic_hand_landmarks("left")
    with pytest.raises(ValueError):
        get_normalized_landmarks(hand, 0, 512)


def test_raise_for_issues():
    validate_hand_detection(synthetic_hand_landmarks("left")).raise_for_issues()

    result = validate_hand_detection(synthetic_hand_landmarks("left", confidence=0.2))
    with pytest.raises(DetectionInvalid) as info:
        result.raise_for_issues()
    assert info.value.kind == "detection_invalid"
    assert info.value.issues == result.issues
