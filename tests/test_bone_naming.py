"""
tests for bone name classification across rig conventions.
"""

import pytest

from handrig.core.bone_naming import (
    classify_bone_name,
    detect_side,
    finger_bone_name,
    hand_bone_names,
    simple_bone_names,
)


@pytest.mark.parametrize(
    "name, side",
    [
        ("LeftHand", "left"),
        ("RightHand", "right"),
        ("mixamorig:LeftHand", "left"),
        ("mixamorig9:RightHand", "right"),
        ("hand_l", "left"),
        ("Hand_R", "right"),
        ("Hand.L", "left"),
        ("hand.r", "right"),
        ("L_Hand", "left"),
        ("Bip01 L Hand", "left"),
        ("Bip01 R Hand", "right"),
        ("left_wrist", "left"),
        ("RightWrist", "right"),
    ],
)
def test_wrist_names(name, side):
    cls = classify_bone_name(name)
    assert cls.is_wrist
    assert cls.side == side


@pytest.mark.parametrize(
    "name",
    [
        "LeftHandIndex1",
        "mixamorig:RightHandThumb2",
        "LeftHandRing1",
        "hand_l_pinky_01",
        "LeftForeArm",
        "LeftHand_IK",
        "LeftHandIK",
        "HandIK_L",
        "IK_Hand_R",
        "RightHandTwist",
        "Hips",
        "Hand",              # no side
        "Left_Right_Hand",   # both sides
        "leftIndexProximal",
        "LeftHand_Palm",
        "LeftHand_Fingers",
    ],
)
def test_not_wrist_names(name):
    assert not classify_bone_name(name).is_wrist


def test_side_detection():
    assert detect_side("LeftShoulder") == "left"
    assert detect_side("upperarm_r") == "right"
    assert detect_side("Spine") is None
    assert detect_side("LeftRight") is None
    # letters inside words are not side tokens
    assert detect_side("Hair") is None
    assert detect_side("Neck") is None


def test_finger_bone_names():
    assert finger_bone_name("left", "index", 0) == "leftIndexProximal"
    assert finger_bone_name("right", "little", 2) == "rightLittleDistal"
    assert finger_bone_name("Left", "thumb", 1) == "leftThumbIntermediate"
    with pytest.raises(ValueError):
        finger_bone_name("left", "pinky", 0)


def test_hand_bone_names():
    names = hand_bone_names("right")
    assert names["wrist"] == "rightHand"
    assert names["middle"] == ["rightMiddleProximal", "rightMiddleIntermediate", "rightMiddleDistal"]


def test_simple_bone_names():
    assert simple_bone_names("mixamorig:LeftHand") == ("mixamorig:LeftHand_Palm", "mixamorig:LeftHand_Fingers")
