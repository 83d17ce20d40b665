"""
end-to-end tests for the rig orchestrator.
"""

import numpy as np
import pytest

from handrig import rig_hands
from handrig.core.bone_naming import finger_bone_name
from handrig.core.errors import DetectionInvalid, SkeletonInconsistent, WristNotFound
from handrig.core.landmarks import FINGERS
from handrig.core.orchestrator import HandRigger, RigOptions, RigStage
from handrig.core.skeleton import Bone, RigAsset, Skeleton, SkinnedMesh
from handrig.shared.synthetic import build_test_avatar, synthetic_camera, synthetic_hand_landmarks


LEFT_NAMES = {finger_bone_name("left", f, j) for f in FINGERS for j in range(3)}
RIGHT_NAMES = {finger_bone_name("right", f, j) for f in FINGERS for j in range(3)}


def _descends_from(skeleton, index, ancestor):
    current = skeleton.bones[index].parent
    while current >= 0:
        if current == ancestor:
            return True
        current = skeleton.bones[current].parent
    return False


def test_left_hand_adds_fifteen_bones():
    asset = build_test_avatar()
    hand = synthetic_hand_landmarks("left", confidence=0.95)
    result = HandRigger().rig(asset, hands=[hand])

    skeleton = asset.skeleton
    wrist = skeleton.find_bone_index("LeftHand")
    added = skeleton.names[10:]

    assert result.metadata["original_bone_count"] == 10
    assert result.metadata["added_bone_count"] == 15
    assert result.metadata["processing_time_ms"] >= 0
    assert result.stage == RigStage.DONE
    assert result.mutated_asset is asset
    assert set(added) == LEFT_NAMES
    assert all(name.startswith("left") for name in added)
    for i in range(10, 25):
        assert _descends_from(skeleton, i, wrist)
    for finger in FINGERS:
        proximal = skeleton.find_bone_index(finger_bone_name("left", finger, 0))
        assert skeleton.bones[proximal].parent == wrist

    per_hand = result.per_hand["left"]
    assert per_hand.bones == 15
    assert per_hand.detection_confidence == pytest.approx(0.95)
    assert per_hand.vertex_count > 0
    np.testing.assert_allclose(asset.meshes[0].weight_sums(), 1.0, atol=1e-9)


def test_new_bones_point_along_the_forearm():
    asset = build_test_avatar()
    rig_hands(asset, [synthetic_hand_landmarks("left")])
    world = asset.skeleton.world_positions()

    tip = world[asset.skeleton.find_bone_index("leftMiddleDistal")]
    assert tip[0] > 90.0
    # hand length is 0.65 of the 25cm forearm
    assert np.linalg.norm(tip - [90.0, 120.0, 0.0]) < 25 * 0.65


def test_low_confidence_hand_is_skipped():
    asset = build_test_avatar()
    hand = synthetic_hand_landmarks("left", confidence=0.5)
    result = HandRigger().rig(asset, hands=[hand])

    assert result.metadata["added_bone_count"] == 0
    assert len(asset.skeleton) == 10
    assert any("confidence" in issue for issue in result.issues)
    assert result.per_hand["left"].bones == 0
    assert result.stage == RigStage.DONE


def test_other_hand_proceeds_when_one_is_skipped():
    asset = build_test_avatar()
    hands = [
        synthetic_hand_landmarks("left", confidence=0.95),
        synthetic_hand_landmarks("right", confidence=0.4),
    ]
    result = HandRigger().rig(asset, hands=hands)

    assert set(asset.skeleton.names[10:]) == LEFT_NAMES
    assert result.per_hand["right"].bones == 0
    assert any("right hand skipped" in issue for issue in result.issues)


def test_both_hands():
    asset = build_test_avatar()
    hands = [synthetic_hand_landmarks("left"), synthetic_hand_landmarks("right")]
    result = HandRigger().rig(asset, hands=hands)

    assert result.metadata["added_bone_count"] == 30
    assert set(asset.skeleton.names[10:]) == LEFT_NAMES | RIGHT_NAMES
    right_wrist = asset.skeleton.find_bone_index("RightHand")
    proximal = asset.skeleton.find_bone_index("rightIndexProximal")
    assert asset.skeleton.bones[proximal].parent == right_wrist
    assert asset.skeleton.world_position(proximal)[0] < -90.0


def test_rerun_is_idempotent():
    asset = build_test_avatar()
    hands = [synthetic_hand_landmarks("left")]
    HandRigger().rig(asset, hands=hands)
    weights = asset.meshes[0].skin_weights.copy()

    again = HandRigger().rig(asset, hands=hands)

    assert again.metadata["added_bone_count"] == 0
    assert len(asset.skeleton) == 25
    np.testing.assert_array_equal(asset.meshes[0].skin_weights, weights)


def test_namespaced_wrist():
    asset = build_test_avatar(prefix="mixamorig:")
    result = HandRigger().rig(asset, hands=[synthetic_hand_landmarks("left")])

    wrist = asset.skeleton.find_bone_index("mixamorig:LeftHand")
    assert result.metadata["added_bone_count"] == 15
    proximal = asset.skeleton.find_bone_index("leftThumbProximal")
    assert asset.skeleton.bones[proximal].parent == wrist


def test_simple_strategy_without_hands():
    asset = build_test_avatar()
    result = rig_hands(asset, strategy="simple")

    assert result.metadata["added_bone_count"] == 4
    assert set(asset.skeleton.names[10:]) == {
        "LeftHand_Palm", "LeftHand_Fingers", "RightHand_Palm", "RightHand_Fingers",
    }
    assert result.per_hand["left"].detection_confidence is None
    np.testing.assert_allclose(asset.meshes[0].weight_sums(), 1.0, atol=1e-9)

    assert rig_hands(asset, strategy="simple").metadata["added_bone_count"] == 0


def test_simple_strategy_with_hands_only_rigs_their_sides():
    asset = build_test_avatar()
    result = rig_hands(asset, [synthetic_hand_landmarks("right")], strategy="simple")
    assert set(asset.skeleton.names[10:]) == {"RightHand_Palm", "RightHand_Fingers"}
    assert result.per_hand["right"].bones == 2


def test_camera_projection_path():
    asset = build_test_avatar()
    result = HandRigger().rig(asset, hands=[synthetic_hand_landmarks("left")], camera=synthetic_camera())

    assert result.metadata["added_bone_count"] == 15
    assert np.all(np.isfinite(asset.skeleton.world_positions()))
    wrist = asset.skeleton.world_position(asset.skeleton.find_bone_index("LeftHand"))
    tip = asset.skeleton.world_position(asset.skeleton.find_bone_index("leftMiddleDistal"))
    forearm = 25.0

    # sized to the avatar and pointing down the arm, not camera-space sized
    assert np.linalg.norm(tip - wrist) > 0.3 * forearm
    assert np.linalg.norm(tip - wrist) < 2.0 * forearm
    assert tip[0] > wrist[0]


def test_camera_and_landmark_placement_agree_in_size():
    sizes = []
    for camera in (None, synthetic_camera()):
        asset = build_test_avatar()
        HandRigger().rig(asset, hands=[synthetic_hand_landmarks("left")], camera=camera)
        wrist = asset.skeleton.world_position(asset.skeleton.find_bone_index("LeftHand"))
        tip = asset.skeleton.world_position(asset.skeleton.find_bone_index("leftMiddleDistal"))
        sizes.append(np.linalg.norm(tip - wrist))
    assert sizes[1] == pytest.approx(sizes[0], rel=0.25)


def test_degenerate_projection_is_reported():
    # projection whose inverse moves ndc x into w: the centered wrist lands on w = 0
    P = np.eye(4)
    P[[0, 3]] = P[[3, 0]]
    asset = build_test_avatar()
    result = HandRigger().rig(asset, hands=[synthetic_hand_landmarks("left")], camera=(np.eye(4), P))

    assert result.added_bone_count == 15
    assert any(i.startswith("degenerate projection") for i in result.issues)
    assert any(i.startswith("degenerate projection") for i in result.per_hand["left"].issues)
    assert np.all(np.isfinite(asset.skeleton.world_positions()))


def test_no_wrists_raises():
    skeleton = Skeleton([Bone.at("Root", (0, 0, 0)), Bone.at("Spine", (0, 1, 0), parent=0)])
    asset = RigAsset(skeleton=skeleton, meshes=[SkinnedMesh(np.zeros((3, 3)))])
    rigger = HandRigger()

    with pytest.raises(WristNotFound):
        rigger.rig(asset, hands=[synthetic_hand_landmarks("left")])
    assert rigger.stage == RigStage.NO_WRISTS_FOUND
    assert len(asset.skeleton) == 2


def test_missing_side_raises_only_when_nothing_resolves():
    hands = [synthetic_hand_landmarks("right")]
    asset = build_test_avatar(wrist_names={"right": "RightPalmHelper"})
    with pytest.raises(WristNotFound) as info:
        HandRigger().rig(asset, hands=hands)
    assert info.value.sides == ["right"]

    asset = build_test_avatar(wrist_names={"right": "RightPalmHelper"})
    result = HandRigger().rig(asset, hands=hands + [synthetic_hand_landmarks("left")])
    assert result.metadata["added_bone_count"] == 15
    assert any("no right wrist" in issue for issue in result.issues)


def test_commit_failure_leaves_asset_untouched():
    asset = build_test_avatar()
    asset.meshes[0].skin_weights = asset.meshes[0].skin_weights * 2.0  # already broken
    original = asset.skeleton

    with pytest.raises(SkeletonInconsistent):
        HandRigger().rig(asset, hands=[synthetic_hand_landmarks("left")])
    assert asset.skeleton is original
    assert len(asset.skeleton) == 10


def test_verbose_logging(capsys):
    asset = build_test_avatar()
    HandRigger(RigOptions(verbose=True)).rig(asset, hands=[synthetic_hand_landmarks("left")])
    out = capsys.readouterr().out
    assert "[handrig]" in out
    assert "stage: painting_weights" in out


def test_options_validation():
    with pytest.raises(ValueError):
        RigOptions(capture_resolution=500)
    with pytest.raises(ValueError):
        RigOptions(strategy="fancy")
    with pytest.raises(ValueError):
        RigOptions(max_influences=8)
    assert RigOptions(capture_resolution=1024).weight_config().max_influences == 4


def test_anatomical_needs_hands():
    with pytest.raises(DetectionInvalid) as info:
        HandRigger().rig(build_test_avatar())
    assert info.value.kind == "detection_invalid"
    assert isinstance(info.value, ValueError)
