"""
tests for torch linear blend skinning on rigged avatars.
"""

import numpy as np
import pytest
import torch

from handrig.core.orchestrator import HandRigger
from handrig.core.skeleton import SkinnedMesh
from handrig.core.skinning import posed_world_matrices, rodrigues, skin_vertices
from handrig.shared.synthetic import build_test_avatar, synthetic_hand_landmarks


def _rigged():
    asset = build_test_avatar()
    HandRigger().rig(asset, hands=[synthetic_hand_landmarks("left")])
    return asset


def test_rodrigues_identity_and_quarter_turn():
    R = rodrigues(torch.tensor([[0.0, 0.0, 0.0], [0.0, 0.0, np.pi / 2]]))
    np.testing.assert_allclose(R[0].numpy(), np.eye(3), atol=1e-9)
    np.testing.assert_allclose(R[1].numpy() @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], atol=1e-9)


def test_rest_pose_reproduces_mesh():
    asset = _rigged()
    mesh = asset.meshes[0]
    np.testing.assert_allclose(skin_vertices(mesh), mesh.world_vertices(), atol=1e-8)


def test_posed_matrices_without_rotations_match_rest():
    asset = _rigged()
    G = posed_world_matrices(asset.skeleton)
    np.testing.assert_allclose(G.numpy(), asset.skeleton.world_matrices(), atol=1e-12)


def test_bending_a_finger_moves_only_its_vertices():
    asset = _rigged()
    mesh = asset.meshes[0]
    bone = asset.skeleton.find_bone_index("leftIndexProximal")

    G = posed_world_matrices(asset.skeleton, {"leftIndexProximal": [0.0, 0.0, np.pi / 4]})
    posed = skin_vertices(mesh, world_matrices=G)
    moved = np.linalg.norm(posed - mesh.world_vertices(), axis=1)

    weighted = ((mesh.skin_indices == bone) & (mesh.skin_weights > 0)).any(axis=1)
    assert weighted.any()
    assert moved[weighted].max() > 1e-6

    right_side = mesh.vertices[:, 0] < 0
    assert moved[right_side].max() < 1e-9


def test_unknown_bone_raises():
    asset = _rigged()
    with pytest.raises(KeyError):
        posed_world_matrices(asset.skeleton, {"noSuchBone": [0.0, 0.0, 1.0]})


def test_unbound_mesh_raises():
    with pytest.raises(ValueError):
        skin_vertices(SkinnedMesh(np.zeros((2, 3))))
