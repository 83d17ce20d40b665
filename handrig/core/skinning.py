"""
linear blend skinning with pytorch, used to check a rig actually deforms.

a freshly bound rig must reproduce its bind pose exactly:
  G_skin_j = G_j @ inverse_bind_j = I   for every bone j at rest
so skin_vertices(mesh, skeleton) == mesh.world_vertices() right after
rigging, and rotating one finger bone moves only the vertices it weights.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

import numpy as np
import torch

from .skeleton import Skeleton, SkinnedMesh


def rodrigues(theta: torch.Tensor) -> torch.Tensor:
    """
    axis-angle → rotation matrix (rodrigues formula).

    R = I + sin(θ)K + (1-cos(θ))K², K = skew matrix of the unit axis.

    args:
      theta: [B, 3] axis-angle vectors (direction = axis, magnitude = radians)

    returns:
      R: [B, 3, 3]
    """
    theta = theta.to(torch.float64)
    batch_size = theta.shape[0]

    # epsilon keeps zero rotations finite (they come out as identity)
    angle = torch.norm(theta + 1e-12, dim=1, keepdim=True)  # [B, 1]
    r = theta / angle
    rx, ry, rz = r[:, 0], r[:, 1], r[:, 2]

    K = torch.zeros((batch_size, 3, 3), dtype=torch.float64)
    K[:, 0, 1] = -rz
    K[:, 0, 2] = ry
    K[:, 1, 0] = rz
    K[:, 1, 2] = -rx
    K[:, 2, 0] = -ry
    K[:, 2, 1] = rx

    angle = angle.unsqueeze(-1)  # [B, 1, 1]
    I = torch.eye(3, dtype=torch.float64).unsqueeze(0).repeat(batch_size, 1, 1)
    return I + torch.sin(angle) * K + (1 - torch.cos(angle)) * torch.bmm(K, K)


def posed_world_matrices(skeleton: Skeleton, rotations: Optional[Dict[str, Sequence[float]]] = None) -> torch.Tensor:
    """
    forward kinematics with extra local rotations on named bones.

    G_i = G_parent @ T_local_i @ R_i, processed parents-first.

    args:
      skeleton: rig to pose
      rotations: {bone name: axis-angle [3]}; unnamed bones stay at rest

    returns:
      [N, 4, 4] world matrices (float64)
    """
    rotations = rotations or {}
    n = len(skeleton)
    local = torch.from_numpy(np.stack([b.matrix for b in skeleton.bones])).to(torch.float64) if n else torch.zeros((0, 4, 4), dtype=torch.float64)

    if rotations:
        names = skeleton.bone_index_map()
        for name, axis_angle in rotations.items():
            if name not in names:
                raise KeyError(f"no bone named {name!r}")
            R = torch.eye(4, dtype=torch.float64)
            R[:3, :3] = rodrigues(torch.tensor([axis_angle], dtype=torch.float64))[0]
            i = names[name]
            local[i] = local[i] @ R

    G = [None] * n
    for i in skeleton.depth_order():
        parent = skeleton.bones[i].parent
        G[i] = local[i] if parent < 0 else G[parent] @ local[i]
    return torch.stack(G) if n else local


def skin_vertices(mesh: SkinnedMesh, skeleton: Optional[Skeleton] = None,
                  world_matrices: Optional[torch.Tensor] = None) -> np.ndarray:
    """
    deform mesh vertices: v' = Σ_k w_k · (G_{i_k} @ inverse_bind_{i_k} @ v).

    args:
      mesh: skinned mesh (skin indices into skeleton)
      skeleton: defaults to the mesh's bound skeleton
      world_matrices: [N, 4, 4] posed bone matrices; rest pose when None

    returns:
      [V, 3] deformed world-space vertices
    """
    if skeleton is None:
        skeleton = mesh.skeleton
    if skeleton is None:
        raise ValueError(f"mesh {mesh.name!r} is not bound to a skeleton")

    if world_matrices is None:
        world_matrices = torch.from_numpy(skeleton.world_matrices())
    G = world_matrices.to(torch.float64)
    inverses = torch.from_numpy(np.stack(skeleton.bone_inverses)).to(torch.float64)

    # skinning transforms relative to bind pose: [N, 4, 4]
    G_skin = torch.einsum("nij,njk->nik", G, inverses)

    v = torch.from_numpy(mesh.world_vertices()).to(torch.float64)
    v_homo = torch.cat([v, torch.ones((v.shape[0], 1), dtype=torch.float64)], dim=1)  # [V, 4]

    idx = torch.from_numpy(mesh.skin_indices).long()   # [V, 4]
    W = torch.from_numpy(mesh.skin_weights).to(torch.float64)  # [V, 4]

    # gather each vertex's 4 bone transforms: [V, 4, 4, 4]
    mats = G_skin[idx]
    T = torch.einsum("vkij,vj->vki", mats, v_homo)  # [V, 4 slots, 4]
    out = torch.einsum("vk,vki->vi", W, T)  # [V, 4]
    return out[:, :3].numpy()
