"""
append-only skeleton mutation with validate-then-commit semantics.

new bones only ever go to the end of the bone list; original bones keep
their object identity, index and inverse-bind matrix, so every existing
skin index stays meaningful. all checks run on the staged result before
the asset is touched.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np

from .errors import SkeletonInconsistent
from .skeleton import Bone, RigAsset, Skeleton, SkinnedMesh


WEIGHT_SUM_TOLERANCE = 1e-4


def merge_bones(existing: Skeleton, new_bones: Sequence[Bone], recompute_existing: bool = False) -> Skeleton:
    """
    build a new skeleton from existing.bones + new_bones.

    world transforms are refreshed top-down (parents before children), then
    each new bone gets inv(world) as its inverse-bind matrix. existing
    inverses are kept unless recompute_existing is set (which rebinds the
    whole rig to the current pose).

    args:
      existing: skeleton currently bound to the asset (not modified)
      new_bones: bones to append; parent indices refer to the merged list

    returns:
      merged skeleton, len == len(existing) + len(new_bones)
    """
    bones = [*existing.bones, *new_bones]
    n_old = len(existing.bones)

    for offset, bone in enumerate(new_bones):
        i = n_old + offset
        if bone.parent >= len(bones) or bone.parent == i:
            raise SkeletonInconsistent(f"new bone {bone.name!r} has invalid parent index {bone.parent}")

    merged = Skeleton(bones, bone_inverses=[*existing.bone_inverses] + [np.eye(4)] * len(new_bones))
    world = merged.world_matrices()

    if recompute_existing:
        merged.bone_inverses = [np.linalg.inv(G) for G in world]
    else:
        for i in range(n_old, len(bones)):
            merged.bone_inverses[i] = np.linalg.inv(world[i])

    if len(merged.bones) != len(merged.bone_inverses):
        raise SkeletonInconsistent(
            f"bone count ({len(merged.bones)}) doesn't match inverse count ({len(merged.bone_inverses)})"
        )
    return merged


# ============================================================
# validation
# ============================================================

def validate_skeleton(skeleton: Skeleton, new_from: int = 0) -> List[str]:
    """
    structural checks. returns human-readable issues, empty when valid.

    duplicate names are only reported when the later bone has index >= new_from,
    so rigs that already carry duplicated names can still be extended.
    """
    issues: List[str] = []
    n = len(skeleton.bones)

    if n != len(skeleton.bone_inverses):
        issues.append(f"bone count ({n}) doesn't match inverse count ({len(skeleton.bone_inverses)})")

    seen: Dict[str, int] = {}
    for i, bone in enumerate(skeleton.bones):
        if bone is None:
            issues.append(f"skeleton has null bone at index {i}")
            continue
        if bone.parent >= n or bone.parent < -1 or bone.parent == i:
            issues.append(f"bone {bone.name} at index {i} has invalid parent index {bone.parent}")
        if bone.name in seen and i >= new_from:
            issues.append(f"duplicate bone name {bone.name!r} at indices {seen[bone.name]} and {i}")
        else:
            seen.setdefault(bone.name, i)
        if not np.all(np.isfinite(bone.matrix)):
            issues.append(f"bone {bone.name} at index {i} has a non-finite transform")

    for i, inverse in enumerate(skeleton.bone_inverses):
        if not np.all(np.isfinite(inverse)):
            issues.append(f"inverse bind matrix {i} is non-finite")

    if not issues:
        try:
            skeleton.depth_order()
        except SkeletonInconsistent as e:
            issues.append(str(e))

    return issues


def validate_skin(mesh: SkinnedMesh, skeleton: Skeleton, skin_indices: Optional[np.ndarray] = None,
                  skin_weights: Optional[np.ndarray] = None) -> List[str]:
    """checks skin attributes (staged ones if given) against a skeleton."""
    indices = mesh.skin_indices if skin_indices is None else skin_indices
    weights = mesh.skin_weights if skin_weights is None else skin_weights
    issues: List[str] = []
    label = mesh.name or "mesh"

    if len(indices) != mesh.vertex_count or len(weights) != mesh.vertex_count:
        issues.append(f"{label}: skin attribute length doesn't match {mesh.vertex_count} vertices")
        return issues
    if indices.size and (indices.min() < 0 or indices.max() >= len(skeleton)):
        issues.append(f"{label}: skin index out of range for {len(skeleton)} bones")
    if not np.all(np.isfinite(weights)):
        issues.append(f"{label}: non-finite skin weights")
    elif np.any(weights < 0):
        issues.append(f"{label}: negative skin weights")
    else:
        off = np.flatnonzero(np.abs(weights.sum(axis=1) - 1.0) > WEIGHT_SUM_TOLERANCE)
        if off.size:
            issues.append(f"{label}: {off.size} vertices have weights not summing to 1 (first: {off[0]})")
    return issues


def check_append_only(old: Skeleton, new: Skeleton) -> List[str]:
    """original bones must still be the same objects at the same indices."""
    issues: List[str] = []
    if len(new.bones) < len(old.bones):
        issues.append(f"skeleton shrank from {len(old.bones)} to {len(new.bones)} bones")
        return issues
    for i, bone in enumerate(old.bones):
        if new.bones[i] is not bone:
            issues.append(f"original bone {bone.name!r} no longer at index {i}")
        elif not np.allclose(new.bone_inverses[i], old.bone_inverses[i]):
            issues.append(f"inverse bind matrix of original bone {bone.name!r} changed")
    return issues


# ============================================================
# commit
# ============================================================

def commit_rig(asset: RigAsset, skeleton: Skeleton, painted: Optional[Dict[int, object]] = None,
               allow_rebind: bool = False) -> None:
    """
    swap a staged skeleton and staged skin weights into the asset.

    everything is validated first; on any issue SkeletonInconsistent is
    raised and the asset is left exactly as it was.

    args:
      asset: the asset being rigged
      skeleton: merged skeleton (from merge_bones)
      painted: {mesh position in asset.meshes: PaintResult}
      allow_rebind: accept changed inverses for original bones
    """
    painted = painted or {}
    issues = validate_skeleton(skeleton, new_from=len(asset.skeleton))
    append_issues = check_append_only(asset.skeleton, skeleton)
    if allow_rebind:
        append_issues = [i for i in append_issues if "inverse bind" not in i]
    issues.extend(append_issues)

    for i, mesh in enumerate(asset.meshes):
        result = painted.get(i)
        if result is None:
            issues.extend(validate_skin(mesh, skeleton))
        else:
            issues.extend(validate_skin(mesh, skeleton, result.skin_indices, result.skin_weights))

    if issues:
        raise SkeletonInconsistent(f"rig rejected before commit: {issues[0]}", issues=issues)

    asset.skeleton = skeleton
    for i, mesh in enumerate(asset.meshes):
        result = painted.get(i)
        if result is not None:
            mesh.skin_indices = result.skin_indices
            mesh.skin_weights = result.skin_weights
        mesh.bind(skeleton)
