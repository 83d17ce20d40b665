"""
in-memory scene model: bones, skeletons, skinned meshes.

bones are stored arena-style: the skeleton owns a flat bone list, each bone
keeps the *index* of its parent (-1 for roots). children are derived on
demand. no parent/child object references, so skeletons copy cleanly.

transforms are 4x4 homogeneous matrices:
  local: bone relative to its parent
  world: root → ... → parent → bone, G_i = G_parent @ T_local_i
  inverse bind: inv(world at bind time)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import trimesh

from .errors import SkeletonInconsistent


MAX_INFLUENCES = 4  # per-vertex bone slots (gpu skinning limit)


def translation_matrix(position: Sequence[float]) -> np.ndarray:
    T = np.eye(4)
    T[:3, 3] = np.asarray(position, dtype=np.float64)
    return T


@dataclass(eq=False)
class Bone:
    """one transform node. `parent` is an index into the owning skeleton (identity equality)."""

    name: str
    parent: int = -1
    matrix: np.ndarray = field(default_factory=lambda: np.eye(4))

    def __post_init__(self):
        self.matrix = np.array(self.matrix, dtype=np.float64).reshape(4, 4)

    @classmethod
    def at(cls, name: str, position: Sequence[float], parent: int = -1) -> "Bone":
        """bone with a pure translation as its local transform."""
        return cls(name=name, parent=parent, matrix=translation_matrix(position))

    @property
    def position(self) -> np.ndarray:
        """local translation (relative to parent)."""
        return self.matrix[:3, 3].copy()


class Skeleton:
    """
    ordered bones plus one inverse-bind matrix per bone (index-aligned).

    if bone_inverses is omitted, the current pose becomes the bind pose.
    """

    def __init__(self, bones: Sequence[Bone], bone_inverses: Optional[Sequence[np.ndarray]] = None):
        self.bones: List[Bone] = list(bones)
        if bone_inverses is None:
            self.bone_inverses: List[np.ndarray] = []
            self.calculate_inverses()
        else:
            self.bone_inverses = [np.array(m, dtype=np.float64).reshape(4, 4) for m in bone_inverses]

    def __len__(self) -> int:
        return len(self.bones)

    def __repr__(self) -> str:
        return f"Skeleton({len(self.bones)} bones)"

    # --------------------------------------------------------
    # lookup
    # --------------------------------------------------------

    @property
    def names(self) -> List[str]:
        return [b.name for b in self.bones]

    @property
    def parents(self) -> np.ndarray:
        return np.array([b.parent for b in self.bones], dtype=np.int64)

    def find_bone_index(self, name: str) -> int:
        """index of the first bone called `name`, -1 if absent."""
        for i, bone in enumerate(self.bones):
            if bone.name == name:
                return i
        return -1

    def get_bone(self, name: str) -> Optional[Bone]:
        i = self.find_bone_index(name)
        return self.bones[i] if i >= 0 else None

    def bone_index_map(self) -> Dict[str, int]:
        """name → index (first occurrence wins for duplicated names)."""
        out: Dict[str, int] = {}
        for i, bone in enumerate(self.bones):
            out.setdefault(bone.name, i)
        return out

    def index_of(self, bone: Bone) -> int:
        for i, b in enumerate(self.bones):
            if b is bone:
                return i
        return -1

    def children(self, index: int) -> List[int]:
        return [i for i, b in enumerate(self.bones) if b.parent == index]

    def bone_depth(self, index: int) -> int:
        """number of ancestors. raises on cycles / dangling parents."""
        depth = 0
        current = self.bones[index].parent
        while current >= 0:
            if current >= len(self.bones):
                raise SkeletonInconsistent(f"bone {self.bones[index].name!r} has dangling parent index {current}")
            depth += 1
            if depth > len(self.bones):
                raise SkeletonInconsistent(f"cycle in bone hierarchy at {self.bones[index].name!r}")
            current = self.bones[current].parent
        return depth

    def depth_order(self) -> List[int]:
        """bone indices sorted parents-first (stable for equal depth)."""
        depths = [self.bone_depth(i) for i in range(len(self.bones))]
        return sorted(range(len(self.bones)), key=lambda i: depths[i])

    # --------------------------------------------------------
    # transforms
    # --------------------------------------------------------

    def world_matrices(self) -> np.ndarray:
        """
        forward kinematics, top-down from the roots.

        returns:
          [N, 4, 4] world transforms
        """
        G = np.zeros((len(self.bones), 4, 4))
        for i in self.depth_order():
            bone = self.bones[i]
            if bone.parent < 0:
                G[i] = bone.matrix
            else:
                G[i] = G[bone.parent] @ bone.matrix
        return G

    def world_positions(self) -> np.ndarray:
        """[N, 3] bone origins in world space."""
        return self.world_matrices()[:, :3, 3]

    def world_position(self, index: int) -> np.ndarray:
        return self.world_positions()[index]

    def calculate_inverses(self) -> None:
        """make the current pose the bind pose for every bone."""
        self.bone_inverses = [np.linalg.inv(G) for G in self.world_matrices()]

    # --------------------------------------------------------
    # editing (drafts only, see skeleton_mutator for commits)
    # --------------------------------------------------------

    def add_bone(self, bone: Bone) -> int:
        """
        append a bone and its inverse-bind matrix. returns its index.

        the parent must already be in the skeleton, so append order stays
        a valid parents-first order.
        """
        if bone.parent >= len(self.bones):
            raise SkeletonInconsistent(f"parent index {bone.parent} of {bone.name!r} is not in the skeleton yet")
        self.bones.append(bone)
        world = self.world_matrices()[-1]
        self.bone_inverses.append(np.linalg.inv(world))
        return len(self.bones) - 1

    def copy(self) -> "Skeleton":
        """deep copy (new Bone objects, new matrices)."""
        return Skeleton([copy.deepcopy(b) for b in self.bones], [m.copy() for m in self.bone_inverses])


def _default_skin(num_vertices: int):
    indices = np.zeros((num_vertices, MAX_INFLUENCES), dtype=np.int64)
    weights = np.zeros((num_vertices, MAX_INFLUENCES), dtype=np.float64)
    weights[:, 0] = 1.0
    return indices, weights


class SkinnedMesh:
    """
    vertex positions plus up to 4 (bone index, weight) pairs per vertex.

    vertices are in mesh-local space; `matrix_world` maps them to world
    space (identity for most exported avatars).
    """

    def __init__(
        self,
        vertices,
        skin_indices=None,
        skin_weights=None,
        faces=None,
        skeleton: Optional[Skeleton] = None,
        name: str = "",
        matrix_world: Optional[np.ndarray] = None,
    ):
        self.name = name
        self.vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = None if faces is None else np.asarray(faces, dtype=np.int64).reshape(-1, 3)

        if skin_indices is None or skin_weights is None:
            skin_indices, skin_weights = _default_skin(len(self.vertices))
        self.skin_indices = np.asarray(skin_indices, dtype=np.int64).reshape(-1, MAX_INFLUENCES)
        self.skin_weights = np.asarray(skin_weights, dtype=np.float64).reshape(-1, MAX_INFLUENCES)
        if len(self.skin_indices) != len(self.vertices) or len(self.skin_weights) != len(self.vertices):
            raise ValueError(
                f"skin attributes ({len(self.skin_indices)}, {len(self.skin_weights)}) "
                f"do not match vertex count {len(self.vertices)}"
            )

        self.matrix_world = np.eye(4) if matrix_world is None else np.asarray(matrix_world, dtype=np.float64)
        self.skeleton = skeleton

    @classmethod
    def from_trimesh(cls, mesh, skeleton: Optional[Skeleton] = None, skin_indices=None, skin_weights=None,
                     name: str = "") -> "SkinnedMesh":
        """wrap a trimesh.Trimesh (vertices + faces) as a skinned mesh."""
        return cls(
            vertices=np.asarray(mesh.vertices),
            faces=np.asarray(mesh.faces),
            skin_indices=skin_indices,
            skin_weights=skin_weights,
            skeleton=skeleton,
            name=name,
        )

    def __len__(self) -> int:
        return len(self.vertices)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    def world_vertices(self) -> np.ndarray:
        homo = np.concatenate([self.vertices, np.ones((len(self.vertices), 1))], axis=1)
        return (homo @ self.matrix_world.T)[:, :3]

    def weight_sums(self) -> np.ndarray:
        return self.skin_weights.sum(axis=1)

    def bind(self, skeleton: Skeleton) -> None:
        """attach to a skeleton. skin indices refer to skeleton.bones from now on."""
        self.skeleton = skeleton

    def to_trimesh(self):
        """plain trimesh.Trimesh of the bind-pose geometry (no skin data)."""
        return trimesh.Trimesh(vertices=self.world_vertices(), faces=self.faces, process=False)


@dataclass
class RigAsset:
    """the asset under rig: one skeleton and the skinned meshes bound to it."""

    skeleton: Skeleton
    meshes: List[SkinnedMesh] = field(default_factory=list)
    name: str = ""

    def __post_init__(self):
        for mesh in self.meshes:
            if mesh.skeleton is None:
                mesh.bind(self.skeleton)
