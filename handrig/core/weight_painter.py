"""
distance-based skin weights for newly added bones.

for every vertex within the influence radius of a new bone b:
  w_b = 1 / (1 + d² · k)        d = |vertex - bone world position|

the kernel is smooth and strictly positive (w = 1 at d = 0, → 0 as d grows),
so there is no hard seam where the radius ends. new candidates are merged
with the vertex's existing weights, the top 4 are kept and renormalized.
vertices outside every radius keep their weights bit-for-bit.

weights are handled as a sparse [V, num_bones] matrix (scipy.sparse):
duplicate (vertex, bone) entries sum, so merging is one addition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import trimesh
from scipy import sparse
from scipy.spatial import cKDTree

from .errors import SkeletonInconsistent
from .skeleton import MAX_INFLUENCES, Skeleton, SkinnedMesh


# ============================================================
# tuning (heuristics, not physics: calibrate per asset scale)
# ============================================================

FALLOFF = 0.01              # k in 1 / (1 + d²k); 0.01 suits centimeter-scale rigs
                            # (w = 0.5 at 10 units, ≈0.01 at 100 units)
                            # use ~100 for meter-scale rigs

WEIGHT_THRESHOLD = 0.01     # candidate weights below this are dropped

SMOOTHING_ITERATIONS = 3    # laplacian passes over influenced vertices (0 disables)


@dataclass
class WeightConfig:
    falloff: float = FALLOFF
    max_influences: int = MAX_INFLUENCES
    influence_radius: Optional[float] = None  # None: derived from the new bones' extent
    weight_threshold: float = WEIGHT_THRESHOLD
    smoothing_iterations: int = SMOOTHING_ITERATIONS


@dataclass
class PaintResult:
    skin_indices: np.ndarray   # [V, 4]
    skin_weights: np.ndarray   # [V, 4]
    affected: np.ndarray       # vertex indices whose weights changed
    radius: float


def falloff_weight(distance, falloff: float = FALLOFF):
    """1 / (1 + d²k). works on scalars and arrays."""
    d = np.asarray(distance, dtype=np.float64)
    w = 1.0 / (1.0 + d * d * falloff)
    return float(w) if w.ndim == 0 else w


# ============================================================
# sparse helpers
# ============================================================

def _skin_to_sparse(skin_indices: np.ndarray, skin_weights: np.ndarray, num_bones: int) -> sparse.csr_matrix:
    """[V, 4] slots → [V, num_bones] sparse matrix (duplicate slots summed)."""
    V, K = skin_indices.shape
    rows = np.repeat(np.arange(V), K)
    M = sparse.csr_matrix(
        (skin_weights.ravel(), (rows, skin_indices.ravel())),
        shape=(V, num_bones),
    )
    M.eliminate_zeros()
    return M


def _top_k(dense: np.ndarray, k: int, slots: int = MAX_INFLUENCES):
    """
    keep the k largest weights per row and renormalize them to sum to 1.

    args:
      dense: [A, num_bones] weights
      k: influences per vertex (capped at slots)
      slots: width of the output (unused slots are zero)

    returns:
      indices [A, slots], weights [A, slots]
    """
    A = dense.shape[0]
    k = min(k, slots)
    order = np.argsort(-dense, axis=1, kind="stable")[:, :k]
    weights = np.take_along_axis(dense, order, axis=1)
    indices = order.astype(np.int64)

    width = indices.shape[1]
    if width < slots:
        pad = slots - width
        indices = np.concatenate([indices, np.zeros((A, pad), dtype=np.int64)], axis=1)
        weights = np.concatenate([weights, np.zeros((A, pad))], axis=1)

    weights = np.clip(weights, 0.0, None)
    totals = weights.sum(axis=1, keepdims=True)
    ok = totals[:, 0] > 0
    weights[ok] /= totals[ok]
    # empty slots point at bone 0 with weight 0
    indices[weights == 0] = 0
    return indices, weights


# ============================================================
# candidates
# ============================================================

def compute_bone_influences(
    vertices: np.ndarray,
    bone_positions: np.ndarray,
    bone_indices: Sequence[int],
    num_bones: int,
    falloff: float = FALLOFF,
    radius: float = np.inf,
    threshold: float = WEIGHT_THRESHOLD,
) -> sparse.csr_matrix:
    """
    candidate weights of the given bones for every vertex in range.

    args:
      vertices: [V, 3] world-space vertex positions
      bone_positions: [B, 3] world positions of the bones in bone_indices
      bone_indices: skeleton index of each bone
      num_bones: skeleton size (column count of the result)
      radius: only vertices within this distance of a bone are considered

    returns:
      [V, num_bones] sparse candidate weights
    """
    vertices = np.asarray(vertices, dtype=np.float64)
    bone_positions = np.asarray(bone_positions, dtype=np.float64).reshape(-1, 3)

    rows, cols, vals = [], [], []
    tree = cKDTree(vertices) if np.isfinite(radius) and len(vertices) else None

    for pos, bone_index in zip(bone_positions, bone_indices):
        if tree is not None:
            idx = np.asarray(tree.query_ball_point(pos, radius), dtype=np.int64)
        else:
            idx = np.arange(len(vertices))
        if idx.size == 0:
            continue
        d = np.linalg.norm(vertices[idx] - pos, axis=1)
        w = falloff_weight(d, falloff)
        w = np.atleast_1d(w)
        keep = w >= threshold
        rows.append(idx[keep])
        cols.append(np.full(int(keep.sum()), bone_index, dtype=np.int64))
        vals.append(w[keep])

    if not rows:
        return sparse.csr_matrix((len(vertices), num_bones))
    return sparse.csr_matrix(
        (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
        shape=(len(vertices), num_bones),
    )


# ============================================================
# merge + smoothing
# ============================================================

def merge_influences(
    skin_indices: np.ndarray,
    skin_weights: np.ndarray,
    candidates: sparse.csr_matrix,
    max_influences: int = MAX_INFLUENCES,
):
    """
    merge candidate weights into existing skin slots.

    only rows with at least one candidate change; others are copied as-is.

    returns:
      (new_indices [V, 4], new_weights [V, 4], affected vertex indices)
    """
    num_bones = candidates.shape[1]
    new_indices = np.array(skin_indices, dtype=np.int64, copy=True)
    new_weights = np.array(skin_weights, dtype=np.float64, copy=True)

    affected = np.unique(candidates.nonzero()[0])
    if affected.size == 0:
        return new_indices, new_weights, affected

    existing = _skin_to_sparse(new_indices[affected], new_weights[affected], num_bones)
    merged = (existing + candidates[affected]).toarray()  # [A, num_bones]

    idx, w = _top_k(merged, max_influences, slots=new_indices.shape[1])
    new_indices[affected] = idx
    new_weights[affected] = w
    return new_indices, new_weights, affected


def vertex_adjacency(mesh: SkinnedMesh) -> Optional[sparse.csr_matrix]:
    """symmetric [V, V] edge adjacency from the mesh faces, None without faces."""
    if mesh.faces is None or len(mesh.faces) == 0:
        return None
    tm = trimesh.Trimesh(vertices=mesh.vertices, faces=mesh.faces, process=False)
    edges = tm.edges_unique
    V = len(mesh.vertices)
    ones = np.ones(len(edges))
    A = sparse.coo_matrix((ones, (edges[:, 0], edges[:, 1])), shape=(V, V))
    A = (A + A.T).tocsr()
    A.data[:] = 1.0
    return A


def smooth_weights(
    skin_indices: np.ndarray,
    skin_weights: np.ndarray,
    adjacency: sparse.csr_matrix,
    affected: np.ndarray,
    num_bones: int,
    iterations: int = SMOOTHING_ITERATIONS,
    max_influences: int = MAX_INFLUENCES,
):
    """
    laplacian smoothing restricted to `affected` vertices.

    each pass replaces an affected row by the mean of itself and its edge
    neighbours; unaffected rows are read but never written. the result is
    cut back to the top influences and renormalized.
    """
    if iterations <= 0 or affected.size == 0:
        return skin_indices, skin_weights

    V = len(skin_indices)
    M = _skin_to_sparse(skin_indices, skin_weights, num_bones)
    deg = np.asarray(adjacency.sum(axis=1)).ravel()

    mask = np.zeros(V)
    mask[affected] = 1.0
    S = sparse.diags(mask)
    keep = sparse.diags(1.0 - mask)
    norm = sparse.diags(1.0 / (1.0 + deg))

    for _ in range(iterations):
        avg = norm @ (M + adjacency @ M)
        M = (S @ avg + keep @ M).tocsr()

    idx, w = _top_k(M[affected].toarray(), max_influences, slots=skin_indices.shape[1])
    out_indices = np.array(skin_indices, copy=True)
    out_weights = np.array(skin_weights, copy=True)
    out_indices[affected] = idx
    out_weights[affected] = w
    return out_indices, out_weights


# ============================================================
# entry point
# ============================================================

def default_influence_radius(skeleton: Skeleton, bone_indices: Sequence[int], first_new_index: Optional[int] = None) -> float:
    """
    extent of the new bones: the largest distance from a new bone to the
    pre-existing bone it hangs from (the wrist, for hand bones).
    """
    if first_new_index is None:
        first_new_index = min(bone_indices) if len(bone_indices) else len(skeleton)
    positions = skeleton.world_positions()
    radius = 0.0
    for i in bone_indices:
        anchor = skeleton.bones[i].parent
        while anchor >= first_new_index:
            anchor = skeleton.bones[anchor].parent
        if anchor >= 0:
            radius = max(radius, float(np.linalg.norm(positions[i] - positions[anchor])))
    return radius if radius > 0 else np.inf


def paint_weights(
    mesh: SkinnedMesh,
    skeleton: Skeleton,
    bone_indices: Sequence[int],
    config: Optional[WeightConfig] = None,
    first_new_index: Optional[int] = None,
    verbose: bool = False,
) -> PaintResult:
    """
    compute merged skin weights for `mesh` with `bone_indices` as new influences.

    the mesh is not modified; the caller commits the returned arrays.

    args:
      mesh: skinned mesh (vertices in mesh space, moved to world by matrix_world)
      skeleton: skeleton containing the new bones (draft)
      bone_indices: indices of the new bones in skeleton
      config: falloff / cap / radius / threshold / smoothing
      first_new_index: index of the first appended bone (for the default radius)

    returns:
      PaintResult with new [V, 4] arrays and the affected vertex indices
    """
    config = config or WeightConfig()
    bone_indices = list(bone_indices)
    num_bones = len(skeleton)

    if mesh.skin_indices.size and mesh.skin_indices.max() >= num_bones:
        raise SkeletonInconsistent(f"mesh {mesh.name!r} references bone {mesh.skin_indices.max()} but skeleton has {num_bones}")

    if not bone_indices or mesh.vertex_count == 0:
        return PaintResult(mesh.skin_indices.copy(), mesh.skin_weights.copy(), np.zeros(0, dtype=np.int64), 0.0)

    radius = config.influence_radius
    if radius is None:
        radius = default_influence_radius(skeleton, bone_indices, first_new_index)

    vertices = mesh.world_vertices()
    bone_positions = skeleton.world_positions()[bone_indices]

    candidates = compute_bone_influences(
        vertices, bone_positions, bone_indices, num_bones,
        falloff=config.falloff, radius=radius, threshold=config.weight_threshold,
    )
    indices, weights, affected = merge_influences(
        mesh.skin_indices, mesh.skin_weights, candidates, config.max_influences,
    )

    if config.smoothing_iterations > 0 and affected.size:
        adjacency = vertex_adjacency(mesh)
        if adjacency is not None:
            indices, weights = smooth_weights(
                indices, weights, adjacency, affected, num_bones,
                iterations=config.smoothing_iterations, max_influences=config.max_influences,
            )
        elif verbose:
            print(f"mesh {mesh.name!r} has no faces, skipping weight smoothing")

    if verbose:
        print(f"painted {len(bone_indices)} bones onto {affected.size}/{mesh.vertex_count} vertices "
              f"of {mesh.name!r} (radius={radius:.4g})")

    return PaintResult(indices, weights, affected, float(radius))
