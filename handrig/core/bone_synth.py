"""
finger bone synthesis on top of discovered wrist bones.

two interchangeable strategies, both idempotent (existing target bones are reused):

1. create_anatomical_bones(): 5 fingers × 3 joints per hand, humanoid names
   (leftIndexProximal ...), placed at measured landmark positions
2. create_simple_bones(): 2 bones per hand ({wrist}_Palm, {wrist}_Fingers),
   placed along the forearm → wrist direction

both work on a *draft* skeleton; nothing reaches the asset until commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .bone_naming import LEFT, RIGHT, SIDES, classify_bone_name, finger_bone_name, simple_bone_names
from .errors import WristNotFound
from .landmarks import FINGERS
from .segments import BonePositions
from .skeleton import Bone, Skeleton, translation_matrix


# ============================================================
# simplified-strategy proportions
# ============================================================

HAND_TO_FOREARM_RATIO = 0.65   # hand length ≈ 0.65 × forearm length
PALM_FRACTION = 0.4            # palm bone sits 40% of the hand length past the wrist
FINGERS_FRACTION = 0.6         # finger bone sits a further 60% past the palm
MIN_FOREARM_LENGTH = 1e-6      # shorter than this and the direction is meaningless
DEFAULT_HAND_LENGTH = 0.18     # used when no forearm is available (meters, adult hand)

# t-pose fallback: left arm extends along +x, right arm along -x
DEFAULT_HAND_DIRECTION = {
    LEFT: np.array([1.0, 0.0, 0.0]),
    RIGHT: np.array([-1.0, 0.0, 0.0]),
}


@dataclass
class HandBoneStructure:
    """wrist plus 3 bones per finger, proximal → intermediate → distal."""

    side: str
    wrist: Bone
    fingers: Dict[str, List[Bone]] = field(default_factory=dict)
    created: List[int] = field(default_factory=list)  # draft indices added by this call

    def all_bones(self) -> List[Bone]:
        return [b for finger in FINGERS for b in self.fingers.get(finger, [])]


@dataclass
class SimpleHandBones:
    side: Optional[str]
    wrist: Bone
    palm: Bone
    fingers: Bone
    created: List[int] = field(default_factory=list)

    def all_bones(self) -> List[Bone]:
        return [self.palm, self.fingers]


def count_hand_bones(structure) -> int:
    """finger bones only; the wrist is pre-existing and never counted."""
    return len(structure.all_bones())


# ============================================================
# wrist discovery
# ============================================================

def find_wrist_bones(skeleton: Skeleton) -> Dict[str, int]:
    """
    scan bone names for per-side wrists.

    returns:
      {"left": index, "right": index} with missing sides omitted. when a side
      has several candidates (e.g. LeftHand and a helper LeftHandRoot), the
      shallowest one in the hierarchy wins, then the lowest index.
    """
    candidates: Dict[str, List[int]] = {side: [] for side in SIDES}
    for i, bone in enumerate(skeleton.bones):
        cls = classify_bone_name(bone.name)
        if cls.is_wrist:
            candidates[cls.side].append(i)

    wrists: Dict[str, int] = {}
    for side, indices in candidates.items():
        if indices:
            wrists[side] = min(indices, key=lambda i: (skeleton.bone_depth(i), i))
    return wrists


def require_wrist(wrists: Dict[str, int], side: str, skeleton: Optional[Skeleton] = None) -> int:
    """wrist index for `side`, or WristNotFound with the names that were searched."""
    if side in wrists:
        return wrists[side]
    searched = ""
    if skeleton is not None:
        shown = ", ".join(skeleton.names[:12])
        more = "" if len(skeleton) <= 12 else f", ... ({len(skeleton)} total)"
        searched = f" (bones: {shown}{more})"
    raise WristNotFound(
        f"no {side} wrist bone found: expected a name containing 'hand' or 'wrist' "
        f"with a {side} side token{searched}",
        sides=[side],
    )


# ============================================================
# anatomical strategy
# ============================================================

def _local_translation(parent_world: np.ndarray, world_position: np.ndarray) -> np.ndarray:
    """express a world point in the parent's local frame."""
    p = np.append(np.asarray(world_position, dtype=np.float64), 1.0)
    return (np.linalg.inv(parent_world) @ p)[:3]


def create_anatomical_bones(draft: Skeleton, wrist_index: int, side: str, positions: BonePositions) -> HandBoneStructure:
    """
    add 15 finger bones for one hand to `draft`.

    per finger the three bones sit at the first three joints of its landmark
    segment (MCP/PIP/DIP, thumb CMC/MCP/IP); the tip only fixes the hand's
    extent and gets no bone.

    args:
      draft: skeleton being built (mutated)
      wrist_index: index of the wrist bone in draft
      side: "left" / "right"
      positions: world joint positions from calculate_bone_positions()

    returns:
      HandBoneStructure (bones that already existed are reused, not duplicated)
    """
    world = draft.world_matrices()
    structure = HandBoneStructure(side=side, wrist=draft.bones[wrist_index])

    for finger in FINGERS:
        parent_index = wrist_index
        parent_world = world[wrist_index]
        chain: List[Bone] = []

        for joint in range(3):
            name = finger_bone_name(side, finger, joint)
            index = draft.find_bone_index(name)
            if index < 0:
                local = _local_translation(parent_world, positions.fingers[finger][joint])
                index = draft.add_bone(Bone.at(name, local, parent=parent_index))
                structure.created.append(index)
                parent_world = parent_world @ translation_matrix(local)
            else:
                parent_world = draft.world_matrices()[index]
            chain.append(draft.bones[index])
            parent_index = index

        structure.fingers[finger] = chain

    return structure


# ============================================================
# simplified strategy
# ============================================================

def hand_direction(skeleton: Skeleton, wrist_index: int, side: Optional[str] = None):
    """
    unit forearm → wrist direction and forearm length.

    falls back to the side's t-pose axis when the wrist has no parent or the
    forearm is degenerate; length is 0 in that case.
    """
    positions = skeleton.world_positions()
    wrist = skeleton.bones[wrist_index]
    if wrist.parent >= 0:
        delta = positions[wrist_index] - positions[wrist.parent]
        length = float(np.linalg.norm(delta))
        if length > MIN_FOREARM_LENGTH:
            return delta / length, length

    if side is None:
        side = classify_bone_name(wrist.name).side
    return DEFAULT_HAND_DIRECTION.get(side, DEFAULT_HAND_DIRECTION[LEFT]).copy(), 0.0


def create_simple_bones(draft: Skeleton, wrist_index: int, side: Optional[str] = None) -> SimpleHandBones:
    """
    add {wrist}_Palm and {wrist}_Fingers under one wrist.

    the direction is measured from the rig (forearm → wrist), so it works for
    any rest pose, not only t-poses along x.
    """
    wrist = draft.bones[wrist_index]
    palm_name, fingers_name = simple_bone_names(wrist.name)
    direction, forearm_length = hand_direction(draft, wrist_index, side)
    hand_length = forearm_length * HAND_TO_FOREARM_RATIO if forearm_length > 0 else DEFAULT_HAND_LENGTH

    world = draft.world_matrices()
    wrist_pos = world[wrist_index][:3, 3]
    created: List[int] = []

    palm_index = draft.find_bone_index(palm_name)
    if palm_index < 0:
        palm_world_pos = wrist_pos + direction * hand_length * PALM_FRACTION
        local = _local_translation(world[wrist_index], palm_world_pos)
        palm_index = draft.add_bone(Bone.at(palm_name, local, parent=wrist_index))
        created.append(palm_index)

    fingers_index = draft.find_bone_index(fingers_name)
    if fingers_index < 0:
        palm_world = draft.world_matrices()[palm_index]
        fingers_world_pos = palm_world[:3, 3] + direction * hand_length * FINGERS_FRACTION
        local = _local_translation(palm_world, fingers_world_pos)
        fingers_index = draft.add_bone(Bone.at(fingers_name, local, parent=palm_index))
        created.append(fingers_index)

    return SimpleHandBones(
        side=side or classify_bone_name(wrist.name).side,
        wrist=wrist,
        palm=draft.bones[palm_index],
        fingers=draft.bones[fingers_index],
        created=created,
    )
