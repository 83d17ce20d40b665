"""
bone name classification: name → (side, is_wrist).

avatar rigs spell the same bone many ways (LeftHand, mixamorig:LeftHand,
hand_l, Hand.L, Bip01 L Hand, left_wrist ...). all conventions live in the
pattern tables below; call sites only use classify_bone_name().
"""

from __future__ import annotations

import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from .landmarks import FINGERS


LEFT = "left"
RIGHT = "right"
SIDES = (LEFT, RIGHT)

# separator-delimited single letter: "_l", ".l", "l_", " l ", ":l"
_TOKEN = r"(?:^|[^a-z]){}(?:[^a-z]|$)"

SIDE_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"left"), LEFT),
    (re.compile(r"right"), RIGHT),
    (re.compile(_TOKEN.format("l")), LEFT),
    (re.compile(_TOKEN.format("r")), RIGHT),
]

WRIST_PATTERNS: List[re.Pattern] = [
    re.compile(r"hand"),
    re.compile(r"wrist"),
]

# names that mention a hand but are not the wrist itself
EXCLUDE_PATTERNS: List[re.Pattern] = [
    re.compile(r"thumb|index|middle|ring|pinky|little|finger|palm"),
    re.compile(r"handle|twist|pole|target|ctrl"),
    re.compile(r"ik(?:[^a-z]|$)"),  # ik helpers: "hand_ik_l", "LeftHandIK", "HandIK_L"
]

# humanoid (vrm-style) finger joint suffixes, proximal → distal
JOINT_NAMES = ("Proximal", "Intermediate", "Distal")

SIMPLE_PALM_SUFFIX = "_Palm"
SIMPLE_FINGERS_SUFFIX = "_Fingers"


class BoneClass(NamedTuple):
    side: Optional[str]  # "left", "right" or None when unknown / ambiguous
    is_wrist: bool


def detect_side(name: str) -> Optional[str]:
    """side token in a bone name, or None if absent or contradictory."""
    lower = name.lower()
    found = {side for pattern, side in SIDE_PATTERNS if pattern.search(lower)}
    if len(found) == 1:
        return found.pop()
    return None


def classify_bone_name(name: str) -> BoneClass:
    """
    classify one bone name.

    a wrist is a name containing "hand" or "wrist", carrying exactly one
    side token, and not matching any exclusion (finger bones, ik helpers).
    """
    lower = name.lower()
    side = detect_side(name)
    looks_like_wrist = any(p.search(lower) for p in WRIST_PATTERNS)
    excluded = any(p.search(lower) for p in EXCLUDE_PATTERNS)
    return BoneClass(side=side, is_wrist=bool(looks_like_wrist and not excluded and side is not None))


def finger_bone_name(side: str, finger: str, joint: int) -> str:
    """leftIndexProximal, rightThumbDistal, ..."""
    if finger not in FINGERS:
        raise ValueError(f"unknown finger: {finger}")
    return f"{side.lower()}{finger.capitalize()}{JOINT_NAMES[joint]}"


def hand_bone_names(side: str) -> Dict[str, object]:
    """all anatomical names for one side: {"wrist": "leftHand", "thumb": [3 names], ...}."""
    names: Dict[str, object] = {"wrist": f"{side.lower()}Hand"}
    for finger in FINGERS:
        names[finger] = [finger_bone_name(side, finger, j) for j in range(len(JOINT_NAMES))]
    return names


def simple_bone_names(wrist_name: str) -> Tuple[str, str]:
    return wrist_name + SIMPLE_PALM_SUFFIX, wrist_name + SIMPLE_FINGERS_SUFFIX
