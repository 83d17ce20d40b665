"""Core rigging engine. tracker (mediapipe) and skinning (torch) are imported on demand."""

from .errors import DetectionInvalid, ProjectionDegenerate, RigError, SkeletonInconsistent, WristNotFound
from .landmarks import HandLandmarks, validate_hand_detection, get_hand_bounds, get_normalized_landmarks
from .projector import convert_to_3d_coordinates, project_to_screen, estimate_landmark_depths
from .segments import get_finger_segments, calculate_bone_positions
from .bone_naming import classify_bone_name
from .skeleton import Bone, Skeleton, SkinnedMesh, RigAsset
from .bone_synth import find_wrist_bones, create_anatomical_bones, create_simple_bones
from .weight_painter import paint_weights, WeightConfig
from .skeleton_mutator import merge_bones, validate_skeleton, commit_rig
from .orchestrator import HandRigger, RigOptions, RigStage, RiggingResult, rig_hands

__all__ = [
    "RigError",
    "DetectionInvalid",
    "WristNotFound",
    "ProjectionDegenerate",
    "SkeletonInconsistent",
    "HandLandmarks",
    "validate_hand_detection",
    "get_hand_bounds",
    "get_normalized_landmarks",
    "convert_to_3d_coordinates",
    "project_to_screen",
    "estimate_landmark_depths",
    "get_finger_segments",
    "calculate_bone_positions",
    "classify_bone_name",
    "Bone",
    "Skeleton",
    "SkinnedMesh",
    "RigAsset",
    "find_wrist_bones",
    "create_anatomical_bones",
    "create_simple_bones",
    "paint_weights",
    "WeightConfig",
    "merge_bones",
    "validate_skeleton",
    "commit_rig",
    "HandRigger",
    "RigOptions",
    "RigStage",
    "RiggingResult",
    "rig_hands",
]
