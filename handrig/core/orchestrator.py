"""
rig orchestration: detections + avatar in, rigged avatar out.

pipeline (one synchronous call):
  1. DETECTING_WRISTS: classify bone names, find per-side wrists
  2. SYNTHESIZING_BONES: validate detections, place finger bones on a draft
  3. PAINTING_WEIGHTS: distance-falloff weights for the new bones
  4. MUTATING_SKELETON: append-only merge, validate, commit
  5. DONE

the asset is only touched in step 4, after every check has passed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .bone_synth import (
    HAND_TO_FOREARM_RATIO,
    DEFAULT_HAND_LENGTH,
    count_hand_bones,
    create_anatomical_bones,
    create_simple_bones,
    find_wrist_bones,
    hand_direction,
)
from .errors import DetectionInvalid, WristNotFound
from .landmarks import MIN_CONFIDENCE, HandLandmarks, get_normalized_landmarks, validate_hand_detection
from .projector import convert_to_3d_coordinates, estimate_landmark_depths
from .segments import BonePositions, calculate_bone_positions, landmark_hand_length, palm_center
from .skeleton import MAX_INFLUENCES, RigAsset, Skeleton
from .skeleton_mutator import commit_rig, merge_bones
from .weight_painter import FALLOFF, SMOOTHING_ITERATIONS, WEIGHT_THRESHOLD, WeightConfig, paint_weights


class RigStage(Enum):
    IDLE = "idle"
    DETECTING_WRISTS = "detecting_wrists"
    NO_WRISTS_FOUND = "no_wrists_found"
    SYNTHESIZING_BONES = "synthesizing_bones"
    PAINTING_WEIGHTS = "painting_weights"
    MUTATING_SKELETON = "mutating_skeleton"
    DONE = "done"


STRATEGIES = ("anatomical", "simple")


@dataclass
class RigOptions:
    """knobs for one rig call (defaults match the module constants)."""

    min_confidence: float = MIN_CONFIDENCE
    strategy: str = "anatomical"          # "anatomical" (15 bones/hand) or "simple" (2 bones/hand)
    falloff: float = FALLOFF
    max_influences: int = MAX_INFLUENCES
    influence_radius: Optional[float] = None
    weight_threshold: float = WEIGHT_THRESHOLD
    smoothing_iterations: int = SMOOTHING_ITERATIONS
    capture_resolution: int = 512         # pixel size assumed for detections without image_size
    capture_depth: float = 0.5            # base ndc depth for camera unprojection
    verbose: bool = False

    def __post_init__(self):
        if self.strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of {STRATEGIES}, got {self.strategy!r}")
        res = self.capture_resolution
        if res <= 0 or res & (res - 1):
            raise ValueError(f"capture_resolution must be a power of 2, got {res}")
        if not 1 <= self.max_influences <= MAX_INFLUENCES:
            raise ValueError(f"max_influences must be in [1, {MAX_INFLUENCES}], got {self.max_influences}")
        if self.falloff <= 0:
            raise ValueError(f"falloff must be positive, got {self.falloff}")

    def weight_config(self) -> WeightConfig:
        return WeightConfig(
            falloff=self.falloff,
            max_influences=self.max_influences,
            influence_radius=self.influence_radius,
            weight_threshold=self.weight_threshold,
            smoothing_iterations=self.smoothing_iterations,
        )


@dataclass
class HandRigResult:
    side: str
    bones: int = 0                      # finger bones added for this hand
    detection_confidence: Optional[float] = None
    vertex_count: int = 0               # vertices now influenced by this hand's new bones
    structure: object = None            # HandBoneStructure / SimpleHandBones
    issues: List[str] = field(default_factory=list)


@dataclass
class RiggingResult:
    mutated_asset: RigAsset
    metadata: Dict[str, float] = field(default_factory=dict)
    per_hand: Dict[str, HandRigResult] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)
    stage: RigStage = RigStage.IDLE

    @property
    def added_bone_count(self) -> int:
        return int(self.metadata.get("added_bone_count", 0))


def _rotation_between(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """smallest rotation taking direction a onto direction b."""
    a = a / np.linalg.norm(a)
    b = b / np.linalg.norm(b)
    v = np.cross(a, b)
    c = float(np.dot(a, b))
    if np.linalg.norm(v) < 1e-12:
        if c > 0:
            return np.eye(3)
        # opposite: half turn about any axis perpendicular to a
        axis = np.cross(a, [1.0, 0.0, 0.0])
        if np.linalg.norm(axis) < 1e-6:
            axis = np.cross(a, [0.0, 1.0, 0.0])
        axis /= np.linalg.norm(axis)
        return 2.0 * np.outer(axis, axis) - np.eye(3)
    K = np.array([[0, -v[2], v[1]], [v[2], 0, -v[0]], [-v[1], v[0], 0]])
    return np.eye(3) + K + K @ K / (1.0 + c)


class HandRigger:
    """
    adds hand bones to an avatar and paints their weights.

    usage:
      rigger = HandRigger(RigOptions(verbose=True))
      result = rigger.rig(asset, hands=[left_hand, right_hand])
    """

    def __init__(self, options: Optional[RigOptions] = None):
        self.options = options or RigOptions()
        self.stage = RigStage.IDLE

    def _log(self, msg: str) -> None:
        if self.options.verbose:
            print(f"[handrig] {msg}")

    def _advance(self, stage: RigStage) -> None:
        self.stage = stage
        self._log(f"stage: {stage.value}")

    # --------------------------------------------------------
    # placement
    # --------------------------------------------------------

    def _project_hand(self, hand: HandLandmarks, camera: Tuple[np.ndarray, np.ndarray],
                      issues: List[str]) -> np.ndarray:
        """unproject a detection through the capture camera into world points."""
        width, height = hand.image_size or (self.options.capture_resolution, self.options.capture_resolution)
        normalized = get_normalized_landmarks(hand, width, height)
        depths = self.options.capture_depth + estimate_landmark_depths()
        camera_world, projection = camera
        return convert_to_3d_coordinates(normalized[:, :2], camera_world, projection, depths, issues=issues)

    def _place_hand(self, skeleton: Skeleton, wrist_index: int, side: str, hand: HandLandmarks,
                    camera, issues: List[str]) -> BonePositions:
        wrist_pos = skeleton.world_position(wrist_index)

        # measured hand shape, wrist at the origin: unprojected through the
        # capture camera when given, otherwise straight from the landmarks
        if camera is not None:
            points = self._project_hand(hand, camera, issues)
            unit = calculate_bone_positions(hand, side, points=points)
        else:
            unit = calculate_bone_positions(hand, side)

        # size the hand to the avatar's forearm and point it along forearm → wrist
        direction, forearm_length = hand_direction(skeleton, wrist_index, side)
        target_length = forearm_length * HAND_TO_FOREARM_RATIO if forearm_length > 0 else DEFAULT_HAND_LENGTH

        measured = landmark_hand_length(unit.all_points())
        scale = target_length / measured if measured > 0 else 1.0

        local = unit.all_points() * scale
        pointing = palm_center(local)
        R = _rotation_between(pointing, direction) if np.linalg.norm(pointing) > 0 else np.eye(3)
        world = local @ R.T + wrist_pos

        return calculate_bone_positions(
            HandLandmarks(world, handedness=side.capitalize(), confidence=hand.confidence),
            side,
            wrist_pos,
            points=world,
        )

    # --------------------------------------------------------
    # main entry
    # --------------------------------------------------------

    def _select_hands(self, hands: Sequence[HandLandmarks], result: RiggingResult) -> Dict[str, HandLandmarks]:
        """validate detections; the most confident valid one per side wins."""
        chosen: Dict[str, HandLandmarks] = {}
        for hand in hands:
            side = hand.side
            report = result.per_hand.setdefault(side, HandRigResult(side=side))
            validation = validate_hand_detection(hand, self.options.min_confidence)
            if not validation.is_valid:
                msg = f"{side} hand skipped: {'; '.join(validation.issues)}"
                report.issues.extend(validation.issues)
                if report.detection_confidence is None:
                    report.detection_confidence = hand.confidence
                result.issues.append(msg)
                self._log(msg)
                continue
            if side in chosen:
                if hand.confidence <= chosen[side].confidence:
                    result.issues.append(f"extra {side} hand ignored (confidence {hand.confidence:.2f})")
                    continue
                result.issues.append(f"extra {side} hand ignored (confidence {chosen[side].confidence:.2f})")
            chosen[side] = hand
            report.detection_confidence = hand.confidence
        return chosen

    def rig(self, asset: RigAsset, hands: Optional[Sequence[HandLandmarks]] = None,
            camera: Optional[Tuple[np.ndarray, np.ndarray]] = None) -> RiggingResult:
        """
        rig `asset` in place and report what happened.

        args:
          asset: avatar skeleton + skinned meshes (mutated on success only)
          hands: detections; required for the anatomical strategy
          camera: optional (camera_world_matrix, projection_matrix) the
                  detections were captured with

        returns:
          RiggingResult

        raises:
          WristNotFound: no wrist bones, or none for any requested side
          SkeletonInconsistent: staged rig failed validation (asset unchanged)
        """
        opts = self.options
        start = time.perf_counter()
        original_count = len(asset.skeleton)
        result = RiggingResult(mutated_asset=asset)
        self.stage = RigStage.IDLE

        if opts.strategy == "anatomical" and not hands:
            raise DetectionInvalid("anatomical strategy needs at least one hand detection")

        # 1. wrists
        self._advance(RigStage.DETECTING_WRISTS)
        wrists = find_wrist_bones(asset.skeleton)
        if not wrists:
            self._advance(RigStage.NO_WRISTS_FOUND)
            raise WristNotFound(
                f"no wrist bones found among {original_count} bones "
                f"(expected names containing 'hand' or 'wrist' with a left/right token)",
                sides=["left", "right"],
            )
        self._log("wrists: " + ", ".join(f"{s}={asset.skeleton.bones[i].name}" for s, i in wrists.items()))

        chosen = self._select_hands(hands or [], result)
        if opts.strategy == "anatomical" or hands:
            requested = list(chosen)
        else:
            requested = sorted(wrists)

        sides = [s for s in requested if s in wrists]
        for side in requested:
            if side not in wrists:
                msg = f"{side} hand skipped: no {side} wrist bone in skeleton"
                result.per_hand.setdefault(side, HandRigResult(side=side)).issues.append(msg)
                result.issues.append(msg)
                self._log(msg)
        if requested and not sides:
            self._advance(RigStage.NO_WRISTS_FOUND)
            raise WristNotFound(f"no wrist bone for requested sides {requested}", sides=requested)

        # 2. bones, on a draft that shares the existing bones and only appends
        self._advance(RigStage.SYNTHESIZING_BONES)
        draft = Skeleton(list(asset.skeleton.bones), [m.copy() for m in asset.skeleton.bone_inverses])
        created: Dict[str, List[int]] = {}
        for side in sides:
            report = result.per_hand.setdefault(side, HandRigResult(side=side))
            if opts.strategy == "anatomical":
                positions = self._place_hand(draft, wrists[side], side, chosen[side], camera, report.issues)
                structure = create_anatomical_bones(draft, wrists[side], side, positions)
            else:
                structure = create_simple_bones(draft, wrists[side], side)
            report.structure = structure
            report.bones = len(structure.created)
            created[side] = list(structure.created)
            self._log(f"{side}: {len(structure.created)} new / {count_hand_bones(structure)} hand bones")

        new_indices = [i for side in sides for i in created[side]]
        result.issues.extend(i for side in sides for i in result.per_hand[side].issues
                             if i.startswith("degenerate"))

        if not new_indices:
            self._advance(RigStage.DONE)
            self._log("nothing to add, skeleton already rigged")
            return self._finish(result, original_count, start)

        # 3. weights
        self._advance(RigStage.PAINTING_WEIGHTS)
        config = opts.weight_config()
        painted = {}
        for mi, mesh in enumerate(asset.meshes):
            painted[mi] = paint_weights(mesh, draft, new_indices, config,
                                        first_new_index=original_count, verbose=opts.verbose)

        for side in sides:
            own = np.array(created[side])
            report = result.per_hand[side]
            report.vertex_count = 0
            for paint in painted.values():
                if paint.affected.size == 0 or own.size == 0:
                    continue
                rows = paint.skin_indices[paint.affected]
                weights = paint.skin_weights[paint.affected]
                touched = (np.isin(rows, own) & (weights > 0)).any(axis=1)
                report.vertex_count += int(touched.sum())

        # 4. merge + commit
        self._advance(RigStage.MUTATING_SKELETON)
        merged = merge_bones(asset.skeleton, draft.bones[original_count:])
        commit_rig(asset, merged, painted)

        self._advance(RigStage.DONE)
        return self._finish(result, original_count, start)

    def _finish(self, result: RiggingResult, original_count: int, start: float) -> RiggingResult:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        result.stage = self.stage
        result.metadata = {
            "original_bone_count": original_count,
            "added_bone_count": len(result.mutated_asset.skeleton) - original_count,
            "processing_time_ms": elapsed_ms,
        }
        self._log(f"added {result.metadata['added_bone_count']} bones in {elapsed_ms:.1f}ms")
        return result


def rig_hands(asset: RigAsset, hands: Optional[Sequence[HandLandmarks]] = None, camera=None,
              **options) -> RiggingResult:
    """one-shot wrapper: rig_hands(asset, hands, strategy="simple", verbose=True)."""
    return HandRigger(RigOptions(**options)).rig(asset, hands=hands, camera=camera)
