"""
error taxonomy for the rigging pipeline.

callers branch on `kind` (or the class), never on message text:
  - DetectionInvalid: a hand failed validation (non-fatal, hand is skipped)
  - WristNotFound: no wrist bone for a required side
  - ProjectionDegenerate: homogeneous divisor ~0 during 2d → 3d projection
  - SkeletonInconsistent: bone / inverse-bind mismatch, caught before commit
"""

from __future__ import annotations

from typing import List, Optional


class RigError(Exception):
    """base class for all rigging failures."""

    kind = "rig_error"

    def __init__(self, message: str, issues: Optional[List[str]] = None):
        super().__init__(message)
        self.issues = list(issues or [])


class DetectionInvalid(RigError, ValueError):
    kind = "detection_invalid"


class WristNotFound(RigError, LookupError):
    kind = "wrist_not_found"

    def __init__(self, message: str, sides: Optional[List[str]] = None, issues: Optional[List[str]] = None):
        super().__init__(message, issues)
        self.sides = list(sides or [])


class ProjectionDegenerate(RigError, ArithmeticError):
    kind = "projection_degenerate"


class SkeletonInconsistent(RigError, RuntimeError):
    kind = "skeleton_inconsistent"
