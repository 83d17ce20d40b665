"""
handrig - automated hand rigging

Turns 21-point hand landmark detections into finger bones grafted onto an
existing avatar skeleton, with skin weights painted for the new bones.

Pipeline:
- landmarks: detection model + quality checks
- projector: 2d landmarks -> 3d world points through the capture camera
- bone_synth: wrist discovery + anatomical (15/hand) or simple (2/hand) bones
- weight_painter: distance-falloff skin weights, top-4, renormalized
- skeleton_mutator: append-only merge, validate, commit
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .core.orchestrator import HandRigger, RigOptions, RiggingResult, rig_hands

__all__ = [
    "__version__",
    "HandRigger",
    "RigOptions",
    "RiggingResult",
    "rig_hands",
]
