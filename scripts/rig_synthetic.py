#!/usr/bin/env python3
"""
Rig the synthetic test avatar and report what was added.

Hands come from the built-in synthetic detections, or from a photo run
through mediapipe (--image). Optionally bends one finger bone and reports
how far the skinned mesh moved, as a quick deformation check.

usage:
  python scripts/rig_synthetic.py
  python scripts/rig_synthetic.py --strategy simple
  python scripts/rig_synthetic.py --image hand.jpg --camera
  python scripts/rig_synthetic.py --bend leftIndexProximal --angle 45
"""

import argparse

import numpy as np

from handrig.core.errors import RigError
from handrig.core.orchestrator import HandRigger, RigOptions
from handrig.shared.synthetic import build_test_avatar, synthetic_camera, synthetic_hand_landmarks


def load_hands(args):
    if args.image:
        import cv2
        from handrig.core.tracker import detect_hands

        frame = cv2.imread(args.image)
        if frame is None:
            raise FileNotFoundError(f"could not read image: {args.image}")
        hands = detect_hands(frame, flip_handedness=args.unmirrored)
        print(f"Detected {len(hands)} hand(s) in {args.image}")
        return hands

    return [synthetic_hand_landmarks(side, confidence=args.confidence) for side in args.hands]


def main():
    parser = argparse.ArgumentParser(description="Add hand bones to the synthetic test avatar")
    parser.add_argument("--strategy", choices=["anatomical", "simple"], default="anatomical", help="Bone layout")
    parser.add_argument("--hands", nargs="+", choices=["left", "right"], default=["left", "right"], help="Synthetic hands to detect")
    parser.add_argument("--confidence", type=float, default=0.95, help="Confidence of the synthetic detections")
    parser.add_argument("--image", type=str, default=None, help="Detect hands in this image instead (mediapipe)")
    parser.add_argument("--unmirrored", action="store_true", help="Image is not a mirrored selfie (flip handedness)")
    parser.add_argument("--camera", action="store_true", help="Unproject landmarks through the synthetic camera")
    parser.add_argument("--falloff", type=float, default=0.01, help="k in 1/(1+d²k)")
    parser.add_argument("--smoothing", type=int, default=3, help="Weight smoothing iterations")
    parser.add_argument("--bend", type=str, default=None, help="Bone to rotate after rigging")
    parser.add_argument("--angle", type=float, default=30.0, help="Bend angle in degrees (about z)")
    parser.add_argument("--quiet", action="store_true", help="Only print the summary")
    args = parser.parse_args()

    print("=" * 60)
    print("handrig: synthetic avatar")
    print("=" * 60)

    asset = build_test_avatar()
    options = RigOptions(
        strategy=args.strategy,
        falloff=args.falloff,
        smoothing_iterations=args.smoothing,
        verbose=not args.quiet,
    )
    hands = load_hands(args)
    camera = synthetic_camera() if args.camera else None

    try:
        result = HandRigger(options).rig(asset, hands=hands, camera=camera)
    except RigError as e:
        print(f"\n❌ Rigging failed ({e.kind}): {e}")
        raise SystemExit(1)

    meta = result.metadata
    print(f"\n✅ Added {meta['added_bone_count']} bones to {meta['original_bone_count']} "
          f"in {meta['processing_time_ms']:.1f}ms")
    for side, hand in result.per_hand.items():
        conf = "n/a" if hand.detection_confidence is None else f"{hand.detection_confidence:.2f}"
        print(f"  {side}: {hand.bones} bones, {hand.vertex_count} vertices, confidence {conf}")
    for issue in result.issues:
        print(f"  ⚠️  {issue}")

    if args.bend:
        import torch
        from handrig.core.skinning import posed_world_matrices, skin_vertices

        mesh = asset.meshes[0]
        rest = skin_vertices(mesh)
        G = posed_world_matrices(asset.skeleton, {args.bend: [0.0, 0.0, np.radians(args.angle)]})
        posed = skin_vertices(mesh, world_matrices=G)
        moved = np.linalg.norm(posed - rest, axis=1)
        print(f"\nBent {args.bend} by {args.angle}°: {int((moved > 1e-6).sum())} vertices moved "
              f"(max {moved.max():.3f}, torch {torch.__version__})")


if __name__ == "__main__":
    main()
