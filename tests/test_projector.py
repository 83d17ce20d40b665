"""
tests for 2d → 3d landmark projection.
"""

import numpy as np
import pytest

from handrig.core.errors import ProjectionDegenerate
from handrig.core.projector import (
    convert_to_3d_coordinates,
    estimate_landmark_depths,
    look_at,
    perspective_matrix,
    project_to_screen,
)
from handrig.shared.synthetic import synthetic_camera


def test_center_point_round_trip():
    """(0.5, 0.5) at depth 0.5 → world → screen comes back within 1e-3."""
    camera, projection = synthetic_camera()
    world = convert_to_3d_coordinates([[0.5, 0.5]], camera, projection, [0.5])
    screen = project_to_screen(world, camera, projection)

    assert world.shape == (1, 3)
    assert abs(screen[0, 0] - 0.5) < 1e-3
    assert abs(screen[0, 1] - 0.5) < 1e-3
    assert screen[0, 2] == pytest.approx(0.5, abs=1e-6)
    # image center lies on the optical axis
    assert abs(world[0, 0]) < 1e-9
    assert abs(world[0, 1]) < 1e-9


def test_round_trip_many_points():
    rng = np.random.default_rng(0)
    pts = rng.uniform(0.05, 0.95, size=(50, 2))
    depths = rng.uniform(0.2, 0.9, size=50)
    camera = look_at((1.0, 2.0, 3.0), (0.0, 0.5, 0.0))
    projection = perspective_matrix(60.0, 1.5, 0.1, 100.0)

    world = convert_to_3d_coordinates(pts, camera, projection, depths)
    screen = project_to_screen(world, camera, projection)

    np.testing.assert_allclose(screen[:, :2], pts, atol=1e-6)
    np.testing.assert_allclose(screen[:, 2], depths, atol=1e-6)


def test_image_y_points_down():
    camera, projection = synthetic_camera()
    world = convert_to_3d_coordinates([[0.5, 0.1], [0.5, 0.9]], camera, projection)
    assert world[0, 1] > world[1, 1]


def test_output_length_matches_input():
    camera, projection = synthetic_camera()
    world = convert_to_3d_coordinates(np.full((21, 3), 0.5), camera, projection, depth_estimates=[0.4, 0.6])
    assert world.shape == (21, 3)
    assert convert_to_3d_coordinates(np.zeros((0, 2)), camera, projection).shape == (0, 3)


def _w_swapping_projection():
    """projection whose inverse moves ndc x into w, so x = 0.5 gives w = 0."""
    P = np.eye(4)
    P[[0, 3]] = P[[3, 0]]
    return P


def test_degenerate_w_is_clamped_and_reported():
    issues = []
    world = convert_to_3d_coordinates(
        [[0.5, 0.2], [0.9, 0.2]], np.eye(4), _w_swapping_projection(), issues=issues,
    )

    assert np.all(np.isfinite(world))
    assert len(issues) == 1
    assert issues[0].startswith("degenerate projection at point 0")


def test_degenerate_w_strict_raises():
    with pytest.raises(ProjectionDegenerate) as info:
        convert_to_3d_coordinates([[0.5, 0.2]], np.eye(4), _w_swapping_projection(), strict=True)
    assert info.value.kind == "projection_degenerate"


def test_depth_heuristic_profile():
    depths = estimate_landmark_depths()

    assert depths.shape == (21,)
    assert depths[0] == 0.0
    np.testing.assert_allclose(depths[1:5], [0.02, 0.04, 0.06, 0.08])
    for start in (5, 9, 13, 17):
        np.testing.assert_allclose(depths[start:start + 4], [0.01, 0.03, 0.05, 0.07])
        assert np.all(np.diff(depths[start:start + 4]) > 0)


def test_perspective_rejects_bad_planes():
    with pytest.raises(ValueError):
        perspective_matrix(60.0, 1.0, 0.0, 10.0)
    with pytest.raises(ValueError):
        perspective_matrix(60.0, 1.0, 5.0, 1.0)


def test_look_at_points_down_negative_z():
    camera = look_at((0.0, 0.0, 5.0), (0.0, 0.0, 0.0))
    forward = -camera[:3, 2]
    np.testing.assert_allclose(forward, [0.0, 0.0, -1.0])
    np.testing.assert_allclose(camera[:3, 3], [0.0, 0.0, 5.0])
