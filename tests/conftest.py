import os
import sys

import pytest

# Add python directory to path to allow imports without installing
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'python')))

from scene import Camera, Plane, PointLight, Scene, Sphere  # noqa: E402


@pytest.fixture
def white_floor():
    """Diffuse white plane y = 0 facing up."""
    return Plane.from_point((0.0, 1.0, 0.0), (0.0, 0.0, 0.0), diffuse_color=(1.0, 1.0, 1.0))


@pytest.fixture
def red_sphere_scene():
    """11x11 image of a red sphere lit from the camera position."""
    camera = Camera(11, 11, 1.0, 1.0, 1.0)
    sphere = Sphere(center=(0.0, 0.0, -5.0), radius=1.0, diffuse_color=(1.0, 0.0, 0.0))
    light = PointLight(position=(0.0, 0.0, 0.0), color=(1.0, 1.0, 1.0))
    return Scene(camera=camera, objects=[sphere], lights=[light])
