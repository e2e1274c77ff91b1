import json
import math

import pytest

from scene import (
    MAX_DEPTH, ORIGIN, Camera, Plane, PointLight, Quadric, RenderSettings, Scene, SceneError,
    Sphere, SpotLight, fix_camera_origin, load_render_settings, load_scene,
    parse_scene_text, render_settings_from_dict, scene_from_dict, validate_scene,
)

SCENE_TEXT = """
# camera first
camera, width: 2.0, height: 1.5
sphere, radius: 2.0, position: [0, 1, -5], diffuse_color: [1, 0, 0], specular_color: [1, 1, 1], reflectivity: 0.25
sphere, radius: 1, position: [2, 0, -4], diffuse_color: [0, 1, 0], specular_color: [0.5, 0.5, 0.5], ns: 40, reflectivity: 0.1, refractivity: 0.2, ior: 1.3
plane, normal: [0, 2, 0], position: [0, -1, 0], diffuse_color: [0.5, 0.5, 0.5], reflectivity: 0.5
light, position: [1, 5, 0], color: [1, 1, 1], radial-a0: 1, radial-a1: 0.1, radial-a2: 0.01
light, position: [0, 5, 0], color: [0.5, 0.5, 1], direction: [0, -3, 0], theta: 30, radial-a0: 1, radial-a1: 0, radial-a2: 0, angular-a0: 2
quadric, constants: [1, 1, 1, 0, 0, 0, 0, 0, 0, -1], diffuse_color: [0.1, 0.2, 0.3]
"""


@pytest.fixture
def parsed():
    return parse_scene_text(SCENE_TEXT, 64, 48)


def test_camera(parsed):
    cam = parsed.camera
    assert (cam.image_width, cam.image_height) == (64, 48)
    assert (cam.viewport_width, cam.viewport_height) == (2.0, 1.5)
    assert cam.viewport_distance == 1.0
    assert cam.origin == ORIGIN


def test_objects_keep_file_order(parsed):
    kinds = [type(o) for o in parsed.objects]
    assert kinds == [Sphere, Sphere, Plane, Quadric]


def test_sphere_defaults_and_values(parsed):
    first, second = parsed.objects[0], parsed.objects[1]
    assert first.center == (0.0, 1.0, -5.0)
    assert first.radius == 2.0
    assert first.ns == 20.0
    assert first.refractivity == 0.0
    assert second.ns == 40.0
    assert second.refractivity == 0.2
    assert second.ior == 1.3


def test_plane_normal_and_offset(parsed):
    plane = parsed.objects[2]
    assert plane.normal == pytest.approx((0.0, 1.0, 0.0))
    assert plane.offset == pytest.approx(1.0)
    assert plane.specular_color == (0.0, 0.0, 0.0)


def test_lights(parsed):
    point, spot = parsed.lights
    assert isinstance(point, PointLight)
    assert (point.radial_a0, point.radial_a1, point.radial_a2) == (1.0, 0.1, 0.01)
    assert isinstance(spot, SpotLight)
    assert spot.direction == pytest.approx((0.0, -1.0, 0.0))
    assert spot.theta == pytest.approx(math.radians(30.0))
    assert spot.cos_theta == pytest.approx(math.cos(math.radians(30.0)))
    assert spot.angular_a0 == 2.0


def test_quadric_constants(parsed):
    assert parsed.objects[3].constants == (1.0, 1.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, -1.0)


def test_camera_origin_is_discarded():
    scene = parse_scene_text("camera, width: 1, height: 1, origin: [4, 5, 6]", 2, 2)
    assert scene.camera.origin == ORIGIN


def test_fix_camera_origin():
    scene = Scene(camera=Camera(2, 2, origin=(1.0, 2.0, 3.0)))
    assert fix_camera_origin(scene).camera.origin == ORIGIN


def test_missing_camera_uses_defaults():
    scene = parse_scene_text("sphere, radius: 1, position: [0, 0, -3]", 5, 4)
    assert scene.camera == Camera(5, 4)


def test_ambient_entity():
    scene = parse_scene_text("ambient, color: [0.1, 0.2, 0.3]", 1, 1)
    assert scene.ambient == (0.1, 0.2, 0.3)


def test_empty_text():
    scene = parse_scene_text("# nothing here\n", 3, 3)
    assert scene.objects == [] and scene.lights == []


@pytest.mark.parametrize("text,message", [
    ("cube, size: 1", "unknown entity type 'cube'"),
    ("sphere, radius: 1, position: [0, 0, 0], colour: [1, 1, 1]", "unknown property colour"),
    ("sphere, position: [0, 0, 0]", "missing required property radius"),
    ("sphere, radius: big, position: [0, 0, 0]", "'radius' must be a number"),
    ("sphere, radius: 1, position: [0, 0]", "3-component vector"),
    ("plane, normal: [0, 0, 0], position: [0, 0, 0]", "Zero-length vector"),
    ("quadric, constants: [1, 2, 3]", "exactly 10 numbers"),
    ("light, position: [0, 0, 0], color: [1, 1, 1], direction: [0, 0, 0]", "Zero-length vector"),
    ("sphere, radius: 1, position: [0, 0, 0", "unexpected end of input"),
    ("sphere, radius 1", "expected 'name: value'"),
])
def test_malformed_text(text, message):
    with pytest.raises(SceneError, match=message):
        parse_scene_text(text, 1, 1)


def test_error_names_entity():
    text = "sphere, radius: 1, position: [0, 0, -3]\nsphere, radius: x, position: [0, 0, -3]"
    with pytest.raises(SceneError, match=r"entity 2 \(sphere\)"):
        parse_scene_text(text, 1, 1)


SCENE_DICT = {
    "camera": {"width": 1.0, "height": 1.0},
    "ambient": [0.1, 0.1, 0.1],
    "objects": [
        {"type": "sphere", "position": [0, 0, -5], "radius": 1.0, "diffuse_color": [1, 0, 0]},
        {"type": "plane", "normal": [0, 1, 0], "position": [0, -1, 0], "reflectivity": 0.5},
    ],
    "lights": [
        {"position": [0, 5, 0], "color": [1, 1, 1], "radial-a1": 0.5},
        {"position": [0, 5, 0], "color": [1, 1, 1], "direction": [0, -1, 0], "theta": 20},
    ],
    "render": {"width": 32, "height": 24, "max_depth": 3, "workers": 2},
}


def test_scene_from_dict():
    scene = scene_from_dict(SCENE_DICT)
    assert (scene.camera.image_width, scene.camera.image_height) == (32, 24)
    assert [type(o) for o in scene.objects] == [Sphere, Plane]
    assert scene.lights[0].radial_a1 == 0.5
    assert isinstance(scene.lights[1], SpotLight)
    assert scene.ambient == (0.1, 0.1, 0.1)


def test_scene_from_dict_explicit_size_wins():
    scene = scene_from_dict(SCENE_DICT, 8, 6)
    assert (scene.camera.image_width, scene.camera.image_height) == (8, 6)


def test_scene_from_dict_errors():
    with pytest.raises(SceneError, match="unknown object type"):
        scene_from_dict({"objects": [{"type": "torus"}]}, 1, 1)
    with pytest.raises(SceneError, match="width and height"):
        scene_from_dict({})
    with pytest.raises(SceneError):
        scene_from_dict([], 1, 1)


def test_load_scene_text_and_json(tmp_path):
    txt = tmp_path / "scene.txt"
    txt.write_text(SCENE_TEXT)
    js = tmp_path / "scene.json"
    js.write_text(json.dumps(SCENE_DICT))

    assert len(load_scene(str(txt), 4, 4).objects) == 4
    assert len(load_scene(str(js), 4, 4).objects) == 2


def test_load_scene_bad_json(tmp_path):
    js = tmp_path / "broken.json"
    js.write_text("{not json")
    with pytest.raises(SceneError, match="invalid JSON"):
        load_scene(str(js), 1, 1)


def test_load_scene_missing_file(tmp_path):
    with pytest.raises(OSError):
        load_scene(str(tmp_path / "nope.txt"), 1, 1)


def test_load_render_settings(tmp_path):
    js = tmp_path / "scene.json"
    js.write_text(json.dumps(SCENE_DICT))
    assert load_render_settings(str(js)) == RenderSettings(max_depth=3, workers=2)
    assert load_render_settings(str(tmp_path / "scene.txt")) == RenderSettings(max_depth=MAX_DEPTH)


def test_render_settings_verbose_flag():
    assert render_settings_from_dict({}).verbose is True
    assert render_settings_from_dict({"render": {"verbose": False}}).verbose is False
    with pytest.raises(SceneError, match="verbose"):
        render_settings_from_dict({"render": {"verbose": "no"}})


def test_validate_scene_rejects_bad_sizes():
    with pytest.raises(SceneError):
        validate_scene(Scene(camera=Camera(0, 10)))
    with pytest.raises(SceneError):
        validate_scene(Scene(camera=Camera(10, 10, viewport_width=0.0)))
    with pytest.raises(SceneError, match="radius"):
        validate_scene(Scene(camera=Camera(1, 1), objects=[Sphere(center=ORIGIN, radius=-1.0)]))


def test_validate_scene_warns_on_over_unity_weights(capsys):
    sphere = Sphere(center=ORIGIN, radius=1.0, reflectivity=0.8, refractivity=0.4)
    validate_scene(Scene(camera=Camera(1, 1), objects=[sphere]))
    assert "reflectivity + refractivity > 1" in capsys.readouterr().out
