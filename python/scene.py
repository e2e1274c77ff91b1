"""Scene model, loading and validation for scene text files and scene.json"""
import json
import math
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

Vec3 = Tuple[float, float, float]
Color = Tuple[float, float, float]

ORIGIN: Vec3 = (0.0, 0.0, 0.0)
BLACK: Color = (0.0, 0.0, 0.0)

DEFAULT_NS = 20.0
MAX_DEPTH = 7


class SceneError(ValueError):
    """Raised when a scene description cannot be turned into a Scene."""


def _unit(v: Vec3) -> Vec3:
    l = math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])
    if l == 0.0:
        raise SceneError("Zero-length vector where a direction was expected")
    return (v[0] / l, v[1] / l, v[2] / l)


@dataclass(frozen=True)
class Camera:
    """Viewport camera. The origin is always the world origin once loaded."""
    image_width: int
    image_height: int
    viewport_width: float = 1.0
    viewport_height: float = 1.0
    viewport_distance: float = 1.0
    origin: Vec3 = ORIGIN


@dataclass(frozen=True, eq=False)
class Plane:
    normal: Vec3
    offset: float
    diffuse_color: Color = BLACK
    specular_color: Color = BLACK
    reflectivity: float = 0.0
    refractivity: float = 0.0
    ior: float = 1.0
    ns: float = DEFAULT_NS

    @classmethod
    def from_point(cls, normal: Vec3, position: Vec3, **material: Any) -> "Plane":
        """Build a plane through *position*; the offset is -(normal . position)."""
        n = _unit(normal)
        offset = -(n[0] * position[0] + n[1] * position[1] + n[2] * position[2])
        return cls(normal=n, offset=offset, **material)


@dataclass(frozen=True, eq=False)
class Sphere:
    center: Vec3
    radius: float
    diffuse_color: Color = BLACK
    specular_color: Color = BLACK
    reflectivity: float = 0.0
    refractivity: float = 0.0
    ior: float = 1.0
    ns: float = DEFAULT_NS


@dataclass(frozen=True, eq=False)
class Quadric:
    """Ax^2 + By^2 + Cz^2 + Dxy + Exz + Fyz + Gx + Hy + Iz + J = 0"""
    constants: Tuple[float, ...]
    diffuse_color: Color = BLACK
    specular_color: Color = BLACK
    reflectivity: float = 0.0
    refractivity: float = 0.0
    ior: float = 1.0
    ns: float = DEFAULT_NS


Primitive = Union[Plane, Sphere, Quadric]


@dataclass(frozen=True, eq=False)
class PointLight:
    position: Vec3
    color: Color
    radial_a0: float = 1.0
    radial_a1: float = 0.0
    radial_a2: float = 0.0


@dataclass(frozen=True, eq=False)
class SpotLight:
    position: Vec3
    color: Color
    direction: Vec3
    theta: float
    cos_theta: float
    angular_a0: float = 0.0
    radial_a0: float = 1.0
    radial_a1: float = 0.0
    radial_a2: float = 0.0


Light = Union[PointLight, SpotLight]


@dataclass
class Scene:
    """Camera, primitives and lights. Read-only once rendering starts."""
    camera: Camera
    objects: List[Primitive] = field(default_factory=list)
    lights: List[Light] = field(default_factory=list)
    ambient: Color = BLACK


@dataclass
class RenderSettings:
    max_depth: int = MAX_DEPTH
    workers: int = 1
    verbose: bool = True


def fix_camera_origin(scene: Scene) -> Scene:
    """Pin the camera to the world origin; the projection model assumes it."""
    if scene.camera.origin != ORIGIN:
        scene.camera = replace(scene.camera, origin=ORIGIN)
    return scene


# ---------------------------------------------------------------------------
# Entity construction shared by the text and JSON loaders

_MATERIAL_KEYS = ("diffuse_color", "specular_color", "reflectivity", "refractivity", "ior", "ns")

_VECTOR_KEYS = {"position", "normal", "diffuse_color", "specular_color", "color", "direction"}


def _vec(value: Any, key: str, where: str) -> Vec3:
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise SceneError(f"{where}: '{key}' must be a 3-component vector, got {value!r}")
    try:
        return (float(value[0]), float(value[1]), float(value[2]))
    except (TypeError, ValueError):
        raise SceneError(f"{where}: '{key}' has a non-numeric component: {value!r}") from None


def _num(value: Any, key: str, where: str) -> float:
    if isinstance(value, (list, tuple)):
        raise SceneError(f"{where}: '{key}' must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise SceneError(f"{where}: '{key}' must be a number, got {value!r}") from None


def _require(props: Dict[str, Any], keys: Tuple[str, ...], where: str) -> None:
    missing = [k for k in keys if k not in props]
    if missing:
        raise SceneError(f"{where}: missing required propert{'y' if len(missing) == 1 else 'ies'} "
                         f"{', '.join(missing)}")


def _check_keys(props: Dict[str, Any], allowed: set, where: str) -> None:
    unknown = sorted(set(props) - allowed)
    if unknown:
        raise SceneError(f"{where}: unknown propert{'y' if len(unknown) == 1 else 'ies'} "
                         f"{', '.join(unknown)}")


def _material(props: Dict[str, Any], where: str) -> Dict[str, Any]:
    material = {}
    for key in _MATERIAL_KEYS:
        if key not in props:
            continue
        if key in _VECTOR_KEYS:
            material[key] = _vec(props[key], key, where)
        else:
            material[key] = _num(props[key], key, where)
    return material


def _radial(props: Dict[str, Any], where: str) -> Dict[str, float]:
    return {f"radial_a{i}": _num(props[f"radial_a{i}"], f"radial-a{i}", where)
            for i in range(3) if f"radial_a{i}" in props}


def _build_entity(kind: str, props: Dict[str, Any], where: str,
                  width: int, height: int) -> Any:
    """Turn one normalized (underscore keyed) property dict into a model object."""
    material_keys = set(_MATERIAL_KEYS)
    if kind == "camera":
        _check_keys(props, {"width", "height", "distance", "origin"}, where)
        return Camera(
            image_width=width,
            image_height=height,
            viewport_width=_num(props.get("width", 1.0), "width", where),
            viewport_height=_num(props.get("height", 1.0), "height", where),
            viewport_distance=_num(props.get("distance", 1.0), "distance", where),
            # Parsed origins are discarded after load, see fix_camera_origin.
            origin=_vec(props["origin"], "origin", where) if "origin" in props else ORIGIN,
        )
    if kind == "plane":
        _check_keys(props, {"normal", "position"} | material_keys, where)
        _require(props, ("normal", "position"), where)
        normal = _vec(props["normal"], "normal", where)
        position = _vec(props["position"], "position", where)
        material = _material(props, where)
        try:
            return Plane.from_point(normal, position, **material)
        except SceneError as e:
            raise SceneError(f"{where}: {e}") from None
    if kind == "sphere":
        _check_keys(props, {"radius", "position"} | material_keys, where)
        _require(props, ("radius", "position"), where)
        return Sphere(center=_vec(props["position"], "position", where),
                      radius=_num(props["radius"], "radius", where),
                      **_material(props, where))
    if kind == "quadric":
        _check_keys(props, {"constants"} | material_keys, where)
        _require(props, ("constants",), where)
        constants = props["constants"]
        if not isinstance(constants, (list, tuple)) or len(constants) != 10:
            raise SceneError(f"{where}: 'constants' must hold exactly 10 numbers")
        return Quadric(constants=tuple(_num(c, "constants", where) for c in constants),
                       **_material(props, where))
    if kind == "light":
        _check_keys(props, {"position", "color", "direction", "theta", "angular_a0",
                            "radial_a0", "radial_a1", "radial_a2"}, where)
        _require(props, ("position", "color"), where)
        position = _vec(props["position"], "position", where)
        color = _vec(props["color"], "color", where)
        radial = _radial(props, where)
        if "direction" not in props:
            return PointLight(position=position, color=color, **radial)
        theta = math.radians(_num(props.get("theta", 0.0), "theta", where))
        direction = _vec(props["direction"], "direction", where)
        try:
            direction = _unit(direction)
        except SceneError as e:
            raise SceneError(f"{where}: {e}") from None
        return SpotLight(position=position, color=color, direction=direction,
                         theta=theta, cos_theta=math.cos(theta),
                         angular_a0=_num(props.get("angular_a0", 0.0), "angular-a0", where),
                         **radial)
    if kind == "ambient":
        _check_keys(props, {"color"}, where)
        _require(props, ("color",), where)
        return _vec(props["color"], "color", where)
    raise SceneError(f"{where}: unknown entity type '{kind}'")


def _assemble(entities: List[Tuple[str, Any]], width: int, height: int) -> Scene:
    camera = None
    scene = Scene(camera=Camera(width, height))
    for kind, entity in entities:
        if kind == "camera":
            camera = entity
        elif kind == "light":
            scene.lights.append(entity)
        elif kind == "ambient":
            scene.ambient = entity
        else:
            scene.objects.append(entity)
    if camera is not None:
        scene.camera = camera
    return fix_camera_origin(scene)


# ---------------------------------------------------------------------------
# Text format: "sphere, radius: 2.0, position: [0, 1, -5], ..."

def _tokenize(text: str) -> List[str]:
    """Split scene text into names, numbers, ':' ',' '[' ']' tokens."""
    tokens = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "#":
            while i < n and text[i] != "\n":
                i += 1
        elif ch.isspace():
            i += 1
        elif ch in ":,[]":
            tokens.append(ch)
            i += 1
        else:
            start = i
            while i < n and not text[i].isspace() and text[i] not in ":,[]#":
                i += 1
            tokens.append(text[start:i])
    return tokens


class _TextParser:
    def __init__(self, text: str):
        self.tokens = _tokenize(text)
        self.pos = 0

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self, where: str) -> str:
        tok = self.peek()
        if tok is None:
            raise SceneError(f"{where}: unexpected end of input")
        self.pos += 1
        return tok

    def expect(self, tok: str, where: str) -> None:
        got = self.take(where)
        if got != tok:
            raise SceneError(f"{where}: expected '{tok}', got '{got}'")

    def value(self, where: str) -> Any:
        if self.peek() == "[":
            self.take(where)
            items = []
            while True:
                items.append(self.take(where))
                sep = self.take(where)
                if sep == "]":
                    return items
                if sep != ",":
                    raise SceneError(f"{where}: expected ',' or ']', got '{sep}'")
        tok = self.take(where)
        if tok in ":,[]":
            raise SceneError(f"{where}: expected a value, got '{tok}'")
        return tok

    def is_property(self) -> bool:
        # A property is "name :", an entity header is "name ,".
        nxt = self.tokens[self.pos + 1] if self.pos + 1 < len(self.tokens) else None
        return nxt == ":"

    def entities(self) -> List[Tuple[str, Dict[str, Any], str]]:
        out = []
        while self.peek() is not None:
            where = f"entity {len(out) + 1}"
            kind = self.take(where)
            if kind in ":,[]":
                raise SceneError(f"{where}: expected an entity type, got '{kind}'")
            kind = kind.lower()
            where = f"entity {len(out) + 1} ({kind})"
            props: Dict[str, Any] = {}
            while self.peek() == ",":
                self.take(where)
                if not self.is_property():
                    raise SceneError(f"{where}: expected 'name: value' after ','")
                key = self.take(where).lower().replace("-", "_")
                self.expect(":", where)
                props[key] = self.value(where)
            out.append((kind, props, where))
        return out


def parse_scene_text(text: str, width: int, height: int) -> Scene:
    """Parse the comma separated scene format into a Scene of width x height pixels."""
    entities = []
    for kind, props, where in _TextParser(text).entities():
        entities.append((kind, _build_entity(kind, props, where, width, height)))
    return _assemble(entities, width, height)


def scene_from_dict(data: Dict[str, Any], width: Optional[int] = None,
                    height: Optional[int] = None) -> Scene:
    """Build a Scene from a scene.json style dictionary."""
    if not isinstance(data, dict):
        raise SceneError("Scene JSON must be an object")
    render = data.get("render", {})
    width = width if width is not None else render.get("width")
    height = height if height is not None else render.get("height")
    if width is None or height is None:
        raise SceneError("Image width and height must be given or set in the render section")
    try:
        width, height = int(width), int(height)
    except (TypeError, ValueError):
        raise SceneError(f"Image size must be integers, got {width!r}x{height!r}") from None

    def normalized(props: Any, where: str) -> Dict[str, Any]:
        if not isinstance(props, dict):
            raise SceneError(f"{where}: expected an object, got {props!r}")
        return {k.lower().replace("-", "_"): v for k, v in props.items() if k != "type"}

    entities = []
    if "camera" in data:
        entities.append(("camera", _build_entity("camera", normalized(data["camera"], "camera"),
                                                 "camera", width, height)))
    for i, obj in enumerate(data.get("objects", [])):
        kind = str(obj.get("type", "")).lower() if isinstance(obj, dict) else ""
        where = f"object {i + 1} ({kind})"
        if kind not in ("plane", "sphere", "quadric"):
            raise SceneError(f"{where}: unknown object type '{kind}'")
        entities.append((kind, _build_entity(kind, normalized(obj, where), where, width, height)))
    for i, light in enumerate(data.get("lights", [])):
        entities.append(("light", _build_entity("light", normalized(light, f"light {i + 1}"),
                                                f"light {i + 1}", width, height)))
    if "ambient" in data:
        entities.append(("ambient", _vec(data["ambient"], "ambient", "scene")))
    return _assemble(entities, width, height)


def render_settings_from_dict(data: Dict[str, Any]) -> RenderSettings:
    """Read the optional render section of a scene.json."""
    render = data.get("render", {})
    try:
        settings = RenderSettings(max_depth=int(render.get("max_depth", MAX_DEPTH)),
                                  workers=int(render.get("workers", 1)))
    except (TypeError, ValueError):
        raise SceneError(f"render: max_depth and workers must be integers, got {render!r}") from None
    verbose = render.get("verbose", True)
    if not isinstance(verbose, bool):
        raise SceneError(f"render: verbose must be true or false, got {verbose!r}")
    settings.verbose = verbose
    return settings


def load_render_settings(path: str) -> RenderSettings:
    """Render settings stored alongside a .json scene; defaults for text scenes."""
    if os.path.splitext(path)[1].lower() != ".json":
        return RenderSettings()
    with open(path, 'r') as f:
        try:
            return render_settings_from_dict(json.load(f))
        except json.JSONDecodeError as e:
            raise SceneError(f"{path}: invalid JSON: {e}") from None


def load_scene(path: str, width: int, height: int) -> Scene:
    """Load a scene from a .json file or a scene text file."""
    with open(path, 'r') as f:
        if os.path.splitext(path)[1].lower() == ".json":
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise SceneError(f"{path}: invalid JSON: {e}") from None
            return scene_from_dict(data, width, height)
        return parse_scene_text(f.read(), width, height)


def validate_scene(scene: Scene) -> None:
    """Basic validation of scene structure."""
    cam = scene.camera
    if cam.image_width <= 0 or cam.image_height <= 0:
        raise SceneError(f"Image size must be positive, got {cam.image_width}x{cam.image_height}")
    if cam.viewport_width <= 0 or cam.viewport_height <= 0:
        raise SceneError("Viewport width and height must be positive")
    for i, obj in enumerate(scene.objects):
        if isinstance(obj, Sphere) and obj.radius <= 0:
            raise SceneError(f"object {i + 1} (sphere): radius must be positive")
        if obj.reflectivity + obj.refractivity > 1.0:
            print(f"Warning: object {i + 1} has reflectivity + refractivity > 1; "
                  f"its local shading weight is negative")
