"""
CPU Ray Tracer with planes, spheres, quadrics, point and spot lights.
Supports recursive mirror reflections up to max_depth.
"""
import argparse
import math
import sys
from multiprocessing import Pool
from typing import Any, Dict, List, Optional, Tuple

from scene import (
    BLACK, MAX_DEPTH, Color, Light, Plane, Primitive, Quadric, Scene, SceneError,
    Sphere, SpotLight, Vec3, load_render_settings, load_scene, validate_scene,
)
from image_io import save_image

Pixel = Tuple[int, int, int]

# Vector math utilities
def add(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])

def sub(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])

def mul(a: Vec3, s: float) -> Vec3:
    return (a[0] * s, a[1] * s, a[2] * s)

def dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]

def length(v: Vec3) -> float:
    return math.sqrt(dot(v, v))

def norm(v: Vec3) -> Vec3:
    l = length(v)
    if l == 0.0:
        return (0.0, 0.0, 0.0)
    return mul(v, 1.0 / l)

def from_points(a: Vec3, b: Vec3) -> Vec3:
    """Vector pointing from a to b."""
    return sub(b, a)

def reflect(rd: Vec3, n: Vec3) -> Vec3:
    """Reflect ray direction rd off surface with normal n."""
    return sub(rd, mul(n, 2.0 * dot(rd, n)))

def hit_point(ro: Vec3, rd: Vec3, t: float) -> Vec3:
    return add(ro, mul(rd, t))

def clamp01(x: float) -> float:
    if math.isnan(x):
        return 0.0
    return max(0.0, min(1.0, x))

def clamp_color(c: Color) -> Color:
    return (clamp01(c[0]), clamp01(c[1]), clamp01(c[2]))

def to_pixel(c: Color) -> Pixel:
    """Convert a normalized color to 8 bits per channel."""
    return (int(clamp01(c[0]) * 255), int(clamp01(c[1]) * 255), int(clamp01(c[2]) * 255))

# Ray intersection functions. All return 0.0 for "no intersection ahead".
def ray_plane(ro: Vec3, rd: Vec3, normal: Vec3, offset: float) -> float:
    """Ray-plane intersection, t = -(N.R0 + D) / (N.Rd)."""
    denom = dot(normal, rd)
    if denom == 0.0:
        return 0.0
    return -(dot(normal, ro) + offset) / denom

def ray_sphere(ro: Vec3, rd: Vec3, center: Vec3, radius: float) -> float:
    """Ray-sphere intersection for a normalized rd."""
    oc = sub(ro, center)
    b = 2.0 * dot(rd, oc)
    c = dot(oc, oc) - radius * radius
    disc = b * b - 4.0 * c

    if disc < 0:
        return 0.0

    sdisc = math.sqrt(disc)
    t0 = (-b - sdisc) / 2.0
    if t0 >= 0:
        return t0

    # Origin inside the sphere: the far root is the exit point
    return (-b + sdisc) / 2.0

def ray_quadric(ro: Vec3, rd: Vec3, constants: Tuple[float, ...]) -> float:
    """Ray intersection with a general second-degree surface."""
    A, B, C, D, E, F, G, H, I, J = constants
    x0, y0, z0 = ro
    xd, yd, zd = rd

    aq = (A * xd * xd + B * yd * yd + C * zd * zd
          + D * xd * yd + E * xd * zd + F * yd * zd)
    bq = (2.0 * (A * x0 * xd + B * y0 * yd + C * z0 * zd)
          + D * (x0 * yd + y0 * xd) + E * (x0 * zd + z0 * xd) + F * (y0 * zd + yd * z0)
          + G * xd + H * yd + I * zd)
    cq = (A * x0 * x0 + B * y0 * y0 + C * z0 * z0
          + D * x0 * y0 + E * x0 * z0 + F * y0 * z0
          + G * x0 + H * y0 + I * z0 + J)

    if aq == 0.0:
        if bq == 0.0:
            return 0.0
        return -cq / bq

    disc = bq * bq - 4.0 * aq * cq
    if disc < 0:
        return 0.0

    sdisc = math.sqrt(disc)
    t0 = (-bq - sdisc) / (2.0 * aq)
    t1 = (-bq + sdisc) / (2.0 * aq)
    # aq < 0 flips the root order
    if t0 > t1:
        t0, t1 = t1, t0
    if t0 > 0:
        return t0
    return t1

def intersect(ro: Vec3, rd: Vec3, obj: Primitive) -> float:
    if isinstance(obj, Plane):
        return ray_plane(ro, rd, obj.normal, obj.offset)
    if isinstance(obj, Sphere):
        return ray_sphere(ro, rd, obj.center, obj.radius)
    if isinstance(obj, Quadric):
        return ray_quadric(ro, rd, obj.constants)
    raise TypeError(f"Unsupported primitive: {type(obj).__name__}")

def surface_normal(obj: Primitive, point: Vec3) -> Vec3:
    if isinstance(obj, Plane):
        return obj.normal
    if isinstance(obj, Sphere):
        return norm(from_points(obj.center, point))
    if isinstance(obj, Quadric):
        A, B, C, D, E, F, G, H, I, _ = obj.constants
        x, y, z = point
        return norm((2.0 * A * x + D * y + E * z + G,
                     2.0 * B * y + D * x + F * z + H,
                     2.0 * C * z + E * x + F * y + I))
    raise TypeError(f"Unsupported primitive: {type(obj).__name__}")

def raycast(ro: Vec3, rd: Vec3, objects: List[Primitive],
            ignored: Optional[Primitive] = None) -> Tuple[Optional[Primitive], float]:
    """Nearest object hit at strictly positive t, skipping *ignored*."""
    nearest_obj = None
    nearest_t = math.inf

    for obj in objects:
        if obj is ignored:
            continue
        t = intersect(ro, rd, obj)
        if 0 < t < nearest_t:
            nearest_obj = obj
            nearest_t = t

    return nearest_obj, nearest_t

# Lighting
def radial_attenuation(light: Light, distance: float) -> float:
    denom = light.radial_a0 + light.radial_a1 * distance + light.radial_a2 * distance * distance
    if denom == 0.0:
        # Unbounded falloff; the color clamp saturates it
        return math.inf
    return 1.0 / denom

def angular_attenuation(light: Light, to_point: Vec3) -> float:
    """Spot cone falloff for the light-to-point direction; 1 for point lights."""
    if not isinstance(light, SpotLight):
        return 1.0
    if light.theta == 0:
        return 0.0
    cos_angle = dot(to_point, light.direction)
    if cos_angle < light.cos_theta:
        return 0.0
    # Cones wider than 90 degrees reach points behind the axis
    return max(cos_angle, 0.0) ** light.angular_a0

def in_shadow(point: Vec3, obj: Primitive, light: Light, objects: List[Primitive]) -> bool:
    to_light = from_points(point, light.position)
    distance = length(to_light)
    _, t = raycast(point, norm(to_light), objects, ignored=obj)
    return 0 < t < distance

def light_contribution(point: Vec3, normal: Vec3, view: Vec3, obj: Primitive,
                       light: Light, objects: List[Primitive]) -> Color:
    """
    Color one light adds at point before the reflect/refract weighting.

    radial * angular * kd * Il * (N.L) + ks * Il * (R.V)^ns

    Attenuation scales the diffuse term only. A point outside a spot cone
    gets nothing from that light, highlight included.
    """
    if in_shadow(point, obj, light, objects):
        return BLACK

    to_light = from_points(point, light.position)
    distance = length(to_light)
    L = norm(to_light)

    angular = angular_attenuation(light, mul(L, -1.0))
    if angular == 0.0:
        return BLACK
    attenuation = radial_attenuation(light, distance) * angular

    ndotl = dot(normal, L)
    if ndotl <= 0:
        return BLACK

    R = norm(reflect(mul(L, -1.0), normal))
    rdotv = dot(R, view)
    specular = rdotv ** obj.ns if rdotv > 0 else 0.0

    lc = light.color
    kd = obj.diffuse_color
    ks = obj.specular_color
    col = []
    for i in range(3):
        diffuse = kd[i] * lc[i] * ndotl
        # Skip dark channels so an infinite attenuation cannot turn 0 into NaN
        if diffuse != 0.0:
            diffuse *= attenuation
        col.append(diffuse + ks[i] * lc[i] * specular)
    return (col[0], col[1], col[2])

def local_weight(obj: Primitive) -> float:
    """Share of light the surface shades itself instead of mirroring or transmitting."""
    return 1.0 - obj.reflectivity - obj.refractivity

def illuminate(point: Vec3, view: Vec3, obj: Primitive, scene: Scene,
               reflection_color: Color = BLACK) -> Color:
    normal = surface_normal(obj, point)
    kd = obj.diffuse_color
    amb = scene.ambient
    col = (amb[0] * kd[0], amb[1] * kd[1], amb[2] * kd[2])

    for light in scene.lights:
        col = add(col, light_contribution(point, normal, view, obj, light, scene.objects))

    weight = local_weight(obj)
    local = mul(col, weight) if weight != 0.0 else BLACK
    return clamp_color(add(local, reflection_color))

def raytrace(obj: Primitive, point: Vec3, rd: Vec3, scene: Scene,
             depth: int = 1, max_depth: int = MAX_DEPTH) -> Color:
    """
    Color seen along rd at point on obj, including mirror bounces.

    Args:
        obj: Object the point lies on
        point: Intersection point
        rd: Incoming ray direction (normalized)
        scene: Scene being rendered
        depth: Current bounce depth, 1 for primary hits
        max_depth: Deepest bounce that is still shaded
    """
    if depth > max_depth:
        return BLACK

    normal = surface_normal(obj, point)
    reflected_rd = norm(reflect(rd, normal))

    reflection_color = BLACK
    new_obj, new_t = raycast(point, reflected_rd, scene.objects, ignored=obj)
    if new_obj is not None:
        new_point = hit_point(point, reflected_rd, new_t)
        bounced = raytrace(new_obj, new_point, reflected_rd, scene, depth + 1, max_depth)
        reflection_color = mul(bounced, obj.reflectivity)

    return illuminate(point, mul(rd, -1.0), obj, scene, reflection_color)

# Frame rendering
def new_frame_buffer(width: int, height: int, background: Pixel = (0, 0, 0)) -> List[Pixel]:
    """Row-major pixel buffer filled with the background color."""
    return [background] * (width * height)

def primary_ray(scene: Scene, x: int, y: int) -> Vec3:
    cam = scene.camera
    dx = cam.viewport_width / cam.image_width
    dy = cam.viewport_height / cam.image_height
    p = (-0.5 * cam.viewport_width + 0.5 * dx + x * dx,
         0.5 * cam.viewport_height - 0.5 * dy - y * dy,
         -cam.viewport_distance)
    return norm(from_points(cam.origin, p))

def render_pixel(scene: Scene, x: int, y: int, max_depth: int = MAX_DEPTH) -> Optional[Pixel]:
    """Pixel value at (x, y), or None when the primary ray hits nothing."""
    ro = scene.camera.origin
    rd = primary_ray(scene, x, y)
    obj, t = raycast(ro, rd, scene.objects)
    if obj is None:
        return None
    color = raytrace(obj, hit_point(ro, rd, t), rd, scene, 1, max_depth)
    return to_pixel(color)

def render_row(scene: Scene, y: int, max_depth: int = MAX_DEPTH) -> List[Tuple[int, Pixel]]:
    row = []
    for x in range(scene.camera.image_width):
        pixel = render_pixel(scene, x, y, max_depth)
        if pixel is not None:
            row.append((x, pixel))
    return row

# Global state for multiprocessing workers (set by initializer)
_worker_data: Dict[str, Any] = {}

def _init_worker(scene: Scene, max_depth: int) -> None:
    _worker_data["scene"] = scene
    _worker_data["max_depth"] = max_depth

def _render_row_worker(y: int) -> Tuple[int, List[Tuple[int, Pixel]]]:
    return y, render_row(_worker_data["scene"], y, _worker_data["max_depth"])

def render_scene(scene: Scene, buffer: List[Pixel], max_depth: int = MAX_DEPTH,
                 workers: int = 1, verbose: bool = True) -> List[Pixel]:
    """Render scene into buffer; pixels whose primary ray misses keep their value."""
    W = scene.camera.image_width
    H = scene.camera.image_height
    if len(buffer) != W * H:
        raise ValueError(f"Frame buffer holds {len(buffer)} pixels, expected {W}x{H}")

    if verbose:
        print(f"Rendering {W}x{H} image with {max_depth} max bounces "
              f"({len(scene.objects)} objects, {len(scene.lights)} lights)...")

    if workers > 1:
        rows = _render_rows_parallel(scene, H, max_depth, workers)
    else:
        rows = ((y, render_row(scene, y, max_depth)) for y in range(H))

    for done, (y, row) in enumerate(rows):
        if verbose and done % 50 == 0:
            print(f"Progress: {done}/{H} ({100*done//H}%)")
        base = y * W
        for x, pixel in row:
            buffer[base + x] = pixel

    return buffer

def _render_rows_parallel(scene: Scene, height: int, max_depth: int, workers: int):
    with Pool(processes=workers, initializer=_init_worker, initargs=(scene, max_depth)) as pool:
        yield from pool.imap_unordered(_render_row_worker, range(height))

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ray trace a scene file into an image")
    parser.add_argument("width", type=int, help="Image width in pixels")
    parser.add_argument("height", type=int, help="Image height in pixels")
    parser.add_argument("input", help="Scene file (text format or .json)")
    parser.add_argument("output", help="Output image (.ppm, .png, ...)")
    parser.add_argument("--max-depth", type=int, default=None,
                        help=f"Maximum reflection depth (default {MAX_DEPTH})")
    parser.add_argument("--workers", type=int, default=None,
                        help="Render rows in this many processes")
    parser.add_argument("--ppm-format", choices=("P3", "P6"), default="P6",
                        help="PPM flavor when writing .ppm output")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    args = parser.parse_args(argv)

    if args.width <= 0 or args.height <= 0:
        print(f"Error: Image size must be positive, got {args.width}x{args.height}", file=sys.stderr)
        return 1

    try:
        settings = load_render_settings(args.input)
        scene = load_scene(args.input, args.width, args.height)
        validate_scene(scene)
    except OSError as e:
        print(f"Error: Could not open input file \"{args.input}\": {e.strerror or e}", file=sys.stderr)
        return 1
    except SceneError as e:
        print(f"Error: {args.input}: {e}", file=sys.stderr)
        return 1

    max_depth = args.max_depth if args.max_depth is not None else settings.max_depth
    workers = args.workers if args.workers is not None else settings.workers
    verbose = settings.verbose and not args.quiet

    buffer = new_frame_buffer(args.width, args.height)
    render_scene(scene, buffer, max_depth=max_depth, workers=workers, verbose=verbose)

    try:
        save_image(buffer, args.width, args.height, args.output, fmt=args.ppm_format)
    except OSError as e:
        print(f"Error: Could not write output file \"{args.output}\": {e.strerror or e}", file=sys.stderr)
        return 1

    if verbose:
        print(f"Saved {args.output}")
    return 0

if __name__ == "__main__":
    sys.exit(main())
