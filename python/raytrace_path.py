"""
Ray Path Visualization - Follow the reflection chain of a single camera ray.
Shows where each bounce lands and how much each level still contributes.
"""
import math
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw

from raytrace_cpu import (
    add, mul, norm, reflect, surface_normal, hit_point, raycast, primary_ray,
    new_frame_buffer, render_scene,
)
from image_io import to_image
from scene import MAX_DEPTH, Primitive, Scene, Vec3

ESCAPE_DISTANCE = 100.0

class RayPath:
    """Represents a traced reflection chain with per-segment weights."""
    def __init__(self):
        self.segments: List[Tuple[Vec3, Vec3, Optional[Primitive], float]] = []
        # Each segment: (start_pos, end_pos, object_hit, weight)
        # weight is the product of the reflectivities the ray already bounced off

    def add_segment(self, start: Vec3, end: Vec3, obj: Optional[Primitive], weight: float):
        self.segments.append((start, end, obj, weight))

    @property
    def hits(self) -> List[Primitive]:
        return [obj for _, _, obj, _ in self.segments if obj is not None]

    @property
    def escaped(self) -> bool:
        """True when the last segment left the scene without hitting anything."""
        return bool(self.segments) and self.segments[-1][2] is None

def trace_ray_path(scene: Scene, start_pos: Vec3, start_dir: Vec3,
                   max_depth: int = MAX_DEPTH) -> RayPath:
    """
    Record the path raytrace() follows for one ray.

    Args:
        scene: Scene to trace through
        start_pos: Starting position of ray
        start_dir: Starting direction
        max_depth: Maximum number of shaded hits, as in raytrace()

    Returns:
        RayPath object with all segments
    """
    path = RayPath()
    ro = start_pos
    rd = norm(start_dir)
    ignored = None
    weight = 1.0

    for _ in range(max_depth):
        obj, t = raycast(ro, rd, scene.objects, ignored=ignored)
        if obj is None:
            # Ray escaped the scene
            path.add_segment(ro, add(ro, mul(rd, ESCAPE_DISTANCE)), None, weight)
            break

        hit = hit_point(ro, rd, t)
        path.add_segment(ro, hit, obj, weight)

        weight *= obj.reflectivity
        rd = norm(reflect(rd, surface_normal(obj, hit)))
        ro = hit
        ignored = obj

    return path

def project_point(scene: Scene, p: Vec3) -> Optional[Tuple[int, int]]:
    """Project a world point onto the image through the camera viewport."""
    cam = scene.camera
    depth = -(p[2] - cam.origin[2])
    if depth < 1e-3:  # Behind the viewport
        return None
    vx = (p[0] - cam.origin[0]) * cam.viewport_distance / depth
    vy = (p[1] - cam.origin[1]) * cam.viewport_distance / depth
    px = (vx / cam.viewport_width + 0.5) * cam.image_width
    py = (0.5 - vy / cam.viewport_height) * cam.image_height
    if not (math.isfinite(px) and math.isfinite(py)):
        return None
    return (int(px), int(py))

def weight_color(weight: float) -> Tuple[int, int, int]:
    # Bright yellow-white for the primary segment, fading to red-orange
    if weight > 0.7:
        return (255, 255, 200)
    elif weight > 0.4:
        return (255, 200, 100)
    elif weight > 0.2:
        return (255, 150, 50)
    return (200, 100, 50)

def render_with_ray_path(scene: Scene, x: int, y: int, output_path: str = "render_path.png",
                         max_depth: int = MAX_DEPTH, verbose: bool = True) -> RayPath:
    """Render scene and overlay the reflection chain of pixel (x, y)."""
    W = scene.camera.image_width
    H = scene.camera.image_height

    buffer = new_frame_buffer(W, H, background=(10, 12, 15))
    render_scene(scene, buffer, max_depth=max_depth, verbose=verbose)
    img: Image.Image = to_image(buffer, W, H)
    draw = ImageDraw.Draw(img)

    ray_path = trace_ray_path(scene, scene.camera.origin, primary_ray(scene, x, y), max_depth)
    if verbose:
        print(f"Ray path traced: {len(ray_path.segments)} segments, "
              f"{len(ray_path.hits)} hits")

    for i, (start, end, _obj, weight) in enumerate(ray_path.segments):
        start_2d = project_point(scene, start) if i > 0 else (x, y)
        end_2d = project_point(scene, end)
        if start_2d is None or end_2d is None:
            continue
        color = weight_color(weight)
        draw.line([start_2d, end_2d], fill=color, width=max(1, int(weight * 3)))
        if i < len(ray_path.segments) - 1:
            draw.ellipse([end_2d[0]-2, end_2d[1]-2, end_2d[0]+2, end_2d[1]+2],
                         fill=color, outline=color)

    # Light positions
    for light in scene.lights:
        light_2d = project_point(scene, light.position)
        if light_2d:
            for radius in (8, 6, 4):
                draw.ellipse([light_2d[0]-radius, light_2d[1]-radius,
                              light_2d[0]+radius, light_2d[1]+radius],
                             fill=(255, 255, 200), outline=(255, 255, 150))

    img.save(output_path)
    if verbose:
        print(f"Saved ray path visualization: {output_path}")
    return ray_path

if __name__ == "__main__":
    import argparse

    from scene import load_scene, validate_scene

    parser = argparse.ArgumentParser(description="Draw the reflection chain of one pixel")
    parser.add_argument("width", type=int)
    parser.add_argument("height", type=int)
    parser.add_argument("input")
    parser.add_argument("output")
    parser.add_argument("--pixel", type=int, nargs=2, metavar=("X", "Y"), default=None)
    parser.add_argument("--max-depth", type=int, default=MAX_DEPTH)
    args = parser.parse_args()

    scene = load_scene(args.input, args.width, args.height)
    validate_scene(scene)
    px, py = args.pixel if args.pixel else (args.width // 2, args.height // 2)
    render_with_ray_path(scene, px, py, args.output, args.max_depth)
