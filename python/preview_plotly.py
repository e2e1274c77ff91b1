"""
Interactive 3D preview of the scene using Plotly.
Helps verify geometry before rendering.
"""
import math
from typing import List, Tuple

import plotly.graph_objects as go

from scene import Plane, Quadric, Scene, SpotLight, Sphere, Vec3

PLANE_PATCH_SIZE = 10.0

def _rgb(c: Tuple[float, float, float]) -> str:
    return "rgb({}, {}, {})".format(*(int(max(0.0, min(1.0, v)) * 255) for v in c))

def _plane_basis(n: Vec3) -> Tuple[Vec3, Vec3]:
    """Two unit vectors spanning the plane with normal n."""
    helper = (1.0, 0.0, 0.0) if abs(n[0]) < 0.9 else (0.0, 1.0, 0.0)
    u = (n[1] * helper[2] - n[2] * helper[1],
         n[2] * helper[0] - n[0] * helper[2],
         n[0] * helper[1] - n[1] * helper[0])
    ul = math.sqrt(u[0] ** 2 + u[1] ** 2 + u[2] ** 2)
    u = (u[0] / ul, u[1] / ul, u[2] / ul)
    v = (n[1] * u[2] - n[2] * u[1],
         n[2] * u[0] - n[0] * u[2],
         n[0] * u[1] - n[1] * u[0])
    return u, v

def sphere_mesh(sphere: Sphere, steps: int = 16) -> Tuple[List[float], List[float], List[float]]:
    """Latitude/longitude sample points on a sphere surface."""
    xs, ys, zs = [], [], []
    cx, cy, cz = sphere.center
    for i in range(steps + 1):
        theta = math.pi * i / steps
        for j in range(steps):
            phi = 2.0 * math.pi * j / steps
            xs.append(cx + sphere.radius * math.sin(theta) * math.cos(phi))
            ys.append(cy + sphere.radius * math.cos(theta))
            zs.append(cz + sphere.radius * math.sin(theta) * math.sin(phi))
    return xs, ys, zs

def plane_patch(plane: Plane, size: float = PLANE_PATCH_SIZE) -> List[Vec3]:
    """Four corners of a square patch around the plane point closest to the origin."""
    n = plane.normal
    center = (-plane.offset * n[0], -plane.offset * n[1], -plane.offset * n[2])
    u, v = _plane_basis(n)
    h = size / 2
    corners = []
    for su, sv in ((-1, -1), (1, -1), (1, 1), (-1, 1)):
        corners.append((center[0] + h * (su * u[0] + sv * v[0]),
                        center[1] + h * (su * u[1] + sv * v[1]),
                        center[2] + h * (su * u[2] + sv * v[2])))
    return corners

def create_scene_preview(scene: Scene) -> go.Figure:
    """Create interactive 3D plot of scene."""
    fig = go.Figure()

    # Spheres
    for i, obj in enumerate(scene.objects):
        if isinstance(obj, Sphere):
            xs, ys, zs = sphere_mesh(obj)
            fig.add_trace(go.Mesh3d(
                x=xs, y=ys, z=zs,
                alphahull=0,
                color=_rgb(obj.diffuse_color),
                opacity=0.8,
                name=f'Sphere {i+1}'
            ))
        elif isinstance(obj, Plane):
            corners = plane_patch(obj)
            fig.add_trace(go.Mesh3d(
                x=[c[0] for c in corners],
                y=[c[1] for c in corners],
                z=[c[2] for c in corners],
                i=[0, 0], j=[1, 2], k=[2, 3],
                color=_rgb(obj.diffuse_color),
                opacity=0.5 if obj.reflectivity < 0.5 else 0.3,
                name=f'Plane {i+1}'
            ))
        elif isinstance(obj, Quadric):
            # No closed-form patch; mark the object in the legend only
            fig.add_trace(go.Scatter3d(
                x=[None], y=[None], z=[None],
                mode='markers',
                marker=dict(color=_rgb(obj.diffuse_color)),
                name=f'Quadric {i+1} (not drawn)'
            ))

    # Lights
    for i, light in enumerate(scene.lights):
        pos = light.position
        fig.add_trace(go.Scatter3d(
            x=[pos[0]], y=[pos[1]], z=[pos[2]],
            mode='markers',
            marker=dict(size=10, color=_rgb(light.color), symbol='circle',
                        line=dict(color='yellow', width=2)),
            name=f'Light {i+1}'
        ))
        if isinstance(light, SpotLight):
            end = (pos[0] + light.direction[0], pos[1] + light.direction[1],
                   pos[2] + light.direction[2])
            fig.add_trace(go.Scatter3d(
                x=[pos[0], end[0]], y=[pos[1], end[1]], z=[pos[2], end[2]],
                mode='lines',
                line=dict(color='yellow', width=3, dash='dash'),
                name=f'Spot {i+1} Axis'
            ))

    # Camera and viewport frustum
    cam = scene.camera
    ox, oy, oz = cam.origin
    hw = cam.viewport_width / 2
    hh = cam.viewport_height / 2
    z = oz - cam.viewport_distance
    corners = [(ox - hw, oy - hh, z), (ox + hw, oy - hh, z),
               (ox + hw, oy + hh, z), (ox - hw, oy + hh, z)]

    fig.add_trace(go.Scatter3d(
        x=[ox], y=[oy], z=[oz],
        mode='markers',
        marker=dict(size=8, color='red', symbol='diamond'),
        name='Camera'
    ))

    fx, fy, fz = [], [], []
    for k, c in enumerate(corners):
        n = corners[(k + 1) % 4]
        fx += [ox, c[0], n[0], None]
        fy += [oy, c[1], n[1], None]
        fz += [oz, c[2], n[2], None]
    fig.add_trace(go.Scatter3d(
        x=fx, y=fy, z=fz,
        mode='lines',
        line=dict(color='red', width=2, dash='dash'),
        name='Viewport'
    ))

    fig.update_layout(
        title="Scene Preview (Interactive 3D)",
        scene=dict(
            xaxis_title="X",
            yaxis_title="Y",
            zaxis_title="Z",
            aspectmode='data'
        ),
        width=1000,
        height=800
    )

    return fig

if __name__ == "__main__":
    import sys

    from scene import load_scene, validate_scene

    if len(sys.argv) != 2:
        print("Usage: preview_plotly.py SCENE", file=sys.stderr)
        sys.exit(1)
    scene = load_scene(sys.argv[1], 1, 1)
    validate_scene(scene)
    fig = create_scene_preview(scene)
    fig.show()
