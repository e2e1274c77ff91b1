"""Frame buffer persistence: PPM (P3/P6) and anything else Pillow can write."""
import os
from typing import List, Optional, Tuple

from PIL import Image

Pixel = Tuple[int, int, int]


def to_image(buffer: List[Pixel], width: int, height: int) -> Image.Image:
    """Wrap a row-major pixel buffer in an RGB Pillow image."""
    if len(buffer) != width * height:
        raise ValueError(f"Buffer holds {len(buffer)} pixels, expected {width}x{height}")
    data = bytes(channel for pixel in buffer for channel in pixel)
    return Image.frombytes("RGB", (width, height), data)


def write_ppm(buffer: List[Pixel], width: int, height: int, path: str) -> None:
    """Write an ASCII (P3) PPM; Pillow only writes the binary flavor."""
    if len(buffer) != width * height:
        raise ValueError(f"Buffer holds {len(buffer)} pixels, expected {width}x{height}")
    with open(path, 'w') as f:
        f.write(f"P3\n{width} {height}\n255\n")
        for r, g, b in buffer:
            f.write(f"{r} {g} {b}\n")


def save_image(buffer: List[Pixel], width: int, height: int, path: str,
               fmt: Optional[str] = None) -> None:
    """
    Save the frame buffer.

    .ppm files are written as binary P6 unless fmt is "P3"; every other
    extension goes through Pillow's writer for that format.
    """
    ext = os.path.splitext(path)[1].lower()
    if ext in (".ppm", ".pnm") and fmt == "P3":
        write_ppm(buffer, width, height, path)
        return
    img = to_image(buffer, width, height)
    if ext in (".ppm", ".pnm"):
        img.save(path, format="PPM")
    else:
        img.save(path)


def load_image(path: str) -> Tuple[List[Pixel], int, int]:
    """Read an image (PPM P3/P6, PNG, ...) back into a row-major buffer."""
    with Image.open(path) as img:
        rgb = img.convert("RGB")
        width, height = rgb.size
        data = rgb.tobytes()
        pixels = [tuple(data[i:i + 3]) for i in range(0, len(data), 3)]
        return pixels, width, height
