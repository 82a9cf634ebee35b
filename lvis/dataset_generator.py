import os
import math

import numpy as np
from PIL import Image, ImageDraw
from tqdm import tqdm

SHAPES = ["circle", "square", "triangle", "diamond", "cross", "ring", "star", "bar"]
PALETTE = [(220, 60, 50), (50, 160, 70), (60, 90, 210), (230, 200, 40),
           (170, 70, 190), (40, 190, 200), (240, 130, 30), (120, 120, 120)]


def polygon(cx, cy, r, n, rot=0.0, inner=None):
    """Regular polygon (or star when inner radius is given) vertices."""
    pts = []
    steps = n * 2 if inner else n
    for i in range(steps):
        ang = rot + 2 * math.pi * i / steps
        rad = inner if inner and i % 2 else r
        pts.append((cx + rad * math.cos(ang), cy + rad * math.sin(ang)))
    return pts


def draw_shape(draw: ImageDraw.ImageDraw, shape: str, cx: float, cy: float, r: float, rot: float, color):
    if shape == "circle":
        draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=color)
    elif shape == "ring":
        draw.ellipse([cx - r, cy - r, cx + r, cy + r], outline=color, width=max(2, int(r / 3)))
    elif shape == "square":
        draw.polygon(polygon(cx, cy, r, 4, rot + math.pi / 4), fill=color)
    elif shape == "diamond":
        draw.polygon(polygon(cx, cy, r, 4, rot), fill=color)
    elif shape == "triangle":
        draw.polygon(polygon(cx, cy, r, 3, rot - math.pi / 2), fill=color)
    elif shape == "star":
        draw.polygon(polygon(cx, cy, r, 5, rot - math.pi / 2, inner=r * 0.45), fill=color)
    elif shape == "cross":
        w = r / 3
        draw.polygon(polygon(cx, cy, r, 4, rot, inner=w * 1.4), fill=color)
    elif shape == "bar":
        dx, dy = r * math.cos(rot), r * math.sin(rot)
        draw.line([cx - dx, cy - dy, cx + dx, cy + dy], fill=color, width=max(3, int(r / 2.5)))
    else:
        raise ValueError(f"Unknown shape: {shape}")


def render_view(shape: str, color, size: int, rng: np.random.Generator, background=(245, 245, 240)) -> Image.Image:
    """One render of an object: fixed shape and color, jittered pose."""
    img = Image.new("RGBA", (size, size), background + (255,))
    draw = ImageDraw.Draw(img)
    r = size * rng.uniform(0.22, 0.32)
    cx = size / 2 + rng.uniform(-0.08, 0.08) * size
    cy = size / 2 + rng.uniform(-0.08, 0.08) * size
    draw_shape(draw, shape, cx, cy, r, rng.uniform(0, 2 * math.pi), color)
    return img


def generate_dataset(path: str, num_cats: int, items_per_cat: int, views_per_item: int, size: int = 128,
                     seed: int = 0, desc: str = "") -> list:
    """Writes <path>/<cat>/<cat><item>_<view>.png and returns the category names.

    Every item of a category shares its shape; items differ in color tint.
    """
    if num_cats > len(SHAPES):
        raise ValueError(f"At most {len(SHAPES)} synthetic categories are available")
    rng = np.random.default_rng(seed)
    cats = SHAPES[:num_cats]
    for ci, cat in enumerate(tqdm(cats, desc=f"Generating {desc} dataset")):
        os.makedirs(os.path.join(path, cat), exist_ok=True)
        for item in range(items_per_cat):
            tint = rng.integers(-30, 31, size=3)
            color = tuple(int(c) for c in np.clip(np.array(PALETTE[ci % len(PALETTE)]) + tint, 0, 255))
            for view in range(views_per_item):
                img = render_view(cat, color, size, rng)
                img.save(os.path.join(path, cat, f"{cat}{item:03d}_{view}.png"))
    return cats
