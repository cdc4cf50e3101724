# raymarch.py
# -*- coding: utf-8 -*-
"""
Volumetric ray-march visualizer for the smoke density.

Single-scattering model with one point light: rays leave an eye in front of
the unit cube, accumulate in-scattered light through the smoke, and stop on
the spherical obstacle (Lambert shaded) or fall through to a floor plane
that receives smoke shadows. All pixels march together as NumPy arrays.

Reference (informal): M. Mack, "Adventures in fluid simulation" (2010).
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
from PIL import Image

from ..fluid.advection import sample_cell

logger = logging.getLogger(__name__)

FLOOR_COLOR = np.array([75.0, 60.0, 45.0])
SPHERE_COLOR = np.array([50.0, 100.0, 150.0])
CENTER = np.array([0.5, 0.5, 0.5])


@dataclass
class RaymarchSettings:
    eye: Tuple[float, float, float] = (0.5, 0.5, -1.0)
    light: Tuple[float, float, float] = (0.5, 1.5, 0.2)
    light_intensity: float = 8.0
    absorption: float = 11.0
    samples: int = 128
    light_samples: int = 64
    max_dist: float = 3.0


def _normalize(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v, axis=-1, keepdims=True)
    return v / np.where(n > 0.0, n, 1.0)


def sample_density(density: np.ndarray, pos: np.ndarray) -> np.ndarray:
    """Density at world points; zero outside the unit cube."""
    inside = np.all((pos >= 0.0) & (pos <= 1.0), axis=-1)
    out = np.zeros(pos.shape[0], dtype=np.float64)
    if np.any(inside):
        out[inside] = sample_cell(density, pos[inside] * density.shape[0])
    return out


def write_png(path: Union[str, Path], image: np.ndarray) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8)).save(path)
    return path


class RaymarchVisualizer:
    """Render density to RGB; calling it with ``(density, frame)`` writes ``render_<frame>.png``."""

    def __init__(
        self,
        out_dir: Union[str, Path] = "renders",
        sphere_r: float = 0.2,
        size: int = 128,
        settings: Optional[RaymarchSettings] = None,
    ):
        self.out_dir = Path(out_dir)
        self.sphere_r = float(sphere_r)
        self.size = int(size)
        self.settings = settings or RaymarchSettings()

    def __call__(self, density: np.ndarray, frame: int) -> Path:
        path = write_png(self.out_dir / f"render_{frame}.png", self.render(density))
        logger.info("wrote frame %d", frame)
        return path

    # ---------------------------------------------------------------------
    # Rendering
    # ---------------------------------------------------------------------
    def render(self, density: np.ndarray) -> np.ndarray:
        s = self.settings
        w = self.size
        eye = np.array(s.eye, dtype=np.float64)
        light = np.array(s.light, dtype=np.float64)
        stride = s.max_dist / s.samples
        lstride = s.max_dist / s.light_samples

        # pixel (i, j) sits at (i/w, j/w, 0); j grows upward
        jj, ii = np.meshgrid(np.arange(w), np.arange(w), indexing="ij")
        pix = np.stack([ii / w, jj / w, np.zeros_like(ii, dtype=np.float64)], axis=-1).reshape(-1, 3)
        ray = _normalize(pix - eye)
        npx = pix.shape[0]

        T = np.ones(npx)
        Lo = np.zeros(npx)
        shade = np.zeros(npx)
        marching = np.ones(npx, dtype=bool)
        hit = np.zeros(npx, dtype=bool)

        for n in range(s.samples):
            idx = np.nonzero(marching)[0]
            if idx.size == 0:
                break
            pos = eye + stride * n * ray[idx]
            d = sample_density(density, pos)

            smoky = d > 0.0
            if np.any(smoky):
                sidx = idx[smoky]
                T[sidx] *= 1.0 - d[smoky] * stride * s.absorption
                opaque = T[sidx] <= 0.01
                marching[sidx[opaque]] = False
                lit = ~opaque
                if np.any(lit):
                    lpos = pos[smoky][lit]
                    Tl = self._light_transmittance(density, lpos, light, lstride, s.absorption, True)
                    sel = sidx[lit]
                    Lo[sel] += s.light_intensity * Tl * T[sel] * d[smoky][lit] * stride

            in_sphere = self._in_sphere(pos) & marching[idx]
            if np.any(in_sphere):
                hidx = idx[in_sphere]
                p = pos[in_sphere]
                lvec = _normalize(light - p)
                normal = _normalize(p - CENTER)
                shade[hidx] = np.maximum(0.1, np.sum(normal * lvec, axis=-1))
                hit[hidx] = True
                marching[hidx] = False

        Tf = np.zeros(npx)
        floor = (ray[:, 1] < 0.0) & ~hit
        if np.any(floor):
            fidx = np.nonzero(floor)[0]
            flen = -pix[fidx, 1] / ray[fidx, 1]
            fpos = pix[fidx] + flen[:, None] * ray[fidx]
            Tf[fidx] = np.exp(-0.3 * flen) * self._light_transmittance(
                density, fpos, light, lstride, 0.5 * s.absorption, False
            )

        rgb = 255.0 * Lo[:, None] + T[:, None] * (Tf[:, None] * FLOOR_COLOR + shade[:, None] * SPHERE_COLOR)
        img = np.clip(rgb, 0.0, 255.0).astype(np.uint8).reshape(w, w, 3)
        # row 0 of an image is the top
        return img[::-1]

    def _in_sphere(self, pos: np.ndarray) -> np.ndarray:
        return np.linalg.norm(pos - CENTER, axis=-1) < self.sphere_r

    def _light_transmittance(self, density, pos, light, lstride, absorption, sphere_shadow) -> np.ndarray:
        """March from ``pos`` toward the light; stops at the sphere or when nearly opaque."""
        lvec = _normalize(light - pos)
        Tl = np.ones(pos.shape[0])
        alive = np.ones(pos.shape[0], dtype=bool)
        for m in range(1, self.settings.light_samples):
            idx = np.nonzero(alive)[0]
            if idx.size == 0:
                break
            lpos = pos[idx] + lstride * m * lvec[idx]
            if sphere_shadow:
                blocked = self._in_sphere(lpos)
                if np.any(blocked):
                    bidx = idx[blocked]
                    Tl[bidx] *= 1.0 - np.exp(-3.0 * lstride * m)
                    alive[bidx] = False
                    idx = idx[~blocked]
                    lpos = lpos[~blocked]
            Tl[idx] *= 1.0 - absorption * lstride * sample_density(density, lpos)
            alive[idx[Tl[idx] <= 0.01]] = False
        return Tl


__all__ = ["RaymarchSettings", "RaymarchVisualizer", "sample_density", "write_png"]
