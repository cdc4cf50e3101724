import numpy as np
from PIL import Image

from smoke3d.rendering.raymarch import RaymarchSettings, RaymarchVisualizer, sample_density, write_png

TINY = RaymarchSettings(samples=16, light_samples=8)


def test_sample_density_is_zero_outside_the_cube():
    d = np.ones((4, 4, 4))
    pos = np.array([[0.5, 0.5, 0.5], [-0.1, 0.5, 0.5], [0.5, 1.2, 0.5]])
    assert np.allclose(sample_density(d, pos), [1.0, 0.0, 0.0])


def test_render_shape_and_dtype(rng):
    viz = RaymarchVisualizer(sphere_r=0.2, size=12, settings=TINY)
    img = viz.render(rng.random((6, 6, 6)))
    assert img.shape == (12, 12, 3)
    assert img.dtype == np.uint8


def test_empty_volume_shows_sphere_and_floor():
    viz = RaymarchVisualizer(sphere_r=0.2, size=16, settings=TINY)
    img = viz.render(np.zeros((6, 6, 6)))
    # centre pixel hits the sphere; bottom row falls through to the floor
    assert img[8, 8].any()
    assert img[-1].any()


def test_smoke_brightens_the_image():
    viz = RaymarchVisualizer(sphere_r=0.0, size=8, settings=TINY)
    dark = viz.render(np.zeros((6, 6, 6))).astype(int).sum()
    lit = viz.render(np.full((6, 6, 6), 0.05)).astype(int).sum()
    assert lit > dark


def test_visualizer_writes_numbered_png(tmp_path):
    viz = RaymarchVisualizer(tmp_path / "frames", sphere_r=0.2, size=8, settings=TINY)
    path = viz(np.zeros((4, 4, 4)), 0)
    assert path == tmp_path / "frames" / "render_0.png"
    with Image.open(path) as im:
        assert im.size == (8, 8)
        assert im.mode == "RGB"


def test_write_png_creates_parent_dirs(tmp_path):
    path = write_png(tmp_path / "a" / "b.png", np.zeros((3, 5, 3), dtype=np.uint8))
    assert path.exists()
