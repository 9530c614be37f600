from __future__ import annotations

import numpy as np
import pytest

from trackrender.core import intersector as inter
from trackrender.core.camera import PinholeCamera
from trackrender.core.errors import ConfigurationError

K = np.array([[10.0, 0.0, 2.0], [0.0, 10.0, 1.5], [0.0, 0.0, 1.0]])


def _camera() -> PinholeCamera:
    return PinholeCamera(K, 4, 5)


def _wall(z: float) -> np.ndarray:
    return np.array([[-100.0, -100.0, z], [300.0, -100.0, z], [-100.0, 300.0, z]])


class _FakeEmbree:
    """Stands in for RayMeshIntersector; returns the given (ray, local triangle, t) hits."""

    def __init__(self, camera: PinholeCamera, hits: list[tuple[int, int, float]]) -> None:
        self.camera = camera
        self.hits = hits
        self.calls = 0

    def intersects_location(self, origins, directions, multiple_hits=True):
        self.calls += 1
        assert multiple_hits
        assert origins.shape == directions.shape == (self.camera.n_pixels, 3)
        dirs = self.camera.directions()
        ray_ids = np.array([h[0] for h in self.hits], dtype=np.int64)
        tri_ids = np.array([h[1] for h in self.hits], dtype=np.int64)
        t = np.array([h[2] for h in self.hits])
        locs = dirs[ray_ids] * t[:, None]
        return locs, ray_ids, tri_ids


def test_usable_triangles_mask() -> None:
    tris = np.stack([
        _wall(1.0),
        np.array([[0.0, 0.0, 1.0], [1.0, 1.0, 1.0], [2.0, 2.0, 1.0]]),
        np.array([[np.nan, 0.0, 1.0], [1.0, 0.0, 1.0], [0.0, 1.0, 1.0]]),
        np.zeros((3, 3)),
    ])
    np.testing.assert_array_equal(inter.usable_triangles(tris, 1e-9), [True, False, False, False])
    assert inter.usable_triangles(np.zeros((0, 3, 3)), 1e-9).shape == (0,)


def test_numpy_intersector_resolves_nearest_per_pixel() -> None:
    camera = _camera()
    tris = np.stack([_wall(5.0), _wall(2.0), _wall(2.0)])
    hits = inter.NumpyIntersector().intersect(tris, camera)
    np.testing.assert_array_equal(hits.pixel_index, np.arange(camera.n_pixels))
    np.testing.assert_allclose(hits.t, 2.0)
    # Equal depth: the lower triangle index keeps the pixel.
    assert np.all(hits.triangle_index == 1)


def test_numpy_intersector_returns_empty_for_no_triangles() -> None:
    hits = inter.NumpyIntersector().intersect(np.zeros((0, 3, 3)), _camera())
    assert hits.pixel_index.size == 0
    assert hits.t.size == 0


def test_numpy_intersector_skips_off_screen_triangles() -> None:
    camera = _camera()
    off_screen = _wall(2.0) + np.array([500.0, 0.0, 0.0])
    hits = inter.NumpyIntersector().intersect(off_screen[None], camera)
    assert hits.pixel_index.size == 0


def test_embree_intersector_ties_and_index_mapping(monkeypatch: pytest.MonkeyPatch) -> None:
    camera = _camera()
    degenerate = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [2.0, 0.0, 1.0]])
    tris = np.stack([_wall(2.0), degenerate, _wall(2.0)])
    # Local triangle 0 is global 0, local 1 is global 2.
    fake = _FakeEmbree(camera, [
        (3, 1, 2.0), (3, 0, 2.0),
        (1, 1, 1.5), (1, 0, 3.0),
        (5, 0, -1.0),
    ])
    seen: dict[str, int] = {}

    def fake_build(self, triangles):
        seen["count"] = len(triangles)
        return fake

    monkeypatch.setattr(inter, "_HAVE_EMBREE", True)
    monkeypatch.setattr(inter.EmbreeIntersector, "_build_backend", fake_build)

    hits = inter.EmbreeIntersector().intersect(tris, camera)
    assert seen["count"] == 2
    assert fake.calls == 1
    np.testing.assert_array_equal(hits.pixel_index, [1, 3])
    np.testing.assert_allclose(hits.t, [1.5, 2.0])
    np.testing.assert_array_equal(hits.triangle_index, [2, 0])


def test_embree_intersector_no_hits(monkeypatch: pytest.MonkeyPatch) -> None:
    camera = _camera()
    fake = _FakeEmbree(camera, [])
    monkeypatch.setattr(inter, "_HAVE_EMBREE", True)
    monkeypatch.setattr(inter.EmbreeIntersector, "_build_backend", lambda self, tris: fake)
    hits = inter.EmbreeIntersector().intersect(_wall(2.0)[None], camera)
    assert hits.pixel_index.size == 0


def test_embree_requires_dependency(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(inter, "_HAVE_EMBREE", False)
    with pytest.raises(RuntimeError):
        inter.EmbreeIntersector()


def test_auto_falls_back_to_numpy(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(inter, "_HAVE_EMBREE", False)
    auto = inter.build_intersector("auto", epsilon=1e-7)
    hits = auto.intersect(_wall(3.0)[None], _camera())
    assert isinstance(auto._impl, inter.NumpyIntersector)
    assert auto._impl.epsilon == pytest.approx(1e-7)
    np.testing.assert_allclose(hits.t, 3.0)


def test_build_intersector_choices() -> None:
    assert isinstance(inter.build_intersector("NumPy"), inter.NumpyIntersector)
    assert isinstance(inter.build_intersector(None), inter.AutoIntersector)
    custom = inter.NumpyIntersector(epsilon=1e-3)
    assert inter.build_intersector(custom) is custom
    with pytest.raises(ConfigurationError):
        inter.build_intersector("optix")


def test_embree_agrees_with_numpy_on_straddling_triangle() -> None:
    pytest.importorskip("trimesh.ray.ray_pyembree")
    camera = _camera()
    # Plane z = 2 - 0.08 y with one corner behind the camera.
    tris = np.array([[[-50.0, -50.0, 6.0], [50.0, -50.0, 6.0], [0.0, 50.0, -2.0]]])
    expected = inter.NumpyIntersector().intersect(tris, camera)
    hits = inter.EmbreeIntersector().intersect(tris, camera)
    np.testing.assert_array_equal(hits.pixel_index, expected.pixel_index)
    np.testing.assert_allclose(hits.t, expected.t, rtol=1e-4)
    np.testing.assert_array_equal(hits.triangle_index, expected.triangle_index)


def test_embree_agrees_with_numpy_on_equal_depth_tie() -> None:
    pytest.importorskip("trimesh.ray.ray_pyembree")
    camera = _camera()
    tris = np.stack([_wall(4.0), _wall(4.0), _wall(4.0)])
    expected = inter.NumpyIntersector().intersect(tris, camera)
    hits = inter.EmbreeIntersector().intersect(tris, camera)
    assert hits.pixel_index.size == camera.n_pixels
    np.testing.assert_array_equal(hits.pixel_index, expected.pixel_index)
    np.testing.assert_allclose(hits.t, 4.0, rtol=1e-5)
    np.testing.assert_array_equal(hits.triangle_index, expected.triangle_index)
    assert np.all(hits.triangle_index == 0)
