"""
Concave hull construction and isochrone assembly.
"""
import math

import numpy as np
import pytest
from shapely.geometry import MultiPoint

from walkshed.config import SQFT_PER_ACRE
from walkshed.errors import DegenerateHullError
from walkshed.hull import area, build_isochrone, build_isochrones, concave_hull
from walkshed.models import ReachableSet


def l_shape(spacing=100.0):
    """Points of an L: a 1000x200 foot arm along x and a 200x1000 arm along y."""
    pts = set()
    steps = int(1000 / spacing)
    for i in range(steps + 1):
        for j in range(3):
            pts.add((i * spacing, j * spacing))
            pts.add((j * spacing, i * spacing))
    return sorted(pts)


def annulus(inner=600.0, outer=1000.0, rings=5, per_ring=48, seed=0):
    rng = np.random.default_rng(seed)
    pts = []
    for r in np.linspace(inner, outer, rings):
        for k in range(per_ring):
            theta = 2 * math.pi * k / per_ring
            rr = r + rng.uniform(-1.0, 1.0)  # break exact co-circularity
            pts.append((rr * math.cos(theta), rr * math.sin(theta)))
    return pts


class TestDegenerateInput:
    def test_fewer_than_three_distinct_points(self):
        assert concave_hull([(0.0, 0.0), (1.0, 0.0), (0.0, 0.0)]) is None
        assert concave_hull([(5.0, 5.0)]) is None
        assert concave_hull([]) is None

    def test_collinear_points(self):
        assert concave_hull([(0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0)]) is None

    @pytest.mark.parametrize("concavity", [-0.1, 1.5, float("nan")])
    def test_concavity_out_of_range(self, concavity):
        with pytest.raises(ValueError):
            concave_hull([(0, 0), (1, 0), (0, 1)], concavity=concavity)

    def test_area_of_none_is_zero(self):
        assert area(None) == 0.0


class TestConcaveHull:
    def test_unit_concavity_is_convex_hull(self):
        rng = np.random.default_rng(7)
        pts = [tuple(p) for p in rng.uniform(0, 1000, size=(40, 2))]
        hull = concave_hull(pts, concavity=1.0)
        assert hull.equals(MultiPoint(pts).convex_hull)

    def test_triangle(self):
        hull = concave_hull([(0, 0), (1000, 0), (0, 1000)], concavity=0.99)
        assert hull.area == pytest.approx(500_000.0)

    def test_exterior_is_counter_clockwise(self):
        hull = concave_hull(l_shape(), concavity=0.99)
        assert hull.exterior.is_ccw

    def test_low_concavity_follows_l_shape(self):
        pts = l_shape()
        convex = MultiPoint(pts).convex_hull
        hull = concave_hull(pts, concavity=0.1)
        assert hull.is_valid
        assert hull.area < 0.9 * convex.area
        assert hull.buffer(1e-6).covers(MultiPoint(pts))

    def test_holes_only_when_allowed(self):
        pts = annulus()
        closed = concave_hull(pts, concavity=0.3, allow_holes=False)
        opened = concave_hull(pts, concavity=0.3, allow_holes=True)
        assert len(closed.interiors) == 0
        assert len(opened.interiors) >= 1
        assert opened.is_valid
        assert opened.area < closed.area


class TestIsochrones:
    def test_diamond_from_grid_search(self, grid_graph):
        # vertex 14 sits at (200, 200); 250 ft reaches two blocks in each direction
        costs = {v: 0.0 for v in range(36) if abs(v // 6 - 2) + abs(v % 6 - 2) <= 2}
        reach = ReachableSet(14, costs)
        iso = build_isochrone(reach, grid_graph, concavity=1.0, cutoff=250.0)
        assert iso.source_id == 14
        assert iso.cutoff == 250.0
        assert iso.concavity == 1.0
        assert iso.area_sqft == pytest.approx(80_000.0)
        assert iso.area_acres == pytest.approx(80_000.0 / SQFT_PER_ACRE)

    def test_single_vertex_is_degenerate(self, grid_graph):
        assert build_isochrone(ReachableSet(0, {0: 0.0}), grid_graph) is None

    def test_strict_mode_raises_on_degenerate(self, grid_graph):
        with pytest.raises(DegenerateHullError):
            build_isochrone(ReachableSet(0, {0: 0.0, 1: 100.0}), grid_graph, strict=True)

    def test_build_isochrones_keys_and_degenerates(self, grid_graph):
        reach = {
            "e1": ReachableSet(0, {0: 0.0, 1: 100.0, 6: 100.0, 7: 200.0}),
            "e2": ReachableSet(35, {35: 0.0}),
        }
        out = build_isochrones(reach, grid_graph, concavity=1.0, cutoff=200.0)
        assert set(out) == {"e1", "e2"}
        assert out["e2"] is None
        assert out["e1"].source_id == "e1"
        assert out["e1"].area_sqft == pytest.approx(10_000.0)
