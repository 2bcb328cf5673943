"""
Concave hulls from reachable vertex sets (ST_ConcaveHull equivalent).

The point set is Delaunay-triangulated, then triangles on the border are
eroded longest-border-edge first while that edge exceeds a target length:

    concavity == 1.0  -> nothing is eroded (union of triangles == convex hull)
    concavity <  1.0  -> target = min_edge + concavity * (max_edge - min_edge)

A border triangle is only removed when exactly one of its edges is on the
border and its opposite vertex is not already on the boundary, so the result
stays a single polygon with no orphaned vertices. With holes allowed,
interior triangles whose longest edge exceeds the target and that touch no
boundary vertex are opened as well and erode outward like the border.

Areas are planar, in the units of the input (square feet for EPSG:2263).
"""
from __future__ import annotations

import logging
import math
from heapq import heappop, heappush
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import shapely
from scipy.spatial import Delaunay, QhullError
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.polygon import orient

from .config import ALLOW_HOLES, CONCAVITY
from .errors import DegenerateHullError
from .graph import GraphStore
from .models import IsochronePolygon, ReachableSet

logger = logging.getLogger(__name__)


def _distinct(points) -> np.ndarray:
    pts = np.asarray([(float(p[0]), float(p[1])) for p in points], dtype=np.float64).reshape(-1, 2)
    if len(pts) == 0:
        return pts
    return np.unique(pts, axis=0)


def _target_edge_length(lengths: np.ndarray, concavity: float) -> float:
    if concavity >= 1.0:
        return math.inf
    lo, hi = float(lengths.min()), float(lengths.max())
    return lo + concavity * (hi - lo)


def concave_hull(
    points: Iterable,
    concavity: float = CONCAVITY,
    allow_holes: bool = ALLOW_HOLES,
) -> Optional[Polygon]:
    """
    Boundary polygon for a planar point set, or None when fewer than 3
    distinct non-collinear coordinates are given.
    """
    concavity = float(concavity)
    if not (0.0 <= concavity <= 1.0):
        raise ValueError(f"concavity must be within [0, 1], got {concavity!r}")

    pts = _distinct(points)
    if len(pts) < 3:
        logger.debug(f"[hull] {len(pts)} distinct point(s); no polygon")
        return None
    if np.linalg.matrix_rank(pts - pts.mean(axis=0)) < 2:
        logger.debug("[hull] Collinear input; no polygon")
        return None

    try:
        tri = Delaunay(pts)
    except QhullError as e:
        logger.debug(f"[hull] Triangulation failed ({e}); no polygon")
        return None

    simplices = tri.simplices
    nbrs = tri.neighbors
    T = len(simplices)

    # L[t, k] = length of the edge opposite vertex k of triangle t
    a = pts[simplices[:, 1]] - pts[simplices[:, 2]]
    b = pts[simplices[:, 2]] - pts[simplices[:, 0]]
    c = pts[simplices[:, 0]] - pts[simplices[:, 1]]
    L = np.column_stack([np.hypot(a[:, 0], a[:, 1]), np.hypot(b[:, 0], b[:, 1]), np.hypot(c[:, 0], c[:, 1])])

    target = _target_edge_length(L, concavity)
    alive = np.ones(T, dtype=bool)

    if math.isfinite(target):
        on_boundary = np.zeros(len(pts), dtype=bool)
        for t, k in zip(*np.nonzero(nbrs == -1)):
            on_boundary[simplices[t, (k + 1) % 3]] = True
            on_boundary[simplices[t, (k + 2) % 3]] = True

        def border_edges(t: int) -> List[int]:
            return [k for k in range(3) if nbrs[t, k] == -1 or not alive[nbrs[t, k]]]

        def priority(t: int) -> Optional[float]:
            be = border_edges(t)
            if be:
                return max(L[t, k] for k in be)
            if allow_holes:
                return L[t].max()
            return None

        heap: List = []
        for t in range(T):
            p = priority(t)
            if p is not None and p > target:
                heappush(heap, (-p, t))

        removed = 0
        while heap:
            _, t = heappop(heap)
            if not alive[t]:
                continue
            be = border_edges(t)
            if len(be) == 1:
                k = be[0]
                apex = simplices[t, k]
                if L[t, k] <= target or on_boundary[apex]:
                    continue
                on_boundary[apex] = True
            elif not be and allow_holes:
                verts = simplices[t]
                if L[t].max() <= target or on_boundary[verts].any():
                    continue
                on_boundary[verts] = True
            else:
                continue

            alive[t] = False
            removed += 1
            for n in nbrs[t]:
                if n != -1 and alive[n]:
                    p = priority(int(n))
                    if p is not None and p > target:
                        heappush(heap, (-p, int(n)))
        logger.debug(f"[hull] Eroded {removed}/{T} triangles (target edge {target:.1f})")

    kept = simplices[alive]
    rings = pts[kept]
    rings = np.concatenate([rings, rings[:, :1, :]], axis=1)
    merged = shapely.union_all(shapely.polygons(rings))

    if isinstance(merged, MultiPolygon):
        parts = sorted(merged.geoms, key=lambda g: g.area, reverse=True)
        logger.warning(f"[hull] Hull split into {len(parts)} parts; keeping the largest")
        merged = parts[0]
    if not isinstance(merged, Polygon) or merged.is_empty:
        return None
    return orient(merged, sign=1.0)


def area(polygon) -> float:
    """Planar area in squared input units (sq ft in the working CRS)."""
    if polygon is None:
        return 0.0
    return float(polygon.area)


def build_isochrone(
    reach: ReachableSet,
    graph: GraphStore,
    concavity: float = CONCAVITY,
    allow_holes: bool = ALLOW_HOLES,
    cutoff: Optional[float] = None,
    source_id: Any = None,
    strict: bool = False,
) -> Optional[IsochronePolygon]:
    """None for a degenerate reachable set, or DegenerateHullError when `strict`."""
    coords = [graph.vertex_coordinate(v) for v in reach.costs if v in graph]
    poly = concave_hull(coords, concavity=concavity, allow_holes=allow_holes)
    if poly is None:
        if strict:
            raise DegenerateHullError(
                f"Source {reach.source_id}: {len(coords)} reachable vertices do not span a polygon"
            )
        return None
    return IsochronePolygon(
        source_id=reach.source_id if source_id is None else source_id,
        polygon=poly,
        area_sqft=area(poly),
        cutoff=cutoff,
        concavity=concavity,
    )


def build_isochrones(
    reach_sets: Mapping[Any, ReachableSet],
    graph: GraphStore,
    concavity: float = CONCAVITY,
    allow_holes: bool = ALLOW_HOLES,
    cutoff: Optional[float] = None,
) -> Dict[Any, Optional[IsochronePolygon]]:
    """
    One isochrone per key (entrance id or vertex id). Degenerate sets map to
    None and are counted, not raised.
    """
    out: Dict[Any, Optional[IsochronePolygon]] = {}
    for key, reach in reach_sets.items():
        out[key] = build_isochrone(reach, graph, concavity, allow_holes, cutoff=cutoff, source_id=key)
    missing = sum(1 for v in out.values() if v is None)
    logger.info(f"[hull] Built {len(out) - missing} polygons ({missing} degenerate)")
    return out
