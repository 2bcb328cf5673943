"""
Vertex snapping.

Two-phase lookup: an exact-coordinate dictionary first (points that were
themselves derived from network endpoints snap at distance 0), then a
cKDTree nearest-neighbour query. Equal-distance candidates resolve to the
lowest vertex id.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree
from tqdm import tqdm

from .errors import SnapFailure
from .graph import GraphStore
from .models import PointOfInterest, SnapResult, Vertex

logger = logging.getLogger(__name__)

# relative slack used to collect equal-distance candidates
_TIE_RTOL = 1e-9


class Snapper:
    def __init__(self, vertex_ids: np.ndarray, xy: np.ndarray):
        self.ids = np.asarray(vertex_ids, dtype=np.int64)
        self.xy = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
        self._exact: Dict[Tuple[float, float], int] = {}
        for n, (x, y) in zip(self.ids.tolist(), self.xy.tolist()):
            key = (float(x), float(y))
            prev = self._exact.get(key)
            if prev is None or n < prev:
                self._exact[key] = int(n)
        self.tree: Optional[cKDTree] = cKDTree(self.xy) if len(self.ids) else None
        logger.debug(f"[snap] Indexed {len(self.ids)} vertices")

    @classmethod
    def from_graph(cls, graph: GraphStore) -> "Snapper":
        return cls(graph.vertex_ids, graph.coordinates)

    @classmethod
    def from_vertices(cls, vertices: Sequence[Vertex]) -> "Snapper":
        ids = np.fromiter((int(v.id) for v in vertices), dtype=np.int64, count=len(vertices))
        xy = np.array([(v.x, v.y) for v in vertices], dtype=np.float64).reshape(-1, 2)
        return cls(ids, xy)

    def __len__(self) -> int:
        return int(len(self.ids))

    def nearest_vertex(
        self,
        point,
        max_distance: Optional[float] = None,
        point_id: Any = None,
    ) -> SnapResult:
        """
        Snap (x, y), or anything with .x/.y, to the closest vertex.
        Raises SnapFailure when the index is empty or nothing lies within max_distance.
        """
        x, y = _xy(point)
        if self.tree is None:
            raise SnapFailure("Cannot snap: vertex index is empty", point_id=point_id)

        hit = self._exact.get((x, y))
        if hit is not None:
            return SnapResult(point_id, hit, 0.0, exact=True)

        d, i = self.tree.query((x, y), k=1)
        d = float(d)
        if not np.isfinite(d):
            raise SnapFailure(f"Cannot snap point {point_id!r} at ({x}, {y})", point_id=point_id)

        # collect every vertex at (numerically) the same distance, keep the lowest id
        slack = _TIE_RTOL * max(1.0, d)
        cands = self.tree.query_ball_point((x, y), r=d + slack)
        best_idx = int(i)
        if len(cands) > 1:
            cands = np.asarray(cands, dtype=np.int64)
            dists = np.hypot(self.xy[cands, 0] - x, self.xy[cands, 1] - y)
            tied = cands[dists <= d + slack]
            best_idx = int(tied[np.argmin(self.ids[tied])])
            d = float(np.hypot(self.xy[best_idx, 0] - x, self.xy[best_idx, 1] - y))

        if max_distance is not None and d > max_distance:
            raise SnapFailure(
                f"Nearest vertex to {point_id!r} is {d:.1f} ft away (max {max_distance:.1f} ft)",
                point_id=point_id,
            )
        return SnapResult(point_id, int(self.ids[best_idx]), d, exact=False)

    def snap_points(
        self,
        points: Iterable[PointOfInterest],
        max_distance: Optional[float] = None,
        progress: bool = False,
    ) -> Tuple[Dict[Any, SnapResult], List[Any]]:
        """
        Snap a batch. A point that fails is logged and reported in the
        returned failure list; the rest of the batch continues.
        """
        snaps: Dict[Any, SnapResult] = {}
        failed: List[Any] = []
        points = list(points)
        for p in tqdm(points, desc="[snap] points", unit="pt", disable=not progress):
            try:
                snaps[p.id] = self.nearest_vertex((p.x, p.y), max_distance=max_distance, point_id=p.id)
            except SnapFailure as e:
                logger.warning(f"[snap] {e}")
                failed.append(p.id)
        logger.info(
            f"[snap] Snapped {len(snaps)}/{len(points)} points "
            f"({len({s.vertex_id for s in snaps.values()})} unique vertices)"
        )
        return snaps, failed


def _xy(point) -> Tuple[float, float]:
    if hasattr(point, "x") and hasattr(point, "y"):
        return float(point.x), float(point.y)
    x, y = point
    return float(x), float(y)
