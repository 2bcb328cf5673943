"""
Immutable undirected walking network stored as CSR arrays.

Every edge is stored in both directions (self-loops once), so a search only
has to look at `indices[indptr[i]:indptr[i + 1]]` for vertex index i. Arrays
are flagged read-only after the build; workers may share one GraphStore
without locking.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from .errors import GraphIntegrityError
from .models import Edge, Vertex

logger = logging.getLogger(__name__)


def _freeze(*arrays: np.ndarray) -> None:
    for arr in arrays:
        arr.setflags(write=False)


class GraphStore:
    def __init__(
        self,
        vertex_ids: np.ndarray,
        xy: np.ndarray,
        indptr: np.ndarray,
        indices: np.ndarray,
        weights: np.ndarray,
        edge_pos: np.ndarray,
        edge_keys: np.ndarray,
    ):
        self.vertex_ids = vertex_ids
        self.coordinates = xy
        self.indptr = indptr
        self.indices = indices
        self.weights = weights
        self.edge_pos = edge_pos  # CSR slot -> position in edge_keys
        self.edge_keys = edge_keys  # caller's edge ids, input order
        self._index: Dict[int, int] = {int(v): i for i, v in enumerate(vertex_ids.tolist())}
        _freeze(
            self.vertex_ids, self.coordinates, self.indptr, self.indices,
            self.weights, self.edge_pos, self.edge_keys,
        )

    # -----------------------------
    # Construction
    # -----------------------------
    @classmethod
    def build(cls, vertices: Sequence[Vertex], edges: Iterable[Edge]) -> "GraphStore":
        """
        Validate and build the graph. Raises GraphIntegrityError on duplicate
        vertex ids, dangling edge endpoints, or negative/non-finite lengths.
        """
        vertices = list(vertices)
        edges = list(edges)

        ids = np.fromiter((int(v.id) for v in vertices), dtype=np.int64, count=len(vertices))
        xy = np.array([(float(v.x), float(v.y)) for v in vertices], dtype=np.float64).reshape(-1, 2)

        uniq, counts = np.unique(ids, return_counts=True)
        if (counts > 1).any():
            dupes = uniq[counts > 1][:5].tolist()
            raise GraphIntegrityError(f"Duplicate vertex ids: {dupes}")
        if not np.isfinite(xy).all():
            raise GraphIntegrityError("Vertex coordinates must be finite")

        nid_to_idx = {int(n): i for i, n in enumerate(ids.tolist())}

        rows: List[int] = []
        cols: List[int] = []
        wts: List[float] = []
        eids: List[int] = []
        dangling: List[Tuple[int, int, int]] = []
        for k, e in enumerate(edges):
            u = nid_to_idx.get(int(e.source))
            v = nid_to_idx.get(int(e.target))
            if u is None or v is None:
                dangling.append((int(e.id), int(e.source), int(e.target)))
                continue
            w = float(e.length)
            if not math.isfinite(w) or w < 0.0:
                raise GraphIntegrityError(f"Edge {e.id} has invalid length {e.length!r}")
            rows.append(u); cols.append(v); wts.append(w); eids.append(k)
            if u != v:
                rows.append(v); cols.append(u); wts.append(w); eids.append(k)

        if dangling:
            sample = ", ".join(f"edge {eid} ({s}->{t})" for eid, s, t in dangling[:5])
            raise GraphIntegrityError(
                f"{len(dangling)} edge(s) reference unknown vertices: {sample}"
            )

        N = len(ids)
        rows_a = np.asarray(rows, dtype=np.int64)
        cols_a = np.asarray(cols, dtype=np.int64)
        wts_a = np.asarray(wts, dtype=np.float64)
        eids_a = np.asarray(eids, dtype=np.int64)

        # stable: neighbours keep edge input order
        order = np.argsort(rows_a, kind="stable")
        rows_a, cols_a, wts_a, eids_a = rows_a[order], cols_a[order], wts_a[order], eids_a[order]

        indptr = np.zeros(N + 1, dtype=np.int64)
        np.add.at(indptr, rows_a + 1, 1)
        np.cumsum(indptr, out=indptr)

        edge_keys = np.fromiter((int(e.id) for e in edges), dtype=np.int64, count=len(edges))
        g = cls(ids, xy, indptr, cols_a, wts_a, eids_a, edge_keys)
        logger.info(f"[graph] Built graph: {g.vertex_count} vertices, {g.edge_count} edges")
        return g

    # -----------------------------
    # Read API
    # -----------------------------
    @property
    def vertex_count(self) -> int:
        return int(self.vertex_ids.shape[0])

    @property
    def edge_count(self) -> int:
        return int(self.edge_keys.shape[0])

    def __len__(self) -> int:
        return self.vertex_count

    def __contains__(self, vertex_id) -> bool:
        try:
            return int(vertex_id) in self._index
        except (TypeError, ValueError):
            return False

    def index_of(self, vertex_id) -> Optional[int]:
        """Dense index for a vertex id, or None when absent."""
        return self._index.get(int(vertex_id))

    def neighbors(self, vertex_id) -> List[Tuple[int, float]]:
        i = self._index[int(vertex_id)]
        lo, hi = int(self.indptr[i]), int(self.indptr[i + 1])
        return [
            (int(self.vertex_ids[j]), float(w))
            for j, w in zip(self.indices[lo:hi], self.weights[lo:hi])
        ]

    def vertex_coordinate(self, vertex_id) -> Tuple[float, float]:
        i = self._index[int(vertex_id)]
        x, y = self.coordinates[i]
        return (float(x), float(y))

    def vertices(self) -> List[Vertex]:
        return [
            Vertex(int(n), float(x), float(y))
            for n, (x, y) in zip(self.vertex_ids.tolist(), self.coordinates.tolist())
        ]

    def to_networkx(self) -> nx.MultiGraph:
        """MultiGraph view (parallel edges kept) for QA cross-checks."""
        G = nx.MultiGraph()
        for n, (x, y) in zip(self.vertex_ids.tolist(), self.coordinates.tolist()):
            G.add_node(int(n), x=float(x), y=float(y))
        seen = set()
        for i in range(self.vertex_count):
            lo, hi = int(self.indptr[i]), int(self.indptr[i + 1])
            u = int(self.vertex_ids[i])
            for j in range(lo, hi):
                k = int(self.edge_pos[j])
                if k in seen:
                    continue
                seen.add(k)
                v = int(self.vertex_ids[int(self.indices[j])])
                G.add_edge(u, v, key=k, edge_id=int(self.edge_keys[k]), length=float(self.weights[j]))
        return G
