"""
Tie raw edge lines to network vertices.

Endpoints are matched to a vertex with the identical coordinate first; any
endpoint still unresolved falls back to the nearest vertex (slower but
robust). With the fallback disabled, unresolved edges are reported as broken
and GraphStore.build will refuse them.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from shapely.geometry import LineString

from .errors import SnapFailure
from .models import Edge, EdgeLine, Vertex
from .snapping import Snapper

logger = logging.getLogger(__name__)


def resolve_edges(
    vertices: Sequence[Vertex],
    lines: Iterable[EdgeLine],
    fallback: bool = True,
    snapper: Optional[Snapper] = None,
) -> Tuple[List[Edge], List[int]]:
    """
    Returns (edges, broken_edge_ids). Edge cost is the line's stated length or,
    when absent, its planar length.
    """
    exact = {}
    for v in vertices:
        key = (float(v.x), float(v.y))
        if key not in exact or v.id < exact[key]:
            exact[key] = int(v.id)
    if fallback and snapper is None:
        snapper = Snapper.from_vertices(vertices)

    edges: List[Edge] = []
    broken: List[int] = []
    n_exact = n_fallback = 0
    for line in lines:
        coords = [(float(x), float(y)) for x, y in line.coords]
        if len(coords) < 2:
            broken.append(int(line.id))
            continue
        start, end = coords[0], coords[-1]
        source, target = exact.get(start), exact.get(end)
        if source is not None and target is not None:
            n_exact += 1
        elif fallback:
            try:
                if source is None:
                    source = snapper.nearest_vertex(start).vertex_id
                if target is None:
                    target = snapper.nearest_vertex(end).vertex_id
                n_fallback += 1
            except SnapFailure:
                broken.append(int(line.id))
                continue
        else:
            broken.append(int(line.id))
            continue

        length = line.length if line.length is not None else LineString(coords).length
        edges.append(Edge(int(line.id), int(source), int(target), float(length)))

    logger.info(
        f"[topology] Routed {len(edges)} edges ({n_exact} exact, {n_fallback} nearest fallback), "
        f"{len(broken)} broken"
    )
    return edges, broken
