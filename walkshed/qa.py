# qa.py
from typing import Any, Dict, Mapping, Optional, Sequence
from dataclasses import asdict
import logging

import networkx as nx
import numpy as np
import pandas as pd

from .config import SQFT_PER_ACRE
from .graph import GraphStore
from .models import DesertSummary, IsochronePolygon, ReachableSet, SnapResult, TractDistance

logger = logging.getLogger(__name__)


def network_report(graph: GraphStore, broken_edges: int = 0, components: bool = False) -> Dict[str, Any]:
    degree = np.diff(graph.indptr)
    out = {
        "vertex_count": graph.vertex_count,
        "routed_edges": graph.edge_count,
        "broken_edges": int(broken_edges),
        "isolated_vertices": int((degree == 0).sum()),
    }
    if components:
        out["components"] = nx.number_connected_components(graph.to_networkx())
    logger.info(
        f"[QA] network: {out['vertex_count']} vertices, {out['routed_edges']} routed edges, "
        f"{out['broken_edges']} broken, {out['isolated_vertices']} isolated"
    )
    return out


def snap_report(snaps: Mapping[Any, SnapResult], failures: Sequence[Any] = ()) -> Dict[str, Any]:
    dists = np.array([s.distance for s in snaps.values()], dtype=np.float64)
    out = {
        "total": len(snaps) + len(failures),
        "snapped": len(snaps),
        "unique_nodes_used": len({s.vertex_id for s in snaps.values()}),
        "exact": sum(1 for s in snaps.values() if s.exact),
        "mean_snap_ft": float(dists.mean()) if dists.size else None,
        "max_snap_ft": float(dists.max()) if dists.size else None,
    }
    logger.info(
        f"[QA] snap: {out['snapped']}/{out['total']} snapped onto {out['unique_nodes_used']} vertices"
        + (f", max offset {out['max_snap_ft']:.1f} ft" if out["max_snap_ft"] is not None else "")
    )
    return out


def isochrone_report(isochrones: Mapping[Any, Optional[IsochronePolygon]], top: int = 10) -> Dict[str, Any]:
    polys = [i for i in isochrones.values() if i is not None]
    acres = np.array([p.area_sqft / SQFT_PER_ACRE for p in polys], dtype=np.float64)
    largest = sorted(polys, key=lambda p: p.area_sqft, reverse=True)[:top]
    out = {
        "polygon_count": len(polys),
        "degenerate": len(isochrones) - len(polys),
        "min_acres": float(acres.min()) if acres.size else None,
        "mean_acres": float(acres.mean()) if acres.size else None,
        "max_acres": float(acres.max()) if acres.size else None,
        "largest": [(p.source_id, p.area_sqft) for p in largest],
    }
    logger.info(
        f"[QA] isochrones: {out['polygon_count']} polygons, {out['degenerate']} degenerate"
        + (f", mean {out['mean_acres']:.1f} acres" if out["mean_acres"] is not None else "")
    )
    return out


def distance_report(distances: Sequence[TractDistance]) -> Dict[str, Any]:
    """Nearest-entrance distance stats over tracts that have a distance (feet, unrounded)."""
    d = pd.Series([t.nearest_distance_ft for t in distances], dtype="float64").dropna()
    out = {
        "total_tracts": len(distances),
        "tracts_with_distance": int(d.size),
        "avg_distance_ft": float(d.mean()) if d.size else None,
        "min_distance_ft": float(d.min()) if d.size else None,
        "max_distance_ft": float(d.max()) if d.size else None,
    }
    logger.info(
        f"[QA] distances: {out['tracts_with_distance']}/{out['total_tracts']} tracts measured"
        + (
            f", avg {out['avg_distance_ft']:.0f} ft (min {out['min_distance_ft']:.0f}, max {out['max_distance_ft']:.0f})"
            if d.size else ""
        )
    )
    return out


def desert_report(summary: DesertSummary) -> Dict[str, Any]:
    logger.info(
        f"[QA] deserts @ {summary.threshold:g} ft: {summary.desert_tracts}/{summary.total_tracts} tracts "
        f"(avg pop {summary.avg_pop_in_deserts}, avg income {summary.avg_income_in_deserts})"
    )
    return asdict(summary)


def cross_check_reachability(
    graph: GraphStore,
    reach_sets: Mapping[int, ReachableSet],
    cutoff: float,
    sample: int = 20,
    seed: int = 42,
    tol: float = 1e-6,
) -> Dict[str, Any]:
    """
    Recompute a sample of reachable sets with networkx and compare vertex
    sets and costs. Truncated sets are skipped.
    """
    Gx = graph.to_networkx()
    keys = [k for k, r in reach_sets.items() if not r.truncated and r.source_id in graph]
    rng = np.random.default_rng(seed)
    picked = rng.choice(len(keys), size=min(sample, len(keys)), replace=False) if keys else []

    mismatches = []
    for i in picked:
        r = reach_sets[keys[int(i)]]
        ref = nx.single_source_dijkstra_path_length(Gx, r.source_id, cutoff=cutoff, weight="length")
        same = set(ref) == set(r.costs) and all(abs(ref[v] - c) <= tol for v, c in r.costs.items())
        if not same:
            mismatches.append(r.source_id)

    checked = len(picked)
    logger.info(f"[QA] reachability cross-check: {checked - len(mismatches)}/{checked} sources match networkx")
    if mismatches:
        logger.warning(f"[QA] reachability mismatches for sources {mismatches[:10]}")
    return {"checked": checked, "mismatches": mismatches}
