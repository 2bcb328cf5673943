from .errors import (
    CutoffExceededWarning,
    DegenerateHullError,
    ExportIOError,
    GraphIntegrityError,
    SnapFailure,
    WalkshedError,
)
from .graph import GraphStore
from .snapping import Snapper
from .reach import driving_distance, reachable_vertices
from .hull import area, build_isochrone, build_isochrones, concave_hull
from .deserts import DesertClassifier, classify, classify_all, classify_tract, nearest_distance, summarize
from .builder import AccessibilityBuilder

__all__ = [
    "AccessibilityBuilder",
    "CutoffExceededWarning",
    "DegenerateHullError",
    "DesertClassifier",
    "ExportIOError",
    "GraphIntegrityError",
    "GraphStore",
    "SnapFailure",
    "Snapper",
    "WalkshedError",
    "area",
    "build_isochrone",
    "build_isochrones",
    "classify",
    "classify_all",
    "classify_tract",
    "concave_hull",
    "driving_distance",
    "nearest_distance",
    "reachable_vertices",
    "summarize",
]

# -------------------------
# Walkshed file structure
# -------------------------
# config.py: constants & defaults (CRS, walk budgets, thresholds).
# models.py: record dataclasses (vertices, edges, POIs, tracts, results).
# errors.py: error / warning taxonomy.
# graph.py: immutable undirected CSR graph (GraphStore).
# topology.py: assign source/target vertices to raw edge lines.
# snapping.py: KD-tree vertex snapping (Snapper).
# reach.py: bounded Dijkstra reachability + worker fan-out.
# hull.py: Delaunay concave hull & isochrone polygons.
# deserts.py: nearest-entrance distance & transit-desert flags.
# io.py: GeoPandas readers, reprojection, GeoJSON export.
# qa.py: verification counts & networkx cross-check.
# builder.py: orchestration.
# cli.py: argparse entrypoint.
