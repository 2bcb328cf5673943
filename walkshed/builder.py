import os
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .deserts import DesertClassifier, classify_all, summarize
from .graph import GraphStore
from .hull import build_isochrones
from .io import (
    deserts_to_geojson,
    isochrones_to_geojson,
    load_network,
    load_points,
    load_tracts,
    points_to_geojson,
)
from .models import DesertFlag, DesertSummary, IsochronePolygon, PointOfInterest, SnapResult, TractDistance, TractPolygon
from .qa import desert_report, distance_report, isochrone_report, network_report, snap_report
from .reach import driving_distance
from .snapping import Snapper

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    network: Dict[str, Any] = field(default_factory=dict)
    snap: Dict[str, Any] = field(default_factory=dict)
    isochrones: Dict[int, Dict[str, Any]] = field(default_factory=dict)  # minutes -> QA
    distances: Dict[str, Any] = field(default_factory=dict)
    deserts: Dict[float, DesertSummary] = field(default_factory=dict)  # threshold -> summary
    outputs: List[str] = field(default_factory=list)


class AccessibilityBuilder:
    def __init__(
        self,
        graph: GraphStore,
        entrances: Sequence[PointOfInterest],
        tracts: Sequence[TractPolygon],
        output_dir: Optional[str] = None,
        minutes: Optional[Sequence[int]] = None,
        thresholds: Optional[Sequence[float]] = None,
        concavity: float = config.CONCAVITY,
        allow_holes: bool = config.ALLOW_HOLES,
        workers: int = config.WORKERS,
        executor: str = config.EXECUTOR,
        max_visited: Optional[int] = config.MAX_VISITED_NODES,
        deadline_s: Optional[float] = config.SEARCH_DEADLINE_S,
        snap_max_distance: Optional[float] = config.SNAP_MAX_DISTANCE_FT,
        progress: bool = True,
        crs: str = config.PROJECTED_CRS,
        broken_edges: Sequence[int] = (),
    ):
        self.graph = graph
        self.entrances = list(entrances)
        self.tracts = list(tracts)
        self.output_dir = output_dir
        # working CRS of every geometry handed in; exports reproject from it
        self.crs = crs
        self.broken_edges = list(broken_edges)

        # Walk budgets (minutes -> feet) and desert thresholds (feet)
        self.minutes = tuple(minutes) if minutes else config.ISOCHRONE_MINUTES
        self.thresholds = tuple(float(t) for t in thresholds) if thresholds else config.DESERT_THRESHOLDS_FT

        self.concavity = concavity
        self.allow_holes = allow_holes
        self.workers = workers
        self.executor = executor
        self.max_visited = max_visited
        self.deadline_s = deadline_s
        self.snap_max_distance = snap_max_distance
        self.progress = progress

        self.snapper = Snapper.from_graph(graph)
        self._snaps: Optional[Dict[Any, SnapResult]] = None
        self._snap_failures: List[Any] = []
        self._distances: Optional[List[TractDistance]] = None

        if output_dir:
            os.makedirs(output_dir, exist_ok=True)

    @classmethod
    def from_files(
        cls,
        vertices_path: str,
        edges_path: str,
        entrances_path: str,
        tracts_path: str,
        output_dir: str,
        crs: str = config.PROJECTED_CRS,
        **kwargs,
    ) -> "AccessibilityBuilder":
        graph, broken = load_network(vertices_path, edges_path, crs=crs)
        entrances = load_points(entrances_path, crs=crs)
        tracts = load_tracts(tracts_path, crs=crs)
        return cls(graph, entrances, tracts, output_dir, crs=crs, broken_edges=broken, **kwargs)

    # -----------------------------
    # Stages
    # -----------------------------
    def snap_entrances(self) -> Dict[Any, SnapResult]:
        if self._snaps is None:
            self._snaps, self._snap_failures = self.snapper.snap_points(
                self.entrances, max_distance=self.snap_max_distance, progress=self.progress
            )
        return self._snaps

    def isochrones(self, cutoff_ft: float) -> Dict[Any, Optional[IsochronePolygon]]:
        """Entrance id -> isochrone (None when degenerate). Entrances sharing a vertex share a search."""
        snaps = self.snap_entrances()
        vertices = sorted({s.vertex_id for s in snaps.values()})
        reach = driving_distance(
            self.graph,
            vertices,
            cutoff_ft,
            max_visited=self.max_visited,
            deadline_s=self.deadline_s,
            workers=self.workers,
            executor=self.executor,
            progress=self.progress,
        )
        by_vertex = build_isochrones(reach, self.graph, self.concavity, self.allow_holes, cutoff=cutoff_ft)
        out: Dict[Any, Optional[IsochronePolygon]] = {}
        for eid, snap in snaps.items():
            iso = by_vertex.get(snap.vertex_id)
            out[eid] = replace(iso, source_id=eid) if iso is not None else None
        return out

    def tract_distances(self) -> List[TractDistance]:
        # measured once; every threshold reuses these
        if self._distances is None:
            self._distances = DesertClassifier(self.entrances).measure_all(self.tracts, progress=self.progress)
        return self._distances

    def deserts(self) -> Dict[float, List[DesertFlag]]:
        return classify_all(self.tract_distances(), self.thresholds)

    # -----------------------------
    # Orchestration
    # -----------------------------
    def _out(self, name: str) -> Optional[str]:
        return os.path.join(self.output_dir, name) if self.output_dir else None

    def run(self) -> RunReport:
        report = RunReport()
        report.network = network_report(self.graph, broken_edges=len(self.broken_edges))

        snaps = self.snap_entrances()
        report.snap = snap_report(snaps, self._snap_failures)
        by_id = {e.id: e for e in self.entrances}

        for minutes in self.minutes:
            cutoff = minutes * config.WALK_FT_PER_MIN
            logger.info(f"[builder] {minutes}-min isochrones (cutoff {cutoff:g} ft)")
            isos = self.isochrones(cutoff)
            report.isochrones[minutes] = isochrone_report(isos)
            path = self._out(config.ISOCHRONE_FILE.format(minutes=minutes))
            if path:
                report.outputs.append(isochrones_to_geojson(isos.values(), path, entrances=by_id, source_crs=self.crs))

        report.distances = distance_report(self.tract_distances())
        for threshold, flags in self.deserts().items():
            summary = summarize(flags)
            desert_report(summary)
            report.deserts[threshold] = summary
            path = self._out(config.DESERT_FILE.format(threshold=f"{threshold:g}"))
            if path:
                column = f"desert_{threshold:g}ft"
                report.outputs.append(deserts_to_geojson(flags, self.tracts, path, flag_column=column, source_crs=self.crs))

        path = self._out(config.ENTRANCES_FILE)
        if path:
            report.outputs.append(points_to_geojson(self.entrances, path, source_crs=self.crs))

        logger.info(f"[builder] Done: {len(report.outputs)} layer(s) written")
        return report
