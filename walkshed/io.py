"""
Readers and GeoJSON writers around the core.

Readers hand the core plain records in the projected working CRS (feet);
layers stored in a geographic CRS are reprojected on load. Writers reproject
back to lon/lat and emit GeoJSON FeatureCollections.
"""
from __future__ import annotations

import json
import logging
import math
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry import Point, mapping

from .config import OUTPUT_CRS, PROJECTED_CRS
from .errors import ExportIOError, GraphIntegrityError
from .graph import GraphStore
from .models import (
    DesertFlag,
    Edge,
    EdgeLine,
    IsochronePolygon,
    PointOfInterest,
    TractPolygon,
    Vertex,
)
from .topology import resolve_edges

logger = logging.getLogger(__name__)


# =====================
# Readers
# =====================

def to_projected(gdf: gpd.GeoDataFrame, crs: str = PROJECTED_CRS) -> gpd.GeoDataFrame:
    """Reproject into the working CRS; layers without a CRS are assumed to be in it."""
    if gdf.crs is None:
        logger.warning(f"[io] Layer has no CRS; assuming {crs}")
        return gdf.set_crs(crs)
    if gdf.crs != crs:
        logger.info(f"[io] Reprojecting layer from {gdf.crs.to_string()} to {crs}")
        return gdf.to_crs(crs)
    return gdf


def _ids(gdf: gpd.GeoDataFrame, id_column: Optional[str]) -> List[Any]:
    if id_column and id_column in gdf.columns:
        return gdf[id_column].tolist()
    if id_column and gdf.index.name == id_column:
        return gdf.index.tolist()
    # serial ids, 1-based
    return list(range(1, len(gdf) + 1))


def _xy_columns(gdf: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
    """
    Point coordinates for a layer. The geometry wins when there is one, since
    that is what to_projected reprojected; plain tables must carry `x`/`y`
    already in the working CRS.
    """
    if isinstance(gdf, gpd.GeoDataFrame) and gdf.active_geometry_name is not None:
        if "x" in gdf.columns and "y" in gdf.columns:
            logger.debug("[io] Ignoring x/y columns in favour of the layer geometry")
        geom = gdf.geometry
        return geom.x.to_numpy(dtype="float64"), geom.y.to_numpy(dtype="float64")
    return gdf["x"].to_numpy(dtype="float64"), gdf["y"].to_numpy(dtype="float64")


def vertices_from_frame(gdf: pd.DataFrame, id_column: str = "id") -> List[Vertex]:
    ids = _ids(gdf, id_column)
    xs, ys = _xy_columns(gdf)
    return [Vertex(int(n), float(x), float(y)) for n, x, y in zip(ids, xs, ys)]


def network_from_frames(
    vertices: pd.DataFrame,
    edges: pd.DataFrame,
    id_column: str = "id",
    edge_id_column: str = "id",
    fallback: bool = True,
) -> Tuple[GraphStore, List[int]]:
    """
    Build the graph from vertex / edge tables.

    Edges carrying `source` and `target` are used as-is; rows where either is
    missing are resolved from their line geometry (exact endpoint match, then
    nearest vertex when `fallback`). Edge cost is the `length` column when
    present, otherwise the line's planar length.

    Returns (graph, broken_edge_ids). Without the fallback any unresolved edge
    aborts the build; with it, edges that still cannot be tied to vertices
    (empty geometry, empty vertex layer) are dropped and reported.
    """
    verts = vertices_from_frame(vertices, id_column)
    edge_ids = _ids(edges, edge_id_column)

    has_topology = {"source", "target"}.issubset(edges.columns)
    if has_topology:
        routed_mask = edges["source"].notna() & edges["target"].notna()
    else:
        routed_mask = pd.Series(False, index=edges.index)

    lengths = edges["length"] if "length" in edges.columns else None
    geoms = edges.geometry if isinstance(edges, gpd.GeoDataFrame) else None

    routed: List[Edge] = []
    pending: List[EdgeLine] = []
    for pos, (idx, is_routed) in enumerate(routed_mask.items()):
        eid = int(edge_ids[pos])
        length = None
        if lengths is not None and pd.notna(lengths.loc[idx]):
            length = float(lengths.loc[idx])
        if is_routed:
            if length is None:
                if geoms is None or geoms.loc[idx] is None:
                    raise GraphIntegrityError(f"Edge {eid} has neither a length nor a geometry")
                length = float(geoms.loc[idx].length)
            routed.append(Edge(eid, int(edges.at[idx, "source"]), int(edges.at[idx, "target"]), length))
        else:
            if geoms is None or geoms.loc[idx] is None:
                raise GraphIntegrityError(f"Edge {eid} has no endpoints and no geometry")
            pending.append(EdgeLine(eid, list(geoms.loc[idx].coords), length))

    broken: List[int] = []
    if pending:
        resolved, broken = resolve_edges(verts, pending, fallback=fallback)
        routed.extend(resolved)
    if broken:
        msg = f"{len(broken)} edge(s) could not be tied to vertices: {broken[:5]}"
        if not fallback:
            raise GraphIntegrityError(msg)
        logger.warning(f"[io] {msg}; dropped")
    return GraphStore.build(verts, routed), broken


def load_network(
    vertices_path: str,
    edges_path: str,
    crs: str = PROJECTED_CRS,
    fallback: bool = True,
) -> Tuple[GraphStore, List[int]]:
    logger.info(f"[io] Loading network from {vertices_path} / {edges_path}")
    vertices = to_projected(gpd.read_file(vertices_path), crs)
    edges = to_projected(gpd.read_file(edges_path), crs)
    return network_from_frames(vertices, edges, fallback=fallback)


def points_from_frame(
    gdf: gpd.GeoDataFrame,
    id_column: Optional[str] = "entrance_id",
    attribute_columns: Optional[Sequence[str]] = None,
) -> List[PointOfInterest]:
    ids = _ids(gdf, id_column)
    xs, ys = _xy_columns(gdf)
    if attribute_columns is None:
        attribute_columns = [c for c in gdf.columns if c not in {gdf.geometry.name, id_column, "x", "y"}]
    out = []
    for pos, (pid, x, y) in enumerate(zip(ids, xs, ys)):
        if not (math.isfinite(x) and math.isfinite(y)):
            logger.warning(f"[io] Skipping point {pid!r} with missing coordinates")
            continue
        row = gdf.iloc[pos]
        attrs = {c: _scalar(row[c]) for c in attribute_columns if c in gdf.columns}
        out.append(PointOfInterest(pid, float(x), float(y), attrs))
    return out


def tracts_from_frame(
    gdf: gpd.GeoDataFrame,
    id_column: str = "geoid",
    population_column: str = "population",
    income_column: str = "median_income",
) -> List[TractPolygon]:
    ids = _ids(gdf, id_column)
    pop = pd.to_numeric(gdf[population_column], errors="coerce") if population_column in gdf.columns else None
    inc = pd.to_numeric(gdf[income_column], errors="coerce") if income_column in gdf.columns else None
    skip = {gdf.geometry.name, id_column, population_column, income_column}
    extra = [c for c in gdf.columns if c not in skip]
    out = []
    for pos, tid in enumerate(ids):
        row = gdf.iloc[pos]
        out.append(
            TractPolygon(
                id=tid,
                geometry=row[gdf.geometry.name],
                population=_num(pop.iloc[pos]) if pop is not None else None,
                median_income=_num(inc.iloc[pos]) if inc is not None else None,
                attributes={c: _scalar(row[c]) for c in extra},
            )
        )
    return out


def load_points(path: str, id_column: Optional[str] = "entrance_id", crs: str = PROJECTED_CRS) -> List[PointOfInterest]:
    gdf = to_projected(gpd.read_file(path), crs)
    pts = points_from_frame(gdf, id_column=id_column)
    logger.info(f"[io] Loaded {len(pts)} points from {path}")
    return pts


def load_tracts(
    path: str,
    id_column: str = "geoid",
    population_column: str = "population",
    income_column: str = "median_income",
    crs: str = PROJECTED_CRS,
) -> List[TractPolygon]:
    gdf = to_projected(gpd.read_file(path), crs)
    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
    tracts = tracts_from_frame(gdf, id_column, population_column, income_column)
    logger.info(f"[io] Loaded {len(tracts)} tracts from {path}")
    return tracts


# =====================
# Exporter
# =====================

def _num(v) -> Optional[float]:
    if v is None or pd.isna(v):
        return None
    return float(v)


def _scalar(v):
    if isinstance(v, np.integer):
        return int(v)
    if isinstance(v, np.floating):
        return None if np.isnan(v) else float(v)
    if isinstance(v, np.bool_):
        return bool(v)
    if v is not None and not isinstance(v, (list, tuple, dict)) and pd.isna(v):
        return None
    return v


def coerce_jsonable(props: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _scalar(v) for k, v in props.items()}


def reproject(geoms: Sequence, source_crs: str = PROJECTED_CRS, output_crs: str = OUTPUT_CRS) -> List:
    if not geoms:
        return []
    return list(gpd.GeoSeries(list(geoms), crs=source_crs).to_crs(output_crs))


def write_feature_collection(features: List[Dict[str, Any]], path: str) -> str:
    try:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"type": "FeatureCollection", "features": features}, f)
    except (OSError, TypeError, ValueError) as e:
        raise ExportIOError(f"Failed to write {path}: {e}") from e
    logger.info(f"[export] Wrote {len(features)} features to {path}")
    return path


def _features(geoms, props_list) -> List[Dict[str, Any]]:
    return [
        {"type": "Feature", "geometry": mapping(g), "properties": coerce_jsonable(p)}
        for g, p in zip(geoms, props_list)
    ]


def isochrones_to_geojson(
    isochrones: Iterable[Optional[IsochronePolygon]],
    path: str,
    entrances: Optional[Mapping[Any, PointOfInterest]] = None,
    source_crs: str = PROJECTED_CRS,
    output_crs: str = OUTPUT_CRS,
) -> str:
    isos = [i for i in isochrones if i is not None]
    props = []
    for iso in isos:
        p = {
            "entrance_id": iso.source_id,
            "area_sqft": iso.area_sqft,
            "area_acres": iso.area_acres,
            "cutoff_ft": iso.cutoff,
        }
        poi = entrances.get(iso.source_id) if entrances else None
        if poi is not None:
            p["name"] = poi.attributes.get("name")
            p["wheelchair"] = poi.attributes.get("wheelchair")
        props.append(p)
    geoms = reproject([i.polygon for i in isos], source_crs, output_crs)
    return write_feature_collection(_features(geoms, props), path)


def deserts_to_geojson(
    flags: Sequence[DesertFlag],
    tracts: Sequence[TractPolygon],
    path: str,
    flag_column: str = "desert",
    source_crs: str = PROJECTED_CRS,
    output_crs: str = OUTPUT_CRS,
) -> str:
    by_id = {t.id: t for t in tracts}
    rows, geoms = [], []
    for f in flags:
        t = by_id.get(f.tract_id)
        if t is None or t.geometry is None:
            continue
        p = {"geoid": f.tract_id}
        p.update(t.attributes)
        p.update({
            "population": f.population,
            "median_income": f.median_income,
            "dist_ft": f.nearest_distance_ft,
            flag_column: f.is_desert,
            "threshold_ft": f.threshold_used,
        })
        rows.append(p)
        geoms.append(t.geometry)
    geoms = reproject(geoms, source_crs, output_crs)
    return write_feature_collection(_features(geoms, rows), path)


def points_to_geojson(
    points: Sequence[PointOfInterest],
    path: str,
    id_name: str = "entrance_id",
    source_crs: str = PROJECTED_CRS,
    output_crs: str = OUTPUT_CRS,
) -> str:
    geoms = reproject([Point(p.x, p.y) for p in points], source_crs, output_crs)
    props = [{id_name: p.id, **p.attributes} for p in points]
    return write_feature_collection(_features(geoms, props), path)
