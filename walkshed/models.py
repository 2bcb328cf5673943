"""
Record types shared by the walkshed stages.

Coordinates are planar (projected CRS, feet). Only the exporter ever sees
lon/lat.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

from shapely.geometry.base import BaseGeometry

from .config import SQFT_PER_ACRE

Coord = Tuple[float, float]


@dataclass(frozen=True)
class Vertex:
    id: int
    x: float
    y: float

    @property
    def coordinate(self) -> Coord:
        return (self.x, self.y)


@dataclass(frozen=True)
class Edge:
    id: int
    source: int
    target: int
    length: float  # feet


@dataclass(frozen=True)
class EdgeLine:
    """Raw network segment whose endpoints are not yet tied to vertex ids."""
    id: int
    coords: Sequence[Coord]
    length: Optional[float] = None


@dataclass(frozen=True)
class PointOfInterest:
    id: Any
    x: float
    y: float
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def coordinate(self) -> Coord:
        return (self.x, self.y)


@dataclass(frozen=True)
class TractPolygon:
    id: Any
    geometry: BaseGeometry
    population: Optional[float] = None
    median_income: Optional[float] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SnapResult:
    point_id: Any
    vertex_id: int
    distance: float
    exact: bool = False

    def __iter__(self):
        # allows `vertex_id, distance = snapper.nearest_vertex(p)`
        yield self.vertex_id
        yield self.distance


@dataclass
class ReachableSet:
    source_id: int
    costs: Dict[int, float]
    truncated: bool = False
    reason: Optional[str] = None

    def __len__(self) -> int:
        return len(self.costs)

    def __contains__(self, vertex_id) -> bool:
        return vertex_id in self.costs

    @property
    def vertex_ids(self):
        return set(self.costs)


@dataclass(frozen=True)
class IsochronePolygon:
    source_id: Any
    polygon: BaseGeometry
    area_sqft: float
    cutoff: Optional[float] = None
    concavity: Optional[float] = None

    @property
    def area_acres(self) -> float:
        return self.area_sqft / SQFT_PER_ACRE


@dataclass(frozen=True)
class TractDistance:
    tract_id: Any
    nearest_distance_ft: Optional[float]
    population: Optional[float] = None
    median_income: Optional[float] = None


@dataclass(frozen=True)
class DesertFlag:
    tract_id: Any
    nearest_distance_ft: Optional[float]
    is_desert: bool
    threshold_used: float
    population: Optional[float] = None
    median_income: Optional[float] = None


@dataclass(frozen=True)
class DesertSummary:
    threshold: float
    total_tracts: int
    tracts_with_distance: int
    desert_tracts: int
    avg_pop_in_deserts: Optional[float]
    avg_income_in_deserts: Optional[float]
