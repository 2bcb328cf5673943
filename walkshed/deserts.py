"""
Transit-desert classification.

Two decoupled stages:
  1. measure: straight-line (planar) distance from each tract's geometry to
     the nearest entrance, stored once as TractDistance records.
  2. classify: apply a threshold to a stored distance. Pure, so any number of
     thresholds can be evaluated against the same distances.

The distance is Euclidean, not the network walking distance used for the
isochrones.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd
from shapely import STRtree
from shapely.geometry import Point
from tqdm import tqdm

from .models import DesertFlag, DesertSummary, PointOfInterest, TractDistance, TractPolygon

logger = logging.getLogger(__name__)

REFERENCES = ("geometry", "centroid")


def _check_threshold(threshold: float) -> float:
    threshold = float(threshold)
    if math.isnan(threshold) or threshold < 0.0:
        raise ValueError(f"threshold must be a non-negative number, got {threshold!r}")
    return threshold


class DesertClassifier:
    """Nearest-entrance distances backed by one STRtree over the entrances."""

    def __init__(self, entrances: Sequence[PointOfInterest], reference: str = "geometry"):
        if reference not in REFERENCES:
            raise ValueError(f"reference must be one of {REFERENCES}, got {reference!r}")
        self.reference = reference
        self.points = [Point(float(e.x), float(e.y)) for e in entrances]
        self.tree = STRtree(self.points) if self.points else None

    def _reference(self, tract: TractPolygon):
        geom = tract.geometry
        return geom.centroid if self.reference == "centroid" else geom

    def nearest_distance(self, tract: TractPolygon) -> Optional[float]:
        """Distance in feet; 0 when an entrance lies inside; None without entrances."""
        if self.tree is None or tract.geometry is None or tract.geometry.is_empty:
            return None
        geom = self._reference(tract)
        idx = self.tree.nearest(geom)
        if idx is None:
            return None
        return float(geom.distance(self.points[int(idx)]))

    def measure(self, tract: TractPolygon) -> TractDistance:
        return TractDistance(
            tract_id=tract.id,
            nearest_distance_ft=self.nearest_distance(tract),
            population=tract.population,
            median_income=tract.median_income,
        )

    def measure_all(self, tracts: Iterable[TractPolygon], progress: bool = False) -> List[TractDistance]:
        tracts = list(tracts)
        out = [self.measure(t) for t in tqdm(tracts, desc="[deserts] distances", unit="tract", disable=not progress)]
        n_dist = sum(1 for d in out if d.nearest_distance_ft is not None)
        logger.info(f"[deserts] Measured {n_dist}/{len(out)} tracts against {len(self.points)} entrances")
        return out


def nearest_distance(tract: TractPolygon, entrances: Sequence[PointOfInterest]) -> Optional[float]:
    return DesertClassifier(entrances).nearest_distance(tract)


def classify(distance: TractDistance, threshold: float) -> DesertFlag:
    """is_desert = distance > threshold. Tracts without a distance are never deserts."""
    threshold = _check_threshold(threshold)
    d = distance.nearest_distance_ft
    return DesertFlag(
        tract_id=distance.tract_id,
        nearest_distance_ft=d,
        is_desert=bool(d is not None and d > threshold),
        threshold_used=threshold,
        population=distance.population,
        median_income=distance.median_income,
    )


def classify_tract(tract: TractPolygon, entrances: Sequence[PointOfInterest], threshold: float) -> DesertFlag:
    return classify(DesertClassifier(entrances).measure(tract), threshold)


def classify_all(
    distances: Sequence[TractDistance], thresholds: Iterable[float]
) -> Dict[float, List[DesertFlag]]:
    """Flags for every threshold, each computed from the same stored distances."""
    return {
        float(t): [classify(d, t) for d in distances]
        for t in thresholds
    }


def flags_to_frame(flags: Sequence[DesertFlag]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "tract_id": f.tract_id,
                "dist_ft": f.nearest_distance_ft,
                "desert": f.is_desert,
                "threshold_ft": f.threshold_used,
                "population": f.population,
                "median_income": f.median_income,
            }
            for f in flags
        ],
        columns=["tract_id", "dist_ft", "desert", "threshold_ft", "population", "median_income"],
    )


def _rounded_mean(s: pd.Series) -> Optional[float]:
    s = pd.to_numeric(s, errors="coerce").dropna()
    if s.empty:
        return None
    return float(round(s.mean(), 0))


def summarize(flags: Sequence[DesertFlag]) -> DesertSummary:
    """Counts plus mean population / income over desert tracts (rounded)."""
    df = flags_to_frame(flags)
    thresholds = df["threshold_ft"].unique()
    if len(thresholds) > 1:
        raise ValueError(f"summarize expects flags from one threshold, got {sorted(thresholds)}")
    threshold = float(thresholds[0]) if len(thresholds) else math.nan
    deserts = df[df["desert"].astype(bool)]
    return DesertSummary(
        threshold=threshold,
        total_tracts=int(len(df)),
        tracts_with_distance=int(df["dist_ft"].notna().sum()),
        desert_tracts=int(len(deserts)),
        avg_pop_in_deserts=_rounded_mean(deserts["population"]),
        avg_income_in_deserts=_rounded_mean(deserts["median_income"]),
    )
