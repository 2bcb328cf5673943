"""
Nearest-entrance distances and threshold classification.
"""
import pytest
from shapely.geometry import Polygon, box

from walkshed.deserts import (
    DesertClassifier,
    classify,
    classify_all,
    classify_tract,
    flags_to_frame,
    nearest_distance,
    summarize,
)
from walkshed.models import PointOfInterest, TractDistance, TractPolygon
from walkshed.qa import distance_report


def square_tract(tid="36061000100", x0=0.0, y0=0.0, size=1000.0, population=None, median_income=None):
    return TractPolygon(tid, box(x0, y0, x0 + size, y0 + size), population, median_income)


class TestNearestDistance:
    def test_distance_to_polygon_edge(self):
        tract = square_tract()
        assert nearest_distance(tract, [PointOfInterest("e", 4000.0, 500.0)]) == pytest.approx(3000.0)

    def test_nearest_of_several_entrances(self):
        tract = square_tract()
        entrances = [
            PointOfInterest("far", 9000.0, 9000.0),
            PointOfInterest("near", 500.0, 1800.0),
            PointOfInterest("mid", -2500.0, 500.0),
        ]
        assert nearest_distance(tract, entrances) == pytest.approx(800.0)

    def test_entrance_inside_is_zero(self):
        assert nearest_distance(square_tract(), [PointOfInterest("in", 250.0, 250.0)]) == 0.0

    def test_no_entrances_is_none(self):
        assert nearest_distance(square_tract(), []) is None

    def test_empty_geometry_is_none(self):
        tract = TractPolygon("x", Polygon())
        assert nearest_distance(tract, [PointOfInterest("e", 0.0, 0.0)]) is None

    def test_centroid_reference(self):
        classifier = DesertClassifier([PointOfInterest("e", 4000.0, 500.0)], reference="centroid")
        assert classifier.nearest_distance(square_tract()) == pytest.approx(3500.0)

    def test_unknown_reference(self):
        with pytest.raises(ValueError):
            DesertClassifier([], reference="edge")

    def test_measure_keeps_demographics(self):
        classifier = DesertClassifier([PointOfInterest("e", 4000.0, 500.0)])
        d = classifier.measure(square_tract(population=3200.0, median_income=41000.0))
        assert d == TractDistance("36061000100", pytest.approx(3000.0), 3200.0, 41000.0)


class TestClassify:
    def test_threshold_scenarios(self):
        d = TractDistance("t", 3000.0)
        assert classify(d, 2625).is_desert
        assert classify(d, 2000).is_desert
        assert not classify(d, 3500).is_desert

    def test_threshold_is_strict(self):
        assert not classify(TractDistance("t", 2625.0), 2625.0).is_desert

    def test_missing_distance_is_never_desert(self):
        flag = classify(TractDistance("t", None), 0.0)
        assert not flag.is_desert
        assert flag.nearest_distance_ft is None

    def test_flag_records_threshold(self):
        flag = classify(TractDistance("t", 10.0, 5.0, 6.0), 2000)
        assert flag.threshold_used == 2000.0
        assert (flag.population, flag.median_income) == (5.0, 6.0)

    def test_idempotent(self):
        d = TractDistance("t", 2700.0)
        assert classify(d, 2625.0) == classify(d, 2625.0)

    @pytest.mark.parametrize("threshold", [-1.0, float("nan")])
    def test_bad_threshold(self, threshold):
        with pytest.raises(ValueError):
            classify(TractDistance("t", 1.0), threshold)

    def test_classify_tract(self):
        flag = classify_tract(square_tract(), [PointOfInterest("e", 4000.0, 500.0)], 2625.0)
        assert flag.is_desert
        assert flag.nearest_distance_ft == pytest.approx(3000.0)


class TestMultipleThresholds:
    @pytest.fixture
    def distances(self):
        return [
            TractDistance("a", 500.0, 1000.0, 50000.0),
            TractDistance("b", 2300.0, 2000.0, 30000.0),
            TractDistance("c", 3000.0, 4000.0, 20000.0),
            TractDistance("d", None, 9999.0, 1.0),
        ]

    def test_classify_all_reuses_distances(self, distances):
        flags = classify_all(distances, [2625, 2000])
        assert list(flags) == [2625.0, 2000.0]
        assert [f.is_desert for f in flags[2625.0]] == [False, False, True, False]
        assert [f.is_desert for f in flags[2000.0]] == [False, True, True, False]

    def test_summary(self, distances):
        s = summarize(classify_all(distances, [2000])[2000.0])
        assert s.threshold == 2000.0
        assert s.total_tracts == 4
        assert s.tracts_with_distance == 3
        assert s.desert_tracts == 2
        assert s.avg_pop_in_deserts == 3000.0
        assert s.avg_income_in_deserts == 25000.0

    def test_summary_without_deserts(self, distances):
        s = summarize(classify_all(distances, [10_000])[10_000.0])
        assert s.desert_tracts == 0
        assert s.avg_pop_in_deserts is None

    def test_summary_rejects_mixed_thresholds(self, distances):
        flags = classify_all(distances, [2625, 2000])
        with pytest.raises(ValueError):
            summarize(flags[2625.0] + flags[2000.0])

    def test_flags_frame(self, distances):
        df = flags_to_frame(classify_all(distances, [2625])[2625.0])
        assert list(df.columns) == ["tract_id", "dist_ft", "desert", "threshold_ft", "population", "median_income"]
        assert df["desert"].tolist() == [False, False, True, False]


class TestDistanceStats:
    def test_unmeasured_tracts_are_left_out(self):
        out = distance_report([
            TractDistance("a", 100.0),
            TractDistance("b", None),
            TractDistance("c", 350.5),
            TractDistance("d", 0.0),
        ])
        assert out["total_tracts"] == 4
        assert out["tracts_with_distance"] == 3
        assert out["avg_distance_ft"] == pytest.approx(450.5 / 3.0)
        assert out["min_distance_ft"] == 0.0
        assert out["max_distance_ft"] == 350.5

    def test_nothing_measured(self):
        out = distance_report([TractDistance("a", None)])
        assert out["tracts_with_distance"] == 0
        assert out["avg_distance_ft"] is None
        assert out["max_distance_ft"] is None
