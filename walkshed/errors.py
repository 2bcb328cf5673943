class WalkshedError(Exception):
    """Base class for walkshed errors."""


class GraphIntegrityError(WalkshedError):
    """Network failed validation at build time (dangling endpoint, duplicate id, bad length).

    Fatal: every downstream result depends on the graph.
    """


class SnapFailure(WalkshedError):
    """No vertex could be found for a point (empty index or beyond max distance)."""

    def __init__(self, message: str, point_id=None):
        super().__init__(message)
        self.point_id = point_id


class DegenerateHullError(WalkshedError):
    """Fewer than 3 distinct (non-collinear) coordinates for a hull.

    The core returns None for this case; the class exists for callers that
    prefer to raise.
    """


class CutoffExceededWarning(UserWarning):
    """A single-source search hit its circuit breaker; the partial set was kept."""


class ExportIOError(WalkshedError):
    """Writing an output layer failed."""
