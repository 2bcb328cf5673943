import os

# Working CRS: NY State Plane Long Island (US survey feet). All costs, distances
# and areas are in this system.
PROJECTED_CRS = os.environ.get("WALKSHED_PROJECTED_CRS", "EPSG:2263")
OUTPUT_CRS = "EPSG:4326"

# ~3 mph walking pace
WALK_FT_PER_MIN = 264.0

# Isochrone budgets (minutes) -> feet
ISOCHRONE_MINUTES = (10, 15)
ISOCHRONE_CUTOFFS_FT = {m: m * WALK_FT_PER_MIN for m in ISOCHRONE_MINUTES}  # 2640, 3960

# Concave hull tuning (1.0 == convex hull)
CONCAVITY = 0.99
ALLOW_HOLES = False

# Transit desert thresholds (feet); first one is the headline threshold
DESERT_THRESHOLDS_FT = (2625.0, 2000.0)

# Search circuit breaker (per source)
MAX_VISITED_NODES = 2_000_000
SEARCH_DEADLINE_S = None  # seconds, None disables

# Snapping: None == always take the nearest vertex
SNAP_MAX_DISTANCE_FT = None

# Worker pool
WORKERS = max(1, (os.cpu_count() or 2) - 1)
EXECUTOR = "thread"  # or "process"

SQFT_PER_ACRE = 43560.0

# Output filenames
ISOCHRONE_FILE = "isochrones_{minutes}min_latlon.geojson"
DESERT_FILE = "tracts_deserts_{threshold}ft.geojson"
ENTRANCES_FILE = "entrances_points.geojson"
