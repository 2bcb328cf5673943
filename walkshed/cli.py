import argparse
import logging
import os
import sys

from . import config
from .builder import AccessibilityBuilder
from .errors import GraphIntegrityError

logger = logging.getLogger("walkshed.cli")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Walking isochrones around transit entrances and transit-desert flags for tracts"
    )
    ap.add_argument("--vertices", required=True, help="Network vertices layer (points with an 'id' column)")
    ap.add_argument("--edges", required=True, help="Network edges layer (lines; optional source/target/length)")
    ap.add_argument("--entrances", required=True, help="Transit entrance points")
    ap.add_argument("--tracts", required=True, help="Tract polygons with population / median_income")
    ap.add_argument("--out", required=True, help="Output directory for GeoJSON layers")
    ap.add_argument("--crs", default=config.PROJECTED_CRS, help=f"Projected working CRS in feet (default {config.PROJECTED_CRS})")
    ap.add_argument(
        "--minutes", type=int, nargs="+", default=list(config.ISOCHRONE_MINUTES),
        help=f"Walk budgets in minutes at {config.WALK_FT_PER_MIN:g} ft/min",
    )
    ap.add_argument(
        "--threshold", type=float, nargs="+", default=list(config.DESERT_THRESHOLDS_FT),
        help="Transit-desert distance thresholds in feet",
    )
    ap.add_argument("--concavity", type=float, default=config.CONCAVITY, help="0..1, 1 = convex hull")
    ap.add_argument("--allow-holes", action="store_true", default=config.ALLOW_HOLES)
    ap.add_argument("--workers", type=int, default=config.WORKERS)
    ap.add_argument("--executor", choices=["thread", "process"], default=config.EXECUTOR)
    ap.add_argument("--max-visited", type=int, default=config.MAX_VISITED_NODES, help="Per-search vertex cap")
    ap.add_argument("--deadline", type=float, default=config.SEARCH_DEADLINE_S, help="Per-search seconds")
    ap.add_argument("--snap-max-ft", type=float, default=config.SNAP_MAX_DISTANCE_FT)
    ap.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    ap.add_argument("--log-level", default="INFO")
    return ap


def run_cli(args) -> int:
    for path in (args.vertices, args.edges, args.entrances, args.tracts):
        if not os.path.exists(path):
            logger.error(f"Input not found: {path}")
            return 1

    os.makedirs(args.out, exist_ok=True)

    try:
        builder = AccessibilityBuilder.from_files(
            args.vertices,
            args.edges,
            args.entrances,
            args.tracts,
            args.out,
            crs=args.crs,
            minutes=args.minutes,
            thresholds=args.threshold,
            concavity=args.concavity,
            allow_holes=args.allow_holes,
            workers=args.workers,
            executor=args.executor,
            max_visited=args.max_visited,
            deadline_s=args.deadline,
            snap_max_distance=args.snap_max_ft,
            progress=not args.no_progress,
        )
        builder.run()
    except KeyboardInterrupt:
        logger.warning("[cli] Interrupted.")
        return 130  # 128 + SIGINT
    except GraphIntegrityError as e:
        logger.error(f"[cli] Network failed validation: {e}")
        return 2
    except Exception as e:
        # detailed logging belongs inside modules
        logger.error(f"[cli] Fatal error: {e}")
        return 2

    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return run_cli(args)


if __name__ == "__main__":
    sys.exit(main())
