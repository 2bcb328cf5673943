"""
Bounded walking-distance search (pgr_drivingDistance equivalent).

For each source a heap-based Dijkstra settles vertices in increasing cost
over the undirected CSR graph and stops expanding past `cutoff`. Vertices
with cost <= cutoff are returned; anything beyond is left out rather than
reported as infinite.

Each search owns its heap and cost maps and only reads the shared graph, so
sources fan out across a thread or process pool with no locking. A search
is additionally bounded by a settled-vertex cap, an optional wall-clock
deadline and an optional cancel event; tripping any of them keeps the
partial set, flags it as truncated and emits CutoffExceededWarning.
"""
from __future__ import annotations

import logging
import math
import threading
import time
import warnings
from heapq import heappop, heappush
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from tqdm import tqdm

from .config import EXECUTOR, MAX_VISITED_NODES, SEARCH_DEADLINE_S
from .errors import CutoffExceededWarning
from .graph import GraphStore
from .models import ReachableSet

logger = logging.getLogger(__name__)

# deadline is checked every N pops
_CLOCK_EVERY = 256

# graph installed once per process-pool worker
_WORKER_GRAPH: Optional[GraphStore] = None


def _check_cutoff(cutoff: float) -> float:
    cutoff = float(cutoff)
    if math.isnan(cutoff) or cutoff < 0.0:
        raise ValueError(f"cutoff must be a non-negative number, got {cutoff!r}")
    return cutoff


def reachable_vertices(
    graph: GraphStore,
    source: int,
    cutoff: float,
    max_visited: Optional[int] = MAX_VISITED_NODES,
    deadline_s: Optional[float] = SEARCH_DEADLINE_S,
    cancel: Optional[threading.Event] = None,
) -> ReachableSet:
    """Single-source bounded search. Unknown sources yield {source: 0}."""
    cutoff = _check_cutoff(cutoff)
    s = graph.index_of(source)
    if s is None:
        logger.warning(f"[reach] Source {source} not in graph; returning it alone")
        return ReachableSet(int(source), {int(source): 0.0})

    indptr, indices, weights = graph.indptr, graph.indices, graph.weights
    inf = math.inf

    best: Dict[int, float] = {s: 0.0}
    settled: Dict[int, float] = {}
    heap: List[Tuple[float, int]] = [(0.0, s)]
    reason: Optional[str] = None
    t0 = time.monotonic()
    pops = 0

    while heap:
        d_u, u = heappop(heap)
        if u in settled:
            continue
        if d_u > cutoff:
            break
        if settled:
            # breakers only apply once the source itself is in
            if max_visited is not None and len(settled) >= max_visited:
                reason = "max_visited"
                break
            if cancel is not None and cancel.is_set():
                reason = "cancelled"
                break
            if deadline_s is not None and pops % _CLOCK_EVERY == 0 and time.monotonic() - t0 > deadline_s:
                reason = "deadline"
                break
        pops += 1
        settled[u] = d_u

        lo, hi = int(indptr[u]), int(indptr[u + 1])
        for v, w in zip(indices[lo:hi].tolist(), weights[lo:hi].tolist()):
            if v in settled:
                continue
            nd = d_u + w
            if nd <= cutoff and nd < best.get(v, inf):
                best[v] = nd
                heappush(heap, (nd, v))

    ids = graph.vertex_ids
    costs = {int(ids[i]): c for i, c in settled.items()}
    out = ReachableSet(int(source), costs)
    if reason is not None:
        out.truncated, out.reason = True, reason
        msg = (
            f"Search from {source} stopped early ({reason}) after "
            f"{len(settled)} vertices; keeping partial set"
        )
        logger.warning(f"[reach] {msg}")
        warnings.warn(msg, CutoffExceededWarning, stacklevel=2)
    return out


def _init_worker(graph: GraphStore) -> None:
    global _WORKER_GRAPH
    _WORKER_GRAPH = graph


def _worker_search(source: int, cutoff: float, max_visited, deadline_s) -> ReachableSet:
    return reachable_vertices(_WORKER_GRAPH, source, cutoff, max_visited, deadline_s)


def driving_distance(
    graph: GraphStore,
    sources: Iterable[int],
    cutoff: float,
    max_visited: Optional[int] = MAX_VISITED_NODES,
    deadline_s: Optional[float] = SEARCH_DEADLINE_S,
    workers: int = 1,
    executor: str = EXECUTOR,
    progress: bool = False,
    cancel: Optional[Mapping[int, threading.Event]] = None,
) -> Dict[int, ReachableSet]:
    """
    Reachable vertex -> cost mapping for every source, keyed by source id
    in input order (duplicates collapse).

    `cancel` maps source ids to their own Event; setting one stops only that
    search. Events cannot cross into spawned processes, so they require the
    thread executor (or a single worker).
    """
    cutoff = _check_cutoff(cutoff)
    srcs = [int(s) for s in dict.fromkeys(int(s) for s in sources)]
    if not srcs:
        return {}

    results: Dict[int, ReachableSet] = {}
    effective_workers = max(1, min(int(workers), len(srcs)))
    events = {int(k): v for k, v in cancel.items()} if cancel else {}
    if events and effective_workers > 1 and executor == "process":
        raise ValueError("Per-source cancel events need executor='thread'")
    t_start = time.perf_counter()

    if effective_workers == 1:
        for s in tqdm(srcs, desc=f"[reach] cutoff={cutoff:g}", unit="src", disable=not progress):
            results[s] = reachable_vertices(graph, s, cutoff, max_visited, deadline_s, events.get(s))
    else:
        from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed

        if executor == "process":
            import multiprocessing as mp

            try:
                ctx = mp.get_context("spawn")
            except ValueError:
                ctx = mp.get_context()
            pool = ProcessPoolExecutor(
                max_workers=effective_workers,
                mp_context=ctx,
                initializer=_init_worker,
                initargs=(graph,),
            )
            submit = lambda s: pool.submit(_worker_search, s, cutoff, max_visited, deadline_s)
        elif executor == "thread":
            pool = ThreadPoolExecutor(max_workers=effective_workers)
            submit = lambda s: pool.submit(reachable_vertices, graph, s, cutoff, max_visited, deadline_s, events.get(s))
        else:
            raise ValueError(f"Unknown executor {executor!r} (expected 'thread' or 'process')")

        logger.debug(f"[reach] Launching {executor} pool with max_workers={effective_workers} pending={len(srcs)}")
        with pool:
            futures = {submit(s): s for s in srcs}
            with tqdm(total=len(futures), desc=f"[reach] cutoff={cutoff:g}", unit="src", disable=not progress) as bar:
                for fut in as_completed(futures):
                    s = futures[fut]
                    try:
                        results[s] = fut.result()
                    except Exception as exc:
                        logger.error(f"[reach] Search from {s} failed: {exc}")
                        raise
                    bar.update(1)

    truncated = sum(1 for r in results.values() if r.truncated)
    logger.info(
        f"[reach] {len(srcs)} sources within {cutoff:g} ft in {time.perf_counter() - t_start:.2f}s"
        + (f" ({truncated} truncated)" if truncated else "")
    )
    return {s: results[s] for s in srcs}
