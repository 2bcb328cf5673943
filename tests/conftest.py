"""
Shared network fixtures (planar coordinates in feet).
"""
import pytest

from walkshed.graph import GraphStore
from walkshed.models import Edge, Vertex

A, B, C = 1, 2, 3


def grid_network(n: int = 6, spacing: float = 100.0, origin=(0.0, 0.0)):
    """n x n lattice; vertex id = row * n + col; edges = spacing."""
    ox, oy = origin
    vertices = [Vertex(r * n + c, ox + c * spacing, oy + r * spacing) for r in range(n) for c in range(n)]
    edges = []
    eid = 0
    for r in range(n):
        for c in range(n):
            v = r * n + c
            if c + 1 < n:
                edges.append(Edge(eid, v, v + 1, spacing)); eid += 1
            if r + 1 < n:
                edges.append(Edge(eid, v, v + n, spacing)); eid += 1
    return vertices, edges


@pytest.fixture
def triangle_graph() -> GraphStore:
    """A-B 1000 ft, B-C 1000 ft, A-C 2500 ft."""
    vertices = [Vertex(A, 0.0, 0.0), Vertex(B, 1000.0, 0.0), Vertex(C, 1000.0, 1000.0)]
    edges = [Edge(10, A, B, 1000.0), Edge(11, B, C, 1000.0), Edge(12, A, C, 2500.0)]
    return GraphStore.build(vertices, edges)


@pytest.fixture
def star_graph() -> GraphStore:
    """
    Entrance vertex 0 with five vertices inside 2640 ft and two beyond it.
    """
    vertices = [Vertex(0, 0.0, 0.0)]
    edges = []
    inside = [500.0, 1000.0, 1500.0, 2000.0, 2600.0]
    for i, L in enumerate(inside, start=1):
        vertices.append(Vertex(i, L, float(i)))
        edges.append(Edge(100 + i, 0, i, L))
    vertices += [Vertex(6, -3000.0, 0.0), Vertex(7, -3500.0, 0.0)]
    edges += [Edge(106, 0, 6, 3000.0), Edge(107, 6, 7, 500.0)]
    return GraphStore.build(vertices, edges)


@pytest.fixture
def grid_graph() -> GraphStore:
    vertices, edges = grid_network(6, 100.0)
    return GraphStore.build(vertices, edges)
