from __future__ import annotations

from typing import Any, Sequence

import networkx as nx

from src.domain.exceptions import NoPathFound
from src.domain.models import GeoPoint


def iter_nodes(graph: Any):
    if hasattr(graph, "nodes"):
        return ((n, dict(graph.nodes[n])) for n in graph.nodes)
    raise RuntimeError("Unsupported graph type")


def node_point(graph: Any, node_id: Any) -> GeoPoint | None:
    data = dict(graph.nodes[node_id])
    x = data.get("x")
    y = data.get("y")
    if x is None or y is None:
        return None
    try:
        return GeoPoint(lat=float(y), lon=float(x))
    except (TypeError, ValueError):
        return None


def nearest_node(graph: Any, point: GeoPoint) -> Any:
    # Fast path: OSMnx spatial index (needs a projected/CRS-tagged graph).
    try:
        import osmnx as ox

        return ox.distance.nearest_nodes(graph, X=point.lon, Y=point.lat)
    except Exception:
        pass

    best_node: Any | None = None
    best_d2 = float("inf")
    for node_id, _ in iter_nodes(graph):
        p = node_point(graph, node_id)
        if p is None:
            continue
        d_lat = p.lat - point.lat
        d_lon = p.lon - point.lon
        d2 = d_lat * d_lat + d_lon * d_lon
        if d2 < best_d2:
            best_d2 = d2
            best_node = node_id

    if best_node is None:
        raise NoPathFound("Road graph contains no georeferenced nodes (missing x/y)")
    return best_node


def _edge_length_m(graph: Any, u: Any, v: Any) -> float:
    data = graph.get_edge_data(u, v) or {}
    if graph.is_multigraph():
        # Parallel edges: the shortest one is the one shortest_path used.
        lengths = [float(d.get("length", 0.0)) for d in data.values()]
        return min(lengths) if lengths else 0.0
    return float(data.get("length", 0.0))


def shortest_node_path(graph: Any, origin: GeoPoint, destination: GeoPoint) -> list[Any]:
    a_node = nearest_node(graph, origin)
    b_node = nearest_node(graph, destination)
    try:
        return list(nx.shortest_path(graph, a_node, b_node, weight="length"))
    except (nx.NetworkXNoPath, nx.NodeNotFound) as exc:
        raise NoPathFound(f"No road path: {exc}") from exc


def path_points(graph: Any, path_nodes: Sequence[Any]) -> tuple[GeoPoint, ...]:
    pts: list[GeoPoint] = []
    for node_id in path_nodes:
        p = node_point(graph, node_id)
        if p is not None:
            pts.append(p)
    return tuple(pts)


def path_length_m(graph: Any, path_nodes: Sequence[Any]) -> float:
    return float(
        sum(_edge_length_m(graph, u, v) for u, v in zip(path_nodes, path_nodes[1:]))
    )
