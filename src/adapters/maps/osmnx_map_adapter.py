from __future__ import annotations

import logging
import os
import pickle
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

import osmnx as ox

from src.app.ports.output import IMapProvider
from src.domain.models import GeoPoint

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OSMnxMapAdapter(IMapProvider):
    """Drive-network graphs from OpenStreetMap via OSMnx.

    Env vars:
      - OSM_GRAPH_PATH: optional prebuilt graph (.graphml or .pkl/.pickle)
        covering the whole service area; served for every request
      - OSMNX_CACHE_FOLDER: Overpass response cache (default data/osm_cache)

    Downloaded graphs are kept in a small in-process LRU keyed by the
    rounded request area, since consecutive stop pairs overlap heavily.
    """

    network_type: str = "drive"
    max_cached_graphs: int = 16

    _prebuilt_graph: Any | None = None
    _graphs: OrderedDict[tuple[float, float, int], Any] = field(
        default_factory=OrderedDict, repr=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _configure_osmnx(self) -> None:
        ox.settings.use_cache = True
        ox.settings.log_console = False
        ox.settings.cache_folder = os.getenv("OSMNX_CACHE_FOLDER") or "data/osm_cache"

    def _load_prebuilt_graph(self) -> Any | None:
        if self._prebuilt_graph is not None:
            return self._prebuilt_graph

        path = (os.getenv("OSM_GRAPH_PATH") or "").strip()
        if not path:
            return None

        if path.lower().endswith(".graphml"):
            # ox.load_graphml restores numeric edge attributes like "length".
            graph = ox.load_graphml(path)
        elif path.lower().endswith((".pkl", ".pickle")):
            with open(path, "rb") as fp:
                graph = pickle.load(fp)
        else:
            raise RuntimeError(f"Unsupported OSM_GRAPH_PATH format: {path}")

        self._prebuilt_graph = _with_edge_lengths(graph)
        logger.info(
            "Loaded road graph %s (%d nodes)", path, self._prebuilt_graph.number_of_nodes()
        )
        return self._prebuilt_graph

    def get_street_graph(self, *, center: GeoPoint, dist_m: int) -> Any:
        prebuilt = self._load_prebuilt_graph()
        if prebuilt is not None:
            return prebuilt

        key = (round(center.lat, 3), round(center.lon, 3), int(dist_m))
        with self._lock:
            cached = self._graphs.get(key)
            if cached is not None:
                self._graphs.move_to_end(key)
                return cached

        self._configure_osmnx()
        graph = ox.graph_from_point(
            (center.lat, center.lon), dist=int(dist_m), network_type=self.network_type
        )
        graph = _with_edge_lengths(graph)

        with self._lock:
            self._graphs[key] = graph
            while len(self._graphs) > self.max_cached_graphs:
                self._graphs.popitem(last=False)
        return graph


def _with_edge_lengths(graph: Any) -> Any:
    """Shortest paths are weighted by "length"; fill it in where missing."""

    missing = any("length" not in data for _, _, data in graph.edges(data=True))
    if missing:
        graph = ox.distance.add_edge_lengths(graph)
    return graph
