from __future__ import annotations

import gzip
import logging
import os
import pickle
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError

from src.adapters.aws import s3_client
from src.app.ports.output import IMapProvider
from src.domain.models import GeoPoint

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class S3CachedMapAdapter(IMapProvider):
    """Caches road graphs in S3 in front of another IMapProvider.

    Env vars:
      - STREET_GRAPH_BUCKET (required)
      - STREET_GRAPH_PREFIX (default: road-graphs)
      - ENDPOINT_URL (preferred for LocalStack)
    """

    upstream: IMapProvider
    bucket: str | None = None
    prefix: str | None = None

    def _bucket(self) -> str:
        value = self.bucket or os.getenv("STREET_GRAPH_BUCKET")
        if not value:
            raise RuntimeError("Missing STREET_GRAPH_BUCKET")
        return value

    def _prefix(self) -> str:
        return (self.prefix or os.getenv("STREET_GRAPH_PREFIX") or "road-graphs").strip(
            "/"
        )

    def key_for(self, *, center: GeoPoint, dist_m: int) -> str:
        # Rounded to ~100 m so nearby segment requests share one graph.
        lat = round(center.lat, 3)
        lon = round(center.lon, 3)
        nt = (getattr(self.upstream, "network_type", None) or "drive").strip().lower()
        return f"{self._prefix()}/nt={nt}/dist={int(dist_m)}/center={lat}_{lon}.pkl.gz"

    def get_street_graph(self, *, center: GeoPoint, dist_m: int) -> Any:
        s3 = s3_client()
        bucket = self._bucket()
        key = self.key_for(center=center, dist_m=dist_m)

        try:
            obj = s3.get_object(Bucket=bucket, Key=key)
            return _coerce_numeric_attrs(pickle.loads(gzip.decompress(obj["Body"].read())))
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code not in {"NoSuchKey", "404"}:
                raise
            logger.debug("Road graph cache miss: s3://%s/%s", bucket, key)

        graph = _coerce_numeric_attrs(
            self.upstream.get_street_graph(center=center, dist_m=dist_m)
        )
        s3.put_object(Bucket=bucket, Key=key, Body=gzip.compress(pickle.dumps(graph)))
        return graph


def _to_float(data: dict, name: str) -> None:
    if name in data:
        try:
            data[name] = float(data[name])
        except (TypeError, ValueError):
            pass


def _coerce_numeric_attrs(graph: Any) -> Any:
    """Make node x/y and edge length numeric in place.

    Graphs that went through a generic serializer may carry them as strings,
    which breaks weighted shortest paths.
    """

    if hasattr(graph, "nodes"):
        for n in graph.nodes:
            _to_float(graph.nodes[n], "x")
            _to_float(graph.nodes[n], "y")
    if hasattr(graph, "edges"):
        for edge in graph.edges(data=True):
            _to_float(edge[-1], "length")
    return graph
