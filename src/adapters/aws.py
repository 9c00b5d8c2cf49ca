from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import boto3
from botocore.client import BaseClient
from botocore.config import Config

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client
else:
    S3Client = BaseClient  # type: ignore[misc,assignment]


def _env_seconds(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}: {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class S3RuntimeConfig:
    """Connection settings for the S3 road-graph cache.

    Env vars:
      - AWS_REGION (default eu-west-1)
      - ENDPOINT_URL: S3-compatible endpoint, e.g. LocalStack
      - S3_CONNECT_TIMEOUT_S (default 2), S3_READ_TIMEOUT_S (default 10)
    """

    region: str
    endpoint_url: str | None
    connect_timeout_s: float = 2.0
    read_timeout_s: float = 10.0

    @staticmethod
    def from_env() -> "S3RuntimeConfig":
        return S3RuntimeConfig(
            region=os.getenv("AWS_REGION", "eu-west-1"),
            endpoint_url=(os.getenv("ENDPOINT_URL") or "").strip() or None,
            connect_timeout_s=_env_seconds("S3_CONNECT_TIMEOUT_S", 2.0),
            read_timeout_s=_env_seconds("S3_READ_TIMEOUT_S", 10.0),
        )

    def botocore_config(self) -> Config:
        # Cache reads run inside a routing request's time budget.
        return Config(
            region_name=self.region,
            connect_timeout=self.connect_timeout_s,
            read_timeout=self.read_timeout_s,
            retries={"max_attempts": 2, "mode": "standard"},
        )


def s3_client() -> S3Client:
    cfg = S3RuntimeConfig.from_env()
    session = boto3.session.Session(region_name=cfg.region)
    return session.client(
        "s3", endpoint_url=cfg.endpoint_url, config=cfg.botocore_config()
    )
