from __future__ import annotations

import os
import urllib.request
from uuid import uuid4

import pytest

from src.adapters.aws import s3_client

ROAD_GRAPH_BUCKET = "ridealong-test-road-graphs"


def _localstack_healthy(endpoint_url: str) -> bool:
    url = endpoint_url.rstrip("/") + "/_localstack/health"
    try:
        with urllib.request.urlopen(url, timeout=1.5) as resp:  # nosec B310
            return 200 <= resp.status < 300
    except OSError:
        return False


@pytest.fixture(scope="session", autouse=True)
def localstack_env() -> None:
    """Point boto3 at LocalStack unless the environment says otherwise."""

    os.environ.setdefault("ENDPOINT_URL", "http://localhost:4566")
    os.environ.setdefault("AWS_REGION", "eu-west-1")

    # boto3 refuses to sign requests without credentials, even for LocalStack.
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")


@pytest.fixture(scope="session")
def require_localstack(localstack_env: None) -> str:
    endpoint_url = os.environ["ENDPOINT_URL"]
    if not _localstack_healthy(endpoint_url):
        msg = f"LocalStack not reachable at {endpoint_url}"
        # CI starts LocalStack, so a missing one there is a real failure.
        if os.getenv("CI") or os.getenv("REQUIRE_LOCALSTACK"):
            pytest.fail(msg, pytrace=False)
        pytest.skip(f"{msg}; skipping integration tests")
    return endpoint_url


@pytest.fixture
def road_graph_bucket(require_localstack: str, monkeypatch) -> str:
    """Bucket plus a fresh key prefix for the S3 road-graph cache."""

    s3 = s3_client()
    try:
        s3.create_bucket(
            Bucket=ROAD_GRAPH_BUCKET,
            CreateBucketConfiguration={"LocationConstraint": os.environ["AWS_REGION"]},
        )
    except s3.exceptions.BucketAlreadyOwnedByYou:
        pass

    monkeypatch.setenv("STREET_GRAPH_BUCKET", ROAD_GRAPH_BUCKET)
    monkeypatch.setenv("STREET_GRAPH_PREFIX", f"road-graphs-test-{uuid4()}")
    return ROAD_GRAPH_BUCKET
