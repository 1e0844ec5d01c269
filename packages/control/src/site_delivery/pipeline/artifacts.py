from __future__ import annotations

import hashlib
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.exceptions import ClientError
from site_delivery.core import atomic_write_bytes

from .types import ArtifactRef


def artifact_key(run_id: str, name: str) -> str:
    return f"{run_id}/{name}"


def make_ref(name: str, key: str, data: bytes) -> ArtifactRef:
    return ArtifactRef(
        name=name,
        key=key,
        bytes=len(data),
        sha256=hashlib.sha256(data).hexdigest(),
    )


@runtime_checkable
class ArtifactStore(Protocol):
    """
    Opaque put/get of named artifacts between stages.
    """

    def put(self, name: str, key: str, data: bytes) -> ArtifactRef: ...

    def get(self, key: str) -> bytes: ...

    def exists(self, key: str) -> bool: ...


class InMemoryArtifactStore:
    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, name: str, key: str, data: bytes) -> ArtifactRef:
        with self._lock:
            self._blobs[key] = bytes(data)
        return make_ref(name, key, data)

    def get(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[key]
            except KeyError:
                raise FileNotFoundError(f"No artifact at {key}") from None

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs


class LocalArtifactStore:
    """
    Artifacts as files under `root`, written atomically.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        p = (self.root / key).resolve()
        if self.root.resolve() not in p.parents:
            raise ValueError(f"Artifact key escapes store root: {key!r}")
        return p

    def put(self, name: str, key: str, data: bytes) -> ArtifactRef:
        atomic_write_bytes(self._path(key), data)
        return make_ref(name, key, data)

    def get(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()


class S3ArtifactStore:
    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = "pipeline-artifacts",
        client: Any = None,
        region: str | None = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.client = client or boto3.client("s3", region_name=region)

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def put(self, name: str, key: str, data: bytes) -> ArtifactRef:
        self.client.put_object(Bucket=self.bucket, Key=self._object_key(key), Body=data)
        return make_ref(name, key, data)

    def get(self, key: str) -> bytes:
        resp = self.client.get_object(Bucket=self.bucket, Key=self._object_key(key))
        return resp["Body"].read()

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._object_key(key))
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True
