from __future__ import annotations

import io
import mimetypes
import time
import zipfile
from typing import Any, Protocol, runtime_checkable

import boto3
import structlog
from site_delivery.core import StageFailure
from site_delivery.source import ChangeReference

log = structlog.get_logger(__name__)


@runtime_checkable
class SiteDeployer(Protocol):
    def deploy(
        self, descriptor: dict[str, Any], change: ChangeReference
    ) -> dict[str, Any]: ...


def split_s3_location(location: str) -> tuple[str, str]:
    """
    Accept `arn:aws:s3:::bucket/key`, `s3://bucket/key` or `bucket/key`.
    """
    loc = location
    for prefix in ("arn:aws:s3:::", "s3://"):
        if loc.startswith(prefix):
            loc = loc[len(prefix) :]
            break
    bucket, sep, key = loc.partition("/")
    if not bucket or not sep or not key:
        raise StageFailure(f"Unrecognised artifact location: {location!r}")
    return bucket, key


class S3SiteDeployer:
    """
    Unpack the release build's zip into the site bucket, then invalidate the
    edge cache when a distribution is configured.
    """

    def __init__(
        self,
        *,
        site_bucket: str,
        distribution_id: str | None = None,
        s3_client: Any = None,
        cloudfront_client: Any = None,
        region: str | None = None,
    ) -> None:
        self.site_bucket = site_bucket
        self.distribution_id = distribution_id
        self.s3 = s3_client or boto3.client("s3", region_name=region)
        self.cloudfront = cloudfront_client
        if self.cloudfront is None and distribution_id:
            self.cloudfront = boto3.client("cloudfront")

    def deploy(self, descriptor: dict[str, Any], change: ChangeReference) -> dict[str, Any]:
        bucket, key = split_s3_location(str(descriptor.get("location") or ""))
        body = self.s3.get_object(Bucket=bucket, Key=key)["Body"].read()

        uploaded = 0
        with zipfile.ZipFile(io.BytesIO(body)) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                content_type = (
                    mimetypes.guess_type(info.filename)[0] or "application/octet-stream"
                )
                self.s3.put_object(
                    Bucket=self.site_bucket,
                    Key=info.filename,
                    Body=zf.read(info),
                    ContentType=content_type,
                )
                uploaded += 1

        out: dict[str, Any] = {"site_bucket": self.site_bucket, "objects": uploaded}
        if self.distribution_id:
            resp = self.cloudfront.create_invalidation(
                DistributionId=self.distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": 1, "Items": ["/*"]},
                    "CallerReference": f"{change.after_commit}-{int(time.time())}",
                },
            )
            out["invalidation_id"] = resp["Invalidation"]["Id"]

        log.info("deploy.finished", commit=change.after_commit, **out)
        return out


class NullDeployer:
    """Records the descriptor without publishing anything."""

    def __init__(self) -> None:
        self.deployed: list[dict[str, Any]] = []

    def deploy(self, descriptor: dict[str, Any], change: ChangeReference) -> dict[str, Any]:
        self.deployed.append(dict(descriptor))
        log.info("deploy.skipped", commit=change.after_commit)
        return {"deployed": False}
