"""S3 cold storage for CAR backups."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from typing import AsyncIterator

import boto3

log = logging.getLogger(__name__)

# Exports larger than this spill to disk before upload
SPOOL_MAX_MEMORY = 64 * 1024 * 1024


class S3ColdStorage:
    """Uploads streamed CARs to an S3 bucket.

    boto3 is blocking, so the transfer itself runs in a worker thread. The
    stream is spooled first because `upload_fileobj` needs a readable file.
    """

    def __init__(self, bucket: str, region: str = "us-east-1", client=None) -> None:
        self._bucket = bucket
        self._region = region
        self.s3 = client or boto3.client("s3", region_name=region)

    def object_url(self, key: str) -> str:
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    async def upload(self, key: str, chunks: AsyncIterator[bytes]) -> str:
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY) as spool:
            size = 0
            async for chunk in chunks:
                spool.write(chunk)
                size += len(chunk)
            spool.seek(0)

            await asyncio.to_thread(
                self.s3.upload_fileobj,
                spool,
                self._bucket,
                key,
                ExtraArgs={
                    "ContentType": "application/vnd.ipld.car",
                    "Metadata": {"structure": "Complete"},
                },
            )

        url = self.object_url(key)
        log.info("Uploaded %s (%d bytes) to %s", key, size, url)
        return url
