from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

import requests

from .utils import Stats, fmt_bytes, retry

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    ".zip": "application/zip",
    ".zst": "application/zstd",
}


class UploadError(RuntimeError):
    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RetryableUploadError(UploadError):
    """Transport failures, 429 and 5xx responses."""


@dataclass
class UploadOptions:
    retries: int = 3
    backoff: float = 0.5
    timeout: float = 60.0
    # bytes; 0 disables the check
    size_limit: int = 10_000_000


class Uploader:
    """Posts one file per call to a webhook as a multipart form upload."""

    def __init__(self, options: Optional[UploadOptions] = None, session: Optional[requests.Session] = None):
        self.options = options or UploadOptions()
        self.session = session or requests.Session()
        self.stats = Stats()

    def upload(self, url: str, path: str) -> None:
        try:
            size = os.path.getsize(path)
        except OSError as e:
            raise UploadError(f"error while trying to access file: {path}: {e}") from e
        limit = self.options.size_limit
        if limit and size > limit:
            self.stats.failures += 1
            raise UploadError(f"file too large to upload: {path}: {fmt_bytes(size)} > {fmt_bytes(limit)}")

        retries = 0

        def _on_retry(attempt: int, e: BaseException) -> None:
            nonlocal retries
            retries = attempt
            logger.warning("upload attempt %d failed for %s: %s", attempt, path, e)

        logger.info("uploading file: %s (%s)", path, fmt_bytes(size))
        t0 = time.perf_counter()
        try:
            retry(
                lambda: self._post(url, path),
                retries=self.options.retries,
                base_delay=self.options.backoff,
                exc_types=(RetryableUploadError,),
                on_retry=_on_retry,
            )
        except UploadError:
            self.stats.failures += 1
            raise
        self.stats.duration_s += time.perf_counter() - t0
        self.stats.files += 1
        self.stats.bytes += size
        self.stats.retries += retries

    def _post(self, url: str, path: str) -> None:
        name = os.path.basename(path)
        content_type = _CONTENT_TYPES.get(os.path.splitext(name)[1], "application/octet-stream")
        try:
            with open(path, "rb") as fh:
                resp = self.session.post(
                    url,
                    files={name: (name, fh, content_type)},
                    timeout=self.options.timeout,
                )
        except requests.RequestException as e:
            raise RetryableUploadError(f"error while uploading file: {path}: {e}") from e
        except OSError as e:
            raise UploadError(f"error while opening file: {path}: {e}") from e

        if 200 <= resp.status_code < 300:
            return
        msg = f"error while uploading file: {path}: {resp.status_code} {resp.reason}"
        if resp.status_code == 429 or resp.status_code >= 500:
            raise RetryableUploadError(msg, status=resp.status_code)
        raise UploadError(msg, status=resp.status_code)
