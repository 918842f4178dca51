from __future__ import annotations

import contextlib
import logging
import os
import stat
import zipfile
from dataclasses import dataclass

import zstandard as zstd

logger = logging.getLogger(__name__)

ARCHIVE_FORMATS = ("zip", "zst")
ARCHIVE_SUFFIXES = tuple(f".{fmt}" for fmt in ARCHIVE_FORMATS)
# inclusive compression level bounds per format
LEVEL_RANGES = {"zip": (0, 9), "zst": (1, 22)}


class ArchiveError(RuntimeError):
    pass


@dataclass
class ArchiveConfig:
    format: str = "zip"
    # deflate 0-9 for zip, zstd 1-22 for zst
    level: int = 9
    threads: int = 0


def archive_path(path: str, cfg: ArchiveConfig) -> str:
    return f"{path}.{cfg.format}"


def archive_file(path: str, cfg: ArchiveConfig) -> str:
    """Compress one regular file into ``<path>.<format>`` and return its path."""
    if cfg.format not in ARCHIVE_FORMATS:
        raise ArchiveError(f"unknown archive format: {cfg.format}")
    low, high = LEVEL_RANGES[cfg.format]
    if not low <= cfg.level <= high:
        raise ArchiveError(f"compression level {cfg.level} out of range {low}-{high} for {cfg.format}")
    logger.info("compressing file: %s", path)
    try:
        st = os.lstat(path)
    except OSError as e:
        raise ArchiveError(f"error while trying to access file: {path}: {e}") from e
    if not stat.S_ISREG(st.st_mode):
        raise ArchiveError(f"not a regular file: {path}")

    dest = archive_path(path, cfg)
    try:
        if cfg.format == "zip":
            _write_zip(path, dest, cfg.level)
        else:
            _write_zst(path, dest, cfg.level, cfg.threads)
    except Exception as e:
        with contextlib.suppress(FileNotFoundError):
            os.remove(dest)
        raise ArchiveError(f"error while compressing file: {path}: {e}") from e
    return dest


def _write_zip(src: str, dest: str, level: int) -> None:
    with zipfile.ZipFile(dest, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=level) as zf:
        zf.write(src, arcname=os.path.basename(src))


def _write_zst(src: str, dest: str, level: int, threads: int) -> None:
    c = zstd.ZstdCompressor(level=level, threads=threads, write_content_size=True)
    with open(src, "rb") as rf, open(dest, "wb") as wf:
        c.copy_stream(rf, wf, size=os.fstat(rf.fileno()).st_size)
