"""Configuration loading, defaults and validation for quietdrop."""
from __future__ import annotations

import logging
import os
import re
import stat
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from .compress import ARCHIVE_FORMATS, LEVEL_RANGES, ArchiveConfig
from .transfer import UploadOptions
from .utils import parse_duration, parse_size

CONFIG_PATH = Path.home() / ".config" / "quietdrop" / "config.toml"

DEFAULT_FILE_REGEX = r".*\.demo$"
DEFAULT_QUIET_PERIOD = 5 * 60.0
DEFAULT_SIZE_LIMIT = "10MB"
_DEFAULT_LEVELS = {"zip": 9, "zst": 19}

_STRING_FIELDS = ("watch_folder", "file_regex", "webhook_url", "archive_format", "log_level")
_NUMBER_FIELDS = ("quiet_period", "backoff", "request_timeout")


class ConfigError(ValueError):
    pass


@dataclass
class WatchConfig:
    watch_folder: str = ""
    file_regex: str = DEFAULT_FILE_REGEX
    webhook_url: str = ""
    # seconds a file must stay untouched before it is uploaded
    quiet_period: float = DEFAULT_QUIET_PERIOD
    # "0B" disables the limit
    size_limit: str = DEFAULT_SIZE_LIMIT
    archive_format: str = "zip"
    compression_level: Optional[int] = None
    retries: int = 3
    backoff: float = 0.5
    request_timeout: float = 60.0
    log_level: str = "INFO"

    # filled in by validate()
    pattern: Optional[re.Pattern] = None
    size_limit_bytes: int = 0

    def _check_types(self) -> None:
        for name in _STRING_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ConfigError(f"{name} must be a string, got {value!r}")
        for name in _NUMBER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")
            setattr(self, name, float(value))
        for name in ("retries", "compression_level"):
            value = getattr(self, name)
            if value is None and name == "compression_level":
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        # a bare number of bytes is accepted too
        if isinstance(self.size_limit, int) and not isinstance(self.size_limit, bool):
            self.size_limit = f"{self.size_limit}B"
        if not isinstance(self.size_limit, str):
            raise ConfigError(f"size_limit must be a string such as \"10MB\", got {self.size_limit!r}")

    def validate(self) -> "WatchConfig":
        self._check_types()
        if not self.file_regex:
            self.file_regex = ".*"
        try:
            self.pattern = re.compile(self.file_regex)
        except re.error as e:
            raise ConfigError(f"invalid regex: {self.file_regex}: {e}") from e

        url = urlparse(self.webhook_url)
        if url.scheme not in ("http", "https") or not url.netloc:
            raise ConfigError(f"invalid webhook URL: {self.webhook_url!r}")

        if not self.watch_folder:
            raise ConfigError("please specify a directory path to watch")
        try:
            st = os.lstat(self.watch_folder)
        except OSError as e:
            raise ConfigError(f"error while trying to access path: {self.watch_folder}") from e
        if not stat.S_ISDIR(st.st_mode):
            raise ConfigError(f"path is not a directory: {self.watch_folder}")
        self.watch_folder = os.path.abspath(self.watch_folder)

        try:
            self.size_limit_bytes = parse_size(self.size_limit)
        except ValueError as e:
            raise ConfigError(
                f"invalid size limit: {self.size_limit}, must be B, KB, MB, KiB or MiB"
            ) from e

        if self.quiet_period <= 0:
            raise ConfigError(f"quiet period must be positive, got {self.quiet_period}")
        if self.archive_format not in ARCHIVE_FORMATS:
            raise ConfigError(
                f"unknown archive format: {self.archive_format}, must be one of {', '.join(ARCHIVE_FORMATS)}"
            )
        if self.compression_level is not None:
            low, high = LEVEL_RANGES[self.archive_format]
            if not low <= self.compression_level <= high:
                raise ConfigError(
                    f"compression level {self.compression_level} out of range {low}-{high} for {self.archive_format}"
                )
        if self.retries < 0:
            raise ConfigError("retries must not be negative")
        if self.backoff < 0:
            raise ConfigError("backoff must not be negative")
        if self.request_timeout <= 0:
            raise ConfigError("request timeout must be positive")
        self.log_level = self.log_level.upper()
        if self.log_level not in logging.getLevelNamesMapping():
            raise ConfigError(f"unknown log level: {self.log_level}")
        return self

    def archive_config(self) -> ArchiveConfig:
        level = self.compression_level
        if level is None:
            level = _DEFAULT_LEVELS[self.archive_format]
        return ArchiveConfig(format=self.archive_format, level=level)

    def upload_options(self) -> UploadOptions:
        return UploadOptions(
            retries=self.retries,
            backoff=self.backoff,
            timeout=self.request_timeout,
            size_limit=self.size_limit_bytes,
        )


_FILE_KEYS = {
    f.name for f in fields(WatchConfig) if f.name not in ("pattern", "size_limit_bytes")
}


def load_config(path: Optional[Path] = None) -> dict:
    """Read a TOML config file and return the raw dict. Missing default file -> {}."""
    if path is None:
        path = CONFIG_PATH
        if not path.exists():
            return {}
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"error while reading config file: {path}: {e}") from e
    unknown = set(data) - _FILE_KEYS
    if unknown:
        raise ConfigError(f"unknown config keys in {path}: {', '.join(sorted(unknown))}")
    return data


def _duration(value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return parse_duration(str(value))
    except ValueError as e:
        raise ConfigError(str(e)) from e


def resolve_config(cli_args, path: Optional[Path] = None) -> WatchConfig:
    """Merge defaults < config.toml < CLI args into a validated WatchConfig."""
    values: dict[str, Any] = dict(load_config(path))

    for name in _FILE_KEYS:
        value = getattr(cli_args, name, None)
        if value is not None:
            values[name] = value

    if "quiet_period" in values:
        values["quiet_period"] = _duration(values["quiet_period"])
    cfg = WatchConfig(**values)
    return cfg.validate()
