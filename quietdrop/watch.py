from __future__ import annotations

import contextlib
import logging
import os
import stat
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from watchdog.events import EVENT_TYPE_CLOSED, EVENT_TYPE_MODIFIED, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .compress import ARCHIVE_SUFFIXES, archive_file
from .config import WatchConfig
from .scheduler import DebounceScheduler
from .timer import Clock, SystemClock
from .transfer import Uploader
from .utils import fmt_duration

logger = logging.getLogger(__name__)

_WRITE_EVENTS = {EVENT_TYPE_MODIFIED, EVENT_TYPE_CLOSED}


class WatchError(RuntimeError):
    pass


class EventKind(Enum):
    WRITE = "write"
    OTHER = "other"


@dataclass(frozen=True)
class WatchEvent:
    path: str
    kind: EventKind


class _EventForwarder(FileSystemEventHandler):
    def __init__(self, on_event: Callable[[WatchEvent], None]):
        self.on_event = on_event

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        kind = EventKind.WRITE if event.event_type in _WRITE_EVENTS else EventKind.OTHER
        path = event.src_path
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        self.on_event(WatchEvent(path=path, kind=kind))


class DirectoryWatcher:
    """Uploads files from ``cfg.watch_folder`` once they stop changing.

    Each write pushes the file's deadline to ``now + quiet_period``. When a
    deadline expires the file's mtime is checked again: an old enough file is
    archived and uploaded, a fresher one is rescheduled for the remainder.
    """

    def __init__(self, cfg: WatchConfig, *, uploader: Optional[Uploader] = None, clock: Optional[Clock] = None):
        if cfg.pattern is None:
            cfg.validate()
        self.cfg = cfg
        self.archive_cfg = cfg.archive_config()
        self.uploader = uploader or Uploader(cfg.upload_options())
        self.clock = clock or SystemClock()
        self.scheduler = DebounceScheduler(self.process, clock=self.clock)

    def handle(self, event: WatchEvent) -> None:
        path = event.path
        if path.endswith(ARCHIVE_SUFFIXES):
            return
        if not self.cfg.pattern.search(path):
            logger.debug("skipping not-matching file: %s", path)
            return
        if event.kind is not EventKind.WRITE:
            return
        logger.info("adding file to watch queue: %s, will be uploaded in %s", path, fmt_duration(self.cfg.quiet_period))
        self.scheduler.set(path, self.clock.now() + self.cfg.quiet_period)

    def process(self, path: str, deadline: float) -> None:
        try:
            st = os.lstat(path)
        except OSError as e:
            raise WatchError(f"error while trying to access file: {path}: {e}") from e
        if not stat.S_ISREG(st.st_mode):
            raise WatchError(f"not a regular file: {path}")

        now = self.clock.now()
        age = now - st.st_mtime
        if age < self.cfg.quiet_period:
            delay = self.cfg.quiet_period - age
            logger.info("file %s was modified too recently, will upload in %s", path, fmt_duration(delay))
            self.scheduler.set(path, now + delay)
            return
        self.upload(path)

    def upload(self, path: str) -> None:
        archive = archive_file(path, self.archive_cfg)
        try:
            self.uploader.upload(self.cfg.webhook_url, archive)
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.remove(archive)
        logger.info("uploaded: %s", path)

    def run(self, stop: threading.Event, poll_interval: float = 0.5) -> None:
        observer = Observer()
        observer.schedule(_EventForwarder(self.handle), self.cfg.watch_folder, recursive=False)
        with self.scheduler:
            observer.start()
            logger.info("watching %s for %s", self.cfg.watch_folder, self.cfg.file_regex)
            try:
                while not stop.wait(poll_interval):
                    if not observer.is_alive():
                        raise WatchError("filesystem observer stopped unexpectedly")
                logger.info("stop requested, closing watcher")
            finally:
                observer.stop()
                if observer.is_alive():
                    observer.join()
