from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from .compress import ARCHIVE_FORMATS, ArchiveError
from .config import ConfigError, WatchConfig, resolve_config
from .transfer import UploadError
from .utils import fmt_bytes, fmt_duration, parse_duration
from .watch import DirectoryWatcher, WatchError

console = Console(stderr=True)


def handle_error(e: Exception) -> int:
    """Print a short, user-friendly explanation of a fatal error."""
    error_str = str(e)

    if isinstance(e, ConfigError):
        console.print("⚙️ Configuration Error", style="bold red")
        console.print(f"   {error_str}", style="red")
        console.print("💡 Try:", style="cyan")
        console.print("   • Run with -h flag for the list of options", style="cyan")
        console.print("   • Check the config file passed with -c", style="cyan")
        return 2

    if isinstance(e, WatchError):
        console.print("👀 Watch Error", style="bold red")
        console.print(f"   {error_str}", style="red")
        console.print("💡 Try:", style="cyan")
        console.print("   • Check that the watch folder still exists", style="cyan")
        console.print("   • Raise the inotify watch limit (fs.inotify.max_user_watches)", style="cyan")
        return 1

    if isinstance(e, (UploadError, ArchiveError)):
        console.print("📤 Upload Error", style="bold red")
        console.print(f"   {error_str}", style="red")
        return 1

    if isinstance(e, (FileNotFoundError, NotADirectoryError, PermissionError)):
        console.print("📁 File/Path Error", style="bold red")
        console.print(f"   {error_str}", style="red")
        console.print("💡 Try:", style="cyan")
        console.print("   • Check the watch folder path and its permissions", style="cyan")
        return 1

    console.print("❌ Operation Failed", style="bold red")
    clean_error = error_str or type(e).__name__
    if len(clean_error) > 100:
        clean_error = clean_error[:97] + "..."
    console.print(f"   {clean_error}", style="red")
    console.print("💡 Try:", style="cyan")
    console.print("   • Run with -v for debug logs", style="cyan")
    return 1


class QuietdropHelpFormatter(argparse.HelpFormatter):

    def __init__(self, prog: str):
        super().__init__(prog, max_help_position=30, width=120)

    def format_help(self):
        help_text = f"""Usage:
  {self._prog} [flags]

Watch a folder and upload files to a webhook once they stop changing.

Flags:
WATCH:
  -w, -watch-folder string   folder to watch for file changes
  -r, -file-regex string     only files whose path matches this regex (default: .*\\.demo$)
  -t, -quiet-period dur      how long a file must stay untouched before upload (default: 5m)
                             alias: -upload-timeout

UPLOAD:
  -u, -webhook-url string    webhook URL the archives are posted to
  -s, -size-limit string     maximum archive size, e.g. 8MB or 25MiB, 0B disables (default: 10MB)
  -R, -retries int           retries on transport errors, 429 and 5xx (default: 3)
  -b, -backoff float         initial backoff seconds between retries (default: 0.5)
  -T, -request-timeout float seconds before an upload request times out (default: 60)

COMPRESSION:
  -f, -format string         archive format: {', '.join(ARCHIVE_FORMATS)} (default: zip)
  -z, -level int             compression level, deflate 0-9 or zstd 1-22

OUTPUT:
  -c, -config path           TOML config file (default: ~/.config/quietdrop/config.toml)
  -v, -verbose               debug logging
  -h, -help                  show this help message and exit

Examples:
  {self._prog} -w ./demos -u https://discord.com/api/webhooks/ID/TOKEN
  {self._prog} -w /srv/recordings -r '\\.wav$' -t 90s -f zst -z 19 -u https://example.com/hook
"""
        return help_text


def _duration_arg(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="quietdrop",
        description="Upload files to a webhook once they stop changing",
        formatter_class=QuietdropHelpFormatter,
        add_help=False,
    )
    p.add_argument("-h", "--help", "-help", action="store_const", const=True, help=argparse.SUPPRESS)
    p.add_argument("-w", "--watch-folder", "-watch-folder", dest="watch_folder", type=str, default=None)
    p.add_argument("-r", "--file-regex", "-file-regex", dest="file_regex", type=str, default=None)
    p.add_argument("-u", "--webhook-url", "-webhook-url", dest="webhook_url", type=str, default=None)
    p.add_argument(
        "-t", "--quiet-period", "-quiet-period", "--upload-timeout", "-upload-timeout",
        dest="quiet_period", type=_duration_arg, default=None,
    )
    p.add_argument("-s", "--size-limit", "-size-limit", dest="size_limit", type=str, default=None)
    p.add_argument("-f", "--format", "-format", dest="archive_format", choices=ARCHIVE_FORMATS, default=None)
    p.add_argument("-z", "--level", "-level", dest="compression_level", type=int, default=None)
    p.add_argument("-R", "--retries", "-retries", dest="retries", type=int, default=None)
    p.add_argument("-b", "--backoff", "-backoff", dest="backoff", type=float, default=None)
    p.add_argument("-T", "--request-timeout", "-request-timeout", dest="request_timeout", type=float, default=None)
    p.add_argument("-c", "--config", "-config", dest="config", type=Path, default=None)
    p.add_argument("-v", "--verbose", "-verbose", action="store_true")
    return p


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def run_watch(cfg: WatchConfig, stop: threading.Event) -> None:
    watcher = DirectoryWatcher(cfg)
    try:
        watcher.run(stop)
    finally:
        stats = watcher.uploader.stats
        console.print(
            f"✅ Uploaded {stats.files} files, {fmt_bytes(stats.bytes)} in {fmt_duration(stats.duration_s)}"
            f", retries={stats.retries}, failures={stats.failures}",
            style="green" if not stats.failures else "yellow",
        )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()

    if argv is None:
        argv = sys.argv[1:]

    try:
        args = parser.parse_args(argv)
    except SystemExit:
        # argparse already printed the error
        console.print("\n⚠️ Invalid Command Arguments", style="bold yellow")
        console.print("💡 Common issues:", style="cyan")
        console.print("   • Durations take a unit: -t 90s, -t 5m, -t 1h30m", style="cyan")
        console.print("   • Use quietdrop -h for help", style="cyan")
        return 2

    if args.help:
        print(QuietdropHelpFormatter("quietdrop").format_help())
        return 0

    if args.verbose:
        args.log_level = "DEBUG"

    try:
        cfg = resolve_config(args, args.config)
    except ConfigError as e:
        return handle_error(e)

    configure_logging(cfg.log_level)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop.set())

    try:
        run_watch(cfg, stop)
    except KeyboardInterrupt:
        console.print("\n🛑 Watch stopped by user", style="yellow")
        return 130
    except Exception as e:
        return handle_error(e)
    return 0
