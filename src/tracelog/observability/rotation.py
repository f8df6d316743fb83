"""
tracelog.observability.rotation

File destination with size-based rollover for the log sink.

Responsibilities:
- Roll the active log file over once it exceeds `max_size` megabytes.
- Name backups with a timestamp and gzip them.
- Prune backups beyond `max_backups` or older than `max_age` days.
"""

from __future__ import annotations

import gzip
import os
import shutil
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

MEGABYTE = 1024 * 1024
DEFAULT_MAX_SIZE_MB = 100
BACKUP_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S.%f"


class CompressingRotatingFileHandler(RotatingFileHandler):
    """
    `RotatingFileHandler` with timestamped, compressed backups.

    Backups are named `<stem>-<UTC timestamp><suffix>[.gz]` next to the active
    file. Zero means "no limit" for `max_backups` and `max_age`; a non-positive
    `max_size` uses the 100 MB default.
    """

    def __init__(
        self,
        filename: str | os.PathLike[str],
        *,
        max_size: int = DEFAULT_MAX_SIZE_MB,
        max_backups: int = 0,
        max_age: int = 0,
        compress: bool = True,
        encoding: str = "utf-8",
    ) -> None:
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        max_bytes = (max_size if max_size > 0 else DEFAULT_MAX_SIZE_MB) * MEGABYTE
        # backupCount is unused by the overridden doRollover; rollover only needs maxBytes > 0.
        super().__init__(path, maxBytes=max_bytes, backupCount=0, encoding=encoding, delay=True)
        self.max_backups = max(max_backups, 0)
        self.max_age = max(max_age, 0)
        self.compress = compress
        if compress:
            self.namer = _gzip_name
            self.rotator = _gzip_rotate

    def doRollover(self) -> None:  # noqa: N802
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore[assignment]
        if os.path.exists(self.baseFilename):
            self.rotate(self.baseFilename, self.rotation_filename(self.backup_name()))
        self.prune()
        if not self.delay:
            self.stream = self._open()

    def backup_name(self, now: datetime | None = None) -> str:
        now = now or datetime.now(timezone.utc)
        base = Path(self.baseFilename)
        stamp = now.strftime(BACKUP_TIME_FORMAT)[:-3]
        return str(base.with_name(f"{base.stem}-{stamp}{base.suffix}"))

    def backups(self) -> list[Path]:
        """Existing backups of this file, newest first."""
        directory = Path(self.baseFilename).parent
        found = [(stamp, p) for p in directory.iterdir() if (stamp := self.backup_time(p))]
        return [p for _, p in sorted(found, key=lambda item: item[0], reverse=True)]

    def backup_time(self, path: Path) -> datetime | None:
        """Timestamp encoded in a backup name, or None if `path` is not a backup of this file."""
        base = Path(self.baseFilename)
        name = path.name
        if name.endswith(".gz"):
            name = name[: -len(".gz")]
        prefix = f"{base.stem}-"
        if not (name.startswith(prefix) and name.endswith(base.suffix)) or not path.is_file():
            return None
        stamp = name[len(prefix) : len(name) - len(base.suffix)]
        try:
            return datetime.strptime(stamp, BACKUP_TIME_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            # Sibling such as app-errors.log.
            return None

    def prune(self) -> list[Path]:
        backups = self.backups()
        doomed: list[Path] = []
        if self.max_backups:
            doomed += backups[self.max_backups :]
            backups = backups[: self.max_backups]
        if self.max_age:
            cutoff = time.time() - self.max_age * 86400
            doomed += [p for p in backups if p.stat().st_mtime < cutoff]
        for p in doomed:
            p.unlink(missing_ok=True)
        return doomed


def _gzip_name(default_name: str) -> str:
    return f"{default_name}.gz"


def _gzip_rotate(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


# --- Module Notes -----------------------------------------------------------
# `namer`/`rotator` are the standard library hooks for customizing rollover;
# size checks and stream management stay with RotatingFileHandler.
