"""Log reader with a durable bookmark.

Lines are handed out in batches from the bookmarked position. The position
of the last batch is only committed to the bookmark when ``advance()`` is
called, so a crash before acknowledgment re-reads the batch.
"""

import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)


class Bookmark:
    """Where reading stopped in one log file: file name, inode and byte offset.

    A bookmark written for a different log file is ignored, so pointing the
    reader at a new file starts it from the top.
    """

    def __init__(self, path: str, log_file: str = ""):
        self._path = path
        self.log_file = log_file
        self.offset: int = 0
        self.inode: int = 0
        self._restore()

    def _restore(self) -> None:
        if not os.path.exists(self._path):
            return
        try:
            with open(self._path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Unreadable bookmark %s, starting over: %s", self._path, e)
            return
        if data.get("file", self.log_file) != self.log_file:
            logger.info("Bookmark belongs to %s, reading %s from the start",
                        data["file"], self.log_file)
            return
        self.offset = data.get("offset", 0)
        self.inode = data.get("inode", 0)

    def resume_offset(self, size: int, inode: int) -> int:
        """Offset to continue from, or 0 when the file was rotated or truncated."""
        if inode != self.inode or size < self.offset:
            if self.offset:
                logger.info("%s rotated or truncated, reading from the start",
                            self.log_file or "log file")
            self.offset = 0
            self.inode = inode
        return self.offset

    def commit(self, offset: int, inode: int) -> None:
        self.offset = offset
        self.inode = inode
        self._write()

    def _write(self) -> None:
        directory = os.path.dirname(self._path) or "."
        os.makedirs(directory, exist_ok=True)
        state = {"file": self.log_file, "offset": self.offset, "inode": self.inode}
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".bookmark-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(state, f)
            os.replace(tmp, self._path)
        except Exception:
            os.unlink(tmp)
            raise


class LogReader:
    def __init__(self, path: str, bookmark: Bookmark, batch_limit: int = 1024):
        self._path = path
        self._bookmark = bookmark
        self._batch_limit = batch_limit
        self._pending: tuple[int, int] | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def read_batch(self) -> list[str]:
        """Return up to batch_limit complete lines after the bookmark (or the previous batch)."""
        if not os.path.exists(self._path):
            return []

        stat = os.stat(self._path)
        if self._pending is None:
            offset = self._bookmark.resume_offset(stat.st_size, stat.st_ino)
        else:
            offset = self._pending[0]

        if stat.st_size <= offset:
            return []

        lines: list[str] = []
        with open(self._path, "rb") as f:
            f.seek(offset)
            while len(lines) < self._batch_limit:
                raw = f.readline()
                if not raw or not raw.endswith(b"\n"):
                    # EOF or partial line still being written
                    break
                offset += len(raw)
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if line:
                    lines.append(line)

        self._pending = (offset, stat.st_ino)
        return lines

    def advance(self) -> None:
        """Commit the position reached by the batches read so far."""
        if self._pending is None:
            return
        self._bookmark.commit(*self._pending)
        self._pending = None
        logger.debug("Bookmark advanced to offset %d", self._bookmark.offset)
