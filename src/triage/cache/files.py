"""Local cache of raw objects downloaded from the object store."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import closing
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from triage.config import settings

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".part"


def write_atomically(path: Path, write: Callable[[BinaryIO], None]) -> None:
    """Write ``path`` through a temporary file in the same directory.

    The temporary file is renamed over ``path`` only after ``write`` returned
    and the handle is closed, so ``path`` is either absent or complete. On
    failure the temporary file is removed and the error propagates.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=TMP_SUFFIX)
    try:
        with os.fdopen(fd, "wb") as tmp:
            write(tmp)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.remove(tmp_name)
        except OSError as cleanup_error:  # pragma: no cover - best effort cleanup
            logger.warning("Failed to remove temporary file %s: %s", tmp_name, cleanup_error)
        raise


class FileCache:
    """Maps object keys to local files, fetching each key at most once.

    Concurrent callers racing on the same key may both fetch it; each writes
    its own temporary file and the last rename wins with identical content.
    """

    def __init__(self, root: Optional[Path | str] = None) -> None:
        self.root = Path(root) if root is not None else settings.cache_dir

    def path_for(self, key: str) -> Path:
        return self.root / key

    def open(self, key: str, fetch: Callable[[], BinaryIO]) -> BinaryIO:
        """Return a readable stream for ``key``, calling ``fetch`` on a cache miss."""
        path = self.path_for(key)
        try:
            stream = open(path, "rb")
        except FileNotFoundError:
            pass
        else:
            logger.debug("Found %s in cache", key)
            return stream

        logger.debug("Downloading %s...", key)

        def _copy(tmp: BinaryIO) -> None:
            with closing(fetch()) as source:
                shutil.copyfileobj(source, tmp)

        write_atomically(path, _copy)
        return open(path, "rb")

    def delete_prefix(self, prefix: str) -> None:
        """Remove every cached object under ``prefix`` (which must end with ``/``)."""
        if not prefix.endswith("/"):
            raise ValueError(f"cannot delete {prefix!r}: prefix is expected to end with /")
        prefix = prefix[:-1]
        if not prefix:
            raise ValueError(f"cannot delete {prefix!r}: prefix cannot be empty")

        path = self.path_for(prefix)
        logger.debug("Deleting %s...", path)
        if path.exists():
            shutil.rmtree(path)
