"""Compressed JSON cache for computed build analyses."""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

from triage.cache.files import TMP_SUFFIX, write_atomically
from triage.config import settings
from triage.errors import NotFoundError

logger = logging.getLogger(__name__)


class ValueCache:
    """Stores JSON-serializable values as gzip files keyed by slash-separated keys."""

    def __init__(self, root: Optional[Path | str] = None) -> None:
        self.root = Path(root) if root is not None else settings.value_cache_dir

    def path_for(self, key: str) -> Path:
        return self.root / key

    def save(self, key: str, value: Any) -> None:
        logger.debug("Saving %s in cache...", key)

        if key.endswith(TMP_SUFFIX):
            raise ValueError(f"key should not end with {TMP_SUFFIX!r}: {key}")

        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        payload = json.dumps(value).encode("utf-8")

        def _write(f) -> None:
            with gzip.GzipFile(fileobj=f, mode="wb") as gz:
                gz.write(payload)

        write_atomically(self.path_for(key), _write)

    def load(self, key: str) -> Any:
        path = self.path_for(key)
        try:
            f = open(path, "rb")
        except FileNotFoundError:
            raise NotFoundError(key) from None

        with f:
            logger.debug("Found %s in cache", key)
            try:
                with gzip.GzipFile(fileobj=f, mode="rb") as gz:
                    return json.load(gz)
            except (OSError, EOFError, ValueError) as exc:
                raise ValueError(f"unable to read {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        logger.debug("Deleting %s...", path)
        path.unlink(missing_ok=True)
