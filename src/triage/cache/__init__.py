"""Tiered local caches: raw object files and computed values."""

from triage.cache.files import TMP_SUFFIX, FileCache, write_atomically
from triage.cache.values import ValueCache

__all__ = [
    "TMP_SUFFIX",
    "FileCache",
    "ValueCache",
    "write_atomically",
]
