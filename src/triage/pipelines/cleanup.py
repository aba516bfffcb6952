"""Removal of builds that fell out of the age window."""

from __future__ import annotations

import logging

from triage.cache import FileCache, ValueCache
from triage.db.index import BuildIndex

logger = logging.getLogger(__name__)


def cleanup(index: BuildIndex, value_cache: ValueCache, file_cache: FileCache, created_after: int) -> int:
    """Delete every build started before ``created_after`` and everything cached for it.

    Index rows go last so an interrupted cleanup is picked up again by the
    next run.
    """
    builds = index.find_old_builds(created_after)
    logger.info("Found %d builds to delete", len(builds))

    for build in builds:
        value_cache.delete(build.key)
        file_cache.delete_prefix(f"{build.gcs_bucket}/{build.gcs_prefix}")
        index.delete_build_files(build)
        index.delete_build(build.job, build.build_id)

    return len(builds)
