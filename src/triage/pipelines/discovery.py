"""Discovery of new builds from configured build groups."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from triage.artifacts import ArtifactClient
from triage.config import TestGroup
from triage.db.index import BuildIndex
from triage.errors import DuplicateBuildError, InvalidDocumentError, NotFoundError
from triage.models import Build
from triage.workers import WorkerPool

logger = logging.getLogger(__name__)


@dataclass
class GroupDiscovery:
    """Outcome of walking one build group."""

    name: str
    listed: int = 0
    visited: int = 0
    discovered: int = 0
    skipped: int = 0
    stopped_early: bool = False


@dataclass
class DiscoverySummary:
    groups: List[GroupDiscovery]
    elapsed: float

    @property
    def discovered(self) -> int:
        return sum(group.discovered for group in self.groups)

    @property
    def skipped(self) -> int:
        return sum(group.skipped for group in self.groups)


class DiscoveryPipeline:
    """Indexes builds that are not yet known, newest first within each group."""

    def __init__(
        self,
        index: BuildIndex,
        artifacts: ArtifactClient,
        *,
        num_workers: int = 10,
        created_after: Optional[int] = None,
    ) -> None:
        self.index = index
        self.artifacts = artifacts
        self.num_workers = num_workers
        self.created_after = created_after

    def run(self, test_groups: Sequence[TestGroup]) -> DiscoverySummary:
        start = time.perf_counter()
        pool: WorkerPool[TestGroup, GroupDiscovery] = WorkerPool(self.num_workers, name="discover")
        groups = pool.run(test_groups, self.discover_group)
        summary = DiscoverySummary(groups=groups, elapsed=time.perf_counter() - start)
        logger.info(
            "Discovered %d new builds in %d groups (%d skipped) in %.2fs",
            summary.discovered,
            len(groups),
            summary.skipped,
            summary.elapsed,
        )
        return summary

    def discover_group(self, group: TestGroup) -> GroupDiscovery:
        try:
            builds = self.artifacts.find_builds(group.name, group.gcs_prefix)
        except Exception as exc:
            logger.error("Unable to find builds for %s: %s", group.name, exc)
            raise

        outcome = GroupDiscovery(name=group.name, listed=len(builds))

        # The store lists build directories oldest first; the age cutoff
        # below relies on walking newest first.
        for build in reversed(builds):
            outcome.visited += 1
            started_at = self._started_at(build, outcome)
            if started_at is None:
                continue

            if self.created_after is not None and started_at < self.created_after:
                logger.debug("%s started before the age limit, stopping", build)
                outcome.stopped_early = True
                break

        return outcome

    def _started_at(self, build: Build, outcome: GroupDiscovery) -> Optional[int]:
        """Start time of an indexed build, indexing it first when it is new."""
        try:
            _, started_at = self.index.load_build(build.job, build.build_id)
            return started_at
        except NotFoundError:
            pass

        logger.debug("Discovered new build: %s @ %s", build.job, build.build_id)

        try:
            started = self.artifacts.get_started(build)
        except NotFoundError:
            logger.debug("%s @ %s does not have started.json, skipping...", build.job, build.build_id)
            outcome.skipped += 1
            return None
        except InvalidDocumentError as exc:
            logger.info("%s @ %s has invalid started.json: %s", build.job, build.build_id, exc)
            outcome.skipped += 1
            return None

        try:
            self.index.save_build(build, started.timestamp)
        except DuplicateBuildError:
            # Another worker indexed the same build first.
            _, started_at = self.index.load_build(build.job, build.build_id)
            return started_at

        outcome.discovered += 1
        return started.timestamp
