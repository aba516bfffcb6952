"""Export of triage data: build list, failure stream and per-test summary."""

from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO, Tuple

from triage.artifacts import FINISHED_JSON, ArtifactClient
from triage.cache import ValueCache
from triage.db.index import BuildIndex
from triage.errors import AggregationError, InvalidDocumentError, NotFoundError
from triage.models import (
    Build,
    BuildData,
    BuildRow,
    BuildSummary,
    FailureRow,
    FinishedRecord,
    Outcome,
    TestStats,
    TestStatus,
)
from triage.testname import normalize
from triage.workers import Channel, WorkerPool, run_in_thread

logger = logging.getLogger(__name__)

SUCCESS_RESULT = "SUCCESS"
PROGRESS_INTERVAL = 30.0


def classify(stats: TestStats, result: str) -> Outcome:
    """Classify one test's outcome in one build.

    ======================  ============================  =========
    failures or errors      successes or build SUCCESS    outcome
    ======================  ============================  =========
    yes                     yes                           Flaked
    yes                     no                            Failed
    no                      successes                     Succeeded
    no                      no successes, skips           Skipped
    ======================  ============================  =========

    Raises:
        AggregationError: If the stats hold no outcome at all
    """
    broken = stats.failed > 0 or stats.error > 0
    if broken and (stats.succeed > 0 or result == SUCCESS_RESULT):
        return Outcome.FLAKED
    if broken:
        return Outcome.FAILED
    if stats.succeed > 0:
        return Outcome.SUCCEEDED
    if stats.skipped > 0:
        return Outcome.SKIPPED
    raise AggregationError(f"unexpected result: {stats!r}")


def failure_text(summary: str) -> str:
    """First blank-line separated section of a failure summary."""
    head, _, _ = summary.partition("\n\n")
    return head


def summarize_build(build: Build, data: BuildData) -> Tuple[BuildRow, List[FailureRow], BuildSummary]:
    path = build.path
    started = str(data.started.timestamp)
    summary = BuildSummary(
        job=build.job,
        build_id=build.build_id,
        started=data.started.timestamp,
        result=data.finished.result,
    )
    failures: List[FailureRow] = []

    tests_run = 0
    tests_failed = 0
    for result in data.test_results:
        stats = summary.test_stats.setdefault(normalize(result.test), TestStats())
        if result.status == TestStatus.SUCCESS:
            tests_run += 1
            stats.succeed += 1
        elif result.status == TestStatus.FAILURE:
            tests_run += 1
            tests_failed += 1
            stats.failed += 1
            failures.append(
                FailureRow(
                    started=started,
                    path=path,
                    name=result.test,
                    failure_text=failure_text(result.summary),
                )
            )
        elif result.status == TestStatus.SKIPPED:
            stats.skipped += 1
        elif result.status == TestStatus.ERROR:
            stats.error += 1

    row = BuildRow(
        path=path,
        started=started,
        elapsed=str(data.finished.timestamp - data.started.timestamp),
        tests_run=str(tests_run),
        tests_failed=str(tests_failed),
        job=build.job,
        number=build.build_id,
        result=data.finished.result,
    )
    return row, failures, summary


def add_to_summary(summary: Dict[str, Dict[str, Dict[str, List[str]]]], build: BuildSummary) -> None:
    for test, stats in build.test_stats.items():
        job_summary = summary.setdefault(test, {}).setdefault(
            build.job,
            {outcome.value: [] for outcome in (Outcome.SUCCEEDED, Outcome.FAILED, Outcome.FLAKED, Outcome.SKIPPED)},
        )
        job_summary[classify(stats, build.result).value].append(build.build_id)


def export_builds(builds: Channel[BuildRow], f: Optional[TextIO]) -> int:
    rows: List[BuildRow] = []
    last_report = time.monotonic()
    for row in builds:
        rows.append(row)
        if time.monotonic() - last_report >= PROGRESS_INTERVAL:
            logger.info("Processed %d builds", len(rows))
            last_report = time.monotonic()
    logger.info("Processed %d builds", len(rows))

    if f is None:
        return len(rows)

    rows.sort(key=lambda r: (r.path, r.job, r.number))
    json.dump([row.to_json() for row in rows], f)
    f.write("\n")
    return len(rows)


def export_failures(failures: Channel[FailureRow], f: Optional[TextIO]) -> int:
    count = 0
    for failure in failures:
        if f is not None:
            f.write(json.dumps(failure.to_json()))
            f.write("\n")
        count += 1
    return count


def export_summary(summaries: Channel[BuildSummary], f: Optional[TextIO]) -> int:
    summary: Dict[str, Dict[str, Dict[str, List[str]]]] = {}
    count = 0
    for build in summaries:
        add_to_summary(summary, build)
        count += 1

    if f is None:
        return count

    for jobs in summary.values():
        for buckets in jobs.values():
            for build_ids in buckets.values():
                build_ids.sort()

    json.dump(summary, f, sort_keys=True)
    f.write("\n")
    return count


@dataclass
class ExportOutputs:
    """Output files; a missing path disables that output."""

    builds: Optional[Path] = None
    tests: Optional[Path] = None
    summary: Optional[Path] = None


@dataclass
class ExportSummary:
    builds: int = 0
    exported: int = 0
    incomplete: int = 0
    failures: int = 0
    elapsed: float = 0.0


class ExportPipeline:
    """Analyzes indexed builds concurrently and streams results to the exporters."""

    def __init__(
        self,
        index: BuildIndex,
        artifacts: ArtifactClient,
        value_cache: ValueCache,
        *,
        num_workers: int = 10,
    ) -> None:
        self.index = index
        self.artifacts = artifacts
        self.value_cache = value_cache
        self.num_workers = num_workers

    def create_build_data(self, build: Build) -> Optional[BuildData]:
        """Compute the analysis of a build; None when the build has not finished."""
        logger.debug("Getting data for %s @ %s...", build.job, build.build_id)

        try:
            build_files = self.index.load_build_files(build)
        except NotFoundError:
            build_files = self.artifacts.get_build_files(build)
            if not build_files.has(FINISHED_JSON):
                logger.debug("%s @ %s does not have finished.json, skipping...", build.job, build.build_id)
                return None
            self.index.save_build_files(build_files)

        started = self.artifacts.get_started(build)

        try:
            finished = self.artifacts.get_finished(build)
        except InvalidDocumentError as exc:
            logger.warning("%s @ %s has corrupted finished.json: %s", build.job, build.build_id, exc)
            finished = FinishedRecord()

        return BuildData(
            started=started,
            finished=finished,
            test_results=self.artifacts.get_test_results(build_files),
        )

    def get_build_data(self, build: Build) -> Optional[BuildData]:
        try:
            return BuildData.model_validate(self.value_cache.load(build.key))
        except NotFoundError:
            pass

        data = self.create_build_data(build)
        if data is not None:
            self.value_cache.save(build.key, data)
        return data

    def run(self, builds: Sequence[Build], outputs: ExportOutputs) -> ExportSummary:
        """Export ``builds``; the first worker or exporter failure is raised.

        Output files are opened before any build is analyzed. An exporter
        failure stops the workers from taking further builds.
        """
        start = time.perf_counter()
        logger.info("Found %d builds", len(builds))

        with ExitStack() as stack:
            files = [
                stack.enter_context(open(path, "w", encoding="utf-8")) if path is not None else None
                for path in (outputs.builds, outputs.tests, outputs.summary)
            ]
            outcomes, failures = self._run(builds, *files)

        summary = ExportSummary(
            builds=len(builds),
            exported=sum(1 for exported in outcomes if exported),
            incomplete=sum(1 for exported in outcomes if not exported),
            failures=failures,
            elapsed=time.perf_counter() - start,
        )
        logger.info(
            "Exported %d builds (%d incomplete, %d failures) in %.2fs",
            summary.exported,
            summary.incomplete,
            summary.failures,
            summary.elapsed,
        )
        return summary

    def _run(
        self,
        builds: Sequence[Build],
        builds_file: Optional[TextIO],
        tests_file: Optional[TextIO],
        summary_file: Optional[TextIO],
    ) -> Tuple[List[bool], int]:
        build_rows: Channel[BuildRow] = Channel()
        failure_rows: Channel[FailureRow] = Channel()
        build_summaries: Channel[BuildSummary] = Channel()

        abort = threading.Event()
        counts: Dict[str, int] = {}

        def _exporter(name, target, channel, f):
            def _run() -> None:
                counts[name] = target(channel, f)

            return run_in_thread(_run, name=f"{name}-exporter", abort=abort)

        exporters = [
            _exporter("builds", export_builds, build_rows, builds_file),
            _exporter("failures", export_failures, failure_rows, tests_file),
            _exporter("summary", export_summary, build_summaries, summary_file),
        ]

        def _handle(build: Build) -> bool:
            logger.debug("Analyzing %s @ %s...", build.job, build.build_id)
            data = self.get_build_data(build)
            if data is None:
                return False
            row, failures, summary = summarize_build(build, data)
            for failure in failures:
                failure_rows.send(failure)
            build_rows.send(row)
            build_summaries.send(summary)
            return True

        pool: WorkerPool[Build, bool] = WorkerPool(self.num_workers, name="export")
        try:
            outcomes = pool.run(builds, _handle, abort=abort)
        finally:
            # Exporters finish once every channel is closed; a worker
            # failure takes precedence over exporter failures.
            build_rows.close()
            failure_rows.close()
            build_summaries.close()
            exporter_errors = [exporter.join() for exporter in exporters]

        for error in exporter_errors:
            if error is not None:
                raise error

        return outcomes, counts.get("failures", 0)
