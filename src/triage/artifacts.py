"""Access to build artifacts through the raw file cache."""

from __future__ import annotations

import logging
import re
from typing import List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from triage.cache import FileCache
from triage.errors import InvalidDocumentError
from triage.junit import parse_results
from triage.models import Build, BuildFiles, FinishedRecord, StartedRecord, TestResult
from triage.storage import ObjectStore

logger = logging.getLogger(__name__)

STARTED_JSON = "started.json"
FINISHED_JSON = "finished.json"

junit_object_re = re.compile(r"/junit.*\.xml$")

RecordT = TypeVar("RecordT", bound=BaseModel)


def split_gcs_prefix(name: str, gcs_prefix: str) -> tuple[str, str]:
    """Split ``bucket/path/`` into the bucket and the object prefix."""
    if not gcs_prefix.endswith("/"):
        gcs_prefix += "/"
    bucket, sep, prefix = gcs_prefix.partition("/")
    if not bucket or not sep:
        raise ValueError(f"invalid gcs prefix for {name}: {gcs_prefix}")
    return bucket, prefix


class ArtifactClient:
    """Lists builds and reads their metadata and test reports."""

    def __init__(self, store: ObjectStore, file_cache: FileCache) -> None:
        self.store = store
        self.file_cache = file_cache

    def open(self, bucket: str, object_name: str):
        return self.file_cache.open(
            f"{bucket}/{object_name}",
            lambda: self.store.read(bucket, object_name),
        )

    def find_builds(self, name: str, gcs_prefix: str) -> List[Build]:
        """Builds of a group in the store's listing order (oldest first for numeric IDs)."""
        bucket, prefix = split_gcs_prefix(name, gcs_prefix)
        logger.debug("Searching for %s builds (gs://%s/%s)...", name, bucket, prefix)

        builds: List[Build] = []
        for directory in self.store.list(bucket, prefix).dirs:
            if not directory.startswith(prefix) or len(directory) <= len(prefix) + 1:
                raise ValueError(
                    f"unexpected object from gcs: object is expected to have prefix {prefix!r}, got {directory!r}"
                )
            builds.append(
                Build(
                    job=name,
                    build_id=directory[len(prefix):-1],
                    gcs_bucket=bucket,
                    gcs_prefix=directory,
                )
            )
        return builds

    def get_build_files(self, build: Build) -> BuildFiles:
        listing = self.store.list(build.gcs_bucket, build.gcs_prefix, recursive=True)
        return BuildFiles(build=build, files=frozenset(listing.files))

    def _read_record(self, build: Build, filename: str, model: Type[RecordT]) -> RecordT:
        object_name = build.gcs_prefix + filename
        with self.open(build.gcs_bucket, object_name) as f:
            data = f.read()
        try:
            return model.model_validate_json(data, strict=True)
        except ValidationError as exc:
            raise InvalidDocumentError(f"gs://{build.gcs_bucket}/{object_name}", exc) from exc

    def get_started(self, build: Build) -> StartedRecord:
        return self._read_record(build, STARTED_JSON, StartedRecord)

    def get_finished(self, build: Build) -> FinishedRecord:
        return self._read_record(build, FINISHED_JSON, FinishedRecord)

    def get_test_results(self, build_files: BuildFiles) -> List[TestResult]:
        """Parse every JUnit report of a build; malformed reports are skipped."""
        bucket = build_files.build.gcs_bucket
        results: List[TestResult] = []
        for object_name in sorted(build_files.files):
            if not junit_object_re.search(object_name):
                continue
            location = f"gs://{bucket}/{object_name}"
            with self.open(bucket, object_name) as f:
                try:
                    results.extend(parse_results(f, location))
                except InvalidDocumentError as exc:
                    logger.warning("Skipping malformed test report: %s", exc)
        return results
