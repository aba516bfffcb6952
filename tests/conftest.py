"""Pytest configuration and fixtures for ci-triage tests."""

import io
import json
import threading
from collections import Counter
from typing import Dict, List, Optional, Tuple

import pytest

from triage.artifacts import ArtifactClient
from triage.cache import FileCache, ValueCache
from triage.errors import DuplicateBuildError, NotFoundError
from triage.models import Build, BuildFiles
from triage.storage import Listing


class FakeObjectStore:
    """In-memory object store with the ObjectStore interface."""

    def __init__(self):
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.reads: Counter = Counter()
        self.lists: List[Tuple[str, str, bool]] = []
        self._lock = threading.Lock()

    def put(self, bucket: str, name: str, data) -> None:
        if isinstance(data, (dict, list)):
            data = json.dumps(data)
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.objects[(bucket, name)] = data

    def list(self, bucket: str, prefix: str, recursive: bool = False) -> Listing:
        with self._lock:
            self.lists.append((bucket, prefix, recursive))
        listing = Listing()
        dirs = set()
        for obj_bucket, name in sorted(self.objects):
            if obj_bucket != bucket or not name.startswith(prefix):
                continue
            rest = name[len(prefix):]
            if not recursive and "/" in rest:
                dirs.add(prefix + rest.split("/", 1)[0] + "/")
            else:
                listing.files.append(name)
        listing.dirs = sorted(dirs)
        return listing

    def read(self, bucket: str, name: str):
        with self._lock:
            self.reads[(bucket, name)] += 1
        try:
            return io.BytesIO(self.objects[(bucket, name)])
        except KeyError:
            raise NotFoundError(f"gs://{bucket}/{name}") from None


class InMemoryBuildIndex:
    """Build index with the BuildIndex interface, kept in dictionaries."""

    def __init__(self):
        self.builds: Dict[Tuple[str, str], Tuple[Build, int]] = {}
        self.build_files: Dict[Tuple[str, str], BuildFiles] = {}
        self._lock = threading.Lock()

    def initialize(self) -> None:
        pass

    def load_build(self, job: str, build_id: str):
        try:
            return self.builds[(job, build_id)]
        except KeyError:
            raise NotFoundError(f"build {job} @ {build_id}") from None

    def save_build(self, build: Build, started_at: int) -> None:
        with self._lock:
            key = (build.job, build.build_id)
            if key in self.builds:
                raise DuplicateBuildError(build.job, build.build_id)
            self.builds[key] = (build, started_at)

    def find_builds(self, started_after: int) -> List[Build]:
        return sorted(
            (b for b, started in self.builds.values() if started >= started_after),
            key=lambda b: (b.job, b.build_id),
        )

    def find_old_builds(self, started_before: int) -> List[Build]:
        return sorted(
            (b for b, started in self.builds.values() if started < started_before),
            key=lambda b: (b.job, b.build_id),
        )

    def delete_build(self, job: str, build_id: str) -> None:
        self.builds.pop((job, build_id), None)

    def load_build_files(self, build: Build) -> BuildFiles:
        try:
            return self.build_files[(build.job, build.build_id)]
        except KeyError:
            raise NotFoundError(f"build files for {build.job} @ {build.build_id}") from None

    def save_build_files(self, build_files: BuildFiles) -> None:
        with self._lock:
            self.build_files.setdefault((build_files.build.job, build_files.build.build_id), build_files)

    def delete_build_files(self, build: Build) -> None:
        self.build_files.pop((build.job, build.build_id), None)


JUNIT_MIXED = """<?xml version="1.0" encoding="UTF-8"?>
<testsuites>
  <testsuite name="e2e" tests="2" failures="1">
    <testcase name="[sig-network] pods should talk [Suite:openshift/conformance]" time="1.0"/>
    <testcase name="[sig-storage] volumes mount [Suite:openshift/conformance]" time="2.0">
      <failure message="timed out">timed out waiting for volume

stack trace line 1</failure>
    </testcase>
  </testsuite>
</testsuites>
"""


def add_build(
    store: FakeObjectStore,
    bucket: str,
    prefix: str,
    build_id: str,
    *,
    started: Optional[int] = None,
    finished: Optional[dict] = None,
    junit: Optional[Dict[str, str]] = None,
) -> str:
    """Add a build directory to the fake store and return its prefix."""
    build_prefix = f"{prefix}{build_id}/"
    if started is not None:
        store.put(bucket, build_prefix + "started.json", {"timestamp": started})
    if finished is not None:
        store.put(bucket, build_prefix + "finished.json", finished)
    for name, body in (junit or {}).items():
        store.put(bucket, build_prefix + name, body)
    if started is None and finished is None and not junit:
        store.put(bucket, build_prefix + "build-log.txt", "log")
    return build_prefix


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def index():
    return InMemoryBuildIndex()


@pytest.fixture
def file_cache(tmp_path):
    return FileCache(tmp_path / "cache")


@pytest.fixture
def value_cache(tmp_path):
    return ValueCache(tmp_path / "cache" / "builds")


@pytest.fixture
def artifacts(store, file_cache):
    return ArtifactClient(store, file_cache)
