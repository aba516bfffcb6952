"""Build, artifact and aggregation models.

Documents that are read from or written to storage (started/finished records,
test results, the cached build analysis) are pydantic models; the per-run
aggregation records passed between export workers and exporters are plain
dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List

from pydantic import BaseModel, ConfigDict, Field


class Build(BaseModel):
    """One execution of a CI job and the location of its artifacts."""

    model_config = ConfigDict(frozen=True)

    job: str
    build_id: str
    gcs_bucket: str
    gcs_prefix: str

    @property
    def key(self) -> str:
        return f"{self.job}/{self.build_id}"

    @property
    def path(self) -> str:
        """``bucket/prefix`` without the trailing slash, as shown in exports."""
        return f"{self.gcs_bucket}/{self.gcs_prefix.rstrip('/')}"

    def __str__(self) -> str:
        return f"{self.job} @ {self.build_id} (gs://{self.gcs_bucket}/{self.gcs_prefix})"


class BuildFiles(BaseModel):
    """Point-in-time snapshot of the objects stored under a build prefix."""

    build: Build
    files: FrozenSet[str] = Field(default_factory=frozenset)

    def has(self, filename: str) -> bool:
        return self.build.gcs_prefix + filename in self.files


class StartedRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timestamp: int = 0


class FinishedRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timestamp: int = 0
    result: str = ""


class TestStatus(str, Enum):
    """Outcome of a single test case."""

    __test__ = False

    SKIPPED = "Skipped"
    ERROR = "Error"
    FAILURE = "Failure"
    SUCCESS = "Success"


class TestResult(BaseModel):
    __test__ = False

    test: str
    status: TestStatus
    output: str = ""
    summary: str = ""


class BuildData(BaseModel):
    """Cached analysis of one build."""

    started: StartedRecord
    finished: FinishedRecord
    test_results: List[TestResult] = Field(default_factory=list)


class Outcome(str, Enum):
    """Classification of one test in one build."""

    FLAKED = "flaked"
    FAILED = "failed"
    SUCCEEDED = "succeed"
    SKIPPED = "skipped"


@dataclass
class TestStats:
    __test__ = False

    succeed: int = 0
    failed: int = 0
    skipped: int = 0
    error: int = 0


@dataclass
class BuildSummary:
    job: str
    build_id: str
    started: int
    result: str
    test_stats: Dict[str, TestStats] = field(default_factory=dict)


@dataclass
class BuildRow:
    """Row of the flat build list; numbers are rendered as decimal strings."""

    path: str
    started: str
    elapsed: str
    tests_run: str
    tests_failed: str
    job: str
    number: str
    result: str

    def to_json(self) -> Dict[str, str]:
        return {
            "path": self.path,
            "started": self.started,
            "elapsed": self.elapsed,
            "tests_run": self.tests_run,
            "tests_failed": self.tests_failed,
            "job": self.job,
            "number": self.number,
            "result": self.result,
        }


@dataclass
class FailureRow:
    started: str
    path: str
    name: str
    failure_text: str

    def to_json(self) -> Dict[str, str]:
        return {
            "started": self.started,
            "build": self.path,
            "name": self.name,
            "failure_text": self.failure_text,
        }
