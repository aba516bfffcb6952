"""Error taxonomy shared by the caches, the build index and the pipelines."""

from __future__ import annotations


class TriageError(Exception):
    """Base class for errors raised by triage components."""


class NotFoundError(TriageError):
    """An absent key, row or object. Callers are expected to branch on it."""

    def __init__(self, key: str) -> None:
        super().__init__(f"{key} not found")
        self.key = key


class InvalidDocumentError(TriageError):
    """A document exists but cannot be decoded."""

    def __init__(self, location: str, cause: Exception) -> None:
        super().__init__(f"unable to decode {location}: {cause}")
        self.location = location
        self.cause = cause


class DuplicateBuildError(TriageError):
    """The build index already holds a row for this build."""

    def __init__(self, job: str, build_id: str) -> None:
        super().__init__(f"build {job} @ {build_id} is already indexed")
        self.job = job
        self.build_id = build_id


class AggregationError(TriageError):
    """Internal invariant violation while classifying test outcomes."""
