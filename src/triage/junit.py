"""JUnit XML report parsing."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import BinaryIO, Iterator, List, Optional

from triage.errors import InvalidDocumentError
from triage.models import TestResult, TestStatus

logger = logging.getLogger(__name__)

MAX_SUMMARY = 1 << 20  # 1 MiB

_SUITE_TAGS = {"testsuites", "testsuite"}


def _text(elem: Optional[ET.Element]) -> str:
    if elem is None or elem.text is None:
        return ""
    return elem.text


def _message(elem: Optional[ET.Element]) -> str:
    if elem is None:
        return ""
    return elem.get("message", "")


def _iter_cases(elem: ET.Element) -> Iterator[ET.Element]:
    for child in elem:
        if child.tag == "testcase":
            yield child
        elif child.tag in _SUITE_TAGS:
            yield from _iter_cases(child)


def _summary(case: ET.Element) -> str:
    failure = case.find("failure")
    error = case.find("error")
    skipped = case.find("skipped")
    candidates = (
        _text(failure),
        _message(failure),
        _text(error),
        _message(error),
        _message(skipped),
        _text(case.find("system-err")),
        _text(case.find("system-out")),
    )
    summary = next((value for value in candidates if value), "")
    return summary[:MAX_SUMMARY]


def _status(case: ET.Element) -> TestStatus:
    if case.find("failure") is not None:
        return TestStatus.FAILURE
    if case.find("error") is not None:
        return TestStatus.ERROR
    if case.find("skipped") is not None:
        return TestStatus.SKIPPED
    return TestStatus.SUCCESS


def analyze_case(case: ET.Element) -> TestResult:
    summary = _summary(case)
    system_out = case.find("system-out")
    output = _text(system_out) if system_out is not None else summary
    return TestResult(
        test=case.get("name", ""),
        status=_status(case),
        output=output,
        summary=summary,
    )


def parse_results(stream: BinaryIO, location: str = "<stream>") -> List[TestResult]:
    """Parse a JUnit document into one TestResult per test case.

    Raises:
        InvalidDocumentError: If the document is not well-formed or is not a test report
    """
    try:
        root = ET.parse(stream).getroot()
    except ET.ParseError as exc:
        raise InvalidDocumentError(location, exc) from exc

    if root.tag not in _SUITE_TAGS:
        raise InvalidDocumentError(location, ValueError(f"unexpected root element <{root.tag}>"))

    return [analyze_case(case) for case in _iter_cases(root)]
