"""Tests for test name normalization."""

import pytest

from triage.testname import normalize


def test_normalize_strips_annotations_and_spaces():
    assert normalize("[Suite:foo] some  test [Skipped:bar]") == "some test"


def test_normalize_keeps_other_brackets():
    name = "[sig-network] [Feature:Networking] pods should talk [Suite:openshift/conformance/parallel]"
    assert normalize(name) == "[sig-network] [Feature:Networking] pods should talk"


def test_normalize_collapses_tabs():
    assert normalize("a\t\tb  \t c") == "a b c"


def test_normalize_matches_through_first_closing_bracket():
    assert normalize("x [Suite:a] y [Suite:b] z") == "x y z"


@pytest.mark.parametrize(
    "name",
    [
        "",
        "   ",
        "[Suite:a]",
        "[Sui[Skipped:x]te:y] test",
        "[Skip[Suite:a]ped:b] test",
        "test [Suite:unterminated",
        "  leading and trailing  ",
        "multi\nline  [Suite:x]\tname",
    ],
)
def test_normalize_is_idempotent(name):
    once = normalize(name)
    assert normalize(once) == once


def test_normalize_removes_annotations_exposed_by_removal():
    assert normalize("[Sui[Skipped:x]te:y] test") == "test"
