"""Test name normalization across suites and runs."""

from __future__ import annotations

import re

_annotation_res = (
    re.compile(r"\[Suite:[^\]]*\]"),
    re.compile(r"\[Skipped:[^\]]*\]"),
)
_spaces_re = re.compile(r"[ \t]+")


def normalize(name: str) -> str:
    """Strip ``[Suite:...]`` and ``[Skipped:...]`` annotations and collapse spaces.

    Annotations are removed until none are left, so a removal that glues
    together a new annotation (``[Sui[Skipped:x]te:y]``) cannot survive and
    ``normalize`` stays idempotent.
    """
    previous = None
    while name != previous:
        previous = name
        for annotation_re in _annotation_res:
            name = annotation_re.sub("", name)
    name = _spaces_re.sub(" ", name)
    return name.strip()
