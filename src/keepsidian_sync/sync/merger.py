"""Line merge and diff utilities for note bodies.

Uses the ``merge3`` library (the algorithm used by Bazaar/Breezy) and
``difflib`` from the standard library.

The two bodies have no recorded common ancestor, so the longest common
line subsequence of the two bodies stands in as the merge base:

* When one body is a line-wise subsequence of the other, the other body
  only inserted lines and the merge is clean.  The result is the longer
  body, which contains every line of both in order.
* Otherwise both sides changed lines and the merge is a conflict.  The
  merged text then carries Git-style markers
  (``<<<<<<< existing`` / ``=======`` / ``>>>>>>> incoming``) so it can
  be shown in logs; callers never write it over the existing file.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass

from merge3 import Merge3

START_MARKER = "<<<<<<< existing"
MID_MARKER = "======="
END_MARKER = ">>>>>>> incoming"


@dataclass(frozen=True)
class MergeResult:
    """Result of ``merge_bodies``."""

    merged_body: str
    has_conflict: bool


def _split_lines(body: str) -> list[str]:
    # an empty body has no lines, so it is a subsequence of any body
    return body.split("\n") if body else []


def _common_lines(a: list[str], b: list[str]) -> list[str]:
    """Longest common subsequence of two line lists."""
    # lengths[i][j] = LCS length of a[i:] and b[j:]
    lengths = [[0] * (len(b) + 1) for _ in range(len(a) + 1)]
    for i in range(len(a) - 1, -1, -1):
        for j in range(len(b) - 1, -1, -1):
            if a[i] == b[j]:
                lengths[i][j] = lengths[i + 1][j + 1] + 1
            else:
                lengths[i][j] = max(lengths[i + 1][j], lengths[i][j + 1])

    common: list[str] = []
    i = j = 0
    while i < len(a) and j < len(b):
        if a[i] == b[j]:
            common.append(a[i])
            i += 1
            j += 1
        elif lengths[i + 1][j] >= lengths[i][j + 1]:
            i += 1
        else:
            j += 1
    return common


def merge_bodies(existing_body: str, incoming_body: str) -> MergeResult:
    """Merge two note bodies line by line.

    Args:
        existing_body: Body of the local file.
        incoming_body: Body of the incoming note.

    Returns:
        A ``MergeResult``.  ``has_conflict`` is ``False`` only when one
        body is a line-wise subsequence of the other.
    """
    if existing_body == incoming_body:
        return MergeResult(existing_body, False)

    existing_lines = _split_lines(existing_body)
    incoming_lines = _split_lines(incoming_body)
    base_lines = _common_lines(existing_lines, incoming_lines)

    if base_lines == existing_lines:
        return MergeResult(incoming_body, False)
    if base_lines == incoming_lines:
        return MergeResult(existing_body, False)

    # merge3 works on newline-terminated lines
    m3 = Merge3(
        [line + "\n" for line in base_lines],
        [line + "\n" for line in existing_lines],
        [line + "\n" for line in incoming_lines],
    )
    merged_lines = list(
        m3.merge_lines(
            start_marker=START_MARKER,
            mid_marker=MID_MARKER,
            end_marker=END_MARKER,
        )
    )
    merged = "".join(merged_lines)
    if merged.endswith("\n"):
        merged = merged[:-1]

    return MergeResult(merged, True)


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "existing",
    label_new: str = "incoming",
) -> str:
    """Generate a unified diff between two strings.

    Returns:
        A unified diff string.  Empty string if the contents are identical.
    """
    diff_lines = difflib.unified_diff(
        old_content.splitlines(True),
        new_content.splitlines(True),
        fromfile=label_old,
        tofile=label_new,
    )
    return "".join(diff_lines)
