"""Pass report formatting functions.

Provides human-readable and machine-readable output for a finished pass:

- ``format_pass_report`` -- summary plus per-action sections.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import Resolution

if TYPE_CHECKING:
    from .models import PassContext

_SECTIONS = [
    (Resolution.CREATE.value, "Created"),
    (Resolution.OVERWRITE.value, "Overwritten"),
    (Resolution.MERGE.value, "Merged"),
    (Resolution.FORK.value, "Conflict copies"),
    ("push", "Pushed"),
]


def _counts(context: PassContext) -> dict[str, int]:
    return {
        "total": context.processed,
        "created": len(context.with_action(Resolution.CREATE.value)),
        "overwritten": len(context.with_action(Resolution.OVERWRITE.value)),
        "merged": len(context.with_action(Resolution.MERGE.value)),
        "forked": len(context.with_action(Resolution.FORK.value)),
        "skipped": len(context.with_action(Resolution.SKIP.value)),
        "pushed": len(context.with_action("push")),
        "failed": len(context.failures),
    }


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_pass_report(context: PassContext) -> str:
    """Format a finished pass as human-readable text.

    Sections are only included when they contain at least one note.
    Skipped notes are summarised by count only.

    Args:
        context: The finished pass.

    Returns:
        Multi-line formatted string.
    """
    counts = _counts(context)
    lines: list[str] = []

    lines.append(f"{context.mode.capitalize()} report")
    lines.append(f"Started: {context.started_at.isoformat()}")
    if context.completed_at:
        lines.append(f"Completed: {context.completed_at.isoformat()}")
    lines.append("")

    if context.mode == "push":
        summary = f"{counts['pushed']} pushed"
    else:
        summary = (
            f"{counts['created']} created, "
            f"{counts['overwritten']} overwritten, "
            f"{counts['merged']} merged, "
            f"{counts['forked']} conflicts"
        )
    lines.append(
        f"Processed {counts['total']} notes: {summary}, "
        f"{counts['failed']} errors"
    )
    lines.append("")

    for action, heading in _SECTIONS:
        outcomes = context.with_action(action)
        if not outcomes:
            continue
        lines.append(f"{heading}:")
        for o in outcomes:
            suffix = f" ({o.detail})" if o.detail else ""
            lines.append(f"  {o.path}{suffix}")
        lines.append("")

    if context.failures:
        lines.append("Errors:")
        for o in context.failures:
            lines.append(f"  {o.path}: {o.detail}")
        lines.append("")

    if counts["skipped"] > 0:
        lines.append(f"Skipped: {counts['skipped']} notes")
        lines.append("")

    if context.error:
        lines.append(f"Pass aborted: {context.error}")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(context: PassContext) -> dict:
    """Convert a finished pass to a structured dict for JSON serialisation.

    Args:
        context: The finished pass.

    Returns:
        Dict with timing, counts, and per-note details.
    """
    results_list = []
    for o in context.outcomes:
        entry: dict = {
            "path": o.path,
            "title": o.title,
            "action": o.action,
            "success": o.success,
        }
        if o.detail:
            entry["detail"] = o.detail
        results_list.append(entry)

    return {
        "mode": context.mode,
        "started_at": context.started_at.isoformat(),
        "completed_at": (
            context.completed_at.isoformat()
            if context.completed_at
            else None
        ),
        "error": context.error,
        "counts": _counts(context),
        "results": results_list,
    }
