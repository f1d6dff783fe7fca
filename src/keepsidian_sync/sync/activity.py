"""Per-day sync activity log kept inside the save location.

Every pass appends one line per note outcome to
``<save location>/_KeepSidianLogs/<YYYY-MM-DD>.md``::

    - 14:03 [Shopping](Google Keep/Shopping.md) - overwritten
    - 14:03 [Ideas](Google Keep/Ideas-conflict-....md) - conflict copy created
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..store import (
    LOG_FOLDER_NAME,
    FileStore,
    ensure_parent_folder,
    normalize_path,
)
from .models import NoteOutcome, PassContext, Resolution

logger = logging.getLogger(__name__)

_ACTION_TEXT = {
    Resolution.CREATE.value: "new file created",
    Resolution.OVERWRITE.value: "overwritten",
    Resolution.MERGE.value: "merged (no conflict)",
    Resolution.FORK.value: "conflict copy created",
    Resolution.SKIP.value: "up to date (skipped)",
    "push": "pushed",
}


def activity_log_path(save_location: str, when: datetime) -> str:
    return normalize_path(
        f"{save_location}/{LOG_FOLDER_NAME}/{when:%Y-%m-%d}.md"
    )


def format_log_line(message: str, when: datetime) -> str:
    return f"- {when:%H:%M} {message}"


def describe_outcome(outcome: NoteOutcome) -> str:
    link = f"[{outcome.title}]({outcome.path})"
    if not outcome.success:
        return f"{link} - error: {outcome.detail or 'failed'}"
    text = _ACTION_TEXT.get(outcome.action, outcome.action)
    if outcome.detail:
        text = f"{text} ({outcome.detail})"
    return f"{link} - {text}"


async def append_activity(
    store: FileStore,
    save_location: str,
    messages: list[str],
    when: datetime | None = None,
) -> str | None:
    """Append *messages* to today's log file.

    Returns:
        The log file path, or ``None`` when there was nothing to write.
    """
    if not messages:
        return None
    when = when or datetime.now().astimezone()
    path = activity_log_path(save_location, when)

    existing = await store.read(path) if await store.exists(path) else ""
    if existing and not existing.endswith("\n"):
        existing += "\n"
    lines = "".join(f"{format_log_line(m, when)}\n" for m in messages)

    await ensure_parent_folder(store, path)
    await store.write(path, existing + lines)
    return path


async def write_pass_log(
    store: FileStore, save_location: str, context: PassContext
) -> str | None:
    """Record every outcome of a finished pass, plus its error if any."""
    messages = [describe_outcome(o) for o in context.outcomes]
    if context.error:
        messages.append(f"{context.mode} failed: {context.error}")
    return await append_activity(store, save_location, messages)
