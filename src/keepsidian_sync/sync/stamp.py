"""Sync-stamp management.

The ``KeepSidianLastSyncedDate`` frontmatter key records the last instant
a local file was reconciled with the note service.  Its absence means the
file has never been synced.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .note import format_timestamp, parse_timestamp, update_frontmatter_block

SYNC_STAMP_KEY = "KeepSidianLastSyncedDate"


def current_stamp() -> datetime:
    """Now, rounded up to the millisecond precision the stamp is stored at.

    Rounding up keeps a stamp taken after a file was written at or after
    that file's modification time.
    """
    now = datetime.now(timezone.utc) + timedelta(microseconds=999)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def get_sync_stamp(fields: dict[str, str]) -> datetime | None:
    """Return the sync stamp stored in *fields*, if any."""
    return parse_timestamp(fields.get(SYNC_STAMP_KEY))


def with_sync_stamp(
    fields: dict[str, str], stamp: datetime
) -> dict[str, str]:
    """Return a copy of *fields* with the sync stamp set to *stamp*.

    An existing key keeps its position; a missing key is appended.
    """
    updated = dict(fields)
    updated[SYNC_STAMP_KEY] = format_timestamp(stamp)
    return updated


def stamp_frontmatter_block(block: str | None, stamp: datetime) -> str:
    """Set the sync stamp line of a raw frontmatter *block*.

    The stamp line is replaced in place or appended; no other line of
    the block changes.
    """
    return update_frontmatter_block(
        block, {SYNC_STAMP_KEY: format_timestamp(stamp)}
    )
