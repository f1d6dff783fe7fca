"""Duplicate/conflict resolution for incoming notes.

``resolve()`` looks at the local file an incoming note would be written
to and picks one ``Resolution``:

- ``CREATE``: no local file yet.
- ``SKIP``: identical body, or neither side changed since the last sync.
- ``OVERWRITE``: only the incoming note changed since the last sync.
- ``MERGE``: the local file changed (possibly both sides did).

``FORK`` is never chosen here; the pull pipeline turns a ``MERGE`` into
a fork when ``merge_bodies`` reports a conflict.

The reference instant for "changed since" is the sync stamp stored in
the file, falling back to the file's creation time.  Without any
reference the two timestamps are compared directly and ties go to
``MERGE`` so local edits are never dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..store import FileStore, build_note_path
from .models import ExistingFileState, Note, Resolution
from .note import (
    CREATED_KEY,
    UPDATED_KEY,
    parse_timestamp,
    split_frontmatter,
    split_frontmatter_block,
)
from .stamp import get_sync_stamp

logger = logging.getLogger(__name__)

# Filesystems truncate or round mtimes, and a file is written a moment
# after its stamp is computed.
MODIFIED_TOLERANCE = timedelta(seconds=1)


async def build_existing_state(
    store: FileStore, path: str
) -> ExistingFileState:
    """Read *path* and its filesystem metadata into a fresh snapshot."""
    text = await store.read(path)
    block, body = split_frontmatter_block(text)
    fields, _, _ = split_frontmatter(text)
    stat = await store.stat(path)
    return ExistingFileState(
        body=body,
        frontmatter=fields,
        raw_frontmatter=block,
        created_stamp=parse_timestamp(fields.get(CREATED_KEY)),
        updated_stamp=parse_timestamp(fields.get(UPDATED_KEY)),
        fs_created_time=stat.created_time,
        fs_modified_time=stat.modified_time,
        sync_stamp=get_sync_stamp(fields),
    )


def changed_since(
    moment: datetime | None, reference: datetime
) -> bool:
    """Whether *moment* is later than *reference* beyond the tolerance.

    An unknown moment counts as changed.
    """
    if moment is None:
        return True
    return moment - reference > MODIFIED_TOLERANCE


def decide(incoming: Note, existing: ExistingFileState) -> Resolution:
    """Pure decision for a note whose local file already exists."""
    if incoming.body == existing.body:
        return Resolution.SKIP

    existing_modified = existing.effective_modified_time
    reference = existing.sync_stamp or existing.fs_created_time

    if reference is None:
        if incoming.updated is None or existing_modified is None:
            return Resolution.MERGE
        if incoming.updated > existing_modified:
            return Resolution.OVERWRITE
        return Resolution.MERGE

    incoming_changed = (
        incoming.updated is None or incoming.updated > reference
    )
    existing_changed = changed_since(existing_modified, reference)

    if existing_changed:
        return Resolution.MERGE
    if incoming_changed:
        return Resolution.OVERWRITE
    return Resolution.SKIP


async def resolve(
    save_location: str, incoming: Note, store: FileStore
) -> Resolution:
    """Choose the action for *incoming* against the local store.

    Args:
        save_location: Folder holding the note files.
        incoming: Normalised incoming note; its title must be non-empty.
        store: File store to inspect.

    Returns:
        The ``Resolution`` to apply.

    Raises:
        ValueError: If the note title is empty.
    """
    if not incoming.title.strip():
        raise ValueError("Cannot resolve a note without a title")

    path = build_note_path(save_location, incoming.title)
    if not await store.exists(path):
        return Resolution.CREATE

    existing = await build_existing_state(store, path)
    resolution = decide(incoming, existing)
    logger.debug(
        "Resolved %s -> %s (sync stamp %s, mtime %s, incoming %s)",
        path,
        resolution.value,
        existing.sync_stamp,
        existing.effective_modified_time,
        incoming.updated,
    )
    return resolution
