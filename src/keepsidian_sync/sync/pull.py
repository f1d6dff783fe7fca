"""Pull pipeline: page through remote notes and reconcile them locally.

For each incoming note, in order:

1. Normalise the payload; notes without a title are logged and skipped.
2. Reconcile every attachment, including for notes that end up skipped.
3. ``resolve()`` the note against its local file.
4. Apply the resolution (write, overwrite, merge or fork) with a sync
   stamp taken after the attachments were written, so freshly
   downloaded media do not look locally modified to the next push.

Rewrites of an existing file keep its frontmatter block line for line
and only touch the keys they own.

A failure inside one note is logged and recorded as a failed outcome;
the pass moves on.  A failure fetching a page stops the pass and
propagates.  Nothing already written is rolled back.
"""

from __future__ import annotations

import logging
import posixpath
from datetime import datetime
from typing import Protocol

from ..store import (
    CONFLICT_FILE_SUFFIX,
    FileStore,
    build_conflict_path,
    build_note_path,
    dirname,
    ensure_parent_folder,
)
from ..errors import AttachmentError
from .attachments import process_attachments
from .merger import generate_diff, merge_bodies
from .models import (
    Note,
    NoteOutcome,
    NotePage,
    PassContext,
    Resolution,
    SyncCallbacks,
)
from .note import (
    CREATED_KEY,
    LABELS_KEY,
    UPDATED_KEY,
    format_timestamp,
    join_frontmatter,
    join_frontmatter_block,
    normalize_note,
    note_fields,
    split_frontmatter,
    update_frontmatter_block,
)
from .resolver import build_existing_state, resolve
from .stamp import current_stamp, stamp_frontmatter_block, with_sync_stamp

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


class NoteSource(Protocol):
    """Remote side of a pull pass."""

    server_url: str

    async def fetch_page(
        self, offset: int, limit: int
    ) -> NotePage: ...  # pragma: no cover

    async def fetch_bytes(self, url: str) -> bytes: ...  # pragma: no cover


def _incoming_fields(note: Note, stamp: datetime) -> dict[str, str]:
    return with_sync_stamp(note_fields(note), stamp)


async def _find_matching_fork(
    store: FileStore, save_location: str, note: Note
) -> str | None:
    """Conflict copy of *note* whose body already equals the incoming one."""
    folder = dirname(build_note_path(save_location, note.title))
    prefix = f"{posixpath.basename(note.title)}{CONFLICT_FILE_SUFFIX}"
    if not await store.exists(folder):
        return None
    files, _ = await store.list(folder)
    for path in sorted(files):
        if not posixpath.basename(path).startswith(prefix):
            continue
        _, body, _ = split_frontmatter(await store.read(path))
        if body == note.body:
            return path
    return None


async def apply_resolution(
    store: FileStore,
    save_location: str,
    note: Note,
    resolution: Resolution,
) -> NoteOutcome:
    """Carry out *resolution* for *note* and describe what happened."""
    path = build_note_path(save_location, note.title)
    stamp = current_stamp()

    def outcome(action: Resolution, **kwargs) -> NoteOutcome:
        kwargs.setdefault("path", path)
        return NoteOutcome(title=note.title, action=action.value, **kwargs)

    if resolution == Resolution.SKIP:
        return outcome(Resolution.SKIP)

    if resolution == Resolution.CREATE:
        await ensure_parent_folder(store, path)
        await store.write(
            path, join_frontmatter(_incoming_fields(note, stamp), note.body)
        )
        logger.info("Created %s", path)
        return outcome(Resolution.CREATE)

    existing = await build_existing_state(store, path)

    if resolution == Resolution.OVERWRITE:
        block = update_frontmatter_block(
            existing.raw_frontmatter,
            _incoming_fields(note, stamp),
            remove=(CREATED_KEY, UPDATED_KEY, LABELS_KEY),
        )
        await store.write(path, join_frontmatter_block(block, note.body))
        logger.info("Overwrote %s", path)
        return outcome(Resolution.OVERWRITE)

    result = merge_bodies(existing.body, note.body)
    if result.has_conflict:
        fork = await _find_matching_fork(store, save_location, note)
        if fork is not None:
            logger.info("Conflict copy %s already holds %s", fork, path)
            return outcome(
                Resolution.SKIP, path=fork, detail="conflict copy exists"
            )
        fork = build_conflict_path(
            save_location, note.title, format_timestamp(stamp)
        )
        await ensure_parent_folder(store, fork)
        await store.write(
            fork, join_frontmatter(_incoming_fields(note, stamp), note.body)
        )
        logger.warning(
            "Merge conflict in %s; incoming copy written to %s", path, fork
        )
        logger.debug(
            "Conflict diff for %s:\n%s",
            path,
            generate_diff(existing.body, note.body),
        )
        return outcome(Resolution.FORK, path=fork)

    # Local-only lines must stay pushable, so the stamp only moves when
    # the merged body is exactly the incoming one.
    block = existing.raw_frontmatter
    if result.merged_body == note.body:
        block = stamp_frontmatter_block(block, stamp)
    elif result.merged_body == existing.body:
        return outcome(Resolution.SKIP, detail="already merged")

    await store.write(path, join_frontmatter_block(block, result.merged_body))
    logger.info("Merged %s", path)
    return outcome(Resolution.MERGE)


async def process_note(
    source: NoteSource,
    save_location: str,
    store: FileStore,
    note: Note,
) -> NoteOutcome:
    """Reconcile attachments, then resolve and write one normalised note.

    When an attachment fails, the note text is still written before the
    ``AttachmentError`` is raised.
    """
    downloaded = identical = 0
    attachment_error: AttachmentError | None = None
    if note.attachment_refs:
        try:
            downloaded, identical = await process_attachments(
                store,
                save_location,
                note.attachment_refs,
                source.fetch_bytes,
                source.server_url,
            )
        except AttachmentError as exc:
            attachment_error = exc

    resolution = await resolve(save_location, note, store)
    outcome = await apply_resolution(store, save_location, note, resolution)
    if attachment_error is not None:
        raise attachment_error

    if downloaded or identical:
        detail = (
            f"{downloaded} attachment(s) downloaded, {identical} unchanged"
        )
        if outcome.detail:
            detail = f"{outcome.detail}; {detail}"
        outcome = outcome.model_copy(update={"detail": detail})
    return outcome


async def import_all(
    source: NoteSource,
    save_location: str,
    store: FileStore,
    callbacks: SyncCallbacks | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    context: PassContext | None = None,
) -> int:
    """Pull every remote note into *save_location*.

    Args:
        source: Remote note source.
        save_location: Folder holding the note files.
        store: Local file store.
        callbacks: Progress hooks; ignored when *context* is given.
        page_size: Notes requested per page.
        context: Pass bookkeeping to fill in; created when omitted.

    Returns:
        Number of notes handled without error.

    Raises:
        SyncError: If a page could not be fetched.  Notes from earlier
            pages stay written.
    """
    context = context or PassContext(
        mode="pull", callbacks=callbacks or SyncCallbacks()
    )
    imported = 0
    offset = 0

    while True:
        try:
            page = await source.fetch_page(offset, page_size)
        except Exception as exc:
            logger.error(
                "Error fetching notes at offset %d: %s", offset, exc
            )
            context.finish(error=str(exc))
            raise

        if page.total_notes is not None:
            context.callbacks.total_known(page.total_notes)
        if not page.notes:
            break

        for remote in page.notes:
            title = (remote.title or "").strip()
            try:
                if not title:
                    logger.warning(
                        "Skipping note without a title at offset %d", offset
                    )
                    continue
                note = normalize_note(remote)
                context.record(
                    await process_note(source, save_location, store, note)
                )
                imported += 1
            except Exception as exc:
                logger.error("Failed to sync note %r: %s", title, exc)
                context.record(
                    NoteOutcome(
                        path=build_note_path(save_location, title),
                        title=title,
                        action="error",
                        success=False,
                        detail=str(exc),
                    )
                )
            finally:
                context.callbacks.item_processed()

        offset += page_size

    context.finish()
    logger.info("Pull finished: %d note(s) handled", imported)
    return imported
