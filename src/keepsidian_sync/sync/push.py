"""Push pipeline: send locally modified notes back to the note service.

A note file is a push candidate when it has no sync stamp, when its
mtime is later than the stamp (beyond a one-second tolerance), or when
one of its attachments changed since the stamp.  Conflict copies are
never pushed.

All candidates of a pass go out in one batch.  A note the service
confirms gets its sync stamp moved to the push time; only the stamp
line of its frontmatter changes and its body is left byte for byte.  A note reported as failed keeps its old stamp and is
picked up again on the next pass.  If the batch request itself fails,
no local file is touched.
"""

from __future__ import annotations

import logging
import posixpath
from typing import Protocol

from ..store import (
    FileStore,
    ensure_folder,
    is_conflict_path,
    list_markdown_files,
    normalize_path,
)
from .attachments import collect_attachments
from .models import (
    NoteOutcome,
    PassContext,
    PushBatchResponse,
    PushCandidate,
    PushNoteResult,
    SyncCallbacks,
)
from .note import (
    TITLE_KEY,
    join_frontmatter_block,
    split_frontmatter,
    split_frontmatter_block,
)
from .resolver import changed_since
from .stamp import current_stamp, get_sync_stamp, stamp_frontmatter_block

logger = logging.getLogger(__name__)


class NoteSink(Protocol):
    """Remote side of a push pass."""

    async def push_batch(
        self, candidates: list[PushCandidate]
    ) -> PushBatchResponse: ...  # pragma: no cover


def relative_to_save_location(path: str, save_location: str) -> str:
    base = normalize_path(save_location)
    path = normalize_path(path)
    if base and path.startswith(base + "/"):
        return path[len(base) + 1 :]
    return path


def derive_title(relative_path: str) -> str:
    name = posixpath.basename(relative_path)
    if name.lower().endswith(".md"):
        name = name[:-3]
    return name


async def build_candidate(
    store: FileStore, save_location: str, path: str
) -> PushCandidate | None:
    """Inspect one note file; ``None`` when it is up to date."""
    content = await store.read(path)
    block, body = split_frontmatter_block(content)
    fields, _, _ = split_frontmatter(content)
    last_synced = get_sync_stamp(fields)

    modified = True
    if last_synced is not None:
        stat = await store.stat(path)
        modified = changed_since(stat.modified_time, last_synced)

    payloads, missing = await collect_attachments(
        store, content, path, save_location, last_synced
    )
    if not (modified or payloads):
        return None

    relative = relative_to_save_location(path, save_location)
    return PushCandidate(
        file_path=path,
        relative_path=relative,
        title=fields.get(TITLE_KEY) or derive_title(relative),
        content=content,
        body=body,
        frontmatter=fields,
        raw_frontmatter=block,
        last_sync_stamp=last_synced,
        modified_since_sync=modified,
        attachment_payloads=payloads,
        missing_attachments=missing,
    )


async def collect_push_candidates(
    store: FileStore,
    save_location: str,
    context: PassContext | None = None,
) -> list[PushCandidate]:
    """Scan *save_location* for notes that need pushing.

    Notes that are up to date, conflict copies and notes that could not
    be read are recorded on *context* as skipped or failed.
    """
    context = context or PassContext(mode="push")
    await ensure_folder(store, save_location)

    candidates: list[PushCandidate] = []
    for path in await list_markdown_files(store, save_location):
        title = derive_title(path)
        if is_conflict_path(path):
            context.record(
                NoteOutcome(
                    path=path,
                    title=title,
                    action="skip",
                    detail="conflict copy",
                )
            )
            continue
        try:
            candidate = await build_candidate(store, save_location, path)
        except Exception as exc:
            logger.error("Failed to prepare %s for push: %s", path, exc)
            context.record(
                NoteOutcome(
                    path=path,
                    title=title,
                    action="push",
                    success=False,
                    detail=str(exc),
                )
            )
            continue
        if candidate is None:
            context.record(NoteOutcome(path=path, title=title, action="skip"))
            continue
        candidates.append(candidate)
    return candidates


def _map_results(
    results: list[PushNoteResult],
) -> dict[str, PushNoteResult]:
    return {normalize_path(r.path): r for r in results if r.path}


def _push_detail(candidate: PushCandidate) -> str | None:
    parts = []
    count = len(candidate.attachment_payloads)
    if count:
        parts.append(
            "updated 1 attachment"
            if count == 1
            else f"updated {count} attachments"
        )
    for missing in candidate.missing_attachments:
        parts.append(f"missing attachment {missing}")
    return "; ".join(parts) or None


async def push_all(
    save_location: str,
    store: FileStore,
    sink: NoteSink,
    callbacks: SyncCallbacks | None = None,
    context: PassContext | None = None,
) -> int:
    """Push every stale note under *save_location* in one batch.

    Args:
        save_location: Folder holding the note files.
        store: Local file store.
        sink: Remote note sink.
        callbacks: Progress hooks; ignored when *context* is given.
        context: Pass bookkeeping to fill in; created when omitted.

    Returns:
        Number of notes the service confirmed.

    Raises:
        SyncError: If the batch request failed.  No local file is
            modified in that case.
    """
    context = context or PassContext(
        mode="push", callbacks=callbacks or SyncCallbacks()
    )
    candidates = await collect_push_candidates(store, save_location, context)
    if not candidates:
        logger.info("No notes to push")
        context.finish()
        return 0

    context.callbacks.total_known(len(candidates))
    try:
        response = await sink.push_batch(candidates)
    except Exception as exc:
        logger.error("Push of %d note(s) failed: %s", len(candidates), exc)
        context.finish(error=str(exc))
        raise

    results = _map_results(response.results)
    stamp = current_stamp()
    pushed = 0

    for candidate in candidates:
        try:
            result = results.get(normalize_path(candidate.relative_path))
            if result is None or not result.success:
                reason = (
                    "no result returned"
                    if result is None
                    else result.error or result.message or "failed"
                )
                logger.warning(
                    "Push of %s not confirmed: %s", candidate.file_path, reason
                )
                context.record(
                    NoteOutcome(
                        path=candidate.file_path,
                        title=candidate.title,
                        action="push",
                        success=False,
                        detail=f"push failed: {reason}",
                    )
                )
                continue

            block = stamp_frontmatter_block(candidate.raw_frontmatter, stamp)
            await store.write(
                candidate.file_path,
                join_frontmatter_block(block, candidate.body),
            )
            for missing in candidate.missing_attachments:
                logger.warning(
                    "%s references missing attachment %s",
                    candidate.file_path,
                    missing,
                )
            context.record(
                NoteOutcome(
                    path=candidate.file_path,
                    title=candidate.title,
                    action="push",
                    detail=_push_detail(candidate),
                )
            )
            pushed += 1
        except Exception as exc:
            logger.error(
                "Failed to update %s after push: %s", candidate.file_path, exc
            )
            context.record(
                NoteOutcome(
                    path=candidate.file_path,
                    title=candidate.title,
                    action="push",
                    success=False,
                    detail=str(exc),
                )
            )
        finally:
            context.callbacks.item_processed()

    context.finish()
    logger.info(
        "Push finished: %d of %d note(s) confirmed", pushed, len(candidates)
    )
    return pushed
