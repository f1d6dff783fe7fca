"""Sync engine that runs pull, push and two-way passes for one save location.

The ``SyncEngine`` ties together the pull and push pipelines, the
activity log and the frontmatter migration.  Each pass gets its own
``PassContext``:

1. Create the context with the caller's progress callbacks.
2. Run the pipeline, which records one outcome per note.
3. Append the outcomes to the activity log, even when the pass failed.
4. Return the context, or re-raise the pass-level error.

Passes against the same save location must not overlap; the engine
takes no lock.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .activity import write_pass_log
from .migrations import ensure_pascal_case_frontmatter
from .models import PassContext, SyncCallbacks
from .pull import DEFAULT_PAGE_SIZE, import_all
from .push import push_all

if TYPE_CHECKING:
    from ..store import FileStore
    from .pull import NoteSource
    from .push import NoteSink

logger = logging.getLogger(__name__)


class SyncEngine:
    """Run sync passes between the note service and one save location.

    Args:
        remote: Note source and sink (``KeepRemote`` in production).
        store: Local file store rooted at the vault.
        save_location: Folder inside the vault holding the notes.
        page_size: Notes requested per page when pulling.
    """

    def __init__(
        self,
        remote: NoteSource | NoteSink,
        store: FileStore,
        save_location: str,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.remote = remote
        self.store = store
        self.save_location = save_location
        self.page_size = page_size

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def pull(
        self, callbacks: SyncCallbacks | None = None
    ) -> PassContext:
        """Import every remote note.

        Raises:
            SyncError: If a page could not be fetched.
        """
        context = PassContext(
            mode="pull", callbacks=callbacks or SyncCallbacks()
        )
        try:
            await import_all(
                self.remote,
                self.save_location,
                self.store,
                page_size=self.page_size,
                context=context,
            )
        except Exception as exc:
            if context.completed_at is None:
                context.finish(error=str(exc))
            raise
        finally:
            await self._log_pass(context)
        return context

    async def push(
        self, callbacks: SyncCallbacks | None = None
    ) -> PassContext:
        """Upload every locally modified note.

        Raises:
            SyncError: If the batch request failed.
        """
        context = PassContext(
            mode="push", callbacks=callbacks or SyncCallbacks()
        )
        try:
            await push_all(
                self.save_location,
                self.store,
                self.remote,
                context=context,
            )
        except Exception as exc:
            if context.completed_at is None:
                context.finish(error=str(exc))
            raise
        finally:
            await self._log_pass(context)
        return context

    async def run(
        self, callbacks: SyncCallbacks | None = None
    ) -> list[PassContext]:
        """Two-way sync: a pull pass followed by a push pass.

        A failed pull ends the run; nothing is pushed.

        Returns:
            The pull context and the push context, in that order.
        """
        pulled = await self.pull(callbacks)
        pushed = await self.push(callbacks)
        return [pulled, pushed]

    async def migrate(self) -> int:
        """Rename legacy frontmatter keys under the save location."""
        return await ensure_pascal_case_frontmatter(
            self.store, self.save_location
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _log_pass(self, context: PassContext) -> None:
        if context.completed_at is None:
            context.finish()
        try:
            await write_pass_log(self.store, self.save_location, context)
        except Exception as exc:
            logger.error("Failed to write sync activity log: %s", exc)
