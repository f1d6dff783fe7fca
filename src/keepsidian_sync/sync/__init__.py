"""Note synchronisation engine.

Public API for synchronising remote notes with a folder of markdown
files that carry a flat frontmatter block.

Architecture
------------
Every local note file records the last instant it was reconciled with
the note service in its ``KeepSidianLastSyncedDate`` frontmatter key.
Both directions compare file and note timestamps against that stamp to
tell "only the remote changed" from "only the local file changed" from
"both changed".

Modules:

- ``engine``      -- ``SyncEngine``: pull, push and two-way passes.
- ``pull``        -- ``import_all``: page through remote notes and apply
  one resolution per note.
- ``push``        -- ``push_all``: batch locally modified notes.
- ``resolver``    -- ``resolve``: Create / Overwrite / Skip / Merge.
- ``merger``      -- Line merge of two bodies via ``merge3``.
- ``attachments`` -- Attachment download and upload selection.
- ``note``        -- Frontmatter codec and payload normalisation.
- ``stamp``       -- Sync-stamp read/write.
- ``models``      -- ``Note``, ``Resolution``, ``PushCandidate``,
  ``PassContext`` and the other data contracts.
- ``migrations``  -- Legacy frontmatter key renames.
- ``activity``    -- Per-day activity log inside the save location.
- ``reporter``    -- Human-readable and JSON pass reports.

Usage example
-------------
::

    import asyncio
    from keepsidian_sync.config import load_config
    from keepsidian_sync.core import KeepClient
    from keepsidian_sync.core.remote import KeepRemote
    from keepsidian_sync.store import LocalFileStore
    from keepsidian_sync.sync import SyncEngine, format_pass_report

    config = load_config()
    engine = SyncEngine(
        KeepRemote(KeepClient(config)),
        LocalFileStore(config.vault_root),
        config.save_location,
    )

    pulled, pushed = asyncio.run(engine.run())
    print(format_pass_report(pulled))
    print(format_pass_report(pushed))
"""

from .engine import SyncEngine
from .merger import MergeResult, merge_bodies
from .models import (
    AttachmentRef,
    Note,
    NoteOutcome,
    PassContext,
    PushCandidate,
    Resolution,
    SyncCallbacks,
)
from .note import parse_note, serialize_note
from .pull import import_all
from .push import push_all
from .reporter import format_pass_report, report_to_json
from .resolver import resolve

__all__ = [
    "AttachmentRef",
    "MergeResult",
    "Note",
    "NoteOutcome",
    "PassContext",
    "PushCandidate",
    "Resolution",
    "SyncCallbacks",
    "SyncEngine",
    "format_pass_report",
    "import_all",
    "merge_bodies",
    "parse_note",
    "push_all",
    "report_to_json",
    "resolve",
    "serialize_note",
]
