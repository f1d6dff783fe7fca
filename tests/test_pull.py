"""
Tests for the pull pipeline (sync/pull.py).

Covers creating, overwriting, merging and forking note files, pull
idempotence, attachment reconciliation for skipped notes, paging and
error propagation, and progress callbacks.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from keepsidian_sync.errors import NetworkError
from keepsidian_sync.sync.models import (
    Note,
    PassContext,
    Resolution,
    SyncCallbacks,
)
from keepsidian_sync.sync.note import split_frontmatter, split_frontmatter_block
from keepsidian_sync.sync.pull import apply_resolution, import_all
from keepsidian_sync.sync.push import build_candidate
from keepsidian_sync.sync.stamp import SYNC_STAMP_KEY, get_sync_stamp

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
T0_TEXT = "2024-01-01T12:00:00.000Z"
HOUR = timedelta(hours=1)


def _synced_file(body: str, extra: str = "") -> str:
    return (
        "---\n"
        "GoogleKeepUpdatedDate: 2024-01-01T11:00:00.000Z\n"
        f"{extra}"
        f"{SYNC_STAMP_KEY}: {T0_TEXT}\n"
        f"---\n{body}"
    )


def _pull(remote, store, **kwargs) -> PassContext:
    callbacks = kwargs.pop("callbacks", None) or SyncCallbacks()
    context = PassContext(mode="pull", callbacks=callbacks)
    asyncio.run(import_all(remote, "Keep", store, context=context, **kwargs))
    return context


def _fork_paths(store) -> list[str]:
    return [p for p in store.files if "-conflict-" in p]


# ---------------------------------------------------------------------------
# Resolutions
# ---------------------------------------------------------------------------


class TestCreate:
    def test_new_note_written_with_stamp(self, store, make_remote):
        remote = make_remote(
            [
                {
                    "title": "Groceries",
                    "text": "milk\neggs",
                    "updated": "2024-01-02T00:00:00Z",
                    "labels": ["home"],
                }
            ]
        )

        context = _pull(remote, store)

        fields, body, _ = split_frontmatter(store.text("Keep/Groceries.md"))
        assert body == "milk\neggs"
        assert fields["GoogleKeepUpdatedDate"] == "2024-01-02T00:00:00.000Z"
        assert fields["GoogleKeepLabels"] == "home"
        assert get_sync_stamp(fields) is not None
        assert [o.action for o in context.outcomes] == ["create"]

    def test_second_pull_is_a_no_op(self, store, make_remote):
        """Pulling unchanged notes again writes nothing."""
        remote = make_remote(
            [
                {"title": "A", "text": "one"},
                {"title": "B", "text": "two"},
            ]
        )
        _pull(remote, store)
        writes = list(store.writes)

        context = _pull(remote, store)

        assert store.writes == writes
        assert {o.action for o in context.outcomes} == {"skip"}


class TestOverwrite:
    def test_overwrite_keeps_local_passthrough_keys(self, store, make_remote):
        store.put(
            "Keep/Note.md",
            _synced_file("old body", extra="Aliases: shopping\n"),
            modified=T0,
        )
        remote = make_remote(
            [
                {
                    "title": "Note",
                    "text": "new body",
                    "updated": "2024-01-01T14:00:00Z",
                }
            ]
        )

        context = _pull(remote, store)

        fields, body, _ = split_frontmatter(store.text("Keep/Note.md"))
        assert body == "new body"
        assert fields["Aliases"] == "shopping"
        assert fields["GoogleKeepUpdatedDate"] == "2024-01-01T14:00:00.000Z"
        assert get_sync_stamp(fields) > T0
        assert context.outcomes[0].action == "overwrite"


    def test_overwrite_keeps_unparsed_frontmatter_lines(
        self, store, make_remote
    ):
        store.put(
            "Keep/Note.md",
            _synced_file("old", extra="# mine\naliases:\n  - groceries\n"),
            modified=T0,
        )
        remote = make_remote(
            [
                {
                    "title": "Note",
                    "text": "new",
                    "updated": "2024-01-01T14:00:00Z",
                }
            ]
        )

        _pull(remote, store)

        block, body = split_frontmatter_block(store.text("Keep/Note.md"))
        lines = block.split("\n")
        assert lines[:4] == [
            "GoogleKeepUpdatedDate: 2024-01-01T14:00:00.000Z",
            "# mine",
            "aliases:",
            "  - groceries",
        ]
        assert lines[4].startswith(f"{SYNC_STAMP_KEY}: ")
        assert len(lines) == 5
        assert body == "new"


class TestMerge:
    def test_clean_merge_takes_incoming_lines(self, store, make_remote):
        """Local file changed, incoming appended a line."""
        store.put(
            "Keep/Note.md",
            _synced_file("Line 1", extra="Tags: local\n"),
            modified=T0 + HOUR,
        )
        remote = make_remote(
            [
                {
                    "title": "Note",
                    "text": "Line 1\nLine 2",
                    "updated": "2024-01-01T14:00:00Z",
                }
            ]
        )

        context = _pull(remote, store)

        fields, body, _ = split_frontmatter(store.text("Keep/Note.md"))
        assert body == "Line 1\nLine 2"
        assert fields["Tags"] == "local"
        assert fields["GoogleKeepUpdatedDate"] == "2024-01-01T11:00:00.000Z"
        assert get_sync_stamp(fields) > T0
        assert _fork_paths(store) == []
        assert context.outcomes[0].action == "merge"

    def test_clean_merge_keeps_frontmatter_lines(self, store, make_remote):
        store.put(
            "Keep/Note.md",
            _synced_file("Line 1", extra="tags:\n  - work\n  - home\n"),
            modified=T0 + HOUR,
        )
        remote = make_remote([{"title": "Note", "text": "Line 1\nLine 2"}])

        _pull(remote, store)

        block, body = split_frontmatter_block(store.text("Keep/Note.md"))
        lines = block.split("\n")
        assert lines[:4] == [
            "GoogleKeepUpdatedDate: 2024-01-01T11:00:00.000Z",
            "tags:",
            "  - work",
            "  - home",
        ]
        assert lines[4].startswith(f"{SYNC_STAMP_KEY}: ")
        assert lines[4] != f"{SYNC_STAMP_KEY}: {T0_TEXT}"
        assert body == "Line 1\nLine 2"

    def test_local_superset_left_alone(self, store, make_remote):
        """Local lines not on the server keep the file pushable."""
        original = _synced_file("Line 1\nLocal line")
        store.put("Keep/Note.md", original, modified=T0 + HOUR)
        remote = make_remote([{"title": "Note", "text": "Line 1"}])

        context = _pull(remote, store)

        assert store.text("Keep/Note.md") == original
        assert store.writes == []
        outcome = context.outcomes[0]
        assert outcome.action == "skip"
        assert outcome.detail == "already merged"


class TestFork:
    def test_conflict_writes_fork_and_keeps_original(
        self, store, make_remote
    ):
        original = _synced_file("Line 1\nLine A")
        store.put("Keep/Note.md", original, modified=T0 + HOUR)
        remote = make_remote(
            [
                {
                    "title": "Note",
                    "text": "Line 1\nLine B",
                    "updated": "2024-01-01T14:00:00Z",
                }
            ]
        )

        context = _pull(remote, store)

        assert store.text("Keep/Note.md") == original
        forks = _fork_paths(store)
        assert len(forks) == 1
        assert forks[0].startswith("Keep/Note-conflict-")
        assert ":" not in forks[0]
        _, fork_body, _ = split_frontmatter(store.text(forks[0]))
        assert fork_body == "Line 1\nLine B"
        assert context.outcomes[0].action == "fork"
        assert context.outcomes[0].path == forks[0]

    def test_repeated_pull_reuses_fork(self, store, make_remote):
        store.put(
            "Keep/Note.md",
            _synced_file("Line 1\nLine A"),
            modified=T0 + HOUR,
        )
        remote = make_remote([{"title": "Note", "text": "Line 1\nLine B"}])
        _pull(remote, store)

        context = _pull(remote, store)

        assert len(_fork_paths(store)) == 1
        outcome = context.outcomes[0]
        assert outcome.action == "skip"
        assert outcome.detail == "conflict copy exists"


class TestApplyResolution:
    def test_skip_writes_nothing(self, store):
        outcome = asyncio.run(
            apply_resolution(
                store, "Keep", Note(title="N", body="b"), Resolution.SKIP
            )
        )

        assert outcome.action == "skip"
        assert outcome.path == "Keep/N.md"
        assert store.writes == []

    def test_create_makes_parent_folder(self, store):
        asyncio.run(
            apply_resolution(
                store,
                "Keep/Sub",
                Note(title="N", body="b"),
                Resolution.CREATE,
            )
        )

        assert "Keep/Sub" in store.folders
        assert "Keep/Sub/N.md" in store.files


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


class TestPullAttachments:
    def test_skipped_note_still_fetches_attachments(
        self, store, make_remote
    ):
        store.put("Keep/Photo.md", _synced_file("caption"), modified=T0)
        remote = make_remote(
            [
                {
                    "title": "Photo",
                    "text": "caption",
                    "blob_urls": ["/blobs/1"],
                    "blob_names": ["cat.png"],
                }
            ],
            blobs={"https://keep.example.com/blobs/1": b"CAT"},
        )

        context = _pull(remote, store)

        assert store.files["Keep/media/cat.png"] == b"CAT"
        assert "Keep/Photo.md" not in store.writes
        outcome = context.outcomes[0]
        assert outcome.action == "skip"
        assert "1 attachment(s) downloaded" in outcome.detail

    def test_attachment_failure_fails_note(self, store, make_remote):
        remote = make_remote(
            [
                {
                    "title": "Photo",
                    "text": "caption",
                    "blob_urls": ["https://keep.example.com/blobs/9"],
                },
                {"title": "Other", "text": "fine"},
            ]
        )
        remote.blob_error = NetworkError("Server returned status 500", 500)

        context = _pull(remote, store)

        failed = context.failures
        assert [o.title for o in failed] == ["Photo"]
        assert failed[0].action == "error"
        # the note text is written before the failure is reported
        assert "Keep/Photo.md" in store.files
        assert "Keep/Other.md" in store.files
        assert context.error is None

    def test_pulled_media_not_pushed_back(self, store, make_remote):
        remote = make_remote(
            [
                {
                    "title": "Photo",
                    "text": "![[cat.png]]",
                    "blob_urls": ["/blobs/1"],
                    "blob_names": ["cat.png"],
                }
            ],
            blobs={"https://keep.example.com/blobs/1": b"CAT"},
        )

        _pull(remote, store)

        assert store.files["Keep/media/cat.png"] == b"CAT"
        candidate = asyncio.run(
            build_candidate(store, "Keep", "Keep/Photo.md")
        )
        assert candidate is None


# ---------------------------------------------------------------------------
# Paging, errors and callbacks
# ---------------------------------------------------------------------------


class TestImportAll:
    def test_pages_until_empty(self, store, make_remote):
        remote = make_remote(
            [{"title": f"N{i}", "text": str(i)} for i in range(5)]
        )

        count = asyncio.run(import_all(remote, "Keep", store, page_size=2))

        assert count == 5
        assert remote.fetch_calls == [(0, 2), (2, 2), (4, 2), (6, 2)]

    def test_fetch_error_stops_after_first_page(self, store, make_remote):
        remote = make_remote(
            [{"title": "First", "text": "1"}, {"title": "Second", "text": "2"}]
        )
        remote.fail_at_offset = 1
        context = PassContext(mode="pull")

        with pytest.raises(NetworkError):
            asyncio.run(
                import_all(
                    remote, "Keep", store, page_size=1, context=context
                )
            )

        assert "Keep/First.md" in store.files
        assert "Keep/Second.md" not in store.files
        assert context.error == "Server returned status 502"
        assert context.completed_at is not None

    def test_untitled_note_skipped(self, store, make_remote):
        remote = make_remote(
            [{"title": "  ", "text": "orphan"}, {"title": "Kept", "text": "x"}]
        )
        processed: list[None] = []
        callbacks = SyncCallbacks(
            on_item_processed=lambda: processed.append(None)
        )

        context = _pull(remote, store, callbacks=callbacks)

        assert list(store.files) == ["Keep/Kept.md"]
        assert [o.title for o in context.outcomes] == ["Kept"]
        assert len(processed) == 2

    def test_callbacks(self, store, make_remote):
        remote = make_remote(
            [{"title": "A", "text": "a"}, {"title": "B", "text": "b"}]
        )
        totals: list[int] = []
        processed: list[None] = []
        callbacks = SyncCallbacks(
            on_total_known=totals.append,
            on_item_processed=lambda: processed.append(None),
        )

        _pull(remote, store, callbacks=callbacks)

        assert totals and set(totals) == {2}
        assert len(processed) == 2

    def test_no_total_callback_without_total(self, store, make_remote):
        remote = make_remote([{"title": "A", "text": "a"}], report_total=False)
        totals: list[int] = []

        callbacks = SyncCallbacks(on_total_known=totals.append)

        _pull(remote, store, callbacks=callbacks)

        assert totals == []
