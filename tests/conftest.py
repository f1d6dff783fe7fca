"""Shared pytest fixtures for keepsidian-sync tests."""

import posixpath
from datetime import datetime, timezone

import pytest
from dotenv import load_dotenv

from keepsidian_sync.config import Config
from keepsidian_sync.errors import NetworkError, StoreError
from keepsidian_sync.store import FileStat, normalize_path
from keepsidian_sync.sync.models import (
    NotePage,
    PushBatchResponse,
    PushNoteResult,
    RemoteNote,
)

load_dotenv()


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class MemoryFileStore:
    """In-memory ``FileStore`` with controllable timestamps.

    Every write stamps the file with ``self.now`` (real time when unset)
    and is appended to ``self.writes``.
    """

    def __init__(self) -> None:
        self.files: dict[str, str | bytes] = {}
        self.stats: dict[str, FileStat] = {}
        self.folders: set[str] = set()
        self.writes: list[str] = []
        self.now: datetime | None = None

    def _clock(self) -> datetime:
        return self.now or datetime.now(timezone.utc)

    def _touch(self, path: str) -> None:
        previous = self.stats.get(path)
        now = self._clock()
        created = previous.created_time if previous else now
        self.stats[path] = FileStat(created_time=created, modified_time=now)
        self.writes.append(path)

    # -- test helpers ----------------------------------------------------

    def put(
        self,
        path: str,
        content: str | bytes,
        modified: datetime | None = None,
        created: datetime | None = None,
    ) -> None:
        """Seed a file without recording a write."""
        path = normalize_path(path)
        self.files[path] = content
        self.stats[path] = FileStat(
            created_time=created or modified,
            modified_time=modified,
        )

    def set_times(
        self,
        path: str,
        modified: datetime | None = None,
        created: datetime | None = None,
    ) -> None:
        path = normalize_path(path)
        current = self.stats.get(path, FileStat())
        self.stats[path] = FileStat(
            created_time=created or current.created_time,
            modified_time=modified or current.modified_time,
        )

    def text(self, path: str) -> str:
        value = self.files[normalize_path(path)]
        assert isinstance(value, str)
        return value

    # -- FileStore -------------------------------------------------------

    async def exists(self, path: str) -> bool:
        path = normalize_path(path)
        if path in self.files or path in self.folders:
            return True
        return any(p.startswith(path + "/") for p in self.files)

    async def read(self, path: str) -> str:
        path = normalize_path(path)
        if path not in self.files:
            raise StoreError(f"No such file: {path}", path)
        value = self.files[path]
        return value.decode("utf-8") if isinstance(value, bytes) else value

    async def write(self, path: str, text: str) -> None:
        path = normalize_path(path)
        self.files[path] = text
        self._touch(path)

    async def read_binary(self, path: str) -> bytes:
        path = normalize_path(path)
        if path not in self.files:
            raise StoreError(f"No such file: {path}", path)
        value = self.files[path]
        return value.encode("utf-8") if isinstance(value, str) else value

    async def write_binary(self, path: str, data: bytes) -> None:
        path = normalize_path(path)
        self.files[path] = data
        self._touch(path)

    async def stat(self, path: str) -> FileStat:
        return self.stats.get(normalize_path(path), FileStat())

    async def list(self, folder: str) -> tuple[list[str], list[str]]:
        folder = normalize_path(folder)
        files: list[str] = []
        folders: set[str] = set()
        for path in list(self.files) + list(self.folders):
            if posixpath.dirname(path) == folder and path in self.files:
                files.append(path)
            elif path.startswith(folder + "/"):
                child = path[len(folder) + 1 :].split("/")[0]
                child_path = f"{folder}/{child}"
                if child_path not in self.files:
                    folders.add(child_path)
        return sorted(files), sorted(folders)

    async def create_folder(self, path: str) -> None:
        self.folders.add(normalize_path(path))


class FakeRemote:
    """Note source and sink backed by in-memory notes and blobs."""

    server_url = "https://keep.example.com"

    def __init__(
        self,
        notes: list[dict] | None = None,
        blobs: dict[str, bytes] | None = None,
        report_total: bool = True,
    ) -> None:
        self.notes = [RemoteNote(**n) for n in notes or []]
        self.blobs = blobs or {}
        self.report_total = report_total
        self.fetch_calls: list[tuple[int, int]] = []
        self.fail_at_offset: int | None = None
        self.blob_error: Exception | None = None
        self.pushed: list[list] = []
        self.push_results: list[dict] | None = None
        self.push_error: Exception | None = None

    async def fetch_page(self, offset: int, limit: int) -> NotePage:
        self.fetch_calls.append((offset, limit))
        if self.fail_at_offset is not None and offset >= self.fail_at_offset:
            raise NetworkError("Server returned status 502", 502)
        return NotePage(
            notes=self.notes[offset : offset + limit],
            total_notes=len(self.notes) if self.report_total else None,
        )

    async def fetch_bytes(self, url: str) -> bytes:
        if self.blob_error is not None:
            raise self.blob_error
        if url not in self.blobs:
            raise NetworkError("Server returned status 404", 404)
        return self.blobs[url]

    async def push_batch(self, candidates) -> PushBatchResponse:
        if self.push_error is not None:
            raise self.push_error
        self.pushed.append(list(candidates))
        if self.push_results is not None:
            return PushBatchResponse(
                results=[PushNoteResult(**r) for r in self.push_results]
            )
        return PushBatchResponse(
            results=[
                PushNoteResult(path=c.relative_path, success=True)
                for c in candidates
            ]
        )


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        server_url="https://keep.example.com",
        email="user@example.com",
        token="secret-token",
        insecure=False,
    )


@pytest.fixture
def store():
    """An empty in-memory file store."""
    return MemoryFileStore()


@pytest.fixture
def make_remote():
    """Factory fixture for ``FakeRemote`` instances."""
    return FakeRemote
