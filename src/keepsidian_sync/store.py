"""File-store capability, local implementation and vault path helpers.

Store paths are vault-relative POSIX strings (``Google Keep/Note.md``).
The pipelines only talk to the ``FileStore`` protocol; ``LocalFileStore``
maps it onto a directory on disk and runs every blocking call through
``run_sync()`` so the pipelines can await I/O in sequence.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from charset_normalizer import from_bytes

from .core.async_utils import run_sync
from .errors import StoreError

logger = logging.getLogger(__name__)

MEDIA_FOLDER_NAME = "media"
LOG_FOLDER_NAME = "_KeepSidianLogs"
CONFLICT_FILE_SUFFIX = "-conflict-"


@dataclass(frozen=True)
class FileStat:
    """Filesystem timestamps of a store entry; either may be unknown."""

    created_time: datetime | None = None
    modified_time: datetime | None = None


class FileStore(Protocol):
    """Asynchronous file-store capability consumed by the pipelines."""

    async def exists(self, path: str) -> bool: ...  # pragma: no cover

    async def read(self, path: str) -> str: ...  # pragma: no cover

    async def write(
        self, path: str, text: str
    ) -> None: ...  # pragma: no cover

    async def read_binary(self, path: str) -> bytes: ...  # pragma: no cover

    async def write_binary(
        self, path: str, data: bytes
    ) -> None: ...  # pragma: no cover

    async def stat(self, path: str) -> FileStat: ...  # pragma: no cover

    async def list(
        self, folder: str
    ) -> tuple[list[str], list[str]]: ...  # pragma: no cover

    async def create_folder(self, path: str) -> None: ...  # pragma: no cover


# =============================================================================
# Path helpers
# =============================================================================


def normalize_path(path: str) -> str:
    """Normalise separators and dot segments; no leading or trailing slash."""
    if not path:
        return ""
    cleaned = posixpath.normpath(path.replace("\\", "/"))
    cleaned = cleaned.strip("/")
    return "" if cleaned == "." else cleaned


def dirname(path: str) -> str:
    """Parent folder of *path*, or ``""`` at the vault root."""
    return posixpath.dirname(normalize_path(path))


def build_note_path(save_location: str, title: str) -> str:
    return normalize_path(f"{save_location}/{title}.md")


def media_folder_path(save_location: str) -> str:
    return normalize_path(f"{save_location}/{MEDIA_FOLDER_NAME}")


def build_media_path(save_location: str, file_name: str) -> str:
    return normalize_path(f"{media_folder_path(save_location)}/{file_name}")


def build_conflict_path(
    save_location: str, title: str, stamp: str
) -> str:
    """Path of the fork written when a merge conflicts.

    ``:`` is not allowed in file names on every platform, so it is
    replaced in the timestamp.
    """
    safe_stamp = stamp.replace(":", "-")
    return normalize_path(
        f"{save_location}/{title}{CONFLICT_FILE_SUFFIX}{safe_stamp}.md"
    )


def is_conflict_path(path: str) -> bool:
    return CONFLICT_FILE_SUFFIX in posixpath.basename(path)


async def ensure_folder(store: FileStore, folder: str) -> None:
    folder = normalize_path(folder)
    if folder and not await store.exists(folder):
        await store.create_folder(folder)


async def ensure_parent_folder(store: FileStore, file_path: str) -> None:
    parent = dirname(file_path)
    if parent:
        await ensure_folder(store, parent)


async def list_markdown_files(store: FileStore, root: str) -> list[str]:
    """Every ``.md`` file under *root*, depth first.

    The attachment folder and the activity log folder are skipped.
    """
    root = normalize_path(root)
    if not await store.exists(root):
        return []

    found: list[str] = []
    pending = [root]
    while pending:
        folder = pending.pop()
        files, folders = await store.list(folder)
        for file_path in sorted(files):
            if file_path.lower().endswith(".md"):
                found.append(normalize_path(file_path))
        for sub in sorted(folders, reverse=True):
            name = posixpath.basename(normalize_path(sub))
            if name in (MEDIA_FOLDER_NAME, LOG_FOLDER_NAME):
                continue
            pending.append(normalize_path(sub))
    return found


# =============================================================================
# Local implementation
# =============================================================================


def read_text_with_encoding(path: Path) -> str:
    """Read a text file, detecting its encoding when it is not UTF-8.

    Empty files read as ``""``; undetectable bytes decode as UTF-8 with
    replacement characters.
    """
    raw = path.read_bytes()
    if not raw:
        return ""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        logger.warning("Could not detect encoding of %s", path)
        return raw.decode("utf-8", errors="replace")
    return str(result)


def _to_datetime(seconds: float | None) -> datetime | None:
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class LocalFileStore:
    """``FileStore`` backed by a directory on the local disk.

    Args:
        root: Vault root directory; store paths are relative to it.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def _resolve(self, path: str) -> Path:
        relative = normalize_path(path)
        if relative.startswith("../") or relative == "..":
            raise StoreError(f"Path escapes the vault: {path}", path)
        return self.root / relative if relative else self.root

    def _relative(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    # -- sync implementations ------------------------------------------

    def _read(self, path: str) -> str:
        return read_text_with_encoding(self._resolve(path))

    def _write(self, path: str, text: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(text.encode("utf-8"))

    def _write_binary(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def _stat(self, path: str) -> FileStat:
        st = self._resolve(path).stat()
        # st_birthtime only exists on macOS/BSD and recent Windows builds
        created = getattr(st, "st_birthtime", None) or st.st_ctime
        return FileStat(
            created_time=_to_datetime(created),
            modified_time=_to_datetime(st.st_mtime),
        )

    def _list(self, folder: str) -> tuple[list[str], list[str]]:
        files: list[str] = []
        folders: list[str] = []
        for entry in sorted(self._resolve(folder).iterdir()):
            if entry.is_dir():
                folders.append(self._relative(entry))
            elif entry.is_file():
                files.append(self._relative(entry))
        return files, folders

    # -- FileStore -----------------------------------------------------

    async def exists(self, path: str) -> bool:
        return await run_sync(self._resolve(path).exists)

    async def read(self, path: str) -> str:
        try:
            return await run_sync(self._read, path)
        except OSError as exc:
            raise StoreError(f"Failed to read {path}: {exc}", path) from exc

    async def write(self, path: str, text: str) -> None:
        try:
            await run_sync(self._write, path, text)
        except OSError as exc:
            raise StoreError(f"Failed to write {path}: {exc}", path) from exc

    async def read_binary(self, path: str) -> bytes:
        try:
            return await run_sync(self._resolve(path).read_bytes)
        except OSError as exc:
            raise StoreError(f"Failed to read {path}: {exc}", path) from exc

    async def write_binary(self, path: str, data: bytes) -> None:
        try:
            await run_sync(self._write_binary, path, data)
        except OSError as exc:
            raise StoreError(f"Failed to write {path}: {exc}", path) from exc

    async def stat(self, path: str) -> FileStat:
        try:
            return await run_sync(self._stat, path)
        except OSError as exc:
            raise StoreError(f"Failed to stat {path}: {exc}", path) from exc

    async def list(self, folder: str) -> tuple[list[str], list[str]]:
        try:
            return await run_sync(self._list, folder)
        except OSError as exc:
            raise StoreError(
                f"Failed to list {folder}: {exc}", folder
            ) from exc

    async def create_folder(self, path: str) -> None:
        try:
            await run_sync(
                self._resolve(path).mkdir, parents=True, exist_ok=True
            )
        except OSError as exc:
            raise StoreError(
                f"Failed to create folder {path}: {exc}", path
            ) from exc
