"""Build and persist the codebase context document.

The document is a banner line followed by one section per eligible file::

    --- DYNAMIC CODEBASE CONTEXT ---

    --- FILE: src/a.ts ---
    <content>

Traversal is depth-first with directory entries sorted by name, so an
unchanged tree always renders to the same bytes.
"""
from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from .config import ContextConfig
from .errors import ContextMissing, SyncError

CONTEXT_BANNER = "--- DYNAMIC CODEBASE CONTEXT ---\n"
SECTION_PREFIX = "\n--- FILE: "
SECTION_SUFFIX = " ---\n"
META_SUFFIX = ".meta.json"


@dataclass(frozen=True)
class ContextSection:
    relative_path: str
    content: str

    def render(self) -> str:
        return f"{SECTION_PREFIX}{self.relative_path}{SECTION_SUFFIX}{self.content}\n"


@dataclass
class SyncResult:
    path: Path
    file_count: int
    bytes: int
    skipped: List[str] = field(default_factory=list)


def iter_context_files(
    root: Path,
    ignore: Iterable[str],
    extensions: Iterable[str],
    max_file_bytes: int = 0,
    skipped: Optional[List[str]] = None,
) -> Iterator[ContextSection]:
    """Yield eligible files under ``root`` depth-first, entries sorted by name.

    Names in ``ignore`` are skipped wherever they appear. Symlinked
    directories are followed unless they lead back into a directory already
    on the current descent path. Files larger than ``max_file_bytes`` (when
    non-zero) are not read; their relative paths are appended to ``skipped``.
    """
    root = Path(root)
    ignore_set = frozenset(ignore)
    allowed = frozenset(extensions)
    try:
        root_stat = root.stat()
    except OSError as exc:
        raise SyncError(f"Cannot read project root {root}: {exc}") from exc
    if not root.is_dir():
        raise SyncError(f"Project root is not a directory: {root}")
    yield from _walk(root, root, ignore_set, allowed, max_file_bytes, skipped,
                     {(root_stat.st_dev, root_stat.st_ino)})


def _walk(
    root: Path,
    directory: Path,
    ignore: frozenset,
    allowed: frozenset,
    max_file_bytes: int,
    skipped: Optional[List[str]],
    ancestors: Set[Tuple[int, int]],
) -> Iterator[ContextSection]:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise SyncError(f"Cannot list {directory}: {exc}") from exc

    for entry in entries:
        if entry.name in ignore:
            continue
        path = Path(entry.path)
        try:
            is_dir = entry.is_dir()
            is_file = not is_dir and entry.is_file()
        except OSError as exc:
            raise SyncError(f"Cannot stat {path}: {exc}") from exc

        if is_dir:
            try:
                st = entry.stat()
            except OSError as exc:
                raise SyncError(f"Cannot stat {path}: {exc}") from exc
            key = (st.st_dev, st.st_ino)
            if key in ancestors:
                # Symlink loop back into the current branch.
                continue
            yield from _walk(root, path, ignore, allowed, max_file_bytes, skipped, ancestors | {key})
            continue

        if not is_file or path.suffix not in allowed:
            continue

        rel = path.relative_to(root).as_posix()
        if max_file_bytes > 0:
            try:
                size = entry.stat().st_size
            except OSError as exc:
                raise SyncError(f"Cannot stat {rel}: {exc}") from exc
            if size > max_file_bytes:
                if skipped is not None:
                    skipped.append(rel)
                continue
        yield ContextSection(relative_path=rel, content=_read_source(path, rel))


def _read_source(path: Path, rel: str) -> str:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise SyncError(f"Cannot read {rel}: {exc}") from exc
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SyncError(f"{rel} is not valid UTF-8 text: {exc}") from exc


def render_context(sections: Iterable[ContextSection]) -> str:
    parts = [CONTEXT_BANNER]
    parts.extend(section.render() for section in sections)
    return "".join(parts)


def count_sections(document: str) -> int:
    """Count section headers in a document with no sidecar.

    A file whose content quotes a header line is counted too, so this is
    only used when the sidecar is missing or stale.
    """
    return sum(1 for line in document.splitlines() if line.startswith("--- FILE: "))


def _write_atomic_text(path: Path, text: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    try:
        with tmp.open("w", encoding="utf-8", newline="") as f:
            f.write(text)
        tmp.replace(path)
    finally:
        if tmp.exists():
            tmp.unlink()


class ContextSynchronizer:
    def __init__(self, config: ContextConfig) -> None:
        self.root = Path(config.project_root)
        self.context_path = config.context_path
        self.meta_path = self.context_path.with_name(self.context_path.name + META_SUFFIX)
        # The document and its sidecar must never index themselves.
        self.ignore = frozenset(config.ignore) | {self.context_path.name, self.meta_path.name}
        self.extensions = frozenset(config.extensions)
        self.max_file_bytes = int(config.max_file_bytes or 0)
        self.max_total_bytes = int(config.max_total_bytes or 0)
        self._lock = threading.Lock()

    def sync(self) -> SyncResult:
        """Rebuild the context document and replace the persisted copy.

        The document is assembled fully in memory first; any failure raises
        ``SyncError`` and leaves the previous document on disk as it was.
        """
        with self._lock:
            skipped: List[str] = []
            sections: List[ContextSection] = []
            total = 0
            for section in iter_context_files(
                self.root, self.ignore, self.extensions, self.max_file_bytes, skipped
            ):
                total += len(section.content.encode("utf-8"))
                if self.max_total_bytes and total > self.max_total_bytes:
                    raise SyncError(
                        f"Context exceeds {self.max_total_bytes} bytes at {section.relative_path}"
                    )
                sections.append(section)

            document = render_context(sections)
            size = len(document.encode("utf-8"))
            meta = {"fileCount": len(sections), "bytes": size, "skipped": skipped}
            try:
                self.context_path.parent.mkdir(parents=True, exist_ok=True)
                _write_atomic_text(self.context_path, document)
                _write_atomic_text(self.meta_path, json.dumps(meta, indent=2))
            except OSError as exc:
                raise SyncError(f"Cannot write {self.context_path}: {exc}") from exc

            return SyncResult(
                path=self.context_path,
                file_count=len(sections),
                bytes=size,
                skipped=skipped,
            )

    def load(self) -> str:
        try:
            with self.context_path.open("r", encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError as exc:
            raise ContextMissing(
                f"No context document at {self.context_path}; run /sync first"
            ) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise SyncError(f"Cannot read {self.context_path}: {exc}") from exc

    def _recorded_count(self, size: int) -> Optional[int]:
        try:
            meta = json.loads(self.meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(meta, dict) or meta.get("bytes") != size:
            return None
        count = meta.get("fileCount")
        return count if isinstance(count, int) else None

    def summary(self) -> dict:
        path = self.context_path
        if not path.is_file():
            return {"exists": False, "path": str(path)}
        stat = path.stat()
        count = self._recorded_count(stat.st_size)
        if count is None:
            count = count_sections(self.load())
        return {
            "exists": True,
            "path": str(path),
            "bytes": stat.st_size,
            "fileCount": count,
            "modifiedAt": stat.st_mtime,
            "ageSec": max(0.0, time.time() - stat.st_mtime),
        }
