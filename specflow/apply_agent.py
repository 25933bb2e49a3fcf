from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .errors import AccessDenied, ValidationError, WriteError


@dataclass
class ApplyResult:
    path: Path
    relative_path: str
    bytes: int
    created: bool


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def resolve_target(root: Path, file_name: str) -> Path:
    """Resolve ``file_name`` against ``root`` and refuse anything outside it.

    Both sides are fully resolved (symlinks included) and compared by path
    segments, so ``/a/proj-evil`` is not inside ``/a/proj``. A leading ``~``
    is an ordinary path character here, not the home directory.
    """
    if file_name is None or not str(file_name).strip():
        raise ValidationError("fileName is required")
    if "\x00" in file_name:
        raise ValidationError("fileName contains a NUL byte")
    root_resolved = Path(root).resolve()
    resolved = (root_resolved / file_name).resolve()
    if resolved == root_resolved or not _is_within(resolved, root_resolved):
        raise AccessDenied(f"Path escapes the project root: {file_name}")
    if resolved.is_dir():
        raise ValidationError(f"Target is a directory: {file_name}")
    return resolved


class ApplyAgent:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def write(self, file_name: str, content: str) -> ApplyResult:
        if content is None:
            raise ValidationError("fullCode is required")
        target = resolve_target(self.root, file_name)
        created = not target.exists()
        data = content.encode("utf-8")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise WriteError(f"Cannot write {file_name}: {exc}") from exc
        return ApplyResult(
            path=target,
            relative_path=target.relative_to(self.root.resolve()).as_posix(),
            bytes=len(data),
            created=created,
        )
