import re
from enum import Enum
from pathlib import Path, PurePosixPath

from app.config import settings
from app.errors import ValidationError

_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,16}$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


class PathResolver:
    """Single choke point between logical storage keys and physical paths.

    Every path persisted by the registry is a forward-slash path relative to
    ``root``. Absolute paths only exist transiently, produced by ``to_absolute``.
    """

    def __init__(
        self,
        root: Path | None = None,
        buckets: dict[str, str] | None = None,
        other_bucket: str | None = None,
    ):
        self.root = Path(root or settings.storage_root).expanduser().resolve()
        self.buckets = buckets if buckets is not None else settings.storage_buckets
        self.other_bucket = other_bucket or settings.other_bucket

    def resolve_directory(self, document_type: Enum | str) -> str:
        key = document_type.value if isinstance(document_type, Enum) else str(document_type)
        return self.normalize(self.buckets.get(key, self.other_bucket))

    def ensure_exists(self, directory: str) -> Path:
        path = self.to_absolute(directory)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def normalize(self, raw_path: str) -> str:
        parts = self._segments(raw_path)
        # Legacy rows stored "<root name>/<bucket>/<file>". Only strip when the
        # remainder is a bucket path and the full path is not one already.
        if (
            len(parts) > 1
            and parts[0] == self.root.name
            and not self._in_bucket(parts)
            and self._in_bucket(parts[1:])
        ):
            parts = parts[1:]
        return "/".join(parts)

    def _segments(self, raw_path: str) -> list[str]:
        if "\x00" in raw_path:
            raise ValidationError("Path contains a null byte", details={"path": repr(raw_path)})

        path = raw_path.replace("\\", "/")
        root_prefix = self.root.as_posix()
        if path == root_prefix or path.startswith(root_prefix + "/"):
            path = path[len(root_prefix):]

        parts = [p for p in path.split("/") if p not in ("", ".", "..")]
        # Windows drive ("C:") left over from an absolute path
        if parts and re.fullmatch(r"[A-Za-z]:", parts[0]):
            parts = parts[1:]
        return parts

    def _in_bucket(self, parts: list[str]) -> bool:
        path = "/".join(parts)
        for bucket in {*self.buckets.values(), self.other_bucket}:
            prefix = "/".join(self._segments(bucket))
            if prefix and path.startswith(prefix + "/"):
                return True
        return False

    def to_absolute(self, relative_path: str) -> Path:
        normalized = self.normalize(relative_path)
        candidate = (self.root / normalized).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise ValidationError(
                "Path escapes the storage root",
                details={"path": relative_path},
            )
        return candidate

    def to_relative(self, absolute_path: Path) -> str:
        # Already relative to root; the legacy rule must not apply here.
        return "/".join(self._segments(Path(absolute_path).resolve().relative_to(self.root).as_posix()))


def ensure_storage_dirs(resolver: PathResolver) -> Path:
    resolver.root.mkdir(parents=True, exist_ok=True)
    for bucket in {*resolver.buckets.values(), resolver.other_bucket}:
        resolver.ensure_exists(bucket)
    return resolver.root


def display_filename(name: str | None) -> str:
    """Basename of a client-supplied filename, safe for display and headers."""
    if not name:
        return "document"
    cleaned = _CONTROL_CHARS_RE.sub("", name.replace("\\", "/"))
    base = PurePosixPath(cleaned).name.strip()
    if base in ("", ".", ".."):
        return "document"
    return base[:255]


def safe_extension(name: str | None) -> str:
    """Lowercased extension of ``name`` including the dot, or "" if unusable."""
    suffix = PurePosixPath(display_filename(name)).suffix.lower()
    return suffix if _EXTENSION_RE.match(suffix) else ""
