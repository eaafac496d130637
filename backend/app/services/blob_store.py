import logging
import os
import secrets
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from app.errors import NotFoundError
from app.utils.filesystem import PathResolver, safe_extension

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredBlob:
    filename: str
    relative_path: str
    size_bytes: int


def generate_filename(original_filename: str | None) -> str:
    # <millisecond-timestamp>-<random hex><.ext>
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{safe_extension(original_filename)}"


class BlobStore:
    """Write-once file storage under the resolver's root.

    Files are created under names this class generates and are afterwards
    only read or removed, never rewritten.
    """

    def __init__(self, resolver: PathResolver):
        self.resolver = resolver

    def store(self, source: BinaryIO, directory: str, original_filename: str | None = None) -> StoredBlob:
        target_dir = self.resolver.ensure_exists(directory)
        filename = generate_filename(original_filename)
        target = target_dir / filename
        relative_path = self.resolver.to_relative(target)

        # "xb" refuses to open an existing file, so a name collision fails instead of overwriting.
        try:
            with open(target, "xb") as out:
                shutil.copyfileobj(source, out, COPY_BUFFER_SIZE)
                out.flush()
                os.fsync(out.fileno())
        except FileExistsError:
            logger.error("Refusing to overwrite existing blob %s", relative_path)
            raise
        except BaseException:
            # Interrupted or failing source: never leave a partial file behind.
            target.unlink(missing_ok=True)
            logger.warning("Discarded partially written blob %s", relative_path)
            raise

        size = target.stat().st_size
        logger.debug("Stored blob %s (%d bytes)", relative_path, size)
        return StoredBlob(filename=filename, relative_path=relative_path, size_bytes=size)

    def retrieve(self, relative_path: str) -> BinaryIO:
        path = self.resolver.to_absolute(relative_path)
        try:
            return open(path, "rb")
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise NotFoundError(
                "Stored file not found",
                details={"path": relative_path},
                cause=exc,
            ) from exc

    def remove(self, relative_path: str) -> bool:
        path = self.resolver.to_absolute(relative_path)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Blob already absent during removal: %s", path)
            return False
        logger.debug("Removed blob %s", relative_path)
        return True

    def exists(self, relative_path: str) -> bool:
        return self.resolver.to_absolute(relative_path).is_file()

    def size(self, relative_path: str) -> int:
        return self.resolver.to_absolute(relative_path).stat().st_size

    def absolute_path(self, relative_path: str) -> Path:
        return self.resolver.to_absolute(relative_path)

    def iter_blobs(self):
        """Yield (relative_path, mtime) for every file under the root."""
        root = self.resolver.root
        if not root.exists():
            return
        for path in root.rglob("*"):
            if path.is_file():
                yield self.resolver.to_relative(path), path.stat().st_mtime
