import hashlib
from pathlib import Path
from typing import BinaryIO

CHUNK_SIZE = 64 * 1024


def sha256_stream(stream: BinaryIO) -> str:
    """Hash a readable binary stream to exhaustion. Read errors propagate."""
    h = hashlib.sha256()
    for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
        h.update(chunk)
    return h.hexdigest()


def sha256_file(file_path: Path) -> str:
    with open(file_path, "rb") as f:
        return sha256_stream(f)


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
