"""
Local file storage boundary.

Artifacts are addressed by storage key, a relative POSIX path under the
data directory ("uploads/abc.png", "output/video_<id>.mp4").

Keys coming from clients are untrusted: resolve() refuses anything that
would land outside the data directory.
"""

import logging
import re
import uuid
from pathlib import Path
from urllib.parse import quote

logger = logging.getLogger(__name__)


UPLOADS_DIR = "uploads"
OUTPUT_DIR = "output"
FILES_URL_PREFIX = "/api/files/"

# Client-supplied extensions are kept only if they look like one
_EXTENSION_PATTERN = re.compile(r"^\.[a-z0-9]{1,16}$")


class StorageError(Exception):
    """Base exception for storage failures."""
    pass


class UnsafeStorageKeyError(StorageError):
    """The key escapes the data directory (absolute path or '..')."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Unsafe storage key: {key!r}")


class FileStore:
    """Resolves storage keys to files under a single data directory."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir).resolve()

    def ensure_layout(self) -> None:
        """Create the data directory and its standard subdirectories."""
        for sub in ("", UPLOADS_DIR, OUTPUT_DIR):
            (self.data_dir / sub).mkdir(parents=True, exist_ok=True)

    def resolve(self, key: str) -> Path:
        """
        Map a storage key to an absolute path inside the data directory.

        Raises:
            UnsafeStorageKeyError: If the key is empty or escapes the data dir
        """
        if not key or not key.strip():
            raise UnsafeStorageKeyError(key)

        candidate = (self.data_dir / key.lstrip("/")).resolve()
        if candidate != self.data_dir and self.data_dir not in candidate.parents:
            logger.warning(f"[Storage] Path traversal attempt: {key!r}")
            raise UnsafeStorageKeyError(key)
        return candidate

    def exists(self, key: str) -> bool:
        """True if the key names an existing regular file."""
        try:
            return self.resolve(key).is_file()
        except UnsafeStorageKeyError:
            return False

    def url_for(self, key: str) -> str:
        """URL under which the file route serves this key."""
        return FILES_URL_PREFIX + quote(key, safe="")

    def new_output_key(self, prefix: str = "video", suffix: str = ".mp4") -> str:
        """Fresh, collision-free key in the output directory."""
        return f"{OUTPUT_DIR}/{prefix}_{uuid.uuid4()}{suffix}"

    def new_upload_key(self, ext: str = "") -> str:
        """
        Fresh key in the uploads directory.

        Args:
            ext: Extension of the client's filename (e.g. ".JPG"); lowercased,
                and dropped if it is not a plain alphanumeric suffix
        """
        ext = (ext or "").lower()
        if not _EXTENSION_PATTERN.match(ext):
            ext = ""
        return f"{UPLOADS_DIR}/{uuid.uuid4()}{ext}"
