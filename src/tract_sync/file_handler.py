"""File handler module: encoding-aware reads, atomic writes, durable appends.

Every local write the engine performs goes through this module so the
durability rules live in one place:

* ``atomic_write_text()`` writes to a temp file in the target directory and
  ``os.replace()``s it over the target, so readers never see partial data.
* ``append_line()`` appends a single line and fsyncs before returning.
"""

import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# File Read
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    encoding = result.encoding
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(result), encoding)


def read_text(path: Path) -> str:
    """Return the decoded content of *path*."""
    content, _ = read_file_with_encoding(path)
    return content


# =============================================================================
# File Write
# =============================================================================


def atomic_write_text(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write *content* to *path* atomically.

    Creates parent directories as needed.  On any failure the temp file is
    removed and the original target is left untouched.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(encoded)


def append_line(path: Path, line: str, encoding: str = "utf-8") -> None:
    """Append *line* plus a newline to *path* and fsync it.

    Creates parent directories as needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding=encoding) as fh:
        fh.write(line.rstrip("\n") + "\n")
        fh.flush()
        os.fsync(fh.fileno())
