"""
Local Blob Store

Stores raw audio under keys like ``songs/<uuid>.mp3`` below a root
directory. Each blob gets a ``.meta.json`` sidecar holding its content type
and header-safe attributes. Writes go to a temporary file first and are moved
into place atomically, so a key either resolves to a complete blob or not at
all.
"""

import io
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import BinaryIO, Dict, Mapping, Optional, Tuple, Union

from ..utils.header_sanitizer import sanitize_metadata_for_headers

ByteRange = Union[Tuple[int, Optional[int]], str]

_RANGE_HEADER = re.compile(r'^bytes=(\d*)-(\d*)$')
_META_SUFFIX = '.meta.json'


class StorageError(Exception):
    """The blob store could not complete an operation"""
    pass


def parse_byte_range(byte_range: ByteRange, size: int) -> Tuple[int, int]:
    """
    Resolve a byte range to inclusive ``(start, end)`` offsets.

    Accepts ``(start, end)`` tuples (end may be None) and HTTP range headers
    such as ``bytes=0-1023``, ``bytes=500-`` and ``bytes=-500``.

    Raises:
        StorageError: The range is malformed or not satisfiable
    """
    if isinstance(byte_range, str):
        match = _RANGE_HEADER.match(byte_range.strip())
        if not match or match.group(1) == match.group(2) == '':
            raise StorageError(f"Invalid range header: {byte_range}")

        first, last = match.groups()
        if first == '':
            # Suffix range: the last N bytes
            length = int(last)
            start, end = max(size - length, 0), size - 1
        else:
            start = int(first)
            end = int(last) if last else size - 1
    else:
        start, end = byte_range
        if end is None:
            end = size - 1

    end = min(end, size - 1)
    if start < 0 or start > end:
        raise StorageError(f"Unsatisfiable range {byte_range} for {size} bytes")

    return start, end


class LocalBlobStore:
    """Filesystem-backed blob store"""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"LocalBlobStore initialized: {self.root}")

    def _path_for(self, key: str) -> Path:
        """Map a key to a path below the root; keys may not escape it"""
        if not key or key.startswith('/') or key.endswith(_META_SUFFIX):
            raise StorageError(f"Invalid blob key: {key!r}")

        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Blob key escapes storage root: {key!r}")
        return path

    def _meta_path(self, path: Path) -> Path:
        return path.with_name(path.name + _META_SUFFIX)

    def put(self, key: str, data: bytes, content_type: str,
            attrs: Optional[Mapping[str, Optional[str]]] = None) -> str:
        """
        Store a blob under ``key``, replacing any existing blob.

        Args:
            key: Blob key
            data: Blob content
            content_type: MIME type recorded with the blob
            attrs: Extra attributes; sanitized to header-safe values

        Returns:
            The key
        """
        path = self._path_for(key)
        meta = {
            'content_type': content_type,
            'size': len(data),
            'attrs': sanitize_metadata_for_headers(attrs or {}),
        }

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._write_atomic(path, data)
            self._write_atomic(self._meta_path(path), json.dumps(meta, indent=2).encode('utf-8'))
        except OSError as e:
            self.logger.error(f"Failed to store blob {key}: {e}")
            raise StorageError(f"Failed to store blob {key}") from e

        self.logger.debug(f"Stored blob {key} ({len(data)} bytes, {content_type})")
        return key

    def _write_atomic(self, path: Path, data: bytes):
        fd, tmp_path = tempfile.mkstemp(prefix='.upload_', dir=str(path.parent))
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    def get(self, key: str, byte_range: Optional[ByteRange] = None) -> BinaryIO:
        """
        Read a blob.

        Args:
            key: Blob key
            byte_range: Optional ``(start, end)`` tuple or ``bytes=a-b`` header

        Returns:
            Readable stream over the blob or the requested range
        """
        path = self._path_for(key)
        if not path.is_file():
            raise StorageError(f"Blob not found: {key}")

        try:
            if byte_range is None:
                return open(path, 'rb')

            start, end = parse_byte_range(byte_range, path.stat().st_size)
            with open(path, 'rb') as f:
                f.seek(start)
                return io.BytesIO(f.read(end - start + 1))
        except OSError as e:
            self.logger.error(f"Failed to read blob {key}: {e}")
            raise StorageError(f"Failed to read blob {key}") from e

    def read_bytes(self, key: str) -> bytes:
        with self.get(key) as stream:
            return stream.read()

    def exists(self, key: str) -> bool:
        try:
            return self._path_for(key).is_file()
        except StorageError:
            return False

    def attributes(self, key: str) -> Dict[str, object]:
        """Content type, size and attributes recorded at put time"""
        meta_path = self._meta_path(self._path_for(key))
        try:
            with open(meta_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"No attributes for blob {key}") from e

    def delete(self, key: str) -> bool:
        """Delete a blob and its sidecar; False when nothing was there"""
        path = self._path_for(key)
        deleted = False

        try:
            for target in (path, self._meta_path(path)):
                if target.exists():
                    target.unlink()
                    deleted = deleted or target == path
        except OSError as e:
            self.logger.error(f"Failed to delete blob {key}: {e}")
            raise StorageError(f"Failed to delete blob {key}") from e

        if deleted:
            self.logger.debug(f"Deleted blob {key}")
        return deleted
