"""Content-addressable file store for serialized resources.

Every identifier maps to one file whose location is derived from the MD5 hex
digest of the identifier, with a two-level fan-out on the last two hex
characters to avoid hot directories::

    {root}/{hash[-1]}/{hash[-2]}/{hash}.nt

    >>> Filestore("/data").create_path_from_id("http://localhost/resource")
    PosixPath('/data/b/0/d388f3dc1aaec96db5e05936bfb1aa0b.nt')

Writes go through a temporary file in the destination directory followed by
``os.replace``, so readers never see a partially written file. Writing empty
content removes the file instead: an empty serialization means the resource
has no triples to keep.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, Union

__all__ = ["Filestore", "Content"]

logger = logging.getLogger(__name__)

Content = Union[bytes, str, Iterable[bytes]]


class Filestore:
    """Deterministic, hash-sharded persistence of resource bytes."""

    def __init__(self, dir: str | os.PathLike[str], extension: str = ".nt") -> None:
        self.dir = Path(dir).resolve()
        self.extension = extension

    def create_hash_from_id(self, id: str) -> str:
        return hashlib.md5(id.encode("utf-8")).hexdigest()

    def create_path_from_id(self, id: str) -> Path:
        hash = self.create_hash_from_id(id)
        return self.dir / hash[-1] / hash[-2] / f"{hash}{self.extension}"

    def save(self, id: str, content: Content) -> Path:
        """Write ``content`` for ``id``, replacing any earlier version.

        Returns:
            The path of the file; it does not exist afterwards when
            ``content`` was empty.
        """
        path = self.create_path_from_id(id)
        path.parent.mkdir(parents=True, exist_ok=True)

        if isinstance(content, str):
            chunks: Iterable[bytes] = (content.encode("utf-8"),)
        elif isinstance(content, (bytes, bytearray)):
            chunks = (bytes(content),)
        else:
            chunks = content

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".part-", suffix=".tmp")
        bytes_written = 0
        try:
            with os.fdopen(fd, "wb") as f:
                for chunk in chunks:
                    if chunk:
                        f.write(chunk)
                        bytes_written += len(chunk)
            if bytes_written == 0:
                os.unlink(tmp_path)
                path.unlink(missing_ok=True)
                logger.debug(f"Empty content for {id}; removed {path}")
                return path
            os.replace(tmp_path, path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        logger.debug(f"Stored {id} at {path} ({bytes_written} bytes)")
        return path

    def remove_by_id(self, id: str) -> None:
        path = self.create_path_from_id(id)
        path.unlink(missing_ok=True)

    def remove_all(self) -> None:
        try:
            shutil.rmtree(self.dir)
        except FileNotFoundError:
            return
        logger.info(f"Removed all stored resources in {self.dir}")
