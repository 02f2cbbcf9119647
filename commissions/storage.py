"""
commissions/storage.py

Blob storage for uploaded documents and payout receipts.

The core never looks inside a file: it hands bytes to a BlobStore and keeps
the returned path as an opaque string on the submission.
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path

from werkzeug.utils import secure_filename

from .errors import NotFound

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """put(bytes) -> path / get(path) -> bytes."""

    @abstractmethod
    def put(self, data: bytes, filename: str, kind: str) -> str:
        ...

    @abstractmethod
    def get(self, path: str) -> bytes:
        ...

    @abstractmethod
    def delete(self, path: str) -> None:
        ...


class LocalBlobStore(BlobStore):
    """Files under <root>/<kind>/<timestamp>-<secure filename>."""

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        # Never serve or remove anything outside the upload root
        if self.root not in full.parents:
            raise NotFound("File not found.")
        return full

    def put(self, data: bytes, filename: str, kind: str) -> str:
        safe_name = secure_filename(filename) or "upload"
        relative = f"{secure_filename(kind) or 'files'}/{time.time_ns()}-{safe_name}"

        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

        logger.info("stored %s (%d bytes)", relative, len(data))
        return relative

    def get(self, path: str) -> bytes:
        full = self._resolve(path)
        if not full.is_file():
            raise NotFound("File not found.")
        return full.read_bytes()

    def delete(self, path: str) -> None:
        full = self._resolve(path)
        if full.is_file():
            full.unlink()
