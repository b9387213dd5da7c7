"""
Disk-Backed Stager

Writes bytes to a uniquely named temporary file (bucketmesh-*.upload).
close() flushes the file and hands its path to the committer, which
deletes it after a successful upload and keeps it as the failure
artifact otherwise. abort() and staging failures delete it.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Mapping, Optional, Union

from bucketmesh.core import constants as C
from bucketmesh.core.errors import BucketMeshError, StagingError
from bucketmesh.core.types import Err, Ok, Result, StagingStrategy
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.staging.base import ContentStager, StagedContent

logger = logging.getLogger(__name__)


class DiskStager(ContentStager):

    strategy = StagingStrategy.DISK

    def __init__(
        self,
        bucket: str,
        key: str,
        temp_dir: Optional[Union[str, Path]] = None,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        super().__init__(bucket, key, content_type, metadata, metrics)
        self._temp_dir = str(temp_dir) if temp_dir is not None else None
        self._path: Optional[str] = None
        self._file: Optional[BinaryIO] = None

    @property
    def path(self) -> Optional[str]:
        """Staging file path, None until the first write."""
        return self._path

    def _open(self) -> Result[BinaryIO, BucketMeshError]:
        if self._file is not None:
            return Ok(self._file)
        try:
            fd, self._path = tempfile.mkstemp(
                prefix=C.TEMP_FILE_PREFIX,
                suffix=C.TEMP_FILE_SUFFIX,
                dir=self._temp_dir,
            )
            self._file = os.fdopen(fd, "wb")
        except OSError as e:
            return Err(StagingError.io_failed(self._key, self._path or self._temp_dir or "", e))
        logger.debug("Staging %s in %s", self._key, self._path, extra={"key": self._key})
        return Ok(self._file)

    async def _write(self, data: bytes) -> Result[None, BucketMeshError]:
        opened = self._open()
        if opened.is_err():
            return opened
        try:
            opened.value.write(data)
        except OSError as e:
            return Err(StagingError.io_failed(self._key, self._path, e))
        return Ok(None)

    async def _close(self) -> Result[StagedContent, BucketMeshError]:
        opened = self._open()
        if opened.is_err():
            return opened
        try:
            opened.value.flush()
            os.fsync(opened.value.fileno())
            opened.value.close()
        except OSError as e:
            return Err(StagingError.io_failed(self._key, self._path, e))
        self._file = None
        return Ok(self._describe(path=self._path))

    async def _release(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            except OSError as e:
                logger.warning("Error closing staging file %s: %s", self._path, e)
            self._file = None
        if self._path is not None:
            try:
                os.unlink(self._path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Cannot delete staging file %s: %s", self._path, e)
