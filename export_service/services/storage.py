"""Artifact storage for generated export files.

Owns the configured export directory: initialization and permission checks,
artifact naming, atomic writes, tolerant deletes and disk usage reporting.
"""

import asyncio
import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import structlog

from export_service.core.config import StorageConfig

logger = structlog.get_logger(__name__)


@dataclass
class DiskUsage:
    """Disk usage statistics."""

    total: int
    used: int
    available: int
    percent_used: float


class StorageError(Exception):
    """Exception raised for storage-related errors."""

    pass


class ArtifactStorage:
    """Manages the directory export artifacts are written to.

    Artifacts are named ``<job_id>-<attempt>.<extension>``, so neither jobs
    nor successive attempts of one job ever share a file.
    Writes go to a temporary sibling first and are renamed into place, so a
    reader never observes a partially written artifact.
    """

    def __init__(self, config: StorageConfig) -> None:
        self.config = config
        self.export_dir = Path(config.export_dir)

        logger.debug("artifact_storage_initialized", export_dir=str(self.export_dir))

    def initialize(self) -> None:
        """Create the export directory and verify it is writable.

        Raises:
            StorageError: If directory creation fails or permissions are insufficient.
        """
        try:
            if not self.export_dir.exists():
                self.export_dir.mkdir(parents=True, exist_ok=True)
                logger.info("export_directory_created", path=str(self.export_dir))

            test_file = self.export_dir / f".write_test_{os.getpid()}_{uuid.uuid4().hex}"
            try:
                test_file.touch()
                test_file.unlink(missing_ok=True)
            except PermissionError as e:
                raise StorageError(
                    f"Insufficient permissions to write to export directory: {self.export_dir}"
                ) from e

            logger.info("storage_initialized", export_dir=str(self.export_dir), writable=True)

        except OSError as e:
            raise StorageError(f"Failed to initialize export directory: {e}") from e

    def is_writable(self) -> bool:
        return self.export_dir.is_dir() and os.access(self.export_dir, os.W_OK)

    def get_disk_usage(self) -> DiskUsage:
        """Get current disk usage for the export directory."""
        try:
            usage = shutil.disk_usage(self.export_dir)
            percent_used = (usage.used / usage.total) * 100 if usage.total > 0 else 0.0

            return DiskUsage(
                total=usage.total,
                used=usage.used,
                available=usage.free,
                percent_used=round(percent_used, 2),
            )
        except OSError as e:
            logger.error("disk_usage_check_failed", error=str(e))
            raise StorageError(f"Failed to get disk usage: {e}") from e

    def artifact_path(self, job_id: str, extension: str, attempt: Optional[int] = None) -> Path:
        """Get the path of a job's artifact inside the export directory."""
        if attempt is None:
            return self.export_dir / f"{job_id}.{extension}"
        return self.export_dir / f"{job_id}-{attempt}.{extension}"

    async def write_artifact(self, path: Path, content: bytes) -> int:
        """Write artifact content and return the size measured on disk.

        The worker thread cannot be interrupted. When the caller is cancelled
        mid-write, the write still runs to completion before the cancellation
        propagates, so cleanup after cancellation always sees the final file.

        Raises:
            StorageError: If the write fails.
        """
        write = asyncio.ensure_future(asyncio.to_thread(self._write, path, content))
        try:
            return await asyncio.shield(write)
        except asyncio.CancelledError:
            await asyncio.wait({write})
            if write.exception() is not None:
                logger.debug(
                    "cancelled_write_failed", filepath=str(path), error=str(write.exception())
                )
            raise

    def _write(self, path: Path, content: bytes) -> int:
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_path.write_bytes(content)
            os.replace(tmp_path, path)
            size = path.stat().st_size
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Failed to write artifact {path.name}: {e}") from e

        logger.debug("artifact_written", filepath=str(path), size_bytes=size)
        return size

    def exists(self, path: Union[str, Path]) -> bool:
        return Path(path).is_file()

    def delete_artifact(self, path: Union[str, Path]) -> bool:
        """Delete an artifact, tolerating a file that is already gone.

        Returns:
            True if a file was deleted, False if there was nothing to delete.

        Raises:
            StorageError: If the file exists but cannot be removed.
        """
        filepath = Path(path)
        try:
            filepath.unlink()
        except FileNotFoundError:
            logger.debug("artifact_already_missing", filepath=str(filepath))
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete artifact {filepath}: {e}") from e

        logger.info("artifact_deleted", filepath=str(filepath))
        return True
