import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os

from upload_gateway import config
from upload_gateway.errors import InternalError, PayloadTooLarge
from upload_gateway.logger_config import setup_logger
from upload_gateway.services.naming import client_basename, make_storage_name

logger = setup_logger()


@dataclass
class StoredFile:
    filename: str
    size: int
    mimetype: str


class PartWriter:
    """Writes one uploaded part into the upload directory as it arrives."""

    def __init__(self, path: Path, original_filename: Optional[str], mimetype: str, max_size: int):
        self.path = path
        self.original_filename = original_filename
        self.mimetype = mimetype
        self.max_size = max_size
        self.size = 0
        self._file = None

    @property
    def filename(self) -> str:
        return self.path.name

    async def open(self):
        # "x" mode: never overwrite an existing file
        self._file = await aiofiles.open(self.path, 'xb')

    async def write(self, data: bytes):
        self.size += len(data)
        if self.size > self.max_size:
            raise PayloadTooLarge(
                f"File too large (max {self.max_size} bytes): {self.original_filename}"
            )
        await self._file.write(data)

    async def finish(self) -> StoredFile:
        await self._file.close()
        self._file = None
        logger.debug(f"Stored {self.original_filename!r} as {self.filename} ({self.size} bytes)")
        return StoredFile(filename=self.filename, size=self.size, mimetype=self.mimetype)

    async def abort(self):
        """Close and remove a partially written part."""
        if self._file is not None:
            await self._file.close()
            self._file = None
        await _discard(self.path)


async def _discard(path: Path):
    try:
        await aiofiles.os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial file {path.name}: {str(e)}")


class StorageManager:
    def __init__(self, upload_dir: Path, max_file_size: int = config.MAX_FILE_SIZE):
        self.upload_dir = upload_dir
        self.max_file_size = max_file_size

    async def initialize(self):
        """Create the upload directory if it doesn't exist."""
        logger.info("Initializing storage manager...")
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        entries = await aiofiles.os.listdir(self.upload_dir)
        logger.info(f"Upload directory ready: {self.upload_dir} ({len(entries)} entries)")

    def get_file_path(self, name: str) -> Path:
        """Path of a stored file; only the base name of ``name`` is used."""
        return self.upload_dir / client_basename(name)

    async def open_part(self, original_filename: Optional[str], mimetype: str) -> PartWriter:
        """Create the on-disk file for an incoming part under a fresh unique name."""
        filename = make_storage_name(original_filename, mimetype)
        writer = PartWriter(self.upload_dir / filename, original_filename, mimetype, self.max_file_size)
        try:
            await writer.open()
        except OSError as e:
            logger.error(f"Error storing upload: {str(e)}", exc_info=True)
            raise InternalError(f"Error storing upload: {str(e)}")
        return writer

    async def discard_stored(self, stored: List[StoredFile]):
        """Remove files already written for a request that failed later on."""
        for item in stored:
            await _discard(self.upload_dir / item.filename)
        if stored:
            logger.info(f"Rolled back {len(stored)} stored files")

    async def delete_file(self, name: str) -> str:
        """Delete a stored file. A file that is already gone counts as deleted.

        Returns:
            str: the base name that was (or would have been) removed
        """
        basename = client_basename(name)
        try:
            await aiofiles.os.unlink(self.get_file_path(basename))
        except FileNotFoundError:
            logger.debug(f"Delete of missing file ignored: {basename}")
        except OSError as e:
            logger.error(f"Error deleting {basename}: {str(e)}")
            raise InternalError(str(e))
        return basename

    async def sweep_expired(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        """Delete regular files whose mtime is more than ``max_age_seconds`` old.

        Per-file failures are logged and skipped; a directory that can't be
        listed ends the sweep. Returns the number of files removed.
        """
        if now is None:
            now = time.time()

        try:
            names = await aiofiles.os.listdir(self.upload_dir)
        except OSError as e:
            logger.error(f"[clean] error: {str(e)}")
            return 0

        removed = 0
        for name in names:
            path = self.upload_dir / name
            try:
                st = await aiofiles.os.stat(path, follow_symlinks=False)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"[clean] cannot stat {name}: {str(e)}")
                continue

            if not stat.S_ISREG(st.st_mode):
                continue
            if now - st.st_mtime <= max_age_seconds:
                continue

            try:
                await aiofiles.os.unlink(path)
                removed += 1
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"[clean] failed to remove {name}: {str(e)}")

        if removed > 0:
            logger.info(f"[clean] removed {removed} old files")
        return removed
