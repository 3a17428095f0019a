import asyncio
import json
import os
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from loguru import logger
from pydantic import ValidationError

from stripbooth.config import settings
from stripbooth.errors import StorageFailure, StripNotFound
from stripbooth.models.strip import FORMAT_EXTENSIONS, StorageStats, StripFilter, StripRecord, StripUpdate


class StripStorage(Protocol):
    """Persistence for finished photo strips."""

    async def save(self, record: StripRecord) -> str:
        ...

    async def list(self, strip_filter: Optional[StripFilter] = None) -> List[StripRecord]:
        ...

    async def get(self, strip_id: str) -> StripRecord:
        ...

    async def update(self, strip_id: str, changes: StripUpdate) -> StripRecord:
        ...

    async def delete(self, strip_id: str) -> bool:
        ...

    async def clear(self) -> int:
        ...

    async def stats(self) -> StorageStats:
        ...


def new_strip_id() -> str:
    return f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


def _newest_first(records: List[StripRecord]) -> List[StripRecord]:
    return sorted(records, key=lambda record: record.created_at, reverse=True)


class InMemoryStripStorage:
    storage_type = "memory"

    def __init__(self):
        self._records: Dict[str, StripRecord] = {}

    async def save(self, record: StripRecord) -> str:
        strip_id = record.id or new_strip_id()
        self._records[strip_id] = record.model_copy(update={"id": strip_id})
        return strip_id

    async def list(self, strip_filter: Optional[StripFilter] = None) -> List[StripRecord]:
        strip_filter = strip_filter or StripFilter()
        return _newest_first([r for r in self._records.values() if strip_filter.matches(r)])

    async def get(self, strip_id: str) -> StripRecord:
        if strip_id not in self._records:
            raise StripNotFound(strip_id)
        return self._records[strip_id]

    async def update(self, strip_id: str, changes: StripUpdate) -> StripRecord:
        record = changes.apply(await self.get(strip_id))
        self._records[strip_id] = record
        return record

    async def delete(self, strip_id: str) -> bool:
        return self._records.pop(strip_id, None) is not None

    async def clear(self) -> int:
        count = len(self._records)
        self._records.clear()
        return count

    async def stats(self) -> StorageStats:
        records = list(self._records.values())
        return StorageStats(
            total_strips=len(records),
            total_photos=sum(r.photo_count for r in records),
            storage_bytes=sum(len(r.composite_image) + sum(len(f) for f in r.frames) for r in records),
            storage_type=self.storage_type
        )


class FileStripStorage:
    """Stores each strip as an image file plus a JSON metadata file.

    ``<id>.<ext>`` holds the composite image and ``<id>.json`` holds the
    record without the image, frames included as base64 strings.
    """

    storage_type = "file"

    def __init__(self, strips_dir: str = settings.strips_dir):
        self.strips_dir = strips_dir

    def _meta_path(self, strip_id: str) -> str:
        return os.path.join(self.strips_dir, f"{strip_id}.json")

    def _image_path(self, strip_id: str, image_format: str) -> str:
        return os.path.join(self.strips_dir, f"{strip_id}.{FORMAT_EXTENSIONS[image_format]}")

    @staticmethod
    def _valid_id(strip_id: str) -> bool:
        return bool(strip_id) and os.path.basename(strip_id) == strip_id and not strip_id.startswith(".")

    def _write(self, record: StripRecord):
        os.makedirs(self.strips_dir, exist_ok=True)
        with open(self._image_path(record.id, record.image_format), 'wb') as f:
            f.write(record.composite_image)
        self._write_meta(record)

    def _write_meta(self, record: StripRecord):
        with open(self._meta_path(record.id), 'w', encoding='utf-8') as f:
            f.write(record.model_dump_json(exclude={"composite_image"}))

    def _remove(self, record: StripRecord):
        image_path = self._image_path(record.id, record.image_format)
        if os.path.exists(image_path):
            os.remove(image_path)
        os.remove(self._meta_path(record.id))

    def _clear(self) -> int:
        records = self._read_all()
        for record in records:
            self._remove(record)
        return len(records)

    def _read(self, strip_id: str, with_image: bool = True) -> StripRecord:
        with open(self._meta_path(strip_id), 'r', encoding='utf-8') as f:
            record = StripRecord.model_validate(json.load(f))
        if with_image:
            with open(self._image_path(strip_id, record.image_format), 'rb') as f:
                record = record.model_copy(update={"composite_image": f.read()})
        return record

    def _read_all(self) -> List[StripRecord]:
        if not os.path.exists(self.strips_dir):
            return []
        records = []
        for filename in os.listdir(self.strips_dir):
            if not filename.endswith(".json"):
                continue
            try:
                records.append(self._read(filename[:-len(".json")], with_image=False))
            except (OSError, ValueError, ValidationError) as e:
                logger.warning(f"Skipping unreadable strip metadata {filename}: {e}")
        return records

    async def save(self, record: StripRecord) -> str:
        record = record.model_copy(update={"id": record.id or new_strip_id()})
        try:
            await asyncio.to_thread(self._write, record)
        except OSError as e:
            logger.error(f"Failed to save strip {record.id}: {e}")
            raise StorageFailure(f"Could not save photo strip: {e}") from e
        logger.info(f"Saved strip {record.id} to {self.strips_dir}")
        return record.id

    async def list(self, strip_filter: Optional[StripFilter] = None) -> List[StripRecord]:
        strip_filter = strip_filter or StripFilter()
        records = await asyncio.to_thread(self._read_all)
        return _newest_first([r for r in records if strip_filter.matches(r)])

    async def get(self, strip_id: str) -> StripRecord:
        if not self._valid_id(strip_id) or not os.path.exists(self._meta_path(strip_id)):
            raise StripNotFound(strip_id)
        try:
            return await asyncio.to_thread(self._read, strip_id)
        except FileNotFoundError as e:
            raise StripNotFound(strip_id) from e
        except (OSError, ValueError, ValidationError) as e:
            raise StorageFailure(f"Could not read photo strip {strip_id}: {e}") from e

    async def update(self, strip_id: str, changes: StripUpdate) -> StripRecord:
        """Apply ``changes`` to the stored metadata; the composite image is untouched."""
        if not self._valid_id(strip_id) or not os.path.exists(self._meta_path(strip_id)):
            raise StripNotFound(strip_id)
        try:
            record = changes.apply(await asyncio.to_thread(self._read, strip_id, False))
            await asyncio.to_thread(self._write_meta, record)
        except FileNotFoundError as e:
            raise StripNotFound(strip_id) from e
        except (OSError, ValueError, ValidationError) as e:
            raise StorageFailure(f"Could not update photo strip {strip_id}: {e}") from e
        logger.info(f"Updated strip {strip_id}")
        return record

    async def delete(self, strip_id: str) -> bool:
        if not self._valid_id(strip_id) or not os.path.exists(self._meta_path(strip_id)):
            return False
        try:
            record = await asyncio.to_thread(self._read, strip_id, False)
            await asyncio.to_thread(self._remove, record)
        except (OSError, ValueError, ValidationError) as e:
            raise StorageFailure(f"Could not delete photo strip {strip_id}: {e}") from e
        logger.info(f"Deleted strip {strip_id}")
        return True

    async def clear(self) -> int:
        try:
            count = await asyncio.to_thread(self._clear)
        except OSError as e:
            raise StorageFailure(f"Could not clear photo strips: {e}") from e
        logger.info(f"Cleared {count} strips from {self.strips_dir}")
        return count

    async def stats(self) -> StorageStats:
        records = await asyncio.to_thread(self._read_all)
        storage_bytes = 0
        if os.path.exists(self.strips_dir):
            for filename in os.listdir(self.strips_dir):
                storage_bytes += os.stat(os.path.join(self.strips_dir, filename)).st_size
        return StorageStats(
            total_strips=len(records),
            total_photos=sum(r.photo_count for r in records),
            storage_bytes=storage_bytes,
            storage_type=self.storage_type
        )


def create_storage(backend: str = settings.storage_backend):
    if backend == "memory":
        return InMemoryStripStorage()
    if backend == "file":
        return FileStripStorage(settings.strips_dir)
    raise ValueError(f"Unknown storage backend: {backend}")
