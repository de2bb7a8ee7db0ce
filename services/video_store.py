import logging
import threading
from typing import Dict, List, Optional

from core.errors import DuplicateVideoError
from schemas.video import VideoRecord

logger = logging.getLogger(__name__)


class BlobStore:
    """Raw video bytes keyed by video id."""

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}

    def put(self, video_id: str, data: bytes) -> None:
        self._blobs[video_id] = bytes(data)

    def get(self, video_id: str) -> Optional[bytes]:
        return self._blobs.get(video_id)

    def delete(self, video_id: str) -> None:
        self._blobs.pop(video_id, None)

    def clear(self) -> None:
        self._blobs.clear()

    def __contains__(self, video_id: object) -> bool:
        return video_id in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


class MetadataCatalog:
    """
    Ordered video records, newest first.
    `_by_id` indexes the same record objects held in `_records`.
    """

    def __init__(self) -> None:
        self._records: List[VideoRecord] = []
        self._by_id: Dict[str, VideoRecord] = {}

    def list(self) -> List[VideoRecord]:
        return [r.model_copy() for r in self._records]

    def find(self, video_id: str) -> Optional[VideoRecord]:
        record = self._by_id.get(video_id)
        return record.model_copy() if record is not None else None

    def insert_front(self, record: VideoRecord) -> None:
        if record.id in self._by_id:
            raise DuplicateVideoError(f"Video id already exists: {record.id}")
        stored = record.model_copy()
        self._records.insert(0, stored)
        self._by_id[stored.id] = stored

    def remove_by_id(self, video_id: str) -> Optional[VideoRecord]:
        record = self._by_id.pop(video_id, None)
        if record is None:
            return None
        self._records = [r for r in self._records if r.id != video_id]
        return record

    def increment_views(self, video_id: str) -> Optional[VideoRecord]:
        record = self._by_id.get(video_id)
        if record is None:
            return None
        record.view_count += 1
        return record.model_copy()

    def clear(self) -> None:
        self._records.clear()
        self._by_id.clear()

    def __contains__(self, video_id: object) -> bool:
        return video_id in self._by_id

    def __len__(self) -> int:
        return len(self._records)


class VideoStore:
    """
    Catalog and blob store behind a single lock.

    Records and blobs are only ever added and removed together, so every
    catalog entry has its bytes and no blob outlives its record.
    """

    def __init__(
        self,
        catalog: Optional[MetadataCatalog] = None,
        blobs: Optional[BlobStore] = None,
    ) -> None:
        self.catalog = catalog if catalog is not None else MetadataCatalog()
        self.blobs = blobs if blobs is not None else BlobStore()
        self._lock = threading.RLock()

    def add(self, record: VideoRecord, data: bytes) -> VideoRecord:
        with self._lock:
            if record.id in self.catalog or record.id in self.blobs:
                raise DuplicateVideoError(f"Video id already exists: {record.id}")
            self.blobs.put(record.id, data)
            try:
                self.catalog.insert_front(record)
            except Exception:
                self.blobs.delete(record.id)
                raise
            return self.catalog.find(record.id)

    def remove(self, video_id: str) -> Optional[VideoRecord]:
        with self._lock:
            record = self.catalog.remove_by_id(video_id)
            # drop the blob even if the record was already gone
            self.blobs.delete(video_id)
            return record

    def record_view(self, video_id: str) -> Optional[VideoRecord]:
        with self._lock:
            return self.catalog.increment_views(video_id)

    def get(self, video_id: str) -> Optional[VideoRecord]:
        with self._lock:
            return self.catalog.find(video_id)

    def get_blob(self, video_id: str) -> Optional[bytes]:
        with self._lock:
            return self.blobs.get(video_id)

    def get_with_blob(self, video_id: str):
        """Record and bytes read under one lock; either may be None."""
        with self._lock:
            return self.catalog.find(video_id), self.blobs.get(video_id)

    def list(self) -> List[VideoRecord]:
        with self._lock:
            return self.catalog.list()

    def count(self) -> int:
        with self._lock:
            return len(self.catalog)

    def clear(self) -> None:
        with self._lock:
            self.catalog.clear()
            self.blobs.clear()
        logger.info("Video store cleared")
