"""Shared sync state records with optional expiry."""
import copy
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models import SyncMetadata, SyncState, utcnow
from app.repositories.base import BaseRepository


class SyncStateRepository(BaseRepository[SyncState]):
    """
    Key/value store for run progress, last run summary, history and log.

    Every write commits immediately so other sessions (the progress endpoint)
    see it while a run is still in flight.
    """

    def __init__(self, db: Session):
        super().__init__(SyncState, db)

    def get(self, key: str, default: Any = None) -> Any:
        """Value for ``key``, or ``default`` when absent or expired."""
        record = self.db.get(SyncState, key)
        if record is None:
            return default
        if record.expires_at is not None and record.expires_at <= utcnow():
            return default
        return record.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        value = copy.deepcopy(value)
        expires_at = utcnow() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        record = self.db.get(SyncState, key)
        if record is None:
            self.db.add(SyncState(key=key, value=value, expires_at=expires_at))
        else:
            record.value = value
            record.expires_at = expires_at
            record.updated_at = utcnow()
        self.db.commit()

    def delete_key(self, key: str) -> None:
        record = self.db.get(SyncState, key)
        if record is not None:
            self.db.delete(record)
            self.db.commit()


class SyncMetadataRepository(BaseRepository[SyncMetadata]):
    def __init__(self, db: Session):
        super().__init__(SyncMetadata, db)

    def find(self, source: str, data_type: str) -> Optional[SyncMetadata]:
        return self.where_first(
            SyncMetadata.source == source,
            SyncMetadata.data_type == data_type,
        )

    def get_or_create(self, source: str, data_type: str) -> SyncMetadata:
        metadata = self.find(source, data_type)
        if metadata is None:
            metadata = self.create(source=source, data_type=data_type)
        return metadata
