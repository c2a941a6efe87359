"""
Base repository class for data access layer.

Each record kind gets a repository exposing the lookups the sync engine
needs: find-by-external-id, find-unkeyed-by-name, create, update, delete.

Example:
    class VenueRepository(BaseRepository[Venue]):
        def find_by_external_id(self, field_id: int) -> Optional[Venue]:
            return self.where_first(Venue.external_field_id == field_id)
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List

from sqlalchemy.orm import Session

from app.models import utcnow

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def find_by_id(self, id: int) -> Optional[T]:
        """Find a single record by local ID."""
        return self.db.get(self.model_type, id)

    def create(self, **kwargs) -> T:
        """
        Create a new record and flush it so it has an id.

        Returns:
            The created record (not yet committed)
        """
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        self.db.flush()
        return instance

    def update(self, instance: T, **kwargs) -> T:
        """Set attributes on a record and touch updated_at."""
        for key, value in kwargs.items():
            if hasattr(instance, key):
                setattr(instance, key, value)
        if hasattr(instance, "updated_at"):
            instance.updated_at = utcnow()
        return instance

    def delete(self, instance: T) -> None:
        """Delete a record (not yet committed)."""
        self.db.delete(instance)

    # ========================================================================
    # Query Builders
    # ========================================================================

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions, ordered by id."""
        return self.db.query(self.model_type).filter(*criterion).order_by(self.model_type.id).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return the oldest match."""
        return self.db.query(self.model_type).filter(*criterion).order_by(self.model_type.id).first()
