"""Venue, asset and attribute bag data access."""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models import Asset, EntityAttribute, Venue, utcnow
from app.repositories.base import BaseRepository


class VenueRepository(BaseRepository[Venue]):

    def __init__(self, db: Session):
        super().__init__(Venue, db)

    def find_by_external_id(self, field_id: int) -> Optional[Venue]:
        return self.where_first(Venue.external_field_id == field_id)


class AssetRepository(BaseRepository[Asset]):

    def __init__(self, db: Session):
        super().__init__(Asset, db)

    def find_by_cache_key(self, cache_key: str) -> Optional[Asset]:
        return self.where_first(Asset.cache_key == cache_key)


class AttributeRepository(BaseRepository[EntityAttribute]):
    """
    Key/value attribute bag.

    Example:
        attrs = AttributeRepository(db)
        attrs.set("venue", venue.id, "address", "Hauptstr. 1, 63225 Langen")
        attrs.get_all("venue", venue.id)  # {"address": "..."}
    """

    def __init__(self, db: Session):
        super().__init__(EntityAttribute, db)

    def _find(self, entity_type: str, entity_id: int, key: str) -> Optional[EntityAttribute]:
        return self.where_first(
            EntityAttribute.entity_type == entity_type,
            EntityAttribute.entity_id == entity_id,
            EntityAttribute.key == key,
        )

    def get(self, entity_type: str, entity_id: int, key: str, default: Any = None) -> Any:
        attribute = self._find(entity_type, entity_id, key)
        return attribute.value if attribute is not None else default

    def get_all(self, entity_type: str, entity_id: int) -> Dict[str, Any]:
        return {
            a.key: a.value
            for a in self.where(
                EntityAttribute.entity_type == entity_type,
                EntityAttribute.entity_id == entity_id,
            )
        }

    def set(self, entity_type: str, entity_id: int, key: str, value: Any) -> None:
        attribute = self._find(entity_type, entity_id, key)
        if attribute is None:
            self.create(entity_type=entity_type, entity_id=entity_id, key=key, value=value)
        elif attribute.value != value:
            attribute.value = value
            attribute.updated_at = utcnow()
