# Rev 0.7.0

"""Rank assignment and quadrant listings (Rev 0.7.0)"""
from __future__ import annotations

from typing import Dict, List, Optional

from ..models.entities import PrioritizedEntity
from ..models.types import DEFAULT_QUADRANT, EntityType, PriorityQuadrant, QUADRANT_ORDER
from ..utils.clock import Clock, utc_now
from ..utils.logging_setup import get_logger

log = get_logger("priority_ordering")


def _order_key(entity: PrioritizedEntity):
    created = entity.created_at.timestamp() if entity.created_at else 0.0
    return (entity.rank, created, entity.id or 0)


class PriorityOrderingService:
    def __init__(self, db, entities, *, clock: Clock = utc_now):
        self._db = db
        self._entities = entities
        self._clock = clock

    def next_rank(self, entity_type: EntityType | str, quadrant: PriorityQuadrant | str) -> int:
        """
        1 + max(existing ranks, highest rank ever issued). The issued rank is
        recorded, so it is never handed out again even if its holder is deleted.
        """
        et = EntityType.parse(entity_type)
        q = PriorityQuadrant.parse(quadrant)
        with self._db.transaction():
            rank = max(self._entities.max_rank(et, q), self._entities.last_issued_rank(et, q)) + 1
            self._entities.record_issued_rank(et, q, rank)
        log.debug("Issued rank %d for %s/%s", rank, et.value, q.value)
        return rank

    def create_entity(
        self,
        entity_type: EntityType | str,
        *,
        name: str,
        quadrant: PriorityQuadrant | str = DEFAULT_QUADRANT,
        **fields,
    ) -> PrioritizedEntity:
        """Insert a new project/module/task at the tail of its quadrant."""
        et = EntityType.parse(entity_type)
        q = PriorityQuadrant.parse(quadrant)
        with self._db.transaction():
            rank = self.next_rank(et, q)
            entity = self._entities.create(et, name=name, quadrant=q, rank=rank, now=self._clock(), **fields)
        log.info("Created %s %s in %s at rank %d", et.value, entity.id, q.value, rank)
        return entity

    def list_by_quadrant(
        self,
        entity_type: EntityType | str,
        project_scope: Optional[int] = None,
    ) -> Dict[PriorityQuadrant, List[PrioritizedEntity]]:
        et = EntityType.parse(entity_type)
        grouped: Dict[PriorityQuadrant, List[PrioritizedEntity]] = {q: [] for q in QUADRANT_ORDER}
        for entity in self._entities.list_by_container(et, project_id=project_scope):
            grouped[entity.quadrant].append(entity)
        for items in grouped.values():
            items.sort(key=_order_key)
        return grouped
