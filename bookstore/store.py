"""Entity store: the transactional data access handle passed to services."""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy import func, select, update as sql_update
from sqlalchemy.orm import Session

from bookstore.errors import NotFound
from bookstore.identifiers import identifier_clause, resolve_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityStore:
    """Create/find/update/count over ORM models bound to one session."""

    def __init__(self, session: Session):
        self.session = session

    def find_by_id(self, model, entity_id: Any, options: Sequence = ()):
        identifier = resolve_identifier(entity_id)
        stmt = select(model).where(identifier_clause(model, identifier))
        if options:
            stmt = stmt.options(*options)
        return self.session.scalars(stmt).first()

    def find_many(
        self,
        model,
        filters: Iterable = (),
        options: Sequence = (),
        order_by: Sequence = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Any]:
        stmt = select(model).where(*filters)
        if options:
            stmt = stmt.options(*options)
        stmt = stmt.order_by(*(order_by or (model.id,)))
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        return list(self.session.scalars(stmt).unique())

    def count(self, model, filters: Iterable = ()) -> int:
        stmt = select(func.count()).select_from(model).where(*filters)
        return self.session.scalar(stmt) or 0

    def create(self, model, **data):
        entity = model(**data)
        self.session.add(entity)
        self.session.flush()
        return entity

    def update(self, model, entity_id: int, **data):
        entity = self.session.get(model, entity_id)
        if entity is None:
            raise NotFound(
                f"{model.__name__} with ID {entity_id} not found",
                {"id": entity_id},
            )
        for key, value in data.items():
            setattr(entity, key, value)
        self.session.flush()
        return entity

    def lock_many(self, model, ids: Iterable[int]) -> Dict[int, Any]:
        """SELECT ... FOR UPDATE the rows, locking in ascending id order."""
        ordered = sorted(set(ids))
        if not ordered:
            return {}
        stmt = (
            select(model)
            .where(model.id.in_(ordered))
            .order_by(model.id)
            .with_for_update()
        )
        return {row.id: row for row in self.session.scalars(stmt)}

    def decrement(self, model, entity_id: int, column: str, amount: int) -> bool:
        """Subtract ``amount`` unless that would take the column below zero."""
        target = getattr(model, column)
        result = self.session.execute(
            sql_update(model)
            .where(model.id == entity_id, target >= amount)
            .values({column: target - amount})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def run_transaction(self, fn: Callable[["EntityStore"], T]) -> T:
        """Run ``fn`` and commit; roll every write back if it raises."""
        try:
            result = fn(self)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result
