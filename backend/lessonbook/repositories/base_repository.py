# backend/lessonbook/repositories/base_repository.py
"""
Generic data access for every lessonbook table.

Repositories flush so that generated ids are visible, but never commit:
the service layer owns the unit of work. Every SQLAlchemy failure leaves
this layer as a RepositoryException, which BaseService.transaction()
turns into a ServiceException after rolling back.

Rows that several requests fight over (slots, credit balances) are written
through compare_and_swap() so the database, not the process, decides the
winner.
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import supports_row_locks

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """CRUD helpers shared by the model-specific repositories."""

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def model_name(self) -> str:
        return self.model.__name__

    def _fail(self, action: str, exc: SQLAlchemyError) -> RepositoryException:
        self.logger.error("%s %s failed: %s", action, self.model_name, exc)
        return RepositoryException(f"Failed to {action.lower()} {self.model_name}: {exc}")

    def get_by_id(self, id: str, for_update: bool = False, fresh: bool = False) -> Optional[T]:
        """
        Load one row by primary key.

        ``for_update`` adds a row lock where the dialect has one (PostgreSQL).
        ``fresh`` replaces whatever copy the session already holds with the
        stored row, which matters when another session may have written it.
        """
        query = self.db.query(self.model).filter(self.model.id == id)
        if fresh:
            query = query.populate_existing()
        if for_update and supports_row_locks(self.db):
            query = query.with_for_update()
        try:
            return query.first()
        except SQLAlchemyError as e:
            raise self._fail("Load", e) from e

    def find_one_by(self, **criteria) -> Optional[T]:
        try:
            return self.db.query(self.model).filter_by(**criteria).first()
        except SQLAlchemyError as e:
            raise self._fail("Find", e) from e

    def refresh(self, instance: T) -> T:
        self.db.refresh(instance)
        return instance

    def create(self, **values) -> T:
        """Insert a row and flush it so defaults and the ULID id are populated."""
        entity = self.model(**values)
        try:
            self.db.add(entity)
            self.db.flush()
        except IntegrityError as e:
            self.logger.error("Constraint violated inserting %s: %s", self.model_name, e)
            raise RepositoryException(f"Integrity constraint violated: {e}") from e
        except SQLAlchemyError as e:
            raise self._fail("Create", e) from e
        return entity

    def update(self, id: str, **values) -> Optional[T]:
        """Set the given attributes on an existing row; None when it is gone."""
        entity = self.get_by_id(id)
        if entity is None:
            return None
        for key, value in values.items():
            if hasattr(entity, key):
                setattr(entity, key, value)
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            raise self._fail("Update", e) from e
        return entity

    def delete(self, id: str) -> bool:
        entity = self.get_by_id(id)
        if entity is None:
            return False
        try:
            self.db.delete(entity)
            self.db.flush()
        except IntegrityError as e:
            self.logger.error("%s %s is still referenced: %s", self.model_name, id, e)
            raise RepositoryException(f"Cannot delete due to existing references: {e}") from e
        except SQLAlchemyError as e:
            raise self._fail("Delete", e) from e
        return True

    def compare_and_swap(
        self,
        id: str,
        expected: Dict[str, Any],
        values: Dict[str, Any],
        conditions: Sequence[Any] = (),
    ) -> bool:
        """
        Conditionally update one row.

        The UPDATE only matches when every column in ``expected`` still holds
        the given value and every extra SQL expression in ``conditions`` holds.
        Returns whether the row was updated; a False result
        means a concurrent writer got there first. The in-session instance is
        expired so the next attribute access reloads it.
        """
        stmt = update(self.model).where(self.model.id == id)
        for column, value in expected.items():
            stmt = stmt.where(getattr(self.model, column) == value)
        for condition in conditions:
            stmt = stmt.where(condition)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise self._fail("Update", e) from e

        instance = self.db.identity_map.get(self.db.identity_key(self.model, id))
        if instance is not None:
            self.db.expire(instance)
        return result.rowcount == 1

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            raise self._fail("Query", e) from e
