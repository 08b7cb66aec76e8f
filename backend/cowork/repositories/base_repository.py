# backend/cowork/repositories/base_repository.py
"""
Base repository for the coworking engine.

Shared lookups, inserts and deletes for every aggregate, plus the row-lock
helper used by the balance, pool and booking read-modify-write flows.

Repositories flush but never commit; BaseService.transaction() decides
whether a unit of work is kept.
"""

import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Data access for one mapped model keyed by a ULID ``id`` column.

    Attributes:
        db: Session owned by the calling service
        model: Mapped class served by this repository
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def get_by_id(self, id: str, for_update: bool = False) -> Optional[T]:
        """
        Load one row by primary key.

        Args:
            id: ULID of the row
            for_update: Hold a row lock until the surrounding transaction ends
        """
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if for_update:
                query = self._apply_row_lock(query)
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to load {self.model.__name__}: {str(e)}")

    def create(self, **kwargs: Any) -> T:
        """Insert a row and flush so its id and defaults are populated."""
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()
            return entity
        except IntegrityError as exc:
            # Caller maps known constraint names (overlap, uniqueness) to domain errors
            self.logger.warning("Constraint rejected new %s: %s", self.model.__name__, exc)
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error inserting {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}") from e

    def flush(self) -> None:
        """Push pending attribute changes to the database."""
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error flushing {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to flush {self.model.__name__}: {str(e)}") from e

    def delete(self, id: str) -> bool:
        """
        Delete a row by primary key.

        Returns:
            False when no such row exists
        """
        entity = self.get_by_id(id)
        if entity is None:
            return False
        try:
            self.db.delete(entity)
            self.db.flush()
            return True
        except IntegrityError as e:
            self.logger.error(f"{self.model.__name__} {id} is still referenced: {str(e)}")
            raise RepositoryException(f"Cannot delete due to existing references: {str(e)}") from e
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to delete {self.model.__name__}: {str(e)}") from e

    def exists(self, **criteria: Any) -> bool:
        return self.find_one_by(**criteria) is not None

    def count(self, **criteria: Any) -> int:
        """Number of rows whose columns equal ``criteria``."""
        try:
            return self.db.query(self.model).filter_by(**criteria).count()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to count {self.model.__name__}: {str(e)}")

    def find_one_by(self, **criteria: Any) -> Optional[T]:
        """First row whose columns equal ``criteria``."""
        try:
            return self.db.query(self.model).filter_by(**criteria).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error looking up {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to find {self.model.__name__}: {str(e)}")

    def _apply_row_lock(self, query: Query) -> Query:
        """
        Add SELECT ... FOR UPDATE scoped to this model's table.

        SQLite has no row locks and ignores the clause; writers there are
        serialized by BEGIN IMMEDIATE instead. Rows already in the identity
        map are refreshed so checks run against the locked values.
        """
        return query.with_for_update(of=self.model).populate_existing()
