# backend/cowork/repositories/catalog_repository.py
"""Read access to the space and tariff catalogs."""

import logging
from typing import List, Sequence, cast

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.space import Space, SpaceStatus
from ..models.tariff import Tariff, tariff_spaces
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SpaceRepository(BaseRepository[Space]):
    def __init__(self, db: Session):
        super().__init__(db, Space)

    def list_bookable(self) -> List[Space]:
        """Spaces not under maintenance, ordered by floor and name."""
        try:
            return cast(
                List[Space],
                self.db.query(Space)
                .filter(Space.status != SpaceStatus.MAINTENANCE)
                .order_by(Space.floor, Space.name)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing spaces: {str(e)}")
            raise RepositoryException(f"Failed to list spaces: {str(e)}")


class TariffRepository(BaseRepository[Tariff]):
    def __init__(self, db: Session):
        super().__init__(db, Tariff)

    def get_space_ids(self, tariff_id: str) -> List[str]:
        """Spaces a tariff is bound to, in a stable order."""
        try:
            rows = self.db.execute(
                select(tariff_spaces.c.space_id)
                .where(tariff_spaces.c.tariff_id == tariff_id)
                .order_by(tariff_spaces.c.space_id)
            ).all()
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading spaces of tariff {tariff_id}: {str(e)}")
            raise RepositoryException(f"Failed to load tariff spaces: {str(e)}")

    def list_active(self) -> List[Tariff]:
        try:
            return cast(
                List[Tariff],
                self.db.query(Tariff).filter(Tariff.is_active.is_(True)).order_by(Tariff.name).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing tariffs: {str(e)}")
            raise RepositoryException(f"Failed to list tariffs: {str(e)}")

    def replace_space_ids(self, tariff_id: str, space_ids: Sequence[str]) -> None:
        """Bind a tariff to exactly ``space_ids``."""
        try:
            self.db.execute(delete(tariff_spaces).where(tariff_spaces.c.tariff_id == tariff_id))
            if space_ids:
                self.db.execute(
                    insert(tariff_spaces),
                    [{"tariff_id": tariff_id, "space_id": space_id} for space_id in space_ids],
                )
        except SQLAlchemyError as e:
            self.logger.error(f"Error binding spaces of tariff {tariff_id}: {str(e)}")
            raise RepositoryException(f"Failed to bind tariff spaces: {str(e)}")
