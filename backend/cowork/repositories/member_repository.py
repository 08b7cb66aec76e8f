# backend/cowork/repositories/member_repository.py
"""Data access for members and staff."""

import logging
from typing import List, Optional, Sequence, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.member import Member, Staff, StaffRole
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class MemberRepository(BaseRepository[Member]):
    def __init__(self, db: Session):
        super().__init__(db, Member)

    def get_for_update(self, member_id: str) -> Optional[Member]:
        """Load a member with its balance row locked."""
        return self.get_by_id(member_id, for_update=True)

    def get_many(self, member_ids: Sequence[str]) -> List[Member]:
        """Return members with the given ids (missing ids are skipped)."""
        if not member_ids:
            return []
        try:
            return cast(
                List[Member],
                self.db.query(Member).filter(Member.id.in_(list(member_ids))).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading members: {str(e)}")
            raise RepositoryException(f"Failed to load members: {str(e)}")

    def get_by_email(self, email: str) -> Optional[Member]:
        return self.find_one_by(email=email)

    def list_ids(self) -> List[str]:
        """Ids of every member, in a stable order."""
        try:
            return [row[0] for row in self.db.query(Member.id).order_by(Member.id).all()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing member ids: {str(e)}")
            raise RepositoryException(f"Failed to list members: {str(e)}")


class StaffRepository(BaseRepository[Staff]):
    def __init__(self, db: Session):
        super().__init__(db, Staff)

    def get_active_staff(self, staff_id: str) -> Optional[Staff]:
        """Return the staff member unless missing or deactivated."""
        try:
            return cast(
                Optional[Staff],
                self.db.query(Staff)
                .filter(Staff.id == staff_id, Staff.role != StaffRole.INACTIVE)
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading staff {staff_id}: {str(e)}")
            raise RepositoryException(f"Failed to load staff: {str(e)}")
