# backend/cowork/repositories/settings_repository.py
"""Key/value settings and working hours storage."""

import logging
from typing import Dict, List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.system_setting import SystemSetting, WorkingHours
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SettingsRepository(BaseRepository[SystemSetting]):
    def __init__(self, db: Session):
        super().__init__(db, SystemSetting)

    def get_value(self, key: str) -> Optional[str]:
        try:
            row = self.db.get(SystemSetting, key)
            return row.value if row is not None else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading setting {key}: {str(e)}")
            raise RepositoryException(f"Failed to read setting: {str(e)}")

    def get_all_values(self) -> Dict[str, str]:
        try:
            return {row.key: row.value for row in self.db.query(SystemSetting).all()}
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading settings: {str(e)}")
            raise RepositoryException(f"Failed to read settings: {str(e)}")

    def set_value(self, key: str, value: str) -> SystemSetting:
        try:
            row = self.db.get(SystemSetting, key)
            if row is None:
                row = SystemSetting(key=key, value=value)
                self.db.add(row)
            else:
                row.value = value
            self.db.flush()
            return row
        except SQLAlchemyError as e:
            self.logger.error(f"Error writing setting {key}: {str(e)}")
            raise RepositoryException(f"Failed to write setting: {str(e)}")

    def get_working_hours(self) -> List[WorkingHours]:
        try:
            return cast(
                List[WorkingHours],
                self.db.query(WorkingHours).order_by(WorkingHours.day_of_week).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading working hours: {str(e)}")
            raise RepositoryException(f"Failed to read working hours: {str(e)}")

    def set_working_hours(self, day_of_week: int, opening: str, closing: str) -> WorkingHours:
        try:
            row = self.db.get(WorkingHours, day_of_week)
            if row is None:
                row = WorkingHours(day_of_week=day_of_week, opening_time=opening, closing_time=closing)
                self.db.add(row)
            else:
                row.opening_time = opening
                row.closing_time = closing
            self.db.flush()
            return row
        except SQLAlchemyError as e:
            self.logger.error(f"Error writing working hours: {str(e)}")
            raise RepositoryException(f"Failed to write working hours: {str(e)}")
