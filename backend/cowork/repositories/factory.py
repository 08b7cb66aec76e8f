# backend/cowork/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .catalog_repository import SpaceRepository, TariffRepository
    from .conflict_checker_repository import ConflictCheckerRepository
    from .member_repository import MemberRepository, StaffRepository
    from .settings_repository import SettingsRepository
    from .subscription_repository import SubscriptionRepository
    from .transaction_repository import TransactionRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_member_repository(db: Session) -> "MemberRepository":
        from .member_repository import MemberRepository

        return MemberRepository(db)

    @staticmethod
    def create_staff_repository(db: Session) -> "StaffRepository":
        from .member_repository import StaffRepository

        return StaffRepository(db)

    @staticmethod
    def create_space_repository(db: Session) -> "SpaceRepository":
        from .catalog_repository import SpaceRepository

        return SpaceRepository(db)

    @staticmethod
    def create_tariff_repository(db: Session) -> "TariffRepository":
        from .catalog_repository import TariffRepository

        return TariffRepository(db)

    @staticmethod
    def create_transaction_repository(db: Session) -> "TransactionRepository":
        """Create repository for ledger entries and their payment links."""
        from .transaction_repository import TransactionRepository

        return TransactionRepository(db)

    @staticmethod
    def create_subscription_repository(db: Session) -> "SubscriptionRepository":
        from .subscription_repository import SubscriptionRepository

        return SubscriptionRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_conflict_checker_repository(db: Session) -> "ConflictCheckerRepository":
        """Create repository for booking overlap queries."""
        from .conflict_checker_repository import ConflictCheckerRepository

        return ConflictCheckerRepository(db)

    @staticmethod
    def create_settings_repository(db: Session) -> "SettingsRepository":
        from .settings_repository import SettingsRepository

        return SettingsRepository(db)
